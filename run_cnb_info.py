"""
Update the NB clinical situation of every patient in the Italian NB
registry export (first workbook in the folder).
usage: python run_cnb_info.py [folder] [owner]
"""
import sys

from xtens_migrate.logger_settings import get_logger
from xtens_migrate.settings import SHEET_SOURCE_DIR, SHEET_SOURCE_EXT
from xtens_migrate.sheet_import import CNBInfoImport
from xtens_migrate.xtens_api import XtensClient

folder = sys.argv[1] if len(sys.argv) > 1 else SHEET_SOURCE_DIR
owner = int(sys.argv[2]) if len(sys.argv) > 2 else None

migrate_logger = get_logger()
cnb_info_import = CNBInfoImport(XtensClient(logger=migrate_logger), owner=owner, logger=migrate_logger)
summary = cnb_info_import.import_cnb_info(folder, SHEET_SOURCE_EXT)
for failure in summary.failed:
    migrate_logger.error('[FAIL] RINB ' + str(failure['code']) + ': ' + failure['error'])
