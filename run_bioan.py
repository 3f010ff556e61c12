"""
Import the urine and plasma biochemical analyses (catecholamines) workbook
* one Fluid sample per urine row, under the patient with that RINB
* one Biochemical Analysis data per row
Progress of each row is reported to the XTENS daemon endpoint.
usage: python run_bioan.py [folder] [owner] [operator]
"""
import sys

from xtens_migrate.daemon_service import DaemonService
from xtens_migrate.logger_settings import get_logger
from xtens_migrate.settings import SHEET_SOURCE_DIR, SHEET_SOURCE_EXT
from xtens_migrate.sheet_import import BioAnImport
from xtens_migrate.xtens_api import XtensClient

folder = sys.argv[1] if len(sys.argv) > 1 else SHEET_SOURCE_DIR
owner = int(sys.argv[2]) if len(sys.argv) > 2 else None
operator = int(sys.argv[3]) if len(sys.argv) > 3 else owner

migrate_logger = get_logger()
bio_an_import = BioAnImport(XtensClient(logger=migrate_logger), DaemonService(logger=migrate_logger),
                            owner=owner, operator=operator, logger=migrate_logger)
summary = bio_an_import.migrate(folder, SHEET_SOURCE_EXT)
for row_result in summary.failed:
    migrate_logger.error('[FAIL] RINB ' + row_result.file_name + ': ' + str(row_result.error))
