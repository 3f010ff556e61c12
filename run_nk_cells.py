"""
Import the NK cells phenotype and function workbook: one NK Cells data per
row, under the fluid sample with the biobank code in FLUIDO.
usage: python run_nk_cells.py [folder] [owner] [operator]
"""
import sys

from xtens_migrate.daemon_service import DaemonService
from xtens_migrate.logger_settings import get_logger
from xtens_migrate.settings import SHEET_SOURCE_DIR, SHEET_SOURCE_EXT
from xtens_migrate.sheet_import import NKCellsImport
from xtens_migrate.xtens_api import XtensClient

folder = sys.argv[1] if len(sys.argv) > 1 else SHEET_SOURCE_DIR
owner = int(sys.argv[2]) if len(sys.argv) > 2 else None
operator = int(sys.argv[3]) if len(sys.argv) > 3 else owner

migrate_logger = get_logger()
nk_cells_import = NKCellsImport(XtensClient(logger=migrate_logger), DaemonService(logger=migrate_logger),
                                owner=owner, operator=operator, logger=migrate_logger)
summary = nk_cells_import.migrate(folder, SHEET_SOURCE_EXT)
for row_result in summary.failed:
    migrate_logger.error('[FAIL] FLUIDO ' + row_result.file_name + ': ' + str(row_result.error))
