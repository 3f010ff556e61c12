"""
Import a folder of aCGH (Agilent CytoGenomics) workbooks into XTENS
* CGH raw, CGH processed and genomic profile data under the DNA sample
  whose arrival code is the file name
* one CNV data per aberration row
Progress of each file is reported to the XTENS daemon endpoint.
usage: python run_cgh.py [folder] [owner] [operator]
"""
import sys

from xtens_migrate.daemon_service import DaemonService
from xtens_migrate.logger_settings import get_logger
from xtens_migrate.migrator import CGHMigration
from xtens_migrate.settings import CGH_SOURCE_DIR, CGH_SOURCE_EXT
from xtens_migrate.xtens_api import XtensClient

folder = sys.argv[1] if len(sys.argv) > 1 else CGH_SOURCE_DIR
owner = int(sys.argv[2]) if len(sys.argv) > 2 else None
operator = int(sys.argv[3]) if len(sys.argv) > 3 else owner

migrate_logger = get_logger()
cgh_migration = CGHMigration(XtensClient(logger=migrate_logger), DaemonService(logger=migrate_logger),
                             owner=owner, operator=operator, logger=migrate_logger)
summary = cgh_migration.migrate_cgh(folder, CGH_SOURCE_EXT)
for file_result in summary.failed:
    migrate_logger.error('[FAIL] ' + file_result.file_name + ': ' + str(file_result.error))
