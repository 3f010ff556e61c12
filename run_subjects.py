"""
Copy projects and patients from the legacy MySQL store into XTENS
* PROJECT -> project
* PERSONAL_DATA / PATIENT -> personal_details, subject, project association
* NB_CLINICAL_SITUATION -> NB clinical situation data (XTENS REST API)
"""
from sqlalchemy import create_engine

from xtens_migrate.logger_settings import get_logger
from xtens_migrate.migrator import Migrator
from xtens_migrate.settings import LEGACY_DATABASE_URL, XTENS_DATABASE_URL
from xtens_migrate.xtens_api import XtensClient

migrate_logger = get_logger()
migrator = Migrator(create_engine(LEGACY_DATABASE_URL), create_engine(XTENS_DATABASE_URL),
                    XtensClient(logger=migrate_logger), logger=migrate_logger)
migrator.migrate_projects()
subject_map = migrator.migrate_all_subjects()
migrate_logger.info('migrated subjects: [' + str(len(subject_map)) + ']')
