"""
migrator.py
Copy records from the legacy MySQL store into XTENS and import aCGH
workbooks through the XTENS REST API.
"""

import os
import json
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

import pandas as pd
import requests
from dateutil import parser as date_parser
from dateutil import tz
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import text

from . import settings
from .cgh_metadata import compose_cgh_metadata
from .exceptions import FatalParseError, MigrationError
from .utils import get_files_in_folder
from .xtens_api import sample_by_arrival_code_query

DEFAULT_BIRTH_DATE = '1970-01-01'
NOT_DETERMINED = 'N.D.'

SELECT_PROJECTS = text(
    "SELECT ID_PRJ, NAME_PROJECT, DESCR_PROJECT FROM PROJECT ORDER BY ID_PRJ")
INSERT_PROJECT = text(
    "INSERT INTO project (name, description, created_at, updated_at) "
    "VALUES (:name, :description, :created_at, :updated_at) RETURNING id")

SELECT_SUBJECT_IDS = text("SELECT ID_PRS_DATA FROM PERSONAL_DATA ORDER BY ID_PRS_DATA")
SELECT_SUBJECT = text(
    "SELECT pd.NAME, pd.SURNAME, pd.BIRTH_DATE, p.ID_SEX, p.CODE, p.ID_PRJ, "
    "pd.INSERT_DATE, pd.DATE_LAST_UPDATE "
    "FROM PERSONAL_DATA pd LEFT JOIN PATIENT p ON pd.ID_PRS_DATA = p.ID_PRS_DATA "
    "WHERE pd.ID_PRS_DATA = :legacy_id")
INSERT_PERSONAL_DETAILS = text(
    "INSERT INTO personal_details (given_name, surname, birth_date, created_at, updated_at) "
    "VALUES (:given_name, :surname, :birth_date, :created_at, :updated_at) RETURNING id")
INSERT_SUBJECT = text(
    "INSERT INTO subject (code, type, personal_info, sex, metadata, created_at, updated_at) "
    "VALUES (:code, :type, :personal_info, :sex, :metadata, :created_at, :updated_at) RETURNING id")
INSERT_PROJECT_SUBJECT = text(
    "INSERT INTO project_subjects__subject_projects (project_subjects, subject_projects) "
    "VALUES (:project_subjects, :subject_projects)")

SELECT_NB_CLINICAL_SITUATION = text(
    "SELECT cs.*, cp.NAME_CLINICAL_PROTOCOL, h.DESCR_NB_HISTOLOGY, ps.DESCR_NB_PRIMARY_SITE "
    "FROM NB_CLINICAL_SITUATION cs "
    "LEFT JOIN CLINICAL_PROTOCOL cp ON cs.ID_CLINICAL_PROTOCOL = cp.ID_CLINICAL_PROTOCOL "
    "LEFT JOIN NB_HISTOLOGY h ON cs.ID_NB_HISTOLOGY = h.ID_NB_HISTOLOGY "
    "LEFT JOIN NB_PRIMARY_SITE ps ON cs.ID_NB_PRIMARY_SITE = ps.ID_NB_PRIMARY_SITE "
    "WHERE cs.ID_PATIENT = :legacy_id")


def format_date(value, timezone_name=settings.LEGACY_TIMEZONE):
    """
     legacy date -> 'YYYY-MM-DD' in Rome local time; naive values are taken
     as already local
    """
    if value is None or value == '' or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, str):
        value = date_parser.parse(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz.gettz(timezone_name))
        return value.strftime('%Y-%m-%d')
    if isinstance(value, date):
        return value.strftime('%Y-%m-%d')
    raise MigrationError("** Error: format_date Failed (unsupported date [" + str(value) + "])")


class Migrator:
    """
    Record copier from the legacy store into the XTENS database.
    Rows are copied one at a time.
    """

    def __init__(self, legacy_engine, xtens_engine, xtens_client=None, logger=None):
        self.legacy_engine = legacy_engine
        self.xtens_engine = xtens_engine
        self.xtens_client = xtens_client
        self.logger = logger or logging.getLogger(__name__)
        # legacy subject id -> XTENS subject id
        self.subject_map = {}

    def migrate_projects(self):
        with self.legacy_engine.connect() as legacy_conn:
            projects_df = pd.read_sql(SELECT_PROJECTS, legacy_conn)
        self.logger.info('migrate_projects: [' + str(len(projects_df)) + '] projects')

        project_ids = []
        for index, row in projects_df.iterrows():
            now = datetime.now()
            with self.xtens_engine.begin() as conn:
                project_id = conn.execute(INSERT_PROJECT, {
                    'name': row['NAME_PROJECT'],
                    'description': row['DESCR_PROJECT'],
                    'created_at': now,
                    'updated_at': now,
                }).scalar_one()
            self.logger.info('project [' + str(row['NAME_PROJECT']) + '] -> [' + str(project_id) + ']')
            project_ids.append(project_id)
        return project_ids

    def migrate_subject(self, legacy_id):
        """
         copy one legacy patient into personal_details, subject and its project
         association in a single transaction; returns the new subject id
        """
        with self.legacy_engine.connect() as legacy_conn:
            record = legacy_conn.execute(SELECT_SUBJECT, {'legacy_id': legacy_id}).mappings().first()
        if record is None:
            raise MigrationError("** Error: migrate_subject Failed (no legacy subject [" + str(legacy_id) + "])")

        created_at = format_date(record['INSERT_DATE'])
        updated_at = format_date(record['DATE_LAST_UPDATE'])
        with self.xtens_engine.begin() as conn:
            personal_info = conn.execute(INSERT_PERSONAL_DETAILS, {
                'given_name': record['NAME'] or " ",
                'surname': record['SURNAME'] or " ",
                'birth_date': format_date(record['BIRTH_DATE']) or DEFAULT_BIRTH_DATE,
                'created_at': created_at,
                'updated_at': updated_at,
            }).scalar_one()
            subject_id = conn.execute(INSERT_SUBJECT, {
                'code': record['CODE'],
                'type': settings.PATIENT_SUBJECT_TYPE_ID,
                'personal_info': personal_info,
                'sex': record['ID_SEX'],
                'metadata': json.dumps({}),
                'created_at': created_at,
                'updated_at': updated_at,
            }).scalar_one()
            conn.execute(INSERT_PROJECT_SUBJECT, {
                'project_subjects': record['ID_PRJ'],
                'subject_projects': subject_id,
            })
        self.logger.info('migrate_subject: [' + str(legacy_id) + '] -> [' + str(subject_id) + ']')
        return subject_id

    def migrate_nb_clinical_data(self, legacy_id, subject_id):
        """
         post the neuroblastoma clinical situation of a patient to XTENS;
         returns the created data, or None when the patient is not in the
         NB registry
        """
        with self.legacy_engine.connect() as legacy_conn:
            clin_sit = legacy_conn.execute(SELECT_NB_CLINICAL_SITUATION,
                                           {'legacy_id': legacy_id}).mappings().first()
        if clin_sit is None or not clin_sit['ID_NB_REG']:
            self.logger.debug('migrate_nb_clinical_data: no NB registry data for [' + str(legacy_id) + ']')
            return None

        metadata = {
            'italian_nb_registry_id': {'value': clin_sit['ID_NB_REG']},
            'diagnosis_date': {'value': format_date(clin_sit['DIAGNOSIS_DATE'])},
            'diagnosis_age': {'value': clin_sit['DIAGNOSIS_AGE'], 'unit': 'month'},
            'clinical_protocol': {'value': clin_sit['NAME_CLINICAL_PROTOCOL']},
            'inss': {'value': clin_sit['INSS'] or None},
            'inrgss': {'value': clin_sit['INRGSS'] or None},
            'histology': {'value': clin_sit['DESCR_NB_HISTOLOGY']},
            'primary_site': {'value': clin_sit['DESCR_NB_PRIMARY_SITE']},
            'relapse': {'value': clin_sit['RELAPSE'] or None},
            'relapse_date': {'value': format_date(clin_sit['RELAPSE_DATE'])},
            'relapse_type': {'value': clin_sit['RELAPSE_TYPE'] or None},
            'last_follow_up_date': {'value': format_date(clin_sit['LAST_FOLLOW_UP_DATE'])},
            'clinical_follow_up_status': {'value': clin_sit['CLINICAL_FOLLOW_UP_STATUS'] or None},
            'ploidy': {'value': clin_sit['PLOIDY']},
            'mycn_status': {'value': clin_sit['MYCN_STATUS'] or None},
            'event_overall': {'value': clin_sit['EVENT_OVERALL'] or NOT_DETERMINED},
            'event_progfree': {'value': clin_sit['EVENT_PROGFREE'] or NOT_DETERMINED},
            'survival_overall': {'value': clin_sit['SURVIVAL_OVERALL'], 'unit': 'day'},
            'survival_progfree': {'value': clin_sit['SURVIVAL_PROGFREE'], 'unit': 'day'},
        }
        self.logger.info('Creating new NB Clinical Situation for subject [' + str(subject_id) + ']')
        return self.xtens_client.create_data(settings.NB_CLINICAL_SITUATION_DATA_TYPE_ID, metadata,
                                             parent_subject=[subject_id],
                                             date=format_date(datetime.now(tz.gettz(settings.LEGACY_TIMEZONE))))

    def migrate_complete_subject(self, legacy_id):
        subject_id = self.migrate_subject(legacy_id)
        self.subject_map[legacy_id] = subject_id
        self.migrate_nb_clinical_data(legacy_id, subject_id)
        self.logger.info('migrate_complete_subject: created new Subject [' + str(subject_id) + ']')
        return subject_id

    def migrate_all_subjects(self):
        with self.legacy_engine.connect() as legacy_conn:
            subjects_df = pd.read_sql(SELECT_SUBJECT_IDS, legacy_conn)
        for index, row in subjects_df.iterrows():
            legacy_id = int(row['ID_PRS_DATA'])
            self.logger.info('migrate_all_subjects: migrating subject [' + str(legacy_id) + ']')
            self.migrate_complete_subject(legacy_id)
        return dict(self.subject_map)


@dataclass
class FileResult:
    file_name: str
    status: str
    created: int = 0
    not_created: List[dict] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RunSummary:
    files: List[FileResult] = field(default_factory=list)

    @property
    def succeeded(self):
        return [res for res in self.files if res.status == 'success']

    @property
    def failed(self):
        return [res for res in self.files if res.status == 'error']


class CGHMigration:
    """
    Import a folder of aCGH workbooks: for each file a CGH raw record under the
    DNA sample with the same arrival code, its CGH processed record, the
    genomic profile and one CNV record per aberration.
    """

    def __init__(self, xtens_client, daemon_service, owner=None, operator=None,
                 raw_data_type_id=settings.CGH_RAW_DATA_TYPE_ID, logger=None):
        self.xtens_client = xtens_client
        self.daemon_service = daemon_service
        self.owner = owner
        self.operator = operator
        self.raw_data_type_id = raw_data_type_id
        self.logger = logger or logging.getLogger(__name__)

    def migrate_cgh(self, folder=settings.CGH_SOURCE_DIR, ext=settings.CGH_SOURCE_EXT, process_id=None):
        process_id = process_id if process_id is not None else os.getpid()
        files = get_files_in_folder(folder, ext, logger=self.logger)
        if not files:
            error = "Invalid or no files loaded"
            daemon = self.daemon_service.initialize_daemon(" ", {}, self.operator, process_id)
            self.daemon_service.error_daemon(daemon, error)
            self.logger.info(error)
            raise MigrationError("** Error: migrate_cgh Failed (" + error + ")")

        daemons = [self.daemon_service.initialize_daemon(os.path.relpath(file_path, folder), {},
                                                         self.operator, process_id)
                   for file_path in files]
        summary = RunSummary()
        for file_path, daemon in zip(files, daemons):
            summary.files.append(self.migrate_cgh_file(file_path, folder, daemon))
        self.logger.info('migrate_cgh: [' + str(len(summary.succeeded)) + '] files imported, ['
                         + str(len(summary.failed)) + '] failed')
        return summary

    def fail(self, daemon, file_name, error):
        self.daemon_service.error_daemon(daemon, error)
        return FileResult(file_name, 'error', error=str(error))

    def find_sample(self, sample_code):
        """
         DNA sample delivered for aCGH with the given arrival code, or None
        """
        query = sample_by_arrival_code_query(sample_code, settings.ALIQUOT_DELIVERY_DATA_TYPE_ID,
                                             'recipient', settings.CGH_DELIVERY_RECIPIENT)
        found = self.xtens_client.data_search(query)
        return found[0] if found else None

    def is_already_imported(self, sample_code):
        query = sample_by_arrival_code_query(sample_code, self.raw_data_type_id,
                                             'platform', settings.CGH_PLATFORM)
        return bool(self.xtens_client.data_search(query))

    def migrate_cgh_file(self, file_path, folder, daemon):
        file_name = os.path.relpath(file_path, folder)
        self.logger.info('migrate_cgh_file: [' + file_path + ']')
        try:
            batch = compose_cgh_metadata(file_path, logger=self.logger)
        except FatalParseError as err:
            return self.fail(daemon, file_name, err)
        except (zipfile.BadZipFile, InvalidFileException, OSError, KeyError) as err:
            return self.fail(daemon, file_name, "could not read workbook [" + file_name + "] " + str(err))

        daemon['info']['totalRows'] = len(batch.cnv_records)
        daemon['info']['processedRows'] = 0
        daemon = self.daemon_service.update_daemon(daemon)

        try:
            found = self.find_sample(batch.sample_code)
            if found is None:
                return self.fail(daemon, file_name, "no sample with aliquot found for [" + batch.sample_code + "]")
            sample = self.xtens_client.get_sample(found['id'])
            if not sample:
                return self.fail(daemon, file_name, "no DNA found for [" + batch.sample_code + "]")
            if self.is_already_imported(batch.sample_code):
                self.logger.info(file_name + ' has already been inserted')
                return self.fail(daemon, file_name, file_name + " has already been inserted")
            if not sample.get('donor'):
                return self.fail(daemon, file_name, "no subject found for [" + batch.sample_code + "]")
            subject_id = sample['donor'][0]['id']
            self.logger.info('parent DNA: [' + str(sample['id']) + '] subject: [' + str(subject_id) + ']')

            raw = self.xtens_client.create_data(
                self.raw_data_type_id,
                {'platform': {'value': settings.CGH_PLATFORM}, 'array': {'value': settings.CGH_ARRAY}},
                owner=self.owner, parent_sample=[sample['id']], parent_subject=[subject_id])
        except requests.HTTPError as err:
            return self.fail(daemon, file_name, "XTENS request failed before CGH-RAW creation. " + str(err))

        try:
            processed = self.xtens_client.create_data(
                settings.CGH_PROCESSED_DATA_TYPE_ID, batch.processed_metadata,
                owner=self.owner, parent_subject=[subject_id], parent_data=[raw['id']])
            self.logger.info('Created CGH-Processed: [' + str(processed['id']) + ']')
            if batch.genomic_profile is not None:
                profile = self.xtens_client.create_data(
                    settings.GENOMIC_PROFILE_DATA_TYPE_ID, batch.genomic_profile,
                    owner=self.owner, parent_subject=[subject_id], parent_data=[processed['id']])
                self.logger.info('Created GENOMIC PROFILE: [' + str(profile['id']) + ']')
            else:
                self.logger.warning('No genomic profile reported in [' + file_name + ']')
        except requests.HTTPError as err:
            self.xtens_client.delete_data(raw['id'])
            self.logger.info('Rollback Operation: deleted CGH-RAW [' + str(raw['id']) + ']')
            return self.fail(daemon, file_name, "CGH-PROCESSED or GENOMIC PROFILE was not correctly created. "
                             + str(err))

        created = 0
        not_created = []
        for index, cnv in enumerate(batch.cnv_records):
            try:
                self.xtens_client.create_data(settings.CNV_DATA_TYPE_ID, cnv, owner=self.owner,
                                              parent_subject=[subject_id], parent_data=[processed['id']])
            except requests.HTTPError as err:
                self.logger.warning('CNV [' + str(index) + '] not created: ' + str(err))
                not_created.append({'index': index, 'data': cnv, 'error': "Error on cnv creation"})
                continue
            created = created + 1
            daemon['info']['processedRows'] = created
            daemon = self.daemon_service.update_daemon(daemon)

        sample['donor'] = [donor['id'] for donor in sample['donor']]
        self.xtens_client.update_sample(sample)

        self.logger.info('migrate_cgh_file: done for sample [' + batch.sample_code + ']')
        daemon['info']['processedRows'] = created
        daemon['info']['notProcessedRows'] = not_created
        self.daemon_service.success_daemon(daemon)
        return FileResult(file_name, 'success', created, not_created)
