"""
sheet_import.py
Import single-workbook exports into XTENS, one record per sheet row:
* urine and plasma biochemical analyses (catecholamines) keyed by RINB
* NK cell immunophenotyping keyed by the fluid biobank code
* the Italian NB registry follow-up, which updates or creates the NB
  clinical situation of each registry patient
"""

import os
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import date
from typing import List

import pandas as pd
import requests
from openpyxl.utils.exceptions import InvalidFileException

from . import settings
from .clinical_metadata import (
    compose_bioan_metadata,
    compose_cnb_info_metadata,
    compose_nk_cells_metadata,
    format_date,
    parse_date,
)
from .exceptions import MigrationError, SkippedRecord
from .migrator import FileResult, RunSummary
from .utils import get_files_in_folder
from .xtens_api import (
    data_by_type_query,
    sample_by_biobank_code_query,
    subject_by_registry_id_query,
    subjects_with_personal_info_query,
)


def read_sheet_rows(file_path):
    """
     rows of the first worksheet as dicts keyed by the header row, empty cells as None
    """
    try:
        sheet_df = pd.read_excel(file_path, sheet_name=0, engine='openpyxl')
    except (zipfile.BadZipFile, InvalidFileException, ValueError, OSError, KeyError) as err:
        raise MigrationError("** Error: read_sheet_rows Failed (" + str(file_path) + ": " + str(err) + ")") from err
    sheet_df = sheet_df.astype(object).where(pd.notna(sheet_df), None)
    return [row.to_dict() for index, row in sheet_df.iterrows()]


def row_code(value):
    """
     codes read from numeric columns come back as floats: 1234.0 -> 1234
    """
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        value = value.strip()
    return None if value == '' else value


def donor_ids(donor):
    if donor is None:
        return []
    if not isinstance(donor, list):
        donor = [donor]
    return [item['id'] if isinstance(item, dict) else item for item in donor]


class SheetRowImport:
    """
    Import every row of the only workbook in a folder as one analysis data,
    with a daemon per row. Subclasses name the code column, the data type and
    the date and notes columns, and resolve the parents in prepare_row.
    """
    name = 'sheet_import'
    label = 'analysis'
    code_column = None
    data_type_id = None
    date_column = None
    notes_column = None

    def __init__(self, xtens_client, daemon_service, owner=None, operator=None, logger=None):
        self.xtens_client = xtens_client
        self.daemon_service = daemon_service
        self.owner = owner
        self.operator = operator
        self.logger = logger or logging.getLogger(__name__)

    def fail(self, daemon, code, error):
        self.daemon_service.error_daemon(daemon, error)
        return FileResult(str(code), 'error', error=str(error))

    def load_rows(self, folder, ext, process_id):
        files = get_files_in_folder(folder, ext, logger=self.logger)
        if len(files) != 1:
            error = "Load at most one file" if files else "Invalid or no files loaded"
            daemon = self.daemon_service.initialize_daemon(" ", {}, self.operator, process_id)
            self.daemon_service.error_daemon(daemon, error)
            self.logger.info(error)
            raise MigrationError("** Error: " + self.name + " Failed (" + error + ")")
        return read_sheet_rows(files[0])

    def migrate(self, folder=settings.SHEET_SOURCE_DIR, ext=settings.SHEET_SOURCE_EXT, process_id=None):
        process_id = process_id if process_id is not None else os.getpid()
        rows = self.load_rows(folder, ext, process_id)

        summary = RunSummary()
        pending = []
        for index, datum in enumerate(rows):
            code = row_code(datum.get(self.code_column))
            if code is None:
                error = 'No ' + self.code_column + ' for row ' + str(index)
                self.logger.info(error)
                daemon = self.daemon_service.initialize_daemon(" ", {}, self.operator, process_id)
                summary.files.append(self.fail(daemon, 'row ' + str(index), error))
                continue
            daemon = self.daemon_service.initialize_daemon(str(code), {}, self.operator, process_id)
            pending.append((code, datum, daemon))

        for code, datum, daemon in pending:
            summary.files.append(self.migrate_row(code, datum, daemon))
        self.logger.info(self.name + ': [' + str(len(summary.succeeded)) + '] rows imported, ['
                         + str(len(summary.failed)) + '] failed')
        return summary

    def prepare_row(self, code, datum):
        """
         returns (subject id, sample id, metadata) for the row, raises
         SkippedRecord when a parent cannot be found
        """
        raise NotImplementedError

    def migrate_row(self, code, datum, daemon):
        self.logger.info(self.name + ': [' + str(code) + ']')
        daemon['info']['totalRows'] = 1
        daemon['info']['processedRows'] = 0
        daemon = self.daemon_service.update_daemon(daemon)

        try:
            analysis_date = format_date(parse_date(datum.get(self.date_column), dayfirst=True))
            subject_id, sample_id, metadata = self.prepare_row(code, datum)
        except (SkippedRecord, ValueError) as err:
            return self.fail(daemon, code, err)
        except requests.HTTPError as err:
            return self.fail(daemon, code, "XTENS request failed for [" + str(code) + "]. " + str(err))

        created = 0
        not_created = []
        try:
            analysis = self.xtens_client.create_data(
                self.data_type_id, metadata, owner=self.owner, parent_subject=[subject_id],
                parent_sample=[sample_id], date=analysis_date, notes=datum.get(self.notes_column))
            self.logger.info('Created ' + self.label + ': [' + str(analysis['id']) + ']')
            created = 1
        except requests.HTTPError as err:
            self.logger.warning(self.label + ' for [' + str(code) + '] not created: ' + str(err))
            not_created.append({'index': 0, 'data': metadata, 'error': "Error on " + self.label + " creation"})

        daemon['info']['processedRows'] = created
        daemon['info']['notProcessedRows'] = not_created
        self.daemon_service.success_daemon(daemon)
        return FileResult(str(code), 'success', created, not_created)


class BioAnImport(SheetRowImport):
    """
    Urine rows create a new Fluid sample under the patient; plasma rows
    attach the analysis to the existing plasma sample named in PLASMA.
    """
    name = 'migrate_bio_an'
    label = 'biochemical analysis'
    code_column = 'RINB'
    data_type_id = settings.BIOCHEMICAL_ANALYSIS_DATA_TYPE_ID
    date_column = 'Analysis Date'
    notes_column = 'BioAn_Notes'

    def prepare_row(self, code, datum):
        metadata = compose_bioan_metadata(datum)
        found = self.xtens_client.data_search(subject_by_registry_id_query(int(code)))
        if not found:
            raise SkippedRecord("no patient found with RINB [" + str(code) + "]")
        subject_id = found[0]['id']

        plasma_code = row_code(datum.get('PLASMA'))
        if plasma_code is None:
            sample = self.xtens_client.create_sample(
                settings.FLUID_SAMPLE_TYPE_ID, metadata['sample'], donor=[subject_id],
                biobank=settings.BIOBANK_ID, owner=self.owner, notes=datum.get('Sample_Notes'))
            self.logger.info('Created Fluid: [' + str(sample['id']) + '] for RINB [' + str(code) + ']')
            return subject_id, sample['id'], metadata['bio_an']

        plasma = self.xtens_client.data_search(sample_by_biobank_code_query(plasma_code))
        if not plasma:
            raise SkippedRecord("no Plasma found for RINB [" + str(code) + "]")
        return subject_id, plasma[0]['id'], metadata['bio_an']


class NKCellsImport(SheetRowImport):
    name = 'migrate_nk_cells'
    label = 'NK cells analysis'
    code_column = 'FLUIDO'
    data_type_id = settings.NK_CELLS_DATA_TYPE_ID
    date_column = 'DATA ANALISI'
    notes_column = 'NOTE'

    def prepare_row(self, code, datum):
        samples = self.xtens_client.find_samples(code)
        if not samples:
            raise SkippedRecord("no FLUID found for [" + str(code) + "]")
        fluid = samples[0]
        donors = donor_ids(fluid.get('donor'))
        if not donors:
            raise SkippedRecord("no subject found for FLUID [" + str(code) + "]")
        return donors[0], fluid['id'], compose_nk_cells_metadata(datum)


@dataclass
class RegistryImportSummary:
    created: int = 0
    updated: int = 0
    not_updated: int = 0
    failed: List[dict] = field(default_factory=list)


def _birth_date(value):
    try:
        return parse_date(value)
    except (ValueError, OverflowError):
        return None


def match_subject(subjects, patient):
    """
     first subject sharing at least two of surname, given name and birth
     date with the registry row
    """
    surname = str(patient.get('COGNOME') or '').upper().strip()
    given_name = str(patient.get('NOME') or '').upper().strip()
    birth_date = _birth_date(patient.get('DATA_NASCITA'))
    for subject in subjects:
        same_birth_date = birth_date is not None and _birth_date(subject.get('birth_date')) == birth_date
        same_surname = bool(surname) and subject.get('surname') == surname
        same_given_name = bool(given_name) and subject.get('given_name') == given_name
        if same_birth_date + same_surname + same_given_name >= 2:
            return subject
    return None


def registry_code(clinical_info):
    metadata = clinical_info.get('metadata') or {}
    return row_code((metadata.get('italian_nb_registry_id') or {}).get('value'))


class CNBInfoImport:
    """
    Update the NB clinical situation of the patients in the Italian NB
    registry export, matched on the registry id ('Registry ID' or
    'UPN_RINB'). A row with no clinical situation yet creates one under the
    subject with the same personal details.
    """

    def __init__(self, xtens_client, owner=None, logger=None):
        self.xtens_client = xtens_client
        self.owner = owner
        self.logger = logger or logging.getLogger(__name__)

    def load(self):
        try:
            subjects = self.xtens_client.data_search(subjects_with_personal_info_query())
            clinical_infos = self.xtens_client.data_search(
                data_by_type_query(settings.NB_CLINICAL_SITUATION_DATA_TYPE_ID))
        except requests.HTTPError as err:
            raise MigrationError("** Error: import_cnb_info Failed (Error loading Data: " + str(err) + ")") from err
        return subjects, clinical_infos

    def import_cnb_info(self, folder=settings.SHEET_SOURCE_DIR, ext=settings.SHEET_SOURCE_EXT):
        files = get_files_in_folder(folder, ext, logger=self.logger)
        if not files:
            self.logger.info("Invalid or no files loaded")
            raise MigrationError("** Error: import_cnb_info Failed (No Valid files loaded)")
        patients = read_sheet_rows(files[0])
        subjects, clinical_infos = self.load()

        by_code = {}
        for clinical_info in clinical_infos:
            by_code.setdefault(str(registry_code(clinical_info)), clinical_info)

        summary = RegistryImportSummary()
        seen = set()
        today = date.today().isoformat()
        for index, patient in enumerate(patients):
            code = row_code(patient.get('Registry ID'))
            if code is None:
                code = row_code(patient.get('UPN_RINB'))
            patient_name = str(patient.get('NOME')) + ' ' + str(patient.get('COGNOME'))
            if code is not None:
                seen.add(str(code))

            clinical_info = by_code.get(str(code)) if code is not None else None
            try:
                if clinical_info is not None:
                    metadata = compose_cnb_info_metadata(patient)
                    metadata['italian_nb_registry_id']['value'] = code
                    self.xtens_client.update_data(clinical_info['id'], settings.NB_CLINICAL_SITUATION_DATA_TYPE_ID,
                                                  metadata, owner=self.owner, date=today)
                    summary.updated += 1
                    self.logger.info('import_cnb_info: patient [' + patient_name + '] RINB [' + str(code)
                                     + '] updated clinical situation [' + str(clinical_info['id']) + ']')
                    continue
                if not patient.get('COGNOME'):
                    continue
                subject = match_subject(subjects, patient)
                if subject is None or code is None:
                    self.logger.info('import_cnb_info: patient [' + patient_name + '] with code ['
                                     + str(code) + '] is not present into DB')
                    continue
                metadata = compose_cnb_info_metadata(patient)
                metadata['italian_nb_registry_id']['value'] = code
                self.xtens_client.create_data(settings.NB_CLINICAL_SITUATION_DATA_TYPE_ID, metadata,
                                              owner=self.owner, parent_subject=[subject['id']], date=today)
                summary.created += 1
                self.logger.info('import_cnb_info: patient [' + patient_name + '] subject ['
                                 + str(subject['id']) + '] clinical situation created')
            except (requests.HTTPError, ValueError) as err:
                self.logger.error('import_cnb_info: row [' + str(index) + '] RINB [' + str(code) + '] ' + str(err))
                summary.failed.append({'index': index, 'code': code, 'error': str(err)})

        summary.not_updated = len([info for info in clinical_infos if str(registry_code(info)) not in seen])
        self.logger.info('import_cnb_info: [' + str(summary.created) + '] created, [' + str(summary.updated)
                         + '] updated, [' + str(summary.not_updated) + '] not in the registry file')
        return summary
