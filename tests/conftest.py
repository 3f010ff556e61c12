"""
Pytest fixtures for the migration tests.

Provides aCGH workbooks written with openpyxl, in-memory SQLite stand-ins
for the legacy and XTENS databases and fake HTTP responses.
"""
import logging
from unittest.mock import MagicMock

import openpyxl
import pytest
import requests
from sqlalchemy import create_engine, text

CGH_HEADER_ROWS = [
    ["Window Size: 250 bp"],
    ["Threshold: 6.0"],
    ["Centralization (legacy): ON"],
    ["Centralization (legacy) Threshold: 6,5"],
    ["Centralization (legacy) Bin Size: 10"],
    ["Fuzzy Zero: OFF"],
    ["GC Correction: ON"],
    ["Genomic Profile: SCA: Frequent"],
    ["Aberration Algorithm: ADM-2"],
]

CNV_TABLE_HEADER = ["AberrationNo", "Chr", "Cytoband", "Start", "Stop", "#Probes", "Amplification",
                    "Deletion", "pval", "Gene Names", "CNV", "miRNA"]

CNV_ROWS = [
    [1, "chr2", "p25.3 - p24.3", 100, 200, 5, "0,42", 0, "1,5e-10", "MYCN, DDX1", None, "mir-21"],
    [2, "chr17", "q21.31", 300, 400, 12, 0, "-0,37", "0,01", None, None, None],
]

XTENS_SCHEMA = [
    "CREATE TABLE project (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, description TEXT, "
    "created_at TIMESTAMP, updated_at TIMESTAMP)",
    "CREATE TABLE personal_details (id INTEGER PRIMARY KEY AUTOINCREMENT, given_name TEXT NOT NULL, "
    "surname TEXT NOT NULL, birth_date TEXT NOT NULL, created_at TEXT, updated_at TEXT)",
    "CREATE TABLE subject (id INTEGER PRIMARY KEY AUTOINCREMENT, code TEXT NOT NULL, type INTEGER, "
    "personal_info INTEGER, sex TEXT, metadata TEXT, created_at TEXT, updated_at TEXT)",
    "CREATE TABLE project_subjects__subject_projects (id INTEGER PRIMARY KEY AUTOINCREMENT, "
    "project_subjects INTEGER, subject_projects INTEGER)",
]

LEGACY_SCHEMA = [
    "CREATE TABLE PROJECT (ID_PRJ INTEGER PRIMARY KEY, NAME_PROJECT TEXT, DESCR_PROJECT TEXT)",
    "CREATE TABLE PERSONAL_DATA (ID_PRS_DATA INTEGER PRIMARY KEY, NAME TEXT, SURNAME TEXT, "
    "BIRTH_DATE TEXT, INSERT_DATE TEXT, DATE_LAST_UPDATE TEXT)",
    "CREATE TABLE PATIENT (ID_PATIENT INTEGER PRIMARY KEY, ID_PRS_DATA INTEGER, ID_SEX TEXT, "
    "CODE TEXT, ID_PRJ INTEGER)",
    "CREATE TABLE NB_CLINICAL_SITUATION (ID_PATIENT INTEGER, ID_NB_REG TEXT, DIAGNOSIS_DATE TEXT, "
    "DIAGNOSIS_AGE INTEGER, ID_CLINICAL_PROTOCOL INTEGER, INSS TEXT, INRGSS TEXT, ID_NB_HISTOLOGY INTEGER, "
    "ID_NB_PRIMARY_SITE INTEGER, RELAPSE TEXT, RELAPSE_DATE TEXT, RELAPSE_TYPE TEXT, "
    "LAST_FOLLOW_UP_DATE TEXT, CLINICAL_FOLLOW_UP_STATUS TEXT, PLOIDY TEXT, MYCN_STATUS TEXT, "
    "EVENT_OVERALL TEXT, EVENT_PROGFREE TEXT, SURVIVAL_OVERALL INTEGER, SURVIVAL_PROGFREE INTEGER)",
    "CREATE TABLE CLINICAL_PROTOCOL (ID_CLINICAL_PROTOCOL INTEGER PRIMARY KEY, NAME_CLINICAL_PROTOCOL TEXT)",
    "CREATE TABLE NB_HISTOLOGY (ID_NB_HISTOLOGY INTEGER PRIMARY KEY, DESCR_NB_HISTOLOGY TEXT)",
    "CREATE TABLE NB_PRIMARY_SITE (ID_NB_PRIMARY_SITE INTEGER PRIMARY KEY, DESCR_NB_PRIMARY_SITE TEXT)",
]


def write_workbook(path, rows):
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    for row in rows:
        worksheet.append(row)
    workbook.save(path)
    return str(path)


@pytest.fixture
def make_workbook(tmp_path):
    def _make(file_name, rows):
        return write_workbook(tmp_path / file_name, rows)
    return _make


@pytest.fixture
def cgh_workbook(make_workbook):
    rows = CGH_HEADER_ROWS + [[None], CNV_TABLE_HEADER] + CNV_ROWS
    return make_workbook("ARR-123.xlsx", rows)


def _engine(schema):
    engine = create_engine("sqlite:///:memory:")
    with engine.begin() as conn:
        for statement in schema:
            conn.execute(text(statement))
    return engine


@pytest.fixture
def xtens_engine():
    return _engine(XTENS_SCHEMA)


@pytest.fixture
def legacy_engine():
    return _engine(LEGACY_SCHEMA)


@pytest.fixture
def logger():
    return logging.getLogger("migrate_test")


def make_response(status_code=200, json_body=None):
    """Fake requests.Response with json() and raise_for_status()."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(str(status_code) + " Error")
    else:
        response.raise_for_status.return_value = None
    return response
