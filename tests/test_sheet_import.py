"""
Tests for the single-workbook imports: biochemical analyses, NK cells and
the NB registry follow-up.
"""
import datetime
from unittest.mock import MagicMock

import pytest
import requests

from xtens_migrate import settings
from xtens_migrate.exceptions import MigrationError
from xtens_migrate.sheet_import import (
    BioAnImport,
    CNBInfoImport,
    NKCellsImport,
    donor_ids,
    match_subject,
    read_sheet_rows,
    row_code,
)

BIOAN_HEADER = ["RINB", "PLASMA", "HVA", "HVA_UNIT", "Sampling Date", "Quantity", "Analysis Date",
                "BioAn_Notes", "Sample_Notes"]
NK_HEADER = ["FLUIDO", "pd1", "mean_cd2", "DATA ANALISI", "NOTE"]
REGISTRY_HEADER = ["Registry ID", "UPN_RINB", "COGNOME", "NOME", "DATA_NASCITA", "DATA_DG",
                   "D_STATO_FU_CLINICO", "D_STADIO_INSS"]


@pytest.fixture
def daemons():
    service = MagicMock()
    service.initialize_daemon.side_effect = lambda source, *args: {'id': 1, 'source': source, 'info': {}}
    service.update_daemon.side_effect = lambda daemon: daemon
    service.error_daemon.side_effect = lambda daemon, error=None: daemon
    service.success_daemon.side_effect = lambda daemon: daemon
    return service


@pytest.fixture
def xtens_client():
    client = MagicMock()
    ids = iter(range(100, 200))
    client.create_data.side_effect = lambda *args, **kwargs: {'id': next(ids)}
    client.create_sample.return_value = {'id': 50}
    return client


def test_read_sheet_rows(make_workbook):
    path = make_workbook("rows.xlsx", [["RINB", "HVA", "Analysis Date"],
                                       [1234, 12.5, datetime.datetime(2015, 3, 2)],
                                       [None, None, "02-03-2015"]])
    rows = read_sheet_rows(path)

    assert len(rows) == 2
    assert rows[0]["RINB"] == 1234
    assert rows[0]["HVA"] == 12.5
    assert rows[0]["Analysis Date"].date() == datetime.date(2015, 3, 2)
    assert rows[1] == {"RINB": None, "HVA": None, "Analysis Date": "02-03-2015"}


def test_read_sheet_rows_unreadable(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"not a zip")
    with pytest.raises(MigrationError):
        read_sheet_rows(str(path))


@pytest.mark.parametrize("value, expected", [(1234.0, 1234), (12.5, 12.5), (" NB-1 ", "NB-1"), ("", None),
                                             (None, None), (7, 7)])
def test_row_code(value, expected):
    assert row_code(value) == expected


def test_donor_ids():
    assert donor_ids([{'id': 3}, 4]) == [3, 4]
    assert donor_ids(5) == [5]
    assert donor_ids(None) == []


class TestBioAnImport:

    @pytest.fixture
    def bio_an_import(self, xtens_client, daemons, logger):
        return BioAnImport(xtens_client, daemons, owner=28, operator=2, logger=logger)

    def test_urine_row_creates_fluid(self, bio_an_import, xtens_client, daemons, make_workbook, tmp_path):
        make_workbook("bioan.xlsx", [BIOAN_HEADER,
                                     [1234, None, 12.5, "mg/g crea", "02-03-2015", 20, "05-03-2015",
                                      "repeat", "first void"]])
        xtens_client.data_search.return_value = [{'id': 9}]
        summary = bio_an_import.migrate(str(tmp_path), '.xlsx', process_id=1)

        res = summary.files[0]
        assert (res.file_name, res.status, res.created, res.not_created) == ('1234', 'success', 1, [])

        query = xtens_client.data_search.call_args[0][0]['queryArgs']
        assert query['model'] == 'Subject'
        assert query['content'][0]['dataType'] == settings.NB_CLINICAL_SITUATION_DATA_TYPE_ID
        assert query['content'][0]['content'][0]['fieldValue'] == 1234

        sample_args, sample_kwargs = xtens_client.create_sample.call_args
        assert sample_args[0] == settings.FLUID_SAMPLE_TYPE_ID
        assert sample_args[1]['sample_codification']['value'] == 'URINE'
        assert sample_args[1]['sampling_date']['value'] == '2015-03-02'
        assert sample_kwargs == {'donor': [9], 'biobank': settings.BIOBANK_ID, 'owner': 28,
                                 'notes': 'first void'}

        data_args, data_kwargs = xtens_client.create_data.call_args
        assert data_args[0] == settings.BIOCHEMICAL_ANALYSIS_DATA_TYPE_ID
        assert data_args[1] == {'hva': {'group': 'Analysis Results', 'value': 12.5, 'unit': 'mg/g crea'}}
        assert data_kwargs['parent_subject'] == [9]
        assert data_kwargs['parent_sample'] == [50]
        assert data_kwargs['date'] == '2015-03-05'
        assert data_kwargs['notes'] == 'repeat'

        daemon = daemons.success_daemon.call_args[0][0]
        assert daemon['source'] == '1234'
        assert daemon['info']['processedRows'] == 1

    def test_plasma_row_uses_existing_sample(self, bio_an_import, xtens_client, make_workbook, tmp_path):
        make_workbook("bioan.xlsx", [BIOAN_HEADER,
                                     [1234, "PL-77", 3.1, "pg/ml", None, None, None, None, None]])
        xtens_client.data_search.side_effect = [[{'id': 9}], [{'id': 61}]]
        res = bio_an_import.migrate(str(tmp_path), '.xlsx', process_id=1).files[0]

        assert res.status == 'success'
        xtens_client.create_sample.assert_not_called()
        plasma_query = xtens_client.data_search.call_args_list[1][0][0]['queryArgs']
        assert plasma_query['content'][0]['biobankCode'] == 'PL-77'
        assert xtens_client.create_data.call_args[1]['parent_sample'] == [61]

    def test_unknown_patient(self, bio_an_import, xtens_client, daemons, make_workbook, tmp_path):
        make_workbook("bioan.xlsx", [BIOAN_HEADER, [99, None, 3.1, "pg/ml", None, None, None, None, None]])
        xtens_client.data_search.return_value = []
        res = bio_an_import.migrate(str(tmp_path), '.xlsx', process_id=1).files[0]

        assert res.status == 'error'
        assert res.error == 'no patient found with RINB [99]'
        xtens_client.create_data.assert_not_called()
        daemons.error_daemon.assert_called_once()

    def test_row_without_code_does_not_stop_the_run(self, bio_an_import, xtens_client, make_workbook, tmp_path):
        make_workbook("bioan.xlsx", [BIOAN_HEADER,
                                     [None, None, 3.1, "pg/ml", None, None, None, None, None],
                                     [1234, None, 4.2, "pg/ml", None, None, None, None, None]])
        xtens_client.data_search.return_value = [{'id': 9}]
        summary = bio_an_import.migrate(str(tmp_path), '.xlsx', process_id=1)

        assert [(res.file_name, res.status) for res in summary.files] == [('row 0', 'error'), ('1234', 'success')]
        assert summary.failed[0].error == 'No RINB for row 0'

    def test_failed_analysis_is_reported(self, bio_an_import, xtens_client, make_workbook, tmp_path):
        make_workbook("bioan.xlsx", [BIOAN_HEADER, [1234, None, 3.1, "pg/ml", None, None, None, None, None]])
        xtens_client.data_search.return_value = [{'id': 9}]
        xtens_client.create_data.side_effect = requests.HTTPError('400 Client Error')
        res = bio_an_import.migrate(str(tmp_path), '.xlsx', process_id=1).files[0]

        assert res.status == 'success'
        assert res.created == 0
        assert res.not_created[0]['error'] == 'Error on biochemical analysis creation'

    def test_search_error_fails_the_row(self, bio_an_import, xtens_client, make_workbook, tmp_path):
        make_workbook("bioan.xlsx", [BIOAN_HEADER, [1234, None, 3.1, "pg/ml", None, None, None, None, None]])
        xtens_client.data_search.side_effect = requests.HTTPError('500 Server Error')
        res = bio_an_import.migrate(str(tmp_path), '.xlsx', process_id=1).files[0]

        assert res.status == 'error'
        assert res.error.startswith('XTENS request failed for [1234]')

    def test_more_than_one_file(self, bio_an_import, daemons, make_workbook, tmp_path):
        make_workbook("a.xlsx", [BIOAN_HEADER])
        make_workbook("b.xlsx", [BIOAN_HEADER])
        with pytest.raises(MigrationError):
            bio_an_import.migrate(str(tmp_path), '.xlsx', process_id=1)
        assert daemons.error_daemon.call_args[0][1] == "Load at most one file"

    def test_empty_folder(self, bio_an_import, daemons, tmp_path):
        with pytest.raises(MigrationError):
            bio_an_import.migrate(str(tmp_path), '.xlsx', process_id=1)
        assert daemons.error_daemon.call_args[0][1] == "Invalid or no files loaded"


class TestNKCellsImport:

    @pytest.fixture
    def nk_cells_import(self, xtens_client, daemons, logger):
        return NKCellsImport(xtens_client, daemons, owner=28, operator=2, logger=logger)

    def test_migrate_nk_cells(self, nk_cells_import, xtens_client, make_workbook, tmp_path):
        make_workbook("nk.xlsx", [NK_HEADER, ["FL-12", 3.2, 1500, "10-04-2019", "fresh"]])
        xtens_client.find_samples.return_value = [{'id': 70, 'donor': [{'id': 9}]}]
        res = nk_cells_import.migrate(str(tmp_path), '.xlsx', process_id=1).files[0]

        assert (res.file_name, res.status, res.created) == ('FL-12', 'success', 1)
        xtens_client.find_samples.assert_called_once_with('FL-12')
        data_args, data_kwargs = xtens_client.create_data.call_args
        assert data_args[0] == settings.NK_CELLS_DATA_TYPE_ID
        assert data_args[1]['pd1'] == {'value': 3.2, 'group': 'Immune Checkpoint Receptors', 'unit': '%'}
        assert data_kwargs['parent_subject'] == [9]
        assert data_kwargs['parent_sample'] == [70]
        assert data_kwargs['date'] == '2019-04-10'
        assert data_kwargs['notes'] == 'fresh'

    def test_fluid_not_found(self, nk_cells_import, xtens_client, make_workbook, tmp_path):
        make_workbook("nk.xlsx", [NK_HEADER, ["FL-404", 3.2, 1500, None, None]])
        xtens_client.find_samples.return_value = []
        res = nk_cells_import.migrate(str(tmp_path), '.xlsx', process_id=1).files[0]

        assert res.status == 'error'
        assert res.error == 'no FLUID found for [FL-404]'
        xtens_client.create_data.assert_not_called()

    def test_fluid_without_donor(self, nk_cells_import, xtens_client, make_workbook, tmp_path):
        make_workbook("nk.xlsx", [NK_HEADER, ["FL-12", 3.2, 1500, None, None]])
        xtens_client.find_samples.return_value = [{'id': 70, 'donor': []}]
        res = nk_cells_import.migrate(str(tmp_path), '.xlsx', process_id=1).files[0]

        assert res.status == 'error'
        xtens_client.create_data.assert_not_called()

    def test_bad_analysis_date(self, nk_cells_import, xtens_client, make_workbook, tmp_path):
        make_workbook("nk.xlsx", [NK_HEADER, ["FL-12", 3.2, 1500, "not a date", None]])
        xtens_client.find_samples.return_value = [{'id': 70, 'donor': 9}]
        res = nk_cells_import.migrate(str(tmp_path), '.xlsx', process_id=1).files[0]

        assert res.status == 'error'
        xtens_client.create_data.assert_not_called()


class TestCNBInfoImport:

    @pytest.fixture
    def subjects(self):
        return [
            {'id': 1, 'surname': 'ROSSI', 'given_name': 'MARIO', 'birth_date': '2008-05-01T00:00:00.000Z'},
            {'id': 2, 'surname': 'BIANCHI', 'given_name': 'ANNA', 'birth_date': '2010-01-20T00:00:00.000Z'},
        ]

    @pytest.fixture
    def clinical_infos(self):
        return [
            {'id': 40, 'metadata': {'italian_nb_registry_id': {'value': 'NB-1'}}},
            {'id': 41, 'metadata': {'italian_nb_registry_id': {'value': 'NB-9'}}},
        ]

    @pytest.fixture
    def cnb_info_import(self, xtens_client, subjects, clinical_infos, logger):
        xtens_client.data_search.side_effect = [subjects, clinical_infos]
        return CNBInfoImport(xtens_client, owner=28, logger=logger)

    def test_import_cnb_info(self, cnb_info_import, xtens_client, make_workbook, tmp_path):
        make_workbook("registry.xlsx", [
            REGISTRY_HEADER,
            ["NB-1", None, "Rossi", "Mario", None, "03/15/2010", "Deceduto per NB", "Stadio 4"],
            [None, "NB-5", "bianchi ", "Anna", "01/20/2010", "03/15/2010", None, None],
            ["NB-7", None, "Verdi", "Luca", "02/02/2012", None, None, None],
        ])
        summary = cnb_info_import.import_cnb_info(str(tmp_path), '.xlsx')

        assert (summary.updated, summary.created, summary.not_updated, summary.failed) == (1, 1, 1, [])

        update_args, update_kwargs = xtens_client.update_data.call_args
        assert update_args[0] == 40
        assert update_args[1] == settings.NB_CLINICAL_SITUATION_DATA_TYPE_ID
        assert update_args[2]['inss']['value'] == '4'
        assert update_args[2]['event_overall']['value'] == 'DECEASED'
        assert update_kwargs['owner'] == 28
        assert update_kwargs['date'] == datetime.date.today().isoformat()

        create_args, create_kwargs = xtens_client.create_data.call_args
        assert create_args[0] == settings.NB_CLINICAL_SITUATION_DATA_TYPE_ID
        assert create_args[1]['italian_nb_registry_id']['value'] == 'NB-5'
        assert create_kwargs['parent_subject'] == [2]

    def test_failed_update_is_reported(self, cnb_info_import, xtens_client, make_workbook, tmp_path):
        make_workbook("registry.xlsx", [
            REGISTRY_HEADER,
            ["NB-1", None, "Rossi", "Mario", None, None, None, None],
        ])
        xtens_client.update_data.side_effect = requests.HTTPError('500 Server Error')
        summary = cnb_info_import.import_cnb_info(str(tmp_path), '.xlsx')

        assert summary.updated == 0
        assert summary.failed == [{'index': 0, 'code': 'NB-1', 'error': '500 Server Error'}]

    def test_load_error(self, xtens_client, make_workbook, tmp_path, logger):
        make_workbook("registry.xlsx", [REGISTRY_HEADER])
        xtens_client.data_search.side_effect = requests.HTTPError('401 Client Error')
        with pytest.raises(MigrationError):
            CNBInfoImport(xtens_client, logger=logger).import_cnb_info(str(tmp_path), '.xlsx')

    def test_empty_folder(self, cnb_info_import, tmp_path):
        with pytest.raises(MigrationError):
            cnb_info_import.import_cnb_info(str(tmp_path), '.xlsx')


@pytest.mark.parametrize("patient, expected_id", [
    ({'COGNOME': 'Rossi', 'NOME': 'Mario'}, 1),
    ({'COGNOME': 'Rossi', 'NOME': 'Luigi', 'DATA_NASCITA': datetime.datetime(2008, 5, 1)}, 1),
    ({'COGNOME': 'Neri', 'NOME': 'Mario', 'DATA_NASCITA': '05/01/2008'}, 1),
    ({'COGNOME': 'Rossi', 'NOME': 'Luigi', 'DATA_NASCITA': '01/01/2001'}, None),
    ({'COGNOME': 'Rossi', 'NOME': 'Luigi', 'DATA_NASCITA': 'unknown'}, None),
])
def test_match_subject(patient, expected_id):
    subjects = [{'id': 1, 'surname': 'ROSSI', 'given_name': 'MARIO', 'birth_date': '2008-05-01T00:00:00.000Z'}]
    subject = match_subject(subjects, patient)
    assert (subject['id'] if subject else None) == expected_id
