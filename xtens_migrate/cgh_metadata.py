"""
cgh_metadata.py
Parse aCGH (Agilent CytoGenomics) Excel exports into XTENS metadata.

A sheet has two parts: a header block of "Label: Value" cells in the first
column describing the analysis (CGH processed metadata), then a table whose
first header cell is 'AberrationNo' with one copy number variation per row.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import openpyxl

from . import settings
from .exceptions import FatalParseError, SkippedRecord
from .utils import format_metadata_field_name, get_sample_code

SCA_TYPES = ("Frequent", "Not Frequent", "Frequent - Not Frequent")

# sheet scanning states
SCANNING_HEADER = 'header'
SCANNING_BODY = 'body'


@dataclass
class SheetExtractionResult:
    sample_code: str
    processed_metadata: dict
    cnv_records: List[dict] = field(default_factory=list)
    genomic_profile: Optional[dict] = None


def _is_enum_field(label):
    return label.lower() in settings.ENUM_FIELDS


def parse_window_size(raw_value):
    """
     '250 bp' -> {'value': 250.0, 'unit': 'bp'}
    """
    text = '' if raw_value is None else str(raw_value)
    digits = re.search(r'\d+', text)
    if not digits:
        raise FatalParseError("compose_cgh_processed_metadata - Could not correctly parse Window Size ["
                              + text + "]")
    return {
        'value': float(digits.group(0)),
        'unit': re.sub(r'\d', '', text).strip().lower()
    }


def _to_float(label, raw_value):
    try:
        return float(str(raw_value).strip().replace(',', '.'))
    except (TypeError, ValueError) as err:
        raise FatalParseError("compose_cgh_processed_metadata - " + label + " is not a number ["
                              + str(raw_value) + "]") from err


def _to_int(label, raw_value):
    try:
        return int(str(raw_value).strip())
    except (TypeError, ValueError):
        # Bin Size is sometimes exported as '10.0'
        value = _to_float(label, raw_value)
    if not value.is_integer():
        raise FatalParseError("compose_cgh_processed_metadata - " + label + " is not an integer ["
                              + str(raw_value) + "]")
    return int(value)


def compose_cgh_processed_metadata(processed_fields, logger=None):
    """
    Build the CGH Processed metadata object.

    processed_fields: ordered (label, raw value) pairs read from the header
    block. Returns a dict of formatted field name -> {'value': ...[, 'unit': ...]}
    in sheet order. The genomic profile label is left out, see
    compose_genomic_profile.
    """
    logger = logger or logging.getLogger(__name__)
    res = {}
    for label, raw_value in processed_fields:
        if _is_enum_field(label):
            continue
        name = format_metadata_field_name(label)
        if label == settings.WINDOW_SIZE_FIELD:
            res[name] = parse_window_size(raw_value)
            logger.debug('Window Size value: [' + str(res[name]) + ']')
        elif label in settings.FLOAT_FIELDS:
            res[name] = {'value': _to_float(label, raw_value)}
        elif label in settings.INTEGER_FIELDS:
            res[name] = {'value': _to_int(label, raw_value)}
        elif label in settings.BOOLEAN_FIELDS:
            res[name] = {'value': raw_value == settings.BOOLEAN_TRUE_VALUE}
        else:
            res[name] = {'value': raw_value}
    return res


def classify_sca_type(detail):
    detail = detail.lower()
    if ',' in detail or '-' in detail:
        return SCA_TYPES[2]
    if 'not frequent' in detail:
        return SCA_TYPES[1]
    return SCA_TYPES[0]


def classify_genomic_profile(raw_value):
    """
     'SCA: Frequent' -> {'type': {'value': 'SCA'}, 'sca_type': {'value': 'Frequent'}}
    """
    kind, _, detail = ('' if raw_value is None else str(raw_value)).partition(settings.PROCESSED_FIELD_DELIMITER)
    kind = kind.strip().lower()
    detail = detail.strip()
    profile_type = None
    sca_type = None
    if 'nca' in kind:
        profile_type = 'NCA'
    elif 'flat' in kind or 'piatto' in kind:
        profile_type = 'Flat Profile'
    elif 'no' in kind or 'result' in kind or 'failure' in kind:
        profile_type = 'No Result'
    elif 'sca' in kind and detail:
        profile_type = 'SCA'
        sca_type = classify_sca_type(detail)
    return {'type': {'value': profile_type}, 'sca_type': {'value': sca_type}}


def compose_genomic_profile(processed_fields):
    for label, raw_value in processed_fields:
        if _is_enum_field(label):
            return classify_genomic_profile(raw_value)
    return None


def _parse_decimal(value):
    # Italian locale exports use a decimal comma
    return float(str(value).strip().replace(',', '.'))


def _split_names(value):
    if value is None:
        return None
    names = [name.strip() for name in str(value).split(',')]
    names = [name for name in names if name]
    return names or None


def compose_cnv_metadata(cnv_row):
    """
    Compose the CNV metadata object for one row of the aberration table.

    Columns, in order:
        0: aberration number (skipped)
        1: chromosome
        2: cytoband, either 'start - stop' or a single band
        3: position start
        4: position stop
        5: number of probes
        6: amplification score
        7: deletion score
        8: p-value
        9: gene names (comma separated)
        10: CNV (skipped)
        11: miRNA names (comma separated)

    Returns None when the row is not a CNV record (too short or without a
    chromosome) and raises SkippedRecord when its scores cannot be parsed.
    """
    if len(cnv_row) < settings.CNV_ROW_LENGTH or not cnv_row[1]:
        return None
    try:
        metadata = {'chr': {'value': cnv_row[1]}}
        if cnv_row[2] is None:
            raise ValueError('missing cytoband')
        cytobands = [band.strip() for band in str(cnv_row[2]).split('-')]
        metadata['cytoband_start'] = {'value': cytobands[0]}
        # a single band is both start and stop
        metadata['cytoband_stop'] = {'value': cytobands[1] if len(cytobands) > 1 else cytobands[0]}
        metadata['start'] = {'value': cnv_row[3]}
        metadata['stop'] = {'value': cnv_row[4]}
        metadata['_probes'] = {'value': cnv_row[5]}
        amplification = _parse_decimal(cnv_row[6])
        metadata['is_amplification'] = {'value': amplification > 0}
        metadata['amplification'] = {'value': amplification}
        deletion = _parse_decimal(cnv_row[7])
        metadata['is_deletion'] = {'value': deletion < 0}
        metadata['deletion'] = {'value': deletion}
        pval = cnv_row[8]
        metadata['pval'] = {'value': None if pval in (None, '') else _parse_decimal(pval)}
    except (TypeError, ValueError) as err:
        raise SkippedRecord("compose_cnv_metadata - malformed CNV row " + str(list(cnv_row))
                            + " (" + str(err) + ")") from err

    gene_names = _split_names(cnv_row[9])
    if gene_names is not None:
        metadata['gene_name'] = {'values': gene_names}
    mirnas = _split_names(cnv_row[11])
    if mirnas is not None:
        metadata['mirna'] = {'values': mirnas}
    return metadata


def _pad_row(row, width):
    row = list(row)
    if len(row) < width:
        row.extend([None] * (width - len(row)))
    return row


def compose_cgh_metadata(file_path, logger=None):
    """
    Read an aCGH workbook and return a SheetExtractionResult with
        sample_code - ARRIVAL/BIT code taken from the file name
        processed_metadata - CGH Processed metadata object
        cnv_records - CNV metadata objects, in sheet order
        genomic_profile - Genomic Profile metadata object (None if not reported)

    Rows are read from the first worksheet. Its stored dimension is ignored
    and the width comes from the widest row, since some exporters write a
    stale <dimension> element. A malformed Window Size raises
    FatalParseError; malformed CNV rows are logged and left out.
    """
    logger = logger or logging.getLogger(__name__)
    sample_code = get_sample_code(file_path)
    logger.info('compose_cgh_metadata: [' + str(file_path) + '] sample code: [' + sample_code + ']')

    processed_fields = []
    cnv_records = []
    body_rows = 0
    workbook = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
    try:
        worksheet = workbook.worksheets[0]
        worksheet.reset_dimensions()
        rows = list(worksheet.iter_rows(values_only=True))
    finally:
        workbook.close()

    width = max((len(row) for row in rows), default=0)
    state = SCANNING_HEADER
    for row_idx, row in enumerate(rows, start=1):
        if state == SCANNING_HEADER:
            first_cell = row[0] if row else None
            if not isinstance(first_cell, str) or not first_cell.strip():
                continue
            if first_cell.strip() == settings.CNV_HEADER_FIRST_CELL_CONTENT:
                state = SCANNING_BODY
                continue
            label, sep, value = first_cell.partition(settings.PROCESSED_FIELD_DELIMITER)
            processed_fields.append((label.strip(), value.strip() if sep else None))
        else:
            body_rows += 1
            cnv_row = _pad_row(row, width)
            try:
                cnv = compose_cnv_metadata(cnv_row)
            except SkippedRecord as err:
                logger.warning('Skipping row ' + str(row_idx) + ': ' + str(err))
                continue
            if cnv is None:
                logger.debug('Skipping row ' + str(row_idx) + ': not a CNV record')
                continue
            cnv_records.append(cnv)

    if body_rows and not cnv_records:
        logger.warning('compose_cgh_metadata: [' + sample_code + '] ' + str(body_rows)
                       + ' rows after the aberration table header but no CNV record (sheet width: '
                       + str(width) + ')')

    processed_metadata = compose_cgh_processed_metadata(processed_fields, logger)
    genomic_profile = compose_genomic_profile(processed_fields)
    logger.info('compose_cgh_metadata: [' + sample_code + '] ' + str(len(cnv_records)) + ' CNVs')
    return SheetExtractionResult(sample_code, processed_metadata, cnv_records, genomic_profile)
