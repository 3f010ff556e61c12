"""
clinical_metadata.py
Compose XTENS metadata objects from the rows of the single-workbook
imports: neuroblastoma registry follow-up, urine and plasma biochemical
analyses and NK cell immunophenotyping.
"""

import datetime

import dateutil.parser

CLINICAL_DETAILS = "Clinical Details"
BIOLOGICAL_DETAILS = "Biological Details"
EVENTS_SURVIVAL = "Events & Survival Info"
ANALYSIS_RESULTS = "Analysis Results"
FLUID_INFO = "Fluid Info"
NOT_DETERMINED = "N.D."

CLINICAL_STATUSES = {
    "Vivo in RC per NB/GN": "ALIVE - COMPLETE REMISSION",
    "1 Vivo in RC  per NB/GN": "ALIVE - COMPLETE REMISSION",
    "Vivo con malattia residua stabile per NB/GN": "ALIVE - RESIDUAL DISEASE",
    "2 Vivo con malattia residua stabile per NB/GN": "ALIVE - RESIDUAL DISEASE",
    "Vivo con malattia attiva (induzione, recidiva, progressione) per NB": "ALIVE - ACTIVE DISEASE",
    "3 Vivo con malattia attiva (induzione, recidiva, progressione) per NB": "ALIVE - ACTIVE DISEASE",
    "Vivo in RC per NB/GN e secondo tumore attivo": "ALIVE - SECOND TUMOUR ACTIVE (Different from NB)",
    "5 Vivo in RC per NB/GN e secondo tumore attivo": "ALIVE - SECOND TUMOUR ACTIVE (Different from NB)",
    "Vivo in doppia RC per NB/GN e secondo tumore":
        "ALIVE - DOUBLE COMPLETE REMISSION AND SECOND TUMOUR (Different from NB)",
    "Deceduto per NB": "DEAD FOR DISEASE",
    "7 Deceduto per NB": "DEAD FOR DISEASE",
    "Deceduto per tossicita": "DEAD FOR TOXICITY",
    "8 Deceduto per tossicita": "DEAD FOR TOXICITY",
    "Deceduto per altre cause": "DEAD FOR OTHER REASON",
    "9 Deceduto per altre cause, specificare": "DEAD FOR OTHER REASON",
    "Deceduto per secondo tumore": "DEAD FOR SECOND TUMOUR",
    "Deceduto per cause non note": "DEAD FOR UNKNOWN CAUSES",
}

MAXIMUM_RESPONSES = {
    "RP (Risposta parziale >50%)": "PARTIAL RESPONSE >50% (RP)",
    "MO (Risposta parziale 25-50%)": "PARTIAL RESPONSE 25-50% (MO)",
    "PM (Progressione di malattia)": "DISEASE PROGRESSION (PM)",
    "RC (Risposta completa)": "COMPLETE RESPONSE (RC)",
    "ST (Non risposta)": "NO RESPONSE (ST)",
    "VGPR (Risposta parziale 90-99%)": "PARTIAL RESPONSE 90-99% (VGPR)",
    "PDV (Perso di vista)": "LOST SIGHT",
    "Non valutabile": "NOT EVALUABLE",
    "Non so": NOT_DETERMINED,
}

MYCN_STATUSES = {
    "Amplificazione presente": "AMPL",
    "Amplificazione assente": "NO AMPL",
    "Amplificazione e gain assenti": "NO AMPL",
    "MYCN gain": "MYCN GAIN",
    "Amplificazione focale": "FOCAL AMPL",
    "Risultato dubbio o non interpretabile": NOT_DETERMINED,
    "Non so": NOT_DETERMINED,
    "Non eseguita": "NOT EXECUTED",
}

RELAPSE_TYPES = {
    "Locale": "LOCAL",
    "Metastatica": "METASTATIC",
    "Combinata": "COMBINED",
    "Non so": NOT_DETERMINED,
}

HISTOLOGIES = {
    "GN maturo": "GN MATURE",
    "GN in maturazione": "GN MATURING",
    "GN NAS": "GN N.O.S",
    "GNB intermixed": "GNB INTERMIXED",
    "GNB NAS": "GNB N.O.S.",
    "GNB nodulare con nodulo(i) differenziante(i)": "GNB NODULAR - DIFFERENTIATING",
    "GNB nodulare con nodulo(i) scarsamente differenziato(i)": "GNB NODULAR - POORLY DIFFERENTIATED",
    "nb indifferenziato": "GNB - UNDIFFERENTIATED",
    "NB differenziante": "NB DIFFERENTIATING",
    "NB NAS": "NB N.O.S.",
    "NB scarsamente differenziato": "NB POORLY DIFFERENTIATED",
    "NB indifferenziato": "NB UNDIFFERENTIATED",
    "No tumore neuroblastico": "NO NEUROBLASTIC TUMOUR",
    "Tumore neuroblastico non classificabile": "NOT CLASSIFIABLE",
    "Paziente non operato alla diagnosi": "PATIENT NEVER UNDER SURGERY",
}

PRIMARY_SITES = {
    "Addome gangli retroperitoneali": "RETROPERITONEAL GANGLIA",
    "Addome surrene": "ABDOMEN SUPRARENAL GLANDS",
    "Addome NAS": "ABDOMEN N.O.S.",
    "Torace": "THORAX",
    "Toraco-addominale": "THORACO-ABDOMINAL",
    "Pelvi": "PELVIS",
    "Collo": "NECK",
    "Multiple non contigue": "MULTIPLE NOT CONTIGUOUS",
    "Non identificata": "NOT IDENTIFIED",
    "Altra": "OTHER",
    "Non so": NOT_DETERMINED,
}

CLINICAL_PROTOCOLS = {
    "Non so": NOT_DETERMINED,
    "LNESG1": "LNESG 1",
    "LNESG2": "LNESG 2",
}

# column: (metadata field, unit column)
BIOAN_FIELDS = {
    'HVA': ('hva', 'HVA_UNIT'),
    'VMA': ('vma', 'VMA_UNIT'),
    '3-MT': ('_3_mt', '3-MT_UNIT'),
    'M': ('m', 'M_UNIT'),
    'NM': ('nm', 'NM_UNIT'),
    'E': ('e', 'E_UNIT'),
    'NE': ('ne', 'NE_UNIT'),
    'D': ('d', 'D_UNIT'),
    'Crea': ('crea', 'Crea_UNIT'),
}

# field: (group, unit)
NK_CELL_FIELDS = {
    'pd1': ("Immune Checkpoint Receptors", "%"),
    'lag_3': ("Immune Checkpoint Receptors", "%"),
    'tigit': ("Immune Checkpoint Receptors", "%"),
    'tim_3': ("Immune Checkpoint Receptors", "%"),
    'mean_cd2': ("Activating Receptors", None),
    'mean_cd69': ("Activating Receptors", None),
    'mean_cxcr1': ("Chemokine Receptors", None),
    'mean_cxcr4': ("Chemokine Receptors", None),
    'mean_nkg2d': ("Activating Receptors", None),
    'mean_nkp30': ("Activating Receptors", None),
    'mean_nkp46': ("Activating Receptors", None),
    'mean_cx3cr1': ("Chemokine Receptors", None),
    'mean_dnam_1': ("Activating Receptors", None),
    'percentage_cd2': ("Activating Receptors", "%"),
    'percentage_ccr7': ("Chemokine Receptors", "%"),
    'percentage_cd69': ("Activating Receptors", "%"),
    'percentage_cxcr1': ("Chemokine Receptors", "%"),
    'percentage_cxcr4': ("Chemokine Receptors", "%"),
    'percentage_dnam1': ("Activating Receptors", "%"),
    'percentage_nkg2d': ("Activating Receptors", "%"),
    'percentage_nkp30': ("Activating Receptors", "%"),
    'percentage_nkp46': ("Activating Receptors", "%"),
    'percentage_cx3cr1': ("Chemokine Receptors", "%"),
    'mem154_positive_nk_cells': ("CD16", "%"),
    'percentage_negative_cd16': ("CD16", "%"),
    'percentage_negative_cd56': ("CD56", "%"),
    'percentage_positive_cd16': ("CD16", "%"),
    'percentage_positive_cd56': ("CD56", "%"),
    'totat_percentage_nk_cells': ("CD56", "%"),
    'percentage_cd107a_by_cd16_': ("Degranulation", "%"),
    'percentage_adaptive_nk_cells': ("Adaptive NK Cells", "%"),
}


def _metadatum(value, group, unit=None):
    res = {'value': value, 'group': group}
    if unit is not None:
        res['unit'] = unit
    return res


def parse_date(value, dayfirst=False):
    """
     date of a sheet cell: either a date/datetime read from the workbook or
     a text date (MM/DD/YYYY, or DD-MM-YYYY with dayfirst)
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return dateutil.parser.parse(str(value), dayfirst=dayfirst).date()


def format_date(value):
    return value.strftime('%Y-%m-%d') if value else None


def _stage(value):
    """
     INSS / INRG stage: 'Stadio 4S' -> '4S'
    """
    if not value:
        return None
    if value == "Non applicabile":
        return "N.A."
    if value == "Non so":
        return None
    return value.replace("Stadio ", "").upper()


def compose_cnb_info_metadata(patient):
    """
    Compose the neuroblastoma clinical situation metadata from one row of
    the Italian NB registry export (dates are MM/DD/YYYY).
    """
    diagnosis_date = parse_date(patient.get('DATA_DG'))
    relapse_date = parse_date(patient.get('DATA_RECIDIVAPM'))
    follow_up_date = parse_date(patient.get('DATA_FU_CLINICO'))

    survival_overall = (follow_up_date - diagnosis_date).days if follow_up_date and diagnosis_date else None
    if relapse_date and diagnosis_date:
        survival_progfree = (relapse_date - diagnosis_date).days
    else:
        survival_progfree = survival_overall

    dna_index = patient.get('GDE_DNA_INDEX')
    ploidy = dna_index if dna_index and str(dna_index) != "-9922" else None

    follow_up_status = patient.get('D_STATO_FU_CLINICO')
    if not follow_up_status:
        event_overall = NOT_DETERMINED
    elif 'deceduto' in follow_up_status.lower():
        event_overall = "DECEASED"
    else:
        event_overall = "ALIVE"
    relapse = "YES" if relapse_date else "NO"

    protocol_name = patient.get('D_NOME_PROT')
    if protocol_name in CLINICAL_PROTOCOLS:
        protocol = CLINICAL_PROTOCOLS[protocol_name]
    else:
        protocol = protocol_name.upper() if protocol_name else None

    return {
        "inss": _metadatum(_stage(patient.get('D_STADIO_INSS')), CLINICAL_DETAILS),
        "inrgss": _metadatum(_stage(patient.get('D_STADIO_INRG')), CLINICAL_DETAILS),
        "maximum_response": _metadatum(MAXIMUM_RESPONSES.get(patient.get('D_RISP_MAX')), CLINICAL_DETAILS),
        "ploidy": _metadatum(ploidy, BIOLOGICAL_DETAILS),
        "relapse": _metadatum(relapse, CLINICAL_DETAILS),
        "histology": _metadatum(HISTOLOGIES.get(patient.get('GDE_D_ISTOTIPO')), CLINICAL_DETAILS),
        "mycn_status": _metadatum(MYCN_STATUSES.get(patient.get('GDE_D_STATO_MYCN')), BIOLOGICAL_DETAILS),
        "primary_site": _metadatum(PRIMARY_SITES.get(patient.get('D_SEDETUM')), CLINICAL_DETAILS),
        "relapse_date": _metadatum(format_date(relapse_date), CLINICAL_DETAILS),
        "relapse_type": _metadatum(RELAPSE_TYPES.get(patient.get('D_TIPO_RECIDIVAPM')), CLINICAL_DETAILS),
        "diagnosis_age": _metadatum(patient.get('ETADG'), CLINICAL_DETAILS, 'month'),
        "diagnosis_date": _metadatum(format_date(diagnosis_date), CLINICAL_DETAILS),
        "clinical_protocol": _metadatum(protocol, CLINICAL_DETAILS),
        "last_follow_up_date": _metadatum(format_date(follow_up_date), CLINICAL_DETAILS),
        "italian_nb_registry_id": _metadatum(patient.get('Registry ID'), CLINICAL_DETAILS),
        "clinical_follow_up_status": _metadatum(CLINICAL_STATUSES.get(follow_up_status), CLINICAL_DETAILS),
        "survival_progfree": _metadatum(survival_progfree, EVENTS_SURVIVAL, 'day'),
        "survival_overall": _metadatum(survival_overall, EVENTS_SURVIVAL, 'day'),
        "event_progfree": _metadatum(relapse, EVENTS_SURVIVAL),
        "event_overall": _metadatum(event_overall, EVENTS_SURVIVAL),
    }


def compose_bioan_metadata(datum):
    """
    Split a urine catecholamine analysis row into the Fluid sample metadata
    and the Biochemical Analysis metadata. Plasma rows carry no sample info.
    """
    bio_an = {}
    for column, (name, unit_column) in BIOAN_FIELDS.items():
        if datum.get(column):
            bio_an[name] = {'group': ANALYSIS_RESULTS, 'value': datum[column], 'unit': datum.get(unit_column)}

    sample = {}
    if not datum.get('PLASMA'):
        if datum.get('Sampling Date'):
            sampling_date = parse_date(datum['Sampling Date'], dayfirst=True)
            sample['sampling_date'] = _metadatum(format_date(sampling_date), FLUID_INFO)
        sample['pathology'] = _metadatum('NEUROBLASTOMA', FLUID_INFO)
        sample['sample_codification'] = _metadatum('URINE', FLUID_INFO)
        if datum.get('Quantity'):
            sample['quantity'] = _metadatum(datum['Quantity'], ANALYSIS_RESULTS, 'ml')
        for column, name in (('City', 'city'), ('Hospital', 'hospital'), ('Unit', 'unit'),
                             ('Tumour Status', 'tumour_status')):
            if datum.get(column):
                sample[name] = _metadatum(datum[column], ANALYSIS_RESULTS)
    return {'sample': sample, 'bio_an': bio_an}


def compose_nk_cells_metadata(datum):
    nk_cells = {}
    for name, (group, unit) in NK_CELL_FIELDS.items():
        if datum.get(name):
            nk_cells[name] = _metadatum(datum[name], group, unit)
    return nk_cells
