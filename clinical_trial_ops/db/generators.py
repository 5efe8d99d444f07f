"""
Record generators for SDTM-like demo data.

Each generator takes a ``random.Random`` and a reference ``now`` and returns
one record as a plain dict keyed by SDTM variable name. ``STUDYID`` and
``USUBJID`` are placeholders; the seeder overwrites them per trial.

Series generators cover the EDC domains recorded per subject and visit.
They take ``(rnd, trial_id, count)`` and return ``(record_id, record)``
pairs that are already complete for that trial, at most ``count`` of them.
"""

import random
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Tuple

SUBJECT_IDS = [f"S-{i + 1:03d}" for i in range(10)]
VISIT_NAMES = ["Screening", "Baseline", "Week 1", "Week 2", "Week 4", "Week 8", "Week 12", "End of Treatment"]

AE_TERMS = [
    ("HEADACHE", "NERVOUS SYSTEM DISORDERS"),
    ("NAUSEA", "GASTROINTESTINAL DISORDERS"),
    ("FATIGUE", "GENERAL DISORDERS"),
    ("DIARRHEA", "GASTROINTESTINAL DISORDERS"),
    ("VOMITING", "GASTROINTESTINAL DISORDERS"),
]

# (code, name, unit, normal low, normal high)
LAB_TESTS = [
    ("HGB", "Hemoglobin", "g/dL", 12.0, 16.0),
    ("WBC", "White Blood Cells", "10^9/L", 4.0, 11.0),
    ("PLT", "Platelets", "10^9/L", 150, 400),
    ("GLUC", "Glucose", "mg/dL", 70, 110),
]

TUMOR_TYPES = ["Target Lesion", "Non-Target Lesion", "New Lesion"]
TUMOR_LOCATIONS = ["Lung", "Liver", "Lymph Node", "Brain", "Bone", "Kidney", "Adrenal"]
ASSESSMENT_METHODS = ["CT", "MRI", "X-Ray", "PET", "Physical Exam"]

# EDC lab panel: (code, name, unit, normal low, normal high)
EDC_LAB_TESTS = [
    ("HGB", "Hemoglobin", "g/dL", 12, 16),
    ("HCT", "Hematocrit", "%", 36, 48),
    ("WBC", "White Blood Cell Count", "10^9/L", 4, 11),
    ("PLT", "Platelet Count", "10^9/L", 150, 400),
    ("GLUC", "Glucose", "mg/dL", 70, 110),
    ("CREAT", "Creatinine", "mg/dL", 0.6, 1.3),
    ("ALT", "Alanine Aminotransferase", "U/L", 7, 56),
    ("AST", "Aspartate Aminotransferase", "U/L", 10, 40),
    ("BILI", "Total Bilirubin", "mg/dL", 0.1, 1.2),
    ("BUN", "Blood Urea Nitrogen", "mg/dL", 7, 20),
]
EDC_LAB_VISIT_DAYS = [1, 15, 29, 43, 57, 71, 85]

# (code, name, unit, min, max)
VITAL_SIGNS = [
    ("SYSBP", "Systolic Blood Pressure", "mmHg", 100, 160),
    ("DIABP", "Diastolic Blood Pressure", "mmHg", 60, 100),
    ("HR", "Heart Rate", "beats/min", 50, 100),
    ("TEMP", "Temperature", "C", 36, 38),
    ("RESP", "Respiratory Rate", "breaths/min", 12, 20),
    ("WEIGHT", "Weight", "kg", 50, 100),
]
VS_VISIT_DAYS = [1, 15, 29, 43, 57, 71, 85, 99]

CM_DRUGS = ["Acetaminophen", "Ibuprofen", "Aspirin", "Lisinopril", "Metformin",
            "Atorvastatin", "Levothyroxine", "Amlodipine", "Metoprolol", "Albuterol"]
CM_ROUTES = ["ORAL", "INTRAVENOUS", "TOPICAL", "SUBCUTANEOUS", "INTRAMUSCULAR"]
CM_FREQUENCIES = ["QD", "BID", "TID", "QID", "PRN", "Q4H", "Q8H", "QW", "BIW"]
CM_DOSES = ["10mg", "25mg", "50mg", "100mg", "200mg", "500mg", "1g", "5mL", "10mL"]
CM_INDICATIONS = ["Headache", "Pain", "Inflammation", "Hypertension", "Diabetes"]

EX_DOSES = [80, 120, 160, 200]
EX_DOSE_UNITS = ["mg", "mg/kg", "mg/m2"]
EX_FORMULATIONS = ["TABLET", "CAPSULE", "SOLUTION", "INJECTION"]
EX_ROUTES = ["ORAL", "INTRAVENOUS", "SUBCUTANEOUS"]
EX_FREQUENCIES = ["QD", "BID", "TID", "QOD", "QW"]

DISPOSITION_TERMS = ["COMPLETED", "WITHDREW CONSENT", "LOST TO FOLLOW-UP", "ADVERSE EVENT", "COMPLETED"]
MEDICAL_HISTORY_TERMS = ["HYPERTENSION", "DIABETES MELLITUS", "HYPERLIPIDEMIA", "ASTHMA", "DEPRESSION"]
SAE_TERMS = ["MYOCARDIAL INFARCTION", "STROKE", "HOSPITALIZATION", "DEATH", "LIFE THREATENING EVENT"]
DEVIATION_TERMS = ["VISIT WINDOW DEVIATION", "DOSING ERROR", "ELIGIBILITY DEVIATION",
                   "PROCEDURE VIOLATION", "CONSENT ISSUE"]

# Fixed calendar for the EDC series, day N of the study is STUDY_START + N days
STUDY_START = datetime(2024, 1, 1)

Generator = Callable[[random.Random, datetime], Dict[str, Any]]
SeriesGenerator = Callable[[random.Random, int, int], List[Tuple[str, Dict[str, Any]]]]


def study_identifier(trial_id: int) -> str:
    return f"PRO00{trial_id}"


def subject_identifier(trial_id: int, subject: int) -> str:
    return f"S-{trial_id}-{subject:03d}"


def _day(value: datetime) -> str:
    return value.date().isoformat()


def _days_ago(rnd: random.Random, now: datetime, max_days: int) -> datetime:
    return now - timedelta(days=rnd.randrange(max_days))


def generate_sv(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """Subject visit"""
    visit_date = _days_ago(rnd, now, 365)
    scheduled = visit_date - timedelta(days=rnd.randrange(10))
    visit_num = rnd.randrange(len(VISIT_NAMES))
    visit = VISIT_NAMES[visit_num]
    reason = ""
    if rnd.random() > 0.8:
        reason = rnd.choice(["PATIENT WITHDREW", "STUDY TERMINATED", "ADVERSE EVENT",
                             "SCHEDULING CONFLICT", "PATIENT UNAVAILABLE"])
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "SV",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "VISITNUM": visit_num + 1,
        "VISIT": visit,
        "VISITDY": (visit_num + 1) * 28,
        "SVSTATUS": rnd.choice(["COMPLETED", "MISSED", "PARTIAL", "SCHEDULED", "NOT DONE"]),
        "SVSTDY": rnd.randint(1, 365),
        "SVSTDTC": _day(visit_date),
        "SVENDTC": _day(visit_date),
        "SVUPDDTC": _day(visit_date + timedelta(days=1)),
        "SVSCHDT": _day(scheduled),
        "SVREASND": reason,
        "SVACTDY": (visit_num + 1) * 28 + rnd.randrange(7) - 3,
        "SVENDY": (visit_num + 1) * 28 + rnd.randrange(4),
        "SVCPEVENT": rnd.choice(["Y", "N"]),
        "SVREFID": f"VISIT-{rnd.randint(1, 1000)}",
        "PAGENAME": rnd.choice(["SCREENING", "DEMOGRAPHICS", "VITALS", "LABS",
                                "ADVERSE EVENTS", "STUDY COMPLETION"]),
        "PAGESEQ": rnd.randint(1, 5),
        "SVENRF": visit,
        "SVDUR": rnd.randint(1, 8),
        "SITEID": f"SITE-{rnd.randint(1, 10)}",
    }


def generate_dm(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """Demographics"""
    start = _days_ago(rnd, now, 365)
    end = _days_ago(rnd, now, 100) if rnd.random() > 0.2 else None
    consent = start - timedelta(days=rnd.randrange(30))
    death = rnd.random() > 0.95
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "DM",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "SUBJID": rnd.choice(SUBJECT_IDS).split("-")[1],
        "RFSTDTC": _day(start),
        "RFENDTC": _day(end) if end else "",
        "RFXSTDTC": _day(start + timedelta(days=rnd.randrange(5))),
        "RFXENDTC": _day(end - timedelta(days=rnd.randrange(5))) if end else "",
        "RFICDTC": _day(consent),
        "RFPENDTC": _day(end) if end else "",
        "DTHDTC": _day(end or now) if death else "",
        "DTHFL": "Y" if death else "N",
        "SITEID": f"SITE-{rnd.randint(1, 10)}",
        "AGE": rnd.randint(18, 77),
        "AGEU": "YEARS",
        "SEX": rnd.choice(["M", "F"]),
        "RACE": rnd.choice(["WHITE", "BLACK OR AFRICAN AMERICAN", "ASIAN",
                            "NATIVE HAWAIIAN OR PACIFIC ISLANDER",
                            "AMERICAN INDIAN OR ALASKA NATIVE", "OTHER"]),
        "ETHNIC": rnd.choice(["HISPANIC OR LATINO", "NOT HISPANIC OR LATINO", "UNKNOWN"]),
        "ARMCD": rnd.choice(["ARM1", "ARM2", "ARM3"]),
        "ARM": rnd.choice(["Treatment A", "Treatment B", "Placebo"]),
        "COUNTRY": rnd.choice(["USA", "CAN", "GBR", "FRA", "DEU"]),
        "BRTHDTC": _day(now - timedelta(days=(rnd.randrange(40) + 25) * 365)),
        "DMDTC": _day(consent),
        "DMDY": -rnd.randrange(10) - 1,
    }


def generate_ae(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """Adverse event"""
    term, body_system = rnd.choice(AE_TERMS)
    start = _days_ago(rnd, now, 200)
    end = start + timedelta(days=rnd.randrange(30)) if rnd.random() > 0.3 else None
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "AE",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "AESEQ": rnd.randint(1, 10),
        "AESPID": f"AESPID-{rnd.randint(1, 100)}",
        "AETERM": term,
        "AEDECOD": term,
        "AEBODSYS": body_system,
        "AESEV": rnd.choice(["MILD", "MODERATE", "SEVERE"]),
        "AESER": rnd.choice(["Y", "N"]),
        "AESTDTC": _day(start),
        "AEENDTC": _day(end) if end else "",
        "AESTDY": rnd.randint(1, 100),
    }


def generate_lb(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """Lab result; values range up to 1.5x the normal span so some come out HIGH"""
    code, name, unit, low, high = rnd.choice(LAB_TESTS)
    visit_num = rnd.randrange(len(VISIT_NAMES))
    value = low + rnd.random() * (high - low) * 1.5
    if value < low:
        indicator = "LOW"
    elif value > high:
        indicator = "HIGH"
    else:
        indicator = "NORMAL"
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "LB",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "LBSEQ": rnd.randint(1, 20),
        "LBTESTCD": code,
        "LBTEST": name,
        "LBCAT": rnd.choice(["HEMATOLOGY", "CHEMISTRY", "URINALYSIS", "COAGULATION"]),
        "LBORRES": f"{value:.1f}",
        "LBORRESU": unit,
        "LBORNRLO": low,
        "LBORNRHI": high,
        "LBNRIND": indicator,
        "LBSTAT": "NOT DONE" if rnd.random() > 0.95 else "",
        "LBREASND": "SAMPLE HEMOLYZED" if rnd.random() > 0.95 else "",
        "LBDTC": _day(_days_ago(rnd, now, 300)),
        "LBDY": rnd.randint(1, 300),
        "VISITNUM": visit_num + 1,
        "VISIT": VISIT_NAMES[visit_num],
    }


def generate_tu(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """RECIST tumor identification; sequence and group ids are set by the seeder"""
    visit_num = rnd.randint(1, 5)
    tumor_type = rnd.choice(TUMOR_TYPES)
    location = rnd.choice(TUMOR_LOCATIONS)
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "TU",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "TUREFID": str(rnd.randint(1000, 1999)),
        "TULNKID": f"VISIT-{visit_num}",
        "TUTESTCD": "TUMIDENT",
        "TUTEST": "Tumor Identification",
        "TUORRES": f"{location} {tumor_type}",
        "TUSTRESC": f"{location} {tumor_type}",
        "TULOC": location,
        "TUMETHOD": rnd.choice(ASSESSMENT_METHODS),
        "TUCAT": tumor_type,
        "TUDIAMETER": rnd.randint(5, 54),
        "TUDIAMUNIT": "mm",
        "TUDTC": _day(_days_ago(rnd, now, 180)),
        "TUDDY": rnd.randint(1, 200),
        "VISITNUM": visit_num,
        "VISIT": f"Visit {visit_num}",
        "TUSITE": rnd.choice(["Primary", "Metastatic"]),
        "TUEVAL": rnd.choice(["Investigator", "Independent Review", "Sponsor"]),
        "TUACPTFL": rnd.choice(["Y", "N"]),
    }


def generate_audit(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    action = rnd.choice(["CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT", "VIEW"])
    reason = ""
    if action == "UPDATE":
        reason = f"Updating {rnd.choice(['demographic', 'lab', 'adverse event', 'concomitant medication', 'vital sign'])} data"
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "AUDIT",
        "AUDITID": f"AUDIT-{rnd.randint(1, 1000)}",
        "AUDITUSER": f"user{rnd.randint(1, 20)}",
        "AUDITDTC": _days_ago(rnd, now, 100).isoformat(),
        "AUDITACTION": action,
        "AUDITREC": f"{rnd.choice(['PATIENT', 'FORM', 'QUERY', 'SUBJECT', 'VISIT'])}-{rnd.randint(1, 100)}",
        "AUDITDESC": f"{action} operation on "
                     f"{rnd.choice(['patient data', 'form data', 'query', 'subject data', 'visit data'])}",
        "AUDITSTATUS": rnd.choice(["SUCCESS", "FAILURE", "WARNING"]),
        "AUDITREAS": reason,
        "AUDITIP": f"192.168.{rnd.randrange(256)}.{rnd.randrange(256)}",
        "AUDITSYS": rnd.choice(["EDC", "IRT", "CTMS", "eTMF", "Safety DB"]),
    }


def generate_form_audit(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    versions = ["1.0", "1.1", "1.2", "2.0", "2.1"]
    action = rnd.choice(["CREATE", "UPDATE", "PUBLISH", "ARCHIVE"])
    form_type = rnd.choice(["DEMOGRAPHICS", "VITAL SIGNS", "LABORATORY", "ADVERSE EVENTS",
                            "CONCOMITANT MEDICATIONS", "MEDICAL HISTORY"])
    current = rnd.choice(versions)
    # previous version is drawn from the versions before the current one
    previous = versions[rnd.randrange(max(versions.index(current), 1))] if action != "CREATE" else ""
    updated = action == "UPDATE"
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "FORM_AUDIT",
        "FORMID": f"FORM-{rnd.randint(1, 100)}",
        "FORMNAME": f"{form_type} FORM",
        "FORMTYPE": form_type,
        "FORMACTION": action,
        "FORMUSER": f"user{rnd.randint(1, 20)}",
        "FORMDTC": _days_ago(rnd, now, 500).isoformat(),
        "FORMSTATUS": rnd.choice(["DRAFT", "IN REVIEW", "APPROVED", "PUBLISHED", "ARCHIVED"]),
        "FORMVERSION": current,
        "FORMPREVVERSION": previous,
        "FORMCHANGE": (f"Updated {rnd.choice(['field labels', 'field validations', 'form structure', 'skip patterns', 'edit checks'])}"
                       if updated else ""),
        "FORMREASON": (f"Change requested by {rnd.choice(['Sponsor', 'Data Manager', 'CRA', 'Site', 'Regulatory'])}"
                       if updated else ""),
    }


def generate_ctms_study(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    end = _day(now + timedelta(days=rnd.randrange(1000))) if rnd.random() > 0.3 else ""
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "CTMS_STUDY",
        "PROTOCOL": f"PROTOCOL-{rnd.randrange(1000)}",
        "TITLE": f"Study of Treatment in {'Diabetes' if rnd.random() > 0.5 else 'Hypertension'} Patients",
        "PHASE": rnd.choice(["I", "II", "III", "IV", "I/II", "II/III"]),
        "STATUS": rnd.choice(["PLANNED", "ACTIVE", "COMPLETED", "SUSPENDED", "TERMINATED"]),
        "DESIGN": rnd.choice(["RANDOMIZED", "OPEN-LABEL", "DOUBLE-BLIND", "CROSSOVER", "PARALLEL"]),
        "SPONSORID": f"SPONSOR-{rnd.randrange(100)}",
        "SPONSORNAME": rnd.choice(["Pfizer", "Novartis", "Roche", "Merck", "AstraZeneca"]),
        "INDICATION": "Type 2 Diabetes" if rnd.random() > 0.5 else "Hypertension",
        "STARTDATE": _day(_days_ago(rnd, now, 1000)),
        "ENDDATE": end,
        "ENROLLMENT": rnd.randint(100, 1099),
        "ENROLLMENTGOAL": rnd.randint(200, 1199),
    }


def generate_ds(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """Disposition"""
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "DS",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "DSSEQ": 1,
        "DSTERM": rnd.choice(DISPOSITION_TERMS),
        "DSDECOD": rnd.choice(DISPOSITION_TERMS),
        "DSCAT": "DISPOSITION EVENT",
        "DSSTDTC": _day(STUDY_START + timedelta(days=29 + rnd.randrange(90))),
        "DSDY": 30 + rnd.randrange(90),
    }


def generate_mh(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """Medical history"""
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "MH",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "MHSEQ": 1,
        "MHTERM": rnd.choice(MEDICAL_HISTORY_TERMS),
        "MHDECOD": rnd.choice(MEDICAL_HISTORY_TERMS),
        "MHCAT": "MEDICAL HISTORY",
        "MHSTDTC": _day(datetime(2020, 1, 1) + timedelta(days=rnd.randrange(1095))),
        "MHENRF": "ONGOING" if rnd.random() > 0.7 else "RESOLVED",
    }


def generate_ie(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """Inclusion/exclusion evaluation at screening; every subject met the criteria"""
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "IE",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "IESEQ": 1,
        "IETEST": "INCLUSION/EXCLUSION CRITERIA",
        "IETESTCD": "IEYN",
        "IECAT": "SCREENING",
        "IEORRES": "Y",
        "IESTRESC": "Y",
        "IEDTC": _day(datetime(2023, 12, 1) + timedelta(days=rnd.randrange(30))),
    }


def generate_sae(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """Serious adverse event"""
    start = STUDY_START + timedelta(days=rnd.randrange(120))
    ended = rnd.random() > 0.3
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "SAE",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "SAESEQ": 1,
        "SAETERM": rnd.choice(SAE_TERMS),
        "SAEDECOD": rnd.choice(SAE_TERMS),
        "SAECAT": "SERIOUS ADVERSE EVENT",
        "SAESEV": rnd.choice(["MILD", "MODERATE", "SEVERE"]),
        "SAESER": "Y",
        "SAEREL": rnd.choice(["RELATED", "NOT RELATED", "POSSIBLY RELATED"]),
        "SAESTDTC": _day(start),
        "SAEENDTC": _day(STUDY_START + timedelta(days=9 + rnd.randrange(120))) if ended else "",
        "SAEOUT": rnd.choice(["RECOVERED/RESOLVED", "ONGOING", "FATAL", "RECOVERED WITH SEQUELAE"]),
    }


def generate_pd(rnd: random.Random, now: datetime) -> Dict[str, Any]:
    """Protocol deviation"""
    ended = rnd.random() > 0.4
    return {
        "STUDYID": study_identifier(1),
        "DOMAIN": "PD",
        "USUBJID": rnd.choice(SUBJECT_IDS),
        "PDSEQ": 1,
        "PDCAT": "PROTOCOL DEVIATION",
        "PDTERM": rnd.choice(DEVIATION_TERMS),
        "PDDECOD": rnd.choice(DEVIATION_TERMS),
        "PDSEV": rnd.choice(["MINOR", "MAJOR", "CRITICAL"]),
        "PDSTAT": "REPORTED",
        "PDSTDTC": _day(STUDY_START + timedelta(days=rnd.randrange(120))),
        "PDENDTC": _day(STUDY_START + timedelta(days=4 + rnd.randrange(120))) if ended else "",
        "PDSTDY": rnd.randint(1, 120),
        "PDENDY": rnd.randint(5, 124) if ended else None,
        "PDRESP": rnd.choice(["Y", "N"]),
        "PDREASN": "Protocol requirement not met",
    }


# =============================================================================
# EDC SERIES
# =============================================================================

def _edc_lab_value(rnd: random.Random, low: float, high: float) -> str:
    """Usually within range; 10% below and 10% above"""
    roll = rnd.random()
    if roll < 0.1:
        value = low - rnd.random() * low * 0.3
    elif roll > 0.9:
        value = high + rnd.random() * high * 0.3
    else:
        value = low + rnd.random() * (high - low)
    return f"{value:.1f}"


def generate_edc_lab_series(rnd: random.Random, trial_id: int, count: int) -> List[Tuple[str, Dict[str, Any]]]:
    """Full EDC lab panel per visit, subject by subject, for up to ten subjects"""
    records = []
    for subject in range(1, 11):
        for visit_index, visit_day in enumerate(EDC_LAB_VISIT_DAYS):
            for test_index, (code, name, unit, low, high) in enumerate(EDC_LAB_TESTS):
                if len(records) >= count:
                    return records
                seq = visit_index * len(EDC_LAB_TESTS) + test_index + 1
                value = _edc_lab_value(rnd, low, high)
                if float(value) < low:
                    flag = "L"
                elif float(value) > high:
                    flag = "H"
                else:
                    flag = ""
                records.append((f"LB-EDC-{trial_id}-{subject}-{seq}", {
                    "STUDYID": study_identifier(trial_id),
                    "DOMAIN": "LB",
                    "USUBJID": subject_identifier(trial_id, subject),
                    "LBSEQ": seq,
                    "LBTESTCD": code,
                    "LBTEST": name,
                    "LBCAT": "HEMATOLOGY",
                    "LBORRES": value,
                    "LBORRESU": unit,
                    "LBORNRLO": str(low),
                    "LBORNRHI": str(high),
                    "LBNRIND": flag,
                    "LBSTAT": "",
                    "LBREASND": "",
                    "LBDTC": _day(STUDY_START + timedelta(days=visit_day)),
                    "LBDY": visit_day,
                    "VISITNUM": visit_index + 1,
                    "VISIT": f"Day {visit_day}",
                }))
    return records


def generate_vs_series(rnd: random.Random, trial_id: int, count: int) -> List[Tuple[str, Dict[str, Any]]]:
    """Six vital signs at each of eight visits for up to fifteen subjects"""
    records = []
    for subject in range(1, 16):
        for visit_index, visit_day in enumerate(VS_VISIT_DAYS):
            for vital_index, (code, name, unit, low, high) in enumerate(VITAL_SIGNS):
                if len(records) >= count:
                    return records
                seq = visit_index * len(VITAL_SIGNS) + vital_index + 1
                records.append((f"VS-{trial_id}-{subject}-{seq}", {
                    "STUDYID": study_identifier(trial_id),
                    "DOMAIN": "VS",
                    "USUBJID": subject_identifier(trial_id, subject),
                    "VSSEQ": seq,
                    "VSTESTCD": code,
                    "VSTEST": name,
                    "VSORRES": f"{low + rnd.random() * (high - low):.1f}",
                    "VSORRESU": unit,
                    "VSSTAT": "",
                    "VSREASND": "",
                    "VISITNUM": visit_index + 1,
                    "VISIT": f"Day {visit_day}",
                    "VSDTC": _day(STUDY_START + timedelta(days=visit_day)),
                    "VSDY": visit_day,
                }))
    return records


def generate_cm_series(rnd: random.Random, trial_id: int, count: int) -> List[Tuple[str, Dict[str, Any]]]:
    """One to five concomitant medications for each of the first ten subjects"""
    records = []
    for subject in range(1, 11):
        for seq in range(1, rnd.randint(1, 5) + 1):
            if len(records) >= count:
                return records
            dose = rnd.choice(CM_DOSES)
            start = STUDY_START + timedelta(days=rnd.randrange(30))
            end = start + timedelta(days=rnd.random() * 60) if rnd.random() > 0.3 else None
            records.append((f"CM-{trial_id}-{subject}-{seq}", {
                "STUDYID": study_identifier(trial_id),
                "DOMAIN": "CM",
                "USUBJID": subject_identifier(trial_id, subject),
                "CMSEQ": seq,
                "CMTRT": rnd.choice(CM_DRUGS),
                "CMCAT": "CONCOMITANT MEDICATION",
                "CMDOSE": dose,
                "CMDOSU": re.sub(r"[0-9.]", "", dose),
                "CMDOSFRQ": rnd.choice(CM_FREQUENCIES),
                "CMROUTE": rnd.choice(CM_ROUTES),
                "CMSTDTC": _day(start),
                "CMENDTC": _day(end) if end else "",
                "CMINDC": rnd.choice(CM_INDICATIONS),
                "CMSTAT": "NOT DONE" if rnd.random() > 0.9 else "COMPLETED",
            }))
    return records


def generate_ex_series(rnd: random.Random, trial_id: int, count: int) -> List[Tuple[str, Dict[str, Any]]]:
    """One to three study drug exposures for each of the first fifteen subjects"""
    records = []
    for subject in range(1, 16):
        for seq in range(1, rnd.randint(1, 3) + 1):
            if len(records) >= count:
                return records
            start = STUDY_START + timedelta(days=rnd.randrange(30))
            end = start + timedelta(days=rnd.random() * 90)
            records.append((f"EX-{trial_id}-{subject}-{seq}", {
                "STUDYID": study_identifier(trial_id),
                "DOMAIN": "EX",
                "USUBJID": subject_identifier(trial_id, subject),
                "EXSEQ": seq,
                "EXTRT": f"Study Drug {chr(64 + seq)}",
                "EXCAT": "STUDY TREATMENT",
                "EXDOSE": rnd.choice(EX_DOSES),
                "EXDOSU": rnd.choice(EX_DOSE_UNITS),
                "EXDOSFRM": rnd.choice(EX_FORMULATIONS),
                "EXDOSFRQ": rnd.choice(EX_FREQUENCIES),
                "EXROUTE": rnd.choice(EX_ROUTES),
                "EXSTDTC": _day(start),
                "EXENDTC": _day(end),
                "EXSTDY": 1,
                "EXENDY": round((end - start).total_seconds() / 86400),
                "VISITNUM": 1,
                "VISIT": "Baseline",
                "EXTPT": "BEFORE BREAKFAST",
            }))
    return records


DOMAIN_GENERATORS: Dict[str, Generator] = {
    "SV": generate_sv,
    "DM": generate_dm,
    "AE": generate_ae,
    "LB": generate_lb,
    "TU": generate_tu,
    "DS": generate_ds,
    "MH": generate_mh,
    "IE": generate_ie,
    "SAE": generate_sae,
    "PD": generate_pd,
    "AUDIT": generate_audit,
    "FORM_AUDIT": generate_form_audit,
    "CTMS_STUDY": generate_ctms_study,
}

SERIES_GENERATORS: Dict[Tuple[str, str], SeriesGenerator] = {
    ("LB", "EDC"): generate_edc_lab_series,
    ("VS", "EDC"): generate_vs_series,
    ("CM", "EDC"): generate_cm_series,
    ("EX", "EDC"): generate_ex_series,
}
