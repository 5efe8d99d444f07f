"""
Tests for demo data seeding and domain record generation
"""

import json
import random
import pytest
from datetime import datetime

from sqlalchemy import func, select

from clinical_trial_ops.core.error_handling import SeedingError
from clinical_trial_ops.db.generators import (
    DOMAIN_GENERATORS,
    EDC_LAB_TESTS,
    LAB_TESTS,
    SERIES_GENERATORS,
    generate_cm_series,
    generate_edc_lab_series,
    generate_ex_series,
    generate_vs_series,
    study_identifier,
)
from clinical_trial_ops.db.models import (
    DomainData, DomainSource, SignalDetection, Site, Task, Trial, select_domain_source,
)
from clinical_trial_ops.db.seed import (
    CTMS_DOMAIN,
    DOMAIN_PLAN,
    build_domain_records,
    seed_all,
    seed_database,
    seed_domain_data,
)

NOW = datetime(2024, 6, 1, 12, 0)


def _count(session, model, *where):
    return session.scalar(select(func.count()).select_from(model).where(*where))


class TestGenerators:
    """Single-record generators"""

    @pytest.mark.parametrize("domain", sorted(DOMAIN_GENERATORS))
    def test_records_are_json_serializable(self, domain):
        record = DOMAIN_GENERATORS[domain](random.Random(3), NOW)
        assert json.loads(json.dumps(record)) == record

    def test_lab_indicator_matches_range(self):
        rnd = random.Random(11)
        ranges = {code: (low, high) for code, _, _, low, high in LAB_TESTS}
        for _ in range(50):
            record = DOMAIN_GENERATORS["LB"](rnd, NOW)
            low, high = ranges[record["LBTESTCD"]]
            value = float(record["LBORRES"])
            assert value >= low
            if record["LBNRIND"] == "HIGH":
                assert value >= high
            else:
                assert record["LBNRIND"] == "NORMAL"
                assert value <= high + 0.05

    def test_study_identifier(self):
        assert study_identifier(3) == "PRO003"


class TestBuildDomainRecords:

    def test_subject_ids(self):
        """Lab rows cycle four per subject"""
        rows = build_domain_records(2, "LB", "Central Laboratory", 9, random.Random(1), NOW)
        subjects = [json.loads(r.record_data)["USUBJID"] for r in rows]
        assert subjects[:5] == ["S-2-001"] * 4 + ["S-2-002"]
        assert subjects[-1] == "S-2-003"
        assert [r.record_id for r in rows][:2] == ["LB-2-1", "LB-2-2"]
        assert all(json.loads(r.record_data)["STUDYID"] == "PRO002" for r in rows)

    def test_tumor_sequence(self):
        rows = build_domain_records(1, "TU", "Imaging RECIST", 4, random.Random(1), NOW)
        records = [json.loads(r.record_data) for r in rows]
        assert [r["TUSEQ"] for r in records] == [1, 2, 3, 4]
        assert records[2]["TUGRPID"] == "TU002-3"
        assert records[2]["TUNAM"].endswith(" 3")

    def test_one_record_per_subject(self):
        rows = build_domain_records(3, "SAE", "EDC Safety", 8, random.Random(1), NOW)
        records = [json.loads(r.record_data) for r in rows]
        assert [r["USUBJID"] for r in records][:3] == ["S-3-001", "S-3-002", "S-3-003"]
        assert all(r["SAESER"] == "Y" for r in records)
        assert rows[-1].record_id == "SAE-3-8"

    def test_form_audit_ids_follow_date_order(self):
        rows = build_domain_records(2, "FORM_AUDIT", "EDC Form Audit Trail", 20, random.Random(4), NOW)
        records = [json.loads(r.record_data) for r in rows]
        assert [r["FORMDTC"] for r in records] == sorted(r["FORMDTC"] for r in records)
        assert [r["FORMID"] for r in records][:2] == ["FORM-2-1", "FORM-2-2"]

    def test_series_source_uses_its_own_ids(self):
        """EDC labs come from the series generator, central labs do not"""
        rows = build_domain_records(1, "LB", "EDC", 12, random.Random(1), NOW)
        assert rows[0].record_id == "LB-EDC-1-1-1"
        assert json.loads(rows[11].record_data)["VISIT"] == "Day 15"

    def test_unknown_domain(self):
        with pytest.raises(SeedingError):
            build_domain_records(1, "XX", "Nowhere", 3, random.Random(1), NOW)


class TestSeriesGenerators:
    """EDC domains recorded per subject and visit"""

    def test_edc_lab_panel(self):
        records = generate_edc_lab_series(random.Random(7), 2, 50)
        assert len(records) == 50
        assert records[0][0] == "LB-EDC-2-1-1"
        assert {r["USUBJID"] for _, r in records} == {"S-2-001"}

        ranges = {code: (low, high) for code, _, _, low, high in EDC_LAB_TESTS}
        for _, record in records:
            low, high = ranges[record["LBTESTCD"]]
            value = float(record["LBORRES"])
            expected = "L" if value < low else "H" if value > high else ""
            assert record["LBNRIND"] == expected

    def test_vital_signs_grid(self):
        records = generate_vs_series(random.Random(7), 1, 720)
        assert len(records) == 720
        assert records[-1][0] == "VS-1-15-48"
        assert records[-1][1]["VISIT"] == "Day 99"
        assert len({r["USUBJID"] for _, r in records}) == 15

    def test_vital_signs_capped(self):
        assert len(generate_vs_series(random.Random(7), 1, 10)) == 10

    def test_concomitant_medications(self):
        records = generate_cm_series(random.Random(7), 1, 30)
        assert 10 <= len(records) <= 30
        for record_id, record in records:
            assert record_id.startswith("CM-1-")
            assert record["CMDOSE"].endswith(record["CMDOSU"])
            assert not any(ch.isdigit() for ch in record["CMDOSU"])

    def test_exposure(self):
        records = generate_ex_series(random.Random(7), 1, 35)
        assert 15 <= len(records) <= 35
        first = records[0][1]
        assert first["EXSEQ"] == 1
        assert first["EXTRT"] == "Study Drug A"
        assert all(r["EXENDY"] >= 0 for _, r in records)


class TestSeedDatabase:
    """Demo trials, sites, signals and tasks"""

    def test_seeds_empty_database(self, db_session):
        assert seed_database(db_session) is True

        assert _count(db_session, Trial) == 4
        assert _count(db_session, Site) == 10
        assert _count(db_session, SignalDetection) == 2
        assert _count(db_session, Task) == 2

        task = db_session.scalars(select(Task).where(Task.task_id == "TSK_DIAB2_001")).one()
        signal = db_session.get(SignalDetection, task.detection_id)
        assert signal.detection_id == "ST_Risk_001"

    def test_skips_when_trials_exist(self, db_session, trial):
        assert seed_database(db_session) is False
        assert _count(db_session, Trial) == 1
        assert _count(db_session, Site) == 0


class TestSeedDomainData:
    """Per-trial domain data generation"""

    def test_counts_per_domain(self, db_session, trial):
        inserted = seed_domain_data(db_session, batch_size=30, rng=random.Random(5), now=NOW)

        per_domain = {}
        for domain, source, count in DOMAIN_PLAN:
            stored = _count(db_session, DomainData, DomainData.domain == domain, DomainData.source == source)
            if (domain, source) in SERIES_GENERATORS:
                assert 0 < stored <= count
            else:
                assert stored == count
            per_domain[domain] = per_domain.get(domain, 0) + stored

        for domain, stored in per_domain.items():
            assert inserted[domain] == stored
        assert inserted[CTMS_DOMAIN] == 1
        assert _count(db_session, DomainSource) == len(DOMAIN_PLAN) + 1

    def test_lab_data_from_both_sources(self, db_session, trial):
        seed_domain_data(db_session, rng=random.Random(5), now=NOW)
        assert _count(db_session, DomainData, DomainData.domain == "LB", DomainData.source == "EDC") == 50
        assert _count(db_session, DomainData, DomainData.domain == "VS") == 720
        assert {s.source for s in db_session.scalars(select(DomainSource).where(DomainSource.domain == "LB"))} == {
            "Central Laboratory", "EDC"
        }

    def test_audit_sources_name_the_trial_edc(self, db_session, trial):
        seed_domain_data(db_session, rng=random.Random(5), now=NOW)
        audit = db_session.scalars(select_domain_source(trial.id, "AUDIT", "EDC Audit Trail")).one()
        assert audit.system == "Medidata Rave"
        assert audit.mapping_details.startswith("Maps to standard AUDIT domain")

        safety = db_session.scalars(select_domain_source(trial.id, "SAE", "EDC Safety")).one()
        assert safety.system == "EDC Safety Module"
        assert safety.frequency == "Real-time"

    def test_audit_trail_oldest_first(self, db_session, trial):
        seed_domain_data(db_session, rng=random.Random(5), now=NOW)
        rows = db_session.scalars(
            select(DomainData).where(DomainData.domain == "AUDIT").order_by(DomainData.id)
        ).all()
        records = [json.loads(r.record_data) for r in rows]
        assert len(records) == 50
        assert [r["AUDITDTC"] for r in records] == sorted(r["AUDITDTC"] for r in records)
        assert records[0]["AUDITID"] == f"AUDIT-{trial.id}-1"

    def test_ctms_record_override(self, db_session, trial):
        seed_domain_data(db_session, rng=random.Random(5), now=NOW)
        row = db_session.scalars(select(DomainData).where(DomainData.domain == CTMS_DOMAIN)).one()
        record = json.loads(row.record_data)
        assert row.record_id == f"{CTMS_DOMAIN}-{trial.id}"
        assert record["TITLE"] == "Diabetes Type 2 Long Term Outcomes Study"

    def test_idempotent(self, db_session, trial):
        """A second run inserts nothing"""
        seed_domain_data(db_session, rng=random.Random(5), now=NOW)
        total = _count(db_session, DomainData)

        assert seed_domain_data(db_session, rng=random.Random(6), now=NOW) == {}
        assert _count(db_session, DomainData) == total

    def test_no_trials(self, db_session):
        assert seed_domain_data(db_session) == {}


class TestSeedAll:

    def test_full_seed(self, db_session):
        inserted = seed_all(db_session, batch_size=100, rng=random.Random(2))
        assert inserted["DM"] == 25 * 4

        # CM and EX draw a random number of records per subject
        fixed = sum(c for d, _, c in DOMAIN_PLAN if d not in ("CM", "EX")) + 1
        assert _count(db_session, DomainData, DomainData.trial_id == 4,
                      DomainData.domain.notin_(["CM", "EX"])) == fixed

        assert seed_all(db_session, rng=random.Random(2)) == {}
