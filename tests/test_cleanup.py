"""Tests for store-wide encoding repair and dedupe runs."""

from datetime import datetime

import pytest

from reconcile.cleanup import dedupe_store, fix_store_encoding
from reconcile.database import CleanupRun, get_session, init_database
from reconcile.storage import insert_record, load_records


@pytest.fixture
def seeded_store(db_path):
    """Store with one mis-encoded contact and a duplicate pair."""
    init_database(db_path)
    session = get_session(db_path)
    for values in [
        {"company_name": "MÃ¼ller GmbH", "city": "ZÃ¼rich", "phone": "044 111 11 11", "created_at": datetime(2022, 1, 1)},
        {"company_name": "Alpha AG", "phone": "079 123 45 67", "created_at": datetime(2023, 1, 1)},
        {"company_name": "alpha  ag", "email": "info@alpha.ch", "created_at": datetime(2024, 1, 1)},
        {"company_name": "Beta AG", "city": "Bern", "created_at": datetime(2024, 2, 1)},
    ]:
        insert_record(session, "contacts", values)
    session.commit()
    session.close()
    return db_path


def _contacts(db_path):
    session = get_session(db_path)
    try:
        return {r["company_name"]: r for r in load_records(session, "contacts")}
    finally:
        session.close()


def _runs(db_path):
    session = get_session(db_path)
    try:
        return [(run.type, run.target, run.status, run.summary) for run in session.query(CleanupRun).all()]
    finally:
        session.close()


class TestFixStoreEncoding:
    """Mojibake repair over stored records."""

    def test_preview_does_not_write(self, seeded_store):
        summary = fix_store_encoding(seeded_store, kind="contacts")

        assert summary["preview"] is True
        assert summary["scanned"] == 4
        assert summary["affected"] == 1
        assert summary["fields_fixed"] == 2
        assert summary["examples"][0]["after"] == {"company_name": "Müller GmbH", "city": "Zürich"}
        assert summary["examples"][0]["before"]["company_name"] == "MÃ¼ller GmbH"
        assert "run_id" not in summary
        assert "MÃ¼ller GmbH" in _contacts(seeded_store)
        assert _runs(seeded_store) == []

    def test_apply_writes_and_logs_run(self, seeded_store):
        summary = fix_store_encoding(seeded_store, kind="contacts", apply=True)

        assert summary["preview"] is False
        assert summary["run_id"]
        contacts = _contacts(seeded_store)
        assert contacts["Müller GmbH"]["city"] == "Zürich"
        assert contacts["Müller GmbH"]["phone"] == "044 111 11 11"
        assert _runs(seeded_store) == [
            ("fix_encoding", "contacts", "completed", {"scanned": 4, "affected": 1, "fields_fixed": 2})
        ]

        again = fix_store_encoding(seeded_store, kind="contacts")
        assert again["affected"] == 0

    def test_missing_store(self, tmp_path):
        db_path = tmp_path / "missing.db"
        summary = fix_store_encoding(db_path, apply=True)

        assert summary["scanned"] == 0
        assert summary["affected"] == 0
        assert not db_path.exists()

    def test_candidates(self, db_path):
        init_database(db_path)
        session = get_session(db_path)
        insert_record(
            session,
            "candidates",
            {"first_name": "RenÃ©", "last_name": "Meier", "position_title": "GeschÃ¤ftsfÃ¼hrer"},
        )
        session.commit()
        session.close()

        summary = fix_store_encoding(db_path, kind="candidates", apply=True)

        assert summary["fields_fixed"] == 2
        session = get_session(db_path)
        candidate = load_records(session, "candidates")[0]
        session.close()
        assert candidate["first_name"] == "René"
        assert candidate["position_title"] == "Geschäftsführer"


class TestDedupeStore:
    """Duplicate merge over stored records."""

    def test_preview(self, seeded_store):
        summary = dedupe_store(seeded_store, kind="contacts")

        assert summary["preview"] is True
        assert summary["duplicate_groups"] == 1
        assert summary["records_to_delete"] == 1
        assert summary["examples"] == [
            {"primary_name": "Alpha AG", "duplicate_names": ["alpha  ag"], "match_reason": "name"}
        ]
        assert len(_contacts(seeded_store)) == 4

    def test_apply_merges_and_deletes(self, seeded_store, quiet_logger):
        summary = dedupe_store(seeded_store, kind="contacts", apply=True)

        assert summary["removed"] == 1
        assert summary["fields_merged"] == 1
        assert summary["errors"] == []
        assert summary["status"] == "completed"

        contacts = _contacts(seeded_store)
        assert len(contacts) == 3
        assert "alpha  ag" not in contacts
        # the older record survives and receives the missing email
        assert contacts["Alpha AG"]["phone"] == "079 123 45 67"
        assert contacts["Alpha AG"]["email"] == "info@alpha.ch"

        runs = _runs(seeded_store)
        assert len(runs) == 1
        assert runs[0][:3] == ("dedupe_merge", "contacts", "completed")
        assert runs[0][3]["removed"] == 1

        metrics = quiet_logger.get_metrics()
        assert metrics["duplicate_groups"] == 1
        assert metrics["duplicates_removed"] == 1

    def test_apply_twice_finds_nothing(self, seeded_store):
        dedupe_store(seeded_store, apply=True)
        summary = dedupe_store(seeded_store)

        assert summary["duplicate_groups"] == 0
        assert summary["records_to_delete"] == 0

    def test_candidate_homonyms_survive(self, db_path):
        init_database(db_path)
        session = get_session(db_path)
        for values in [
            {"first_name": "Anna", "last_name": "Meier", "phone": "079 111 11 11"},
            {"first_name": "Anna", "last_name": "Meier", "phone": "079 222 22 22"},
            {"first_name": "Anna", "last_name": "Meier", "postal_code": "8001"},
            {"first_name": "anna", "last_name": "meier", "postal_code": "8001", "city": "Zürich"},
        ]:
            insert_record(session, "candidates", values)
        session.commit()
        session.close()

        summary = dedupe_store(db_path, kind="candidates", apply=True)

        assert summary["duplicate_groups"] == 1
        session = get_session(db_path)
        candidates = load_records(session, "candidates")
        session.close()
        assert len(candidates) == 3

    def test_missing_store(self, tmp_path):
        summary = dedupe_store(tmp_path / "missing.db", apply=True)

        assert summary == {
            "preview": False,
            "duplicate_groups": 0,
            "records_to_delete": 0,
            "examples": [],
        }
