"""
Pytest configuration and shared fixtures.
"""

import csv
from pathlib import Path
from typing import Any, Dict, List

import pytest

from reconcile.logger import get_logger, reset_logger


@pytest.fixture(autouse=True)
def quiet_logger(tmp_path):
    """Route the global logger into the test's temp dir."""
    reset_logger()
    logger = get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield logger
    reset_logger()


def make_contact(record_id: str, **fields) -> Dict[str, Any]:
    contact = {
        "id": record_id,
        "company_name": None,
        "contact_name": None,
        "phone": None,
        "email": None,
        "street": None,
        "city": None,
        "canton": None,
        "postal_code": None,
        "created_at": None,
    }
    contact.update(fields)
    return contact


@pytest.fixture
def contact_factory():
    return make_contact


@pytest.fixture
def roles():
    from reconcile.roles import CanonicalRole

    return [
        CanonicalRole(id="1", name="Elektriker", color="#FF0000"),
        CanonicalRole(id="2", name="Elektro Installateur", color="#00FF00"),
        CanonicalRole(id="3", name="Schreiner", color="#0000FF"),
    ]


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "data" / "reconcile.db"


def write_csv(path: Path, rows: List[Dict[str, str]]) -> Path:
    fieldnames: List[str] = []
    for row in rows:
        for key in row:
            if key not in fieldnames:
                fieldnames.append(key)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
    return path


@pytest.fixture
def csv_writer(tmp_path):
    def _write(name: str, rows: List[Dict[str, str]]) -> Path:
        return write_csv(tmp_path / name, rows)

    return _write
