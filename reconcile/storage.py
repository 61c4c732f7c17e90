from typing import Any, Dict, Iterable, List, Optional

from .database import Candidate, CleanupRun, Contact, Role
from .roles import CanonicalRole

CONTACT_FIELDS = [
    "company_name",
    "contact_name",
    "phone",
    "email",
    "street",
    "city",
    "canton",
    "postal_code",
    "notes",
    "source_id",
]
CANDIDATE_FIELDS = [
    "first_name",
    "last_name",
    "phone",
    "email",
    "street",
    "city",
    "postal_code",
    "position_title",
    "role_id",
]

KIND_MODELS = {"contacts": Contact, "candidates": Candidate}
KIND_FIELDS = {"contacts": CONTACT_FIELDS, "candidates": CANDIDATE_FIELDS}
# Free-text fields that may carry mojibake from spreadsheet imports
KIND_TEXT_FIELDS = {
    "contacts": ("company_name", "contact_name", "street", "city", "notes"),
    "candidates": ("first_name", "last_name", "street", "city", "position_title"),
}


def model_for(kind: str):
    try:
        return KIND_MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown record kind: {kind}") from None


def to_record(row, kind: str) -> Dict[str, Any]:
    record = {"id": row.id, "created_at": row.created_at}
    for field in KIND_FIELDS[kind]:
        record[field] = getattr(row, field)
    return record


def load_records(session, kind: str) -> List[Dict[str, Any]]:
    model = model_for(kind)
    rows = session.query(model).order_by(model.created_at, model.id).all()
    return [to_record(row, kind) for row in rows]


def insert_record(session, kind: str, values: Dict[str, Any]) -> str:
    model = model_for(kind)
    columns = {k: v for k, v in values.items() if k in KIND_FIELDS[kind] or k in ("id", "created_at")}
    row = model(**columns)
    session.add(row)
    session.flush()
    return row.id


def update_record(session, kind: str, record_id: str, updates: Dict[str, Any]) -> bool:
    if not updates:
        return False
    model = model_for(kind)
    row = session.get(model, record_id)
    if row is None:
        return False
    for field, value in updates.items():
        setattr(row, field, value)
    session.flush()
    return True


def delete_records(session, kind: str, record_ids: Iterable[Optional[str]], batch_size: int = 200) -> int:
    model = model_for(kind)
    deleted = 0
    for batch in chunk_unique(record_ids, batch_size):
        deleted += (
            session.query(model)
            .filter(model.id.in_(batch))
            .delete(synchronize_session=False)
        )
    session.flush()
    return deleted


def load_roles(session) -> List[CanonicalRole]:
    rows = session.query(Role).order_by(Role.name).all()
    return [CanonicalRole(id=r.id, name=r.name, color=r.color, note=r.note) for r in rows]


def add_role(session, name: str, color: Optional[str] = None, note: Optional[str] = None) -> str:
    role = Role(name=name, color=color, note=note)
    session.add(role)
    session.flush()
    return role.id


def log_cleanup_run(session, run_type: str, target: str, summary: Dict[str, Any], status: str) -> str:
    run = CleanupRun(type=run_type, target=target, summary=summary, status=status)
    session.add(run)
    session.flush()
    return run.id


def chunk_unique(items: Iterable[Optional[str]], batch_size: int = 200) -> List[List[str]]:
    """Split unique, non-empty ids into batches of at most batch_size."""
    size = max(1, batch_size)
    unique: List[str] = []
    seen = set()
    for item in items:
        if not isinstance(item, str):
            continue
        trimmed = item.strip()
        if not trimmed or trimmed in seen:
            continue
        seen.add(trimmed)
        unique.append(trimmed)

    return [unique[i:i + size] for i in range(0, len(unique), size)]
