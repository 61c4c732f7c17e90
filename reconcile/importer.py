"""
Import pipelines for contact and candidate spreadsheets.

Each row has its text fields repaired and is validated. The whole batch is
then clustered together with the records already in the store: rows that
duplicate a stored record (or an earlier row) are merged into it instead of
being inserted, filling only fields that are still empty.
"""

import csv
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from .database import get_session, init_database, new_id
from .dedupe import (
    CANDIDATE_PROFILE,
    CONTACT_PROFILE,
    build_existing_index,
    check_duplicate,
    dedupe_candidate_rows,
    find_duplicate_groups,
    merge_fields,
    parse_created_at,
)
from .encoding import repair_record_fields
from .logger import get_logger
from .normalize import DEFAULT_COUNTRY_CODE
from .roles import find_best_role
from .schema import validate_candidate, validate_contact
from .storage import (
    KIND_TEXT_FIELDS,
    insert_record,
    load_records,
    load_roles,
    update_record,
)

KIND_PROFILES = {"contacts": CONTACT_PROFILE, "candidates": CANDIDATE_PROFILE}
KIND_VALIDATORS = {"contacts": validate_contact, "candidates": validate_candidate}


def read_csv_rows(path: Path) -> List[Dict[str, str]]:
    """Read a spreadsheet export; header names are trimmed, a BOM is ignored."""
    rows: List[Dict[str, str]] = []
    with path.open("r", newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        for row in reader:
            rows.append({k.strip(): v for k, v in row.items() if k})
    return rows


def _clean_row(raw: Mapping[str, Any]) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, str):
            value = value.strip() or None
        row[key] = value
    return row


def _created_at(row: Mapping[str, Any], line_no: int, now: datetime) -> datetime:
    raw = row.get("created_at")
    if raw is None:
        return now
    parsed = parse_created_at(raw)
    if parsed is None:
        get_logger().warning("Unparseable created_at, using import time", line=line_no, created_at=raw)
        return now
    # DateTime columns are naive
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def prepare_rows(rows: Sequence[Mapping[str, Any]], kind: str) -> Dict[str, Any]:
    """
    Repair and validate raw rows.

    Returns:
        Dict with 'valid' rows (each carrying its source line number under
        '_line'), 'skipped' count and 'fields_repaired' count
    """
    logger = get_logger()
    validate = KIND_VALIDATORS[kind]
    valid: List[Dict[str, Any]] = []
    skipped = 0
    fields_repaired = 0

    for line_no, raw in enumerate(rows, start=2):  # line 1 is the header
        row = _clean_row(raw)
        fixes = repair_record_fields(row, KIND_TEXT_FIELDS[kind])
        if fixes:
            row.update(fixes)
            fields_repaired += len(fixes)
            logger.record_repair(len(fixes))
            logger.debug("Repaired encoding", line=line_no, fields=sorted(fixes))

        errors = validate(row)
        if errors:
            skipped += 1
            logger.record_import("skipped")
            logger.warning("Skipping invalid row", line=line_no, errors=errors)
            continue

        row["_line"] = line_no
        valid.append(row)

    return {"valid": valid, "skipped": skipped, "fields_repaired": fields_repaired}


def import_rows(
    rows: Sequence[Mapping[str, Any]],
    db_path: Path,
    kind: str = "contacts",
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> Dict[str, int]:
    """
    Import raw spreadsheet rows into the store.

    Args:
        rows: Raw rows (column name -> value)
        db_path: Path to SQLite database file
        kind: 'contacts' or 'candidates'
        country_code: Default country code for phone comparison

    Returns:
        Summary counts: rows, imported, merged, updated, skipped, fields_repaired
    """
    logger = get_logger()
    profile = KIND_PROFILES[kind]
    prepared = prepare_rows(rows, kind)
    valid = prepared["valid"]
    skipped = prepared["skipped"]

    if kind == "candidates":
        unique = dedupe_candidate_rows(valid, country_code)
        for _ in range(len(valid) - len(unique)):
            logger.record_import("skipped")
        skipped += len(valid) - len(unique)
        valid = unique

    init_database(db_path)
    session = get_session(db_path)
    try:
        roles = load_roles(session) if kind == "candidates" else []
        existing = load_records(session, kind)
        existing_ids = {r["id"] for r in existing}
        logger.record_scanned(len(existing))

        now = datetime.now()
        incoming: List[Dict[str, Any]] = []
        for row in valid:
            record = dict(row)
            line_no = record.pop("_line")
            record["id"] = new_id()
            record["created_at"] = _created_at(record, line_no, now)
            if kind == "candidates" and not record.get("role_id"):
                role = find_best_role(record.get("position_title"), roles)
                if role is not None:
                    record["role_id"] = role.id
            incoming.append(record)

        by_id = {r["id"]: r for r in existing + incoming}
        merged_into: Dict[str, str] = {}
        pending_updates: Dict[str, Dict[str, Any]] = defaultdict(dict)

        for group in find_duplicate_groups(existing + incoming, profile, country_code):
            member_ids = [group.primary_id, *group.duplicate_ids]
            new_members = [m for m in member_ids if m not in existing_ids]
            if not new_members:
                continue
            # Stored records always absorb new rows
            target_id = next((m for m in member_ids if m in existing_ids), group.primary_id)
            target = by_id[target_id]
            for member_id in new_members:
                if member_id == target_id:
                    continue
                patch = merge_fields(target, by_id[member_id], profile)
                target.update(patch)
                if target_id in existing_ids and patch:
                    pending_updates[target_id].update(patch)
                merged_into[member_id] = target_id
                logger.debug(
                    "Merging duplicate row",
                    target_id=target_id,
                    reason=group.match_reason,
                    fields=sorted(patch),
                )

        imported = 0
        for record in incoming:
            if record["id"] in merged_into:
                logger.record_import("merged")
                continue
            insert_record(session, kind, record)
            imported += 1
            logger.record_import("new")

        for target_id, patch in pending_updates.items():
            update_record(session, kind, target_id, patch)

        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.record_error(type(e).__name__)
        logger.error(f"Import failed: {e}", kind=kind, db_path=str(db_path))
        raise
    finally:
        session.close()

    summary = {
        "rows": len(rows),
        "imported": imported,
        "merged": len(merged_into),
        "updated": len(pending_updates),
        "skipped": skipped,
        "fields_repaired": prepared["fields_repaired"],
    }
    logger.info(f"Import of {kind} complete", **summary)
    return summary


def import_csv(
    csv_path: Path,
    db_path: Path,
    kind: str = "contacts",
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> Dict[str, int]:
    return import_rows(read_csv_rows(csv_path), db_path, kind=kind, country_code=country_code)


def sync_directory_contacts(
    entries: Sequence[Mapping[str, Any]],
    db_path: Path,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> Dict[str, Any]:
    """
    Add directory entries (e.g. an address book export) as contacts.

    Entries matching a stored contact by source id, phone, company email
    domain or name are skipped, never merged.
    """
    logger = get_logger()
    prepared = prepare_rows(entries, "contacts")
    skipped_reasons: Dict[str, int] = defaultdict(int)

    init_database(db_path)
    session = get_session(db_path)
    try:
        index = build_existing_index(load_records(session, "contacts"), CONTACT_PROFILE, country_code)
        added = 0
        now = datetime.now()
        for row in prepared["valid"]:
            row["created_at"] = _created_at(row, row.pop("_line"), now)
            check = check_duplicate(row, index, CONTACT_PROFILE, country_code)
            if check.is_duplicate:
                skipped_reasons[check.reason] += 1
                logger.record_import("skipped")
                continue
            insert_record(session, "contacts", row)
            added += 1
            logger.record_import("new")
            # Later entries must not duplicate this one either
            fresh = build_existing_index([row], CONTACT_PROFILE, country_code)
            index.phones |= fresh.phones
            index.names |= fresh.names
            index.email_domains |= fresh.email_domains
            index.source_ids |= fresh.source_ids
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.record_error(type(e).__name__)
        logger.error(f"Directory sync failed: {e}", db_path=str(db_path))
        raise
    finally:
        session.close()

    summary = {
        "entries": len(entries),
        "added": added,
        "invalid": prepared["skipped"],
        "duplicates": dict(skipped_reasons),
    }
    logger.info("Directory sync complete", **summary)
    return summary


def suggest_role(position_title: Optional[str], db_path: Path):
    """Best role tag for a title from the stored vocabulary (advisory)."""
    session = get_session(db_path)
    try:
        return find_best_role(position_title, load_roles(session))
    finally:
        session.close()
