"""
Store-wide maintenance runs.

Both runs preview by default and only write when applied:

- fix_store_encoding repairs mojibake left behind by historical imports,
  updating only the fields that change.
- dedupe_store merges duplicate groups: the canonical record receives the
  values it is missing, the duplicates are deleted.

Applied runs are recorded in the cleanup_runs table.
"""

from pathlib import Path
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from .database import get_session
from .dedupe import find_duplicate_groups, merge_fields
from .encoding import repair_record_fields
from .importer import KIND_PROFILES
from .logger import get_logger
from .normalize import DEFAULT_COUNTRY_CODE
from .storage import (
    KIND_TEXT_FIELDS,
    delete_records,
    load_records,
    log_cleanup_run,
    update_record,
)

EXAMPLE_LIMIT = 10


def fix_store_encoding(db_path: Path, kind: str = "contacts", apply: bool = False) -> Dict[str, Any]:
    """
    Find (and optionally repair) mis-encoded text fields in the store.

    Args:
        db_path: Path to SQLite database file
        kind: 'contacts' or 'candidates'
        apply: Write the repairs; otherwise only report them

    Returns:
        Summary with scanned/affected record counts, repaired field count
        and a few before/after examples
    """
    logger = get_logger()
    summary: Dict[str, Any] = {
        "preview": not apply,
        "scanned": 0,
        "affected": 0,
        "fields_fixed": 0,
        "examples": [],
    }
    if not db_path.exists():
        logger.warning("Store not found, nothing to fix", db_path=str(db_path))
        return summary

    session = get_session(db_path)
    try:
        records = load_records(session, kind)
        logger.record_scanned(len(records))

        changes = []
        for record in records:
            fixes = repair_record_fields(record, KIND_TEXT_FIELDS[kind])
            if fixes:
                changes.append((record, fixes))

        summary["scanned"] = len(records)
        summary["affected"] = len(changes)
        summary["fields_fixed"] = sum(len(fixes) for _, fixes in changes)
        summary["examples"] = [
            {
                "id": record["id"],
                "before": {field: record[field] for field in fixes},
                "after": fixes,
            }
            for record, fixes in changes[:EXAMPLE_LIMIT]
        ]

        if apply and changes:
            for record, fixes in changes:
                update_record(session, kind, record["id"], fixes)
                logger.record_repair(len(fixes))
            summary["run_id"] = log_cleanup_run(
                session,
                "fix_encoding",
                kind,
                {k: summary[k] for k in ("scanned", "affected", "fields_fixed")},
                "completed",
            )
            session.commit()

        logger.info(
            f"Encoding scan complete: {summary['affected']} of {summary['scanned']} {kind} affected",
            applied=apply,
            fields_fixed=summary["fields_fixed"],
        )
        return summary

    except SQLAlchemyError as e:
        session.rollback()
        logger.record_error(type(e).__name__)
        logger.error(f"Encoding fix failed: {e}", kind=kind)
        raise
    finally:
        session.close()


def dedupe_store(
    db_path: Path,
    kind: str = "contacts",
    apply: bool = False,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> Dict[str, Any]:
    """
    Find (and optionally merge) duplicate records in the store.

    A failing group is rolled back on its own; the run then finishes with
    status 'partial' and the error listed in the summary.
    """
    logger = get_logger()
    summary: Dict[str, Any] = {
        "preview": not apply,
        "duplicate_groups": 0,
        "records_to_delete": 0,
        "examples": [],
    }
    if not db_path.exists():
        logger.warning("Store not found, nothing to dedupe", db_path=str(db_path))
        return summary

    profile = KIND_PROFILES[kind]
    session = get_session(db_path)
    try:
        records = load_records(session, kind)
        logger.record_scanned(len(records))
        groups = find_duplicate_groups(records, profile, country_code)

        summary["duplicate_groups"] = len(groups)
        summary["records_to_delete"] = sum(len(g.duplicate_ids) for g in groups)
        summary["examples"] = [
            {
                "primary_name": g.primary_name,
                "duplicate_names": g.duplicate_names,
                "match_reason": g.match_reason,
            }
            for g in groups[:EXAMPLE_LIMIT]
        ]
        if not apply:
            return summary

        by_id = {r["id"]: r for r in records}
        errors: List[str] = []
        removed = 0
        fields_merged = 0

        for group in groups:
            primary = dict(by_id[group.primary_id])
            patch: Dict[str, Any] = {}
            for duplicate_id in group.duplicate_ids:
                update = merge_fields(primary, by_id[duplicate_id], profile)
                primary.update(update)
                patch.update(update)

            try:
                update_record(session, kind, group.primary_id, patch)
                deleted = delete_records(session, kind, group.duplicate_ids)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.record_error(type(e).__name__)
                errors.append(f"Error processing group {group.primary_name}: {e}")
                continue

            removed += deleted
            fields_merged += len(patch)
            logger.record_duplicate_group(deleted, removed=True)
            logger.debug(
                "Merged duplicate group",
                primary_id=group.primary_id,
                duplicate_ids=group.duplicate_ids,
                reason=group.match_reason,
                fields=sorted(patch),
            )

        status = "partial" if errors else "completed"
        summary.update({"removed": removed, "fields_merged": fields_merged, "errors": errors, "status": status})
        summary["run_id"] = log_cleanup_run(
            session,
            "dedupe_merge",
            kind,
            {
                "duplicate_groups": len(groups),
                "removed": removed,
                "fields_merged": fields_merged,
                "errors": len(errors),
            },
            status,
        )
        session.commit()

        logger.info(
            f"Dedupe complete: {removed} {kind} removed in {len(groups)} groups",
            status=status,
            errors=len(errors),
        )
        return summary

    except SQLAlchemyError as e:
        session.rollback()
        logger.record_error(type(e).__name__)
        logger.error(f"Dedupe failed: {e}", kind=kind)
        raise
    finally:
        session.close()
