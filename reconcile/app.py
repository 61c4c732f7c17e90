import argparse
import json
from pathlib import Path

from . import __version__
from .cleanup import dedupe_store, fix_store_encoding
from .database import get_session, init_database
from .env import get_settings, load_env
from .importer import import_csv, read_csv_rows, suggest_role, sync_directory_contacts
from .logger import get_logger
from .storage import add_role, load_records

KINDS = ["contacts", "candidates"]


def _db_path(args: argparse.Namespace) -> Path:
    return Path(args.db) if args.db else get_settings().db_path


def _require_file(path: Path, what: str) -> None:
    if not path.exists():
        raise SystemExit(f"{what} not found: {path}")


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def cmd_import(args: argparse.Namespace, kind: str) -> None:
    input_path = Path(args.input)
    _require_file(input_path, "Input file")
    summary = import_csv(input_path, _db_path(args), kind=kind, country_code=args.country_code)
    print(
        f"Done. rows={summary['rows']} new={summary['imported']} merged={summary['merged']} "
        f"updated={summary['updated']} skipped={summary['skipped']} "
        f"fields_repaired={summary['fields_repaired']}"
    )


def cmd_import_contacts(args: argparse.Namespace) -> None:
    cmd_import(args, "contacts")


def cmd_import_candidates(args: argparse.Namespace) -> None:
    cmd_import(args, "candidates")


def cmd_sync_directory(args: argparse.Namespace) -> None:
    input_path = Path(args.input)
    _require_file(input_path, "Input file")
    summary = sync_directory_contacts(read_csv_rows(input_path), _db_path(args), country_code=args.country_code)
    print(f"Done. entries={summary['entries']} added={summary['added']} invalid={summary['invalid']}")
    for reason, count in sorted(summary["duplicates"].items()):
        print(f" - skipped ({reason}): {count}")


def cmd_fix_encoding(args: argparse.Namespace) -> None:
    db_path = _db_path(args)
    _require_file(db_path, "Store")
    summary = fix_store_encoding(db_path, kind=args.kind, apply=args.apply)
    mode = "Applied" if args.apply else "Preview"
    print(f"{mode}: {summary['affected']} of {summary['scanned']} {args.kind} need fixes ({summary['fields_fixed']} fields)")
    for example in summary["examples"]:
        for field, fixed in example["after"].items():
            print(f" - {example['before'][field]!r} -> {fixed!r}")


def cmd_dedupe(args: argparse.Namespace) -> None:
    db_path = _db_path(args)
    _require_file(db_path, "Store")
    summary = dedupe_store(db_path, kind=args.kind, apply=args.apply, country_code=args.country_code)
    if args.json:
        _print_json(summary)
        return
    if args.apply:
        print(f"Applied: {summary['removed']} duplicates removed, status={summary['status']}")
        for error in summary["errors"]:
            print(f"[error] {error}")
    else:
        print(f"Preview: {summary['duplicate_groups']} groups, {summary['records_to_delete']} records to delete")
    for example in summary["examples"]:
        print(f" - [{example['match_reason']}] {example['primary_name']} <- {', '.join(example['duplicate_names'])}")


def cmd_match_role(args: argparse.Namespace) -> None:
    db_path = _db_path(args)
    _require_file(db_path, "Store")
    role = suggest_role(args.title, db_path)
    if role is None:
        print("No matching role.")
        return
    print(f"Role: {role.name} ({role.id})")


def cmd_add_role(args: argparse.Namespace) -> None:
    db_path = _db_path(args)
    init_database(db_path)
    session = get_session(db_path)
    try:
        role_id = add_role(session, args.name, color=args.color, note=args.note)
        session.commit()
    finally:
        session.close()
    print(f"Role: {args.name} ({role_id})")


def cmd_list(args: argparse.Namespace) -> None:
    db_path = _db_path(args)
    if not db_path.exists():
        print(f"Store not found: {db_path}")
        return
    session = get_session(db_path)
    try:
        records = load_records(session, args.kind)
    finally:
        session.close()
    if not records:
        print(f"No {args.kind} in store.")
        return
    print(f"Found {len(records)} {args.kind} in {db_path}:\n")
    for record in records:
        print(f"ID: {record['id']}")
        for field, value in record.items():
            if field != "id" and value:
                print(f"  {field}: {value}")
        print()


def main():
    # Load .env if present (RECONCILE_DB_PATH, RECONCILE_LOG_LEVEL, ...)
    load_env()
    settings = get_settings()

    parser = argparse.ArgumentParser(prog="reconcile", description="Encoding repair, dedupe and role matching for imported records")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help=f"Path to SQLite store (default: {settings.db_path})")
    parser.add_argument("--country-code", default=settings.country_code, help="Default phone country code (default: %(default)s)")

    subparsers = parser.add_subparsers(dest="command")
    imc = subparsers.add_parser("import-contacts", help="Import a contacts CSV: repair, dedupe against the store, insert or merge")
    imc.add_argument("--input", required=True, help="Path to contacts CSV")
    imc.set_defaults(func=cmd_import_contacts)

    imt = subparsers.add_parser("import-candidates", help="Import a candidates CSV and pre-select role tags")
    imt.add_argument("--input", required=True, help="Path to candidates CSV")
    imt.set_defaults(func=cmd_import_candidates)

    syn = subparsers.add_parser("sync-directory", help="Add directory contacts, skipping any already known")
    syn.add_argument("--input", required=True, help="Path to directory export CSV")
    syn.set_defaults(func=cmd_sync_directory)

    fix = subparsers.add_parser("fix-encoding", help="Find mis-encoded text in the store (preview unless --apply)")
    fix.add_argument("--kind", choices=KINDS, default="contacts")
    fix.add_argument("--apply", action="store_true", help="Write the repaired values")
    fix.set_defaults(func=cmd_fix_encoding)

    ded = subparsers.add_parser("dedupe", help="Find duplicate records in the store (preview unless --apply)")
    ded.add_argument("--kind", choices=KINDS, default="contacts")
    ded.add_argument("--apply", action="store_true", help="Merge groups and delete duplicates")
    ded.add_argument("--json", action="store_true", help="Print the full summary as JSON")
    ded.set_defaults(func=cmd_dedupe)

    mrl = subparsers.add_parser("match-role", help="Suggest a role tag for a position title")
    mrl.add_argument("--title", required=True, help="Position title, e.g. \"Elektro Installateur EFZ\"")
    mrl.set_defaults(func=cmd_match_role)

    adr = subparsers.add_parser("add-role", help="Add a role to the vocabulary")
    adr.add_argument("--name", required=True)
    adr.add_argument("--color")
    adr.add_argument("--note")
    adr.set_defaults(func=cmd_add_role)

    lst = subparsers.add_parser("list", help="List stored records")
    lst.add_argument("--kind", choices=KINDS, default="contacts")
    lst.set_defaults(func=cmd_list)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        logger = get_logger(level=settings.log_level, log_dir=settings.log_dir)
        args.func(args)
        logger.log_metrics_summary()
        return

    parser.print_help()


if __name__ == "__main__":
    main()
