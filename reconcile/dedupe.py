"""
Duplicate detection for bulk-imported contacts and candidates.

Records are plain mappings (as loaded from the store or read from a CSV row).
Two records are connected when they share a normalized phone number or a
normalized display name (for people, the name together with phone or
postal code); connected components become duplicate groups with
one canonical survivor. Nothing here writes anywhere: callers apply the
returned groups and merge patches themselves.
"""

import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Set, Tuple

from .normalize import (
    DEFAULT_COUNTRY_CODE,
    extract_email_domain,
    is_public_email_domain,
    normalize_company_name,
    normalize_email,
    normalize_phone,
    normalize_postal_code,
    normalize_text,
)

MIN_PHONE_DIGITS = 6
MIN_NAME_LENGTH = 3
MIN_SYNC_NAME_LENGTH = 2

REASON_PHONE = "phone"
REASON_NAME = "name"
REASON_BOTH = "both"

UNNAMED = "(unnamed)"


@dataclass(frozen=True)
class DedupeProfile:
    """Describes how one record kind is compared, scored and merged."""

    name_fields: Tuple[str, ...]
    phone_field: str
    score_fields: Tuple[str, ...]
    merge_fields: Tuple[str, ...]
    id_field: str = "id"
    created_field: str = "created_at"
    postal_field: str = "postal_code"
    # Person names only match together with the same phone or postal code
    qualify_name: bool = False

    def display_name(self, record: Mapping[str, Any]) -> str:
        parts = [str(record.get(f)).strip() for f in self.name_fields if record.get(f)]
        return " ".join(part for part in parts if part)


CONTACT_PROFILE = DedupeProfile(
    name_fields=("company_name",),
    phone_field="phone",
    score_fields=(
        "company_name",
        "contact_name",
        "phone",
        "email",
        "street",
        "city",
        "canton",
        "postal_code",
    ),
    merge_fields=(
        "contact_name",
        "phone",
        "email",
        "street",
        "city",
        "canton",
        "postal_code",
    ),
)

CANDIDATE_PROFILE = DedupeProfile(
    name_fields=("first_name", "last_name"),
    phone_field="phone",
    score_fields=(
        "first_name",
        "last_name",
        "phone",
        "email",
        "street",
        "city",
        "postal_code",
        "position_title",
    ),
    merge_fields=(
        "phone",
        "email",
        "street",
        "city",
        "postal_code",
        "position_title",
    ),
    qualify_name=True,
)


@dataclass
class DuplicateGroup:
    """A canonical record and the records that duplicate it."""

    primary_id: Hashable
    primary_name: str
    duplicate_ids: List[Hashable] = field(default_factory=list)
    duplicate_names: List[str] = field(default_factory=list)
    match_reason: str = REASON_NAME


class UnionFind:
    """Disjoint set over hashable ids with union by rank and path compression."""

    def __init__(self) -> None:
        self._parent: Dict[Hashable, Hashable] = {}
        self._rank: Dict[Hashable, int] = {}

    def find(self, item: Hashable) -> Hashable:
        if item not in self._parent:
            self._parent[item] = item
            self._rank[item] = 0
            return item

        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while item != root:
            next_item = self._parent[item]
            self._parent[item] = root
            item = next_item
        return root

    def union(self, left: Hashable, right: Hashable) -> None:
        root_left = self.find(left)
        root_right = self.find(right)
        if root_left == root_right:
            return

        rank_left = self._rank[root_left]
        rank_right = self._rank[root_right]
        if rank_left < rank_right:
            self._parent[root_left] = root_right
        elif rank_left > rank_right:
            self._parent[root_right] = root_left
        else:
            self._parent[root_right] = root_left
            self._rank[root_left] = rank_left + 1

    def groups(self) -> Dict[Hashable, List[Hashable]]:
        grouped: Dict[Hashable, List[Hashable]] = defaultdict(list)
        for item in list(self._parent):
            grouped[self.find(item)].append(item)
        return grouped


def _is_filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def completeness_score(record: Mapping[str, Any], profile: DedupeProfile = CONTACT_PROFILE) -> int:
    return sum(1 for f in profile.score_fields if _is_filled(record.get(f)))


def parse_created_at(value: Any) -> Optional[datetime]:
    """Parse a creation timestamp; None when missing or unparseable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _created_sort_key(value: Any) -> float:
    parsed = parse_created_at(value)
    # Records without a usable timestamp count as newest
    return parsed.timestamp() if parsed is not None else math.inf


def _pick_canonical_order(
    members: Sequence[Mapping[str, Any]], profile: DedupeProfile
) -> List[Mapping[str, Any]]:
    return sorted(
        members,
        key=lambda record: (
            -completeness_score(record, profile),
            _created_sort_key(record.get(profile.created_field)),
        ),
    )


def phone_key(
    record: Mapping[str, Any],
    profile: DedupeProfile = CONTACT_PROFILE,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> str:
    """Normalized phone used for grouping; empty when too short to compare."""
    phone = normalize_phone(record.get(profile.phone_field), country_code)
    return phone if len(phone) >= MIN_PHONE_DIGITS else ""


def name_key(
    record: Mapping[str, Any],
    profile: DedupeProfile = CONTACT_PROFILE,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> str:
    """
    Normalized display name used for grouping; empty when unusable.

    For profiles with qualify_name set the name is suffixed with the phone
    (else the postal code), so two people who merely share a common name
    stay apart. Without either qualifier the name never matches.
    """
    name = normalize_company_name(profile.display_name(record))
    if len(name) < MIN_NAME_LENGTH:
        return ""
    if not profile.qualify_name:
        return name
    qualifier = (
        normalize_phone(record.get(profile.phone_field), country_code)
        or normalize_postal_code(record.get(profile.postal_field))
    )
    return f"{name}|{qualifier}" if qualifier else ""


def _pair_reasons(
    left: Hashable,
    right: Hashable,
    phones: Mapping[Hashable, str],
    names: Mapping[Hashable, str],
) -> Set[str]:
    seen: Set[str] = set()
    if phones[left] and phones[left] == phones[right]:
        seen.add(REASON_PHONE)
    if names[left] and names[left] == names[right]:
        seen.add(REASON_NAME)
    return seen


def _shares_key(member_ids: Sequence[Hashable], keys: Mapping[Hashable, str]) -> bool:
    counts = Counter(keys[m] for m in member_ids if keys[m])
    return any(count >= 2 for count in counts.values())


def _group_reason(
    primary_id: Hashable,
    duplicate_ids: Sequence[Hashable],
    member_ids: Sequence[Hashable],
    phones: Mapping[Hashable, str],
    names: Mapping[Hashable, str],
) -> str:
    seen: Set[str] = set()
    for duplicate_id in duplicate_ids:
        seen |= _pair_reasons(primary_id, duplicate_id, phones, names)

    if not seen:
        # Canonical record is only connected transitively
        if _shares_key(member_ids, phones):
            seen.add(REASON_PHONE)
        if _shares_key(member_ids, names):
            seen.add(REASON_NAME)

    if REASON_PHONE in seen and REASON_NAME in seen:
        return REASON_BOTH
    return REASON_PHONE if REASON_PHONE in seen else REASON_NAME


def find_duplicate_groups(
    records: Sequence[Mapping[str, Any]],
    profile: DedupeProfile = CONTACT_PROFILE,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> List[DuplicateGroup]:
    """
    Group records that share a normalized phone number or name key.

    Grouping is transitive: if A shares a phone with B and B shares a name
    with C, all three land in one group. The canonical record of a group is
    the most complete one, the oldest on ties, the earliest in input order
    after that.

    Args:
        records: Mappings carrying at least the profile's id field
        profile: Field layout of the record kind
        country_code: Default country code for phone normalization

    Returns:
        One DuplicateGroup per component with two or more records
    """
    by_id: Dict[Hashable, Mapping[str, Any]] = {}
    position: Dict[Hashable, int] = {}
    phones: Dict[Hashable, str] = {}
    names: Dict[Hashable, str] = {}
    by_phone: Dict[str, List[Hashable]] = defaultdict(list)
    by_name: Dict[str, List[Hashable]] = defaultdict(list)

    for index, record in enumerate(records):
        record_id = record[profile.id_field]
        by_id[record_id] = record
        position.setdefault(record_id, index)

        phones[record_id] = phone_key(record, profile, country_code)
        if phones[record_id]:
            by_phone[phones[record_id]].append(record_id)

        names[record_id] = name_key(record, profile, country_code)
        if names[record_id]:
            by_name[names[record_id]].append(record_id)

    uf = UnionFind()
    for index_map in (by_phone, by_name):
        for ids in index_map.values():
            for other in ids[1:]:
                uf.union(ids[0], other)

    components = [
        sorted(members, key=position.__getitem__)
        for members in uf.groups().values()
        if len(members) >= 2
    ]
    components.sort(key=lambda members: position[members[0]])

    groups: List[DuplicateGroup] = []
    for members in components:
        ordered = _pick_canonical_order([by_id[m] for m in members], profile)
        primary = ordered[0]
        duplicates = ordered[1:]
        primary_id = primary[profile.id_field]
        duplicate_ids = [d[profile.id_field] for d in duplicates]

        groups.append(
            DuplicateGroup(
                primary_id=primary_id,
                primary_name=profile.display_name(primary) or UNNAMED,
                duplicate_ids=duplicate_ids,
                duplicate_names=[profile.display_name(d) or UNNAMED for d in duplicates],
                match_reason=_group_reason(primary_id, duplicate_ids, members, phones, names),
            )
        )

    return groups


def merge_fields(
    primary: Mapping[str, Any],
    duplicate: Mapping[str, Any],
    profile: DedupeProfile = CONTACT_PROFILE,
) -> Dict[str, Any]:
    """
    Fields the duplicate can contribute to the primary.

    Only fields empty on the primary are proposed; existing values are never
    overwritten.
    """
    updates: Dict[str, Any] = {}
    for f in profile.merge_fields:
        if not _is_filled(primary.get(f)) and _is_filled(duplicate.get(f)):
            updates[f] = duplicate[f]
    return updates


# Directory sync: loose duplicate check against what is already stored


@dataclass
class ExistingIndex:
    phones: Set[str] = field(default_factory=set)
    names: Set[str] = field(default_factory=set)
    email_domains: Set[str] = field(default_factory=set)
    source_ids: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool
    reason: Optional[str] = None


def _sync_name(record: Mapping[str, Any], profile: DedupeProfile) -> Optional[str]:
    name = normalize_company_name(profile.display_name(record))
    return name if len(name) >= MIN_SYNC_NAME_LENGTH else None


def _sync_phone(record: Mapping[str, Any], profile: DedupeProfile, country_code: str) -> Optional[str]:
    return phone_key(record, profile, country_code) or None


def build_existing_index(
    records: Sequence[Mapping[str, Any]],
    profile: DedupeProfile = CONTACT_PROFILE,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> ExistingIndex:
    index = ExistingIndex()
    for record in records:
        phone = _sync_phone(record, profile, country_code)
        if phone:
            index.phones.add(phone)
        name = _sync_name(record, profile)
        if name:
            index.names.add(name)
        domain = extract_email_domain(record.get("email"))
        if domain and not is_public_email_domain(domain):
            index.email_domains.add(domain)
        source_id = record.get("source_id")
        if source_id:
            index.source_ids.add(str(source_id))
    return index


def check_duplicate(
    record: Mapping[str, Any],
    index: ExistingIndex,
    profile: DedupeProfile = CONTACT_PROFILE,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> DuplicateCheck:
    """Check an incoming directory entry: source id, phone, company email domain, name."""
    source_id = record.get("source_id")
    if source_id and str(source_id) in index.source_ids:
        return DuplicateCheck(True, "source_id")

    phone = _sync_phone(record, profile, country_code)
    if phone and phone in index.phones:
        return DuplicateCheck(True, REASON_PHONE)

    domain = extract_email_domain(record.get("email"))
    if domain and not is_public_email_domain(domain) and domain in index.email_domains:
        return DuplicateCheck(True, "email_domain")

    name = _sync_name(record, profile)
    if name and name in index.names:
        return DuplicateCheck(True, REASON_NAME)

    return DuplicateCheck(False, None)


# Candidate spreadsheet rows


def derive_candidate_import_keys(
    row: Mapping[str, Any], country_code: str = DEFAULT_COUNTRY_CODE
) -> Tuple[Optional[str], Optional[str]]:
    """Return (normalized_email, dedupe_key) for a candidate row."""
    normalized_email = normalize_email(row.get("email"))
    phone = normalize_phone(row.get("phone"), country_code) or None
    fallback = phone or normalize_postal_code(row.get("postal_code"))
    first = normalize_text(row.get("first_name"))
    last = normalize_text(row.get("last_name"))

    dedupe_key = f"{first}|{last}|{fallback}" if fallback else None
    return normalized_email, dedupe_key


def dedupe_candidate_rows(
    rows: Sequence[Mapping[str, Any]], country_code: str = DEFAULT_COUNTRY_CODE
) -> List[Mapping[str, Any]]:
    """Keep the first row per identity (email, else name + phone/postal code)."""
    seen: Set[str] = set()
    unique: List[Mapping[str, Any]] = []

    for index, row in enumerate(rows):
        normalized_email, dedupe_key = derive_candidate_import_keys(row, country_code)
        base_key = f"{normalize_text(row.get('first_name'))}|{normalize_text(row.get('last_name'))}|#{index}"
        identity = normalized_email or dedupe_key or base_key
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(row)

    return unique
