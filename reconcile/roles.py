"""
Fuzzy matching of free-text position titles to the role vocabulary.

Titles like "Elektro Installateur EFZ" carry qualification suffixes that the
role tags don't. Matching compares "core names" with those tokens removed and
accepts containment in either direction.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

# Swiss federal certificates, diplomas and degrees
IGNORE_WORDS = frozenset({
    "efz",
    "eba",
    "hf",
    "bp",
    "dipl",
    "ing",
    "bsc",
    "msc",
})


@dataclass(frozen=True)
class CanonicalRole:
    id: str
    name: str
    color: Optional[str] = None
    note: Optional[str] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "CanonicalRole":
        return cls(
            id=str(row["id"]),
            name=row["name"],
            color=row.get("color"),
            note=row.get("note"),
        )


def core_name(text: Optional[str]) -> str:
    """
    Lowercase the title and drop qualification tokens.

    Only whole tokens are dropped: "ing" goes, "ing." stays.
    """
    if not text:
        return ""
    return " ".join(word for word in text.lower().split() if word not in IGNORE_WORDS)


def _contains_either(left: str, right: str) -> bool:
    return left in right or right in left


def roles_match(position_title: Optional[str], role_name: Optional[str]) -> bool:
    core_position = core_name(position_title)
    core_role = core_name(role_name)
    if not core_position or not core_role:
        return False
    return _contains_either(core_position, core_role)


def find_best_role(
    position_title: Optional[str], roles: Sequence[CanonicalRole]
) -> Optional[CanonicalRole]:
    """
    Pick the matching role with the longest core name.

    A longer role name is the more specific tag, so "Elektro Installateur"
    beats "Elektriker" for "Elektro Installateur EFZ". The first role wins
    on equal length. Returns None if nothing matches.
    """
    if not position_title or not roles:
        return None
    core_position = core_name(position_title)
    if not core_position:
        return None

    best: Optional[CanonicalRole] = None
    best_length = 0
    for role in roles:
        core_role = core_name(role.name)
        if not core_role or not _contains_either(core_position, core_role):
            continue
        if len(core_role) > best_length:
            best = role
            best_length = len(core_role)

    return best
