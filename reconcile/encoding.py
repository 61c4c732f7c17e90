"""
Mojibake repair for imported text fields.

Spreadsheet exports and directory syncs regularly hand us UTF-8 text that was
decoded as Windows-1252 (or Latin-1) somewhere upstream, so "Zürich" arrives
as "ZÃ¼rich". Repair runs in two stages:

1. An explicit catalogue of known mis-decoded sequences is substituted.
2. If markers remain, the whole string is reinterpreted as raw bytes and
   decoded as UTF-8. That result is only kept when it is clean of replacement
   characters and strictly reduces the marker count.
"""

import re
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

MAX_PASSES = 3
REPLACEMENT_CHAR = "�"

# Characters whose UTF-8 bytes commonly end up mis-decoded.
_LATIN1_TARGETS = "".join(chr(code) for code in range(0xA0, 0x100))
_CP1252_TARGETS = "€‚ƒ„…†‡ˆ‰Š‹ŒŽ‘’“”•–—˜™š›œžŸ"

CONTACT_TEXT_FIELDS = ("company_name", "contact_name", "street", "city")


def _decode_byte_cp1252(byte: int) -> str:
    try:
        return bytes([byte]).decode("cp1252")
    except UnicodeDecodeError:
        # 0x81, 0x8D, 0x8F, 0x90, 0x9D are undefined in cp1252
        return chr(byte)


def _mis_decodings(char: str) -> set:
    raw = char.encode("utf-8")
    return {
        "".join(_decode_byte_cp1252(b) for b in raw),
        raw.decode("latin-1"),
    }


def _build_catalogue() -> Dict[str, str]:
    catalogue: Dict[str, str] = {}
    for char in _LATIN1_TARGETS + _CP1252_TARGETS:
        for wrong in _mis_decodings(char):
            catalogue[wrong] = char
    return catalogue


ENCODING_FIXES: Mapping[str, str] = MappingProxyType(_build_catalogue())

# Longest sequences first so three-byte forms win over their two-byte prefixes.
_SEQUENCE_ALTERNATION = "|".join(
    re.escape(wrong) for wrong in sorted(ENCODING_FIXES, key=len, reverse=True)
)
_LEAD_MARKERS = r"Ã\S|Â\S|â€"

_TABLE_PATTERN = re.compile(_SEQUENCE_ALTERNATION)
_MARKER_PATTERN = re.compile(f"{_SEQUENCE_ALTERNATION}|{_LEAD_MARKERS}")


def has_issues(text: Optional[str]) -> bool:
    """Return True if the text carries any known mojibake sequence or lead marker."""
    if not text:
        return False
    return _MARKER_PATTERN.search(text) is not None


def count_markers(text: Optional[str]) -> int:
    if not text:
        return 0
    return len(_MARKER_PATTERN.findall(text))


def fix_known_sequences(text: Optional[str]) -> Optional[str]:
    """Substitute catalogued mojibake sequences only (no byte reinterpretation)."""
    if not text:
        return text
    return _TABLE_PATTERN.sub(lambda match: ENCODING_FIXES[match.group(0)], text)


def _to_byte(char: str) -> int:
    code = ord(char)
    if code < 0x100:
        return code
    try:
        return char.encode("cp1252")[0]
    except UnicodeEncodeError:
        return code & 0xFF


def _reinterpret_as_utf8(text: str) -> Optional[str]:
    """
    Read every character back as the byte it was mis-decoded from and decode
    the buffer as UTF-8.

    Returns None when the buffer is not valid UTF-8.
    """
    raw = bytes(_to_byte(char) for char in text)
    decoded = raw.decode("utf-8", errors="replace")
    if REPLACEMENT_CHAR in decoded:
        return None
    return decoded


def repair(text: Optional[str]) -> Optional[str]:
    """
    Repair UTF-8 text that was mis-decoded as Windows-1252/Latin-1.

    Clean text is returned unchanged. Multiply encoded text is handled by
    running up to MAX_PASSES passes; the loop stops as soon as no markers
    remain or a pass makes no progress.

    A pass usually peels two layers, so text mis-decoded more than
    2 * MAX_PASSES times comes back only partly repaired and still reports
    has_issues(); calling repair() again continues from there.

    Args:
        text: Field value, may be None or empty

    Returns:
        Best available repaired string
    """
    if not text or not has_issues(text):
        return text

    current = text
    for _ in range(MAX_PASSES):
        fixed = fix_known_sequences(current)
        markers = count_markers(fixed)
        if markers:
            candidate = _reinterpret_as_utf8(fixed)
            if candidate is not None and count_markers(candidate) < markers:
                fixed = candidate

        if fixed == current:
            break
        current = fixed
        if not has_issues(current):
            break

    return current


def repair_record_fields(
    record: Mapping[str, Any], field_names: Iterable[str]
) -> Optional[Dict[str, str]]:
    """
    Repair the named text fields of a record.

    Returns:
        Mapping of only the fields whose value changed, or None when the
        record needs no update.
    """
    fixes: Dict[str, str] = {}
    for field in field_names:
        value = record.get(field)
        if not isinstance(value, str) or not value:
            continue
        fixed = repair(value)
        if fixed != value:
            fixes[field] = fixed
    return fixes or None


def repair_contact_fields(contact: Mapping[str, Any]) -> Optional[Dict[str, str]]:
    return repair_record_fields(contact, CONTACT_TEXT_FIELDS)
