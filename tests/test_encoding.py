"""
Tests for mojibake detection and repair.
"""

import pytest

from reconcile.encoding import (
    ENCODING_FIXES,
    count_markers,
    fix_known_sequences,
    has_issues,
    repair,
    repair_contact_fields,
    repair_record_fields,
)

SAMPLES = [
    "Hello World",
    "Müller Elektro GmbH",
    "MÃ¼ller GmbH",
    "BÃ¤ckerei ZÃ¼rich",
    "MÃƒÂ¼ller",
    "SÃO PAULO",
    "â€œQuoteâ€\u009d",
    "wellâ€\u0090known",
    "Müller â€\u0090",
    "Café �",
    "",
]


class TestRepairTable:
    """Explicit sequence substitutions."""

    def test_lowercase_umlauts(self):
        assert repair("Ã¤") == "ä"
        assert repair("Ã¶") == "ö"
        assert repair("Ã¼") == "ü"
        assert repair("KÃ¶ln") == "Köln"

    def test_uppercase_umlauts(self):
        """Windows-1252 renders the continuation bytes as typographic characters."""
        assert repair("Ã„") == "Ä"
        assert repair("Ã–") == "Ö"
        assert repair("Ãœ") == "Ü"

    def test_eszett(self):
        assert repair("StraÃŸe") == "Straße"
        assert repair("BahnhofstraÃŸe 123") == "Bahnhofstraße 123"

    def test_french_accents(self):
        assert repair("Ã©") == "é"
        assert repair("Ã¨") == "è"
        assert repair("Ã ") == "à"
        assert repair("Ã§") == "ç"
        assert repair("RenÃ©") == "René"

    def test_symbols_and_fractions(self):
        assert repair("Â©") == "©"
        assert repair("Â®") == "®"
        assert repair("Â°") == "°"
        assert repair("Â£") == "£"
        assert repair("Â½") == "½"

    def test_typographic_punctuation(self):
        assert repair("â€œHalloâ€\u009d") == "“Hallo”"
        assert repair("Zürich â€“ Bern") == "Zürich – Bern"
        assert repair("itâ€™s") == "it’s"
        assert repair("100 â‚¬") == "100 €"

    def test_latin1_variant(self):
        """Pure Latin-1 decoding leaves C1 control characters instead."""
        assert repair("Ã\u0084") == "Ä"
        assert repair("â\u0080\u0093") == "–"

    def test_real_company_names(self):
        assert repair("MÃ¼ller & SÃ¶hne GmbH") == "Müller & Söhne GmbH"
        assert repair("GeschÃ¤ftsfÃ¼hrer") == "Geschäftsführer"

    def test_every_catalogued_sequence(self):
        for wrong, right in ENCODING_FIXES.items():
            assert fix_known_sequences(wrong) == right


class TestRepairFallback:
    """Generic byte reinterpretation and its guards."""

    def test_double_encoded(self):
        assert repair("MÃƒÂ¼ller") == "Müller"

    def test_generic_repair_of_uncatalogued_sequence(self):
        # U+2010 HYPHEN is not in the table but carries the "â€" lead marker
        assert repair("wellâ€\u0090known") == "well‐known"

    def test_rejects_replacement_characters(self):
        """Correct non-ASCII text next to a marker makes the buffer invalid UTF-8."""
        text = "Müller â€\u0090"
        assert repair(text) == text

    def test_leaves_legitimate_text_alone(self):
        assert repair("SÃO PAULO") == "SÃO PAULO"


def _mis_decode(text, layers):
    """Encode as UTF-8 and read back as Windows-1252, `layers` times over."""
    for _ in range(layers):
        text = text.encode("utf-8").decode("cp1252")
    return text


class TestRepairLayers:
    """Text mis-decoded more than once."""

    def test_triple_encoded(self):
        assert _mis_decode("Müller", 3) == "MÃƒÆ’Ã‚Â¼ller"
        assert repair("MÃƒÆ’Ã‚Â¼ller") == "Müller"

    @pytest.mark.parametrize("layers", [1, 2, 3, 4, 5, 6])
    def test_repaired_in_one_call(self, layers):
        assert repair(_mis_decode("Müller", layers)) == "Müller"

    def test_pass_limit(self):
        """Deeper layering is only partly undone per call; a further call continues."""
        once = repair(_mis_decode("Müller", 8))
        assert once != "Müller"
        assert has_issues(once)
        assert repair(once) == "Müller"


class TestRepairProperties:
    """Contract properties of repair()."""

    def test_none_and_empty(self):
        assert repair(None) is None
        assert repair("") == ""

    def test_clean_text_unchanged(self):
        for clean in ["Hello World", "Müller Elektro GmbH", "Café René", "Zürich"]:
            assert not has_issues(clean)
            assert repair(clean) == clean

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text):
        once = repair(text)
        assert repair(once) == once

    @pytest.mark.parametrize("text", SAMPLES)
    def test_no_new_replacement_characters(self, text):
        assert repair(text).count("�") <= text.count("�")

    @pytest.mark.parametrize("text", SAMPLES)
    def test_no_op_without_issues(self, text):
        if not has_issues(text):
            assert repair(text) == text


class TestHasIssues:
    """Marker detection."""

    def test_none(self):
        assert has_issues(None) is False
        assert has_issues("") is False

    def test_clean(self):
        assert has_issues("Hello World") is False
        assert has_issues("Müller") is False

    def test_mojibake(self):
        assert has_issues("MÃ¼ller") is True
        assert has_issues("Â©") is True
        assert has_issues("wiwÃ¼ GmbH") is True

    def test_lead_markers(self):
        assert has_issues("ÃX") is True
        assert has_issues("â€") is True
        assert has_issues("Ã ") is False

    def test_count_markers(self):
        assert count_markers("MÃ¼ller & SÃ¶hne") == 2
        assert count_markers("Müller") == 0
        assert count_markers(None) == 0


class TestRepairRecordFields:
    """Minimal per-field updates."""

    def test_returns_none_when_clean(self):
        contact = {
            "company_name": "Müller GmbH",
            "contact_name": "Hans Müller",
            "street": "Bahnhofstraße 1",
            "city": "Zürich",
        }
        assert repair_contact_fields(contact) is None

    def test_fixes_all_affected_fields(self):
        contact = {
            "company_name": "MÃ¼ller GmbH",
            "contact_name": "Hans MÃ¼ller",
            "street": "BahnhofstraÃŸe 1",
            "city": "ZÃ¼rich",
        }
        assert repair_contact_fields(contact) == {
            "company_name": "Müller GmbH",
            "contact_name": "Hans Müller",
            "street": "Bahnhofstraße 1",
            "city": "Zürich",
        }

    def test_only_changed_fields(self):
        contact = {
            "company_name": "MÃ¼ller GmbH",
            "contact_name": "Hans Schmidt",
            "street": None,
            "city": "Zürich",
        }
        assert repair_contact_fields(contact) == {"company_name": "Müller GmbH"}

    def test_arbitrary_fields(self):
        record = {
            "first_name": "RenÃ©",
            "last_name": "MÃ¼ller",
            "role": "GeschÃ¤ftsfÃ¼hrer",
            "id": 123,
        }
        result = repair_record_fields(record, ["first_name", "last_name", "role", "id", "missing"])
        assert result == {
            "first_name": "René",
            "last_name": "Müller",
            "role": "Geschäftsführer",
        }
