import re

from .encoding import fix_known_sequences

DEFAULT_COUNTRY_CODE = "41"
# Subscriber digits after the trunk prefix (Swiss numbering plan)
NATIONAL_NUMBER_LENGTH = 9

PUBLIC_EMAIL_DOMAINS = frozenset({
    "gmail.com",
    "googlemail.com",
    "outlook.com",
    "outlook.ch",
    "hotmail.com",
    "hotmail.ch",
    "yahoo.com",
    "yahoo.ch",
    "icloud.com",
    "me.com",
    "mac.com",
    "gmx.ch",
    "gmx.net",
    "gmx.de",
    "bluewin.ch",
    "sunrise.ch",
    "hispeed.ch",
    "protonmail.com",
    "proton.me",
    "aol.com",
    "live.com",
    "msn.com",
})

_NON_DIGITS = re.compile(r"\D")
# "+41 (0) 79 ..." style optional trunk prefix
_TRUNK_MARKER = "(0)"


def normalize_text(s: str | None) -> str:
    if not s:
        return ""
    return " ".join(s.strip().lower().split())


def normalize_company_name(name: str | None) -> str:
    """Table-only encoding fix, collapsed whitespace, lowercase."""
    if not name:
        return ""
    return " ".join(fix_known_sequences(name).split()).lower()


def normalize_phone(phone: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Reduce a phone number to comparable digits in national form.

    "+41 79 123 45 67", "0041 79 123 45 67" and "079 123 45 67" all become
    "0791234567". Numbers from other countries keep their country code.
    """
    if not phone:
        return ""
    digits = _NON_DIGITS.sub("", phone.replace(_TRUNK_MARKER, ""))
    if digits.startswith("00"):
        digits = digits[2:]
    if (
        digits.startswith(country_code)
        and len(digits) == len(country_code) + NATIONAL_NUMBER_LENGTH
    ):
        digits = "0" + digits[len(country_code):]
    return digits


def normalize_email(email: str | None) -> str | None:
    if not email or not email.strip():
        return None
    return email.strip().lower()


def extract_email_domain(email: str | None) -> str | None:
    if not email or "@" not in email:
        return None
    domain = email.split("@", 1)[1].strip().lower()
    return domain or None


def is_public_email_domain(domain: str | None) -> bool:
    if not domain:
        return False
    return domain.lower() in PUBLIC_EMAIL_DOMAINS


def normalize_postal_code(postal_code: str | None) -> str | None:
    if not postal_code or not postal_code.strip():
        return None
    return "".join(postal_code.split()).upper()
