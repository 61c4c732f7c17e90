from typing import Any, Dict, List, Sequence

from email_validator import EmailNotValidError, validate_email

CONTACT_REQUIRED_FIELDS = ["company_name"]
CONTACT_OPTIONAL_FIELDS = [
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

CANDIDATE_REQUIRED_FIELDS = ["first_name", "last_name"]
CANDIDATE_OPTIONAL_FIELDS = [
    "phone",
    "email",
    "street",
    "city",
    "postal_code",
    "position_title",
]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _valid_email(v: str) -> bool:
    try:
        validate_email(v.strip(), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _validate(data: Dict[str, Any], required: Sequence[str], optional: Sequence[str]) -> List[str]:
    errors: List[str] = []

    for f in required:
        if f not in data:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    # Optional fields may be None or empty, but not another type
    for f in optional:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    if _is_non_empty_str(data.get("email")) and not _valid_email(data["email"]):
        errors.append("Field 'email' must be a valid address (local@domain.tld)")

    return errors


def validate_contact(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    return _validate(data, CONTACT_REQUIRED_FIELDS, CONTACT_OPTIONAL_FIELDS)


def validate_candidate(data: Dict[str, Any]) -> List[str]:
    return _validate(data, CANDIDATE_REQUIRED_FIELDS, CANDIDATE_OPTIONAL_FIELDS)
