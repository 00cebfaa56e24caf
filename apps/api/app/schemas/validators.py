import re

_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")
_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.]{3,32}$")


def sanitize_text(value: str | None) -> str | None:
    """Trim and drop angle brackets from free text shown to other users."""
    if value is None:
        return None
    return value.strip().replace("<", "").replace(">", "")


def normalize_phone(value: str | None) -> str | None:
    if value is None:
        return None
    compact = _PHONE_SEPARATORS.sub("", value)
    if not _PHONE_PATTERN.match(compact):
        raise ValueError("Invalid phone number")
    return compact


def validate_username(value: str) -> str:
    username = value.strip()
    if not _USERNAME_PATTERN.match(username):
        raise ValueError(
            "Username must be 3-32 characters of letters, digits, underscores or dots"
        )
    return username
