# gnarhub/utils/sanitize.py
from gnarhub.constants.booking import SANITIZED_MAX_LENGTH


def sanitize_string(value: str, max_length: int = SANITIZED_MAX_LENGTH) -> str:
    """Trim, drop angle brackets and cap the length of user-supplied text."""
    if not value:
        return ""
    return value.strip().replace("<", "").replace(">", "")[:max_length]
