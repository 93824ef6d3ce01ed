import re
from datetime import datetime, timezone

_DMY_DASH = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_DMY_SLASH = re.compile(r"^\d{2}/\d{2}/\d{4}$")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_dob(dob) -> str:
    """
    Normalize a date of birth to the provider's DD/MM/YYYY format.
    Accepts DD/MM/YYYY, DD-MM-YYYY and YYYY-MM-DD (optionally with a time part).
    Unknown formats are returned trimmed, unchanged.
    """
    if not dob:
        return ""
    s = str(dob).strip()
    if _DMY_SLASH.match(s):
        return s
    m = _DMY_DASH.match(s)
    if m:
        return f"{m.group(1)}/{m.group(2)}/{m.group(3)}"
    m = _ISO_DATE.match(s)
    if m:
        return f"{m.group(3)}/{m.group(2)}/{m.group(1)}"
    return s
