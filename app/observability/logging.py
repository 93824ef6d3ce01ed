import json
import re
import time
from app.settings import settings

# Fields that must never reach logs in clear when PII redaction is enabled
SENSITIVE_KEYS = {
    "aadhaar", "aadhaarNumber", "aadhaar_number",
    "otp", "photo", "image", "selfie",
    "accountNumber", "account_number", "confirmAccountNumber",
}
# Masked rather than dropped so support can still correlate records
MASKED_KEYS = {"pan", "panNumber"}

_AADHAAR_IN_TEXT = re.compile(r"\b\d{4}\s?\d{4}\s?\d{4}\b")


def _redact_value(v):
    if isinstance(v, str) and len(v) > 0:
        return f"[REDACTED:{len(v)}chars]"
    if isinstance(v, dict):
        return {k: _redact_value(val) for k, val in v.items()}
    return v


def _mask_value(v):
    if isinstance(v, str) and len(v) > 4:
        return "*" * (len(v) - 4) + v[-4:]
    return v


def _clean(k, v):
    if k in SENSITIVE_KEYS:
        return _redact_value(v)
    if k in MASKED_KEYS:
        return _mask_value(v)
    if isinstance(v, dict):
        return {sk: _clean(sk, sv) for sk, sv in v.items()}
    if isinstance(v, str):
        return _AADHAAR_IN_TEXT.sub("[REDACTED:aadhaar]", v)
    return v


def log(event: str, **fields):
    payload = {"ts": int(time.time()), "event": event}

    if settings.ENABLE_PII_REDACTION:
        payload.update({k: _clean(k, v) for k, v in fields.items()})
    else:
        payload.update(fields)

    print(json.dumps(payload, ensure_ascii=False, default=str))
