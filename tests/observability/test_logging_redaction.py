import json
from unittest.mock import patch

from app.observability.logging import log
from app.settings import settings


def last_line(capsys):
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_pii_redacted_when_enabled(capsys):
    with patch.object(settings, "ENABLE_PII_REDACTION", True):
        log(event="provider_bank_verify", accountNumber="50100012345678", pan="ABCDE1234F",
            otp="123456", note="aadhaar 1234 5678 9012 sent", ifsc="HDFC0001234")
    out = last_line(capsys)
    assert out["event"] == "provider_bank_verify"
    assert out["accountNumber"] == "[REDACTED:14chars]"
    assert out["otp"] == "[REDACTED:6chars]"
    assert out["pan"] == "******234F"
    assert out["note"] == "aadhaar [REDACTED:aadhaar] sent"
    assert out["ifsc"] == "HDFC0001234"


def test_nested_fields_redacted(capsys):
    with patch.object(settings, "ENABLE_PII_REDACTION", True):
        log(event="x", data={"photo": "base64", "name": "ASHA"})
    assert last_line(capsys)["data"] == {"photo": "[REDACTED:6chars]", "name": "ASHA"}


def test_passthrough_when_disabled(capsys):
    with patch.object(settings, "ENABLE_PII_REDACTION", False):
        log(event="x", pan="ABCDE1234F")
    assert last_line(capsys)["pan"] == "ABCDE1234F"
