import fnmatch
from types import SimpleNamespace

import pytest
from unittest.mock import MagicMock, patch


class InMemoryRedis:
    """Just enough of redis.Redis for the repository, OTP reference and metrics code paths."""

    def __init__(self):
        self.data = {}
        self.lists = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        return True

    def incr(self, key, amount=1):
        v = int(self.data.get(key) or 0) + amount
        self.data[key] = str(v)
        return v

    def lpush(self, key, *values):
        lst = self.lists.setdefault(key, [])
        for v in values:
            lst.insert(0, str(v))
        return len(lst)

    def ltrim(self, key, start, end):
        self.lists[key] = self.lists.get(key, [])[start:end + 1]

    def lrange(self, key, start, end):
        return list(self.lists.get(key, [])[start:end + 1])

    def scan_iter(self, match=None, count=None):
        return iter([k for k in list(self.data) if match is None or fnmatch.fnmatch(k, match)])

    def delete(self, *keys):
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

    def ping(self):
        return True

    def eval(self, script, numkeys, *args):
        # only the compare-and-set save runs a script
        keys, argv = args[:numkeys], args[numkeys:]
        cur = self.data.get(keys[1])
        if (cur is None and argv[0] == "0") or cur == argv[0]:
            self.data[keys[0]] = argv[1]
            self.data[keys[1]] = argv[2]
            return 1
        return 0


@pytest.fixture
def fake_redis():
    r = InMemoryRedis()
    with patch("app.store.application_repo.get_redis", return_value=r), \
         patch("app.store.otp_refs.get_redis", return_value=r), \
         patch("app.observability.metrics.get_redis", return_value=r):
        yield r


@pytest.fixture
def provider(fake_redis):
    """Verification provider double shared by every orchestrator."""
    client = MagicMock()
    with patch("app.core.orchestrator.get_sandbox_client", return_value=client), \
         patch("app.core.subject_flows.get_sandbox_client", return_value=client), \
         patch("app.core.company.get_sandbox_client", return_value=client):
        yield client


# ---------------------------------------------------------------------------
# Provider payloads, shaped like the live API responses
# ---------------------------------------------------------------------------
def aadhaar_otp_sent(reference_id="RF12345"):
    return {"code": 200, "data": {"reference_id": reference_id, "message": "OTP sent successfully"}}


def aadhaar_verified(name="RAJESH KUMAR", dob="15-08-1985"):
    return {
        "code": 200,
        "data": {
            "status": "VALID",
            "name": name,
            "date_of_birth": dob,
            "gender": "M",
            "full_address": "12 MG Road, Pune, Maharashtra 411001",
            "photo": "base64-photo",
        },
    }


def pan_checked(name_match=True, dob_match=True, seeding="y", category="individual", remarks=None):
    data = {
        "status": "valid",
        "name_as_per_pan_match": name_match,
        "date_of_birth_match": dob_match,
        "aadhaar_seeding_status": seeding,
        "category": category,
    }
    if remarks is not None:
        data["remarks"] = remarks
    return {"code": 200, "data": data}


def ifsc_found(imps=True):
    return {"IFSC": "HDFC0001234", "BANK": "HDFC Bank", "BRANCH": "Pune Camp", "IMPS": imps}


def account_found(name_at_bank):
    return {
        "code": 200,
        "data": {
            "account_exists": True,
            "name_at_bank": name_at_bank,
            "message": "Bank Account details verified successfully.",
        },
    }


def company_found(status="Active", directors=None, llp=False):
    if directors is None:
        directors = [
            {"din/pan": "00000001", "name": "ANITA DESAI", "designation": "Director", "begin_date": "01/04/2015", "end_date": "-"},
            {"din/pan": "00000002", "name": "VIKRAM SETH", "designation": "Director", "begin_date": "01/04/2015", "end_date": ""},
            {"din/pan": "00000003", "name": "OLD PARTNER", "designation": "Director", "begin_date": "01/04/2012", "end_date": "31/03/2014"},
        ]
    if llp:
        master = {"llpin": "AAB-1234", "llp_name": "DESAI ADVISORS LLP", "llp_status": status,
                  "date_of_incorporation": "01/04/2015", "registered_address": "Pune", "email_id": "info@desai.in"}
        data = {"@entity": "in.co.sandbox.kyc.mca.llp", "llp_master_data": master}
    else:
        master = {"cin": "U72200MH2015PTC123456", "company_name": "DESAI TECH PRIVATE LIMITED",
                  "company_status(for_efiling)": status, "date_of_incorporation": "01/04/2015",
                  "registered_address": "Pune", "email_id": "info@desaitech.in"}
        data = {"@entity": "in.co.sandbox.kyc.mca.company", "company_master_data": master}
    data["directors/signatory_details"] = directors
    return {"code": 200, "data": data}


@pytest.fixture
def payloads():
    return SimpleNamespace(
        aadhaar_otp_sent=aadhaar_otp_sent,
        aadhaar_verified=aadhaar_verified,
        pan_checked=pan_checked,
        ifsc_found=ifsc_found,
        account_found=account_found,
        company_found=company_found,
    )
