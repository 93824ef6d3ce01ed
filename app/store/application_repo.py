import json
import inspect
import uuid
from dataclasses import asdict
from typing import Iterator, Optional

from app.core.errors import ConcurrentModificationError, NotFoundError
from app.store.redis_conn import get_redis
from app.store.models import (
    AadhaarRecord,
    AgreementRecord,
    Application,
    BankRecord,
    BusinessDetails,
    CompanyData,
    CrossValidationRecord,
    Director,
    KycData,
    PanRecord,
    Partner,
    Reference,
    SelfieRecord,
    UploadedDocument,
)
from app.observability.logging import log
from app.utils.time import now_iso

PREFIX = "application:"

# Compare-and-set on the version key: write document + bump version only if
# nobody saved since we loaded.
_CAS_SCRIPT = """
local cur = redis.call("get", KEYS[2])
if (not cur and ARGV[1] == "0") or cur == ARGV[1] then
    redis.call("set", KEYS[1], ARGV[2])
    redis.call("set", KEYS[2], ARGV[3])
    return 1
end
return 0
"""

# Legacy camelCase step keys written by older clients
_LEGACY_STEP_KEYS = {"companyVerification": "company_verification"}


def new_id() -> str:
    return uuid.uuid4().hex


def _key(application_id: str) -> str:
    return f"{PREFIX}{application_id}"


def _version_key(application_id: str) -> str:
    return f"{PREFIX}{application_id}:version"


def _migrate_application_data(data: dict) -> dict:
    """
    Backward-compat migration for stored applications.
    Renames legacy step keys and gives id-less partners/references/documents a stable id.
    """
    renamed_steps = 0
    assigned_ids = 0

    steps = data.get("completedSteps")
    if isinstance(steps, dict):
        for old, new in _LEGACY_STEP_KEYS.items():
            if old in steps:
                steps[new] = bool(steps.get(new) or steps.pop(old))
                steps.pop(old, None)
                renamed_steps += 1

    for coll in ("partners", "references", "documents"):
        for item in data.get(coll) or []:
            if isinstance(item, dict) and not item.get("id"):
                item["id"] = new_id()
                assigned_ids += 1

    company = data.get("company")
    if isinstance(company, dict):
        for d in company.get("directors") or []:
            if isinstance(d, dict) and not d.get("id"):
                d["id"] = d.get("din") or new_id()
                assigned_ids += 1

    if renamed_steps or assigned_ids:
        log(
            event="application_migrated",
            applicationId=data.get("id") or "",
            renamedSteps=renamed_steps,
            assignedIds=assigned_ids,
        )
    return data


def _filter_kwargs(cls, data: Optional[dict]) -> dict:
    """Drop unknown fields so cls(**kwargs) never explodes."""
    allowed = set(inspect.signature(cls).parameters.keys())
    return {k: v for k, v in (data or {}).items() if k in allowed}


def _build(cls, data):
    if data is None:
        return None
    return cls(**_filter_kwargs(cls, data))


def _kyc_data(data: Optional[dict]) -> Optional[KycData]:
    if data is None:
        return None
    kd = _filter_kwargs(KycData, data)
    kd["aadhaar"] = _build(AadhaarRecord, kd.get("aadhaar"))
    kd["pan"] = _build(PanRecord, kd.get("pan"))
    kd["selfie"] = _build(SelfieRecord, kd.get("selfie"))
    kd["crossValidation"] = {
        ctx: _build(CrossValidationRecord, rec)
        for ctx, rec in (kd.get("crossValidation") or {}).items()
    }
    return KycData(**kd)


def _subject(cls, data: dict):
    d = _filter_kwargs(cls, data)
    d["kycData"] = _kyc_data(d.get("kycData"))
    return cls(**d)


def application_from_dict(data: dict) -> Application:
    data = _migrate_application_data(data)
    d = _filter_kwargs(Application, data)

    d["kyc"] = _kyc_data(d.get("kyc")) or KycData()

    bank = d.get("bank")
    if bank is not None:
        b = _filter_kwargs(BankRecord, bank)
        b["crossValidation"] = _build(CrossValidationRecord, b.get("crossValidation"))
        d["bank"] = BankRecord(**b)

    d["references"] = [_build(Reference, r) for r in d.get("references") or []]
    d["documents"] = [_build(UploadedDocument, x) for x in d.get("documents") or []]
    d["partners"] = [_subject(Partner, p) for p in d.get("partners") or []]

    company = d.get("company")
    if company is not None:
        c = _filter_kwargs(CompanyData, company)
        c["directors"] = [_subject(Director, x) for x in c.get("directors") or []]
        d["company"] = CompanyData(**c)

    d["business"] = _build(BusinessDetails, d.get("business"))
    d["agreement"] = _build(AgreementRecord, d.get("agreement"))
    return Application(**d)


def application_to_dict(app: Application) -> dict:
    return asdict(app)


def load_application(application_id: str) -> Application:
    r = get_redis()
    raw = r.get(_key(application_id))
    if not raw:
        raise NotFoundError("Application not found", {"applicationId": application_id})
    return application_from_dict(json.loads(raw))


def save_application(app: Application) -> Application:
    """
    Persist the whole document atomically. Fails with ConcurrentModificationError
    when another writer saved since this copy was loaded.
    """
    r = get_redis()
    expected = int(app.version or 0)
    app.version = expected + 1
    app.updatedAt = now_iso()
    if not app.createdAt:
        app.createdAt = app.updatedAt
    ok = r.eval(
        _CAS_SCRIPT, 2, _key(app.id), _version_key(app.id),
        str(expected), json.dumps(application_to_dict(app)), str(app.version),
    )
    if not ok:
        app.version = expected
        log(event="application_save_conflict", applicationId=app.id, expectedVersion=expected)
        raise ConcurrentModificationError(
            "Application was modified by another request. Please retry.",
            {"applicationId": app.id},
        )
    return app


def iter_application_ids(batch: int = 200) -> Iterator[str]:
    r = get_redis()
    for key in r.scan_iter(match=f"{PREFIX}*", count=batch):
        if key.endswith(":version"):
            continue
        yield key[len(PREFIX):]
