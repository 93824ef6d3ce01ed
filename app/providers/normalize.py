"""
Provider payload normalization
------------------------------
Turns raw provider JSON into the frozen fact objects in app.core.facts.
Provider business rejections (bad OTP, invalid PAN, blocked account...) become
ValidationError with a user-facing message. Fields the decision tables need
are passed through as None when absent so the tables can refuse to decide.
"""
from typing import Any, Dict, List, Optional

from app.core.errors import ExternalServiceError, MissingUpstreamFactError, ValidationError
from app.core.facts import (
    AadhaarIdentity,
    AadhaarOtpFacts,
    BankAccountFacts,
    CompanyRegistryFacts,
    IfscFacts,
    PanCheckFacts,
    RegistryDirector,
)

LLP_ENTITY = "in.co.sandbox.kyc.mca.llp"

AADHAAR_VERIFIED_STATUSES = ("SUCCESS", "VALID")


def _ok(resp: Dict[str, Any]) -> bool:
    return int(resp.get("code") or 0) == 200 and isinstance(resp.get("data"), dict)


def _data_message(resp: Dict[str, Any]) -> str:
    data = resp.get("data")
    if isinstance(data, dict):
        return str(data.get("message") or "")
    return ""


def _opt_bool(v) -> Optional[bool]:
    if v is None:
        return None
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in ("true", "y", "yes", "1")


# ---------------------------------------------------------------------------
# Aadhaar
# ---------------------------------------------------------------------------
def normalize_aadhaar_otp(resp: Dict[str, Any]) -> AadhaarOtpFacts:
    top_msg = str(resp.get("message") or "")
    if "please try after" in top_msg.lower():
        raise ValidationError("OTP already sent. Please wait 45 seconds before requesting again.")
    if _data_message(resp) == "Invalid Aadhaar Card":
        raise ValidationError("Invalid Aadhaar number")
    data = resp.get("data") or {}
    if _ok(resp) and data.get("reference_id"):
        return AadhaarOtpFacts(
            referenceId=str(data["reference_id"]),
            message=str(data.get("message") or "OTP sent to registered mobile number"),
        )
    raise ValidationError(top_msg or _data_message(resp) or "Failed to send OTP")


def normalize_aadhaar_verification(resp: Dict[str, Any]) -> AadhaarIdentity:
    msg = _data_message(resp).lower()
    if "invalid otp" in msg:
        raise ValidationError("Invalid OTP. Please check and try again.")
    if "otp expired" in msg:
        raise ValidationError("OTP expired. Please request a new OTP.")
    if "invalid reference" in msg:
        raise ValidationError("Session expired. Please enter Aadhaar number again.")
    if "under process" in msg or "try after" in msg:
        raise ValidationError("Please wait 30 seconds and try again.")

    if not _ok(resp):
        raise ValidationError(_data_message(resp) or "OTP verification failed")

    data = resp["data"]
    if str(data.get("status") or "").upper() not in AADHAAR_VERIFIED_STATUSES:
        raise ValidationError("Aadhaar verification failed")
    name = str(data.get("name") or "").strip()
    if not name:
        raise MissingUpstreamFactError("Aadhaar response is missing 'name'", {"fact": "name"})
    return AadhaarIdentity(
        name=name,
        dob=str(data.get("date_of_birth") or ""),
        gender=str(data.get("gender") or ""),
        address=str(data.get("full_address") or ""),
        photo=data.get("photo"),
    )


# ---------------------------------------------------------------------------
# PAN
# ---------------------------------------------------------------------------
def normalize_pan(resp: Dict[str, Any], pan: str) -> PanCheckFacts:
    if not _ok(resp):
        raise ValidationError(str(resp.get("message") or _data_message(resp) or "PAN verification failed"))
    data = resp["data"]
    status = str(data.get("status") or "").lower()
    if status != "valid":
        remarks = f" ({data.get('remarks')})" if data.get("remarks") else ""
        raise ValidationError(f"Invalid PAN number{remarks}", {"pan": pan})

    seeding = data.get("aadhaar_seeding_status")
    category = data.get("category")
    return PanCheckFacts(
        pan=pan,
        nameMatch=_opt_bool(data.get("name_as_per_pan_match")),
        dobMatch=_opt_bool(data.get("date_of_birth_match")),
        aadhaarSeedingStatus=str(seeding).lower() if seeding is not None else None,
        category=str(category).lower() if category is not None else None,
        remarks=data.get("remarks"),
        status=status,
    )


# ---------------------------------------------------------------------------
# Bank
# ---------------------------------------------------------------------------
def normalize_ifsc(resp: Dict[str, Any], ifsc: str) -> IfscFacts:
    if not resp.get("IFSC"):
        raise ValidationError("Invalid IFSC code", {"ifsc": ifsc})
    return IfscFacts(
        ifsc=str(resp["IFSC"]),
        bankName=str(resp.get("BANK") or ""),
        branchName=str(resp.get("BRANCH") or ""),
        impsSupported=bool(resp.get("IMPS")),
    )


def normalize_bank_account(resp: Dict[str, Any]) -> BankAccountFacts:
    data = resp.get("data") if isinstance(resp.get("data"), dict) else resp
    message = str(data.get("message") or "")
    msg = message.lower()
    if "invalid account" in msg or "invalid ifsc" in msg:
        raise ValidationError("Invalid account number or IFSC code")
    if "offline" in msg:
        raise ExternalServiceError("Bank is currently offline. Please try again later.", retryable=True)
    if "blocked" in msg:
        raise ValidationError("This bank account is blocked. Please use a different account.")
    if "nre" in msg:
        raise ValidationError("NRE accounts are not supported. Please use a regular savings account.")
    if not data.get("account_exists"):
        raise ValidationError(message or "Bank account not found or invalid")
    return BankAccountFacts(
        accountExists=True,
        nameAtBank=str(data.get("name_at_bank") or "").strip(),
        message=message,
    )


# ---------------------------------------------------------------------------
# MCA
# ---------------------------------------------------------------------------
def _directors(rows: List[Dict[str, Any]]) -> List[RegistryDirector]:
    out = []
    for d in rows or []:
        out.append(RegistryDirector(
            din=str(d.get("din/pan") or d.get("din") or ""),
            name=str(d.get("name") or ""),
            designation=str(d.get("designation") or ""),
            beginDate=str(d.get("begin_date") or ""),
            endDate=str(d.get("end_date") or "-"),
        ))
    return out


def normalize_company(resp: Dict[str, Any]) -> CompanyRegistryFacts:
    if not _ok(resp):
        raise ValidationError(str(resp.get("message") or "Company verification failed"))
    data = resp["data"]
    is_llp = data.get("@entity") == LLP_ENTITY
    master = data.get("llp_master_data") if is_llp else data.get("company_master_data")
    if not isinstance(master, dict):
        raise MissingUpstreamFactError("Failed to get company data from MCA", {"fact": "master_data"})

    status = master.get("llp_status") if is_llp else master.get("company_status(for_efiling)")
    if not status:
        raise MissingUpstreamFactError("MCA response is missing the company status", {"fact": "status"})

    return CompanyRegistryFacts(
        isLlp=is_llp,
        name=str((master.get("llp_name") if is_llp else master.get("company_name")) or ""),
        status=str(status),
        cin=None if is_llp else master.get("cin"),
        llpin=master.get("llpin") if is_llp else None,
        registrationDate=str(master.get("date_of_incorporation") or ""),
        registeredAddress=str(master.get("registered_address") or ""),
        email=str(master.get("email_id") or ""),
        authorizedCapital=master.get("authorised_capital(rs)"),
        paidUpCapital=master.get("paid_up_capital(rs)"),
        directors=_directors(data.get("directors/signatory_details") or []),
    )
