"""
Provider-backed KYC flows shared by partners and directors.

Each helper mutates the in-memory subject only; the caller saves the
application once so that the subject's records and flags land together.
"""
from typing import Callable, Optional, Tuple

from app.core.decisions import DecisionResult
from app.core.facts import PanCheckFacts
from app.core import subject_kyc
from app.providers.normalize import normalize_aadhaar_otp, normalize_aadhaar_verification, normalize_pan
from app.providers.sandbox_client import get_sandbox_client
from app.store.otp_refs import consume_reference, get_reference, remember_reference
from app.observability.logging import log
from app.utils.time import normalize_dob


def start_aadhaar_otp(application_id: str, subject, aadhaar_number: str, label: str) -> dict:
    subject_kyc.ensure_can_initiate(subject)
    otp = normalize_aadhaar_otp(get_sandbox_client().generate_aadhaar_otp(aadhaar_number))
    remember_reference(otp.referenceId, application_id, subject.id, aadhaar_number)
    log(event="subject_otp_sent", applicationId=application_id, subject=label, subjectId=subject.id)
    return {"subjectId": subject.id, "referenceId": otp.referenceId, "message": otp.message}


def finish_aadhaar_otp(application_id: str, subject, reference_id: str, otp: str, label: str) -> None:
    subject_kyc.ensure_can_initiate(subject)
    ref = get_reference(reference_id, application_id, subject.id)
    identity = normalize_aadhaar_verification(get_sandbox_client().verify_aadhaar_otp(ref.referenceId, otp))
    consume_reference(ref)
    subject_kyc.record_aadhaar(subject, identity, subject_kyc.mask_aadhaar(ref.aadhaarLast4))
    log(event="subject_aadhaar_verified", applicationId=application_id, subject=label, subjectId=subject.id)


def check_pan(subject, pan: str, decide: Callable[[PanCheckFacts], DecisionResult],
              name: Optional[str] = None, dob: Optional[str] = None) -> Tuple[PanCheckFacts, DecisionResult]:
    """
    Run the PAN registry check for an Aadhaar-verified subject. Claimed name/DOB
    default to the Aadhaar-derived values.
    """
    aadhaar = subject_kyc.require_aadhaar(subject)
    claimed_name = (name or "").strip() or aadhaar.name
    claimed_dob = normalize_dob(dob or aadhaar.dob)
    facts = normalize_pan(get_sandbox_client().verify_pan(pan, claimed_name, claimed_dob), pan)
    return facts, decide(facts)


def subject_summary(subject) -> dict:
    kd = subject.kycData
    return {
        "id": subject.id,
        "name": subject.name,
        "kycState": subject_kyc.kyc_state(subject),
        "kycCompleted": bool(subject.kycCompleted),
        "panNumber": subject.panNumber,
        "aadhaarMasked": subject.aadhaarMasked,
        "crossValidation": {
            ctx: rec.__dict__ for ctx, rec in ((kd.crossValidation if kd else {}) or {}).items()
        },
    }
