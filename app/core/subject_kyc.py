"""
Two-phase KYC for partners and directors.

    unverified --(Aadhaar OTP verified)--> aadhaar_verified --(PAN approve/flag)--> kyc_completed

kyc_completed is final for the subject. The PAN record, the cross-validation
record and the kycCompleted flag are written together or not at all.
"""
from __future__ import annotations

from typing import Optional

from app.core.decisions import DecisionResult
from app.core.errors import AlreadyCompletedError, ValidationError
from app.core.facts import AadhaarIdentity, PanCheckFacts
from app.core.state_machine import ensure_not_blocked
from app.store.models import AadhaarRecord, CrossValidationRecord, KycData, PanRecord
from app.utils.time import now_iso

UNVERIFIED = "unverified"
AADHAAR_VERIFIED = "aadhaar_verified"
KYC_COMPLETED = "kyc_completed"


def kyc_state(subject) -> str:
    if subject.kycCompleted:
        return KYC_COMPLETED
    kd = subject.kycData
    if kd is not None and kd.aadhaar is not None:
        return AADHAAR_VERIFIED
    return UNVERIFIED


def ensure_can_initiate(subject) -> None:
    if subject.kycCompleted:
        raise AlreadyCompletedError(
            "KYC already completed for this person",
            {"subjectId": subject.id},
        )


def mask_aadhaar(last4: str) -> str:
    return f"XXXX XXXX {last4}"


def aadhaar_record(identity: AadhaarIdentity, masked_number: str) -> AadhaarRecord:
    return AadhaarRecord(
        name=identity.name,
        maskedNumber=masked_number,
        dob=identity.dob,
        gender=identity.gender,
        address=identity.address,
        photo=identity.photo,
        verifiedAt=now_iso(),
    )


def record_aadhaar(subject, identity: AadhaarIdentity, masked_number: str) -> None:
    ensure_can_initiate(subject)
    if subject.kycData is None:
        subject.kycData = KycData(method="aadhaar_otp")
    subject.kycData.aadhaar = aadhaar_record(identity, masked_number)
    subject.aadhaarMasked = masked_number


def require_aadhaar(subject) -> AadhaarRecord:
    ensure_can_initiate(subject)
    if kyc_state(subject) != AADHAAR_VERIFIED:
        raise ValidationError(
            "Please complete Aadhaar verification before PAN verification",
            {"subjectId": subject.id, "kycState": kyc_state(subject)},
        )
    return subject.kycData.aadhaar


def cross_validation_record(context: str, facts: PanCheckFacts, result: DecisionResult,
                            name_match: Optional[bool] = None) -> CrossValidationRecord:
    return CrossValidationRecord(
        context=context,
        nameMatch=bool(facts.nameMatch if name_match is None else name_match),
        dobMatch=facts.dobMatch,
        score=result.score,
        decision=result.decision.value,
        warnings=list(result.warnings),
        checkedAt=now_iso(),
    )


def pan_record(facts: PanCheckFacts, name: str) -> PanRecord:
    seeding = (facts.aadhaarSeedingStatus or "").lower() or None
    return PanRecord(
        number=facts.pan,
        name=name,
        category=facts.category,
        nameMatch=facts.nameMatch,
        dobMatch=facts.dobMatch,
        aadhaarSeedingStatus=seeding,
        linkedWithAadhaar=seeding == "y",
        verified=True,
        verifiedAt=now_iso(),
    )


def complete_pan(subject, facts: PanCheckFacts, result: DecisionResult, context: str) -> CrossValidationRecord:
    """Advance aadhaar_verified -> kyc_completed on approve/flag."""
    aadhaar = require_aadhaar(subject)
    ensure_not_blocked(result, subjectId=subject.id, context=context)
    record = cross_validation_record(context, facts, result)
    subject.kycData.pan = pan_record(facts, aadhaar.name)
    subject.kycData.crossValidation[context] = record
    subject.panNumber = facts.pan
    # Aadhaar is the authoritative source for the person's name
    subject.name = aadhaar.name
    subject.kycCompleted = True
    return record
