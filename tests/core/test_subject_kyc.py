import pytest

from app.core import subject_kyc
from app.core.decisions import Decision, DecisionResult
from app.core.errors import AlreadyCompletedError, BlockedTransitionError, ValidationError
from app.core.facts import AadhaarIdentity, PanCheckFacts
from app.store.models import Partner

IDENTITY = AadhaarIdentity(name="MEERA IYER", dob="02/02/1990", gender="F", address="Chennai")
PAN = PanCheckFacts(pan="ABCDE1234F", nameMatch=True, dobMatch=False, aadhaarSeedingStatus="y", category="individual")


def verified_partner():
    p = Partner(id="p1", name="Meera I")
    subject_kyc.record_aadhaar(p, IDENTITY, subject_kyc.mask_aadhaar("4321"))
    return p


def test_states_progress_in_order():
    p = Partner(id="p1", name="Meera I")
    assert subject_kyc.kyc_state(p) == subject_kyc.UNVERIFIED
    subject_kyc.record_aadhaar(p, IDENTITY, subject_kyc.mask_aadhaar("4321"))
    assert subject_kyc.kyc_state(p) == subject_kyc.AADHAAR_VERIFIED
    assert p.aadhaarMasked == "XXXX XXXX 4321"
    assert p.kycCompleted is False


def test_pan_before_aadhaar_is_refused():
    with pytest.raises(ValidationError) as ei:
        subject_kyc.require_aadhaar(Partner(id="p1"))
    assert "Aadhaar verification" in ei.value.message


def test_flag_completes_and_writes_everything_together():
    p = verified_partner()
    result = DecisionResult(decision=Decision.FLAG, warnings=["Partner DOB does not match PAN records"])
    record = subject_kyc.complete_pan(p, PAN, result, "partner_pan")

    assert p.kycCompleted is True
    assert subject_kyc.kyc_state(p) == subject_kyc.KYC_COMPLETED
    assert p.name == "MEERA IYER"
    assert p.panNumber == "ABCDE1234F"
    assert p.kycData.pan.linkedWithAadhaar is True
    assert p.kycData.crossValidation["partner_pan"] is record
    assert record.decision == "flag"
    assert record.dobMatch is False


def test_block_writes_nothing():
    p = verified_partner()
    blocked = DecisionResult(decision=Decision.BLOCK, warnings=["PAN name does not match Aadhaar name."])
    with pytest.raises(BlockedTransitionError):
        subject_kyc.complete_pan(p, PAN, blocked, "partner_pan")
    assert p.kycCompleted is False
    assert p.kycData.pan is None
    assert p.kycData.crossValidation == {}
    assert p.name == "Meera I"


def test_completed_subject_cannot_restart():
    p = verified_partner()
    subject_kyc.complete_pan(p, PAN, DecisionResult(decision=Decision.APPROVE), "partner_pan")
    with pytest.raises(AlreadyCompletedError):
        subject_kyc.ensure_can_initiate(p)
    with pytest.raises(AlreadyCompletedError):
        subject_kyc.record_aadhaar(p, IDENTITY, "XXXX XXXX 0000")
