import pytest
from unittest.mock import patch

from app.core import orchestrator
from app.core.errors import (
    AlreadyCompletedError,
    BlockedTransitionError,
    ExternalServiceError,
    ImmutableAfterProgressError,
    IncompleteStepError,
    MissingUpstreamFactError,
    NotFoundError,
    StepOrderError,
    ValidationError,
)
from app.core.state_machine import derive_status
from app.store.application_repo import load_application, save_application
from app.store.models import AadhaarRecord, Application, KycData


def app_at_bank(kyc_name="RAJESH KUMAR"):
    app = Application(id="app-bank", entityType="individual", phone="9876543210",
                      kyc=KycData(aadhaar=AadhaarRecord(name=kyc_name, dob="15/08/1985")))
    app.completedSteps["kyc"] = True
    app.completedSteps["pan"] = True
    app.status = derive_status(app)
    save_application(app)
    return app


def verify_aadhaar(app_id, provider, payloads, name="RAJESH KUMAR"):
    provider.generate_aadhaar_otp.return_value = payloads.aadhaar_otp_sent("RF1")
    provider.verify_aadhaar_otp.return_value = payloads.aadhaar_verified(name=name)
    sent = orchestrator.send_aadhaar_otp(app_id, "123456789012")
    return orchestrator.verify_aadhaar_otp(app_id, sent["referenceId"], "123456")


def test_individual_onboarding_end_to_end(provider, payloads):
    app = orchestrator.create_application("individual", "9876543210", email="rajesh@example.com")
    assert app.status == "kyc"

    out = verify_aadhaar(app.id, provider, payloads)
    assert out["aadhaarData"]["name"] == "RAJESH KUMAR"
    assert out["aadhaarData"]["hasPhoto"] is True

    provider.verify_pan.return_value = payloads.pan_checked()
    pan = orchestrator.verify_pan(app.id, "ABCDE1234F")
    assert pan["decision"] == "approve"
    # Aadhaar values are the claimed name/DOB, DOB in provider format
    provider.verify_pan.assert_called_with("ABCDE1234F", "RAJESH KUMAR", "15/08/1985")

    orchestrator.upload_selfie(app.id, "base64-selfie")
    assert orchestrator.complete_kyc(app.id)["status"] == "bank"

    provider.verify_ifsc.return_value = payloads.ifsc_found()
    provider.verify_bank_account_penniless.return_value = payloads.account_found("RAJESH K")
    bank = orchestrator.verify_bank(app.id, "123456789012", "123456789012", "HDFC0001234")
    assert bank["decision"] == "approve"
    assert bank["status"] == "references"

    orchestrator.add_reference(app.id, "Amit Shah", "9123456780", "21 Park Street, Kolkata")
    orchestrator.add_reference(app.id, "Neha Rao", "9123456781", "5 Brigade Road, Bengaluru")
    orchestrator.complete_references(app.id)

    done = orchestrator.complete_agreement(app.id, "https://esign.example.com/agreements/1.pdf")
    assert done["status"] == "completed"

    stored = load_application(app.id)
    assert stored.status == "completed"
    assert stored.completedSteps["pan"] is True
    assert stored.kyc.aadhaar.maskedNumber == "XXXX XXXX 9012"
    assert set(stored.kyc.crossValidation) == {"pan_aadhaar"}
    assert stored.bank.crossValidation.context == "bank_kyc"


def test_view_hides_image_blobs(provider, payloads):
    app = orchestrator.create_application("individual", "9876543210")
    verify_aadhaar(app.id, provider, payloads)
    view = orchestrator.application_view(load_application(app.id))
    assert view["kyc"]["aadhaar"]["photo"] is True


def test_otp_reference_is_single_use(provider, payloads):
    app = orchestrator.create_application("individual", "9876543210")
    verify_aadhaar(app.id, provider, payloads)
    with pytest.raises(ValidationError) as ei:
        orchestrator.verify_aadhaar_otp(app.id, "RF1", "123456")
    assert "Invalid or expired reference" in ei.value.message


def test_mistyped_otp_keeps_reference(provider, payloads):
    app = orchestrator.create_application("individual", "9876543210")
    provider.generate_aadhaar_otp.return_value = payloads.aadhaar_otp_sent("RF1")
    orchestrator.send_aadhaar_otp(app.id, "123456789012")

    provider.verify_aadhaar_otp.return_value = {"code": 422, "data": {"message": "Invalid OTP"}}
    with pytest.raises(ValidationError) as ei:
        orchestrator.verify_aadhaar_otp(app.id, "RF1", "111111")
    assert "Invalid OTP" in ei.value.message

    provider.verify_aadhaar_otp.return_value = payloads.aadhaar_verified()
    assert orchestrator.verify_aadhaar_otp(app.id, "RF1", "123456")["verified"] is True
    with pytest.raises(ValidationError):
        orchestrator.verify_aadhaar_otp(app.id, "RF1", "123456")


def test_otp_reference_bound_to_application(provider, payloads):
    a = orchestrator.create_application("individual", "9876543210")
    b = orchestrator.create_application("individual", "9876543211")
    provider.generate_aadhaar_otp.return_value = payloads.aadhaar_otp_sent("RF9")
    orchestrator.send_aadhaar_otp(a.id, "123456789012")
    with pytest.raises(ValidationError):
        orchestrator.verify_aadhaar_otp(b.id, "RF9", "123456")
    provider.verify_aadhaar_otp.assert_not_called()


def test_pan_requires_aadhaar_first(provider):
    app = orchestrator.create_application("individual", "9876543210")
    with pytest.raises(ValidationError):
        orchestrator.verify_pan(app.id, "ABCDE1234F")
    provider.verify_pan.assert_not_called()


def test_pan_block_is_not_persisted(provider, payloads):
    app = orchestrator.create_application("individual", "9876543210")
    verify_aadhaar(app.id, provider, payloads)
    provider.verify_pan.return_value = payloads.pan_checked(name_match=False, dob_match=False)
    with pytest.raises(BlockedTransitionError):
        orchestrator.verify_pan(app.id, "ABCDE1234F")
    stored = load_application(app.id)
    assert stored.kyc.pan is None
    assert "pan_aadhaar" not in stored.kyc.crossValidation


def test_pan_missing_category_never_approves(provider, payloads):
    app = orchestrator.create_application("individual", "9876543210")
    verify_aadhaar(app.id, provider, payloads)
    provider.verify_pan.return_value = payloads.pan_checked(category=None)
    with pytest.raises(MissingUpstreamFactError):
        orchestrator.verify_pan(app.id, "ABCDE1234F")


def test_flagged_pan_completes_kyc_and_queues_review(provider, payloads):
    app = orchestrator.create_application("proprietorship", "9876543210")
    verify_aadhaar(app.id, provider, payloads)
    provider.verify_pan.return_value = payloads.pan_checked(seeding="n")
    with patch("app.review.notify.enqueue_review") as enqueue:
        out = orchestrator.verify_pan(app.id, "ABCDE1234F")
    assert out["decision"] == "flag"
    assert out["flaggedForReview"] is True
    enqueue.assert_called_once_with(app.id, "pan_aadhaar", None)

    orchestrator.upload_selfie(app.id, "base64-selfie")
    assert orchestrator.complete_kyc(app.id)["status"] == "bank"


def test_reverifying_aadhaar_drops_stale_pan(provider, payloads):
    app = orchestrator.create_application("individual", "9876543210")
    verify_aadhaar(app.id, provider, payloads)
    provider.verify_pan.return_value = payloads.pan_checked()
    orchestrator.verify_pan(app.id, "ABCDE1234F")
    verify_aadhaar(app.id, provider, payloads, name="RAJESH KUMAR SINGH")
    stored = load_application(app.id)
    assert stored.kyc.pan is None
    assert stored.kyc.crossValidation == {}
    assert stored.completedSteps["pan"] is False


def test_complete_kyc_lists_missing_parts(provider, payloads):
    app = orchestrator.create_application("individual", "9876543210")
    verify_aadhaar(app.id, provider, payloads)
    with pytest.raises(IncompleteStepError) as ei:
        orchestrator.complete_kyc(app.id)
    assert ei.value.details["missing"] == ["pan", "selfie"]


def test_kyc_cannot_be_redone_after_completion(provider, payloads):
    app_at_bank()
    with pytest.raises(AlreadyCompletedError):
        orchestrator.send_aadhaar_otp("app-bank", "123456789012")


def test_entity_type_locked_after_kyc(provider):
    app_at_bank()
    with pytest.raises(ImmutableAfterProgressError):
        orchestrator.update_entity_type("app-bank", "company", "pvt_ltd")


def test_pan_check_freezes_entity_type(provider, payloads):
    app = orchestrator.create_application("proprietorship", "9876543210")
    verify_aadhaar(app.id, provider, payloads)
    provider.verify_pan.return_value = payloads.pan_checked(category="company")
    assert orchestrator.verify_pan(app.id, "ABCDE1234F")["decision"] == "approve"

    stored = load_application(app.id)
    assert stored.completedSteps["pan"] is True
    assert stored.completedSteps["kyc"] is False

    with pytest.raises(ImmutableAfterProgressError):
        orchestrator.update_entity_type(app.id, "individual")
    assert load_application(app.id).entityType == "proprietorship"


def test_unknown_application_is_not_found(fake_redis):
    with pytest.raises(NotFoundError):
        orchestrator.get_application("missing")


# ---------------------------------------------------------------------------
# Bank
# ---------------------------------------------------------------------------
def test_bank_abbreviated_name_approves(provider, payloads):
    app_at_bank("RAJESH KUMAR")
    provider.verify_ifsc.return_value = payloads.ifsc_found()
    provider.verify_bank_account_penniless.return_value = payloads.account_found("RAJESH K")
    out = orchestrator.verify_bank("app-bank", "50100012345678", "50100012345678", "HDFC0001234")
    assert out["decision"] == "approve"
    assert out["bankDetails"]["nameMatchScore"] == 100
    stored = load_application("app-bank")
    assert stored.completedSteps["bank"] is True
    assert stored.status == "references"


def test_bank_mismatch_blocks_with_both_names(provider, payloads):
    app_at_bank("RAJESH KUMAR")
    provider.verify_ifsc.return_value = payloads.ifsc_found()
    provider.verify_bank_account_penniless.return_value = payloads.account_found("SURESH PATEL")
    with pytest.raises(BlockedTransitionError) as ei:
        orchestrator.verify_bank("app-bank", "50100012345678", "50100012345678", "HDFC0001234")
    assert "SURESH PATEL" in ei.value.message
    assert "RAJESH KUMAR" in ei.value.message
    stored = load_application("app-bank")
    assert stored.bank is None
    assert stored.completedSteps["bank"] is False
    assert stored.status == "bank"


def test_bank_partial_match_flags(provider, payloads):
    app_at_bank("RAJESH KUMAR SINGH")
    provider.verify_ifsc.return_value = payloads.ifsc_found()
    provider.verify_bank_account_penniless.return_value = payloads.account_found("RAJESH KUMAR VERMA")
    out = orchestrator.verify_bank("app-bank", "50100012345678", "50100012345678", "HDFC0001234")
    assert out["decision"] == "flag"
    stored = load_application("app-bank")
    assert stored.bank.flaggedForReview is True
    assert stored.bank.nameMatchScore == 72
    assert stored.completedSteps["bank"] is True


def test_bank_account_numbers_must_match(provider):
    app_at_bank()
    with pytest.raises(ValidationError):
        orchestrator.verify_bank("app-bank", "50100012345678", "50100012345679", "HDFC0001234")
    provider.verify_ifsc.assert_not_called()


def test_bank_branch_without_imps_rejected(provider, payloads):
    app_at_bank()
    provider.verify_ifsc.return_value = payloads.ifsc_found(imps=False)
    with pytest.raises(ValidationError) as ei:
        orchestrator.verify_bank("app-bank", "50100012345678", "50100012345678", "HDFC0001234")
    assert "IMPS" in ei.value.message
    provider.verify_bank_account_penniless.assert_not_called()


def test_bank_offline_is_retryable(provider, payloads):
    app_at_bank()
    provider.verify_ifsc.return_value = payloads.ifsc_found()
    provider.verify_bank_account_penniless.return_value = {"code": 200, "data": {"message": "Bank is offline"}}
    with pytest.raises(ExternalServiceError) as ei:
        orchestrator.verify_bank("app-bank", "50100012345678", "50100012345678", "HDFC0001234")
    assert ei.value.retryable is True


def test_bank_before_kyc_is_out_of_order(provider):
    app = orchestrator.create_application("individual", "9876543210")
    with pytest.raises(StepOrderError):
        orchestrator.verify_bank(app.id, "50100012345678", "50100012345678", "HDFC0001234")


# ---------------------------------------------------------------------------
# References and documents
# ---------------------------------------------------------------------------
def test_references_rules(provider):
    app = app_at_bank()
    saved = load_application(app.id)
    saved.completedSteps["bank"] = True
    saved.status = derive_status(saved)
    save_application(saved)

    with pytest.raises(ValidationError):
        orchestrator.add_reference(app.id, "Self", "9876543210", "Own address, Pune")
    first = orchestrator.add_reference(app.id, "Amit Shah", "9123456780", "21 Park Street, Kolkata")
    with pytest.raises(ValidationError):
        orchestrator.add_reference(app.id, "Amit Again", "9123456780", "21 Park Street, Kolkata")
    with pytest.raises(IncompleteStepError):
        orchestrator.complete_references(app.id)

    updated = orchestrator.update_reference(app.id, first.id, name="Amit K Shah")
    assert updated.name == "Amit K Shah"
    second = orchestrator.add_reference(app.id, "Neha Rao", "9123456781", "5 Brigade Road, Bengaluru")
    orchestrator.delete_reference(app.id, first.id)
    listing = orchestrator.list_references(app.id)
    assert [r["id"] for r in listing["references"]] == [second.id]
    assert listing["isComplete"] is False

    with pytest.raises(NotFoundError):
        orchestrator.delete_reference(app.id, first.id)


def test_references_capped_at_max(provider):
    app = app_at_bank()
    saved = load_application(app.id)
    saved.completedSteps["bank"] = True
    saved.status = derive_status(saved)
    save_application(saved)
    for i in range(5):
        orchestrator.add_reference(app.id, f"Ref {i}", f"912345678{i}", "Some address, Pune")
    with pytest.raises(ValidationError):
        orchestrator.add_reference(app.id, "Ref 6", "9123456789", "Some address, Pune")


def test_documents_replace_by_type_and_gate_completion(provider):
    app = orchestrator.create_application("proprietorship", "9876543210")
    first = orchestrator.add_document(app.id, "shop_act_license", "https://files.example.com/a.pdf", "a.pdf")
    second = orchestrator.add_document(app.id, "shop_act_license", "https://files.example.com/b.pdf", "b.pdf")
    listing = orchestrator.list_documents(app.id)
    assert [d["id"] for d in listing["uploaded"]] == [second.id]
    assert listing["isComplete"] is True
    assert first.id != second.id

    with pytest.raises(ValidationError):
        orchestrator.add_document(app.id, "selfie_video", "https://files.example.com/c.mp4", "c.mp4")
    orchestrator.delete_document(app.id, second.id)
    assert orchestrator.list_documents(app.id)["isComplete"] is False


def test_reject_is_terminal(provider):
    app = orchestrator.create_application("individual", "9876543210")
    orchestrator.reject_application(app.id, "Duplicate application")
    status = orchestrator.application_status(app.id)
    assert status["status"] == "rejected"
    assert status["rejectionReason"] == "Duplicate application"
