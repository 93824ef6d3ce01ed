"""
Onboarding orchestrator
-----------------------
Application lifecycle plus the primary-applicant, bank, references, documents
and agreement steps. Every operation follows the same shape:

    load -> gate (state machine) -> provider facts -> decision table
         -> apply outcome (state machine) -> save once -> publish decision

Partner and director flows live in app.core.partners and app.core.company.
"""
from __future__ import annotations

from dataclasses import asdict
from typing import Callable, Dict, List, Optional

from app.core.decisions import Decision, bank_name_decision, primary_pan_decision
from app.core.errors import IncompleteStepError, NotFoundError, ValidationError
from app.core.state_machine import (
    change_entity_type,
    ensure_not_blocked,
    ensure_not_terminal,
    mark_complete,
    reject,
    require_enterable,
    require_open,
    step_overview,
)
from app.core.steps import (
    BANK_SUBJECT_LEAD_PARTNER,
    BANK_SUBJECT_PRIMARY,
    BANK_SUBJECT_SIGNATORY_DIRECTOR,
    DOCUMENT_TYPES,
    StepId,
    bank_subject_kind,
    coerce_entity_type,
    required_documents,
)
from app.core.subject_kyc import aadhaar_record, cross_validation_record, mask_aadhaar, pan_record
from app.observability.logging import log
from app.providers.normalize import (
    normalize_aadhaar_otp,
    normalize_aadhaar_verification,
    normalize_bank_account,
    normalize_ifsc,
    normalize_pan,
)
from app.providers.sandbox_client import get_sandbox_client
from app.review.notify import publish_decision
from app.settings import settings
from app.store.application_repo import load_application, new_id, save_application
from app.store.models import (
    AgreementRecord,
    Application,
    BankRecord,
    BusinessDetails,
    CrossValidationRecord,
    Reference,
    SelfieRecord,
    UploadedDocument,
)
from app.store.otp_refs import PRIMARY_SUBJECT, consume_reference, get_reference, remember_reference
from app.utils.time import normalize_dob, now_iso

CTX_PAN_AADHAAR = "pan_aadhaar"
CTX_BANK_KYC = "bank_kyc"

# Large base64 blobs stay out of API responses
_BLOB_FIELDS = ("photo", "image")


def strip_blobs(obj):
    if isinstance(obj, dict):
        return {k: (bool(v) if k in _BLOB_FIELDS else strip_blobs(v)) for k, v in obj.items()}
    if isinstance(obj, list):
        return [strip_blobs(v) for v in obj]
    return obj


def application_view(app: Application) -> dict:
    return strip_blobs(asdict(app))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
def create_application(entity_type, phone: str, email: Optional[str] = None,
                       company_sub_type: Optional[str] = None,
                       business: Optional[dict] = None) -> Application:
    et = coerce_entity_type(entity_type)
    app = Application(id=new_id(), entityType=et.value, phone=phone, email=email)
    if business:
        app.business = BusinessDetails(**{k: v for k, v in business.items() if k in BusinessDetails.__dataclass_fields__})
    change_entity_type(app, et, company_sub_type)
    save_application(app)
    log(event="application_created", applicationId=app.id, entityType=app.entityType)
    return app


def get_application(application_id: str) -> Application:
    return load_application(application_id)


def update_entity_type(application_id: str, entity_type, company_sub_type: Optional[str] = None) -> Application:
    app = load_application(application_id)
    previous = app.entityType
    change_entity_type(app, entity_type, company_sub_type)
    save_application(app)
    log(event="entity_type_changed", applicationId=app.id, previous=previous, entityType=app.entityType)
    return app


def application_steps(application_id: str) -> dict:
    return step_overview(load_application(application_id))


def application_status(application_id: str) -> dict:
    app = load_application(application_id)
    overview = step_overview(app)
    return {
        "applicationId": app.id,
        "status": app.status,
        "entityType": app.entityType,
        "completedSteps": dict(app.completedSteps),
        "progress": overview["progress"],
        "completedAt": app.completedAt,
        "rejectedAt": app.rejectedAt,
        "rejectionReason": app.rejectionReason,
    }


# ---------------------------------------------------------------------------
# Primary applicant KYC (individual / proprietorship)
# ---------------------------------------------------------------------------
def send_aadhaar_otp(application_id: str, aadhaar_number: str) -> dict:
    app = load_application(application_id)
    require_open(app, StepId.KYC)
    otp = normalize_aadhaar_otp(get_sandbox_client().generate_aadhaar_otp(aadhaar_number))
    remember_reference(otp.referenceId, app.id, PRIMARY_SUBJECT, aadhaar_number)
    log(event="aadhaar_otp_sent", applicationId=app.id)
    return {"referenceId": otp.referenceId, "message": otp.message}


def verify_aadhaar_otp(application_id: str, reference_id: str, otp: str) -> dict:
    app = load_application(application_id)
    require_open(app, StepId.KYC)
    ref = get_reference(reference_id, app.id, PRIMARY_SUBJECT)
    identity = normalize_aadhaar_verification(get_sandbox_client().verify_aadhaar_otp(ref.referenceId, otp))
    consume_reference(ref)

    app.kyc.method = "aadhaar_otp"
    app.kyc.aadhaar = aadhaar_record(identity, mask_aadhaar(ref.aadhaarLast4))
    # A PAN check made against a previous Aadhaar identity no longer applies
    app.kyc.pan = None
    app.kyc.crossValidation.pop(CTX_PAN_AADHAAR, None)
    app.completedSteps[StepId.PAN.value] = False
    save_application(app)

    log(event="aadhaar_verified", applicationId=app.id)
    return {
        "verified": True,
        "aadhaarData": {
            "name": identity.name,
            "gender": identity.gender,
            "dob": identity.dob,
            "address": identity.address,
            "hasPhoto": bool(identity.photo),
        },
    }


def verify_pan(application_id: str, pan: str) -> dict:
    app = load_application(application_id)
    require_open(app, StepId.KYC)
    aadhaar = app.kyc.aadhaar
    if aadhaar is None:
        raise ValidationError("Please complete Aadhaar verification before PAN verification")

    resp = get_sandbox_client().verify_pan(pan, aadhaar.name, normalize_dob(aadhaar.dob))
    facts = normalize_pan(resp, pan)
    result = primary_pan_decision(facts, app.entityType)
    if result.blocked:
        publish_decision(app.id, CTX_PAN_AADHAAR, result)
    ensure_not_blocked(result, context=CTX_PAN_AADHAAR)

    record = cross_validation_record(CTX_PAN_AADHAAR, facts, result)
    app.kyc.pan = pan_record(facts, aadhaar.name)
    app.kyc.crossValidation[CTX_PAN_AADHAAR] = record
    # The PAN decision depends on the entity type, which this flag freezes
    app.completedSteps[StepId.PAN.value] = True
    save_application(app)
    publish_decision(app.id, CTX_PAN_AADHAAR, result)

    return {
        "verified": True,
        "decision": result.decision.value,
        "flaggedForReview": result.flagged,
        "warnings": list(result.warnings),
        "panData": {
            "number": facts.pan,
            "nameMatch": facts.nameMatch,
            "dobMatch": facts.dobMatch,
            "linkedWithAadhaar": app.kyc.pan.linkedWithAadhaar,
            "category": facts.category,
        },
    }


def upload_selfie(application_id: str, image: str) -> dict:
    app = load_application(application_id)
    require_open(app, StepId.KYC)
    if not (image or "").strip():
        raise ValidationError("Selfie image is required")
    app.kyc.selfie = SelfieRecord(image=image, capturedAt=now_iso())
    save_application(app)
    return {"uploaded": True, "capturedAt": app.kyc.selfie.capturedAt}


def complete_kyc(application_id: str) -> dict:
    app = load_application(application_id)
    require_enterable(app, StepId.KYC)

    missing = []
    if app.kyc.aadhaar is None:
        missing.append("aadhaar")
    record = app.kyc.crossValidation.get(CTX_PAN_AADHAAR)
    if app.kyc.pan is None or record is None:
        missing.append("pan")
    if app.kyc.selfie is None:
        missing.append("selfie")
    if missing:
        raise IncompleteStepError(
            f"Please complete: {', '.join(missing)} verification",
            {"missing": missing},
        )

    mark_complete(app, StepId.KYC, Decision(record.decision))
    save_application(app)
    log(event="step_completed", applicationId=app.id, step=StepId.KYC.value, status=app.status)
    return {"completed": True, "status": app.status}


# ---------------------------------------------------------------------------
# Bank
# ---------------------------------------------------------------------------
def _primary_kyc_name(app: Application) -> str:
    if app.kyc.aadhaar is None or not app.kyc.aadhaar.name:
        raise ValidationError("Please complete KYC verification first")
    return app.kyc.aadhaar.name


def _subject_kyc_name(subject, label: str) -> str:
    if not subject.kycCompleted:
        raise ValidationError(f"{label} {subject.name or subject.id} must complete KYC before bank verification")
    kd = subject.kycData
    if kd is not None and kd.aadhaar is not None and kd.aadhaar.name:
        return kd.aadhaar.name
    return subject.name


def _lead_partner_kyc_name(app: Application) -> str:
    if not app.partners:
        raise ValidationError("Please add partners first")
    lead = next((p for p in app.partners if p.isLeadPartner), app.partners[0])
    return _subject_kyc_name(lead, "Lead partner")


def _signatory_kyc_name(app: Application) -> str:
    directors = app.company.directors if app.company else []
    if not directors:
        raise ValidationError("Please verify company first")
    signatory = next((d for d in directors if d.isSignatory), directors[0])
    return _subject_kyc_name(signatory, "Signatory director")


_BANK_NAME_RESOLVERS: Dict[str, Callable[[Application], str]] = {
    BANK_SUBJECT_PRIMARY: _primary_kyc_name,
    BANK_SUBJECT_LEAD_PARTNER: _lead_partner_kyc_name,
    BANK_SUBJECT_SIGNATORY_DIRECTOR: _signatory_kyc_name,
}


def resolve_bank_kyc_name(app: Application) -> str:
    return _BANK_NAME_RESOLVERS[bank_subject_kind(app.entityType)](app)


def verify_bank(application_id: str, account_number: str, confirm_account_number: str, ifsc: str) -> dict:
    app = load_application(application_id)
    require_open(app, StepId.BANK)
    if account_number != confirm_account_number:
        raise ValidationError("Account numbers do not match")

    kyc_name = resolve_bank_kyc_name(app)
    client = get_sandbox_client()

    ifsc_facts = normalize_ifsc(client.verify_ifsc(ifsc), ifsc)
    if not ifsc_facts.impsSupported:
        raise ValidationError(
            f"Bank branch {ifsc_facts.branchName or ifsc} does not support IMPS. "
            "Please use an account from an IMPS-enabled branch.",
            {"ifsc": ifsc},
        )

    account = normalize_bank_account(client.verify_bank_account_penniless(ifsc, account_number))
    result = bank_name_decision(kyc_name, account.nameAtBank)
    log(event="bank_name_match", applicationId=app.id, score=result.score,
        method=result.method, decision=result.decision.value)
    if result.blocked:
        publish_decision(app.id, CTX_BANK_KYC, result)
    ensure_not_blocked(result, context=CTX_BANK_KYC, kycName=kyc_name, nameAtBank=account.nameAtBank)

    record = CrossValidationRecord(
        context=CTX_BANK_KYC,
        nameMatch=result.decision == Decision.APPROVE,
        dobMatch=None,
        score=result.score,
        decision=result.decision.value,
        warnings=list(result.warnings),
        checkedAt=now_iso(),
    )
    app.bank = BankRecord(
        accountNumber=account_number,
        ifsc=ifsc_facts.ifsc,
        bankName=ifsc_facts.bankName,
        branchName=ifsc_facts.branchName,
        accountHolderName=account.nameAtBank,
        verified=True,
        verificationMethod="penniless",
        nameMatchScore=int(result.score or 0),
        flaggedForReview=result.flagged,
        verifiedAt=record.checkedAt,
        crossValidation=record,
    )
    mark_complete(app, StepId.BANK, result)
    save_application(app)
    publish_decision(app.id, CTX_BANK_KYC, result)

    return {
        "verified": True,
        "decision": result.decision.value,
        "flaggedForReview": result.flagged,
        "warnings": list(result.warnings),
        "status": app.status,
        "bankDetails": {
            "accountHolderName": account.nameAtBank,
            "bankName": ifsc_facts.bankName,
            "branchName": ifsc_facts.branchName,
            "ifsc": ifsc_facts.ifsc,
            "nameMatchScore": int(result.score or 0),
        },
    }


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------
def _find_reference(app: Application, reference_id: str) -> Reference:
    for r in app.references:
        if r.id == reference_id:
            return r
    raise NotFoundError("Reference not found", {"referenceId": reference_id})


def _check_reference_mobile(app: Application, mobile: str, exclude_id: Optional[str] = None) -> None:
    if mobile == app.phone:
        raise ValidationError("You cannot add your own mobile number as a reference")
    for r in app.references:
        if r.id != exclude_id and r.mobile == mobile:
            raise ValidationError("This mobile number is already added as a reference")


def list_references(application_id: str) -> dict:
    app = load_application(application_id)
    count = len(app.references)
    return {
        "references": [asdict(r) for r in app.references],
        "count": count,
        "required": int(settings.MIN_REFERENCES),
        "max": int(settings.MAX_REFERENCES),
        "isComplete": count >= int(settings.MIN_REFERENCES),
    }


def add_reference(application_id: str, name: str, mobile: str, address: str,
                  email: Optional[str] = None) -> Reference:
    app = load_application(application_id)
    require_open(app, StepId.REFERENCES)
    if len(app.references) >= int(settings.MAX_REFERENCES):
        raise ValidationError(f"Maximum {settings.MAX_REFERENCES} references allowed")
    _check_reference_mobile(app, mobile)
    ref = Reference(id=new_id(), name=name, mobile=mobile, email=email, address=address)
    app.references.append(ref)
    save_application(app)
    return ref


def update_reference(application_id: str, reference_id: str, **changes) -> Reference:
    app = load_application(application_id)
    require_open(app, StepId.REFERENCES)
    ref = _find_reference(app, reference_id)
    mobile = changes.get("mobile")
    if mobile and mobile != ref.mobile:
        _check_reference_mobile(app, mobile, exclude_id=ref.id)
    for k in ("name", "mobile", "email", "address"):
        if changes.get(k) is not None:
            setattr(ref, k, changes[k])
    save_application(app)
    return ref


def delete_reference(application_id: str, reference_id: str) -> dict:
    app = load_application(application_id)
    require_open(app, StepId.REFERENCES)
    ref = _find_reference(app, reference_id)
    app.references = [r for r in app.references if r.id != ref.id]
    save_application(app)
    return {"deleted": True, "count": len(app.references)}


def complete_references(application_id: str) -> dict:
    app = load_application(application_id)
    require_enterable(app, StepId.REFERENCES)
    if len(app.references) < int(settings.MIN_REFERENCES):
        raise IncompleteStepError(
            f"Please add at least {settings.MIN_REFERENCES} references",
            {"count": len(app.references), "required": int(settings.MIN_REFERENCES)},
        )
    mark_complete(app, StepId.REFERENCES)
    save_application(app)
    log(event="step_completed", applicationId=app.id, step=StepId.REFERENCES.value, status=app.status)
    return {"completed": True, "status": app.status}


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
def _document_status(app: Application) -> List[dict]:
    uploaded = {d.type: d for d in app.documents}
    out = []
    for doc_type, label, required in required_documents(app.entityType):
        doc = uploaded.get(doc_type)
        out.append({
            "type": doc_type,
            "label": label,
            "required": required,
            "uploaded": doc is not None,
            "documentId": doc.id if doc else None,
        })
    return out


def list_documents(application_id: str) -> dict:
    app = load_application(application_id)
    status = _document_status(app)
    return {
        "entityType": app.entityType,
        "documents": status,
        "uploaded": [asdict(d) for d in app.documents],
        "isComplete": all(d["uploaded"] for d in status if d["required"]),
    }


def add_document(application_id: str, doc_type: str, url: str, filename: str) -> UploadedDocument:
    app = load_application(application_id)
    ensure_not_terminal(app)
    if app.completedSteps.get(StepId.DOCUMENTS.value):
        require_open(app, StepId.DOCUMENTS)
    if doc_type not in DOCUMENT_TYPES:
        raise ValidationError(f"Unknown document type: {doc_type}", {"allowed": list(DOCUMENT_TYPES)})
    doc = UploadedDocument(id=new_id(), type=doc_type, url=url, filename=filename, uploadedAt=now_iso())
    # One document per type; a new upload replaces the old one
    app.documents = [d for d in app.documents if d.type != doc_type] + [doc]
    save_application(app)
    return doc


def delete_document(application_id: str, document_id: str) -> dict:
    app = load_application(application_id)
    ensure_not_terminal(app)
    if app.completedSteps.get(StepId.DOCUMENTS.value):
        require_open(app, StepId.DOCUMENTS)
    if not any(d.id == document_id for d in app.documents):
        raise NotFoundError("Document not found", {"documentId": document_id})
    app.documents = [d for d in app.documents if d.id != document_id]
    save_application(app)
    return {"deleted": True}


def complete_documents(application_id: str) -> dict:
    app = load_application(application_id)
    require_enterable(app, StepId.DOCUMENTS)
    missing = [d["type"] for d in _document_status(app) if d["required"] and not d["uploaded"]]
    if missing:
        raise IncompleteStepError("Please upload all required documents", {"missing": missing})
    mark_complete(app, StepId.DOCUMENTS)
    save_application(app)
    log(event="step_completed", applicationId=app.id, step=StepId.DOCUMENTS.value, status=app.status)
    return {"completed": True, "status": app.status}


# ---------------------------------------------------------------------------
# Agreement
# ---------------------------------------------------------------------------
def complete_agreement(application_id: str, signed_url: str) -> dict:
    app = load_application(application_id)
    require_open(app, StepId.AGREEMENT)
    if not (signed_url or "").strip():
        raise ValidationError("Signed agreement reference is required")
    app.agreement = AgreementRecord(signedUrl=signed_url, completedAt=now_iso())
    mark_complete(app, StepId.AGREEMENT)
    save_application(app)
    log(event="application_completed", applicationId=app.id, entityType=app.entityType)
    return {"completed": True, "status": app.status, "completedAt": app.completedAt}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
def reject_application(application_id: str, reason: str) -> Application:
    app = load_application(application_id)
    reject(app, reason)
    save_application(app)
    log(event="application_rejected", applicationId=app.id, reason=app.rejectionReason or "")
    return app


def cross_validation_audit(app: Application) -> List[dict]:
    """Every cross-validation record on the application, primary first."""
    rows: List[dict] = []
    for rec in app.kyc.crossValidation.values():
        rows.append({"subject": PRIMARY_SUBJECT, **asdict(rec)})
    if app.bank and app.bank.crossValidation:
        rows.append({"subject": PRIMARY_SUBJECT, **asdict(app.bank.crossValidation)})
    subjects = list(app.partners) + list(app.company.directors if app.company else [])
    for s in subjects:
        if s.kycData:
            for rec in s.kycData.crossValidation.values():
                rows.append({"subject": s.id, **asdict(rec)})
    return rows
