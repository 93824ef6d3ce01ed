"""
Partnership partners and their two-phase KYC.

Partners are addressed by a stable id. Exactly one partner is the lead while
any exist: the first partner added becomes lead, a newly chosen lead replaces
the old one, and removing the lead hands it to the first remaining partner.
"""
from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from app.core.decisions import partner_strict_pan_decision, subject_pan_decision
from app.core.errors import IncompleteStepError, NotFoundError, ValidationError
from app.core.state_machine import mark_complete, require_enterable, require_open
from app.core.steps import EntityType, StepId
from app.core import subject_flows, subject_kyc
from app.observability.logging import log
from app.review.notify import publish_decision
from app.settings import settings
from app.store.application_repo import load_application, new_id, save_application
from app.store.models import Application, Partner

CTX_PARTNER_PAN = "partner_pan"


def _require_partnership(app: Application) -> None:
    if app.entityType != EntityType.PARTNERSHIP.value:
        raise ValidationError("Partners are only applicable for Partnership entity type")


def _find_partner(app: Application, partner_id: str) -> Partner:
    for p in app.partners:
        if p.id == partner_id:
            return p
    raise NotFoundError("Partner not found", {"partnerId": partner_id})


def _set_lead(app: Application, lead: Partner) -> None:
    for p in app.partners:
        p.isLeadPartner = p.id == lead.id


def _check_phone(app: Application, phone: str, exclude_id: Optional[str] = None) -> None:
    for p in app.partners:
        if p.id != exclude_id and p.phone == phone:
            raise ValidationError("A partner with this phone number already exists")


def kyc_pending_count(app: Application) -> int:
    return sum(1 for p in app.partners if not p.kycCompleted)


def _load_partnership(application_id: str, gate=require_open) -> Application:
    app = load_application(application_id)
    _require_partnership(app)
    gate(app, StepId.PARTNERS)
    return app


def list_partners(application_id: str) -> dict:
    app = load_application(application_id)
    _require_partnership(app)
    lead = next((p for p in app.partners if p.isLeadPartner), None)
    pending = kyc_pending_count(app)
    return {
        "partners": [
            {**subject_flows.subject_summary(p), "phone": p.phone, "email": p.email, "isLeadPartner": p.isLeadPartner}
            for p in app.partners
        ],
        "count": len(app.partners),
        "leadPartner": lead.id if lead else None,
        "kycPendingCount": pending,
        "allKycComplete": bool(app.partners) and pending == 0,
        "required": int(settings.MIN_PARTNERS),
        "max": int(settings.MAX_PARTNERS),
    }


def add_partner(application_id: str, name: str, phone: str, email: Optional[str] = None,
                is_lead: bool = False) -> Partner:
    app = _load_partnership(application_id)
    if len(app.partners) >= int(settings.MAX_PARTNERS):
        raise ValidationError(f"Maximum {settings.MAX_PARTNERS} partners allowed")
    _check_phone(app, phone)

    partner = Partner(id=new_id(), name=name, phone=phone, email=email)
    app.partners.append(partner)
    if is_lead or len(app.partners) == 1:
        _set_lead(app, partner)
    save_application(app)
    log(event="partner_added", applicationId=app.id, partnerId=partner.id, isLead=partner.isLeadPartner)
    return partner


def update_partner(application_id: str, partner_id: str, name: Optional[str] = None,
                   phone: Optional[str] = None, email: Optional[str] = None,
                   is_lead: Optional[bool] = None) -> Partner:
    app = _load_partnership(application_id)
    partner = _find_partner(app, partner_id)

    if name is not None and name != partner.name:
        if partner.kycCompleted:
            raise ValidationError("Partner name is taken from Aadhaar once KYC is completed")
        partner.name = name
    if phone is not None and phone != partner.phone:
        _check_phone(app, phone, exclude_id=partner.id)
        partner.phone = phone
    if email is not None:
        partner.email = email
    if is_lead is True:
        _set_lead(app, partner)
    elif is_lead is False and partner.isLeadPartner:
        raise ValidationError("Choose another partner as lead instead of unsetting the current lead")

    save_application(app)
    return partner


def remove_partner(application_id: str, partner_id: str) -> dict:
    app = _load_partnership(application_id)
    partner = _find_partner(app, partner_id)
    app.partners = [p for p in app.partners if p.id != partner.id]
    if partner.isLeadPartner and app.partners:
        _set_lead(app, app.partners[0])
    save_application(app)
    log(event="partner_removed", applicationId=app.id, partnerId=partner.id)
    return {"deleted": True, "count": len(app.partners)}


def upload_partner_photo(application_id: str, partner_id: str, photo: str) -> dict:
    app = _load_partnership(application_id)
    partner = _find_partner(app, partner_id)
    if not (photo or "").strip():
        raise ValidationError("Photo is required")
    partner.photo = photo
    save_application(app)
    return {"uploaded": True, "partnerId": partner.id}


# ---------------------------------------------------------------------------
# Partner KYC
# ---------------------------------------------------------------------------
def initiate_partner_kyc(application_id: str, partner_id: str, aadhaar_number: str) -> dict:
    app = _load_partnership(application_id)
    partner = _find_partner(app, partner_id)
    return subject_flows.start_aadhaar_otp(app.id, partner, aadhaar_number, "partner")


def verify_partner_otp(application_id: str, partner_id: str, reference_id: str, otp: str) -> dict:
    app = _load_partnership(application_id)
    partner = _find_partner(app, partner_id)
    subject_flows.finish_aadhaar_otp(app.id, partner, reference_id, otp, "partner")
    save_application(app)
    aadhaar = partner.kycData.aadhaar
    return {
        "verified": True,
        "partnerId": partner.id,
        "kycState": subject_kyc.kyc_state(partner),
        "aadhaarData": {"name": aadhaar.name, "dob": aadhaar.dob, "gender": aadhaar.gender},
    }


def _finish_partner_pan(app: Application, partner: Partner, facts, result) -> dict:
    if result.blocked:
        publish_decision(app.id, CTX_PARTNER_PAN, result, partner.id)
    record = subject_kyc.complete_pan(partner, facts, result, CTX_PARTNER_PAN)
    save_application(app)
    publish_decision(app.id, CTX_PARTNER_PAN, result, partner.id)
    return {
        "verified": True,
        "partnerId": partner.id,
        "kycCompleted": partner.kycCompleted,
        "decision": result.decision.value,
        "flaggedForReview": result.flagged,
        "warnings": list(result.warnings),
        "crossValidation": asdict(record),
    }


def verify_partner_pan_strict(application_id: str, partner_id: str, pan: str) -> dict:
    """In-flow PAN step: the partner's PAN name must match their Aadhaar name."""
    app = _load_partnership(application_id)
    partner = _find_partner(app, partner_id)
    facts, result = subject_flows.check_pan(partner, pan, partner_strict_pan_decision)
    return _finish_partner_pan(app, partner, facts, result)


def verify_partner_pan(application_id: str, partner_id: str, pan: str,
                       name: Optional[str] = None, dob: Optional[str] = None) -> dict:
    """Standalone PAN check with the flag policy; mismatches go to manual review."""
    app = _load_partnership(application_id)
    partner = _find_partner(app, partner_id)
    facts, result = subject_flows.check_pan(
        partner, pan, lambda f: subject_pan_decision(f, "Partner"), name=name, dob=dob,
    )
    return _finish_partner_pan(app, partner, facts, result)


def complete_partners(application_id: str) -> dict:
    app = load_application(application_id)
    _require_partnership(app)
    require_enterable(app, StepId.PARTNERS)
    count = len(app.partners)
    if count < int(settings.MIN_PARTNERS):
        raise IncompleteStepError(
            f"At least {settings.MIN_PARTNERS} partners are required for a partnership firm",
            {"count": count, "required": int(settings.MIN_PARTNERS)},
        )
    if count > int(settings.MAX_PARTNERS):
        raise ValidationError(f"Maximum {settings.MAX_PARTNERS} partners allowed")
    pending = kyc_pending_count(app)
    if pending:
        raise IncompleteStepError(
            f"{pending} partner(s) have not completed KYC verification",
            {"kycPendingCount": pending},
        )
    mark_complete(app, StepId.PARTNERS)
    save_application(app)
    log(event="step_completed", applicationId=app.id, step=StepId.PARTNERS.value, status=app.status)
    return {"completed": True, "status": app.status}
