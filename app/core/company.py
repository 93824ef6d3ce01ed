"""
Company verification against the MCA registry, and director KYC.

Directors come from the registry's signatory list (ceased directors are
skipped) and are addressed by DIN. The first director is the authorised
signatory whose KYC name the bank account is matched against.
"""
from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from app.core.decisions import Decision, DecisionResult, subject_pan_decision
from app.core.errors import IncompleteStepError, NotFoundError, ValidationError
from app.core.state_machine import ensure_not_blocked, mark_complete, require_enterable, require_open
from app.core.steps import CompanySubType, EntityType, StepId
from app.core import subject_flows, subject_kyc
from app.observability.logging import log
from app.providers.normalize import normalize_company
from app.providers.sandbox_client import get_sandbox_client
from app.review.notify import publish_decision
from app.store.application_repo import load_application, save_application
from app.store.models import Application, CompanyData, Director
from app.utils.time import now_iso

CTX_DIRECTOR_PAN = "director_pan"


def _require_company(app: Application) -> None:
    if app.entityType != EntityType.COMPANY.value:
        raise ValidationError("Company verification only for Company entity type")


def _find_director(app: Application, din: str) -> Director:
    for d in (app.company.directors if app.company else []):
        if d.din == din or d.id == din:
            return d
    raise NotFoundError(f"Director with DIN {din} not found", {"din": din})


def _load_for_directors(application_id: str) -> Application:
    app = load_application(application_id)
    _require_company(app)
    require_open(app, StepId.DIRECTORS)
    if not app.company or not app.company.directors:
        raise ValidationError("No directors found. Please verify company first.")
    return app


def company_summary(company: CompanyData) -> dict:
    return {
        "cin": company.cin,
        "llpin": company.llpin,
        "name": company.name,
        "status": company.status,
        "registrationDate": company.registrationDate,
        "registeredAddress": company.registeredAddress,
        "email": company.email,
        "directorsCount": len(company.directors),
        "directors": [
            {"din": d.din, "name": d.name, "designation": d.designation,
             "isSignatory": d.isSignatory, "kycCompleted": d.kycCompleted}
            for d in company.directors
        ],
    }


def verify_company(application_id: str, cin: Optional[str] = None, llpin: Optional[str] = None) -> dict:
    identifier = (cin or llpin or "").strip()
    if not identifier:
        raise ValidationError("CIN or LLPIN is required")

    app = load_application(application_id)
    _require_company(app)
    require_open(app, StepId.COMPANY_VERIFICATION)

    facts = normalize_company(get_sandbox_client().verify_company_master_data(identifier))
    if not facts.active:
        ensure_not_blocked(
            DecisionResult(
                decision=Decision.BLOCK,
                warnings=[f'Company status is "{facts.status}". Only Active companies are allowed.'],
            ),
            identifier=identifier,
        )

    active = [d for d in facts.directors if not d.ceased]
    if not active:
        raise ValidationError("No active directors found in MCA records", {"identifier": identifier})

    directors = [
        Director(
            id=d.din,
            din=d.din,
            name=d.name,
            designation=d.designation,
            beginDate=d.beginDate,
            endDate=d.endDate,
            isSignatory=i == 0,
        )
        for i, d in enumerate(active)
    ]
    app.company = CompanyData(
        cin=facts.cin,
        llpin=facts.llpin,
        name=facts.name,
        status=facts.status,
        registrationDate=facts.registrationDate,
        registeredAddress=facts.registeredAddress,
        email=facts.email,
        authorizedCapital=facts.authorizedCapital,
        paidUpCapital=facts.paidUpCapital,
        verifiedAt=now_iso(),
        directors=directors,
    )
    if facts.isLlp:
        app.companySubType = CompanySubType.LLP.value
    save_application(app)
    log(event="company_verified", applicationId=app.id, identifier=identifier, directors=len(directors))
    return {"verified": True, "companyData": company_summary(app.company)}


def get_company(application_id: str) -> dict:
    app = load_application(application_id)
    _require_company(app)
    if not app.company:
        raise NotFoundError("Company not verified yet")
    return company_summary(app.company)


def complete_company_verification(application_id: str) -> dict:
    app = load_application(application_id)
    _require_company(app)
    require_enterable(app, StepId.COMPANY_VERIFICATION)
    if not app.company or not app.company.name:
        raise IncompleteStepError("Please verify company first")
    mark_complete(app, StepId.COMPANY_VERIFICATION)
    save_application(app)
    log(event="step_completed", applicationId=app.id, step=StepId.COMPANY_VERIFICATION.value, status=app.status)
    return {"completed": True, "status": app.status}


def list_directors(application_id: str) -> dict:
    app = load_application(application_id)
    _require_company(app)
    if not app.company:
        raise ValidationError("Please verify company first")
    directors = app.company.directors
    pending = sum(1 for d in directors if not d.kycCompleted)
    return {
        "directors": [
            {**subject_flows.subject_summary(d), "din": d.din, "designation": d.designation,
             "isSignatory": d.isSignatory}
            for d in directors
        ],
        "total": len(directors),
        "kycCompleted": len(directors) - pending,
        "kycPending": pending,
    }


def initiate_director_kyc(application_id: str, din: str, aadhaar_number: str) -> dict:
    app = _load_for_directors(application_id)
    director = _find_director(app, din)
    return subject_flows.start_aadhaar_otp(app.id, director, aadhaar_number, "director")


def verify_director_otp(application_id: str, din: str, reference_id: str, otp: str) -> dict:
    app = _load_for_directors(application_id)
    director = _find_director(app, din)
    subject_flows.finish_aadhaar_otp(app.id, director, reference_id, otp, "director")
    save_application(app)
    return {"verified": True, "din": director.din, "kycState": subject_kyc.kyc_state(director)}


def verify_director_pan(application_id: str, din: str, pan: str,
                        name: Optional[str] = None, dob: Optional[str] = None) -> dict:
    app = _load_for_directors(application_id)
    director = _find_director(app, din)
    facts, result = subject_flows.check_pan(
        director, pan, lambda f: subject_pan_decision(f, "Director"), name=name, dob=dob,
    )
    if result.blocked:
        publish_decision(app.id, CTX_DIRECTOR_PAN, result, director.id)
    record = subject_kyc.complete_pan(director, facts, result, CTX_DIRECTOR_PAN)
    save_application(app)
    publish_decision(app.id, CTX_DIRECTOR_PAN, result, director.id)
    return {
        "verified": True,
        "din": director.din,
        "kycCompleted": director.kycCompleted,
        "decision": result.decision.value,
        "flaggedForReview": result.flagged,
        "warnings": list(result.warnings),
        "crossValidation": asdict(record),
    }


def complete_directors(application_id: str) -> dict:
    app = load_application(application_id)
    _require_company(app)
    require_enterable(app, StepId.DIRECTORS)
    if not app.company or not app.company.directors:
        raise IncompleteStepError("No directors found")
    pending = sum(1 for d in app.company.directors if not d.kycCompleted)
    if pending:
        raise IncompleteStepError(
            f"{pending} director(s) have not completed KYC",
            {"kycPendingCount": pending},
        )
    mark_complete(app, StepId.DIRECTORS)
    save_application(app)
    log(event="step_completed", applicationId=app.id, step=StepId.DIRECTORS.value, status=app.status)
    return {"completed": True, "status": app.status}
