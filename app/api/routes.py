from dataclasses import asdict

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.api.auth import require_api_key
from app.api import schemas
from app.core import orchestrator

router = APIRouter(prefix="/api/applications", tags=["applications"], dependencies=[Depends(require_api_key)])


def ok(data=None, message=None) -> dict:
    out = {"success": True, "data": data}
    if message:
        out["message"] = message
    return out


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_application(body: schemas.CreateApplicationRequest):
    app = orchestrator.create_application(
        body.entityType,
        body.phone,
        email=body.email,
        company_sub_type=body.companySubType,
        business=body.business.model_dump() if body.business else None,
    )
    return ok(orchestrator.application_view(app), "Application created")


@router.get("/{application_id}")
def get_application(application_id: str):
    return ok(orchestrator.application_view(orchestrator.get_application(application_id)))


@router.put("/{application_id}/entity-type")
def update_entity_type(application_id: str, body: schemas.EntityTypeRequest):
    app = orchestrator.update_entity_type(application_id, body.entityType, body.companySubType)
    return ok({"entityType": app.entityType, "companySubType": app.companySubType, "status": app.status})


@router.get("/{application_id}/steps")
def application_steps(application_id: str):
    return ok(orchestrator.application_steps(application_id))


@router.get("/{application_id}/status")
def application_status(application_id: str):
    return ok(orchestrator.application_status(application_id))


# ---------------------------------------------------------------------------
# Primary KYC
# ---------------------------------------------------------------------------
@router.post("/{application_id}/kyc/aadhaar/send-otp")
async def send_aadhaar_otp(application_id: str, body: schemas.AadhaarOtpRequest):
    out = await run_in_threadpool(orchestrator.send_aadhaar_otp, application_id, body.aadhaarNumber)
    return ok(out, "OTP sent to Aadhaar-linked mobile number")


@router.post("/{application_id}/kyc/aadhaar/verify-otp")
async def verify_aadhaar_otp(application_id: str, body: schemas.AadhaarVerifyRequest):
    out = await run_in_threadpool(orchestrator.verify_aadhaar_otp, application_id, body.referenceId, body.otp)
    return ok(out, "Aadhaar verified successfully")


@router.post("/{application_id}/kyc/pan")
async def verify_pan(application_id: str, body: schemas.PanRequest):
    out = await run_in_threadpool(orchestrator.verify_pan, application_id, body.pan)
    return ok(out, "PAN verified successfully")


@router.post("/{application_id}/kyc/selfie")
def upload_selfie(application_id: str, body: schemas.SelfieRequest):
    return ok(orchestrator.upload_selfie(application_id, body.image))


@router.post("/{application_id}/kyc/complete")
def complete_kyc(application_id: str):
    return ok(orchestrator.complete_kyc(application_id), "KYC completed")


# ---------------------------------------------------------------------------
# Bank
# ---------------------------------------------------------------------------
@router.post("/{application_id}/bank/verify")
async def verify_bank(application_id: str, body: schemas.BankRequest):
    out = await run_in_threadpool(
        orchestrator.verify_bank, application_id, body.accountNumber, body.confirmAccountNumber, body.ifsc,
    )
    return ok(out, "Bank account verified successfully")


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------
@router.get("/{application_id}/references")
def list_references(application_id: str):
    return ok(orchestrator.list_references(application_id))


@router.post("/{application_id}/references", status_code=201)
def add_reference(application_id: str, body: schemas.ReferenceIn):
    ref = orchestrator.add_reference(application_id, body.name, body.mobile, body.address, email=body.email)
    return ok(asdict(ref), "Reference added")


@router.put("/{application_id}/references/{reference_id}")
def update_reference(application_id: str, reference_id: str, body: schemas.ReferenceUpdate):
    ref = orchestrator.update_reference(application_id, reference_id, **body.model_dump(exclude_none=True))
    return ok(asdict(ref))


@router.delete("/{application_id}/references/{reference_id}")
def delete_reference(application_id: str, reference_id: str):
    return ok(orchestrator.delete_reference(application_id, reference_id))


@router.post("/{application_id}/references/complete")
def complete_references(application_id: str):
    return ok(orchestrator.complete_references(application_id), "References step completed")


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
@router.get("/{application_id}/documents")
def list_documents(application_id: str):
    return ok(orchestrator.list_documents(application_id))


@router.post("/{application_id}/documents", status_code=201)
def add_document(application_id: str, body: schemas.DocumentIn):
    doc = orchestrator.add_document(application_id, body.type, body.url, body.filename)
    return ok(asdict(doc), "Document uploaded")


@router.delete("/{application_id}/documents/{document_id}")
def delete_document(application_id: str, document_id: str):
    return ok(orchestrator.delete_document(application_id, document_id))


@router.post("/{application_id}/documents/complete")
def complete_documents(application_id: str):
    return ok(orchestrator.complete_documents(application_id), "Documents step completed")


# ---------------------------------------------------------------------------
# Agreement
# ---------------------------------------------------------------------------
@router.post("/{application_id}/agreement/complete")
def complete_agreement(application_id: str, body: schemas.AgreementRequest):
    return ok(orchestrator.complete_agreement(application_id, body.signedUrl), "Application completed")
