from dataclasses import asdict

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.api.auth import require_api_key
from app.api.routes import ok
from app.api import schemas
from app.core import partners
from app.core.orchestrator import strip_blobs

router = APIRouter(
    prefix="/api/applications/{application_id}/partners",
    tags=["partners"],
    dependencies=[Depends(require_api_key)],
)


@router.get("")
def list_partners(application_id: str):
    return ok(partners.list_partners(application_id))


@router.post("", status_code=201)
def add_partner(application_id: str, body: schemas.PartnerIn):
    p = partners.add_partner(application_id, body.name, body.phone, email=body.email, is_lead=body.isLeadPartner)
    return ok(strip_blobs(asdict(p)), "Partner added")


@router.put("/{partner_id}")
def update_partner(application_id: str, partner_id: str, body: schemas.PartnerUpdate):
    p = partners.update_partner(
        application_id, partner_id,
        name=body.name, phone=body.phone, email=body.email, is_lead=body.isLeadPartner,
    )
    return ok(strip_blobs(asdict(p)))


@router.delete("/{partner_id}")
def remove_partner(application_id: str, partner_id: str):
    return ok(partners.remove_partner(application_id, partner_id), "Partner removed")


@router.post("/{partner_id}/photo")
def upload_partner_photo(application_id: str, partner_id: str, body: schemas.PhotoRequest):
    return ok(partners.upload_partner_photo(application_id, partner_id, body.photo))


@router.post("/{partner_id}/kyc/send-otp")
async def initiate_partner_kyc(application_id: str, partner_id: str, body: schemas.AadhaarOtpRequest):
    out = await run_in_threadpool(partners.initiate_partner_kyc, application_id, partner_id, body.aadhaarNumber)
    return ok(out, "OTP sent to Aadhaar-linked mobile number")


@router.post("/{partner_id}/kyc/verify-otp")
async def verify_partner_otp(application_id: str, partner_id: str, body: schemas.AadhaarVerifyRequest):
    out = await run_in_threadpool(
        partners.verify_partner_otp, application_id, partner_id, body.referenceId, body.otp,
    )
    return ok(out, "Aadhaar verified successfully")


@router.post("/{partner_id}/kyc/pan")
async def verify_partner_pan_strict(application_id: str, partner_id: str, body: schemas.PanRequest):
    out = await run_in_threadpool(partners.verify_partner_pan_strict, application_id, partner_id, body.pan)
    return ok(out, "Partner KYC completed")


@router.post("/{partner_id}/verify-pan")
async def verify_partner_pan(application_id: str, partner_id: str, body: schemas.SubjectPanRequest):
    out = await run_in_threadpool(
        partners.verify_partner_pan, application_id, partner_id, body.pan, body.name, body.dob,
    )
    return ok(out, "Partner KYC completed")


@router.post("/complete")
def complete_partners(application_id: str):
    return ok(partners.complete_partners(application_id), "Partners step completed")
