from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.api.auth import require_api_key
from app.api.routes import ok
from app.api import schemas
from app.core import company

router = APIRouter(
    prefix="/api/applications/{application_id}",
    tags=["company"],
    dependencies=[Depends(require_api_key)],
)


@router.post("/company/verify")
async def verify_company(application_id: str, body: schemas.CompanyVerifyRequest):
    out = await run_in_threadpool(company.verify_company, application_id, body.cin, body.llpin)
    return ok(out, "Company verified successfully")


@router.get("/company")
def get_company(application_id: str):
    return ok(company.get_company(application_id))


@router.post("/company/complete")
def complete_company_verification(application_id: str):
    return ok(company.complete_company_verification(application_id), "Company verification completed")


@router.get("/directors")
def list_directors(application_id: str):
    return ok(company.list_directors(application_id))


@router.post("/directors/{din}/kyc/send-otp")
async def initiate_director_kyc(application_id: str, din: str, body: schemas.AadhaarOtpRequest):
    out = await run_in_threadpool(company.initiate_director_kyc, application_id, din, body.aadhaarNumber)
    return ok(out, "OTP sent to Aadhaar-linked mobile number")


@router.post("/directors/{din}/kyc/verify-otp")
async def verify_director_otp(application_id: str, din: str, body: schemas.AadhaarVerifyRequest):
    out = await run_in_threadpool(company.verify_director_otp, application_id, din, body.referenceId, body.otp)
    return ok(out, "Aadhaar verified successfully")


@router.post("/directors/{din}/kyc/pan")
async def verify_director_pan(application_id: str, din: str, body: schemas.SubjectPanRequest):
    out = await run_in_threadpool(
        company.verify_director_pan, application_id, din, body.pan, body.name, body.dob,
    )
    return ok(out, "Director KYC completed")


@router.post("/directors/complete")
def complete_directors(application_id: str):
    return ok(company.complete_directors(application_id), "Directors step completed")
