from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, Field

EntityTypeName = Literal["individual", "proprietorship", "partnership", "company"]
CompanySubTypeName = Literal["pvt_ltd", "llp", "opc"]

AADHAAR = r"^\d{12}$"
OTP = r"^\d{6}$"
PAN = r"^[A-Z]{5}[0-9]{4}[A-Z]$"
IFSC = r"^[A-Z]{4}0[A-Z0-9]{6}$"
MOBILE = r"^[6-9]\d{9}$"
DOB = r"^\d{2}/\d{2}/\d{4}$"
ACCOUNT = r"^\d{9,18}$"


class BusinessIn(BaseModel):
    name: str = ""
    address: str = ""
    gstNumber: Optional[str] = None
    udyamNumber: Optional[str] = None


class CreateApplicationRequest(BaseModel):
    entityType: EntityTypeName
    phone: str = Field(pattern=MOBILE)
    email: Optional[str] = None
    companySubType: Optional[CompanySubTypeName] = None
    business: Optional[BusinessIn] = None


class EntityTypeRequest(BaseModel):
    entityType: EntityTypeName
    companySubType: Optional[CompanySubTypeName] = None


class AadhaarOtpRequest(BaseModel):
    aadhaarNumber: str = Field(pattern=AADHAAR)


class AadhaarVerifyRequest(BaseModel):
    referenceId: str = Field(min_length=1)
    otp: str = Field(pattern=OTP)


class PanRequest(BaseModel):
    pan: str = Field(pattern=PAN)


class SubjectPanRequest(BaseModel):
    # Claimed name/DOB default to the subject's Aadhaar values
    pan: str = Field(pattern=PAN)
    name: Optional[str] = None
    dob: Optional[str] = Field(default=None, pattern=DOB)


class SelfieRequest(BaseModel):
    image: str = Field(min_length=1)


class BankRequest(BaseModel):
    accountNumber: str = Field(pattern=ACCOUNT)
    confirmAccountNumber: str = Field(pattern=ACCOUNT)
    ifsc: str = Field(pattern=IFSC)


class ReferenceIn(BaseModel):
    name: str = Field(min_length=2)
    mobile: str = Field(pattern=MOBILE)
    email: Optional[str] = None
    address: str = Field(min_length=5)


class ReferenceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2)
    mobile: Optional[str] = Field(default=None, pattern=MOBILE)
    email: Optional[str] = None
    address: Optional[str] = Field(default=None, min_length=5)


class DocumentIn(BaseModel):
    type: str
    url: str = Field(min_length=1)
    filename: str = ""


class PartnerIn(BaseModel):
    name: str = Field(min_length=2)
    phone: str = Field(pattern=MOBILE)
    email: Optional[str] = None
    isLeadPartner: bool = False


class PartnerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2)
    phone: Optional[str] = Field(default=None, pattern=MOBILE)
    email: Optional[str] = None
    isLeadPartner: Optional[bool] = None


class PhotoRequest(BaseModel):
    photo: str = Field(min_length=1)


class CompanyVerifyRequest(BaseModel):
    cin: Optional[str] = None
    llpin: Optional[str] = None


class AgreementRequest(BaseModel):
    signedUrl: str = Field(min_length=1)


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class ApiResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
