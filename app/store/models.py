from dataclasses import dataclass, field
from typing import List, Optional, Dict

from app.core.steps import StepId


def _default_completed_steps() -> Dict[str, bool]:
    return {s.value: False for s in StepId}


@dataclass
class AadhaarRecord:
    name: str = ""
    maskedNumber: str = ""
    dob: str = ""
    gender: str = ""
    address: str = ""
    photo: Optional[str] = None
    verifiedAt: Optional[str] = None


@dataclass
class PanRecord:
    number: str = ""
    name: str = ""
    category: Optional[str] = None
    nameMatch: Optional[bool] = None
    dobMatch: Optional[bool] = None
    aadhaarSeedingStatus: Optional[str] = None
    linkedWithAadhaar: bool = False
    verified: bool = False
    verifiedAt: Optional[str] = None


@dataclass
class SelfieRecord:
    image: str = ""
    capturedAt: Optional[str] = None


@dataclass
class CrossValidationRecord:
    # Written once per verification attempt; re-verification replaces it wholesale.
    context: str = ""  # pan_aadhaar / bank_kyc / director_pan / partner_pan
    nameMatch: bool = False
    dobMatch: Optional[bool] = None
    score: Optional[int] = None
    decision: str = ""
    warnings: List[str] = field(default_factory=list)
    checkedAt: Optional[str] = None


@dataclass
class KycData:
    method: str = "aadhaar_otp"
    aadhaar: Optional[AadhaarRecord] = None
    pan: Optional[PanRecord] = None
    selfie: Optional[SelfieRecord] = None
    crossValidation: Dict[str, CrossValidationRecord] = field(default_factory=dict)


@dataclass
class BankRecord:
    accountNumber: str = ""
    ifsc: str = ""
    bankName: str = ""
    branchName: str = ""
    accountHolderName: str = ""
    verified: bool = False
    verificationMethod: str = "penniless"
    nameMatchScore: int = 0
    flaggedForReview: bool = False
    verifiedAt: Optional[str] = None
    crossValidation: Optional[CrossValidationRecord] = None


@dataclass
class Reference:
    id: str = ""
    name: str = ""
    mobile: str = ""
    email: Optional[str] = None
    address: str = ""
    verified: bool = False


@dataclass
class UploadedDocument:
    id: str = ""
    type: str = ""
    url: str = ""
    filename: str = ""
    verified: bool = False
    uploadedAt: Optional[str] = None


@dataclass
class Partner:
    id: str = ""
    name: str = ""
    phone: str = ""
    email: Optional[str] = None
    isLeadPartner: bool = False
    photo: Optional[str] = None
    kycCompleted: bool = False
    panNumber: Optional[str] = None
    aadhaarMasked: Optional[str] = None
    kycData: Optional[KycData] = None


@dataclass
class Director:
    id: str = ""  # DIN
    din: str = ""
    name: str = ""
    designation: str = ""
    beginDate: str = ""
    endDate: str = ""
    isSignatory: bool = False
    kycCompleted: bool = False
    panNumber: Optional[str] = None
    aadhaarMasked: Optional[str] = None
    kycData: Optional[KycData] = None


@dataclass
class CompanyData:
    cin: Optional[str] = None
    llpin: Optional[str] = None
    name: str = ""
    status: str = ""
    registrationDate: str = ""
    registeredAddress: str = ""
    email: str = ""
    authorizedCapital: Optional[str] = None
    paidUpCapital: Optional[str] = None
    verifiedAt: Optional[str] = None
    directors: List[Director] = field(default_factory=list)


@dataclass
class BusinessDetails:
    name: str = ""
    address: str = ""
    gstNumber: Optional[str] = None
    udyamNumber: Optional[str] = None


@dataclass
class AgreementRecord:
    signedUrl: str = ""
    completedAt: Optional[str] = None


@dataclass
class Application:
    id: str = ""
    entityType: str = "individual"
    companySubType: Optional[str] = None

    # Always derived by app.core.state_machine.derive_status; never assigned by hand.
    status: str = StepId.KYC.value
    completedSteps: Dict[str, bool] = field(default_factory=_default_completed_steps)

    phone: str = ""
    email: Optional[str] = None

    kyc: KycData = field(default_factory=KycData)
    bank: Optional[BankRecord] = None
    references: List[Reference] = field(default_factory=list)
    documents: List[UploadedDocument] = field(default_factory=list)
    partners: List[Partner] = field(default_factory=list)
    company: Optional[CompanyData] = None
    business: Optional[BusinessDetails] = None
    agreement: Optional[AgreementRecord] = None

    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    completedAt: Optional[str] = None
    rejectedAt: Optional[str] = None
    rejectionReason: Optional[str] = None

    # Optimistic concurrency counter, bumped by every successful save
    version: int = 0

    def __post_init__(self):
        # Older documents may lack newer step keys
        for s in StepId:
            self.completedSteps.setdefault(s.value, False)
