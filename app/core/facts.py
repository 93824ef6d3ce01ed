"""Normalized provider facts consumed by the decision tables and orchestrators."""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class PanCheckFacts:
    pan: str
    nameMatch: Optional[bool]
    dobMatch: Optional[bool]
    aadhaarSeedingStatus: Optional[str]  # y / n / na
    category: Optional[str]
    remarks: Optional[str] = None
    status: str = "valid"


@dataclass(frozen=True)
class AadhaarOtpFacts:
    referenceId: str
    message: str = ""


@dataclass(frozen=True)
class AadhaarIdentity:
    name: str
    dob: str
    gender: str = ""
    address: str = ""
    photo: Optional[str] = None


@dataclass(frozen=True)
class IfscFacts:
    ifsc: str
    bankName: str
    branchName: str
    impsSupported: bool


@dataclass(frozen=True)
class BankAccountFacts:
    accountExists: bool
    nameAtBank: str
    message: str = ""


@dataclass(frozen=True)
class RegistryDirector:
    din: str
    name: str
    designation: str = ""
    beginDate: str = ""
    endDate: str = ""

    @property
    def ceased(self) -> bool:
        end = (self.endDate or "").strip()
        return bool(end) and end != "-"


@dataclass(frozen=True)
class CompanyRegistryFacts:
    isLlp: bool
    name: str
    status: str
    cin: Optional[str] = None
    llpin: Optional[str] = None
    registrationDate: str = ""
    registeredAddress: str = ""
    email: str = ""
    authorizedCapital: Optional[str] = None
    paidUpCapital: Optional[str] = None
    directors: List[RegistryDirector] = field(default_factory=list)

    @property
    def active(self) -> bool:
        s = (self.status or "").lower()
        return "active" in s and "inactive" not in s
