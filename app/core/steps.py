"""
Entity step policy
------------------
Fixed per-entity-type tables: which onboarding steps apply and in what order,
which documents are required, and whose KYC name the bank account must match.

Every table is keyed by the closed EntityType enum and checked for coverage at
import time, so adding an entity type without updating a table fails loudly.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Tuple, Union

from app.core.errors import ConfigError


class EntityType(str, Enum):
    INDIVIDUAL = "individual"
    PROPRIETORSHIP = "proprietorship"
    PARTNERSHIP = "partnership"
    COMPANY = "company"


class CompanySubType(str, Enum):
    PVT_LTD = "pvt_ltd"
    LLP = "llp"
    OPC = "opc"


class StepId(str, Enum):
    KYC = "kyc"
    PAN = "pan"
    BANK = "bank"
    REFERENCES = "references"
    DOCUMENTS = "documents"
    PARTNERS = "partners"
    COMPANY_VERIFICATION = "company_verification"
    DIRECTORS = "directors"
    AGREEMENT = "agreement"


# Terminal statuses
COMPLETED = "completed"
REJECTED = "rejected"
TERMINAL_STATUSES = (COMPLETED, REJECTED)

# Whose KYC-verified name is compared with the bank registry name
BANK_SUBJECT_PRIMARY = "primary"
BANK_SUBJECT_LEAD_PARTNER = "lead_partner"
BANK_SUBJECT_SIGNATORY_DIRECTOR = "signatory_director"


STEP_PLANS: Dict[EntityType, Tuple[StepId, ...]] = {
    EntityType.INDIVIDUAL: (
        StepId.KYC, StepId.BANK, StepId.REFERENCES, StepId.AGREEMENT,
    ),
    EntityType.PROPRIETORSHIP: (
        StepId.KYC, StepId.BANK, StepId.REFERENCES, StepId.DOCUMENTS, StepId.AGREEMENT,
    ),
    EntityType.PARTNERSHIP: (
        StepId.PARTNERS, StepId.BANK, StepId.DOCUMENTS, StepId.REFERENCES, StepId.AGREEMENT,
    ),
    EntityType.COMPANY: (
        StepId.COMPANY_VERIFICATION, StepId.DIRECTORS, StepId.BANK, StepId.DOCUMENTS, StepId.AGREEMENT,
    ),
}

STEP_LABELS: Dict[StepId, str] = {
    StepId.KYC: "KYC Verification",
    StepId.PAN: "PAN Verification",
    StepId.BANK: "Bank Verification",
    StepId.REFERENCES: "References",
    StepId.DOCUMENTS: "Documents",
    StepId.PARTNERS: "Partner Details",
    StepId.COMPANY_VERIFICATION: "Company Verification",
    StepId.DIRECTORS: "Director KYC",
    StepId.AGREEMENT: "Agreement",
}

DOCUMENT_TYPES = (
    "gst_certificate",
    "udyam_registration",
    "shop_act_license",
    "partnership_deed",
    "certificate_of_incorporation",
    "memorandum_of_association",
    "articles_of_association",
    "board_resolution",
    "photo",
    "cancelled_cheque",
    "address_proof",
)

# (document type, label, required)
REQUIRED_DOCUMENTS: Dict[EntityType, List[Tuple[str, str, bool]]] = {
    EntityType.INDIVIDUAL: [
        ("photo", "Passport Size Photo", True),
        ("cancelled_cheque", "Cancelled Cheque", True),
    ],
    EntityType.PROPRIETORSHIP: [
        ("shop_act_license", "Shop Act License", True),
        ("gst_certificate", "GST Certificate", False),
        ("udyam_registration", "Udyam Registration", False),
    ],
    EntityType.PARTNERSHIP: [
        ("partnership_deed", "Partnership Deed", True),
        ("gst_certificate", "GST Certificate", True),
        ("address_proof", "Address Proof", True),
        ("udyam_registration", "Udyam Registration", False),
    ],
    EntityType.COMPANY: [
        ("certificate_of_incorporation", "Certificate of Incorporation", True),
        ("memorandum_of_association", "Memorandum of Association (MOA)", True),
        ("articles_of_association", "Articles of Association (AOA)", True),
        ("board_resolution", "Board Resolution", True),
        ("cancelled_cheque", "Cancelled Cheque", True),
        ("gst_certificate", "GST Certificate", False),
    ],
}

BANK_SUBJECTS: Dict[EntityType, str] = {
    EntityType.INDIVIDUAL: BANK_SUBJECT_PRIMARY,
    EntityType.PROPRIETORSHIP: BANK_SUBJECT_PRIMARY,
    EntityType.PARTNERSHIP: BANK_SUBJECT_LEAD_PARTNER,
    EntityType.COMPANY: BANK_SUBJECT_SIGNATORY_DIRECTOR,
}

ALLOWED_SUB_TYPES: Dict[EntityType, Tuple[CompanySubType, ...]] = {
    EntityType.INDIVIDUAL: (),
    EntityType.PROPRIETORSHIP: (),
    EntityType.PARTNERSHIP: (),
    EntityType.COMPANY: tuple(CompanySubType),
}


def _check_coverage() -> None:
    for name, table in (
        ("STEP_PLANS", STEP_PLANS),
        ("REQUIRED_DOCUMENTS", REQUIRED_DOCUMENTS),
        ("BANK_SUBJECTS", BANK_SUBJECTS),
        ("ALLOWED_SUB_TYPES", ALLOWED_SUB_TYPES),
    ):
        missing = set(EntityType) - set(table.keys())
        if missing:
            raise ConfigError(f"{name} has no entry for {sorted(m.value for m in missing)}")


_check_coverage()


def coerce_entity_type(entity_type: Union[EntityType, str, None]) -> EntityType:
    if isinstance(entity_type, EntityType):
        return entity_type
    try:
        return EntityType(str(entity_type or "").strip().lower())
    except ValueError:
        raise ConfigError(f"Unknown entity type: {entity_type!r}", {"entityType": entity_type})


def steps_for(entity_type: Union[EntityType, str]) -> Tuple[StepId, ...]:
    return STEP_PLANS[coerce_entity_type(entity_type)]


def required_documents(entity_type: Union[EntityType, str]) -> List[Tuple[str, str, bool]]:
    return list(REQUIRED_DOCUMENTS[coerce_entity_type(entity_type)])


def bank_subject_kind(entity_type: Union[EntityType, str]) -> str:
    return BANK_SUBJECTS[coerce_entity_type(entity_type)]


def allowed_sub_types(entity_type: Union[EntityType, str]) -> Tuple[CompanySubType, ...]:
    return ALLOWED_SUB_TYPES[coerce_entity_type(entity_type)]


def step_label(step: Union[StepId, str]) -> str:
    return STEP_LABELS.get(StepId(step), str(step))
