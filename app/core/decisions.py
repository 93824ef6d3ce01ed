"""
Verification decision tables
----------------------------
Pure functions mapping normalized provider facts to approve / flag / block.

  bank_name_decision          bank registry name vs KYC name
  primary_pan_decision        primary applicant PAN vs Aadhaar
  subject_pan_decision        partner/director standalone PAN check
  partner_strict_pan_decision partner in-flow PAN check (strict on name)

Outcomes are data. A block is only turned into an exception by the state
machine when someone tries to advance on it. Missing facts never approve:
they raise MissingUpstreamFactError.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from app.core.errors import MissingUpstreamFactError, ValidationError
from app.core.facts import PanCheckFacts
from app.core.matcher import MatchResult, score as match_score
from app.core.steps import EntityType, coerce_entity_type
from app.settings import settings


class Decision(str, Enum):
    APPROVE = "approve"
    FLAG = "flag"
    BLOCK = "block"


@dataclass(frozen=True)
class DecisionResult:
    decision: Decision
    warnings: List[str] = field(default_factory=list)
    score: Optional[int] = None
    method: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.decision == Decision.BLOCK

    @property
    def flagged(self) -> bool:
        return self.decision == Decision.FLAG

    @property
    def reason(self) -> str:
        return self.warnings[0] if self.warnings else ""


# Registry remarks that make a PAN unusable regardless of any match
FATAL_PAN_REMARKS = ("deceased", "deleted", "liquidated", "merger")

SEEDING_LINKED = "y"
SEEDING_NOT_LINKED = "n"
SEEDING_UNAVAILABLE = "na"
_SEEDING_VALUES = (SEEDING_LINKED, SEEDING_NOT_LINKED, SEEDING_UNAVAILABLE)


def _block(msg: str, **kw) -> DecisionResult:
    return DecisionResult(decision=Decision.BLOCK, warnings=[msg], **kw)


def _from_warnings(warnings: List[str], **kw) -> DecisionResult:
    if warnings:
        return DecisionResult(decision=Decision.FLAG, warnings=warnings, **kw)
    return DecisionResult(decision=Decision.APPROVE, warnings=[], **kw)


# ---------------------------------------------------------------------------
# Bank account holder name
# ---------------------------------------------------------------------------
def bank_score_decision(result: MatchResult, kyc_name: str = "", bank_name: str = "") -> DecisionResult:
    block_at = int(settings.NAME_MATCH_BLOCK_THRESHOLD)
    flag_at = int(settings.NAME_MATCH_FLAG_THRESHOLD)
    s = int(result.score)
    if s < block_at:
        return _block(
            f'Bank account holder name "{bank_name}" does not match your KYC verified name '
            f'"{kyc_name}" (Match: {s}%). Please use a bank account registered in your own name.',
            score=s, method=result.method,
        )
    if s < flag_at:
        return DecisionResult(
            decision=Decision.FLAG,
            warnings=[f"Bank account holder name match ({s}%) is below the auto-approval threshold - flagged for manual review"],
            score=s, method=result.method,
        )
    return DecisionResult(decision=Decision.APPROVE, warnings=[], score=s, method=result.method)


def bank_name_decision(kyc_name: str, bank_name: str) -> DecisionResult:
    if not (kyc_name or "").strip():
        raise MissingUpstreamFactError("KYC verified name is unavailable", {"fact": "kycName"})
    if not (bank_name or "").strip():
        raise MissingUpstreamFactError("Bank registry did not return an account holder name", {"fact": "nameAtBank"})
    return bank_score_decision(match_score(kyc_name, bank_name), kyc_name=kyc_name, bank_name=bank_name)


# ---------------------------------------------------------------------------
# Shared PAN helpers
# ---------------------------------------------------------------------------
def _require(facts: PanCheckFacts, *names: str) -> None:
    for n in names:
        if getattr(facts, n) is None:
            raise MissingUpstreamFactError(f"PAN registry response is missing '{n}'", {"fact": n, "pan": facts.pan})


def _seeding(facts: PanCheckFacts) -> str:
    _require(facts, "aadhaarSeedingStatus")
    v = str(facts.aadhaarSeedingStatus).strip().lower()
    if v not in _SEEDING_VALUES:
        raise ValidationError(f"Unknown Aadhaar seeding status: {facts.aadhaarSeedingStatus!r}")
    return v


def fatal_remark(facts: PanCheckFacts) -> Optional[str]:
    remarks = (facts.remarks or "").lower()
    for word in FATAL_PAN_REMARKS:
        if word in remarks:
            return word
    return None


def _is_individual_category(facts: PanCheckFacts) -> bool:
    return (facts.category or "").strip().lower() == "individual"


# ---------------------------------------------------------------------------
# Primary applicant PAN
# ---------------------------------------------------------------------------
def primary_pan_decision(facts: PanCheckFacts, entity_type: Union[EntityType, str]) -> DecisionResult:
    et = coerce_entity_type(entity_type)
    _require(facts, "nameMatch", "dobMatch")
    seeding = _seeding(facts)

    if fatal_remark(facts):
        return _block(f"PAN verification failed: {facts.remarks}. This PAN cannot be used.")

    if et == EntityType.INDIVIDUAL:
        _require(facts, "category")
        if not _is_individual_category(facts):
            return _block(
                f'PAN category is "{facts.category}" but your entity type is Individual. '
                "Please use a personal PAN (category: individual)."
            )

    if not facts.nameMatch and not facts.dobMatch:
        return _block(
            "Both Name and Date of Birth in PAN do not match your Aadhaar details. "
            "Please ensure your PAN is registered under your name as per Aadhaar."
        )

    warnings: List[str] = []
    if not facts.nameMatch:
        warnings.append("Name in PAN does not match Aadhaar name - flagged for manual review")
    if not facts.dobMatch:
        warnings.append("Date of birth in PAN does not match Aadhaar DOB - flagged for manual review")
    if seeding == SEEDING_NOT_LINKED:
        warnings.append("PAN is not linked with Aadhaar. Please link your PAN with Aadhaar to avoid issues.")
    if seeding == SEEDING_UNAVAILABLE:
        warnings.append("PAN-Aadhaar linking status is unavailable - flagged for manual review")
    return _from_warnings(warnings)


# ---------------------------------------------------------------------------
# Partner / director PAN
# ---------------------------------------------------------------------------
def subject_pan_decision(facts: PanCheckFacts, subject_label: str = "Partner") -> DecisionResult:
    _require(facts, "nameMatch", "dobMatch", "category")
    seeding = _seeding(facts)

    if fatal_remark(facts):
        return _block(f"{subject_label} PAN verification failed: {facts.remarks}. This PAN cannot be used.")

    # Partners and directors are natural persons
    if not _is_individual_category(facts):
        return _block(
            f'{subject_label} PAN category is "{facts.category}". '
            f"{subject_label}s must use personal PAN (category: individual)."
        )

    if not facts.nameMatch and not facts.dobMatch:
        return _block(
            f"Both Name and Date of Birth for this {subject_label.lower()} do not match PAN records. "
            f"Please verify the {subject_label.lower()} details are correct."
        )

    warnings: List[str] = []
    if not facts.nameMatch:
        warnings.append(f"{subject_label} name does not match PAN records")
    if not facts.dobMatch:
        warnings.append(f"{subject_label} DOB does not match PAN records")
    if seeding == SEEDING_NOT_LINKED:
        warnings.append(f"{subject_label} PAN is not linked with Aadhaar")
    if seeding == SEEDING_UNAVAILABLE:
        warnings.append(f"{subject_label} PAN-Aadhaar linking status unavailable")
    return _from_warnings(warnings)


# ---------------------------------------------------------------------------
# Partner in-flow PAN (strict)
# ---------------------------------------------------------------------------
def partner_strict_pan_decision(facts: PanCheckFacts) -> DecisionResult:
    """
    Name mismatch alone blocks. DOB mismatch and missing Aadhaar linkage are
    reported as concerns but the decision stays approve.
    """
    _require(facts, "nameMatch", "dobMatch")
    seeding = _seeding(facts)

    if fatal_remark(facts):
        return _block(f"PAN verification failed: {facts.remarks}. This PAN cannot be used.")

    if not facts.nameMatch:
        return _block("PAN name does not match Aadhaar name. Please ensure you are using your own PAN card.")

    concerns: List[str] = []
    if not facts.dobMatch:
        concerns.append("Partner DOB does not match PAN records")
    if seeding != SEEDING_LINKED:
        concerns.append("Partner PAN is not linked with Aadhaar")
    return DecisionResult(decision=Decision.APPROVE, warnings=concerns)
