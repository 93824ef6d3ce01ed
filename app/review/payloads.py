from typing import Optional

from app.store.models import Application, CrossValidationRecord
from app.utils.time import now_iso

PAYLOAD_VERSION = "1.0"


def find_record(app: Application, context: str, subject_id: Optional[str]) -> Optional[CrossValidationRecord]:
    """Locate the cross-validation record a review notification refers to."""
    if context == "bank_kyc":
        return app.bank.crossValidation if app.bank else None
    if context == "pan_aadhaar":
        return app.kyc.crossValidation.get(context)
    subjects = []
    if context == "partner_pan":
        subjects = app.partners
    elif context == "director_pan" and app.company:
        subjects = app.company.directors
    for s in subjects:
        if s.id == subject_id and s.kycData:
            return s.kycData.crossValidation.get(context)
    return None


def build_review_payload(app: Application, context: str, subject_id: Optional[str] = None) -> dict:
    record = find_record(app, context, subject_id)
    return {
        "version": PAYLOAD_VERSION,
        "applicationId": app.id,
        "entityType": app.entityType,
        "status": app.status,
        "context": context,
        "subjectId": subject_id,
        "decision": record.decision if record else None,
        "warnings": list(record.warnings) if record else [],
        "score": record.score if record else None,
        "checkedAt": record.checkedAt if record else None,
        "sentAt": now_iso(),
    }
