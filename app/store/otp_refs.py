"""
Aadhaar OTP reference ids.

The provider hands back a reference id per OTP. We bind it to the application,
the subject (primary applicant, partner or director) and the Aadhaar number's
last four digits. Verification looks the reference up, asks the provider, and
only a successful OTP check consumes it, so a mistyped OTP can be retried.
Deleting is the claim: of two racing verifications only one sees DEL return 1.
A reference id issued for one subject is simply not found under another
subject's key.
"""
import json
from dataclasses import dataclass
from typing import Optional

from app.core.errors import ValidationError
from app.settings import settings
from app.store.redis_conn import get_redis

PREFIX = "otpref:"

PRIMARY_SUBJECT = "primary"

INVALID_REFERENCE = "Invalid or expired reference. Please request a new OTP."


@dataclass(frozen=True)
class OtpReference:
    referenceId: str
    applicationId: str
    subjectId: str
    aadhaarLast4: str


def _key(application_id: str, subject_id: str, reference_id: str) -> str:
    return f"{PREFIX}{application_id}:{subject_id}:{reference_id}"


def remember_reference(reference_id: str, application_id: str, subject_id: str,
                       aadhaar_number: str, ttl_sec: Optional[int] = None) -> OtpReference:
    ref = OtpReference(
        referenceId=str(reference_id),
        applicationId=application_id,
        subjectId=subject_id,
        aadhaarLast4=str(aadhaar_number)[-4:],
    )
    r = get_redis()
    r.set(
        _key(application_id, subject_id, ref.referenceId),
        json.dumps(ref.__dict__),
        ex=int(ttl_sec or settings.OTP_REFERENCE_TTL_SEC),
    )
    return ref


def get_reference(reference_id: str, application_id: str, subject_id: str) -> OtpReference:
    raw = get_redis().get(_key(application_id, subject_id, str(reference_id)))
    if not raw:
        raise ValidationError(INVALID_REFERENCE, {"referenceId": str(reference_id)})
    return OtpReference(**json.loads(raw))


def consume_reference(ref: OtpReference) -> None:
    """Retire a reference after the provider accepted its OTP."""
    deleted = get_redis().delete(_key(ref.applicationId, ref.subjectId, ref.referenceId))
    if not deleted:
        raise ValidationError(INVALID_REFERENCE, {"referenceId": ref.referenceId})
