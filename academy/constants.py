from enum import Enum


class CredentialType(str, Enum):
    COURSE = "COURSE"
    WEBINAR = "WEBINAR"
    MENTORSHIP = "MENTORSHIP"
    GUIDANCE = "GUIDANCE"
    OFFLINE_BATCH = "OFFLINE_BATCH"
    BUNDLE = "BUNDLE"

    @classmethod
    def parse(cls, value) -> "CredentialType":
        if isinstance(value, cls):
            return value
        cleaned = (str(value or "")).strip().upper()
        try:
            return cls(cleaned)
        except ValueError:
            raise ValueError(f"Unsupported credential type: {value!r}") from None


class CertificateStatus(str, Enum):
    GENERATED = "GENERATED"
    REVOKED = "REVOKED"


CREDENTIAL_TYPE_LABELS = {
    CredentialType.COURSE: "Course",
    CredentialType.WEBINAR: "Webinar",
    CredentialType.MENTORSHIP: "Mentorship Program",
    CredentialType.GUIDANCE: "1:1 Guidance Session",
    CredentialType.OFFLINE_BATCH: "Offline Training",
    CredentialType.BUNDLE: "Course Bundle",
}

# A chapter at or above this watched percentage counts as completed.
COMPLETION_THRESHOLD_PERCENT = 90

DEFAULT_WEBINAR_DURATION_MINUTES = 60

DEFAULT_PRIMARY_COLOR = "#6366F1"
DEFAULT_SECONDARY_COLOR = "#A5B4FC"
DEFAULT_ISSUER_NAME = "Shrestha Academy"
DEFAULT_ISSUER_TITLE = "Platform Director"
DEFAULT_FOOTER_TEXT = (
    "This certificate verifies the successful completion of the "
    "above-mentioned program."
)

CERTIFICATE_CONTENT_TYPE = "application/pdf"
