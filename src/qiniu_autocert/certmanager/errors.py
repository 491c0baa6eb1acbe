"""Exception types raised by the certificate lifecycle components."""

from enum import Enum
from typing import Optional


class AutoCertError(Exception):
    """Base class for all qiniu-auto-cert errors."""
    pass


class CdnError(AutoCertError):
    """Raised when a CDN API call fails.

    ``code`` is the vendor status code from the response body, or the HTTP
    status when the body carries none. It is ``None`` for transport failures.
    """

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.code}: {self.message}"


class AuthorityError(AutoCertError):
    """Raised when the certificate authority cannot issue or renew."""
    pass


class StoreError(AutoCertError):
    """Raised when a certificate record cannot be persisted."""
    pass


class Stage(str, Enum):
    """Orchestration stages, used to tag errors."""
    QUERY_DOMAIN = "query_domain"    # Read the domain's HTTPS state
    QUERY_CERT = "query_cert"        # Read the bound certificate
    RENEW = "renew"                  # Renew from the local record
    ISSUE = "issue"                  # Fresh issuance
    UPLOAD = "upload"
    ENABLE_HTTPS = "enable_https"    # First binding
    REBIND = "rebind"                # Swap the bound certificate
    CLEANUP = "cleanup"              # Delete the replaced certificate
    PERSIST = "persist"              # Save the record locally
    UNEXPECTED = "unexpected"        # Bug or unhandled condition


class OrchestrationError(AutoCertError):
    """A failed orchestration stage.

    ``fatal`` errors abort the cycle; the others are reported as warnings.
    """

    fatal = True

    def __init__(self, stage: Stage, message: str):
        super().__init__(f"{stage.value} failed: {message}")
        self.stage = stage
        self.detail = message


class FatalQueryError(OrchestrationError):
    """The current domain or certificate state could not be determined."""
    pass


class IssuanceError(OrchestrationError):
    """The certificate authority could not issue a fresh certificate."""
    pass


class RenewalError(OrchestrationError):
    """Renewal failed; the orchestrator falls back to fresh issuance."""
    fatal = False


class UploadError(OrchestrationError):
    """The new certificate could not be uploaded to the CDN."""
    pass


class BindError(OrchestrationError):
    """The domain could not be pointed at the new certificate."""
    pass


class CleanupError(OrchestrationError):
    """The replaced certificate could not be deleted from the CDN."""
    fatal = False


class PersistError(OrchestrationError):
    """The new certificate could not be saved locally."""
    fatal = False
