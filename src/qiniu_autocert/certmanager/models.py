"""Certificate-specific data models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .errors import OrchestrationError


def normalize_domain(v: str) -> str:
    """Strip and lower-case a hostname, rejecting obviously invalid ones."""
    v = v.strip()
    if not v or '.' not in v:
        raise ValueError('Invalid domain format')
    if v.startswith('.') or v.endswith('.'):
        raise ValueError('Domain cannot start or end with a dot')
    if not all(c.isalnum() or c in '-.' for c in v):
        raise ValueError(f'Invalid domain: {v}')
    return v.lower()


class CertificateRecord(BaseModel):
    """An issued certificate with its private key and metadata."""
    common_name: str
    email: str
    certificate_chain: str        # PEM, leaf first
    private_key: str              # PEM
    not_before: datetime
    not_after: datetime
    cert_url: Optional[str] = None      # Issuer-assigned certificate URL
    fingerprint: Optional[str] = None
    cdn_cert_id: Optional[str] = None   # Set once uploaded to the CDN

    @field_validator('common_name')
    @classmethod
    def validate_common_name(cls, v: str) -> str:
        return normalize_domain(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_serializer('not_before', 'not_after')
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class DomainHttpsState(BaseModel):
    """HTTPS configuration of a CDN domain."""
    domain: str
    active_cert_id: str = ""  # Empty when HTTPS is not enabled
    force_https: bool = False

    @property
    def https_enabled(self) -> bool:
        return bool(self.active_cert_id)


class CdnCertInfo(BaseModel):
    """A certificate as reported by the CDN."""
    cert_id: str
    name: str = ""
    common_name: str = ""
    dns_names: List[str] = Field(default_factory=list)
    not_before: Optional[datetime] = None
    not_after: datetime


class OrchestrationAction(str, Enum):
    """What a single orchestration run did."""
    NOOP = "noop"            # Certificate still valid
    ISSUED = "issued"        # First certificate, HTTPS enabled
    RENEWED = "renewed"      # Renewed from the local record
    REISSUED = "reissued"    # Renewal unavailable, fresh issuance instead


class OrchestrationResult(BaseModel):
    """Outcome of ``RenewalOrchestrator.ensure_valid_certificate``."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    domain: str
    action: Optional[OrchestrationAction] = None
    cert_id: Optional[str] = None
    previous_cert_id: Optional[str] = None
    not_after: Optional[datetime] = None
    error: Optional[OrchestrationError] = None
    warnings: List[OrchestrationError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def summary(self) -> str:
        """One-line description for logs."""
        if self.error is not None:
            return f"{self.domain}: {self.error}"
        if self.action == OrchestrationAction.NOOP:
            return f"{self.domain}: certificate {self.cert_id} valid until {self.not_after}, nothing to do"
        text = f"{self.domain}: {self.action.value} certificate {self.cert_id}"
        if self.previous_cert_id:
            text += f" (replaced {self.previous_cert_id})"
        if self.warnings:
            text += f" with {len(self.warnings)} warning(s)"
        return text
