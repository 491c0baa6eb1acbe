"""Collaborator interfaces consumed by the renewal orchestrator."""

from typing import Optional, Protocol

from .models import CdnCertInfo, CertificateRecord, DomainHttpsState


class CertificateAuthority(Protocol):
    """Issues certificates (ACME in production)."""

    def obtain(self, domain: str, contact_email: str) -> CertificateRecord:
        """Validate ``domain`` and issue a brand-new certificate."""
        ...

    def renew(self, prior: CertificateRecord) -> CertificateRecord:
        """Best-effort renewal of ``prior``; may fail for legitimate reasons."""
        ...


class CdnController(Protocol):
    """Domain and certificate operations against the CDN vendor."""

    def get_domain_https_state(self, domain: str) -> DomainHttpsState:
        ...

    def get_cert_info(self, cert_id: str) -> CdnCertInfo:
        ...

    def upload_certificate(self, record: CertificateRecord) -> str:
        """Upload ``record`` and return the vendor certificate id."""
        ...

    def enable_https(self, domain: str, cert_id: str, force_https: bool = True) -> None:
        ...

    def update_https_cert_id(self, domain: str, cert_id: str, force_https: bool = True) -> None:
        ...

    def delete_certificate(self, cert_id: str) -> None:
        ...


class CertificateStore(Protocol):
    """Local persistence for certificate records and ACME account keys."""

    def load(self, domain: str) -> Optional[CertificateRecord]:
        ...

    def save(self, domain: str, record: CertificateRecord) -> None:
        ...

    def delete(self, domain: str) -> bool:
        ...

    def get_account_key(self, provider: str, email: str) -> Optional[str]:
        ...

    def store_account_key(self, provider: str, email: str, key_pem: str) -> None:
        ...
