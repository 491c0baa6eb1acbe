"""Certificate lifecycle orchestration for a CDN domain.

One call to ``ensure_valid_certificate`` brings a domain to a state where the
CDN serves a certificate valid for more than the renewal threshold:

* HTTPS not enabled: obtain, upload, enable HTTPS with forced redirect.
* Certificate expiring: renew (or obtain when renewal is not possible),
  upload, rebind the domain, then delete the replaced certificate.
* Otherwise nothing happens.

The domain is always rebound before the old certificate is deleted, so the
CDN never references a deleted certificate. Every run starts from the CDN's
current state, so an interrupted run is repaired by the next one.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple, Type

from .errors import (
    BindError,
    CleanupError,
    FatalQueryError,
    IssuanceError,
    OrchestrationError,
    PersistError,
    RenewalError,
    Stage,
    UploadError,
)
from .interfaces import CdnController, CertificateAuthority, CertificateStore
from .models import (
    CertificateRecord,
    DomainHttpsState,
    OrchestrationAction,
    OrchestrationResult,
    normalize_domain,
)

logger = logging.getLogger(__name__)

DEFAULT_RENEW_BEFORE = timedelta(days=7)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RenewalOrchestrator:
    """Keeps one CDN domain bound to a valid certificate."""

    def __init__(
        self,
        cdn: CdnController,
        authority: CertificateAuthority,
        store: CertificateStore,
        renew_before: timedelta = DEFAULT_RENEW_BEFORE,
        force_https: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.cdn = cdn
        self.authority = authority
        self.store = store
        self.renew_before = renew_before
        self.force_https = force_https
        self.clock = clock

    def ensure_valid_certificate(self, domain: str, contact_email: str) -> OrchestrationResult:
        """Run one check for ``domain``; failures are returned, not raised."""
        domain = normalize_domain(domain)
        result = OrchestrationResult(domain=domain)
        try:
            state = self._call(Stage.QUERY_DOMAIN, FatalQueryError, self.cdn.get_domain_https_state, domain)
            if state.https_enabled:
                self._renew_if_due(state, contact_email, result)
            else:
                self._first_issuance(domain, contact_email, result)
        except OrchestrationError as e:
            logger.error(f"Certificate check for {domain} aborted: {e}")
            result.error = e
        return result

    def _first_issuance(self, domain: str, contact_email: str, result: OrchestrationResult):
        logger.info(f"HTTPS is not enabled for {domain}, issuing first certificate")

        record = self._call(Stage.ISSUE, IssuanceError, self.authority.obtain, domain, contact_email)
        cert_id = self._call(Stage.UPLOAD, UploadError, self.cdn.upload_certificate, record)
        self._call(Stage.ENABLE_HTTPS, BindError, self.cdn.enable_https, domain, cert_id, self.force_https)

        result.action = OrchestrationAction.ISSUED
        self._finish(domain, record, cert_id, result)

    def _renew_if_due(self, state: DomainHttpsState, contact_email: str, result: OrchestrationResult):
        domain = state.domain
        old_cert_id = state.active_cert_id

        info = self._call(Stage.QUERY_CERT, FatalQueryError, self.cdn.get_cert_info, old_cert_id)
        remaining = info.not_after - self.clock()
        if remaining > self.renew_before:
            logger.info(f"Certificate {old_cert_id} for {domain} expires in {remaining.days} days, no renewal needed")
            result.action = OrchestrationAction.NOOP
            result.cert_id = old_cert_id
            result.not_after = info.not_after
            return

        logger.info(f"Certificate {old_cert_id} for {domain} expires in {remaining.days} days, renewing")
        record, action = self._renew_or_obtain(domain, contact_email, result)

        cert_id = self._call(Stage.UPLOAD, UploadError, self.cdn.upload_certificate, record)
        # Rebind first: the old certificate stays bound until this succeeds
        self._call(Stage.REBIND, BindError, self.cdn.update_https_cert_id, domain, cert_id, state.force_https)

        if cert_id != old_cert_id:
            try:
                self._call(Stage.CLEANUP, CleanupError, self.cdn.delete_certificate, old_cert_id)
            except CleanupError as e:
                logger.warning(f"{domain} now uses {cert_id}, but the old certificate was not removed: {e}")
                result.warnings.append(e)

        result.action = action
        result.previous_cert_id = old_cert_id
        self._finish(domain, record, cert_id, result)

    def _renew_or_obtain(self, domain: str, contact_email: str,
                         result: OrchestrationResult) -> Tuple[CertificateRecord, OrchestrationAction]:
        """Renew from the stored record, falling back to fresh issuance."""
        prior = self._load_prior(domain)
        if prior is not None:
            try:
                return self._call(Stage.RENEW, RenewalError, self.authority.renew, prior), OrchestrationAction.RENEWED
            except RenewalError as e:
                logger.warning(f"Renewal for {domain} failed, issuing a new certificate instead: {e}")
                result.warnings.append(e)
        else:
            logger.info(f"No stored certificate for {domain}, issuing a new one")

        record = self._call(Stage.ISSUE, IssuanceError, self.authority.obtain, domain, contact_email)
        return record, OrchestrationAction.REISSUED

    def _load_prior(self, domain: str) -> Optional[CertificateRecord]:
        try:
            return self.store.load(domain)
        except Exception as e:
            logger.warning(f"Could not load stored certificate for {domain}: {e}")
            return None

    def _finish(self, domain: str, record: CertificateRecord, cert_id: str, result: OrchestrationResult):
        """Record the outcome and persist the record as the next renewal hint."""
        record = record.model_copy(update={'cdn_cert_id': cert_id})
        result.cert_id = cert_id
        result.not_after = record.not_after
        try:
            self._call(Stage.PERSIST, PersistError, self.store.save, domain, record)
        except PersistError as e:
            logger.warning(f"{domain} is served by {cert_id}, but the certificate could not be saved locally: {e}")
            result.warnings.append(e)

    @staticmethod
    def _call(stage: Stage, error_cls: Type[OrchestrationError], func, *args):
        """Run one collaborator call, wrapping any failure with its stage."""
        try:
            return func(*args)
        except Exception as e:
            raise error_cls(stage, str(e) or type(e).__name__) from e
