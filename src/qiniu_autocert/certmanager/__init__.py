"""Certificate lifecycle component."""

from .acme_client import ACMEAuthority
from .dns import LexiconDnsSolver
from .errors import AutoCertError, CdnError, AuthorityError, StoreError, OrchestrationError, Stage
from .models import CertificateRecord, DomainHttpsState, CdnCertInfo, OrchestrationAction, OrchestrationResult
from .orchestrator import RenewalOrchestrator
from .scheduler import CertificateScheduler, SchedulerState
from .storage import FileCertificateStore, RedisCertificateStore

__all__ = [
    'ACMEAuthority',
    'LexiconDnsSolver',
    'AutoCertError',
    'CdnError',
    'AuthorityError',
    'StoreError',
    'OrchestrationError',
    'Stage',
    'CertificateRecord',
    'DomainHttpsState',
    'CdnCertInfo',
    'OrchestrationAction',
    'OrchestrationResult',
    'RenewalOrchestrator',
    'CertificateScheduler',
    'SchedulerState',
    'FileCertificateStore',
    'RedisCertificateStore',
]
