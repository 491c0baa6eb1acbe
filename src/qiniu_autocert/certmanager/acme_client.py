"""ACME protocol client issuing certificates through DNS-01 validation."""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import josepy as jose
from acme import challenges, client, errors, messages
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .dns import LexiconDnsSolver
from .errors import AuthorityError
from .interfaces import CertificateStore
from .models import CertificateRecord

logger = logging.getLogger(__name__)

USER_AGENT = 'qiniu-auto-cert/0.1.0'


class ACMEAuthority:
    """Certificate authority backed by an ACME v2 server."""

    def __init__(
        self,
        storage: CertificateStore,
        dns_solver: LexiconDnsSolver,
        directory_url: str,
        key_size: int = 2048,
        order_timeout: int = 300,
    ):
        """Initialize ACME client with storage backend and DNS solver."""
        self.storage = storage
        self.dns_solver = dns_solver
        self.directory_url = directory_url
        self.account_key_size = key_size
        self.cert_key_size = key_size
        self.order_timeout = order_timeout

    def obtain(self, domain: str, contact_email: str) -> CertificateRecord:
        """Issue a certificate for ``domain`` with a fresh private key."""
        logger.info(f"Obtaining new certificate for {domain}")
        cert_key, cert_key_pem = self._generate_rsa_key(self.cert_key_size)
        return self._issue(domain, contact_email, cert_key, cert_key_pem)

    def renew(self, prior: CertificateRecord) -> CertificateRecord:
        """Re-order a certificate for ``prior.common_name`` reusing its key."""
        logger.info(f"Renewing certificate for {prior.common_name}")
        try:
            cert_key = serialization.load_pem_private_key(
                prior.private_key.encode('utf-8'),
                password=None,
            )
        except (ValueError, TypeError) as e:
            raise AuthorityError(f"Stored private key for {prior.common_name} is unusable: {e}") from e
        if not isinstance(cert_key, rsa.RSAPrivateKey):
            raise AuthorityError(f"Stored private key for {prior.common_name} is not an RSA key")
        return self._issue(prior.common_name, prior.email, cert_key, prior.private_key)

    def _generate_rsa_key(self, key_size: int) -> Tuple[rsa.RSAPrivateKey, str]:
        """Generate RSA key pair."""
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=key_size,
        )

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode('utf-8')

        return private_key, private_pem

    def _get_or_create_account_key(self, email: str) -> jose.JWKRSA:
        """Get existing or create new account key."""
        provider_name = urlparse(self.directory_url).hostname.replace('.', '_')

        key_pem = self.storage.get_account_key(provider_name, email)
        if key_pem:
            private_key = serialization.load_pem_private_key(
                key_pem.encode('utf-8'),
                password=None,
            )
            return jose.JWKRSA(key=private_key)

        private_key, private_pem = self._generate_rsa_key(self.account_key_size)
        self.storage.store_account_key(provider_name, email, private_pem)
        logger.info(f"Created new ACME account key for {email}")
        return jose.JWKRSA(key=private_key)

    def _create_acme_client(self, account_key: jose.JWKRSA) -> client.ClientV2:
        """Create ACME client instance."""
        net = client.ClientNetwork(account_key, user_agent=USER_AGENT)
        directory = messages.Directory.from_json(net.get(self.directory_url).json())
        return client.ClientV2(directory, net=net)

    def _register_or_login(self, acme_client: client.ClientV2, email: str) -> messages.RegistrationResource:
        """Register new account or resolve the existing one for this key."""
        try:
            regr = acme_client.new_account(
                messages.NewRegistration.from_data(
                    email=email,
                    terms_of_service_agreed=True
                )
            )
            logger.info(f"Registered new ACME account for {email}")
            return regr
        except errors.ConflictError as e:
            # The Location header of the conflict points at the existing account
            logger.info(f"Account already exists for {email}, retrieving it")
            regr = messages.RegistrationResource(
                body=messages.Registration(key=acme_client.net.key.public_key()),
                uri=e.location,
            )
            return acme_client.query_registration(regr)

    def _create_csr(self, private_key, domains: List[str]) -> bytes:
        """Create Certificate Signing Request in PEM format."""
        builder = x509.CertificateSigningRequestBuilder()
        builder = builder.subject_name(x509.Name([
            x509.NameAttribute(NameOID.COMMON_NAME, domains[0])
        ]))
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(domain) for domain in domains]),
            critical=False
        )
        csr = builder.sign(private_key, hashes.SHA256())
        return csr.public_bytes(serialization.Encoding.PEM)

    def _issue(self, domain: str, email: str, cert_key: rsa.RSAPrivateKey, cert_key_pem: str) -> CertificateRecord:
        try:
            account_jwk = self._get_or_create_account_key(email)
            acme_client = self._create_acme_client(account_jwk)
            self._register_or_login(acme_client, email)

            order = acme_client.new_order(self._create_csr(cert_key, [domain]))

            published = []
            try:
                for authz in order.authorizations:
                    challb = self._prepare_authorization(acme_client, authz, published)
                    if challb is not None:
                        acme_client.answer_challenge(challb, challb.response(acme_client.net.key))

                deadline = datetime.now() + timedelta(seconds=self.order_timeout)
                order = acme_client.poll_and_finalize(order, deadline=deadline)
            finally:
                for zone, name, validation in published:
                    self.dns_solver.cleanup(zone, name, validation)
        except (errors.Error, jose.errors.Error) as e:
            raise AuthorityError(f"ACME order for {domain} failed: {e}") from e

        return self._build_record(domain, email, order, cert_key_pem)

    def _prepare_authorization(
        self,
        acme_client: client.ClientV2,
        authz: messages.AuthorizationResource,
        published: list,
    ) -> Optional[messages.ChallengeBody]:
        """Publish the DNS-01 record for one authorization.

        Returns the challenge to answer, or None when the authorization is
        already valid. Every published record is appended to ``published``.
        """
        identifier = authz.body.identifier.value
        if authz.body.status == messages.STATUS_VALID:
            logger.info(f"Authorization for {identifier} is already valid")
            return None

        dns_challenge = None
        for challb in authz.body.challenges:
            if isinstance(challb.chall, challenges.DNS01):
                dns_challenge = challb
                break
        if dns_challenge is None:
            raise AuthorityError(f"No DNS-01 challenge offered for {identifier}")

        validation = dns_challenge.validation(acme_client.net.key)
        name = dns_challenge.validation_domain_name(identifier)

        self.dns_solver.present(identifier, name, validation)
        published.append((identifier, name, validation))
        self.dns_solver.wait_for_propagation()
        return dns_challenge

    def _build_record(self, domain: str, email: str, order: messages.OrderResource, cert_key_pem: str) -> CertificateRecord:
        fullchain_pem = order.fullchain_pem
        if not fullchain_pem:
            raise AuthorityError(f"ACME order for {domain} returned no certificate")

        # load_pem_x509_certificate reads the first (leaf) certificate of the chain
        cert_obj = x509.load_pem_x509_certificate(fullchain_pem.encode('utf-8'))

        record = CertificateRecord(
            common_name=domain,
            email=email,
            certificate_chain=fullchain_pem,
            private_key=cert_key_pem,
            not_before=cert_obj.not_valid_before_utc,
            not_after=cert_obj.not_valid_after_utc,
            cert_url=order.body.certificate,
            fingerprint=f"sha256:{cert_obj.fingerprint(hashes.SHA256()).hex()}",
        )
        logger.info(f"Certificate issued for {domain}, valid until {record.not_after.astimezone(timezone.utc):%Y-%m-%d}")
        return record
