"""Tests for the ACME certificate authority."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import josepy as jose
import pytest
from acme import challenges, errors, messages
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from conftest import MemoryStore, make_record
from qiniu_autocert.certmanager.acme_client import ACMEAuthority
from qiniu_autocert.certmanager.errors import AuthorityError
from qiniu_autocert.shared.config import LETSENCRYPT_STAGING_URL

pytestmark = pytest.mark.certificates

NOT_BEFORE = datetime(2024, 6, 1, tzinfo=timezone.utc)
NOT_AFTER = datetime(2024, 8, 30, tzinfo=timezone.utc)


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def rsa_key_pem(rsa_key):
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode('utf-8')


@pytest.fixture(scope="module")
def fullchain_pem(rsa_key):
    """Self-signed certificate standing in for an issued chain."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "example.com")])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(rsa_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOT_BEFORE)
        .not_valid_after(NOT_AFTER)
        .sign(rsa_key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode('utf-8')


@pytest.fixture
def dns_solver():
    return MagicMock()


@pytest.fixture
def authority(dns_solver):
    return ACMEAuthority(MemoryStore(), dns_solver, LETSENCRYPT_STAGING_URL, order_timeout=60)


def make_authz(status=messages.STATUS_PENDING, with_dns=True):
    challb = MagicMock()
    challb.chall = challenges.DNS01(token=b"a" * 16) if with_dns else challenges.HTTP01(token=b"a" * 16)
    challb.validation.return_value = "txt-value"
    challb.validation_domain_name.return_value = "_acme-challenge.example.com"

    authz = MagicMock()
    authz.body.identifier.value = "example.com"
    authz.body.status = status
    authz.body.challenges = [challb]
    return authz, challb


@pytest.fixture
def acme_client(fullchain_pem):
    """Mock ACME client whose order completes with ``fullchain_pem``."""
    client = MagicMock()
    authz, challb = make_authz()
    order = MagicMock()
    order.authorizations = [authz]
    client.new_order.return_value = order

    final_order = MagicMock()
    final_order.fullchain_pem = fullchain_pem
    final_order.body.certificate = "https://acme.example/cert/1"
    client.poll_and_finalize.return_value = final_order
    client.challb = challb
    return client


@pytest.fixture
def patched_authority(authority, acme_client):
    with patch.object(authority, '_get_or_create_account_key', return_value=MagicMock()), \
            patch.object(authority, '_create_acme_client', return_value=acme_client), \
            patch.object(authority, '_register_or_login'):
        yield authority


class TestIssue:
    """Test the DNS-01 order flow against a mocked ACME client."""

    def test_obtain_builds_record(self, patched_authority, fullchain_pem):
        record = patched_authority.obtain("example.com", "Admin@Example.com")

        assert record.common_name == "example.com"
        assert record.email == "admin@example.com"
        assert record.certificate_chain == fullchain_pem
        assert record.not_before == NOT_BEFORE
        assert record.not_after == NOT_AFTER
        assert record.cert_url == "https://acme.example/cert/1"
        assert record.fingerprint.startswith("sha256:")
        assert "PRIVATE KEY" in record.private_key

    def test_publishes_and_cleans_up_challenge(self, patched_authority, acme_client, dns_solver):
        patched_authority.obtain("example.com", "admin@example.com")

        record_args = ("example.com", "_acme-challenge.example.com", "txt-value")
        dns_solver.present.assert_called_once_with(*record_args)
        dns_solver.wait_for_propagation.assert_called_once()
        dns_solver.cleanup.assert_called_once_with(*record_args)
        acme_client.answer_challenge.assert_called_once()
        assert acme_client.answer_challenge.call_args[0][0] is acme_client.challb

    def test_finalize_deadline(self, patched_authority, acme_client):
        before = datetime.now()
        patched_authority.obtain("example.com", "admin@example.com")

        deadline = acme_client.poll_and_finalize.call_args.kwargs['deadline']
        assert before + timedelta(seconds=60) <= deadline <= datetime.now() + timedelta(seconds=60)

    def test_order_failure_cleans_up(self, patched_authority, acme_client, dns_solver):
        acme_client.poll_and_finalize.side_effect = errors.TimeoutError()

        with pytest.raises(AuthorityError):
            patched_authority.obtain("example.com", "admin@example.com")

        dns_solver.cleanup.assert_called_once()

    def test_valid_authorization_is_skipped(self, patched_authority, acme_client, dns_solver):
        authz, _ = make_authz(status=messages.STATUS_VALID)
        acme_client.new_order.return_value.authorizations = [authz]

        patched_authority.obtain("example.com", "admin@example.com")

        dns_solver.present.assert_not_called()
        acme_client.answer_challenge.assert_not_called()

    def test_missing_dns_challenge(self, patched_authority, acme_client, dns_solver):
        authz, _ = make_authz(with_dns=False)
        acme_client.new_order.return_value.authorizations = [authz]

        with pytest.raises(AuthorityError, match="No DNS-01 challenge"):
            patched_authority.obtain("example.com", "admin@example.com")

        dns_solver.cleanup.assert_not_called()

    def test_empty_certificate(self, patched_authority, acme_client):
        acme_client.poll_and_finalize.return_value.fullchain_pem = None

        with pytest.raises(AuthorityError, match="returned no certificate"):
            patched_authority.obtain("example.com", "admin@example.com")


class TestRenew:
    """Test renewal from a stored record."""

    def test_reuses_stored_key(self, authority, rsa_key_pem):
        prior = make_record().model_copy(update={'private_key': rsa_key_pem})

        with patch.object(authority, '_issue', return_value=prior) as mock_issue:
            authority.renew(prior)

        domain, email, cert_key, key_pem = mock_issue.call_args[0]
        assert (domain, email) == ("example.com", "admin@example.com")
        assert isinstance(cert_key, rsa.RSAPrivateKey)
        assert key_pem == rsa_key_pem

    def test_unreadable_key(self, authority):
        with pytest.raises(AuthorityError, match="unusable"):
            authority.renew(make_record())

    def test_non_rsa_key(self, authority):
        ec_pem = ec.generate_private_key(ec.SECP256R1()).private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode('utf-8')
        prior = make_record().model_copy(update={'private_key': ec_pem})

        with pytest.raises(AuthorityError, match="not an RSA key"):
            authority.renew(prior)


class TestAccountKey:
    """Test ACME account key handling."""

    def test_created_once_and_reused(self, authority):
        first = authority._get_or_create_account_key("admin@example.com")
        second = authority._get_or_create_account_key("admin@example.com")

        assert isinstance(first, jose.JWKRSA)
        assert first.thumbprint() == second.thumbprint()
        assert ("acme-staging-v02_api_letsencrypt_org", "admin@example.com") in authority.storage.account_keys

    def test_register_conflict_queries_existing_account(self, authority):
        acme_client = MagicMock()
        acme_client.new_account.side_effect = errors.ConflictError("https://acme.example/acct/1")

        authority._register_or_login(acme_client, "admin@example.com")

        regr = acme_client.query_registration.call_args[0][0]
        assert regr.uri == "https://acme.example/acct/1"


class TestCsr:
    """Test CSR generation."""

    def test_subject_and_san(self, authority, rsa_key):
        csr_pem = authority._create_csr(rsa_key, ["example.com"])

        csr = x509.load_pem_x509_csr(csr_pem)
        assert csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "example.com"
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        assert san.value.get_values_for_type(x509.DNSName) == ["example.com"]
        assert csr.is_signature_valid
