"""Certificate storage backends.

``FileCertificateStore`` keeps, per domain, a JSON metadata file plus the
private key and certificate chain as raw PEM files::

    <base_dir>/example.com.json
    <base_dir>/example.com.key
    <base_dir>/example.com.crt

``RedisCertificateStore`` keeps the same record as one JSON value.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Optional, Tuple

import redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from .errors import StoreError
from .models import CertificateRecord, normalize_domain

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9@._-]')


def _safe_name(value: str) -> str:
    return _UNSAFE_CHARS.sub('_', value)


def _write_private(path: Path, data: str) -> None:
    """Atomically replace ``path`` with ``data``, readable by owner only."""
    tmp_path = path.with_name(f".{path.name}.tmp")
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    os.replace(tmp_path, path)


class FileCertificateStore:
    """Filesystem storage for certificates and ACME account keys."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def _paths(self, domain: str) -> Tuple[Path, Path, Path]:
        domain = normalize_domain(domain)
        return (
            self.base_dir / f"{domain}.json",
            self.base_dir / f"{domain}.key",
            self.base_dir / f"{domain}.crt",
        )

    def load(self, domain: str) -> Optional[CertificateRecord]:
        """Load the stored record for ``domain``, or None if there is none usable."""
        meta_path, key_path, cert_path = self._paths(domain)
        if not meta_path.exists():
            return None

        try:
            meta = json.loads(meta_path.read_text(encoding='utf-8'))
            meta['private_key'] = key_path.read_text(encoding='utf-8')
            meta['certificate_chain'] = cert_path.read_text(encoding='utf-8')
            return CertificateRecord.model_validate(meta)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable certificate record for {domain}: {e}")
            return None

    def save(self, domain: str, record: CertificateRecord) -> None:
        """Persist ``record``; the metadata file is written last."""
        meta_path, key_path, cert_path = self._paths(domain)
        meta = record.model_dump(mode='json', exclude={'private_key', 'certificate_chain'})

        try:
            self.base_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
            _write_private(key_path, record.private_key)
            _write_private(cert_path, record.certificate_chain)
            _write_private(meta_path, json.dumps(meta, indent=2))
        except OSError as e:
            raise StoreError(f"Failed to store certificate for {domain}: {e}") from e

        logger.info(f"Stored certificate for {domain} in {self.base_dir}")

    def delete(self, domain: str) -> bool:
        """Delete the stored record for ``domain``."""
        deleted = False
        for path in self._paths(domain):
            if path.exists():
                path.unlink()
                deleted = True
        return deleted

    def _account_key_path(self, provider: str, email: str) -> Path:
        return self.base_dir / f"account-{_safe_name(provider)}-{_safe_name(email)}.key"

    def get_account_key(self, provider: str, email: str) -> Optional[str]:
        """Retrieve ACME account private key."""
        path = self._account_key_path(provider, email)
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return None

    def store_account_key(self, provider: str, email: str, key_pem: str) -> None:
        """Store ACME account private key."""
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
            _write_private(self._account_key_path(provider, email), key_pem)
        except OSError as e:
            raise StoreError(f"Failed to store account key: {e}") from e


class RedisCertificateStore:
    """Redis storage backend for certificates and ACME account keys."""

    def __init__(self, redis_url: str, redis_client: Optional[redis.Redis] = None):
        """Initialize Redis connection."""
        self.redis_client = redis_client or redis.from_url(redis_url, decode_responses=True)

    def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            return bool(self.redis_client.ping())
        except RedisError:
            return False

    def load(self, domain: str) -> Optional[CertificateRecord]:
        """Retrieve certificate from Redis."""
        key = f"cert:{normalize_domain(domain)}"
        try:
            value = self.redis_client.get(key)
            if value:
                return CertificateRecord.model_validate_json(value)
            return None
        except RedisError as e:
            logger.error(f"Failed to get certificate: {e}")
            return None
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable certificate record for {domain}: {e}")
            return None

    def save(self, domain: str, record: CertificateRecord) -> None:
        """Store certificate in Redis."""
        key = f"cert:{normalize_domain(domain)}"
        try:
            self.redis_client.set(key, record.model_dump_json())
        except RedisError as e:
            raise StoreError(f"Failed to store certificate for {domain}: {e}") from e
        logger.info(f"Stored certificate for {domain} in Redis")

    def delete(self, domain: str) -> bool:
        """Delete certificate from Redis."""
        try:
            return bool(self.redis_client.delete(f"cert:{normalize_domain(domain)}"))
        except RedisError as e:
            logger.error(f"Failed to delete certificate: {e}")
            return False

    def get_account_key(self, provider: str, email: str) -> Optional[str]:
        """Retrieve ACME account private key."""
        try:
            return self.redis_client.get(f"account:{provider}:{email}")
        except RedisError as e:
            logger.error(f"Failed to get account key: {e}")
            return None

    def store_account_key(self, provider: str, email: str, key_pem: str) -> None:
        """Store ACME account private key."""
        try:
            self.redis_client.set(f"account:{provider}:{email}", key_pem)
        except RedisError as e:
            raise StoreError(f"Failed to store account key: {e}") from e
