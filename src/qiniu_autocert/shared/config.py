"""Centralized configuration management for qiniu-auto-cert."""

import os
from pathlib import Path
from typing import Callable, List, Mapping, Optional, TypeVar

from dotenv import load_dotenv

LETSENCRYPT_DIRECTORY_URL = 'https://acme-v02.api.letsencrypt.org/directory'
LETSENCRYPT_STAGING_URL = 'https://acme-staging-v02.api.letsencrypt.org/directory'
QINIU_API_HOST = 'https://api.qiniu.com'

STORE_BACKENDS = ('file', 'redis')

Number = TypeVar('Number', int, float)


class Config:
    """Configuration resolved from environment variables.

    Values that cannot be parsed fall back to their defaults and are
    reported by ``validate()``.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        env = os.environ if environ is None else environ
        self._env = env
        self._parse_errors: List[str] = []

        # Qiniu CDN
        self.QINIU_ACCESSKEY: Optional[str] = env.get('QINIU_ACCESSKEY')
        self.QINIU_SECRETKEY: Optional[str] = env.get('QINIU_SECRETKEY')
        self.QINIU_API_HOST: str = env.get('QINIU_API_HOST', QINIU_API_HOST)
        self.HTTP_TIMEOUT: float = self._number('HTTP_TIMEOUT', 30.0, float)

        # DNS-01 validation
        self.DNS_PROVIDER: Optional[str] = env.get('DNS_PROVIDER')
        self.DNS_PROPAGATION_SECONDS: int = self._number('DNS_PROPAGATION_SECONDS', 30)

        # ACME
        self.ACME_DIRECTORY_URL: str = env.get('ACME_DIRECTORY_URL', LETSENCRYPT_DIRECTORY_URL)
        self.ACME_STAGING_URL: str = env.get('ACME_STAGING_URL', LETSENCRYPT_STAGING_URL)
        self.ACME_ORDER_TIMEOUT: int = self._number('ACME_ORDER_TIMEOUT', 300)
        self.RSA_KEY_SIZE: int = self._number('RSA_KEY_SIZE', 2048)

        # Renewal
        self.RENEWAL_CHECK_INTERVAL: int = self._number('RENEWAL_CHECK_INTERVAL', 10800)  # 3 hours
        self.RENEWAL_THRESHOLD_DAYS: int = self._number('RENEWAL_THRESHOLD_DAYS', 7)

        # Certificate store
        self.CERT_STORE_BACKEND: str = env.get('CERT_STORE_BACKEND', 'file').lower()
        self.CERT_STORE_DIR: Path = Path(
            env.get('CERT_STORE_DIR', str(Path.home() / '.qiniu-auto-cert'))
        ).expanduser()
        self.REDIS_URL: Optional[str] = env.get('REDIS_URL')

        # Logging
        self.LOG_LEVEL: str = env.get('LOG_LEVEL', 'INFO').upper()

    def _number(self, key: str, default: Number, cast: Callable[[str], Number] = int) -> Number:
        raw = self._env.get(key)
        if raw is None or raw.strip() == '':
            return default
        try:
            return cast(raw.strip())
        except ValueError:
            self._parse_errors.append(f"{key} must be a number, got {raw!r}")
            return default

    def validate(self) -> None:
        """Validate required configuration values."""
        errors = list(self._parse_errors)

        if not self.QINIU_ACCESSKEY:
            errors.append("QINIU_ACCESSKEY is required")
        if not self.QINIU_SECRETKEY:
            errors.append("QINIU_SECRETKEY is required")
        if not self.DNS_PROVIDER:
            errors.append("DNS_PROVIDER is required")

        if self.CERT_STORE_BACKEND not in STORE_BACKENDS:
            errors.append(
                f"CERT_STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}, got {self.CERT_STORE_BACKEND}"
            )
        elif self.CERT_STORE_BACKEND == 'redis' and not self.REDIS_URL:
            errors.append("REDIS_URL is required when CERT_STORE_BACKEND=redis")

        if self.RENEWAL_CHECK_INTERVAL < 60:
            errors.append(f"RENEWAL_CHECK_INTERVAL must be at least 60 seconds, got {self.RENEWAL_CHECK_INTERVAL}")
        if self.RENEWAL_THRESHOLD_DAYS < 1:
            errors.append(f"RENEWAL_THRESHOLD_DAYS must be at least 1, got {self.RENEWAL_THRESHOLD_DAYS}")
        if self.RSA_KEY_SIZE < 2048:
            errors.append(f"RSA_KEY_SIZE must be at least 2048, got {self.RSA_KEY_SIZE}")
        if self.DNS_PROPAGATION_SECONDS < 0:
            errors.append("DNS_PROPAGATION_SECONDS cannot be negative")
        if self.HTTP_TIMEOUT <= 0:
            errors.append(f"HTTP_TIMEOUT must be positive, got {self.HTTP_TIMEOUT}")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")


def load_env_file(env_file: Path = Path('.env')) -> bool:
    """Load a .env file without overriding variables already set."""
    if env_file.exists():
        return load_dotenv(env_file, override=False)
    return False
