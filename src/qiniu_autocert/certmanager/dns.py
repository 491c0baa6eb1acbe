"""DNS-01 challenge records through a lexicon DNS provider.

The provider is selected by name (``DNS_PROVIDER``); its credentials come from
the environment using lexicon's ``LEXICON_<PROVIDER>_<OPTION>`` convention,
e.g. ``LEXICON_CLOUDFLARE_AUTH_TOKEN``.
"""

import logging
import time
from typing import Any, Dict, Optional

from lexicon.client import Client
from lexicon.config import ConfigResolver

from .errors import AuthorityError

logger = logging.getLogger(__name__)


class LexiconDnsSolver:
    """Create and remove ``_acme-challenge`` TXT records."""

    def __init__(self, provider_name: str, propagation_seconds: int = 30,
                 provider_options: Optional[Dict[str, Any]] = None, ttl: int = 600):
        self.provider_name = provider_name
        self.propagation_seconds = propagation_seconds
        self.provider_options = provider_options or {}
        self.ttl = ttl

    def _build_config(self, action: str, domain: str, name: str, content: str) -> ConfigResolver:
        params = {
            'provider_name': self.provider_name,
            'action': action,
            'domain': domain,
            'type': 'TXT',
            'name': name,
            'content': content,
            'ttl': self.ttl,
        }
        if self.provider_options:
            params[self.provider_name] = dict(self.provider_options)
        return ConfigResolver().with_dict(params).with_env()

    def _execute(self, action: str, domain: str, name: str, content: str):
        config = self._build_config(action, domain, name, content)
        return Client(config).execute()

    def present(self, domain: str, name: str, content: str) -> None:
        """Publish the TXT record ``name`` = ``content`` for ``domain``."""
        logger.info(f"Creating TXT record {name} via {self.provider_name}")
        try:
            self._execute('create', domain, name, content)
        except Exception as e:
            raise AuthorityError(f"Failed to create TXT record {name}: {e}") from e

    def cleanup(self, domain: str, name: str, content: str) -> None:
        """Remove a TXT record created by ``present``; failures are only logged."""
        logger.info(f"Removing TXT record {name} via {self.provider_name}")
        try:
            self._execute('delete', domain, name, content)
        except Exception as e:
            logger.warning(f"Failed to remove TXT record {name}: {e}")

    def wait_for_propagation(self) -> None:
        """Give resolvers time to pick up freshly created records."""
        if self.propagation_seconds > 0:
            logger.info(f"Waiting {self.propagation_seconds}s for DNS propagation")
            time.sleep(self.propagation_seconds)
