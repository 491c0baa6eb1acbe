"""Command-line entry point for qiniu-auto-cert."""

import logging
import re
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .cdn import CdnCredentials, QiniuClient
from .certmanager import (
    ACMEAuthority,
    CertificateScheduler,
    FileCertificateStore,
    LexiconDnsSolver,
    RedisCertificateStore,
    RenewalOrchestrator,
)
from .certmanager.interfaces import CertificateStore
from .certmanager.models import normalize_domain
from .shared.config import Config, load_env_file
from .shared.python_logger_config import setup_python_logging

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
LOG_LEVELS = ['TRACE', 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def create_store(config: Config) -> CertificateStore:
    """Create the configured certificate store backend."""
    if config.CERT_STORE_BACKEND == 'redis':
        return RedisCertificateStore(config.REDIS_URL)
    return FileCertificateStore(config.CERT_STORE_DIR)


def create_orchestrator(config: Config, staging: bool = False) -> RenewalOrchestrator:
    """Wire the CDN client, ACME authority and store into an orchestrator."""
    store = create_store(config)
    cdn = QiniuClient(
        CdnCredentials(access_key=config.QINIU_ACCESSKEY, secret_key=config.QINIU_SECRETKEY),
        api_host=config.QINIU_API_HOST,
        timeout=config.HTTP_TIMEOUT,
    )
    authority = ACMEAuthority(
        storage=store,
        dns_solver=LexiconDnsSolver(config.DNS_PROVIDER, config.DNS_PROPAGATION_SECONDS),
        directory_url=config.ACME_STAGING_URL if staging else config.ACME_DIRECTORY_URL,
        key_size=config.RSA_KEY_SIZE,
        order_timeout=config.ACME_ORDER_TIMEOUT,
    )
    return RenewalOrchestrator(
        cdn=cdn,
        authority=authority,
        store=store,
        renew_before=timedelta(days=config.RENEWAL_THRESHOLD_DAYS),
    )


def _validate_domain(ctx, param, value: str) -> str:
    try:
        return normalize_domain(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _validate_email(ctx, param, value: str) -> str:
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise click.BadParameter('Invalid email format')
    return value.lower()


@click.command()
@click.argument('domain', callback=_validate_domain)
@click.argument('email', callback=_validate_email)
@click.option('--once', is_flag=True, help='Run a single check and exit (exit code 1 on failure)')
@click.option('--interval', type=click.IntRange(min=60), default=None,
              help='Seconds between checks [env: RENEWAL_CHECK_INTERVAL]')
@click.option('--store-dir', type=click.Path(file_okay=False, path_type=Path), default=None,
              help='Directory for certificates and the ACME account key [env: CERT_STORE_DIR]')
@click.option('--staging', is_flag=True, help="Use the Let's Encrypt staging directory")
@click.option('--log-level', type=click.Choice(LOG_LEVELS, case_sensitive=False), default=None,
              help='Logging level [env: LOG_LEVEL]')
@click.version_option(version=__version__, prog_name='qiniu-auto-cert')
def cli(domain: str, email: str, once: bool, interval: Optional[int],
        store_dir: Optional[Path], staging: bool, log_level: Optional[str]):
    """Keep DOMAIN on Qiniu CDN served with a valid certificate for EMAIL.

    Credentials come from the environment: QINIU_ACCESSKEY, QINIU_SECRETKEY
    and DNS_PROVIDER plus the provider's LEXICON_<PROVIDER>_* variables.
    """
    load_env_file()
    try:
        config = Config()
        if interval is not None:
            config.RENEWAL_CHECK_INTERVAL = interval
        if store_dir is not None:
            config.CERT_STORE_DIR = store_dir
        if log_level is not None:
            config.LOG_LEVEL = log_level.upper()
        config.validate()
    except ValueError as e:
        click.echo(str(e), err=True)
        sys.exit(2)

    setup_python_logging(config.LOG_LEVEL)

    orchestrator = create_orchestrator(config, staging=staging)
    try:
        store = orchestrator.store
        if isinstance(store, RedisCertificateStore) and not store.health_check():
            click.echo(f"Cannot connect to Redis at {config.REDIS_URL}", err=True)
            sys.exit(2)

        scheduler = CertificateScheduler(
            orchestrator,
            domain=domain,
            email=email,
            check_interval=config.RENEWAL_CHECK_INTERVAL,
        )

        if once:
            result = scheduler.run_once()
            sys.exit(0 if result.ok else 1)

        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Shutting down")
        finally:
            scheduler.stop()
    finally:
        orchestrator.cdn.close()


if __name__ == '__main__':
    cli()
