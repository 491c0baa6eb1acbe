"""Qiniu CDN management API client."""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..certmanager.errors import CdnError
from ..certmanager.models import CdnCertInfo, CertificateRecord, DomainHttpsState
from ..shared.config import QINIU_API_HOST
from ..shared.log_levels import TRACE
from .auth import QBoxAuth
from .models import (
    CdnCredentials,
    CertInfo,
    CertUpload,
    CodeErr,
    DomainInfo,
    HTTPSConf,
    UploadCertResp,
)

logger = logging.getLogger(__name__)

ResponseModel = TypeVar('ResponseModel', bound=CodeErr)


def decode_response(response: httpx.Response, model: Type[ResponseModel]) -> ResponseModel:
    """Turn a Qiniu response into ``model``, raising ``CdnError`` on failure.

    Qiniu reports errors through a ``code`` field in the body, often with an
    HTTP 200 status. Any code above 200 is an error. When the body has no
    code the HTTP status is used instead.
    """
    try:
        data = response.json()
    except ValueError as e:
        raise CdnError(
            f"Unexpected response from {response.request.url.path}: {response.text[:200]}",
            code=response.status_code,
        ) from e

    if not isinstance(data, dict):
        raise CdnError(f"Unexpected response from {response.request.url.path}", code=response.status_code)

    code = data.get('code')
    if code is None and response.status_code >= 400:
        code = response.status_code
    if code is not None:
        try:
            code = int(code)
        except (TypeError, ValueError) as e:
            raise CdnError(
                f"Unexpected status code {code!r} from {response.request.url.path}",
                code=response.status_code,
            ) from e
    if code is not None and code > 200:
        raise CdnError(data.get('error') or response.reason_phrase or 'unknown error', code=code)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise CdnError(f"Malformed response from {response.request.url.path}: {e}") from e


class QiniuClient:
    """CDN controller for Qiniu domains and SSL certificates."""

    def __init__(
        self,
        credentials: CdnCredentials,
        api_host: str = QINIU_API_HOST,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.credentials = credentials
        self.http = httpx.Client(
            base_url=api_host,
            auth=QBoxAuth(credentials.access_key, credentials.secret_key.get_secret_value()),
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _request(self, method: str, path: str, model: Type[ResponseModel], body: Optional[BaseModel] = None) -> ResponseModel:
        kwargs: Dict[str, Any] = {}
        if body is not None:
            kwargs['json'] = body.model_dump(by_alias=True)

        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise CdnError(f"{method} {path} failed: {e}") from e

        logger.log(TRACE, f"{method} {path} -> {response.status_code} {response.text[:500]}")
        return decode_response(response, model)

    def get_domain_info(self, domain: str) -> DomainInfo:
        return self._request('GET', f"/domain/{domain}", DomainInfo)

    def get_domain_https_state(self, domain: str) -> DomainHttpsState:
        """Read the domain's bound certificate and redirect setting."""
        info = self.get_domain_info(domain)
        return DomainHttpsState(
            domain=domain,
            active_cert_id=info.https.cert_id,
            force_https=info.https.force_https,
        )

    def get_cert_info(self, cert_id: str) -> CdnCertInfo:
        """Read the validity window of an uploaded certificate."""
        info = self._request('GET', f"/sslcert/{cert_id}", CertInfo)
        return CdnCertInfo(
            cert_id=info.cert.cert_id or cert_id,
            name=info.cert.name,
            common_name=info.cert.common_name,
            dns_names=info.cert.dns_names or [],
            not_before=info.cert.not_before,
            not_after=info.cert.not_after,
        )

    def upload_certificate(self, record: CertificateRecord) -> str:
        """Upload ``record`` and return the new Qiniu certificate id."""
        upload = CertUpload(
            name=record.common_name.split('.')[0],
            common_name=record.common_name,
            ca=record.certificate_chain,
            pri=record.private_key,
        )
        resp = self._request('POST', '/sslcert', UploadCertResp, upload)
        logger.info(f"Uploaded certificate for {record.common_name} as {resp.cert_id}")
        return resp.cert_id

    def enable_https(self, domain: str, cert_id: str, force_https: bool = True) -> None:
        """Turn on HTTPS for a domain that has none yet."""
        self._request('PUT', f"/domain/{domain}/sslize", CodeErr,
                      HTTPSConf(cert_id=cert_id, force_https=force_https))
        logger.info(f"Enabled HTTPS for {domain} with certificate {cert_id}")

    def update_https_cert_id(self, domain: str, cert_id: str, force_https: bool = True) -> None:
        """Point an HTTPS domain at another certificate."""
        self._request('PUT', f"/domain/{domain}/httpsconf", CodeErr,
                      HTTPSConf(cert_id=cert_id, force_https=force_https))
        logger.info(f"Updated {domain} to certificate {cert_id}")

    def delete_certificate(self, cert_id: str) -> None:
        self._request('DELETE', f"/sslcert/{cert_id}", CodeErr)
        logger.info(f"Deleted certificate {cert_id}")
