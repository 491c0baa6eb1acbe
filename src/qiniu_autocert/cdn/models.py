"""Qiniu CDN API payloads."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class CdnCredentials(BaseModel):
    """Access key pair used to sign Qiniu API requests."""
    access_key: str
    secret_key: SecretStr


class CodeErr(BaseModel):
    """Status embedded in every response body."""
    model_config = ConfigDict(populate_by_name=True)

    code: int = 0
    error: str = ""


class DomainHttps(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cert_id: str = Field(default="", alias="certId")
    force_https: bool = Field(default=False, alias="forceHttps")


class DomainInfo(CodeErr):
    """Response of ``GET /domain/<name>``."""
    name: str = ""
    cname: str = ""
    protocol: str = ""
    operating_state: str = Field(default="", alias="operatingState")
    https: DomainHttps = Field(default_factory=DomainHttps)


class SslCert(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cert_id: str = Field(default="", alias="certid")
    name: str = ""
    common_name: str = ""
    dns_names: Optional[List[str]] = Field(default=None, alias="dnsnames")
    not_before: Optional[datetime] = None   # Unix seconds on the wire
    not_after: datetime


class CertInfo(CodeErr):
    """Response of ``GET /sslcert/<id>``."""
    cert: SslCert


class CertUpload(BaseModel):
    """Body of ``POST /sslcert``."""
    name: str
    common_name: str
    ca: str     # Certificate chain PEM
    pri: str    # Private key PEM


class UploadCertResp(CodeErr):
    cert_id: str = Field(alias="certID")


class HTTPSConf(BaseModel):
    """Body of ``PUT /domain/<name>/httpsconf`` and ``/sslize``."""
    model_config = ConfigDict(populate_by_name=True)

    cert_id: str = Field(alias="certid")
    force_https: bool = Field(default=True, alias="forceHttps")
