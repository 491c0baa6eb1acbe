"""Qiniu CDN integration."""

from .auth import QBoxAuth
from .client import QiniuClient, decode_response
from .models import CdnCredentials

__all__ = ['QBoxAuth', 'QiniuClient', 'decode_response', 'CdnCredentials']
