"""QBox request signing for the Qiniu management API."""

import base64
import hashlib
import hmac
from typing import Generator

import httpx

FORM_CONTENT_TYPE = 'application/x-www-form-urlencoded'


class QBoxAuth(httpx.Auth):
    """Adds ``Authorization: QBox <access_key>:<signature>`` to each request.

    The signature is the URL-safe base64 HMAC-SHA1 of the request path, the
    query string if any, a newline, and the body for form-encoded requests.
    """

    requires_request_body = True

    def __init__(self, access_key: str, secret_key: str):
        self.access_key = access_key
        self._secret_key = secret_key.encode('utf-8')

    def token_of_request(self, request: httpx.Request) -> str:
        data = request.url.path.encode('utf-8')
        if request.url.query:
            data += b'?' + request.url.query
        data += b'\n'

        content_type = request.headers.get('Content-Type', '')
        if content_type.startswith(FORM_CONTENT_TYPE) and request.content:
            data += request.content

        digest = hmac.new(self._secret_key, data, hashlib.sha1).digest()
        return f"{self.access_key}:{base64.urlsafe_b64encode(digest).decode('ascii')}"

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers['Authorization'] = f"QBox {self.token_of_request(request)}"
        yield request
