# transport.py
import logging
from typing import Any, Mapping, Optional

import httpx
from google.oauth2.credentials import Credentials

from .config import Settings, get_settings
from .exceptions import AuthError


class AuthorizedTransport:
    """
    Thin helper issuing bearer-authenticated HTTP requests.

    The access token is supplied by the caller and wrapped in google-auth
    Credentials without a refresh token, so it is never refreshed or rotated
    here. Responses are returned as-is; mapping statuses to errors is left to
    the gateway, which knows which operation failed.
    """

    def __init__(
        self,
        access_token: str,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not access_token or not access_token.strip():
            raise AuthError("No bearer credential was supplied.")

        settings = settings or get_settings()
        self.credentials = Credentials(token=access_token)
        timeout = httpx.Timeout(
            settings.HTTP_READ_TIMEOUT, connect=settings.HTTP_CONNECT_TIMEOUT
        )
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> dict:
        headers = dict(extra or {})
        self.credentials.apply(headers)
        return headers

    def _build(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Request:
        return self._client.build_request(
            method,
            url,
            params=params,
            json=json,
            content=content,
            headers=self._headers(headers),
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """Sends a request and reads the full response body. Never raises on status."""
        request = self._build(method, url, params, json, content, headers)
        response = await self._client.send(request)
        logging.debug(f"{method} {request.url.host}{request.url.path} -> {response.status_code}")
        return response

    async def open_stream(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """
        Sends a request without reading the body.
        The returned response must be closed with `await response.aclose()`.
        """
        request = self._build(method, url, params=params, headers=headers)
        response = await self._client.send(request, stream=True)
        logging.debug(
            f"{method} {request.url.host}{request.url.path} -> {response.status_code} (streaming)"
        )
        return response

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> "AuthorizedTransport":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
