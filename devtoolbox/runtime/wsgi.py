"""
In-process request dispatch to a WSGI application through httpx.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from devtoolbox.runtime.base import SyntheticRequest, SyntheticResponse

if TYPE_CHECKING:
    from typing import Any, Callable

logger = logging.getLogger(__name__)


class WSGIDispatcher:
    """
    Send synthetic requests to a WSGI callable without a network hop.

    Args:
        wsgi_app: The WSGI application.
        base_url: Host used to build request URLs.
    """

    def __init__(self, wsgi_app: Callable[..., Any], base_url: str = "http://testserver") -> None:
        self.wsgi_app = wsgi_app
        self._client: httpx.Client | None = None
        self._base_url = base_url

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize the httpx client."""
        if self._client is None:
            self._client = httpx.Client(
                transport=httpx.WSGITransport(app=self.wsgi_app),
                base_url=self._base_url,
            )
        return self._client

    def handle(self, request: SyntheticRequest) -> SyntheticResponse:
        method = request.method.upper()
        kwargs: dict[str, Any] = {"headers": request.headers or None}
        if request.query:
            kwargs["params"] = request.query
        if request.data and method not in ("GET", "HEAD"):
            kwargs["data"] = request.data

        logger.debug("Dispatching %s %s", method, request.path)
        response = self.client.request(method, request.path, **kwargs)
        return SyntheticResponse(status_code=response.status_code, body=response.text)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
