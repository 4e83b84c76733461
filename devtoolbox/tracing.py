"""
Scoped SQL query tracing.

A ``TraceSession`` subscribes to the database's query events, dispatches a
single synthetic request and always unsubscribes again. Only one session may
be open per process.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

from devtoolbox.errors import IntrospectionError, TraceSessionActive
from devtoolbox.runtime.base import SyntheticRequest

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.runtime.base import Application, QueryEvent, SyntheticResponse

logger = logging.getLogger(__name__)

_session_lock = threading.Lock()


def session_active() -> bool:
    return _session_lock.locked()


class TraceSession:
    """
    Capture the queries executed while one request is handled.

    Usage:
        with TraceSession(app) as session:
            response = session.dispatch(request)
        session.queries  # captured QueryEvents, in execution order

    Raises:
        TraceSessionActive: On enter, if another session is open.
        IntrospectionError: On enter, if the application has no database.
    """

    def __init__(self, app: Application) -> None:
        self.app = app
        self.queries: list[QueryEvent] = []
        self.response: SyntheticResponse | None = None
        self.elapsed_ms: float = 0.0
        self._open = False

    def _record(self, event: QueryEvent) -> None:
        self.queries.append(event)

    def __enter__(self) -> TraceSession:
        database = self.app.database
        if database is None:
            raise IntrospectionError("Application has no database to trace")
        if not _session_lock.acquire(blocking=False):
            raise TraceSessionActive("A query trace session is already active")
        try:
            database.listen(self._record)
        except Exception:
            _session_lock.release()
            raise
        self._open = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        try:
            if self.app.database is not None:
                self.app.database.forget(self._record)
        finally:
            self._open = False
            _session_lock.release()

    def dispatch(self, request: SyntheticRequest) -> SyntheticResponse:
        """Handle one request; exceptions from the host propagate."""
        start = time.perf_counter()
        try:
            self.response = self.app.handle(request)
        finally:
            self.elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        return self.response


def build_request(app: Application, options: dict[str, Any]) -> tuple[SyntheticRequest, str] | None:
    """
    Build the synthetic request described by trace options.

    ``route`` names a registered route whose ``{param}`` placeholders are
    filled from ``parameters``; otherwise ``url`` is used verbatim. For GET
    URL targets ``parameters`` become the query string.

    Returns:
        ``(request, target)`` or None when neither route nor url is given.

    Raises:
        IntrospectionError: If the named route does not exist.
    """
    method = str(options.get("method") or "GET").upper()
    parameters = dict(options.get("parameters") or {})
    headers = dict(options.get("headers") or {})
    data = dict(options.get("data") or {})

    if options.get("route"):
        route = app.route_by_name(options["route"])
        if route is None:
            raise IntrospectionError(f"Route [{options['route']}] not found")
        path = route.path_for(parameters)
        query: dict[str, Any] = {}
        target = options["route"]
    elif options.get("url"):
        path = str(options["url"])
        if not path.startswith("/") and "://" not in path:
            path = "/" + path
        query = parameters if method == "GET" else {}
        target = str(options["url"])
    else:
        return None

    if method != "GET" and parameters and not data:
        data = parameters
    return SyntheticRequest(method=method, path=path, query=query, headers=headers, data=data), target
