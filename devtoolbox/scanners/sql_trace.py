"""
SQL trace for devtoolbox: the raw query log of one request, with summary
statistics.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from devtoolbox.scanners.base import AbstractScanner
from devtoolbox.scanners.sql_analysis import (
    SLOW_QUERY_MS,
    detect_duplicate_queries,
    detect_slow_queries,
    query_record,
    statement_type,
)
from devtoolbox.tracing import TraceSession, build_request

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)

QUERY_TYPES = ("SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "ALTER", "DROP")


def trace_statistics(queries: list[dict[str, Any]]) -> dict[str, Any]:
    """Timing spread, connections and statement types of a query log."""
    times = [q["time"] for q in queries]
    query_types = {kind: 0 for kind in QUERY_TYPES}
    query_types["OTHER"] = 0
    for query in queries:
        kind = statement_type(query["sql"])
        query_types[kind if kind in QUERY_TYPES else "OTHER"] += 1
    return {
        "average_time": round(sum(times) / len(times), 2) if times else 0,
        "min_time": min(times) if times else 0,
        "max_time": max(times) if times else 0,
        "connections_used": sorted({q.get("connection") or "default" for q in queries}),
        "query_types": query_types,
    }


class SqlTraceScanner(AbstractScanner):
    """Trace the queries one request executes."""

    name = "sql-trace"
    description = "Trace the SQL queries executed by a route or url"
    config_section = "sql"
    available_options = {
        "route": "Name of the route to request",
        "url": "Path to request when no route is given",
        "method": "HTTP method",
        "parameters": "Route parameters, or query parameters for GET urls",
        "headers": "Request headers",
        "data": "Request body for non-GET requests",
    }
    default_options = {
        "route": None,
        "url": None,
        "method": "GET",
        "parameters": {},
        "headers": {},
        "data": {},
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        built = build_request(self.app, options)
        if built is None:
            return self.add_metadata(self._result(None, options.get("method") or "GET", None, []), options, 0)
        request, target = built
        self.check_deadline(deadline)

        error = None
        with TraceSession(self.app) as session:
            try:
                session.dispatch(request)
            except Exception as e:
                logger.warning("Request to %s failed during trace: %s", target, e)
                error = str(e)

        status = session.response.status_code if session.response is not None else None
        queries = [query_record(event) for event in session.queries]
        result = self._result(target, request.method, status, queries)
        if error is not None:
            result["error"] = error
        return self.add_metadata(result, options, len(queries))

    def _result(
        self,
        target: str | None,
        method: str,
        status: int | None,
        queries: list[dict[str, Any]],
    ) -> dict[str, Any]:
        slow_ms = float(self.section.get("slow_query_ms") or SLOW_QUERY_MS)
        return {
            "traced_target": target,
            "method": str(method).upper(),
            "response_status": status,
            "queries": queries,
            "total_queries": len(queries),
            "total_time": round(sum(q["time"] for q in queries), 2),
            "slow_queries": detect_slow_queries(queries, slow_ms),
            "duplicate_queries": detect_duplicate_queries(queries, threshold=2),
            "statistics": trace_statistics(queries),
        }
