"""
SQL analysis for devtoolbox.

Traces the queries one request executes and looks for duplicates, likely
N+1 patterns and slow statements. The detectors are plain functions over
query records (``{"sql", "bindings", "time", "connection"}``, time in
milliseconds) so they can be used on any captured query log.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from devtoolbox.scanners.base import AbstractScanner, heuristic
from devtoolbox.tracing import TraceSession, build_request

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.runtime.base import QueryEvent
    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)

SLOW_QUERY_MS = 100
N_PLUS_ONE_MIN = 4
MAX_INSTANCES = 5
MAX_EXPLAINS = 3

TABLE_PATTERN = re.compile(r"(?:from|join|into|update)\s+`?(\w+)`?", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_INTEGER = re.compile(r"\b\d+\b")
_IN_LIST = re.compile(r"\bin\s*\([^)]+\)", re.IGNORECASE)

N_PLUS_ONE_SUGGESTION = "Consider using eager loading or joins to reduce query count"

USAGE = (
    'Pass a route name ("route": "users.index") or a path ("url": "/users"), '
    'optionally with "method", "parameters", "headers" and "data"'
)


def query_record(event: QueryEvent) -> dict[str, Any]:
    return {
        "sql": event.sql,
        "bindings": list(event.bindings),
        "time": event.time,
        "connection": event.connection,
    }


def normalize_sql(sql: str) -> str:
    """Collapse runs of whitespace."""
    return _WHITESPACE.sub(" ", sql).strip()


def query_pattern(sql: str) -> str:
    """Looser form of a statement: integer literals and IN lists become placeholders."""
    pattern = _INTEGER.sub("?", normalize_sql(sql))
    return _IN_LIST.sub("in (?)", pattern)


def extract_tables(sql: str) -> list[str]:
    """Table names following FROM, JOIN, INTO or UPDATE, in order, without repeats."""
    tables: list[str] = []
    for match in TABLE_PATTERN.finditer(sql):
        if match.group(1) not in tables:
            tables.append(match.group(1))
    return tables


def statement_type(sql: str) -> str:
    parts = sql.split(None, 1)
    return parts[0].upper() if parts else ""


def detect_duplicate_queries(queries: list[dict[str, Any]], threshold: int = 2) -> list[dict[str, Any]]:
    """
    Group identical statements.

    Args:
        queries: Query records in execution order.
        threshold: Minimum number of occurrences to report a group.

    Returns:
        Groups seen at least ``threshold`` times, most frequent first.
    """
    groups: dict[str, list[tuple[int, dict[str, Any]]]] = {}
    for index, query in enumerate(queries):
        groups.setdefault(normalize_sql(query["sql"]), []).append((index, query))

    duplicates = []
    for sql, members in groups.items():
        if len(members) < threshold:
            continue
        total = sum(q["time"] for _, q in members)
        duplicates.append({
            "sql": sql,
            "count": len(members),
            "total_time": total,
            "avg_time": round(total / len(members), 2),
            "instances": [{**q, "index": i} for i, q in members[:MAX_INSTANCES]],
        })
    duplicates.sort(key=lambda d: d["count"], reverse=True)
    return duplicates


def detect_n_plus_one(queries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Find SELECT patterns repeated more than three times.

    A repeated pattern suggests a query issued once per row of an earlier
    result. This is a heuristic and reports false positives.
    """
    patterns: dict[str, list[dict[str, Any]]] = {}
    for query in queries:
        if statement_type(query["sql"]) != "SELECT":
            continue
        patterns.setdefault(query_pattern(query["sql"]), []).append(query)

    suspects = []
    for pattern, members in patterns.items():
        if len(members) < N_PLUS_ONE_MIN:
            continue
        total = sum(q["time"] for q in members)
        suspects.append({
            "pattern": pattern,
            "count": len(members),
            "total_time": total,
            "avg_time": round(total / len(members), 2),
            "first_query": members[0]["sql"],
            "first_query_bindings": list(members[0].get("bindings") or []),
            "suggestion": N_PLUS_ONE_SUGGESTION,
            **heuristic(
                "high" if len(members) >= 10 else "medium",
                f"SELECT pattern executed {len(members)} times in one request",
            ),
        })
    suspects.sort(key=lambda s: s["count"], reverse=True)
    return suspects


def slow_query_suggestion(sql: str) -> str:
    lowered = normalize_sql(sql).lower()
    if "order by" in lowered and "limit" not in lowered:
        return "Consider adding LIMIT to ORDER BY queries"
    if lowered.startswith("select"):
        if " where " not in f" {lowered} ":
            return "Consider adding WHERE conditions to limit result set"
        return "Consider adding database indexes for WHERE/JOIN conditions"
    if lowered.startswith("insert"):
        return "Consider using bulk inserts for better performance"
    return "Review query structure and add appropriate indexes"


def detect_slow_queries(queries: list[dict[str, Any]], threshold_ms: float = SLOW_QUERY_MS) -> list[dict[str, Any]]:
    """Queries slower than ``threshold_ms``, slowest first."""
    slow = [
        {**query, "index": index, "suggestion": slow_query_suggestion(query["sql"])}
        for index, query in enumerate(queries)
        if query["time"] > threshold_ms
    ]
    slow.sort(key=lambda q: q["time"], reverse=True)
    return slow


def query_breakdown(queries: list[dict[str, Any]]) -> dict[str, dict[str, int]]:
    by_type: dict[str, int] = {}
    by_table: dict[str, int] = {}
    by_connection: dict[str, int] = {}
    for query in queries:
        kind = statement_type(query["sql"])
        by_type[kind] = by_type.get(kind, 0) + 1
        for table in extract_tables(query["sql"]):
            by_table[table] = by_table.get(table, 0) + 1
        connection = query.get("connection") or "default"
        by_connection[connection] = by_connection.get(connection, 0) + 1
    return {"by_type": by_type, "by_table": by_table, "by_connection": by_connection}


def performance_issues(
    queries: list[dict[str, Any]],
    duplicates: list[dict[str, Any]],
    n_plus_one: list[dict[str, Any]],
    high_query_count: int = 50,
    slow_total_ms: float = 1000,
) -> list[dict[str, Any]]:
    """Turn the detector results into severity-tagged issues."""
    issues = []
    total_time = sum(q["time"] for q in queries)
    if len(queries) > high_query_count:
        issues.append({
            "type": "high_query_count",
            "severity": "warning",
            "message": f"High number of queries: {len(queries)}",
            "suggestion": "Consider using eager loading, caching, or query optimization",
        })
    if total_time > slow_total_ms:
        issues.append({
            "type": "slow_total_time",
            "severity": "error",
            "message": f"Total query time is high: {round(total_time, 2)}ms",
            "suggestion": "Optimize slow queries and consider adding database indexes",
        })
    if duplicates:
        issues.append({
            "type": "duplicate_queries",
            "severity": "warning",
            "message": f"Found {len(duplicates)} duplicate queries",
            "suggestion": "Cache query results or restructure code to avoid repeated queries",
        })
    if n_plus_one:
        issues.append({
            "type": "n_plus_one",
            "severity": "error",
            "message": f"Found {len(n_plus_one)} potential N+1 query problems",
            "suggestion": N_PLUS_ONE_SUGGESTION,
        })
    return issues


class SqlAnalysisScanner(AbstractScanner):
    """Analyse the SQL one request executes."""

    name = "sql-analysis"
    description = "Detect duplicate, N+1 and slow queries executed by a request"
    config_section = "sql"
    available_options = {
        "route": "Name of the route to request",
        "url": "Path to request when no route is given",
        "method": "HTTP method",
        "parameters": "Route parameters, or query parameters for GET urls",
        "headers": "Request headers",
        "data": "Request body for non-GET requests",
        "threshold": "Minimum occurrences for a duplicate query group",
        "auto_explain": "Run EXPLAIN on slow and N+1 queries when issues are found",
    }
    default_options = {
        "route": None,
        "url": None,
        "method": "GET",
        "parameters": {},
        "headers": {},
        "data": {},
        "threshold": 2,
        "auto_explain": False,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        built = build_request(self.app, options)
        if built is None:
            return {"error": "Either route or url parameter is required", "usage": USAGE}
        request, target = built
        self.check_deadline(deadline)

        error = None
        with TraceSession(self.app) as session:
            try:
                session.dispatch(request)
            except Exception as e:
                logger.warning("Request to %s failed during analysis: %s", target, e)
                error = str(e)
        queries = [query_record(event) for event in session.queries]
        self.check_deadline(deadline)

        result: dict[str, Any] = {
            "request_info": {
                "route": options.get("route"),
                "url": request.path,
                "method": request.method,
                "response_status": session.response.status_code if session.response is not None else None,
                "execution_time": session.elapsed_ms,
            },
            "query_analysis": self.analyze(queries, options),
        }
        if error is not None:
            result["error"] = error
        return self.add_metadata(result, options, len(queries))

    def analyze(self, queries: list[dict[str, Any]], options: dict[str, Any]) -> dict[str, Any]:
        """Run every detector over a captured query log."""
        threshold = int(options.get("threshold") or 2)
        slow_ms = float(self.section.get("slow_query_ms") or SLOW_QUERY_MS)

        duplicates = detect_duplicate_queries(queries, threshold)
        n_plus_one = detect_n_plus_one(queries)
        slow = detect_slow_queries(queries, slow_ms)
        issues = performance_issues(
            queries,
            duplicates,
            n_plus_one,
            high_query_count=int(self.section.get("high_query_count") or 50),
            slow_total_ms=float(self.section.get("slow_total_ms") or 1000),
        )

        analysis: dict[str, Any] = {
            "total_queries": len(queries),
            "total_time": round(sum(q["time"] for q in queries), 2),
            "queries": queries,
            "duplicate_queries": duplicates,
            "n_plus_one_queries": n_plus_one,
            "slow_queries": slow,
            "query_breakdown": query_breakdown(queries),
            "performance_issues": issues,
        }
        if options.get("auto_explain") and issues:
            analysis["explain_results"] = self._explain(slow, n_plus_one)
        return analysis

    def _explain(self, slow: list[dict[str, Any]], n_plus_one: list[dict[str, Any]]) -> list[dict[str, Any]]:
        database = self.app.database
        if database is None:
            return []
        targets = [(q["sql"], q.get("bindings") or [], "slow_query") for q in slow[:MAX_EXPLAINS]]
        targets += [
            (s["first_query"], s.get("first_query_bindings") or [], "n_plus_one")
            for s in n_plus_one[:MAX_EXPLAINS]
        ]

        results = []
        for sql, bindings, kind in targets:
            try:
                plan = database.explain(sql, bindings)
            except Exception as e:
                logger.debug("EXPLAIN failed for %s: %s", sql, e)
                continue
            results.append({"query": sql, "explain": plan, "type": kind})
        return results

