"""
Route scanner for devtoolbox.

Lists the application's registered routes, optionally grouped by middleware,
and flags routes that look unused.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from devtoolbox.scanners.base import AbstractScanner, heuristic

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.runtime.base import Route
    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)


def route_record(route: Route, include_parameters: bool = False) -> dict[str, Any]:
    """Describe a route as a plain dict."""
    record: dict[str, Any] = {
        "uri": route.uri,
        "name": route.name,
        "methods": list(route.methods),
        "action": route.action,
        "middleware": list(route.middleware),
    }
    if include_parameters:
        record["parameters"] = route.parameter_names
        record["where_conditions"] = dict(route.wheres)
    return record


class RouteScanner(AbstractScanner):
    """Scan registered routes."""

    name = "routes"
    description = "Scan and analyze application routes"
    config_section = "routes"
    available_options = {
        "group_by_middleware": "Group routes by middleware",
        "include_parameters": "Include route parameters and where constraints",
        "detect_unused": "Flag routes that look unused (heuristic)",
        "filter_methods": "Only routes answering one of these HTTP methods (list)",
    }
    default_options = {
        "group_by_middleware": False,
        "include_parameters": False,
        "detect_unused": False,
        "filter_methods": [],
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        wanted = {m.upper() for m in options.get("filter_methods") or []}

        routes = []
        for route in self.app.routes():
            self.check_deadline(deadline)
            if wanted and not wanted.intersection(route.methods):
                continue
            routes.append(route_record(route, bool(options.get("include_parameters"))))

        result: dict[str, Any] = {
            "routes": routes,
            "count": len(routes),
        }
        if options.get("group_by_middleware"):
            result["grouped_by_middleware"] = self._group_by_middleware(routes)
        if options.get("detect_unused"):
            result["unused_routes"] = self._detect_unused(routes)

        return self.add_metadata(result, options, len(routes))

    def _group_by_middleware(self, routes: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
        grouped: dict[str, list[dict[str, Any]]] = {}
        for route in routes:
            middleware = route["middleware"]
            if not middleware:
                grouped.setdefault("no_middleware", []).append(route)
                continue
            for name in middleware:
                grouped.setdefault(name, []).append(route)
        return grouped

    def _detect_unused(self, routes: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """
        Routes without a name outside ``api/``.

        Unnamed routes cannot be referenced by URL generation, which makes
        them candidates for removal. Nothing checks actual traffic, so each
        entry is marked low confidence.
        """
        unused = []
        for route in routes:
            if not route["name"] and "api/" not in route["uri"]:
                unused.append({
                    **route,
                    **heuristic("low", "route has no name and is not under api/"),
                })
        return unused
