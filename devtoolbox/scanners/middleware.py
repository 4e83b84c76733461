"""
Middleware scanner for devtoolbox.

Flattens the application's global middleware, route middleware aliases and
middleware groups into one list.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING

from devtoolbox.scanners.base import AbstractScanner

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)


class MiddlewareScanner(AbstractScanner):
    """List registered middleware."""

    name = "middleware"
    description = "Scan global, route and group middleware"
    available_options = {
        "include_usage": "Count how often route middleware is attached to routes",
        "group_by_type": "Group the list by global, route and group",
    }
    default_options = {
        "include_usage": False,
        "group_by_type": False,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        stack = self.app.middleware()

        entries: list[dict[str, Any]] = []
        for cls in stack.global_middleware:
            entries.append({"class": cls, "type": "global", "alias": None})
        for alias, cls in stack.aliases.items():
            entries.append({"class": cls, "type": "route", "alias": alias})
        for group, members in stack.groups.items():
            for cls in members:
                entries.append({"class": stack.aliases.get(cls, cls), "type": "group", "alias": group})

        result: dict[str, Any] = {
            "middleware": entries,
            "count": len(entries),
        }
        if options.get("group_by_type"):
            grouped: dict[str, list[dict[str, Any]]] = {"global": [], "route": [], "group": []}
            for entry in entries:
                grouped[entry["type"]].append(entry)
            result["grouped"] = grouped
        if options.get("include_usage"):
            result["usage"] = self._usage(deadline)

        return self.add_metadata(result, options, len(entries))

    def _usage(self, deadline: Deadline | None) -> dict[str, Any]:
        counts: Counter[str] = Counter()
        with_middleware = 0
        for route in self.app.routes():
            self.check_deadline(deadline)
            if route.middleware:
                with_middleware += 1
            counts.update(route.middleware)
        return {
            "total_routes_with_middleware": with_middleware,
            "most_used_middleware": [
                {"middleware": name, "count": count} for name, count in counts.most_common(5)
            ],
        }
