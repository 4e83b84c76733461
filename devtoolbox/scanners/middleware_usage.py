"""
Middleware usage analysis for devtoolbox.

Builds a usage table keyed by middleware class: how many routes attach it,
through which groups, and whether it runs globally.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from devtoolbox.scanners.base import AbstractScanner
from devtoolbox.utils import class_basename

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.runtime.base import MiddlewareStack, Route
    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)


class MiddlewareUsageScanner(AbstractScanner):
    """Find where each middleware class is used."""

    name = "middleware-usage"
    description = "Analyze which routes and groups use each middleware"
    available_options = {
        "middleware": "Only middleware whose class, alias or name contains this text",
        "show_routes": "List the routes using each middleware",
        "show_groups": "List the groups through which each middleware is applied",
        "show_global": "Add the global middleware list",
        "unused_only": "Only middleware that no route uses and that is not global",
    }
    default_options = {
        "middleware": None,
        "show_routes": False,
        "show_groups": False,
        "show_global": False,
        "unused_only": False,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        stack = self.app.middleware()

        usage = self._initial_usage(stack)
        for route in self.app.routes():
            self.check_deadline(deadline)
            self._record_route(route, stack, usage, options)

        analysis: dict[str, Any] = dict(usage)
        needle = (options.get("middleware") or "").lower()
        if needle:
            analysis = {
                cls: data for cls, data in analysis.items()
                if needle in cls.lower()
                or needle in (data["middleware"].get("alias") or "").lower()
                or needle in data["middleware"]["name"].lower()
            }
        if options.get("unused_only"):
            analysis = {
                cls: data for cls, data in analysis.items()
                if data["usage_count"] == 0 and not data["used_as_global"]
            }

        result: dict[str, Any] = {
            "middleware_analysis": analysis,
            "statistics": self._statistics(analysis, stack),
        }
        if options.get("show_global"):
            result["global_middleware"] = [
                {"class": cls, "name": class_basename(cls), "applies_to": "all_requests"}
                for cls in stack.global_middleware
            ]
        return self.add_metadata(result, options, len(analysis))

    @staticmethod
    def _initial_usage(stack: MiddlewareStack) -> dict[str, dict[str, Any]]:
        usage: dict[str, dict[str, Any]] = {}

        def add(cls: str, descriptor: dict[str, Any], is_global: bool) -> None:
            if cls not in usage:
                usage[cls] = {
                    "middleware": descriptor,
                    "usage_count": 0,
                    "routes": [],
                    "groups_used": [],
                    "used_as_global": is_global,
                }

        for cls in stack.global_middleware:
            add(cls, {"class": cls, "name": class_basename(cls), "type": "global"}, True)
        for group, members in stack.groups.items():
            for member in members:
                cls = stack.aliases.get(member, member)
                add(cls, {"class": cls, "name": class_basename(cls), "type": "group", "group": group}, False)
        for alias, cls in stack.aliases.items():
            add(cls, {"class": cls, "name": class_basename(cls), "type": "route", "alias": alias}, False)
        return usage

    def _record_route(
        self,
        route: Route,
        stack: MiddlewareStack,
        usage: dict[str, dict[str, Any]],
        options: dict[str, Any],
    ) -> None:
        route_info = {
            "uri": route.uri,
            "methods": list(route.methods),
            "name": route.name,
            "action": route.action,
        }
        for applied in route.middleware:
            name = applied.split(":", 1)[0]
            for cls, group in self._resolve(name, stack):
                data = usage.get(cls)
                if data is None:
                    continue
                data["usage_count"] += 1
                if options.get("show_routes"):
                    data["routes"].append(route_info)
                if options.get("show_groups"):
                    entry = {"group": group, "middleware_applied": applied, "route_pattern": route.uri}
                    if entry not in data["groups_used"]:
                        data["groups_used"].append(entry)

    @staticmethod
    def _resolve(name: str, stack: MiddlewareStack) -> list[tuple[str, str | None]]:
        """Classes a route middleware entry stands for, with the group it came through."""
        if name in stack.aliases:
            return [(stack.aliases[name], None)]
        if name in stack.groups:
            return [(stack.aliases.get(member, member), name) for member in stack.groups[name]]
        return [(name, None)]

    @staticmethod
    def _statistics(analysis: dict[str, dict[str, Any]], stack: MiddlewareStack) -> dict[str, Any]:
        used = [cls for cls, data in analysis.items() if data["usage_count"] > 0 or data["used_as_global"]]
        never_used = [
            {"class": cls, "name": data["middleware"]["name"]}
            for cls, data in analysis.items()
            if not (data["usage_count"] > 0 or data["used_as_global"])
        ]
        ranked = sorted(
            (
                {"class": cls, "name": data["middleware"]["name"], "usage_count": data["usage_count"]}
                for cls, data in analysis.items()
                if data["usage_count"] > 0
            ),
            key=lambda item: item["usage_count"],
            reverse=True,
        )
        return {
            "total_middleware_classes": len(analysis),
            "global_middleware": len(stack.global_middleware),
            "route_middleware": len(stack.aliases),
            "group_middleware": sum(len(members) for members in stack.groups.values()),
            "used_middleware": len(used),
            "unused_middleware": len(never_used),
            "most_used": ranked[:5],
            "never_used": never_used,
        }
