"""
Route security audit for devtoolbox.

Flags routes without authentication middleware and state-changing routes
without CSRF protection, and condenses the findings into a 0-100 score.
The score is an ordinal health signal, not a guarantee.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import TYPE_CHECKING

from devtoolbox.scanners.base import AbstractScanner, heuristic

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.runtime.base import Route
    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)

MUTATING_METHODS = ("POST", "PUT", "PATCH", "DELETE")

SEVERITY_WEIGHTS = {
    "critical": 10,
    "high": 5,
    "medium": 2,
}
CSRF_WEIGHT = 3


def matches_pattern(uri: str, patterns: list[str]) -> bool:
    """True when any pattern is a substring of the uri or glob-matches it."""
    return any(pattern in uri or fnmatch.fnmatch(uri, pattern) for pattern in patterns)


def is_public_path(uri: str, methods: list[str], public_paths: list[str]) -> bool:
    """GET-only routes at or below a public path are considered public."""
    if [m for m in methods if m != "HEAD"] != ["GET"]:
        return False
    for path in public_paths:
        path = path.strip("/") or "/"
        if uri == path or (path != "/" and uri.startswith(path + "/")):
            return True
    return False


def route_severity(uri: str, methods: list[str]) -> str:
    lowered = uri.lower()
    if "admin" in lowered or "dashboard" in lowered:
        return "critical"
    if any(m in MUTATING_METHODS for m in methods):
        return "high"
    if "profile" in lowered or "account" in lowered:
        return "medium"
    return "low"


def recommendation(uri: str, methods: list[str]) -> str:
    if "admin" in uri.lower():
        return "Add auth middleware and consider role-based permissions"
    if any(m in MUTATING_METHODS for m in methods):
        return "Add auth middleware to protect data modification endpoints"
    return "Consider adding auth middleware if this route handles user-specific data"


def security_score(
    unprotected: list[dict[str, Any]],
    csrf_vulnerable: list[dict[str, Any]],
    total_routes: int,
) -> int:
    """
    Score route security from 0 to 100.

    ``100 - weighted / (routes * 10) * 100``, clamped at zero. Low severity
    findings carry no weight.
    """
    if total_routes == 0:
        return 100
    weighted = sum(SEVERITY_WEIGHTS.get(item["severity"], 0) for item in unprotected)
    weighted += CSRF_WEIGHT * len(csrf_vulnerable)
    score = 100 - weighted / max(1, total_routes * 10) * 100
    return int(round(max(0, score)))


class SecurityScanner(AbstractScanner):
    """Audit routes for missing authentication and CSRF protection."""

    name = "security"
    description = "Find unprotected routes and missing CSRF protection"
    config_section = "security"
    available_options = {
        "check_unprotected_routes": "Flag routes without auth middleware",
        "check_csrf_protection": "Flag state-changing routes without CSRF middleware",
        "critical_only": "Only report critical unprotected routes",
        "exclude_patterns": "Substring or glob patterns of uris to skip; replaces both built-in lists",
    }
    default_options = {
        "check_unprotected_routes": True,
        "check_csrf_protection": True,
        "critical_only": False,
        "exclude_patterns": None,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        routes = self.app.routes()

        custom_exclude = options.get("exclude_patterns")
        unprotected_exclude = list(
            custom_exclude if custom_exclude is not None else self.section.get("unprotected_exclude_patterns") or []
        )
        csrf_exclude = list(
            custom_exclude if custom_exclude is not None else self.section.get("csrf_exclude_patterns") or []
        )

        unprotected: list[dict[str, Any]] = []
        csrf_vulnerable: list[dict[str, Any]] = []
        for route in routes:
            self.check_deadline(deadline)
            if options.get("check_unprotected_routes"):
                finding = self._check_auth(route, unprotected_exclude)
                if finding is not None:
                    unprotected.append(finding)
            if options.get("check_csrf_protection"):
                finding = self._check_csrf(route, csrf_exclude)
                if finding is not None:
                    csrf_vulnerable.append(finding)

        if options.get("critical_only"):
            unprotected = [item for item in unprotected if item["severity"] == "critical"]

        result = {
            "unprotected_routes": unprotected,
            "csrf_vulnerable_routes": csrf_vulnerable,
            "security_score": security_score(unprotected, csrf_vulnerable, len(routes)),
            "total_routes": len(routes),
        }
        if unprotected or csrf_vulnerable:
            logger.debug(
                "%d unprotected and %d csrf-vulnerable routes out of %d",
                len(unprotected), len(csrf_vulnerable), len(routes),
            )
        return self.add_metadata(result, options, len(unprotected) + len(csrf_vulnerable))

    def _check_auth(self, route: Route, exclude: list[str]) -> dict[str, Any] | None:
        auth_middleware = set(self.section.get("auth_middleware") or [])
        middleware = [str(m) for m in route.middleware]
        if auth_middleware.intersection(middleware):
            return None
        if matches_pattern(route.uri, exclude):
            return None
        if is_public_path(route.uri, route.methods, list(self.section.get("public_paths") or [])):
            return None
        return {
            "uri": route.uri,
            "methods": list(route.methods),
            "name": route.name,
            "action": route.action,
            "middleware": middleware,
            "severity": route_severity(route.uri, route.methods),
            "recommendation": recommendation(route.uri, route.methods),
            **heuristic("medium", "no authentication middleware on route"),
        }

    def _check_csrf(self, route: Route, exclude: list[str]) -> dict[str, Any] | None:
        dangerous = [m for m in route.methods if m in MUTATING_METHODS]
        if not dangerous:
            return None
        csrf_middleware = set(self.section.get("csrf_middleware") or [])
        middleware = [str(m) for m in route.middleware]
        if csrf_middleware.intersection(middleware):
            return None
        if matches_pattern(route.uri, exclude):
            return None
        return {
            "uri": route.uri,
            "methods": dangerous,
            "name": route.name,
            "action": route.action,
            "middleware": middleware,
            "severity": "high",
            "recommendation": "Add CSRF protection by using web middleware group or csrf middleware",
        }
