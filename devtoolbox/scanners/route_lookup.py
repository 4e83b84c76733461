"""
Reverse route lookup for devtoolbox: which routes point at a controller or
controller method.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING

from devtoolbox.scanners.base import AbstractScanner
from devtoolbox.scanners.container_bindings import describe_parameters
from devtoolbox.utils import class_basename, import_string

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.runtime.base import Route
    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)


def normalize_target(target: str) -> str:
    """``UserController@show`` becomes ``UserController.show``."""
    return target.strip().replace("@", ".")


def route_matches(route: Route, target: str) -> bool:
    return route.controller is not None and target in (route.action or "")


class RouteWhereLookupScanner(AbstractScanner):
    """Find routes handled by a given controller or method."""

    name = "route-where-lookup"
    description = "Find routes that point to a controller or controller method"
    available_options = {
        "target": "Controller or Controller@method to look up (required)",
        "show_methods": "List the public methods of the controller",
        "include_parameters": "Include route parameters and where constraints",
    }
    default_options = {
        "target": None,
        "show_methods": False,
        "include_parameters": False,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        raw_target = options.get("target")
        if not raw_target:
            return {
                "error": "Target controller or method is required",
                "usage": 'Specify a controller like "UserController" or "UserController@show"',
            }
        target = normalize_target(str(raw_target))

        routes = self.app.routes()
        matching = []
        for route in routes:
            self.check_deadline(deadline)
            if route_matches(route, target):
                matching.append(self._describe(route, options))

        total = len(routes)
        result = {
            "target": raw_target,
            "matching_routes": matching,
            "controller_info": self._controller_info(str(raw_target), routes, options),
            "statistics": {
                "total_routes": total,
                "matching_routes": len(matching),
                "match_percentage": round(len(matching) / total * 100, 2) if total else 0,
            },
        }
        return self.add_metadata(result, options, len(matching))

    def _describe(self, route: Route, options: dict[str, Any]) -> dict[str, Any]:
        record: dict[str, Any] = {
            "uri": route.uri,
            "methods": list(route.methods),
            "name": route.name,
            "controller": route.action if route.controller else "Closure",
            "middleware": [str(m) for m in route.middleware],
        }
        if options.get("include_parameters"):
            record["parameters"] = route.parameter_names
            record["where_conditions"] = dict(route.wheres)
        return record

    def _controller_info(self, target: str, routes: list[Route], options: dict[str, Any]) -> dict[str, Any]:
        controller = self._controller_class_name(target, routes)
        cls = self._load(controller)
        if cls is None:
            return {"exists": False, "class": controller, "error": "Controller class not found"}

        try:
            source_file = inspect.getsourcefile(cls)
        except TypeError:
            source_file = None
        info: dict[str, Any] = {
            "exists": True,
            "class": controller,
            "file": source_file,
        }
        if options.get("show_methods") and inspect.isclass(cls):
            info["methods"] = self._methods(cls)
        return info

    @staticmethod
    def _controller_class_name(target: str, routes: list[Route]) -> str:
        """
        Dotted name of the controller a target refers to.

        A bare class name is matched against the controllers of registered
        routes; ``Controller@method`` drops the method part.
        """
        controller = target.split("@", 1)[0] if "@" in target else target
        if "." in controller:
            try:
                obj = import_string(controller)
            except ImportError:
                owner = controller.rpartition(".")[0]
                return owner or controller
            if inspect.isclass(obj) or inspect.ismodule(obj):
                return controller
            return controller.rpartition(".")[0]
        for route in routes:
            if route.controller and class_basename(route.controller) == controller:
                return route.controller
        return controller

    @staticmethod
    def _load(name: str) -> Any:
        try:
            obj = import_string(name)
        except ImportError:
            return None
        return obj if inspect.isclass(obj) or inspect.ismodule(obj) else None

    @staticmethod
    def _methods(cls: type) -> list[dict[str, Any]]:
        methods = []
        for name, member in cls.__dict__.items():
            if name.startswith("_") or not inspect.isfunction(member):
                continue
            parameters = [
                {k: p[k] for k in ("name", "type", "optional")}
                for p in describe_parameters(member)
                if p["name"] not in ("self", "cls")
            ]
            methods.append({"name": name, "parameters": parameters})
        return methods
