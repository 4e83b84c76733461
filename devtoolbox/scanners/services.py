"""
Service scanner for devtoolbox.

A flat listing of container bindings. See ``container_bindings`` for the
detailed per-binding analysis.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from devtoolbox.runtime.base import describe_concrete
from devtoolbox.scanners.base import AbstractScanner

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)


class ServiceScanner(AbstractScanner):
    """List services bound in the application container."""

    name = "services"
    description = "Scan registered services in the container"
    config_section = "services"
    available_options = {
        "include_singletons": "Add a list of shared bindings",
        "include_aliases": "Add the container alias table",
        "filter_custom": "Skip framework services",
    }
    default_options = {
        "include_singletons": False,
        "include_aliases": False,
        "filter_custom": False,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        bindings = self.app.bindings()

        services = []
        for abstract, binding in bindings.items():
            if options.get("filter_custom") and not self.is_custom(abstract):
                continue
            services.append({
                "abstract": abstract,
                "concrete": describe_concrete(binding.concrete),
                "shared": binding.shared,
            })

        result: dict[str, Any] = {
            "services": services,
            "count": len(services),
        }
        if options.get("include_singletons"):
            result["singletons"] = [
                {"abstract": abstract, "concrete": describe_concrete(binding.concrete)}
                for abstract, binding in bindings.items()
                if binding.shared
            ]
        if options.get("include_aliases"):
            result["aliases"] = self.app.aliases()

        return self.add_metadata(result, options, len(services))

    def is_custom(self, abstract: str) -> bool:
        prefixes = self.section.get("framework_prefixes") or []
        return not any(abstract.startswith(prefix) for prefix in prefixes)
