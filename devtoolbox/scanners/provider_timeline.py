"""
Service provider boot timeline for devtoolbox.

Providers have already booted by the time a scan runs, so boot times here
are estimates derived from the size of each provider class, not
measurements. Results carry ``timing_source: "estimated"``.
"""

from __future__ import annotations

import inspect
import logging
import os
import random
import statistics
from typing import TYPE_CHECKING

from devtoolbox.scanners.base import AbstractScanner
from devtoolbox.scanners.container_bindings import describe_parameters
from devtoolbox.utils import qualified_name

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)

# Class-name fragment to the services a provider of that name usually binds
BINDING_HINTS = (
    ("Route", "router"),
    ("Database", "db"),
    ("Cache", "cache"),
)

LIFECYCLE_METHODS = ("__init__", "register", "boot")


def provider_class(provider: Any) -> type:
    return provider if inspect.isclass(provider) else type(provider)


def method_count(cls: type) -> int:
    return len(inspect.getmembers(cls, inspect.isfunction))


def property_count(provider: Any) -> int:
    cls = provider_class(provider)
    count = sum(
        1 for name, value in vars(cls).items()
        if not name.startswith("__") and not callable(value) and not isinstance(value, (staticmethod, classmethod))
    )
    if not inspect.isclass(provider):
        count += len(getattr(provider, "__dict__", {}))
    return count


def source_size(cls: type) -> int:
    try:
        source_file = inspect.getsourcefile(cls)
    except TypeError:
        return 0
    if not source_file:
        return 0
    try:
        return os.path.getsize(source_file)
    except OSError as e:
        logger.debug("Could not stat %s: %s", source_file, e)
        return 0


def estimate_boot_time(methods: int, size_bytes: int, rng: random.Random) -> float:
    """Milliseconds: ``(1 + 0.1 * methods + 0.05 * KiB) * jitter``, jitter in [0.8, 1.2]."""
    base = 1 + 0.1 * methods + 0.05 * (size_bytes / 1024)
    return round(base * rng.uniform(0.8, 1.2), 2)


def estimate_memory(methods: int, properties: int) -> int:
    """Bytes, from the number of methods and attributes."""
    return 1024 + 100 * methods + 50 * properties


class ProviderTimelineScanner(AbstractScanner):
    """Estimate how long each service provider takes to boot."""

    name = "provider-timeline"
    description = "Estimate service provider boot times (simulated, not measured)"
    config_section = "provider_timeline"
    available_options = {
        "slow_threshold": "Boot time in milliseconds above which a provider is slow",
        "include_deferred": "Include deferred providers",
        "show_dependencies": "List the types lifecycle methods depend on",
        "show_bindings": "List the services each provider binds",
        "seed": "Seed for the timing jitter, for reproducible output",
    }
    default_options = {
        "slow_threshold": 50,
        "include_deferred": False,
        "show_dependencies": False,
        "show_bindings": False,
        "seed": None,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        rng = random.Random(options.get("seed"))
        threshold = options.get("slow_threshold")
        threshold = float(threshold if threshold is not None else 50)

        candidates = [(p, False) for p in self.app.providers()]
        if options.get("include_deferred"):
            seen: set[int] = set()
            for provider in self.app.deferred_providers().values():
                if id(provider) not in seen:
                    seen.add(id(provider))
                    candidates.append((provider, True))

        providers = []
        for provider, deferred in candidates:
            self.check_deadline(deadline)
            providers.append(self._describe(provider, deferred, rng, options))

        timeline = []
        elapsed = 0.0
        for record in providers:
            start = elapsed
            elapsed = round(elapsed + record["boot_time"], 2)
            timeline.append({
                "provider": record["name"],
                "class": record["class"],
                "start_time": round(start, 2),
                "end_time": elapsed,
                "duration": record["boot_time"],
                "is_deferred": record["is_deferred"],
            })

        slow = [p for p in providers if p["boot_time"] > threshold]
        result = {
            "providers": sorted(providers, key=lambda p: p["boot_time"], reverse=True),
            "timeline": timeline,
            "statistics": self._statistics(providers, slow, threshold),
            "slow_providers": sorted(slow, key=lambda p: p["boot_time"], reverse=True),
            "total_providers": len(providers),
            "total_boot_time": round(sum(p["boot_time"] for p in providers), 2),
            "timing_source": "estimated",
        }
        return self.add_metadata(result, options, len(providers))

    def _describe(
        self,
        provider: Any,
        deferred: bool,
        rng: random.Random,
        options: dict[str, Any],
    ) -> dict[str, Any]:
        cls = provider_class(provider)
        methods = method_count(cls)
        try:
            file_path = inspect.getsourcefile(cls)
        except TypeError:
            file_path = None
        record: dict[str, Any] = {
            "class": qualified_name(cls),
            "name": cls.__name__,
            "boot_time": estimate_boot_time(methods, source_size(cls), rng),
            "file_path": file_path,
            "is_deferred": deferred,
            "memory_usage": estimate_memory(methods, property_count(provider)),
        }
        if options.get("show_dependencies"):
            record["dependencies"] = self._dependencies(cls)
        if options.get("show_bindings"):
            record["bindings"] = self._bindings(provider, deferred)
        return record

    @staticmethod
    def _dependencies(cls: type) -> list[str]:
        dependencies: list[str] = []
        for method_name in LIFECYCLE_METHODS:
            method = cls.__dict__.get(method_name)
            if not inspect.isfunction(method):
                continue
            for param in describe_parameters(method):
                if param["name"] in ("self", "cls") or param["type"] == "mixed":
                    continue
                if param["type"] not in dependencies:
                    dependencies.append(param["type"])
        return dependencies

    @staticmethod
    def _bindings(provider: Any, deferred: bool) -> list[str]:
        if deferred:
            provides = getattr(provider, "provides", None)
            if callable(provides):
                try:
                    return list(provides())
                except TypeError as e:
                    logger.debug("provides() failed on %s: %s", provider, e)
                    return []
        name = provider_class(provider).__name__
        return [service for fragment, service in BINDING_HINTS if fragment in name]

    @staticmethod
    def _statistics(providers: list[dict[str, Any]], slow: list[dict[str, Any]], threshold: float) -> dict[str, Any]:
        times = [p["boot_time"] for p in providers]
        slowest = max(providers, key=lambda p: p["boot_time"]) if providers else None
        fastest = min(providers, key=lambda p: p["boot_time"]) if providers else None
        return {
            "total_providers": len(providers),
            "eager_providers": sum(1 for p in providers if not p["is_deferred"]),
            "deferred_providers": sum(1 for p in providers if p["is_deferred"]),
            "slow_providers": len(slow),
            "slowest_provider": {"name": slowest["name"], "boot_time": slowest["boot_time"]} if slowest else None,
            "fastest_provider": {"name": fastest["name"], "boot_time": fastest["boot_time"]} if fastest else None,
            "average_boot_time": round(sum(times) / len(times), 2) if times else 0,
            "median_boot_time": round(statistics.median(times), 2) if times else 0,
            "total_memory_estimate": sum(p["memory_usage"] for p in providers),
            "slow_threshold": threshold,
        }
