"""
Base scanner contract and shared scanner helpers.

To add a scanner:
1. Subclass AbstractScanner (or implement Scanner directly)
2. Implement ``name``, ``description``, ``available_options`` and ``scan``
3. Register it with ``Manager.register()`` or ``ScannerRegistry.register()``

Example:
    class QueueScanner(AbstractScanner):
        name = "queues"
        description = "List configured queues"
        available_options = {"connection": "Only this connection"}

        def scan(self, options=None, deadline=None):
            options = self.merge_options(options)
            queues = [...]
            return self.add_metadata({"queues": queues}, options, len(queues))
"""

from __future__ import annotations

import copy
import datetime
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from devtoolbox.config import DEFAULT_CONFIG
from devtoolbox.utils import Deadline, resolve_paths

if TYPE_CHECKING:
    from pathlib import Path
    from typing import Any

    from devtoolbox.runtime.base import Application

logger = logging.getLogger(__name__)

BASE_OPTIONS: dict[str, Any] = {
    "paths": [],
    "exclude": [],
    "format": "array",
    "include_metadata": True,
}

BASE_OPTION_DOCS: dict[str, str] = {
    "paths": "Paths to scan instead of the configured ones (list)",
    "exclude": "Path patterns to skip (list)",
    "format": "Output format: array, json or count",
    "include_metadata": "Wrap results in a metadata/data envelope",
}


class Scanner(ABC):
    """
    Contract every scanner implements.

    ``scan`` must be read-only with respect to the host application and
    return an empty result, not raise, when there is nothing to report.
    """

    @abstractmethod
    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        """
        Run the scan.

        Args:
            options: Caller options; unknown keys are ignored.
            deadline: Cooperative deadline checked between units of work.

        Returns:
            Result mapping, shape specific to the scanner.
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        ...

    @abstractmethod
    def get_description(self) -> str:
        ...

    @abstractmethod
    def get_available_options(self) -> dict[str, str]:
        ...


class AbstractScanner(Scanner):
    """
    Scanner with option merging, metadata and output formatting.

    Subclasses set ``name``, ``description``, ``available_options`` and
    ``default_options`` as class attributes. ``config_section`` names the
    config section whose keys provide option defaults.
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    available_options: ClassVar[dict[str, str]] = {}
    default_options: ClassVar[dict[str, Any]] = {}
    config_section: ClassVar[str | None] = None

    def __init__(self, app: Application) -> None:
        self.app = app
        self.config: dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)

    def configure(self, config: dict[str, Any]) -> None:
        """
        Configure the scanner with the given config.

        Args:
            config: Full configuration dictionary.
        """
        self.config = config

    @property
    def section(self) -> dict[str, Any]:
        """This scanner's config section (empty when absent)."""
        if not self.config_section:
            return {}
        return self.config.get(self.config_section) or {}

    def get_name(self) -> str:
        return self.name

    def get_description(self) -> str:
        return self.description

    def get_available_options(self) -> dict[str, str]:
        return {**BASE_OPTION_DOCS, **self.available_options}

    def get_default_options(self) -> dict[str, Any]:
        """
        Defaults in increasing precedence: base options, the config
        ``defaults`` section, the scanner's own defaults, then option keys
        found in the scanner's config section.
        """
        options = copy.deepcopy(BASE_OPTIONS)
        options.update(copy.deepcopy(self.config.get("defaults") or {}))
        options.update(copy.deepcopy(self.default_options))
        available = self.get_available_options()
        for key, value in self.section.items():
            if key in available:
                options[key] = copy.deepcopy(value)
        return options

    def merge_options(self, options: dict[str, Any] | None) -> dict[str, Any]:
        """Return defaults overlaid with caller options; ``options`` is not modified."""
        merged = self.get_default_options()
        options = options or {}
        unknown = set(options) - set(self.get_available_options())
        if unknown:
            logger.debug("%s ignores options: %s", self.name, ", ".join(sorted(unknown)))
        merged.update(options)
        return merged

    def add_metadata(self, data: dict[str, Any], options: dict[str, Any], count: int) -> dict[str, Any]:
        """
        Wrap data in a metadata envelope when ``include_metadata`` is set.

        Args:
            data: Scanner result.
            options: Merged options.
            count: Number of primary items the scanner found.

        Returns:
            ``{"metadata": {...}, "data": data}`` or ``data`` unchanged.
        """
        if not options.get("include_metadata", True):
            return data
        return {
            "metadata": {
                "scanner": self.get_name(),
                "description": self.get_description(),
                "scanned_at": now_iso(),
                "count": count,
            },
            "data": data,
        }

    def format_output(self, data: Any, options: dict[str, Any]) -> Any:
        """Render data as requested by the ``format`` option."""
        fmt = options.get("format", "array")
        if fmt == "json":
            return {"json": json.dumps(data, indent=2, default=str)}
        if fmt == "count":
            return {"count": len(data)}
        return data

    def scan_paths(self, options: dict[str, Any], kind: str) -> list[Path]:
        """Paths from the ``paths`` option, else the configured layout path."""
        configured = (self.config.get("paths") or {}).get(kind)
        default = [configured] if configured else []
        return resolve_paths(options.get("paths") or None, self.app.base_path, default)

    @staticmethod
    def check_deadline(deadline: Deadline | None) -> None:
        if deadline is not None:
            deadline.check()


def heuristic(confidence: str, evidence: str) -> dict[str, Any]:
    """Fields marking a finding as heuristic rather than established fact."""
    return {"heuristic": True, "confidence": confidence, "evidence": evidence}


def now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()
