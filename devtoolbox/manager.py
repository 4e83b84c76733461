"""
Orchestration facade over the scanner registry.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING

from devtoolbox.config import DEFAULT_CONFIG
from devtoolbox.errors import ScannerNotFound, UnknownScannerType
from devtoolbox.registry import ScannerRegistry
from devtoolbox.scanners import DEFAULT_SCANNERS
from devtoolbox.scanners.base import now_iso
from devtoolbox.utils import Deadline

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.runtime.base import Application
    from devtoolbox.scanners.base import Scanner

logger = logging.getLogger(__name__)


class Manager:
    """
    Run scanners by name and wrap their results in an envelope.

    Args:
        app: Host application to introspect.
        config: Configuration (see ``devtoolbox.config``); defaults apply
            when omitted.
        registry: Registry to use; a fresh one is created when omitted.
        register_defaults: Register the built-in scanners on construction.
    """

    def __init__(
        self,
        app: Application,
        config: dict[str, Any] | None = None,
        registry: ScannerRegistry | None = None,
        register_defaults: bool = True,
    ) -> None:
        self.app = app
        self.config = config if config is not None else copy.deepcopy(DEFAULT_CONFIG)
        self.registry = registry if registry is not None else ScannerRegistry()
        if register_defaults:
            for scanner_class in DEFAULT_SCANNERS:
                self.register(scanner_class(app))

    def register(self, scanner: Scanner, name: str | None = None) -> None:
        """Register a scanner under ``name`` (defaults to its own name)."""
        configure = getattr(scanner, "configure", None)
        if callable(configure):
            configure(self.config)
        self.registry.register(name or scanner.get_name(), scanner)

    def available_scanners(self) -> list[str]:
        return self.registry.all()

    def scan(
        self,
        type: str,
        options: dict[str, Any] | None = None,
        timeout: float | None = None,
        deadline: Deadline | None = None,
    ) -> dict[str, Any]:
        """
        Run one scanner.

        Args:
            type: Registered scanner name.
            options: Scanner options, echoed back in the envelope.
            timeout: Seconds before the scan is aborted.

        Returns:
            ``{"type", "timestamp", "options", **result}``.

        Raises:
            UnknownScannerType: If no scanner is registered under ``type``.
            ScanTimeout: If the timeout elapses.
        """
        try:
            scanner = self.registry.get(type)
        except ScannerNotFound:
            raise UnknownScannerType(type) from None

        options = options if options is not None else {}
        if deadline is None:
            deadline = Deadline(timeout)

        logger.debug("Running scanner %s", type)
        result = scanner.scan(copy.deepcopy(options), deadline)

        return {
            "type": type,
            "timestamp": now_iso(),
            "options": options,
            **result,
        }

    def scan_multiple(
        self,
        types: list[str],
        options: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Run several scanners sequentially with shared options.

        The timeout covers the whole batch.
        """
        deadline = Deadline(timeout)
        results = {}
        for scanner_type in types:
            results[scanner_type] = self.scan(scanner_type, options, deadline=deadline)
        return {
            "timestamp": now_iso(),
            "scanned_types": list(types),
            "results": results,
        }

    def scan_all(self, options: dict[str, Any] | None = None, timeout: float | None = None) -> dict[str, Any]:
        return self.scan_multiple(self.registry.all(), options, timeout)
