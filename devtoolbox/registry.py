"""
Name-keyed store of scanner instances.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from devtoolbox.errors import ScannerNotFound

if TYPE_CHECKING:
    from devtoolbox.scanners.base import Scanner

logger = logging.getLogger(__name__)


class ScannerRegistry:
    """
    Registry of scanners keyed by name.

    Registration order is preserved; registering an existing name replaces
    the previous scanner.
    """

    def __init__(self) -> None:
        self._scanners: dict[str, Scanner] = {}

    def register(self, name: str, scanner: Scanner) -> None:
        if name in self._scanners:
            logger.debug("Replacing scanner registered as %s", name)
        self._scanners[name] = scanner

    def get(self, name: str) -> Scanner:
        """
        Get the scanner registered under ``name``.

        Raises:
            ScannerNotFound: If nothing is registered under that name.
        """
        try:
            return self._scanners[name]
        except KeyError:
            raise ScannerNotFound(name) from None

    def has(self, name: str) -> bool:
        return name in self._scanners

    def all(self) -> list[str]:
        """Registered names in registration order."""
        return list(self._scanners)

    def unregister(self, name: str) -> None:
        self._scanners.pop(name, None)

    def clear(self) -> None:
        self._scanners.clear()

    def scanners(self) -> dict[str, Scanner]:
        return dict(self._scanners)

    def __contains__(self, name: object) -> bool:
        return name in self._scanners

    def __len__(self) -> int:
        return len(self._scanners)
