"""
Exception types for devtoolbox.

Per-item problems (an unreadable file, an inaccessible table) are reported
inside scan results; these exceptions cover the failures that abort a scan.
"""

from __future__ import annotations


class DevtoolboxError(Exception):
    """Base class for all devtoolbox errors."""


class ConfigurationError(DevtoolboxError):
    """Invalid configuration or composition of the toolkit."""


class ScannerNotFound(ConfigurationError, LookupError):
    """No scanner is registered under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No scanner registered for type [{name}].")


class UnknownScannerType(ScannerNotFound):
    """Raised by the manager when asked to run a scanner type it does not know."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.args = (f"Unknown scanner type [{name}].",)


class InvalidScanOptions(ConfigurationError, ValueError):
    """Scan options that cannot be interpreted."""


class ApplicationLoadError(ConfigurationError):
    """The host application reference could not be imported or built."""


class ScanTimeout(DevtoolboxError):
    """A scan ran past its deadline."""


class TraceSessionActive(DevtoolboxError):
    """A query trace session is already open in this process."""


class BindingResolutionError(DevtoolboxError):
    """The host container could not build a binding."""


class IntrospectionError(DevtoolboxError):
    """The host application failed while being introspected."""
