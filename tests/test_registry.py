"""Tests for the scanner registry: registration, lookup, replacement."""

from __future__ import annotations

import pytest

from devtoolbox.errors import ConfigurationError, ScannerNotFound
from devtoolbox.registry import ScannerRegistry
from devtoolbox.scanners import DEFAULT_SCANNERS
from devtoolbox.scanners.routes import RouteScanner


def test_register_and_get(empty_app):
    """A registered scanner is returned by name."""
    registry = ScannerRegistry()
    scanner = RouteScanner(empty_app)
    registry.register("routes", scanner)
    assert registry.has("routes")
    assert "routes" in registry
    assert registry.get("routes") is scanner
    assert len(registry) == 1


def test_get_unknown_raises(empty_app):
    """Looking up an unregistered name raises ScannerNotFound."""
    registry = ScannerRegistry()
    with pytest.raises(ScannerNotFound) as excinfo:
        registry.get("nope")
    assert excinfo.value.name == "nope"
    assert "nope" in str(excinfo.value)
    assert isinstance(excinfo.value, ConfigurationError)
    assert isinstance(excinfo.value, LookupError)


def test_register_replaces_existing(empty_app):
    """Registering the same name twice keeps the last scanner."""
    registry = ScannerRegistry()
    first, second = RouteScanner(empty_app), RouteScanner(empty_app)
    registry.register("routes", first)
    registry.register("routes", second)
    assert registry.get("routes") is second
    assert registry.all() == ["routes"]


def test_all_preserves_order_and_unregister(empty_app):
    """Names come back in registration order; unregister removes one."""
    registry = ScannerRegistry()
    for scanner_class in DEFAULT_SCANNERS:
        registry.register(scanner_class.name, scanner_class(empty_app))
    names = registry.all()
    assert names == [cls.name for cls in DEFAULT_SCANNERS]

    registry.unregister("routes")
    assert not registry.has("routes")
    registry.unregister("routes")  # unknown names are ignored
    registry.clear()
    assert len(registry) == 0


def test_every_registered_name_matches_scanner_name(manager):
    """For every registered name n, get(n).get_name() == n."""
    for name in manager.registry.all():
        assert manager.registry.has(name)
        assert manager.registry.get(name).get_name() == name
