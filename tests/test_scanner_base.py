"""Tests for AbstractScanner option handling, metadata and formatting."""

from __future__ import annotations

import copy
import json

from devtoolbox.config import merge_config
from devtoolbox.scanners.base import BASE_OPTION_DOCS, heuristic
from devtoolbox.scanners.routes import RouteScanner
from devtoolbox.scanners.security import SecurityScanner


def test_merge_options_does_not_mutate_input(empty_app):
    """merge_options returns a new dict and leaves the caller's untouched."""
    scanner = RouteScanner(empty_app)
    options = {"detect_unused": True, "filter_methods": ["GET"]}
    snapshot = copy.deepcopy(options)
    merged = scanner.merge_options(options)
    assert options == snapshot
    assert merged is not options
    assert merged["detect_unused"] is True
    assert merged["include_metadata"] is True


def test_unknown_options_are_passed_through(empty_app):
    """Unknown keys are accepted and kept in the merged options."""
    scanner = RouteScanner(empty_app)
    merged = scanner.merge_options({"colour": "blue"})
    assert merged["colour"] == "blue"


def test_default_option_precedence(empty_app):
    """Config section keys override class defaults, which override config defaults."""
    scanner = RouteScanner(empty_app)
    scanner.configure(merge_config({
        "defaults": {"include_metadata": False},
        "routes": {"include_parameters": True, "not_an_option": 1},
    }))
    defaults = scanner.get_default_options()
    assert defaults["include_metadata"] is False
    assert defaults["include_parameters"] is True
    assert "not_an_option" not in defaults


def test_available_options_include_base_options(empty_app):
    """Every scanner documents the shared base options."""
    options = SecurityScanner(empty_app).get_available_options()
    for key in BASE_OPTION_DOCS:
        assert key in options
    assert "critical_only" in options


def test_add_metadata_wraps_by_default(empty_app):
    """include_metadata wraps data with a numeric count."""
    scanner = RouteScanner(empty_app)
    wrapped = scanner.add_metadata({"routes": []}, {"include_metadata": True}, 0)
    assert set(wrapped) == {"metadata", "data"}
    assert wrapped["metadata"]["count"] == 0
    assert wrapped["metadata"]["scanner"] == "routes"
    assert wrapped["data"] == {"routes": []}


def test_add_metadata_disabled_returns_data_unchanged(empty_app):
    """With include_metadata false no envelope keys are introduced."""
    scanner = RouteScanner(empty_app)
    data = {"routes": [], "count": 0}
    assert scanner.add_metadata(data, {"include_metadata": False}, 0) is data


def test_format_output(empty_app):
    """format selects array, json or count rendering."""
    scanner = RouteScanner(empty_app)
    data = [{"uri": "a"}, {"uri": "b"}]
    assert scanner.format_output(data, {"format": "array"}) is data
    assert scanner.format_output(data, {"format": "count"}) == {"count": 2}
    assert json.loads(scanner.format_output(data, {"format": "json"})["json"]) == data


def test_scan_paths_resolve_against_base(project, empty_app):
    """Relative paths resolve against the application base path."""
    scanner = RouteScanner(empty_app)
    paths = scanner.scan_paths({"paths": ["app/models"]}, "models")
    assert paths == [project / "app/models"]
    assert scanner.scan_paths({}, "views") == [project / "app/templates"]


def test_heuristic_fields():
    """Heuristic findings carry confidence and evidence."""
    fields = heuristic("low", "because")
    assert fields == {"heuristic": True, "confidence": "low", "evidence": "because"}
