"""Tests for reverse lookups: where a model is used and which routes hit a controller."""

from __future__ import annotations

from devtoolbox.scanners.model_usage import (
    USAGE_SECTIONS,
    ModelUsageScanner,
    find_python_usages,
    find_template_usages,
    snake_case,
)
from devtoolbox.scanners.route_lookup import RouteWhereLookupScanner, normalize_target


# Model usage

def test_model_usage_without_model_returns_empty_sections(app):
    """No model option gives every section empty."""
    result = ModelUsageScanner(app).scan({"include_metadata": False})
    assert result["model"] is None
    assert set(result["usage"]) == set(USAGE_SECTIONS)
    assert all(files == [] for files in result["usage"].values())


def test_model_usage_finds_references(app):
    """Controllers, templates, other models and jobs referencing the model are found."""
    result = ModelUsageScanner(app).scan({"model": "User"})
    assert result["metadata"]["count"] == 4
    data = result["data"]
    assert data["model"] == "app.models.user.User"
    assert data["short_name"] == "User"
    usage = data["usage"]
    assert list(usage) == list(USAGE_SECTIONS)

    controller = usage["controllers"][0]
    assert controller["file"] == "app/controllers/users.py"
    assert controller["controller"] == "UserController"
    kinds = [u["type"] for u in controller["usages"]]
    assert kinds.count("import") == 1
    assert "usage" in kinds
    assert "type_hint" in kinds

    view = usage["views"][0]
    assert view["view"] == "users.show"
    assert {u["line"] for u in view["usages"]} == {1, 2}
    assert all(u["type"] == "template_usage" for u in view["usages"])

    assert usage["routes"] == []
    assert usage["observers"] == []

    other = usage["other_models"]
    assert [m["model"] for m in other] == ["Post"]
    assert other[0]["relationships"][0]["type"] == "relationship"

    job = usage["jobs"][0]
    assert job["job"] == "SendWelcomeEmail"
    assert any(u["type"] == "type_hint" for u in job["usages"])


def test_model_usage_section_switches(app):
    """Disabled sections are not searched."""
    result = ModelUsageScanner(app).scan({
        "model": "User",
        "scan_views": False,
        "scan_jobs": False,
        "include_metadata": False,
    })
    assert "views" not in result["usage"]
    assert "jobs" not in result["usage"]
    assert "controllers" in result["usage"]


def test_model_usage_exclude_applies_to_one_scan(app):
    """An exclude option narrows only the scan it is passed to."""
    scanner = ModelUsageScanner(app)
    narrowed = scanner.scan({"model": "User", "exclude": ["jobs"], "include_metadata": False})
    assert narrowed["usage"]["jobs"] == []
    full = scanner.scan({"model": "User", "include_metadata": False})
    assert [j["job"] for j in full["usage"]["jobs"]] == ["SendWelcomeEmail"]
    assert not hasattr(scanner, "_exclude")


def test_resolve_model_class(app):
    """Model references resolve from names, file paths and dotted paths."""
    scanner = ModelUsageScanner(app)
    assert scanner.resolve_model_class("User") == "app.models.user.User"
    assert scanner.resolve_model_class("app/models/post.py") == "app.models.post.Post"
    assert scanner.resolve_model_class("billing.Invoice") == "billing.Invoice"
    assert scanner.resolve_model_class("Invoice") == "app.models.Invoice"


def test_find_python_usages_line_numbers():
    """Matches carry one-based line numbers and the stripped line."""
    content = "import os\nfrom app.models import Order\n\nOrder.create()\n"
    usages = find_python_usages(content, "app.models.Order", "Order")
    assert {"type": "import", "line": 2, "code": "from app.models import Order"} in usages
    assert {"type": "usage", "line": 4, "code": "Order.create()"} in usages


def test_find_template_usages_uses_variable_name():
    """Templates are matched on the model name and its snake_case variable."""
    content = "<p>{{ order_item.total }}</p>\n<p>order_item</p>\n"
    usages = find_template_usages(content, "OrderItem")
    assert [u["line"] for u in usages] == [1]
    assert snake_case("OrderItem") == "order_item"


# Route lookup

def test_route_lookup_requires_target(app):
    """Without a target an error and usage hint are returned."""
    result = RouteWhereLookupScanner(app).scan()
    assert result["error"] == "Target controller or method is required"
    assert "usage" in result


def test_route_lookup_by_controller(app):
    """A bare controller name matches every route it handles."""
    result = RouteWhereLookupScanner(app).scan({
        "target": "ScannerRegistry",
        "show_methods": True,
        "include_metadata": False,
    })
    assert {r["uri"] for r in result["matching_routes"]} == {"users", "posts", "api/posts/{id}"}
    info = result["controller_info"]
    assert info["exists"] is True
    assert info["class"] == "devtoolbox.registry.ScannerRegistry"
    assert info["file"].endswith("registry.py")
    methods = {m["name"]: m for m in info["methods"]}
    assert "register" in methods
    assert [p["name"] for p in methods["register"]["parameters"]] == ["name", "scanner"]
    assert result["statistics"] == {"total_routes": 8, "matching_routes": 3, "match_percentage": 37.5}


def test_route_lookup_by_method(app):
    """Controller@method narrows to that action."""
    result = RouteWhereLookupScanner(app).scan({
        "target": "ScannerRegistry@all",
        "include_parameters": True,
        "include_metadata": False,
    })
    assert [r["uri"] for r in result["matching_routes"]] == ["users"]
    assert result["matching_routes"][0]["parameters"] == []
    assert result["target"] == "ScannerRegistry@all"
    assert result["controller_info"]["exists"] is True


def test_route_lookup_unknown_controller(app):
    """An unknown controller reports no matches and exists False."""
    result = RouteWhereLookupScanner(app).scan({"target": "billing.InvoiceController", "include_metadata": False})
    assert result["matching_routes"] == []
    assert result["controller_info"]["exists"] is False


def test_normalize_target():
    assert normalize_target(" UserController@show ") == "UserController.show"
