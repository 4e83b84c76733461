"""Tests for the scanners that list registered application constructs."""

from __future__ import annotations

from devtoolbox.runtime.memory import InMemoryApplication
from devtoolbox.scanners.commands import CommandScanner, command_namespace
from devtoolbox.scanners.container_bindings import ContainerBindingsScanner
from devtoolbox.scanners.middleware import MiddlewareScanner
from devtoolbox.scanners.middleware_usage import MiddlewareUsageScanner
from devtoolbox.scanners.models import ModelScanner, extract_models
from devtoolbox.scanners.routes import RouteScanner
from devtoolbox.scanners.services import ServiceScanner
from devtoolbox.scanners.views import ViewScanner


# Routes

def test_single_ping_route_end_to_end(tmp_path):
    """One unnamed GET /ping route is listed and reported as unused."""
    app = InMemoryApplication(base_path=tmp_path)
    app.get("/ping", lambda: "pong")
    result = RouteScanner(app).scan({"detect_unused": True})["data"]
    assert len(result["routes"]) == 1
    route = result["routes"][0]
    assert route["uri"] == "ping"
    assert route["methods"] == ["GET"]
    assert route["action"] == "Closure"
    assert [r["uri"] for r in result["unused_routes"]] == ["ping"]
    assert result["unused_routes"][0]["confidence"] == "low"


def test_routes_filters_and_grouping(app):
    """filter_methods, include_parameters and group_by_middleware shape the result."""
    result = RouteScanner(app).scan({
        "filter_methods": ["get"],
        "include_parameters": True,
        "group_by_middleware": True,
        "include_metadata": False,
    })
    uris = [r["uri"] for r in result["routes"]]
    assert "posts" not in uris
    assert "users/{id}" in uris
    show = next(r for r in result["routes"] if r["uri"] == "users/{id}")
    assert show["parameters"] == ["id"]
    assert show["where_conditions"] == {"id": r"\d+"}
    assert {r["uri"] for r in result["grouped_by_middleware"]["web"]} == {"users", "users/{id}", "admin/dashboard"}
    assert "no_middleware" in result["grouped_by_middleware"]


def test_detect_unused_skips_named_and_api_routes(app):
    """Named routes and api/ routes are not reported as unused."""
    result = RouteScanner(app).scan({"detect_unused": True, "include_metadata": False})
    assert [r["uri"] for r in result["unused_routes"]] == ["ping"]


# Models

def test_model_scanner(app):
    """Models are found by base class with attributes, relationships and scopes."""
    result = ModelScanner(app).scan()
    assert result["metadata"]["count"] == 2
    models = {m["name"]: m for m in result["data"]["models"]}
    assert set(models) == {"User", "Post"}

    user = models["User"]
    assert user["full_class"] == "app.models.user.User"
    assert user["table"] == "users"
    assert user["attributes"]["fillable"] == ["name", "email"]
    assert user["attributes"]["casts"] == {"is_admin": "boolean"}
    assert user["scopes"] == [{"name": "scope_active", "scope_name": "active"}]
    posts = next(r for r in user["relationships"] if r["name"] == "posts")
    assert posts["type"] == "has_many"
    assert posts["heuristic"] is True

    author = next(r for r in models["Post"]["relationships"] if r["name"] == "author")
    assert author["type"] == "belongs_to"


def test_model_scanner_options_trim_output(app):
    """Disabled sections are left out."""
    result = ModelScanner(app).scan({
        "include_attributes": False,
        "include_relationships": False,
        "include_scopes": False,
        "include_metadata": False,
    })
    for model in result["models"]:
        assert "attributes" not in model
        assert "relationships" not in model
        assert "scopes" not in model


def test_extract_models_reports_syntax_errors(tmp_path):
    """An unparsable file yields one error item instead of raising."""
    broken = tmp_path / "broken.py"
    broken.write_text("class Broken(Model:\n", encoding="utf-8")
    models = extract_models(broken, ["Model"], tmp_path)
    assert len(models) == 1
    assert "SyntaxError" in models[0]["error"]


# Commands

def test_commands(app):
    """Commands are listed with optional signatures and namespaces."""
    result = CommandScanner(app).scan({
        "include_signatures": True,
        "group_by_namespace": True,
        "include_metadata": False,
    })
    assert result["count"] == 3
    reports = next(c for c in result["commands"] if c["name"] == "reports:generate")
    assert reports["signature"] == "reports:generate {--month=}"
    assert reports["help"] == "Builds the report for the given month"
    assert set(result["grouped_by_namespace"]) == {"migrate", "db", "reports"}


def test_commands_custom_only(app):
    """Framework-prefixed commands are dropped with custom_only."""
    result = CommandScanner(app).scan({"custom_only": True, "include_metadata": False})
    assert [c["name"] for c in result["commands"]] == ["reports:generate"]


def test_command_namespace():
    assert command_namespace("db:seed") == "db"
    assert command_namespace("serve") == "default"


# Services and container bindings

def test_services(app):
    """Bindings are listed with singletons and aliases on request."""
    result = ServiceScanner(app).scan({
        "include_singletons": True,
        "include_aliases": True,
        "include_metadata": False,
    })
    assert result["count"] == 5
    cache = next(s for s in result["services"] if s["abstract"] == "cache")
    assert cache["concrete"] == "Closure"
    assert {s["abstract"] for s in result["singletons"]} == {"devtoolbox.registry.ScannerRegistry", "config"}
    assert result["aliases"] == {"registry": "devtoolbox.registry.ScannerRegistry"}


def test_services_filter_custom(app):
    """Framework services are skipped with filter_custom."""
    result = ServiceScanner(app).scan({"filter_custom": True, "include_metadata": False})
    assert [s["abstract"] for s in result["services"]] == ["mailer"]


def test_container_bindings(app):
    """Bindings are classified and constructor parameters reflected."""
    result = ContainerBindingsScanner(app).scan({"include_metadata": False})
    bindings = result["bindings"]
    database = bindings["devtoolbox.runtime.base.Database"]
    assert database["type"] == "interface"
    assert database["is_interface"] is True
    assert database["concrete"] == "devtoolbox.runtime.sqlite.SQLiteDatabase"
    params = {p["name"]: p for p in database["constructor_parameters"]}
    assert params["path"]["optional"] is True
    assert params["path"]["default_value"] == ":memory:"

    assert bindings["devtoolbox.registry.ScannerRegistry"]["type"] == "singleton"
    assert bindings["config"]["type"] == "instance"
    assert bindings["cache"]["concrete"] == "Closure"
    assert set(result["grouped"]) == {"Instance", "Interface", "Other", "Singleton"}
    assert result["statistics"]["total_bindings"] == 5
    assert result["statistics"]["closures"] == 1


def test_container_bindings_resolution(app):
    """show_resolved reports which bindings can be built."""
    result = ContainerBindingsScanner(app).scan({"show_resolved": True, "include_metadata": False})
    bindings = result["bindings"]
    assert bindings["mailer"]["can_resolve"] is False
    assert "resolution_error" in bindings["mailer"]
    registry = bindings["devtoolbox.registry.ScannerRegistry"]
    assert registry["can_resolve"] is True
    assert registry["resolved_class"] == "devtoolbox.registry.ScannerRegistry"


class _Unannotated:
    def __init__(self, thing):
        self.thing = thing


def test_container_bindings_resolution_failures_are_reported():
    """Failing factories and unresolvable parameters give can_resolve False."""
    app = InMemoryApplication()

    def factory(container):
        raise RuntimeError("boom")

    app.bind("broken", factory)
    app.bind(_Unannotated)
    result = ContainerBindingsScanner(app).scan({"show_resolved": True, "include_metadata": False})
    broken = result["bindings"]["broken"]
    assert broken["can_resolve"] is False
    assert "boom" in broken["resolution_error"]
    unannotated = result["bindings"][f"{__name__}._Unannotated"]
    assert unannotated["can_resolve"] is False
    assert "thing" in unannotated["resolution_error"]


def test_container_bindings_filter_and_grouping(app):
    """filter narrows the bindings; group_by namespace groups by module."""
    result = ContainerBindingsScanner(app).scan({
        "filter": "devtoolbox",
        "group_by": "namespace",
        "show_aliases": True,
        "include_metadata": False,
    })
    # mailer matches through its concrete class name
    assert set(result["bindings"]) == {
        "devtoolbox.registry.ScannerRegistry",
        "devtoolbox.runtime.base.Database",
        "mailer",
    }
    assert set(result["grouped"]) == {"devtoolbox.registry", "devtoolbox.runtime.base", "Global"}
    assert result["statistics"]["total_aliases"] == 1


# Middleware

def test_middleware(app):
    """Global, route and group middleware are listed together."""
    result = MiddlewareScanner(app).scan({
        "group_by_type": True,
        "include_usage": True,
        "include_metadata": False,
    })
    assert result["count"] == 7
    assert len(result["grouped"]["global"]) == 1
    assert len(result["grouped"]["route"]) == 3
    throttle = next(e for e in result["grouped"]["group"] if e["alias"] == "api")
    assert throttle["class"] == "app.middleware.ThrottleRequests"
    assert result["usage"]["total_routes_with_middleware"] == 4
    assert result["usage"]["most_used_middleware"][0] == {"middleware": "web", "count": 3}


def test_middleware_usage(app):
    """Route middleware resolves through aliases and groups to classes."""
    result = MiddlewareUsageScanner(app).scan({
        "show_routes": True,
        "show_groups": True,
        "show_global": True,
        "include_metadata": False,
    })
    analysis = result["middleware_analysis"]
    assert analysis["app.middleware.StartSession"]["usage_count"] == 3
    assert analysis["app.middleware.Authenticate"]["usage_count"] == 1
    assert analysis["app.middleware.ThrottleRequests"]["groups_used"][0]["group"] == "api"
    assert analysis["app.middleware.TrustProxies"]["used_as_global"] is True
    assert len(analysis["app.middleware.StartSession"]["routes"]) == 3
    assert result["global_middleware"][0]["applies_to"] == "all_requests"

    stats = result["statistics"]
    assert stats["total_middleware_classes"] == 6
    assert stats["never_used"] == [{"class": "app.middleware.EnsureEmailIsVerified", "name": "EnsureEmailIsVerified"}]


def test_middleware_usage_unused_only(app):
    """unused_only keeps middleware no route uses and that is not global."""
    result = MiddlewareUsageScanner(app).scan({"unused_only": True, "include_metadata": False})
    assert list(result["middleware_analysis"]) == ["app.middleware.EnsureEmailIsVerified"]


# Views

def test_views(app):
    """Templates are listed by dotted name with size and modified time."""
    result = ViewScanner(app).scan({
        "include_components": True,
        "detect_unused": True,
        "include_metadata": False,
    })
    names = [v["name"] for v in result["views"]]
    assert names == ["components.button", "users.show"]
    assert result["views"][1]["size"] > 0
    assert len(result["views"][1]["modified"]) == len("2024-01-01 00:00:00")
    assert [c["name"] for c in result["components"]] == ["button"]
    assert result["unused_views"] == []
    assert result["unused_views_implemented"] is False


def test_views_missing_directory(empty_app):
    """A missing template directory yields an empty list."""
    result = ViewScanner(empty_app).scan({"include_metadata": False})
    assert result["views"] == []
    assert result["count"] == 0
