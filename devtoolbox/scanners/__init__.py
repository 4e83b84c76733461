"""
Built-in scanners for devtoolbox.

Structural scanners list what the host application has registered (models,
routes, commands, bindings, middleware, templates); diagnostic scanners
trace requests, audit routes and cross-reference the database schema with
the source tree.
"""

from devtoolbox.scanners.base import AbstractScanner, Scanner
from devtoolbox.scanners.models import ModelScanner
from devtoolbox.scanners.routes import RouteScanner
from devtoolbox.scanners.route_lookup import RouteWhereLookupScanner
from devtoolbox.scanners.container_bindings import ContainerBindingsScanner
from devtoolbox.scanners.commands import CommandScanner
from devtoolbox.scanners.services import ServiceScanner
from devtoolbox.scanners.middleware import MiddlewareScanner
from devtoolbox.scanners.middleware_usage import MiddlewareUsageScanner
from devtoolbox.scanners.views import ViewScanner
from devtoolbox.scanners.model_usage import ModelUsageScanner
from devtoolbox.scanners.sql_trace import SqlTraceScanner
from devtoolbox.scanners.sql_analysis import SqlAnalysisScanner
from devtoolbox.scanners.security import SecurityScanner
from devtoolbox.scanners.column_usage import DbColumnUsageScanner
from devtoolbox.scanners.provider_timeline import ProviderTimelineScanner

# Registration order of the scanners a Manager starts with
DEFAULT_SCANNERS = [
    ModelScanner,
    RouteScanner,
    RouteWhereLookupScanner,
    ContainerBindingsScanner,
    CommandScanner,
    ServiceScanner,
    MiddlewareScanner,
    MiddlewareUsageScanner,
    ViewScanner,
    ModelUsageScanner,
    SqlTraceScanner,
    SqlAnalysisScanner,
    SecurityScanner,
    DbColumnUsageScanner,
    ProviderTimelineScanner,
]

__all__ = [
    "AbstractScanner",
    "Scanner",
    "DEFAULT_SCANNERS",
    "ModelScanner",
    "RouteScanner",
    "RouteWhereLookupScanner",
    "ContainerBindingsScanner",
    "CommandScanner",
    "ServiceScanner",
    "MiddlewareScanner",
    "MiddlewareUsageScanner",
    "ViewScanner",
    "ModelUsageScanner",
    "SqlTraceScanner",
    "SqlAnalysisScanner",
    "SecurityScanner",
    "DbColumnUsageScanner",
    "ProviderTimelineScanner",
]
