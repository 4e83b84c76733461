"""
Host application capability interfaces.

Scanners never reach into framework internals. A host exposes what it wants
introspected by implementing ``Application`` (and, for the SQL scanners,
``Database``). Every capability has an empty default so a host only
implements what it supports.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from devtoolbox.errors import BindingResolutionError, IntrospectionError
from devtoolbox.utils import qualified_name

if TYPE_CHECKING:
    from typing import Any, Callable

logger = logging.getLogger(__name__)

ROUTE_PARAMETER = re.compile(r"\{(\w+)(\?)?\}")


@dataclass
class Route:
    """
    A registered route.

    ``uri`` is stored without leading or trailing slashes; the site root is
    ``"/"``. ``action`` names the handler as ``module.Class.method`` (or
    ``module.function``); anonymous handlers report ``"Closure"``.
    """

    uri: str
    methods: list[str] = field(default_factory=lambda: ["GET"])
    name: str | None = None
    action: str | None = None
    middleware: list[str] = field(default_factory=list)
    wheres: dict[str, str] = field(default_factory=dict)
    endpoint: Callable[..., Any] | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.uri = self.uri.strip("/") or "/"
        self.methods = [m.upper() for m in self.methods]
        if self.action is None:
            self.action = action_name(self.endpoint) if self.endpoint is not None else "Closure"

    @property
    def parameter_names(self) -> list[str]:
        return [m.group(1) for m in ROUTE_PARAMETER.finditer(self.uri)]

    @property
    def controller(self) -> str | None:
        """Dotted owner of the action, or None for closures."""
        if not self.action or self.action == "Closure" or "." not in self.action:
            return None
        return self.action.rpartition(".")[0]

    def path_for(self, parameters: dict[str, Any] | None = None) -> str:
        """Build a request path, substituting ``{param}`` and ``{param?}``."""
        parameters = parameters or {}

        def replace(match: re.Match[str]) -> str:
            key = match.group(1)
            if key in parameters:
                return str(parameters[key])
            return "" if match.group(2) else match.group(0)

        uri = ROUTE_PARAMETER.sub(replace, self.uri)
        uri = re.sub(r"/{2,}", "/", uri)
        return "/" + uri.strip("/")


def action_name(endpoint: Any) -> str:
    """Describe a route handler the way route listings show it."""
    if isinstance(endpoint, str):
        return endpoint.replace("@", ".")
    qualname = getattr(endpoint, "__qualname__", "")
    if not qualname or "<lambda>" in qualname or "<locals>" in qualname:
        return "Closure"
    return qualified_name(endpoint)


@dataclass
class Binding:
    """
    A container binding: ``abstract`` resolves to ``concrete``.

    ``instance`` marks a pre-built object registered as-is; ``instantiated``
    is true once a shared binding holds a built object.
    """

    abstract: str
    concrete: Any = None
    shared: bool = False
    instance: bool = False
    instantiated: bool = False


@dataclass
class CommandInfo:
    name: str
    description: str = ""
    signature: str = ""
    help: str = ""
    class_name: str | None = None


@dataclass
class MiddlewareStack:
    """
    The host's middleware tables.

    Attributes:
        global_middleware: Class names run on every request.
        aliases: Short name to class name.
        groups: Group name to member names (aliases or class names).
    """

    global_middleware: list[str] = field(default_factory=list)
    aliases: dict[str, str] = field(default_factory=dict)
    groups: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class SyntheticRequest:
    method: str
    path: str
    query: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class SyntheticResponse:
    status_code: int
    body: str = ""


@dataclass
class QueryEvent:
    """One executed statement; ``time`` is in milliseconds."""

    sql: str
    bindings: list[Any] = field(default_factory=list)
    time: float = 0.0
    connection: str = "default"


class Database(ABC):
    """
    Database capability used by the SQL and column scanners.

    Subclasses call ``_notify`` after each executed statement so that
    listeners registered with ``listen`` see it.
    """

    driver: str = "sqlite"
    connection_name: str = "default"

    def __init__(self) -> None:
        self._listeners: list[Callable[[QueryEvent], None]] = []

    @property
    @abstractmethod
    def database_name(self) -> str:
        ...

    def listen(self, callback: Callable[[QueryEvent], None]) -> None:
        """Subscribe to executed statements."""
        self._listeners.append(callback)

    def forget(self, callback: Callable[[QueryEvent], None]) -> None:
        """Unsubscribe a listener; unknown listeners are ignored."""
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, event: QueryEvent) -> None:
        for callback in list(self._listeners):
            callback(event)

    @abstractmethod
    def select(self, sql: str, bindings: list[Any] | tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        """Run a query and return rows as dicts."""

    @abstractmethod
    def column_listing(self, table: str) -> list[str]:
        """Return the column names of a table."""

    def explain(self, sql: str, bindings: list[Any] | tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        """Return the query plan for a statement."""
        return self.select(f"EXPLAIN {sql}", bindings)


class Application:
    """
    Capability interface a host application implements to be scanned.

    Attributes:
        base_path: Project root; relative configured paths resolve against it.
        database: Optional database capability.
    """

    base_path: Path | None = None
    database: Database | None = None

    def routes(self) -> list[Route]:
        return []

    def route_by_name(self, name: str) -> Route | None:
        for route in self.routes():
            if route.name == name:
                return route
        return None

    def bindings(self) -> dict[str, Binding]:
        return {}

    def aliases(self) -> dict[str, str]:
        """Alias name to the abstract it stands for."""
        return {}

    def make(self, abstract: str) -> Any:
        """
        Resolve a binding to an object.

        Raises:
            BindingResolutionError: If the binding cannot be built.
        """
        raise BindingResolutionError(f"Target [{abstract}] is not resolvable.")

    def commands(self) -> list[CommandInfo]:
        return []

    def middleware(self) -> MiddlewareStack:
        return MiddlewareStack()

    def providers(self) -> list[Any]:
        """Loaded service provider instances."""
        return []

    def deferred_providers(self) -> dict[str, Any]:
        """Service name to the deferred provider (class or instance) offering it."""
        return {}

    def handle(self, request: SyntheticRequest) -> SyntheticResponse:
        """
        Dispatch a synthetic request in-process.

        Raises:
            IntrospectionError: If the host cannot dispatch requests.
        """
        raise IntrospectionError(f"{type(self).__name__} does not support request dispatch")


def describe_concrete(concrete: Any) -> str | None:
    """Name what a binding resolves to: a class, a factory or an instance."""
    if concrete is None or isinstance(concrete, str):
        return concrete
    if isinstance(concrete, type):
        return qualified_name(concrete)
    if callable(concrete) and hasattr(concrete, "__qualname__"):
        return action_name(concrete)
    return qualified_name(type(concrete))
