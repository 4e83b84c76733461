"""
A self-contained host application.

``InMemoryApplication`` keeps routes, container bindings, commands,
middleware tables and service providers in plain Python structures. Hosts
without a framework of their own register their constructs on it directly;
framework adapters can populate one at startup.
"""

from __future__ import annotations

import dataclasses
import inspect
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from devtoolbox.errors import BindingResolutionError
from devtoolbox.runtime.base import (
    ROUTE_PARAMETER,
    Application,
    Binding,
    CommandInfo,
    MiddlewareStack,
    Route,
    SyntheticResponse,
)
from devtoolbox.runtime.wsgi import WSGIDispatcher
from devtoolbox.utils import import_string, qualified_name

if TYPE_CHECKING:
    from typing import Any, Callable

    from devtoolbox.runtime.base import Database, SyntheticRequest

logger = logging.getLogger(__name__)


class InMemoryApplication(Application):
    """
    Application whose constructs are registered programmatically.

    Args:
        base_path: Project root used to resolve configured paths.
        database: Database capability for the SQL scanners.
        wsgi_app: When given, synthetic requests go to this WSGI callable
            instead of the registered route endpoints.
    """

    def __init__(
        self,
        base_path: str | Path | None = None,
        database: Database | None = None,
        wsgi_app: Callable[..., Any] | None = None,
    ) -> None:
        self.base_path = Path(base_path) if base_path is not None else None
        self.database = database
        self._routes: list[Route] = []
        self._compiled: dict[int, re.Pattern[str]] = {}
        self._bindings: dict[str, Binding] = {}
        self._resolved: dict[str, Any] = {}
        self._aliases: dict[str, str] = {}
        self._commands: list[CommandInfo] = []
        self._middleware = MiddlewareStack()
        self._providers: list[Any] = []
        self._deferred: dict[str, Any] = {}
        self._dispatcher = WSGIDispatcher(wsgi_app) if wsgi_app is not None else None

    # Routes

    def add_route(
        self,
        methods: str | list[str],
        uri: str,
        endpoint: Callable[..., Any] | str | None = None,
        name: str | None = None,
        middleware: list[str] | None = None,
        wheres: dict[str, str] | None = None,
    ) -> Route:
        """Register a route and return it."""
        if isinstance(methods, str):
            methods = [methods]
        route = Route(
            uri=uri,
            methods=list(methods),
            name=name,
            action=endpoint.replace("@", ".") if isinstance(endpoint, str) else None,
            middleware=list(middleware or []),
            wheres=dict(wheres or {}),
            endpoint=None if isinstance(endpoint, str) else endpoint,
        )
        self._routes.append(route)
        return route

    def get(self, uri: str, endpoint: Any = None, **kwargs: Any) -> Route:
        return self.add_route(["GET"], uri, endpoint, **kwargs)

    def post(self, uri: str, endpoint: Any = None, **kwargs: Any) -> Route:
        return self.add_route(["POST"], uri, endpoint, **kwargs)

    def put(self, uri: str, endpoint: Any = None, **kwargs: Any) -> Route:
        return self.add_route(["PUT"], uri, endpoint, **kwargs)

    def delete(self, uri: str, endpoint: Any = None, **kwargs: Any) -> Route:
        return self.add_route(["DELETE"], uri, endpoint, **kwargs)

    def routes(self) -> list[Route]:
        return list(self._routes)

    # Container

    def bind(self, abstract: str | type, concrete: Any = None, shared: bool = False) -> None:
        key = abstract if isinstance(abstract, str) else qualified_name(abstract)
        if concrete is None and not isinstance(abstract, str):
            concrete = abstract
        self._bindings[key] = Binding(abstract=key, concrete=concrete, shared=shared)
        self._resolved.pop(key, None)

    def singleton(self, abstract: str | type, concrete: Any = None) -> None:
        self.bind(abstract, concrete, shared=True)

    def instance(self, abstract: str | type, obj: Any) -> None:
        key = abstract if isinstance(abstract, str) else qualified_name(abstract)
        self._bindings[key] = Binding(abstract=key, concrete=obj, shared=True, instance=True)
        self._resolved[key] = obj

    def alias(self, name: str, abstract: str | type) -> None:
        self._aliases[name] = abstract if isinstance(abstract, str) else qualified_name(abstract)

    def bindings(self) -> dict[str, Binding]:
        return {
            key: dataclasses.replace(binding, instantiated=key in self._resolved)
            for key, binding in self._bindings.items()
        }

    def aliases(self) -> dict[str, str]:
        return dict(self._aliases)

    def make(self, abstract: str) -> Any:
        """
        Resolve ``abstract`` (or an alias of it) to an object.

        Classes are built by resolving constructor parameters from their
        annotations; factories are called with the application.

        Raises:
            BindingResolutionError: If the binding or one of its
                dependencies cannot be built.
        """
        abstract = self._aliases.get(abstract, abstract)
        if abstract in self._resolved:
            return self._resolved[abstract]

        binding = self._bindings.get(abstract)
        if binding is None:
            try:
                concrete = import_string(abstract)
            except ImportError as e:
                raise BindingResolutionError(f"Target [{abstract}] is not bound.") from e
            shared = False
        else:
            concrete, shared = binding.concrete, binding.shared
            if concrete is None:
                concrete = abstract

        if isinstance(concrete, str):
            try:
                concrete = import_string(concrete)
            except ImportError as e:
                raise BindingResolutionError(f"Target class [{concrete}] does not exist.") from e

        if inspect.isclass(concrete):
            if inspect.isabstract(concrete):
                raise BindingResolutionError(f"Target [{abstract}] is not instantiable.")
            obj = self._build(concrete)
        elif callable(concrete):
            try:
                obj = concrete(self)
            except BindingResolutionError:
                raise
            except Exception as e:
                raise BindingResolutionError(f"Factory for [{abstract}] failed: {e}") from e
        else:
            obj = concrete

        if shared:
            self._resolved[abstract] = obj
        return obj

    def _build(self, cls: type) -> Any:
        kwargs = {}
        try:
            parameters = inspect.signature(cls, eval_str=True).parameters.values()
        except NameError:
            parameters = inspect.signature(cls).parameters.values()
        except (TypeError, ValueError):
            parameters = []
        for param in parameters:
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            if param.default is not param.empty:
                continue
            annotation = param.annotation
            if annotation is param.empty:
                raise BindingResolutionError(
                    f"Unresolvable dependency resolving [{param.name}] in class {qualified_name(cls)}"
                )
            if inspect.isclass(annotation):
                kwargs[param.name] = self.make(qualified_name(annotation))
            elif isinstance(annotation, str) and annotation in self._bindings:
                kwargs[param.name] = self.make(annotation)
            else:
                raise BindingResolutionError(
                    f"Unresolvable dependency resolving [{param.name}] in class {qualified_name(cls)}"
                )
        try:
            return cls(**kwargs)
        except Exception as e:
            raise BindingResolutionError(f"Could not build [{qualified_name(cls)}]: {e}") from e

    # Commands

    def add_command(
        self,
        name: str,
        description: str = "",
        signature: str = "",
        help: str = "",
        handler: Any = None,
    ) -> CommandInfo:
        command = CommandInfo(
            name=name,
            description=description,
            signature=signature or name,
            help=help,
            class_name=qualified_name(handler) if handler is not None else None,
        )
        self._commands.append(command)
        return command

    def commands(self) -> list[CommandInfo]:
        return list(self._commands)

    # Middleware

    def add_global_middleware(self, middleware: str | type) -> None:
        self._middleware.global_middleware.append(_class_name(middleware))

    def alias_middleware(self, alias: str, middleware: str | type) -> None:
        self._middleware.aliases[alias] = _class_name(middleware)

    def middleware_group(self, name: str, members: list[str | type]) -> None:
        self._middleware.groups[name] = [_class_name(m) for m in members]

    def middleware(self) -> MiddlewareStack:
        return self._middleware

    # Providers

    def register_provider(self, provider: Any, deferred: bool = False) -> Any:
        """
        Register a service provider (class or instance).

        Deferred providers are indexed by the services their ``provides()``
        returns and are not counted as loaded.
        """
        if inspect.isclass(provider):
            try:
                provider = provider(self)
            except TypeError:
                provider = provider()
        if deferred or getattr(provider, "defer", False):
            provides = getattr(provider, "provides", None)
            services = provides() if callable(provides) else []
            for service in services or [qualified_name(type(provider))]:
                self._deferred[service] = provider
            return provider
        register = getattr(provider, "register", None)
        if callable(register):
            register()
        self._providers.append(provider)
        return provider

    def providers(self) -> list[Any]:
        return list(self._providers)

    def deferred_providers(self) -> dict[str, Any]:
        return dict(self._deferred)

    # Requests

    def handle(self, request: SyntheticRequest) -> SyntheticResponse:
        """
        Dispatch a synthetic request.

        Exceptions raised by the endpoint propagate to the caller.
        """
        if self._dispatcher is not None:
            return self._dispatcher.handle(request)

        method = request.method.upper()
        for route in self._routes:
            match = self._pattern(route).match(request.path)
            if match is None:
                continue
            if method not in route.methods and not (method == "HEAD" and "GET" in route.methods):
                continue
            if route.endpoint is None:
                return SyntheticResponse(status_code=200)
            params = {k: v for k, v in match.groupdict().items() if v is not None}
            return _to_response(_call_endpoint(route.endpoint, params, request))

        logger.debug("No route matches %s %s", method, request.path)
        return SyntheticResponse(status_code=404, body="Not Found")

    def _pattern(self, route: Route) -> re.Pattern[str]:
        key = id(route)
        if key not in self._compiled:
            self._compiled[key] = compile_route(route)
        return self._compiled[key]


def compile_route(route: Route) -> re.Pattern[str]:
    """Build the path regex for a route, honoring its ``wheres``."""
    if route.uri == "/":
        return re.compile(r"^/?$")
    parts = []
    for segment in route.uri.split("/"):
        param = ROUTE_PARAMETER.fullmatch(segment)
        if param is None:
            parts.append("/" + re.escape(segment))
            continue
        name, optional = param.group(1), param.group(2)
        piece = f"/(?P<{name}>{route.wheres.get(name, '[^/]+')})"
        parts.append(f"(?:{piece})?" if optional else piece)
    return re.compile("^" + "".join(parts) + "/?$")


def _class_name(middleware: str | type) -> str:
    return middleware if isinstance(middleware, str) else qualified_name(middleware)


def _call_endpoint(endpoint: Callable[..., Any], params: dict[str, str], request: SyntheticRequest) -> Any:
    try:
        accepted = inspect.signature(endpoint).parameters
    except (TypeError, ValueError):
        return endpoint(**params)
    kwargs: dict[str, Any] = {k: v for k, v in params.items() if k in accepted}
    if "request" in accepted:
        kwargs["request"] = request
    return endpoint(**kwargs)


def _to_response(value: Any) -> SyntheticResponse:
    if isinstance(value, SyntheticResponse):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return SyntheticResponse(status_code=value)
    if isinstance(value, tuple) and len(value) == 2 and isinstance(value[1], int):
        return SyntheticResponse(status_code=value[1], body=str(value[0]))
    return SyntheticResponse(status_code=200, body="" if value is None else str(value))
