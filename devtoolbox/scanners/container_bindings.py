"""
Container binding analysis for devtoolbox.

Describes each binding (kind, namespace, constructor dependencies) and can
try to resolve it through the application container.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING

from devtoolbox.errors import BindingResolutionError
from devtoolbox.runtime.base import describe_concrete
from devtoolbox.scanners.base import AbstractScanner
from devtoolbox.utils import import_string, qualified_name

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.runtime.base import Binding
    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)


def _load_class(name: str) -> type | None:
    try:
        obj = import_string(name)
    except ImportError:
        return None
    return obj if inspect.isclass(obj) else None


def is_interface(cls: type | None) -> bool:
    """Abstract base classes and protocols count as interfaces."""
    if cls is None:
        return False
    return inspect.isabstract(cls) or bool(getattr(cls, "_is_protocol", False))


def describe_parameters(obj: Any) -> list[dict[str, Any]]:
    """Describe the parameters of a callable; a class describes its constructor."""
    try:
        signature = inspect.signature(obj)
    except (TypeError, ValueError):
        return []
    parameters = []
    for param in signature.parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        annotation = param.annotation
        if annotation is param.empty:
            type_name = "mixed"
        elif isinstance(annotation, str):
            type_name = annotation
        elif inspect.isclass(annotation):
            type_name = qualified_name(annotation)
        else:
            type_name = str(annotation)
        has_default = param.default is not param.empty
        parameters.append({
            "name": param.name,
            "type": type_name,
            "optional": has_default,
            "has_default": has_default,
            "default_value": param.default if has_default else None,
        })
    return parameters


class ContainerBindingsScanner(AbstractScanner):
    """Analyze container bindings in detail."""

    name = "container-bindings"
    description = "Analyze container bindings, singletons and aliases"
    available_options = {
        "filter": "Only bindings whose abstract, concrete, namespace or type contains this text",
        "show_resolved": "Try to resolve each binding",
        "show_parameters": "Include constructor parameters of bound classes",
        "show_aliases": "Include the alias table",
        "group_by": "Group bindings by type, namespace or singleton",
    }
    default_options = {
        "filter": None,
        "show_resolved": False,
        "show_parameters": True,
        "show_aliases": False,
        "group_by": "type",
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)

        bindings: dict[str, dict[str, Any]] = {}
        for abstract, binding in self.app.bindings().items():
            self.check_deadline(deadline)
            bindings[abstract] = self._describe(binding, options)

        needle = (options.get("filter") or "").lower()
        if needle:
            bindings = {
                abstract: info
                for abstract, info in bindings.items()
                if any(needle in str(info.get(k) or "").lower() for k in ("abstract", "concrete", "namespace", "type"))
            }

        if options.get("show_resolved"):
            for abstract, info in bindings.items():
                self.check_deadline(deadline)
                info.update(self._resolve(abstract))

        aliases = self.app.aliases() if options.get("show_aliases") else {}

        result = {
            "bindings": bindings,
            "grouped": self._group(list(bindings.values()), options.get("group_by") or "type"),
            "aliases": aliases,
            "statistics": self._statistics(bindings, aliases),
        }
        return self.add_metadata(result, options, len(bindings))

    def _describe(self, binding: Binding, options: dict[str, Any]) -> dict[str, Any]:
        abstract_class = _load_class(binding.abstract)
        concrete = binding.concrete
        concrete_class = concrete if inspect.isclass(concrete) else None
        if isinstance(concrete, str):
            concrete_class = _load_class(concrete)

        info: dict[str, Any] = {
            "abstract": binding.abstract,
            "concrete": describe_concrete(concrete),
            "shared": binding.shared,
            "is_singleton": binding.instance or binding.instantiated,
            "is_interface": is_interface(abstract_class),
            "is_class": abstract_class is not None,
            "namespace": binding.abstract.rpartition(".")[0],
            "type": self._binding_type(binding, abstract_class),
        }
        if binding.instance:
            info["instance_class"] = qualified_name(type(concrete))

        target = concrete_class or abstract_class
        if options.get("show_parameters") and target is not None and not is_interface(target):
            info["constructor_parameters"] = describe_parameters(target)
        return info

    @staticmethod
    def _binding_type(binding: Binding, abstract_class: type | None) -> str:
        if binding.instance:
            return "instance"
        if binding.shared:
            return "singleton"
        if is_interface(abstract_class):
            return "interface"
        if abstract_class is not None:
            return "class"
        return "other"

    def _resolve(self, abstract: str) -> dict[str, Any]:
        try:
            resolved = self.app.make(abstract)
        except BindingResolutionError as e:
            return {"resolved_class": None, "can_resolve": False, "resolution_error": str(e)}
        return {"resolved_class": qualified_name(type(resolved)), "can_resolve": True}

    @staticmethod
    def _group(bindings: list[dict[str, Any]], group_by: str) -> dict[str, list[dict[str, Any]]]:
        grouped: dict[str, list[dict[str, Any]]] = {}
        for info in bindings:
            if group_by == "namespace":
                key = info["namespace"] or "Global"
            elif group_by == "singleton":
                key = "Singletons" if info["is_singleton"] else "Transient"
            elif group_by == "type":
                key = info["type"].capitalize()
            else:
                key = "All"
            grouped.setdefault(key, []).append(info)
        return dict(sorted(grouped.items()))

    @staticmethod
    def _statistics(bindings: dict[str, dict[str, Any]], aliases: dict[str, str]) -> dict[str, Any]:
        namespaces: dict[str, int] = {}
        for info in bindings.values():
            key = info["namespace"] or "Global"
            namespaces[key] = namespaces.get(key, 0) + 1
        values = list(bindings.values())
        return {
            "total_bindings": len(values),
            "total_aliases": len(aliases),
            "singletons": sum(1 for b in values if b["is_singleton"]),
            "interfaces": sum(1 for b in values if b["is_interface"]),
            "classes": sum(1 for b in values if b["is_class"]),
            "closures": sum(1 for b in values if b["concrete"] == "Closure"),
            "namespaces": namespaces,
            "unique_namespaces": len(namespaces),
        }
