"""
Model usage lookup for devtoolbox.

Given a model, finds the controllers, templates, route files, other models,
jobs and observers that reference it. Matching is line based and textual.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from devtoolbox.config import DEFAULT_EXCLUDE
from devtoolbox.scanners.base import AbstractScanner
from devtoolbox.scanners.models import extract_models, module_name
from devtoolbox.utils import class_basename, iter_files, read_text, relative_path, resolve_paths

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)

USAGE_SECTIONS = ("controllers", "views", "routes", "other_models", "jobs", "observers")

RELATION_METHODS = (
    "relationship|has_one|has_many|belongs_to|belongs_to_many|hasOne|hasMany|belongsTo|belongsToMany"
)


def snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def find_python_usages(content: str, model_class: str, short_name: str) -> list[dict[str, Any]]:
    """Line-numbered imports, direct uses and type hints of a model."""
    short = re.escape(short_name)
    module = re.escape(model_class.rpartition(".")[0]) if "." in model_class else None
    import_patterns = [re.compile(rf"^from\s+[\w.]+\s+import\s+.*\b{short}\b")]
    if module:
        import_patterns.append(re.compile(rf"^import\s+{module}\b"))
    usage_patterns = [
        re.compile(rf"\b{short}\s*\("),
        re.compile(rf"\b{short}\.\w+"),
    ]
    hint_patterns = [
        re.compile(rf"def\s+\w+\([^)]*:\s*[\"']?(?:[\w.]+\.)?{short}\b"),
        re.compile(rf"->\s*[\"']?(?:[\w.]+\.)?{short}\b"),
    ]

    usages = []
    for number, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if any(p.search(line) for p in import_patterns):
            usages.append({"type": "import", "line": number, "code": line})
        if any(p.search(line) for p in usage_patterns):
            usages.append({"type": "usage", "line": number, "code": line})
        if any(p.search(line) for p in hint_patterns):
            usages.append({"type": "type_hint", "line": number, "code": line})
    return usages


def find_template_usages(content: str, short_name: str) -> list[dict[str, Any]]:
    """Template expressions or statements mentioning the model or its variable name."""
    names = "|".join(re.escape(n) for n in {short_name, snake_case(short_name)})
    pattern = re.compile(rf"\{{[{{%].*\b(?:{names})\b")
    return [
        {"type": "template_usage", "line": number, "code": raw.strip()}
        for number, raw in enumerate(content.splitlines(), start=1)
        if pattern.search(raw)
    ]


def find_relationships(content: str, short_name: str) -> list[dict[str, Any]]:
    pattern = re.compile(rf"\b(?:{RELATION_METHODS})\s*\(\s*[\"']?{re.escape(short_name)}\b")
    return [
        {"type": "relationship", "line": number, "code": raw.strip()}
        for number, raw in enumerate(content.splitlines(), start=1)
        if pattern.search(raw)
    ]


def first_class_name(content: str) -> str | None:
    match = re.search(r"^class\s+(\w+)", content, re.MULTILINE)
    return match.group(1) if match else None


class ModelUsageScanner(AbstractScanner):
    """Find where a model is referenced."""

    name = "model-usage"
    description = "Find where a model is used across the codebase"
    available_options = {
        "model": "Model class name or dotted path (required)",
        "scan_controllers": "Search controllers",
        "scan_views": "Search templates",
        "scan_routes": "Search route files",
        "scan_models": "Search other models, including relationships",
        "scan_jobs": "Search jobs",
        "scan_observers": "Search observers",
    }
    default_options = {
        "model": None,
        "scan_controllers": True,
        "scan_views": True,
        "scan_routes": True,
        "scan_models": True,
        "scan_jobs": True,
        "scan_observers": True,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        model = options.get("model")
        if not model:
            empty = {"model": None, "usage": {section: [] for section in USAGE_SECTIONS}}
            return self.add_metadata(empty, options, 0)

        exclude = DEFAULT_EXCLUDE + list(options.get("exclude") or [])
        model_class = self.resolve_model_class(str(model), exclude)
        short_name = class_basename(model_class)

        usage: dict[str, list[dict[str, Any]]] = {}
        python_sections = (
            ("controllers", "controllers", "controller"),
            ("routes", "routes", None),
            ("jobs", "jobs", "job"),
            ("observers", "observers", "observer"),
        )
        for section, kind, label in python_sections:
            if options.get(f"scan_{section}"):
                usage[section] = self._scan_python(kind, label, model_class, short_name, exclude, deadline)
        if options.get("scan_views"):
            usage["views"] = self._scan_views(short_name, exclude, deadline)
        if options.get("scan_models"):
            usage["other_models"] = self._scan_models(model_class, short_name, exclude, deadline)

        ordered = {section: usage[section] for section in USAGE_SECTIONS if section in usage}
        result = {"model": model_class, "short_name": short_name, "usage": ordered}
        return self.add_metadata(result, options, sum(len(files) for files in ordered.values()))

    def resolve_model_class(self, model: str, exclude: list[str] | None = None) -> str:
        """
        Resolve a model reference to a dotted class path.

        Dotted references are returned unchanged. Bare class names are looked
        up among the model files; unknown names are assumed to live in the
        configured models package.
        """
        if "." in model and not model.endswith(".py"):
            return model
        if model.endswith(".py"):
            path = Path(model)
            if not path.is_absolute() and self.app.base_path is not None:
                path = self.app.base_path / path
            name = first_class_name(read_text(path) or "") if path.exists() else None
            if name:
                return f"{module_name(path, self.app.base_path)}.{name}"
            return model

        if exclude is None:
            exclude = DEFAULT_EXCLUDE
        base_classes = (self.config.get("models") or {}).get("base_classes") or ["Model"]
        for filepath in iter_files(self._paths("models"), (".py",), exclude):
            for found in extract_models(filepath, base_classes, self.app.base_path):
                if found.get("name") == model and found.get("full_class"):
                    return found["full_class"]

        package = str((self.config.get("paths") or {}).get("models") or "models")
        return f"{package.strip('/').replace('/', '.')}.{model}"

    def _paths(self, kind: str) -> list[Path]:
        configured = (self.config.get("paths") or {}).get(kind)
        return resolve_paths(None, self.app.base_path, [configured] if configured else [])

    def _scan_python(
        self,
        kind: str,
        label: str | None,
        model_class: str,
        short_name: str,
        exclude: list[str],
        deadline: Deadline | None,
    ) -> list[dict[str, Any]]:
        found = []
        for filepath in iter_files(self._paths(kind), (".py",), exclude):
            self.check_deadline(deadline)
            content = read_text(filepath)
            if content is None:
                continue
            usages = find_python_usages(content, model_class, short_name)
            if not usages:
                continue
            entry: dict[str, Any] = {"file": relative_path(filepath, self.app.base_path)}
            if label:
                entry[label] = first_class_name(content)
            entry["usages"] = usages
            found.append(entry)
        return found

    def _scan_views(self, short_name: str, exclude: list[str], deadline: Deadline | None) -> list[dict[str, Any]]:
        extensions = list((self.config.get("views") or {}).get("extensions") or [".html"])
        found = []
        for root in self._paths("views"):
            for filepath in iter_files([root], extensions, exclude):
                self.check_deadline(deadline)
                content = read_text(filepath)
                if content is None:
                    continue
                usages = find_template_usages(content, short_name)
                if not usages:
                    continue
                relative = relative_path(filepath, root)
                view = relative
                for ext in sorted(extensions, key=len, reverse=True):
                    if view.endswith(ext):
                        view = view[: -len(ext)]
                        break
                found.append({"file": relative, "view": view.replace("/", "."), "usages": usages})
        return found

    def _scan_models(
        self,
        model_class: str,
        short_name: str,
        exclude: list[str],
        deadline: Deadline | None,
    ) -> list[dict[str, Any]]:
        own_class = re.compile(rf"^class\s+{re.escape(short_name)}\b", re.MULTILINE)
        found = []
        for filepath in iter_files(self._paths("models"), (".py",), exclude):
            self.check_deadline(deadline)
            content = read_text(filepath)
            if content is None or own_class.search(content):
                continue
            usages = find_python_usages(content, model_class, short_name)
            relationships = find_relationships(content, short_name)
            if usages or relationships:
                found.append({
                    "file": relative_path(filepath, self.app.base_path),
                    "model": first_class_name(content),
                    "usages": usages,
                    "relationships": relationships,
                })
        return found
