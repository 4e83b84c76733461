"""
Model scanner for devtoolbox.

Finds model classes by parsing source files with ``ast``; nothing is
imported. A class is a model when one of its bases matches a configured
model base class.
"""

from __future__ import annotations

import ast
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from devtoolbox.config import DEFAULT_EXCLUDE
from devtoolbox.scanners.base import AbstractScanner, heuristic
from devtoolbox.utils import iter_files, read_text

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)

MODEL_ATTRIBUTES = ("fillable", "guarded", "hidden", "casts", "dates")

# Method names (snake and camel case) that declare an ORM relationship
RELATION_CALLS = {
    "has_one": "has_one",
    "has_many": "has_many",
    "belongs_to": "belongs_to",
    "belongs_to_many": "belongs_to_many",
    "has_many_through": "has_many_through",
    "morph_to": "morph_to",
    "morph_many": "morph_many",
    "hasOne": "has_one",
    "hasMany": "has_many",
    "belongsTo": "belongs_to",
    "belongsToMany": "belongs_to_many",
    "relationship": "relationship",
}


def get_name(node: ast.expr) -> str:
    """Get dotted name from an AST node."""
    if isinstance(node, ast.Name):
        return node.id
    elif isinstance(node, ast.Attribute):
        return f"{get_name(node.value)}.{node.attr}"
    elif isinstance(node, ast.Call):
        return get_name(node.func)
    elif isinstance(node, ast.Subscript):
        return get_name(node.value)
    return ast.unparse(node)


def matches_base_class(bases: list[str], pattern: str) -> bool:
    """
    Check if any base class matches the pattern.

    Simple patterns match the last component of a base ("Model" matches
    "db.Model"); dotted patterns match as a suffix.
    """
    for base in bases:
        if base == pattern:
            return True
        if "." in pattern and base.endswith("." + pattern):
            return True
        if "." not in pattern and base.split(".")[-1] == pattern:
            return True
    return False


def module_name(filepath: Path, base_path: Path | None) -> str:
    """Dotted module name of a source file relative to the project root."""
    path = filepath.with_suffix("")
    if base_path is not None:
        try:
            path = filepath.resolve().with_suffix("").relative_to(base_path.resolve())
        except ValueError:
            pass
    parts = [p for p in path.parts if p not in ("/", "\\")]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def _literal(node: ast.expr) -> Any:
    try:
        return ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return None


def _class_assignments(node: ast.ClassDef) -> dict[str, ast.expr]:
    assigned: dict[str, ast.expr] = {}
    for item in node.body:
        if isinstance(item, ast.Assign):
            for target in item.targets:
                if isinstance(target, ast.Name):
                    assigned[target.id] = item.value
        elif isinstance(item, ast.AnnAssign) and isinstance(item.target, ast.Name) and item.value is not None:
            assigned[item.target.id] = item.value
    return assigned


def _is_abstract(node: ast.ClassDef, assigned: dict[str, ast.expr]) -> bool:
    if "__abstract__" in assigned and _literal(assigned["__abstract__"]) is True:
        return True
    for item in node.body:
        if isinstance(item, ast.ClassDef) and item.name == "Meta":
            meta = _class_assignments(item)
            if "abstract" in meta and _literal(meta["abstract"]) is True:
                return True
        if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
            if any(get_name(d).split(".")[-1] == "abstractmethod" for d in item.decorator_list):
                return True
    return False


def _relation_call(node: ast.AST) -> str | None:
    for child in ast.walk(node):
        if isinstance(child, ast.Call):
            called = get_name(child.func).split(".")[-1]
            if called in RELATION_CALLS:
                return RELATION_CALLS[called]
    return None


def _relationships(node: ast.ClassDef, assigned: dict[str, ast.expr]) -> list[dict[str, Any]]:
    relationships = []
    for name, value in assigned.items():
        kind = _relation_call(value) if isinstance(value, ast.Call) else None
        if kind:
            relationships.append({
                "name": name,
                "type": kind,
                **heuristic("medium", f"class attribute assigned from {kind}()"),
            })

    for item in node.body:
        if not isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
            continue
        method = item.name
        if method.startswith("_") or method.startswith(("get_", "set_", "scope_")):
            continue
        decorators = {get_name(d).split(".")[-1] for d in item.decorator_list}
        if decorators & {"staticmethod", "classmethod", "setter"}:
            continue
        kind = _relation_call(item)
        if kind:
            relationships.append({
                "name": method,
                "type": kind,
                **heuristic("medium", f"method body calls {kind}()"),
            })
        else:
            relationships.append({
                "name": method,
                "type": "unknown",
                **heuristic("low", "public method that is not an accessor, mutator or scope"),
            })
    return relationships


def _scopes(node: ast.ClassDef) -> list[dict[str, str]]:
    return [
        {"name": item.name, "scope_name": item.name[len("scope_"):]}
        for item in node.body
        if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)) and item.name.startswith("scope_")
    ]


def extract_models(
    filepath: Path,
    base_classes: list[str],
    base_path: Path | None = None,
) -> list[dict[str, Any]]:
    """
    Parse one file and describe every model class in it.

    Returns:
        One dict per model with name, namespace, full_class, file_path,
        is_abstract, table, attributes, relationships and scopes. A file
        that cannot be parsed yields a single item with an ``error`` key.
    """
    content = read_text(filepath)
    if content is None:
        return []
    namespace = module_name(filepath, base_path)
    try:
        tree = ast.parse(content, filename=str(filepath))
    except SyntaxError as e:
        logger.debug("Could not parse %s: %s", filepath, e)
        return [{
            "name": filepath.stem,
            "namespace": namespace,
            "full_class": None,
            "file_path": str(filepath),
            "error": f"SyntaxError: {e.msg} (line {e.lineno})",
        }]

    models = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.ClassDef):
            continue
        bases = [get_name(b) for b in node.bases]
        if not any(matches_base_class(bases, pattern) for pattern in base_classes):
            continue
        assigned = _class_assignments(node)
        attributes: dict[str, Any] = {}
        for key in MODEL_ATTRIBUTES:
            value = _literal(assigned[key]) if key in assigned else None
            if isinstance(value, (list, tuple, set)):
                value = list(value)
            attributes[key] = value if value is not None else ({} if key == "casts" else [])
        table = None
        for key in ("__tablename__", "table", "db_table"):
            if key in assigned and isinstance(_literal(assigned[key]), str):
                table = _literal(assigned[key])
                break
        models.append({
            "name": node.name,
            "namespace": namespace,
            "full_class": f"{namespace}.{node.name}" if namespace else node.name,
            "file_path": str(filepath),
            "line": node.lineno,
            "is_abstract": _is_abstract(node, assigned),
            "table": table,
            "attributes": attributes,
            "relationships": _relationships(node, assigned),
            "scopes": _scopes(node),
        })
    return models


class ModelScanner(AbstractScanner):
    """Scan source files for model classes."""

    name = "models"
    description = "Scan models and their attributes, relationships and scopes"
    config_section = "models"
    available_options = {
        "include_attributes": "Include fillable, guarded, hidden, casts and dates",
        "include_relationships": "Include relationship methods (heuristic)",
        "include_scopes": "Include query scopes (scope_* methods)",
    }
    default_options = {
        "include_attributes": True,
        "include_relationships": True,
        "include_scopes": True,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        base_classes = self.section.get("base_classes") or ["Model"]
        exclude = DEFAULT_EXCLUDE + list(options.get("exclude") or [])

        models = []
        for filepath in iter_files(self.scan_paths(options, "models"), (".py",), exclude):
            self.check_deadline(deadline)
            for model in extract_models(filepath, base_classes, self.app.base_path):
                models.append(self._shape(model, options))

        return self.add_metadata({"models": models, "count": len(models)}, options, len(models))

    def _shape(self, model: dict[str, Any], options: dict[str, Any]) -> dict[str, Any]:
        if "error" in model:
            return model
        record = {k: model[k] for k in ("name", "namespace", "full_class", "file_path", "is_abstract", "table")}
        if options.get("include_attributes"):
            record["attributes"] = model["attributes"]
        if options.get("include_relationships"):
            record["relationships"] = model["relationships"]
        if options.get("include_scopes"):
            record["scopes"] = model["scopes"]
        return record
