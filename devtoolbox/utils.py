"""
Utility functions for devtoolbox.
"""

from __future__ import annotations

import importlib
import logging
import os
import re
import time
from pathlib import Path
from typing import TYPE_CHECKING

from devtoolbox.errors import ScanTimeout

if TYPE_CHECKING:
    from typing import Any, Iterator

logger = logging.getLogger(__name__)


def should_exclude(path: Path, exclude_patterns: list[str]) -> bool:
    """
    Check if path should be excluded based on patterns.

    Args:
        path: Path to check.
        exclude_patterns: List of patterns. Patterns starting with '*'
            match suffixes, others match directory names.

    Returns:
        True if the path should be excluded.
    """
    path_str = str(path)
    for pattern in exclude_patterns:
        if pattern.startswith("*"):
            if path_str.endswith(pattern[1:]):
                return True
        elif pattern in path_str.split(os.sep):
            return True
    return False


def iter_files(
    roots: list[Path],
    extensions: tuple[str, ...] | list[str],
    exclude: list[str] | None = None,
) -> Iterator[Path]:
    """
    Yield files below the given roots that end with one of the extensions.

    Missing roots are skipped. Each file is yielded once, in sorted order
    per root.
    """
    exclude = exclude or []
    seen: set[Path] = set()
    for root in roots:
        if root.is_file():
            candidates = [root]
        elif root.is_dir():
            candidates = sorted(p for p in root.rglob("*") if p.is_file())
        else:
            logger.debug("Skipping missing path %s", root)
            continue
        for path in candidates:
            if not path.name.endswith(tuple(extensions)):
                continue
            if should_exclude(path, exclude) or path in seen:
                continue
            seen.add(path)
            yield path


def read_text(filepath: Path) -> str | None:
    """Read a file as UTF-8, returning None when it cannot be read."""
    try:
        with open(filepath, "r", encoding="utf-8", errors="ignore") as f:
            return f.read()
    except (OSError, IOError) as e:
        logger.debug("Could not read %s: %s", filepath, e)
        return None


def relative_path(path: Path, base: Path | None) -> str:
    """Return path relative to base, or the path itself when outside it."""
    if base is not None:
        try:
            return path.resolve().relative_to(base.resolve()).as_posix()
        except ValueError:
            pass
    return path.as_posix()


def resolve_paths(paths: list[str] | None, base: Path | None, default: list[str]) -> list[Path]:
    """
    Turn configured path strings into absolute paths.

    Relative entries are resolved against the application base path.
    """
    result = []
    for entry in paths or default:
        p = Path(entry)
        if not p.is_absolute() and base is not None:
            p = base / p
        result.append(p)
    return result


def import_string(dotted_path: str) -> Any:
    """
    Import an object from a dotted path.

    Accepts ``package.module.Name`` and ``package.module:Name``.

    Raises:
        ImportError: If the module or attribute does not exist.
    """
    if ":" in dotted_path:
        module_path, _, attr_path = dotted_path.partition(":")
        return _resolve_attributes(importlib.import_module(module_path), module_path, attr_path)

    parts = dotted_path.split(".")
    if len(parts) < 2 or not all(parts):
        raise ImportError(f"'{dotted_path}' is not a dotted import path")

    # Longest importable module prefix wins
    for i in range(len(parts) - 1, 0, -1):
        module_path = ".".join(parts[:i])
        try:
            module = importlib.import_module(module_path)
        except ImportError:
            continue
        return _resolve_attributes(module, module_path, ".".join(parts[i:]))
    raise ImportError(f"No module found for '{dotted_path}'")


def _resolve_attributes(obj: Any, module_path: str, attr_path: str) -> Any:
    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ImportError(f"'{module_path}' has no attribute '{attr_path}'") from e
    return obj


def class_basename(name: str) -> str:
    """Return the last component of a dotted or backslashed class name."""
    return re.split(r"[.\\:]", name)[-1]


def qualified_name(obj: Any) -> str:
    """Return ``module.QualName`` for a class or function."""
    module = getattr(obj, "__module__", None)
    qualname = getattr(obj, "__qualname__", None) or getattr(obj, "__name__", None)
    if qualname is None:
        qualname = type(obj).__qualname__
        module = type(obj).__module__
    if module and module != "builtins":
        return f"{module}.{qualname}"
    return qualname


def studly_case(snake: str) -> str:
    """Convert ``user_profiles`` to ``UserProfiles``."""
    return "".join(part[:1].upper() + part[1:] for part in re.split(r"[_\-\s]+", snake) if part)


class Deadline:
    """
    Cooperative scan deadline.

    Scanners call ``check()`` between units of work; a deadline without a
    timeout never expires.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    @property
    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self) -> None:
        """
        Raise if the deadline has passed.

        Raises:
            ScanTimeout: When the timeout has elapsed.
        """
        if self.expired():
            raise ScanTimeout(f"Scan exceeded timeout of {self.timeout}s")
