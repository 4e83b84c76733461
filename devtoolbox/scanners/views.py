"""
Template scanner for devtoolbox.
"""

from __future__ import annotations

import datetime
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from devtoolbox.config import DEFAULT_EXCLUDE
from devtoolbox.scanners.base import AbstractScanner
from devtoolbox.utils import iter_files

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)


def view_name(path: Path, root: Path, extensions: list[str]) -> str:
    """``users/show.html`` under the view root becomes ``users.show``."""
    relative = path.relative_to(root).as_posix()
    for ext in sorted(extensions, key=len, reverse=True):
        if relative.endswith(ext):
            relative = relative[: -len(ext)]
            break
    return relative.replace("/", ".")


class ViewScanner(AbstractScanner):
    """List template files."""

    name = "views"
    description = "Scan templates and their metadata"
    config_section = "views"
    available_options = {
        "view_paths": "Template directories to scan (list)",
        "detect_unused": "Report unused templates (not implemented; always empty)",
        "include_components": "Also list templates in the components directory",
    }
    default_options = {
        "view_paths": [],
        "detect_unused": False,
        "include_components": False,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        extensions = list(self.section.get("extensions") or [".html"])
        exclude = DEFAULT_EXCLUDE + list(options.get("exclude") or [])

        roots = self.scan_paths({"paths": options.get("view_paths") or options.get("paths")}, "views")
        views = []
        for root in roots:
            views.extend(self._scan_root(root, extensions, exclude, deadline))

        result: dict[str, Any] = {
            "views": views,
            "count": len(views),
        }
        if options.get("detect_unused"):
            # Needs render-call tracing across controllers and templates
            result["unused_views"] = []
            result["unused_views_implemented"] = False
        if options.get("include_components"):
            components_dir = self.section.get("components_dir") or "components"
            result["components"] = []
            for root in roots:
                components = root / components_dir
                if components.is_dir():
                    result["components"].extend(self._scan_root(components, extensions, exclude, deadline))

        return self.add_metadata(result, options, len(views))

    def _scan_root(
        self,
        root: Path,
        extensions: list[str],
        exclude: list[str],
        deadline: Deadline | None,
    ) -> list[dict[str, Any]]:
        views = []
        for path in iter_files([root], extensions, exclude):
            self.check_deadline(deadline)
            try:
                stat = path.stat()
            except OSError as e:
                logger.debug("Could not stat %s: %s", path, e)
                continue
            views.append({
                "name": view_name(path, root, extensions),
                "path": str(path),
                "size": stat.st_size,
                "modified": datetime.datetime.fromtimestamp(stat.st_mtime).strftime("%Y-%m-%d %H:%M:%S"),
            })
        return views
