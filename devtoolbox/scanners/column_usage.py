"""
Database column usage for devtoolbox.

Lists every column of every table and greps the application's source and
template files for references to it. A column no file references is
reported as unused. Matching is textual, so generic column names such as
``name`` or ``id`` are almost always "used".
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from devtoolbox.config import DEFAULT_EXCLUDE
from devtoolbox.scanners.base import AbstractScanner
from devtoolbox.scanners.models import extract_models
from devtoolbox.utils import iter_files, read_text, relative_path, resolve_paths, studly_case

if TYPE_CHECKING:
    from pathlib import Path
    from typing import Any

    from devtoolbox.runtime.base import Database
    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)

TABLE_LISTING_SQL = {
    "sqlite": "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name",
    "pgsql": "SELECT tablename FROM pg_tables WHERE schemaname = 'public' ORDER BY tablename",
    "mysql": "SHOW TABLES",
}

TIMESTAMP_COLUMNS = ("id", "created_at", "updated_at", "deleted_at")

CAST_HINTS = (
    ("json", ("_json", "meta", "settings", "config", "data")),
    ("boolean", ("is_", "has_", "can_", "should_")),
    ("datetime", ("_at", "_date", "_time")),
    ("decimal", ("price", "amount", "cost", "total")),
)

SOURCE_PATH_KINDS = ("models", "controllers", "views", "routes", "jobs", "observers")


def list_tables(database: Database) -> list[str]:
    """
    List the tables of the database, using the driver's catalogue.

    Raises:
        ValueError: If the driver is not supported.
    """
    driver = database.driver
    if driver in ("postgres", "postgresql"):
        driver = "pgsql"
    sql = TABLE_LISTING_SQL.get(driver)
    if sql is None:
        raise ValueError(f"Unsupported database driver: {database.driver}")
    rows = database.select(sql)
    if driver == "mysql":
        key = f"Tables_in_{database.database_name}"
        return [str(row.get(key, next(iter(row.values())))) for row in rows if row]
    column = "name" if driver == "sqlite" else "tablename"
    return [str(row[column]) for row in rows]


def usage_pattern(column: str) -> re.Pattern[str]:
    """Regex matching the textual forms a column reference takes in code and templates."""
    c = re.escape(column)
    forms = [
        rf"['\"]{c}['\"]",
        rf"\.{c}(?![A-Za-z0-9_])",
        rf"\[\s*['\"]{c}['\"]\s*\]",
        rf"name\s*=\s*['\"]{c}['\"]",
        rf"where\s*\(\s*['\"]{c}['\"]",
        rf"select\s*\(\s*['\"]{c}['\"]",
        rf"order_?by\s*\(\s*['\"]{c}['\"]",
    ]
    return re.compile("|".join(forms), re.IGNORECASE)


def match_context(line: str, column: str) -> str:
    lowered = line.lower()
    if re.search(r"where\s*\(", lowered):
        return "query_where"
    if re.search(r"select\s*\(", lowered):
        return "query_select"
    if f".{column.lower()}" in lowered:
        return "attribute_access"
    if "fillable" in lowered:
        return "model_fillable"
    if re.search(r"name\s*=", lowered):
        return "form_field"
    return "general"


def file_type(path: str, view_extensions: list[str]) -> str:
    parts = path.lower().split("/")
    if "models" in parts:
        return "models"
    if "controllers" in parts:
        return "controllers"
    if "migrations" in parts:
        return "migrations"
    if "tests" in parts or parts[-1].startswith("test_"):
        return "tests"
    if "views" in parts or "templates" in parts or parts[-1].endswith(tuple(view_extensions)):
        return "views"
    return "other"


def cast_hint(column: str) -> str | None:
    for cast, markers in CAST_HINTS:
        for marker in markers:
            if marker.startswith("_"):
                hit = column.endswith(marker)
            elif marker.endswith("_"):
                hit = column.startswith(marker)
            else:
                hit = marker in column
            if hit:
                return cast
    return None


def model_name_for_table(table: str) -> str:
    """``user_profiles`` becomes ``UserProfile``."""
    name = studly_case(table)
    return name[:-1] if name.endswith("s") else name


class DbColumnUsageScanner(AbstractScanner):
    """Find database columns that the codebase never references."""

    name = "db-column-usage"
    description = "Analyze database column usage across the codebase"
    config_section = "db_column_usage"
    available_options = {
        "tables": "Only these tables (list)",
        "exclude_tables": "Tables to skip (list)",
        "scan_paths": "Source and template paths to search (list)",
        "include_migrations": "Also search the migrations directory",
        "unused_only": "Only report unused columns",
        "check_fillable": "Recommend adding used columns to the model's fillable list",
    }
    default_options = {
        "tables": [],
        "exclude_tables": [],
        "scan_paths": [],
        "include_migrations": False,
        "unused_only": False,
        "check_fillable": True,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)
        database = self.app.database
        if database is None:
            result = self._result({}, {}, "Application has no database connection")
            return self.add_metadata(result, options, 0)

        try:
            tables = list_tables(database)
        except Exception as e:
            logger.warning("Could not list tables: %s", e)
            return self.add_metadata(self._result({}, {}, f"Could not list tables: {e}"), options, 0)

        wanted = set(options.get("tables") or [])
        excluded = set(options.get("exclude_tables") or [])
        tables = [t for t in tables if (not wanted or t in wanted) and t not in excluded]

        sources = self._load_sources(options, deadline)
        models = self._load_models()

        analysed: dict[str, Any] = {}
        inaccessible: dict[str, Any] = {}
        for table in tables:
            self.check_deadline(deadline)
            try:
                columns = database.column_listing(table)
            except Exception as e:
                logger.warning("Could not read columns of %s: %s", table, e)
                inaccessible[table] = {"accessible": False, "error": str(e)}
                continue
            analysed[table] = self._analyse_table(table, columns, sources, models, options)

        result = self._result(analysed, inaccessible)
        return self.add_metadata(result, options, result["summary"]["total_columns"])

    def _load_sources(self, options: dict[str, Any], deadline: Deadline | None) -> dict[str, str]:
        """Read every candidate file once; keys are paths relative to the base path."""
        paths = self.config.get("paths") or {}
        defaults = [paths[kind] for kind in SOURCE_PATH_KINDS if paths.get(kind)]
        roots = resolve_paths(options.get("scan_paths") or None, self.app.base_path, defaults)
        if options.get("include_migrations") and paths.get("migrations"):
            roots += resolve_paths([paths["migrations"]], self.app.base_path, [])

        extensions = list(self.section.get("source_extensions") or [".py"])
        exclude = DEFAULT_EXCLUDE + list(options.get("exclude") or [])
        sources: dict[str, str] = {}
        for filepath in iter_files(roots, extensions, exclude):
            self.check_deadline(deadline)
            content = read_text(filepath)
            if content is not None:
                sources[relative_path(filepath, self.app.base_path)] = content
        logger.debug("Loaded %d source files for column search", len(sources))
        return sources

    def _load_models(self) -> list[dict[str, Any]]:
        base_classes = (self.config.get("models") or {}).get("base_classes") or ["Model"]
        models_dir = (self.config.get("paths") or {}).get("models")
        roots: list[Path] = resolve_paths(None, self.app.base_path, [models_dir] if models_dir else [])
        models = []
        for filepath in iter_files(roots, (".py",), DEFAULT_EXCLUDE):
            models.extend(m for m in extract_models(filepath, base_classes, self.app.base_path) if "error" not in m)
        return models

    @staticmethod
    def find_model(table: str, models: list[dict[str, Any]]) -> dict[str, Any] | None:
        for model in models:
            if model.get("table") == table:
                return model
        expected = model_name_for_table(table)
        for model in models:
            if model["name"] == expected and not model.get("table"):
                return model
        return None

    def _analyse_table(
        self,
        table: str,
        columns: list[str],
        sources: dict[str, str],
        models: list[dict[str, Any]],
        options: dict[str, Any],
    ) -> dict[str, Any]:
        model = self.find_model(table, models)
        records = {column: self._analyse_column(column, sources, model, options) for column in columns}
        used = sum(1 for record in records.values() if record["used"])
        if options.get("unused_only"):
            records = {column: record for column, record in records.items() if not record["used"]}
        return {
            "table": table,
            "model": model["full_class"] if model else None,
            "columns": records,
            "total_columns": len(columns),
            "used_columns": used,
            "unused_columns": len(columns) - used,
            "usage_percentage": round(used / len(columns) * 100, 2) if columns else 0,
        }

    def _analyse_column(
        self,
        column: str,
        sources: dict[str, str],
        model: dict[str, Any] | None,
        options: dict[str, Any],
    ) -> dict[str, Any]:
        pattern = usage_pattern(column)
        view_extensions = list((self.config.get("views") or {}).get("extensions") or [".html"])
        files = []
        for path, content in sources.items():
            if not pattern.search(content):
                continue
            matches = [
                {"line": number, "code": line.strip(), "context": match_context(line, column)}
                for number, line in enumerate(content.splitlines(), start=1)
                if pattern.search(line)
            ]
            base = self.app.base_path
            files.append({
                "path": str(base / path) if base is not None else path,
                "relative_path": path,
                "type": file_type(path, view_extensions),
                "matches": matches,
            })

        used = bool(files)
        model_info = self._model_info(column, model)
        record: dict[str, Any] = {
            "used": used,
            "usage_count": sum(len(f["matches"]) for f in files),
            "files": files,
            "model_info": model_info,
            "is_fillable": model_info["is_fillable"] if model_info else False,
            "is_hidden": model_info["is_hidden"] if model_info else False,
            "is_casted": model_info["is_casted"] if model_info else False,
        }
        record["recommendations"] = self._recommendations(column, used, model_info, options)
        return record

    @staticmethod
    def _model_info(column: str, model: dict[str, Any] | None) -> dict[str, Any] | None:
        if model is None:
            return None
        attributes = model.get("attributes") or {}
        casts = attributes.get("casts") or {}
        return {
            "model": model["full_class"],
            "is_fillable": column in (attributes.get("fillable") or []),
            "is_hidden": column in (attributes.get("hidden") or []),
            "is_casted": column in casts,
            "cast_type": casts.get(column) if isinstance(casts, dict) else None,
        }

    @staticmethod
    def _recommendations(
        column: str,
        used: bool,
        model_info: dict[str, Any] | None,
        options: dict[str, Any],
    ) -> list[str]:
        if not used:
            return [f"Column '{column}' appears to be unused - consider removing it"]
        recommendations = []
        if model_info is None:
            return recommendations
        if (
            options.get("check_fillable")
            and not model_info["is_fillable"]
            and column not in TIMESTAMP_COLUMNS
        ):
            recommendations.append(
                f"Column '{column}' is used but not fillable in {model_info['model']} - "
                "add it to fillable if it is mass assigned"
            )
        if not model_info["is_casted"]:
            cast = cast_hint(column)
            if cast is not None and column not in TIMESTAMP_COLUMNS:
                recommendations.append(f"Consider casting '{column}' as {cast}")
        return recommendations

    @staticmethod
    def _result(
        tables: dict[str, Any],
        inaccessible: dict[str, Any],
        error: str | None = None,
    ) -> dict[str, Any]:
        total = sum(t["total_columns"] for t in tables.values())
        used = sum(t["used_columns"] for t in tables.values())
        result: dict[str, Any] = {
            "tables": tables,
            "inaccessible_tables": inaccessible,
            "summary": {
                "total_tables": len(tables),
                "total_columns": total,
                "used_columns": used,
                "unused_columns": total - used,
                "usage_percentage": round(used / total * 100, 2) if total else 0,
                "tables_summary": {
                    name: {
                        "total_columns": t["total_columns"],
                        "used_columns": t["used_columns"],
                        "unused_columns": t["unused_columns"],
                        "usage_percentage": t["usage_percentage"],
                    }
                    for name, t in tables.items()
                },
            },
        }
        if error is not None:
            result["error"] = error
        return result
