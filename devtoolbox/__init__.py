"""
devtoolbox - Introspection toolkit for web applications.

Pluggable scanners report an application's routes, models, commands,
container bindings, middleware and templates, trace the SQL a request
executes, audit route security and cross-reference database columns with
the source tree.
"""

__version__ = "1.0.0"
__author__ = "Isaac"

from devtoolbox.config import DEFAULT_CONFIG, DEFAULT_EXCLUDE
from devtoolbox.manager import Manager
from devtoolbox.registry import ScannerRegistry
from devtoolbox.runtime import Application, Database, InMemoryApplication, SQLiteDatabase
from devtoolbox.scanners import AbstractScanner, Scanner
from devtoolbox.serialization import make_json_serializable, safe_json_dumps

__all__ = [
    "AbstractScanner",
    "Application",
    "Database",
    "DEFAULT_CONFIG",
    "DEFAULT_EXCLUDE",
    "InMemoryApplication",
    "Manager",
    "SQLiteDatabase",
    "Scanner",
    "ScannerRegistry",
    "make_json_serializable",
    "safe_json_dumps",
    "__version__",
]
