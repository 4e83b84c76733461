"""
Host application capabilities and reference implementations.
"""

from devtoolbox.runtime.base import (
    Application,
    Binding,
    CommandInfo,
    Database,
    MiddlewareStack,
    QueryEvent,
    Route,
    SyntheticRequest,
    SyntheticResponse,
)
from devtoolbox.runtime.memory import InMemoryApplication
from devtoolbox.runtime.sqlite import SQLiteDatabase
from devtoolbox.runtime.wsgi import WSGIDispatcher

__all__ = [
    "Application",
    "Binding",
    "CommandInfo",
    "Database",
    "InMemoryApplication",
    "MiddlewareStack",
    "QueryEvent",
    "Route",
    "SQLiteDatabase",
    "SyntheticRequest",
    "SyntheticResponse",
    "WSGIDispatcher",
]
