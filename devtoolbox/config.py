"""
Configuration constants and loading utilities for devtoolbox.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml


DEFAULT_EXCLUDE = [
    "__pycache__",
    ".git",
    ".venv",
    "venv",
    "node_modules",
    ".pytest_cache",
    ".mypy_cache",
    "*.pyc",
    "*.pyo",
    ".DS_Store",
    "*.egg-info",
]


DEFAULT_CONFIG: dict[str, Any] = {
    # Options applied to every scanner before its own defaults
    "defaults": {
        "include_metadata": True,
        "format": "array",
    },

    # Project layout, relative to the application base path
    "paths": {
        "models": "app/models",
        "controllers": "app/controllers",
        "views": "app/templates",
        "routes": "app/routes",
        "jobs": "app/jobs",
        "observers": "app/observers",
        "migrations": "migrations",
    },

    "models": {
        "base_classes": ["Model"],
        "include_attributes": True,
        "include_relationships": True,
        "include_scopes": True,
    },

    "routes": {
        "include_parameters": False,
    },

    "commands": {
        "framework_prefixes": [
            "cache:", "config:", "db:", "event:", "key:", "make:", "migrate:",
            "notifications:", "optimize:", "package:", "queue:", "route:",
            "schedule:", "storage:", "vendor:", "view:", "auth:", "session:",
            "tinker", "serve", "down", "up", "inspire", "test",
            "shell", "run", "routes",
        ],
    },

    "services": {
        "framework_prefixes": [
            "flask.", "werkzeug.", "django.", "starlette.", "devtoolbox.",
            "app", "auth", "cache", "config", "db", "events", "files", "log",
            "queue", "redis", "request", "response", "route", "session",
            "validator", "view",
        ],
    },

    "views": {
        "extensions": [".html", ".jinja", ".jinja2", ".j2"],
        "components_dir": "components",
    },

    "security": {
        "auth_middleware": ["auth", "auth:api", "auth:sanctum", "auth:web"],
        "csrf_middleware": ["web", "csrf"],
        "public_paths": ["/", "home", "about", "contact", "login", "register"],
        "unprotected_exclude_patterns": [
            "api/health", "api/status", "_debugbar", "telescope", "horizon",
        ],
        "csrf_exclude_patterns": ["api/*"],
    },

    "sql": {
        "slow_query_ms": 100,
        "high_query_count": 50,
        "slow_total_ms": 1000,
    },

    "db_column_usage": {
        "exclude_tables": [
            "migrations",
            "password_resets",
            "password_reset_tokens",
            "personal_access_tokens",
            "failed_jobs",
        ],
        "source_extensions": [".py", ".html", ".jinja", ".jinja2", ".j2"],
    },

    "provider_timeline": {
        "slow_threshold": 50,
    },
}


def load_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from YAML file, merged with defaults.

    Each top-level section in the file is merged key by key over the
    matching default section; other values replace the default.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Configuration dictionary with user values merged over defaults.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(config_path, "r", encoding="utf-8") as f:
        user_config = yaml.safe_load(f) or {}

    return merge_config(user_config)


def merge_config(user_config: dict[str, Any]) -> dict[str, Any]:
    """Shallow-merge user sections over a copy of DEFAULT_CONFIG."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    for key, value in user_config.items():
        if isinstance(value, dict) and key in config and isinstance(config[key], dict):
            config[key] = {**config[key], **value}
        else:
            config[key] = value
    return config


def get_config_template() -> str:
    """Generate a documented YAML config template."""
    return '''# =============================================================================
# devtoolbox configuration
# =============================================================================
# Every section is optional. Keys you set are merged over the built-in
# defaults, section by section.

# Options applied to every scanner (callers can still override per scan)
defaults:
  include_metadata: true
  format: array

# Where your application keeps things, relative to its base path
paths:
  models: app/models
  controllers: app/controllers
  views: app/templates
  routes: app/routes
  jobs: app/jobs
  observers: app/observers
  migrations: migrations

# Classes deriving from one of these base names are reported as models.
# Simple names match the last component ("Model" matches "db.Model");
# dotted names match as a suffix.
models:
  base_classes:
    - Model
  # - sqlalchemy.orm.DeclarativeBase

# Commands whose names start with these are treated as framework commands
# by `commands --option custom_only=true`
commands:
  framework_prefixes:
    - "db:"
    - "migrate:"
    - shell
    - run

# Container bindings whose names start with these are framework services
services:
  framework_prefixes:
    - flask.
    - django.
    - app

views:
  extensions: [.html, .jinja, .jinja2, .j2]
  components_dir: components

security:
  # Middleware names that count as authentication
  auth_middleware: [auth, "auth:api", "auth:sanctum", "auth:web"]
  # Middleware names that count as CSRF protection
  csrf_middleware: [web, csrf]
  # GET-only routes under these paths are considered public
  public_paths: ["/", home, about, contact, login, register]
  # Substring or glob patterns skipped by each check
  unprotected_exclude_patterns: [api/health, api/status]
  csrf_exclude_patterns: ["api/*"]

sql:
  slow_query_ms: 100
  high_query_count: 50
  slow_total_ms: 1000

db_column_usage:
  exclude_tables: [migrations, failed_jobs]
  source_extensions: [.py, .html, .jinja, .jinja2, .j2]

provider_timeline:
  slow_threshold: 50
'''
