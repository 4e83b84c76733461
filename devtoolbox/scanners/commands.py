"""
Command scanner for devtoolbox.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from devtoolbox.scanners.base import AbstractScanner

if TYPE_CHECKING:
    from typing import Any

    from devtoolbox.runtime.base import CommandInfo
    from devtoolbox.utils import Deadline

logger = logging.getLogger(__name__)


def command_namespace(name: str) -> str:
    """``db:seed`` belongs to ``db``; names without a colon to ``default``."""
    namespace, sep, _ = name.partition(":")
    return namespace if sep else "default"


class CommandScanner(AbstractScanner):
    """List the application's console commands."""

    name = "commands"
    description = "Scan registered console commands"
    config_section = "commands"
    available_options = {
        "custom_only": "Skip framework commands",
        "include_signatures": "Include signature, description and help",
        "group_by_namespace": "Group commands by the prefix before ':'",
    }
    default_options = {
        "custom_only": False,
        "include_signatures": False,
        "group_by_namespace": False,
    }

    def scan(self, options: dict[str, Any] | None = None, deadline: Deadline | None = None) -> dict[str, Any]:
        options = self.merge_options(options)

        commands = []
        for command in self.app.commands():
            if options.get("custom_only") and not self.is_custom(command.name):
                continue
            commands.append(self._describe(command, options))

        result: dict[str, Any] = {
            "commands": commands,
            "count": len(commands),
        }
        if options.get("group_by_namespace"):
            grouped: dict[str, list[dict[str, Any]]] = {}
            for command in commands:
                grouped.setdefault(command_namespace(command["name"]), []).append(command)
            result["grouped_by_namespace"] = grouped

        return self.add_metadata(result, options, len(commands))

    def is_custom(self, name: str) -> bool:
        prefixes = self.section.get("framework_prefixes") or []
        return not any(name.startswith(prefix) for prefix in prefixes)

    def _describe(self, command: CommandInfo, options: dict[str, Any]) -> dict[str, Any]:
        record: dict[str, Any] = {
            "name": command.name,
            "class": command.class_name,
        }
        if options.get("include_signatures"):
            record["signature"] = command.signature or command.name
            record["description"] = command.description
            record["help"] = command.help
        return record
