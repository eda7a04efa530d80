"""Finding the plugins installed on the system."""

from __future__ import annotations

import os
from dataclasses import dataclass

from notation.dirs import SysFS
from notation.plugin.client import CLIPlugin, Commander, bin_name, new_cli_plugin


@dataclass
class CLIManager:
    """Manages the command line plugins installed under a directory."""

    plugin_fs: SysFS
    commander: Commander | None = None

    def get(self, name: str) -> CLIPlugin:
        """Return the named plugin; raises FileNotFoundError if it is missing."""
        path = self.plugin_fs.sys_path(name, bin_name(name))
        plugin = new_cli_plugin(name, path)
        if self.commander is not None:
            plugin.commander = self.commander
        return plugin

    def list(self) -> list[str]:
        """Return the names of the plugin directories, in sorted order."""
        try:
            entries = list(os.scandir(self.plugin_fs.sys_path()))
        except OSError:
            return []
        return sorted(
            entry.name for entry in entries if entry.is_dir(follow_symlinks=False)
        )