"""Directory layout for configuration, keys, trust stores and plugins."""

from __future__ import annotations

import os
import posixpath
import sys
from dataclasses import dataclass
from typing import IO, Callable

NOTATION = "notation"

PATH_CONFIG_FILE = "config.json"
PATH_SIGNING_KEYS = "signingkeys.json"
PATH_TRUST_POLICY = "trustpolicy.json"
PATH_PLUGINS = "plugins"
LOCAL_KEYS_DIR = "localkeys"
LOCAL_CERTIFICATE_EXTENSION = ".crt"
LOCAL_KEY_EXTENSION = ".key"
TRUST_STORE_DIR = "truststore"

USER_CONFIG_DIR = ""
USER_LIBEXEC_DIR = ""


def _join_native(*items: str) -> str:
    parts = [item for item in items if item]
    if not parts:
        return ""
    return os.path.normpath(os.sep.join(parts))


def _join_slash(*items: str) -> str:
    parts = [item for item in items if item]
    if not parts:
        return ""
    return posixpath.normpath("/".join(parts))


def _valid_fs_path(name: str) -> bool:
    if name == ".":
        return True
    if not name:
        return False
    return all(elem not in ("", ".", "..") for elem in name.split("/"))


@dataclass(frozen=True)
class SysFS:
    """A file system rooted at a directory that also reports real paths."""

    root: str

    def sys_path(self, *args: str) -> str:
        """Return the real system path of the given path items."""
        return _join_native(self.root, *args)

    def open(self, name: str, mode: str = "rb") -> IO:
        """Open a slash-separated path relative to the root."""
        if not _valid_fs_path(name):
            raise ValueError(f"open {name}: invalid argument")
        return open(os.path.join(self.root, *name.split("/")), mode)


def default_user_config_dir() -> str:
    """Return the platform's user configuration directory."""
    if sys.platform == "win32":
        appdata = os.environ.get("AppData") or os.environ.get("APPDATA", "")
        if not appdata:
            raise OSError("%AppData% is not defined")
        return appdata
    if sys.platform == "darwin":
        home = os.environ.get("HOME", "")
        if not home:
            raise OSError("$HOME is not defined")
        return home + "/Library/Application Support"
    config = os.environ.get("XDG_CONFIG_HOME", "")
    if config:
        return config
    home = os.environ.get("HOME", "")
    if not home:
        raise OSError("neither $XDG_CONFIG_HOME nor $HOME are defined")
    return home + "/.config"


def load_user_path(config_dir_fn: Callable[[], str] | None = None) -> None:
    """Set the user configuration and libexec directories."""
    global USER_CONFIG_DIR, USER_LIBEXEC_DIR
    user_dir = (config_dir_fn or default_user_config_dir)()
    USER_CONFIG_DIR = _join_native(user_dir, NOTATION)
    USER_LIBEXEC_DIR = USER_CONFIG_DIR


def config_fs() -> SysFS:
    """Return the file system of the configuration directory."""
    return SysFS(USER_CONFIG_DIR)


def plugin_fs() -> SysFS:
    """Return the file system of the plugin directory."""
    return SysFS(_join_native(USER_LIBEXEC_DIR, PATH_PLUGINS))


def local_key_path(name: str) -> tuple[str, str]:
    """Return the relative paths of a local key and its certificate."""
    base = _join_slash(LOCAL_KEYS_DIR, name)
    return base + LOCAL_KEY_EXTENSION, base + LOCAL_CERTIFICATE_EXTENSION


def x509_trust_store_dir(*args: str) -> str:
    """Return the relative path of an X.509 trust store entry."""
    return _join_slash(TRUST_STORE_DIR, "x509", *args)


load_user_path()