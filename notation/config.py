"""Loading and saving of config.json."""

from __future__ import annotations

import json
import os
import stat
from dataclasses import dataclass, field
from typing import Any

from notation import dirs


def save_json(file_path: str, data: Any) -> None:
    """Write ``data`` as indented JSON, creating parent directories."""
    parent = os.path.dirname(file_path)
    if parent:
        os.makedirs(parent, mode=0o700, exist_ok=True)
    fd = os.open(file_path, os.O_RDWR | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=4)
        handle.write("\n")


def load_json(file_path: str) -> Any:
    """Read JSON from a regular file relative to the configuration directory."""
    path = dirs.config_fs().sys_path(file_path)
    mode = os.lstat(path).st_mode
    if stat.S_ISDIR(mode) or stat.S_ISLNK(mode):
        raise ValueError(
            f"{json.dumps(path)} is not a regular file (symlinks are not supported)"
        )
    with open(path, encoding="utf-8") as handle:
        return json.load(handle)


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"field {key!r} must be a list of strings")
    return list(value)


def _str_value(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


@dataclass
class Config:
    """The contents of config.json."""

    insecure_registries: list[str] = field(default_factory=list)
    credentials_store: str = ""
    credential_helpers: dict[str, str] = field(default_factory=dict)
    signature_format: str = ""

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"insecureRegistries": list(self.insecure_registries)}
        if self.credentials_store:
            body["credsStore"] = self.credentials_store
        if self.credential_helpers:
            body["credHelpers"] = dict(self.credential_helpers)
        if self.signature_format:
            body["signatureFormat"] = self.signature_format
        return body

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        if not isinstance(data, dict):
            raise ValueError("config must be a JSON object")
        helpers = data.get("credHelpers")
        if helpers is None:
            helpers = {}
        if not isinstance(helpers, dict) or not all(
            isinstance(v, str) for v in helpers.values()
        ):
            raise ValueError("field 'credHelpers' must be a map of strings")
        return cls(
            insecure_registries=_str_list(data, "insecureRegistries"),
            credentials_store=_str_value(data, "credsStore"),
            credential_helpers=dict(helpers),
            signature_format=_str_value(data, "signatureFormat"),
        )

    def save(self) -> None:
        """Write the configuration to config.json."""
        save_json(dirs.config_fs().sys_path(dirs.PATH_CONFIG_FILE), self.to_dict())


def load_config() -> Config:
    """Read config.json, or return an empty configuration if there is none."""
    try:
        data = load_json(dirs.PATH_CONFIG_FILE)
    except FileNotFoundError:
        return Config()
    return Config.from_dict(data)