"""Running signing and verification plugins as external executables."""

from __future__ import annotations

import json
import os
import stat
import subprocess
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, TypeVar

from notation.log import get_logger
from notation.plugin.proto import (
    CONTRACT_VERSION,
    PREFIX,
    Command,
    DescribeKeyRequest,
    DescribeKeyResponse,
    ErrorCode,
    GenerateEnvelopeRequest,
    GenerateEnvelopeResponse,
    GenerateSignatureRequest,
    GenerateSignatureResponse,
    GetMetadataRequest,
    GetMetadataResponse,
    RequestError,
    VerifySignatureRequest,
    VerifySignatureResponse,
)

_Response = TypeVar("_Response")


class NotCompliantError(Exception):
    """The plugin answered with a response that breaks the contract."""

    def __init__(self, msg: str = "plugin not compliant") -> None:
        super().__init__(msg)


class NotRegularFileError(Exception):
    """The plugin executable is not a regular file."""

    def __init__(self, msg: str = "not regular file") -> None:
        super().__init__(msg)


class Commander(Protocol):
    """Something that runs a plugin command."""

    def output(self, path: str, command: Command | str, request: bytes) -> bytes:
        """Run ``command`` of the plugin at ``path`` with ``request`` on stdin.

        Return the standard output. On failure raise an exception whose
        ``stderr`` attribute, if present, holds the plugin's standard error.
        """


class ExecCommander:
    """Runs plugin commands as child processes."""

    def output(self, path: str, command: Command | str, request: bytes) -> bytes:
        """Run the plugin and return its standard output.

        Raises ``subprocess.CalledProcessError`` carrying stderr when the
        plugin exits with a non-zero status.
        """
        arg = command.value if isinstance(command, Enum) else str(command)
        completed = subprocess.run(
            [path, arg], input=request, capture_output=True, check=False
        )
        if completed.returncode != 0:
            raise subprocess.CalledProcessError(
                completed.returncode,
                completed.args,
                output=completed.stdout,
                stderr=completed.stderr,
            )
        return completed.stdout


def bin_name(name: str) -> str:
    """Return the executable file name of the named plugin."""
    if sys.platform == "win32":
        return PREFIX + name + ".exe"
    return PREFIX + name


def validate_metadata(metadata: GetMetadataResponse) -> None:
    """Raise ValueError unless the metadata is fully populated."""
    if not metadata.name:
        raise ValueError("empty name")
    if not metadata.description:
        raise ValueError("empty description")
    if not metadata.version:
        raise ValueError("empty version")
    if not metadata.url:
        raise ValueError("empty url")
    if not metadata.capabilities:
        raise ValueError("empty capabilities")
    if not metadata.supported_contract_versions:
        raise ValueError("supported contract versions not specified")
    if CONTRACT_VERSION not in metadata.supported_contract_versions:
        versions = " ".join(metadata.supported_contract_versions)
        raise ValueError(
            f"contract version {json.dumps(CONTRACT_VERSION)} is not in the list "
            f"of the plugin supported versions [{versions}]"
        )


def _run(
    plugin_name: str,
    plugin_path: str,
    commander: Commander,
    request: Any,
    parse: Callable[[Any], _Response],
) -> _Response:
    logger = get_logger()
    command: Command = request.command
    try:
        data = json.dumps(request.to_dict()).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"{plugin_name}: failed to marshal request object: {exc}"
        ) from exc

    logger.debug("Plugin %s request: %s", command.value, data.decode("utf-8"))
    try:
        stdout = commander.output(plugin_path, command, data)
    except Exception as exc:
        stderr = getattr(exc, "stderr", None) or b""
        if isinstance(stderr, str):
            stderr = stderr.encode("utf-8")
        logger.debug("plugin %s execution status: %s", command.value, exc)
        logger.debug(
            "Plugin %s returned error: %s",
            command.value,
            stderr.decode("utf-8", errors="replace"),
        )
        try:
            error = RequestError.from_json(stderr)
        except ValueError:
            raise RequestError(
                ErrorCode.GENERIC,
                f"response is not in JSON format. error: {exc}, "
                f"stderr: {stderr.decode('utf-8', errors='replace')}",
            ) from exc
        raise error from exc

    logger.debug("Plugin %s response: %r", command.value, stdout)
    try:
        body = json.loads(stdout)
        return parse({} if body is None else body)
    except (TypeError, ValueError):
        raise NotCompliantError(
            "failed to decode json response: plugin not compliant"
        ) from None


@dataclass
class CLIPlugin:
    """A plugin reached through its command line executable."""

    name: str = ""
    path: str = ""
    commander: Commander = field(default_factory=ExecCommander, repr=False)

    def get_metadata(self, request: GetMetadataRequest) -> GetMetadataResponse:
        """Return the validated metadata of the plugin."""
        metadata = _run(
            self.name, self.path, self.commander, request, GetMetadataResponse.from_dict
        )
        try:
            validate_metadata(metadata)
        except ValueError as exc:
            raise ValueError(f"invalid metadata: {exc}") from exc
        if metadata.name != self.name:
            raise ValueError(
                f"executable name must be {json.dumps(bin_name(metadata.name))} "
                f"instead of {json.dumps(os.path.basename(self.path))}"
            )
        return metadata

    def describe_key(self, request: DescribeKeyRequest) -> DescribeKeyResponse:
        """Return the key spec of a key; fills in the contract version if unset."""
        if not request.contract_version:
            request.contract_version = CONTRACT_VERSION
        return _run(
            self.name, self.path, self.commander, request, DescribeKeyResponse.from_dict
        )

    def generate_signature(
        self, request: GenerateSignatureRequest
    ) -> GenerateSignatureResponse:
        """Produce a raw signature; fills in the contract version if unset."""
        if not request.contract_version:
            request.contract_version = CONTRACT_VERSION
        return _run(
            self.name,
            self.path,
            self.commander,
            request,
            GenerateSignatureResponse.from_dict,
        )

    def generate_envelope(
        self, request: GenerateEnvelopeRequest
    ) -> GenerateEnvelopeResponse:
        """Produce a signature envelope; fills in the contract version if unset."""
        if not request.contract_version:
            request.contract_version = CONTRACT_VERSION
        return _run(
            self.name,
            self.path,
            self.commander,
            request,
            GenerateEnvelopeResponse.from_dict,
        )

    def verify_signature(
        self, request: VerifySignatureRequest
    ) -> VerifySignatureResponse:
        """Have the plugin verify a signature; fills in the contract version if unset."""
        if not request.contract_version:
            request.contract_version = CONTRACT_VERSION
        return _run(
            self.name,
            self.path,
            self.commander,
            request,
            VerifySignatureResponse.from_dict,
        )


def new_cli_plugin(name: str, path: str) -> CLIPlugin:
    """Check that the plugin executable is a regular file and wrap it."""
    info = os.stat(path)
    if not stat.S_ISREG(info.st_mode):
        raise NotRegularFileError()
    return CLIPlugin(name=name, path=path)