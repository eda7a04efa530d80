"""Loading, editing and saving of signingkeys.json."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from notation import dirs
from notation.config import load_json, save_json
from notation.log import get_logger
from notation.plugin.manager import CLIManager

_KEY_NAME_EMPTY = "key name cannot be empty"
_KEY_NOT_FOUND = "signing key not found"


def _optional_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


@dataclass
class X509KeyPair:
    """Paths of a private key file and its certificate file."""

    key_path: str = ""
    certificate_path: str = ""


@dataclass
class ExternalKey:
    """A key whose signing is delegated to the named plugin."""

    id: str = ""
    plugin_name: str = ""
    plugin_config: dict[str, str] | None = None


@dataclass
class KeySuite:
    """A named signing key, held locally or by a plugin."""

    name: str = ""
    x509_key_pair: X509KeyPair | None = None
    external_key: ExternalKey | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"name": self.name}
        pair = self.x509_key_pair
        if pair is not None:
            if pair.key_path:
                body["keyPath"] = pair.key_path
            if pair.certificate_path:
                body["certPath"] = pair.certificate_path
        external = self.external_key
        if external is not None:
            if external.id:
                body["id"] = external.id
            if external.plugin_name:
                body["pluginName"] = external.plugin_name
            if external.plugin_config:
                body["pluginConfig"] = dict(external.plugin_config)
        return body

    @classmethod
    def from_dict(cls, data: Any) -> "KeySuite":
        if not isinstance(data, dict):
            raise ValueError("key entry must be a JSON object")
        pair = None
        if "keyPath" in data or "certPath" in data:
            pair = X509KeyPair(
                key_path=_optional_str(data, "keyPath"),
                certificate_path=_optional_str(data, "certPath"),
            )
        external = None
        if "id" in data or "pluginName" in data or "pluginConfig" in data:
            config = data.get("pluginConfig")
            if config is not None and (
                not isinstance(config, dict)
                or not all(isinstance(v, str) for v in config.values())
            ):
                raise ValueError("field 'pluginConfig' must be a map of strings")
            external = ExternalKey(
                id=_optional_str(data, "id"),
                plugin_name=_optional_str(data, "pluginName"),
                plugin_config=dict(config) if config is not None else None,
            )
        return cls(
            name=_optional_str(data, "name"),
            x509_key_pair=pair,
            external_key=external,
        )


def _check_key_pair(cert_path: str, key_path: str) -> None:
    """Raise unless the files hold a certificate and its matching private key."""
    with open(cert_path, "rb") as handle:
        cert_data = handle.read()
    with open(key_path, "rb") as handle:
        key_data = handle.read()
    try:
        certificate = x509.load_pem_x509_certificate(cert_data)
    except ValueError as exc:
        raise ValueError(f"failed to parse certificate: {exc}") from None
    try:
        private_key = serialization.load_pem_private_key(key_data, password=None)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"failed to parse private key: {exc}") from None

    def spki(public_key: Any) -> bytes:
        return public_key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    if spki(certificate.public_key()) != spki(private_key.public_key()):
        raise ValueError("private key does not match public key")


@dataclass
class SigningKeys:
    """The contents of signingkeys.json."""

    default: str | None = None
    keys: list[KeySuite] = field(default_factory=list)

    def _index(self, name: str) -> int | None:
        return next(
            (i for i, key in enumerate(self.keys) if key.name == name), None
        )

    def _add(self, key: KeySuite, mark_default: bool) -> None:
        if self._index(key.name) is not None:
            raise ValueError(f'signing key with name "{key.name}" already exists')
        self.keys.append(key)
        if mark_default:
            self.default = key.name

    def add(
        self, name: str, key_path: str, cert_path: str, mark_default: bool
    ) -> None:
        """Add a local key after checking that its key and certificate match."""
        if not name:
            raise ValueError(_KEY_NAME_EMPTY)
        _check_key_pair(cert_path, key_path)
        self._add(
            KeySuite(
                name=name,
                x509_key_pair=X509KeyPair(
                    key_path=key_path, certificate_path=cert_path
                ),
            ),
            mark_default,
        )

    def add_plugin(
        self,
        key_name: str,
        key_id: str,
        plugin_name: str,
        plugin_config: dict[str, str] | None,
        mark_default: bool,
    ) -> None:
        """Add a key held by an installed plugin."""
        logger = get_logger()
        logger.debug(
            "Adding key with name %s and plugin name %s", key_name, plugin_name
        )
        if not key_name:
            raise ValueError(_KEY_NAME_EMPTY)
        if not key_id:
            raise ValueError("missing key id")
        if not plugin_name:
            raise ValueError("plugin name cannot be empty")

        CLIManager(dirs.plugin_fs()).get(plugin_name)

        suite = KeySuite(
            name=key_name,
            external_key=ExternalKey(
                id=key_id, plugin_name=plugin_name, plugin_config=plugin_config
            ),
        )
        try:
            self._add(suite, mark_default)
        except ValueError as exc:
            logger.error("Failed to add key with error: %s", exc)
            raise
        logger.debug("Added key with name %s - %r", key_name, suite)

    def get(self, key_name: str) -> KeySuite:
        """Return the key with the given name."""
        if not key_name:
            raise ValueError(_KEY_NAME_EMPTY)
        index = self._index(key_name)
        if index is None:
            raise LookupError(_KEY_NOT_FOUND)
        return self.keys[index]

    def get_default(self) -> KeySuite:
        """Return the default key."""
        if self.default is None:
            raise LookupError(
                "default signing key not set. "
                "Please set default signing key or specify a key name"
            )
        return self.get(self.default)

    def remove(self, *args: str) -> list[str]:
        """Remove the named keys and return their names."""
        deleted: list[str] = []
        for name in args:
            if not name:
                raise ValueError(_KEY_NAME_EMPTY)
            index = self._index(name)
            if index is None:
                raise LookupError(name + ": not found")
            del self.keys[index]
            deleted.append(name)
            if self.default == name:
                self.default = None
        return deleted

    def update_default(self, key_name: str) -> None:
        """Make the named key the default one."""
        if not key_name:
            raise ValueError(_KEY_NAME_EMPTY)
        if self._index(key_name) is None:
            raise LookupError(f"key with name '{key_name}' not found")
        self.default = key_name

    def save(self) -> None:
        """Validate and write the keys to signingkeys.json."""
        path = dirs.config_fs().sys_path(dirs.PATH_SIGNING_KEYS)
        validate_keys(self)
        save_json(path, self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.default is not None:
            body["default"] = self.default
        body["keys"] = [key.to_dict() for key in self.keys]
        return body

    @classmethod
    def from_dict(cls, data: Any) -> "SigningKeys":
        if not isinstance(data, dict):
            raise ValueError("signing keys must be a JSON object")
        default = data.get("default")
        if default is not None and not isinstance(default, str):
            raise ValueError("field 'default' must be a string")
        raw_keys = data.get("keys")
        if raw_keys is None:
            raw_keys = []
        if not isinstance(raw_keys, list):
            raise ValueError("field 'keys' must be a list")
        return cls(default=default, keys=[KeySuite.from_dict(k) for k in raw_keys])


def validate_keys(signing_keys: SigningKeys) -> None:
    """Raise ValueError if key names are empty or repeated or the default is unknown."""
    source = dirs.PATH_SIGNING_KEYS
    names: set[str] = set()
    for key in signing_keys.keys:
        if not key.name:
            raise ValueError(f"malformed {source}: key name cannot be empty")
        if key.name in names:
            raise ValueError(
                f"malformed {source}: multiple keys with name '{key.name}' found"
            )
        names.add(key.name)

    default = signing_keys.default
    if default is not None:
        if not default:
            raise ValueError(f"malformed {source}: default key name cannot be empty")
        if default not in names:
            raise ValueError(f"malformed {source}: default key '{default}' not found")


def load_signing_keys() -> SigningKeys:
    """Read signingkeys.json, or return an empty set of keys if there is none."""
    try:
        data = load_json(dirs.PATH_SIGNING_KEYS)
    except FileNotFoundError:
        return SigningKeys()
    keys = SigningKeys.from_dict(data)
    validate_keys(keys)
    return keys


def load_exec_save_signing_keys(fn: Callable[[SigningKeys], Any]) -> None:
    """Load the signing keys, pass them to ``fn`` and save them afterwards."""
    signing_keys = load_signing_keys()
    fn(signing_keys)
    signing_keys.save()