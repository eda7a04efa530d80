"""Messages exchanged with signing and verification plugins."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar

PREFIX = "notation-"
CONTRACT_VERSION = "1.0"


class Command(str, Enum):
    """A command of the plugin contract."""

    GET_METADATA = "get-plugin-metadata"
    DESCRIBE_KEY = "describe-key"
    GENERATE_SIGNATURE = "generate-signature"
    GENERATE_ENVELOPE = "generate-envelope"
    VERIFY_SIGNATURE = "verify-signature"


class Capability(str, Enum):
    """A feature a plugin may offer."""

    SIGNATURE_GENERATOR = "SIGNATURE_GENERATOR.RAW"
    ENVELOPE_GENERATOR = "SIGNATURE_GENERATOR.ENVELOPE"
    TRUSTED_IDENTITY_VERIFIER = "SIGNATURE_VERIFIER.TRUSTED_IDENTITY"
    REVOCATION_CHECK_VERIFIER = "SIGNATURE_VERIFIER.REVOCATION_CHECK"


class ErrorCode(str, Enum):
    """The error codes a plugin may report."""

    VALIDATION = "VALIDATION_ERROR"
    UNSUPPORTED_CONTRACT_VERSION = "UNSUPPORTED_CONTRACT_VERSION"
    ACCESS_DENIED = "ACCESS_DENIED"
    TIMEOUT = "TIMEOUT"
    THROTTLED = "THROTTLED"
    GENERIC = "ERROR"


def _text(value: Any) -> str:
    """Return the plain string behind a string or a string enum member."""
    return str(value.value) if isinstance(value, Enum) else str(value)


def _as_code(code: Any) -> ErrorCode | str:
    text = _text(code)
    try:
        return ErrorCode(text)
    except ValueError:
        return text


class RequestError(Exception):
    """The error response of a plugin request."""

    def __init__(
        self,
        code: ErrorCode | str = "",
        err: BaseException | str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        if isinstance(err, str):
            err = Exception(err)
        self.code = _as_code(code)
        self.err = err
        self.metadata = metadata
        super().__init__(str(self))
        if err is not None:
            self.__cause__ = err

    def __str__(self) -> str:
        detail = "<nil>" if self.err is None else str(self.err)
        return f"{_text(self.code)}: {detail}"

    def __repr__(self) -> str:
        return (
            f"RequestError(code={_text(self.code)!r}, err={self.err!r}, "
            f"metadata={self.metadata!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RequestError):
            return NotImplemented
        if _text(self.code) != _text(other.code):
            return False
        if self.err is other.err:
            return True
        return (
            self.err is not None
            and other.err is not None
            and str(self.err) == str(other.err)
        )

    def __hash__(self) -> int:
        return hash(_text(self.code))

    def to_json(self) -> str:
        """Serialise the error in the contract's JSON form."""
        body: dict[str, Any] = {"errorCode": _text(self.code)}
        if self.err is not None and str(self.err):
            body["errorMessage"] = str(self.err)
        if self.metadata:
            body["errorMetadata"] = dict(self.metadata)
        return json.dumps(body, separators=(",", ":"))

    @classmethod
    def from_json(cls, data: str | bytes) -> "RequestError":
        """Parse an error from the contract's JSON form."""
        body = json.loads(data)
        if not isinstance(body, dict):
            raise ValueError("error response must be a JSON object")
        code = _get_str(body, "errorCode")
        message = _get_str(body, "errorMessage")
        metadata = _get_str_map(body, "errorMetadata")
        if not code and not message and metadata is None:
            raise ValueError("incomplete json")
        return cls(code, Exception(message) if message else None, metadata)


def _require_object(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def _get_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _get_bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r} must be a boolean")
    return value


def _decode_bytes(value: Any, key: str) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"field {key!r} is not valid base64: {exc}") from None


def _get_bytes(data: dict[str, Any], key: str) -> bytes:
    return _decode_bytes(data.get(key), key)


def _get_bytes_list(data: dict[str, Any], key: str) -> list[bytes]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key!r} must be a list")
    return [_decode_bytes(item, key) for item in value]


def _get_str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"field {key!r} must be a list of strings")
    return list(value)


def _get_str_map(data: dict[str, Any], key: str) -> dict[str, str] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict) or not all(
        isinstance(v, str) for v in value.values()
    ):
        raise ValueError(f"field {key!r} must be a map of strings")
    return dict(value)


def _encode_bytes(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _format_time(moment: datetime) -> str:
    """Format a time as RFC 3339 with trimmed fractional seconds."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += f".{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset()
    seconds = int(offset.total_seconds()) if offset is not None else 0
    if seconds == 0:
        return text + "Z"
    sign = "+" if seconds > 0 else "-"
    hours, minutes = divmod(abs(seconds) // 60, 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def _with_config(body: dict[str, Any], config: dict[str, str] | None) -> dict[str, Any]:
    if config:
        body["pluginConfig"] = dict(config)
    return body


@dataclass
class GetMetadataRequest:
    """Parameters of a get-plugin-metadata request."""

    command: ClassVar[Command] = Command.GET_METADATA

    plugin_config: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _with_config({}, self.plugin_config)


@dataclass
class GetMetadataResponse:
    """Metadata a plugin reports about itself."""

    name: str = ""
    description: str = ""
    version: str = ""
    url: str = ""
    supported_contract_versions: list[str] = field(default_factory=list)
    capabilities: list[str] = field(default_factory=list)

    def has_capability(self, capability: Capability | str) -> bool:
        """Tell whether the capability is supported; an empty one always is."""
        wanted = _text(capability)
        if not wanted:
            return True
        return any(_text(c) == wanted for c in self.capabilities)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "url": self.url,
            "supportedContractVersions": list(self.supported_contract_versions),
            "capabilities": [_text(c) for c in self.capabilities],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "GetMetadataResponse":
        data = _require_object(data)
        return cls(
            name=_get_str(data, "name"),
            description=_get_str(data, "description"),
            version=_get_str(data, "version"),
            url=_get_str(data, "url"),
            supported_contract_versions=_get_str_list(
                data, "supportedContractVersions"
            ),
            capabilities=_get_str_list(data, "capabilities"),
        )


@dataclass
class DescribeKeyRequest:
    """Parameters of a describe-key request."""

    command: ClassVar[Command] = Command.DESCRIBE_KEY

    contract_version: str = ""
    key_id: str = ""
    plugin_config: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        body = {"contractVersion": self.contract_version, "keyId": self.key_id}
        return _with_config(body, self.plugin_config)


@dataclass
class DescribeKeyResponse:
    """Response of a describe-key request."""

    key_id: str = ""
    key_spec: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"keyId": self.key_id, "keySpec": _text(self.key_spec)}

    @classmethod
    def from_dict(cls, data: Any) -> "DescribeKeyResponse":
        data = _require_object(data)
        return cls(key_id=_get_str(data, "keyId"), key_spec=_get_str(data, "keySpec"))


@dataclass
class GenerateSignatureRequest:
    """Parameters of a generate-signature request."""

    command: ClassVar[Command] = Command.GENERATE_SIGNATURE

    contract_version: str = ""
    key_id: str = ""
    key_spec: str = ""
    hash_algorithm: str = ""
    payload: bytes = b""
    plugin_config: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        body = {
            "contractVersion": self.contract_version,
            "keyId": self.key_id,
            "keySpec": _text(self.key_spec),
            "hashAlgorithm": _text(self.hash_algorithm),
            "payload": _encode_bytes(self.payload),
        }
        return _with_config(body, self.plugin_config)


@dataclass
class GenerateSignatureResponse:
    """Response of a generate-signature request."""

    key_id: str = ""
    signature: bytes = b""
    signing_algorithm: str = ""
    certificate_chain: list[bytes] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyId": self.key_id,
            "signature": _encode_bytes(self.signature),
            "signingAlgorithm": _text(self.signing_algorithm),
            "certificateChain": [_encode_bytes(c) for c in self.certificate_chain],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "GenerateSignatureResponse":
        data = _require_object(data)
        return cls(
            key_id=_get_str(data, "keyId"),
            signature=_get_bytes(data, "signature"),
            signing_algorithm=_get_str(data, "signingAlgorithm"),
            certificate_chain=_get_bytes_list(data, "certificateChain"),
        )


@dataclass
class GenerateEnvelopeRequest:
    """Parameters of a generate-envelope request."""

    command: ClassVar[Command] = Command.GENERATE_ENVELOPE

    contract_version: str = ""
    key_id: str = ""
    payload_type: str = ""
    signature_envelope_type: str = ""
    payload: bytes = b""
    expiry_duration_in_seconds: int = 0
    plugin_config: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "contractVersion": self.contract_version,
            "keyId": self.key_id,
            "payloadType": self.payload_type,
            "signatureEnvelopeType": self.signature_envelope_type,
            "payload": _encode_bytes(self.payload),
        }
        if self.expiry_duration_in_seconds:
            body["expiryDurationInSeconds"] = self.expiry_duration_in_seconds
        return _with_config(body, self.plugin_config)


@dataclass
class GenerateEnvelopeResponse:
    """Response of a generate-envelope request."""

    signature_envelope: bytes = b""
    signature_envelope_type: str = ""
    annotations: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "signatureEnvelope": _encode_bytes(self.signature_envelope),
            "signatureEnvelopeType": self.signature_envelope_type,
        }
        if self.annotations:
            body["annotations"] = dict(self.annotations)
        return body

    @classmethod
    def from_dict(cls, data: Any) -> "GenerateEnvelopeResponse":
        data = _require_object(data)
        return cls(
            signature_envelope=_get_bytes(data, "signatureEnvelope"),
            signature_envelope_type=_get_str(data, "signatureEnvelopeType"),
            annotations=_get_str_map(data, "annotations"),
        )


@dataclass
class CriticalAttributes:
    """Critical attributes of a signature envelope."""

    content_type: str = ""
    signing_scheme: str = ""
    expiry: datetime | None = None
    authentic_signing_time: datetime | None = None
    extended_attributes: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "contentType": self.content_type,
            "signingScheme": self.signing_scheme,
        }
        if self.expiry is not None:
            body["expiry"] = _format_time(self.expiry)
        if self.authentic_signing_time is not None:
            body["authenticSigningTime"] = _format_time(self.authentic_signing_time)
        if self.extended_attributes:
            body["extendedAttributes"] = dict(self.extended_attributes)
        return body


@dataclass
class Signature:
    """A signature as taken out of its envelope."""

    critical_attributes: CriticalAttributes = field(default_factory=CriticalAttributes)
    unprocessed_attributes: list[str] = field(default_factory=list)
    certificate_chain: list[bytes] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "criticalAttributes": self.critical_attributes.to_dict(),
            "unprocessedAttributes": list(self.unprocessed_attributes),
            "certificateChain": [_encode_bytes(c) for c in self.certificate_chain],
        }


@dataclass
class TrustPolicy:
    """The trusted identities and checks a plugin is asked to apply."""

    trusted_identities: list[str] = field(default_factory=list)
    signature_verification: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trustedIdentities": list(self.trusted_identities),
            "signatureVerification": [_text(c) for c in self.signature_verification],
        }


@dataclass
class VerifySignatureRequest:
    """Parameters of a verify-signature request."""

    command: ClassVar[Command] = Command.VERIFY_SIGNATURE

    contract_version: str = ""
    signature: Signature = field(default_factory=Signature)
    trust_policy: TrustPolicy = field(default_factory=TrustPolicy)
    plugin_config: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        body = {
            "contractVersion": self.contract_version,
            "signature": self.signature.to_dict(),
            "trustPolicy": self.trust_policy.to_dict(),
        }
        return _with_config(body, self.plugin_config)


@dataclass
class VerificationResult:
    """The outcome of one check performed by a plugin."""

    success: bool = False
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success}
        if self.reason:
            body["reason"] = self.reason
        return body

    @classmethod
    def _from_dict(cls, data: Any) -> "VerificationResult":
        data = _require_object(data)
        return cls(success=_get_bool(data, "success"), reason=_get_str(data, "reason"))


@dataclass
class VerifySignatureResponse:
    """Response of a verify-signature request."""

    verification_results: dict[str, VerificationResult | None] = field(
        default_factory=dict
    )
    processed_attributes: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "verificationResults": {
                _text(key): None if result is None else result.to_dict()
                for key, result in self.verification_results.items()
            },
            "processedAttributes": list(self.processed_attributes),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "VerifySignatureResponse":
        data = _require_object(data)
        raw_results = data.get("verificationResults")
        if raw_results is None:
            raw_results = {}
        if not isinstance(raw_results, dict):
            raise ValueError("field 'verificationResults' must be an object")
        results = {
            key: None if value is None else VerificationResult._from_dict(value)
            for key, value in raw_results.items()
        }
        processed = data.get("processedAttributes")
        if processed is None:
            processed = []
        if not isinstance(processed, list):
            raise ValueError("field 'processedAttributes' must be a list")
        return cls(verification_results=results, processed_attributes=list(processed))