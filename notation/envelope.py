"""Descriptors, signature payloads and signer information."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

MEDIA_TYPE_PAYLOAD_V1 = "application/vnd.cncf.notary.payload.v1+json"
ANNOTATION_X509_CHAIN_THUMBPRINT = "io.cncf.notary.x509chain.thumbprint#S256"


def _str_field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


@dataclass
class Descriptor:
    """Describes a piece of content addressed by its digest."""

    media_type: str = ""
    digest: str = ""
    size: int = 0
    urls: list[str] | None = None
    annotations: dict[str, str] | None = None
    data: bytes | None = None
    platform: dict[str, Any] | None = None
    artifact_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "mediaType": self.media_type,
            "digest": self.digest,
            "size": self.size,
        }
        if self.urls:
            body["urls"] = list(self.urls)
        if self.annotations:
            body["annotations"] = dict(self.annotations)
        if self.data:
            body["data"] = base64.b64encode(self.data).decode("ascii")
        if self.platform:
            body["platform"] = dict(self.platform)
        if self.artifact_type:
            body["artifactType"] = self.artifact_type
        return body

    @classmethod
    def from_dict(cls, data: Any) -> "Descriptor":
        if not isinstance(data, dict):
            raise ValueError("descriptor must be a JSON object")
        size = data.get("size", 0)
        if size is None:
            size = 0
        if not isinstance(size, int) or isinstance(size, bool):
            raise ValueError("field 'size' must be an integer")
        annotations = data.get("annotations")
        if annotations is not None and (
            not isinstance(annotations, dict)
            or not all(isinstance(v, str) for v in annotations.values())
        ):
            raise ValueError("field 'annotations' must be a map of strings")
        urls = data.get("urls")
        if urls is not None and not isinstance(urls, list):
            raise ValueError("field 'urls' must be a list")
        raw = data.get("data")
        content = base64.b64decode(raw, validate=True) if raw else None
        platform = data.get("platform")
        return cls(
            media_type=_str_field(data, "mediaType"),
            digest=_str_field(data, "digest"),
            size=size,
            urls=list(urls) if urls is not None else None,
            annotations=dict(annotations) if annotations is not None else None,
            data=content,
            platform=dict(platform) if isinstance(platform, dict) else None,
            artifact_type=_str_field(data, "artifactType"),
        )


@dataclass
class Payload:
    """The content that gets signed."""

    target_artifact: Descriptor = field(default_factory=Descriptor)

    @classmethod
    def from_json(cls, data: str | bytes) -> "Payload":
        body = json.loads(data)
        if not isinstance(body, dict):
            raise ValueError("payload must be a JSON object")
        target = body.get("targetArtifact")
        if target is None:
            return cls()
        return cls(Descriptor.from_dict(target))

    def to_json(self) -> str:
        return json.dumps(
            {"targetArtifact": self.target_artifact.to_dict()}, separators=(",", ":")
        )


@dataclass
class SignaturePayload:
    """The signed payload of an envelope and its content type."""

    content: bytes = b""
    content_type: str = ""


@dataclass
class SignedAttributes:
    """Attributes covered by the signature."""

    signing_scheme: str = ""
    signing_time: datetime | None = None
    expiry: datetime | None = None


@dataclass
class SignerInfo:
    """Information about the signer of an envelope."""

    signed_attributes: SignedAttributes = field(default_factory=SignedAttributes)
    certificate_chain: list[bytes] = field(default_factory=list)
    signature: bytes = b""
    signature_algorithm: int = 0


@dataclass
class EnvelopeContent:
    """The signer information and payload held by an envelope."""

    signer_info: SignerInfo = field(default_factory=SignerInfo)
    payload: SignaturePayload = field(default_factory=SignaturePayload)


def validate_payload_content_type(payload: SignaturePayload) -> None:
    """Raise ValueError unless the payload has the supported content type."""
    if payload.content_type != MEDIA_TYPE_PAYLOAD_V1:
        raise ValueError(
            f"payload content type {json.dumps(payload.content_type)} not supported"
        )


def sanitize_target_artifact(target_artifact: Descriptor) -> Descriptor:
    """Keep only the descriptor fields that belong in a signature payload."""
    annotations = target_artifact.annotations
    return Descriptor(
        media_type=target_artifact.media_type,
        digest=target_artifact.digest,
        size=target_artifact.size,
        annotations=dict(annotations) if annotations is not None else None,
    )


def signing_time(signer_info: SignerInfo | None) -> datetime:
    """Return the signing time of a signature in UTC."""
    if signer_info is None:
        raise ValueError("failed to generate annotations: signerInfo cannot be nil")
    moment = signer_info.signed_attributes.signing_time
    if moment is None:
        raise ValueError("signing time is missing")
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)