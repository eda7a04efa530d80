"""Signing an artifact and verifying its signatures against a repository."""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Iterable, Protocol, runtime_checkable
from urllib.parse import urlsplit

from notation.envelope import (
    ANNOTATION_X509_CHAIN_THUMBPRINT,
    Descriptor,
    EnvelopeContent,
    Payload,
    SignerInfo,
    signing_time,
)
from notation.errors import (
    NotationError,
    PushSignatureFailedError,
    SignatureRetrievalFailedError,
    UserMetadataVerificationFailedError,
    VerificationFailedError,
)
from notation.log import get_logger

RESERVED_ANNOTATION_PREFIXES = ("io.cncf.notary",)
ANNOTATION_CREATED = "org.opencontainers.image.created"

_REPOSITORY_RE = re.compile(
    r"[a-z0-9]+(?:(?:[._]|__|[-]*)[a-z0-9]+)*"
    r"(?:/[a-z0-9]+(?:(?:[._]|__|[-]*)[a-z0-9]+)*)*"
)
_TAG_RE = re.compile(r"\w[\w.-]{0,127}", re.ASCII)
_DIGEST_RE = re.compile(r"[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+")
_DIGEST_LENGTHS = {"sha256": 64, "sha384": 96, "sha512": 128}
_HEX_RE = re.compile(r"[a-f0-9]+")


def _parse_digest(text: str) -> str:
    """Check that ``text`` is a well-formed digest and return it."""
    index = text.find(":")
    if index <= 0 or index + 1 == len(text):
        raise ValueError("invalid checksum digest format")
    algorithm, encoded = text[:index], text[index + 1 :]
    if algorithm not in _DIGEST_LENGTHS:
        if _DIGEST_RE.fullmatch(text) is None:
            raise ValueError("invalid checksum digest format")
        raise ValueError("unsupported digest algorithm")
    if len(encoded) != _DIGEST_LENGTHS[algorithm]:
        raise ValueError("invalid checksum digest length")
    if _HEX_RE.fullmatch(encoded) is None:
        raise ValueError("invalid checksum digest format")
    return text


@dataclass(frozen=True)
class _Reference:
    registry: str
    repository: str
    reference: str


def _parse_reference(artifact: str) -> _Reference:
    """Split a full artifact reference into registry, repository and tag or digest."""
    parts = artifact.split("/", 1)
    if len(parts) == 1:
        raise ValueError("invalid reference: missing repository")
    registry, path = parts
    is_tag = False
    reference = ""
    if "@" in path:
        repository, reference = path.split("@", 1)
        repository = repository.split(":", 1)[0]
    elif ":" in path:
        repository, reference = path.split(":", 1)
        is_tag = True
    else:
        repository = path

    try:
        host = urlsplit("dummy://" + registry).netloc
    except ValueError:
        host = ""
    if not registry or host != registry:
        raise ValueError("invalid reference: invalid registry")
    if _REPOSITORY_RE.fullmatch(repository) is None:
        raise ValueError("invalid reference: invalid repository")
    if reference:
        if is_tag:
            if _TAG_RE.fullmatch(reference) is None:
                raise ValueError("invalid reference: invalid tag")
        else:
            try:
                _parse_digest(reference)
            except ValueError as exc:
                raise ValueError(f"invalid reference: invalid digest; {exc}") from None
    return _Reference(registry, repository, reference)


def _is_digest(text: str) -> bool:
    try:
        _parse_digest(text)
    except ValueError:
        return False
    return True


@dataclass
class SignerSignOptions:
    """Parameters passed to a signer."""

    signature_media_type: str = ""
    expiry_duration: timedelta = timedelta(0)
    plugin_config: dict[str, str] | None = None
    signing_agent: str = ""


@dataclass
class SignOptions(SignerSignOptions):
    """Parameters of ``sign``."""

    artifact_reference: str = ""
    user_metadata: dict[str, str] | None = None

    def signer_options(self) -> SignerSignOptions:
        """Return the part of the options that goes to the signer."""
        return SignerSignOptions(
            signature_media_type=self.signature_media_type,
            expiry_duration=self.expiry_duration,
            plugin_config=self.plugin_config,
            signing_agent=self.signing_agent,
        )


class Signer(Protocol):
    """Signs the artifact a descriptor points to."""

    def sign(
        self, desc: Descriptor, options: SignerSignOptions
    ) -> tuple[bytes, SignerInfo]:
        """Return the signature envelope and information about its signer."""
        ...


@runtime_checkable
class _SignerAnnotation(Protocol):
    def plugin_annotations(self) -> dict[str, str]: ...


class Repository(Protocol):
    """Where artifacts and their signatures are stored."""

    def resolve(self, reference: str) -> Descriptor:
        """Return the descriptor a tag or digest points to."""
        ...

    def list_signatures(self, desc: Descriptor) -> Iterable[Descriptor]:
        """Yield the manifests of the signatures of an artifact, in order."""
        ...

    def fetch_signature_blob(self, desc: Descriptor) -> tuple[bytes, Descriptor]:
        """Return the signature envelope of a signature manifest and its descriptor."""
        ...

    def push_signature(
        self,
        media_type: str,
        blob: bytes,
        subject: Descriptor,
        annotations: dict[str, str],
    ) -> tuple[Descriptor, Descriptor]:
        """Store a signature of ``subject``; return the blob and manifest descriptors."""
        ...


@dataclass
class ValidationResult:
    """The result of one kind of verification and the action the policy asks for."""

    type: Any = None
    action: Any = None
    error: BaseException | None = None


@dataclass
class VerificationOutcome:
    """A signature, its content and the results of verifying it."""

    raw_signature: bytes = b""
    envelope_content: EnvelopeContent | None = None
    verification_level: Any = None
    verification_results: list[ValidationResult] = field(default_factory=list)
    error: BaseException | None = None

    def user_metadata(self) -> dict[str, str]:
        """Return the annotations of the signed target artifact."""
        if self.envelope_content is None:
            raise ValueError("unable to find envelope content for verification outcome")
        try:
            payload = Payload.from_json(self.envelope_content.payload.content)
        except ValueError:
            raise ValueError(
                "failed to unmarshal the payload content in the signature blob "
                "to envelope.Payload"
            ) from None
        return dict(payload.target_artifact.annotations or {})


@dataclass
class VerifierVerifyOptions:
    """Parameters passed to a verifier."""

    artifact_reference: str = ""
    signature_media_type: str = ""
    plugin_config: dict[str, str] | None = None
    user_metadata: dict[str, str] | None = None


class Verifier(Protocol):
    """Verifies one signature of an artifact."""

    def verify(
        self, desc: Descriptor, signature: bytes, options: VerifierVerifyOptions
    ) -> VerificationOutcome:
        """Return the outcome; a failed verification sets ``outcome.error``.

        Raising means no outcome could be produced at all.
        """
        ...


@runtime_checkable
class VerifySkipper(Protocol):
    """A verifier that can tell whether verification is to be skipped."""

    def skip_verify(self, options: VerifierVerifyOptions) -> tuple[bool, Any]:
        """Return whether to skip and the verification level in force."""
        ...


@dataclass
class VerifyOptions:
    """Parameters of ``verify``."""

    artifact_reference: str = ""
    plugin_config: dict[str, str] | None = None
    max_signature_attempts: int = 0
    user_metadata: dict[str, str] | None = None


def _add_user_metadata(
    desc: Descriptor, user_metadata: dict[str, str] | None
) -> Descriptor:
    logger = get_logger()
    annotations = dict(desc.annotations) if desc.annotations is not None else None
    if annotations is None and user_metadata:
        annotations = {}
    for key, value in (user_metadata or {}).items():
        logger.debug("Adding metadata %s=%s to annotations", key, value)
        for prefix in RESERVED_ANNOTATION_PREFIXES:
            if key.startswith(prefix):
                raise ValueError(
                    f"error adding user metadata: metadata key {key} "
                    f"has reserved prefix {prefix}"
                )
        if key in annotations:
            raise ValueError(
                f"error adding user metadata: metadata key {key} "
                "is already present in the target artifact"
            )
        annotations[key] = value
    return replace(desc, annotations=annotations)


def _generate_annotations(
    signer_info: SignerInfo | None, annotations: dict[str, str] | None
) -> dict[str, str]:
    if signer_info is None:
        raise ValueError("failed to generate annotations: signerInfo cannot be nil")
    thumbprints = [
        hashlib.sha256(cert).hexdigest() for cert in signer_info.certificate_chain
    ]
    result = dict(annotations or {})
    result[ANNOTATION_X509_CHAIN_THUMBPRINT] = json.dumps(
        thumbprints or None, separators=(",", ":")
    )
    moment = signing_time(signer_info)
    result[ANNOTATION_CREATED] = moment.strftime("%Y-%m-%dT%H:%M:%SZ")
    return result


def sign(signer: Signer, repo: Repository, options: SignOptions) -> Descriptor:
    """Sign an artifact, push the signature and return the signed descriptor."""
    if signer is None:
        raise ValueError("signer cannot be nil")
    if repo is None:
        raise ValueError("repo cannot be nil")
    if options.expiry_duration < timedelta(0):
        raise ValueError("expiry duration cannot be a negative value")
    if options.expiry_duration % timedelta(seconds=1):
        raise ValueError("expiry duration supports minimum granularity of seconds")

    logger = get_logger()
    artifact_ref = options.artifact_reference
    try:
        artifact_ref = _parse_reference(artifact_ref).reference
    except ValueError:
        pass
    try:
        target_desc = repo.resolve(artifact_ref)
    except Exception as exc:
        raise NotationError(f"failed to resolve reference: {exc}") from exc

    if artifact_ref != target_desc.digest:
        if _is_digest(artifact_ref):
            raise ValueError(
                f"user input digest {artifact_ref} does not match "
                f"the resolved digest {target_desc.digest}"
            )
        logger.warning(
            "Always sign the artifact using digest(`@sha256:...`) rather than a "
            "tag(`:%s`) because tags are mutable and a tag reference can point to "
            "a different artifact than the one signed",
            artifact_ref,
        )
        logger.info(
            "Resolved artifact tag `%s` to digest `%s` before signing",
            artifact_ref,
            target_desc.digest,
        )

    desc_to_sign = _add_user_metadata(target_desc, options.user_metadata)
    sig, signer_info = signer.sign(desc_to_sign, options.signer_options())

    plugin_annotations = None
    if isinstance(signer, _SignerAnnotation):
        plugin_annotations = signer.plugin_annotations()

    logger.debug("Generating annotation")
    annotations = _generate_annotations(signer_info, plugin_annotations)
    logger.debug("Generated annotations: %r", annotations)
    logger.debug(
        "Pushing signature of artifact descriptor: %r, signature media type: %s",
        target_desc,
        options.signature_media_type,
    )
    try:
        repo.push_signature(options.signature_media_type, sig, target_desc, annotations)
    except Exception as exc:
        logger.error("Failed to push the signature")
        raise PushSignatureFailedError(str(exc)) from exc
    return target_desc


def verify(
    verifier: Verifier, repo: Repository, options: VerifyOptions
) -> tuple[Descriptor, list[VerificationOutcome]]:
    """Verify the signatures of an artifact until one passes.

    Return the artifact descriptor and the successful outcome; when
    verification is skipped, an empty descriptor and an outcome holding only
    the verification level.
    """
    logger = get_logger()
    if verifier is None:
        raise ValueError("verifier cannot be nil")
    if repo is None:
        raise ValueError("repo cannot be nil")
    max_attempts = options.max_signature_attempts
    if max_attempts <= 0:
        raise SignatureRetrievalFailedError(
            f"max_signature_attempts expects a positive number, got {max_attempts}"
        )

    verifier_options = VerifierVerifyOptions(
        artifact_reference=options.artifact_reference,
        plugin_config=options.plugin_config,
        user_metadata=options.user_metadata,
    )

    if isinstance(verifier, VerifySkipper):
        logger.info("Checking whether signature verification should be skipped or not")
        skip, level = verifier.skip_verify(verifier_options)
        if skip:
            logger.info("Verification skipped for %s", options.artifact_reference)
            return Descriptor(), [VerificationOutcome(verification_level=level)]
        logger.info(
            "Check over. Trust policy is not configured to skip signature verification"
        )

    artifact_ref = options.artifact_reference
    try:
        ref = _parse_reference(artifact_ref)
    except ValueError as exc:
        raise SignatureRetrievalFailedError(str(exc)) from exc
    if not ref.reference:
        raise SignatureRetrievalFailedError("reference is missing digest or tag")
    try:
        artifact_desc = repo.resolve(ref.reference)
    except Exception as exc:
        raise SignatureRetrievalFailedError(str(exc)) from exc

    if not _is_digest(ref.reference):
        logger.info(
            "Resolved artifact tag `%s` to digest `%s` before verification",
            ref.reference,
            artifact_desc.digest,
        )
        logger.warning(
            "The resolved digest may not point to the same signed artifact, "
            "since tags are mutable"
        )
    elif ref.reference != artifact_desc.digest:
        raise SignatureRetrievalFailedError(
            f"user input digest {ref.reference} does not match "
            f"the resolved digest {artifact_desc.digest}"
        )

    processed = 0
    failure: BaseException = VerificationFailedError()

    logger.debug("Fetching signature manifests")
    for sig_manifest in repo.list_signatures(artifact_desc):
        processed += 1
        logger.info(
            "Processing signature with manifest mediaType: %s and digest: %s",
            sig_manifest.media_type,
            sig_manifest.digest,
        )
        try:
            sig_blob, sig_desc = repo.fetch_signature_blob(sig_manifest)
        except Exception as exc:
            raise SignatureRetrievalFailedError(
                f"unable to retrieve digital signature with digest "
                f"{json.dumps(sig_manifest.digest)} associated with "
                f"{json.dumps(artifact_ref)} from the Repository, error : {exc}"
            ) from exc

        outcome = verifier.verify(
            artifact_desc,
            sig_blob,
            replace(verifier_options, signature_media_type=sig_desc.media_type),
        )
        if outcome.error is not None:
            logger.warning(
                "Signature %s failed verification with error: %s",
                sig_manifest.digest,
                outcome.error,
            )
            if isinstance(outcome.error, UserMetadataVerificationFailedError):
                failure = outcome.error
            if processed >= max_attempts:
                raise VerificationFailedError(
                    "signature evaluation stopped. The configured limit of "
                    f"{max_attempts} signatures to verify per artifact exceeded"
                )
            continue

        logger.debug(
            "Signature verification succeeded for artifact %s with signature digest %s",
            artifact_desc.digest,
            sig_manifest.digest,
        )
        return artifact_desc, [outcome]

    if processed == 0:
        raise SignatureRetrievalFailedError(
            f"no signature is associated with {json.dumps(artifact_ref)}, "
            "make sure the artifact was signed successfully"
        )

    logger.debug(
        "Signature verification failed for all the signatures associated "
        "with artifact %s",
        artifact_desc.digest,
    )
    raise failure