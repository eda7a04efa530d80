"""Errors raised by signing and verification."""

from __future__ import annotations


class NotationError(Exception):
    """Base class for the errors of this package; carries an optional message."""

    default_message = ""

    def __init__(self, msg: str = "") -> None:
        self.msg = msg
        super().__init__(str(self))

    def __str__(self) -> str:
        return self.msg or self.default_message

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.msg == other.msg

    def __hash__(self) -> int:
        return hash((type(self), self.msg))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(msg={self.msg!r})"


class PushSignatureFailedError(NotationError):
    """The signature could not be pushed to the target registry."""

    default_message = "failed to push signature to registry"

    def __str__(self) -> str:
        if self.msg:
            return "failed to push signature to registry with error: " + self.msg
        return self.default_message


class VerificationInconclusiveError(NotationError):
    """Verification could not finish because of a runtime error."""

    default_message = (
        "signature verification was inclusive due to an unexpected error"
    )


class NoApplicableTrustPolicyError(NotationError):
    """No trust policy applies to the given artifact."""

    default_message = "there is no applicable trust policy for the given artifact"


class SignatureRetrievalFailedError(NotationError):
    """The signatures of the artifact could not be retrieved."""

    default_message = "unable to retrieve the digital signature from the registry"


class VerificationFailedError(NotationError):
    """The signatures are not valid for the given artifact."""

    default_message = "signature verification failed"


class UserMetadataVerificationFailedError(NotationError):
    """The signature does not hold the metadata the user asked for."""

    default_message = "unable to find specified metadata in the signature"