"""Key specs, hash and signing algorithms named by the plugin contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class KeyType(IntEnum):
    """The family of a signing key."""

    RSA = 1
    EC = 2


@dataclass(frozen=True)
class KeySpec:
    """A key type together with its size in bits."""

    type: KeyType | int = 0
    size: int = 0


class Algorithm(IntEnum):
    """A signing algorithm as used by signature envelopes."""

    PS256 = 1
    PS384 = 2
    PS512 = 3
    ES256 = 4
    ES384 = 5
    ES512 = 6


class KeySpecName(str, Enum):
    """The contract name of a key spec."""

    RSA_2048 = "RSA-2048"
    RSA_3072 = "RSA-3072"
    RSA_4096 = "RSA-4096"
    EC_256 = "EC-256"
    EC_384 = "EC-384"
    EC_521 = "EC-521"


class HashAlgorithm(str, Enum):
    """The contract name of a hash algorithm."""

    SHA256 = "SHA-256"
    SHA384 = "SHA-384"
    SHA512 = "SHA-512"


class SignatureAlgorithm(str, Enum):
    """The contract name of a signing algorithm."""

    ECDSA_SHA256 = "ECDSA-SHA-256"
    ECDSA_SHA384 = "ECDSA-SHA-384"
    ECDSA_SHA512 = "ECDSA-SHA-512"
    RSASSA_PSS_SHA256 = "RSASSA-PSS-SHA-256"
    RSASSA_PSS_SHA384 = "RSASSA-PSS-SHA-384"
    RSASSA_PSS_SHA512 = "RSASSA-PSS-SHA-512"


_KEY_SPECS: dict[KeySpecName, KeySpec] = {
    KeySpecName.RSA_2048: KeySpec(KeyType.RSA, 2048),
    KeySpecName.RSA_3072: KeySpec(KeyType.RSA, 3072),
    KeySpecName.RSA_4096: KeySpec(KeyType.RSA, 4096),
    KeySpecName.EC_256: KeySpec(KeyType.EC, 256),
    KeySpecName.EC_384: KeySpec(KeyType.EC, 384),
    KeySpecName.EC_521: KeySpec(KeyType.EC, 521),
}
_KEY_SPEC_NAMES = {spec: name for name, spec in _KEY_SPECS.items()}

_HASHES: dict[KeySpec, HashAlgorithm] = {
    KeySpec(KeyType.EC, 256): HashAlgorithm.SHA256,
    KeySpec(KeyType.EC, 384): HashAlgorithm.SHA384,
    KeySpec(KeyType.EC, 521): HashAlgorithm.SHA512,
    KeySpec(KeyType.RSA, 2048): HashAlgorithm.SHA256,
    KeySpec(KeyType.RSA, 3072): HashAlgorithm.SHA384,
    KeySpec(KeyType.RSA, 4096): HashAlgorithm.SHA512,
}

_SIGNING_ALGORITHMS: dict[Algorithm, SignatureAlgorithm] = {
    Algorithm.ES256: SignatureAlgorithm.ECDSA_SHA256,
    Algorithm.ES384: SignatureAlgorithm.ECDSA_SHA384,
    Algorithm.ES512: SignatureAlgorithm.ECDSA_SHA512,
    Algorithm.PS256: SignatureAlgorithm.RSASSA_PSS_SHA256,
    Algorithm.PS384: SignatureAlgorithm.RSASSA_PSS_SHA384,
    Algorithm.PS512: SignatureAlgorithm.RSASSA_PSS_SHA512,
}
_ALGORITHMS = {name: alg for alg, name in _SIGNING_ALGORITHMS.items()}


def _normalise(key_spec: KeySpec) -> KeySpec:
    try:
        key_type: KeyType | int = KeyType(key_spec.type)
    except ValueError:
        key_type = key_spec.type
    return KeySpec(key_type, key_spec.size)


def encode_key_spec(key_spec: KeySpec) -> KeySpecName:
    """Return the contract name of a key spec."""
    try:
        return _KEY_SPEC_NAMES[_normalise(key_spec)]
    except KeyError:
        raise ValueError(f"invalid KeySpec {key_spec!r}") from None


def decode_key_spec(name: KeySpecName | str) -> KeySpec:
    """Return the key spec behind a contract name."""
    try:
        return _KEY_SPECS[KeySpecName(name)]
    except ValueError:
        raise ValueError("unknown key spec") from None


def hash_algorithm_from_key_spec(key_spec: KeySpec) -> HashAlgorithm:
    """Return the hash algorithm the contract pairs with a key spec."""
    try:
        return _HASHES[_normalise(key_spec)]
    except KeyError:
        raise ValueError(f"invalid KeySpec {key_spec!r}") from None


def encode_signing_algorithm(alg: Algorithm | int) -> SignatureAlgorithm:
    """Return the contract name of a signing algorithm."""
    try:
        return _SIGNING_ALGORITHMS[Algorithm(alg)]
    except ValueError:
        raise ValueError(f"invalid algorithm {alg!r}") from None


def decode_signing_algorithm(raw: SignatureAlgorithm | str) -> Algorithm:
    """Return the signing algorithm behind a contract name."""
    try:
        return _ALGORITHMS[SignatureAlgorithm(raw)]
    except ValueError:
        raise ValueError("unknown signing algorithm") from None