"""Distinguished name parsing under the trust policy rules."""

from __future__ import annotations

WILDCARD = "*"
X509_SUBJECT = "x509.subject"

_MANDATORY_FIELDS = ("C", "ST", "O")
_SPECIAL = frozenset(b' "#+,;<=>\\')


def _parse_dn(text: str) -> list[list[tuple[str, str]]]:
    """Split an RFC 4514 string into RDNs of (type, value) pairs."""
    data = text.encode("utf-8")
    rdns: list[list[tuple[str, str]]] = []
    rdn: list[tuple[str, str]] = []
    buffer = bytearray()
    attr_type = ""
    escaping = False
    trailing_spaces = 0

    def take() -> str:
        nonlocal trailing_spaces
        end = len(buffer) - trailing_spaces
        value = bytes(buffer[:end]).decode("utf-8", errors="replace")
        buffer.clear()
        trailing_spaces = 0
        return value

    i = 0
    while i < len(data):
        char = data[i]
        if escaping:
            trailing_spaces = 0
            escaping = False
            if char in _SPECIAL:
                buffer.append(char)
            else:
                if i + 1 == len(data):
                    raise ValueError("got corrupted escaped character")
                try:
                    buffer += bytes.fromhex(data[i : i + 2].decode("ascii"))
                except ValueError as exc:
                    raise ValueError(
                        f"failed to decode escaped character: {exc}"
                    ) from None
                i += 1
        elif char == ord("\\"):
            trailing_spaces = 0
            escaping = True
        elif char == ord("=") and not attr_type:
            attr_type = take()
        elif char in (ord(","), ord("+"), ord(";")):
            if not attr_type:
                raise ValueError("incomplete type, value pair")
            rdn.append((attr_type, take()))
            attr_type = ""
            if char != ord("+"):
                rdns.append(rdn)
                rdn = []
        elif char == ord(" ") and not buffer:
            pass
        else:
            trailing_spaces = trailing_spaces + 1 if char == ord(" ") else 0
            buffer.append(char)
        i += 1

    if buffer:
        if not attr_type:
            raise ValueError("DN ended with incomplete type, value pair")
        rdn.append((attr_type, take()))
        rdns.append(rdn)
    return rdns


def parse_distinguished_name(name: str) -> dict[str, str]:
    """Parse a DN into its attributes, enforcing the trust policy rules."""
    if "=#" in name:
        raise ValueError(
            f"unsupported distinguished name (DN) {name!r}: notation does not "
            'support x509.subject identities containing "=#"'
        )
    try:
        rdns = _parse_dn(name)
    except ValueError as exc:
        raise ValueError(
            f"parsing distinguished name (DN) {name!r} failed with err: {exc}. "
            "A valid DN must contain 'C', 'ST', and 'O' RDN attributes at a "
            "minimum, and follow RFC 4514 standard"
        ) from None

    attributes: dict[str, str] = {}
    for rdn in rdns:
        if len(rdn) > 1:
            raise ValueError(
                f"distinguished name (DN) {name!r} has multi-valued RDN "
                "attributes, remove multi-valued RDN attributes as they are "
                "not supported"
            )
        for attr_type, value in rdn:
            if attributes.get(attr_type, ""):
                raise ValueError(
                    f"distinguished name (DN) {name!r} has duplicate RDN "
                    f"attribute for {attr_type!r}, DN can only have unique "
                    "RDN attributes"
                )
            attributes[attr_type] = value

    for field in _MANDATORY_FIELDS:
        if not attributes.get(field, ""):
            raise ValueError(
                f"distinguished name (DN) {name!r} has no mandatory RDN "
                f"attribute for {field!r}, it must contain 'C', 'ST', and 'O' "
                "RDN attributes at a minimum"
            )
    return attributes


def is_subset_dn(dn1: dict[str, str], dn2: dict[str, str]) -> bool:
    """Tell whether every attribute of ``dn1`` is matched in ``dn2``."""
    return all(dn2.get(key, "") == value for key, value in dn1.items())