# ballot_custody/encryption/signature_codec.py

import base64
import binascii
import re
from dataclasses import dataclass
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

# DSS signatures travel as DER SEQUENCE { INTEGER r, INTEGER s }.
# Persisted text forms are lowercase hex (default) or standard base64.

_HEX_RE = re.compile(r'^(?:[0-9a-fA-F]{2})+$')


class CodecError(Exception):
    """Raised when signature bytes or text cannot be decoded."""
    pass


def encode(r: int, s: int) -> bytes:
    if not isinstance(r, int) or not isinstance(s, int) or isinstance(r, bool) or isinstance(s, bool):
        raise CodecError("Signature components must be integers")
    if r < 0 or s < 0:
        raise CodecError("Signature components must be non-negative")
    return encode_dss_signature(r, s)


def decode(der: bytes) -> tuple:
    if not isinstance(der, (bytes, bytearray)) or not der:
        raise CodecError("Signature must be non-empty bytes")
    try:
        return decode_dss_signature(bytes(der))
    except ValueError as e:
        raise CodecError(f"Invalid DER signature: {e}")


def to_hex(blob: bytes) -> str:
    return bytes(blob).hex()


def from_hex(text: str) -> bytes:
    if not isinstance(text, str) or not _HEX_RE.match(text):
        raise CodecError("Invalid hex signature text")
    return bytes.fromhex(text)


def to_base64(blob: bytes) -> str:
    return base64.b64encode(bytes(blob)).decode()


def from_base64(text: str) -> bytes:
    try:
        blob = base64.b64decode(text, validate=True)
    except (TypeError, ValueError, binascii.Error) as e:
        raise CodecError(f"Invalid base64 signature text: {e}")
    if not blob:
        raise CodecError("Empty signature")
    return blob


def parse_text(text: str) -> bytes:
    """Decode signature text in either hex or base64 form.

    Hex wins when the text is valid as both; a DER signature starts with
    0x30, so its base64 form always starts with 'M' and never parses as hex.
    """
    if not isinstance(text, str) or not text.strip():
        raise CodecError("Signature text is empty")
    text = text.strip()
    if _HEX_RE.match(text):
        return bytes.fromhex(text)
    return from_base64(text)


def component_to_hex(value: int) -> str:
    if value < 0:
        raise CodecError("Signature components must be non-negative")
    return format(value, 'x')


def component_from_hex(text: str) -> int:
    try:
        value = int(text, 16)
    except (TypeError, ValueError):
        raise CodecError(f"Invalid hex signature component: {text!r}")
    if value < 0:
        raise CodecError("Signature components must be non-negative")
    return value


@dataclass(frozen=True)
class OpaqueSignature:
    """A signature kept as the scheme's own byte blob (DER for DSA)."""
    blob: bytes

    def to_der(self) -> bytes:
        return self.blob

    def components(self) -> tuple:
        return decode(self.blob)

    def to_text(self) -> str:
        return to_hex(self.blob)


@dataclass(frozen=True)
class ComponentSignature:
    """A DSA signature kept as its explicit (r, s) integers."""
    r: int
    s: int

    def to_der(self) -> bytes:
        return encode(self.r, self.s)

    def components(self) -> tuple:
        return (self.r, self.s)

    def to_text(self) -> str:
        return to_hex(self.to_der())


SIGNATURE_FORMATS = ('opaque', 'components')


def from_der(der: bytes, signature_format: str = 'opaque'):
    """Wrap scheme output in the configured signature variant."""
    if signature_format == 'opaque':
        # reject garbage up front so only well-formed blobs get persisted
        decode(der)
        return OpaqueSignature(bytes(der))
    if signature_format == 'components':
        r, s = decode(der)
        return ComponentSignature(r, s)
    raise ValueError(f"Unknown signature format: {signature_format}")


def same_signature(a, b) -> bool:
    """Compare two signature variants by their (r, s) values."""
    try:
        return a.components() == b.components()
    except CodecError:
        return a.to_der() == b.to_der()
