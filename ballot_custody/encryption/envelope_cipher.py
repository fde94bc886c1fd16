# ballot_custody/encryption/envelope_cipher.py
"""Envelope encryption of voter private keys using AES-256-GCM.

Each voter's private key is encrypted under a single server-wide master key
before it is persisted. The stored form is a JSON object of hex strings:

    {"iv": "<nonce>", "tag": "<gcm tag>", "encrypted": "<ciphertext>"}

Key features:
- A fresh random 96-bit nonce per encryption (never reused for a key)
- The 128-bit GCM tag is verified before any plaintext is released
- Passphrase-based master keys go through PBKDF2 first

Exception hierarchy:
- EnvelopeError: Base class for all envelope failures
  - MalformedEnvelopeError: The stored envelope cannot be parsed
  - AuthenticationError: Tag verification failed (tampering or wrong key)

Usage:
    cipher = EnvelopeCipher(master_key=bytes.fromhex(os.environ['ENVELOPE_MASTER_KEY']))
    envelope = cipher.encrypt(private_key_pem.encode())
    stored = envelope.dumps()

    try:
        pem = cipher.decrypt(stored)
    except MalformedEnvelopeError:
        # Handle corrupted row
    except AuthenticationError:
        # Handle tampering or a rotated master key
"""

import os
import json
from dataclasses import dataclass
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

MASTER_KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16
KDF_ITERATIONS = 390000


class EnvelopeError(Exception):
    """Base exception for key envelope failures."""
    pass


class MalformedEnvelopeError(EnvelopeError):
    """Raised when a serialized envelope is not valid JSON of hex fields."""
    pass


class AuthenticationError(EnvelopeError):
    """Raised when the GCM tag does not verify (tampered data or wrong key)."""
    pass


@dataclass(frozen=True)
class Envelope:
    nonce: bytes
    tag: bytes
    ciphertext: bytes

    def to_dict(self) -> dict:
        return {
            'iv': self.nonce.hex(),
            'tag': self.tag.hex(),
            'encrypted': self.ciphertext.hex(),
        }

    def dumps(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def loads(cls, data: str) -> 'Envelope':
        try:
            package = json.loads(data)
        except (TypeError, ValueError) as e:
            raise MalformedEnvelopeError(f"Invalid envelope encoding: {e}")
        if not isinstance(package, dict):
            raise MalformedEnvelopeError("Envelope must be a JSON object")

        required_fields = ['iv', 'tag', 'encrypted']
        missing_fields = [f for f in required_fields if f not in package]
        if missing_fields:
            raise MalformedEnvelopeError(f"Missing required fields: {', '.join(missing_fields)}")

        try:
            nonce = bytes.fromhex(package['iv'])
            tag = bytes.fromhex(package['tag'])
            ciphertext = bytes.fromhex(package['encrypted'])
        except (TypeError, ValueError) as e:
            raise MalformedEnvelopeError(f"Envelope fields must be hex strings: {e}")

        # GCM accepts 64..1024 bit nonces; rows written by older nodes used 16 bytes
        if not 8 <= len(nonce) <= 128:
            raise MalformedEnvelopeError(f"Invalid nonce length: {len(nonce)}")
        if len(tag) != TAG_LENGTH:
            raise MalformedEnvelopeError(f"Invalid tag length: {len(tag)}")
        return cls(nonce=nonce, tag=tag, ciphertext=ciphertext)


def derive_master_key(passphrase: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    """Derive a 32-byte master key from a passphrase."""
    if not salt or len(salt) < 16:
        raise ValueError("KDF salt must be at least 16 bytes")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=MASTER_KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode())


class EnvelopeCipher:
    def __init__(self, master_key: bytes):
        if not isinstance(master_key, (bytes, bytearray)) or len(master_key) != MASTER_KEY_LENGTH:
            raise ValueError(f"Master key must be exactly {MASTER_KEY_LENGTH} bytes")
        self._master_key = bytes(master_key)

    def __repr__(self):
        return '<EnvelopeCipher aes-256-gcm>'

    def encrypt(self, plaintext: bytes) -> Envelope:
        """Encrypt plaintext under the master key with a fresh nonce."""
        if not isinstance(plaintext, (bytes, bytearray)):
            raise TypeError("Plaintext must be bytes")
        nonce = os.urandom(NONCE_LENGTH)
        encryptor = Cipher(algorithms.AES(self._master_key), modes.GCM(nonce)).encryptor()
        ciphertext = encryptor.update(bytes(plaintext)) + encryptor.finalize()
        return Envelope(nonce=nonce, tag=encryptor.tag, ciphertext=ciphertext)

    def decrypt(self, envelope) -> bytes:
        """Decrypt an Envelope or its serialized form."""
        if not isinstance(envelope, Envelope):
            envelope = Envelope.loads(envelope)

        decryptor = Cipher(
            algorithms.AES(self._master_key),
            modes.GCM(envelope.nonce, envelope.tag)
        ).decryptor()
        try:
            return decryptor.update(envelope.ciphertext) + decryptor.finalize()
        except InvalidTag:
            raise AuthenticationError("GCM authentication failed")


def encrypt(plaintext: bytes, master_key: bytes) -> Envelope:
    return EnvelopeCipher(master_key).encrypt(plaintext)


def decrypt(envelope, master_key: bytes) -> bytes:
    return EnvelopeCipher(master_key).decrypt(envelope)
