from __future__ import annotations

import hashlib
import os
import struct

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


# Blob format, version 1:
#   magic (3) | version (1) | iterations (uint32 BE) | salt (16) | nonce (12) | tag (16) | ciphertext
MAGIC = b"FWS"
FORMAT_VERSION = 1
SALT_LENGTH = 16
NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
DEFAULT_ITERATIONS = 600_000
MIN_ITERATIONS = 1_000
MAX_ITERATIONS = 10_000_000

_HEADER = struct.Struct(">3sBI")
HEADER_LENGTH = _HEADER.size + SALT_LENGTH + NONCE_LENGTH + TAG_LENGTH


class EncryptionError(Exception):
    """Base error for session blob encryption."""


class MalformedBlobError(EncryptionError):
    """The blob is truncated, from an unknown format, or otherwise unparseable."""


class DecryptionAuthError(EncryptionError):
    """Authentication tag mismatch: wrong passphrase or tampered blob."""


def _derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


class EncryptedStore:
    """
    Passphrase-based authenticated encryption for serialized session state.

    - Key derivation: PBKDF2-HMAC-SHA256 with a fresh random salt per blob.
    - Cipher: AES-256-GCM with a fresh random nonce per blob.
    - The blob carries its own format version and iteration count, so older
      blobs stay decryptable when the defaults change.

    Knows nothing about what the plaintext contains.
    """

    def __init__(self, *, iterations: int = DEFAULT_ITERATIONS) -> None:
        if not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
            raise ValueError(f"iterations must be within [{MIN_ITERATIONS}, {MAX_ITERATIONS}]")
        self._iterations = iterations

    def encrypt(self, plaintext: bytes, passphrase: str) -> bytes:
        """Seal `plaintext` under a key derived from `passphrase`.

        The passphrase must be non-empty; an empty one raises ValueError.
        For any non-empty passphrase, decrypt(encrypt(p, pw), pw) == p.
        """
        if not passphrase:
            raise ValueError("passphrase is required")
        salt = os.urandom(SALT_LENGTH)
        nonce = os.urandom(NONCE_LENGTH)
        header = _HEADER.pack(MAGIC, FORMAT_VERSION, self._iterations)
        key = _derive_key(passphrase, salt, self._iterations)
        # The header is authenticated as associated data
        sealed = AESGCM(key).encrypt(nonce, plaintext, header)
        # AESGCM appends the tag; the blob stores it ahead of the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return header + salt + nonce + tag + ciphertext

    def decrypt(self, blob: bytes, passphrase: str) -> bytes:
        """Return the plaintext, or raise MalformedBlobError / DecryptionAuthError."""
        if len(blob) < HEADER_LENGTH:
            raise MalformedBlobError(f"Blob too short ({len(blob)} bytes)")
        magic, version, iterations = _HEADER.unpack_from(blob, 0)
        if magic != MAGIC:
            raise MalformedBlobError("Not a session blob (bad magic)")
        if version != FORMAT_VERSION:
            raise MalformedBlobError(f"Unsupported blob version {version}")
        if not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
            raise MalformedBlobError(f"Iteration count out of range: {iterations}")

        offset = _HEADER.size
        salt = blob[offset : offset + SALT_LENGTH]
        offset += SALT_LENGTH
        nonce = blob[offset : offset + NONCE_LENGTH]
        offset += NONCE_LENGTH
        tag = blob[offset : offset + TAG_LENGTH]
        ciphertext = blob[offset + TAG_LENGTH :]

        key = _derive_key(passphrase, salt, iterations)
        try:
            return AESGCM(key).decrypt(nonce, ciphertext + tag, blob[: _HEADER.size])
        except InvalidTag as ex:
            raise DecryptionAuthError(
                "Failed to decrypt session: wrong passphrase or the data was modified"
            ) from ex

    @staticmethod
    def hash(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()


__all__ = [
    "EncryptedStore",
    "EncryptionError",
    "MalformedBlobError",
    "DecryptionAuthError",
    "FORMAT_VERSION",
]
