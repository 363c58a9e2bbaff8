"""
Encrypted session persistence.

`EncryptedStore` seals opaque bytes with a passphrase; `SessionManager`
keeps one sealed snapshot per session id on disk.
"""

from .encryption import DecryptionAuthError, EncryptedStore, EncryptionError, MalformedBlobError
from .store import PersistenceError, SessionManager, SessionNotFoundError, SessionRecord, SessionSummary

__all__ = [
    "DecryptionAuthError",
    "EncryptedStore",
    "EncryptionError",
    "MalformedBlobError",
    "PersistenceError",
    "SessionManager",
    "SessionNotFoundError",
    "SessionRecord",
    "SessionSummary",
]
