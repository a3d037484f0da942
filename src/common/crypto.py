"""Fernet helpers for keeping face descriptors encrypted at rest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

BytesLike = Union[bytes, bytearray, memoryview]

DESCRIPTOR_DTYPE = np.float64


@dataclass(slots=True)
class _FernetCipher:
    """Lazily build a Fernet cipher from a Django setting or an explicit key."""

    setting_name: str
    key_override: BytesLike | str | None = None
    _cipher: Fernet | None = None

    def _resolve_key(self) -> bytes:
        key = self.key_override
        if key is None:
            key = getattr(settings, self.setting_name, None)
        if key is None:
            raise ImproperlyConfigured(f"{self.setting_name} is not configured.")

        key_bytes = key.encode() if isinstance(key, str) else bytes(key)
        try:
            Fernet(key_bytes)
        except (TypeError, ValueError) as exc:
            raise ImproperlyConfigured(f"{self.setting_name} is invalid.") from exc
        return key_bytes

    def cipher(self) -> Fernet:
        if self._cipher is None:
            self._cipher = Fernet(self._resolve_key())
        return self._cipher


class FaceDataEncryption:
    """Encrypt and decrypt face descriptors with ``FACE_DATA_ENCRYPTION_KEY``."""

    def __init__(self, key: BytesLike | str | None = None) -> None:
        self._cipher = _FernetCipher("FACE_DATA_ENCRYPTION_KEY", key_override=key)

    def encrypt(self, data: BytesLike) -> bytes:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError("encrypt expects a bytes-like object")
        return self._cipher.cipher().encrypt(bytes(data))

    def decrypt(self, token: BytesLike) -> bytes:
        if not isinstance(token, (bytes, bytearray, memoryview)):
            raise TypeError("decrypt expects a bytes-like object")
        return self._cipher.cipher().decrypt(bytes(token))

    def encrypt_descriptor(self, descriptor: Sequence[float] | np.ndarray) -> bytes:
        """Serialise a descriptor as float64 bytes and encrypt it."""

        vector = np.asarray(descriptor, dtype=DESCRIPTOR_DTYPE).ravel()
        return self.encrypt(vector.tobytes())

    def decrypt_descriptor(self, token: BytesLike) -> tuple[float, ...]:
        """Decrypt a stored descriptor back into a tuple of floats."""

        vector = np.frombuffer(self.decrypt(token), dtype=DESCRIPTOR_DTYPE)
        return tuple(float(value) for value in vector)


__all__ = ["BytesLike", "FaceDataEncryption", "InvalidToken"]
