"""Shared helpers for descriptor encryption and reproducible demo data."""

from .crypto import FaceDataEncryption, InvalidToken
from .seeding import get_random_state

__all__ = [
    "FaceDataEncryption",
    "InvalidToken",
    "get_random_state",
]
