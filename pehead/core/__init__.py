"""
Pehead Core
============

Data models, flag enumerations, errors and the file-level engine.
"""

from pehead.core.errors import (
    InvalidOffset,
    InvalidSignature,
    PeheadError,
    UnexpectedEndOfData,
)
from pehead.core.models import PeHeaders

__all__ = [
    "InvalidOffset",
    "InvalidSignature",
    "PeHeaders",
    "PeheadError",
    "UnexpectedEndOfData",
]
