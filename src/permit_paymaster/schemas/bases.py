"""
Base Schema Models

Foundation classes shared by every schema in the package.

Core Classes:
    - CanonicalModel: Pydantic base model shared by the operation schemas
    - to_hex_bytes / bytes_to_hex: normalisation of 0x-prefixed byte strings

Dependencies:
    - pydantic: For data validation and serialization
"""

from typing import Union

from eth_utils import to_bytes
from pydantic import BaseModel, ConfigDict


def to_hex_bytes(value: Union[bytes, bytearray, str]) -> bytes:
    """
    Normalise a 0x-prefixed hex string (or raw bytes) to bytes.

    Raises:
        ValueError: If ``value`` is a string that is not valid hex.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        if value in ("", "0x", "0X"):
            return b""
        try:
            return to_bytes(hexstr=value)
        except ValueError as e:
            raise ValueError(f"Invalid hex string: {value[:20]}...") from e
    raise ValueError(f"Expected bytes or hex string, got {type(value).__name__}")


def bytes_to_hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


class CanonicalModel(BaseModel):
    """Pydantic base model; fields may be populated by name or alias."""

    model_config = ConfigDict(populate_by_name=True)
