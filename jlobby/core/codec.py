"""
Codec — serialize and deserialize stored records to/from bytes using Pydantic v2.

Wire format (produced by model_dump_json), e.g. users/{uid}:
------------------------------------------------------------
{
  "created_at": "2024-01-01T00:00:00Z",
  "username": "testuser123",
  "email_address": "player@example.com"
}

Every keyspace stores exactly one model type, so decoding is told which
model to expect.
"""

from __future__ import annotations

from typing import TypeVar

from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)


def encode(record: BaseModel) -> bytes:
    """Serialize a record to UTF-8 JSON bytes."""
    return record.model_dump_json().encode("utf-8")


def decode(data: bytes, model: type[M]) -> M | None:
    """Deserialize UTF-8 JSON bytes to `model`. Empty bytes → None (absent key)."""
    if not data:
        return None
    return model.model_validate_json(data)
