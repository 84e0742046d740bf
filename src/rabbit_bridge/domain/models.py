"""Domain models for the rabbit bridge."""

from typing import Any

from pydantic import BaseModel, Field


class Message(BaseModel, frozen=True):
    """A message travelling between a stream and the broker."""

    body: bytes
    routing_key: str
    headers: dict[str, Any] = Field(default_factory=dict)
