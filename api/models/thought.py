"""Thought (short note) data models."""

import re

from pydantic import BaseModel, Field, field_validator

_URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)


class Thought(BaseModel):
    """One entry in the ``content/thoughts.json`` ledger."""

    id: str
    content: str
    timestamp: str  # ISO-8601
    image: str | None = None

    model_config = {"extra": "allow"}


class ThoughtInput(BaseModel):
    """Create payload for a thought."""

    content: str = Field(..., min_length=1, max_length=50_000)
    image: str | None = None

    @field_validator("image")
    @classmethod
    def validate_image(cls, value: str | None) -> str | None:
        """Empty string means "no image"; anything else must be an http(s) URL."""
        if value is None or value == "":
            return None
        if not _URL_RE.match(value):
            raise ValueError("Invalid image URL")
        return value


class ThoughtUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=50_000)
