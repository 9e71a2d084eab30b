"""About page data models."""

from pydantic import BaseModel, Field


class AboutPage(BaseModel):
    content: str


class AboutPageInput(BaseModel):
    content: str = Field(default="", max_length=50_000)
