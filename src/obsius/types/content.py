"""Prompt content blocks sent to the agent in session/prompt."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field, TypeAdapter

from obsius.types.common import AcpModel


class TextPromptContent(AcpModel):
    """Plain text block."""

    type: Literal["text"] = "text"
    text: str


class ImagePromptContent(AcpModel):
    """Base64 image block."""

    type: Literal["image"] = "image"
    data: str
    mime_type: str = Field(alias="mimeType")


class ResourceAnnotations(AcpModel):
    """Hints about who should see a resource and how much it matters."""

    audience: list[str] | None = None
    priority: float | None = None
    last_modified: str | None = Field(default=None, alias="lastModified")


class TextResource(AcpModel):
    """Text resource contents."""

    uri: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    text: str


class ResourcePromptContent(AcpModel):
    """Embedded resource block (requires the embeddedContext capability)."""

    type: Literal["resource"] = "resource"
    resource: TextResource
    annotations: ResourceAnnotations | None = None


PromptContent = Annotated[
    TextPromptContent | ImagePromptContent | ResourcePromptContent,
    Field(discriminator="type"),
]

prompt_content_adapter: TypeAdapter[list[PromptContent]] = TypeAdapter(list[PromptContent])
