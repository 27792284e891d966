"""Normalized in-memory projections of pages and themes consumed by the editor and exporters."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .schema import BlockVisibility, PageSeo


class _IRModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class BlockInstanceIR(_IRModel):
    instance_id: str
    block_id: str
    props: dict[str, Any] = Field(default_factory=dict)
    # Slot -> resolved content data, or None when the referenced record does not exist yet.
    content: dict[str, dict[str, Any] | None] = Field(default_factory=dict)
    styles: dict[str, Any] = Field(default_factory=dict)
    visibility: BlockVisibility = BlockVisibility.VISIBLE


class PageIR(_IRModel):
    page_id: str
    route: str
    seo: PageSeo
    blocks: list[BlockInstanceIR] = Field(default_factory=list)


class ThemeIR(_IRModel):
    tokens: dict[str, str | int]
