"""
Content models for ingested documents.

Simplified models for stateless processing (no database dependencies).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Page(BaseModel):
    """One unit of ingested content. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="URL, filename or page identifier")
    text: str = Field("", description="Extracted plain text")
    title: Optional[str] = Field(None, description="Page title, when available")
    page_number: Optional[int] = Field(None, description="1-indexed page number for documents")


class Chunk(BaseModel):
    """Bounded slice of a page's text with its starting offset in that page."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Chunk text")
    start_offset: int = Field(..., ge=0, description="Offset of the first character in the page")
    index: int = Field(0, ge=0, description="Position among the page's chunks")

    @property
    def end_offset(self) -> int:
        return self.start_offset + len(self.text)
