"""Pagination schemas."""

from pydantic import BaseModel, Field


class PageEnvelope(BaseModel):
    """Fields shared by every paginated list response."""

    total_count: int = Field(description="Total number of rows matching the filters")
    page_count: int = Field(description="Number of pages at the requested limit")
    current_page: int = Field(description="1-based page number returned")
    limit: int = Field(description="Maximum rows per page")
