"""
FilterRequest -- the typed, all-optional set of search constraints a caller
submits to the company search tool.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class FilterRequest(BaseModel):
    """Flat AND-of-conditions company search.

    Range invariants (low <= high, bounds inside the valid domain) are checked
    by the compiler so that violations surface as typed validation errors.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name_substring: str | None = Field(
        None, description="Case-insensitive partial match on the company name"
    )
    foundation_year_range: tuple[int, int] | None = Field(
        None, description="Inclusive [low, high] foundation year, within 1800-2024"
    )
    industry_categories: list[str] | None = Field(
        None, description="NACE industry codes; a company matches if it has any of them, e.g. ['62010', '62020']"
    )
    purpose_text: str | None = Field(
        None, description="Free-text query ranked against the company purpose"
    )
    revenue_range: tuple[float, float] | None = Field(
        None, description="Inclusive [low, high] revenue; matches if any year 2016-2024 falls inside"
    )
    employee_range: tuple[float, float] | None = Field(
        None, description="Inclusive [low, high] number of employees; matches if any year 2016-2024 falls inside"
    )
