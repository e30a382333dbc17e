"""
GET /catalog, GET /years, GET /metrics -- schema metadata endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from nest_mcp.schema.loader import SchemaModel, load_schema_model

router = APIRouter()


def _schema(request: Request) -> SchemaModel:
    return load_schema_model(request.app.state.settings.schema_layout)


class MetricItem(BaseModel):
    name: str
    type: str
    description: str


class ColumnItem(BaseModel):
    name: str
    type: str
    description: str


class NestedColumnItem(BaseModel):
    name: str
    description: str


class YearBandItem(BaseModel):
    years: str
    missing_metrics: list[str]
    type_overrides: dict[str, str]


class CatalogResponse(BaseModel):
    table: str
    layout: str
    years: list[int]
    columns: list[ColumnItem]
    nested_columns: list[NestedColumnItem]
    categories_column: str
    financials_column: str
    metrics: list[MetricItem]
    year_bands: list[YearBandItem]


@router.get("/years")
def list_years(request: Request) -> dict:
    """Return the fixed financial-year list."""
    return {"years": _schema(request).years()}


@router.get("/metrics")
def list_metrics(request: Request) -> dict:
    """Return the metric catalog names (identical for every year)."""
    return {"metrics": _schema(request).metric_names()}


@router.get("/catalog", response_model=CatalogResponse)
def full_catalog(request: Request) -> CatalogResponse:
    """Return the complete schema catalog for the configured layout."""
    return CatalogResponse(**_schema(request).catalog())
