"""
Loads, parses, and caches the company schema YAML into strongly-typed objects.

The schema model is the single source of truth for:
  - the table name and the roles of its columns (key, name, year, ...)
  - the fixed list of financial years (2016-2024) and their year bands
  - the 44-name metric catalog and its per-band drift
  - the physical layout (typed nested columns vs. flattened JSON text)

It is a static catalog: it never inspects the engine's declared types.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

from nest_mcp.core.config import get_settings

_SCHEMA_PATH = Path(__file__).resolve().parent / "company_schema.yml"

LAYOUTS = ("typed", "flattened")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class Column:
    name: str
    type: str
    description: str = ""


@dataclass(frozen=True)
class Metric:
    name: str
    type: str
    description: str = ""


@dataclass(frozen=True)
class YearBand:
    years: tuple[int, ...]
    missing_metrics: frozenset[str] = frozenset()
    type_overrides: dict[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        if len(self.years) == 1:
            return str(self.years[0])
        return f"{self.years[0]}-{self.years[-1]}"


@dataclass(frozen=True)
class ColumnRoles:
    key: str
    name: str
    foundation_year: str
    purpose: str
    categories: str
    financials: str


@dataclass(frozen=True)
class FullTextIndex:
    schema: str
    function: str
    fields: tuple[str, ...]

    @property
    def qualified_function(self) -> str:
        return f"{self.schema}.{self.function}"


@dataclass
class SchemaModel:
    """Fully parsed company schema for one physical layout."""

    version: int
    table: str
    description: str
    layout: str
    columns: ColumnRoles
    scalar_columns: list[Column]
    nested_columns: list[Column]
    metrics: dict[str, Metric]          # keyed by name, catalog order
    bands: list[YearBand]               # ascending
    range_metrics: dict[str, str]       # filter field -> metric name
    fulltext: FullTextIndex
    source_renames: dict[str, str] = field(default_factory=dict)

    # ── Year / metric catalog ────────────────────────

    def years(self) -> list[int]:
        """Every financial year label, ascending (2016 ... 2024)."""
        return [year for band in self.bands for year in band.years]

    def metric_names(self) -> list[str]:
        return list(self.metrics.keys())

    def band_for(self, year: int) -> YearBand | None:
        for band in self.bands:
            if year in band.years:
                return band
        return None

    def has_metric(self, year: int, metric: str) -> bool:
        band = self.band_for(year)
        if band is None or metric not in self.metrics:
            return False
        return metric not in band.missing_metrics

    def declared_type(self, year: int, metric: str) -> str | None:
        """Declared numeric type of *metric* in *year*, or None when absent."""
        if not self.has_metric(year, metric):
            return None
        band = self.band_for(year)
        return band.type_overrides.get(metric, self.metrics[metric].type)

    def range_metric(self, filter_field: str) -> str:
        return self.range_metrics[filter_field]

    def financial_structure(self) -> dict[str, dict[str, str]]:
        """Year label -> {metric: declared type}, in catalog order."""
        structure: dict[str, dict[str, str]] = {}
        for year in self.years():
            structure[str(year)] = {
                name: self.declared_type(year, name)
                for name in self.metrics
                if self.has_metric(year, name)
            }
        return structure

    # ── Presentation ─────────────────────────────────

    def catalog(self) -> dict[str, Any]:
        """Return the schema as a JSON-ready dict (for API responses)."""
        return {
            "table": self.table,
            "layout": self.layout,
            "years": self.years(),
            "columns": [
                {"name": c.name, "type": c.type, "description": c.description}
                for c in self.scalar_columns
            ],
            "nested_columns": [
                {"name": c.name, "description": c.description} for c in self.nested_columns
            ],
            "categories_column": self.columns.categories,
            "financials_column": self.columns.financials,
            "metrics": [
                {"name": m.name, "type": m.type, "description": m.description}
                for m in self.metrics.values()
            ],
            "year_bands": [
                {
                    "years": band.label,
                    "missing_metrics": sorted(band.missing_metrics),
                    "type_overrides": dict(band.type_overrides),
                }
                for band in self.bands
            ],
        }

    def describe(self) -> str:
        """Plain-text description of the table, written for tool callers."""
        cols = self.columns
        years = self.years()
        lines = [
            f"Table `{self.table}`: {self.description}",
            "",
            "Columns:",
        ]
        for c in self.scalar_columns:
            lines.append(f"  - {c.name} ({c.type}): {c.description}")
        for c in self.nested_columns:
            lines.append(f"  - {c.name} (STRUCT): {c.description}")

        if self.layout == "typed":
            lines.append(f"  - {cols.categories} (VARCHAR[]): NACE industry codes, e.g. list_contains({cols.categories}, '62010')")
            lines.append(
                f"  - {cols.financials} (STRUCT keyed by year '{years[0]}'..'{years[-1]}'): "
                f"access as {cols.financials}['2023']['revenue']"
            )
        else:
            lines.append(f"  - {cols.categories} (VARCHAR, JSON array): NACE industry codes, e.g. {cols.categories} LIKE '%62010%'")
            lines.append(
                f"  - {cols.financials} (VARCHAR, JSON object keyed by year '{years[0]}'..'{years[-1]}'): "
                f"access as TRY_CAST(json_extract_string({cols.financials}, '$.\"2023\".revenue') AS DOUBLE)"
            )

        lines.append("")
        lines.append("Metrics available for every year (null when not reported):")
        lines.append("  " + ", ".join(self.metric_names()))
        for band in self.bands:
            notes = []
            if band.missing_metrics:
                notes.append("missing " + ", ".join(sorted(band.missing_metrics)))
            for name, typ in sorted(band.type_overrides.items()):
                notes.append(f"{name} declared {typ}")
            if notes:
                lines.append(f"  {band.label}: " + "; ".join(notes))

        lines.append("")
        lines.append(
            f"Full-text search on {', '.join(self.fulltext.fields)}: "
            f"{self.fulltext.qualified_function}({cols.key}, 'query') returns a relevance score or NULL."
        )
        return "\n".join(lines)


# ── Parsing ──────────────────────────────────────────────

def _identifier(value: str, what: str) -> str:
    if not isinstance(value, str) or not _IDENTIFIER_RE.match(value):
        raise ValueError(f"Invalid identifier for {what}: {value!r}")
    return value


def _parse_column(raw: dict[str, Any]) -> Column:
    return Column(
        name=_identifier(raw["name"], "column"),
        type=raw.get("type", "STRUCT"),
        description=raw.get("description", ""),
    )


def _parse_metric(raw: dict[str, Any]) -> Metric:
    return Metric(
        name=_identifier(raw["name"], "metric"),
        type=raw.get("type", "BIGINT"),
        description=raw.get("description", ""),
    )


def _parse_band(raw: dict[str, Any]) -> YearBand:
    return YearBand(
        years=tuple(int(y) for y in raw["years"]),
        missing_metrics=frozenset(raw.get("missing_metrics") or []),
        type_overrides=dict(raw.get("type_overrides") or {}),
    )


def _parse_roles(raw: dict[str, Any]) -> ColumnRoles:
    return ColumnRoles(**{role: _identifier(col, f"{role} column") for role, col in raw.items()})


def _parse_fulltext(raw: dict[str, Any]) -> FullTextIndex:
    return FullTextIndex(
        schema=_identifier(raw["schema"], "full-text schema"),
        function=_identifier(raw["function"], "full-text function"),
        fields=tuple(_identifier(f, "full-text field") for f in raw.get("fields", [])),
    )


def _check_bands(bands: list[YearBand], metrics: dict[str, Metric], range_metrics: dict[str, str]) -> None:
    years = [y for band in bands for y in band.years]
    if not years:
        raise ValueError("Schema defines no financial years")
    expected = list(range(years[0], years[0] + len(years)))
    if years != expected:
        raise ValueError(f"Year bands must be contiguous and ascending, got {years}")

    for band in bands:
        unknown = (band.missing_metrics | set(band.type_overrides)) - set(metrics)
        if unknown:
            raise ValueError(f"Year band {band.label} references unknown metrics: {sorted(unknown)}")

    for filter_field, metric in range_metrics.items():
        if metric not in metrics:
            raise ValueError(f"Range filter '{filter_field}' uses unknown metric '{metric}'")
        for band in bands:
            if metric in band.missing_metrics:
                raise ValueError(f"Range metric '{metric}' is missing in {band.label}")


def _parse_model(raw_yaml: dict[str, Any], layout: str) -> SchemaModel:
    if layout not in raw_yaml.get("layouts", {}):
        raise ValueError(f"Unknown schema layout '{layout}'. Allowed: {', '.join(LAYOUTS)}")

    metrics = {m["name"]: _parse_metric(m) for m in raw_yaml.get("metrics", [])}
    bands = sorted((_parse_band(b) for b in raw_yaml.get("year_bands", [])), key=lambda b: b.years[0])
    range_metrics = dict(raw_yaml.get("range_metrics") or {})
    _check_bands(bands, metrics, range_metrics)

    return SchemaModel(
        version=raw_yaml.get("version", 1),
        table=_identifier(raw_yaml["table"], "table"),
        description=raw_yaml.get("description", ""),
        layout=layout,
        columns=_parse_roles(raw_yaml["columns"]),
        scalar_columns=[_parse_column(c) for c in raw_yaml.get("scalar_columns", [])],
        nested_columns=[_parse_column(c) for c in raw_yaml.get("nested_columns", [])],
        metrics=metrics,
        bands=bands,
        range_metrics=range_metrics,
        fulltext=_parse_fulltext(raw_yaml["fulltext"]),
        source_renames=dict((raw_yaml.get("source") or {}).get("renames") or {}),
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def _load_raw() -> dict[str, Any]:
    with open(_SCHEMA_PATH) as f:
        return yaml.safe_load(f)


@lru_cache
def _load_for_layout(layout: str) -> SchemaModel:
    return _parse_model(_load_raw(), layout)


def load_schema_model(layout: str | None = None) -> SchemaModel:
    """Load and cache the schema model for *layout* (defaults to settings)."""
    if layout is None:
        layout = get_settings().schema_layout
    return _load_for_layout(layout)
