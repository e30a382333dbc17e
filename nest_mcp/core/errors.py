"""
Error taxonomy shared by the compiler, the executor and the transports.

Three kinds reach callers:
  1. Validation errors -- malformed or unsafe input, raised before the engine
     is contacted (``SearchValidationError`` and ``UnsafeQuery``)
  2. Engine execution errors -- the engine rejected or failed the query
  3. Connection errors -- the engine could not be opened or configured

Every error renders to a structured payload ``{"error": ..., "message": ...}``
via ``to_payload()``.
"""
from __future__ import annotations

from typing import Any


class CompanyQueryError(Exception):
    """Base class for every error surfaced to tool / API callers."""

    error_code = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        return {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.error_code, "message": self.message}
        payload.update(self.details())
        return payload


# ── Validation ───────────────────────────────────────────

class SearchValidationError(CompanyQueryError, ValueError):
    """A filter request was rejected before any engine contact."""

    error_code = "invalid_request"
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def details(self) -> dict[str, Any]:
        return {"field": self.field} if self.field else {}


class InvalidYearRange(SearchValidationError):
    error_code = "invalid_year_range"

    def __init__(self, field: str, low: int, high: int, reason: str):
        super().__init__(f"Invalid year range for '{field}' ({low}, {high}): {reason}", field)
        self.low = low
        self.high = high

    def details(self) -> dict[str, Any]:
        return {"field": self.field, "low": self.low, "high": self.high}


class InvalidNumericRange(SearchValidationError):
    error_code = "invalid_numeric_range"

    def __init__(self, field: str, low: float, high: float, reason: str):
        super().__init__(f"Invalid numeric range for '{field}' ({low}, {high}): {reason}", field)
        self.low = low
        self.high = high

    def details(self) -> dict[str, Any]:
        return {"field": self.field, "low": self.low, "high": self.high}


class UnsafeCharacterInInput(SearchValidationError):
    error_code = "unsafe_character_in_input"

    def __init__(self, field: str, value: str, marker: str):
        super().__init__(f"Field '{field}' contains a disallowed sequence: {marker!r}", field)
        self.value = value
        self.marker = marker

    def details(self) -> dict[str, Any]:
        return {"field": self.field, "value": self.value}


class MalformedRequest(SearchValidationError):
    """Arguments that do not fit the request model (wrong type, arity or field)."""

    def __init__(self, problems: list[dict[str, Any]]):
        self.problems = [
            {
                "field": ".".join(str(part) for part in problem.get("loc", ()) if part != "body"),
                "message": problem.get("msg", ""),
            }
            for problem in problems
        ]
        first = self.problems[0] if self.problems else {"field": "", "message": "malformed request"}
        super().__init__(f"Invalid value for '{first['field']}': {first['message']}", first["field"] or None)

    def details(self) -> dict[str, Any]:
        return {**super().details(), "problems": self.problems}


class EmptyFilterSet(SearchValidationError):
    error_code = "empty_filter_set"

    def __init__(self):
        super().__init__("At least one non-empty filter is required.")


class UnsafeQuery(CompanyQueryError, ValueError):
    """A caller-supplied raw SQL string failed the safety gate."""

    error_code = "unsafe_query"
    status_code = 400

    def __init__(self, violations: list[str]):
        super().__init__("Query rejected: " + " ".join(violations))
        self.violations = violations

    def details(self) -> dict[str, Any]:
        return {"violations": self.violations}


# ── Engine ───────────────────────────────────────────────

class EngineConnectionError(CompanyQueryError):
    error_code = "engine_connection_error"


class EngineExecutionError(CompanyQueryError):
    error_code = "engine_execution_error"
