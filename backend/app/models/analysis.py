"""
Pydantic models for the structured analysis result.

The model's JSON is not validated structurally beyond what these models
coerce: missing or null fields fall back to empty defaults so the workbook
builder never has to special-case them.
"""

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_NUMERIC_CLEAN_RE = re.compile(r"[^\d.\-]")


def coerce_amount(value: Any) -> float:
    """
    Convert a model-reported amount to a float.

    Accepts numbers and strings such as "$1,200.50" or "(300)". Anything that
    cannot be read as a number is treated as 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        s = value.strip()
        negative = s.startswith("(") and s.endswith(")")
        cleaned = _NUMERIC_CLEAN_RE.sub("", s)
        if not cleaned or cleaned in {"-", ".", "-."}:
            return 0.0
        try:
            amount = float(cleaned)
        except ValueError:
            return 0.0
        return -abs(amount) if negative else amount
    return 0.0


class SourceMapping(BaseModel):
    """A current-year amount and the file it was read from."""

    amount: float = 0.0
    source_file: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return coerce_amount(v)

    @field_validator("source_file", mode="before")
    @classmethod
    def _source_file(cls, v):
        return "" if v is None else str(v)


class PropertyRecord(BaseModel):
    """One rental property as reported by the model."""

    model_config = ConfigDict(extra="allow")

    address: str = ""
    income: dict[str, SourceMapping] = Field(default_factory=dict)
    income_prior: dict[str, float] = Field(default_factory=dict)
    expenses: dict[str, SourceMapping] = Field(default_factory=dict)
    expenses_prior: dict[str, float] = Field(default_factory=dict)
    source_files_read: list[str] = Field(default_factory=list)
    notes: str = ""

    @field_validator("address", "notes", mode="before")
    @classmethod
    def _text(cls, v):
        return "" if v is None else str(v)

    @field_validator("income", "expenses", mode="before")
    @classmethod
    def _current_year(cls, v):
        # A bare number carries no provenance
        if v is None:
            return {}
        if isinstance(v, dict):
            return {
                str(cat): entry if isinstance(entry, (dict, SourceMapping))
                else {"amount": entry, "source_file": ""}
                for cat, entry in v.items()
            }
        return v

    @field_validator("income_prior", "expenses_prior", mode="before")
    @classmethod
    def _prior_year(cls, v):
        if v is None:
            return {}
        if isinstance(v, dict):
            return {
                str(cat): coerce_amount(
                    amount.get("amount") if isinstance(amount, dict) else amount
                )
                for cat, amount in v.items()
            }
        return v

    @field_validator("source_files_read", mode="before")
    @classmethod
    def _files(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(f) for f in v if f is not None] if isinstance(v, list) else v


class AnalysisResult(BaseModel):
    """Reconciled analysis: the contract between reconciler and workbook builder."""

    model_config = ConfigDict(extra="allow")

    properties: list[PropertyRecord] = Field(default_factory=list)
    tax_year: Optional[int] = None
    all_files_detected: list[str] = Field(default_factory=list)
    email_draft: Optional[str] = None

    @field_validator("properties", "all_files_detected", mode="before")
    @classmethod
    def _null_list(cls, v):
        return [] if v is None else v

    @field_validator("email_draft", mode="before")
    @classmethod
    def _email_draft(cls, v):
        if isinstance(v, list):
            return "\n".join(str(line) for line in v if line is not None)
        return v if v is None else str(v)

    @field_validator("tax_year", mode="before")
    @classmethod
    def _tax_year(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, str):
            digits = re.search(r"\d{4}", v)
            return int(digits.group(0)) if digits else None
        return v
