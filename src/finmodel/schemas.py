# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
pydantic schemas for data crossing the package boundary.

Two families live here:

- Lenient schemas for untrusted JSON produced by a text-generation service
  (model proposals, upload classification hints). They coerce what they can
  (a field given as a bare string becomes a string-typed field, a missing
  business type becomes "Unknown Business") and ignore unknown keys.
- Row schemas describing the records produced by normalization
  (StandardTransaction, Deal, BudgetRow). Normalization builds every output
  record through these models, so the persisted shapes are stated in one
  place.
"""

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .proposal import ModelProposal

UNKNOWN_BUSINESS = "Unknown Business"
DEFAULT_TABLE_NAME = "Table"
DEFAULT_FIELD_NAME = "field"
UNKNOWN_FILE_TYPE = "unknown"

_LENIENT = ConfigDict(extra="ignore", populate_by_name=True)


def _text_or(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _list_or_empty(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _unit_interval(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return min(max(number, 0.0), 1.0)


# ---------------------------------------------------------------------------
# Text-generation output
# ---------------------------------------------------------------------------


class FieldSchema(BaseModel):
    model_config = _LENIENT

    name: str = DEFAULT_FIELD_NAME
    type: str = "string"
    nullable: Optional[bool] = None
    primary_key: Optional[bool] = Field(default=None, alias="primaryKey")
    references: Optional[dict[str, Any]] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_plain_name(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        return {"name": data}

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> str:
        return _text_or(value, DEFAULT_FIELD_NAME)

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> str:
        return _text_or(value, "string")

    @field_validator("references", mode="before")
    @classmethod
    def _drop_bad_reference(cls, value: Any) -> Optional[dict[str, Any]]:
        return value if isinstance(value, dict) and value.get("table") else None


class TableSchema(BaseModel):
    model_config = _LENIENT

    name: str = DEFAULT_TABLE_NAME
    columns: list[FieldSchema] = Field(default_factory=list, alias="fields")
    file_mapping: Optional[dict[str, Any]] = Field(default=None, alias="fileMapping")

    @model_validator(mode="before")
    @classmethod
    def _coerce_plain_name(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        return {"name": data}

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> str:
        return _text_or(value, DEFAULT_TABLE_NAME)

    @field_validator("columns", mode="before")
    @classmethod
    def _fields_list(cls, value: Any) -> list[Any]:
        return _list_or_empty(value)

    @field_validator("file_mapping", mode="before")
    @classmethod
    def _mapping_dict(cls, value: Any) -> Optional[dict[str, Any]]:
        return value if isinstance(value, dict) else None


class RelationshipSchema(BaseModel):
    model_config = _LENIENT

    source: str = Field(default="", alias="from")
    target: str = Field(default="", alias="to")
    type: Optional[str] = None

    @field_validator("source", "target", mode="before")
    @classmethod
    def _endpoint_text(cls, value: Any) -> str:
        return _text_or(value, "")

    @field_validator("type", mode="before")
    @classmethod
    def _type_text(cls, value: Any) -> Optional[str]:
        return str(value) if value else None


class ProposalSchema(BaseModel):
    """
    Lenient schema of a proposal returned by a text-generation service.

    Anything that is not a list where a list is expected becomes an empty
    list; relationships that are not objects are discarded. A top-level
    ``notes`` string is carried into ``meta["notes"]``.
    """

    model_config = _LENIENT

    business_type: str = Field(default=UNKNOWN_BUSINESS, alias="businessType")
    recommended_tables: list[TableSchema] = Field(
        default_factory=list, alias="recommendedTables"
    )
    relationships: list[RelationshipSchema] = Field(default_factory=list)
    notes: Optional[str] = None
    meta: dict[str, Any] = Field(default_factory=dict)

    @field_validator("business_type", mode="before")
    @classmethod
    def _default_business(cls, value: Any) -> str:
        return _text_or(value, UNKNOWN_BUSINESS)

    @field_validator("recommended_tables", mode="before")
    @classmethod
    def _tables_list(cls, value: Any) -> list[Any]:
        return _list_or_empty(value)

    @field_validator("relationships", mode="before")
    @classmethod
    def _relationships_list(cls, value: Any) -> list[Any]:
        return [r for r in _list_or_empty(value) if isinstance(r, dict)]

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, list):
            return "\n".join(str(v) for v in value)
        return str(value)

    @field_validator("meta", mode="before")
    @classmethod
    def _meta_dict(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    def to_dict(self) -> dict[str, Any]:
        """Camel-case dictionary accepted by ``ModelProposal.from_dict``."""
        data = self.model_dump(by_alias=True, exclude_none=True, exclude={"notes", "meta"})
        meta = dict(self.meta)
        existing = meta.get("notes")
        notes = list(existing) if isinstance(existing, list) else []
        if isinstance(existing, str) and existing:
            notes.append(existing)
        if self.notes:
            notes.append(self.notes)
        meta["notes"] = notes
        data["meta"] = meta
        return data

    def to_proposal(self) -> ModelProposal:
        return ModelProposal.from_dict(self.to_dict())


class ClassificationHint(BaseModel):
    """File-type and column-mapping hint for an upload."""

    model_config = _LENIENT

    file_type: str = Field(default=UNKNOWN_FILE_TYPE, alias="fileType")
    mapping: dict[str, str] = Field(default_factory=dict)
    confidence: float = 0.0

    @field_validator("file_type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> str:
        return _text_or(value, UNKNOWN_FILE_TYPE)

    @field_validator("mapping", mode="before")
    @classmethod
    def _string_mapping(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {str(k): str(v) for k, v in value.items() if v is not None}

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return _unit_interval(value)


class DatasetClassification(BaseModel):
    """Table guess for an uploaded dataset, as stored in its source metadata."""

    model_config = _LENIENT

    detected_table: str = Field(default=UNKNOWN_FILE_TYPE, alias="detectedTable")
    confidence: float = 0.0
    suggested_links: list[Any] = Field(default_factory=list, alias="suggestedLinks")
    notes: str = ""

    @field_validator("detected_table", mode="before")
    @classmethod
    def _default_table(cls, value: Any) -> str:
        return _text_or(value, UNKNOWN_FILE_TYPE)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return _unit_interval(value)

    @field_validator("suggested_links", mode="before")
    @classmethod
    def _links_list(cls, value: Any) -> list[Any]:
        return _list_or_empty(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, value: Any) -> str:
        return "" if value is None else str(value)


# ---------------------------------------------------------------------------
# Normalized rows
# ---------------------------------------------------------------------------


class StandardTransaction(BaseModel):
    id: str
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    description: str = ""
    amount: float
    category: str = "Other"
    reference: str = ""


class Deal(BaseModel):
    deal_name: str
    client_name: str
    phase: str
    phase_raw: str = ""
    amount: float = 0.0
    closing_date: str = ""
    first_appointment: str = ""
    product: str = ""


class BudgetRow(BaseModel):
    month: str
    category: str
    value: float = 0.0
