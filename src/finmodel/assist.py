# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Tolerant parsing of text-generation output.

A text-generation service may propose a business model or classify an upload.
Its answer is treated as one more noisy input: these functions extract the
JSON object from the raw text (dropping Markdown code fences and any prose
around it), validate it with the lenient schemas of ``schemas.py`` and fall
back to an empty or "unknown" result when nothing usable is found. They never
raise on malformed text.
"""

import json
import logging
import re
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from .proposal import ModelProposal
from .schemas import ClassificationHint, DatasetClassification, ProposalSchema

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def extract_json_object(text: Optional[str]) -> Optional[dict[str, Any]]:
    """
    Return the first JSON object found in ``text``, or None.

    Code fences are removed first; if the remaining text is not a JSON
    object, the span from the first ``{`` to the last ``}`` is tried.
    """
    if not text:
        return None
    cleaned = _CODE_FENCE.sub("", str(text)).strip()

    candidates = [cleaned]
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if 0 <= start < end:
        candidates.append(cleaned[start : end + 1])

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def _parse(text: Optional[str], schema: type[BaseModel], what: str) -> Any:
    data = extract_json_object(text)
    if data is None:
        logger.warning("No JSON object in %s output; using fallback", what)
        return schema()
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        logger.warning("Invalid %s output (%d errors); using fallback", what, exc.error_count())
        return schema()


def parse_proposal_json(text: Optional[str]) -> ModelProposal:
    """
    Parse a proposed business model.

    Fields given as plain strings become string-typed fields, a missing
    business type becomes ``"Unknown Business"``, and a top-level ``notes``
    string is appended to ``meta["notes"]``. Malformed or missing JSON yields
    an empty proposal (no tables, no relationships).
    """
    schema: ProposalSchema = _parse(text, ProposalSchema, "proposal")
    return schema.to_proposal()


def parse_classification_hint(text: Optional[str]) -> ClassificationHint:
    """
    Parse an upload classification hint ``{fileType, mapping, confidence}``.

    Falls back to ``fileType="unknown"``, an empty mapping and confidence 0.
    """
    return _parse(text, ClassificationHint, "classification hint")


def parse_dataset_classification(text: Optional[str]) -> DatasetClassification:
    """
    Parse a dataset table guess ``{detectedTable, confidence, suggestedLinks, notes}``.

    Falls back to ``detectedTable="unknown"`` with confidence 0.
    """
    return _parse(text, DatasetClassification, "dataset classification")
