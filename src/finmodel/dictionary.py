# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Keyword dictionary for FinModel.

All the vocabulary used to recognise columns, languages, categories,
transaction families, business-entity archetypes and pipeline phases lives in
a TOML data file (``finmodel/data/keywords.toml``) instead of being inlined in
the detection and classification code. A different file can be supplied
through the ``[dictionary].path`` setting of the application configuration,
which makes new locales or verticals a data change rather than a code change.

Layout of the TOML file
-----------------------
Keyword sections map a taxonomy key to per-locale keyword lists:

    [fields.amount]
    en = ["amount", "value", "total"]
    de = ["betrag", "summe"]

Sections are read in file order and locales in the order given by the
top-level ``locales`` array (unknown locales are appended in file order).
The resulting keyword tuples are therefore deterministic, and the
"first match wins" rules of the detector and classifier follow the order of
the file.

Regular-expression sections (``[archetypes.*]`` and ``[budget]``) hold
patterns instead of plain keywords; they are compiled case-insensitively.
"""

import logging
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Optional

from .config import load_toml

logger = logging.getLogger(__name__)

DEFAULT_DICTIONARY_RESOURCE = "data/keywords.toml"

# Keyword group: ordered (key, keywords) pairs.
KeywordGroup = tuple[tuple[str, tuple[str, ...]], ...]


@dataclass(frozen=True)
class KeywordDictionary:
    """
    Parsed, immutable view of a keyword dictionary file.

    Attributes:
        version: Free-form version string of the dictionary file.
        locales: Locales in precedence order.
        fields: Column-role keywords (date, amount, description, category).
        language: Header words per locale, used for language detection.
        categories: Category-name vocabularies for multi-category layouts.
        classification: Transaction families per type, each an ordered
            KeywordGroup of (subtype, keywords).
        archetypes: Business-entity archetypes as (name, patterns), in
            precedence order.
        contracted_phases: Phase keywords counting towards contracted
            pipeline value.
        terminal_phases: Phase names that close a deal (won or lost).
        won_phases: Phase keywords of won deals.
        lost_phases: Phase keywords of lost or cancelled deals; checked
            before won_phases.
        phase_aliases: Lower-cased alias -> canonical phase name.
        budget_revenue_pattern: Regex recognising revenue-like budget rows.
        budget_expense_pattern: Regex recognising expense-like budget rows.
        deal_header_keywords: Header keywords identifying a deals export.
        budget_month_keywords: Month abbreviations identifying a budget sheet.
        deal_fields: Column keywords of CRM exports, in assignment order.
    """

    version: str
    locales: tuple[str, ...]
    fields: KeywordGroup
    language: KeywordGroup
    categories: KeywordGroup
    classification: tuple[tuple[str, KeywordGroup], ...]
    archetypes: tuple[tuple[str, tuple[str, ...]], ...]
    contracted_phases: tuple[str, ...]
    terminal_phases: tuple[str, ...]
    phase_aliases: tuple[tuple[str, str], ...]
    budget_revenue_pattern: str
    budget_expense_pattern: str
    deal_header_keywords: tuple[str, ...]
    budget_month_keywords: tuple[str, ...]
    deal_fields: KeywordGroup = ()
    won_phases: tuple[str, ...] = ()
    lost_phases: tuple[str, ...] = ()

    def field_keywords(self, field: str) -> tuple[str, ...]:
        """Return the keywords recognising a standard column role."""
        return dict(self.fields).get(field, ())

    def language_keywords(self, locale: str) -> tuple[str, ...]:
        """Return the header words characteristic of one locale."""
        return dict(self.language).get(locale, ())

    def all_category_keywords(self) -> tuple[str, ...]:
        """Flatten every category vocabulary, in dictionary order."""
        out: list[str] = []
        for _, keywords in self.categories:
            out.extend(keywords)
        return tuple(out)

    def families(self, tx_type: str) -> KeywordGroup:
        """Return the ordered (subtype, keywords) families of a type."""
        return dict(self.classification).get(tx_type, ())

    def archetype_patterns(self) -> tuple[tuple[str, tuple[re.Pattern[str], ...]], ...]:
        """Compile archetype patterns, keeping archetype order."""
        return _compile_archetypes(self.archetypes)

    def alias_for_phase(self, phase: str) -> Optional[str]:
        """Return the canonical phase for a lower-cased alias, if known."""
        return dict(self.phase_aliases).get(phase)


@lru_cache(maxsize=None)
def _compile_archetypes(
    archetypes: tuple[tuple[str, tuple[str, ...]], ...],
) -> tuple[tuple[str, tuple[re.Pattern[str], ...]], ...]:
    return tuple(
        (name, tuple(re.compile(p, re.IGNORECASE) for p in patterns))
        for name, patterns in archetypes
    )


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _keyword_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(v).strip().lower() for v in value if str(v).strip())


def _merge_locales(section: Mapping[str, Any], locales: tuple[str, ...]) -> tuple[str, ...]:
    """
    Merge the per-locale lists of one keyword section.

    Configured locales come first, in configured order; any other locale key
    found in the section is appended in file order. Duplicates keep their
    first position.
    """
    order = list(locales) + [k for k in section if k not in locales]
    merged: list[str] = []
    for locale in order:
        for word in _keyword_list(section.get(locale)):
            if word not in merged:
                merged.append(word)
    return tuple(merged)


def _keyword_group(section: Mapping[str, Any], locales: tuple[str, ...]) -> KeywordGroup:
    return tuple(
        (str(key), _merge_locales(_as_mapping(value), locales))
        for key, value in section.items()
        if isinstance(value, Mapping)
    )


def parse_dictionary(data: Mapping[str, Any]) -> KeywordDictionary:
    """
    Build a KeywordDictionary from parsed TOML data.

    Missing sections yield empty keyword groups; malformed entries are
    skipped. Nothing here raises for content problems.
    """
    locales_raw = data.get("locales")
    if isinstance(locales_raw, list) and locales_raw:
        locales = tuple(str(x) for x in locales_raw)
    else:
        locales = ("en", "de")

    language_section = _as_mapping(data.get("language"))
    language = tuple(
        (str(locale), _keyword_list(words)) for locale, words in language_section.items()
    )

    classification_section = _as_mapping(data.get("classification"))
    classification = tuple(
        (str(tx_type), _keyword_group(_as_mapping(families), locales))
        for tx_type, families in classification_section.items()
    )

    archetypes = tuple(
        (str(name), tuple(str(p) for p in _as_mapping(value).get("patterns", [])))
        for name, value in _as_mapping(data.get("archetypes")).items()
    )

    phases = _as_mapping(data.get("phases"))
    aliases = tuple(
        (str(alias).strip().lower(), str(canonical))
        for alias, canonical in _as_mapping(phases.get("aliases")).items()
    )

    budget = _as_mapping(data.get("budget"))
    file_types = _as_mapping(data.get("file_types"))

    return KeywordDictionary(
        version=str(data.get("version", "")),
        locales=locales,
        fields=_keyword_group(_as_mapping(data.get("fields")), locales),
        language=language,
        categories=_keyword_group(_as_mapping(data.get("categories")), locales),
        classification=classification,
        archetypes=archetypes,
        contracted_phases=_merge_locales(_as_mapping(phases.get("contracted")), locales),
        terminal_phases=_merge_locales(_as_mapping(phases.get("terminal")), locales),
        phase_aliases=aliases,
        budget_revenue_pattern=str(budget.get("revenue", "revenue")),
        budget_expense_pattern=str(budget.get("expense", "expense")),
        deal_header_keywords=_keyword_list(file_types.get("deals")),
        budget_month_keywords=_keyword_list(file_types.get("budget_months")),
        deal_fields=_keyword_group(_as_mapping(data.get("deal_fields")), locales),
        won_phases=_merge_locales(_as_mapping(phases.get("won")), locales),
        lost_phases=_merge_locales(_as_mapping(phases.get("lost")), locales),
    )


@lru_cache(maxsize=None)
def default_dictionary() -> KeywordDictionary:
    """Return the dictionary shipped with the package (cached)."""
    text = (
        resources.files("finmodel")
        .joinpath(DEFAULT_DICTIONARY_RESOURCE)
        .read_text(encoding="utf-8")
    )
    return parse_dictionary(tomllib.loads(text))


def load_dictionary(path: Optional[Path] = None) -> KeywordDictionary:
    """
    Load a keyword dictionary.

    Args:
        path: Optional path to a TOML dictionary file. When omitted the
            packaged dictionary is returned.

    Raises:
        FileNotFoundError: if ``path`` is given and does not exist.
        ValueError: if the file cannot be parsed as TOML.
    """
    if path is None:
        return default_dictionary()

    kd = parse_dictionary(load_toml(Path(path)))
    logger.info("Loaded keyword dictionary %s (version %s)", path, kd.version or "?")
    return kd
