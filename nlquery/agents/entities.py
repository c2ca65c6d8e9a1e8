"""
Entity Extractor

Rule-based extraction of business entities from a question: time periods,
dates, metrics, dimensions, proper nouns, multi-word noun phrases and
numeric values. Used by the router to weigh processing paths.

Each rule is an (pattern, category) tuple, grouped into three ordered
stages. Rules are evaluated independently against the whole question and
every non-overlapping match is kept once, in stage and rule order.

Usage:
    from nlquery.agents.entities import extract, extract_entities

    extract("last year revenue increased by 20%")
    # ['last year', 'revenue', 'last year revenue increased by', '20%']
"""

import re
from collections.abc import Iterable, Sequence
from typing import NamedTuple

from nlquery.models.query import EntityCategory, ExtractedEntity

STOP_WORDS = frozenset({"the", "and", "or", "of", "in", "on", "at", "by", "for", "with", "about"})


class EntityRule(NamedTuple):
    pattern: re.Pattern[str]
    category: EntityCategory
    min_words: int = 1


def _rule(
    regex: str,
    category: EntityCategory,
    flags: int = re.IGNORECASE,
    min_words: int = 1,
) -> EntityRule:
    return EntityRule(re.compile(regex, flags), category, min_words)


def _vocabulary(terms: Iterable[str]) -> str:
    return "|".join(terms)


_NUM = r"\d[\d,]*(?:\.\d+)?"

_METRIC_TERMS = (
    "conversion rate", "click-through rate", "revenue", "sales", "profit", "margin",
    "cost", "engagement", "retention", "churn", "roi", "cac", "ltv", "arpu", "ctr",
    "cpc", "cpa", "nps", "csat",
)

_DIMENSION_TERMS = (
    r"product(?: category)?", r"customer(?: segment)?", "region", "country", "state",
    "city", "channel", "department", "industry", "sector", "market", "segment",
    "demographic", "age group", "gender", "location",
)

# Stage 1: lexical entities
LEXICAL_RULES: tuple[EntityRule, ...] = (
    _rule(r"\b(?:last|next|this)\s+(?:year|month|quarter|week|day)\b", EntityCategory.TIME_PERIOD),
    _rule(r"\b\d+\s+(?:years?|months?|quarters?|weeks?|days?)\s+ago\b", EntityCategory.TIME_PERIOD),
    _rule(r"\b\d{4}-\d{2}-\d{2}\b", EntityCategory.DATE),
    _rule(r"\b\d{4}-\d{2}\b(?!-\d)", EntityCategory.MONTH),
    _rule(r"\b\d{4}\s?q[1-4]\b", EntityCategory.QUARTER),
    _rule(r"\b\d{4}\b", EntityCategory.YEAR),
    _rule(rf"\b(?:{_vocabulary(_METRIC_TERMS)})\b", EntityCategory.METRIC),
    _rule(rf"\b(?:{_vocabulary(_DIMENSION_TERMS)})s?\b", EntityCategory.DIMENSION),
    _rule(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)+\b", EntityCategory.NAMED_ENTITY, flags=0),
)

_NOUN_PHRASE_VOCABULARIES: tuple[tuple[tuple[str, ...], EntityCategory], ...] = (
    (("sales", "revenue", "profit", "cost", "margin", "conversion", "retention"), EntityCategory.METRIC),
    (("customer", "product", "service", "market", "channel"), EntityCategory.DIMENSION),
    (("performance", "growth", "decline", "increase", "decrease", "trend"), EntityCategory.METRIC),
    (("roi", "return on investment", "cash flow", "budget", "expense"), EntityCategory.METRIC),
    (("revenue", "profit", "margin", "cost", "price", "discount"), EntityCategory.METRIC),
    (("campaign", "lead", "conversion", "click", "impression", "engagement"), EntityCategory.METRIC),
    (("ctr", "cpc", "cpa", "cpm", "acquisition", "retention"), EntityCategory.METRIC),
    (("usage", "adoption", "feature", "performance", "quality", "rating"), EntityCategory.METRIC),
    (("satisfaction", "nps", "csat", "feedback", "complaint", "support"), EntityCategory.METRIC),
    (("churn", "retention", "loyalty", "lifetime value", "ltv"), EntityCategory.METRIC),
    (("daily", "weekly", "monthly", "quarterly", "yearly", "annual"), EntityCategory.TIME_PERIOD),
    (("trend", "growth", "decline", "change", "comparison"), EntityCategory.METRIC),
)

# Stage 2: up to two filler words around a core term, multi-word matches only
NOUN_PHRASE_RULES: tuple[EntityRule, ...] = tuple(
    _rule(
        rf"\b(?:\w+ ){{0,2}}(?:{_vocabulary(terms)})\b(?: \w+){{0,2}}",
        category,
        min_words=2,
    )
    for terms, category in _NOUN_PHRASE_VOCABULARIES
)

# Stage 3: numeric entities
NUMERIC_RULES: tuple[EntityRule, ...] = (
    _rule(rf"\d+(?:\.\d+)?\s*%", EntityCategory.PERCENTAGE),
    _rule(rf"[$€£]\s*{_NUM}", EntityCategory.CURRENCY),
    _rule(rf"\b{_NUM}\s*(?:dollars|euros|pounds)\b", EntityCategory.CURRENCY),
    _rule(rf"\bbetween\s+[$€£]?{_NUM}\s+and\s+[$€£]?{_NUM}", EntityCategory.RANGE),
    _rule(rf"\bfrom\s+[$€£]?{_NUM}\s+to\s+[$€£]?{_NUM}", EntityCategory.RANGE),
    _rule(rf"\b(?:greater|more|higher|larger)\s+than\s+[$€£]?{_NUM}", EntityCategory.COMPARISON),
    _rule(rf"\b(?:less|lower|smaller|fewer)\s+than\s+[$€£]?{_NUM}", EntityCategory.COMPARISON),
    _rule(r"(?<![\d.,])\d{3,}(?:\.\d+)?\b", EntityCategory.NUMBER),
)

DEFAULT_STAGES: tuple[tuple[EntityRule, ...], ...] = (LEXICAL_RULES, NOUN_PHRASE_RULES, NUMERIC_RULES)


def is_stop_phrase(value: str) -> bool:
    """True when every word of the value is a stop-word."""
    words = value.lower().split()
    return all(word in STOP_WORDS for word in words)


def apply_rule(rule: EntityRule, text: str) -> list[str]:
    """Matches of a single rule, trimmed, in order of appearance."""
    matches = []
    for match in rule.pattern.finditer(text):
        value = match.group(0).strip()
        if value and len(value.split()) >= rule.min_words:
            matches.append(value)
    return matches


class EntityExtractor:
    """
    Stateless extractor over an ordered sequence of rule stages.

    Custom stages can be supplied to test or extend rule tables in
    isolation; the default instance uses the lexical, noun-phrase and
    numeric stages above.
    """

    def __init__(self, stages: Sequence[Sequence[EntityRule]] = DEFAULT_STAGES):
        self.stages = tuple(tuple(stage) for stage in stages)

    def extract_entities(self, text: str) -> list[ExtractedEntity]:
        """Distinct entities with categories, in order of first discovery."""
        if not text:
            return []

        found: dict[str, EntityCategory] = {}
        for stage in self.stages:
            for rule in stage:
                for value in apply_rule(rule, text):
                    if value not in found:
                        found[value] = rule.category

        return [
            ExtractedEntity(value=value, category=category)
            for value, category in found.items()
            if not is_stop_phrase(value)
        ]

    def extract(self, text: str) -> list[str]:
        """Distinct entity strings, in order of first discovery."""
        return [entity.value for entity in self.extract_entities(text)]


_default_extractor = EntityExtractor()


def extract_entities(text: str) -> list[ExtractedEntity]:
    return _default_extractor.extract_entities(text)


def extract(text: str) -> list[str]:
    return _default_extractor.extract(text)
