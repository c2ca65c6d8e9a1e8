"""
Unit tests for the entity extractor.

Tests:
- Lexical, noun-phrase and numeric rule stages
- Stop-word filtering and empty input
- Determinism and ordering
- Rule tables in isolation
"""

import re

import pytest

from nlquery.agents.entities import (
    LEXICAL_RULES,
    NOUN_PHRASE_RULES,
    NUMERIC_RULES,
    EntityExtractor,
    EntityRule,
    apply_rule,
    extract,
    extract_entities,
    is_stop_phrase,
)
from nlquery.models.query import EntityCategory


def categories(text: str) -> dict[str, EntityCategory]:
    return {entity.value: entity.category for entity in extract_entities(text)}


class TestExtract:
    """Test extract() on representative questions."""

    def test_time_metric_and_percentage(self):
        found = categories("last year revenue increased by 20%")

        assert found["last year"] == EntityCategory.TIME_PERIOD
        assert found["revenue"] == EntityCategory.METRIC
        assert found["20%"] == EntityCategory.PERCENTAGE

    def test_quarter_metric_and_currency(self):
        found = categories("revenue in 2023Q2 was $1500")

        assert found["2023Q2"] == EntityCategory.QUARTER
        assert found["revenue"] == EntityCategory.METRIC
        currency = [v for v, c in found.items() if c == EntityCategory.CURRENCY]
        assert any("1500" in value for value in currency)

    def test_quarter_is_not_also_a_year(self):
        found = categories("revenue in 2023Q2")

        assert "2023" not in found

    def test_absolute_dates(self):
        found = categories("orders between 2024-01-15 and 2024-03")

        assert found["2024-01-15"] == EntityCategory.DATE
        assert found["2024-03"] == EntityCategory.MONTH

    def test_bare_year(self):
        assert categories("customers acquired in 2023")["2023"] == EntityCategory.YEAR

    def test_any_four_digit_year(self):
        assert categories("ledger entries from 1850")["1850"] == EntityCategory.YEAR

    def test_relative_period_ago(self):
        assert categories("churn 3 months ago")["3 months ago"] == EntityCategory.TIME_PERIOD

    def test_dimension_vocabulary(self):
        found = categories("sales by region and product category")

        assert found["region"] == EntityCategory.DIMENSION
        assert found["product category"] == EntityCategory.DIMENSION

    def test_named_entity_is_case_sensitive(self):
        found = categories("revenue from North America")

        assert found["North America"] == EntityCategory.NAMED_ENTITY
        assert "north america" not in categories("revenue from north america")

    def test_noun_phrases_need_more_than_one_word(self):
        found = categories("monthly churn")

        assert found["monthly churn"] in (EntityCategory.METRIC, EntityCategory.TIME_PERIOD)
        assert all(len(value.split()) >= 1 for value in found)

    def test_ranges_and_comparisons(self):
        found = categories("orders between 100 and 500 with amount greater than 50")

        assert found["between 100 and 500"] == EntityCategory.RANGE
        assert found["greater than 50"] == EntityCategory.COMPARISON

    def test_suffixed_currency(self):
        found = categories("deals worth 2,500 dollars")

        assert found["2,500 dollars"] == EntityCategory.CURRENCY

    def test_bare_numbers_need_three_digits(self):
        found = categories("top 10 accounts above 12345")

        assert "12345" in found
        assert "10" not in found


class TestEdgeCases:
    """Test empty, stop-word and repeated input."""

    @pytest.mark.parametrize("text", ["", "the and of", "...", "  ,  ;  ", "for the, by the"])
    def test_stop_words_and_punctuation_yield_nothing(self, text):
        assert extract(text) == []

    def test_idempotent(self):
        text = "Top 5 products by revenue in North America last quarter"

        assert extract(text) == extract(text)

    def test_distinct_values(self):
        values = extract("revenue revenue revenue")

        assert len(values) == len(set(values))
        assert "revenue" in values

    def test_values_keep_original_case(self):
        assert "Revenue" in extract("Revenue last month")

    def test_stage_order(self):
        values = extract("last year revenue increased by 20%")

        assert values.index("last year") < values.index("20%")
        assert values.index("revenue") < values.index("20%")


class TestRuleTables:
    """Test rule tables and helpers in isolation."""

    def test_rule_tables_are_data(self):
        for rule in (*LEXICAL_RULES, *NOUN_PHRASE_RULES, *NUMERIC_RULES):
            assert isinstance(rule, EntityRule)
            assert isinstance(rule.pattern, re.Pattern)
            assert isinstance(rule.category, EntityCategory)

    def test_noun_phrase_rules_require_two_words(self):
        assert all(rule.min_words == 2 for rule in NOUN_PHRASE_RULES)

    def test_apply_rule_trims_and_filters_by_word_count(self):
        rule = EntityRule(re.compile(r"\s*revenue\s*"), EntityCategory.METRIC, min_words=1)

        assert apply_rule(rule, "total revenue ") == ["revenue"]

    def test_is_stop_phrase(self):
        assert is_stop_phrase("of the")
        assert is_stop_phrase("The")
        assert not is_stop_phrase("the revenue")

    def test_custom_stages(self):
        rule = EntityRule(re.compile(r"\bwidgets?\b", re.IGNORECASE), EntityCategory.DIMENSION)
        extractor = EntityExtractor(stages=[[rule]])

        entities = extractor.extract_entities("How many Widgets were sold?")

        assert [(e.value, e.category) for e in entities] == [("Widgets", EntityCategory.DIMENSION)]

    def test_first_category_wins(self):
        first = EntityRule(re.compile(r"churn"), EntityCategory.METRIC)
        second = EntityRule(re.compile(r"churn"), EntityCategory.DIMENSION)
        extractor = EntityExtractor(stages=[[first], [second]])

        assert extractor.extract_entities("churn")[0].category == EntityCategory.METRIC
