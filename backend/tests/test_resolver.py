"""Report name resolution: exact, substring, token overlap and model suggestion."""

import asyncio

import pytest

from conftest import FakeCatalog, FakeLLM
from report_assistant.resolver import ReportNameResolver, clean_suggestion, match_tokens
from report_assistant.schemas import Report
from report_assistant.utils import token_overlap, tokenize


@pytest.fixture
def reports():
    return [
        Report(id="R2", name="Inventory Status"),
        Report(id="R3", name="RegionalSalesMonthly"),
        Report(id="R4", name="Customer Orders"),
    ]


def _resolve(reports, title, llm=None):
    resolver = ReportNameResolver(FakeCatalog(reports), llm)
    return asyncio.run(resolver.resolve(title))


class TestTokenize:
    def test_splits_separators_and_camel_case(self):
        assert tokenize("RegionalSalesMonthly") == ["regional", "sales", "monthly"]
        assert tokenize("Sales_by-Region, v2.final") == ["sales", "by", "region", "v2", "final"]

    def test_acronyms_stay_together(self):
        assert tokenize("HRReport") == ["hr", "report"]

    def test_overlap_is_relative_to_longer_name(self):
        assert token_overlap("Monthly Sales by Region", "RegionalSalesMonthly") == pytest.approx(0.5)
        assert token_overlap("Monthly Sales by Region", "Inventory Status") == 0.0


class TestExactAndSubstring:
    @pytest.mark.parametrize("title", ["RegionalSalesMonthly", "regionalsalesmonthly", "  RegionalSalesMonthly  "])
    def test_exact_match_is_case_and_whitespace_insensitive(self, reports, title):
        assert _resolve(reports, title).id == "R3"

    def test_substring_in_either_direction(self, reports):
        assert _resolve(reports, "Inventory").id == "R2"
        assert _resolve(reports, "Weekly Customer Orders report").id == "R4"

    def test_blank_title_or_empty_catalog(self, reports):
        assert _resolve(reports, "   ") is None
        assert _resolve([], "Sales") is None


class TestTokenMatching:
    def test_monthly_sales_by_region(self, reports):
        assert _resolve(reports, "Monthly Sales by Region").id == "R3"

    def test_ties_keep_catalog_order(self):
        tied = [Report(id="A", name="Sales North"), Report(id="B", name="Sales South")]
        assert match_tokens("Sales Summary", tied).id == "A"

    def test_no_overlap_without_model_is_none(self, reports):
        assert _resolve(reports, "Quarterly Payroll") is None


class TestModelSuggestion:
    def test_suggestion_is_matched_to_catalog(self, reports):
        llm = FakeLLM(suggestion='The best match is "Customer Orders".')
        assert _resolve(reports, "Purchase history", llm).id == "R4"
        assert llm.calls == ["suggest"]

    def test_no_match_reply(self, reports):
        llm = FakeLLM(suggestion="No match")
        assert _resolve(reports, "Purchase history", llm) is None

    def test_suggestion_without_overlap_is_rejected(self, reports):
        llm = FakeLLM(suggestion="Payroll Summary")
        assert _resolve(reports, "Purchase history", llm) is None

    def test_model_not_consulted_when_rules_match(self, reports):
        llm = FakeLLM(suggestion="Customer Orders")
        assert _resolve(reports, "Inventory Status", llm).id == "R2"
        assert llm.calls == []

    def test_clean_suggestion(self):
        assert clean_suggestion("Best match: `Sales`.") == "Sales"
        assert clean_suggestion("  'Inventory Status'  ") == "Inventory Status"
