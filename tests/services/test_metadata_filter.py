"""
Tests for metadata condition evaluation.

Tests cover:
1. Every comparison operator
2. Missing keys
3. and / or logic
"""

import pytest

from ragweave.models import Condition, ConditionLogic, Document, MetadataCondition
from ragweave.services.metadata_filter import evaluate_condition, filter_documents, matches


def cond(name, operator, value=None) -> Condition:
    return Condition(name=name, comparison_operator=operator, value=value)


@pytest.fixture
def documents() -> list[Document]:
    return [
        Document(id="doc_1", dataset_id="ds", name="a.txt", meta_fields={"author": "Alice", "year": 2021}),
        Document(id="doc_2", dataset_id="ds", name="b.txt", meta_fields={"author": "Bob", "year": "2023"}),
        Document(id="doc_3", dataset_id="ds", name="c.txt", meta_fields={"tags": ["ml", "nlp"]}),
    ]


@pytest.mark.unit
class TestOperators:
    """Tests for single comparisons."""

    @pytest.mark.parametrize(
        "operator, value, expected",
        [
            ("is", "alice", True),
            ("not is", "Alice", False),
            ("contains", "lic", True),
            ("not contains", "bob", True),
            ("in", "Bob, Alice", True),
            ("not in", ["Bob"], True),
            ("start with", "al", True),
            ("end with", "CE", True),
        ],
    )
    def test_text_operators(self, operator, value, expected):
        assert evaluate_condition({"author": "Alice"}, cond("author", operator, value)) is expected

    @pytest.mark.parametrize(
        "operator, value, expected",
        [(">", 2020, True), ("<", 2021, False), ("≥", "2021", True), ("<=", 2020.5, False)],
    )
    def test_numeric_operators(self, operator, value, expected):
        assert evaluate_condition({"year": 2021}, cond("year", operator, value)) is expected

    def test_numeric_on_text_is_false(self):
        assert evaluate_condition({"year": "recent"}, cond("year", ">", 2000)) is False

    def test_list_values(self):
        assert evaluate_condition({"tags": ["ml", "nlp"]}, cond("tags", "contains", "nlp"))
        assert evaluate_condition({"tags": ["ml", "nlp"]}, cond("tags", "is", "ML"))

    def test_empty_operators(self):
        assert evaluate_condition({"notes": ""}, cond("notes", "empty"))
        assert evaluate_condition({"notes": []}, cond("notes", "empty"))
        assert evaluate_condition({"notes": "x"}, cond("notes", "not empty"))

    def test_missing_key(self):
        """Test a missing key only satisfies empty and the negated operators."""
        assert evaluate_condition({}, cond("author", "empty"))
        assert evaluate_condition({}, cond("author", "not is", "Alice"))
        assert not evaluate_condition({}, cond("author", "is", "Alice"))
        assert not evaluate_condition({}, cond("author", "not empty"))
        assert not evaluate_condition({}, cond("year", ">", 1))


@pytest.mark.unit
class TestLogic:
    """Tests for combining conditions."""

    def test_and(self, documents):
        condition = MetadataCondition(
            logic=ConditionLogic.AND,
            conditions=[cond("author", "not empty"), cond("year", ">", 2022)],
        )
        assert [d.id for d in filter_documents(documents, condition)] == ["doc_2"]

    def test_or(self, documents):
        condition = MetadataCondition(
            logic=ConditionLogic.OR,
            conditions=[cond("author", "is", "Alice"), cond("tags", "contains", "ml")],
        )
        assert [d.id for d in filter_documents(documents, condition)] == ["doc_1", "doc_3"]

    def test_no_conditions_match_everything(self, documents):
        assert matches({}, MetadataCondition())
        assert len(filter_documents(documents, MetadataCondition())) == 3

    def test_no_filter(self, documents):
        assert filter_documents(documents, None) == documents
