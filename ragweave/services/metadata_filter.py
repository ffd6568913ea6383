"""
Metadata condition evaluation over document `meta_fields`.

Every ComparisonOperator has its own evaluator. A key missing from
`meta_fields` only satisfies `empty` and the negated operators.
"""

from collections.abc import Callable, Iterable
from typing import Any

from ragweave.models.document import Document
from ragweave.models.retrieval import (
    ComparisonOperator,
    Condition,
    ConditionLogic,
    MetadataCondition,
)
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

_MISSING = object()


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str:
    return str(value).strip().lower()


def _as_list(value: Any) -> list[Any]:
    """Operand of `in` / `not in`: a list, or a comma separated string."""
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if isinstance(value, str):
        return [part for part in (p.strip() for p in value.split(",")) if part]
    return [value]


def _values(actual: Any) -> list[Any]:
    return list(actual) if isinstance(actual, (list, tuple, set)) else [actual]


def _equals(actual: Any, expected: Any) -> bool:
    left, right = _as_float(actual), _as_float(expected)
    if left is not None and right is not None:
        return left == right
    return _as_text(actual) == _as_text(expected)


def _is(actual: Any, expected: Any) -> bool:
    return any(_equals(value, expected) for value in _values(actual))


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple, set)):
        return any(_equals(value, expected) for value in actual)
    return _as_text(expected) in _as_text(actual)


def _in(actual: Any, expected: Any) -> bool:
    candidates = _as_list(expected)
    return any(_equals(value, candidate) for value in _values(actual) for candidate in candidates)


def _start_with(actual: Any, expected: Any) -> bool:
    return _as_text(actual).startswith(_as_text(expected))


def _end_with(actual: Any, expected: Any) -> bool:
    return _as_text(actual).endswith(_as_text(expected))


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def evaluate(actual: Any, expected: Any) -> bool:
        left, right = _as_float(actual), _as_float(expected)
        if left is None or right is None:
            return False
        return compare(left, right)

    return evaluate


def _is_empty(actual: Any) -> bool:
    if actual is _MISSING or actual is None:
        return True
    if isinstance(actual, str):
        return not actual.strip()
    if isinstance(actual, (list, tuple, set, dict)):
        return not actual
    return False


_EVALUATORS: dict[ComparisonOperator, Callable[[Any, Any], bool]] = {
    ComparisonOperator.IS: _is,
    ComparisonOperator.NOT_IS: lambda a, e: not _is(a, e),
    ComparisonOperator.CONTAINS: _contains,
    ComparisonOperator.NOT_CONTAINS: lambda a, e: not _contains(a, e),
    ComparisonOperator.IN: _in,
    ComparisonOperator.NOT_IN: lambda a, e: not _in(a, e),
    ComparisonOperator.START_WITH: _start_with,
    ComparisonOperator.END_WITH: _end_with,
    ComparisonOperator.GT: _numeric(lambda a, e: a > e),
    ComparisonOperator.LT: _numeric(lambda a, e: a < e),
    ComparisonOperator.GE: _numeric(lambda a, e: a >= e),
    ComparisonOperator.LE: _numeric(lambda a, e: a <= e),
    ComparisonOperator.EMPTY: lambda a, e: _is_empty(a),
    ComparisonOperator.NOT_EMPTY: lambda a, e: not _is_empty(a),
}

_SATISFIED_WHEN_MISSING = {
    ComparisonOperator.EMPTY,
    ComparisonOperator.NOT_IS,
    ComparisonOperator.NOT_CONTAINS,
    ComparisonOperator.NOT_IN,
}


def evaluate_condition(meta_fields: dict[str, Any], condition: Condition) -> bool:
    """
    Evaluate one condition against a document's metadata.

    Args:
        meta_fields: Document metadata
        condition: Comparison to evaluate

    Returns:
        True if the metadata satisfies the condition
    """
    operator = ComparisonOperator(condition.comparison_operator)
    actual = meta_fields.get(condition.name, _MISSING)
    if actual is _MISSING:
        return operator in _SATISFIED_WHEN_MISSING
    return _EVALUATORS[operator](actual, condition.value)


def matches(meta_fields: dict[str, Any], metadata_condition: MetadataCondition) -> bool:
    """`and`: every condition holds; `or`: at least one does. No conditions match everything."""
    if not metadata_condition.conditions:
        return True
    results = (evaluate_condition(meta_fields, c) for c in metadata_condition.conditions)
    if metadata_condition.logic == ConditionLogic.OR:
        return any(results)
    return all(results)


def filter_documents(
    documents: Iterable[Document], metadata_condition: MetadataCondition | None
) -> list[Document]:
    """Documents whose `meta_fields` satisfy the condition."""
    documents = list(documents)
    if metadata_condition is None:
        return documents
    kept = [doc for doc in documents if matches(doc.meta_fields, metadata_condition)]
    logger.debug(
        f"Metadata filter kept {len(kept)}/{len(documents)} documents",
        extra={"logic": metadata_condition.logic.value},
    )
    return kept
