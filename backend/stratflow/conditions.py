"""
Logic Node Handlers for the Graph Resolver
Each handler takes (resolver, node, index) and returns a bool.
"""
import math
from typing import Any, Callable, Dict, Optional

from stratflow import DEFAULT_INPUT_FIELD, SCALAR_INPUT_FIELD
from stratflow.models import LogicNode


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def select_field(value: Any, input_field: Optional[str]) -> Any:
    """Pick the compared value out of an indicator output.

    Multi-field records default to their primary field; scalar series only
    answer to no field or 'value'. Anything else yields None.
    """
    if isinstance(value, dict):
        if input_field in (None, SCALAR_INPUT_FIELD):
            input_field = DEFAULT_INPUT_FIELD
        return value.get(input_field)
    if input_field in (None, SCALAR_INPUT_FIELD):
        return value
    return None


# ---------------------------------------------------------------------------
# Compare
# ---------------------------------------------------------------------------

def compare(resolver, node: LogicNode, index: int) -> bool:
    config = node.config
    indicator_id = resolver.graph.first_upstream(node.id, "Indicator")
    if indicator_id is None:
        return False

    value = select_field(resolver.indicator_bank.value_at(indicator_id, index), config.inputField)
    if not _is_number(value):
        return False

    if config.operator == "GT":
        return value > config.threshold
    if config.operator == "LT":
        return value < config.threshold
    return False


# ---------------------------------------------------------------------------
# Boolean combinators
# ---------------------------------------------------------------------------

def logic_and(resolver, node: LogicNode, index: int) -> bool:
    upstream = resolver.graph.upstream(node.id)
    # Fewer than two inputs is not a conjunction
    if len(upstream) < 2:
        return False
    return all(resolver.evaluate(source, index) for source in upstream)


def logic_or(resolver, node: LogicNode, index: int) -> bool:
    upstream = resolver.graph.upstream(node.id)
    if not upstream:
        return False
    return any(resolver.evaluate(source, index) for source in upstream)


# ---------------------------------------------------------------------------
# LOGIC_HANDLERS dispatch dict
# ---------------------------------------------------------------------------

LOGIC_HANDLERS: Dict[str, Callable] = {
    'Compare': compare,
    'AND': logic_and,
    'OR': logic_or,
}
