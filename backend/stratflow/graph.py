"""
Strategy Graph and Resolver
Recursive evaluation of logic/action nodes, memoized per (node, candle index)
"""
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from stratflow.conditions import LOGIC_HANDLERS
from stratflow.errors import ConfigurationError
from stratflow.indicators import IndicatorBank
from stratflow.models import ActionNode, Edge, IndicatorNode, StrategyNode

_NODE_LIST = TypeAdapter(List[StrategyNode])
_EDGE_LIST = TypeAdapter(List[Edge])


def parse_graph(nodes: Iterable[Any], edges: Iterable[Any]) -> Tuple[List[Any], List[Edge]]:
    """Validate raw node/edge payloads into typed models"""
    try:
        parsed_nodes = _NODE_LIST.validate_python(
            [n.model_dump() if hasattr(n, "model_dump") else n for n in nodes]
        )
        parsed_edges = _EDGE_LIST.validate_python(
            [e.model_dump() if hasattr(e, "model_dump") else e for e in edges]
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid strategy graph: {e}") from e
    return parsed_nodes, parsed_edges


class StrategyGraph:
    """Adjacency-list view of the strategy graph"""

    def __init__(self, nodes: Iterable[Any], edges: Iterable[Any]):
        node_list, self.edges = parse_graph(nodes, edges)
        self.nodes: Dict[str, Any] = {}
        for node in node_list:
            if node.id in self.nodes:
                raise ConfigurationError(f"Duplicate node id '{node.id}'")
            self.nodes[node.id] = node

        self._upstream: Dict[str, List[str]] = {node_id: [] for node_id in self.nodes}
        self._downstream: Dict[str, List[str]] = {node_id: [] for node_id in self.nodes}
        for edge in self.edges:
            for end in (edge.source, edge.target):
                if end not in self.nodes:
                    raise ConfigurationError(
                        f"Edge {edge.source} -> {edge.target} references unknown node '{end}'"
                    )
            self._upstream[edge.target].append(edge.source)
            self._downstream[edge.source].append(edge.target)

    def upstream(self, node_id: str) -> List[str]:
        return self._upstream.get(node_id, [])

    def downstream(self, node_id: str) -> List[str]:
        return self._downstream.get(node_id, [])

    def first_upstream(self, node_id: str, kind: str) -> Optional[str]:
        """First direct upstream node of the given kind"""
        for source in self.upstream(node_id):
            if self.nodes[source].kind == kind:
                return source
        return None

    def nodes_of_kind(self, kind: str) -> List[Any]:
        return [node for node in self.nodes.values() if node.kind == kind]

    def indicator_nodes(self) -> List[IndicatorNode]:
        return self.nodes_of_kind("Indicator")

    def action_nodes(self, action_type: Optional[str] = None) -> List[ActionNode]:
        actions = self.nodes_of_kind("Action")
        if action_type is None:
            return actions
        return [node for node in actions if node.config.actionType == action_type]

    def topological_order(self) -> List[str]:
        """Kahn ordering; raises ConfigurationError on a cycle"""
        in_degree = {node_id: len(sources) for node_id, sources in self._upstream.items()}
        queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
        order = []
        while queue:
            node_id = queue.popleft()
            order.append(node_id)
            for target in self._downstream[node_id]:
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    queue.append(target)
        if len(order) < len(self.nodes):
            stuck = sorted(node_id for node_id, degree in in_degree.items() if degree > 0)
            raise ConfigurationError(f"Strategy graph contains a cycle through: {', '.join(stuck)}")
        return order

    def validate(self) -> "StrategyGraph":
        """Reject graphs the simulation cannot act on"""
        self.topological_order()

        actions = self.action_nodes()
        if not actions:
            raise ConfigurationError("Strategy has no Action node")
        for action in actions:
            if len(self.upstream(action.id)) > 1:
                raise ConfigurationError(
                    f"Action node '{action.id}' must have exactly one upstream condition"
                )
        if not any(self.upstream(action.id) for action in actions):
            raise ConfigurationError("No Action node is connected to a condition")

        for node in self.nodes_of_kind("Logic"):
            if node.config.logicType != "Compare":
                continue
            indicators = [s for s in self.upstream(node.id) if self.nodes[s].kind == "Indicator"]
            if len(indicators) != 1:
                raise ConfigurationError(
                    f"Compare node '{node.id}' requires exactly one upstream Indicator node, "
                    f"got {len(indicators)}"
                )
        return self


class GraphResolver:
    """Evaluates node conditions for one simulation run"""

    def __init__(self, graph: StrategyGraph, indicator_bank: IndicatorBank):
        self.graph = graph
        self.indicator_bank = indicator_bank
        self._cache: Dict[Tuple[str, int], bool] = {}

    def evaluate(self, node_id: str, index: int) -> bool:
        key = (node_id, index)
        if key in self._cache:
            return self._cache[key]

        node = self.graph.nodes.get(node_id)
        result = False
        if node is None:
            result = False
        elif node.kind == "Logic":
            handler = LOGIC_HANDLERS.get(node.config.logicType)
            result = bool(handler(self, node, index)) if handler else False
        elif node.kind == "Action":
            upstream = self.graph.upstream(node_id)
            result = bool(upstream) and self.evaluate(upstream[0], index)

        self._cache[key] = result
        return result

    def action_fires(self, action_type: str, index: int) -> bool:
        """True when any Action node of this type fires at index"""
        return any(self.evaluate(node.id, index) for node in self.graph.action_nodes(action_type))

    def cache_info(self) -> int:
        return len(self._cache)
