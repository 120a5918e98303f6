"""
Causal graph linking micro actions to intermediate and macro outcomes.

Append-only within a match; cleared between matches.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from stratyx.core.constants import NodeTier


@dataclass(frozen=True)
class CausalNode:
    node_id: str
    tier: NodeTier
    description: str
    timestamp: datetime
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.node_id,
            "tier": self.tier.value,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class CausalEdge:
    from_id: str
    to_id: str
    weight: float
    evidence: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromId": self.from_id,
            "toId": self.to_id,
            "weight": self.weight,
            "evidence": list(self.evidence),
        }


class CausalGraph:
    """Directed micro -> intermediate -> macro graph with evidence-tagged edges."""

    def __init__(self) -> None:
        self._nodes: list[CausalNode] = []
        self._edges: list[CausalEdge] = []
        self._index: dict[str, CausalNode] = {}

    def add_node(
        self, tier: NodeTier, description: str, timestamp: datetime, confidence: float
    ) -> CausalNode:
        node = CausalNode(
            node_id=f"{tier.value}_{len(self._nodes)}",
            tier=tier,
            description=description,
            timestamp=timestamp,
            confidence=confidence,
        )
        self._nodes.append(node)
        self._index[node.node_id] = node
        return node

    def add_edge(
        self, source: CausalNode, target: CausalNode, weight: float, evidence: list[str] | tuple[str, ...] = ()
    ) -> CausalEdge:
        if source.node_id not in self._index or target.node_id not in self._index:
            raise KeyError("Both endpoints must be added to the graph before linking them")
        edge = CausalEdge(from_id=source.node_id, to_id=target.node_id, weight=weight, evidence=tuple(evidence))
        self._edges.append(edge)
        return edge

    @property
    def nodes(self) -> list[CausalNode]:
        return list(self._nodes)

    @property
    def edges(self) -> list[CausalEdge]:
        return list(self._edges)

    def get_node(self, node_id: str) -> CausalNode | None:
        return self._index.get(node_id)

    def nodes_by_tier(self, tier: NodeTier) -> list[CausalNode]:
        return [n for n in self._nodes if n.tier == tier]

    def downstream(self, node_id: str) -> list[CausalNode]:
        """Nodes directly caused by ``node_id``."""
        return [self._index[e.to_id] for e in self._edges if e.from_id == node_id]

    def clear(self) -> None:
        self._nodes.clear()
        self._edges.clear()
        self._index.clear()

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self._nodes],
            "edges": [e.to_dict() for e in self._edges],
        }
