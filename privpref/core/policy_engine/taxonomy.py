from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .policy_exceptions import InvalidTaxonomy, PolicyConfigurationError


@dataclass(frozen=True)
class PolicyNode:
    """
    One category of a hierarchical taxonomy, encoded as a nested-set interval.

    Invariants
    - a node's [left, right] interval contains the interval of every descendant
    - siblings have disjoint intervals
    - name is a display label only and never takes part in evaluation
    """

    id: str
    name: str
    left: int
    right: int

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise TypeError("PolicyNode.id must be a non-empty string")
        if not isinstance(self.name, str):
            raise TypeError("PolicyNode.name must be a string")
        for bound in (self.left, self.right):
            if isinstance(bound, bool) or not isinstance(bound, int):
                raise TypeError("PolicyNode bounds must be integers")


def is_descendant_or_self(ancestor: PolicyNode, node: PolicyNode) -> bool:
    """Return True if node lies at or below ancestor in the hierarchy."""

    return ancestor.left <= node.left and ancestor.right >= node.right


@dataclass(frozen=True)
class Taxonomy:
    """Immutable snapshot of one taxonomy tree, indexed by node id.

    The id index turns the reference-id -> node resolution into a dict lookup,
    so rule checks cost O(app nodes x reference ids) instead of also scanning
    every taxonomy node.
    """

    nodes: Tuple[PolicyNode, ...] = ()
    _index: Mapping[str, PolicyNode] = field(
        default_factory=lambda: MappingProxyType({}), repr=False, compare=False
    )

    def __post_init__(self) -> None:
        nodes = tuple(self.nodes)
        index: Dict[str, PolicyNode] = {}
        for node in nodes:
            if not isinstance(node, PolicyNode):
                raise TypeError("Taxonomy nodes must be PolicyNode instances")
            if node.id in index:
                raise PolicyConfigurationError(f"duplicate taxonomy node id: {node.id}")
            index[node.id] = node

        object.__setattr__(self, "nodes", nodes)
        object.__setattr__(self, "_index", MappingProxyType(index))

    def get(self, node_id: str) -> Optional[PolicyNode]:
        return self._index.get(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._index

    def __iter__(self):
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)


def validate_taxonomy(taxonomy: Taxonomy) -> None:
    """Check the nested-set invariant over every node of one tree.

    Raises InvalidTaxonomy if a node has left >= right, if two nodes share an
    interval endpoint, or if two intervals overlap without one containing the
    other.

    Time:  O(n log n)
    Space: O(n)
    """

    seen_endpoints: Dict[int, str] = {}
    for node in taxonomy:
        if node.left >= node.right:
            raise InvalidTaxonomy(
                f"node '{node.id}' has an empty interval [{node.left}, {node.right}]"
            )
        for bound in (node.left, node.right):
            other = seen_endpoints.get(bound)
            if other is not None:
                raise InvalidTaxonomy(
                    f"nodes '{other}' and '{node.id}' share interval endpoint {bound}"
                )
            seen_endpoints[bound] = node.id

    # Walk nodes in left order keeping the chain of open ancestors.
    open_chain: List[PolicyNode] = []
    for node in sorted(taxonomy, key=lambda n: n.left):
        while open_chain and open_chain[-1].right < node.left:
            open_chain.pop()
        if open_chain and open_chain[-1].right < node.right:
            parent = open_chain[-1]
            raise InvalidTaxonomy(
                f"nodes '{parent.id}' [{parent.left}, {parent.right}] and "
                f"'{node.id}' [{node.left}, {node.right}] partially overlap"
            )
        open_chain.append(node)


def build_taxonomy(tree: Iterable[Mapping[str, Any]], *, start: int = 1) -> Taxonomy:
    """Assign nested-set intervals to a forest by one depth-first numbering pass.

    Each tree node is a mapping with a "name", an optional "id" (defaults to
    the name) and optional "children". The counter is shared across roots, so

        Location > (GPS, IP Address); Contact > Email

    numbers as Location[1,6] GPS[2,3] IP Address[4,5] Contact[7,10] Email[8,9].
    """

    if isinstance(tree, Mapping) or isinstance(tree, (str, bytes)):
        raise PolicyConfigurationError("taxonomy tree must be a list of nodes")

    out: List[PolicyNode] = []
    counter = start

    def _visit(raw: Any) -> None:
        nonlocal counter
        if not isinstance(raw, Mapping):
            raise PolicyConfigurationError("taxonomy tree nodes must be mappings")

        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            raise PolicyConfigurationError("taxonomy tree node requires a non-empty name")
        node_id = raw.get("id", name)
        if not isinstance(node_id, str) or not node_id:
            raise PolicyConfigurationError(f"invalid id for taxonomy node '{name}'")

        children = raw.get("children") or []
        if not isinstance(children, Sequence) or isinstance(children, (str, bytes)):
            raise PolicyConfigurationError(f"children of '{name}' must be a list")

        left = counter
        counter += 1
        slot = len(out)
        out.append(PolicyNode(id=node_id, name=name, left=left, right=left))
        for child in children:
            _visit(child)
        out[slot] = PolicyNode(id=node_id, name=name, left=left, right=counter)
        counter += 1

    for root in tree:
        _visit(root)

    return Taxonomy(nodes=tuple(out))
