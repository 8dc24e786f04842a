"""
TabPilot Models - Data classes for accessibility snapshots.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


def _unwrap_ax_value(raw: Optional[Dict[str, Any]]) -> Any:
    """Pull the plain value out of a CDP AXValue object."""
    if not raw:
        return None
    return raw.get("value")


@dataclass
class AXNode:
    """
    A single accessibility node as reported by ``Accessibility.getFullAXTree``.

    ``backend_node_id`` is the handle the node resolver turns into a selector.
    It is absent for purely virtual nodes (e.g. inline text boxes).
    """

    node_id: str
    backend_node_id: Optional[int] = None
    role: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    value: Any = None
    ignored: bool = False
    properties: Dict[str, Any] = field(default_factory=dict)
    parent_id: Optional[str] = None
    child_ids: List[str] = field(default_factory=list)
    children: List["AXNode"] = field(default_factory=list, repr=False)

    @classmethod
    def from_cdp(cls, raw: Dict[str, Any]) -> AXNode:
        """Build a node from its raw CDP representation."""
        properties = {}
        for prop in raw.get("properties") or []:
            name = prop.get("name")
            if name:
                properties[name] = _unwrap_ax_value(prop.get("value"))

        backend_node_id = raw.get("backendDOMNodeId")
        return cls(
            node_id=str(raw["nodeId"]),
            backend_node_id=int(backend_node_id) if backend_node_id is not None else None,
            role=_unwrap_ax_value(raw.get("role")),
            name=_unwrap_ax_value(raw.get("name")),
            description=_unwrap_ax_value(raw.get("description")),
            value=_unwrap_ax_value(raw.get("value")),
            ignored=bool(raw.get("ignored", False)),
            properties=properties,
            parent_id=str(raw["parentId"]) if raw.get("parentId") is not None else None,
            child_ids=[str(cid) for cid in raw.get("childIds") or []],
        )

    def to_text(self, indent_level: int = 0) -> str:
        """Render this node and its subtree as an indented outline."""
        backend = self.backend_node_id if self.backend_node_id is not None else "-"
        line = "\t" * indent_level + f'- [{backend}] "{self.name if self.name else "<null>"}"'
        if self.role:
            line += f" ({self.role})"
        if self.description:
            line += f" ({self.description})"
        if self.properties:
            props = ", ".join(f"{key}: {val}" for key, val in self.properties.items())
            line += f" {{{props}}}"
        if self.value not in (None, ""):
            line += f" with value {self.value}"

        lines = [line]
        for child in self.children:
            lines.append(child.to_text(indent_level + 1))
        return "\n".join(lines)


@dataclass
class AXTree:
    """
    Nested accessibility tree for one tab.

    The raw CDP payload is flat; nodes are nested by ``childIds`` order,
    falling back to ``parentId`` for nodes their parent does not list.
    Each node is attached to at most one parent, so the result is always
    a forest even if the host reports inconsistent links.
    """

    roots: List[AXNode]
    nodes: Dict[str, AXNode]

    @classmethod
    def from_cdp(cls, payload: Dict[str, Any]) -> AXTree:
        nodes: Dict[str, AXNode] = {}
        for raw in payload.get("nodes") or []:
            node = AXNode.from_cdp(raw)
            nodes[node.node_id] = node

        attached = set()
        for node in nodes.values():
            for child_id in node.child_ids:
                child = nodes.get(child_id)
                if child is None or child is node or child_id in attached:
                    continue
                node.children.append(child)
                attached.add(child_id)

        # Nodes whose parent did not list them in childIds
        for node in nodes.values():
            if node.node_id in attached or node.parent_id is None:
                continue
            parent = nodes.get(node.parent_id)
            if parent is not None and parent is not node:
                parent.children.append(node)
                attached.add(node.node_id)

        roots = [node for node in nodes.values() if node.node_id not in attached]
        return cls(roots=roots, nodes=nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, node_id: str) -> Optional[AXNode]:
        return self.nodes.get(node_id)

    def walk(self) -> Iterator[AXNode]:
        """Yield every reachable node depth-first, in document order."""
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find(self, *, role: Optional[str] = None, name: Optional[str] = None) -> List[AXNode]:
        """Return nodes matching the given role and/or exact name."""
        return [
            node for node in self.walk()
            if (role is None or node.role == role) and (name is None or node.name == name)
        ]

    def backend_node_ids(self) -> List[int]:
        """Backend DOM node ids referenced by the tree, de-duplicated, in document order."""
        seen = set()
        ids: List[int] = []
        for node in self.walk():
            if node.backend_node_id is not None and node.backend_node_id not in seen:
                seen.add(node.backend_node_id)
                ids.append(node.backend_node_id)
        return ids

    def to_text(self) -> str:
        return "\n".join(root.to_text() for root in self.roots)
