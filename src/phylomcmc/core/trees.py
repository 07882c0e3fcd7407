"""
Array-backed rooted trees for likelihood and ancestral-state computation.

Trees are parsed from Newick (built-in parser, or dendropy when requested)
or built by the simulators in ``phylomcmc.core.simulation``. Whatever the
source, the result is a ``TreeStructure`` whose node ids index directly into
its numpy arrays.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union
import numpy as np


_NEWICK_SPECIAL = set("()[]':;, \t\n")


@dataclass
class TreeNode:
    """
    One node of a rooted tree.

    Attributes:
        id: Node index (position in ``TreeStructure.nodes``)
        name: Taxon name for tips, optional label for internal nodes
        parent_id: Index of the parent (None for the root)
        children_ids: Indices of child nodes, left to right
        branch_length: Length of the branch above this node
    """
    id: int
    name: Optional[str] = None
    parent_id: Optional[int] = None
    children_ids: List[int] = field(default_factory=list)
    branch_length: float = 0.0

    @property
    def is_tip(self) -> bool:
        return not self.children_ids


@dataclass
class TreeStructure:
    """
    Rooted tree with traversal orders and branch lengths precomputed.

    Attributes:
        nodes: TreeNode objects indexed by id
        root_index: Index of the root
        tip_indices: Tip node ids in left-to-right order
        internal_indices: Internal node ids in preorder (root first)
        postorder: All node ids, children before parents
        branch_lengths: (n_nodes,) branch length above each node
        parent_indices: (n_nodes,) parent id, -1 for the root
        tip_names: Tip names aligned with ``tip_indices``
    """
    nodes: List[TreeNode]
    root_index: int
    tip_indices: List[int]
    internal_indices: List[int]
    postorder: List[int]
    branch_lengths: np.ndarray
    parent_indices: np.ndarray
    tip_names: List[str]

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_tips(self) -> int:
        return len(self.tip_indices)

    @property
    def n_internal(self) -> int:
        return len(self.internal_indices)

    @property
    def preorder(self) -> List[int]:
        return self.postorder[::-1]

    def children(self, node_id: int) -> List[int]:
        return self.nodes[node_id].children_ids

    def node_label(self, node_id: int) -> str:
        """Display label: the node name, or ``node_<id>`` when unnamed."""
        return self.nodes[node_id].name or f"node_{node_id}"

    def node_depths(self) -> np.ndarray:
        """Distance from the root to every node."""
        depths = np.zeros(self.n_nodes)
        for node_id in self.preorder:
            parent = self.parent_indices[node_id]
            if parent >= 0:
                depths[node_id] = depths[parent] + self.branch_lengths[node_id]
        return depths

    def height(self) -> float:
        """Largest root-to-tip distance."""
        return float(np.max(self.node_depths()[self.tip_indices]))

    def get_tip_index_map(self) -> Dict[str, int]:
        """Map tip names to their node ids."""
        return {name: idx for idx, name in zip(self.tip_indices, self.tip_names)}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_newick(cls, newick: str, backend: str = "simple") -> "TreeStructure":
        """
        Parse a Newick string.

        Args:
            newick: Newick tree string
            backend: "simple" (built-in parser) or "dendropy"

        Returns:
            TreeStructure instance
        """
        if backend == "simple":
            return cls._from_simple(newick)
        if backend == "dendropy":
            return cls._from_dendropy(newick)
        raise ValueError(f"Unknown backend: {backend}")

    @classmethod
    def from_file(cls, filepath: Union[str, Path], backend: str = "simple") -> "TreeStructure":
        """Load a tree from a Newick file."""
        with open(filepath, "r") as f:
            newick = f.read().strip()
        return cls.from_newick(newick, backend=backend)

    @classmethod
    def from_nodes(cls, nodes: List[TreeNode], root_index: int) -> "TreeStructure":
        """Build from a list of nodes whose ids equal their list positions."""
        nodes = sorted(nodes, key=lambda n: n.id)
        if [n.id for n in nodes] != list(range(len(nodes))):
            raise ValueError("Node ids must be 0..n_nodes-1")

        postorder = cls._compute_postorder(nodes, root_index)
        if len(postorder) != len(nodes):
            raise ValueError("Tree is disconnected: not every node is reachable from the root")

        # Tips in postorder are already left-to-right
        tip_indices = [i for i in postorder if nodes[i].is_tip]
        internal_indices = [i for i in postorder[::-1] if not nodes[i].is_tip]

        branch_lengths = np.array([n.branch_length for n in nodes], dtype=float)
        parent_indices = np.array(
            [n.parent_id if n.parent_id is not None else -1 for n in nodes],
            dtype=np.int64,
        )
        tip_names = [nodes[i].name or f"tip_{i}" for i in tip_indices]

        return cls(
            nodes=nodes,
            root_index=root_index,
            tip_indices=tip_indices,
            internal_indices=internal_indices,
            postorder=postorder,
            branch_lengths=branch_lengths,
            parent_indices=parent_indices,
            tip_names=tip_names,
        )

    @staticmethod
    def _compute_postorder(nodes: List[TreeNode], root_index: int) -> List[int]:
        """Iterative postorder so deep caterpillar trees do not hit the recursion limit."""
        result = []
        stack = [(root_index, False)]
        while stack:
            node_id, expanded = stack.pop()
            if expanded:
                result.append(node_id)
                continue
            stack.append((node_id, True))
            for child_id in reversed(nodes[node_id].children_ids):
                stack.append((child_id, False))
        return result

    @classmethod
    def _from_dendropy(cls, newick: str) -> "TreeStructure":
        """Parse using dendropy."""
        try:
            import dendropy
        except ImportError:
            raise ImportError(
                "dendropy required for backend='dendropy'. "
                "Install with: pip install dendropy"
            )

        tree = dendropy.Tree.get(data=newick, schema="newick")

        node_to_idx = {}
        nodes = []
        for i, node in enumerate(tree.preorder_node_iter()):
            node_to_idx[node] = i
            if node.taxon is not None:
                name = node.taxon.label
            else:
                name = node.label
            nodes.append(TreeNode(
                id=i,
                name=name,
                branch_length=node.edge_length if node.edge_length else 0.0,
            ))

        for node in tree.preorder_node_iter():
            idx = node_to_idx[node]
            if node.parent_node is not None:
                nodes[idx].parent_id = node_to_idx[node.parent_node]
            for child in node.child_nodes():
                nodes[idx].children_ids.append(node_to_idx[child])

        return cls.from_nodes(nodes, node_to_idx[tree.seed_node])

    @classmethod
    def _from_simple(cls, newick: str) -> "TreeStructure":
        """Built-in Newick parser supporting names, quoted names and branch lengths."""
        text = newick.strip()
        if not text.endswith(";"):
            raise ValueError("Newick string must end with ';'")

        nodes: List[TreeNode] = []
        pos = 0

        def peek() -> str:
            return text[pos] if pos < len(text) else ""

        def read_label() -> Optional[str]:
            nonlocal pos
            if peek() == "'":
                pos += 1
                chars = []
                while pos < len(text):
                    c = text[pos]
                    if c == "\\" and pos + 1 < len(text):
                        chars.append(text[pos + 1])
                        pos += 2
                        continue
                    if c == "'":
                        # '' is an escaped quote inside a quoted label
                        if pos + 1 < len(text) and text[pos + 1] == "'":
                            chars.append("'")
                            pos += 2
                            continue
                        pos += 1
                        return "".join(chars)
                    chars.append(c)
                    pos += 1
                raise ValueError("Unterminated quoted label in Newick string")
            start = pos
            while pos < len(text) and text[pos] not in "(),:;":
                pos += 1
            label = text[start:pos].strip()
            return label or None

        def read_length() -> float:
            nonlocal pos
            if peek() != ":":
                return 0.0
            pos += 1
            start = pos
            while pos < len(text) and text[pos] not in "(),;":
                pos += 1
            try:
                return float(text[start:pos])
            except ValueError:
                raise ValueError(f"Invalid branch length {text[start:pos]!r}")

        def skip_ws() -> None:
            nonlocal pos
            while pos < len(text) and text[pos].isspace():
                pos += 1

        def parse_node(parent_id: Optional[int]) -> int:
            nonlocal pos
            skip_ws()
            node = TreeNode(id=len(nodes), parent_id=parent_id)
            nodes.append(node)
            if peek() == "(":
                pos += 1
                while True:
                    node.children_ids.append(parse_node(node.id))
                    skip_ws()
                    c = peek()
                    pos += 1
                    if c == ",":
                        continue
                    if c == ")":
                        break
                    raise ValueError(f"Unexpected {c!r} at position {pos - 1}")
            node.name = read_label()
            node.branch_length = read_length()
            return node.id

        root = parse_node(None)
        if text[pos:].strip() != ";":
            raise ValueError(f"Trailing characters after tree: {text[pos:]!r}")
        return cls.from_nodes(nodes, root)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def to_newick(self, precision: int = 6, internal_labels: bool = False) -> str:
        """
        Serialize to Newick.

        Names containing Newick metacharacters are single-quoted. The root
        branch length is omitted.
        """
        def fmt_name(name: Optional[str]) -> str:
            if not name:
                return ""
            if any(c in _NEWICK_SPECIAL for c in name):
                return "'" + name.replace("'", "''") + "'"
            return name

        def render(node_id: int) -> str:
            node = self.nodes[node_id]
            if node.is_tip:
                out = fmt_name(node.name)
            else:
                out = "(" + ",".join(render(c) for c in node.children_ids) + ")"
                if internal_labels:
                    out += fmt_name(node.name)
            if node_id != self.root_index:
                out += f":{node.branch_length:.{precision}f}"
            return out

        return render(self.root_index) + ";"

    def __repr__(self) -> str:
        return f"TreeStructure({self.n_tips} tips, {self.n_nodes} nodes)"


def load_tree(filepath: Union[str, Path], backend: str = "simple") -> TreeStructure:
    """Load a tree from a Newick file."""
    return TreeStructure.from_file(filepath, backend=backend)
