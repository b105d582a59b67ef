"""
_tree.py
========
A single rooted phylogenetic tree stored as a node table: parallel numpy
arrays and lists indexed by integer node ID.

Public API
----------
  Tree(newick_string, resolve_multifurcations=False)
      Constructor.  Parses the NEWICK string and builds the node table.

  Tree.from_tree(other)          copy of another tree's node table
  .copy()
  .subtree(node)                 new tree holding node and its descendants

  .resolve_node(node)            int | str  ->  node ID
  .is_root(node) / .is_leaf(node) / .is_binary()
  .get_parent(node) / .get_children(node) / .label(node)
  .length_to_parent(node)
  .preorder(node=None) / .postorder(node=None) / .all_child_nodes(node=None)

  .add_child(parent, child) / .remove_child(parent, child)
  .set_heights_from_lengths(lengths)

Node model
----------
A node is a plain integer ID; the tree owns every per-node attribute in
flat storage, so parent/child relations are plain ID links with no object
ownership cycles.  Heights are the stored quantity.  The length of the edge
above a node is always derived from them:

    length_to_parent(i) = height[parent[i]] - height[i]      (0.0 for root)

Node-ID conventions (set once at parse time; never change):
  Leaves   : 0 … n_leaves-1       (left-to-right in NEWICK string)
  Internal : n_leaves … n_nodes-2 (post-order)
  Root     : n_nodes-1

Rerooting relinks nodes but keeps the root object, so ``root`` is fixed for
the lifetime of an instance.
"""

import logging
from typing import List, Optional

import numpy as np

from flexitree._logging import log_multifurcations, log_tree_loaded
from flexitree._utils import format_newick


logger = logging.getLogger(__name__)


class InvalidTopology(ValueError):
    """Raised when an operation requires a strictly bifurcating tree."""


# Characters that end an unquoted label or a branch length.
_DELIMITERS = "(),:;[ \t\r\n"


class Tree:
    """
    A rooted phylogenetic tree with labelled nodes, heights and per-node
    metadata.

    Attributes
    ----------
    n_nodes   : int          Total number of nodes.
    n_leaves  : int          Number of leaf nodes at parse time.
    root      : int          Node ID of the root (always n_nodes - 1).
    names     : list[str]    Label of each node; '' when unlabelled.
    metadata  : list[str]    Raw NEWICK comment of each node (``[&...]``) or ''.
    parent    : int32  [n_nodes]   Parent ID; -1 for root.
    height    : float64[n_nodes]   Distance from the tip-ward extreme.
    children  : list[list[int]]    Ordered child IDs of each node.
    """

    # ================================================================== #
    # Construction                                                         #
    # ================================================================== #

    def __init__(self, newick_string: str, resolve_multifurcations: bool = False) -> None:
        """
        Parse *newick_string* and build the node table.

        Parameters
        ----------
        newick_string : str
            A valid NEWICK-formatted tree string (trailing ';' optional).
        resolve_multifurcations : bool
            If True, every node with k > 2 children is split into a cascade
            of (k - 1) binary nodes joined by zero-length edges.

        Raises
        ------
        ValueError   if the string is not well-formed NEWICK.
        """
        self._parse_newick(newick_string, resolve_multifurcations)
        self._post_init()
        log_tree_loaded(self.n_nodes, self.n_leaves)

    @classmethod
    def from_tree(cls, other: "Tree") -> "Tree":
        """Return an independent copy of *other*'s node table as a ``cls``."""
        return cls._from_arrays(
            list(other.names),
            list(other.metadata),
            other.parent.copy(),
            [list(ch) for ch in other.children],
            other.height.copy(),
        )

    @classmethod
    def _from_arrays(cls, names, metadata, parent, children, height) -> "Tree":
        """
        **Private.**  Build an instance directly from node-table storage,
        bypassing the parser.  The arrays are adopted, not copied.
        """
        tree = cls.__new__(cls)
        tree.names = names
        tree.metadata = metadata
        tree.parent = parent
        tree.children = children
        tree.height = height
        tree._post_init()
        return tree

    def _post_init(self) -> None:
        """
        **Private.**  Derive scalar properties from the node table.
        Subclasses extend this to attach their own per-instance state.
        """
        self.n_nodes: int = int(self.parent.shape[0])
        self.n_leaves: int = sum(1 for ch in self.children if not ch)
        self.root: int = self.n_nodes - 1

        # Name index: built lazily on first name-based query.
        self._name_index: dict = None  # type: ignore[assignment]

    def copy(self) -> "Tree":
        """Return an independent copy with identical node IDs."""
        return type(self).from_tree(self)

    def subtree(self, node) -> "Tree":
        """
        Return a new tree of the same class containing *node* and all of its
        descendants, renumbered by the usual ID convention.  Branch lengths
        inside the subtree are preserved; *node* becomes the root.
        """
        top = self.resolve_node(node)
        order = self.postorder(top)

        leaves = [i for i in order if not self.children[i]]
        internals = [i for i in order if self.children[i]]
        remap = {old: new for new, old in enumerate(leaves + internals)}
        n = len(order)

        names = [""] * n
        metadata = [""] * n
        parent = np.full(n, -1, dtype=np.int32)
        children: List[List[int]] = [[] for _ in range(n)]
        lengths = np.zeros(n, dtype=np.float64)

        for old, new in remap.items():
            names[new] = self.names[old]
            metadata[new] = self.metadata[old]
            children[new] = [remap[c] for c in self.children[old]]
            if old != top:
                parent[new] = remap[int(self.parent[old])]
                lengths[new] = self.length_to_parent(old)

        tree = type(self)._from_arrays(
            names, metadata, parent, children, np.zeros(n, dtype=np.float64)
        )
        tree.set_heights_from_lengths(lengths)
        return tree

    # ================================================================== #
    # Node queries                                                         #
    # ================================================================== #

    def resolve_node(self, node) -> int:
        """
        Return the integer node ID for *node*.

        If *node* is already an integer (or numpy integer), it is range
        checked and returned as a plain Python ``int``.  If it is a ``str``,
        the name index is built lazily and the result is looked up.

        Raises
        ------
        IndexError   if an integer ID is outside [0, n_nodes).
        KeyError     if *node* is a string not present in the tree.
        """
        if isinstance(node, (int, np.integer)):
            node_id = int(node)
            if node_id < 0 or node_id >= self.n_nodes:
                raise IndexError(
                    f"Node ID {node_id} out of range for a tree of "
                    f"{self.n_nodes} nodes."
                )
            return node_id
        if self._name_index is None:
            self._build_name_index()
        if node not in self._name_index:
            raise KeyError(f"No node with name '{node}' found in tree.")
        return self._name_index[node]

    def is_root(self, node) -> bool:
        return self.resolve_node(node) == self.root

    def is_leaf(self, node) -> bool:
        return not self.children[self.resolve_node(node)]

    def is_binary(self) -> bool:
        """True if every internal node has exactly two children."""
        return all(len(ch) == 2 for ch in self.children if ch)

    def get_parent(self, node) -> Optional[int]:
        """Parent ID of *node*, or None for a node without a parent."""
        p = int(self.parent[self.resolve_node(node)])
        return None if p == -1 else p

    def get_children(self, node) -> List[int]:
        """A copy of *node*'s ordered child list."""
        return list(self.children[self.resolve_node(node)])

    def label(self, node) -> Optional[str]:
        """The node's label, or None if it is unlabelled."""
        name = self.names[self.resolve_node(node)]
        return name if name != "" else None

    def length_to_parent(self, node) -> float:
        """
        Length of the edge from *node* to its parent, derived from heights.
        A node without a parent has length 0.0.
        """
        node_id = self.resolve_node(node)
        p = int(self.parent[node_id])
        if p == -1:
            return 0.0
        return float(self.height[p] - self.height[node_id])

    # ================================================================== #
    # Traversal                                                            #
    # ================================================================== #

    def preorder(self, node=None) -> List[int]:
        """Node IDs of the subtree at *node* (default: root) in pre-order."""
        start = self.root if node is None else self.resolve_node(node)
        order = []
        stack = [start]
        while stack:
            current = stack.pop()
            order.append(current)
            stack.extend(reversed(self.children[current]))
        return order

    def postorder(self, node=None) -> List[int]:
        """Node IDs of the subtree at *node* (default: root) in post-order."""
        start = self.root if node is None else self.resolve_node(node)
        order = []
        stack = [start]
        while stack:
            current = stack.pop()
            order.append(current)
            stack.extend(self.children[current])
        order.reverse()
        return order

    def all_child_nodes(self, node=None) -> List[int]:
        """*node* followed by all of its descendants, in pre-order."""
        return self.preorder(node)

    # ================================================================== #
    # Primitive mutations                                                  #
    # ================================================================== #

    def add_child(self, parent: int, child: int) -> None:
        """Append *child* to *parent*'s child list and link it back."""
        self.children[parent].append(child)
        self.parent[child] = parent

    def remove_child(self, parent: int, child: int) -> None:
        """
        Remove *child* from *parent*'s child list; *child* is left without
        a parent.

        Raises
        ------
        ValueError   if *child* is not a child of *parent*.
        """
        try:
            self.children[parent].remove(child)
        except ValueError:
            raise ValueError(f"Node {child} is not a child of node {parent}.") from None
        self.parent[child] = -1

    def set_heights_from_lengths(self, lengths) -> None:
        """
        Replace every height using the per-node edge lengths in *lengths*
        (indexed by node ID).

        Depth from the root is accumulated in pre-order, adding an edge only
        when its length is positive.  Heights are then ``max_depth - depth``
        so that the deepest node sits at height 0 and the root is highest.
        """
        order = self.preorder()
        depth = np.zeros(self.n_nodes, dtype=np.float64)
        for node in order:
            p = int(self.parent[node])
            d = 0.0 if p == -1 else float(depth[p])
            length = float(lengths[node])
            if length > 0.0:
                d += length
            depth[node] = d

        max_depth = float(np.max(depth[order]))
        for node in order:
            self.height[node] = max_depth - depth[node]

    # ================================================================== #
    # Private instance methods                                             #
    # ================================================================== #

    def _parse_newick(self, newick_string: str, resolve_multifurcations: bool) -> None:
        """
        **Private.**  Parse *newick_string* and populate the node table.

        Two-pass algorithm
        ------------------
        Pass 1  Tokenize; count commas → exact number of leaves.
        Pass 2  Iterative, stack-based token scan; no recursion.  Leaves
                take IDs in the order they are read, internal nodes take
                IDs n_leaves, n_leaves+1, … in the order their ')' closes,
                which is post-order.

        Populates
        ---------
        self.names, self.metadata, self.parent, self.children, self.height
        """
        tokens = Tree._tokenize(format_newick(newick_string))

        # ---- Pass 1: leaf count -------------------------------------- #
        # Every comma separates two siblings, so n_leaves = n_commas + 1
        # for any rooted tree, binary or not.
        n_leaves = 1
        for kind, _ in tokens:
            if kind == ",":
                n_leaves += 1

        names = [""] * n_leaves
        metadata = [""] * n_leaves
        lengths = [0.0] * n_leaves
        children: List[List[int]] = [[] for _ in range(n_leaves)]
        multifurcating = []

        # ---- Pass 2: stack-based build ------------------------------- #
        stack: List[List[int]] = [[]]
        leaf_id = 0
        last = None  # most recently completed node; owns label/length/comment

        def new_leaf() -> int:
            nonlocal leaf_id
            if leaf_id >= n_leaves:
                raise ValueError("Malformed NEWICK string: unexpected leaf.")
            node = leaf_id
            leaf_id += 1
            stack[-1].append(node)
            return node

        def new_internal(kids: List[int]) -> int:
            node = len(names)
            names.append("")
            metadata.append("")
            lengths.append(0.0)
            children.append(kids)
            return node

        for kind, value in tokens:
            if kind == "(":
                if last is not None:
                    raise ValueError("Malformed NEWICK string: '(' after a node.")
                stack.append([])
            elif kind == ",":
                if last is None:
                    new_leaf()
                if len(stack) == 1:
                    raise ValueError("Malformed NEWICK string: ',' outside parentheses.")
                last = None
            elif kind == ")":
                if last is None:
                    new_leaf()
                if len(stack) == 1:
                    raise ValueError("Malformed NEWICK string: unbalanced ')'.")
                kids = stack.pop()
                if len(kids) > 2:
                    multifurcating.append(len(kids))
                    if resolve_multifurcations:
                        while len(kids) > 2:
                            merged = new_internal(kids[:2])
                            kids = [merged] + kids[2:]
                last = new_internal(kids)
                stack[-1].append(last)
            elif kind == "label":
                if last is None:
                    last = new_leaf()
                names[last] = value
            elif kind == "length":
                if last is None:
                    last = new_leaf()
                lengths[last] = value
            elif kind == "comment":
                if last is None:
                    last = new_leaf()
                metadata[last] += value
            elif kind == ";":
                break

        if len(stack) != 1:
            raise ValueError("Malformed NEWICK string: unbalanced '('.")
        if last is None or len(stack[0]) != 1:
            raise ValueError("Malformed NEWICK string: expected exactly one root.")
        if leaf_id != n_leaves:
            raise ValueError("Malformed NEWICK string: empty leaf.")

        n_nodes = len(names)
        parent = np.full(n_nodes, -1, dtype=np.int32)
        # Internal IDs were taken from len(names), which started at n_leaves.
        for node in range(n_leaves, n_nodes):
            for child in children[node]:
                parent[child] = node

        log_multifurcations(multifurcating, resolve_multifurcations)

        self.names = names
        self.metadata = metadata
        self.parent = parent
        self.children = children
        self.height = np.zeros(n_nodes, dtype=np.float64)

        # The root carries no edge, whatever the string says.
        length_array = np.asarray(lengths, dtype=np.float64)
        length_array[n_nodes - 1] = 0.0
        self.n_nodes = n_nodes
        self.root = n_nodes - 1
        self.set_heights_from_lengths(length_array)

    def _build_name_index(self) -> None:
        """
        **Private.**  Build and cache ``self._name_index``: a dict mapping
        each non-empty node name to its integer node ID.

        Raises
        ------
        ValueError   if duplicate node names are found.
        """
        idx = {}
        for node_id in range(len(self.names)):
            name = self.names[node_id]
            if name != "":
                if name in idx:
                    raise ValueError(
                        f"Duplicate node name '{name}' at IDs "
                        f"{idx[name]} and {node_id}."
                    )
                idx[name] = node_id
        self._name_index = idx

    @staticmethod
    def _tokenize(s: str) -> list:
        """
        **Private static.**  Split a NEWICK string into (kind, value) tokens.

        Kinds: '(' ')' ',' ';'  (value None), 'label' (str), 'length'
        (float) and 'comment' (the raw bracketed text, e.g. ``[&rate=1]``).
        Single-quoted labels may contain delimiters; a doubled quote inside
        them stands for one quote character.
        """
        tokens = []
        n = len(s)
        i = 0
        while i < n:
            c = s[i]

            if c in " \t\r\n":
                i += 1
                continue

            if c in "(),;":
                tokens.append((c, None))
                i += 1
                continue

            if c == "[":
                j = s.find("]", i)
                if j == -1:
                    raise ValueError("Malformed NEWICK string: unterminated comment.")
                tokens.append(("comment", s[i : j + 1]))
                i = j + 1
                continue

            if c == ":":
                i += 1
                while i < n and s[i] in " \t":
                    i += 1
                j = i
                while j < n and s[j] not in _DELIMITERS:
                    j += 1
                try:
                    tokens.append(("length", float(s[i:j])))
                except ValueError:
                    raise ValueError(
                        f"Malformed NEWICK string: bad branch length '{s[i:j]}'."
                    ) from None
                i = j
                continue

            if c == "'":
                buf = []
                i += 1
                while True:
                    if i >= n:
                        raise ValueError("Malformed NEWICK string: unterminated quote.")
                    if s[i] == "'":
                        if i + 1 < n and s[i + 1] == "'":
                            buf.append("'")
                            i += 2
                            continue
                        i += 1
                        break
                    buf.append(s[i])
                    i += 1
                tokens.append(("label", "".join(buf)))
                continue

            j = i
            while j < n and s[j] not in _DELIMITERS and s[j] != "'":
                j += 1
            tokens.append(("label", s[i:j]))
            i = j

        return tokens
