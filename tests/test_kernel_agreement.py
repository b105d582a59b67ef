"""
tests/test_kernel_agreement.py
==============================

Cross-validation between flexitree SSD backends and against an independent
computation from branch lengths.

Validation layers
-----------------
1. Backend agreement  (TestBackendAgreement)
   Evaluate get_sum_of_squared_distance() with the 'python' and 'cpu'
   backends on every tree of the corpus, on every subtree, and after every
   midpoint reroot, and assert allclose results.

2. Branch-length formula  (TestSSDVsLengths)
   For any rooting, the SSD equals the sum of squared branch lengths

       SSD = sum over non-root v of length(v) ** 2

   with lengths read from the NEWICK string the tree writes, so the check
   is independent of the node table's height bookkeeping.

3. Reroot invariants  (TestRerootInvariants)
   Rerooting at the midpoint of any edge keeps the leaf set and the total
   branch length, and re-parsing the written NEWICK reproduces the SSD.

4. Search agreement  (TestSearchAgreement)
   get_min_ssd_tree() reaches the same minimum with either backend, never
   reports a value above the starting rooting, and the returned tree's SSD
   is the reported minimum.  A replay of the search written out in the
   test (root adjacency checked before every reroot) must reach the same
   minimum and end on the same tree, on the corpus and on random trees.

Test corpus
-----------
13 strictly bifurcating trees over subsets of 8 taxa (a–h).

Trees 0–2  : binary balanced, three distinct pairings
Trees 3–4  : caterpillar ladderized both ways
Trees 5–6  : zero-length internal branches
Trees 7–9  : trees with 4–6 of the 8 taxa
Trees 10–11: 7-taxon trees, different topologies
Tree  12   : all 8 taxa, topology ae|bf / cg|dh
"""

import re

import numpy as np
import pytest

from flexitree import FlexibleTree, quiet, use_backend
from flexitree._backend import get_available_backends

# ---------------------------------------------------------------------------
# 13-tree test corpus
# ---------------------------------------------------------------------------

TREES = [
    # 0: binary balanced: (ab|cd)(ef|gh)
    "(((a:0.10,b:0.20):0.15,(c:0.30,d:0.40):0.25):0.50,"
    "((e:0.10,f:0.20):0.15,(g:0.30,h:0.40):0.25):0.50);",
    # 1: binary balanced: (ac|bd)(eg|fh)
    "(((a:0.10,c:0.20):0.15,(b:0.30,d:0.40):0.25):0.50,"
    "((e:0.10,g:0.20):0.15,(f:0.30,h:0.40):0.25):0.50);",
    # 2: binary balanced: (ad|bc)(eh|fg)
    "(((a:0.10,d:0.20):0.15,(b:0.30,c:0.40):0.25):0.50,"
    "((e:0.10,h:0.20):0.15,(f:0.30,g:0.40):0.25):0.50);",
    # 3: caterpillar a→h
    "(a:0.50,(b:0.40,(c:0.30,(d:0.20,(e:0.15,"
    "(f:0.10,(g:0.05,h:0.05):0.10):0.15):0.20):0.25):0.30):0.40);",
    # 4: caterpillar h→a (reversed)
    "(h:0.50,(g:0.40,(f:0.30,(e:0.20,(d:0.15,"
    "(c:0.10,(b:0.05,a:0.05):0.10):0.15):0.20):0.25):0.30):0.40);",
    # 5: zero-length branch above (ab) and above (gh)
    "(((a:0.10,b:0.20):0.00,(c:0.30,d:0.40):0.10):0.50,"
    "((e:0.10,f:0.20):0.30,(g:0.30,h:0.40):0.00):0.50);",
    # 6: zero-length branch above (cd) and above (ef)
    "(((a:0.20,b:0.30):0.10,(c:0.10,d:0.20):0.00):0.40,"
    "((e:0.20,f:0.30):0.00,(g:0.10,h:0.20):0.30):0.40);",
    # 7: only a,b,c,d,e,f
    "(((a:0.20,b:0.30):0.40,(c:0.10,d:0.50):0.20):0.60,(e:0.30,f:0.40):0.70);",
    # 8: only a,b,g,h
    "((a:0.50,b:0.50):0.40,(g:0.60,h:0.40):0.30);",
    # 9: only c,d,e,f,g,h
    "(((c:0.20,d:0.30):0.40,(e:0.10,f:0.50):0.20):0.60,(g:0.30,h:0.40):0.70);",
    # 10: 7 taxa, caterpillar-like
    "(((a:0.10,b:0.20):0.30,(c:0.10,d:0.20):0.40):0.50,"
    "((e:0.20,f:0.30):0.20,g:0.40):0.30);",
    # 11: 7 taxa, deeply unbalanced
    "(((a:0.30,e:0.20):0.10,"
    "((b:0.40,f:0.30):0.20,(c:0.50,g:0.10):0.30):0.20):0.40,d:0.60);",
    # 12: all 8 taxa, topology (ae|bf)(cg|dh)
    "(((a:0.10,e:0.20):0.15,(b:0.30,f:0.40):0.25):0.50,"
    "((c:0.10,g:0.20):0.15,(d:0.30,h:0.40):0.25):0.50);",
]

TREE_IDS = [f"t{i:02d}" for i in range(len(TREES))]

_LENGTH_RE = re.compile(r":(-?[0-9.eE+-]+)")

# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------

_AVAILABLE = get_available_backends()

cpu_skip = pytest.mark.skipif(
    "cpu" not in _AVAILABLE,
    reason="cpu backend not available",
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load(newick):
    with quiet():
        return FlexibleTree(newick)


def _ssd_from_newick(newick):
    """
    Sum of squared branch lengths parsed straight from a NEWICK string.
    The root's own ':0.0' placeholder contributes nothing.
    """
    return sum(float(x) ** 2 for x in _LENGTH_RE.findall(newick))


def _non_root_edges(tree):
    """Every node whose parent is not the root, in pre-order."""
    return [
        v for v in tree.preorder()
        if v != tree.root and tree.get_parent(v) != tree.root
    ]


def _leaf_names(tree):
    return sorted(tree.names[i] for i in range(tree.n_nodes) if tree.is_leaf(i))


def _reference_search(tree):
    """
    Replay the midpoint search on a copy of *tree*: walk the pre-order list
    taken up front and reroot above every node that is not currently the
    root or a child of it.  Returns the SSD trajectory and the final tree.
    """
    replay = tree.copy()
    scores = [replay.get_sum_of_squared_distance()]
    for node in replay.preorder():
        if node == replay.root or replay.get_parent(node) == replay.root:
            continue
        with quiet():
            replay.change_root_to(node, 0.5)
        scores.append(replay.get_sum_of_squared_distance())
    return scores, replay


def _random_binary_newick(rng, n_leaves):
    """Random rooted binary tree with dyadic branch lengths."""
    lengths = [0.25, 0.5, 1.0, 2.0, 3.0]
    parts = [f"L{i}:{rng.choice(lengths)}" for i in range(n_leaves)]
    while len(parts) > 2:
        i, j = sorted(rng.choice(len(parts), size=2, replace=False), reverse=True)
        a, b = parts.pop(i), parts.pop(j)
        parts.append(f"({b},{a}):{rng.choice(lengths)}")
    return f"({parts[0]},{parts[1]});"


# ===========================================================================
# Test classes
# ===========================================================================


class TestBackendAgreement:
    """Both backends produce allclose sums of squared distances."""

    @cpu_skip
    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_whole_tree(self, newick):
        tree = _load(newick)
        ssd_py = tree.get_sum_of_squared_distance("python")
        ssd_cpu = tree.get_sum_of_squared_distance("cpu")
        assert ssd_cpu == pytest.approx(ssd_py, rel=1e-12, abs=1e-15)

    @cpu_skip
    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_every_subtree(self, newick):
        tree = _load(newick)
        for node in range(tree.n_nodes):
            ssd_py = tree.sum_of_squared_distances(node, "python")
            ssd_cpu = tree.sum_of_squared_distances(node, "cpu")
            assert ssd_cpu == pytest.approx(ssd_py, rel=1e-12, abs=1e-15), (
                f"subtree at node {node}"
            )

    @cpu_skip
    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_after_each_reroot(self, newick):
        tree = _load(newick)
        for node in _non_root_edges(_load(newick)):
            with quiet():
                tree.change_root_to(node, 0.5)
            ssd_py = tree.get_sum_of_squared_distance("python")
            ssd_cpu = tree.get_sum_of_squared_distance("cpu")
            assert ssd_cpu == pytest.approx(ssd_py, rel=1e-12, abs=1e-15)

    @cpu_skip
    def test_use_backend_matches_argument(self):
        tree = _load(TREES[3])
        with use_backend("python"):
            via_context = tree.get_sum_of_squared_distance("cpu")
        assert via_context == tree.get_sum_of_squared_distance("python")


class TestSSDVsLengths:
    """SSD equals the sum of squared branch lengths written to NEWICK."""

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_starting_rooting(self, newick):
        tree = _load(newick)
        expected = _ssd_from_newick(tree.to_newick())
        assert tree.get_sum_of_squared_distance() == pytest.approx(expected)

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_input_lengths(self, newick):
        # Heights are derived from the input lengths, so the score can be
        # read off the input string directly.
        tree = _load(newick)
        assert tree.get_sum_of_squared_distance() == pytest.approx(
            _ssd_from_newick(newick)
        )

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_after_each_reroot(self, newick):
        tree = _load(newick)
        for node in _non_root_edges(_load(newick)):
            with quiet():
                tree.change_root_to(node, 0.5)
            expected = _ssd_from_newick(tree.to_newick())
            assert tree.get_sum_of_squared_distance() == pytest.approx(expected)


class TestRerootInvariants:
    """Midpoint reroots preserve leaves and total length."""

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_leaf_set_preserved(self, newick):
        tree = _load(newick)
        leaves = _leaf_names(tree)
        for node in _non_root_edges(_load(newick)):
            with quiet():
                tree.change_root_to(node, 0.5)
            assert _leaf_names(tree) == leaves

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_total_length_preserved(self, newick):
        tree = _load(newick)
        total = float(np.sum(tree.get_all_branch_lengths()))
        for node in _non_root_edges(_load(newick)):
            with quiet():
                tree.change_root_to(node, 0.5)
            assert float(np.sum(tree.get_all_branch_lengths())) == pytest.approx(total)

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_roundtrip_reproduces_ssd(self, newick):
        tree = _load(newick)
        for node in _non_root_edges(_load(newick)):
            with quiet():
                tree.change_root_to(node, 0.5)
            reparsed = _load(tree.to_newick())
            assert reparsed.get_sum_of_squared_distance() == pytest.approx(
                tree.get_sum_of_squared_distance()
            )

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_stays_binary(self, newick):
        tree = _load(newick)
        for node in _non_root_edges(_load(newick)):
            with quiet():
                tree.change_root_to(node, 0.5)
            assert tree.is_binary()
            assert len(tree.get_children(tree.root)) == 2


class TestSearchAgreement:
    """get_min_ssd_tree() agrees across backends and with its own result."""

    @cpu_skip
    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_backends_reach_same_minimum(self, newick):
        tree = _load(newick)
        with quiet():
            best_py = tree.get_min_ssd_tree(backend="python")
            best_cpu = tree.get_min_ssd_tree(backend="cpu")
        assert best_cpu.get_sum_of_squared_distance("python") == pytest.approx(
            best_py.get_sum_of_squared_distance("python")
        )

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_never_worse_than_start(self, newick):
        tree = _load(newick)
        with quiet():
            best = tree.get_min_ssd_tree()
        assert best.get_sum_of_squared_distance() <= tree.get_sum_of_squared_distance()

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_best_is_minimum_of_trajectory(self, newick):
        tree = _load(newick)
        scores, replay = _reference_search(tree)
        with quiet():
            best = tree.get_min_ssd_tree()
            last = tree.get_min_ssd_tree(restore_best=False)
        assert best.get_sum_of_squared_distance() == pytest.approx(min(scores))
        assert last.to_newick() == replay.to_newick()

    @pytest.mark.parametrize("seed", range(20))
    def test_random_trees_match_replay(self, seed):
        rng = np.random.default_rng(seed)
        for _ in range(15):
            tree = _load(_random_binary_newick(rng, int(rng.integers(3, 9))))
            scores, replay = _reference_search(tree)
            with quiet():
                best = tree.get_min_ssd_tree()
                last = tree.get_min_ssd_tree(restore_best=False)
            assert best.get_sum_of_squared_distance() == pytest.approx(min(scores))
            assert last.to_newick() == replay.to_newick()

    @pytest.mark.parametrize("newick", TREES, ids=TREE_IDS)
    def test_receiver_unchanged(self, newick):
        tree = _load(newick)
        before = tree.to_newick()
        with quiet():
            tree.get_min_ssd_tree()
        assert tree.to_newick() == before


_DEEP_N_LEAVES = 5000


@pytest.fixture(scope="module")
def deep_newick():
    newick = "t0:1.0"
    for i in range(1, _DEEP_N_LEAVES):
        newick = f"({newick},t{i}:1.0):1.0"
    return newick + ";"


@pytest.mark.large_scale
class TestDeepTree:
    """A 5 000-leaf caterpillar is far deeper than the recursion limit."""

    @cpu_skip
    def test_backends_agree(self, deep_newick):
        tree = _load(deep_newick)
        assert tree.get_sum_of_squared_distance("cpu") == pytest.approx(
            tree.get_sum_of_squared_distance("python")
        )

    def test_reroot_deep_leaf(self, deep_newick):
        tree = _load(deep_newick)
        total = float(np.sum(tree.get_all_branch_lengths()))
        with quiet():
            tree.change_root_to("t0", 0.5)
        assert tree.is_binary()
        assert float(np.sum(tree.get_all_branch_lengths())) == pytest.approx(total)
        assert tree.to_newick().startswith("(t0:0.5,")
