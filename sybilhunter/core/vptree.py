"""
Vantage-Point Tree
==================

Metric tree for k-nearest-neighbour queries under an arbitrary distance
function (here: Levenshtein distance between feature strings).

Build:
    pick a random vantage point, compute its distance mu to the median of
    the remaining items, split into inside (< mu) and outside (>= mu).

Search:
    best-first walk with a bounded max-heap of the k closest items so far;
    tau is the current k-th best distance and prunes subtrees that cannot
    contain anything closer.

Both build and search use an explicit stack. Distance ties put every item
on the outside branch, so recursion depth could approach n.

Usage:
    tree = VPTree(records, feature_distance, seed=0)
    items, distances = tree.search(reference, k=5)
"""

import heapq
import math
import random
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np


DistanceFn = Callable[[Any, Any], float]


def median(values: Sequence[float]) -> float:
    """Median of the distances at a node. An empty list is a broken build."""
    if len(values) == 0:
        raise RuntimeError("median of an empty distance list")
    return float(np.median(values))


class _Node:
    __slots__ = ('index', 'threshold', 'inside', 'outside')

    def __init__(self, index: int = -1):
        self.index = index
        self.threshold = 0.0
        self.inside: Optional['_Node'] = None
        self.outside: Optional['_Node'] = None

    @property
    def is_leaf(self) -> bool:
        return self.inside is None and self.outside is None


class VPTree:
    """
    Args:
        items:    Objects to index
        distance: Metric, distance(a, b) -> float
        seed:     Seed for vantage point selection (reproducible trees)
    """

    def __init__(self, items: Sequence[Any], distance: DistanceFn, seed: Optional[int] = None):
        self.items = list(items)
        self.distance = distance
        self._rng = random.Random(seed)
        self.root = self._build()

    def __len__(self) -> int:
        return len(self.items)

    def _build(self) -> Optional[_Node]:
        if not self.items:
            return None

        root = _Node()
        stack: List[Tuple[_Node, List[int]]] = [(root, list(range(len(self.items))))]

        while stack:
            node, indices = stack.pop()

            pick = self._rng.randrange(len(indices))
            indices[0], indices[pick] = indices[pick], indices[0]
            node.index = indices[0]

            rest = indices[1:]
            if not rest:
                continue

            vantage = self.items[node.index]
            distances = [self.distance(vantage, self.items[i]) for i in rest]
            node.threshold = median(distances)

            inside = [i for i, d in zip(rest, distances) if d < node.threshold]
            outside = [i for i, d in zip(rest, distances) if d >= node.threshold]

            if inside:
                node.inside = _Node()
                stack.append((node.inside, inside))
            if outside:
                node.outside = _Node()
                stack.append((node.outside, outside))

        return root

    def search(self, target: Any, k: int) -> Tuple[List[Any], List[float]]:
        """
        Find the k items closest to target.

        Returns:
            (items, distances), both sorted by ascending distance
        """
        if k < 1 or self.root is None:
            return [], []

        heap: List[Tuple[float, int, int]] = []   # (-distance, visit order, index)
        tau = math.inf
        visited = 0

        # (node, distance from target to parent vantage, parent threshold, is inside child)
        stack: List[Tuple[_Node, float, float, bool]] = [(self.root, 0.0, 0.0, True)]

        while stack:
            node, parent_d, parent_mu, inside = stack.pop()

            if node is not self.root:
                if inside and not parent_d < parent_mu + tau:
                    continue
                if not inside and not parent_d + tau >= parent_mu:
                    continue

            d = float(self.distance(target, self.items[node.index]))
            visited += 1

            if len(heap) < k:
                heapq.heappush(heap, (-d, visited, node.index))
            elif d < tau:
                heapq.heapreplace(heap, (-d, visited, node.index))
            if len(heap) == k:
                tau = -heap[0][0]

            if node.is_leaf:
                continue

            # Near side is pushed last so it is explored first
            if d < node.threshold:
                order = [(node.outside, False), (node.inside, True)]
            else:
                order = [(node.inside, True), (node.outside, False)]
            for child, is_inside in order:
                if child is not None:
                    stack.append((child, d, node.threshold, is_inside))

        found = sorted((-neg_d, seq, index) for neg_d, seq, index in heap)
        return [self.items[i] for _, _, i in found], [d for d, _, _ in found]
