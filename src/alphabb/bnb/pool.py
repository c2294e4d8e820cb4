"""
Open Node Pool

A min-heap of `BBNode` ordered by `(priority, node_id)`. Best-first pops the
heap top; depth-first scans for the deepest node (earliest `node_id` among
equals) and re-heapifies. The pool is the only owner of open nodes; a popped
node is no longer referenced by it.
"""

from __future__ import annotations

import heapq
from typing import Iterator, List

from ..constants import NodeSelection
from .node import BBNode


class NodePool:
    def __init__(self, selection: NodeSelection = NodeSelection.BEST_FIRST, hybrid_interval: int = 10):
        self.selection = NodeSelection(selection)
        self.hybrid_interval = max(1, int(hybrid_interval))
        self._heap: List[BBNode] = []
        self._pops = 0

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)

    def __iter__(self) -> Iterator[BBNode]:
        return iter(self._heap)

    def push(self, node: BBNode) -> None:
        heapq.heappush(self._heap, node)

    def pop(self) -> BBNode:
        """Select and remove the next node according to the selection policy."""
        if not self._heap:
            raise IndexError("pop from an empty node pool")
        counter = self._pops
        self._pops += 1

        if self.selection == NodeSelection.BEST_FIRST:
            return heapq.heappop(self._heap)
        if self.selection == NodeSelection.HYBRID and counter % self.hybrid_interval == 0:
            return heapq.heappop(self._heap)
        return self._pop_deepest()

    def _pop_deepest(self) -> BBNode:
        best_idx = 0
        best = self._heap[0]
        for i, node in enumerate(self._heap):
            if node.depth > best.depth or (
                node.depth == best.depth and node.node_id < best.node_id
            ):
                best_idx = i
                best = node
        self._heap.pop(best_idx)
        heapq.heapify(self._heap)
        return best

    def min_bound(self) -> float:
        """Smallest inherited bound among open nodes (+inf when empty)."""
        if not self._heap:
            return float("inf")
        return self._heap[0].priority

    def prune(self, threshold: float) -> int:
        """Drop nodes whose bound is at least ``threshold``; returns how many."""
        before = len(self._heap)
        self._heap = [n for n in self._heap if n.priority < threshold]
        heapq.heapify(self._heap)
        return before - len(self._heap)
