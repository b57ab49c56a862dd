"""Generic best-first search over layout states.

The search is deliberately independent of what a state means. The caller
supplies an ``expand`` callable returning the successors of a state (each with
the decision that produced it and its incremental cost) and an ``is_goal``
predicate. Nodes are popped in order of ``(total_penalty, insertion_count)``,
which makes the result deterministic: among equally cheap paths, the one
discovered first wins. States are deduplicated on pop, so a state reached
again later (and therefore at a cost no lower than the first time) is skipped.
"""
from __future__ import annotations
from dataclasses import dataclass
import heapq
import logging
from typing import Callable, Generic, Hashable, Iterable, List, Optional, Set, Tuple, TypeVar

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Hashable)
D = TypeVar("D")


@dataclass(frozen=True)
class SearchNode(Generic[S, D]):
    """A reached state plus a link to the node it was expanded from."""
    state: S
    penalty: int
    decision: Optional[D] = None
    parent: Optional["SearchNode[S, D]"] = None

    def path(self) -> List[D]:
        """Decisions from the root to this node, in order."""
        decisions: List[D] = []
        node: Optional[SearchNode[S, D]] = self
        while node is not None and node.parent is not None:
            decisions.append(node.decision)
            node = node.parent
        decisions.reverse()
        return decisions


@dataclass(frozen=True)
class SearchResult(Generic[S, D]):
    penalty: int
    decisions: List[D]
    state: S
    expanded: int


Expand = Callable[[S], Iterable[Tuple[D, int, S]]]


class BestFirstSearch(Generic[S, D]):
    """
    Cheapest-first exploration with a visited set.

    Attributes:
        expand: Returns ``(decision, cost, successor)`` triples for a state.
        is_goal: Tells whether a state is complete.
        max_expansions: Optional cap on popped nodes; ``None`` means unbounded.
    """

    def __init__(self, expand: Expand, is_goal: Callable[[S], bool], max_expansions: Optional[int] = None):
        self.expand = expand
        self.is_goal = is_goal
        self.max_expansions = max_expansions

    def run(self, initial: S) -> Optional[SearchResult[S, D]]:
        """
        Searches from ``initial`` until a goal state is popped.

        Returns:
            The cheapest goal found, or ``None`` if the queue ran dry (or the
            expansion cap was hit) before any goal was popped.
        """
        count = 0
        queue: List[Tuple[int, int, SearchNode[S, D]]] = [(0, count, SearchNode(initial, 0))]
        seen: Set[S] = set()
        expanded = 0

        while queue:
            penalty, _, node = heapq.heappop(queue)
            if self.is_goal(node.state):
                return SearchResult(penalty, node.path(), node.state, expanded)
            if node.state in seen:
                continue
            seen.add(node.state)
            expanded += 1
            if self.max_expansions is not None and expanded > self.max_expansions:
                logger.debug("Search gave up after %d expansions", expanded - 1)
                return None

            for decision, cost, successor in self.expand(node.state):
                count += 1
                child = SearchNode(successor, penalty + cost, decision, node)
                heapq.heappush(queue, (child.penalty, count, child))

        return None
