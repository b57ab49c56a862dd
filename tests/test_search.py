from __future__ import annotations

from typing import Dict, List, Tuple

from lineweave.search import BestFirstSearch, SearchNode
from lineweave.state import LevelFrame, SearchState


def _state(column: int = 0, next_index: int = 1, **frame_fields) -> SearchState:
    return SearchState(column=column, next_index=next_index, outer=LevelFrame(indent=4, last_space=0, **frame_fields))


def test_frames_order_by_field_tuple():
    assert LevelFrame(indent=2, last_space=9) < LevelFrame(indent=3, last_space=0)
    assert LevelFrame(indent=2, last_space=0) < LevelFrame(indent=2, last_space=0, no_line_break=True)


def test_states_with_equal_keys_are_equal_and_hash_alike():
    a, b = _state(), _state()

    assert a == b
    assert hash(a) == hash(b)
    assert len({a, b}) == 1


def test_frames_take_part_in_comparison():
    a = _state()
    b = _state(break_before_parameter=True)

    assert a != b
    assert a < b


def test_too_complex_states_ignore_frames():
    a = _state()
    b = _state(break_before_parameter=True)
    a.ignore_stack_for_comparison = True
    b.ignore_stack_for_comparison = True

    assert a == b


def test_clone_does_not_share_frames():
    original = _state()
    original.stack.append(LevelFrame(indent=8, last_space=4))
    copy = original.clone()

    copy.frame.no_line_break = True
    copy.outer.indent = 99

    assert original.frame.no_line_break is False
    assert original.outer.indent == 4
    assert copy.frames[0] is copy.outer


def test_search_node_path_lists_decisions_in_order():
    root = SearchNode(state=0, penalty=0)
    child = SearchNode(state=1, penalty=2, decision="a", parent=root)
    leaf = SearchNode(state=2, penalty=3, decision="b", parent=child)

    assert leaf.path() == ["a", "b"]
    assert root.path() == []


GRAPH: Dict[str, List[Tuple[str, int, str]]] = {
    "start": [("cheap-first", 1, "mid"), ("direct", 10, "goal")],
    "mid": [("to-goal", 2, "goal")],
    "goal": [],
}


def test_search_returns_cheapest_path():
    search = BestFirstSearch(expand=lambda s: GRAPH[s], is_goal=lambda s: s == "goal")

    result = search.run("start")

    assert result is not None
    assert result.penalty == 3
    assert result.decisions == ["cheap-first", "to-goal"]


def test_ties_go_to_the_first_discovered_path():
    graph = {"s": [("first", 1, "g"), ("second", 1, "g")], "g": []}
    search = BestFirstSearch(expand=lambda s: graph[s], is_goal=lambda s: s == "g")

    assert search.run("s").decisions == ["first"]


def test_states_are_expanded_once():
    calls: List[int] = []

    def expand(state: int):
        calls.append(state)
        if state >= 3:
            return []
        # Both successors lead to the same state.
        return [("x", 1, state + 1), ("y", 1, state + 1)]

    search = BestFirstSearch(expand=expand, is_goal=lambda s: False)

    assert search.run(0) is None
    assert calls == [0, 1, 2, 3]


def test_expansion_cap_gives_up():
    search = BestFirstSearch(expand=lambda s: [("next", 1, s + 1)], is_goal=lambda s: s == 100, max_expansions=10)

    assert search.run(0) is None
