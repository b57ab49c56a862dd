from __future__ import annotations

import pytest

from lineweave.config import Config
from lineweave.edit_sink import EditSink
from lineweave.indenter import Indenter, inline_width, is_access_specifier_line, match_brackets
from lineweave.layout import successors
from lineweave.search import BestFirstSearch
from lineweave.types import LineNode, LogicalLine, Token

from _tokens import lex, line_of


def _advance(indenter: Indenter, state, count: int) -> None:
    for _ in range(count):
        indenter.add_token_to_state(state, newline=False)


def test_match_brackets_skips_unmatched():
    tokens = lex("f(a[1]) )")
    open_to_close, close_to_open = match_brackets(tokens)

    assert open_to_close == {1: 6, 3: 5}
    assert close_to_open == {6: 1, 5: 3}


def test_initial_state_places_first_token():
    indenter = Indenter(Config(), line_of("int a;"))
    state = indenter.initial_state(2)

    assert state.next_index == 1
    assert state.column == 5
    assert state.outer.indent == 6
    assert state.outer.last_space == 2
    assert state.stack == []


def test_cannot_break_before_first_token_or_closing_paren():
    indenter = Indenter(Config(), line_of("f(a)"))
    state = indenter.initial_state(0)

    assert indenter.can_break(state) is False  # before "("
    _advance(indenter, state, 2)
    assert state.next_index == 3
    assert indenter.can_break(state) is False  # before ")"


def test_cannot_break_before_binary_operator_by_default():
    indenter = Indenter(Config(), line_of("a + b"))
    state = indenter.initial_state(0)

    assert indenter.can_break(state) is False
    _advance(indenter, state, 1)
    assert indenter.can_break(state) is True


def test_break_before_binary_operator_reverses_the_rule():
    indenter = Indenter(Config(break_before_binary_operators=True), line_of("a + b"))
    state = indenter.initial_state(0)

    assert indenter.can_break(state) is True
    _advance(indenter, state, 1)
    assert indenter.can_break(state) is False


def test_annotator_can_forbid_all_breaks():
    tokens = (
        Token("a", "identifier", can_break_before=False),
        Token("+", "operator", offset=2, whitespace_before=1),
        Token("b", "identifier", offset=4, whitespace_before=1, can_break_before=False),
    )
    line = LogicalLine(nodes=tuple(LineNode(i, t) for i, t in enumerate(tokens)))
    indenter = Indenter(Config(column_limit=2), line)
    state = indenter.initial_state(0)

    while not indenter.is_finished(state):
        assert indenter.can_break(state) is False
        indenter.add_token_to_state(state, newline=False)
    assert state.column == 5


def test_must_break_after_line_comment():
    indenter = Indenter(Config(), line_of("a // note\nb"))
    state = indenter.initial_state(0)
    _advance(indenter, state, 1)

    assert indenter.must_break(state) is True
    assert indenter.can_break(state) is True


def test_annotated_must_break_is_honoured():
    tokens = (Token("a", "identifier"), Token("b", "identifier", offset=2, whitespace_before=1, must_break_before=True))
    line = LogicalLine(nodes=tuple(LineNode(i, t) for i, t in enumerate(tokens)))
    indenter = Indenter(Config(), line)

    assert indenter.must_break(indenter.initial_state(0)) is True


def test_node_must_break_is_honoured():
    tokens = lex("a b")
    line = LogicalLine(nodes=(LineNode(0, tokens[0]), LineNode(1, tokens[1], must_break_before=True)))
    indenter = Indenter(Config(), line)

    assert indenter.must_break(indenter.initial_state(0)) is True


def test_no_break_after_opening_paren_aligns_contents():
    indenter = Indenter(Config(), line_of("foo(a, b)"))
    state = indenter.initial_state(0)
    _advance(indenter, state, 2)

    assert state.paren_level == 1
    assert state.frame.indent == 4
    assert state.frame.last_space == 4


def test_break_after_opening_paren_uses_continuation_indent():
    cfg = Config()
    indenter = Indenter(cfg, line_of("foo(a, b)"))
    state = indenter.initial_state(0)
    _advance(indenter, state, 1)

    penalty = indenter.add_token_to_state(state, newline=True)

    assert state.column == 5
    assert penalty == cfg.penalty_first_break_at_level + cfg.penalty_break_before_first_call_parameter
    assert state.outer.break_before_parameter is True


def test_closing_paren_pops_the_frame():
    indenter = Indenter(Config(), line_of("foo(a)"))
    state = indenter.initial_state(0)
    _advance(indenter, state, 3)

    assert indenter.is_finished(state)
    assert state.stack == []
    assert state.paren_level == 0


def test_avoided_bin_packing_forces_one_parameter_per_line():
    cfg = Config(column_limit=20, bin_pack_arguments=False)
    indenter = Indenter(cfg, line_of("foo(argA, argB, argC);"))
    state = indenter.initial_state(0)
    _advance(indenter, state, 1)

    assert state.frame.avoid_bin_packing is True
    assert state.frame.break_before_parameter is True
    _advance(indenter, state, 2)
    assert indenter.must_break(state) is True


def test_avoided_bin_packing_on_one_line_forbids_later_breaks():
    cfg = Config(bin_pack_arguments=False)
    indenter = Indenter(cfg, line_of("foo(a, b, c);"))
    state = indenter.initial_state(0)
    _advance(indenter, state, 5)

    assert state.frame.no_line_break is True
    assert indenter.can_break(state) is False


def test_excess_characters_are_penalised():
    cfg = Config(column_limit=5)
    indenter = Indenter(cfg, line_of("abc defg"))
    state = indenter.initial_state(0)

    penalty = indenter.add_token_to_state(state, newline=False)

    assert penalty == 3 * cfg.penalty_excess_character


def test_directive_lines_reserve_room_for_escaped_newline():
    tokens = lex("#define X 1")
    line = LogicalLine(nodes=tuple(LineNode(i, t) for i, t in enumerate(tokens)), in_pp_directive=True)
    indenter = Indenter(Config(column_limit=40), line)

    assert indenter.column_limit() == 38
    assert indenter.newline_text(1, 2) == " \\\n  "


def test_adding_past_the_end_raises():
    indenter = Indenter(Config(), line_of("a"))
    state = indenter.initial_state(0)

    with pytest.raises(RuntimeError):
        indenter.add_token_to_state(state, newline=False)


def test_edits_are_only_emitted_outside_dry_run():
    source = "a  +  b"
    sink = EditSink()
    indenter = Indenter(Config(), line_of(source), sink=sink)

    state = indenter.initial_state(0, dry_run=True)
    _advance(indenter, state, 2)
    assert len(sink) == 0

    state = indenter.initial_state(0, dry_run=False)
    indenter.add_token_to_state(state, newline=False, dry_run=False)
    indenter.add_token_to_state(state, newline=False, dry_run=False)
    assert sink.apply(source) == "a + b"


def test_max_depth_counts_nested_brackets():
    indenter = Indenter(Config(), line_of("f(g(h[1]))"))

    assert indenter.max_depth() == 3


def test_inline_width_rejects_line_comments():
    assert inline_width([line_of("return x;")]) == 10
    assert inline_width([line_of("return x; // note")]) is None


def test_access_specifier_line_detection():
    assert is_access_specifier_line(line_of("public:"))
    assert not is_access_specifier_line(line_of("public int;"))


def test_multiline_token_is_scored_by_its_first_line():
    indenter = Indenter(Config(column_limit=10), line_of("x /* ab\n" + "y" * 30 + " */"))
    state = indenter.initial_state(0)

    penalty = indenter.add_token_to_state(state, newline=False)

    assert penalty == 0
    # The column continues from the end of the last physical line.
    assert state.column == 33
    assert state.outer.break_before_parameter is True


def test_frame_stack_tracks_open_brackets_along_chosen_path():
    indenter = Indenter(Config(column_limit=12), line_of("foo(g(a[1], bb), cc);"))
    tokens = indenter.tokens
    result = BestFirstSearch(
        expand=lambda s: successors(indenter, s), is_goal=indenter.is_finished
    ).run(indenter.initial_state(0))
    assert result is not None

    def open_count(state) -> int:
        seen = tokens[: state.next_index]
        return sum(1 for t in seen if t.is_opening) - sum(1 for t in seen if t.is_closing)

    state = indenter.initial_state(0)
    for newline in result.decisions:
        assert len(state.stack) == state.paren_level == open_count(state)
        indenter.add_token_to_state(state, newline)
    assert len(state.stack) == state.paren_level == open_count(state) == 0
    assert any(result.decisions)
