"""Transition function of the layout search.

:class:`Indenter` knows, for one logical line, how placing the next token
either on the current physical line or after a line break changes a
:class:`~lineweave.state.SearchState`, and what that decision costs. The
search driver calls it speculatively (``dry_run=True``) while exploring and
once more for every token of the winning path with ``dry_run=False``, which is
the only mode in which edits are emitted.

Brackets are tracked only when both ends are on the same logical line; a
block brace that ends a line (``void f() {``) is an ordinary token here.
"""
from __future__ import annotations
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .config import Config
from .edit_sink import EditSink
from .state import LevelFrame, SearchState
from .types import Edit, LineForest, LineNode, LogicalLine, Token

logger = logging.getLogger(__name__)

ChildFormatter = Callable[[List[LogicalLine], int], None]

ACCESS_SPECIFIERS = frozenset({"public", "protected", "private"})


def match_brackets(tokens: Sequence[Token]) -> Tuple[Dict[int, int], Dict[int, int]]:
    """Pairs opening and closing brackets of one line by index.

    Unmatched brackets are left out of both maps.
    """
    open_to_close: Dict[int, int] = {}
    close_to_open: Dict[int, int] = {}
    pending: List[int] = []
    for i, tok in enumerate(tokens):
        if tok.is_opening:
            pending.append(i)
        elif tok.is_closing and pending:
            opener = pending.pop()
            open_to_close[opener] = i
            close_to_open[i] = opener
    return open_to_close, close_to_open


def is_access_specifier_line(line: LogicalLine) -> bool:
    first = line.first
    return first.kind == "keyword" and first.text in ACCESS_SPECIFIERS and line.last.kind == "colon"


class Indenter:
    """
    Computes successor states for the layout search over one logical line.

    Attributes:
        cfg: The active style.
        line: The logical line being laid out.
        forest: Arena used to resolve nested lines; optional for lines
            without inline bodies.
        sink: Destination of edits in non-dry-run mode.
        child_formatter: Called with nested lines (and their indent) that do
            not fit inline; only invoked in non-dry-run mode.
    """

    def __init__(
        self,
        cfg: Config,
        line: LogicalLine,
        forest: Optional[LineForest] = None,
        sink: Optional[EditSink] = None,
        child_formatter: Optional[ChildFormatter] = None,
    ):
        self.cfg = cfg
        self.line = line
        self.forest = forest
        self.sink = sink
        self.child_formatter = child_formatter
        self.tokens = line.tokens
        self._open_to_close, self._close_to_open = match_brackets(self.tokens)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def column_limit(self) -> int:
        # Directives reserve room for the escaped-newline marker.
        if self.line.in_pp_directive:
            return self.cfg.column_limit - 2
        return self.cfg.column_limit

    def max_depth(self) -> int:
        depth = deepest = 0
        for i in range(len(self.tokens)):
            if i in self._open_to_close:
                depth += 1
                deepest = max(deepest, depth)
            elif i in self._close_to_open:
                depth -= 1
        return deepest

    def initial_state(self, first_indent: int, dry_run: bool = True, too_complex: bool = False) -> SearchState:
        """State with the first token already placed at ``first_indent``."""
        outer = LevelFrame(
            indent=first_indent + self.cfg.continuation_indent_width,
            last_space=first_indent,
        )
        state = SearchState(
            column=first_indent,
            next_index=0,
            outer=outer,
            ignore_stack_for_comparison=too_complex,
            first_indent=first_indent,
        )
        self._move_state_to_next_token(state, dry_run)
        return state

    def is_finished(self, state: SearchState) -> bool:
        return state.next_index >= len(self.tokens)

    def can_break(self, state: SearchState) -> bool:
        index = state.next_index
        if index == 0 or index >= len(self.tokens):
            return False
        if self.must_break(state):
            return True
        tok = self.tokens[index]
        prev = self.tokens[index - 1]
        if not tok.can_break_before:
            return False
        if state.frame.no_line_break:
            return False
        if tok.kind in ("comma", "semi"):
            return False
        if index in self._close_to_open and tok.kind != "r_brace":
            return False
        if self.cfg.break_before_binary_operators:
            if _is_binary_operator(prev):
                return False
        elif _is_binary_operator(tok):
            return False
        return True

    def must_break(self, state: SearchState) -> bool:
        index = state.next_index
        if index == 0 or index >= len(self.tokens):
            return False
        tok = self.tokens[index]
        prev = self.tokens[index - 1]
        frame = state.frame
        if tok.must_break_before or self.line.nodes[index].must_break_before:
            return True
        if prev.is_line_comment:
            return True
        if tok.is_comment and tok.newlines_before > 0:
            return True
        if index in self._close_to_open and tok.kind == "r_brace" and frame.break_before_closing_brace:
            return True
        if prev.kind == "comma" and frame.break_before_parameter and frame.avoid_bin_packing:
            return True
        if prev.kind == "semi" and state.line_contains_continued_for_loop and state.paren_level > 0:
            return True
        if tok.is_member_access and prev.kind == "r_paren":
            if frame.call_continuation != 0:
                return True
            if frame.break_before_parameter and frame.contains_unwrapped_builder:
                return True
        return False

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------
    def add_token_to_state(self, state: SearchState, newline: bool, dry_run: bool = True) -> int:
        """
        Places the next token and returns the incremental penalty.

        ``state`` is updated in place; callers clone it first when branching.

        Raises:
            RuntimeError: If no token is left to place.
        """
        if self.is_finished(state):
            raise RuntimeError("No token left to place on this line")
        if newline:
            penalty = self._add_token_on_new_line(state, dry_run)
        else:
            penalty = 0
            self._add_token_on_current_line(state, dry_run)
        return penalty + self._move_state_to_next_token(state, dry_run)

    def _add_token_on_current_line(self, state: SearchState, dry_run: bool) -> None:
        index = state.next_index
        tok = self.tokens[index]
        prev = self.tokens[index - 1]
        frame = state.frame
        spaces = tok.spaces_before
        if not dry_run:
            self._emit(tok, " " * spaces, state.column + spaces)

        if (index - 1) in self._open_to_close and not self._is_block_brace(index - 1):
            # Align the contents with the first token after the bracket.
            frame.indent = state.column + spaces
            frame.last_space = state.column + spaces
        elif prev.kind == "comma":
            frame.last_space = state.column + spaces
        if frame.avoid_bin_packing and prev.kind == "comma":
            frame.no_line_break = True
        if tok.is_member_access and prev.kind == "r_paren":
            frame.contains_unwrapped_builder = True
        state.column += spaces

    def _add_token_on_new_line(self, state: SearchState, dry_run: bool) -> int:
        index = state.next_index
        tok = self.tokens[index]
        prev = self.tokens[index - 1]
        frame = state.frame
        cfg = self.cfg

        penalty = tok.split_penalty
        if not frame.contains_line_break:
            penalty += cfg.penalty_first_break_at_level
        if prev.kind == "l_paren" and (index - 1) in self._open_to_close:
            penalty += cfg.penalty_break_before_first_call_parameter
        if tok.text == "<<" and frame.first_less_less == 0:
            penalty += cfg.penalty_break_first_less_less
        if self._breaks_return_type(state):
            penalty += cfg.penalty_return_type_on_its_own_line
        if prev.kind == "assignment":
            penalty += cfg.penalty_break_assignment

        column = self._new_line_column(state)
        if tok.is_member_access and frame.call_continuation == 0:
            frame.call_continuation = column
        if tok.kind == "colon" and frame.question_column == 0 and state.paren_level == 0:
            frame.colon_pos = column

        frame.contains_line_break = True
        for enclosing in state.frames[:-1]:
            enclosing.break_before_parameter = True
        if frame.avoid_bin_packing:
            frame.break_before_parameter = True
        if index not in self._close_to_open:
            frame.last_space = column
        if self.tokens[0].kind == "keyword" and self.tokens[0].text == "for" and state.paren_level > 0:
            state.line_contains_continued_for_loop = True

        state.column = column
        state.start_of_line_level = state.paren_level
        state.lowest_level_on_line = state.paren_level

        if not dry_run:
            newlines = max(1, min(tok.newlines_before, cfg.max_empty_lines_to_keep + 1))
            self._emit(tok, self.newline_text(newlines, column), column)
        return penalty

    def _new_line_column(self, state: SearchState) -> int:
        index = state.next_index
        tok = self.tokens[index]
        prev = self.tokens[index - 1]
        frame = state.frame
        frames = state.frames

        if index in self._close_to_open:
            return frames[-2].last_space if len(frames) >= 2 else frame.indent
        if tok.kind in ("question", "colon") and frame.question_column:
            return frame.question_column
        if tok.text == "<<" and frame.first_less_less:
            return frame.first_less_less
        if tok.is_member_access and frame.call_continuation:
            return frame.call_continuation
        if tok.kind == "string" and prev.kind == "string" and state.start_of_string_literal:
            return state.start_of_string_literal
        if tok.kind == "l_square" and tok.bracket == "subscript" and frame.start_of_array_subscripts:
            return frame.start_of_array_subscripts
        if prev.kind == "scope" and frame.qualifier_continuation:
            return frame.qualifier_continuation
        if tok.starts_name and prev.kind == "comma" and frame.variable_pos:
            return frame.variable_pos
        if self._breaks_return_type(state) and self.line.must_be_declaration:
            return state.first_indent
        if prev.kind == "comma" and frame.colon_pos and state.paren_level == 0:
            return frame.colon_pos + 2
        return frame.indent

    def _breaks_return_type(self, state: SearchState) -> bool:
        tok = self.tokens[state.next_index]
        prev = self.tokens[state.next_index - 1]
        return tok.starts_name and state.paren_level == 0 and prev.kind != "comma"

    def _move_state_to_next_token(self, state: SearchState, dry_run: bool) -> int:
        index = state.next_index
        node = self.line.nodes[index]
        tok = node.token
        prev = self.tokens[index - 1] if index > 0 else None
        frame = state.frame
        start = state.column
        limit = self.column_limit()
        penalty = 0

        if tok.text == "<<" and frame.first_less_less == 0:
            frame.first_less_less = start
        if tok.kind == "question":
            frame.question_column = start
        if tok.kind == "l_square" and tok.bracket == "subscript" and frame.start_of_array_subscripts == 0:
            frame.start_of_array_subscripts = start
        if tok.kind == "scope" and prev is not None and frame.qualifier_continuation == 0:
            frame.qualifier_continuation = max(start - prev.width, 0) + self.cfg.continuation_indent_width
        if tok.starts_name and frame.variable_pos == 0:
            frame.variable_pos = start
        if (
            tok.kind == "l_paren"
            and prev is not None
            and prev.kind == "identifier"
            and index >= 2
            and self.tokens[index - 2].is_member_access
        ):
            frame.start_of_function_call = max(start - prev.width - self.tokens[index - 2].width, 0)
        if tok.kind == "string":
            if not (prev is not None and prev.kind == "string" and state.start_of_string_literal):
                state.start_of_string_literal = start
        else:
            state.start_of_string_literal = 0

        if tok.is_multiline:
            # Only the first physical line of the token is scored.
            first_end = start + tok.width
            if first_end > limit:
                penalty += self.cfg.penalty_excess_character * (first_end - limit)
            state.column = tok.last_line_width
            for f in state.frames:
                f.break_before_parameter = True
        elif self._should_split_string(tok, start):
            penalty += self._split_string(state, tok, start, dry_run)
        else:
            state.column = start + tok.width
            if state.column > limit:
                penalty += self.cfg.penalty_excess_character * (state.column - limit)

        if index in self._open_to_close:
            self._push_frame(state, index)
        elif index in self._close_to_open:
            if not state.stack:
                raise RuntimeError(f"Closing bracket '{tok.text}' without an open level frame")
            state.stack.pop()
            state.paren_level -= 1
            state.lowest_level_on_line = min(state.lowest_level_on_line, state.paren_level)

        state.next_index += 1
        if node.children:
            penalty += self._place_children(state, node, dry_run)
        return penalty

    def _push_frame(self, state: SearchState, index: int) -> None:
        tok = self.tokens[index]
        frame = state.frame
        avoid_bin_packing = False
        if self._is_block_brace(index):
            new_indent = frame.last_space + self.cfg.indent_width
        else:
            new_indent = max(frame.last_space, frame.start_of_function_call) + self.cfg.continuation_indent_width
            if tok.kind == "l_paren":
                if self.line.must_be_declaration:
                    avoid_bin_packing = not self.cfg.bin_pack_parameters
                else:
                    avoid_bin_packing = not self.cfg.bin_pack_arguments
        new_frame = LevelFrame(
            indent=new_indent,
            last_space=frame.last_space,
            avoid_bin_packing=avoid_bin_packing,
            no_line_break=frame.no_line_break,
        )
        if avoid_bin_packing:
            closing = self._open_to_close[index]
            if state.column + self._span_width(index, closing) > self.column_limit():
                new_frame.break_before_parameter = True
        state.stack.append(new_frame)
        state.paren_level += 1

    def _is_block_brace(self, index: int) -> bool:
        tok = self.tokens[index]
        if tok.kind != "l_brace":
            return False
        return tok.bracket == "block" or bool(self.line.nodes[index].children)

    def _span_width(self, opening: int, closing: int) -> int:
        return sum(t.spaces_before + t.width for t in self.tokens[opening + 1 : closing + 1])

    # ------------------------------------------------------------------
    # String literals
    # ------------------------------------------------------------------
    def _should_split_string(self, tok: Token, start: int) -> bool:
        # Applies whether or not a break precedes the literal.
        if not (self.cfg.break_string_literals and tok.kind == "string"):
            return False
        if start + tok.width <= self.column_limit():
            return False
        text = tok.text
        return len(text) > 2 and text[0] == '"' and text[-1] == '"' and " " in text[1:-1]

    def _split_string(self, state: SearchState, tok: Token, start: int, dry_run: bool) -> int:
        limit = self.column_limit()
        available = max(limit - start - 2, 1)
        inner = tok.text[1:-1]
        split_points: List[int] = []
        pos = 0
        while len(inner) - pos > available:
            cut = inner.rfind(" ", pos, pos + available)
            if cut < pos:
                break
            split_points.append(cut + 1)
            pos = cut + 1

        if not split_points:
            state.column = start + tok.width
            excess = max(state.column - limit, 0)
            return self.cfg.penalty_excess_character * excess

        if not dry_run:
            logger.debug("Splitting string literal at offset %d into %d parts", tok.offset, len(split_points) + 1)
            for point in split_points:
                self._emit_at(tok.offset + 1 + point, '"' + self.newline_text(1, start) + '"', start)
        state.column = start + len(inner) - pos + 2
        for f in state.frames:
            f.break_before_parameter = True
        penalty = self.cfg.penalty_break_string * len(split_points)
        if state.column > limit:
            penalty += self.cfg.penalty_excess_character * (state.column - limit)
        return penalty

    # ------------------------------------------------------------------
    # Nested lines
    # ------------------------------------------------------------------
    def _place_children(self, state: SearchState, node: LineNode, dry_run: bool) -> int:
        if self.forest is None:
            return 0
        children = self.forest.children_of(node)
        if not children:
            return 0
        width = inline_width(children)
        # Room for " }" after the inlined body.
        if width is not None and state.column + width + 2 <= self.column_limit():
            column = state.column
            for child in children:
                for i, child_node in enumerate(child.nodes):
                    child_tok = child_node.token
                    spaces = 1 if i == 0 else child_tok.spaces_before
                    column += spaces
                    if not dry_run:
                        self._emit(child_tok, " " * spaces, column)
                    column += child_tok.width
            state.column = column
            return 0

        state.frame.break_before_closing_brace = True
        if not dry_run and self.child_formatter is not None:
            self.child_formatter(children, state.frame.indent)
        return 0

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------
    def newline_text(self, newlines: int, column: int) -> str:
        if self.line.in_pp_directive:
            return " \\\n" * newlines + " " * column
        return "\n" * newlines + " " * column

    def _emit(self, tok: Token, text: str, column: int) -> None:
        if self.sink is not None:
            self.sink.add(Edit(tok.whitespace_start, tok.whitespace_before, text, column))

    def _emit_at(self, offset: int, text: str, column: int) -> None:
        if self.sink is not None:
            self.sink.add(Edit(offset, 0, text, column))


def inline_width(lines: Sequence[LogicalLine], in_directive: bool = False) -> Optional[int]:
    """Width of ``lines`` joined by single spaces, or None if they cannot be joined.

    Directive lines are only joinable when ``in_directive`` is set.
    """
    total = 0
    for line in lines:
        if (line.in_pp_directive and not in_directive) or line.unreachable:
            return None
        for i, node in enumerate(line.nodes):
            tok = node.token
            if node.children or tok.is_multiline or tok.is_line_comment:
                return None
            if i > 0 and (tok.must_break_before or node.must_break_before):
                return None
            total += (1 if i == 0 else tok.spaces_before) + tok.width
    return total


def _is_binary_operator(tok: Token) -> bool:
    # Stream operators are always broken before.
    if tok.text in ("<<", ">>"):
        return False
    if tok.kind == "operator":
        return True
    return tok.kind in ("less", "greater") and tok.bracket is None
