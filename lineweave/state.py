"""Search state for laying out a single logical line.

A :class:`SearchState` describes the layout decided so far: the column the
next token would start at, which token comes next, and a stack of
:class:`LevelFrame` values, one per currently open bracket. The bottom-most
frame never belongs to a bracket; it holds the bookkeeping of the line itself
so that the stack of bracket frames is empty at the start and the end of a
line.

States are totally ordered so that the search can deduplicate them. Two
states that compare equal are interchangeable: every continuation of one is a
valid continuation of the other at the same cost.
"""
from __future__ import annotations
from dataclasses import astuple, dataclass, field, replace
from typing import List, Tuple


@dataclass
class LevelFrame:
    """
    Layout bookkeeping for one nesting level.

    Fields are declared in comparison order; two frames compare by the tuple
    of their fields.

    Attributes:
        indent: Column continuation lines of this level start at.
        last_space: Column right after the last space; closing brackets and
            nested levels align relative to it.
        first_less_less: Column of the first ``<<`` of a stream chain, 0 if
            none has been seen.
        break_before_closing_brace: The closing brace must go on its own line.
        question_column: Column of a ``?`` in a conditional expression.
        avoid_bin_packing: Once broken, put one parameter per line.
        break_before_parameter: A line break happened inside this level, so
            the next parameter must start on a new line when bin-packing is
            avoided.
        no_line_break: No line break is allowed anywhere in this level.
        colon_pos: Column of the colon a continuation aligns with.
        start_of_function_call: Start column of the current call expression.
        start_of_array_subscripts: Column of the first ``[`` of a subscript
            chain.
        qualifier_continuation: Column a name following ``::`` aligns with.
        call_continuation: Column member-access continuations align with.
        variable_pos: Column of the start of the declared name.
        contains_line_break: A line break has been inserted in this level.
        contains_unwrapped_builder: Set when a nested builder-style call was
            kept on the current line.
    """
    indent: int
    last_space: int
    first_less_less: int = 0
    break_before_closing_brace: bool = False
    question_column: int = 0
    avoid_bin_packing: bool = False
    break_before_parameter: bool = False
    no_line_break: bool = False
    colon_pos: int = 0
    start_of_function_call: int = 0
    start_of_array_subscripts: int = 0
    qualifier_continuation: int = 0
    call_continuation: int = 0
    variable_pos: int = 0
    contains_line_break: bool = False
    contains_unwrapped_builder: bool = False

    def key(self) -> Tuple:
        return astuple(self)

    def __lt__(self, other: "LevelFrame") -> bool:
        return self.key() < other.key()


@dataclass
class SearchState:
    """
    Partial layout of one logical line.

    Attributes:
        column: Column at which the next token would start on the current line.
        next_index: Index (into the line's nodes) of the next token to place.
        paren_level: Number of currently open brackets.
        start_of_line_level: Bracket depth at the start of the current
            physical line.
        lowest_level_on_line: Lowest bracket depth seen on the current
            physical line.
        line_contains_continued_for_loop: The line holds a for-loop header
            that has already been broken.
        start_of_string_literal: Column of the first of a run of adjacent
            string literals, 0 outside such a run.
        outer: Frame describing the line itself.
        stack: Frames of the currently open brackets, innermost last.
        ignore_stack_for_comparison: When set, the frames are not considered
            when ordering states. This prunes the search space for very long
            or deeply nested lines at the cost of optimality.
        first_indent: Column of the first token of the line.
    """
    column: int
    next_index: int
    outer: LevelFrame
    paren_level: int = 0
    start_of_line_level: int = 0
    lowest_level_on_line: int = 0
    line_contains_continued_for_loop: bool = False
    start_of_string_literal: int = 0
    stack: List[LevelFrame] = field(default_factory=list)
    ignore_stack_for_comparison: bool = False
    first_indent: int = 0

    @property
    def frame(self) -> LevelFrame:
        """Innermost frame; the line frame if no bracket is open."""
        return self.stack[-1] if self.stack else self.outer

    @property
    def frames(self) -> List[LevelFrame]:
        return [self.outer, *self.stack]

    def clone(self) -> "SearchState":
        return replace(
            self,
            outer=replace(self.outer),
            stack=[replace(f) for f in self.stack],
        )

    def key(self) -> Tuple:
        prefix = (
            self.next_index,
            self.column,
            self.line_contains_continued_for_loop,
            self.paren_level,
            self.start_of_line_level,
            self.lowest_level_on_line,
            self.start_of_string_literal,
        )
        if self.ignore_stack_for_comparison:
            return prefix
        return prefix + tuple(f.key() for f in self.frames)

    def __lt__(self, other: "SearchState") -> bool:
        return self.key() < other.key()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchState):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())
