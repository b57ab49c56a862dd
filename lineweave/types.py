"""Core data model shared by the line builder and the layout search.

Tokens arrive already lexed and annotated. The line builder groups them into
:class:`LogicalLine` values stored in an arena (:class:`LineForest`), and the
layout search turns every logical line into a sequence of :class:`Edit`
records describing the whitespace that should precede each token.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterator, List, Literal, Optional, Tuple

__all__ = [
    "BracketKind",
    "TokenKind",
    "Token",
    "LineNode",
    "LogicalLine",
    "LineForest",
    "Edit",
]

TokenKind = Literal[
    "identifier",
    "keyword",
    "numeric",
    "string",
    "comment",
    "l_paren",
    "r_paren",
    "l_square",
    "r_square",
    "l_brace",
    "r_brace",
    "less",
    "greater",
    "comma",
    "semi",
    "colon",
    "question",
    "operator",
    "assignment",
    "period",
    "arrow",
    "scope",
    "hash",
    "unknown",
]

BracketKind = Literal["paren", "subscript", "template", "braced_init", "block"]

OPENING_KINDS = frozenset({"l_paren", "l_square", "l_brace"})
CLOSING_KINDS = frozenset({"r_paren", "r_square", "r_brace"})


@dataclass(frozen=True)
class Token:
    """
    A single annotated token of the input stream.

    Attributes:
        text: The token text exactly as it appears in the source buffer.
        kind: The lexical category assigned by the annotator.
        offset: Offset of the first character of ``text`` in the buffer.
        whitespace_before: Length of the original whitespace span that ends at
            ``offset``. The span is what an :class:`Edit` replaces.
        newlines_before: Number of line breaks inside that whitespace span.
            Escaped newlines (backslash-newline) are not counted, so a
            directive ends at the first token with ``newlines_before > 0``.
        spaces_before: Spaces required before the token when it shares a line
            with its predecessor.
        must_break_before: The annotator demands a line break before the token.
        can_break_before: The annotator allows a line break before the token.
        split_penalty: Base penalty for breaking before the token.
        bracket: Bracket classification for opening and closing brackets.
            ``None`` on a brace means the annotator could not decide between a
            block and a braced initializer.
        starts_name: The token starts the declared name of a declaration.
    """
    text: str
    kind: TokenKind
    offset: int = 0
    whitespace_before: int = 0
    newlines_before: int = 0
    spaces_before: int = 1
    must_break_before: bool = False
    can_break_before: bool = True
    split_penalty: int = 0
    bracket: Optional[BracketKind] = None
    starts_name: bool = False

    @property
    def is_opening(self) -> bool:
        if self.kind in OPENING_KINDS:
            return True
        return self.kind == "less" and self.bracket == "template"

    @property
    def is_closing(self) -> bool:
        if self.kind in CLOSING_KINDS:
            return True
        return self.kind == "greater" and self.bracket == "template"

    @property
    def is_comment(self) -> bool:
        return self.kind == "comment"

    @property
    def is_line_comment(self) -> bool:
        return self.kind == "comment" and self.text.startswith("//")

    @property
    def is_member_access(self) -> bool:
        return self.kind in ("period", "arrow")

    @property
    def is_multiline(self) -> bool:
        return "\n" in self.text

    @property
    def width(self) -> int:
        """Display width of the token's first physical line."""
        return len(self.text.split("\n", 1)[0])

    @property
    def last_line_width(self) -> int:
        return len(self.text.rsplit("\n", 1)[-1])

    @property
    def whitespace_start(self) -> int:
        return self.offset - self.whitespace_before

    @property
    def end(self) -> int:
        return self.offset + len(self.text)


@dataclass(frozen=True)
class LineNode:
    """One token of a logical line plus the arena indices of nested lines.

    ``children`` is non-empty for tokens that introduce an inline body, such as
    the opening brace of a lambda. ``must_break_before`` is set by the line
    builder on the first token after a directive that interrupted the line.
    """
    token_index: int
    token: Token
    children: Tuple[int, ...] = ()
    must_break_before: bool = False


@dataclass(frozen=True)
class LogicalLine:
    """A sequence of tokens that would be written on one line without a limit."""
    nodes: Tuple[LineNode, ...]
    level: int = 0
    in_pp_directive: bool = False
    must_be_declaration: bool = False
    unreachable: bool = False

    @property
    def tokens(self) -> Tuple[Token, ...]:
        return tuple(node.token for node in self.nodes)

    @property
    def first(self) -> Token:
        return self.nodes[0].token

    @property
    def last(self) -> Token:
        return self.nodes[-1].token

    def __len__(self) -> int:
        return len(self.nodes)


@dataclass
class LineForest:
    """
    Arena of logical lines produced by the line builder.

    Nested lines (inline bodies) are referenced from :class:`LineNode` objects
    by their index into ``lines``. ``roots`` lists the top-level lines in
    source order, preprocessor directive lines included.

    Attributes:
        lines: Every logical line, top-level and nested, in completion order.
        roots: Indices of the top-level lines in source order.
        structural_error: Set when unbalanced nesting was detected.
    """
    lines: List[LogicalLine] = field(default_factory=list)
    roots: List[int] = field(default_factory=list)
    structural_error: bool = False

    def line(self, index: int) -> LogicalLine:
        return self.lines[index]

    def iter_roots(self) -> Iterator[LogicalLine]:
        for index in self.roots:
            yield self.lines[index]

    def children_of(self, node: LineNode) -> List[LogicalLine]:
        return [self.lines[index] for index in node.children]


@dataclass(frozen=True)
class Edit:
    """Replacement of ``length`` characters at ``offset`` with ``text``.

    ``column`` is the column at which the following token starts once the
    replacement is applied.
    """
    offset: int
    length: int
    text: str
    column: int
