"""Per-line layout driver and the token-stream-to-edits entrypoint.

For every logical line the driver:

1. places the first token (blank lines clamped, indent derived from the
   line's level),
2. runs a best-first search over :class:`~lineweave.state.SearchState`
   values using the transitions provided by :class:`~lineweave.indenter.Indenter`,
3. replays the cheapest path in non-dry-run mode, which is when the edits for
   the line are emitted.

If the search cannot produce a path (it is capped for pathological lines),
the line is completed without any optional break. That completion always
exists because every state has at least one admissible successor.
"""
from __future__ import annotations
from dataclasses import dataclass
import logging
from typing import List, Optional, Sequence, Tuple

from tqdm import tqdm

from .config import Config
from .edit_sink import EditSink
from .indenter import Indenter, inline_width, is_access_specifier_line
from .line_builder import LineBuilder
from .search import BestFirstSearch
from .state import SearchState
from .types import Edit, LineForest, LogicalLine, Token

logger = logging.getLogger(__name__)

# Upper bound on popped search nodes per line before falling back.
MAX_EXPANSIONS = 100000


def successors(indenter: Indenter, state: SearchState) -> List[Tuple[bool, int, SearchState]]:
    """Expands ``state`` into its no-break and break successors."""
    out: List[Tuple[bool, int, SearchState]] = []
    if not indenter.must_break(state):
        nxt = state.clone()
        penalty = indenter.add_token_to_state(nxt, newline=False, dry_run=True)
        out.append((False, penalty, nxt))
    if indenter.can_break(state):
        nxt = state.clone()
        penalty = indenter.add_token_to_state(nxt, newline=True, dry_run=True)
        out.append((True, penalty, nxt))
    return out


class LineFormatter:
    """
    Lays out logical lines and emits their edits.

    Attributes:
        cfg: The active style.
        forest: Arena holding the lines (needed for nested bodies).
        sink: Destination of all edits.
        max_expansions: Search cap per line.
    """

    def __init__(self, cfg: Config, forest: LineForest, sink: EditSink, max_expansions: Optional[int] = MAX_EXPANSIONS):
        self.cfg = cfg
        self.forest = forest
        self.sink = sink
        self.max_expansions = max_expansions
        self.fallback_count = 0

    def line_indent(self, line: LogicalLine, base_indent: int = 0, base_level: int = 0) -> int:
        indent = base_indent + (line.level - base_level) * self.cfg.indent_width
        if is_access_specifier_line(line):
            indent += self.cfg.access_modifier_offset
        return max(indent, 0)

    def format_roots(self, lines: Sequence[LogicalLine], progress: bool = False) -> int:
        """
        Formats top-level lines in order.

        A `#define` whose body sits on the same line and fits within the limit
        is kept on one line instead of moving the body to a continuation line.
        """
        indices = range(len(lines))
        if progress:
            indices = tqdm(indices, desc="Formatting", unit="line")
        penalty = 0
        for i in indices:
            line = lines[i]
            following = lines[i + 1] if i + 1 < len(lines) else None
            if i > 0 and self._joins_define_body(lines[i - 1], line, following):
                penalty += self._format_define_body(lines[i - 1], line)
            else:
                penalty += self.format_root(line)
        return penalty

    def format_root(self, line: LogicalLine) -> int:
        """Formats a top-level line, including the placement of its first token."""
        if line.unreachable:
            return 0
        indent = self.line_indent(line)
        first = line.nodes[0]
        if first.token_index == 0:
            newlines = 0
        else:
            newlines = self._clamp_newlines(first.token)
        self._emit_first_token(line, newlines, indent)
        return self.format_line(line, indent)

    def format_line(self, line: LogicalLine, first_indent: int) -> int:
        """
        Finds and emits the cheapest layout of ``line``.

        The first token is assumed to be placed already at ``first_indent``.

        Returns:
            The total penalty of the emitted layout.
        """
        indenter = Indenter(self.cfg, line, self.forest, self.sink, child_formatter=self._format_children)
        too_complex = self.is_too_complex(indenter)
        initial = indenter.initial_state(first_indent, dry_run=True, too_complex=too_complex)

        search = BestFirstSearch(
            expand=lambda state: successors(indenter, state),
            is_goal=indenter.is_finished,
            max_expansions=self.max_expansions,
        )
        result = search.run(initial)
        if result is None:
            self.fallback_count += 1
            logger.warning(
                "Layout search exhausted for line starting at offset %d; keeping it unbroken", line.first.offset
            )
            decisions = self.fallback_decisions(indenter, initial)
        else:
            decisions = result.decisions
        return self.replay(indenter, first_indent, decisions, too_complex)

    def is_too_complex(self, indenter: Indenter) -> bool:
        line = indenter.line
        if len(line) > self.cfg.complexity_token_limit or indenter.max_depth() > self.cfg.complexity_depth_limit:
            logger.debug("Line at offset %d is too complex; ignoring level frames when comparing states", line.first.offset)
            return True
        return False

    @staticmethod
    def fallback_decisions(indenter: Indenter, initial: SearchState) -> List[bool]:
        """Breaks only where a break is mandatory."""
        state = initial.clone()
        decisions: List[bool] = []
        while not indenter.is_finished(state):
            newline = indenter.must_break(state)
            indenter.add_token_to_state(state, newline, dry_run=True)
            decisions.append(newline)
        return decisions

    @staticmethod
    def replay(indenter: Indenter, first_indent: int, decisions: Sequence[bool], too_complex: bool = False) -> int:
        """
        Re-applies ``decisions`` in non-dry-run mode, emitting edits.

        Raises:
            RuntimeError: If the decisions do not describe a valid path.
        """
        state = indenter.initial_state(first_indent, dry_run=False, too_complex=too_complex)
        penalty = 0
        for newline in decisions:
            if newline and not indenter.can_break(state):
                raise RuntimeError(f"Inadmissible break before token {state.next_index}")
            if not newline and indenter.must_break(state):
                raise RuntimeError(f"Missing mandatory break before token {state.next_index}")
            penalty += indenter.add_token_to_state(state, newline, dry_run=False)
        if not indenter.is_finished(state):
            raise RuntimeError("Layout path ended before the end of the line")
        return penalty

    def _joins_define_body(self, header: LogicalLine, body: LogicalLine, following: Optional[LogicalLine]) -> bool:
        if not (header.in_pp_directive and body.in_pp_directive) or header.unreachable or body.unreachable:
            return False
        if len(header) < 2 or header.first.kind != "hash" or header.nodes[1].token.text != "define":
            return False
        if body.first.kind == "hash" or body.first.newlines_before > 0:
            return False
        if following is not None and following.in_pp_directive and following.first.kind != "hash":
            return False
        header_width = inline_width([header], in_directive=True)
        body_width = inline_width([body], in_directive=True)
        if header_width is None or body_width is None:
            return False
        # inline_width counts one space before the first token of each line.
        return header_width - 1 + body_width <= self.cfg.column_limit - 2

    def _format_define_body(self, header: LogicalLine, body: LogicalLine) -> int:
        # The header starts at column 0; the body follows after one space.
        column = inline_width([header], in_directive=True)
        tok = body.first
        self.sink.add(Edit(tok.whitespace_start, tok.whitespace_before, " ", column))
        return self.format_line(body, column)

    def _format_children(self, children: List[LogicalLine], indent: int) -> None:
        base_level = min(child.level for child in children)
        for child in children:
            if child.unreachable:
                continue
            child_indent = self.line_indent(child, indent, base_level)
            self._emit_first_token(child, self._clamp_newlines(child.first), child_indent)
            self.format_line(child, child_indent)

    def _clamp_newlines(self, tok: Token) -> int:
        return max(1, min(tok.newlines_before, self.cfg.max_empty_lines_to_keep + 1))

    def _emit_first_token(self, line: LogicalLine, newlines: int, indent: int) -> None:
        tok = line.first
        # Lines continuing a directive need an escaped newline.
        if line.in_pp_directive and tok.kind != "hash":
            breaks = " \\\n" * newlines
        else:
            breaks = "\n" * newlines
        self.sink.add(Edit(tok.whitespace_start, tok.whitespace_before, breaks + " " * indent, indent))


@dataclass
class FormatResult:
    """Outcome of formatting one token stream."""
    edits: List[Edit]
    forest: LineForest
    penalty: int = 0
    fallback_count: int = 0

    @property
    def structural_error(self) -> bool:
        return self.forest.structural_error


def format_tokens(tokens: Sequence[Token], cfg: Optional[Config] = None, progress: bool = False) -> FormatResult:
    """
    Builds logical lines from ``tokens`` and lays out every top-level line.

    Args:
        tokens: The annotated token stream.
        cfg: The style; defaults to the LLVM preset.
        progress: Show a tqdm progress bar over top-level lines.

    Returns:
        A `FormatResult` with the edits in emission order.
    """
    cfg = cfg or Config()
    forest = LineBuilder(tokens, cfg).build()
    sink = EditSink()
    formatter = LineFormatter(cfg, forest, sink)

    penalty = formatter.format_roots(list(forest.iter_roots()), progress=progress)

    return FormatResult(edits=list(sink), forest=forest, penalty=penalty, fallback_count=formatter.fallback_count)


def format_source(source: str, tokens: Sequence[Token], cfg: Optional[Config] = None, progress: bool = False) -> str:
    """Formats ``source`` given its annotated tokens and returns the new text."""
    result = format_tokens(tokens, cfg, progress=progress)
    sink = EditSink()
    for edit in result.edits:
        sink.add(edit)
    return sink.apply(source)
