"""Groups an annotated token stream into a forest of logical lines.

The builder is a recursive-descent walk keyed on the current token. Every
logical line it completes is appended to an arena (:class:`LineForest`);
top-level lines are listed in ``roots`` and handed to an optional consumer in
source order once the whole stream has been read.

A few constructs need special care and are kept explicit here:

* Preprocessor directives may appear while a line is still being assembled
  (for instance between the arguments of a call). Such directives are parsed
  immediately into a side buffer and flushed right after the interrupted line
  completes, so the emitted order still matches the source.
* Braces that the annotator could not classify are first parsed
  speculatively as a braced initializer list. If that attempt fails, the
  builder rewinds to a checkpoint and parses the braces as a block.
* Lambda bodies become nested lines attached to the opening brace node.
* Conditional branches that can never be compiled (``#if 0``) are parsed like
  any other code; their lines are only tagged ``unreachable``.
"""
from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .config import Config
from .types import LineForest, LineNode, LogicalLine, Token

logger = logging.getLogger(__name__)

LineConsumer = Callable[[LogicalLine], None]

PP_CONDITIONAL = "conditional"
PP_UNREACHABLE = "unreachable"

ACCESS_SPECIFIERS = frozenset({"public", "protected", "private"})

STATEMENT_KEYWORDS = frozenset(
    {"return", "if", "for", "while", "do", "switch", "case", "default", "break", "continue", "goto", "try"}
)

# Tokens that may follow the closing brace of a braced initializer list.
BRACED_LIST_FOLLOWERS = frozenset({"semi", "comma", "r_paren", "r_square", "r_brace", "period", "arrow", "greater"})

LAMBDA_SPECIFIER_KINDS = frozenset({"identifier", "keyword", "scope", "arrow", "less", "greater", "operator"})

RECORD_HEADER_KINDS = frozenset({"identifier", "keyword", "scope", "colon", "comma", "less", "greater", "numeric"})


@dataclass
class _NodeDraft:
    token_index: int
    token: Token
    children: List[int] = field(default_factory=list)
    must_break_before: bool = False


@dataclass
class _LineDraft:
    nodes: List[_NodeDraft] = field(default_factory=list)
    level: int = 0
    in_pp_directive: bool = False
    unreachable: Optional[bool] = None


@dataclass(frozen=True)
class BuilderCheckpoint:
    """Everything the speculative braced-list parse may touch."""
    current: Optional[int]
    next_index: int
    line_len: int
    level: int
    arena_len: int
    roots_len: int
    target_len: int
    pp_directives: Tuple[int, ...]
    comments: Tuple[int, ...]
    pp_stack: Tuple[str, ...]
    decl_scope: Tuple[bool, ...]
    structural_error: bool
    must_break_before_next: bool


class LineBuilder:
    """
    Turns a flat token stream into a :class:`LineForest`.

    Attributes:
        tokens: The annotated token stream. It is never modified.
        cfg: The style; only the brace-wrapping policy affects line grouping.
        consumer: Optional callback invoked once per top-level line, in order.
    """

    def __init__(self, tokens: Sequence[Token], cfg: Optional[Config] = None, consumer: Optional[LineConsumer] = None):
        self.tokens = list(tokens)
        self.cfg = cfg or Config()
        self.consumer = consumer
        self._forest = LineForest()
        self._line = _LineDraft()
        self._target: List[int] = self._forest.roots
        self._pp_directives: List[int] = []
        self._comments_before_next: List[int] = []
        self._decl_scope: List[bool] = []
        self._pp_stack: List[str] = []
        self._current: Optional[int] = None
        self._next_index = 0
        self._limit = len(self.tokens)
        self._structural_error = False
        self._must_break_before_next = False

    def build(self) -> LineForest:
        """Reads the whole stream and returns the completed forest."""
        self._read_token()
        self._parse_file()
        self._flush_pp_directives()
        if self._pp_stack:
            logger.debug("Unterminated conditional directives at end of input: %d", len(self._pp_stack))
        self._forest.structural_error = self._structural_error
        if self._structural_error:
            logger.warning("Structural error while building logical lines; formatting is best-effort")
        if self.consumer is not None:
            for line in self._forest.iter_roots():
                self.consumer(line)
        return self._forest

    # ------------------------------------------------------------------
    # Token access
    # ------------------------------------------------------------------
    @property
    def _tok(self) -> Optional[Token]:
        return self.tokens[self._current] if self._current is not None else None

    def _eof(self) -> bool:
        return self._current is None

    def _at(self, kind: str) -> bool:
        tok = self._tok
        return tok is not None and tok.kind == kind

    def _at_keyword(self, *words: str) -> bool:
        tok = self._tok
        return tok is not None and tok.kind == "keyword" and tok.text in words

    def _fetch(self) -> Optional[int]:
        if self._next_index >= self._limit:
            return None
        index = self._next_index
        self._next_index += 1
        return index

    def _at_directive_start(self) -> bool:
        tok = self._tok
        if tok is None or tok.kind != "hash":
            return False
        return tok.newlines_before > 0 or self._current == 0

    def _read_token(self) -> None:
        comments_in_current_line = True
        while True:
            self._current = self._fetch()
            while not self._line.in_pp_directive and self._at_directive_start():
                # Directives that interrupt a line go to the side buffer.
                switch_to_pp = bool(self._line.nodes)
                with self._scoped_line(switch_to_pp=switch_to_pp):
                    self._flush_comments(self._tok.newlines_before > 0)
                    self._parse_pp_directive()
            tok = self._tok
            if tok is None or not tok.is_comment:
                return
            if tok.newlines_before > 0 or self._current == 0:
                comments_in_current_line = False
            if comments_in_current_line:
                self._push_token(self._current)
            else:
                self._comments_before_next.append(self._current)

    def _next_token(self) -> None:
        if self._eof():
            return
        self._flush_comments(self._tok.newlines_before > 0)
        self._push_token(self._current)
        self._read_token()

    def _push_token(self, index: int) -> None:
        if not self._line.nodes and self._line.unreachable is None:
            self._line.unreachable = self._in_unreachable()
        self._line.nodes.append(_NodeDraft(index, self.tokens[index], must_break_before=self._must_break_before_next))
        self._must_break_before_next = False

    def _flush_comments(self, newline_before_next: bool) -> None:
        just_comments = not self._line.nodes
        for index in self._comments_before_next:
            if newline_before_next and just_comments:
                self._add_line()
            self._push_token(index)
        if newline_before_next and just_comments:
            self._add_line()
        self._comments_before_next = []

    # ------------------------------------------------------------------
    # Line bookkeeping
    # ------------------------------------------------------------------
    def _add_line(self) -> None:
        if not self._line.nodes:
            return
        line = LogicalLine(
            nodes=tuple(LineNode(n.token_index, n.token, tuple(n.children), n.must_break_before) for n in self._line.nodes),
            level=self._line.level,
            in_pp_directive=self._line.in_pp_directive,
            must_be_declaration=bool(self._decl_scope) and self._decl_scope[-1],
            unreachable=bool(self._line.unreachable),
        )
        self._forest.lines.append(line)
        self._target.append(len(self._forest.lines) - 1)
        self._line.nodes = []
        self._line.unreachable = None
        # Buffered directives follow the next completed top-level line.
        if self._target is self._forest.roots:
            self._flush_pp_directives()

    def _flush_pp_directives(self) -> None:
        if self._pp_directives:
            self._target.extend(self._pp_directives)
            self._pp_directives.clear()

    @contextmanager
    def _scoped_line(self, switch_to_pp: bool = False, children_of: Optional[_NodeDraft] = None) -> Iterator[None]:
        """Builds a fresh line while the current one is parked."""
        parked_line = self._line
        parked_target = self._target
        self._line = _LineDraft(level=parked_line.level)
        if switch_to_pp:
            self._target = self._pp_directives
        elif children_of is not None:
            self._target = children_of.children
        try:
            yield
        finally:
            if self._line.nodes:
                self._add_line()
            self._line = parked_line
            if self._target is self._pp_directives:
                self._must_break_before_next = True
            self._target = parked_target

    def _in_unreachable(self) -> bool:
        return bool(self._pp_stack) and self._pp_stack[-1] == PP_UNREACHABLE

    def _checkpoint(self) -> BuilderCheckpoint:
        return BuilderCheckpoint(
            current=self._current,
            next_index=self._next_index,
            line_len=len(self._line.nodes),
            level=self._line.level,
            arena_len=len(self._forest.lines),
            roots_len=len(self._forest.roots),
            target_len=len(self._target),
            pp_directives=tuple(self._pp_directives),
            comments=tuple(self._comments_before_next),
            pp_stack=tuple(self._pp_stack),
            decl_scope=tuple(self._decl_scope),
            structural_error=self._structural_error,
            must_break_before_next=self._must_break_before_next,
        )

    def _rewind(self, checkpoint: BuilderCheckpoint) -> None:
        self._current = checkpoint.current
        self._next_index = checkpoint.next_index
        del self._line.nodes[checkpoint.line_len :]
        self._line.level = checkpoint.level
        del self._forest.lines[checkpoint.arena_len :]
        del self._forest.roots[checkpoint.roots_len :]
        del self._target[checkpoint.target_len :]
        self._pp_directives[:] = checkpoint.pp_directives
        self._comments_before_next = list(checkpoint.comments)
        self._pp_stack = list(checkpoint.pp_stack)
        self._decl_scope = list(checkpoint.decl_scope)
        self._structural_error = checkpoint.structural_error
        self._must_break_before_next = checkpoint.must_break_before_next

    # ------------------------------------------------------------------
    # Levels and blocks
    # ------------------------------------------------------------------
    def _parse_file(self) -> None:
        self._decl_scope.append(not self._line.in_pp_directive)
        self._parse_level(has_opening_brace=False)
        self._flush_comments(True)
        self._add_line()
        self._decl_scope.pop()

    def _parse_level(self, has_opening_brace: bool) -> None:
        while not self._eof():
            tok = self._tok
            if tok.kind == "comment":
                self._next_token()
                self._add_line()
            elif tok.kind == "l_brace":
                self._parse_block(must_be_declaration=False)
                self._add_line()
            elif tok.kind == "r_brace":
                if has_opening_brace:
                    return
                self._structural_error = True
                self._next_token()
                self._add_line()
            else:
                self._parse_structural_element()

    def _parse_block(self, must_be_declaration: bool, add_level: bool = True) -> None:
        initial_level = self._line.level
        self._next_token()
        self._add_line()
        self._decl_scope.append(must_be_declaration)
        if add_level:
            self._line.level += 1
        self._parse_level(has_opening_brace=True)
        self._decl_scope.pop()
        if not self._at("r_brace"):
            self._line.level = initial_level
            self._structural_error = True
            return
        self._next_token()
        self._line.level = initial_level

    def _parse_child_block(self) -> None:
        self._next_token()
        opening = self._line.nodes[-1]
        with self._scoped_line(children_of=opening):
            self._decl_scope.append(False)
            self._line.level += 1
            self._parse_level(has_opening_brace=True)
            tok = self._tok
            self._flush_comments(tok is not None and tok.newlines_before > 0)
            self._decl_scope.pop()
        if self._at("r_brace"):
            self._next_token()
        else:
            self._structural_error = True

    def _wrap_before_brace(self, always: bool = False) -> None:
        policy = self.cfg.break_before_braces
        if policy == "allman" or (policy == "linux" and not always):
            self._add_line()

    # ------------------------------------------------------------------
    # Preprocessor
    # ------------------------------------------------------------------
    def _parse_pp_directive(self) -> None:
        end = self._current + 1
        while end < len(self.tokens) and self.tokens[end].newlines_before == 0:
            end += 1
        parked_limit = self._limit
        self._limit = end
        self._line.in_pp_directive = True
        self._line.level = 0
        try:
            self._next_token()
            keyword = self._tok.text if self._tok is not None else ""
            if keyword in ("if", "ifdef", "ifndef"):
                self._line.unreachable = self._in_unreachable()
                self._parse_pp_if(keyword)
            elif keyword in ("elif", "else"):
                self._line.unreachable = len(self._pp_stack) >= 2 and self._pp_stack[-2] == PP_UNREACHABLE
                self._parse_pp_else()
            elif keyword == "endif":
                self._line.unreachable = len(self._pp_stack) >= 2 and self._pp_stack[-2] == PP_UNREACHABLE
                self._parse_pp_endif()
            elif keyword == "define":
                self._parse_pp_define()
            else:
                self._parse_pp_unknown()
        finally:
            self._limit = parked_limit
        self._current = self._fetch()

    def _push_pp_conditional(self) -> None:
        if self._in_unreachable():
            self._pp_stack.append(PP_UNREACHABLE)
        else:
            self._pp_stack.append(PP_CONDITIONAL)

    def _parse_pp_if(self, keyword: str) -> None:
        self._next_token()
        tok = self._tok
        if keyword == "if" and tok is not None and tok.text in ("0", "false"):
            self._pp_stack.append(PP_UNREACHABLE)
        else:
            self._push_pp_conditional()
        self._parse_pp_unknown()

    def _parse_pp_else(self) -> None:
        if self._pp_stack:
            self._pp_stack.pop()
        self._push_pp_conditional()
        self._parse_pp_unknown()

    def _parse_pp_endif(self) -> None:
        if self._pp_stack:
            self._pp_stack.pop()
        self._parse_pp_unknown()

    def _parse_pp_define(self) -> None:
        self._next_token()
        if self._eof():
            self._add_line()
            return
        self._next_token()
        tok = self._tok
        if tok is not None and tok.kind == "l_paren" and tok.whitespace_before == 0:
            self._parse_parens()
        self._add_line()
        self._line.level = 1
        self._parse_file()

    def _parse_pp_unknown(self) -> None:
        while not self._eof():
            self._next_token()
        self._add_line()

    # ------------------------------------------------------------------
    # Statements and declarations
    # ------------------------------------------------------------------
    def _parse_structural_element(self) -> None:
        tok = self._tok
        if tok.kind == "keyword":
            word = tok.text
            if word == "namespace":
                self._parse_namespace()
                return
            if word in ACCESS_SPECIFIERS:
                self._parse_access_specifier()
                return
            if word == "if":
                self._parse_if_then_else()
                return
            if word in ("for", "while"):
                self._parse_for_or_while_loop()
                return
            if word == "do":
                self._parse_do_while()
                return
            if word == "switch":
                self._parse_switch()
                return
            if word == "default":
                self._next_token()
                if self._at("colon"):
                    self._parse_label()
                    return
            elif word == "case":
                self._parse_case_label()
                return
            elif word == "extern":
                self._next_token()
                if self._at("string"):
                    self._next_token()
                    if self._at("l_brace"):
                        self._parse_block(must_be_declaration=True, add_level=False)
                        self._add_line()
                        return

        while not self._eof():
            tok = self._tok
            if tok.kind == "semi":
                self._next_token()
                self._add_line()
                return
            if tok.kind == "r_brace":
                self._add_line()
                return
            if tok.kind == "l_paren":
                self._parse_parens()
            elif tok.kind == "l_square":
                if not self._try_parse_lambda():
                    self._next_token()
            elif tok.kind == "l_brace":
                if self._try_parse_braced_list():
                    continue
                self._wrap_before_brace()
                self._parse_block(must_be_declaration=False)
                self._add_line()
                return
            elif tok.kind == "keyword" and tok.text == "enum":
                self._parse_enum()
            elif tok.kind == "keyword" and tok.text in ("class", "struct", "union"):
                self._parse_record()
            elif tok.kind == "identifier":
                self._next_token()
                if len(self._line.nodes) == 1 and self._at("colon"):
                    self._parse_label()
                    return
            elif tok.kind == "assignment":
                self._next_token()
                if self._at("l_brace"):
                    self._parse_braced_list()
            else:
                self._next_token()

    def _parse_parens(self) -> None:
        self._next_token()
        while not self._eof():
            tok = self._tok
            if tok.kind == "r_paren":
                self._next_token()
                return
            if tok.kind == "r_brace":
                return
            if tok.kind == "l_paren":
                self._parse_parens()
            elif tok.kind == "l_brace":
                if not self._try_parse_braced_list():
                    self._parse_child_block()
            elif tok.kind == "l_square":
                if not self._try_parse_lambda():
                    self._next_token()
            else:
                self._next_token()

    def _try_parse_braced_list(self) -> bool:
        """Parses a braced list if the braces can be one, else rewinds."""
        tok = self._tok
        if tok.bracket == "block":
            return False
        if tok.bracket == "braced_init":
            self._parse_braced_list()
            return True
        checkpoint = self._checkpoint()
        if self._parse_braced_list(speculative=True):
            return True
        self._rewind(checkpoint)
        return False

    def _parse_braced_list(self, speculative: bool = False, nested: bool = False) -> bool:
        self._next_token()
        while not self._eof():
            tok = self._tok
            if tok.kind == "r_brace":
                self._next_token()
                if not speculative or nested:
                    return True
                follower = self._tok
                return follower is not None and follower.kind in BRACED_LIST_FOLLOWERS
            if tok.kind == "semi":
                if speculative:
                    return False
                self._next_token()
            elif tok.kind == "l_brace":
                if speculative and tok.bracket == "block":
                    return False
                if not self._parse_braced_list(speculative=speculative, nested=True) and speculative:
                    return False
            elif tok.kind == "l_square":
                if not self._try_parse_lambda():
                    self._next_token()
            elif tok.kind == "l_paren":
                self._parse_parens()
            elif speculative and tok.kind == "keyword" and tok.text in STATEMENT_KEYWORDS:
                return False
            else:
                self._next_token()
        return False

    def _is_lambda_introducer(self) -> bool:
        tok = self._tok
        if tok.bracket == "subscript":
            return False
        if self._line.nodes:
            previous = self._line.nodes[-1].token
            if previous.kind in ("identifier", "r_paren", "r_square", "string", "numeric"):
                return False
        depth = 0
        index = self._current
        while index < self._limit:
            kind = self.tokens[index].kind
            if kind == "l_square":
                depth += 1
            elif kind == "r_square":
                depth -= 1
                if depth == 0:
                    break
            index += 1
        else:
            return False
        following = index + 1
        while following < self._limit and self.tokens[following].is_comment:
            following += 1
        return following < self._limit and self.tokens[following].kind in ("l_paren", "l_brace")

    def _try_parse_lambda(self) -> bool:
        if not self._is_lambda_introducer():
            return False
        depth = 0
        while not self._eof():
            kind = self._tok.kind
            self._next_token()
            if kind == "l_square":
                depth += 1
            elif kind == "r_square":
                depth -= 1
                if depth == 0:
                    break
        if self._at("l_paren"):
            self._parse_parens()
        while not self._eof() and not self._at("l_brace"):
            if self._tok.kind not in LAMBDA_SPECIFIER_KINDS:
                return True
            self._next_token()
        if self._at("l_brace"):
            self._parse_child_block()
        return True

    def _parse_if_then_else(self) -> None:
        self._next_token()
        if self._at("l_paren"):
            self._parse_parens()
        needs_line = False
        if self._at("l_brace"):
            self._wrap_before_brace(always=True)
            self._parse_block(must_be_declaration=False)
            if self.cfg.break_before_braces == "allman":
                self._add_line()
            else:
                needs_line = True
        else:
            self._parse_indented_statement()

        if self._at_keyword("else"):
            self._next_token()
            if self._at("l_brace"):
                self._wrap_before_brace(always=True)
                self._parse_block(must_be_declaration=False)
                self._add_line()
            elif self._at_keyword("if"):
                self._parse_if_then_else()
            else:
                self._parse_indented_statement()
        elif needs_line:
            self._add_line()

    def _parse_indented_statement(self) -> None:
        if self._at("semi"):
            self._next_token()
            self._add_line()
            return
        self._add_line()
        self._line.level += 1
        self._parse_structural_element()
        self._line.level -= 1

    def _parse_for_or_while_loop(self) -> None:
        self._next_token()
        if self._at("l_paren"):
            self._parse_parens()
        if self._at("l_brace"):
            self._wrap_before_brace(always=True)
            self._parse_block(must_be_declaration=False)
            self._add_line()
        else:
            self._parse_indented_statement()

    def _parse_do_while(self) -> None:
        self._next_token()
        if self._at("l_brace"):
            self._wrap_before_brace(always=True)
            self._parse_block(must_be_declaration=False)
            if self.cfg.break_before_braces == "allman":
                self._add_line()
        else:
            self._parse_indented_statement()
        if not self._at_keyword("while"):
            self._add_line()
            return
        self._next_token()
        self._parse_structural_element()

    def _parse_label(self) -> None:
        self._next_token()
        old_level = self._line.level
        if self._line.level > 1 or (not self._line.in_pp_directive and self._line.level > 0):
            self._line.level -= 1
        if not self._comments_before_next and self._at("l_brace"):
            self._parse_block(must_be_declaration=False)
            if self._at_keyword("break"):
                self._parse_structural_element()
        self._add_line()
        self._line.level = old_level

    def _parse_case_label(self) -> None:
        self._next_token()
        while not self._eof() and not self._at("colon"):
            self._next_token()
        self._parse_label()

    def _parse_switch(self) -> None:
        self._next_token()
        if self._at("l_paren"):
            self._parse_parens()
        if self._at("l_brace"):
            self._wrap_before_brace(always=True)
            self._parse_block(must_be_declaration=False)
            self._add_line()
        else:
            self._parse_indented_statement()

    def _parse_namespace(self) -> None:
        self._next_token()
        if self._at("identifier"):
            self._next_token()
        if self._at("l_brace"):
            self._wrap_before_brace()
            self._parse_block(must_be_declaration=True, add_level=False)
            if self._at("semi"):
                self._next_token()
            self._add_line()

    def _parse_access_specifier(self) -> None:
        self._next_token()
        if self._at("colon"):
            self._next_token()
        self._add_line()

    def _parse_enum(self) -> None:
        self._next_token()
        while not self._eof() and self._tok.kind in ("identifier", "keyword", "scope", "colon"):
            self._next_token()
        if not self._at("l_brace"):
            return
        self._wrap_before_brace(always=True)
        self._next_token()
        self._add_line()
        self._line.level += 1
        while not self._eof():
            tok = self._tok
            if tok.kind == "l_paren":
                self._parse_parens()
            elif tok.kind == "r_brace":
                self._add_line()
                self._next_token()
                self._line.level -= 1
                return
            elif tok.kind == "comma":
                self._next_token()
                self._add_line()
            else:
                self._next_token()
        self._line.level -= 1
        self._structural_error = True

    def _parse_record(self) -> None:
        self._next_token()
        while not self._eof() and self._tok.kind in RECORD_HEADER_KINDS:
            self._next_token()
        if self._at("l_brace"):
            self._wrap_before_brace()
            self._parse_block(must_be_declaration=True)
        # Declarators after the closing brace stay on the record's last line.


def build_lines(tokens: Sequence[Token], cfg: Optional[Config] = None, consumer: Optional[LineConsumer] = None) -> LineForest:
    """Convenience wrapper around :class:`LineBuilder`."""
    return LineBuilder(tokens, cfg, consumer).build()
