from __future__ import annotations
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .types import LineForest, Token

PAIRS = {"r_paren": "l_paren", "r_square": "l_square", "r_brace": "l_brace"}


def iter_unreachable_regions(forest: LineForest) -> Iterator[Tuple[int, int]]:
    """
    Yields the token offsets spanned by each run of unreachable top-level lines.

    Args:
        forest: The logical lines produced by the line builder.

    Yields:
        A tuple ``(start_offset, end_offset)`` per run of consecutive lines
        tagged ``unreachable``.
    """
    start: Optional[int] = None
    end = 0
    for line in forest.iter_roots():
        if line.unreachable:
            if start is None:
                start = line.first.offset
            end = line.last.end
        elif start is not None:
            yield (start, end)
            start = None
    if start is not None:
        yield (start, end)


def validate(tokens: Sequence[Token], forest: Optional[LineForest] = None) -> Dict[str, Any]:
    """
    Performs a series of sanity checks on a token stream and its logical lines.

    The checks are:
    -   Token offsets must increase and token spans must not overlap.
    -   A token's whitespace span must not reach back into the previous token.
    -   Brackets must balance across the whole stream.
    -   The line builder's structural-error flag.
    -   Regions inside never-compiled conditional branches (informational).

    Args:
        tokens: The annotated token stream.
        forest: Optional logical lines built from ``tokens``.

    Returns:
        A dictionary summarizing the validation results, containing the total
        `issue_count` and a list of `issues`, where each issue is a
        dictionary detailing the problem.
    """
    issues: List[Dict[str, Any]] = []

    # 1. Per-token offset sanity checks
    for i in range(1, len(tokens)):
        prev, cur = tokens[i - 1], tokens[i]
        if cur.offset < prev.end:
            issues.append({
                "type": "offset_order_error",
                "idx": i,
                "message": f"Token '{cur.text}' at offset {cur.offset} starts before the end of '{prev.text}' ({prev.end}).",
            })
        elif cur.whitespace_start < prev.end:
            issues.append({
                "type": "whitespace_overlap_error",
                "idx": i,
                "message": f"Whitespace before '{cur.text}' overlaps the previous token.",
            })

    # 2. Bracket balance
    pending: List[Tuple[int, Token]] = []
    for i, t in enumerate(tokens):
        if t.kind in PAIRS.values():
            pending.append((i, t))
        elif t.kind in PAIRS:
            if not pending or pending[-1][1].kind != PAIRS[t.kind]:
                issues.append({
                    "type": "unbalanced_bracket_error",
                    "idx": i,
                    "message": f"Closing '{t.text}' at offset {t.offset} has no matching opener.",
                })
            else:
                pending.pop()
    for i, t in pending:
        issues.append({
            "type": "unbalanced_bracket_error",
            "idx": i,
            "message": f"Opening '{t.text}' at offset {t.offset} is never closed.",
        })

    # 3. Forest-level checks
    if forest is not None:
        if forest.structural_error:
            issues.append({
                "type": "structural_error",
                "message": "The line builder detected unbalanced nesting; formatting is best-effort.",
            })
        for start, end in iter_unreachable_regions(forest):
            issues.append({
                "type": "unreachable_region_info",
                "span": (start, end),
                "message": f"Lines between offsets {start} and {end} are never compiled.",
            })

    return {"issue_count": len(issues), "issues": issues}
