from lineweave.data_validation import iter_unreachable_regions, validate
from lineweave.line_builder import build_lines
from lineweave.types import Token

from _tokens import lex


def test_clean_stream_has_no_issues():
    tokens = lex("void f() {\n  g(a[1]);\n}")

    report = validate(tokens, build_lines(tokens))

    assert report == {"issue_count": 0, "issues": []}


def test_validate_flags_offset_and_whitespace_issues():
    tokens = [
        Token("abc", "identifier", offset=0),
        Token("d", "identifier", offset=2),
        Token("e", "identifier", offset=5, whitespace_before=4),
    ]

    report = validate(tokens)

    issue_types = [issue["type"] for issue in report["issues"]]
    assert issue_types == ["offset_order_error", "whitespace_overlap_error"]
    assert [issue["idx"] for issue in report["issues"]] == [1, 2]


def test_validate_flags_unbalanced_brackets():
    tokens = lex("f(a]; {")

    report = validate(tokens)

    issue_types = [issue["type"] for issue in report["issues"]]
    assert issue_types.count("unbalanced_bracket_error") == 3


def test_validate_reports_structural_error_and_unreachable_regions():
    source = "#if 0\nint a;\nint b;\n#endif\nint c; }"
    tokens = lex(source)
    forest = build_lines(tokens)

    report = validate(tokens, forest)

    issue_types = {issue["type"] for issue in report["issues"]}
    assert {"structural_error", "unreachable_region_info", "unbalanced_bracket_error"} == issue_types

    region = next(issue for issue in report["issues"] if issue["type"] == "unreachable_region_info")
    start, end = region["span"]
    assert source[start:end] == "int a;\nint b;"


def test_iter_unreachable_regions_yields_each_run():
    source = "#if 0\nint a;\n#endif\nint b;\n#if 0\nint c;\n#endif\n"
    tokens = lex(source)

    regions = list(iter_unreachable_regions(build_lines(tokens)))

    assert [source[s:e] for s, e in regions] == ["int a;", "int c;"]
