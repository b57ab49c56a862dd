from __future__ import annotations

from typing import List

from lineweave.config import Config
from lineweave.line_builder import LineBuilder, build_lines
from lineweave.types import LineForest, LogicalLine

from _tokens import lex


def _texts(line: LogicalLine) -> str:
    return " ".join(t.text for t in line.tokens)


def _roots(forest: LineForest) -> List[str]:
    return [_texts(line) for line in forest.iter_roots()]


def _levels(forest: LineForest) -> List[int]:
    return [line.level for line in forest.iter_roots()]


def test_function_body_is_split_into_levelled_lines():
    forest = build_lines(lex("void f() {\n  return;\n}"))

    assert _roots(forest) == ["void f ( ) {", "return ;", "}"]
    assert _levels(forest) == [0, 1, 0]
    assert not forest.structural_error


def test_allman_braces_get_their_own_line():
    forest = build_lines(lex("void f() {\n  return;\n}"), Config(break_before_braces="allman"))

    assert _roots(forest) == ["void f ( )", "{", "return ;", "}"]
    assert _levels(forest) == [0, 0, 1, 0]


def test_else_is_attached_to_closing_brace():
    source = "if (a) {\n  b();\n} else {\n  c();\n}"
    forest = build_lines(lex(source))

    assert _roots(forest) == ["if ( a ) {", "b ( ) ;", "} else {", "c ( ) ;", "}"]
    assert _levels(forest) == [0, 1, 0, 1, 0]


def test_allman_splits_else_onto_its_own_lines():
    source = "if (a) {\n  b();\n} else {\n  c();\n}"
    forest = build_lines(lex(source), Config(break_before_braces="allman"))

    assert _roots(forest) == ["if ( a )", "{", "b ( ) ;", "}", "else", "{", "c ( ) ;", "}"]


def test_braced_initializer_stays_on_one_line():
    forest = build_lines(lex("Foo f{1, 2};"))

    assert _roots(forest) == ["Foo f { 1 , 2 } ;"]


def test_failed_braced_list_speculation_rewinds_to_a_block():
    forest = build_lines(lex("void g() {}\nint y;"))

    assert _roots(forest) == ["void g ( ) {", "}", "int y ;"]
    # Nothing built during the failed attempt survives in the arena.
    assert len(forest.lines) == 3


def test_braces_holding_a_statement_are_parsed_as_block():
    forest = build_lines(lex("foo() {\n  a;\n}\n"))

    assert _roots(forest) == ["foo ( ) {", "a ;", "}"]
    assert forest.structural_error is False


def test_lambda_body_becomes_nested_line():
    forest = build_lines(lex("auto f = [](int x) { return x; };"))

    assert _roots(forest) == ["auto f = [ ] ( int x ) { } ;"]
    root = forest.line(forest.roots[0])
    brace = next(node for node in root.nodes if node.token.text == "{")
    children = forest.children_of(brace)
    assert [_texts(child) for child in children] == ["return x ;"]
    assert children[0].level == 1
    # Nested lines are not top-level lines.
    assert len(forest.roots) == 1
    assert len(forest.lines) == 2


def test_subscript_is_not_a_lambda():
    forest = build_lines(lex("a[i] = (b);"))

    root = forest.line(forest.roots[0])
    assert all(not node.children for node in root.nodes)


def test_directive_inside_call_is_emitted_after_interrupted_line():
    source = "foo(a,\n#ifdef X\n    b,\n#endif\n    c);"
    forest = build_lines(lex(source))

    assert _roots(forest) == ["foo ( a , b , c ) ;", "# ifdef X", "# endif"]
    directives = list(forest.iter_roots())[1:]
    assert all(line.in_pp_directive for line in directives)
    assert all(line.level == 0 for line in directives)

    call = forest.line(forest.roots[0])
    flagged = [node.token.text for node in call.nodes if node.must_break_before]
    assert flagged == ["b", "c"]


def test_if_zero_branch_is_unreachable_but_directives_are_not():
    forest = build_lines(lex("#if 0\nint a;\n#endif\nint b;"))

    lines = list(forest.iter_roots())
    assert [_texts(line) for line in lines] == ["# if 0", "int a ;", "# endif", "int b ;"]
    assert [line.unreachable for line in lines] == [False, True, False, False]


def test_else_branch_of_if_zero_is_reachable():
    forest = build_lines(lex("#if 0\nint a;\n#else\nint b;\n#endif\n"))

    lines = {_texts(line): line.unreachable for line in forest.iter_roots()}
    assert lines["int a ;"] is True
    assert lines["int b ;"] is False
    assert lines["# else"] is False


def test_nested_conditionals_inside_if_zero_stay_unreachable():
    source = "#if 0\n#ifdef A\nint a;\n#endif\n#endif\nint b;"
    forest = build_lines(lex(source))

    lines = {_texts(line): line.unreachable for line in forest.iter_roots()}
    assert lines["# ifdef A"] is True
    assert lines["int a ;"] is True
    assert lines["int b ;"] is False


def test_define_splits_header_and_body():
    forest = build_lines(lex("#define MAX(a, b) ((a) > (b) ? (a) : (b))"))

    lines = list(forest.iter_roots())
    assert _texts(lines[0]) == "# define MAX ( a , b )"
    assert lines[1].level == 1
    assert all(line.in_pp_directive for line in lines)


def test_trailing_comment_stays_and_own_line_comment_is_separate():
    forest = build_lines(lex("int a; // trailing\n// own line\nint b;"))

    assert _roots(forest) == ["int a ; // trailing", "// own line", "int b ;"]


def test_stray_closing_brace_is_a_structural_error():
    forest = build_lines(lex("int a; }"))

    assert forest.structural_error is True


def test_missing_closing_brace_is_a_structural_error():
    forest = build_lines(lex("void f() {\n  int a;\n"))

    assert forest.structural_error is True
    assert "int a ;" in _roots(forest)


def test_class_with_access_specifier():
    forest = build_lines(lex("class A {\npublic:\n  int x;\n};"))

    assert _roots(forest) == ["class A {", "public :", "int x ;", "} ;"]
    assert _levels(forest) == [0, 1, 1, 0]
    members = list(forest.iter_roots())[2]
    assert members.must_be_declaration is True


def test_enum_puts_one_enumerator_per_line():
    forest = build_lines(lex("enum E { A, B };"))

    assert _roots(forest) == ["enum E {", "A ,", "B", "} ;"]
    assert _levels(forest) == [0, 1, 1, 0]


def test_switch_case_labels_sit_one_level_out():
    source = "void f() {\nswitch (x) {\ncase 1:\n  break;\ndefault:\n  break;\n}\n}"
    forest = build_lines(lex(source))

    assert _roots(forest) == [
        "void f ( ) {",
        "switch ( x ) {",
        "case 1 :",
        "break ;",
        "default :",
        "break ;",
        "}",
        "}",
    ]
    assert _levels(forest) == [0, 1, 1, 2, 1, 2, 1, 0]


def test_do_while_attaches_condition_to_closing_brace():
    forest = build_lines(lex("do {\n  x();\n} while (y);"))

    assert _roots(forest) == ["do {", "x ( ) ;", "} while ( y ) ;"]


def test_namespace_body_is_not_indented():
    forest = build_lines(lex("namespace n {\nint a;\n}"))

    assert _roots(forest) == ["namespace n {", "int a ;", "}"]
    assert _levels(forest) == [0, 0, 0]


def test_statements_in_function_body_are_not_declarations():
    forest = build_lines(lex("void f() {\n  g(a, b);\n}"))

    lines = list(forest.iter_roots())
    assert lines[0].must_be_declaration is True
    assert lines[1].must_be_declaration is False


def test_consumer_receives_top_level_lines_in_order():
    received: List[str] = []
    LineBuilder(lex("int a;\n#define X 1\nint b;"), consumer=lambda line: received.append(_texts(line))).build()

    assert received == ["int a ;", "# define X", "1", "int b ;"]


def test_empty_stream_builds_empty_forest():
    forest = build_lines([])

    assert forest.lines == []
    assert forest.roots == []
    assert forest.structural_error is False


def test_directive_survives_failed_braced_list_speculation():
    forest = build_lines(lex("f(a,\n#define X 1\n  b) {[]() { y; }; }"))

    assert _roots(forest) == ["f ( a , b ) {", "# define X", "1", "[ ] ( ) { } ;", "}"]


def test_directive_is_not_attached_to_lambda_body():
    forest = build_lines(lex("f(a,\n#define X 1\n  [] { y; });"))

    assert _roots(forest) == ["f ( a , [ ] { } ) ;", "# define X", "1"]
    root = forest.line(forest.roots[0])
    brace = next(node for node in root.nodes if node.token.text == "{")
    assert [_texts(child) for child in forest.children_of(brace)] == ["y ;"]
