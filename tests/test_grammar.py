# tests/test_grammar.py
"""
Tests that the rule-language PEG grammar is well-formed and parses
fundamental constructs at the grammar level (before visitor transformation).
"""

import pytest
from parsimonious.exceptions import IncompleteParseError, ParseError
from parsimonious.grammar import Grammar

from tsgraph.grammar import KEYWORDS, TSG_GRAMMAR


@pytest.fixture(scope="module")
def grammar():
    """Compile the grammar once per module."""
    return Grammar(TSG_GRAMMAR)


class TestGrammarWellFormed:

    def test_grammar_compiles(self, grammar):
        assert "file" in grammar

    def test_key_rules_exist(self, grammar):
        for rule in ("file", "stanza", "query_pattern", "block", "statement",
                     "expr", "global_decl", "function_def", "finish_block",
                     "attribute_decl", "scan_stmt"):
            assert rule in grammar, f"Rule {rule!r} missing"

    def test_keyword_rule_matches_keyword_set(self, grammar):
        for kw in KEYWORDS:
            grammar["keyword"].parse(kw)


class TestGrammarAtoms:

    def test_empty_file(self, grammar):
        assert grammar.parse("") is not None

    def test_comment_only_file(self, grammar):
        grammar.parse("; nothing here\n   ; still nothing\n")

    def test_integers(self, grammar):
        for lit in ("0", "42", "-7"):
            assert grammar["integer"].parse(lit).text == lit

    def test_strings(self, grammar):
        for lit in ('"hello"', r'"esc\"aped"', '""'):
            grammar["string"].parse(lit)

    def test_string_cannot_span_lines(self, grammar):
        with pytest.raises(ParseError):
            grammar["string"].parse('"a\nb"')

    def test_names_with_dashes_and_suffixes(self, grammar):
        for name in ("x", "source-text", "matches?", "is-empty", "_tmp"):
            assert grammar["function_name"].parse(name).text == name

    def test_name_rejects_keywords(self, grammar):
        for kw in ("let", "edge", "node", "if", "scan", "return"):
            with pytest.raises((ParseError, IncompleteParseError)):
                grammar["name"].parse(kw)

    def test_keyword_prefix_is_a_name(self, grammar):
        for name in ("node-type", "iffy", "letter", "edges"):
            assert grammar["name"].parse(name).text == name

    def test_literals(self, grammar):
        for lit in ("#null", "#true", "#false"):
            grammar["expr"].parse(lit)


class TestGrammarExpressions:

    @pytest.mark.parametrize("text", [
        "@name",
        "@name.scoped",
        "x.y.z",
        "(source-text @name)",
        "(plus 1 (times 2 3))",
        "(set)",
        "[1, 2, 3]",
        "[1, 2,]",
        "{}",
        "{@a, @b}",
        "[(source-text n) for n in @names]",
        "{x for x in xs if (is-string x)}",
        'f"{@a} and {{braces}}"',
        "(if #true 1 2)",
        "$0",
        "$start",
    ])
    def test_expression(self, grammar, text):
        grammar["expr"].parse(text)

    def test_arrow_is_not_part_of_a_name(self, grammar):
        grammar["edge_stmt"].parse("edge a->b")


class TestGrammarStatements:

    @pytest.mark.parametrize("text", [
        "let x = 1",
        "var @n.count = 0",
        "set x = 2",
        "node @def.node",
        "edge a -> b",
        "attr (n) name = \"x\", flag",
        "attr (a -> b) precedence = 1",
        "if some @x, (eq 1 1) { print 1 } elif none @y { exit } else { }",
        "for n in @names { node n }",
        'scan "abc" { "a" { print $0 } "b(c)?" { } }',
        'print "a", 1',
        "exit",
        "(assert #true)",
    ])
    def test_statement(self, grammar, text):
        grammar["statement"].parse(text)

    def test_return_value_on_same_line(self, grammar):
        grammar["return_stmt"].parse("return (plus 1 2)")
        grammar["return_stmt"].parse("return")


class TestGrammarTopLevel:

    def test_stanza_with_guard(self, grammar):
        grammar.parse(
            '(function_definition name: (identifier) @name) @fn\n'
            '  when (not (eq (source-text @name) "main"))\n'
            '{\n'
            '  node @fn.def\n'
            '}\n'
        )

    def test_alternation_pattern(self, grammar):
        grammar.parse('[(identifier) (string)] @leaf { node n }')

    def test_pattern_with_strings_and_predicates(self, grammar):
        grammar.parse('((identifier) @id (#eq? @id "self")) { }')

    def test_globals(self, grammar):
        grammar.parse('global FILE\nglobal MAYBE?\nglobal MANY*\nglobal DEF = "d"\n')

    def test_function_and_finish(self, grammar):
        grammar.parse(
            "def double(x) {\n  return (times x 2)\n}\n"
            "finish {\n  print (double 2)\n}\n"
        )

    def test_attribute_shorthand(self, grammar):
        grammar.parse("attribute symbol = s => kind = \"symbol\", name = s\n")

    def test_unbalanced_pattern_fails(self, grammar):
        with pytest.raises(ParseError):
            grammar.parse("(identifier @id { }")
