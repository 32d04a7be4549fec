# tests/test_parser.py
"""Tests for the rule-file parser (text → AST)."""

import textwrap

import pytest

from tsgraph import ast as A
from tsgraph.errors import RuleSyntaxError, TsgErrorCodes
from tsgraph.parser import parse


def _stanza_body(body: str):
    """Statements of a single stanza whose block is *body*."""
    module = parse("(identifier) @id {\n" + body + "\n}\n")
    assert len(module.stanzas) == 1
    return module.stanzas[0].statements


def _expr(text: str):
    (stmt,) = _stanza_body(f"let v = {text}")
    return stmt.value


class TestTopLevel:

    def test_empty(self):
        module = parse("")
        assert module.stanzas == ()
        assert module.functions == ()

    def test_filename_recorded(self):
        module = parse("(identifier) @id { }", filename="rules.tsg")
        assert module.filename == "rules.tsg"
        assert module.stanzas[0].loc.file == "rules.tsg"

    def test_items_are_grouped(self):
        module = parse(textwrap.dedent('''
            global FILE
            attribute named = n => name = n
            def f(a, b) { return a }
            (identifier) @id { }
            finish { print "done" }
            (string) @s { }
        '''))
        assert len(module.stanzas) == 2
        assert len(module.functions) == 1
        assert len(module.finish_blocks) == 1
        assert len(module.globals) == 1
        assert len(module.shorthands) == 1

    def test_globals(self):
        module = parse('global A\nglobal B?\nglobal C*\nglobal D = "x"\n')
        assert module.globals == (
            A.GlobalDecl("A"),
            A.GlobalDecl("B", quantifier=A.CaptureQuantifier.OPTIONAL),
            A.GlobalDecl("C", quantifier=A.CaptureQuantifier.MANY),
            A.GlobalDecl("D", default=A.StringLiteral("x")),
        )

    def test_function(self):
        module = parse("def f(a, b) {\n  return (plus a b)\n}\n")
        (function,) = module.functions
        assert function.name == "f"
        assert function.params == ("a", "b")
        assert function.statements == (
            A.ReturnStmt(A.Call("plus", (A.UnscopedVariable("a"), A.UnscopedVariable("b")))),
        )

    def test_function_without_params(self):
        module = parse("def nothing() { return }")
        assert module.functions[0].params == ()
        assert module.functions[0].statements == (A.ReturnStmt(),)

    def test_shorthand(self):
        module = parse('attribute symbol = s => kind = "symbol", name = s, leaf\n')
        (shorthand,) = module.shorthands
        assert shorthand.name == "symbol"
        assert shorthand.param == "s"
        assert shorthand.attributes == (
            A.Attribute("kind", A.StringLiteral("symbol")),
            A.Attribute("name", A.UnscopedVariable("s")),
            A.Attribute("leaf", A.BoolLiteral(True)),
        )

    def test_stanza_pattern_and_guard(self):
        module = parse(
            '(call function: (identifier) @fn (argument_list (_)* @args)) @call\n'
            'when (eq (source-text @fn) "print") { }\n'
        )
        stanza = module.stanzas[0]
        assert stanza.pattern.source == '(call function: (identifier) @fn (argument_list (_)* @args)) @call'
        assert stanza.pattern.captures == (
            A.CaptureDecl("fn", A.CaptureQuantifier.ONE),
            A.CaptureDecl("args", A.CaptureQuantifier.MANY),
            A.CaptureDecl("call", A.CaptureQuantifier.ONE),
        )
        assert stanza.guard == A.Call(
            "eq", (A.Call("source-text", (A.CaptureRef("fn"),)), A.StringLiteral("print"))
        )


class TestStatements:

    def test_declarations(self):
        let, var = _stanza_body("let x = 1\nvar @id.count = 0")
        assert let == A.DeclareStmt(A.UnscopedVariable("x"), A.IntLiteral(1))
        assert var == A.DeclareStmt(
            A.ScopedVariable(A.CaptureRef("id"), "count"), A.IntLiteral(0), mutable=True
        )

    def test_assignment(self):
        (stmt,) = _stanza_body("set x = #null")
        assert stmt == A.AssignStmt(A.UnscopedVariable("x"), A.NullLiteral())

    def test_graph_statements(self):
        node, edge, attr, edge_attr = _stanza_body(
            'node n\nedge n -> @id.def\nattr (n) name = "x", flag\nattr (n -> @id.def) precedence = 2'
        )
        assert node == A.NodeStmt(A.UnscopedVariable("n"))
        assert edge == A.EdgeStmt(A.UnscopedVariable("n"), A.ScopedVariable(A.CaptureRef("id"), "def"))
        assert attr == A.AttrStmt(
            A.UnscopedVariable("n"),
            (A.Attribute("name", A.StringLiteral("x")), A.Attribute("flag", A.BoolLiteral(True))),
        )
        assert edge_attr == A.EdgeAttrStmt(
            A.UnscopedVariable("n"),
            A.ScopedVariable(A.CaptureRef("id"), "def"),
            (A.Attribute("precedence", A.IntLiteral(2)),),
        )

    def test_if_elif_else(self):
        (stmt,) = _stanza_body("if some @id, #true { exit } elif none @id { } else { print 1 }")
        assert stmt == A.IfStmt(
            (
                A.IfArm(
                    (
                        A.Condition(A.ConditionKind.SOME, A.CaptureRef("id")),
                        A.Condition(A.ConditionKind.TEST, A.BoolLiteral(True)),
                    ),
                    (A.ExitStmt(),),
                ),
                A.IfArm((A.Condition(A.ConditionKind.NONE, A.CaptureRef("id")),), ()),
            ),
            else_body=(A.PrintStmt((A.IntLiteral(1),)),),
        )

    def test_for(self):
        (stmt,) = _stanza_body("for x in [1, 2] { print x }")
        assert stmt == A.ForStmt(
            "x",
            A.ListLiteral((A.IntLiteral(1), A.IntLiteral(2))),
            (A.PrintStmt((A.UnscopedVariable("x"),)),),
        )

    def test_scan(self):
        (stmt,) = _stanza_body('scan "a1" {\n  "[0-9]+" { print $0 }\n  "\\\\w" { }\n}')
        assert stmt.value == A.StringLiteral("a1")
        assert [arm.regex for arm in stmt.arms] == ["[0-9]+", "\\w"]
        assert stmt.arms[0].body == (A.PrintStmt((A.RegexCaptureRef(0),)),)

    def test_call_statement(self):
        (stmt,) = _stanza_body("(assert #true)")
        assert stmt == A.CallStmt(A.Call("assert", (A.BoolLiteral(True),)))

    def test_print_many(self):
        (stmt,) = _stanza_body('print "a", 1, @id')
        assert len(stmt.values) == 3

    def test_statement_locations(self):
        first, second = _stanza_body("let a = 1\n  let b = 2")
        assert (first.loc.line, first.loc.column) == (2, 1)
        assert (second.loc.line, second.loc.column) == (3, 3)


class TestExpressions:

    def test_literals(self):
        assert _expr("#null") == A.NullLiteral()
        assert _expr("#false") == A.BoolLiteral(False)
        assert _expr("-12") == A.IntLiteral(-12)

    def test_string_escapes(self):
        assert _expr(r'"a\"b\n\t\\"') == A.StringLiteral('a"b\n\t\\')

    def test_bad_escape(self):
        with pytest.raises(RuleSyntaxError) as info:
            _expr(r'"\q"')
        assert info.value.code is TsgErrorCodes.INVALID_LITERAL

    def test_integer_out_of_range(self):
        with pytest.raises(RuleSyntaxError) as info:
            _expr("99999999999999999999")
        assert info.value.code is TsgErrorCodes.INVALID_LITERAL

    def test_interpolated_string(self):
        assert _expr('f"x={@id} {{ok}}"') == A.InterpolatedString(
            ("x=", A.CaptureRef("id"), " {ok}")
        )

    def test_collections(self):
        assert _expr("[]") == A.ListLiteral(())
        assert _expr("{1, 2}") == A.SetLiteral((A.IntLiteral(1), A.IntLiteral(2)))

    def test_comprehensions(self):
        assert _expr("[x for x in xs if (is-int x)]") == A.Comprehension(
            A.ComprehensionKind.LIST,
            A.UnscopedVariable("x"),
            "x",
            A.UnscopedVariable("xs"),
            A.Call("is-int", (A.UnscopedVariable("x"),)),
        )
        assert _expr("{x for x in xs}").kind is A.ComprehensionKind.SET

    def test_field_access_chain(self):
        assert _expr("@id.node.name") == A.ScopedVariable(
            A.ScopedVariable(A.CaptureRef("id"), "node"), "name"
        )

    def test_conditional(self):
        assert _expr("(if #true 1 2)") == A.Conditional(
            A.BoolLiteral(True), A.IntLiteral(1), A.IntLiteral(2)
        )

    def test_call_with_keyword_named_builtin(self):
        assert _expr("(set 1)") == A.Call("set", (A.IntLiteral(1),))

    def test_regex_captures(self):
        (stmt,) = _stanza_body('scan "x" { "x" { print $start, $end, $2 } }')
        assert stmt.arms[0].body[0].values == (
            A.RegexCaptureRef("start"),
            A.RegexCaptureRef("end"),
            A.RegexCaptureRef(2),
        )


class TestSyntaxErrors:

    def test_unexpected_text_location(self):
        with pytest.raises(RuleSyntaxError) as info:
            parse("(identifier) @id {\n  let = 1\n}\n", filename="bad.tsg")
        error = info.value
        assert error.span.file == "bad.tsg"
        assert (error.span.line, error.span.column) == (2, 7)
        assert error.to_gcc_format().startswith("bad.tsg:")

    def test_unexpected_end(self):
        with pytest.raises(RuleSyntaxError) as info:
            parse("(identifier) @id {")
        assert str(info.value) == "<rules>:1:19: Unexpected end of input"

    def test_error_inside_statement_of_later_line(self):
        text = (
            "(identifier) @id {\n"
            "  node n\n"
            "  attr (n) a = 1\n"
            "  attr (n) x = = 1\n"
            "}\n"
        )
        with pytest.raises(RuleSyntaxError) as info:
            parse(text)
        assert (info.value.span.line, info.value.span.column) == (4, 16)
        assert str(info.value) == "<rules>:4:16: Unexpected text '= 1'"

    def test_error_in_nested_block_of_second_item(self):
        text = (
            "global G = 1\n"
            "\n"
            "finish {\n"
            "  if #true {\n"
            "    let = 1\n"
            "  }\n"
            "}\n"
        )
        with pytest.raises(RuleSyntaxError) as info:
            parse(text)
        assert (info.value.span.line, info.value.span.column) == (5, 9)

    def test_error_in_item_header(self):
        with pytest.raises(RuleSyntaxError) as info:
            parse("global = 1\n")
        assert (info.value.span.line, info.value.span.column) == (1, 8)

    def test_assign_to_non_variable(self):
        with pytest.raises(RuleSyntaxError) as info:
            parse("(identifier) @id { let 1 = 2 }")
        assert info.value.code is TsgErrorCodes.INVALID_TARGET

    def test_dotted_capture_name(self):
        with pytest.raises(RuleSyntaxError) as info:
            parse("(identifier) @a.b { }")
        assert info.value.code is TsgErrorCodes.INVALID_PATTERN
        assert info.value.span.line == 1
