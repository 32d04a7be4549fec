# tests/test_runtime.py
"""
Interpreter tests.

Rules are compiled without a grammar and run over hand-written raw matches
(see ``run_fake`` in conftest), so every statement can be exercised on
exactly the matches it needs.
"""

import logging

import pytest

from tsgraph.errors import (
    ArgumentError,
    DuplicateAttributeError,
    DuplicateEdgeError,
    ReservedAttributeError,
    StackOverflowError,
    TypeMismatchError,
    UndefinedAttributeError,
    UndefinedVariableError,
    VariableError,
)
from tsgraph.graph import DuplicatePolicy
from tsgraph.matcher import RawMatch
from tsgraph.runtime import ExecutionConfig
from tsgraph.values import TRUE, Integer, String, make_list, make_set
from tests.conftest import run_fake, word_tree


SOURCE = "alpha beta gamma"


@pytest.fixture
def tree():
    return word_tree(SOURCE)


def each_word(tree, pattern_index=0, capture="id"):
    return [RawMatch(pattern_index, {capture: [child]}) for child in tree.children]


def attrs(graph):
    return [node.attributes for node in graph.nodes]


# ═══════════════════════════════════════════════════════════════════
#  GLOBALS
# ═══════════════════════════════════════════════════════════════════

class TestGlobals:

    def test_default_value(self):
        graph = run_fake("""
            global prefix = "p"
            finish {
              node n
              attr (n) prefix = prefix
            }
        """)
        assert attrs(graph) == [{"prefix": String("p")}]

    def test_supplied_value_overrides_default(self):
        graph = run_fake("""
            global prefix = "p"
            finish {
              node n
              attr (n) prefix = prefix
            }
        """, globals={"prefix": "q"})
        assert attrs(graph) == [{"prefix": String("q")}]

    def test_optional_and_many_defaults(self):
        graph = run_fake("""
            global maybe?
            global names*
            finish {
              node n
              attr (n) unbound = (is-unbound maybe), count = (length names)
            }
        """)
        assert attrs(graph) == [{"unbound": TRUE, "count": Integer(0)}]

    def test_many_global_must_be_a_collection(self):
        with pytest.raises(TypeMismatchError):
            run_fake("global names*\n", globals={"names": "x"})

    def test_missing_required_global(self):
        with pytest.raises(UndefinedVariableError) as info:
            run_fake("\nglobal FILE_PATH\n")
        assert info.value.span.line == 2

    def test_undeclared_caller_globals_are_visible(self):
        graph = run_fake("""
            finish {
              node n
              attr (n) tags = tags
            }
        """, globals={"tags": ["a", "b"]})
        assert attrs(graph) == [{"tags": make_list([String("a"), String("b")])}]

    def test_root_node_is_bound(self, tree):
        graph = run_fake("""
            finish {
              node n
              attr (n) root = (node-type ROOT_NODE)
            }
        """, root=tree, source=SOURCE)
        assert attrs(graph) == [{"root": String("module")}]


# ═══════════════════════════════════════════════════════════════════
#  VARIABLES
# ═══════════════════════════════════════════════════════════════════

class TestVariables:

    def test_let_and_var(self, tree):
        graph = run_fake("""
            (identifier) @id {
              let text = (source-text @id)
              var count = 1
              set count = (plus count 1)
              node n
              attr (n) text = text, count = count
            }
        """, each_word(tree)[:1], source=SOURCE, root=tree)
        assert attrs(graph) == [{"text": String("alpha"), "count": Integer(2)}]

    def test_scoped_let_is_immutable(self, tree):
        with pytest.raises(VariableError):
            run_fake("""
                (identifier) @id {
                  let @id.x = 1
                  set @id.x = 2
                }
            """, each_word(tree)[:1], root=tree)

    def test_scoped_redeclaration_across_matches(self, tree):
        alpha = tree.children[0]
        with pytest.raises(VariableError):
            run_fake("""
                (identifier) @id {
                  let @id.x = 1
                }
            """, [RawMatch(0, {"id": [alpha]}), RawMatch(0, {"id": [alpha]})], root=tree)

    def test_shadowing_in_nested_block(self):
        graph = run_fake("""
            finish {
              let x = 1
              node n
              if #true {
                let x = 2
                attr (n) inner = x
              }
              attr (n) outer = x
            }
        """)
        assert attrs(graph) == [{"inner": Integer(2), "outer": Integer(1)}]

    def test_variables_do_not_leak_between_matches(self, tree):
        graph = run_fake("""
            (identifier) @id {
              let x = (source-text @id)
              node n
              attr (n) x = x
            }
        """, each_word(tree), source=SOURCE, root=tree)
        assert [a["x"].value for a in attrs(graph)] == ["alpha", "beta", "gamma"]

    def test_scoped_variables_shared_across_stanzas(self, tree):
        alpha = tree.children[0]
        graph = run_fake("""
            (identifier) @id {
              node @id.def
            }
            (identifier) @id {
              attr (@id.def) seen
            }
        """, [RawMatch(0, {"id": [alpha]}), RawMatch(1, {"id": [alpha]})], root=tree)
        assert attrs(graph) == [{"seen": TRUE}]

    def test_undefined_scoped_variable(self, tree):
        with pytest.raises(UndefinedVariableError):
            run_fake("""
                (identifier) @id {
                  node n
                  edge n -> @id.def
                }
            """, each_word(tree)[:1], root=tree)

    def test_graph_node_attribute_access(self, tree):
        graph = run_fake("""
            (identifier) @id {
              node a
              attr (a) name = (source-text @id)
              node b
              attr (b) copy = a.name
            }
        """, each_word(tree)[:1], source=SOURCE, root=tree)
        assert attrs(graph)[1] == {"copy": String("alpha")}

    def test_missing_graph_node_attribute(self, tree):
        with pytest.raises(UndefinedAttributeError):
            run_fake("""
                (identifier) @id {
                  node a
                  let x = a.name
                }
            """, each_word(tree)[:1], root=tree)


# ═══════════════════════════════════════════════════════════════════
#  GRAPH STATEMENTS
# ═══════════════════════════════════════════════════════════════════

class TestGraphStatements:

    def test_edges_and_edge_attributes(self, tree):
        graph = run_fake("""
            (identifier) @id {
              node a
              node b
              edge a -> b
              attr (a -> b) precedence = 1, pop
            }
        """, each_word(tree)[:1], root=tree)
        [edge] = graph.edges
        assert (edge.source, edge.sink) == (0, 1)
        assert edge.attributes == {"precedence": Integer(1), "pop": TRUE}

    def test_attribute_shorthand(self, tree):
        graph = run_fake("""
            attribute symbol_definition = text => type = "pop_symbol", symbol = text, is_definition
            (identifier) @id {
              node n
              attr (n) symbol_definition = (source-text @id)
            }
        """, each_word(tree)[:1], source=SOURCE, root=tree)
        assert attrs(graph) == [{
            "type": String("pop_symbol"),
            "symbol": String("alpha"),
            "is_definition": TRUE,
        }]

    def test_duplicate_attribute_strict(self, tree):
        with pytest.raises(DuplicateAttributeError) as info:
            run_fake("""
                (identifier) @id {
                  node n
                  attr (n) a = 1
                  attr (n) a = 2
                }
            """, each_word(tree)[:1], root=tree)
        assert info.value.span.line == 5

    def test_same_value_twice_is_not_a_conflict(self, tree):
        graph = run_fake("""
            (identifier) @id {
              node n
              attr (n) a = 1
              attr (n) a = 1
            }
        """, each_word(tree)[:1], root=tree)
        assert attrs(graph) == [{"a": Integer(1)}]

    def test_duplicate_attribute_permissive(self, tree, caplog):
        with caplog.at_level(logging.WARNING, logger="tsgraph.graph"):
            graph = run_fake("""
                (identifier) @id {
                  node n
                  attr (n) a = 1
                  attr (n) a = 2
                }
            """, each_word(tree)[:1], root=tree, duplicates=DuplicatePolicy.PERMISSIVE)
        assert attrs(graph) == [{"a": Integer(1)}]
        assert "Keeping a = 1" in caplog.text

    RULES_TWO_EDGES = """
        (identifier) @id {
          node a
          node b
          edge a -> b
          edge a -> b
        }
    """

    def test_duplicate_edge_strict(self, tree):
        with pytest.raises(DuplicateEdgeError):
            run_fake(self.RULES_TWO_EDGES, each_word(tree)[:1], root=tree)

    def test_duplicate_edge_permissive_reuses_edge(self, tree):
        graph = run_fake(
            self.RULES_TWO_EDGES, each_word(tree)[:1], root=tree,
            duplicates=DuplicatePolicy.PERMISSIVE,
        )
        assert len(graph.edges) == 1

    def test_same_statement_twice_is_a_duplicate_even_when_permissive(self, tree):
        alpha = tree.children[0]
        with pytest.raises(DuplicateEdgeError):
            run_fake("""
                (identifier) @id {
                  edge @id.a -> @id.b
                }
                (identifier) @id {
                  node @id.a
                  node @id.b
                }
            """, [
                RawMatch(1, {"id": [alpha]}),
                RawMatch(0, {"id": [alpha]}),
                RawMatch(0, {"id": [alpha]}),
            ], root=tree, duplicates=DuplicatePolicy.PERMISSIVE)

    def test_reserved_attribute_name(self, tree):
        with pytest.raises(ReservedAttributeError):
            run_fake("""
                (identifier) @id {
                  node n
                  attr (n) __hidden = 1
                }
            """, each_word(tree)[:1], root=tree)

    def test_unbound_cannot_be_stored(self):
        with pytest.raises(TypeMismatchError):
            run_fake("""
                global maybe?
                finish {
                  node n
                  attr (n) value = maybe
                }
            """)

    def test_edge_needs_graph_nodes(self, tree):
        with pytest.raises(TypeMismatchError):
            run_fake("""
                (identifier) @id {
                  node n
                  edge n -> @id
                }
            """, each_word(tree)[:1], root=tree)

    def test_graph_is_frozen_after_run(self):
        graph = run_fake("finish { node n }")
        assert graph.frozen
        with pytest.raises(RuntimeError):
            graph.add_node()


# ═══════════════════════════════════════════════════════════════════
#  CONTROL FLOW
# ═══════════════════════════════════════════════════════════════════

class TestControlFlow:

    RULES_OPTIONAL = """
        (module (identifier)? @id) @m {
          node n
          if some @id {
            attr (n) first = (source-text @id)
          } else {
            attr (n) empty
          }
        }
    """

    def test_some_with_capture(self, tree):
        graph = run_fake(
            self.RULES_OPTIONAL,
            [RawMatch(0, {"m": [tree], "id": [tree.children[1]]})],
            source=SOURCE, root=tree,
        )
        assert attrs(graph) == [{"first": String("beta")}]

    def test_none_branch(self, tree):
        graph = run_fake(self.RULES_OPTIONAL, [RawMatch(0, {"m": [tree]})], root=tree)
        assert attrs(graph) == [{"empty": TRUE}]

    def test_elif_and_multiple_conditions(self):
        graph = run_fake("""
            global level = 2
            finish {
              node n
              if (eq level 1) {
                attr (n) branch = "one"
              } elif (gt level 0), (lt level 3) {
                attr (n) branch = "small"
              } else {
                attr (n) branch = "other"
              }
            }
        """)
        assert attrs(graph) == [{"branch": String("small")}]

    def test_condition_must_be_boolean(self):
        with pytest.raises(TypeMismatchError):
            run_fake("""
                finish {
                  if 1 {
                    node n
                  }
                }
            """)

    def test_for_loop_over_many_capture(self, tree):
        graph = run_fake("""
            (module (identifier)* @ids) @m {
              for id in @ids {
                node n
                attr (n) name = (source-text id)
              }
            }
        """, [RawMatch(0, {"m": [tree], "ids": tree.children})], source=SOURCE, root=tree)
        assert [a["name"].value for a in attrs(graph)] == ["alpha", "beta", "gamma"]

    def test_for_over_empty_many_capture(self, tree):
        graph = run_fake("""
            (module (identifier)* @ids) @m {
              for id in @ids {
                node n
              }
            }
        """, [RawMatch(0, {"m": [tree]})], root=tree)
        assert len(graph) == 0

    def test_comprehensions(self):
        graph = run_fake("""
            finish {
              node n
              attr (n) doubled = [(times x 2) for x in [1, 2, 3]]
              attr (n) odd = {x for x in [3, 1, 2, 1] if (not (eq x 2))}
            }
        """)
        assert attrs(graph) == [{
            "doubled": make_list([Integer(2), Integer(4), Integer(6)]),
            "odd": make_set([Integer(1), Integer(3)]),
        }]

    def test_conditional_expression(self):
        graph = run_fake("""
            finish {
              node n
              attr (n) picked = (if #false "a" "b")
            }
        """)
        assert attrs(graph) == [{"picked": String("b")}]

    def test_interpolated_string(self, tree):
        graph = run_fake("""
            (identifier) @id {
              node n
              attr (n) label = f"{(source-text @id)}:{(start-column @id)} {{ok}}"
            }
        """, each_word(tree)[1:2], source=SOURCE, root=tree)
        assert attrs(graph) == [{"label": String("beta:6 {ok}")}]

    def test_print(self, tree, printed):
        run_fake("""
            (identifier) @id {
              print "word ", (source-text @id), " ", #null
            }
        """, each_word(tree)[:2], source=SOURCE, root=tree, print_sink=printed.append)
        assert printed == ["word alpha #null", "word beta #null"]

    def test_exit_ends_only_the_current_match(self, tree):
        graph = run_fake("""
            (identifier) @id {
              node n
              attr (n) name = (source-text @id)
              if (eq (source-text @id) "beta") {
                exit
              }
              attr (n) after
            }
        """, each_word(tree), source=SOURCE, root=tree)
        assert attrs(graph) == [
            {"name": String("alpha"), "after": TRUE},
            {"name": String("beta")},
            {"name": String("gamma"), "after": TRUE},
        ]

    def test_exit_in_finish_block(self):
        graph = run_fake("""
            finish {
              node a
              exit
              node b
            }
            finish {
              node c
            }
        """)
        assert len(graph) == 2


# ═══════════════════════════════════════════════════════════════════
#  FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

class TestFunctions:

    def test_call_and_return(self):
        graph = run_fake("""
            def double(x) {
              return (times x 2)
            }
            def nothing() {
              let y = 1
            }
            finish {
              node n
              attr (n) value = (double 21), empty = (is-null (nothing))
            }
        """)
        assert attrs(graph) == [{"value": Integer(42), "empty": TRUE}]

    def test_return_from_inside_loop(self):
        graph = run_fake("""
            def first_big(xs) {
              for x in xs {
                if (gt x 10) {
                  return x
                }
              }
              return #null
            }
            finish {
              node n
              attr (n) found = (first_big [1, 12, 30])
            }
        """)
        assert attrs(graph) == [{"found": Integer(12)}]

    def test_recursion(self):
        graph = run_fake("""
            def fact(n) {
              if (le n 1) {
                return 1
              }
              return (times n (fact (minus n 1)))
            }
            finish {
              node n
              attr (n) value = (fact 10)
            }
        """)
        assert attrs(graph) == [{"value": Integer(3628800)}]

    def test_functions_can_build_graph(self):
        graph = run_fake("""
            def link(a) {
              node b
              edge a -> b
              return b
            }
            finish {
              node root
              let child = (link root)
              attr (child) leaf
            }
        """)
        assert len(graph) == 2
        assert graph.edge_exists(0, 1)

    def test_unbounded_recursion_overflows(self):
        with pytest.raises(StackOverflowError):
            run_fake("""
                def forever(n) {
                  return (forever n)
                }
                finish {
                  let x = (forever 1)
                }
            """, max_call_depth=10)

    def test_functions_cannot_see_caller_locals(self):
        with pytest.raises(UndefinedVariableError):
            run_fake("""
                def peek() {
                  return secret
                }
                finish {
                  let secret = 1
                  let x = (peek)
                }
            """)


# ═══════════════════════════════════════════════════════════════════
#  ERRORS AND GUARDS
# ═══════════════════════════════════════════════════════════════════

class TestErrors:

    def test_error_carries_statement_location(self):
        with pytest.raises(TypeMismatchError) as info:
            run_fake("""
                finish {
                  node n
                  let x = (plus 1 "a")
                }
            """)
        assert info.value.span.line == 4
        assert info.value.span.file == "<rules>"

    def test_builtin_argument_errors_are_located(self):
        with pytest.raises(ArgumentError) as info:
            run_fake("""
                finish {
                  let x = (nth [1] 5)
                }
            """)
        assert info.value.span.line == 3

    def test_no_partial_graph_on_error(self, tree):
        with pytest.raises(TypeMismatchError):
            run_fake("""
                (identifier) @id {
                  node n
                  attr (n) x = (plus 1 (source-text @id))
                }
            """, each_word(tree), source=SOURCE, root=tree)


class TestGuards:

    def test_false_guard_drops_match(self, tree):
        graph = run_fake("""
            (identifier) @id when (not (eq (source-text @id) "beta")) {
              node n
              attr (n) name = (source-text @id)
            }
        """, each_word(tree), source=SOURCE, root=tree)
        assert [a["name"].value for a in attrs(graph)] == ["alpha", "gamma"]

    def test_guard_must_be_boolean(self, tree):
        with pytest.raises(TypeMismatchError) as info:
            run_fake("""
                (identifier) @id when (source-text @id) {
                  node n
                }
            """, each_word(tree), source=SOURCE, root=tree)
        assert info.value.span.line == 2


class TestExecutionConfig:

    def test_default_config_is_valid(self):
        assert ExecutionConfig().validate() == []

    def test_warnings(self):
        config = ExecutionConfig(globals={"has space": 1}, max_call_depth=0)
        warnings = config.validate()
        assert len(warnings) == 2
        assert any("max_call_depth" in w for w in warnings)

    def test_warnings_are_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tsgraph.runtime"):
            run_fake("finish { node n }", max_call_depth=0)
        assert "ExecutionConfig: max_call_depth" in caplog.text
