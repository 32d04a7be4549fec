# tsgraph/grammar.py
"""
PEG grammar of the tsgraph rule language.

The grammar is written for ``parsimonious``.  It is kept as a plain string so
that tests can compile it on their own and exercise single rules; the
compiled :data:`GRAMMAR` is what :mod:`tsgraph.parser` visits.

Notes on the shape of the grammar:

* ``_`` is insignificant whitespace including ``;`` line comments.
* Keywords are matched with a trailing negative lookahead so that names such
  as ``node-type`` or ``iffy`` are not split.
* Stanza patterns are matched structurally only far enough to find where the
  pattern text ends (balanced parentheses, brackets and strings); the text is
  then handed to :mod:`tsgraph.patterns` for capture analysis.
* No rule is a bare alias of another rule, because parsimonious folds such
  aliases into the referenced expression and the alias name is lost.
"""

from __future__ import annotations

from parsimonious.grammar import Grammar

TSG_GRAMMAR = r'''
    # ─────────────────────────────────────────────────────────────
    # Top-Level Structure
    # ─────────────────────────────────────────────────────────────

    file                 = _ item*
    item                 = (global_decl / attribute_decl / function_def / finish_block / stanza) _

    global_decl          = kw_global _ global_name global_suffix?
    global_suffix        = global_quantifier / global_default
    global_quantifier    = ~r"[?*]"
    global_default       = _ "=" _ expr
    global_name          = !keyword ~r"[A-Za-z_](?:\w|-(?!>))*"

    attribute_decl       = kw_attribute _ name _ "=" _ name _ "=>" _ attributes
    function_def         = kw_def _ function_name _ "(" _ parameters? _ ")" _ block
    parameters           = name (_ "," _ name)*
    finish_block         = kw_finish _ block

    stanza               = query_pattern _ guard? block
    guard                = kw_when _ expr _

    # ─────────────────────────────────────────────────────────────
    # Stanza Patterns (tree-sitter query syntax, delimited only)
    # ─────────────────────────────────────────────────────────────

    query_pattern        = query_group query_suffix*
    query_group          = ("(" query_body ")") / ("[" query_body "]")
    query_body           = (query_space / query_group / query_string / query_atom)*
    query_suffix         = _ (query_quantifier / query_capture)
    query_quantifier     = ~r"[?*+]"
    query_capture        = "@" ~r"[A-Za-z_](?:[\w.]|-(?!>))*"
    query_space          = ~r"(?:\s|;[^\n]*)+"
    query_string         = ~r'"(?:[^"\\]|\\.)*"'
    query_atom           = ~r'[^\s()\[\]";]+'

    # ─────────────────────────────────────────────────────────────
    # Statements
    # ─────────────────────────────────────────────────────────────

    block                = "{" _ statement* "}"
    statement            = (declare_stmt / assign_stmt / node_stmt / edge_stmt
                            / edge_attr_stmt / attr_stmt / if_stmt / for_stmt
                            / scan_stmt / print_stmt / exit_stmt / return_stmt
                            / call) _

    declare_stmt         = (kw_let / kw_var) _ expr _ "=" _ expr
    assign_stmt          = kw_set _ expr _ "=" _ expr
    node_stmt            = kw_node _ expr
    edge_stmt            = kw_edge _ expr _ "->" _ expr
    edge_attr_stmt       = kw_attr _ "(" _ expr _ "->" _ expr _ ")" _ attributes
    attr_stmt            = kw_attr _ "(" _ expr _ ")" _ attributes
    attributes           = attribute (_ "," _ attribute)*
    attribute            = field_name (_ "=" _ expr)?

    if_stmt              = kw_if _ conditions _ block elif_clause* else_clause?
    elif_clause          = _ kw_elif _ conditions _ block
    else_clause          = _ kw_else _ block
    conditions           = condition (_ "," _ condition)*
    condition            = some_condition / none_condition / expr
    some_condition       = kw_some _ expr
    none_condition       = kw_none _ expr

    for_stmt             = kw_for _ name _ kw_in _ expr _ block
    scan_stmt            = kw_scan _ expr _ "{" _ scan_arm* "}"
    scan_arm             = string _ block _
    print_stmt           = kw_print _ expr (_ "," _ expr)*
    exit_stmt            = ~r"exit(?![\w\-?!])"
    return_stmt          = kw_return return_value?
    return_value         = hspace expr

    # ─────────────────────────────────────────────────────────────
    # Expressions
    # ─────────────────────────────────────────────────────────────

    expr                 = primary field_access*
    field_access         = "." field_name
    primary              = null_lit / true_lit / false_lit / integer / fstring / string
                         / list_comprehension / list_lit / set_comprehension / set_lit
                         / capture / regex_capture / conditional / call / variable_ref

    null_lit             = "#null"
    true_lit             = "#true"
    false_lit            = "#false"
    integer              = ~r"-?[0-9]+"
    string               = ~r'"(?:[^"\\\n]|\\.)*"'

    fstring              = 'f"' fstring_part* '"'
    fstring_part         = fstring_escape / fstring_text / fstring_hole
    fstring_escape       = "{{" / "}}"
    fstring_text         = ~r'(?:[^"\\{}\n]|\\.)+'
    fstring_hole         = "{" _ expr _ "}"

    list_lit             = "[" _ elements? _ "]"
    set_lit              = "{" _ elements? _ "}"
    elements             = expr (_ "," _ expr)* (_ ",")?
    list_comprehension   = "[" _ comprehension_body _ "]"
    set_comprehension    = "{" _ comprehension_body _ "}"
    comprehension_body   = expr _ kw_for _ name _ kw_in _ expr comprehension_filter?
    comprehension_filter = _ kw_if _ expr

    capture              = "@" capture_name
    regex_capture        = "$" (~r"[0-9]+" / "start" / "end")
    conditional          = "(" _ kw_if _ expr _ expr _ expr _ ")"
    call                 = "(" _ function_name (_ expr)* _ ")"
    variable_ref         = !keyword ~r"[A-Za-z_](?:\w|-(?!>))*[?!]?"

    # ─────────────────────────────────────────────────────────────
    # Names & Keywords
    # ─────────────────────────────────────────────────────────────

    name                 = !keyword ~r"[A-Za-z_](?:\w|-(?!>))*[?!]?"
    function_name        = ~r"[A-Za-z_](?:\w|-(?!>))*[?!]?"
    field_name           = ~r"[A-Za-z_](?:\w|-(?!>))*[?!]?"
    capture_name         = ~r"[A-Za-z_](?:\w|-(?!>))*"

    keyword              = ~r"(?:global|attribute|def|finish|when|let|var|set|node|edge|attr|if|elif|else|for|in|scan|print|exit|return|some|none)(?![\w\-?!])"
    kw_global            = ~r"global(?![\w\-?!])"
    kw_attribute         = ~r"attribute(?![\w\-?!])"
    kw_def               = ~r"def(?![\w\-?!])"
    kw_finish            = ~r"finish(?![\w\-?!])"
    kw_when              = ~r"when(?![\w\-?!])"
    kw_let               = ~r"let(?![\w\-?!])"
    kw_var               = ~r"var(?![\w\-?!])"
    kw_set               = ~r"set(?![\w\-?!])"
    kw_node              = ~r"node(?![\w\-?!])"
    kw_edge              = ~r"edge(?![\w\-?!])"
    kw_attr              = ~r"attr(?![\w\-?!])"
    kw_if                = ~r"if(?![\w\-?!])"
    kw_elif              = ~r"elif(?![\w\-?!])"
    kw_else              = ~r"else(?![\w\-?!])"
    kw_for               = ~r"for(?![\w\-?!])"
    kw_in                = ~r"in(?![\w\-?!])"
    kw_scan              = ~r"scan(?![\w\-?!])"
    kw_print             = ~r"print(?![\w\-?!])"
    kw_return            = ~r"return(?![\w\-?!])"
    kw_some              = ~r"some(?![\w\-?!])"
    kw_none              = ~r"none(?![\w\-?!])"

    # ─────────────────────────────────────────────────────────────
    # Whitespace & Comments
    # ─────────────────────────────────────────────────────────────

    hspace               = ~r"[ \t]*"
    _                    = ~r"(?:\s|;[^\n]*)*"
'''

GRAMMAR = Grammar(TSG_GRAMMAR)

KEYWORDS = frozenset(
    "global attribute def finish when let var set node edge attr "
    "if elif else for in scan print exit return some none".split()
)

__all__ = ["TSG_GRAMMAR", "GRAMMAR", "KEYWORDS"]
