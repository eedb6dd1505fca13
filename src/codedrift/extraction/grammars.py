"""Tree-sitter grammar packs for the extractable languages.

Each pack names the grammar module to import, the query that finds
function-like declarations, and the node types the extractor needs to
resolve enclosing classes, nested helpers, call sites and branches.

Query captures:
- ``@name``: the declared name
- ``@node``: the declaration node (its span is the structure's span)
- ``@params``: the parameter list, when the declaration carries one
- ``@fn``: the function node of a binding (``const f = () => ...``)
"""

from __future__ import annotations

from dataclasses import dataclass

# =========================================================================
# Dataclasses
# =========================================================================


@dataclass(frozen=True)
class DeclarationPattern:
    """Maps a query pattern index to extraction behavior."""

    kind: str
    # Methods only count inside a container (object-literal methods are skipped)
    requires_container: bool = False


@dataclass(frozen=True)
class GrammarPack:
    """Tree-sitter configuration for one language."""

    name: str
    grammar_module: str
    # Non-standard language function (typescript, tsx)
    language_func: str | None = None

    query_text: str = ""
    patterns: tuple[DeclarationPattern, ...] = ()

    # Node types that give a method its class name
    container_types: frozenset[str] = frozenset()
    # Node types whose nested declarations belong to the enclosing function
    function_types: frozenset[str] = frozenset()
    # Field holding the return type, if the grammar has one
    return_type_field: str | None = "return_type"

    call_types: frozenset[str] = frozenset()
    # Branches nest: cognitive complexity grows with depth
    branch_types: frozenset[str] = frozenset()
    # Flat increments: elif, case arms
    flat_types: frozenset[str] = frozenset()
    boolean_types: frozenset[str] = frozenset({"binary_expression"})
    boolean_operators: frozenset[str] = frozenset({"&&", "||"})

    modifier_types: frozenset[str] = frozenset()


# =========================================================================
# Python
# =========================================================================

PYTHON = GrammarPack(
    name="python",
    grammar_module="tree_sitter_python",
    query_text="""
        (function_definition
            name: (identifier) @name
            parameters: (parameters) @params) @node
    """,
    patterns=(DeclarationPattern(kind="function"),),
    container_types=frozenset({"class_definition"}),
    function_types=frozenset({"function_definition", "lambda"}),
    call_types=frozenset({"call"}),
    branch_types=frozenset(
        {
            "if_statement",
            "for_statement",
            "while_statement",
            "except_clause",
            "conditional_expression",
        }
    ),
    flat_types=frozenset({"elif_clause", "case_clause"}),
    boolean_types=frozenset({"boolean_operator"}),
    boolean_operators=frozenset({"and", "or"}),
    modifier_types=frozenset({"async"}),
)


# =========================================================================
# JavaScript / TypeScript
# =========================================================================

_JS_FUNCTIONS = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "generator_function",
        "arrow_function",
        "method_definition",
    }
)

_JS_BRANCHES = frozenset(
    {
        "if_statement",
        "for_statement",
        "for_in_statement",
        "while_statement",
        "do_statement",
        "catch_clause",
        "ternary_expression",
    }
)

_JS_MODIFIERS = frozenset(
    {
        "async",
        "static",
        "get",
        "set",
        "readonly",
        "override",
        "abstract",
        "declare",
        "accessibility_modifier",
    }
)


def _js_query(field_definition: str, field_name: str) -> str:
    return f"""
        (function_declaration
            name: (identifier) @name
            parameters: (formal_parameters) @params) @node
        (generator_function_declaration
            name: (identifier) @name
            parameters: (formal_parameters) @params) @node
        (method_definition
            name: [(property_identifier) (private_property_identifier)] @name
            parameters: (formal_parameters) @params) @node
        (lexical_declaration
            (variable_declarator
                name: (identifier) @name
                value: [(arrow_function) (function_expression)] @fn)) @node
        (variable_declaration
            (variable_declarator
                name: (identifier) @name
                value: [(arrow_function) (function_expression)] @fn)) @node
        ({field_definition}
            {field_name}: [(property_identifier) (private_property_identifier)] @name
            value: [(arrow_function) (function_expression)] @fn) @node
    """


_JS_PATTERNS = (
    DeclarationPattern(kind="function"),
    DeclarationPattern(kind="function"),
    DeclarationPattern(kind="method", requires_container=True),
    DeclarationPattern(kind="binding"),
    DeclarationPattern(kind="binding"),
    DeclarationPattern(kind="field", requires_container=True),
)

JAVASCRIPT = GrammarPack(
    name="javascript",
    grammar_module="tree_sitter_javascript",
    query_text=_js_query("field_definition", "property"),
    patterns=_JS_PATTERNS,
    container_types=frozenset({"class_declaration", "class"}),
    function_types=_JS_FUNCTIONS,
    return_type_field=None,
    call_types=frozenset({"call_expression"}),
    branch_types=_JS_BRANCHES,
    flat_types=frozenset({"switch_case"}),
    boolean_operators=frozenset({"&&", "||", "??"}),
    modifier_types=_JS_MODIFIERS,
)

TYPESCRIPT = GrammarPack(
    name="typescript",
    grammar_module="tree_sitter_typescript",
    language_func="language_typescript",
    query_text=_js_query("public_field_definition", "name"),
    patterns=_JS_PATTERNS,
    container_types=frozenset({"class_declaration", "abstract_class_declaration", "class"}),
    function_types=_JS_FUNCTIONS,
    call_types=frozenset({"call_expression"}),
    branch_types=_JS_BRANCHES,
    flat_types=frozenset({"switch_case"}),
    boolean_operators=frozenset({"&&", "||", "??"}),
    modifier_types=_JS_MODIFIERS,
)

TSX = GrammarPack(
    name="tsx",
    grammar_module="tree_sitter_typescript",
    language_func="language_tsx",
    query_text=TYPESCRIPT.query_text,
    patterns=_JS_PATTERNS,
    container_types=TYPESCRIPT.container_types,
    function_types=_JS_FUNCTIONS,
    call_types=TYPESCRIPT.call_types,
    branch_types=_JS_BRANCHES,
    flat_types=TYPESCRIPT.flat_types,
    boolean_operators=TYPESCRIPT.boolean_operators,
    modifier_types=_JS_MODIFIERS,
)


# =========================================================================
# Java
# =========================================================================

JAVA = GrammarPack(
    name="java",
    grammar_module="tree_sitter_java",
    query_text="""
        (method_declaration
            name: (identifier) @name
            parameters: (formal_parameters) @params) @node
        (constructor_declaration
            name: (identifier) @name
            parameters: (formal_parameters) @params) @node
    """,
    patterns=(
        DeclarationPattern(kind="method", requires_container=True),
        DeclarationPattern(kind="constructor", requires_container=True),
    ),
    container_types=frozenset(
        {"class_declaration", "interface_declaration", "enum_declaration", "record_declaration"}
    ),
    function_types=frozenset({"method_declaration", "constructor_declaration", "lambda_expression"}),
    return_type_field="type",
    call_types=frozenset({"method_invocation"}),
    branch_types=frozenset(
        {
            "if_statement",
            "for_statement",
            "enhanced_for_statement",
            "while_statement",
            "do_statement",
            "catch_clause",
            "ternary_expression",
        }
    ),
    flat_types=frozenset({"switch_label"}),
)


# =========================================================================
# Go
# =========================================================================

GO = GrammarPack(
    name="go",
    grammar_module="tree_sitter_go",
    query_text="""
        (function_declaration
            name: (identifier) @name
            parameters: (parameter_list) @params) @node
        (method_declaration
            name: (field_identifier) @name
            parameters: (parameter_list) @params) @node
    """,
    patterns=(DeclarationPattern(kind="function"), DeclarationPattern(kind="method")),
    function_types=frozenset({"function_declaration", "method_declaration", "func_literal"}),
    return_type_field="result",
    call_types=frozenset({"call_expression"}),
    branch_types=frozenset(
        {"if_statement", "for_statement"}
    ),
    flat_types=frozenset({"expression_case", "type_case", "communication_case"}),
)


# =========================================================================
# Rust
# =========================================================================

RUST = GrammarPack(
    name="rust",
    grammar_module="tree_sitter_rust",
    query_text="""
        (function_item
            name: (identifier) @name
            parameters: (parameters) @params) @node
    """,
    patterns=(DeclarationPattern(kind="function"),),
    container_types=frozenset({"impl_item", "trait_item"}),
    function_types=frozenset({"function_item", "closure_expression"}),
    call_types=frozenset({"call_expression"}),
    branch_types=frozenset(
        {"if_expression", "while_expression", "for_expression", "loop_expression"}
    ),
    flat_types=frozenset({"match_arm"}),
    modifier_types=frozenset({"visibility_modifier", "function_modifiers"}),
)


PACKS: dict[str, GrammarPack] = {
    pack.name: pack for pack in (PYTHON, JAVASCRIPT, TYPESCRIPT, TSX, JAVA, GO, RUST)
}


def get_pack(language: str, file_path: str = "") -> GrammarPack | None:
    """Pack for a language; ``.tsx`` files get the TSX grammar."""
    if language == "typescript" and file_path.lower().endswith(".tsx"):
        return TSX
    return PACKS.get(language)
