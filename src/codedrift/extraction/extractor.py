"""Layer 1: Structure extraction on tree-sitter grammars.

Turns raw file content into an ordered list of function/method records with
deterministic fingerprints. Each extractable language has a grammar pack
(see ``grammars.py``) whose query finds function-like declarations; the
executor here resolves the enclosing class, drops nested helpers and reads
parameters, return types, modifiers, call sites and branch counts off the
syntax tree.

Extracted:
- free functions (module level only; nested helpers are part of their parent)
- class methods, including constructors and arrow-function class fields
- function and arrow bindings (``const f = (x) => ...``)
- Go methods (receiver type becomes the class name)
- Rust functions inside ``impl`` and ``trait`` blocks

Fingerprint identity is the normalized signature qualified by class, so
body-only and whitespace-only edits keep the fingerprint while a signature
edit produces a new one. The file path is not part of the identity: the
same function in two files fingerprints the same.
"""

from __future__ import annotations

import importlib
import re
from dataclasses import dataclass
from typing import Any

import structlog
import tree_sitter
from tree_sitter import Query as _TSQuery
from tree_sitter import QueryCursor as _TSQueryCursor

from codedrift.core.errors import UnsupportedLanguageError
from codedrift.core.hashing import sha256_hex
from codedrift.core.languages import UNKNOWN, detect_language, is_extractable
from codedrift.extraction.grammars import DeclarationPattern, GrammarPack, get_pack
from codedrift.extraction.lexer import collapse_whitespace
from codedrift.extraction.models import ExtractedStructure

log = structlog.get_logger(__name__)

_SELF_PARAMETERS = frozenset({"self", "cls"})
_ANNOTATION_TYPES = frozenset({"annotation", "marker_annotation"})
_DECORATOR_TYPES = frozenset({"decorator", "attribute_item"})
_COMMENT_TYPES = frozenset({"comment", "line_comment", "block_comment"})


# =============================================================================
# Signature normalization and fingerprints
# =============================================================================


def normalize_signature(signature: str) -> str:
    """Canonical textual form of a signature.

    Collapses whitespace, drops spaces inside brackets, normalizes separators
    and strips a trailing body opener. Two signatures that differ only in
    layout normalize to the same string.
    """
    s = collapse_whitespace(signature)
    s = re.sub(r"\s*(?:\{|=>)\s*$", "", s)
    s = re.sub(r"(?<!:):\s*$", "", s)
    s = re.sub(r"([(\[<])\s+", r"\1", s)
    s = re.sub(r"\s+([)\]>])", r"\1", s)
    s = re.sub(r"\s*,\s*", ", ", s)
    s = re.sub(r"\s*(?<!:):(?!:)\s*", ": ", s)
    return s.strip()


def compute_fingerprint(signature: str, class_name: str | None = None) -> str:
    """SHA-256 hex of the normalized signature, qualified by class."""
    identity = normalize_signature(signature)
    if class_name:
        identity = f"{class_name}.{identity}"
    return sha256_hex(identity)


# =============================================================================
# Grammar loading
# =============================================================================

_LANGUAGES: dict[str, tree_sitter.Language] = {}
_QUERIES: dict[str, tree_sitter.Query] = {}


def _get_language(pack: GrammarPack, file_path: str) -> tree_sitter.Language:
    """Load (once) the tree-sitter language for a pack."""
    if pack.name in _LANGUAGES:
        return _LANGUAGES[pack.name]
    try:
        module = importlib.import_module(pack.grammar_module)
        language_fn = getattr(module, pack.language_func or "language")
    except (ImportError, AttributeError) as err:
        raise UnsupportedLanguageError.for_language(pack.name, file_path) from err
    language = tree_sitter.Language(language_fn())
    _LANGUAGES[pack.name] = language
    return language


def _get_query(pack: GrammarPack, language: tree_sitter.Language) -> tree_sitter.Query:
    query = _QUERIES.get(pack.name)
    if query is None:
        query = _TSQuery(language, pack.query_text)
        _QUERIES[pack.name] = query
    return query


# =============================================================================
# Node helpers
# =============================================================================


def _text(node: Any) -> str:
    return str(node.text.decode("utf-8")) if node is not None and node.text else ""


def _type_name(node: Any) -> str | None:
    """Bare type name of a (possibly pointer, generic or scoped) type node."""
    if node is None:
        return None
    if node.type in ("type_identifier", "identifier", "field_identifier"):
        return _text(node)
    for field_name in ("type", "name"):
        inner = node.child_by_field_name(field_name)
        if inner is not None and inner is not node:
            return _type_name(inner)
    for child in node.named_children:
        found = _type_name(child)
        if found:
            return found
    return None


@dataclass(slots=True)
class _Scope:
    """Where a declaration sits: enclosing class, and whether it is nested."""

    container: Any = None
    nested: bool = False


def _scope_of(node: Any, pack: GrammarPack) -> _Scope:
    scope = _Scope()
    current = node.parent
    while current is not None:
        if current.type in pack.function_types:
            scope.nested = True
            return scope
        if current.type in pack.container_types and scope.container is None:
            scope.container = current
        current = current.parent
    return scope


def _container_name(container: Any) -> str | None:
    if container is None:
        return None
    if container.type == "impl_item":
        return _type_name(container.child_by_field_name("type"))
    return _text(container.child_by_field_name("name")) or None


def _receiver_name(node: Any) -> str | None:
    """Go method receiver type: ``func (s *Server) handle()`` gives Server."""
    receiver = node.child_by_field_name("receiver")
    if receiver is None:
        return None
    for param in receiver.named_children:
        if param.type == "parameter_declaration":
            return _type_name(param.child_by_field_name("type"))
    return None


def _exported_statement(node: Any) -> Any:
    parent = node.parent
    return parent if parent is not None and parent.type == "export_statement" else None


def _parameters(params: Any, fn: Any, language: str) -> tuple[str, ...]:
    if params is None and fn is not None:
        params = fn.child_by_field_name("parameters")
        if params is None:
            single = fn.child_by_field_name("parameter")
            return (_text(single),) if single is not None else ()
    if params is None:
        return ()
    found: list[str] = []
    for child in params.named_children:
        if child.type in _COMMENT_TYPES or child.type == "receiver_parameter":
            continue
        text = collapse_whitespace(_text(child))
        if child.type == "self_parameter" or (language == "python" and text in _SELF_PARAMETERS):
            continue
        found.append(text)
    return tuple(found)


def _return_type(fn: Any, pack: GrammarPack) -> str | None:
    if pack.return_type_field is None:
        return None
    type_node = fn.child_by_field_name(pack.return_type_field)
    if type_node is None:
        return None
    text = collapse_whitespace(_text(type_node)).lstrip(":").strip()
    return text or None


def _modifiers(owners: list[Any], pack: GrammarPack) -> tuple[str, ...]:
    found: list[str] = []
    for owner in owners:
        for child in owner.children:
            if child.type == "modifiers":
                found.extend(_text(m) for m in child.children if m.type not in _ANNOTATION_TYPES)
            elif child.type in pack.modifier_types:
                found.extend(_text(child).split())
    return tuple(dict.fromkeys(found))


def _decorators(node: Any) -> tuple[str, ...]:
    """Python decorators, Java annotations, TS decorators and Rust attributes."""
    found: list[str] = []
    parent = node.parent
    if parent is not None and parent.type == "decorated_definition":
        found.extend(_text(c).strip() for c in parent.children if c.type == "decorator")
    for child in node.children:
        if child.type == "modifiers":
            found.extend(_text(m).strip() for m in child.children if m.type in _ANNOTATION_TYPES)
        elif child.type == "decorator":
            found.append(_text(child).strip())
    if not found:
        preceding: list[str] = []
        sibling = node.prev_named_sibling
        while sibling is not None and sibling.type in _DECORATOR_TYPES:
            preceding.append(_text(sibling).strip())
            sibling = sibling.prev_named_sibling
        found.extend(reversed(preceding))
    return tuple(collapse_whitespace(d) for d in found)


def _callee(node: Any) -> str | None:
    """Rightmost name of a call target (``a.b.c()`` gives ``c``)."""
    if node is None:
        return None
    if node.type.endswith("identifier"):
        return _text(node)
    for field_name in ("attribute", "property", "field", "name", "function"):
        inner = node.child_by_field_name(field_name)
        if inner is not None:
            return _callee(inner)
    return None


# =============================================================================
# Body metrics
# =============================================================================


@dataclass(slots=True)
class _Metrics:
    dependencies: set[str]
    cyclomatic: int = 1
    cognitive: int = 0


def _is_boolean(node: Any, pack: GrammarPack) -> bool:
    if node.type not in pack.boolean_types:
        return False
    operator = node.child_by_field_name("operator")
    return operator is not None and operator.type in pack.boolean_operators


def _walk_metrics(node: Any, pack: GrammarPack, own_name: str, nesting: int, metrics: _Metrics) -> None:
    for child in node.children:
        depth = nesting
        if child.type in pack.call_types:
            target = child.child_by_field_name("function")
            callee = _callee(target) if target is not None else _text(child.child_by_field_name("name"))
            if callee and callee != own_name:
                metrics.dependencies.add(callee)
        if child.type in pack.branch_types:
            metrics.cyclomatic += 1
            metrics.cognitive += 1 + nesting
            depth = nesting + 1
        elif child.type in pack.flat_types or _is_boolean(child, pack):
            metrics.cyclomatic += 1
            metrics.cognitive += 1
        _walk_metrics(child, pack, own_name, depth, metrics)


def _body_metrics(fn: Any, pack: GrammarPack, own_name: str) -> _Metrics:
    metrics = _Metrics(dependencies=set())
    body = fn.child_by_field_name("body")
    if body is not None:
        _walk_metrics(body, pack, own_name, 0, metrics)
    return metrics


# =============================================================================
# Visibility
# =============================================================================


def _python_visibility(name: str, class_name: str | None) -> tuple[bool, bool]:
    is_public = not name.startswith("_") or (name.startswith("__") and name.endswith("__"))
    return is_public, is_public and not (class_name or "").startswith("_")


def _visibility(
    pack: GrammarPack,
    name: str,
    class_name: str | None,
    modifiers: tuple[str, ...],
    node: Any,
    container: Any,
) -> tuple[bool, bool]:
    """(is_public, is_exported) under each language's rules."""
    if pack.name == "python":
        return _python_visibility(name, class_name)
    if pack.name == "go":
        exported = name[:1].isupper()
        return exported, exported
    if pack.name == "rust":
        public = any(m.startswith("pub") for m in modifiers)
        return public, public
    if pack.name == "java":
        in_interface = container is not None and container.type == "interface_declaration"
        public = "public" in modifiers or in_interface
        container_public = container is not None and "public" in _modifiers([container], pack)
        return public, public and (container_public or in_interface)

    # JavaScript / TypeScript
    if container is None:
        exported = _exported_statement(node) is not None
        return exported, exported
    public = not ({"private", "protected"} & set(modifiers)) and not name.startswith("#")
    return public, public and _exported_statement(container) is not None


# =============================================================================
# Assembly
# =============================================================================


def _span(node: Any) -> tuple[int, int]:
    """1-indexed inclusive line span of a node."""
    start = node.start_point[0]
    end = node.end_point[0]
    if node.end_point[1] == 0 and end > start:
        end -= 1
    return start + 1, end + 1


def _build(
    file_path: str,
    language: str,
    lines: list[str],
    pack: GrammarPack,
    pattern: DeclarationPattern,
    captures: dict[str, list[Any]],
) -> ExtractedStructure | None:
    node = captures["node"][0]
    name = _text(captures["name"][0])
    fn = captures["fn"][0] if "fn" in captures else node
    if fn.child_by_field_name("body") is None:
        return None

    scope = _scope_of(node, pack)
    if scope.nested:
        return None
    if pattern.requires_container and scope.container is None:
        return None
    class_name = _receiver_name(node) if pack.name == "go" else _container_name(scope.container)

    params = _parameters(captures["params"][0] if "params" in captures else None, fn, language)
    return_type = _return_type(fn, pack)
    signature = f"{name}({', '.join(params)})"
    if return_type:
        signature += f": {return_type}"
    signature = normalize_signature(signature)

    modifiers = _modifiers([node] if fn is node else [node, fn], pack)
    export = _exported_statement(node)
    if export is not None:
        modifiers = ("export", *(("default",) if any(c.type == "default" for c in export.children) else ()), *modifiers)
    is_public, is_exported = _visibility(pack, name, class_name, modifiers, node, scope.container)

    metrics = _body_metrics(fn, pack, name)
    start_line, end_line = _span(node)
    return ExtractedStructure(
        file_path=file_path,
        function_name=name,
        class_name=class_name,
        signature=signature,
        fingerprint=compute_fingerprint(signature, class_name),
        start_line=start_line,
        end_line=end_line,
        language=language,
        parameters=params,
        return_type=return_type,
        modifiers=modifiers,
        decorators=_decorators(node),
        dependencies=tuple(sorted(metrics.dependencies)),
        is_exported=is_exported,
        is_public=is_public,
        cyclomatic_complexity=metrics.cyclomatic,
        cognitive_complexity=metrics.cognitive,
        lines_of_code=sum(1 for line in lines[start_line - 1 : end_line] if line.strip()),
    )


def extract_structures(file_path: str, text: str, language: str | None = None) -> list[ExtractedStructure]:
    """Extract functions and methods from one file, ordered by start line.

    Args:
        file_path: Repository-relative path, recorded on every structure.
        text: Raw file content.
        language: Declared language; detected from the extension when omitted.

    Raises:
        UnsupportedLanguageError: if the language has no grammar pack.
    """
    language = language or detect_language(file_path)
    pack = get_pack(language, file_path) if is_extractable(language) else None
    if language == UNKNOWN or pack is None:
        raise UnsupportedLanguageError.for_language(language, file_path)

    ts_language = _get_language(pack, file_path)
    parser = tree_sitter.Parser(ts_language)
    tree = parser.parse(text.encode("utf-8"))
    if tree.root_node.has_error:
        log.debug("syntax_errors", file_path=file_path, language=language)

    cursor = _TSQueryCursor(_get_query(pack, ts_language))
    matches: list[tuple[int, dict[str, list[Any]]]] = cursor.matches(tree.root_node)

    lines = text.split("\n")
    structures: list[ExtractedStructure] = []
    for pattern_idx, captures in matches:
        if pattern_idx >= len(pack.patterns) or "node" not in captures or "name" not in captures:
            continue
        structure = _build(file_path, language, lines, pack, pack.patterns[pattern_idx], captures)
        if structure is not None:
            structures.append(structure)

    structures.sort(key=lambda s: (s.start_line, s.end_line, s.function_name))
    log.debug("structures_extracted", file_path=file_path, language=language, count=len(structures))
    return structures
