"""
Canonical text form of a GraphQL SDL document.

Two documents that declare the same types, fields, arguments and directives
normalize to byte-identical output no matter how they order declarations,
how they are indented, or what comments they carry. Descriptions are part
of the schema and are kept.
"""

from copy import copy
from typing import Any, Iterable, Tuple

from graphql import GraphQLSchema, GraphQLSyntaxError, parse, print_ast, print_schema
from graphql.language import (
    DirectiveDefinitionNode,
    DocumentNode,
    ExecutableDefinitionNode,
    Lexer,
    SchemaDefinitionNode,
    Source,
    TokenKind,
    TypeDefinitionNode,
    Visitor,
    visit,
)


class SchemaNormalizationError(Exception):
    """Base class: the schema cannot be normalized, so it must not be reported."""


class SchemaParseError(SchemaNormalizationError):
    """The SDL is not a parseable type system document."""


class MalformedSchemaError(SchemaNormalizationError):
    """The SDL parses but declares the same name twice within one scope."""


# tokens that need a separating space when they sit next to each other
_WORD_TOKENS = frozenset({TokenKind.NAME, TokenKind.INT, TokenKind.FLOAT})


# ----------------------------
# Helpers
# ----------------------------
def _replace(node, **changes):
    new_node = copy(node)
    for key, value in changes.items():
        setattr(new_node, key, value)
    return new_node


def _sorted_unique(nodes: Iterable[Any], what: str, owner: str, key=None) -> Tuple[Any, ...]:
    """Sort nodes by name; a repeated name is an error, never a tie."""
    key = key or (lambda n: n.name.value)
    nodes = tuple(nodes or ())
    seen = set()
    for n in nodes:
        k = key(n)
        if k in seen:
            raise MalformedSchemaError(f"Duplicate {what} {k!r} in {owner}")
        seen.add(k)
    return tuple(sorted(nodes, key=key))


def _owner(node) -> str:
    name = getattr(node, "name", None)
    return name.value if name is not None else "schema"


def _definition_sort_key(node) -> Tuple[str, bool, str, str]:
    name = node.name.value if getattr(node, "name", None) is not None else ""
    is_extension = node.kind.endswith("_extension")
    # printed text only matters for ties between extensions of one type
    return name, is_extension, node.kind, print_ast(node)


class _SortingVisitor(Visitor):
    """Sorts every named list in the document and rejects duplicate names."""

    def leave_document(self, node, *_args):
        type_names = set()
        directive_names = set()
        schema_definitions = 0
        for definition in node.definitions:
            if isinstance(definition, SchemaDefinitionNode):
                schema_definitions += 1
                if schema_definitions > 1:
                    raise MalformedSchemaError("Duplicate schema definition")
            elif isinstance(definition, DirectiveDefinitionNode):
                name = definition.name.value
                if name in directive_names:
                    raise MalformedSchemaError(f"Duplicate directive definition '@{name}'")
                directive_names.add(name)
            elif isinstance(definition, TypeDefinitionNode):
                name = definition.name.value
                if name in type_names:
                    raise MalformedSchemaError(f"Duplicate type definition {name!r}")
                type_names.add(name)

        return _replace(node, definitions=tuple(sorted(node.definitions, key=_definition_sort_key)))

    def _leave_fields_holder(self, node, *_args):
        owner = _owner(node)
        return _replace(
            node,
            interfaces=_sorted_unique(getattr(node, "interfaces", None), "interface", owner),
            fields=_sorted_unique(node.fields, "field", owner),
        )

    leave_object_type_definition = _leave_fields_holder
    leave_object_type_extension = _leave_fields_holder
    leave_interface_type_definition = _leave_fields_holder
    leave_interface_type_extension = _leave_fields_holder

    def leave_input_object_type_definition(self, node, *_args):
        return _replace(node, fields=_sorted_unique(node.fields, "input field", _owner(node)))

    leave_input_object_type_extension = leave_input_object_type_definition

    def leave_field_definition(self, node, *_args):
        return _replace(node, arguments=_sorted_unique(node.arguments, "argument", _owner(node)))

    def leave_directive_definition(self, node, *_args):
        owner = "@" + node.name.value
        return _replace(
            node,
            arguments=_sorted_unique(node.arguments, "argument", owner),
            locations=_sorted_unique(node.locations, "location", owner, key=lambda n: n.value),
        )

    def leave_directive(self, node, *_args):
        return _replace(node, arguments=_sorted_unique(node.arguments, "argument", "@" + node.name.value))

    def leave_object_value(self, node, *_args):
        return _replace(node, fields=_sorted_unique(node.fields, "object field", "object value"))

    def leave_enum_type_definition(self, node, *_args):
        return _replace(node, values=_sorted_unique(node.values, "enum value", _owner(node)))

    leave_enum_type_extension = leave_enum_type_definition

    def leave_union_type_definition(self, node, *_args):
        return _replace(node, types=_sorted_unique(node.types, "union member", _owner(node)))

    leave_union_type_extension = leave_union_type_definition

    def leave_schema_definition(self, node, *_args):
        return _replace(
            node,
            operation_types=_sorted_unique(
                node.operation_types, "operation type", "schema", key=lambda n: n.operation.value
            ),
        )

    leave_schema_extension = leave_schema_definition

    def leave_string_value(self, node, *_args):
        # """block""" and "quoted" spellings of the same text are the same description
        if node.block:
            return _replace(node, block=False)
        return None


def _reduce_whitespace(printed: str) -> str:
    source = Source(printed)
    lexer = Lexer(source)
    parts = []
    previous_kind = None
    token = lexer.advance()
    while token.kind != TokenKind.EOF:
        if previous_kind in _WORD_TOKENS and token.kind in _WORD_TOKENS:
            parts.append(" ")
        parts.append(source.body[token.start:token.end])
        previous_kind = token.kind
        token = lexer.advance()
    return "".join(parts)


def parse_sdl(sdl: str) -> DocumentNode:
    if not isinstance(sdl, str):
        raise SchemaParseError(f"Schema must be a string, got {type(sdl).__name__}")
    try:
        document = parse(sdl, no_location=True)
    except GraphQLSyntaxError as e:
        raise SchemaParseError(f"Could not parse schema: {e.message}") from e

    for definition in document.definitions:
        if isinstance(definition, ExecutableDefinitionNode):
            raise SchemaParseError(
                f"Schema documents cannot contain executable definitions (found {definition.kind})"
            )
    return document


def normalize_schema(sdl: str) -> str:
    """
    Canonicalize an SDL document.

    Steps:
      1. parse (comments are dropped by the lexer)
      2. sort definitions, fields, arguments, enum values, union members,
         interfaces, directive locations and object literal fields by name; duplicate names raise
         MalformedSchemaError
      3. print from the AST, then re-join the tokens with the minimum whitespace

    Raises: SchemaParseError, MalformedSchemaError
    """
    document = parse_sdl(sdl)
    sorted_document = visit(document, _SortingVisitor())
    return _reduce_whitespace(print_ast(sorted_document))


def normalize_graphql_schema(schema: GraphQLSchema) -> str:
    """Normalize an already-built schema (e.g. ariadne's make_executable_schema result)."""
    return normalize_schema(print_schema(schema))


__all__ = [
    "MalformedSchemaError",
    "SchemaNormalizationError",
    "SchemaParseError",
    "normalize_graphql_schema",
    "normalize_schema",
    "parse_sdl",
]
