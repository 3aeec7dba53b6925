"""
ScrapScript parser.

Parses source text with the tree-sitter TypeScript grammar and converts the
concrete syntax tree into a small ESTree-shaped AST of ``Node`` objects.
Only the constructs ScrapScript can express are converted; anything else
raises ``UnsupportedConstructError`` naming the tree-sitter node kind.
Leading comments are attached to the statement that follows them.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from tree_sitter_language_pack import get_parser

from .exceptions import ScriptSyntaxError, UnsupportedConstructError

logger = logging.getLogger(__name__)

_PARSER = None


def _get_parser():
    global _PARSER
    if _PARSER is None:
        _PARSER = get_parser("typescript")
    return _PARSER


def parse_tree(source: str):
    """Parse ``source`` into a tree-sitter tree, raising on syntax errors."""
    tree = _get_parser().parse(source.encode("utf-8"))
    if tree.root_node.has_error:
        bad = _first_error(tree.root_node)
        line, column = bad.start_point if bad is not None else (0, 0)
        raise ScriptSyntaxError(f"Syntax error at line {line + 1}, column {column + 1}", line + 1, column + 1)
    return tree


def _first_error(node):
    if node.type == "ERROR" or node.is_missing:
        return node
    for child in node.children:
        if child.has_error or child.is_missing:
            found = _first_error(child)
            if found is not None:
                return found
    return None


def node_text(node) -> str:
    return node.text.decode("utf-8")


def named_children(node) -> List[Any]:
    """Named children without comments."""
    return [child for child in node.named_children if child.type != "comment"]


class Node:
    """An ESTree-style AST node: a ``type`` plus arbitrary attributes."""

    def __init__(self, type: str, line: int = 0, column: int = 0, **fields):
        self.type = type
        self.line = line
        self.column = column
        self.leading_comments: List[str] = []
        self.__dict__.update(fields)

    def __repr__(self):
        fields = {k: v for k, v in self.__dict__.items() if k not in ("type", "line", "column", "leading_comments")}
        return f"Node({self.type!r}, {fields!r})"

    def get(self, name: str, default=None):
        return self.__dict__.get(name, default)


# ---------------------------------------------------------------------------
# Literals
# ---------------------------------------------------------------------------

_SIMPLE_ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0",
    "\\": "\\", "'": "'", '"': '"', "\n": "",
}


def decode_escape(text: str) -> str:
    """Decode a single JavaScript escape sequence (including the backslash)."""
    body = text[1:]
    if body in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[body]
    if body.startswith("u{"):
        return chr(int(body[2:-1], 16))
    if body.startswith("u") or body.startswith("x"):
        return chr(int(body[1:], 16))
    return body


def string_value(node) -> str:
    parts = []
    for child in node.named_children:
        if child.type == "escape_sequence":
            parts.append(decode_escape(node_text(child)))
        else:
            parts.append(node_text(child))
    return "".join(parts)


def number_value(text: str):
    cleaned = text.replace("_", "")
    if re.match(r"^0[xXoObB]", cleaned):
        return int(cleaned, 0)
    if re.match(r"^\d+$", cleaned):
        return int(cleaned)
    value = float(cleaned)
    if value.is_integer() and "e" not in cleaned.lower() and "." not in cleaned:
        return int(value)
    return value


def comment_value(text: str) -> str:
    if text.startswith("//"):
        return text[2:].strip()
    lines = text[2:-2].split("\n")
    return "\n".join(line.strip().lstrip("*").strip() for line in lines).strip()


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------

class ScriptParser:
    """Converts tree-sitter TypeScript syntax trees into ScrapScript AST nodes."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.converters: Dict[str, Callable[[Any], Node]] = {
            # statements
            "program": self._program,
            "statement_block": self._block,
            "expression_statement": self._expression_statement,
            "lexical_declaration": self._variable_declaration,
            "variable_declaration": self._variable_declaration,
            "if_statement": self._if,
            "while_statement": self._while,
            "do_statement": self._do_while,
            "for_statement": self._for,
            "for_in_statement": self._for_of,
            "try_statement": self._try,
            "throw_statement": self._throw,
            "return_statement": self._return,
            "break_statement": self._jump,
            "continue_statement": self._jump,
            "empty_statement": self._empty,
            "function_declaration": self._function_declaration,
            "interface_declaration": self._interface,
            # expressions
            "identifier": self._identifier,
            "this": self._identifier,
            "undefined": self._identifier,
            "number": self._number,
            "string": self._string,
            "true": self._boolean,
            "false": self._boolean,
            "null": self._null,
            "parenthesized_expression": self._parenthesized,
            "binary_expression": self._binary,
            "unary_expression": self._unary,
            "update_expression": self._update,
            "assignment_expression": self._assignment,
            "augmented_assignment_expression": self._assignment,
            "call_expression": self._call,
            "new_expression": self._new,
            "member_expression": self._member,
            "subscript_expression": self._subscript,
            "array": self._array,
            "spread_element": self._spread,
            "arrow_function": self._arrow,
            "function_expression": self._function_expression,
            "function": self._function_expression,
            "await_expression": self._await,
            # types
            "type_annotation": self._type_annotation,
            "predefined_type": self._predefined_type,
            "type_identifier": self._type_reference,
            "generic_type": self._generic_type,
            "array_type": self._array_type,
            "union_type": self._union_type,
            "parenthesized_type": self._parenthesized_type,
        }

    def parse(self, source: str) -> Node:
        """Parse ScrapScript source into a ``Program`` node."""
        tree = parse_tree(source)
        program = self.convert(tree.root_node)
        self.logger.debug(f"Parsed {len(program.body)} top-level statements")
        return program

    def convert(self, node) -> Optional[Node]:
        if node is None:
            return None
        converter = self.converters.get(node.type)
        if converter is None:
            line, column = node.start_point
            raise UnsupportedConstructError(
                f"Unsupported syntax '{node.type}' at line {line + 1}",
                node.type,
                {'line': line + 1, 'column': column + 1},
            )
        return converter(node)

    def _node(self, ts_node, type: str, **fields) -> Node:
        line, column = ts_node.start_point
        return Node(type, line + 1, column + 1, **fields)

    def _field(self, node, name: str) -> Optional[Node]:
        return self.convert(node.child_by_field_name(name))

    def _statements(self, node) -> List[Node]:
        statements = []
        pending: List[str] = []
        for child in node.named_children:
            if child.type == "comment":
                pending.append(comment_value(node_text(child)))
                continue
            statement = self.convert(child)
            if statement.type == "EmptyStatement":
                continue
            statement.leading_comments = pending
            pending = []
            statements.append(statement)
        return statements

    # -- statements --------------------------------------------------------

    def _program(self, node) -> Node:
        return self._node(node, "Program", body=self._statements(node))

    def _block(self, node) -> Node:
        return self._node(node, "BlockStatement", body=self._statements(node))

    def _expression_statement(self, node) -> Node:
        expression = named_children(node)[0]
        if expression.type == "sequence_expression":
            raise UnsupportedConstructError("Comma expressions are not supported", expression.type)
        return self._node(node, "ExpressionStatement", expression=self.convert(expression))

    def _variable_declaration(self, node) -> Node:
        kind_node = node.child_by_field_name("kind")
        kind = kind_node.type if kind_node is not None else node.children[0].type
        declarations = []
        for child in named_children(node):
            if child.type != "variable_declarator":
                continue
            name = child.child_by_field_name("name")
            if name.type != "identifier":
                raise UnsupportedConstructError("Only simple identifiers are supported", name.type)
            identifier = self._node(name, "Identifier", name=node_text(name),
                                    type_annotation=self._field(child, "type"))
            declarations.append(self._node(child, "VariableDeclarator", id=identifier, init=self._field(child, "value")))
        return self._node(node, "VariableDeclaration", kind=kind, declarations=declarations)

    def _if(self, node) -> Node:
        alternative = node.child_by_field_name("alternative")
        alternate = None
        if alternative is not None:
            alternate = self.convert(named_children(alternative)[0])
        return self._node(
            node, "IfStatement",
            test=self._field(node, "condition"),
            consequent=self._field(node, "consequence"),
            alternate=alternate,
        )

    def _while(self, node) -> Node:
        return self._node(node, "WhileStatement", test=self._field(node, "condition"), body=self._field(node, "body"))

    def _do_while(self, node) -> Node:
        return self._node(node, "DoWhileStatement", test=self._field(node, "condition"), body=self._field(node, "body"))

    def _for_part(self, node) -> Optional[Node]:
        if node is None or node.type in (";", "empty_statement"):
            return None
        if node.type == "expression_statement":
            node = named_children(node)[0]
        if node.type == "sequence_expression":
            raise UnsupportedConstructError("Comma expressions are not supported", node.type)
        return self.convert(node)

    def _for(self, node) -> Node:
        return self._node(
            node, "ForStatement",
            init=self._for_part(node.child_by_field_name("initializer")),
            test=self._for_part(node.child_by_field_name("condition")),
            update=self._for_part(node.child_by_field_name("increment")),
            body=self._field(node, "body"),
        )

    def _for_of(self, node) -> Node:
        operator = node.child_by_field_name("operator")
        if operator is None or operator.type != "of":
            raise UnsupportedConstructError("Only for...of loops are supported", "for_in_statement")
        kind = node.child_by_field_name("kind")
        left = node.child_by_field_name("left")
        if kind is None or left.type != "identifier":
            raise UnsupportedConstructError("Only variable declarations are supported", left.type)
        return self._node(
            node, "ForOfStatement",
            kind=kind.type,
            left=self._node(left, "Identifier", name=node_text(left), type_annotation=None),
            right=self._field(node, "right"),
            body=self._field(node, "body"),
        )

    def _try(self, node) -> Node:
        handler = node.child_by_field_name("handler")
        finalizer = node.child_by_field_name("finalizer")
        catch = None
        if handler is not None:
            param = handler.child_by_field_name("parameter")
            if param is not None and param.type != "identifier":
                raise UnsupportedConstructError("Only simple identifiers are supported", param.type)
            catch = self._node(
                handler, "CatchClause",
                param=self._identifier(param) if param is not None else None,
                body=self._field(handler, "body"),
            )
        return self._node(
            node, "TryStatement",
            block=self._field(node, "body"),
            handler=catch,
            finalizer=self._field(finalizer, "body") if finalizer is not None else None,
        )

    def _throw(self, node) -> Node:
        return self._node(node, "ThrowStatement", argument=self.convert(named_children(node)[0]))

    def _return(self, node) -> Node:
        children = named_children(node)
        return self._node(node, "ReturnStatement", argument=self.convert(children[0]) if children else None)

    def _jump(self, node) -> Node:
        if node.child_by_field_name("label") is not None:
            raise UnsupportedConstructError("Labels are not supported", node.type)
        return self._node(node, "BreakStatement" if node.type == "break_statement" else "ContinueStatement")

    def _empty(self, node) -> Node:
        return self._node(node, "EmptyStatement")

    def _params(self, node) -> List[Node]:
        params = []
        for child in named_children(node):
            if child.type != "required_parameter":
                raise UnsupportedConstructError("Only required parameters are supported", child.type)
            pattern = child.child_by_field_name("pattern")
            if pattern.type != "identifier" or child.child_by_field_name("value") is not None:
                raise UnsupportedConstructError("Only simple identifiers are supported", pattern.type)
            params.append(self._node(child, "Identifier", name=node_text(pattern),
                                     type_annotation=self._field(child, "type")))
        return params

    def _function_declaration(self, node) -> Node:
        return self._node(
            node, "FunctionDeclaration",
            id=self._identifier(node.child_by_field_name("name")),
            params=self._params(node.child_by_field_name("parameters")),
            return_type=self._field(node, "return_type"),
            body=self._field(node, "body"),
        )

    def _interface(self, node) -> Node:
        properties = []
        for member in named_children(node.child_by_field_name("body")):
            if member.type != "property_signature":
                raise UnsupportedConstructError("Only property signatures are supported", member.type)
            name = member.child_by_field_name("name")
            key = string_value(name) if name.type == "string" else node_text(name)
            properties.append(self._node(member, "PropertySignature", key=key,
                                         type_annotation=self._field(member, "type")))
        return self._node(node, "InterfaceDeclaration",
                          name=node_text(node.child_by_field_name("name")), body=properties)

    # -- expressions -------------------------------------------------------

    def _identifier(self, node) -> Node:
        return self._node(node, "Identifier", name=node_text(node), type_annotation=None)

    def _number(self, node) -> Node:
        return self._node(node, "NumericLiteral", value=number_value(node_text(node)), raw=node_text(node))

    def _string(self, node) -> Node:
        return self._node(node, "StringLiteral", value=string_value(node))

    def _boolean(self, node) -> Node:
        return self._node(node, "BooleanLiteral", value=node.type == "true")

    def _null(self, node) -> Node:
        return self._node(node, "NullLiteral")

    def _parenthesized(self, node) -> Node:
        children = named_children(node)
        if len(children) != 1 or children[0].type == "sequence_expression":
            raise UnsupportedConstructError("Unsupported parenthesized expression", node.type)
        return self.convert(children[0])

    def _binary(self, node) -> Node:
        operator = node_text(node.child_by_field_name("operator"))
        return self._node(node, "BinaryExpression", operator=operator,
                          left=self._field(node, "left"), right=self._field(node, "right"))

    def _unary(self, node) -> Node:
        operator = node_text(node.child_by_field_name("operator"))
        return self._node(node, "UnaryExpression", operator=operator, argument=self._field(node, "argument"))

    def _update(self, node) -> Node:
        operator = node.child_by_field_name("operator")
        argument = node.child_by_field_name("argument")
        return self._node(node, "UpdateExpression", operator=node_text(operator),
                          argument=self.convert(argument), prefix=operator.start_byte < argument.start_byte)

    def _assignment(self, node) -> Node:
        operator = node.child_by_field_name("operator")
        return self._node(
            node, "AssignmentExpression",
            operator=node_text(operator) if operator is not None else "=",
            left=self._field(node, "left"),
            right=self._field(node, "right"),
        )

    def _arguments(self, node) -> List[Node]:
        if node is None:
            return []
        if node.type != "arguments":
            raise UnsupportedConstructError("Tagged templates are not supported", node.type)
        return [self.convert(child) for child in named_children(node)]

    def _type_arguments(self, node) -> List[Node]:
        if node is None:
            return []
        return [self.convert(child) for child in named_children(node)]

    def _call(self, node) -> Node:
        return self._node(
            node, "CallExpression",
            callee=self._field(node, "function"),
            arguments=self._arguments(node.child_by_field_name("arguments")),
            type_arguments=self._type_arguments(node.child_by_field_name("type_arguments")),
        )

    def _new(self, node) -> Node:
        return self._node(
            node, "NewExpression",
            callee=self._field(node, "constructor"),
            arguments=self._arguments(node.child_by_field_name("arguments")),
            type_arguments=self._type_arguments(node.child_by_field_name("type_arguments")),
        )

    def _member(self, node) -> Node:
        if node.child_by_field_name("optional_chain") is not None:
            raise UnsupportedConstructError("Optional chaining is not supported", node.type)
        prop = node.child_by_field_name("property")
        return self._node(
            node, "MemberExpression",
            object=self._field(node, "object"),
            property=self._node(prop, "Identifier", name=node_text(prop), type_annotation=None),
            computed=False,
        )

    def _subscript(self, node) -> Node:
        index = node.child_by_field_name("index")
        if index.type == "sequence_expression":
            raise UnsupportedConstructError("Comma expressions are not supported", index.type)
        return self._node(node, "MemberExpression", object=self._field(node, "object"),
                          property=self.convert(index), computed=True)

    def _array(self, node) -> Node:
        return self._node(node, "ArrayExpression", elements=[self.convert(c) for c in named_children(node)])

    def _spread(self, node) -> Node:
        return self._node(node, "SpreadElement", argument=self.convert(named_children(node)[0]))

    def _arrow(self, node) -> Node:
        single = node.child_by_field_name("parameter")
        if single is not None:
            params = [self._identifier(single)]
        else:
            params = self._params(node.child_by_field_name("parameters"))
        return self._node(node, "ArrowFunctionExpression", params=params, body=self._field(node, "body"))

    def _function_expression(self, node) -> Node:
        return self._node(node, "FunctionExpression",
                          params=self._params(node.child_by_field_name("parameters")),
                          body=self._field(node, "body"))

    def _await(self, node) -> Node:
        return self._node(node, "AwaitExpression", argument=self.convert(named_children(node)[0]))

    # -- types -------------------------------------------------------------

    def _type_annotation(self, node) -> Node:
        return self.convert(named_children(node)[0])

    def _predefined_type(self, node) -> Node:
        return self._node(node, "TypeKeyword", name=node_text(node))

    def _type_reference(self, node) -> Node:
        return self._node(node, "TypeReference", name=node_text(node), type_arguments=[])

    def _generic_type(self, node) -> Node:
        return self._node(node, "TypeReference", name=node_text(node.child_by_field_name("name")),
                          type_arguments=self._type_arguments(node.child_by_field_name("type_arguments")))

    def _array_type(self, node) -> Node:
        return self._node(node, "ArrayType", element=self.convert(named_children(node)[0]))

    def _union_type(self, node) -> Node:
        types: List[Node] = []
        for child in named_children(node):
            converted = self.convert(child)
            if converted.type == "UnionType":
                types.extend(converted.types)
            else:
                types.append(converted)
        return self._node(node, "UnionType", types=types)

    def _parenthesized_type(self, node) -> Node:
        return self.convert(named_children(node)[0])


def parse(source: str) -> Node:
    return ScriptParser().parse(source)
