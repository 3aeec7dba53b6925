"""
Source-to-runtime transform.

Rewrites ScrapScript into the JavaScript the engine runs. The tree-sitter
syntax tree is rendered back to text node by node, reusing the original
source between children, so untouched code keeps its formatting. Type
syntax is dropped, functions become ``async`` and take the entity as
``self``, calls are awaited, loops yield to the engine and assignments to
engine-backed properties become setter calls.
"""

import json
import logging
import re
from typing import Callable, Optional, Tuple

from .blocks_builder import type_check
from .config import TranslatorConfig, get_config
from .exceptions import UnsupportedConstructError
from .script_parser import ScriptParser, named_children, node_text, parse_tree, string_value

logger = logging.getLogger(__name__)

LOOP_GUARD = "await new Promise(Scrap.loop);"

# Pseudo-property -> engine setter
SETTERS = {
    "x": "setX",
    "y": "setY",
    "direction": "pointInDirection",
    "volume": "setVolume",
    "draggable": "setDraggable",
}

# Keyed pseudo-properties (``X.variables.k``) -> engine setter
KEYED_SETTERS = {
    "variables": "setVariable",
    "effects": "setEffect",
}

FUNCTIONS = ("function_declaration", "function_expression", "function", "arrow_function")
LOOPS = ("while_statement", "do_statement", "for_statement", "for_in_statement")
TYPE_ONLY = ("type_annotation", "type_arguments", "type_parameters", "type_alias_declaration", "ambient_declaration")

# Right-hand sides that must be parenthesized inside ``left op right``
_LOOSE = (
    "binary_expression", "ternary_expression", "assignment_expression",
    "augmented_assignment_expression", "sequence_expression", "arrow_function", "yield_expression",
)


class RuntimeTransformer:
    """Renders one ScrapScript source as engine JavaScript."""

    def __init__(self, config: Optional[TranslatorConfig] = None):
        self.config = config or get_config()
        self.indent = self.config.indent
        self.logger = logging.getLogger(__name__)
        self.parser = ScriptParser()
        self.source = b""
        self.handlers: dict = {
            "interface_declaration": self._interface,
            "call_expression": self._call,
            "assignment_expression": self._assignment,
            "augmented_assignment_expression": self._assignment,
            "update_expression": self._update,
            "member_expression": self._member,
            "subscript_expression": self._member,
            "catch_clause": self._catch,
            "formal_parameters": self._parameters,
            "optional_parameter": self._optional_parameter,
            "as_expression": self._unwrap,
            "satisfies_expression": self._unwrap,
            "non_null_expression": self._unwrap,
            "enum_declaration": self._unsupported,
            "abstract_class_declaration": self._unsupported,
        }
        for kind in FUNCTIONS:
            self.handlers[kind] = self._function
        for kind in LOOPS:
            self.handlers[kind] = self._loop
        for kind in TYPE_ONLY:
            self.handlers[kind] = self._drop

    def transform(self, source: str) -> str:
        tree = parse_tree(source)
        self.source = source.encode("utf-8")
        root = tree.root_node
        # The root node may not span leading and trailing whitespace
        result = (
            self.text(0, root.start_byte) + self.render(root) + self.text(root.end_byte, len(self.source))
        )
        self.logger.debug(f"Transformed {len(source)} characters of source into {len(result)} of JavaScript")
        return result

    # -- rendering ---------------------------------------------------------

    def text(self, start: int, end: int) -> str:
        return self.source[start:end].decode("utf-8")

    def render(self, node) -> str:
        # Keyword tokens share names with nodes ("function")
        handler = self.handlers.get(node.type) if node.is_named else None
        if handler is not None:
            return handler(node)
        return self.splice(node)

    def splice(self, node, override: Optional[Callable[..., Optional[str]]] = None) -> str:
        """The source of ``node`` with every child rendered in place.

        ``override`` may return replacement text for a child, or None to
        render it normally.
        """
        if node.child_count == 0:
            return self.text(node.start_byte, node.end_byte)
        parts = []
        cursor = node.start_byte
        for child in node.children:
            parts.append(self.text(cursor, child.start_byte))
            replaced = override(child) if override is not None else None
            parts.append(replaced if replaced is not None else self.render(child))
            cursor = child.end_byte
        parts.append(self.text(cursor, node.end_byte))
        return "".join(parts)

    def line_indent(self, node) -> str:
        line_start = self.source.rfind(b"\n", 0, node.start_byte) + 1
        return re.match(r"[ \t]*", self.text(line_start, node.start_byte)).group()

    def prepend_statement(self, body, statement: str, indent: str) -> str:
        """Render ``body`` as a block whose first statement is ``statement``."""
        first = f"\n{indent}{self.indent}{statement}"
        if body.type == "statement_block":
            if not named_children(body):
                return "{" + first + f"\n{indent}}}"
            return "{" + first + self.splice(body)[1:]
        return "{" + first + f"\n{indent}{self.indent}{self.render(body)}\n{indent}}}"

    @staticmethod
    def awaited(node, code: str) -> str:
        """``await code``, parenthesized where the await would bind too loosely."""
        parent = node.parent
        wrap = False
        if parent is not None:
            if parent.type in ("member_expression", "subscript_expression"):
                wrap = parent.child_by_field_name("object") == node
            elif parent.type == "call_expression":
                wrap = parent.child_by_field_name("function") == node
            elif parent.type == "new_expression":
                wrap = parent.child_by_field_name("constructor") == node
            elif parent.type == "binary_expression":
                operator = parent.child_by_field_name("operator")
                wrap = operator is not None and operator.type == "**" and parent.child_by_field_name("left") == node
        return f"(await {code})" if wrap else f"await {code}"

    @staticmethod
    def with_first_argument(rendered: str, first: str, has_items: bool) -> str:
        return rendered[0] + first + (", " if has_items else "") + rendered[1:]

    # -- pseudo-properties -------------------------------------------------

    @staticmethod
    def property_key(node) -> Optional[str]:
        """``key`` of ``obj.key`` or ``obj["key"]``."""
        if node.type == "member_expression":
            return node_text(node.child_by_field_name("property"))
        if node.type == "subscript_expression":
            index = node.child_by_field_name("index")
            if index is not None and index.type == "string":
                return string_value(index)
        return None

    def keyed_property(self, node) -> Optional[Tuple[object, str, str]]:
        """``(owner, collection, key)`` for ``owner.variables.key`` style accesses."""
        if node.type not in ("member_expression", "subscript_expression"):
            return None
        collection = node.child_by_field_name("object")
        if collection is None or collection.type not in ("member_expression", "subscript_expression"):
            return None
        name = self.property_key(collection)
        key = self.property_key(node)
        if name in KEYED_SETTERS and key is not None:
            return collection.child_by_field_name("object"), name, key
        return None

    def setter_call(self, left, value: str) -> Optional[str]:
        keyed = self.keyed_property(left)
        if keyed is not None:
            owner, collection, key = keyed
            return f"{self.render(owner)}.{KEYED_SETTERS[collection]}({json.dumps(key)}, {value})"
        key = self.property_key(left)
        if key in SETTERS:
            return f"{self.render(left.child_by_field_name('object'))}.{SETTERS[key]}({value})"
        return None

    def is_pseudo_property(self, node) -> bool:
        return self.keyed_property(node) is not None or self.property_key(node) in SETTERS

    # -- handlers ----------------------------------------------------------

    def _drop(self, node) -> str:
        return ""

    def _unwrap(self, node) -> str:
        return self.render(named_children(node)[0])

    def _unsupported(self, node) -> str:
        line, column = node.start_point
        raise UnsupportedConstructError(
            f"'{node.type}' has no runtime equivalent (line {line + 1})", node.type,
            {'line': line + 1, 'column': column + 1},
        )

    def _interface(self, node) -> str:
        if node_text(node.child_by_field_name("name")) != "Variables":
            return ""
        statements = []
        for member in named_children(node.child_by_field_name("body")):
            if member.type != "property_signature":
                continue
            name = member.child_by_field_name("name")
            if name.type == "string":
                key = string_value(name)
            elif name.type == "property_identifier":
                key = node_text(name)
            else:
                continue
            annotation = member.child_by_field_name("type")
            check = type_check(self.parser.convert(annotation)) if annotation is not None else "any"
            args = [key] + ([check] if isinstance(check, str) else list(check))
            statements.append(f"self.declareVariable({', '.join(json.dumps(a) for a in args)});")
        return ("\n" + self.line_indent(node)).join(statements)

    def _function(self, node) -> str:
        single = node.child_by_field_name("parameter") if node.type == "arrow_function" else None

        def override(child):
            if single is not None and child == single:
                return f"(self, {node_text(child)})"
            return None

        rendered = self.splice(node, override)
        if any(child.type == "async" for child in node.children):
            return rendered
        return "async " + rendered

    def _parameters(self, node) -> str:
        rendered = self.splice(node)
        if node.parent is None or node.parent.type not in FUNCTIONS:
            return rendered
        return self.with_first_argument(rendered, "self", bool(named_children(node)))

    def _optional_parameter(self, node) -> str:
        return self.splice(node, lambda child: "" if child.type == "?" else None)

    def _call(self, node) -> str:
        if node.parent is not None and node.parent.type == "await_expression":
            return self.splice(node)
        function = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        bind = (
            function.type == "identifier" and node_text(function) not in ("String", "Number")
            and arguments is not None and arguments.type == "arguments"
        )

        def override(child):
            if bind and child == arguments:
                return self.with_first_argument(self.splice(child), "self", bool(named_children(child)))
            return None

        return self.awaited(node, self.splice(node, override))

    def _loop(self, node) -> str:
        body = node.child_by_field_name("body")
        indent = self.line_indent(node)
        return self.splice(node, lambda child: self.prepend_statement(child, LOOP_GUARD, indent) if child == body else None)

    def _catch(self, node) -> str:
        param = node.child_by_field_name("parameter")
        if param is not None and param.type != "identifier":
            self._unsupported(param)
        name = node_text(param) if param is not None else "e"
        body = node.child_by_field_name("body")
        guard = f"if ({name} instanceof Scrap.StopError) throw {name};"
        indent = self.line_indent(node)
        rendered = self.splice(node, lambda child: self.prepend_statement(child, guard, indent) if child == body else None)
        if param is None:
            rendered = re.sub(r"^catch\s*", f"catch ({name}) ", rendered, count=1)
        return rendered

    def _assignment(self, node) -> str:
        left = node.child_by_field_name("left")
        if not self.is_pseudo_property(left):
            return self.splice(node)
        right = node.child_by_field_name("right")
        operator = node.child_by_field_name("operator")
        value = self.render(right)
        if operator is not None and node_text(operator) != "=":
            if right.type in _LOOSE:
                value = f"({value})"
            value = f"{self.render(left)} {node_text(operator)[:-1]} {value}"
        return self.awaited(node, self.setter_call(left, value))

    def _update(self, node) -> str:
        argument = node.child_by_field_name("argument")
        if not self.is_pseudo_property(argument):
            return self.splice(node)
        operator = node_text(node.child_by_field_name("operator"))
        value = f"{self.render(argument)} {operator[0]} 1"
        return self.awaited(node, self.setter_call(argument, value))

    def _member(self, node) -> str:
        keyed = self.keyed_property(node)
        if keyed is None or keyed[1] != "variables":
            return self.splice(node)
        owner, _, key = keyed
        return self.awaited(node, f"{self.render(owner)}.getVariable({json.dumps(key)})")


def transform(source: str, config: Optional[TranslatorConfig] = None) -> str:
    """Rewrite ScrapScript ``source`` into engine JavaScript."""
    return RuntimeTransformer(config).transform(source)
