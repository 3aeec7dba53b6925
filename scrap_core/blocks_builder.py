"""
AST-to-block builder.

Turns ScrapScript source into a block graph. Every conversion receives the
connection its result must attach to as an explicit argument; statement
conversions return the connection the following statement should attach to
(``None`` after a terminal block). Blocks are built into a scratch workspace
that replaces the target workspace only when the whole source converted.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .block_definitions import CATALOGUE, Member, assigned_check, make_function_block, set_value_shadow
from .exceptions import ConnectionCheckError, UnsupportedConstructError
from .models import (
    Block, CallState, ConnectionType, Connection, IfState, InputType, ParameterState, ReturnState,
    TryState, ArrayState, UnionState, Workspace,
)
from .script_parser import Node, ScriptParser
from .types import Check, normalize_check, to_check, TYPES

logger = logging.getLogger(__name__)

MATH_FUNCTIONS = (
    "abs", "floor", "round", "ceil", "sqrt", "sin", "cos", "tan",
    "asin", "acos", "atan", "log", "log10", "exp",
)
DATE_GETTERS = ("getFullYear", "getMonth", "getDate", "getDay", "getHours", "getMinutes", "getSeconds")
SPRITE_PROPERTIES = ("x", "y", "size", "direction", "volume", "penSize", "penColor", "visible", "draggable")
ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "%", "**")
COMPARE_OPERATORS = ("==", "!=", "===", "!==", "<", "<=", ">", ">=")
LOGICAL_OPERATORS = ("&&", "||")
LOOPS = ("WhileStatement", "DoWhileStatement", "ForStatement", "ForOfStatement")

Variable = Tuple[str, Check]


def property_name(node: Node) -> Optional[str]:
    """Name of an identifier or string-literal property, else None."""
    if node.type == "Identifier":
        return node.name
    if node.type == "StringLiteral":
        return node.value
    return None


def is_identifier(node: Optional[Node], *names: str) -> bool:
    return node is not None and node.type == "Identifier" and node.name in names


def is_property(node: Node, *names: str) -> bool:
    """Whether a member expression accesses one of ``names``."""
    prop = node.property
    if node.computed:
        return prop.type == "StringLiteral" and prop.value in names
    return prop.name in names


def type_check(node: Optional[Node]) -> Check:
    """The check described by a type annotation node."""
    if node is None:
        return "any"
    if node.type == "ArrayType":
        return "Array"
    if node.type == "TypeKeyword":
        return node.name if node.name in ("number", "string", "boolean") else "any"
    if node.type == "TypeReference":
        return node.name if node.name in TYPES else "any"
    if node.type == "UnionType":
        members: List[str] = []
        for member in node.types:
            check = type_check(member)
            members.extend([check] if isinstance(check, str) else check)
        return normalize_check(members)
    return "any"


def check_text(check: Check) -> str:
    return check if isinstance(check, str) else "|".join(check)


def contains_continue(node: Any) -> bool:
    """Whether ``continue`` targets the loop whose body is ``node``."""
    if isinstance(node, list):
        return any(contains_continue(item) for item in node)
    if not isinstance(node, Node):
        return False
    if node.type == "ContinueStatement":
        return True
    if node.type in LOOPS or node.type in ("FunctionDeclaration", "ArrowFunctionExpression", "FunctionExpression"):
        return False
    return any(
        contains_continue(value) for key, value in node.__dict__.items()
        if key not in ("type", "line", "column", "leading_comments")
    )


def collect_variables(program: Node) -> List[Variable]:
    """Harvest the ``Variables`` interface declarations of a program."""
    variables: List[Variable] = []
    for statement in program.body:
        if statement.type == "InterfaceDeclaration" and statement.name == "Variables":
            for prop in statement.body:
                variables.append((prop.key, type_check(prop.type_annotation)))
    return variables


def get_variables(source: str) -> List[Variable]:
    """Entity variables declared by ``source``."""
    return collect_variables(ScriptParser().parse(source))


class BlocksBuilder:
    """Builds a workspace's blocks from ScrapScript source."""

    def __init__(self, workspace: Workspace):
        self.workspace = workspace
        self.logger = logging.getLogger(__name__)
        self.variables: List[Variable] = []
        self.functions: Dict[str, CallState] = {}
        self._scratch: Optional[Workspace] = None
        self._created: List[Block] = []
        self._returns: List[Any] = []
        self._stacks = 0

        self.statements: Dict[str, Callable[[Node, Optional[Connection]], Optional[Connection]]] = {
            "VariableDeclaration": self._variable_declaration,
            "ExpressionStatement": self._expression_statement,
            "IfStatement": self._if,
            "WhileStatement": self._while,
            "DoWhileStatement": self._do_while,
            "ForStatement": self._for,
            "ForOfStatement": self._for_of,
            "TryStatement": self._try,
            "ThrowStatement": self._throw,
            "ReturnStatement": self._return,
            "BreakStatement": self._jump,
            "ContinueStatement": self._jump,
            "BlockStatement": self._block_statement,
            "FunctionDeclaration": self._function,
            "InterfaceDeclaration": self._interface,
        }
        self.expressions: Dict[str, Callable[[Node, Optional[Connection]], Optional[Block]]] = {
            "NumericLiteral": self._number,
            "StringLiteral": self._string,
            "BooleanLiteral": self._boolean,
            "NullLiteral": self._null,
            "Identifier": self._identifier,
            "BinaryExpression": self._binary,
            "UnaryExpression": self._unary,
            "UpdateExpression": self._update,
            "AssignmentExpression": self._assignment,
            "CallExpression": self._call,
            "NewExpression": self._new,
            "MemberExpression": self._member,
            "ArrayExpression": self._array,
            "SpreadElement": self._spread,
        }

    # -- entry points ------------------------------------------------------

    def build(self, source: str) -> List[Variable]:
        """Replace the workspace contents with blocks built from ``source``.

        Returns the variables declared by the ``Variables`` interface. On any
        error the workspace is left untouched.
        """
        program = ScriptParser().parse(source)
        self._scratch = Workspace(self.workspace.catalogue)
        self._created = []
        self._stacks = 0
        self.variables = collect_variables(program)
        self.functions = {}

        # Top-level functions are callable before their declaration
        for statement in program.body:
            if statement.type == "FunctionDeclaration":
                self._register_function(statement)

        connection = None
        for statement in program.body:
            if self._starts_stack(statement):
                connection = None
            connection = self.statement(statement, connection)

        self.workspace.adopt(self._scratch)
        self.logger.info(
            f"Built {len(self.workspace)} blocks from {len(program.body)} statements "
            f"({len(self.variables)} variables, {len(self.functions)} functions)"
        )
        return self.variables

    def _starts_stack(self, node: Node) -> bool:
        if node.type in ("FunctionDeclaration", "InterfaceDeclaration"):
            return True
        if node.type == "ExpressionStatement" and node.expression.type == "CallExpression":
            callee = node.expression.callee
            if callee.type == "MemberExpression" and is_identifier(callee.object, "self"):
                definition = CATALOGUE.get(property_name(callee.property) or "")
                return definition is not None and definition.member == Member.METHOD and definition.is_hat
        return False

    # -- helpers -----------------------------------------------------------

    def new_block(self, block_type: str, connection: Optional[Connection] = None) -> Block:
        """Create a block and attach it to ``connection``."""
        block = self._scratch.new_block(block_type)
        self._created.append(block)
        if connection is None:
            block.y = self._stacks * 100
            self._stacks += 1
        else:
            self.attach(block, connection)
        return block

    def attach(self, block: Block, connection: Connection):
        child = block.output_connection or block.previous_connection
        if child is None:
            raise UnsupportedConstructError(f"A '{block.type}' block cannot be nested here", block.type)
        if connection.type is ConnectionType.INPUT_VALUE and child.type is not ConnectionType.OUTPUT:
            raise UnsupportedConstructError(f"'{block.type}' is a statement and cannot be used as a value", block.type)
        if connection.type is not ConnectionType.INPUT_VALUE and child.type is ConnectionType.OUTPUT:
            raise UnsupportedConstructError(f"'{block.type}' is a value and cannot be used as a statement", block.type)
        try:
            if not connection.connect(child):
                self.logger.debug(
                    f"Forcing {block.type} {child.check} into {connection.source_block.type} {connection.check}"
                )
                connection.connect(child, force=True)
        except ConnectionCheckError as e:
            raise UnsupportedConstructError(e.message, block.type) from e

    @staticmethod
    def input(block: Block, name: str) -> Connection:
        return block.require_input(name).connection

    def set_shadow(self, connection: Optional[Connection], state: Dict[str, Any]):
        if connection is None:
            return
        if connection.type is not ConnectionType.INPUT_VALUE:
            raise UnsupportedConstructError(f"A {state['type']} literal cannot be used as a statement", state["type"])
        connection.set_shadow_state(state)

    def unsupported(self, node: Node, message: str):
        raise UnsupportedConstructError(
            f"{message} (line {node.line})", node.type, {'line': node.line, 'column': node.column},
        )

    # -- statements --------------------------------------------------------

    def statement(self, node: Node, connection: Optional[Connection]) -> Optional[Connection]:
        handler = self.statements.get(node.type)
        if handler is None:
            self.unsupported(node, f"Unsupported statement {node.type}")
        marker = len(self._created)
        result = handler(node, connection)
        if node.leading_comments and len(self._created) > marker:
            self._created[marker].set_comment_text("\n".join(node.leading_comments))
        return result

    def body(self, node: Optional[Node], connection: Optional[Connection]) -> Optional[Connection]:
        """Convert a nested statement list starting at ``connection``."""
        if node is None:
            return connection
        statements = node.body if node.type == "BlockStatement" else [node]
        for statement in statements:
            if connection is None:
                self.unsupported(statement, "Unreachable statement after a terminal block")
            connection = self.statement(statement, connection)
        return connection

    def _block_statement(self, node: Node, connection):
        return self.body(node, connection)

    def _variable_declaration(self, node: Node, connection):
        for declarator in node.declarations:
            block = self.new_block("variable", connection)
            block.set_field_value("kind", node.kind)
            identifier = declarator.id

            typed = self.new_block("typed", self.input(block, "VAR"))
            type_connection = self.input(typed, "TYPE")
            if identifier.type_annotation is not None:
                typed.set_field_value("PARAM", f"{identifier.name}:{check_text(type_check(identifier.type_annotation))}")
                self.type(identifier.type_annotation, type_connection)
            else:
                type_connection.set_shadow_state({"type": "type"})
                typed.set_field_value("PARAM", identifier.name)

            value = self.input(block, "VALUE")
            check = to_check(typed)
            value.set_check(check)
            set_value_shadow(block, check)
            self.expression(declarator.init, value)
            connection = block.next_connection
        return connection

    def _expression_statement(self, node: Node, connection):
        expression = node.expression
        if connection is not None and expression.type not in (
                "CallExpression", "AssignmentExpression", "UpdateExpression"):
            self.unsupported(expression, f"{expression.type} cannot be used as a statement")
        block = self.expression(expression, connection, statement=True)
        if block is None or block.previous_connection is None:
            return None
        return block.next_connection

    def _if(self, node: Node, connection):
        block = self.new_block("controls_if", connection)
        branches = [node]
        alternate = node.alternate
        while alternate is not None and alternate.type == "IfStatement":
            branches.append(alternate)
            alternate = alternate.alternate

        block.load_extra_state(IfState(else_if_count=len(branches) - 1, has_else=alternate is not None))
        for i, branch in enumerate(branches):
            self.expression(branch.test, self.input(block, f"IF{i}"))
            self.body(branch.consequent, self.input(block, f"DO{i}"))
        if alternate is not None:
            self.body(alternate, self.input(block, "ELSE"))
        return block.next_connection

    def _while(self, node: Node, connection):
        block = self.new_block("while", connection)
        self.expression(node.test, self.input(block, "CONDITION"))
        self.body(node.body, self.input(block, "STACK"))
        return block.next_connection

    def _do_while(self, node: Node, connection):
        block = self.new_block("doWhile", connection)
        self.expression(node.test, self.input(block, "CONDITION"))
        self.body(node.body, self.input(block, "STACK"))
        return block.next_connection

    def _canonical_counter(self, node: Node) -> Optional[Tuple[str, Node, Node]]:
        """``(name, start, end)`` when the loop reads ``for (let i = E1; i <= E2; i++)``."""
        init, test, update = node.init, node.test, node.update
        if init is None or test is None or update is None:
            return None
        if init.type != "VariableDeclaration" or init.kind != "let" or len(init.declarations) != 1:
            return None
        declarator = init.declarations[0]
        name = declarator.id.name
        if declarator.init is None or declarator.id.type_annotation is not None:
            return None
        if test.type != "BinaryExpression" or test.operator != "<=" or not is_identifier(test.left, name):
            return None
        if update.type != "UpdateExpression" or update.operator != "++" or not is_identifier(update.argument, name):
            return None
        return name, declarator.init, test.right

    def _for(self, node: Node, connection):
        if node.init is None and node.test is None and node.update is None:
            block = self.new_block("while", connection)
            self.new_block("boolean", self.input(block, "CONDITION")).set_field_value("BOOL", "true")
            self.body(node.body, self.input(block, "STACK"))
            return block.next_connection

        counter = self._canonical_counter(node)
        if counter is not None:
            name, start, end = counter
            block = self.new_block("for", connection)
            block.set_field_value("VAR", f"{name}:number")
            self.expression(start, self.input(block, "FROM"))
            self.expression(end, self.input(block, "TO"))
            self.body(node.body, self.input(block, "STACK"))
            return block.next_connection

        return self._desugar_for(node, connection)

    def _desugar_for(self, node: Node, connection):
        """``init; while (test) { body; update; }``, scoped by ``if (true)`` for block declarations."""
        if contains_continue(node.body):
            self.unsupported(node, "'continue' inside a non-canonical for loop")
        self.logger.debug(f"Desugaring for loop at line {node.line} into while")

        scope = None
        inner = connection
        if node.init is not None and node.init.type == "VariableDeclaration" and node.init.kind != "var":
            scope = self.new_block("controls_if", connection)
            self.new_block("boolean", self.input(scope, "IF0")).set_field_value("BOOL", "true")
            inner = self.input(scope, "DO0")

        if node.init is not None:
            if node.init.type == "VariableDeclaration":
                inner = self.statement(node.init, inner)
            else:
                inner = self.statement(Node("ExpressionStatement", node.line, node.column, expression=node.init), inner)

        loop = self.new_block("while", inner)
        if node.test is not None:
            self.expression(node.test, self.input(loop, "CONDITION"))
        else:
            self.new_block("boolean", self.input(loop, "CONDITION")).set_field_value("BOOL", "true")

        tail = self.body(node.body, self.input(loop, "STACK"))
        if node.update is not None:
            if tail is None:
                self.unsupported(node, "Loop update is unreachable")
            self.statement(Node("ExpressionStatement", node.line, node.column, expression=node.update), tail)

        if scope is not None:
            return scope.next_connection
        return loop.next_connection

    def _for_of(self, node: Node, connection):
        block = self.new_block("foreach", connection)
        block.set_field_value("VAR", node.left.name)
        self.expression(node.right, self.input(block, "ITERABLE"))
        self.body(node.body, self.input(block, "DO"))
        return block.next_connection

    def _try(self, node: Node, connection):
        block = self.new_block("tryCatch", connection)
        handler = node.handler
        catch = False
        if handler is not None:
            catch = handler.param.name if handler.param is not None else True
        block.load_extra_state(TryState(catch=catch, finally_=node.finalizer is not None))

        self.body(node.block, self.input(block, "TRY"))
        if handler is not None:
            self.body(handler.body, self.input(block, "CATCH"))
        if node.finalizer is not None:
            self.body(node.finalizer, self.input(block, "FINALLY"))
        return block.next_connection

    def _throw(self, node: Node, connection):
        block = self.new_block("throw", connection)
        self.expression(node.argument, self.input(block, "ERROR"))
        return None

    def _return(self, node: Node, connection):
        block = self.new_block("return", connection)
        if node.argument is not None:
            output = self._returns[-1] if self._returns and self._returns[-1] else "any"
            block.load_extra_state(ReturnState(output=output))
            self.expression(node.argument, self.input(block, "VALUE"))
        return None

    def _jump(self, node: Node, connection):
        self.new_block("break" if node.type == "BreakStatement" else "continue", connection)
        return None

    def _interface(self, node: Node, connection):
        if node.name != "Variables":
            self.unsupported(node, "Only the 'Variables' interface is supported")
        if connection is not None:
            self.unsupported(node, "The 'Variables' interface must be declared at the top level")
        return None

    def _register_function(self, node: Node):
        name = node.id.name
        if name in self.functions:
            self.unsupported(node, f"Function '{name}' is declared twice")
        returns = node.return_type is not None and not (
            node.return_type.type == "TypeKeyword" and node.return_type.name == "void")
        self.functions[name] = CallState(
            name=name,
            params=[type_check(p.type_annotation) for p in node.params],
            return_type=type_check(node.return_type) if returns else False,
        )

    def _function(self, node: Node, connection):
        if connection is not None:
            self.unsupported(node, "Functions can only be declared at the top level")
        signature = self.functions[node.id.name]
        block = make_function_block(
            self._scratch, node.id.name,
            [p.name for p in node.params],
            returns=signature.return_type is not False,
        )
        self._created.append(block)
        block.y = self._stacks * 100
        self._stacks += 1

        for i, param in enumerate(node.params):
            typed = block.get_input_target(f"PARAM_{i}")
            if param.type_annotation is not None:
                typed.set_field_value("PARAM", f"{param.name}:{check_text(type_check(param.type_annotation))}")
                self.type(param.type_annotation, self.input(typed, "TYPE"))
        if signature.return_type is not False:
            self.type(node.return_type, self.input(block, "RETURNS"))

        self._returns.append(signature.return_type)
        try:
            self.body(node.body, block.next_connection)
        finally:
            self._returns.pop()
        return None

    # -- types -------------------------------------------------------------

    def type(self, node: Optional[Node], connection: Connection):
        if node is None:
            return
        if node.type == "TypeKeyword":
            if node.name not in ("any", "number", "string", "boolean"):
                self.unsupported(node, f"Unsupported type '{node.name}'")
            self.new_block("type", connection).set_field_value("TYPE", node.name)
        elif node.type == "TypeReference":
            if node.name in ("Date", "Color", "Sprite") and not node.type_arguments:
                self.new_block("type", connection).set_field_value("TYPE", node.name)
            elif node.name in ("Array", "Iterable"):
                block = self.new_block("generic", connection)
                block.set_field_value("ITERABLE", node.name)
                if node.type_arguments:
                    self.type(node.type_arguments[0], self.input(block, "TYPE"))
            else:
                self.unsupported(node, f"Unknown type '{node.name}'")
        elif node.type == "ArrayType":
            block = self.new_block("generic", connection)
            block.set_field_value("ITERABLE", "Array")
            self.type(node.element, self.input(block, "TYPE"))
        elif node.type == "UnionType":
            block = self.new_block("union", connection)
            block.load_extra_state(UnionState(count=len(node.types)))
            for i, member in enumerate(node.types):
                self.type(member, self.input(block, f"TYPE{i}"))
        else:
            self.unsupported(node, f"Unsupported type {node.type}")

    # -- expressions -------------------------------------------------------

    def expression(self, node: Optional[Node], connection: Optional[Connection],
                   statement: bool = False) -> Optional[Block]:
        if node is None:
            return None
        handler = self.expressions.get(node.type)
        if handler is None:
            self.unsupported(node, f"Unsupported expression {node.type}")
        if node.type == "CallExpression":
            return handler(node, connection, statement)
        return handler(node, connection)

    def _number(self, node: Node, connection):
        self.set_shadow(connection, {"type": "math_number", "fields": {"NUM": node.value}})
        return None

    def _string(self, node: Node, connection):
        self.set_shadow(connection, {"type": "iterables_string", "fields": {"TEXT": node.value}})
        return None

    def _boolean(self, node: Node, connection):
        block = self.new_block("boolean", connection)
        block.set_field_value("BOOL", "true" if node.value else "false")
        return block

    def _null(self, node: Node, connection):
        return None

    def _identifier(self, node: Node, connection):
        if node.name == "self":
            self.set_shadow(connection, {"type": "sprite", "fields": {"SPRITE": "self"}})
            return None
        if node.name in ("Infinity", "NaN"):
            block = self.new_block("constant", connection)
            block.set_field_value("CONSTANT", node.name)
            return block
        if node.name in ("this", "undefined", "$", "Scrap", "Math", "Color", "window"):
            self.unsupported(node, f"'{node.name}' cannot be used as a value")
        return self._parameter(node.name, ParameterState(type="any"), connection)

    def _parameter(self, name: str, state: ParameterState, connection) -> Block:
        block = self._scratch.new_block("parameter")
        self._created.append(block)
        block.load_extra_state(state)
        block.set_field_value("VAR", name)
        if connection is not None:
            self.attach(block, connection)
        return block

    def _binary(self, node: Node, connection):
        operator = node.operator
        if operator in ARITHMETIC_OPERATORS:
            block = self.new_block("arithmetics", connection)
            block.set_field_value("OP", operator)
        elif operator in COMPARE_OPERATORS:
            block = self.new_block("compare", connection)
            block.set_field_value("OP", operator[:2])
        elif operator in LOGICAL_OPERATORS:
            block = self.new_block("operation", connection)
            block.set_field_value("OP", operator)
        else:
            self.unsupported(node, f"Unsupported operator '{operator}'")
        self.expression(node.left, self.input(block, "A"))
        self.expression(node.right, self.input(block, "B"))
        return block

    def _unary(self, node: Node, connection):
        if node.operator == "!":
            block = self.new_block("not", connection)
            self.expression(node.argument, self.input(block, "BOOL"))
        elif node.operator == "-":
            if node.argument.type == "NumericLiteral":
                block = self.new_block("math_number", connection)
                block.set_field_value("NUM", -node.argument.value)
            else:
                block = self.new_block("arithmetics", connection)
                block.set_field_value("OP", "-")
                self.input(block, "A").set_shadow_state({"type": "math_number", "fields": {"NUM": 0}})
                self.expression(node.argument, self.input(block, "B"))
        elif node.operator == "+":
            block = self.new_block("number", connection)
            self.expression(node.argument, self.input(block, "VALUE"))
        else:
            self.unsupported(node, f"Unsupported operator '{node.operator}'")
        return block

    def _update(self, node: Node, connection):
        block = self.new_block("change", connection)
        self.expression(node.argument, self.input(block, "VAR"))
        self.input(block, "VALUE").set_shadow_state(
            {"type": "math_number", "fields": {"NUM": -1 if node.operator == "--" else 1}}
        )
        return block

    def _assignment(self, node: Node, connection):
        if node.left.type not in ("Identifier", "MemberExpression"):
            self.unsupported(node, "Only identifiers and member expressions can be assigned")
        if node.operator == "=":
            block = self.new_block("set", connection)
            argument = node.right
        elif node.operator == "+=":
            block = self.new_block("change", connection)
            argument = node.right
        elif node.operator[:-1] in ARITHMETIC_OPERATORS + LOGICAL_OPERATORS:
            block = self.new_block("set", connection)
            argument = Node("BinaryExpression", node.line, node.column,
                            operator=node.operator[:-1], left=node.left, right=node.right)
        else:
            self.unsupported(node, f"Unsupported assignment '{node.operator}'")
        self.expression(node.left, self.input(block, "VAR"))
        set_value_shadow(block, assigned_check(block))
        self.expression(argument, self.input(block, "VALUE"))
        return block

    def _arguments(self, block: Block, arguments: List[Node], skip: int = 0):
        """Fill the block's value inputs in declaration order, after the first ``skip``."""
        names = [i.name for i in block.inputs if i.type is InputType.VALUE][skip:]
        if len(arguments) > len(names):
            raise UnsupportedConstructError(f"Too many arguments for '{block.type}'", block.type)
        for name, argument in zip(names, arguments):
            self.expression(argument, self.input(block, name))

    def _call(self, node: Node, connection, statement: bool = False):
        callee = node.callee
        if callee.type == "Identifier":
            return self._call_identifier(node, connection, statement)
        if callee.type != "MemberExpression":
            self.unsupported(node, "Unsupported function call")

        obj = callee.object
        name = property_name(callee.property) if not callee.computed or callee.property.type == "StringLiteral" else None
        if name is None:
            self.unsupported(node, "Unsupported function call")

        if is_identifier(obj, "window") and name in ("alert", "prompt", "confirm"):
            block = self.new_block(name, connection)
            self._arguments(block, node.arguments)
            return block

        if is_identifier(obj, "Color"):
            if name == "fromHex":
                if len(node.arguments) != 1 or node.arguments[0].type != "StringLiteral":
                    self.unsupported(node, "Color.fromHex only accepts a string literal")
                block = self.new_block("color", connection)
                block.set_field_value("COLOR", node.arguments[0].value)
                return block
            if name == "fromRGB":
                block = self.new_block("rgb", connection)
                self._arguments(block, node.arguments)
                return block
            if name == "random":
                return self.new_block("color_random", connection)
            self.unsupported(node, f"Unsupported Color function '{name}'")

        if is_identifier(obj, "Scrap"):
            if name == "stop":
                return self.new_block("stop", connection)
            self.unsupported(node, f"Unsupported Scrap function '{name}'")

        if is_identifier(obj, "Math"):
            if name in MATH_FUNCTIONS:
                block = self.new_block("math", connection)
                block.set_field_value("OP", name)
                self._arguments(block, node.arguments)
                return block
            if name == "random":
                return self.new_block("random", connection)
            self.unsupported(node, f"Unsupported Math function '{name}'")

        if name == "clone":
            block = self.new_block("clone", connection)
            self.expression(obj, self.input(block, "SPRITE"))
            return block

        if is_identifier(obj, "self"):
            definition = CATALOGUE.get(name)
            if definition is None or definition.member != Member.METHOD:
                self.unsupported(node, f"Unknown sprite method '{name}'")
            return self._call_member(node, definition, connection)

        if name in ("reverse", "includes", "indexOf", "slice", "join"):
            block = self.new_block(name, connection)
            self.expression(obj, self.input(block, "ITERABLE"))
            self._arguments(block, node.arguments, skip=1)
            return block

        if name in DATE_GETTERS:
            block = self.new_block("dateProperty", connection)
            block.set_field_value("PROPERTY", name)
            self.expression(obj, self.input(block, "DATE"))
            return block

        self.unsupported(node, f"Unsupported function call '{name}'")

    def _call_member(self, node: Node, definition, connection):
        arguments = list(node.arguments)
        callback = None
        if definition.is_hat:
            if connection is not None:
                self.unsupported(node, f"Event '{definition.type}' must be at the top level")
            if arguments and arguments[-1].type in ("ArrowFunctionExpression", "FunctionExpression"):
                callback = arguments.pop()
                if callback.params:
                    self.unsupported(callback, "Event handlers take no parameters")

        block = self.new_block(definition.type, connection)
        self._arguments(block, arguments)
        if callback is not None:
            if callback.body.type != "BlockStatement":
                self.unsupported(callback, "Event handlers need a block body")
            self.body(callback.body, block.next_connection)
        return block

    def _call_identifier(self, node: Node, connection, statement: bool):
        name = node.callee.name
        if name in self.functions:
            signature = self.functions[name]
            state = CallState(
                name=name,
                params=list(signature.params),
                return_type=False if statement else signature.return_type,
            )
            if len(node.arguments) > len(state.params):
                self.unsupported(node, f"Too many arguments for '{name}'")
            block = self._scratch.new_block("call")
            self._created.append(block)
            block.load_extra_state(state)
            if connection is not None:
                self.attach(block, connection)
            for i, argument in enumerate(node.arguments):
                self.expression(argument, self.input(block, f"PARAM_{i}"))
            return block
        if name in ("String", "Number"):
            block = self.new_block(name.lower(), connection)
            self._arguments(block, node.arguments)
            return block
        self.unsupported(node, f"Function '{name}' is not defined")

    def _new(self, node: Node, connection):
        if is_identifier(node.callee, "Date"):
            if not node.arguments:
                return self.new_block("today", connection)
            if len(node.arguments) == 1 and node.arguments[0].type == "StringLiteral":
                block = self.new_block("date", connection)
                block.set_field_value("DATE", node.arguments[0].value)
                return block
            self.unsupported(node, "new Date() only accepts a single string literal")
        if is_identifier(node.callee, "Array"):
            block = self._new_array(node.arguments, connection)
            type_connection = self.input(block, "TYPE")
            type_connection.set_shadow_state({"type": "type"})
            if node.type_arguments:
                self.type(node.type_arguments[0], type_connection)
                block.load_extra_state(block.extra_state)
            self._array_items(block, node.arguments)
            return block
        self.unsupported(node, "Unknown class")

    def _new_array(self, elements: List[Node], connection) -> Block:
        block = self.new_block("array", connection)
        block.load_extra_state(ArrayState(items=[
            "iterable" if element.type == "SpreadElement" else "single" for element in elements
        ]))
        return block

    def _array_items(self, block: Block, elements: List[Node]):
        for i, element in enumerate(elements):
            self.expression(element, self.input(block, f"ADD{i}"))

    def _array(self, node: Node, connection):
        if any(element is None for element in node.elements):
            self.unsupported(node, "Array holes are not supported")
        block = self._new_array(node.elements, connection)
        self.input(block, "TYPE").set_shadow_state({"type": "type"})
        self._array_items(block, node.elements)
        return block

    def _spread(self, node: Node, connection):
        return self.expression(node.argument, connection)

    # -- member expressions ------------------------------------------------

    def _sprite_name(self, node: Node) -> str:
        """Name from ``$["Name"]``."""
        if node.type == "MemberExpression" and is_identifier(node.object, "$"):
            name = property_name(node.property)
            if name is not None:
                return name
        self.unsupported(node, "Expected a sprite reference like $[\"Name\"]")

    def _is_sprite_reference(self, node: Node) -> bool:
        return node.type == "MemberExpression" and is_identifier(node.object, "$")

    def _sprite_property(self, sprite: str, prop: str, connection) -> Block:
        block = self.new_block("property", connection)
        block.set_field_value("SPRITE", sprite)
        block.set_field_value("PROPERTY", prop)
        return block

    def _member(self, node: Node, connection):
        obj, prop = node.object, node.property
        name = property_name(prop)

        if node.computed and prop.type != "StringLiteral":
            block = self.new_block("item", connection)
            self.expression(prop, self.input(block, "INDEX"))
            self.expression(obj, self.input(block, "ITERABLE"))
            return block

        if name == "length":
            block = self.new_block("length", connection)
            self.expression(obj, self.input(block, "ITERABLE"))
            return block

        if is_identifier(obj, "self"):
            definition = CATALOGUE.get(name)
            if definition is not None and definition.member == Member.PROPERTY:
                return self.new_block(name, connection)
            self.unsupported(node, f"Unsupported sprite property '{name}'")

        if obj.type == "MemberExpression" and not obj.computed and is_property(obj, "effects"):
            if is_identifier(obj.object, "self"):
                block = self.new_block("effect", connection)
                block.set_field_value("EFFECT", name)
                return block
            return self._sprite_property(self._sprite_name(obj.object), f"effects.{name}", connection)

        if obj.type == "MemberExpression" and not obj.computed and is_property(obj, "variables"):
            if is_identifier(obj.object, "self"):
                declared = dict(self.variables)
                state = ParameterState(type=declared.get(name, "any"), is_variable=True)
                return self._parameter(name, state, connection)
            sprite = self._sprite_name(obj.object)
            return self._sprite_property(sprite, f"variables[{json.dumps(name)}]", connection)

        if obj.type == "MemberExpression" and not obj.computed and is_property(obj, "costume", "backdrop"):
            kind = obj.property.name
            if kind == "backdrop" or is_identifier(obj.object, "self"):
                block = self.new_block(kind, connection)
                block.set_field_value("VALUE", name)
                return block
            return self._sprite_property(self._sprite_name(obj.object), f"{kind}.{name}", connection)

        if name in SPRITE_PROPERTIES and self._is_sprite_reference(obj):
            return self._sprite_property(self._sprite_name(obj), name, connection)

        if is_identifier(obj, "$"):
            self.set_shadow(connection, {"type": "sprite", "fields": {"SPRITE": name}})
            return None

        if is_identifier(obj, "Scrap"):
            if name == "isTurbo":
                return self.new_block("isTurbo", connection)
            self.unsupported(node, f"Unsupported Scrap property '{name}'")

        if is_identifier(obj, "Math"):
            if name in ("PI", "E"):
                block = self.new_block("constant", connection)
                block.set_field_value("CONSTANT", f"Math.{name}")
                return block
            self.unsupported(node, f"Unsupported Math constant '{name}'")

        self.unsupported(node, "Unsupported member expression")
