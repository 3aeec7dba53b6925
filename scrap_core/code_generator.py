"""
ScrapScript source generator.

Walks a block graph depth first and emits ScrapScript, a TypeScript subset,
parenthesizing expressions only where precedence requires it. Every block
type of the catalogue has exactly one callback in ``GENERATORS``; blocks
without one degrade to an inert comment stub so generation never fails.
"""

import json
import logging
import re
import textwrap
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .block_definitions import CATALOGUE, Member, param_name
from .config import TranslatorConfig, get_config
from .models import Block, InputType, Workspace
from .order import Order, binary_order, needs_parentheses
from .types import format_check

logger = logging.getLogger(__name__)

GeneratorResult = Union[None, str, Tuple[str, float]]
BlockCallback = Callable[[Block, "ScrapScriptGenerator"], GeneratorResult]

GENERATORS: Dict[str, BlockCallback] = {}


def register(*block_types: str):
    """Register the decorated function as the callback for ``block_types``."""
    def decorator(func: BlockCallback) -> BlockCallback:
        for block_type in block_types:
            if block_type in GENERATORS:
                raise ValueError(f"Generator already registered for '{block_type}'")
            GENERATORS[block_type] = func
        return func
    return decorator


def missing_generators(catalogue=CATALOGUE) -> List[str]:
    """Catalogue block types that have no generator callback."""
    return [block_type for block_type in catalogue.types() if block_type not in GENERATORS]


class ScrapScriptGenerator:
    """Generates ScrapScript for the blocks of one entity."""

    def __init__(self, variables: Optional[List[Tuple[str, Any]]] = None,
                 config: Optional[TranslatorConfig] = None):
        self.config = config or get_config()
        self.variables = list(variables or [])
        self.indent = self.config.indent
        self.comment_wrap = self.config.comment_wrap
        self.definitions: Dict[str, str] = {}
        self.logger = logging.getLogger(__name__)

    # -- driver ------------------------------------------------------------

    def init(self, workspace: Workspace):
        self.definitions = {}
        if self.variables:
            lines = "".join(
                f"\t{json.dumps(name)}: {format_check(check)};\n" for name, check in self.variables
            )
            self.definitions["variables"] = f"interface Variables {{\n{lines}}}"

    def workspace_to_code(self, workspace: Workspace) -> str:
        """Generate the source of every top-level stack of ``workspace``."""
        self.init(workspace)
        lines = []
        for block in sorted(workspace.top_blocks(), key=lambda b: (b.y, b.x)):
            line = self.block_to_code(block)
            if isinstance(line, tuple):
                line = line[0]
            if line:
                if block.output_connection is not None:
                    line = self.scrub_naked_value(line)
                lines.append(line)

        code = self.finish("\n".join(lines))
        code = re.sub(r"^\s+\n", "", code)
        code = re.sub(r"\n\s+$", "\n", code)
        code = re.sub(r"[ \t]+\n", "\n", code)
        return code

    def finish(self, code: str) -> str:
        definitions = "\n\n".join(self.definitions.values())
        self.definitions = {}
        if definitions:
            return definitions + "\n\n" + code
        return code

    def define(self, name: str, code: str):
        """Register a top-level definition emitted before the program body."""
        self.definitions["%" + name] = code

    # -- traversal ---------------------------------------------------------

    def block_to_code(self, block: Optional[Block], this_only: bool = False) -> Union[str, Tuple[str, float]]:
        if block is None:
            return ""
        callback = GENERATORS.get(block.type)
        if callback is None:
            self.logger.warning(f"No generator for block type '{block.type}', emitting a stub")
            callback = _stub
        code = callback(block, self)
        if isinstance(code, tuple):
            return self.scrub(block, code[0], this_only), code[1]
        if isinstance(code, str):
            return self.scrub(block, code, this_only)
        return ""

    def value_to_code(self, block: Block, name: str, outer: float, left_operand: bool = False) -> str:
        """Generate the value plugged into input ``name``, parenthesized for ``outer`` context."""
        target = block.get_input_target(name)
        if target is None:
            return ""
        result = self.block_to_code(target)
        if result == "":
            return ""
        if not isinstance(result, tuple):
            raise TypeError(f"Expected a value from '{target.type}', got a statement")
        code, inner = result
        if not code:
            return ""
        if needs_parentheses(outer, inner, left_operand):
            code = f"({code})"
        return code

    def statement_to_code(self, block: Block, name: str) -> str:
        target = block.get_input_target(name)
        code = self.block_to_code(target)
        if not isinstance(code, str):
            raise TypeError(f"Expected a statement in '{block.type}.{name}'")
        if code:
            code = self.prefix_lines(code, self.indent)
        return code

    def prefix_lines(self, text: str, prefix: str) -> str:
        return prefix + re.sub(r"\n(?!$)", "\n" + prefix, text)

    def scrub(self, block: Block, code: str, this_only: bool = False) -> str:
        """Attach comments and the rest of the stack to the code of ``block``."""
        comment_code = ""
        if block.output_connection is None or block.output_connection.target is None:
            comment = block.get_comment_text()
            if comment:
                comment = self.wrap(comment, self.comment_wrap - 3)
                comment_code += self.prefix_lines(comment + "\n", "// ")
            for block_input in block.inputs:
                if block_input.type is not InputType.VALUE:
                    continue
                child = block_input.target_block()
                if child is not None:
                    nested = self.all_nested_comments(child)
                    if nested:
                        comment_code += self.prefix_lines(nested, "// ")

        next_code = ""
        if not this_only and block.previous_connection is not None:
            next_code = self.block_to_code(block.get_next_block())
        return comment_code + code + next_code

    def scrub_naked_value(self, line: str) -> str:
        return line + ";"

    @staticmethod
    def all_nested_comments(block: Block) -> str:
        comments = [b.get_comment_text() for b in block.get_descendants() if b.get_comment_text()]
        if comments:
            comments.append("")
        return "\n".join(comments)

    @staticmethod
    def wrap(text: str, limit: int) -> str:
        return "\n".join(
            textwrap.fill(paragraph, width=limit, break_long_words=False, break_on_hyphens=False) or paragraph
            for paragraph in text.split("\n")
        )

    # -- entity scripts ----------------------------------------------------

    def entity_script(self, entity, mode: str = "preview") -> str:
        """Build the runnable script of ``entity``.

        The entity's source (generated from its blocks when it is in blocks
        mode) goes through the runtime transform and is wrapped in the
        engine's entity constructor and ``whenLoaded`` hook.
        """
        from .runtime_transform import transform

        source = entity.typescript
        if source is None:
            self.variables = list(entity.variables)
            source = self.workspace_to_code(entity.workspace)
        result = transform(source, self.config)
        if result and not result.endswith("\n"):
            result += "\n"
        body = self.prefix_lines(result, "\t") if result else ""

        configuration = dict(entity.init)
        configuration["current"] = entity.current
        configuration["images"] = entity.get_urls("costumes", mode)
        configuration["sounds"] = entity.get_urls("sounds", mode)

        name = f"$[{json.dumps(entity.name)}]"
        kind = "Stage" if entity.is_stage else "Sprite"
        init = f"{name} = new Scrap.{kind}({json.dumps(configuration, indent=self.indent)});"
        add = "" if entity.is_stage else f'{name}.addTo($["Stage"])'
        return f"{init}\n{name}.whenLoaded(async self => {{\n{body}}});\n{add}\n"


def _stub(block: Block, generator: ScrapScriptGenerator) -> GeneratorResult:
    return _opcode_stub(block.type, block.output_connection is not None)


def _opcode_stub(opcode: str, reporter: bool) -> GeneratorResult:
    if reporter:
        return f"/* this.{opcode}() */", Order.ATOMIC
    return f"/* this.{opcode}(); */\n"


def _literal(field_name: str):
    def generate(block: Block, generator: ScrapScriptGenerator) -> GeneratorResult:
        return json.dumps(block.get_field_value(field_name)), Order.ATOMIC
    return generate


def _member_call(method: str, default: str = "null", order: float = Order.MEMBER):
    """``<ITERABLE>.method(<remaining inputs>)`` for the iterable blocks."""
    def generate(block: Block, generator: ScrapScriptGenerator) -> GeneratorResult:
        array = generator.value_to_code(block, "ITERABLE", Order.MEMBER) or "[]"
        if method == "length":
            return f"{array}.length", order
        args = []
        for block_input in block.inputs:
            if block_input.name != "ITERABLE" and block_input.type is InputType.VALUE:
                fallback = {"START": "0", "TO": "0", "SEPARATOR": '""'}.get(block_input.name, default)
                args.append(generator.value_to_code(block, block_input.name, Order.NONE) or fallback)
        return f"{array}.{method}({', '.join(args)})", order
    return generate


def _number_text(value) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------

@register("unknown")
def _unknown(block, generator):
    return _opcode_stub(block.extra_state.opcode, block.extra_state.shape == "reporter")


@register("set")
def _set(block, generator):
    variable = generator.value_to_code(block, "VAR", Order.NONE)
    value = generator.value_to_code(block, "VALUE", Order.NONE)
    return f"{variable} = {value or 'null'};\n"


@register("change")
def _change(block, generator):
    variable = generator.value_to_code(block, "VAR", Order.NONE)
    value = generator.value_to_code(block, "VALUE", Order.NONE)
    return f"{variable} += {value or 'null'};\n"


@register("variable")
def _variable(block, generator):
    var = generator.value_to_code(block, "VAR", Order.NONE)
    value = generator.value_to_code(block, "VALUE", Order.NONE)
    return f"{block.get_field_value('kind')} {var} = {value or 'null'};\n"


@register("showVariable", "hideVariable")
def _toggle_variable(block, generator):
    return f"self.{block.type}({json.dumps(block.get_field_value('VAR'))});\n"


@register("parameter")
def _parameter(block, generator):
    if block.extra_state.is_variable:
        return f"self.variables[{json.dumps(block.get_field_value('VAR'))}]", Order.MEMBER
    return block.get_field_value("VAR"), Order.ATOMIC


register("iterables_string")(_literal("TEXT"))
register("rotationStyle")(_literal("STYLE"))
register("key")(_literal("KEY"))
register("event")(_literal("EVENT"))
register("sound", "costume_menu", "backdrop_menu")(_literal("NAME"))


@register("effect")
def _effect(block, generator):
    return f"self.effects.{block.get_field_value('EFFECT')}", Order.MEMBER


@register("backdrop", "costume")
def _asset_property(block, generator):
    return f"self.{block.type}.{block.get_field_value('VALUE')}", Order.MEMBER


@register("motion_angle")
def _motion_angle(block, generator):
    return _number_text(block.get_field_value("VALUE")), Order.ATOMIC


# ---------------------------------------------------------------------------
# Control
# ---------------------------------------------------------------------------

@register("for")
def _for(block, generator):
    variable = param_name(block.get_field_value("VAR"))
    start = generator.value_to_code(block, "FROM", Order.NONE) or "0"
    end = generator.value_to_code(block, "TO", Order.NONE) or "0"
    body = generator.statement_to_code(block, "STACK")
    return f"for (let {variable} = {start}; {variable} <= {end}; {variable}++) {{\n{body}}}\n"


@register("while")
def _while(block, generator):
    condition = generator.value_to_code(block, "CONDITION", Order.NONE) or "false"
    return f"while ({condition}) {{\n{generator.statement_to_code(block, 'STACK')}}}\n"


@register("doWhile")
def _do_while(block, generator):
    condition = generator.value_to_code(block, "CONDITION", Order.NONE) or "false"
    return f"do {{\n{generator.statement_to_code(block, 'STACK')}}} while ({condition});\n"


@register("break", "continue")
def _jump(block, generator):
    return f"{block.type};\n"


@register("controls_if")
def _if(block, generator):
    code = ""
    i = 0
    while block.get_input(f"IF{i}") is not None:
        condition = generator.value_to_code(block, f"IF{i}", Order.NONE) or "false"
        branch = generator.statement_to_code(block, f"DO{i}")
        code += f"{' else ' if i else ''}if ({condition}) {{\n{branch}}}"
        i += 1
    if block.get_input("ELSE") is not None:
        code += f" else {{\n{generator.statement_to_code(block, 'ELSE')}}}"
    return code + "\n"


@register("foreach")
def _foreach(block, generator):
    item = param_name(block.get_field_value("VAR"))
    iterable = generator.value_to_code(block, "ITERABLE", Order.NONE) or "[]"
    return f"for (const {item} of {iterable}) {{\n{generator.statement_to_code(block, 'DO')}}}\n"


@register("tryCatch")
def _try(block, generator):
    state = block.extra_state
    code = "try {\n" + generator.statement_to_code(block, "TRY")
    if state.catch:
        if isinstance(state.catch, str):
            code += f"}} catch ({state.catch}) {{\n"
        else:
            code += "} catch {\n"
        code += generator.statement_to_code(block, "CATCH")
    if state.finally_:
        code += "} finally {\n" + generator.statement_to_code(block, "FINALLY")
    return code + "}\n"


@register("throw")
def _throw(block, generator):
    return f"throw {generator.value_to_code(block, 'ERROR', Order.NONE) or 'null'};\n"


@register("stop")
def _stop(block, generator):
    return "Scrap.stop();\n"


@register("clone")
def _clone(block, generator):
    return f"{generator.value_to_code(block, 'SPRITE', Order.MEMBER)}.clone();\n"


# ---------------------------------------------------------------------------
# Sprites
# ---------------------------------------------------------------------------

@register("sprite")
def _sprite(block, generator):
    name = block.get_field_value("SPRITE")
    if name == "self":
        return name, Order.ATOMIC
    return f"$[{json.dumps(name)}]", Order.MEMBER


@register("property")
def _property(block, generator):
    sprite = json.dumps(block.get_field_value("SPRITE"))
    return f"$[{sprite}].{block.get_field_value('PROPERTY')}", Order.MEMBER


@register("isTurbo")
def _is_turbo(block, generator):
    return "Scrap.isTurbo", Order.MEMBER


# ---------------------------------------------------------------------------
# Iterables and conversions
# ---------------------------------------------------------------------------

@register("array")
def _array(block, generator):
    element = generator.value_to_code(block, "TYPE", Order.NONE) or "any"
    items = []
    for i, item in enumerate(block.extra_state.items):
        if item == "iterable":
            items.append(f"...{generator.value_to_code(block, f'ADD{i}', Order.NONE) or '[]'}")
        else:
            items.append(generator.value_to_code(block, f"ADD{i}", Order.NONE) or "null")
    generic = "" if element == "any" else f"<{element}>"
    return f"new Array{generic}({', '.join(items)})", Order.FUNCTION_CALL


register("length")(_member_call("length"))
register("reverse")(_member_call("reverse"))
register("join")(_member_call("join"))
register("includes")(_member_call("includes"))
register("slice")(_member_call("slice"))
register("indexOf")(_member_call("indexOf"))


@register("item")
def _item(block, generator):
    index = generator.value_to_code(block, "INDEX", Order.NONE) or "0"
    array = generator.value_to_code(block, "ITERABLE", Order.MEMBER) or "[]"
    return f"{array}[{index}]", Order.MEMBER


@register("string", "number")
def _conversion(block, generator):
    function = "String" if block.type == "string" else "Number"
    return f"{function}({generator.value_to_code(block, 'VALUE', Order.NONE) or 'null'})", Order.FUNCTION_CALL


@register("text_or_number")
def _text_or_number(block, generator):
    value = block.get_field_value("VALUE")
    if value == "" or value is None:
        return '""', Order.ATOMIC
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _number_text(value), Order.ATOMIC
    try:
        float(value)
    except ValueError:
        return json.dumps(value), Order.ATOMIC
    if value.strip() != value or value.lower() in ("nan", "inf", "-inf", "infinity", "-infinity"):
        return json.dumps(value), Order.ATOMIC
    return value, Order.ATOMIC


# ---------------------------------------------------------------------------
# Functions and types
# ---------------------------------------------------------------------------

@register("function")
def _function(block, generator):
    name = block.get_field_value("NAME")
    state = block.extra_state
    returns = generator.value_to_code(block, "RETURNS", Order.NONE) if state.returns else "void"
    params = [generator.value_to_code(block, f"PARAM_{i}", Order.NONE) for i in range(len(state.params))]

    next_block = block.get_next_block()
    if next_block is not None:
        body = generator.prefix_lines(generator.block_to_code(next_block), generator.indent)
    else:
        body = "\t\n"
    code = f"function {name}({', '.join(params)}): {returns or 'any'} {{\n{body}}}"
    generator.define(name, generator.scrub(block, code, this_only=True))
    return None


@register("call")
def _call(block, generator):
    args = [
        generator.value_to_code(block, f"PARAM_{i}", Order.NONE) or "null"
        for i in range(len(block.extra_state.params))
    ]
    code = f"{block.get_field_value('NAME')}({', '.join(args)})"
    if block.output_connection is not None:
        return code, Order.FUNCTION_CALL
    return code + ";\n"


@register("return")
def _return(block, generator):
    if block.get_input("VALUE") is not None:
        return f"return {generator.value_to_code(block, 'VALUE', Order.NONE) or 'null'};\n"
    return "return;\n"


@register("generic")
def _generic(block, generator):
    element = generator.value_to_code(block, "TYPE", Order.NONE) or "any"
    return f"{block.get_field_value('ITERABLE')}<{element}>", Order.ATOMIC


@register("union")
def _union(block, generator):
    types = [generator.value_to_code(block, f"TYPE{i}", Order.NONE) for i in range(block.extra_state.count)]
    return " | ".join(t for t in types if t) or "any", Order.ATOMIC


@register("type")
def _type(block, generator):
    return block.get_field_value("TYPE") or "any", Order.ATOMIC


@register("typed")
def _typed(block, generator):
    name = param_name(block.get_field_value("PARAM"))
    return f"{name}: {generator.value_to_code(block, 'TYPE', Order.ATOMIC) or 'any'}", Order.NONE


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------

def _binary(default: str):
    def generate(block, generator):
        operator = block.get_field_value("OP")
        order = binary_order(operator)
        left = generator.value_to_code(block, "A", order, left_operand=True) or default
        right = generator.value_to_code(block, "B", order) or default
        return f"{left} {operator} {right}", order
    return generate


register("arithmetics", "compare")(_binary("0"))
register("operation")(_binary("false"))


@register("not")
def _not(block, generator):
    return f"!{generator.value_to_code(block, 'BOOL', Order.LOGICAL_NOT) or 'false'}", Order.LOGICAL_NOT


@register("boolean")
def _boolean(block, generator):
    return str(block.get_field_value("BOOL")).lower(), Order.ATOMIC


@register("math_number")
def _math_number(block, generator):
    value = block.get_field_value("NUM")
    text = _number_text(value)
    if text.startswith("-"):
        return text, Order.UNARY_NEGATION
    return text, Order.ATOMIC


@register("math")
def _math(block, generator):
    number = generator.value_to_code(block, "NUM", Order.NONE) or "0"
    return f"Math.{block.get_field_value('OP')}({number})", Order.FUNCTION_CALL


@register("constant")
def _constant(block, generator):
    return block.get_field_value("CONSTANT"), Order.ATOMIC


@register("random")
def _random(block, generator):
    return "Math.random()", Order.FUNCTION_CALL


# ---------------------------------------------------------------------------
# Colors, dates and the window
# ---------------------------------------------------------------------------

@register("rgb")
def _rgb(block, generator):
    channels = [generator.value_to_code(block, name, Order.NONE) or "0" for name in ("RED", "GREEN", "BLUE")]
    return f"Color.fromRGB({', '.join(channels)})", Order.FUNCTION_CALL


@register("color")
def _color(block, generator):
    return f"Color.fromHex({json.dumps(block.get_field_value('COLOR'))})", Order.ATOMIC


@register("color_random")
def _color_random(block, generator):
    return "Color.random()", Order.FUNCTION_CALL


@register("date")
def _date(block, generator):
    return f"new Date({json.dumps(block.get_field_value('DATE'))})", Order.FUNCTION_CALL


@register("today")
def _today(block, generator):
    return "new Date()", Order.FUNCTION_CALL


@register("dateProperty")
def _date_property(block, generator):
    date = generator.value_to_code(block, "DATE", Order.MEMBER) or "new Date()"
    return f"{date}.{block.get_field_value('PROPERTY')}()", Order.FUNCTION_CALL


@register("alert")
def _alert(block, generator):
    text = generator.value_to_code(block, "TEXT", Order.NONE) or '""'
    return f"window.alert({text});\n"


@register("prompt", "confirm")
def _window_reporter(block, generator):
    text = generator.value_to_code(block, "TEXT", Order.NONE) or '""'
    return f"window.{block.type}({text})", Order.FUNCTION_CALL


# ---------------------------------------------------------------------------
# Sprite and stage members
# ---------------------------------------------------------------------------

def _sprite_member(block: Block, generator: ScrapScriptGenerator) -> GeneratorResult:
    definition = CATALOGUE.get(block.type)
    code = f"self.{block.type}"
    if definition.member == Member.METHOD:
        args = [generator.value_to_code(block, name, Order.NONE) or "null" for name in definition.value_inputs()]
        if definition.is_hat:
            arrow = "() => {"
            next_block = block.get_next_block()
            if next_block is not None:
                arrow += "\n" + generator.prefix_lines(generator.block_to_code(next_block), generator.indent)
            args.append(arrow + "}")
        code += f"({', '.join(args)})"
    else:
        return code, Order.MEMBER

    if block.output_connection is not None:
        return code, Order.FUNCTION_CALL
    return code + ";\n"


for _type_name, _definition in CATALOGUE.members().items():
    if _type_name not in GENERATORS:
        register(_type_name)(_sprite_member)
