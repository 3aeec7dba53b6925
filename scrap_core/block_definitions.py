"""
Block catalogue.

Every block type the translators may create is declared here together with
its connections, inputs and fields. Sprite and stage methods (``move``,
``say``, ``whenFlag``...) carry a ``member`` kind so the generator can emit
them as ``self.<type>(...)`` calls or ``self.<type>`` properties without a
dedicated callback. Blocks whose shape depends on their extra state (union,
array, if, try, function, call, parameter, return, unknown) have a shape
updater that rebuilds their inputs and connections from the state record.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .models import (
    Block, InputType, UnionState, ArrayState, IfState, TryState, FunctionState,
    CallState, ParameterState, ReturnState, UnknownState,
)
from .types import Check, check_list, normalize_check, shadow_for, to_check, type_name

logger = logging.getLogger(__name__)

UNKNOWN_BLOCK_COMMENT = (
    "This is a Scrap-incompatible block imported from Scratch. "
    "This block and any blocks connected to it will not be executed."
)


class Shape:
    """Connection layout of a block."""
    REPORTER = "reporter"   # output only
    COMMAND = "command"     # previous + next
    TERMINAL = "terminal"   # previous only
    HAT = "hat"             # next only
    DYNAMIC = "dynamic"     # decided by the extra state


class Member:
    """How a sprite-method block is written in source."""
    METHOD = "method"       # self.type(args)
    PROPERTY = "property"   # self.type


@dataclass
class InputDefinition:
    name: str
    kind: InputType = InputType.VALUE
    check: Optional[List[str]] = None


@dataclass
class BlockDefinition:
    type: str
    category: str
    shape: str
    output: Optional[List[str]] = None
    inputs: List[InputDefinition] = field(default_factory=list)
    fields: Dict[str, Any] = field(default_factory=dict)
    member: Optional[str] = None

    @property
    def is_hat(self) -> bool:
        return self.shape == Shape.HAT

    def value_inputs(self) -> List[str]:
        return [i.name for i in self.inputs if i.kind is InputType.VALUE]


def _value(name: str, *check: str) -> InputDefinition:
    return InputDefinition(name, InputType.VALUE, list(check) or None)


def _statement(name: str) -> InputDefinition:
    return InputDefinition(name, InputType.STATEMENT)


def _method(type, category, shape=Shape.COMMAND, output=None, inputs=(), fields=None):
    return BlockDefinition(type, category, shape, output, list(inputs), fields or {}, Member.METHOD)


def _property(type, category, *output):
    return BlockDefinition(type, category, Shape.REPORTER, list(output), member=Member.PROPERTY)


def _block(type, category, shape, output=None, inputs=(), fields=None):
    return BlockDefinition(type, category, shape, output, list(inputs), fields or {})


NUMBER = "number"
STRING = "string"
BOOLEAN = "boolean"

DEFINITIONS = [
    # Motion
    _method("move", "Motion", inputs=[_value("STEPS", NUMBER)]),
    _method("turnRight", "Motion", inputs=[_value("DEGREES", NUMBER)]),
    _method("turnLeft", "Motion", inputs=[_value("DEGREES", NUMBER)]),
    _method("pointInDirection", "Motion", inputs=[_value("DIRECTION", NUMBER)]),
    _method("goTo", "Motion", inputs=[_value("X", NUMBER), _value("Y", NUMBER)]),
    _method("glide", "Motion", inputs=[_value("SECS", NUMBER), _value("X", NUMBER), _value("Y", NUMBER)]),
    _method("goTowards", "Motion", inputs=[_value("SPRITE", "Sprite")]),
    _method("ifOnEdgeBounce", "Motion"),
    _method("setRotationStyle", "Motion", inputs=[_value("STYLE", STRING)]),
    _property("x", "Motion", NUMBER, "Variable"),
    _property("y", "Motion", NUMBER, "Variable"),
    _property("direction", "Motion", NUMBER, "Variable"),
    _block("rotationStyle", "Motion", Shape.REPORTER, [STRING], fields={"STYLE": "all around"}),
    _block("motion_angle", "Motion", Shape.REPORTER, [NUMBER], fields={"VALUE": 90}),

    # Looks
    _method("say", "Looks", inputs=[_value("MESSAGE", STRING, NUMBER)]),
    _method("sayWait", "Looks", inputs=[_value("MESSAGE", STRING, NUMBER), _value("SECS", NUMBER)]),
    _method("think", "Looks", inputs=[_value("MESSAGE", STRING, NUMBER)]),
    _method("thinkWait", "Looks", inputs=[_value("MESSAGE", STRING, NUMBER), _value("SECS", NUMBER)]),
    _method("show", "Looks"),
    _method("hide", "Looks"),
    _method("clearEffects", "Looks"),
    _method("switchCostumeTo", "Looks", inputs=[_value("COSTUME", STRING, NUMBER)]),
    _method("nextCostume", "Looks"),
    _method("switchBackdropTo", "Looks", inputs=[_value("BACKDROP", STRING, NUMBER)]),
    _method("switchBackdropToWait", "Looks", inputs=[_value("BACKDROP", STRING, NUMBER)]),
    _method("nextBackdrop", "Looks"),
    _method("goToFront", "Looks"),
    _method("goToBack", "Looks"),
    _method("goForward", "Looks", inputs=[_value("NUM", NUMBER)]),
    _method("goBackward", "Looks", inputs=[_value("NUM", NUMBER)]),
    _property("size", "Looks", NUMBER, "Variable"),
    _property("visible", "Looks", BOOLEAN),
    _block("effect", "Looks", Shape.REPORTER, [NUMBER, "Variable"], fields={"EFFECT": "color"}),
    _block("costume", "Looks", Shape.REPORTER, None, fields={"VALUE": "name"}),
    _block("backdrop", "Looks", Shape.REPORTER, None, fields={"VALUE": "name"}),
    _block("costume_menu", "Looks", Shape.REPORTER, [STRING], fields={"NAME": ""}),
    _block("backdrop_menu", "Looks", Shape.REPORTER, [STRING], fields={"NAME": ""}),

    # Sound
    _method("playSound", "Sound", inputs=[_value("SOUND", STRING)]),
    _method("playSoundUntilDone", "Sound", inputs=[_value("SOUND", STRING)]),
    _method("stopSounds", "Sound"),
    _property("volume", "Sound", NUMBER, "Variable"),
    _block("sound", "Sound", Shape.REPORTER, [STRING], fields={"NAME": ""}),

    # Pen
    _method("penClear", "Pen"),
    _method("stamp", "Pen"),
    _method("penDown", "Pen"),
    _method("penUp", "Pen"),
    _property("penColor", "Pen", "Color", "Variable"),
    _property("penSize", "Pen", NUMBER, "Variable"),

    # Events
    _method("whenFlag", "Events", Shape.HAT),
    _method("whenTimerElapsed", "Events", Shape.HAT, inputs=[_value("TIMER", NUMBER)]),
    _method("whenMouse", "Events", Shape.HAT, inputs=[_value("EVENT", STRING)]),
    _method("whenReceiveMessage", "Events", Shape.HAT, inputs=[_value("MESSAGE", STRING)]),
    _method("whenBackdropChangesTo", "Events", Shape.HAT, inputs=[_value("BACKDROP", STRING)]),
    _method("whenKeyPressed", "Events", Shape.HAT, inputs=[_value("KEY", STRING)]),
    _method("whenCloned", "Events", Shape.HAT),
    _method("broadcastMessage", "Events", inputs=[_value("MESSAGE", STRING)]),
    _method("broadcastMessageWait", "Events", inputs=[_value("MESSAGE", STRING)]),
    _block("event", "Events", Shape.REPORTER, [STRING], fields={"EVENT": "click"}),
    _block("key", "Events", Shape.REPORTER, [STRING], fields={"KEY": "Space"}),

    # Control
    _method("wait", "Control", inputs=[_value("SECS", NUMBER)]),
    _method("delete", "Control", Shape.TERMINAL),
    _block("controls_if", "Control", Shape.COMMAND),
    _block("while", "Control", Shape.COMMAND, inputs=[_value("CONDITION", BOOLEAN), _statement("STACK")]),
    _block("doWhile", "Control", Shape.COMMAND, inputs=[_value("CONDITION", BOOLEAN), _statement("STACK")]),
    _block("for", "Control", Shape.COMMAND, inputs=[_value("FROM", NUMBER), _value("TO", NUMBER), _statement("STACK")],
           fields={"VAR": "i:number"}),
    _block("foreach", "Control", Shape.COMMAND, inputs=[_value("ITERABLE", "Iterable"), _statement("DO")],
           fields={"VAR": "item"}),
    _block("break", "Control", Shape.TERMINAL),
    _block("continue", "Control", Shape.TERMINAL),
    _block("tryCatch", "Control", Shape.COMMAND),
    _block("throw", "Control", Shape.TERMINAL, inputs=[_value("ERROR")]),
    _block("stop", "Control", Shape.TERMINAL),
    _block("clone", "Control", Shape.COMMAND, inputs=[_value("SPRITE", "Sprite")]),
    _block("unknown", "Control", Shape.DYNAMIC, fields={"OPCODE": "unknown"}),

    # Sensing
    _method("isTouchingEdge", "Sensing", Shape.REPORTER, [BOOLEAN]),
    _method("isTouchingMouse", "Sensing", Shape.REPORTER, [BOOLEAN]),
    _method("isTouching", "Sensing", Shape.REPORTER, [BOOLEAN], inputs=[_value("SPRITE", "Sprite")]),
    _method("isTouchingBackdropColor", "Sensing", Shape.REPORTER, [BOOLEAN], inputs=[_value("COLOR", "Color")]),
    _method("distanceTo", "Sensing", Shape.REPORTER, [NUMBER], inputs=[_value("X", NUMBER), _value("Y", NUMBER)]),
    _method("ask", "Sensing", Shape.REPORTER, [STRING], inputs=[_value("QUESTION", STRING)]),
    _method("isKeyPressed", "Sensing", Shape.REPORTER, [BOOLEAN], inputs=[_value("KEY", STRING)]),
    _method("mouseDown", "Sensing", Shape.REPORTER, [BOOLEAN]),
    _property("mouseX", "Sensing", NUMBER),
    _property("mouseY", "Sensing", NUMBER),
    _method("getTimer", "Sensing", Shape.REPORTER, [NUMBER]),
    _method("resetTimer", "Sensing"),
    _property("draggable", "Sensing", BOOLEAN, "Variable"),
    _block("sprite", "Sensing", Shape.REPORTER, ["Sprite"], fields={"SPRITE": "self"}),
    _block("property", "Sensing", Shape.REPORTER, None, fields={"SPRITE": "Stage", "PROPERTY": "x"}),
    _block("isTurbo", "Sensing", Shape.REPORTER, [BOOLEAN]),

    # Operators
    _block("arithmetics", "Operators", Shape.REPORTER, [NUMBER], inputs=[_value("A"), _value("B")], fields={"OP": "+"}),
    _block("compare", "Operators", Shape.REPORTER, [BOOLEAN], inputs=[_value("A"), _value("B")], fields={"OP": "=="}),
    _block("operation", "Operators", Shape.REPORTER, [BOOLEAN], inputs=[_value("A", BOOLEAN), _value("B", BOOLEAN)],
           fields={"OP": "&&"}),
    _block("not", "Operators", Shape.REPORTER, [BOOLEAN], inputs=[_value("BOOL", BOOLEAN)]),
    _block("boolean", "Operators", Shape.REPORTER, [BOOLEAN], fields={"BOOL": "true"}),
    _block("math_number", "Operators", Shape.REPORTER, [NUMBER], fields={"NUM": 0}),
    _block("math", "Operators", Shape.REPORTER, [NUMBER], inputs=[_value("NUM", NUMBER)], fields={"OP": "abs"}),
    _block("constant", "Operators", Shape.REPORTER, [NUMBER], fields={"CONSTANT": "Math.PI"}),
    _block("random", "Operators", Shape.REPORTER, [NUMBER]),
    _block("string", "Operators", Shape.REPORTER, [STRING], inputs=[_value("VALUE")]),
    _block("number", "Operators", Shape.REPORTER, [NUMBER], inputs=[_value("VALUE")]),
    _block("text_or_number", "Operators", Shape.REPORTER, [STRING, NUMBER], fields={"VALUE": ""}),

    # Iterables
    _block("iterables_string", "Iterables", Shape.REPORTER, [STRING], fields={"TEXT": ""}),
    _block("array", "Iterables", Shape.REPORTER, ["Array"], inputs=[_value("TYPE", "type")]),
    _block("item", "Iterables", Shape.REPORTER, None, inputs=[_value("INDEX", NUMBER), _value("ITERABLE", "Iterable")]),
    _block("length", "Iterables", Shape.REPORTER, [NUMBER], inputs=[_value("ITERABLE", "Iterable")]),
    _block("reverse", "Iterables", Shape.REPORTER, ["Array"], inputs=[_value("ITERABLE", "Array")]),
    _block("join", "Iterables", Shape.REPORTER, [STRING], inputs=[_value("ITERABLE", "Array"), _value("SEPARATOR", STRING)]),
    _block("includes", "Iterables", Shape.REPORTER, [BOOLEAN], inputs=[_value("ITERABLE", "Iterable"), _value("ITEM")]),
    _block("slice", "Iterables", Shape.REPORTER, None,
           inputs=[_value("ITERABLE", "Iterable"), _value("START", NUMBER), _value("TO", NUMBER)]),
    _block("indexOf", "Iterables", Shape.REPORTER, [NUMBER], inputs=[_value("ITERABLE", "Iterable"), _value("ITEM")]),

    # Variables
    _block("variable", "Variables", Shape.COMMAND, inputs=[_value("VAR", "typed"), _value("VALUE")],
           fields={"kind": "let"}),
    _block("set", "Variables", Shape.COMMAND, inputs=[_value("VAR", "Variable"), _value("VALUE")]),
    _block("change", "Variables", Shape.COMMAND, inputs=[_value("VAR", "Variable"), _value("VALUE")]),
    _block("parameter", "Variables", Shape.DYNAMIC, fields={"VAR": "x"}),
    _block("showVariable", "Variables", Shape.COMMAND, fields={"VAR": ""}),
    _block("hideVariable", "Variables", Shape.COMMAND, fields={"VAR": ""}),

    # Functions
    _block("function", "Functions", Shape.HAT, fields={"NAME": "doSomething"}),
    _block("call", "Functions", Shape.DYNAMIC, fields={"NAME": "unnamed"}),
    _block("return", "Functions", Shape.TERMINAL),
    _block("typed", "Functions", Shape.REPORTER, ["typed"], inputs=[_value("TYPE", "type")], fields={"PARAM": "x:any"}),

    # Types
    _block("type", "Types", Shape.REPORTER, ["type"], fields={"TYPE": "any"}),
    _block("generic", "Types", Shape.REPORTER, ["type"], inputs=[_value("TYPE", "type")], fields={"ITERABLE": "Array"}),
    _block("union", "Types", Shape.REPORTER, ["type"]),

    # Colors
    _block("color", "Colors", Shape.REPORTER, ["Color"], fields={"COLOR": "#ff0000"}),
    _block("rgb", "Colors", Shape.REPORTER, ["Color"],
           inputs=[_value("RED", NUMBER), _value("GREEN", NUMBER), _value("BLUE", NUMBER)]),
    _block("color_random", "Colors", Shape.REPORTER, ["Color"]),

    # Dates
    _block("date", "Dates", Shape.REPORTER, ["Date"], fields={"DATE": "2024-01-01"}),
    _block("today", "Dates", Shape.REPORTER, ["Date"]),
    _block("dateProperty", "Dates", Shape.REPORTER, [NUMBER], inputs=[_value("DATE", "Date")],
           fields={"PROPERTY": "getFullYear"}),

    # Window
    _block("alert", "Window", Shape.COMMAND, inputs=[_value("TEXT")]),
    _block("prompt", "Window", Shape.REPORTER, [STRING], inputs=[_value("TEXT")]),
    _block("confirm", "Window", Shape.REPORTER, [BOOLEAN], inputs=[_value("TEXT")]),
]


# ---------------------------------------------------------------------------
# Dynamic shapes
# ---------------------------------------------------------------------------

def _rebuild_inputs(block: Block, specs, keep=()):
    """Replace every input not in ``keep`` with ``specs``, preserving connections by name.

    ``specs`` is a list of ``(kind, name, check)``; blocks attached to inputs
    that no longer exist are disposed.
    """
    attached = {}
    for block_input in list(block.inputs):
        if block_input.name in keep:
            continue
        child = block_input.target_block()
        if child is not None:
            block_input.connection._unlink()
            attached[block_input.name] = (child, block_input.connection.shadow_state)
        block.inputs.remove(block_input)

    for kind, name, check in specs:
        block_input = block.append_input(kind, name, check)
        if name in attached:
            child, shadow_state = attached.pop(name)
            block_input.connection.shadow_state = shadow_state
            connection = child.output_connection or child.previous_connection
            if not block_input.connection.connect(connection) and not child.shadow:
                # Type no longer fits; leave the child as a loose top-level block
                logger.debug("Detached %s from %s.%s after reshape", child.type, block.type, name)
            elif child.shadow and block_input.target_block() is not child:
                child.dispose()

    for child, _ in attached.values():
        child.dispose()


def _update_union(block: Block, previous):
    state: UnionState = block.extra_state
    _rebuild_inputs(block, [(InputType.VALUE, f"TYPE{i}", "type") for i in range(state.count)])


def _update_array(block: Block, previous):
    state: ArrayState = block.extra_state
    element = to_check(block.get_input_target("TYPE"))
    specs = []
    for i, item in enumerate(state.items):
        specs.append((InputType.VALUE, f"ADD{i}", "Array" if item == "iterable" else (None if element == "any" else element)))
    _rebuild_inputs(block, specs, keep=("TYPE",))
    for i, item in enumerate(state.items):
        connection = block.get_input(f"ADD{i}").connection
        shadow = shadow_for(element) if item == "single" else None
        if shadow and connection.shadow_state is None:
            connection.set_shadow_state({"type": shadow})


def _update_if(block: Block, previous):
    state: IfState = block.extra_state
    specs = []
    for i in range(state.else_if_count + 1):
        specs.append((InputType.VALUE, f"IF{i}", "boolean"))
        specs.append((InputType.STATEMENT, f"DO{i}", None))
    if state.has_else:
        specs.append((InputType.STATEMENT, "ELSE", None))
    _rebuild_inputs(block, specs)


def _update_try(block: Block, previous):
    state: TryState = block.extra_state
    specs = [(InputType.STATEMENT, "TRY", None)]
    if state.catch:
        specs.append((InputType.STATEMENT, "CATCH", None))
    if state.finally_:
        specs.append((InputType.STATEMENT, "FINALLY", None))
    _rebuild_inputs(block, specs)


def _update_function(block: Block, previous):
    state: FunctionState = block.extra_state
    existing = {}
    for i, block_input in enumerate(block.inputs):
        if block_input.name.startswith("PARAM_"):
            existing[block_input.name] = block_input.target_block()

    specs = [(InputType.VALUE, f"PARAM_{i}", "typed") for i in range(len(state.params))]
    if state.returns:
        specs.append((InputType.VALUE, "RETURNS", "type"))
    _rebuild_inputs(block, specs)

    for i, name in enumerate(state.params):
        typed = block.get_input_target(f"PARAM_{i}")
        if typed is None:
            typed = block.workspace.new_block("typed")
            typed.set_input_shadow("TYPE", {"type": "type", "fields": {"TYPE": "any"}})
            block.connect_input(f"PARAM_{i}", typed)
        param_type = typed.get_field_value("PARAM").split(":", 1)
        typed.set_field_value("PARAM", f"{name}:{param_type[1] if len(param_type) > 1 else 'any'}")

    if state.returns and block.get_input("RETURNS").connection.shadow_state is None:
        block.set_input_shadow("RETURNS", {"type": "type", "fields": {"TYPE": "any"}})


def _update_call(block: Block, previous):
    state: CallState = block.extra_state
    block.set_field_value("NAME", state.name)
    if state.return_type:
        block.set_output(True, state.return_type)
    else:
        block.set_previous_statement(True)
        block.set_next_statement(True)

    _rebuild_inputs(block, [(InputType.VALUE, f"PARAM_{i}", check) for i, check in enumerate(state.params)])
    for i, check in enumerate(state.params):
        shadow = "text_or_number" if isinstance(check, list) else shadow_for(check)
        if shadow:
            block.set_input_shadow(f"PARAM_{i}", {"type": shadow})


def _update_parameter(block: Block, previous):
    state: ParameterState = block.extra_state
    check = check_list(state.type or "any")
    if state.is_constant:
        block.set_output(True, check)
    else:
        block.set_output(True, check + ["Variable"])


def _update_return(block: Block, previous):
    state: ReturnState = block.extra_state
    current = block.get_input("VALUE")
    if not state.output:
        if current is not None:
            block.remove_input("VALUE")
        return

    child = None
    if current is not None:
        child = current.target_block()
        if child is not None:
            current.connection._unlink()
            if child.shadow:
                child.dispose()
                child = None
        block.inputs.remove(current)

    block.append_value_input("VALUE", state.output)
    shadow = shadow_for(state.output)
    if shadow:
        block.set_input_shadow("VALUE", {"type": shadow})
    if child is not None:
        block.connect_input("VALUE", child, force=True)


def _update_unknown(block: Block, previous):
    state: UnknownState = block.extra_state
    if state.shape == "command":
        block.set_previous_statement(True)
        block.set_next_statement(True)
    else:
        block.set_output(True, None)
    block.set_field_value("OPCODE", state.opcode)
    if not block.get_comment_text():
        block.set_comment_text(UNKNOWN_BLOCK_COMMENT)


SHAPE_UPDATERS: Dict[str, Callable[[Block, Any], None]] = {
    "union": _update_union,
    "array": _update_array,
    "controls_if": _update_if,
    "tryCatch": _update_try,
    "function": _update_function,
    "call": _update_call,
    "parameter": _update_parameter,
    "return": _update_return,
    "unknown": _update_unknown,
}

INITIAL_STATES = {
    "union": UnionState,
    "array": ArrayState,
    "controls_if": IfState,
    "tryCatch": TryState,
    "function": FunctionState,
    "call": CallState,
    "parameter": ParameterState,
    "return": ReturnState,
    "unknown": UnknownState,
}


class BlockCatalogue:
    """Registry of block definitions used by a workspace."""

    def __init__(self, definitions: List[BlockDefinition]):
        self.definitions: Dict[str, BlockDefinition] = {}
        for definition in definitions:
            if definition.type in self.definitions:
                raise ValueError(f"Duplicate block definition: {definition.type}")
            self.definitions[definition.type] = definition

    def __contains__(self, block_type: str) -> bool:
        return block_type in self.definitions

    def __iter__(self):
        return iter(self.definitions.values())

    def get(self, block_type: str) -> Optional[BlockDefinition]:
        return self.definitions.get(block_type)

    def types(self) -> List[str]:
        return list(self.definitions)

    def members(self) -> Dict[str, BlockDefinition]:
        """Definitions written as ``self.<type>`` in source."""
        return {t: d for t, d in self.definitions.items() if d.member}

    def initialize(self, block: Block):
        """Give a freshly created block its static shape and default state."""
        definition = self.definitions[block.type]
        if definition.shape == Shape.REPORTER:
            block.set_output(True, definition.output)
        elif definition.shape == Shape.COMMAND:
            block.set_previous_statement(True)
            block.set_next_statement(True)
        elif definition.shape == Shape.TERMINAL:
            block.set_previous_statement(True)
        elif definition.shape == Shape.HAT:
            block.set_next_statement(True)

        for name, value in definition.fields.items():
            block.set_field_value(name, value)
        for input_definition in definition.inputs:
            block.append_input(input_definition.kind, input_definition.name, input_definition.check)

        if block.type in INITIAL_STATES:
            block.extra_state = INITIAL_STATES[block.type]()
            self.update_shape(block, None)

    def update_shape(self, block: Block, previous):
        updater = SHAPE_UPDATERS.get(block.type)
        if updater is not None:
            updater(block, previous)

    def to_json(self) -> List[Dict[str, Any]]:
        """Describe the catalogue for clients (toolbox builders, documentation)."""
        result = []
        for definition in self.definitions.values():
            result.append({
                'type': definition.type,
                'category': definition.category,
                'shape': definition.shape,
                'output': definition.output,
                'member': definition.member,
                'inputs': [{'name': i.name, 'kind': i.kind.value, 'check': i.check} for i in definition.inputs],
                'fields': definition.fields,
            })
        return result


CATALOGUE = BlockCatalogue(DEFINITIONS)


def param_name(value: str) -> str:
    """The name part of a ``name:type`` parameter field."""
    return str(value).split(":", 1)[0]


def param_type(value: str) -> str:
    parts = str(value).split(":", 1)
    return type_name(parts[1]) if len(parts) > 1 else "any"


def build_type_block(workspace, check) -> Block:
    """Create the ``type`` (or ``union`` of ``type``) block describing ``check``."""
    check = normalize_check(check)
    if isinstance(check, str):
        block = workspace.new_block("type")
        block.set_field_value("TYPE", check)
        return block
    block = workspace.new_block("union")
    block.load_extra_state(UnionState(count=len(check)))
    for i, name in enumerate(check):
        block.connect_input(f"TYPE{i}", build_type_block(workspace, name))
    return block


def make_function_block(workspace, name: str, params: List[Any], returns: Any = False) -> Block:
    """Create a ``function`` definition block.

    ``params`` holds parameter names, or ``(name, check)`` pairs whose type
    blocks are built too. ``returns`` is a flag, or the check of the
    returned value.
    """
    block = workspace.new_block("function")
    block.set_field_value("NAME", name)
    names = [param if isinstance(param, str) else param[0] for param in params]
    block.load_extra_state(FunctionState(params=names, returns=returns is not False))

    for i, param in enumerate(params):
        if isinstance(param, str):
            continue
        param_name_, check = param
        typed = block.get_input_target(f"PARAM_{i}")
        check = normalize_check(check)
        typed.set_field_value("PARAM", f"{param_name_}:{check if isinstance(check, str) else '|'.join(check)}")
        typed.connect_input("TYPE", build_type_block(workspace, check))
    if returns is not False and returns is not True:
        block.connect_input("RETURNS", build_type_block(workspace, returns))
    return block


def set_value_shadow(block: Block, check: Optional[Check], name: str = "VALUE"):
    """Default input ``name`` to the literal block of ``check``, if it has one."""
    if check is None:
        return
    shadow = shadow_for(check)
    if shadow is not None:
        block.set_input_shadow(name, {"type": shadow})


def assigned_check(block: Block) -> Optional[Check]:
    """Type of the variable plugged into a ``set`` or ``change`` block."""
    variable = block.get_input_target("VAR")
    if variable is None or variable.output_connection is None:
        return None
    check = variable.output_connection.get_check()
    if check is None:
        return None
    return [name for name in check if name != "Variable"] or None
