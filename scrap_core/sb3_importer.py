"""
Scratch 3 (.sb3) project importer.

Reads a Scratch project archive and rebuilds every target as a ScrapScript
entity: costumes are renamed to safe file names, variables are declared
untyped and each top-level script is converted block by block through a
closed table of opcode transformers. Scratch blocks without a counterpart
become ``unknown`` placeholders; a few are emulated by helper functions
added to the entity once per import.

The conversion is a coroutine that yields to the event loop after every
block so large projects do not starve other tasks.
"""

import asyncio
import dataclasses
import io
import json
import logging
import math
import re
import time
import zipfile
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .block_definitions import assigned_check, make_function_block, set_value_shadow
from .config import TranslatorConfig, get_config
from .entities import AssetFile, Entity, Sprite, Stage
from .exceptions import IncompatibleProjectError, ProjectFormatError
from .models import Block, CallState, IfState, ParameterState, ReturnState, UnknownState
from .naming import escape, unique_name

logger = logging.getLogger(__name__)

Transformer = Callable[[Dict[str, Any]], Awaitable[Block]]

_ILLEGAL = re.compile(r'[/?<>\\:*|":#]+')
_CONTROL = re.compile(r"[\x00-\x1f\x80-\x9f]")
_RESERVED = re.compile(r"^\.+$")
_ARGUMENT = re.compile(r"%([sbn])")
_DECIMAL = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_HEX = re.compile(r"^0[xX][0-9a-fA-F]+$")

SUPPORTED_EXTENSIONS = ("pen",)

KEYS = {
    "space": "Space",
    "left arrow": "ArrowLeft",
    "right arrow": "ArrowRight",
    "up arrow": "ArrowUp",
    "down arrow": "ArrowDown",
    "enter": "Enter",
}

ROTATION_STYLES = {"all around": 0, "left-right": 1, "don't rotate": 2}

EFFECTS = ("color", "fisheye", "whirl", "pixelate", "mosaic", "brightness", "ghost")

MATH_OPERATIONS = {
    "abs": "abs",
    "floor": "floor",
    "ceiling": "ceil",
    "sqrt": "sqrt",
    "sin": "sin",
    "cos": "cos",
    "tan": "tan",
    "asin": "asin",
    "acos": "acos",
    "atan": "atan",
    "ln": "log",
    "log": "log10",
    "e ^": "exp",
}

# "sensing_of" property -> engine property path
SENSED_PROPERTIES = {
    "x position": "x",
    "y position": "y",
    "direction": "direction",
    "size": "size",
    "volume": "volume",
    "costume #": "costume.index",
    "costume name": "costume.name",
    "backdrop #": "backdrop.index",
    "backdrop name": "backdrop.name",
}

ARGUMENT_TYPES = {"s": ["string", "number"], "b": "boolean", "n": "number"}

RANDOM_COMMENT = (
    "Returns a random number between\n__from__ and __to__ inclusive.\n"
    "(JavaScript does not have such a function.)"
)


def slugify(name: str) -> str:
    """A file-name safe version of an asset name."""
    name = _ILLEGAL.sub("_", name)
    name = _CONTROL.sub("_", name)
    return _RESERVED.sub("_", name)


def base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    result = ""
    while True:
        number, remainder = divmod(number, 36)
        result = digits[remainder] + result
        if number == 0:
            return result


def key_name(option: str) -> str:
    return KEYS.get(option, option)


def procedure_name(proccode: str) -> str:
    """Identifier of a custom block, from its ``proccode`` ("jump %n times")."""
    name = re.sub(r"\s+", "_", _ARGUMENT.sub("_", proccode).strip())
    return escape(name or "procedure")


def procedure_types(proccode: str) -> list:
    return [ARGUMENT_TYPES[kind] for kind in _ARGUMENT.findall(proccode)]


def field(data: Dict[str, Any], name: str) -> Any:
    value = (data.get("fields") or {}).get(name)
    return value[0] if value else None


class SB3Importer:
    """Converts Scratch 3 archives into entities.

    One importer handles one archive at a time; the per-target state
    (current target, provided helpers, answer variable) is reset for every
    target.
    """

    def __init__(self, config: Optional[TranslatorConfig] = None):
        self.config = config or get_config()
        self.logger = logging.getLogger(__name__)
        self.target: Dict[str, Any] = {}
        self.stage_target: Dict[str, Any] = {}
        self.entity: Optional[Entity] = None
        self.provided: Dict[str, str] = {}
        self.answer: Optional[str] = None
        self.assets: Dict[str, str] = {}
        self.stage_assets: Dict[str, str] = {}
        self.unknown_opcodes: List[str] = []
        self.transformers: Dict[str, Transformer] = self._transformers()

    @property
    def workspace(self):
        return self.entity.workspace

    # -- archive -----------------------------------------------------------

    async def transform(self, archive) -> List[Entity]:
        """Import ``archive`` (bytes, a path or a binary file object).

        Returns the stage followed by the sprites. Nothing is created when
        any part of the project is incompatible.
        """
        self.unknown_opcodes = []
        if isinstance(archive, (bytes, bytearray)):
            archive = io.BytesIO(archive)
        try:
            zip_file = zipfile.ZipFile(archive)
        except (zipfile.BadZipFile, OSError) as e:
            raise ProjectFormatError(f"Not a Scratch project archive: {e}")

        with zip_file:
            project = self.read_project(zip_file)
            self.check_project(project)
            entities = []
            for target in project["targets"]:
                entities.append(await self.import_target(zip_file, target))

        entities.sort(key=lambda entity: not entity.is_stage)
        self.logger.info(
            f"Imported {len(entities)} entities"
            + (f", {len(self.unknown_opcodes)} unsupported blocks" if self.unknown_opcodes else "")
        )
        return entities

    @staticmethod
    def read_project(zip_file: zipfile.ZipFile) -> Dict[str, Any]:
        try:
            project = json.loads(zip_file.read("project.json").decode("utf-8"))
        except KeyError:
            raise ProjectFormatError("The archive has no project.json")
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProjectFormatError(f"project.json is not valid JSON: {e}")
        if not isinstance(project, dict) or not isinstance(project.get("targets"), list):
            raise ProjectFormatError("project.json has no target list")
        return project

    @staticmethod
    def check_project(project: Dict[str, Any]):
        """Reject projects using extensions or lists, before anything is imported."""
        extensions = project.get("extensions") or []
        unsupported = [e for e in extensions if e not in SUPPORTED_EXTENSIONS]
        if unsupported:
            raise IncompatibleProjectError(
                "Scrap does not support extensions other than the pen extension.",
                {'extensions': unsupported},
            )
        for target in project["targets"]:
            if target.get("lists"):
                raise IncompatibleProjectError(
                    "Scrap does not support lists.", {'target': target.get("name")}
                )

    @staticmethod
    def read_asset(zip_file: zipfile.ZipFile, asset: Dict[str, Any]) -> bytes:
        file_name = asset.get("md5ext") or f"{asset.get('assetId')}.{asset.get('dataFormat')}"
        try:
            return zip_file.read(file_name)
        except KeyError:
            raise ProjectFormatError(f"Missing asset file: {file_name}", {'asset': asset.get("name")})

    async def import_target(self, zip_file: zipfile.ZipFile, target: Dict[str, Any]) -> Entity:
        entity = Stage() if target.get("isStage") else Sprite(target.get("name") or "Sprite")
        self.target = target
        self.entity = entity
        self.provided = {}
        self.answer = None
        self.assets = {}

        for costume in target.get("costumes") or []:
            data_format = costume.get("dataFormat", "svg")
            file_name = f"{slugify(costume['name'])}.{data_format}"
            self.assets[costume["name"]] = file_name
            media_type = f"image/{data_format}{'+xml' if data_format == 'svg' else ''}"
            entity.costumes.append(AssetFile(file_name, self.read_asset(zip_file, costume), media_type))
        for sound in target.get("sounds") or []:
            data_format = sound.get("dataFormat", "wav")
            entity.sounds.append(AssetFile(
                f"{sound['name']}.{data_format}", self.read_asset(zip_file, sound), f"audio/{data_format}"
            ))
        if entity.is_stage:
            self.stage_target = target
            self.stage_assets = self.assets

        entity.current = target.get("currentCostume", 0)
        entity.variables = [(variable[0], "any") for variable in (target.get("variables") or {}).values()]
        if not entity.is_stage:
            for key in ("x", "y", "direction", "size", "visible", "draggable"):
                if key in target:
                    entity.init[key] = target[key]
            if target.get("rotationStyle") in ROTATION_STYLES:
                entity.init["rotationStyle"] = ROTATION_STYLES[target["rotationStyle"]]

        for data in (target.get("blocks") or {}).values():
            if isinstance(data, dict) and data.get("topLevel"):
                block = await self.stack(data)
                block.x = data.get("x", 0)
                block.y = data.get("y", 0)

        self.logger.debug(f"Imported {entity.name} with {len(entity.workspace)} blocks")
        return entity

    # -- traversal ---------------------------------------------------------

    def block_data(self, block_id: str) -> Dict[str, Any]:
        data = (self.target.get("blocks") or {}).get(block_id)
        if not isinstance(data, dict):
            raise ProjectFormatError(f"Missing block '{block_id}' in {self.target.get('name')}")
        return data

    async def stack(self, data: Dict[str, Any], is_input: bool = False) -> Block:
        """Convert a block and the blocks chained after it."""
        first = previous = None
        while True:
            block = await self.block(data, is_input)
            if previous is None:
                first = block
            elif previous.next_connection is None or block.previous_connection is None:
                self.logger.warning(f"Cannot chain {block.type} after {previous.type}, left unattached")
            else:
                previous.next_connection.connect(block.previous_connection, force=True)
            previous = block
            is_input = False
            if not data.get("next"):
                return first
            data = self.block_data(data["next"])

    async def block(self, data: Dict[str, Any], is_input: bool = False) -> Block:
        opcode = data.get("opcode", "")
        transformer = self.transformers.get(opcode)
        if transformer is None:
            block = self.unknown(opcode, "reporter" if is_input else "command")
        else:
            block = await transformer(data)
        await asyncio.sleep(self.config.import_yield_delay)
        return block

    async def input(self, entry: Optional[list], command: bool = False) -> Optional[Block]:
        """Convert an input entry: a block reference or an inline primitive."""
        if not entry or len(entry) < 2:
            return None
        flag, value = entry[0], entry[1]
        if value is None:
            return None
        if isinstance(value, str):
            block = await self.stack(self.block_data(value), is_input=not command)
        else:
            block = self.primitive(value)
        block.set_shadow(flag == 1)
        return block

    def primitive(self, value: list) -> Block:
        kind = value[0]
        if kind in (4, 5, 6, 7, 8):
            return self.number(value[1])
        if kind == 9:
            return self.new("color", COLOR=value[1])
        if kind == 10:
            return self.new("text_or_number", VALUE=str(value[1]))
        if kind == 11:
            return self.text(str(value[1]))
        if kind == 12:
            return self.variable(value[1])
        raise ProjectFormatError(f"Unknown input type: {kind}", {'value': value})

    # -- block helpers -----------------------------------------------------

    def new(self, block_type: str, state=None, **fields) -> Block:
        block = self.workspace.new_block(block_type)
        if state is not None:
            block.load_extra_state(dataclasses.replace(state))
        for name, value in fields.items():
            block.set_field_value(name, value)
        return block

    def number(self, value: Any) -> Block:
        """Number block of a Scratch number slot, converted like JavaScript's unary ``+``.

        Blank slots are 0, and text that is not a number is NaN.
        """
        if isinstance(value, bool):
            value = int(value)
        if isinstance(value, (int, float)):
            if math.isnan(value):
                return self.new("constant", CONSTANT="NaN")
            text = repr(value) if math.isfinite(value) else ("Infinity" if value > 0 else "-Infinity")
        else:
            text = str(value if value is not None else "").strip()
        if not text:
            return self.new("math_number", NUM=0)
        if _HEX.match(text):
            return self.new("math_number", NUM=int(text, 16))
        if _DECIMAL.match(text):
            number = float(text)
            if math.isfinite(number):
                return self.new("math_number", NUM=int(number) if number.is_integer() else number)
            text = "-Infinity" if number < 0 else "Infinity"
        if text in ("Infinity", "+Infinity"):
            return self.new("constant", CONSTANT="Infinity")
        if text == "-Infinity":
            return self.arithmetic("-", self.new("math_number", NUM=0), self.new("constant", CONSTANT="Infinity"))
        return self.new("constant", CONSTANT="NaN")

    def text(self, value: str) -> Block:
        return self.new("iterables_string", TEXT=value)

    def variable(self, name: str) -> Block:
        return self.new("parameter", ParameterState(is_variable=True), VAR=name)

    def sprite(self, name: str) -> Dict[str, Any]:
        """Shadow state of a sprite reference from a Scratch menu value."""
        name = {"_myself_": "self", "_stage_": "Stage"}.get(name, name)
        return {"type": "sprite", "fields": {"SPRITE": name}}

    def arithmetic(self, operator: str, left: Optional[Block], right: Optional[Block]) -> Block:
        block = self.new("arithmetics", OP=operator)
        block.connect_input("A", left, force=True)
        block.connect_input("B", right, force=True)
        return block

    def plug(self, block: Block, name: str, inner: Optional[Block]):
        """Connect ``inner`` into input ``name``, converting the value when the types disagree."""
        if inner is None:
            return
        if inner.output_connection is None:
            block.connect_input(name, inner, force=True)
            return
        if block.connect_input(name, inner):
            return
        check = block.require_input(name).connection.get_check() or ["any"]
        if check[0] in ("number", "string"):
            wrapper = self.new(check[0])
            wrapper.connect_input("VALUE", inner)
        elif check[0] == "boolean":
            wrapper = self.new("compare", OP="==")
            wrapper.connect_input("A", self.text("true"))
            wrapper.connect_input("B", inner)
        else:
            self.logger.debug(f"Forcing {inner.type} into {block.type}.{name} ({check})")
            wrapper = inner
        block.connect_input(name, wrapper, force=True)

    def menu(self, data: Dict[str, Any], name: str) -> Optional[str]:
        """The option selected in the menu plugged into input ``name``."""
        entry = (data.get("inputs") or {}).get(name)
        if not entry or len(entry) < 2 or not isinstance(entry[1], str):
            return None
        return field(self.block_data(entry[1]), name)

    async def inputs(self, data: Dict[str, Any], block: Block, mapping: Dict[str, Tuple[str, bool]]):
        for source, (target, statement) in mapping.items():
            self.plug(block, target, await self.input((data.get("inputs") or {}).get(source), statement))

    # -- transformer factories ---------------------------------------------

    def override(self, opcode: str, inputs: Optional[Dict[str, Tuple[str, bool]]] = None,
                 state=None) -> Transformer:
        """Transformer that only renames the opcode and some inputs."""
        renames = inputs or {}

        async def transform(data):
            block = self.new(opcode, state)
            for name, entry in (data.get("inputs") or {}).items():
                target, statement = renames.get(name, (name, False))
                if block.get_input(target) is None:
                    self.logger.debug(f"{data.get('opcode')}: dropping input {name}")
                    continue
                self.plug(block, target, await self.input(entry, statement))
            return block
        return transform

    def setter(self, kind: str, pseudo: str, value_input: str) -> Transformer:
        """``set`` or ``change`` of an engine property."""
        async def transform(data):
            block = self.new(kind)
            block.set_input_shadow("VAR", {"type": pseudo})
            set_value_shadow(block, assigned_check(block))
            await self.inputs(data, block, {value_input: ("VALUE", False)})
            return block
        return transform

    def reporter(self, block_type: str, **fields) -> Transformer:
        async def transform(data):
            return self.new(block_type, **fields)
        return transform

    def operator(self, block_type: str, operator: str, names=None) -> Transformer:
        if names is None:
            names = ("NUM1", "NUM2") if block_type == "arithmetics" else ("OPERAND1", "OPERAND2")

        async def transform(data):
            block = self.new(block_type, OP=operator)
            await self.inputs(data, block, {names[0]: ("A", False), names[1]: ("B", False)})
            return block
        return transform

    def switch(self, opcode: str, name: str) -> Transformer:
        """Costume or backdrop switch; numbers are 1-based in Scratch."""
        async def transform(data):
            block = self.new(opcode)
            inner = await self.input((data.get("inputs") or {}).get(name))
            if inner is not None and inner.output_connection is not None:
                check = inner.output_connection.get_check() or []
                if check[:1] == ["number"]:
                    inner = self.arithmetic("-", inner, self.number(1))
            self.plug(block, name, inner)
            return block
        return transform

    def unknown(self, opcode: str, shape: str) -> Block:
        self.logger.warning(f"Unsupported Scratch block '{opcode}' imported as a placeholder")
        self.unknown_opcodes.append(opcode)
        return self.new("unknown", UnknownState(shape=shape, opcode=opcode))

    # -- helper functions --------------------------------------------------

    def provide(self, purpose: str, params: list, returns, comment: str, body: Callable[[], Block]) -> str:
        """Name of the helper function serving ``purpose``, defined on first use per target."""
        if purpose in self.provided:
            return self.provided[purpose]
        name = f"scratch_{purpose}_{base36(int(time.time() * 1000))}"
        function = make_function_block(self.workspace, name, params, returns)
        function.set_comment_text(comment)
        function.next_connection.connect(body().previous_connection)
        self.provided[purpose] = name
        self.logger.debug(f"Provided helper {name} for {self.entity.name}")
        return name

    def call(self, name: str, params: list, return_type) -> Block:
        return self.new("call", CallState(name=name, params=params, return_type=return_type))

    def _random_body(self) -> Block:
        def param(name):
            return self.new("parameter", ParameterState(type="number"), VAR=name)

        span = self.arithmetic("+", self.arithmetic("-", param("__to__"), param("__from__")), self.number(1))
        scaled = self.arithmetic("*", self.new("random"), span)
        floor = self.new("math", OP="floor")
        floor.connect_input("NUM", scaled)
        result = self.new("return", ReturnState(output="number"))
        result.connect_input("VALUE", self.arithmetic("+", floor, param("__from__")), force=True)
        return result

    def _asset_name_body(self, kind: str) -> Block:
        costumes = (self.stage_target if kind == "backdrop" else self.target).get("costumes") or []
        assets = self.stage_assets if kind == "backdrop" else self.assets

        failure = self.new("throw")
        failure.set_input_shadow("ERROR", {"type": "iterables_string", "fields": {"TEXT": f"Invalid {kind} name"}})
        if not costumes:
            return failure

        block = self.new("controls_if", IfState(else_if_count=len(costumes) - 1, has_else=True))
        for i, costume in enumerate(costumes):
            compare = self.new("compare", OP="==")
            compare.connect_input("A", self.new(kind, VALUE="name"))
            compare.connect_input("B", self.text(assets.get(costume["name"], costume["name"])))
            block.connect_input(f"IF{i}", compare)
            result = self.new("return", ReturnState(output="string"))
            result.connect_input("VALUE", self.text(costume["name"]))
            block.connect_input(f"DO{i}", result)
        block.connect_input("ELSE", failure)
        return block

    def asset(self, kind: str) -> Transformer:
        """``costume`` / ``backdrop`` number or name reporter."""
        async def transform(data):
            if field(data, "NUMBER_NAME") == "number":
                return self.arithmetic("+", self.number(1), self.new(kind, VALUE="index"))
            name = self.provide(
                f"{kind}Name", [], "string", f"Returns the name of the {kind} before renaming.",
                lambda: self._asset_name_body(kind),
            )
            return self.call(name, [], "string")
        return transform

    def answer_variable(self) -> str:
        """Variable holding the last ``ask`` answer, declared once per target."""
        if self.answer is None:
            self.answer = unique_name("a", [name for name, _ in self.entity.variables])
            self.entity.variables.append((self.answer, "string"))
        return self.answer

    # -- opcode transformers -----------------------------------------------

    async def _goto_menu(self, data):
        option = field(data, "TO")
        if option in ("_random_", "_mouse_"):
            return self.unknown(f"motion_goto_menu [{option}]", "reporter")
        return self.new("sprite", SPRITE=option)

    async def _rotation_style(self, data):
        block = self.new("setRotationStyle")
        block.set_input_shadow("STYLE", {"type": "rotationStyle", "fields": {"STYLE": field(data, "STYLE")}})
        return block

    def _effect(self, kind: str) -> Transformer:
        async def transform(data):
            effect = str(field(data, "EFFECT") or "").lower()
            if effect not in EFFECTS:
                return self.unknown(data.get("opcode"), "command")
            block = self.new(kind)
            block.set_input_shadow("VAR", {"type": "effect", "fields": {"EFFECT": effect}})
            await self.inputs(data, block, {"VALUE": ("VALUE", False)})
            return block
        return transform

    async def _costume_menu(self, data):
        option = field(data, "COSTUME")
        return self.new("costume_menu", NAME=self.assets.get(option, option))

    async def _backdrop_menu(self, data):
        option = field(data, "BACKDROP")
        return self.new("backdrop_menu", NAME=self.stage_assets.get(option, option))

    async def _front_back(self, data):
        return self.new("goToFront" if field(data, "FRONT_BACK") == "front" else "goToBack")

    async def _layers(self, data):
        block = self.new("goForward" if field(data, "FORWARD_BACKWARD") == "forward" else "goBackward")
        await self.inputs(data, block, {"NUM": ("NUM", False)})
        return block

    async def _sounds_menu(self, data):
        option = field(data, "SOUND_MENU")
        for sound in self.target.get("sounds") or []:
            if sound.get("name") == option:
                return self.new("sound", NAME=f"{option}.{sound.get('dataFormat', 'wav')}")
        return self.new("sound", NAME=option)

    async def _when_greater_than(self, data):
        if field(data, "WHENGREATERTHANMENU") != "TIMER":
            return self.unknown(f"event_whengreaterthan [{field(data, 'WHENGREATERTHANMENU')}]", "command")
        block = self.new("whenTimerElapsed")
        await self.inputs(data, block, {"VALUE": ("TIMER", False)})
        return block

    async def _when_clicked(self, data):
        block = self.new("whenMouse")
        block.set_input_shadow("EVENT", {"type": "event", "fields": {"EVENT": "click"}})
        return block

    async def _when_received(self, data):
        block = self.new("whenReceiveMessage")
        block.set_input_shadow(
            "MESSAGE", {"type": "iterables_string", "fields": {"TEXT": field(data, "BROADCAST_OPTION")}}
        )
        return block

    async def _when_backdrop(self, data):
        option = field(data, "BACKDROP")
        block = self.new("whenBackdropChangesTo")
        block.set_input_shadow(
            "BACKDROP", {"type": "backdrop_menu", "fields": {"NAME": self.stage_assets.get(option, option)}}
        )
        return block

    async def _when_key(self, data):
        block = self.new("whenKeyPressed")
        block.set_input_shadow("KEY", {"type": "key", "fields": {"KEY": key_name(field(data, "KEY_OPTION"))}})
        return block

    async def _stop(self, data):
        option = field(data, "STOP_OPTION")
        if option == "all":
            return self.new("stop")
        if option == "this script":
            return self.new("return")
        return self.unknown(f"control_stop [{option}]", "command")

    async def _repeat(self, data):
        block = self.new("for")
        block.set_input_shadow("FROM", {"type": "math_number", "fields": {"NUM": 1}})
        await self.inputs(data, block, {"TIMES": ("TO", False), "SUBSTACK": ("STACK", True)})
        return block

    async def _forever(self, data):
        block = self.new("while")
        block.connect_input("CONDITION", self.new("boolean", BOOL="true"))
        await self.inputs(data, block, {"SUBSTACK": ("STACK", True)})
        return block

    async def _repeat_until(self, data):
        block = self.new("while")
        condition = self.new("not")
        await self.inputs(data, condition, {"CONDITION": ("BOOL", False)})
        block.connect_input("CONDITION", condition)
        await self.inputs(data, block, {"SUBSTACK": ("STACK", True)})
        return block

    async def _create_clone(self, data):
        block = self.new("clone")
        option = self.menu(data, "CLONE_OPTION")
        if option is None:
            await self.inputs(data, block, {"CLONE_OPTION": ("SPRITE", False)})
        else:
            block.set_input_shadow("SPRITE", self.sprite(option))
        return block

    async def _sensing_of(self, data):
        option = self.menu(data, "OBJECT")
        sprite = "Stage" if option in (None, "_stage_") else option
        prop = field(data, "PROPERTY")
        if prop in SENSED_PROPERTIES:
            path = SENSED_PROPERTIES[prop]
        else:
            path = f"variables[{json.dumps(prop)}]"
        block = self.new("property", SPRITE=sprite, PROPERTY=path)
        if path.endswith(".index"):
            return self.arithmetic("+", self.number(1), block)
        return block

    async def _touching(self, data):
        option = self.menu(data, "TOUCHINGOBJECTMENU")
        if option == "_edge_":
            return self.new("isTouchingEdge")
        if option == "_mouse_":
            return self.new("isTouchingMouse")
        block = self.new("isTouching")
        if option is None:
            await self.inputs(data, block, {"TOUCHINGOBJECTMENU": ("SPRITE", False)})
        else:
            block.set_input_shadow("SPRITE", self.sprite(option))
        return block

    async def _distance(self, data):
        option = self.menu(data, "DISTANCETOMENU")
        block = self.new("distanceTo")
        if option == "_mouse_":
            block.connect_input("X", self.new("mouseX"))
            block.connect_input("Y", self.new("mouseY"))
        else:
            sprite = option or "Stage"
            block.connect_input("X", self.new("property", SPRITE=sprite, PROPERTY="x"), force=True)
            block.connect_input("Y", self.new("property", SPRITE=sprite, PROPERTY="y"), force=True)
        return block

    async def _ask(self, data):
        block = self.new("set")
        block.connect_input("VAR", self.variable(self.answer_variable()))
        ask = self.new("ask")
        await self.inputs(data, ask, {"QUESTION": ("QUESTION", False)})
        block.connect_input("VALUE", ask)
        return block

    async def _answer(self, data):
        return self.variable(self.answer_variable())

    async def _key_options(self, data):
        return self.new("key", KEY=key_name(field(data, "KEY_OPTION")))

    async def _drag_mode(self, data):
        block = self.new("set")
        block.set_input_shadow("VAR", {"type": "draggable"})
        value = "true" if field(data, "DRAG_MODE") == "draggable" else "false"
        block.connect_input("VALUE", self.new("boolean", BOOL=value))
        return block

    async def _random(self, data):
        params = [("__from__", "number"), ("__to__", "number")]
        name = self.provide("random", params, "number", RANDOM_COMMENT, self._random_body)
        block = self.call(name, ["number", "number"], "number")
        await self.inputs(data, block, {"FROM": ("PARAM_0", False), "TO": ("PARAM_1", False)})
        return block

    async def _join(self, data):
        block = self.new("arithmetics", OP="+")
        first = await self.input((data.get("inputs") or {}).get("STRING1"))
        if first is not None and (first.output_connection.get_check() or []) != ["string"]:
            wrapper = self.new("string")
            wrapper.connect_input("VALUE", first)
            first = wrapper
        self.plug(block, "A", first)
        await self.inputs(data, block, {"STRING2": ("B", False)})
        return block

    async def _letter_of(self, data):
        block = self.new("item")
        letter = await self.input((data.get("inputs") or {}).get("LETTER"))
        block.connect_input("INDEX", self.arithmetic("-", letter, self.number(1)))
        await self.inputs(data, block, {"STRING": ("ITERABLE", False)})
        return block

    async def _round(self, data):
        block = self.new("math", OP="round")
        await self.inputs(data, block, {"NUM": ("NUM", False)})
        return block

    async def _mathop(self, data):
        operator = field(data, "OPERATOR")
        if operator == "10 ^":
            power = await self.input((data.get("inputs") or {}).get("NUM"))
            return self.arithmetic("**", self.number(10), power)
        if operator not in MATH_OPERATIONS:
            return self.unknown(f"operator_mathop [{operator}]", "reporter")
        block = self.new("math", OP=MATH_OPERATIONS[operator])
        await self.inputs(data, block, {"NUM": ("NUM", False)})
        return block

    def _variable_setter(self, kind: str) -> Transformer:
        async def transform(data):
            block = self.new(kind)
            block.connect_input("VAR", self.variable(field(data, "VARIABLE")))
            set_value_shadow(block, assigned_check(block))
            await self.inputs(data, block, {"VALUE": ("VALUE", False)})
            return block
        return transform

    def _variable_toggle(self, kind: str) -> Transformer:
        async def transform(data):
            return self.new(kind, VAR=field(data, "VARIABLE"))
        return transform

    async def _definition(self, data):
        entry = (data.get("inputs") or {}).get("custom_block") or [None, None]
        if not isinstance(entry[1], str):
            raise ProjectFormatError("Procedure definition without a prototype")
        mutation = self.block_data(entry[1]).get("mutation") or {}
        proccode = mutation.get("proccode", "")
        names = json.loads(mutation.get("argumentnames") or "[]")
        params = [(escape(name), check) for name, check in zip(names, procedure_types(proccode))]
        return make_function_block(self.workspace, procedure_name(proccode), params)

    async def _procedure_call(self, data):
        mutation = data.get("mutation") or {}
        proccode = mutation.get("proccode", "")
        types = procedure_types(proccode)
        block = self.call(procedure_name(proccode), types, False)
        argument_ids = json.loads(mutation.get("argumentids") or "[]")
        for i, argument_id in enumerate(argument_ids[:len(types)]):
            self.plug(block, f"PARAM_{i}", await self.input((data.get("inputs") or {}).get(argument_id)))
        return block

    def _argument(self, check) -> Transformer:
        async def transform(data):
            return self.new("parameter", ParameterState(type=check), VAR=escape(field(data, "VALUE") or ""))
        return transform

    def _transformers(self) -> Dict[str, Transformer]:
        override = self.override
        return {
            # Motion
            "motion_movesteps": override("move"),
            "motion_turnright": override("turnRight"),
            "motion_turnleft": override("turnLeft"),
            "motion_pointindirection": override("pointInDirection"),
            "motion_gotoxy": override("goTo"),
            "motion_glidesecstoxy": override("glide"),
            "motion_goto": override("goTowards", {"TO": ("SPRITE", False)}),
            "motion_goto_menu": self._goto_menu,
            "motion_ifonedgebounce": override("ifOnEdgeBounce"),
            "motion_setrotationstyle": self._rotation_style,
            "motion_changexby": self.setter("change", "x", "DX"),
            "motion_setx": self.setter("set", "x", "X"),
            "motion_changeyby": self.setter("change", "y", "DY"),
            "motion_sety": self.setter("set", "y", "Y"),
            "motion_xposition": self.reporter("x"),
            "motion_yposition": self.reporter("y"),
            "motion_direction": self.reporter("direction"),

            # Looks
            "looks_sayforsecs": override("sayWait"),
            "looks_say": override("say"),
            "looks_thinkforsecs": override("thinkWait"),
            "looks_think": override("think"),
            "looks_show": override("show"),
            "looks_hide": override("hide"),
            "looks_changeeffectby": self._effect("change"),
            "looks_seteffectto": self._effect("set"),
            "looks_cleargraphiceffects": override("clearEffects"),
            "looks_changesizeby": self.setter("change", "size", "CHANGE"),
            "looks_setsizeto": self.setter("set", "size", "SIZE"),
            "looks_size": self.reporter("size"),
            "looks_costume": self._costume_menu,
            "looks_backdrops": self._backdrop_menu,
            "looks_switchcostumeto": self.switch("switchCostumeTo", "COSTUME"),
            "looks_nextcostume": override("nextCostume"),
            "looks_switchbackdropto": self.switch("switchBackdropTo", "BACKDROP"),
            "looks_switchbackdroptoandwait": self.switch("switchBackdropToWait", "BACKDROP"),
            "looks_nextbackdrop": override("nextBackdrop"),
            "looks_gotofrontback": self._front_back,
            "looks_goforwardbackwardlayers": self._layers,
            "looks_costumenumbername": self.asset("costume"),
            "looks_backdropnumbername": self.asset("backdrop"),

            # Sound
            "sound_sounds_menu": self._sounds_menu,
            "sound_play": override("playSound", {"SOUND_MENU": ("SOUND", False)}),
            "sound_playuntildone": override("playSoundUntilDone", {"SOUND_MENU": ("SOUND", False)}),
            "sound_stopallsounds": override("stopSounds"),
            "sound_setvolumeto": self.setter("set", "volume", "VOLUME"),
            "sound_changevolumeby": self.setter("change", "volume", "VOLUME"),
            "sound_volume": self.reporter("volume"),

            # Pen
            "pen_clear": override("penClear"),
            "pen_stamp": override("stamp"),
            "pen_penDown": override("penDown"),
            "pen_penUp": override("penUp"),
            "pen_setPenColorToColor": self.setter("set", "penColor", "COLOR"),
            "pen_changePenSizeBy": self.setter("change", "penSize", "SIZE"),
            "pen_setPenSizeTo": self.setter("set", "penSize", "SIZE"),

            # Events
            "event_whenflagclicked": override("whenFlag"),
            "event_whengreaterthan": self._when_greater_than,
            "event_whenthisspriteclicked": self._when_clicked,
            "event_whenstageclicked": self._when_clicked,
            "event_whenbroadcastreceived": self._when_received,
            "event_whenbackdropswitchesto": self._when_backdrop,
            "event_whenkeypressed": self._when_key,
            "event_broadcast": override("broadcastMessage", {"BROADCAST_INPUT": ("MESSAGE", False)}),
            "event_broadcastandwait": override("broadcastMessageWait", {"BROADCAST_INPUT": ("MESSAGE", False)}),

            # Control
            "control_wait": override("wait", {"DURATION": ("SECS", False)}),
            "control_repeat": self._repeat,
            "control_forever": self._forever,
            "control_repeat_until": self._repeat_until,
            "control_wait_until": self._repeat_until,
            "control_if": override("controls_if", {
                "CONDITION": ("IF0", False), "SUBSTACK": ("DO0", True),
            }),
            "control_if_else": override("controls_if", {
                "CONDITION": ("IF0", False), "SUBSTACK": ("DO0", True), "SUBSTACK2": ("ELSE", True),
            }, IfState(has_else=True)),
            "control_stop": self._stop,
            "control_start_as_clone": override("whenCloned"),
            "control_create_clone_of": self._create_clone,
            "control_delete_this_clone": override("delete"),

            # Sensing
            "sensing_of": self._sensing_of,
            "sensing_touchingobject": self._touching,
            "sensing_touchingcolor": override("isTouchingBackdropColor"),
            "sensing_distanceto": self._distance,
            "sensing_askandwait": self._ask,
            "sensing_answer": self._answer,
            "sensing_keyoptions": self._key_options,
            "sensing_keypressed": override("isKeyPressed", {"KEY_OPTION": ("KEY", False)}),
            "sensing_mousedown": self.reporter("mouseDown"),
            "sensing_mousex": self.reporter("mouseX"),
            "sensing_mousey": self.reporter("mouseY"),
            "sensing_setdragmode": self._drag_mode,
            "sensing_timer": self.reporter("getTimer"),
            "sensing_resettimer": override("resetTimer"),

            # Operators
            "operator_add": self.operator("arithmetics", "+"),
            "operator_subtract": self.operator("arithmetics", "-"),
            "operator_multiply": self.operator("arithmetics", "*"),
            "operator_divide": self.operator("arithmetics", "/"),
            "operator_mod": self.operator("arithmetics", "%"),
            "operator_random": self._random,
            "operator_lt": self.operator("compare", "<"),
            "operator_equals": self.operator("compare", "=="),
            "operator_gt": self.operator("compare", ">"),
            "operator_and": self.operator("operation", "&&"),
            "operator_or": self.operator("operation", "||"),
            "operator_not": override("not", {"OPERAND": ("BOOL", False)}),
            "operator_join": self._join,
            "operator_letter_of": self._letter_of,
            "operator_length": override("length", {"STRING": ("ITERABLE", False)}),
            "operator_contains": override("includes", {"STRING1": ("ITERABLE", False), "STRING2": ("ITEM", False)}),
            "operator_round": self._round,
            "operator_mathop": self._mathop,

            # Variables
            "data_setvariableto": self._variable_setter("set"),
            "data_changevariableby": self._variable_setter("change"),
            "data_showvariable": self._variable_toggle("showVariable"),
            "data_hidevariable": self._variable_toggle("hideVariable"),

            # Custom blocks
            "procedures_definition": self._definition,
            "procedures_call": self._procedure_call,
            "argument_reporter_string_number": self._argument(["string", "number"]),
            "argument_reporter_boolean": self._argument("boolean"),
        }


async def import_sb3(archive, config: Optional[TranslatorConfig] = None) -> List[Entity]:
    """Import a Scratch 3 archive into a list of entities, stage first."""
    return await SB3Importer(config).transform(archive)
