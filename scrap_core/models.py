"""
Block graph data model.

This module defines the in-memory block graph the translators operate on:
blocks with typed value and statement sockets, the connections joining them,
per-kind extra state records and the workspace that owns every block of an
entity. Serialization follows the plain JSON layout used by saved projects.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .exceptions import ConnectionCheckError, ScrapError
from .types import Check, check_list, is_compatible

logger = logging.getLogger(__name__)


class InputType(Enum):
    """Kinds of block inputs."""
    VALUE = "value"
    STATEMENT = "statement"
    DUMMY = "dummy"


class ConnectionType(Enum):
    """Kinds of connection points on a block."""
    OUTPUT = "output"
    PREVIOUS = "previous"
    NEXT = "next"
    INPUT_VALUE = "input_value"
    INPUT_STATEMENT = "input_statement"


# Child side -> parent sides it may plug into
_PAIRINGS = {
    ConnectionType.OUTPUT: (ConnectionType.INPUT_VALUE,),
    ConnectionType.PREVIOUS: (ConnectionType.NEXT, ConnectionType.INPUT_STATEMENT),
}


# ---------------------------------------------------------------------------
# Extra state records
# ---------------------------------------------------------------------------

@dataclass
class UnionState:
    count: int = 2

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnionState":
        return cls(count=data.get("count") or 2)


@dataclass
class ArrayState:
    items: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"items": list(self.items)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArrayState":
        items = data.get("items") or []
        for item in items:
            if item not in ("single", "iterable"):
                raise ScrapError(f"Invalid array item kind: {item!r}")
        return cls(items=list(items))


@dataclass
class IfState:
    else_if_count: int = 0
    has_else: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"elseIfCount": self.else_if_count, "hasElse": self.has_else}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IfState":
        return cls(else_if_count=int(data.get("elseIfCount") or 0), has_else=bool(data.get("hasElse")))


@dataclass
class TryState:
    catch: Union[bool, str] = True
    finally_: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"catch": self.catch, "finally": self.finally_}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TryState":
        return cls(catch=data.get("catch", True), finally_=bool(data.get("finally")))


@dataclass
class FunctionState:
    params: List[str] = field(default_factory=list)
    returns: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"params": list(self.params), "returns": self.returns}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FunctionState":
        return cls(params=list(data.get("params") or []), returns=bool(data.get("returns")))


@dataclass
class CallState:
    name: str = "unnamed"
    params: List[Check] = field(default_factory=list)
    return_type: Union[Check, bool] = "any"

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "params": list(self.params), "returnType": self.return_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallState":
        return_type = data.get("returnType", "any")
        if return_type is None or return_type == "":
            return_type = False
        return cls(
            name=data.get("name") or "unnamed",
            params=list(data.get("params") or []),
            return_type=return_type,
        )


@dataclass
class ParameterState:
    type: Check = "any"
    is_variable: bool = False
    is_constant: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "isVariable": self.is_variable, "isConstant": self.is_constant}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParameterState":
        return cls(
            type=data.get("type") or "any",
            is_variable=bool(data.get("isVariable")),
            is_constant=bool(data.get("isConstant")),
        )


@dataclass
class ReturnState:
    output: Union[Check, bool] = False

    def to_dict(self) -> Dict[str, Any]:
        return {"output": self.output}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReturnState":
        return cls(output=data.get("output") or False)


@dataclass
class UnknownState:
    shape: str = "command"
    opcode: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {"shape": self.shape, "opcode": self.opcode}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnknownState":
        shape = data.get("shape") or "command"
        if shape not in ("command", "reporter"):
            raise ScrapError(f"Invalid unknown block shape: {shape!r}")
        return cls(shape=shape, opcode=data.get("opcode") or "unknown")


EXTRA_STATE_TYPES = {
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


# ---------------------------------------------------------------------------
# Connections and inputs
# ---------------------------------------------------------------------------

class Connection:
    """A connection point on a block."""

    def __init__(self, source_block: "Block", type: ConnectionType, check: Optional[List[str]] = None):
        self.source_block = source_block
        self.type = type
        self.check = check
        self.target: Optional["Connection"] = None
        self.shadow_state: Optional[Dict[str, Any]] = None

    @property
    def is_parent_side(self) -> bool:
        return self.type in (ConnectionType.NEXT, ConnectionType.INPUT_VALUE, ConnectionType.INPUT_STATEMENT)

    def target_block(self) -> Optional["Block"]:
        return self.target.source_block if self.target else None

    def is_connected(self) -> bool:
        return self.target is not None

    def get_check(self) -> Optional[List[str]]:
        return self.check

    def set_check(self, check: Optional[Check]):
        """Change the accepted types, disconnecting a block that no longer fits."""
        self.check = check_list(check)
        if self.target and not self._checks_pass(self.target):
            orphan = self.target_block()
            self.disconnect()
            if orphan.shadow:
                orphan.dispose()

    def _checks_pass(self, other: "Connection") -> bool:
        if self.type in (ConnectionType.OUTPUT, ConnectionType.INPUT_VALUE):
            return is_compatible(self.check, other.check)
        return True

    def can_connect(self, other: "Connection") -> bool:
        parent, child = self._orient(other)
        return parent.source_block is not child.source_block and child._checks_pass(parent)

    def _orient(self, other: "Connection"):
        if other.type in _PAIRINGS and self.type in _PAIRINGS[other.type]:
            return self, other
        if self.type in _PAIRINGS and other.type in _PAIRINGS[self.type]:
            return other, self
        raise ConnectionCheckError(
            f"Cannot connect {self.type.value} to {other.type.value}",
            self.source_block.type,
        )

    def connect(self, other: Optional["Connection"], force: bool = False) -> bool:
        """Connect two compatible connections.

        Returns False, leaving the graph untouched, when the type checks
        disagree and ``force`` is not set. A non-shadow block already
        occupying the parent side is unplugged; a statement orphan is
        re-attached to the end of the incoming stack when possible.
        """
        if other is None:
            return False
        parent, child = self._orient(other)
        if parent.source_block is child.source_block:
            raise ConnectionCheckError("A block cannot connect to itself", parent.source_block.type)
        if parent.target is child:
            return True
        if not force and not child._checks_pass(parent):
            logger.debug(
                "Type check failed connecting %s %s into %s %s",
                child.source_block.type, child.check, parent.source_block.type, parent.check,
            )
            return False

        if child.target:
            child.disconnect()

        orphan = None
        existing = parent.target_block()
        if existing is not None:
            parent._unlink()
            if existing.shadow:
                existing.dispose()
            else:
                orphan = existing

        parent.target = child
        child.target = parent

        if orphan is not None and orphan.previous_connection is not None:
            tail = child.source_block.last_in_stack()
            if tail.next_connection is not None:
                tail.next_connection.connect(orphan.previous_connection, force=True)
        return True

    def _unlink(self):
        if self.target:
            self.target.target = None
            self.target = None

    def disconnect(self):
        """Break this connection, respawning the parent socket's shadow if it has one."""
        if self.target is None:
            return
        parent = self if self.is_parent_side else self.target
        self._unlink()
        parent.respawn_shadow()

    def set_shadow_state(self, state: Optional[Dict[str, Any]]):
        """Set the default block shown when nothing real is plugged in."""
        self.shadow_state = state
        current = self.target_block()
        if current is not None and current.shadow:
            self._unlink()
            current.dispose()
            current = None
        if current is None:
            self.respawn_shadow()

    def respawn_shadow(self):
        if self.shadow_state is None or self.target is not None:
            return
        workspace = self.source_block.workspace
        shadow = workspace.block_from_state(self.shadow_state, shadow=True)
        child = shadow.output_connection or shadow.previous_connection
        if child is None:
            raise ConnectionCheckError(f"Shadow block '{shadow.type}' has no connection", shadow.type)
        self.target = child
        child.target = self


@dataclass
class Input:
    """A named input row on a block."""
    name: str
    type: InputType
    connection: Optional[Connection] = None

    def set_check(self, check: Optional[Check]) -> "Input":
        if self.connection is not None:
            self.connection.set_check(check)
        return self

    def target_block(self) -> Optional["Block"]:
        return self.connection.target_block() if self.connection else None


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

class Block:
    """A node of the block graph.

    A block either produces a value (it has an output connection) or is a
    statement (previous and/or next connections), never both.
    """

    def __init__(self, workspace: "Workspace", block_type: str, block_id: Optional[str] = None):
        self.workspace = workspace
        self.type = block_type
        self.id = block_id or str(uuid.uuid4())
        self.fields: Dict[str, Any] = {}
        self.inputs: List[Input] = []
        self.output_connection: Optional[Connection] = None
        self.previous_connection: Optional[Connection] = None
        self.next_connection: Optional[Connection] = None
        self.extra_state = None
        self.shadow = False
        self.comment: Optional[str] = None
        self.x = 0
        self.y = 0
        self.disposed = False

    def __repr__(self):
        return f"Block({self.type!r}, id={self.id[:8]})"

    # -- fields ------------------------------------------------------------

    def get_field_value(self, name: str) -> Any:
        return self.fields.get(name)

    def set_field_value(self, name: str, value: Any):
        self.fields[name] = value

    # -- inputs ------------------------------------------------------------

    def get_input(self, name: str) -> Optional[Input]:
        for block_input in self.inputs:
            if block_input.name == name:
                return block_input
        return None

    def require_input(self, name: str) -> Input:
        block_input = self.get_input(name)
        if block_input is None or block_input.connection is None:
            raise ConnectionCheckError(f"Block '{self.type}' has no input '{name}'", self.type, name)
        return block_input

    def append_input(self, kind: InputType, name: str, check: Optional[Check] = None) -> Input:
        if self.get_input(name) is not None and name:
            raise ConnectionCheckError(f"Block '{self.type}' already has input '{name}'", self.type, name)
        connection = None
        if kind is InputType.VALUE:
            connection = Connection(self, ConnectionType.INPUT_VALUE, check_list(check))
        elif kind is InputType.STATEMENT:
            connection = Connection(self, ConnectionType.INPUT_STATEMENT, None)
        block_input = Input(name, kind, connection)
        self.inputs.append(block_input)
        return block_input

    def append_value_input(self, name: str, check: Optional[Check] = None) -> Input:
        return self.append_input(InputType.VALUE, name, check)

    def append_statement_input(self, name: str) -> Input:
        return self.append_input(InputType.STATEMENT, name)

    def remove_input(self, name: str, missing_ok: bool = False) -> bool:
        block_input = self.get_input(name)
        if block_input is None:
            if missing_ok:
                return False
            raise ConnectionCheckError(f"Block '{self.type}' has no input '{name}'", self.type, name)
        child = block_input.target_block()
        if child is not None:
            block_input.connection._unlink()
            child.dispose()
        self.inputs.remove(block_input)
        return True

    def move_input_before(self, name: str, ref_name: Optional[str]):
        block_input = self.get_input(name)
        self.inputs.remove(block_input)
        if ref_name is None:
            self.inputs.append(block_input)
            return
        ref = self.get_input(ref_name)
        self.inputs.insert(self.inputs.index(ref), block_input)

    def get_input_target(self, name: str) -> Optional["Block"]:
        block_input = self.get_input(name)
        return block_input.target_block() if block_input else None

    def connect_input(self, name: str, child: Optional["Block"], force: bool = False) -> bool:
        """Plug ``child`` into the named input by its output or previous connection."""
        if child is None:
            return False
        connection = self.require_input(name).connection
        child_connection = child.output_connection or child.previous_connection
        if child_connection is None:
            raise ConnectionCheckError(f"Block '{child.type}' cannot be plugged into an input", child.type, name)
        return connection.connect(child_connection, force=force)

    def set_input_shadow(self, name: str, state: Optional[Dict[str, Any]]):
        self.require_input(name).connection.set_shadow_state(state)

    # -- connections -------------------------------------------------------

    def set_output(self, has_output: bool, check: Optional[Check] = None):
        if has_output:
            if self.previous_connection or self.next_connection:
                self.set_previous_statement(False)
                self.set_next_statement(False)
            if self.output_connection is None:
                self.output_connection = Connection(self, ConnectionType.OUTPUT)
            self.output_connection.set_check(check)
        elif self.output_connection is not None:
            self.output_connection.disconnect()
            self.output_connection = None

    def set_previous_statement(self, has_previous: bool):
        if has_previous:
            if self.output_connection is not None:
                self.set_output(False)
            if self.previous_connection is None:
                self.previous_connection = Connection(self, ConnectionType.PREVIOUS)
        elif self.previous_connection is not None:
            self.previous_connection.disconnect()
            self.previous_connection = None

    def set_next_statement(self, has_next: bool):
        if has_next:
            if self.output_connection is not None:
                self.set_output(False)
            if self.next_connection is None:
                self.next_connection = Connection(self, ConnectionType.NEXT)
        elif self.next_connection is not None:
            self.next_connection.disconnect()
            self.next_connection = None

    # -- navigation --------------------------------------------------------

    def get_parent(self) -> Optional["Block"]:
        own = self.output_connection or self.previous_connection
        if own is not None and own.target is not None:
            return own.target.source_block
        return None

    def get_surrounding_parent(self) -> Optional["Block"]:
        """The first ancestor this block is nested inside (skipping stack predecessors)."""
        block = self
        while True:
            previous = block
            block = block.get_parent()
            if block is None:
                return None
            if block.next_connection is None or block.next_connection.target_block() is not previous:
                return block

    def get_next_block(self) -> Optional["Block"]:
        return self.next_connection.target_block() if self.next_connection else None

    def get_root_block(self) -> "Block":
        block = self
        while block.get_parent() is not None:
            block = block.get_parent()
        return block

    def last_in_stack(self) -> "Block":
        block = self
        while block.get_next_block() is not None:
            block = block.get_next_block()
        return block

    def get_children(self) -> List["Block"]:
        children = [i.target_block() for i in self.inputs if i.target_block() is not None]
        next_block = self.get_next_block()
        if next_block is not None:
            children.append(next_block)
        return children

    def get_descendants(self) -> List["Block"]:
        result = [self]
        for child in self.get_children():
            result.extend(child.get_descendants())
        return result

    def is_statement(self) -> bool:
        return self.output_connection is None

    # -- state -------------------------------------------------------------

    def load_extra_state(self, state):
        record_type = EXTRA_STATE_TYPES.get(self.type)
        if record_type is None:
            raise ConnectionCheckError(f"Block '{self.type}' has no extra state", self.type)
        if not isinstance(state, record_type):
            state = record_type.from_dict(state or {})
        previous = self.extra_state
        self.extra_state = state
        self.workspace.catalogue.update_shape(self, previous)

    def save_extra_state(self) -> Optional[Dict[str, Any]]:
        if self.extra_state is None:
            return None
        return self.extra_state.to_dict()

    def set_shadow(self, shadow: bool):
        self.shadow = shadow

    def set_comment_text(self, text: Optional[str]):
        self.comment = text or None

    def get_comment_text(self) -> Optional[str]:
        return self.comment

    def dispose(self, heal: bool = False):
        """Remove this block and everything nested in it from the workspace.

        With ``heal`` the block's successor in the stack is reconnected to
        its predecessor instead of being disposed too.
        """
        if self.disposed:
            return
        next_block = self.get_next_block()
        previous_target = self.previous_connection.target if self.previous_connection else None

        if heal and next_block is not None:
            self.next_connection._unlink()
        if self.output_connection is not None:
            self.output_connection.disconnect()
        if self.previous_connection is not None:
            self.previous_connection.disconnect()

        for child in self.get_children():
            child.detach_from_parent()
            child.dispose()

        if heal and next_block is not None and previous_target is not None:
            previous_target.connect(next_block.previous_connection, force=True)

        self.disposed = True
        self.workspace._forget(self)

    def detach_from_parent(self):
        """Unplug from the parent without respawning the parent's shadow."""
        own = self.output_connection or self.previous_connection
        if own is not None:
            own._unlink()


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------

class Workspace:
    """Container of all block trees belonging to one entity."""

    def __init__(self, catalogue=None):
        if catalogue is None:
            from .block_definitions import CATALOGUE
            catalogue = CATALOGUE
        self.catalogue = catalogue
        self._blocks: Dict[str, Block] = {}

    def __len__(self):
        return len(self._blocks)

    def new_block(self, block_type: str, block_id: Optional[str] = None) -> Block:
        if block_type not in self.catalogue:
            raise ScrapError(f"Unknown block type: {block_type}", {'type': block_type})
        if block_id is not None and block_id in self._blocks:
            raise ScrapError(f"Duplicate block id: {block_id}")
        block = Block(self, block_type, block_id)
        self._blocks[block.id] = block
        self.catalogue.initialize(block)
        return block

    def _forget(self, block: Block):
        self._blocks.pop(block.id, None)

    def get_block(self, block_id: str) -> Optional[Block]:
        return self._blocks.get(block_id)

    def all_blocks(self) -> List[Block]:
        return list(self._blocks.values())

    def top_blocks(self) -> List[Block]:
        """Blocks without a parent, in creation order."""
        return [b for b in self._blocks.values() if b.get_parent() is None]

    def clear(self):
        for block in self.top_blocks():
            block.dispose()
        self._blocks.clear()

    def adopt(self, other: "Workspace"):
        """Replace this workspace's contents with the blocks of ``other``."""
        self.clear()
        for block in other.all_blocks():
            block.workspace = self
            self._blocks[block.id] = block
        other._blocks = {}

    # -- serialization -----------------------------------------------------

    def serialize(self) -> Dict[str, Any]:
        return {
            "blocks": {
                "languageVersion": 0,
                "blocks": [self.block_to_state(b, top_level=True) for b in self.top_blocks()],
            }
        }

    def block_to_state(self, block: Block, top_level: bool = False) -> Dict[str, Any]:
        state: Dict[str, Any] = {"type": block.type, "id": block.id}
        if top_level:
            state["x"] = block.x
            state["y"] = block.y
        if block.comment:
            state["comment"] = block.comment
        extra = block.save_extra_state()
        if extra is not None:
            state["extraState"] = extra
        if block.fields:
            state["fields"] = dict(block.fields)

        inputs: Dict[str, Any] = {}
        for block_input in block.inputs:
            if block_input.connection is None:
                continue
            entry: Dict[str, Any] = {}
            child = block_input.target_block()
            if block_input.connection.shadow_state is not None:
                entry["shadow"] = block_input.connection.shadow_state
            if child is not None:
                if child.shadow:
                    entry["shadow"] = self.block_to_state(child)
                else:
                    entry["block"] = self.block_to_state(child)
            if entry:
                inputs[block_input.name] = entry
        if inputs:
            state["inputs"] = inputs

        next_block = block.get_next_block()
        if next_block is not None:
            state["next"] = {"block": self.block_to_state(next_block)}
        return state

    def deserialize(self, data: Dict[str, Any]):
        self.clear()
        for state in data.get("blocks", {}).get("blocks", []):
            block = self.block_from_state(state)
            block.x = state.get("x", 0)
            block.y = state.get("y", 0)

    def block_from_state(self, state: Dict[str, Any], shadow: bool = False) -> Block:
        """Create a block (and its descendants) from serialized state."""
        if "type" not in state:
            raise ScrapError("Block state is missing 'type'", {'state': state})
        block_id = state.get("id")
        if block_id in self._blocks:
            block_id = None
        block = self.new_block(state["type"], block_id)
        block.set_shadow(shadow)
        if "extraState" in state:
            block.load_extra_state(state["extraState"])
        for name, value in (state.get("fields") or {}).items():
            block.set_field_value(name, value)
        block.set_comment_text(state.get("comment"))

        for name, entry in (state.get("inputs") or {}).items():
            block_input = block.get_input(name)
            if block_input is None or block_input.connection is None:
                raise ScrapError(f"Block '{block.type}' has no input '{name}'", {'state': state})
            if "shadow" in entry:
                block_input.connection.set_shadow_state(_strip_ids(entry["shadow"]))
            if "block" in entry:
                child = self.block_from_state(entry["block"])
                block.connect_input(name, child, force=True)

        if "next" in state:
            if block.next_connection is None:
                raise ScrapError(f"Block '{block.type}' cannot have a next block")
            child = self.block_from_state(state["next"]["block"])
            block.next_connection.connect(child.previous_connection, force=True)
        return block


def _strip_ids(state: Dict[str, Any]) -> Dict[str, Any]:
    """Shadow states are templates; their ids are regenerated on every respawn."""
    state = dict(state)
    state.pop("id", None)
    if "inputs" in state:
        state["inputs"] = {
            name: {key: _strip_ids(value) for key, value in entry.items()}
            for name, entry in state["inputs"].items()
        }
    if "next" in state:
        state["next"] = {"block": _strip_ids(state["next"]["block"])}
    return state
