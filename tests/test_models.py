"""
Unit tests for the block graph model.
"""

import pytest

from scrap_core.exceptions import ConnectionCheckError, ScrapError
from scrap_core.models import ArrayState, IfState, UnknownState, Workspace


def _number(workspace, value):
    block = workspace.new_block("math_number")
    block.set_field_value("NUM", value)
    return block


def _stack(workspace, *types):
    """A hat followed by statement blocks of the given types."""
    hat = workspace.new_block("whenFlag")
    connection = hat.next_connection
    blocks = []
    for block_type in types:
        block = workspace.new_block(block_type)
        connection.connect(block.previous_connection)
        connection = block.next_connection
        blocks.append(block)
    return hat, blocks


class TestBlock:
    """Test cases for Block."""

    def test_catalogue_shape(self):
        """New blocks get the inputs and connections of their definition."""
        workspace = Workspace()
        move = workspace.new_block("move")

        assert move.output_connection is None
        assert move.previous_connection is not None
        assert move.next_connection is not None
        assert move.require_input("STEPS").connection.get_check() == ["number"]

    def test_unknown_block_type(self):
        """Only catalogue types can be created."""
        with pytest.raises(ScrapError):
            Workspace().new_block("teleport")

    def test_duplicate_id(self):
        """Block ids are unique per workspace."""
        workspace = Workspace()
        workspace.new_block("move", block_id="a")
        with pytest.raises(ScrapError):
            workspace.new_block("show", block_id="a")

    def test_missing_input(self):
        """Asking for an input the block lacks is a structural error."""
        move = Workspace().new_block("move")
        with pytest.raises(ConnectionCheckError) as info:
            move.require_input("NOPE")
        assert info.value.input_name == "NOPE"

    def test_statement_into_value_input(self):
        """Statements cannot be plugged into value sockets."""
        workspace = Workspace()
        say = workspace.new_block("say")
        with pytest.raises(ConnectionCheckError):
            say.connect_input("MESSAGE", workspace.new_block("move"))


class TestConnection:
    """Test cases for typed connections."""

    def test_incompatible_connect_is_refused(self):
        """A string does not fit a number socket unless forced."""
        workspace = Workspace()
        move = workspace.new_block("move")
        text = workspace.new_block("iterables_string")

        assert move.connect_input("STEPS", text) is False
        assert move.get_input_target("STEPS") is None

        assert move.connect_input("STEPS", text, force=True) is True
        assert move.get_input_target("STEPS") is text

    def test_shadow_replaced_and_respawned(self):
        """Connecting disposes the shadow, disconnecting brings it back."""
        workspace = Workspace()
        move = workspace.new_block("move")
        move.set_input_shadow("STEPS", {"type": "math_number", "fields": {"NUM": 10}})
        shadow = move.get_input_target("STEPS")
        assert shadow.shadow
        assert shadow.get_field_value("NUM") == 10

        x = workspace.new_block("x")
        assert move.connect_input("STEPS", x)
        assert shadow.disposed
        assert workspace.get_block(shadow.id) is None

        x.output_connection.disconnect()
        respawned = move.get_input_target("STEPS")
        assert respawned is not shadow
        assert respawned.shadow
        assert respawned.get_field_value("NUM") == 10

    def test_orphan_reattached_after_inserted_stack(self):
        """Inserting a stack in the middle keeps the displaced blocks below it."""
        workspace = Workspace()
        hat, (move,) = _stack(workspace, "move")
        say = workspace.new_block("say")
        show = workspace.new_block("show")
        say.next_connection.connect(show.previous_connection)

        hat.next_connection.connect(say.previous_connection)

        assert hat.get_next_block() is say
        assert say.get_next_block() is show
        assert show.get_next_block() is move

    def test_set_check_unplugs_misfit(self):
        """Narrowing a socket disconnects a block that no longer fits."""
        workspace = Workspace()
        variable = workspace.new_block("variable")
        text = workspace.new_block("iterables_string")
        variable.connect_input("VALUE", text)

        variable.require_input("VALUE").set_check("number")

        assert variable.get_input_target("VALUE") is None
        assert text in workspace.top_blocks()


class TestDispose:
    """Test cases for disposing blocks."""

    def test_dispose_takes_the_rest_of_the_stack(self):
        """Without healing, following blocks go too."""
        workspace = Workspace()
        hat, (a, b) = _stack(workspace, "move", "show")
        a.dispose()
        assert hat.get_next_block() is None
        assert workspace.get_block(b.id) is None

    def test_dispose_heal(self):
        """Healing reconnects the successor to the predecessor."""
        workspace = Workspace()
        hat, (a, b, c) = _stack(workspace, "move", "show", "hide")
        b.dispose(heal=True)
        assert a.get_next_block() is c
        assert workspace.get_block(b.id) is None
        assert workspace.get_block(c.id) is c

    def test_dispose_nested(self):
        """Blocks plugged into inputs are disposed with their parent."""
        workspace = Workspace()
        move = workspace.new_block("move")
        x = workspace.new_block("x")
        move.connect_input("STEPS", x)
        move.dispose()
        assert len(workspace) == 0


class TestNavigation:
    """Test cases for parent lookups."""

    def test_surrounding_parent_skips_stack_predecessors(self):
        """The enclosing loop, not the previous statement, surrounds a block."""
        workspace = Workspace()
        loop = workspace.new_block("while")
        a = workspace.new_block("move")
        b = workspace.new_block("show")
        loop.connect_input("STACK", a)
        a.next_connection.connect(b.previous_connection)

        assert b.get_parent() is a
        assert b.get_surrounding_parent() is loop
        assert b.get_root_block() is loop
        assert loop.get_surrounding_parent() is None


class TestExtraState:
    """Test cases for dynamic shapes."""

    def test_if_state_inputs(self):
        """else-if branches and the else branch become inputs."""
        block = Workspace().new_block("controls_if")
        block.load_extra_state(IfState(else_if_count=1, has_else=True))

        assert [i.name for i in block.inputs] == ["IF0", "DO0", "IF1", "DO1", "ELSE"]
        assert block.save_extra_state() == {"elseIfCount": 1, "hasElse": True}

    def test_reshape_keeps_connected_branches(self):
        """Removing branches keeps the blocks of the surviving ones."""
        workspace = Workspace()
        block = workspace.new_block("controls_if")
        block.load_extra_state({"elseIfCount": 1, "hasElse": True})
        body = workspace.new_block("move")
        dropped = workspace.new_block("show")
        block.connect_input("DO0", body)
        block.connect_input("ELSE", dropped)

        block.load_extra_state(IfState())

        assert block.get_input_target("DO0") is body
        assert block.get_input("ELSE") is None
        assert dropped.disposed

    def test_call_state_shapes_the_block(self):
        """Calls returning a value are reporters, others are statements."""
        workspace = Workspace()
        call = workspace.new_block("call")
        call.load_extra_state({"name": "f", "params": ["number"], "returnType": "string"})
        assert call.output_connection.get_check() == ["string"]
        assert call.get_input_target("PARAM_0").type == "math_number"

        call.load_extra_state({"name": "f", "params": [], "returnType": None})
        assert call.output_connection is None
        assert call.previous_connection is not None

    def test_invalid_states(self):
        """Malformed records are rejected."""
        with pytest.raises(ScrapError):
            ArrayState.from_dict({"items": ["single", "bogus"]})
        with pytest.raises(ScrapError):
            UnknownState.from_dict({"shape": "hat"})

    def test_blocks_without_state(self):
        """Only dynamic blocks take extra state."""
        with pytest.raises(ConnectionCheckError):
            Workspace().new_block("move").load_extra_state({})


class TestWorkspace:
    """Test cases for Workspace."""

    def test_serialize_round_trip(self):
        """A saved workspace loads back with the same structure and ids."""
        workspace = Workspace()
        hat, (move,) = _stack(workspace, "move")
        move.set_input_shadow("STEPS", {"type": "math_number", "fields": {"NUM": 10}})
        move.set_comment_text("step")
        hat.x, hat.y = 40, 80

        data = workspace.serialize()
        top = data["blocks"]["blocks"][0]
        assert top["type"] == "whenFlag"
        assert (top["x"], top["y"]) == (40, 80)
        assert top["next"]["block"]["inputs"]["STEPS"]["shadow"]["fields"]["NUM"] == 10

        loaded = Workspace()
        loaded.deserialize(data)
        (new_hat,) = loaded.top_blocks()
        new_move = new_hat.get_next_block()
        assert (new_hat.x, new_hat.y) == (40, 80)
        assert new_move.id == move.id
        assert new_move.get_comment_text() == "step"
        steps = new_move.get_input_target("STEPS")
        assert steps.shadow
        assert steps.get_field_value("NUM") == 10

    def test_serialize_extra_state(self):
        """Dynamic blocks are restored from their extra state."""
        workspace = Workspace()
        block = workspace.new_block("controls_if")
        block.load_extra_state(IfState(else_if_count=2))

        loaded = Workspace()
        loaded.deserialize(workspace.serialize())
        (restored,) = loaded.top_blocks()
        assert restored.extra_state == IfState(else_if_count=2)
        assert restored.get_input("IF2") is not None

    def test_deserialize_unknown_input(self):
        """States naming inputs the block lacks are rejected."""
        with pytest.raises(ScrapError):
            Workspace().deserialize({"blocks": {"blocks": [
                {"type": "move", "inputs": {"WHERE": {"shadow": {"type": "math_number"}}}}
            ]}})

    def test_adopt(self):
        """Adopting moves every block of the other workspace."""
        target = Workspace()
        target.new_block("show")
        scratch = Workspace()
        move = scratch.new_block("move")

        target.adopt(scratch)

        assert target.all_blocks() == [move]
        assert move.workspace is target
        assert len(scratch) == 0
