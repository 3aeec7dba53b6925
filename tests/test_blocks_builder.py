"""
Unit tests for building blocks from ScrapScript.
"""

import pytest

from scrap_core.blocks_builder import BlocksBuilder, get_variables
from scrap_core.exceptions import ScriptSyntaxError, UnsupportedConstructError
from scrap_core.models import IfState, TryState, Workspace


def _build(source):
    workspace = Workspace()
    variables = BlocksBuilder(workspace).build(source)
    return workspace, variables


def _handler_body(source):
    """First block inside the single whenFlag handler of ``source``."""
    workspace, _ = _build("self.whenFlag(() => {\n" + source + "\n});\n")
    (hat,) = workspace.top_blocks()
    assert hat.type == "whenFlag"
    return hat.get_next_block()


class TestStatements:
    """Test cases for statement conversion."""

    def test_sprite_method_with_literal(self):
        """Literals become shadows of the method's inputs."""
        workspace, variables = _build("self.move(10);")
        (move,) = workspace.top_blocks()
        steps = move.get_input_target("STEPS")

        assert variables == []
        assert move.type == "move"
        assert steps.shadow
        assert steps.type == "math_number"
        assert steps.get_field_value("NUM") == 10

    def test_event_handler_stack(self):
        """Statements of a handler chain under the hat."""
        move = _handler_body('self.move(10);\nself.say("Hi");')
        say = move.get_next_block()
        assert move.type == "move"
        assert say.type == "say"
        assert say.get_input_target("MESSAGE").get_field_value("TEXT") == "Hi"

    def test_each_hat_starts_a_stack(self):
        """Consecutive handlers are separate stacks laid out top to bottom."""
        workspace, _ = _build("self.whenFlag(() => {});\nself.whenCloned(() => {});\n")
        hats = sorted(workspace.top_blocks(), key=lambda b: b.y)
        assert [b.type for b in hats] == ["whenFlag", "whenCloned"]
        assert hats[0].y < hats[1].y

    def test_variables_interface(self):
        """The Variables interface declares the entity variables."""
        workspace, variables = _build(
            'interface Variables {\n\t"score": number;\n\tname: string | number;\n}\n'
            'self.whenFlag(() => {\n\tself.variables["score"] = 1;\n});\n'
        )
        assert variables == [("score", "number"), ("name", ["string", "number"])]

        hat = [b for b in workspace.top_blocks() if b.type == "whenFlag"][0]
        assignment = hat.get_next_block()
        variable = assignment.get_input_target("VAR")
        assert assignment.type == "set"
        assert variable.type == "parameter"
        assert variable.extra_state.is_variable
        assert variable.extra_state.type == "number"
        assert variable.get_field_value("VAR") == "score"

    def test_get_variables(self):
        """Variables can be read without building blocks."""
        assert get_variables('interface Variables {\n\t"a": boolean;\n}\n') == [("a", "boolean")]

    def test_let_declaration(self):
        """Declarations keep their kind, name and type."""
        block = _handler_body("let x: number = 5;\nconst y = x;")
        typed = block.get_input_target("VAR")
        assert block.type == "variable"
        assert block.get_field_value("kind") == "let"
        assert typed.get_field_value("PARAM") == "x:number"
        assert typed.get_input_target("TYPE").get_field_value("TYPE") == "number"
        assert block.get_input_target("VALUE").get_field_value("NUM") == 5

        second = block.get_next_block()
        assert second.get_field_value("kind") == "const"
        assert second.get_input_target("VAR").get_field_value("PARAM") == "y"
        assert second.get_input_target("VALUE").get_field_value("VAR") == "x"

    def test_declaration_value_shadow(self):
        """An uninitialised declaration defaults to a literal of its type."""
        block = _handler_body("let x: number;")
        value = block.get_input_target("VALUE")
        assert value.shadow
        assert value.type == "math_number"
        assert value.get_field_value("NUM") == 0

    def test_assignment_value_shadow(self):
        """Assignments default their value to the assigned property's type."""
        block = _handler_body("self.x = self.y;")
        assert block.type == "set"
        assert block.get_input("VALUE").connection.shadow_state == {"type": "math_number"}
        assert block.get_input_target("VALUE").type == "y"

    def test_increment(self):
        """x++ changes the variable by one."""
        block = _handler_body("self.variables.score++;")
        assert block.type == "change"
        assert block.get_input_target("VAR").get_field_value("VAR") == "score"
        assert block.get_input_target("VALUE").get_field_value("NUM") == 1

    def test_compound_assignment(self):
        """x += v changes, other operators set to a binary expression."""
        change = _handler_body("self.variables.score += 2;")
        assert change.type == "change"

        assignment = _handler_body("self.variables.score -= 2;")
        value = assignment.get_input_target("VALUE")
        assert assignment.type == "set"
        assert value.type == "arithmetics"
        assert value.get_field_value("OP") == "-"
        assert value.get_input_target("A").get_field_value("VAR") == "score"
        assert value.get_input_target("B").get_field_value("NUM") == 2

    def test_if_chain(self):
        """else-if chains become one if block."""
        block = _handler_body(
            "if (self.x > 10) {\n\tself.show();\n} else if (self.x > 5) {\n\tself.hide();\n} else {\n\tScrap.stop();\n}"
        )
        assert block.type == "controls_if"
        assert block.extra_state == IfState(else_if_count=1, has_else=True)
        assert block.get_input_target("IF1").get_field_value("OP") == ">"
        assert block.get_input_target("DO1").type == "hide"
        assert block.get_input_target("ELSE").type == "stop"

    def test_try_catch(self):
        """The catch parameter is kept in the try state."""
        block = _handler_body('try {\n\tself.show();\n} catch (e) {\n\tself.say("x");\n}')
        assert block.extra_state == TryState(catch="e", finally_=False)
        assert block.get_input_target("TRY").type == "show"
        assert block.get_input_target("CATCH").type == "say"

    def test_comments_attach_to_statements(self):
        """Leading comments become block comments."""
        workspace, _ = _build("// Walk forward\nself.move(10);\n")
        (move,) = workspace.top_blocks()
        assert move.get_comment_text() == "Walk forward"


class TestLoops:
    """Test cases for loop conversion."""

    def test_canonical_for(self):
        """Counting loops become for blocks."""
        block = _handler_body("for (let i = 1; i <= 10; i++) {\n\tself.move(i);\n}")
        assert block.type == "for"
        assert block.get_field_value("VAR") == "i:number"
        assert block.get_input_target("FROM").get_field_value("NUM") == 1
        assert block.get_input_target("TO").get_field_value("NUM") == 10
        assert block.get_input_target("STACK").get_input_target("STEPS").get_field_value("VAR") == "i"

    def test_other_for_loops_desugar(self):
        """Other for loops become a scoped while with the update at the end of the body."""
        scope = _handler_body("for (let i = 0; i < 3; i++) {\n\tself.move(i);\n}")
        assert scope.type == "controls_if"
        assert scope.get_input_target("IF0").get_field_value("BOOL") == "true"

        declaration = scope.get_input_target("DO0")
        loop = declaration.get_next_block()
        move = loop.get_input_target("STACK")
        update = move.get_next_block()

        assert declaration.type == "variable"
        assert loop.type == "while"
        assert loop.get_input_target("CONDITION").get_field_value("OP") == "<"
        assert move.type == "move"
        assert update.type == "change"

    def test_empty_for_is_endless(self):
        """for (;;) loops forever."""
        loop = _handler_body("for (;;) {\n\tself.move(1);\n}")
        assert loop.type == "while"
        assert loop.get_input_target("CONDITION").get_field_value("BOOL") == "true"

    def test_continue_in_desugared_for(self):
        """continue would skip the moved update, so it is rejected."""
        with pytest.raises(UnsupportedConstructError):
            _handler_body("for (let i = 0; i < 3; i++) {\n\tcontinue;\n}")

    def test_continue_in_counting_for(self):
        """Counting loops keep continue."""
        block = _handler_body("for (let i = 1; i <= 3; i++) {\n\tcontinue;\n}")
        assert block.get_input_target("STACK").type == "continue"

    def test_for_of(self):
        """for...of loops iterate over arrays."""
        block = _handler_body("for (const item of [1, 2]) {\n\tself.say(item);\n}")
        iterable = block.get_input_target("ITERABLE")
        assert block.type == "foreach"
        assert block.get_field_value("VAR") == "item"
        assert iterable.type == "array"
        assert iterable.extra_state.items == ["single", "single"]


class TestExpressions:
    """Test cases for expression conversion."""

    def test_sprite_property_of_other_sprite(self):
        """$["Name"].x reads another sprite's property."""
        move = _handler_body('self.move($["Cat"].x);')
        value = move.get_input_target("STEPS")
        assert value.type == "property"
        assert value.get_field_value("SPRITE") == "Cat"
        assert value.get_field_value("PROPERTY") == "x"

    def test_own_property(self):
        """self.x is the x reporter."""
        move = _handler_body("self.move(self.x);")
        assert move.get_input_target("STEPS").type == "x"

    def test_negative_literal(self):
        """-5 is a single number block."""
        move = _handler_body("self.move(-5);")
        assert move.get_input_target("STEPS").get_field_value("NUM") == -5

    def test_clone_and_stop(self):
        """Engine calls map to their blocks."""
        clone = _handler_body('$["Cat"].clone();\nScrap.stop();')
        assert clone.type == "clone"
        assert clone.get_input_target("SPRITE").get_field_value("SPRITE") == "Cat"
        assert clone.get_next_block().type == "stop"

    def test_math(self):
        """Math functions and constants."""
        move = _handler_body("self.move(Math.floor(Math.PI));")
        value = move.get_input_target("STEPS")
        assert value.type == "math"
        assert value.get_field_value("OP") == "floor"
        assert value.get_input_target("NUM").get_field_value("CONSTANT") == "Math.PI"


class TestFunctions:
    """Test cases for functions and calls."""

    SOURCE = (
        "self.whenFlag(() => {\n"
        "\thalf(4);\n"
        "\tself.move(half(4));\n"
        "});\n"
        "\n"
        "function half(n: number): number {\n"
        "\treturn n / 2;\n"
        "}\n"
    )

    def test_functions_are_hoisted(self):
        """Calls may precede the declaration."""
        workspace, _ = _build(self.SOURCE)
        function = [b for b in workspace.top_blocks() if b.type == "function"][0]
        assert function.get_field_value("NAME") == "half"
        assert function.get_input_target("PARAM_0").get_field_value("PARAM") == "n:number"
        assert function.get_input_target("RETURNS").get_field_value("TYPE") == "number"
        assert function.get_next_block().extra_state.output == "number"

    def test_statement_call_discards_the_result(self):
        """A call used as a statement is a statement block."""
        workspace, _ = _build(self.SOURCE)
        hat = [b for b in workspace.top_blocks() if b.type == "whenFlag"][0]
        call = hat.get_next_block()
        assert call.type == "call"
        assert call.output_connection is None
        assert call.extra_state.return_type is False

        reporter = call.get_next_block().get_input_target("STEPS")
        assert reporter.type == "call"
        assert reporter.output_connection.get_check() == ["number"]
        assert reporter.get_input_target("PARAM_0").get_field_value("NUM") == 4

    def test_duplicate_function(self):
        """A function name is declared once."""
        with pytest.raises(UnsupportedConstructError):
            _build("function f(): void {}\nfunction f(): void {}\n")

    def test_undefined_function(self):
        """Calling an undeclared function is an error."""
        with pytest.raises(UnsupportedConstructError):
            _handler_body("jump();")


class TestErrors:
    """Test cases for rejected source."""

    def test_syntax_error(self):
        """Unparseable source reports its position."""
        with pytest.raises(ScriptSyntaxError) as info:
            _build("self.move(")
        assert info.value.line >= 1

    def test_unsupported_syntax(self):
        """Constructs without blocks are rejected."""
        with pytest.raises(UnsupportedConstructError):
            _build("class Foo {}")

    def test_unreachable_statement(self):
        """Nothing may follow a terminal block."""
        with pytest.raises(UnsupportedConstructError):
            _handler_body("Scrap.stop();\nself.move(1);")

    def test_literal_statement(self):
        """Bare values are not statements inside a stack."""
        with pytest.raises(UnsupportedConstructError):
            _handler_body("5;")

    def test_unknown_sprite_method(self):
        """Only catalogue methods can be called on self."""
        with pytest.raises(UnsupportedConstructError):
            _handler_body("self.fly();")

    def test_workspace_untouched_on_error(self):
        """A failed build leaves the previous blocks in place."""
        workspace = Workspace()
        existing = workspace.new_block("show")
        with pytest.raises(UnsupportedConstructError):
            BlocksBuilder(workspace).build("self.whenFlag(() => {\n\tself.move(1);\n\tjump();\n});\n")
        assert workspace.all_blocks() == [existing]
