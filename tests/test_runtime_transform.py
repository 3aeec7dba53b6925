"""
Unit tests for the source-to-runtime transform.
"""

import pytest

from scrap_core.config import TranslatorConfig
from scrap_core.exceptions import UnsupportedConstructError
from scrap_core.runtime_transform import LOOP_GUARD, transform


def _transform(source):
    return transform(source, TranslatorConfig())


class TestAwait:
    """Test cases for awaiting calls."""

    def test_handlers_are_async(self):
        """Handlers become async functions taking the entity."""
        assert _transform("self.whenFlag(() => {\n\tself.move(10);\n});\n") == (
            "await self.whenFlag(async (self) => {\n"
            "\tawait self.move(10);\n"
            "});\n"
        )

    def test_existing_await_is_kept(self):
        """Calls that are already awaited are not awaited twice."""
        assert _transform("await self.wait(1);\n") == "await self.wait(1);\n"

    def test_await_binds_member_access(self):
        """An awaited object of a member access is parenthesized."""
        assert _transform('self.say(self.ask("q").length);\n') == (
            'await self.say((await self.ask("q")).length);\n'
        )


class TestFunctions:
    """Test cases for user functions."""

    def test_declaration_takes_self(self):
        """Functions are async, receive self and lose their types."""
        source = "function greet(name: string): void {\n\tself.say(name);\n}\n"
        assert _transform(source) == "async function greet(self, name) {\n\tawait self.say(name);\n}\n"

    def test_calls_pass_self(self):
        """Calls to user functions pass the entity first."""
        assert _transform('greet("Bob");\n') == 'await greet(self, "Bob");\n'
        assert _transform("tick();\n") == "await tick(self);\n"

    def test_type_assertions_are_dropped(self):
        """as-expressions keep only their value."""
        assert _transform("self.move(5 as number);\n") == "await self.move(5);\n"


class TestLoops:
    """Test cases for loop guards."""

    def test_loops_yield(self):
        """Every loop body starts by yielding to the engine."""
        assert _transform("while (true) {\n\tself.move(1);\n}\n") == (
            "while (true) {\n"
            f"\t{LOOP_GUARD}\n"
            "\tawait self.move(1);\n"
            "}\n"
        )

    def test_empty_loop(self):
        """Empty bodies still yield."""
        assert _transform("for (let i = 0; i < 3; i++) {}\n") == (
            f"for (let i = 0; i < 3; i++) {{\n\t{LOOP_GUARD}\n}}\n"
        )

    def test_nested_loop_indent(self):
        """The guard follows the indentation of the loop."""
        result = _transform("self.whenFlag(() => {\n\twhile (true) {\n\t}\n});\n")
        assert f"\twhile (true) {{\n\t\t{LOOP_GUARD}\n\t}}" in result


class TestStopFirewall:
    """Test cases for catch guards."""

    def test_catch_rethrows_stop(self):
        """Catch blocks let the engine's stop signal through."""
        result = _transform('try {\n\tself.move(1);\n} catch (err) {\n\tself.say("no");\n}\n')
        assert "catch (err) {\n\tif (err instanceof Scrap.StopError) throw err;\n\tawait self.say(\"no\");\n}" in result

    def test_catch_without_binding(self):
        """A binding is added when the catch has none."""
        result = _transform("try {\n\tself.move(1);\n} catch {\n}\n")
        assert "catch (e) {\n\tif (e instanceof Scrap.StopError) throw e;\n}" in result


class TestSetters:
    """Test cases for engine-backed properties."""

    @pytest.mark.parametrize("source,expected", [
        ("self.x = 5;\n", "await self.setX(5);\n"),
        ("self.x += 5;\n", "await self.setX(self.x + 5);\n"),
        ("self.x++;\n", "await self.setX(self.x + 1);\n"),
        ("self.direction = 90;\n", "await self.pointInDirection(90);\n"),
        ('$["Cat"].volume = 50;\n', 'await $["Cat"].setVolume(50);\n'),
        ("self.effects.ghost = 50;\n", 'await self.setEffect("ghost", 50);\n'),
        ('self.variables["score"] = 1;\n', 'await self.setVariable("score", 1);\n'),
    ])
    def test_assignments_become_setters(self, source, expected):
        """Assignments to engine properties call the setter."""
        assert _transform(source) == expected

    def test_compound_assignment_keeps_precedence(self):
        """Loose right-hand sides are parenthesized."""
        assert _transform("self.x *= 1 + 2;\n") == "await self.setX(self.x * (1 + 2));\n"

    def test_variable_reads(self):
        """Variables are read through the engine."""
        assert _transform("self.say(self.variables.score);\n") == (
            'await self.say(await self.getVariable("score"));\n'
        )

    def test_plain_assignments_untouched(self):
        """Local variables are assigned directly."""
        assert _transform("let x: number = 1;\nx = 2;\n") == "let x = 1;\nx = 2;\n"


class TestDeclarations:
    """Test cases for interfaces and unsupported syntax."""

    def test_variables_interface(self):
        """The Variables interface declares the variables at runtime."""
        result = _transform('interface Variables {\n\t"score": number;\n\tname: string | number;\n}\n')
        assert result == (
            'self.declareVariable("score", "number");\n'
            'self.declareVariable("name", "string", "number");\n'
        )

    def test_other_interfaces_are_dropped(self):
        """Other interfaces are type-only."""
        assert _transform("interface Point {\n\tx: number;\n}\n").strip() == ""

    def test_enums_are_rejected(self):
        """Enums have no runtime equivalent."""
        with pytest.raises(UnsupportedConstructError):
            _transform("enum Direction { Up, Down }\n")
