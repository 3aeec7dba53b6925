"""
Unit tests for operator precedence.
"""

from hypothesis import given, settings, strategies as st

from scrap_core.code_generator import ScrapScriptGenerator
from scrap_core.config import TranslatorConfig
from scrap_core.models import Workspace
from scrap_core.order import Order, binary_order, needs_parentheses


class TestNeedsParentheses:
    """Test cases for needs_parentheses."""

    def test_tighter_inner_is_bare(self):
        """a + b * c needs no parentheses."""
        assert not needs_parentheses(Order.ADDITION, Order.MULTIPLICATION)

    def test_looser_inner_is_wrapped(self):
        """(a + b) * c keeps its parentheses."""
        assert needs_parentheses(Order.MULTIPLICATION, Order.ADDITION)

    def test_subtraction_on_the_right_is_wrapped(self):
        """a - (b - c) differs from a - b - c."""
        assert needs_parentheses(Order.SUBTRACTION, Order.SUBTRACTION)
        assert needs_parentheses(Order.ADDITION, Order.SUBTRACTION)

    def test_left_associative_left_operand_is_bare(self):
        """(a - b) - c reads as a - b - c."""
        assert not needs_parentheses(Order.SUBTRACTION, Order.SUBTRACTION, left_operand=True)
        assert not needs_parentheses(Order.SUBTRACTION, Order.ADDITION, left_operand=True)

    def test_listed_overrides(self):
        """Associative pairs never need parentheses."""
        assert not needs_parentheses(Order.ADDITION, Order.ADDITION)
        assert not needs_parentheses(Order.MEMBER, Order.FUNCTION_CALL)
        assert not needs_parentheses(Order.LOGICAL_NOT, Order.LOGICAL_NOT)

    def test_negative_base_of_exponent(self):
        """-a ** b is a syntax error, so the base is wrapped."""
        assert needs_parentheses(Order.EXPONENTIATION, Order.UNARY_NEGATION, left_operand=True)

    def test_exponentiation_is_not_left_associative(self):
        """(a ** b) ** c must keep its parentheses."""
        assert needs_parentheses(Order.EXPONENTIATION, Order.EXPONENTIATION, left_operand=True)

    def test_none_context_never_wraps(self):
        """Arguments and statements take any expression as is."""
        assert not needs_parentheses(Order.NONE, Order.LOGICAL_OR)
        assert not needs_parentheses(Order.NONE, Order.NONE)

    def test_binary_order_lookup(self):
        """Operators map to their precedence, unknown ones to NONE."""
        assert binary_order("-") == Order.SUBTRACTION
        assert binary_order("===") == Order.EQUALITY
        assert binary_order("??") == Order.NONE


trees = st.recursive(
    st.integers(min_value=0, max_value=50),
    lambda children: st.tuples(st.sampled_from(["+", "-", "*"]), children, children),
    max_leaves=8,
)


def _evaluate(tree):
    if isinstance(tree, int):
        return tree
    operator, left, right = tree
    a, b = _evaluate(left), _evaluate(right)
    if operator == "+":
        return a + b
    if operator == "-":
        return a - b
    return a * b


def _build(workspace, tree):
    if isinstance(tree, int):
        block = workspace.new_block("math_number")
        block.set_field_value("NUM", tree)
        return block
    operator, left, right = tree
    block = workspace.new_block("arithmetics")
    block.set_field_value("OP", operator)
    block.connect_input("A", _build(workspace, left))
    block.connect_input("B", _build(workspace, right))
    return block


@settings(max_examples=200)
@given(trees)
def test_generated_arithmetic_keeps_its_value(tree):
    """Property: generated expressions evaluate to the value of the block tree."""
    workspace = Workspace()
    _build(workspace, tree)
    code = ScrapScriptGenerator(config=TranslatorConfig()).workspace_to_code(workspace)
    assert code.endswith(";")
    assert eval(code[:-1]) == _evaluate(tree)
