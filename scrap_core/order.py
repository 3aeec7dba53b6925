"""
Operator precedence for generated ScrapScript.

Lower values bind tighter. Values sharing an integer part belong to the same
precedence class; the fractional part only distinguishes operators within a
class so that specific pairs can be listed in ``ORDER_OVERRIDES``.
"""

import math


class Order:
    ATOMIC = 0            # 0 "" ...
    NEW = 1.1             # new
    MEMBER = 1.2          # . []
    FUNCTION_CALL = 2     # ()
    INCREMENT = 3         # ++
    DECREMENT = 3         # --
    BITWISE_NOT = 4.1     # ~
    UNARY_PLUS = 4.2      # +
    UNARY_NEGATION = 4.3  # -
    LOGICAL_NOT = 4.4     # !
    TYPEOF = 4.5          # typeof
    VOID = 4.6            # void
    DELETE = 4.7          # delete
    AWAIT = 4.8           # await
    EXPONENTIATION = 5.0  # **
    MULTIPLICATION = 5.1  # *
    DIVISION = 5.2        # /
    MODULUS = 5.3         # %
    SUBTRACTION = 6.1     # -
    ADDITION = 6.2        # +
    BITWISE_SHIFT = 7     # << >> >>>
    RELATIONAL = 8        # < <= > >=
    IN = 8                # in
    INSTANCEOF = 8        # instanceof
    EQUALITY = 9          # == != === !==
    BITWISE_AND = 10      # &
    BITWISE_XOR = 11      # ^
    BITWISE_OR = 12       # |
    LOGICAL_AND = 13      # &&
    LOGICAL_OR = 14       # ||
    CONDITIONAL = 15      # ?:
    ASSIGNMENT = 16       # = += -= ...
    YIELD = 17            # yield
    COMMA = 18            # ,
    NONE = 99             # (...)


# (outer, inner) pairs that never need parentheses
ORDER_OVERRIDES = [
    # (foo()).bar -> foo().bar
    (Order.FUNCTION_CALL, Order.MEMBER),
    # (foo())() -> foo()()
    (Order.FUNCTION_CALL, Order.FUNCTION_CALL),
    # (foo.bar).baz -> foo.bar.baz
    (Order.MEMBER, Order.MEMBER),
    # (foo.bar)() -> foo.bar()
    (Order.MEMBER, Order.FUNCTION_CALL),
    # !(!foo) -> !!foo
    (Order.LOGICAL_NOT, Order.LOGICAL_NOT),
    # a * (b * c) -> a * b * c
    (Order.MULTIPLICATION, Order.MULTIPLICATION),
    # a + (b + c) -> a + b + c
    (Order.ADDITION, Order.ADDITION),
    # a && (b && c) -> a && b && c
    (Order.LOGICAL_AND, Order.LOGICAL_AND),
    # a || (b || c) -> a || b || c
    (Order.LOGICAL_OR, Order.LOGICAL_OR),
]

# Binary operator -> precedence
BINARY_ORDERS = {
    "**": Order.EXPONENTIATION,
    "*": Order.MULTIPLICATION,
    "/": Order.DIVISION,
    "%": Order.MODULUS,
    "+": Order.ADDITION,
    "-": Order.SUBTRACTION,
    "<": Order.RELATIONAL,
    "<=": Order.RELATIONAL,
    ">": Order.RELATIONAL,
    ">=": Order.RELATIONAL,
    "==": Order.EQUALITY,
    "!=": Order.EQUALITY,
    "===": Order.EQUALITY,
    "!==": Order.EQUALITY,
    "&&": Order.LOGICAL_AND,
    "||": Order.LOGICAL_OR,
}

# Classes whose operators associate to the left
_LEFT_ASSOCIATIVE = {5, 6, 7, 8, 9, 10, 11, 12, 13, 14}


def binary_order(operator: str) -> float:
    return BINARY_ORDERS.get(operator, Order.NONE)


def needs_parentheses(outer: float, inner: float, left_operand: bool = False) -> bool:
    """Whether code of precedence ``inner`` must be wrapped when used in ``outer`` context.

    ``left_operand`` marks the left side of a binary operator, which may share
    its class with the operator when the class associates to the left
    (``a - b - c`` reads as ``(a - b) - c``).
    """
    outer_class = math.floor(outer)
    inner_class = math.floor(inner)
    if outer == Order.EXPONENTIATION and left_operand and inner_class == 4:
        # -a ** b is a syntax error
        return True
    if outer_class > inner_class:
        return False
    if outer_class == inner_class and outer_class in (0, 99):
        return False
    if (outer, inner) in ORDER_OVERRIDES:
        return False
    if (left_operand and outer_class == inner_class and outer_class in _LEFT_ASSOCIATIVE
            and Order.EXPONENTIATION not in (outer, inner)):
        return False
    return True
