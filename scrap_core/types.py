"""
Type tags used as connection checks.

A check is either a single type name or a list of names (a union). Every
socket declares the check it accepts and every value block declares the
check it produces; ``is_compatible`` decides whether two may connect.
"""

from typing import List, Optional, Union

Check = Union[str, List[str]]

TYPES = ["", "number", "string", "boolean", "Color", "Array", "Sprite", "Date"]

# Block types that auto-populate an empty socket of the given type
TYPE_TO_SHADOW = {
    "number": "math_number",
    "string": "iterables_string",
    "Color": "color",
    "Sprite": "sprite",
    "Date": "date",
    "any": "text_or_number",
}

# Names only ever used to constrain connections, never to describe values
MARKER_TAGS = ("Variable", "type", "typed", "Iterable")


def type_name(name: str) -> str:
    """Normalize the empty type name to ``any``."""
    return name or "any"


def normalize_check(check: Optional[Check]) -> Check:
    """Collapse a union to a bare name when it has exactly one distinct member."""
    if check is None:
        return "any"
    if isinstance(check, str):
        return type_name(check)
    unique: List[str] = []
    for name in check:
        name = type_name(name)
        if name not in unique:
            unique.append(name)
    if not unique:
        return "any"
    if len(unique) == 1:
        return unique[0]
    return unique


def check_list(check: Optional[Check]) -> Optional[List[str]]:
    """Convert a check to the list form stored on connections (``None`` means unchecked)."""
    if check is None:
        return None
    if isinstance(check, str):
        return [type_name(check)]
    return [type_name(name) for name in check]


def to_check(block) -> Check:
    """Compute the type described by a type-describing block (``type``, ``union``, ``typed``, ``generic``)."""
    if block is None:
        return "any"

    if block.type == "type":
        return type_name(block.get_field_value("TYPE"))

    if block.type == "union":
        members: List[str] = []
        for i in range(block.extra_state.count):
            child = to_check(block.get_input_target(f"TYPE{i}"))
            for name in ([child] if isinstance(child, str) else child):
                if name not in members:
                    members.append(name)
        return normalize_check(members)

    if block.type == "typed":
        return to_check(block.get_input_target("TYPE"))

    if block.type == "generic":
        return block.get_field_value("ITERABLE")

    if block.type == "array":
        return "Array"

    return "any"


def shadow_for(check: Optional[Check]) -> Optional[str]:
    """Pick the shadow block type for a socket of the given check."""
    check = normalize_check(check)
    if isinstance(check, list):
        return TYPE_TO_SHADOW["any"]
    return TYPE_TO_SHADOW.get(check)


def _names_compatible(a: str, b: str) -> bool:
    if a == b:
        return True
    if a == "any":
        return b not in ("Variable", "type")
    if b == "any":
        return a not in ("Variable", "type")
    if a == "Iterable":
        return b in ("Array", "string")
    if b == "Iterable":
        return a in ("Array", "string")
    if a == "Color":
        return b == "string"
    if b == "Color":
        return a == "string"
    return False


def is_compatible(first: Optional[List[str]], second: Optional[List[str]]) -> bool:
    """Whether an output check and an input check may be connected."""
    if first is None or second is None:
        return True
    return any(_names_compatible(a, b) for a in first for b in second)


def format_check(check: Check) -> str:
    """Render a check the way it is written in a type annotation."""
    check = normalize_check(check)
    if isinstance(check, str):
        return check
    return " | ".join(check)
