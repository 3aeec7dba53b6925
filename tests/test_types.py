"""
Unit tests for connection checks.
"""

import pytest
from hypothesis import given, strategies as st

from scrap_core.block_definitions import build_type_block
from scrap_core.models import Workspace
from scrap_core.types import (
    TYPES, check_list, format_check, is_compatible, normalize_check, shadow_for, to_check,
)

NAMES = [name for name in TYPES if name] + ["any"]


class TestNormalizeCheck:
    """Test cases for normalize_check and check_list."""

    def test_empty_name_is_any(self):
        """The empty type name reads as any."""
        assert normalize_check("") == "any"
        assert normalize_check(None) == "any"
        assert normalize_check([]) == "any"

    def test_single_member_union_collapses(self):
        """A union with one distinct member is the bare name."""
        assert normalize_check(["number", "number"]) == "number"

    def test_union_keeps_order_and_drops_duplicates(self):
        """Unions keep first-seen order."""
        assert normalize_check(["string", "number", "string"]) == ["string", "number"]

    def test_check_list(self):
        """Checks are stored on connections as lists."""
        assert check_list(None) is None
        assert check_list("number") == ["number"]
        assert check_list(["", "string"]) == ["any", "string"]


class TestCompatibility:
    """Test cases for is_compatible."""

    def test_unchecked_connections_accept_anything(self):
        """A missing check on either side never blocks."""
        assert is_compatible(None, ["number"])
        assert is_compatible(["type"], None)

    def test_any_accepts_values_but_not_markers(self):
        """any matches values, never variable or type sockets."""
        assert is_compatible(["any"], ["number"])
        assert is_compatible(["string"], ["any"])
        assert not is_compatible(["any"], ["Variable"])
        assert not is_compatible(["type"], ["any"])

    def test_iterable_accepts_arrays_and_strings(self):
        """Iterable sockets take arrays and strings."""
        assert is_compatible(["Array"], ["Iterable"])
        assert is_compatible(["string"], ["Iterable"])
        assert not is_compatible(["number"], ["Iterable"])

    def test_color_and_string_interchange(self):
        """Colors may be written as strings."""
        assert is_compatible(["Color"], ["string"])
        assert is_compatible(["string"], ["Color"])
        assert not is_compatible(["Color"], ["number"])

    def test_union_matches_any_member(self):
        """A union connects when one member pair fits."""
        assert is_compatible(["number", "Variable"], ["Variable"])
        assert is_compatible(["string", "number"], ["number"])
        assert not is_compatible(["boolean"], ["string", "number"])


class TestShadows:
    """Test cases for shadow_for and format_check."""

    def test_shadow_per_type(self):
        """Each basic type has its default literal block."""
        assert shadow_for("number") == "math_number"
        assert shadow_for("string") == "iterables_string"
        assert shadow_for("Color") == "color"
        assert shadow_for("any") == "text_or_number"
        assert shadow_for("boolean") is None

    def test_unions_use_text_or_number(self):
        """Union sockets get the free-form literal."""
        assert shadow_for(["string", "number"]) == "text_or_number"

    def test_format_check(self):
        """Unions are written with pipes."""
        assert format_check(["string", "number"]) == "string | number"
        assert format_check("") == "any"


class TestToCheck:
    """Test cases for reading checks back from type blocks."""

    def test_missing_block_is_any(self):
        """No type block means any."""
        assert to_check(None) == "any"

    def test_type_block(self):
        """A single type block reads as its name."""
        workspace = Workspace()
        assert to_check(build_type_block(workspace, "Color")) == "Color"

    def test_union_block(self):
        """Union blocks read back as the same union."""
        workspace = Workspace()
        block = build_type_block(workspace, ["string", "number"])
        assert block.type == "union"
        assert to_check(block) == ["string", "number"]

    def test_typed_block_reads_its_type(self):
        """typed blocks forward to their TYPE input."""
        workspace = Workspace()
        typed = workspace.new_block("typed")
        typed.connect_input("TYPE", build_type_block(workspace, "boolean"))
        assert to_check(typed) == "boolean"


@given(st.lists(st.sampled_from(NAMES), min_size=1, max_size=4))
def test_built_type_blocks_read_back(names):
    """Property: building a type block for a check and reading it back is lossless."""
    workspace = Workspace()
    check = normalize_check(names)
    assert to_check(build_type_block(workspace, check)) == check


@given(st.sampled_from(NAMES), st.sampled_from(NAMES))
def test_compatibility_is_symmetric(a, b):
    """Property: compatibility does not depend on which side is the output."""
    assert is_compatible([a], [b]) == is_compatible([b], [a])
