"""Utility and predicate model tests."""

import pytest

from pyesquery._errors import InvalidFieldNameError
from pyesquery._utils import (
    escape_like_pattern,
    escape_wildcard_literal,
    get_by_path,
    join_path,
    like_to_regex,
    parent_paths,
    split_like_pattern,
    validate_field_path,
)
from pyesquery.predicate import (
    BoolOp,
    CompareOp,
    Comparison,
    NestedAccess,
    Pattern,
    and_,
    nested,
    or_,
)


class TestValidateFieldPath:
    @pytest.mark.parametrize("path", ["age", "address.city", "@timestamp", "user-name", "a.b.c.d"])
    def test_valid(self, path):
        validate_field_path(path)

    @pytest.mark.parametrize("path", ["", "a..b", ".a", "a.", " a", "a\x00b"])
    def test_invalid(self, path):
        with pytest.raises(InvalidFieldNameError):
            validate_field_path(path)

    def test_too_long(self):
        with pytest.raises(InvalidFieldNameError, match="too long"):
            validate_field_path("a" * 2000)


class TestPaths:
    def test_join_skips_empty(self):
        assert join_path("a", "", "b") == "a.b"
        assert join_path("", "") == ""

    def test_get_by_path(self):
        doc = {"a": {"b": {"c": 1}}, "list": [{"x": 1}]}
        assert get_by_path(doc, "a.b.c") == 1
        assert get_by_path(doc, "a.b") == {"c": 1}
        assert get_by_path(doc, "a.missing") is None

    def test_get_by_path_stops_at_lists(self):
        assert get_by_path({"list": [{"x": 1}]}, "list.x") is None

    def test_parent_paths(self):
        assert parent_paths(["a.b.c", "d"]) == frozenset({"a", "a.b"})


class TestEscaping:
    def test_like(self):
        assert escape_like_pattern("50%_off\\") == "50\\%\\_off\\\\"

    def test_like_custom_escape(self):
        assert escape_like_pattern("a%!", escape="!") == "a!%!!"

    def test_wildcard(self):
        assert escape_wildcard_literal("a*b?c\\") == "a\\*b\\?c\\\\"

    def test_split_like_pattern(self):
        assert split_like_pattern("a%_\\%") == ["a", None, "", "%"]

    @pytest.mark.parametrize(
        "pattern, value, expected",
        [
            ("abc%", "abcdef", True),
            ("a_c", "abc", True),
            ("a_c", "abbc", False),
            ("a.c", "abc", False),
            ("%b%", "a\nb", True),
        ],
    )
    def test_like_to_regex(self, pattern, value, expected):
        assert (like_to_regex(pattern).fullmatch(value) is not None) is expected

    def test_like_to_regex_case_insensitive(self):
        assert like_to_regex("ABC%", case_insensitive=True).fullmatch("abcd")


class TestPredicateModel:
    def test_mirrored(self):
        assert CompareOp.LT.mirrored() is CompareOp.GT
        assert CompareOp.GE.mirrored() is CompareOp.LE
        assert CompareOp.EQ.mirrored() is CompareOp.EQ

    def test_combinators(self):
        a = Comparison(CompareOp.EQ, "a", 1)
        assert and_(a, a).op is BoolOp.AND
        assert or_(a).children == (a,)

    def test_nested(self):
        leaf = Comparison(CompareOp.EQ, "c", 1)
        assert nested("a.b", leaf) == NestedAccess("a", NestedAccess("b", leaf))

    def test_pattern_helpers_escape_literals(self):
        assert Pattern.prefix("f", "10%").pattern == "10\\%%"
        assert Pattern.suffix("f", "_x").pattern == "%\\_x"
        assert Pattern.contains("f", "a").pattern == "%a%"

    def test_predicates_are_hashable_values(self):
        assert Comparison(CompareOp.EQ, "a", 1) == Comparison(CompareOp.EQ, "a", 1)
        assert len({Comparison(CompareOp.EQ, "a", 1), Comparison(CompareOp.EQ, "a", 1)}) == 1
