"""Tests for shell-style variable interpolation."""

import pytest

from stackctl.domain.interpolation import InterpolationError, interpolate, interpolate_tree

ENV = {"USER": "app", "EMPTY": "", "PORT": "5432"}


class TestPlainReferences:
    def test_named_and_braced(self) -> None:
        assert interpolate("$USER", ENV) == "app"
        assert interpolate("${USER}", ENV) == "app"
        assert interpolate("jdbc:postgresql://db:${PORT}/x", ENV) == "jdbc:postgresql://db:5432/x"

    def test_escaped_dollar(self) -> None:
        assert interpolate("$$USER", ENV) == "$USER"

    def test_unset_is_empty_and_recorded(self) -> None:
        missing: set[str] = set()
        assert interpolate("a${NOPE}b", ENV, missing) == "ab"
        assert missing == {"NOPE"}

    def test_text_without_references_unchanged(self) -> None:
        assert interpolate("plain text", ENV) == "plain text"


class TestDefaults:
    def test_colon_dash_covers_unset_and_empty(self) -> None:
        assert interpolate("${NOPE:-d}", ENV) == "d"
        assert interpolate("${EMPTY:-d}", ENV) == "d"
        assert interpolate("${USER:-d}", ENV) == "app"

    def test_dash_covers_unset_only(self) -> None:
        assert interpolate("${NOPE-d}", ENV) == "d"
        assert interpolate("${EMPTY-d}", ENV) == ""

    def test_default_is_not_reported_missing(self) -> None:
        missing: set[str] = set()
        interpolate("${NOPE:-x}", ENV, missing)
        assert missing == set()


class TestAlternatives:
    def test_colon_plus(self) -> None:
        assert interpolate("${USER:+yes}", ENV) == "yes"
        assert interpolate("${EMPTY:+yes}", ENV) == ""
        assert interpolate("${NOPE:+yes}", ENV) == ""

    def test_plus(self) -> None:
        assert interpolate("${EMPTY+yes}", ENV) == "yes"
        assert interpolate("${NOPE+yes}", ENV) == ""


class TestRequired:
    def test_colon_question_rejects_empty(self) -> None:
        with pytest.raises(InterpolationError) as exc_info:
            interpolate("${EMPTY:?must be set}", ENV)
        assert exc_info.value.variable == "EMPTY"
        assert exc_info.value.message == "must be set"

    def test_question_accepts_empty(self) -> None:
        assert interpolate("${EMPTY?must be set}", ENV) == ""

    def test_question_rejects_unset_with_default_message(self) -> None:
        with pytest.raises(InterpolationError, match="required variable"):
            interpolate("${NOPE?}", ENV)


class TestInvalid:
    def test_bare_dollar(self) -> None:
        with pytest.raises(InterpolationError):
            interpolate("costs $5", ENV)

    def test_unknown_operator(self) -> None:
        with pytest.raises(InterpolationError):
            interpolate("${USER:x}", ENV)


class TestInterpolateTree:
    def test_nested_values_keys_untouched(self) -> None:
        tree = {"$USER": ["$USER", 3, {"n": "${NOPE:-z}"}], "flag": True}
        assert interpolate_tree(tree, ENV) == {"$USER": ["app", 3, {"n": "z"}], "flag": True}
