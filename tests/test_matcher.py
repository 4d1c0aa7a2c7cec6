"""Tests for the structural matcher and its template variants."""

import pytest

from jmaptest.harness.matcher import (
    Literal,
    SupersetOf,
    TypedLiteral,
    anything,
    jbool,
    jfalse,
    jnull,
    jnum,
    json_kind,
    jstr,
    jtrue,
    loose,
    matches,
    sequence,
    superset_of,
)


class TestJsonKind:
    @pytest.mark.parametrize(
        ("value", "kind"),
        [
            (None, "null"),
            (True, "bool"),
            (False, "bool"),
            (0, "number"),
            (1.5, "number"),
            ("0", "string"),
            ([], "array"),
            ({}, "object"),
        ],
    )
    def test_kinds(self, value, kind):
        assert json_kind(value) == kind

    def test_rejects_non_json(self):
        with pytest.raises(TypeError):
            json_kind(object())


class TestTypedLiteral:
    def test_string_zero_does_not_match_number_zero(self):
        assert not matches("0", jnum(0))

    def test_number_zero_matches_number_zero(self):
        assert matches(0, jnum(0))

    def test_number_without_literal_matches_any_number(self):
        assert matches(55, jnum())
        assert matches(2.5, jnum())

    def test_bool_is_not_a_number(self):
        result = matches(True, jnum())
        assert not result
        assert result.reason == "expected number, got bool"

    def test_string_literal(self):
        assert matches("X", jstr("X"))
        assert not matches("Y", jstr("X"))

    def test_string_kind_only(self):
        assert matches("anything", jstr())
        assert not matches(5, jstr())

    def test_bool_helpers(self):
        assert matches(True, jtrue)
        assert matches(False, jfalse)
        assert not matches(0, jfalse)
        assert matches(True, jbool())

    def test_null(self):
        assert matches(None, jnull)
        assert not matches("", jnull)

    def test_non_scalar_kind_rejected(self):
        with pytest.raises(ValueError):
            TypedLiteral("array")

    def test_repr(self):
        assert repr(jnum(0)) == "jnum(0)"
        assert repr(jstr()) == "jstr()"


class TestLiteral:
    def test_equal_values_of_same_type(self):
        assert matches("X", "X")
        assert matches(3, 3)

    def test_true_does_not_match_one(self):
        assert not matches(True, 1)
        assert not matches(1, True)

    def test_int_matches_equal_float(self):
        assert matches(1.0, Literal(1))

    def test_value_differs(self):
        result = matches("Y", "X")
        assert result.reason == "value differs"
        assert result.expected == "X"
        assert result.actual == "Y"


class TestSupersetOf:
    def test_extra_keys_ignored(self):
        actual = {"id": "m1", "name": "X", "color": "red"}
        assert matches(actual, superset_of(id=jstr(), name="X"))

    def test_missing_key_fails(self):
        result = matches({"name": "X"}, superset_of(id=jstr()))
        assert not result
        assert result.path == ("id",)
        assert result.reason == "required key is absent"

    def test_nested_failure_reports_full_path(self):
        actual = {"created": {"new": {"id": 5}}}
        template = superset_of(created=superset_of(new=superset_of(id=jstr())))

        result = matches(actual, template)

        assert result.path == ("created", "new", "id")
        assert result.location == "$.created.new.id"
        assert result.describe() == (
            "$.created.new.id: expected string, got number (expected jstr(), got 5)"
        )

    def test_non_object_fails(self):
        assert not matches([1], SupersetOf({}))

    def test_positional_and_keyword_required_merge(self):
        template = superset_of({"a": 1}, b=2)
        assert template.required == {"a": 1, "b": 2}


class TestExactMapping:
    def test_same_keys_match(self):
        assert matches({"a": 1, "b": "x"}, {"a": 1, "b": "x"})

    def test_extra_key_fails(self):
        result = matches({"a": 1, "b": 2}, {"a": 1})
        assert not result
        assert result.reason == "unexpected keys: b"

    def test_nested_templates_allowed(self):
        assert matches({"a": 1, "state": "s9"}, {"a": jnum(1), "state": anything()})


class TestSequence:
    def test_elementwise(self):
        assert matches(["a", 1], ["a", jnum()])

    def test_length_mismatch(self):
        result = matches([1, 2, 3], [1, 2])
        assert result.reason == "expected 2 elements, got 3"

    def test_element_path_uses_index(self):
        result = matches([{"id": "x"}, {"id": 7}], sequence(superset_of(id=jstr()), superset_of(id=jstr())))
        assert result.location == "$[1].id"

    def test_non_array_fails(self):
        assert not matches({"a": 1}, [1])


class TestMatchResult:
    def test_ok_is_truthy(self):
        result = matches(1, 1)
        assert result
        assert result.describe() == "ok"
        assert result.diff_path == []

    def test_diff_path_pairs(self):
        result = matches({"list": [{"name": 1}]}, superset_of(list=[superset_of(name=jstr())]))
        assert result.diff_path == [
            ("list", "descended"),
            (0, "descended"),
            ("name", "expected string, got number"),
        ]

    def test_matching_does_not_mutate(self):
        actual = {"a": {"b": [1, 2]}}
        snapshot = {"a": {"b": [1, 2]}}
        matches(actual, superset_of(a=superset_of(b=[1, 3])))
        assert actual == snapshot


class TestLoose:
    def test_objects_become_supersets(self):
        template = loose({"created": {"new": {"name": "X"}}})
        actual = {"created": {"new": {"name": "X", "id": "m1"}}, "newState": "s2"}
        assert matches(actual, template)

    def test_arrays_keep_length(self):
        assert not matches({"ids": ["a", "b"]}, loose({"ids": ["a"]}))
