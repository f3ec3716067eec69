import pytest
from stackup.UTILS.string_interpolation import EnvironmentInterpolator


class TestScan:
    def test_finds_placeholders_in_order(self):
        found = EnvironmentInterpolator.scan("${USER}:${PASS:-secret}@${HOST-db}")
        assert [p.name for p in found] == ["USER", "PASS", "HOST"]
        assert [p.operator for p in found] == [None, ":-", "-"]
        assert found[1].argument == "secret"

    def test_escaped_dollar_is_not_a_placeholder(self):
        assert EnvironmentInterpolator.scan("price: $${AMOUNT}") == []

    def test_malformed_placeholder(self):
        with pytest.raises(ValueError):
            EnvironmentInterpolator.scan("${not valid}")


class TestSubstitute:
    def test_plain(self):
        assert EnvironmentInterpolator.interpolate("${A}-${B}", {"A": "1", "B": "2"}) == "1-2"

    def test_defaults(self):
        ctx = {"EMPTY": ""}
        assert EnvironmentInterpolator.interpolate("${EMPTY:-x}", ctx) == "x"
        assert EnvironmentInterpolator.interpolate("${EMPTY-x}", ctx) == ""
        assert EnvironmentInterpolator.interpolate("${UNSET-x}", ctx) == "x"

    def test_escape(self):
        assert EnvironmentInterpolator.interpolate("$${A}", {}) == "${A}"

    def test_missing_raises(self):
        with pytest.raises(KeyError):
            EnvironmentInterpolator.interpolate("${MISSING}", {})

    def test_required_with_message(self):
        misses = EnvironmentInterpolator.missing("${TOKEN:?token is required}", {"TOKEN": ""})
        assert misses[0].name == "TOKEN"
        assert misses[0].message == "token is required"

    def test_empty_value_satisfies_plain_placeholder(self):
        assert EnvironmentInterpolator.interpolate("x${A}x", {"A": ""}) == "xx"


class TestTree:
    def test_collects_every_miss_with_location(self):
        tree = {"services": {"db": {"environment": {"USER": "${POSTES_USER}", "DB": "${POSTGRES_DB}"}}}}
        result, misses = EnvironmentInterpolator.interpolate_tree(tree, {})
        assert result is tree
        assert {m.name for m in misses} == {"POSTES_USER", "POSTGRES_DB"}
        assert misses[0].location == "services.db.environment.USER"

    def test_substitutes_leaves_not_keys(self):
        tree = {"${KEY}": ["${A}", 5, None]}
        result, misses = EnvironmentInterpolator.interpolate_tree(tree, {"A": "a", "KEY": "k"})
        assert misses == []
        assert result == {"${KEY}": ["a", 5, None]}
