"""Tests for ``{{placeholder}}`` resolution."""

from maestro.utils.templates import find_placeholders, resolve_template


class TestResolveTemplate:
    def test_replaces_every_occurrence(self) -> None:
        out = resolve_template("{{topic}} and again {{topic}}", {"topic": "tea"})
        assert out == "tea and again tea"

    def test_absent_key_left_untouched(self) -> None:
        template = "Write {{contentType}} about {{topic}}"
        assert resolve_template(template, {"topic": "tea"}) == "Write {{contentType}} about tea"

    def test_none_value_left_untouched(self) -> None:
        assert resolve_template("{{x}}", {"x": None}) == "{{x}}"

    def test_single_pass(self) -> None:
        out = resolve_template("{{a}}", {"a": "{{b}}", "b": "nope"})
        assert out == "{{b}}"

    def test_values_inserted_literally(self) -> None:
        out = resolve_template("path: {{p}}", {"p": r"C:\new\1 $0"})
        assert out == r"path: C:\new\1 $0"

    def test_non_string_values(self) -> None:
        assert resolve_template("{{n}} items", {"n": 3}) == "3 items"

    def test_inner_whitespace_tolerated(self) -> None:
        assert resolve_template("{{ topic }}", {"topic": "tea"}) == "tea"


def test_find_placeholders_in_order() -> None:
    assert find_placeholders("{{b}} {{a}} {{b}}") == ["b", "a"]
    assert find_placeholders("no markers") == []
