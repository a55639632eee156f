"""
Tests for the data tree differ.
"""

import pytest

from stackup.differ import Differ, plain_data
from stackup.utils.errors import RenderError


class TestDiffer:
    """Test diff rendering."""

    def test_identical_trees_produce_empty_diff(self) -> None:
        """Test that a tree compared with itself has no diff."""
        data = {"Template": {"Resources": {"Bucket": {"Type": "AWS::S3::Bucket"}}}}

        for diff_format in ("text", "color", "html"):
            assert Differ(diff_format).diff(data, data) == ""

    def test_parameter_order_is_ignored(self) -> None:
        """Test that key order under Parameters does not produce changes."""
        current = {"Parameters": {"A": "1", "B": "2"}}
        planned = {"Parameters": {"B": "2", "A": "1"}}

        assert Differ("text").diff(current, planned) == ""

    def test_template_order_is_significant(self) -> None:
        """Test that key order in templates is preserved."""
        current = {"Template": {"Outputs": {}, "Resources": {}}}
        planned = {"Template": {"Resources": {}, "Outputs": {}}}

        assert Differ("text").diff(current, planned) != ""

    def test_text_diff_marks_changed_lines(self) -> None:
        """Test unified text output."""
        current = {"Parameters": {"Size": "small"}}
        planned = {"Parameters": {"Size": "large"}}

        output = Differ("text").diff(current, planned)
        lines = output.splitlines()

        assert '-    "Size": "small"' in lines
        assert '+    "Size": "large"' in lines
        assert not any(line.startswith("---") or line.startswith("+++") for line in lines)
        assert output.endswith("\n")

    def test_diff_is_symmetric(self) -> None:
        """Test that swapping the sides swaps added and removed lines."""
        current = {"Tags": {"team": "a"}}
        planned = {"Tags": {"team": "b"}}
        differ = Differ("text")

        forward = differ.diff_lines(current, planned)
        backward = differ.diff_lines(planned, current)

        assert [line for line in forward if line.startswith("-")] == \
            ["-" + line[1:] for line in backward if line.startswith("+")]
        assert [line for line in forward if line.startswith("+")] == \
            ["+" + line[1:] for line in backward if line.startswith("-")]

    def test_context_lines_limit_output(self) -> None:
        """Test that the context size bounds unchanged lines shown."""
        current = {"Parameters": {f"P{i:02d}": "x" for i in range(20)}}
        planned = {"Parameters": dict(current["Parameters"], P10="y")}

        full = Differ("text").diff_lines(current, planned)
        narrow = Differ("text").diff_lines(current, planned, context_lines=1)

        assert len(narrow) < len(full)
        assert [line for line in narrow if line[:1] in "+-"] == \
            [line for line in full if line[:1] in "+-"]
        assert len([line for line in narrow if line.startswith(" ")]) == 2

    def test_color_diff_uses_ansi_codes(self) -> None:
        """Test colored output."""
        output = Differ("color").diff({"Tags": {"a": "1"}}, {"Tags": {"a": "2"}})

        assert "\x1b[32m" in output
        assert "\x1b[31m" in output

    def test_html_diff(self) -> None:
        """Test HTML output."""
        output = Differ("html").diff({"Tags": {"a": "1"}}, {"Tags": {"a": "2"}})

        assert "<html>" in output.lower() or "<!doctype html>" in output.lower()
        assert "&quot;a&quot;" in output or '"a"' in output

    def test_yaml_serialization(self) -> None:
        """Test YAML data format."""
        output = Differ("text", data_format="yaml").diff(
            {"Parameters": {"Size": "small"}},
            {"Parameters": {"Size": "large"}}
        )

        assert "-  Size: small" in output.splitlines()
        assert "+  Size: large" in output.splitlines()

    def test_unknown_diff_format(self) -> None:
        """Test that an unknown diff format fails to render."""
        with pytest.raises(RenderError):
            Differ("pdf").diff({}, {"a": 1})

    def test_unknown_data_format(self) -> None:
        """Test that an unknown data format fails to render."""
        with pytest.raises(RenderError):
            Differ("text", data_format="toml").diff({}, {"a": 1})


class TestPlainData:
    """Test tree normalization."""

    def test_sorts_nested_keys(self) -> None:
        data = {"b": {"d": 1, "c": 2}, "a": [{"z": 1, "y": 2}]}

        result = plain_data(data, sort_keys=True)

        assert list(result) == ["a", "b"]
        assert list(result["b"]) == ["c", "d"]
        assert list(result["a"][0]) == ["y", "z"]

    def test_preserves_order_by_default(self) -> None:
        assert list(plain_data({"b": 1, "a": 2})) == ["b", "a"]
