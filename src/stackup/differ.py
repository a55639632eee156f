"""Line-oriented diff of two data trees, rendered as text, ANSI color or HTML."""

import difflib
import io
import json
from collections.abc import Mapping
from typing import Any, Iterable, List

import click
import yaml
from rich.console import Console
from rich.text import Text

from stackup.utils.errors import RenderError

DIFF_FORMATS = ("text", "color", "html")
DATA_FORMATS = ("json", "yaml")
DEFAULT_CONTEXT_LINES = 10_000

# Top-level sections whose key order carries no meaning
UNORDERED_SECTIONS = ("Parameters", "Tags")

LINE_STYLES = {
    "+": "green",
    "-": "red",
    "@": "cyan",
}


def plain_data(data: Any, sort_keys: bool = False) -> Any:
    """Rebuild a tree from plain dicts and lists, optionally sorting mapping keys."""
    if isinstance(data, Mapping):
        keys = sorted(data, key=str) if sort_keys else list(data)
        return {key: plain_data(data[key], sort_keys) for key in keys}
    if isinstance(data, (list, tuple)):
        return [plain_data(item, sort_keys) for item in data]
    return data


class Differ:
    """Compares a current and a planned data tree.

    Both trees go through the same canonical serialization: mapping order is
    preserved (it is meaningful in templates) except below the top-level
    sections named in ``unordered_sections``, whose keys are sorted.
    """

    def __init__(
        self,
        diff_format: str = "color",
        data_format: str = "json",
        unordered_sections: Iterable[str] = UNORDERED_SECTIONS
    ):
        self.diff_format = diff_format
        self.data_format = data_format
        self.unordered_sections = frozenset(unordered_sections)

    def canonicalize(self, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return plain_data(data)
        return {
            key: plain_data(value, sort_keys=key in self.unordered_sections)
            for key, value in data.items()
        }

    def serialize(self, data: Any) -> str:
        canonical = self.canonicalize(data)
        if self.data_format == "yaml":
            return yaml.safe_dump(canonical, sort_keys=False, default_flow_style=False)
        if self.data_format == "json":
            return json.dumps(canonical, indent=2, default=str, ensure_ascii=False) + "\n"
        raise RenderError(f"unknown data format {self.data_format!r}; expected one of {', '.join(DATA_FORMATS)}")

    def diff_lines(self, current: Any, planned: Any, context_lines: int = DEFAULT_CONTEXT_LINES) -> List[str]:
        """Unified diff lines (without file headers); empty when the trees match."""
        lines = list(difflib.unified_diff(
            self.serialize(current).splitlines(),
            self.serialize(planned).splitlines(),
            fromfile="current",
            tofile="planned",
            n=max(context_lines, 0),
            lineterm="",
        ))
        # Drop the "---"/"+++" file header pair
        return lines[2:]

    def diff(self, current: Any, planned: Any, context_lines: int = DEFAULT_CONTEXT_LINES) -> str:
        """Render the diff of two trees; returns an empty string when they match.

        Raises:
            RenderError: If the diff format is unknown
        """
        if self.diff_format not in DIFF_FORMATS:
            raise RenderError(
                f"unknown diff format {self.diff_format!r}; expected one of {', '.join(DIFF_FORMATS)}"
            )

        lines = self.diff_lines(current, planned, context_lines)
        if not lines:
            return ""

        if self.diff_format == "text":
            return "\n".join(lines) + "\n"
        if self.diff_format == "color":
            return "\n".join(self._color(line) for line in lines) + "\n"
        return self._html(lines)

    @staticmethod
    def _color(line: str) -> str:
        style = LINE_STYLES.get(line[:1])
        return click.style(line, fg=style) if style else line

    @staticmethod
    def _html(lines: List[str]) -> str:
        console = Console(record=True, file=io.StringIO(), width=200, color_system="truecolor")
        for line in lines:
            console.print(Text(line, style=LINE_STYLES.get(line[:1], "")), soft_wrap=True)
        return console.export_html(inline_styles=True)
