"""
Console output for splitsync.

Every action is reported as a single line that starts with a severity tag
such as ``[info]`` or ``[dry]``, printed through one shared rich console.
"""

from rich.console import Console
from rich.text import Text

console = Console(highlight=False, soft_wrap=True)

TAG_STYLES = {
    "info": "bright_blue",
    "warn": "yellow",
    "error": "bright_red",
    "dry": "bright_black",
    "skip": "bright_green",
    "cleanup": "bright_black",
    "extract": "bright_cyan",
}


def echo(tag: str, message: str, detail: object | None = None) -> None:
    """Print ``[tag] message detail`` with the tag (and detail) colorized."""
    style = TAG_STYLES.get(tag, "white")
    line = Text(f"[{tag}]", style=style)
    line.append(f" {message}")
    if detail is not None and detail != "":
        line.append(f" {detail}", style=style)
    console.print(line)


def echo_block(text: str) -> None:
    """Print captured command output verbatim."""
    if text:
        console.out(text, highlight=False)
