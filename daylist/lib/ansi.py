import re
from dataclasses import dataclass

from daylist.core.models import Quadrant

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


@dataclass(frozen=True)
class Theme:
    red: str = "\033[38;5;203m"
    green: str = "\033[38;5;114m"
    yellow: str = "\033[38;5;221m"
    blue: str = "\033[38;5;111m"
    coral: str = "\033[38;5;209m"
    muted: str = "\033[90m"
    reset: str = "\033[0m"


DEFAULT = Theme()
PLAIN = Theme(**{f: "" for f in Theme.__dataclass_fields__})
_active: Theme = DEFAULT


def use(theme: Theme) -> None:
    global _active
    _active = theme


def _paint(code: str, text: str) -> str:
    if not code:
        return text
    return f"{code}{text}{_active.reset}"


def red(text: str) -> str:
    return _paint(_active.red, text)


def green(text: str) -> str:
    return _paint(_active.green, text)


def yellow(text: str) -> str:
    return _paint(_active.yellow, text)


def coral(text: str) -> str:
    return _paint(_active.coral, text)


def muted(text: str) -> str:
    return _paint(_active.muted, text)


def strikethrough(text: str) -> str:
    struck = "".join(c + "̶" for c in text)
    return _paint(_active.muted, struck)


def strip(text: str) -> str:
    return _ANSI_RE.sub("", text)


_QUADRANT_PAINT = {
    Quadrant.DO_FIRST: red,
    Quadrant.SCHEDULE: lambda s: _paint(_active.blue, s),
    Quadrant.DELEGATE: yellow,
    Quadrant.ELIMINATE: muted,
}


def quadrant(q: Quadrant) -> str:
    return _QUADRANT_PAINT[q](f"Q{q.value}")
