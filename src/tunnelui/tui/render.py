"""Rich-based frame rendering shared by the configurator and the dashboard."""

from __future__ import annotations

from dataclasses import dataclass
from io import StringIO
from threading import Lock
from typing import Iterable, Optional, Sequence

from rich import box
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.text import Text

from tunnelui.preferences import Preferences, ThemeOption

DEFAULT_WIDTH = 80
DEFAULT_HEIGHT = 24
SPARK_CHARS = "▁▂▃▄▅▆▇█"


@dataclass(frozen=True)
class Palette:
    accent: str
    text: str
    muted: str
    selected: str
    border: str
    warning: str


PALETTES = {
    ThemeOption.LIGHT: Palette("blue", "black", "grey50", "bold white on blue", "blue", "dark_orange3"),
    ThemeOption.DARK: Palette("cyan", "white", "grey62", "bold black on cyan", "cyan", "yellow"),
    ThemeOption.DARK_HIGH_CONTRAST: Palette("bright_yellow", "bright_white", "white", "bold black on bright_yellow", "bright_white", "bright_red"),
    ThemeOption.DARK_MATRIX: Palette("green", "bright_green", "dark_green", "bold black on green", "green", "yellow"),
    ThemeOption.DARK_OCEAN: Palette("deep_sky_blue1", "light_cyan1", "steel_blue", "bold black on deep_sky_blue1", "dodger_blue2", "gold1"),
    ThemeOption.DARK_NORD: Palette("#88c0d0", "#eceff4", "#4c566a", "bold #2e3440 on #88c0d0", "#81a1c1", "#ebcb8b"),
    ThemeOption.DARK_MONO: Palette("white", "grey85", "grey50", "reverse", "grey70", "bold white"),
}

_render_buffer = StringIO()
_render_console = Console(
    file=_render_buffer,
    force_terminal=True,
    color_system="truecolor",
    markup=False,
    highlight=False,
    width=DEFAULT_WIDTH,
    height=DEFAULT_HEIGHT,
)
_render_lock = Lock()


def palette_for(prefs: Preferences) -> Palette:
    return PALETTES.get(prefs.theme, PALETTES[ThemeOption.LIGHT])


def render_to_ansi(renderable: RenderableType, width: int, height: int) -> str:
    with _render_lock:
        _render_buffer.seek(0)
        _render_buffer.truncate(0)
        _render_console.size = (max(width, 20), max(height, 5))
        _render_console.print(renderable, end="")
        return _render_buffer.getvalue().rstrip("\n")


def tabs_line(tabs: Sequence[str], active: int, palette: Palette) -> Text:
    line = Text()
    for index, name in enumerate(tabs):
        if index:
            line.append("  ")
        style = palette.selected if index == active else palette.muted
        line.append(f" {name} ", style=style)
    return line


def option_list(options: Iterable[str], cursor: int, palette: Palette) -> Text:
    lines = Text()
    for index, option in enumerate(options):
        if index:
            lines.append("\n")
        if index == cursor:
            lines.append(f"> {option}", style=palette.selected)
        else:
            lines.append(f"  {option}", style=palette.text)
    return lines


def sparkline(samples: Sequence[float], width: int) -> str:
    window = list(samples)[-max(width, 1):]
    if not window:
        return ""
    peak = max(window)
    if peak <= 0:
        return SPARK_CHARS[0] * len(window)
    top = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[min(top, int(value * top / peak))] for value in window)


def render_frame(
    prefs: Preferences,
    *,
    width: int,
    height: int,
    title: str,
    body: Sequence[RenderableType],
    tabs: Optional[Sequence[str]] = None,
    active_tab: int = 0,
    notice: str = "",
    hint: str = "",
) -> str:
    """Render one full screen: tabs, a bordered body, an optional notice and footer hint."""
    palette = palette_for(prefs)
    width = width or DEFAULT_WIDTH
    height = height or DEFAULT_HEIGHT
    parts: list[RenderableType] = []
    if tabs:
        parts.append(tabs_line(tabs, active_tab, palette))
    parts.append(
        Panel(
            Group(*body),
            title=Text(title, style=f"bold {palette.accent}"),
            title_align="left",
            border_style=palette.border,
            box=box.ROUNDED,
        )
    )
    if notice:
        parts.append(Text(notice, style=palette.warning))
    if hint and prefs.show_footer:
        parts.append(Text(hint, style=palette.muted))
    return render_to_ansi(Group(*parts), width, height)
