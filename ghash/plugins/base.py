from __future__ import annotations

import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Protocol

from ghash import __version__
from ghash.config import ExcludeRules, default_config_dir


@dataclass
class LaunchRequest:
    """What a tool window was opened with."""

    targets: List[Path] = field(default_factory=list)
    manifest: Optional[Path] = None
    algorithm: Optional[str] = None
    recurse: Optional[bool] = None
    extra: List[str] = field(default_factory=list)


def parse_launch_argv(argv: List[str]) -> LaunchRequest:
    """Read ``ghash-gui`` arguments that follow the tool key.

    Targets come as ``--target PATH`` or bare paths. ``--manifest``, ``-H``
    and ``-r`` preset the matching fields; unknown ``--flags`` are kept in
    ``extra`` for the tool.
    """
    request = LaunchRequest()
    it = iter(argv)
    for arg in it:
        if arg == "--target":
            value = next(it, None)
            if value:
                request.targets.append(Path(value).expanduser())
        elif arg == "--manifest":
            value = next(it, None)
            if value:
                request.manifest = Path(value).expanduser()
        elif arg in ("-H", "--hash"):
            request.algorithm = next(it, None) or request.algorithm
        elif arg in ("-r", "--recurse"):
            request.recurse = True
        elif arg.startswith("-") and arg != "-":
            request.extra.append(arg)
        else:
            request.targets.append(Path(arg).expanduser())
    return request


@dataclass
class ToolContext:
    version: str
    platform: str
    config_dir: Path
    excludes: ExcludeRules

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ToolContext":
        directory = Path(config_dir) if config_dir else default_config_dir()
        return cls(__version__, platform.system(), directory, ExcludeRules(directory))


class GhashTool(Protocol):
    key: str
    title: str
    description: str

    def make_panel(self, master, context: ToolContext) -> Any:
        """Build and return the tool's panel inside ``master``."""

    def start(self, context: ToolContext, request: LaunchRequest) -> None:
        """Apply the launch request once the panel exists."""

    def cleanup(self) -> None:
        """Wait for background work before the window closes."""


def run_tool(tool: GhashTool, argv: Optional[List[str]] = None, context: Optional[ToolContext] = None) -> None:
    """Open ``tool`` in its own ttkbootstrap window and block until closed."""
    try:
        import ttkbootstrap as tb
        from ttkbootstrap.dialogs import Messagebox
    except ImportError as exc:
        raise RuntimeError("The GUI needs ttkbootstrap: pip install ttkbootstrap") from exc

    request = parse_launch_argv(list(sys.argv[1:] if argv is None else argv))
    ctx = context or ToolContext.create()

    window = tb.Window(title=f"{tool.title} – ghash {ctx.version}", themename="darkly")
    window.geometry("1000x700")

    body = tb.Frame(window, padding=8)
    body.pack(fill="both", expand=True)
    panel = tool.make_panel(body, ctx)
    if hasattr(panel, "pack"):
        panel.pack(fill="both", expand=True)

    def _apply_request():
        try:
            tool.start(ctx, request)
        except Exception as exc:  # pragma: no cover - GUI error path
            Messagebox.show_error(message=str(exc), title=tool.title)

    def _close():
        try:
            tool.cleanup()
        finally:
            window.destroy()

    window.after(50, _apply_request)
    window.protocol("WM_DELETE_WINDOW", _close)
    window.mainloop()


__all__ = ["GhashTool", "LaunchRequest", "ToolContext", "parse_launch_argv", "run_tool"]
