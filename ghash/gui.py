from __future__ import annotations

import sys
from typing import List, Optional

from ghash.plugins import discover_tools
from ghash.plugins.base import run_tool


def _usage(tools) -> str:
    lines = ["usage: ghash-gui TOOL [--target PATH | PATH]... [--manifest FILE] [-H ALGO] [-r]"]
    for key, tool in sorted(tools.items()):
        lines.append(f"   {key:<8} {getattr(tool, 'description', '')}")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    tools = discover_tools()
    if not tools:
        print("ghash-gui: no tools could be loaded; is ttkbootstrap installed?", file=sys.stderr)
        return 2
    if not args or args[0] not in tools:
        print(_usage(tools), file=sys.stderr)
        return 2
    run_tool(tools[args[0]], args[1:])
    return 0


if __name__ == "__main__":
    sys.exit(main())
