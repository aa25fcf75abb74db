"""Loading of the GUI tools shipped in ``ghash/tools``."""

import logging
import sys
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path
from typing import Dict, Optional


logger = logging.getLogger(__name__)

TOOLS_DIR = Path(__file__).resolve().parent.parent / "tools"


def _load(path: Path):
    name = f"ghash.tools.{path.stem}"
    spec = spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        return None
    module = module_from_spec(spec)
    # dataclasses look the module up while the class body runs
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(name, None)
        logger.warning("cannot load tool %s: %s", path.name, exc)
        return None
    return module


def discover_tools(tools_dir: Optional[Path] = None) -> Dict[str, object]:
    """Map tool key to the ``TOOL`` object of every ``*_tool.py`` module.

    A module that fails to import (a missing Tk, say) is logged and left out.
    """
    found: Dict[str, object] = {}
    for path in sorted(Path(tools_dir or TOOLS_DIR).glob("*_tool.py")):
        module = _load(path)
        tool = getattr(module, "TOOL", None)
        key = getattr(tool, "key", None)
        if not key:
            continue
        if key in found:
            logger.warning("duplicate tool key %r in %s", key, path.name)
            continue
        found[key] = tool
    return found


__all__ = ["TOOLS_DIR", "discover_tools"]
