#!/usr/bin/env python3
"""Tool Locator module: resolves the oc/az executables once at startup."""

import os
import shutil
from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import ConfigurationError

SYSTEM_BIN_DIRS = ("/usr/bin", "/usr/local/bin")


@dataclass(frozen=True)
class ToolPaths:
    """Absolute paths of the external CLIs used by a run"""

    oc: Optional[str] = None
    az: Optional[str] = None

    def missing(self, require_az: bool = True) -> list:
        names = []
        if not self.oc:
            names.append("oc")
        if require_az and not self.az:
            names.append("az")
        return names


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def resolve_tool(name: str, work_dir: str = ".", search_dirs: Iterable[str] = SYSTEM_BIN_DIRS) -> Optional[str]:
    """
    Find an executable, checking system directories, then the work directory, then PATH.

    Args:
        name: Executable name (e.g. "oc")
        work_dir: Directory a freshly downloaded client is extracted into
        search_dirs: System directories checked first

    Returns:
        str or None: Path to the executable, or None if it cannot be found
    """
    for directory in list(search_dirs) + [work_dir]:
        candidate = os.path.join(directory, name)
        if _is_executable(candidate):
            return candidate
    return shutil.which(name)


def locate_tools(work_dir: str = ".", require_az: bool = True, printer=None) -> ToolPaths:
    """Resolve every CLI the run needs into a ToolPaths value"""
    tools = ToolPaths(
        oc=resolve_tool("oc", work_dir),
        az=resolve_tool("az", work_dir) if require_az else None,
    )
    if printer:
        printer.print_action(f"Resolved tools: oc={tools.oc} az={tools.az}")
    return tools


def require_tools(tools: ToolPaths, require_az: bool = True) -> ToolPaths:
    """Fail the run when a required CLI is still missing"""
    missing = tools.missing(require_az=require_az)
    if missing:
        raise ConfigurationError(f"Required CLI tool(s) not found: {', '.join(missing)}")
    return tools
