"""Platform-aware path resolution for Cursor's data directories."""

import getpass
import os
import platform
import subprocess
import sys
from pathlib import Path


def _expand(value: str) -> Path:
    return Path(value).expanduser()


def _is_wsl() -> bool:
    release = platform.release().lower()
    return "microsoft" in release or "wsl" in release


def _is_remote() -> bool:
    return any(os.environ.get(k) for k in ("SSH_CONNECTION", "SSH_CLIENT", "SSH_TTY"))


def _windows_username() -> str:
    """Windows user name as seen from WSL, falling back to the Linux one."""
    try:
        out = subprocess.run(
            ["cmd.exe", "/c", "echo %USERNAME%"],
            capture_output=True, text=True, timeout=5, check=False,
        ).stdout.strip()
        if out:
            return out
    except (OSError, subprocess.SubprocessError):
        pass
    return getpass.getuser()


def get_cursor_workspace_path() -> Path:
    """Return the path to Cursor's workspaceStorage directory."""
    env = os.environ.get("CURSOR_HISTORY_WORKSPACE_PATH") or os.environ.get("WORKSPACE_PATH")
    if env and env.strip():
        return _expand(env.strip())

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Cursor" / "User" / "workspaceStorage"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "Cursor" / "User" / "workspaceStorage"
    elif _is_wsl():
        return Path("/mnt/c/Users") / _windows_username() / "AppData" / "Roaming" / "Cursor" / "User" / "workspaceStorage"
    elif _is_remote():
        return Path.home() / ".cursor-server" / "data" / "User" / "workspaceStorage"
    else:  # Linux
        return Path.home() / ".config" / "Cursor" / "User" / "workspaceStorage"


def get_cursor_global_path(workspace_path: Path | None = None) -> Path:
    """Return the path to Cursor's globalStorage state.vscdb.

    globalStorage always sits next to workspaceStorage.
    """
    if workspace_path is None:
        workspace_path = get_cursor_workspace_path()
    return workspace_path.parent / "globalStorage" / "state.vscdb"


def get_export_path() -> Path:
    """Default output directory for ``cursor-history export``."""
    env = os.environ.get("CURSOR_HISTORY_EXPORT_PATH")
    if env and env.strip():
        return _expand(env.strip())
    return Path("export")
