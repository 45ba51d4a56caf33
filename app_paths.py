"""Where torrent-control keeps its storage file and logs.

The data directory is the first usable candidate of:
- ``$TORRENT_CONTROL_HOME`` (created if missing),
- a ``TorrentControl_Data`` folder next to the code or frozen executable, only
  when it already exists and accepts writes (portable mode),
- ``TorrentControl`` under the per-user data root (APPDATA on Windows,
  ``$XDG_DATA_HOME`` or ``~/.local/share`` elsewhere).
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import List, Optional, Tuple

APP_DIR_NAME = "TorrentControl"
PORTABLE_DATA_DIR_NAME = "TorrentControl_Data"
HOME_ENV_VAR = "TORRENT_CONTROL_HOME"
LOGS_DIR_NAME = "logs"

_data_dir: Optional[str] = None


def _accepts_writes(path: str) -> bool:
    probe = Path(path) / ".torrent_control_probe"
    if not probe.parent.is_dir():
        return False
    try:
        probe.write_bytes(b"")
        probe.unlink()
    except OSError:
        return False
    return True


def _install_dir() -> str:
    anchor = sys.executable if getattr(sys, "frozen", False) else os.path.abspath(__file__)
    return os.path.dirname(anchor)


def _user_data_root() -> str:
    candidates = [os.environ.get("XDG_DATA_HOME")]
    if sys.platform == "win32":
        candidates = [os.environ.get("APPDATA"), os.environ.get("LOCALAPPDATA")] + candidates
    for root in candidates:
        if root:
            return root
    return str(Path.home() / ".local" / "share")


def _candidates() -> List[Tuple[str, bool]]:
    """(path, must_already_be_writable) in priority order."""
    result = []
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        result.append((override, False))
    result.append((os.path.join(_install_dir(), PORTABLE_DATA_DIR_NAME), True))
    result.append((os.path.join(_user_data_root(), APP_DIR_NAME), False))
    return result


def get_data_dir() -> str:
    global _data_dir
    if _data_dir is None:
        for path, portable in _candidates():
            if portable and not _accepts_writes(path):
                continue
            _data_dir = ensure_dir(path)
            break
    return _data_dir


def reset_cache() -> None:
    global _data_dir
    _data_dir = None


def ensure_dir(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path


def get_storage_path(filename: str = "storage.json") -> str:
    return os.path.join(get_data_dir(), filename)


def get_logs_dir() -> str:
    return ensure_dir(os.path.join(get_data_dir(), LOGS_DIR_NAME))


def get_log_path(filename: str = "torrent_control.log") -> str:
    return os.path.join(get_logs_dir(), filename)
