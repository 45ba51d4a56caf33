"""Canonical data types passed between adapters, the differ and the vault."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


class TaskStatus(str, Enum):
    DOWNLOADING = "downloading"
    SEEDING = "seeding"
    PAUSED = "paused"
    QUEUED = "queued"
    CHECKING = "checking"
    COMPLETED = "completed"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: Any) -> "TaskStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


def clamp_progress(value: Any) -> float:
    try:
        progress = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(progress):
        return 0.0
    return max(0.0, min(100.0, progress))


def _ordered_tags(tags: Optional[Iterable[str]]) -> Tuple[str, ...]:
    seen = []
    for tag in tags or ():
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen.append(tag)
    return tuple(seen)


@dataclass(frozen=True)
class Task:
    """One torrent as reported by a backend during a single poll.

    Tasks are rebuilt from scratch on every poll. ``progress`` is a percentage
    clamped to [0, 100]; ``added_date`` is epoch milliseconds (0 if unknown);
    ``eta`` is seconds, with -1 or 0 meaning unknown.
    """

    id: str
    name: str
    status: TaskStatus = TaskStatus.UNKNOWN
    progress: float = 0.0
    size: int = 0
    download_speed: int = 0
    upload_speed: int = 0
    eta: int = 0
    save_path: str = ""
    added_date: int = 0
    category: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "status", TaskStatus.coerce(self.status))
        object.__setattr__(self, "progress", clamp_progress(self.progress))
        object.__setattr__(self, "tags", _ordered_tags(self.tags))

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["status"] = self.status.value
        data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


TASK_FIELDS: Tuple[str, ...] = tuple(f.name for f in fields(Task))


@dataclass
class AddOptions:
    """Options for adding a torrent. Backends ignore the hints they cannot honor."""

    paused: bool = False
    path: Optional[str] = None
    label: Optional[str] = None
    sequential_download: bool = False
    first_last_piece_priority: bool = False

    def with_defaults(self, config: "ServerConfig") -> "AddOptions":
        return AddOptions(
            paused=self.paused,
            path=self.path or config.default_directory or None,
            label=self.label or config.default_label or None,
            sequential_download=self.sequential_download,
            first_last_piece_priority=self.first_last_piece_priority,
        )


@dataclass
class HttpAuth:
    username: str = ""
    password: str = ""


@dataclass
class ServerConfig:
    """Connection settings for one remote torrent service.

    Serialized with the camelCase keys used by the stored vault payload.
    """

    name: str
    type: str
    hostname: str
    application: str = ""
    username: str = ""
    password: str = ""
    directories: List[str] = field(default_factory=list)
    default_directory: str = ""
    default_label: str = ""
    client_options: Dict[str, Any] = field(default_factory=dict)
    http_auth: Optional[HttpAuth] = None
    show_in_context_menu: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "application": self.application,
            "type": self.type,
            "hostname": self.hostname,
            "username": self.username,
            "password": self.password,
            "directories": list(self.directories),
            "defaultDirectory": self.default_directory,
            "defaultLabel": self.default_label,
            "clientOptions": dict(self.client_options),
            "showInContextMenu": self.show_in_context_menu,
        }
        if self.http_auth is not None:
            data["httpAuth"] = {
                "username": self.http_auth.username,
                "password": self.http_auth.password,
            }
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerConfig":
        http_auth = data.get("httpAuth")
        return cls(
            name=str(data.get("name") or ""),
            type=str(data.get("type") or data.get("application") or ""),
            hostname=str(data.get("hostname") or ""),
            application=str(data.get("application") or ""),
            username=str(data.get("username") or ""),
            password=str(data.get("password") or ""),
            directories=[str(d) for d in data.get("directories") or []],
            default_directory=str(data.get("defaultDirectory") or ""),
            default_label=str(data.get("defaultLabel") or ""),
            client_options=dict(data.get("clientOptions") or {}),
            http_auth=HttpAuth(
                username=str(http_auth.get("username") or ""),
                password=str(http_auth.get("password") or ""),
            ) if isinstance(http_auth, dict) else None,
            show_in_context_menu=bool(data.get("showInContextMenu", True)),
        )

    def __repr__(self) -> str:
        return f"ServerConfig(name={self.name!r}, type={self.type!r}, hostname={self.hostname!r})"
