"""pydantic models for the JSON payloads returned by each backend's task listing."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar, Union

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from errors import ValidationError

M = TypeVar("M", bound=BaseModel)


def validate(model: Type[M], data: Any, source: str = "") -> M:
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        label = source or model.__name__
        raise ValidationError(f"Unexpected {label} response: {exc}") from exc


def parse_decimal(value: Any) -> int:
    """Integers that some services send as decimal strings."""
    if isinstance(value, bool):
        raise ValidationError(f"Expected a decimal integer, got {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text.lstrip("-").isdigit():
        raise ValidationError(f"Expected a decimal integer, got {value!r}")
    return int(text)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class QBittorrentTorrent(_Payload):
    hash: str
    name: str
    state: str
    size: int = 0
    progress: float = 0.0
    dlspeed: int = 0
    upspeed: int = 0
    eta: int = 0
    save_path: str = ""
    added_on: int = 0
    category: Optional[str] = None
    tags: Optional[str] = None


class TransmissionTorrent(_Payload):
    id: int
    name: str
    status: int
    totalSize: int = 0
    percentDone: float = 0.0
    rateDownload: int = 0
    rateUpload: int = 0
    eta: int = -1
    downloadDir: str = ""
    addedDate: int = 0
    error: int = 0
    labels: List[str] = Field(default_factory=list)


class DelugeTorrent(_Payload):
    name: str
    state: str
    progress: float = 0.0
    eta: float = 0
    download_payload_rate: int = 0
    upload_payload_rate: int = 0
    total_size: int = 0
    save_path: str = ""
    time_added: float = 0
    label: Optional[str] = None


class DelugeUpdateUi(_Payload):
    torrents: Optional[Dict[str, DelugeTorrent]] = None
    connected: Optional[bool] = None


class FloodTorrent(_Payload):
    hash: str
    name: str
    state: List[str] = Field(default_factory=list, validation_alias=AliasChoices("state", "status"))
    progress: Optional[float] = None
    percentComplete: Optional[float] = None
    sizeBytes: int = 0
    upRate: int = 0
    downRate: int = Field(0, validation_alias=AliasChoices("downRate", "dnRate"))
    eta: int = -1
    directory: str = ""
    added: Optional[float] = Field(None, validation_alias=AliasChoices("added", "dateAdded"))
    tags: List[str] = Field(default_factory=list)

    @field_validator("state", mode="before")
    @classmethod
    def _wrap_single_state(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class FloodTorrentList(_Payload):
    torrents: Union[List[FloodTorrent], Dict[str, FloodTorrent]] = Field(default_factory=list)

    def items(self) -> List[FloodTorrent]:
        if isinstance(self.torrents, dict):
            return list(self.torrents.values())
        return list(self.torrents)


class Aria2Status(_Payload):
    gid: str
    status: str
    totalLength: str = "0"
    completedLength: str = "0"
    uploadLength: str = "0"
    downloadSpeed: str = "0"
    uploadSpeed: str = "0"
    dir: str = ""


class UTorrentList(_Payload):
    build: Optional[int] = None
    torrents: List[List[Any]] = Field(default_factory=list)
    label: List[List[Any]] = Field(default_factory=list)


class SynologyTransfer(_Payload):
    size_downloaded: int = 0
    size_uploaded: int = 0
    speed_download: int = 0
    speed_upload: int = 0


class SynologyDetail(_Payload):
    destination: str = ""
    create_time: int = 0
    uri: str = ""


class SynologyAdditional(_Payload):
    detail: Optional[SynologyDetail] = None
    transfer: Optional[SynologyTransfer] = None


class SynologyTask(_Payload):
    id: str
    title: str
    size: int = 0
    status: Union[int, str]
    additional: Optional[SynologyAdditional] = None


class SynologyTaskList(_Payload):
    total: int = 0
    offset: int = 0
    tasks: List[SynologyTask] = Field(default_factory=list)


class SynologyResponse(_Payload):
    success: bool
    data: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def error_code(self) -> Optional[int]:
        if self.error:
            return self.error.get("code")
        return None
