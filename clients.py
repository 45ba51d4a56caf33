import abc
import base64
import contextlib
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlparse

import qbittorrentapi
from transmission_rpc import Client as TransClient
from transmission_rpc.error import (
    TransmissionAuthError,
    TransmissionConnectError,
    TransmissionError,
    TransmissionTimeoutError,
)

import schemas
from errors import AuthError, HttpError, ProtocolFault, TransportError, ValidationError
from http_client import DEFAULT_TIMEOUT, HttpClient, normalize_url
from models import AddOptions, ServerConfig, Task, TaskStatus
from rpc_codecs import JsonRpcClient

logger = logging.getLogger(__name__)


class BaseClient(abc.ABC):
    """Capability contract every backend adapter implements.

    Capabilities a backend lacks (categories, tags) default to empty results
    and no-ops.
    """

    type_name = ""

    def __init__(self, config: ServerConfig):
        self.config = config

    @abc.abstractmethod
    def login(self):
        pass

    @abc.abstractmethod
    def logout(self):
        pass

    @abc.abstractmethod
    def get_tasks(self) -> List[Task]:
        pass

    @abc.abstractmethod
    def add_by_url(self, url: str, options: Optional[AddOptions] = None):
        pass

    @abc.abstractmethod
    def add_by_file(self, data: bytes, options: Optional[AddOptions] = None):
        pass

    @abc.abstractmethod
    def pause(self, task_id: str):
        pass

    @abc.abstractmethod
    def resume(self, task_id: str):
        pass

    @abc.abstractmethod
    def remove(self, task_id: str, delete_data=False):
        pass

    @abc.abstractmethod
    def _ping_call(self):
        """A cheap authenticated call."""

    def test_connection(self) -> bool:
        try:
            self.login()
            self._ping_call()
            return True
        except Exception as e:
            logger.warning("%s connection test failed for %s: %s", self.type_name, self.config.name, e)
            return False

    def ping(self) -> int:
        start = time.monotonic()
        self._ping_call()
        return int((time.monotonic() - start) * 1000)

    def get_categories(self) -> List[str]:
        return []

    def set_category(self, task_id: str, category: str):
        pass

    def get_tags(self) -> List[str]:
        return []

    def add_tags(self, task_id: str, tags: Sequence[str]):
        pass

    def remove_tags(self, task_id: str, tags: Sequence[str]):
        pass

    def _options(self, options: Optional[AddOptions]) -> AddOptions:
        return (options or AddOptions()).with_defaults(self.config)

    def _normalize_delete_files(self, delete_files):
        if isinstance(delete_files, bool):
            return delete_files
        if isinstance(delete_files, (int, float)):
            return bool(delete_files)
        if isinstance(delete_files, str):
            value = delete_files.strip().lower()
            if value in ("1", "true", "yes", "y", "on"):
                return True
            if value in ("0", "false", "no", "n", "off", ""):
                return False
        return bool(delete_files)

    def __repr__(self):
        return f"{type(self).__name__}({self.config.name!r})"


def _split_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


# --- qBit ---
QBIT_STATES = {
    "metaDL": TaskStatus.DOWNLOADING,
    "forcedMetaDL": TaskStatus.DOWNLOADING,
    "allocating": TaskStatus.DOWNLOADING,
    "downloading": TaskStatus.DOWNLOADING,
    "forcedDL": TaskStatus.DOWNLOADING,
    "stalledDL": TaskStatus.DOWNLOADING,
    "uploading": TaskStatus.SEEDING,
    "forcedUP": TaskStatus.SEEDING,
    "stalledUP": TaskStatus.SEEDING,
    "pausedDL": TaskStatus.PAUSED,
    "pausedUP": TaskStatus.PAUSED,
    "stoppedDL": TaskStatus.PAUSED,
    "stoppedUP": TaskStatus.PAUSED,
    "queuedDL": TaskStatus.QUEUED,
    "queuedUP": TaskStatus.QUEUED,
    "checkingDL": TaskStatus.CHECKING,
    "checkingUP": TaskStatus.CHECKING,
    "checkingResumeData": TaskStatus.CHECKING,
    "queuedForChecking": TaskStatus.CHECKING,
    "error": TaskStatus.ERROR,
    "missingFiles": TaskStatus.ERROR,
}


def map_qbittorrent_state(state: str) -> TaskStatus:
    return QBIT_STATES.get(state, TaskStatus.UNKNOWN)


@contextlib.contextmanager
def _qbit_errors():
    try:
        yield
    except (qbittorrentapi.LoginFailed, qbittorrentapi.Unauthorized401Error, qbittorrentapi.Forbidden403Error) as e:
        raise AuthError(f"qBittorrent login failed: {e}") from e
    except qbittorrentapi.APIConnectionError as e:
        raise TransportError(f"qBittorrent connection error: {e}") from e
    except qbittorrentapi.APIError as e:
        raise ProtocolFault(f"qBittorrent API error: {e}") from e


class QBittorrentClient(BaseClient):
    type_name = "qbittorrent"

    def __init__(self, config: ServerConfig):
        super().__init__(config)
        self.c = None

    def _new_client(self):
        kwargs: Dict[str, Any] = {
            "host": normalize_url(self.config.hostname),
            "username": self.config.username,
            "password": self.config.password,
            "VERIFY_WEBUI_CERTIFICATE": bool(self.config.client_options.get("verifySsl", True)),
        }
        if self.config.http_auth and self.config.http_auth.username:
            kwargs["REQUESTS_ARGS"] = {"auth": (self.config.http_auth.username, self.config.http_auth.password)}
        return qbittorrentapi.Client(**kwargs)

    def login(self):
        c = self._new_client()
        with _qbit_errors():
            c.auth_log_in()
        self.c = c

    def logout(self):
        c, self.c = self.c, None
        if c is None:
            return
        try:
            c.auth_log_out()
        except qbittorrentapi.APIError as e:
            logger.debug("qBittorrent logout failed: %s", e)

    def _client(self):
        if self.c is None:
            self.login()
        return self.c

    def _call(self, name, **kwargs):
        c = self._client()
        with _qbit_errors():
            return getattr(c, name)(**kwargs)

    def _ping_call(self):
        return self._call("app_version")

    def get_tasks(self) -> List[Task]:
        res = []
        for raw in self._call("torrents_info"):
            t = schemas.validate(schemas.QBittorrentTorrent, dict(raw), "qBittorrent torrent")
            res.append(Task(
                id=t.hash, name=t.name, status=map_qbittorrent_state(t.state),
                progress=t.progress * 100, size=t.size,
                download_speed=t.dlspeed, upload_speed=t.upspeed, eta=t.eta,
                save_path=t.save_path, added_date=t.added_on * 1000,
                category=t.category or None, tags=_split_tags(t.tags),
            ))
        return res

    def _add(self, options: Optional[AddOptions], **source):
        o = self._options(options)
        kwargs: Dict[str, Any] = dict(source)
        if o.path:
            kwargs["save_path"] = o.path
        if o.label:
            kwargs["category"] = o.label
        if o.paused:
            kwargs["is_paused"] = True
        if o.sequential_download:
            kwargs["is_sequential_download"] = True
        if o.first_last_piece_priority:
            kwargs["is_first_last_piece_priority"] = True
        result = self._call("torrents_add", **kwargs)
        if isinstance(result, str) and result.strip() == "Fails.":
            raise ProtocolFault("qBittorrent rejected the torrent")

    def add_by_url(self, url, options=None): self._add(options, urls=url)
    def add_by_file(self, data, options=None): self._add(options, torrent_files=data)
    def pause(self, task_id): self._call("torrents_pause", torrent_hashes=task_id)
    def resume(self, task_id): self._call("torrents_resume", torrent_hashes=task_id)

    def remove(self, task_id, delete_data=False):
        self._call("torrents_delete", torrent_hashes=task_id, delete_files=self._normalize_delete_files(delete_data))

    def get_categories(self): return list(self._call("torrents_categories").keys())
    def set_category(self, task_id, category): self._call("torrents_set_category", category=category, torrent_hashes=task_id)
    def get_tags(self): return list(self._call("torrents_tags"))
    def add_tags(self, task_id, tags): self._call("torrents_add_tags", tags=list(tags), torrent_hashes=task_id)
    def remove_tags(self, task_id, tags): self._call("torrents_remove_tags", tags=list(tags), torrent_hashes=task_id)


# --- Trans ---
TRANSMISSION_STATUS = {
    0: TaskStatus.PAUSED,  # stopped
    1: TaskStatus.QUEUED,  # check pending
    2: TaskStatus.CHECKING,
    3: TaskStatus.QUEUED,  # download pending
    4: TaskStatus.DOWNLOADING,
    5: TaskStatus.QUEUED,  # seed pending
    6: TaskStatus.SEEDING,
}

TRANSMISSION_FIELDS = [
    "id", "hashString", "name", "status", "totalSize", "percentDone", "rateDownload",
    "rateUpload", "eta", "downloadDir", "addedDate", "error", "labels",
]


def map_transmission_status(status: int, error: int = 0) -> TaskStatus:
    if error:
        return TaskStatus.ERROR
    return TRANSMISSION_STATUS.get(status, TaskStatus.UNKNOWN)


@contextlib.contextmanager
def _transmission_errors():
    try:
        yield
    except TransmissionAuthError as e:
        raise AuthError(f"Transmission login failed: {e}") from e
    except (TransmissionConnectError, TransmissionTimeoutError) as e:
        raise TransportError(f"Transmission connection error: {e}") from e
    except TransmissionError as e:
        raise ProtocolFault(f"Transmission RPC error: {e}") from e


class TransmissionClient(BaseClient):
    """Transmission RPC. BiglyBT and Vuze Web Remote speak the same protocol."""

    type_name = "transmission"
    default_rpc_path = "/transmission/rpc"

    def __init__(self, config: ServerConfig):
        super().__init__(config)
        self.c = None

    def login(self):
        p = urlparse(normalize_url(self.config.hostname))
        path = p.path if p.path and p.path != "/" else self.default_rpc_path
        options = self.config.client_options or {}
        username, password = self.config.username, self.config.password
        # Transmission RPC credentials are plain HTTP basic auth.
        if not username and self.config.http_auth and self.config.http_auth.username:
            username, password = self.config.http_auth.username, self.config.http_auth.password
        if not options.get("verifySsl", True):
            logger.warning("%s: transmission-rpc always verifies certificates, ignoring verifySsl", self.config.name)
        with _transmission_errors():
            self.c = TransClient(
                protocol=p.scheme or "http", host=p.hostname, port=p.port or (443 if p.scheme == "https" else 9091),
                path=path, username=username or None, password=password or None,
                timeout=float(options.get("timeout", DEFAULT_TIMEOUT)),
            )

    def logout(self):
        self.c = None

    def _call(self, name, *args, **kwargs):
        if self.c is None:
            self.login()
        with _transmission_errors():
            return getattr(self.c, name)(*args, **kwargs)

    def _ping_call(self):
        return self._call("get_session")

    def get_tasks(self) -> List[Task]:
        res = []
        for raw in self._call("get_torrents", arguments=TRANSMISSION_FIELDS):
            t = schemas.validate(schemas.TransmissionTorrent, raw.fields, "Transmission torrent")
            labels = list(t.labels)
            res.append(Task(
                id=raw.fields.get("hashString") or str(t.id), name=t.name,
                status=map_transmission_status(t.status, t.error),
                progress=t.percentDone * 100, size=t.totalSize,
                download_speed=t.rateDownload, upload_speed=t.rateUpload, eta=t.eta,
                save_path=t.downloadDir, added_date=t.addedDate * 1000,
                category=labels[0] if labels else None, tags=labels,
            ))
        return res

    def _add(self, torrent, options):
        o = self._options(options)
        kwargs: Dict[str, Any] = {"paused": bool(o.paused)}
        if o.path:
            kwargs["download_dir"] = o.path
        if o.label:
            kwargs["labels"] = [o.label]
        self._call("add_torrent", torrent, **kwargs)

    def add_by_url(self, url, options=None): self._add(url, options)
    def add_by_file(self, data, options=None): self._add(bytes(data), options)
    def pause(self, task_id): self._call("stop_torrent", task_id)
    def resume(self, task_id): self._call("start_torrent", task_id)
    def remove(self, task_id, delete_data=False): self._call("remove_torrent", task_id, delete_data=self._normalize_delete_files(delete_data))

    def _labels(self, task_id) -> List[str]:
        t = self._call("get_torrent", task_id, arguments=["id", "labels"])
        return list(t.fields.get("labels") or [])

    def get_categories(self):
        seen = []
        for t in self.get_tasks():
            for label in t.tags:
                if label not in seen:
                    seen.append(label)
        return seen

    def get_tags(self): return self.get_categories()
    def set_category(self, task_id, category): self.add_tags(task_id, [category])

    def add_tags(self, task_id, tags):
        labels = self._labels(task_id)
        labels += [t for t in tags if t not in labels]
        self._call("change_torrent", task_id, labels=labels)

    def remove_tags(self, task_id, tags):
        labels = [t for t in self._labels(task_id) if t not in set(tags)]
        self._call("change_torrent", task_id, labels=labels)


class BiglyBTClient(TransmissionClient):
    type_name = "biglybt"


class VuzeRemoteUIClient(TransmissionClient):
    type_name = "vuze_remoteui"


# --- Deluge ---
DELUGE_STATES = {
    "downloading": TaskStatus.DOWNLOADING,
    "seeding": TaskStatus.SEEDING,
    "paused": TaskStatus.PAUSED,
    "checking": TaskStatus.CHECKING,
    "queued": TaskStatus.QUEUED,
    "error": TaskStatus.ERROR,
}

DELUGE_KEYS = [
    "name", "state", "progress", "eta", "download_payload_rate", "upload_payload_rate",
    "total_size", "save_path", "time_added", "label",
]


def map_deluge_state(state: str) -> TaskStatus:
    return DELUGE_STATES.get((state or "").lower(), TaskStatus.UNKNOWN)


def _not_authenticated(e: ProtocolFault) -> bool:
    return e.code == 1 or "Not authenticated" in (e.fault_message or "")


class DelugeClient(BaseClient):
    type_name = "deluge"

    def __init__(self, config: ServerConfig, session=None, retry=None):
        super().__init__(config)
        self.http = HttpClient.for_server(config, session=session, retry=retry)
        self.rpc = JsonRpcClient(self.http, "json")
        self.retry = retry
        self.logged_in = False

    def login(self):
        if not self.rpc.call("auth.login", [self.config.password]):
            raise AuthError("Deluge rejected the password")
        if not self.rpc.call("web.connected"):
            hosts = self.rpc.call("web.get_hosts") or []
            if not hosts:
                raise ProtocolFault("No Deluge daemons available")
            self.rpc.call("web.connect", [hosts[0][0]])
        self.logged_in = True

    def logout(self):
        if not self.logged_in:
            return
        self.logged_in = False
        try:
            self.rpc.call("auth.delete_session")
        except (TransportError, ProtocolFault) as e:
            logger.debug("Deluge logout failed: %s", e)

    def _call(self, method, params=None, retry=None):
        if not self.logged_in:
            self.login()
        try:
            return self.rpc.call(method, params, retry=retry)
        except ProtocolFault as e:
            if not _not_authenticated(e):
                raise
        logger.info("Deluge session expired, logging in again")
        self.login()
        return self.rpc.call(method, params, retry=retry)

    def _ping_call(self):
        return self._call("web.connected")

    def get_tasks(self) -> List[Task]:
        result = schemas.validate(schemas.DelugeUpdateUi, self._call("web.update_ui", [DELUGE_KEYS, {}], retry=self.retry),
                                  "Deluge update_ui")
        res = []
        for torrent_id, t in (result.torrents or {}).items():
            res.append(Task(
                id=torrent_id, name=t.name, status=map_deluge_state(t.state),
                progress=t.progress, size=t.total_size,
                download_speed=t.download_payload_rate, upload_speed=t.upload_payload_rate,
                eta=int(t.eta), save_path=t.save_path, added_date=int(t.time_added * 1000),
                category=t.label or None,
            ))
        return res

    def _add_options(self, o: AddOptions) -> Dict[str, Any]:
        opts: Dict[str, Any] = {"add_paused": bool(o.paused)}
        if o.path:
            opts["download_location"] = o.path
        if o.sequential_download:
            opts["sequential_download"] = True
        if o.first_last_piece_priority:
            opts["prioritize_first_last_pieces"] = True
        return opts

    def _label_new(self, torrent_id, label):
        if not torrent_id or not label:
            return
        try:
            self._call("label.set_torrent", [torrent_id, label])
        except ProtocolFault as e:
            logger.debug("Deluge label %s not applied: %s", label, e)

    def add_by_url(self, url, options=None):
        o = self._options(options)
        if url.startswith("magnet:"):
            torrent_id = self._call("core.add_torrent_magnet", [url, self._add_options(o)])
        else:
            torrent_id = self._call("core.add_torrent_url", [url, self._add_options(o), {}])
        self._label_new(torrent_id, o.label)

    def add_by_file(self, data, options=None):
        o = self._options(options)
        encoded = base64.b64encode(bytes(data)).decode("ascii")
        torrent_id = self._call("core.add_torrent_file", ["upload.torrent", encoded, self._add_options(o)])
        self._label_new(torrent_id, o.label)

    def pause(self, task_id): self._call("core.pause_torrent", [[task_id]])
    def resume(self, task_id): self._call("core.resume_torrent", [[task_id]])
    def remove(self, task_id, delete_data=False): self._call("core.remove_torrent", [task_id, self._normalize_delete_files(delete_data)])

    def get_categories(self):
        # Needs the Label plugin.
        try:
            return list(self._call("label.get_labels") or [])
        except ProtocolFault as e:
            logger.debug("Deluge labels unavailable: %s", e)
            return []

    def set_category(self, task_id, category): self._call("label.set_torrent", [task_id, category])


# --- Flood ---
def map_flood_state(states: Iterable[str]) -> TaskStatus:
    s = {str(x).lower() for x in states or ()}
    if "error" in s:
        return TaskStatus.ERROR
    if "downloading" in s:
        return TaskStatus.DOWNLOADING
    if "seeding" in s:
        return TaskStatus.SEEDING
    if "paused" in s or "stopped" in s:
        return TaskStatus.PAUSED
    if "checking" in s:
        return TaskStatus.CHECKING
    if "complete" in s:
        return TaskStatus.COMPLETED
    return TaskStatus.UNKNOWN


class FloodClient(BaseClient):
    type_name = "flood"

    def __init__(self, config: ServerConfig, session=None, retry=None):
        super().__init__(config)
        self.http = HttpClient.for_server(config, session=session, retry=retry)
        self.token = None
        self.logged_in = False

    def login(self):
        try:
            res = self.http.post("api/auth/authenticate",
                                 {"username": self.config.username, "password": self.config.password})
        except HttpError as e:
            if e.status in (401, 403, 422):
                raise AuthError(f"Flood login failed: {e}") from e
            raise
        if not isinstance(res, dict) or res.get("success") is False:
            raise AuthError("Flood rejected the credentials")
        # Newer Flood releases only set a cookie.
        self.token = res.get("token")
        if self.token:
            self.http.headers["Authorization"] = f"Bearer {self.token}"
        self.logged_in = True

    def logout(self):
        self.token = None
        self.logged_in = False
        self.http.headers.pop("Authorization", None)
        self.http.session.cookies.clear()

    def _request(self, endpoint, method="GET", body=None):
        if not self.logged_in:
            self.login()
        try:
            return self.http.request(endpoint, method, body=body)
        except HttpError as e:
            if e.status != 401:
                raise
        logger.info("Flood session expired, logging in again")
        self.logged_in = False
        self.login()
        return self.http.request(endpoint, method, body=body)

    def _ping_call(self):
        return self._request("api/torrents")

    def get_tasks(self) -> List[Task]:
        payload = schemas.validate(schemas.FloodTorrentList, self._request("api/torrents"), "Flood torrent list")
        res = []
        for t in payload.items():
            if t.progress is not None:
                progress = t.progress * 100
            else:
                progress = t.percentComplete or 0
            res.append(Task(
                id=t.hash, name=t.name, status=map_flood_state(t.state), progress=progress,
                size=t.sizeBytes, download_speed=t.downRate, upload_speed=t.upRate, eta=t.eta,
                save_path=t.directory, added_date=int((t.added or 0) * 1000),
                category=t.tags[0] if t.tags else None, tags=t.tags,
            ))
        return res

    def _add_body(self, o: AddOptions) -> Dict[str, Any]:
        body: Dict[str, Any] = {"start": not o.paused, "tags": [o.label] if o.label else []}
        if o.path:
            body["destination"] = o.path
        if o.sequential_download:
            body["isSequential"] = True
        return body

    def add_by_url(self, url, options=None):
        body = self._add_body(self._options(options))
        body["urls"] = [url]
        self._request("api/torrents/add-urls", "POST", body)

    def add_by_file(self, data, options=None):
        body = self._add_body(self._options(options))
        body["files"] = [base64.b64encode(bytes(data)).decode("ascii")]
        self._request("api/torrents/add-files", "POST", body)

    def pause(self, task_id): self._request("api/torrents/stop", "POST", {"hashes": [task_id]})
    def resume(self, task_id): self._request("api/torrents/start", "POST", {"hashes": [task_id]})
    def remove(self, task_id, delete_data=False): self._request("api/torrents/delete", "POST", {"hashes": [task_id], "deleteData": self._normalize_delete_files(delete_data)})

    def get_tags(self):
        try:
            tags = self._request("api/tags")
        except HttpError as e:
            logger.debug("Flood tag list unavailable: %s", e)
            return []
        return list(tags) if isinstance(tags, list) else []

    def _task_tags(self, task_id) -> List[str]:
        for t in self.get_tasks():
            if t.id == task_id:
                return list(t.tags)
        return []

    def _set_tags(self, task_id, tags):
        self._request("api/torrents/tags", "PATCH", {"hashes": [task_id], "tags": list(tags)})

    def add_tags(self, task_id, tags):
        current = self._task_tags(task_id)
        self._set_tags(task_id, current + [t for t in tags if t not in current])

    def remove_tags(self, task_id, tags):
        self._set_tags(task_id, [t for t in self._task_tags(task_id) if t not in set(tags)])

    def get_categories(self): return self.get_tags()
    def set_category(self, task_id, category): self.add_tags(task_id, [category])


# --- aria2 ---
ARIA2_STATES = {
    "active": TaskStatus.DOWNLOADING,
    "waiting": TaskStatus.QUEUED,
    "paused": TaskStatus.PAUSED,
    "error": TaskStatus.ERROR,
    "complete": TaskStatus.COMPLETED,
    "removed": TaskStatus.UNKNOWN,
}

ARIA2_KEYS = ["gid", "status", "totalLength", "completedLength", "uploadLength", "downloadSpeed", "uploadSpeed", "dir"]
ARIA2_PAGE = 1000


def map_aria2_status(status: str) -> TaskStatus:
    return ARIA2_STATES.get(status, TaskStatus.UNKNOWN)


class Aria2Client(BaseClient):
    """aria2 JSON-RPC. The status call has no display name or ETA, so tasks
    report ``"Unknown"`` and ``0`` for them."""

    type_name = "aria2"

    def __init__(self, config: ServerConfig, session=None, retry=None):
        super().__init__(config)
        self.http = HttpClient.for_server(config, base_url=normalize_url(config.hostname), session=session, retry=retry)
        self.rpc = JsonRpcClient(self.http)
        self.retry = retry
        self.secret = config.password or str(config.client_options.get("secret") or "")

    def _call(self, method, params=(), retry=None):
        params = list(params)
        if self.secret:
            params.insert(0, f"token:{self.secret}")
        try:
            return self.rpc.call(method, params, retry=retry)
        except ProtocolFault as e:
            if "Unauthorized" in (e.fault_message or ""):
                raise AuthError("aria2 rejected the RPC secret") from e
            raise

    def login(self): self._call("aria2.getVersion")
    def logout(self): pass
    def _ping_call(self): return self._call("aria2.getVersion")

    def get_tasks(self) -> List[Task]:
        calls = [
            ("aria2.tellActive", [ARIA2_KEYS]),
            ("aria2.tellWaiting", [0, ARIA2_PAGE, ARIA2_KEYS]),
            ("aria2.tellStopped", [0, ARIA2_PAGE, ARIA2_KEYS]),
        ]
        with ThreadPoolExecutor(max_workers=len(calls)) as pool:
            futures = [pool.submit(self._call, method, params, self.retry) for method, params in calls]
            results = [f.result() for f in futures]

        res = []
        for batch in results:
            if not isinstance(batch, list):
                raise ValidationError(f"aria2 returned {type(batch).__name__} instead of a task list")
            for raw in batch:
                t = schemas.validate(schemas.Aria2Status, raw, "aria2 status")
                total = schemas.parse_decimal(t.totalLength)
                completed = schemas.parse_decimal(t.completedLength)
                res.append(Task(
                    id=t.gid, name="Unknown", status=map_aria2_status(t.status),
                    progress=(completed / total * 100) if total else 0, size=total,
                    download_speed=schemas.parse_decimal(t.downloadSpeed),
                    upload_speed=schemas.parse_decimal(t.uploadSpeed),
                    eta=0, save_path=t.dir,
                ))
        return res

    def _aria_options(self, options) -> Dict[str, str]:
        o = self._options(options)
        opts = {}
        if o.path:
            opts["dir"] = o.path
        if o.paused:
            opts["pause"] = "true"
        if o.first_last_piece_priority:
            opts["bt-prioritize-piece"] = "head,tail"
        return opts

    def add_by_url(self, url, options=None): self._call("aria2.addUri", [[url], self._aria_options(options)])

    def add_by_file(self, data, options=None):
        self._call("aria2.addTorrent", [base64.b64encode(bytes(data)).decode("ascii"), [], self._aria_options(options)])

    def pause(self, task_id): self._call("aria2.pause", [task_id])
    def resume(self, task_id): self._call("aria2.unpause", [task_id])

    def remove(self, task_id, delete_data=False):
        # aria2 never deletes files; delete_data is ignored.
        self._call("aria2.remove", [task_id])
        try:
            self._call("aria2.removeDownloadResult", [task_id])
        except (TransportError, ProtocolFault) as e:
            logger.debug("aria2 removeDownloadResult for %s failed: %s", task_id, e)
