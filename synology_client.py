"""Synology Download Station (DSM Web API, ``sid`` session)."""

import logging
from typing import Any, Dict, List, Optional

import schemas
from clients import BaseClient
from errors import AuthError, ProtocolFault, TransportError
from http_client import HttpClient
from models import ServerConfig, Task, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_PATHS = {
    "auth": "webapi/auth.cgi",
    "task": "webapi/DownloadStation/task.cgi",
    "info": "webapi/DownloadStation/info.cgi",
    "entry": "webapi/entry.cgi",
}
QUERY_PATH = "webapi/query.cgi"

AUTH_API = "SYNO.API.Auth"
TASK_API = "SYNO.DownloadStation.Task"
INFO_API = "SYNO.DownloadStation.Info"
SESSION_NAME = "DownloadStation"

AUTH_ERRORS = {
    400: "No such account or incorrect password",
    401: "Account disabled",
    402: "Permission denied",
    403: "2-factor authentication code required",
    404: "2-factor authentication failed",
    406: "Enforce 2FA required",
    407: "Blocked IP source",
    408: "Account is blocked due to too many failed attempts",
    409: "Network failure",
    410: "SID not found",
    411: "Account expired",
}

TASK_ERRORS = {
    400: "File upload failed",
    401: "Max number of tasks reached",
    402: "Destination denied",
    403: "Destination does not exist",
    404: "Invalid task ID",
    405: "Invalid task action",
    406: "No default destination",
    407: "Set destination failed",
    408: "File does not exist",
}

# Common DSM codes meaning the sid is no longer valid.
SESSION_ERRORS = {105, 106, 107, 119}

# Download Station reports either numeric codes or their names.
SYNOLOGY_STATUS = {
    1: TaskStatus.QUEUED,  # waiting
    2: TaskStatus.DOWNLOADING,
    3: TaskStatus.PAUSED,
    4: TaskStatus.COMPLETED,  # finishing
    5: TaskStatus.COMPLETED,  # finished
    6: TaskStatus.CHECKING,  # hash_checking
    7: TaskStatus.SEEDING,
    8: TaskStatus.QUEUED,  # filehosting_waiting
    9: TaskStatus.CHECKING,  # extracting
    10: TaskStatus.ERROR,
}
SYNOLOGY_STATUS_NAMES = {
    "waiting": 1, "downloading": 2, "paused": 3, "finishing": 4, "finished": 5,
    "hash_checking": 6, "seeding": 7, "filehosting_waiting": 8, "extracting": 9, "error": 10,
}


def map_synology_status(status: Any) -> TaskStatus:
    if isinstance(status, str) and not status.isdigit():
        if status.startswith("error"):
            return TaskStatus.ERROR
        code = SYNOLOGY_STATUS_NAMES.get(status)
    else:
        try:
            code = int(status)
        except (TypeError, ValueError):
            code = None
    return SYNOLOGY_STATUS.get(code, TaskStatus.UNKNOWN)


class SynologyClient(BaseClient):
    type_name = "synology"

    def __init__(self, config: ServerConfig, session=None, retry=None):
        super().__init__(config)
        self.http = HttpClient.for_server(config, session=session, retry=retry)
        self.sid: Optional[str] = None
        self.synotoken: Optional[str] = None
        self.paths: Dict[str, str] = {}

    def _path(self, name):
        return self.paths.get(name) or DEFAULT_PATHS[name]

    def _discover(self):
        try:
            res = self.http.get(QUERY_PATH, params={
                "api": "SYNO.API.Info", "version": "1", "method": "query",
                "query": f"{AUTH_API},{TASK_API},{INFO_API}",
            })
        except TransportError as e:
            logger.warning("Synology API discovery failed, using defaults: %s", e)
            return
        if not isinstance(res, dict) or not res.get("success"):
            logger.warning("Synology API discovery returned no data, using defaults")
            return
        data = res.get("data") or {}
        for key, api in (("auth", AUTH_API), ("task", TASK_API), ("info", INFO_API)):
            if isinstance(data.get(api), dict) and data[api].get("path"):
                self.paths[key] = "webapi/" + data[api]["path"]

    def login(self):
        self._discover()
        options = self.config.client_options or {}
        params = {
            "api": AUTH_API, "version": "6", "method": "login",
            "account": self.config.username, "passwd": self.config.password,
            "session": SESSION_NAME, "format": "sid",
            "enable_syno_token": "yes", "enable_device_token": "yes",
        }
        if options.get("otpCode"):
            params["otp_code"] = str(options["otpCode"])
        if options.get("deviceToken"):
            params["device_id"] = str(options["deviceToken"])

        res = schemas.validate(schemas.SynologyResponse, self.http.get(self._path("auth"), params=params),
                               "Synology login")
        if not res.success:
            code = res.error_code or 0
            raise AuthError(AUTH_ERRORS.get(code, f"Authentication failed (code: {code})"))
        data = res.data or {}
        self.sid = data.get("sid")
        if not self.sid:
            raise AuthError("Synology login returned no session id")
        self.synotoken = data.get("synotoken")
        if data.get("did") and not options.get("deviceToken"):
            # Held on this transient copy; persisting it is up to the caller.
            self.config.client_options["deviceToken"] = data["did"]
            logger.info("Synology issued a device token for %s", self.config.name)

    def logout(self):
        if not self.sid:
            return
        sid, self.sid, self.synotoken = self.sid, None, None
        try:
            self.http.get(self._path("auth"), params={
                "api": AUTH_API, "version": "6", "method": "logout", "session": SESSION_NAME, "_sid": sid,
            })
        except TransportError as e:
            logger.debug("Synology logout failed: %s", e)

    def _api(self, path_name, api, method, params=None, files=None, relogin=True):
        if not self.sid:
            self.login()
        fields = {"api": api, "version": "1", "method": method, "_sid": self.sid}
        fields.update(params or {})
        if files:
            raw = self.http.post(self._path(path_name), form=fields, files=files)
        else:
            raw = self.http.get(self._path(path_name), params=fields)
        res = schemas.validate(schemas.SynologyResponse, raw, f"Synology {method}")
        if res.success:
            return res.data
        code = res.error_code or 0
        if code in SESSION_ERRORS and relogin:
            logger.info("Synology session expired (code %s), logging in again", code)
            self.sid = None
            return self._api(path_name, api, method, params, files, relogin=False)
        raise ProtocolFault(TASK_ERRORS.get(code, f"Task operation failed (code: {code})"), code=code)

    def _task(self, method, params=None, files=None):
        return self._api("task", TASK_API, method, params, files)

    def _ping_call(self):
        return self._api("info", INFO_API, "getinfo")

    def get_tasks(self) -> List[Task]:
        data = schemas.validate(schemas.SynologyTaskList, self._task("list", {"additional": "detail,transfer,file"}),
                                "Synology task list")
        res = []
        for t in data.tasks:
            transfer = (t.additional.transfer if t.additional else None) or schemas.SynologyTransfer()
            detail = (t.additional.detail if t.additional else None) or schemas.SynologyDetail()
            eta = -1
            if transfer.speed_download > 0:
                eta = max(t.size - transfer.size_downloaded, 0) // transfer.speed_download
            res.append(Task(
                id=t.id, name=t.title, status=map_synology_status(t.status),
                progress=(transfer.size_downloaded / t.size * 100) if t.size > 0 else 0, size=t.size,
                download_speed=transfer.speed_download, upload_speed=transfer.speed_upload, eta=eta,
                save_path=detail.destination, added_date=detail.create_time * 1000,
            ))
        return res

    def add_by_url(self, url, options=None):
        o = self._options(options)
        params = {"uri": url}
        if o.path:
            params["destination"] = o.path
        self._task("create", params)

    def add_by_file(self, data, options=None):
        o = self._options(options)
        params = {}
        if o.path:
            params["destination"] = o.path
        self._task("create", params, files={"file": ("upload.torrent", bytes(data), "application/x-bittorrent")})

    def pause(self, task_id): self._task("pause", {"id": task_id})
    def resume(self, task_id): self._task("resume", {"id": task_id})

    def remove(self, task_id, delete_data=False):
        # Download Station cannot delete downloaded files through this API.
        if self._normalize_delete_files(delete_data):
            logger.debug("Synology cannot delete data for %s; removing task only", task_id)
        self._task("delete", {"id": task_id, "force_complete": "false"})
