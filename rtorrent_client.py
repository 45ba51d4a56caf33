import logging
import socket
from typing import Any, List, Optional, Sequence
from urllib.parse import quote, unquote, urlparse

from clients import BaseClient
from errors import AuthError, HttpError, TransportError, ValidationError
from http_client import HttpClient, normalize_url
from models import ServerConfig, Task, TaskStatus
from rpc_codecs import XmlRpcCodec, multicall_params, unwrap_multicall

logger = logging.getLogger(__name__)

RUTORRENT_RPC_PATH = "/plugins/httprpc/action.php"

# d.multicall2 columns. Rows are indexed positionally, so this order and the
# indices below must change together.
COLUMNS = [
    "d.hash=", "d.name=", "d.size_bytes=", "d.bytes_done=", "d.up.rate=", "d.down.rate=",
    "d.complete=", "d.state=", "d.is_active=", "d.custom1=", "d.is_hash_checking=",
    "d.directory=", "d.message=",
]
(HASH, NAME, SIZE, DONE, UP_RATE, DOWN_RATE, COMPLETE, STATE, ACTIVE, LABEL, HASHING,
 DIRECTORY, MESSAGE) = range(len(COLUMNS))


def rpc_url(hostname: str) -> str:
    url = normalize_url(hostname)
    if url.endswith("/RPC2") or "action.php" in url:
        return url
    return url + RUTORRENT_RPC_PATH


# rTorrent leaves this message behind once every tracker has been announced to.
IDLE_TRACKER_MESSAGE = "Tracker: [Tried all trackers.]"


def map_rtorrent_state(state: int, active: int, complete: int, hashing: int, message: str = "") -> TaskStatus:
    if hashing:
        return TaskStatus.CHECKING
    if message and message != IDLE_TRACKER_MESSAGE:
        return TaskStatus.ERROR
    if not state or not active:
        return TaskStatus.PAUSED
    if complete:
        return TaskStatus.SEEDING
    return TaskStatus.DOWNLOADING


def _int(v) -> int:
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"rTorrent column is not numeric: {v!r}") from e


class SCGITransport:
    """Raw SCGI over TCP, for rTorrent's ``network.scgi.open_port``."""

    def __init__(self, host, port, timeout=10):
        self.host = host
        self.port = port
        self.timeout = timeout

    def request(self, body: str) -> str:
        payload = body.encode("utf-8")
        headers = {
            "CONTENT_LENGTH": str(len(payload)),
            "SCGI": "1",
            "REQUEST_METHOD": "POST",
            "REQUEST_URI": "/RPC2",
        }
        content = b"".join(k.encode("ascii") + b"\0" + v.encode("ascii") + b"\0" for k, v in headers.items())
        netstring = str(len(content)).encode("ascii") + b":" + content + b","

        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout) as sock:
                sock.sendall(netstring + payload)
                chunks = []
                while True:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    chunks.append(chunk)
        except OSError as e:
            raise TransportError(f"SCGI {self.host}:{self.port} failed: {e}") from e

        # The response carries minimal CGI headers before the XML body.
        text = b"".join(chunks).decode("utf-8", errors="replace")
        for sep in ("\r\n\r\n", "\n\n"):
            if sep in text:
                return text.split(sep, 1)[1]
        return text


class RTorrentClient(BaseClient):
    """rTorrent over XML-RPC, through ruTorrent's httprpc plugin, a plain
    ``/RPC2`` mount, or ``scgi://host:port``."""

    type_name = "rutorrent"

    def __init__(self, config: ServerConfig, session=None, retry=None):
        super().__init__(config)
        self.retry = retry
        self.scgi: Optional[SCGITransport] = None
        self.http: Optional[HttpClient] = None
        p = urlparse(config.hostname)
        if p.scheme == "scgi":
            self.scgi = SCGITransport(p.hostname, p.port or 5000)
        else:
            kwargs = {"auth": (config.username, config.password)} if config.username else {}
            self.http = HttpClient.for_server(config, base_url=rpc_url(config.hostname), session=session,
                                              retry=retry, **kwargs)

    def call(self, method: str, params: Sequence[Any] = (), retry=None) -> Any:
        body = XmlRpcCodec.create_call(method, params)
        if self.scgi is not None:
            return XmlRpcCodec.parse_response(self.scgi.request(body))
        try:
            text = self.http.post(body=body, headers={"Content-Type": "text/xml"}, retry=retry)
        except HttpError as e:
            if e.status in (401, 403):
                raise AuthError(f"rTorrent rejected the credentials: {e}") from e
            raise
        return XmlRpcCodec.parse_response(text)

    def multicall(self, calls) -> List[Any]:
        return unwrap_multicall(self.call("system.multicall", multicall_params(calls)))

    def login(self): self.call("system.client_version")
    def logout(self): pass
    def _ping_call(self): return self.call("system.client_version")

    def get_tasks(self) -> List[Task]:
        rows = self.call("d.multicall2", ["", "main"] + COLUMNS, retry=self.retry)
        if not isinstance(rows, list):
            raise ValidationError("d.multicall2 did not return an array")
        res = []
        for row in rows:
            if not isinstance(row, list) or len(row) != len(COLUMNS):
                raise ValidationError(f"rTorrent row has unexpected shape: {row!r}")
            size, done, down = _int(row[SIZE]), _int(row[DONE]), _int(row[DOWN_RATE])
            label = unquote(row[LABEL] or "")
            res.append(Task(
                id=row[HASH], name=row[NAME],
                status=map_rtorrent_state(_int(row[STATE]), _int(row[ACTIVE]), _int(row[COMPLETE]), _int(row[HASHING]),
                                          str(row[MESSAGE] or "")),
                progress=(done / size * 100) if size else 0, size=size,
                download_speed=down, upload_speed=_int(row[UP_RATE]),
                eta=(size - done) // down if down > 0 else -1,
                save_path=row[DIRECTORY], category=label or None,
                tags=[label] if label else [],
            ))
        return res

    def _load_commands(self, options) -> List[str]:
        o = self._options(options)
        commands = []
        if o.path:
            commands.append(f"d.directory.set={o.path}")
        if o.label:
            commands.append(f"d.custom1.set={quote(o.label)}")
        return commands

    def add_by_url(self, url, options=None):
        paused = self._options(options).paused
        self.call("load.normal" if paused else "load.start", ["", url] + self._load_commands(options))

    def add_by_file(self, data, options=None):
        paused = self._options(options).paused
        self.call("load.raw" if paused else "load.raw_start", ["", bytes(data)] + self._load_commands(options))

    def pause(self, task_id): self.multicall([("d.stop", [task_id]), ("d.close", [task_id])])
    def resume(self, task_id): self.multicall([("d.open", [task_id]), ("d.start", [task_id])])

    def remove(self, task_id, delete_data=False):
        # rTorrent has no delete-with-data call; the plain erase is issued either way.
        if self._normalize_delete_files(delete_data):
            logger.debug("rTorrent cannot delete data for %s; erasing only", task_id)
        self.call("d.erase", [task_id])

    def get_categories(self):
        seen = []
        for t in self.get_tasks():
            if t.category and t.category not in seen:
                seen.append(t.category)
        return seen

    def set_category(self, task_id, category): self.call("d.custom1.set", [task_id, quote(category)])
