import logging
import threading
import time
from typing import Any, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

import schemas
from clients import BaseClient
from errors import AuthError, HttpError, ValidationError
from http_client import HttpClient
from models import ServerConfig, Task, TaskStatus

logger = logging.getLogger(__name__)

# list=1 rows are positional arrays. These indices follow the uTorrent 3.x
# WebUI column order; an upstream reorder breaks the mapping below.
HASH, STATUS, NAME, SIZE, PERCENT_PROGRESS = 0, 1, 2, 3, 4
UPSPEED, DOWNSPEED, ETA, LABEL = 8, 9, 10, 11
ADDED_ON, SAVE_PATH = 23, 26
MIN_COLUMNS = LABEL + 1

STARTED, CHECKING, ERROR, PAUSED, QUEUED, CHECKED = 1, 2, 16, 32, 64, 8


def map_utorrent_status(flags: int, permille: int) -> TaskStatus:
    if flags & ERROR:
        return TaskStatus.ERROR
    if flags & PAUSED:
        return TaskStatus.PAUSED
    if flags & CHECKING:
        return TaskStatus.CHECKING
    if flags & STARTED:
        return TaskStatus.SEEDING if permille >= 1000 else TaskStatus.DOWNLOADING
    if flags & QUEUED:
        return TaskStatus.QUEUED
    if flags & CHECKED:
        return TaskStatus.COMPLETED if permille >= 1000 else TaskStatus.PAUSED
    return TaskStatus.UNKNOWN


def scrape_token(html: Any) -> Optional[str]:
    if not isinstance(html, str):
        return None
    soup = BeautifulSoup(html, "html.parser")
    div = soup.find("div", id="token")
    if div is None:
        return None
    return div.get_text(strip=True) or None


class UTorrentClient(BaseClient):
    """uTorrent WebUI. Every request carries the scraped token and a
    cache-busting ``t`` parameter; an expired token is refreshed once."""

    type_name = "utorrent"

    def __init__(self, config: ServerConfig, session=None, retry=None):
        super().__init__(config)
        kwargs = {"auth": (config.username, config.password)} if config.username else {}
        self.http = HttpClient.for_server(config, session=session, retry=retry, **kwargs)
        self.token: Optional[str] = None
        self._token_lock = threading.Lock()

    def _fetch_token(self) -> str:
        try:
            html = self.http.get("gui/token.html", params={"t": str(int(time.time() * 1000))})
        except HttpError as e:
            if e.status in (401, 403):
                raise AuthError(f"uTorrent rejected the credentials: {e}") from e
            raise
        token = scrape_token(html)
        if not token:
            raise AuthError("Failed to retrieve uTorrent token")
        return token

    def login(self):
        with self._token_lock:
            self.token = self._fetch_token()

    def logout(self):
        with self._token_lock:
            self.token = None

    def _current_token(self) -> str:
        with self._token_lock:
            if self.token is None:
                self.token = self._fetch_token()
            return self.token

    def _refresh_token(self, stale: str) -> str:
        with self._token_lock:
            # Another thread may already have refreshed it.
            if self.token is None or self.token == stale:
                self.token = self._fetch_token()
            return self.token

    def _send(self, token, params, method, files):
        query = list(params) + [("token", token), ("t", str(int(time.time() * 1000)))]
        return self.http.request("gui/", method, params=query, files=files)

    def _call(self, params: Sequence[Tuple[str, str]], method="GET", files=None):
        token = self._current_token()
        try:
            return self._send(token, params, method, files)
        except HttpError as e:
            # The WebUI answers 400 "invalid request" for a missing or expired token.
            if e.status not in (300, 400, 401):
                raise
        logger.info("uTorrent token rejected, fetching a new one")
        return self._send(self._refresh_token(token), params, method, files)

    def _action(self, action, task_id, *extra):
        return self._call([("action", action), ("hash", task_id)] + list(extra))

    def _ping_call(self):
        return self._fetch_token()

    def _list(self) -> schemas.UTorrentList:
        return schemas.validate(schemas.UTorrentList, self._call([("list", "1")]), "uTorrent list")

    def get_tasks(self) -> List[Task]:
        res = []
        for row in self._list().torrents:
            if len(row) < MIN_COLUMNS:
                raise ValidationError(f"uTorrent row has {len(row)} columns, expected at least {MIN_COLUMNS}")
            try:
                flags, permille = int(row[STATUS]), int(row[PERCENT_PROGRESS])
                label = str(row[LABEL] or "")
                res.append(Task(
                    id=str(row[HASH]), name=str(row[NAME]), status=map_utorrent_status(flags, permille),
                    progress=permille / 10, size=int(row[SIZE]),
                    download_speed=int(row[DOWNSPEED]), upload_speed=int(row[UPSPEED]), eta=int(row[ETA]),
                    save_path=str(row[SAVE_PATH]) if len(row) > SAVE_PATH else "",
                    added_date=int(row[ADDED_ON]) * 1000 if len(row) > ADDED_ON else 0,
                    category=label or None, tags=[label] if label else [],
                ))
            except (TypeError, ValueError) as e:
                raise ValidationError(f"uTorrent row has unexpected types: {row!r}") from e
        return res

    def add_by_url(self, url, options=None):
        o = self._options(options)
        params = [("action", "add-url"), ("s", url)]
        if o.path:
            params.append(("path", o.path))
        self._call(params)

    def add_by_file(self, data, options=None):
        o = self._options(options)
        params = [("action", "add-file")]
        if o.path:
            params.append(("path", o.path))
        files = {"torrent_file": ("upload.torrent", bytes(data), "application/x-bittorrent")}
        self._call(params, method="POST", files=files)

    def pause(self, task_id): self._action("stop", task_id)
    def resume(self, task_id): self._action("start", task_id)
    def remove(self, task_id, delete_data=False): self._action("removedata" if self._normalize_delete_files(delete_data) else "remove", task_id)

    def get_categories(self):
        return [str(entry[0]) for entry in self._list().label if entry]

    def set_category(self, task_id, category): self._action("setprops", task_id, ("s", "label"), ("v", category))
    def get_tags(self): return self.get_categories()

    def add_tags(self, task_id, tags):
        # Only one label per torrent; the first tag wins.
        if tags:
            self.set_category(task_id, tags[0])

    def remove_tags(self, task_id, tags):
        current = next((t.category for t in self.get_tasks() if t.id == task_id), None)
        if current and current in tags:
            self.set_category(task_id, "")
