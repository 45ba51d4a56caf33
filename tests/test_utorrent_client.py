import pytest

from errors import AuthError, ValidationError
from models import AddOptions, ServerConfig, TaskStatus
from utorrent_client import UTorrentClient, map_utorrent_status, scrape_token

from http_fakes import FakeSession, json_response, text_response

TOKEN_PAGE = '<html><div id="token" style="display:none;">{}</div></html>'


def _row(hash_, flags, permille, label=""):
    row = [hash_, flags, f"name-{hash_}", 1000, permille, 0, 0, 0, 5, 50, 30, label]
    row += [None] * (23 - len(row)) + [1700000000, "", "", "C:\\Downloads"]
    return row


class UTorrentServer:
    def __init__(self):
        self.tokens = ["TOKEN1"]
        self.valid = "TOKEN1"
        self.fetches = 0

    def __call__(self, call):
        if call.url.endswith("gui/token.html"):
            self.fetches += 1
            return text_response(TOKEN_PAGE.format(self.valid))
        if call.param("token") != self.valid:
            return text_response("invalid request", status_code=400, reason="Bad Request")
        if call.param("list") == "1":
            return json_response({
                "build": 46406,
                "label": [["movies", 1], ["linux", 2]],
                "torrents": [_row("A", 1 | 8, 500, "linux"), _row("B", 1 | 8, 1000), _row("C", 8 | 32, 1000)],
            })
        return json_response({"build": 46406})


def _client(server, **kw):
    defaults = dict(name="ut", type="utorrent", hostname="ut.lan:8080", username="admin", password="pw")
    defaults.update(kw)
    session = FakeSession(handler=server)
    return UTorrentClient(ServerConfig(**defaults), session=session), session


def test_scrape_token():
    assert scrape_token(TOKEN_PAGE.format(" abc ")) == "abc"
    assert scrape_token("<html></html>") is None
    assert scrape_token({}) is None


def test_get_tasks_fetches_token_first():
    server = UTorrentServer()
    client, session = _client(server)
    a, b, c = client.get_tasks()
    assert session.calls[0].url == "http://ut.lan:8080/gui/token.html"
    assert session.calls[1].url == "http://ut.lan:8080/gui/"
    assert session.calls[1].param("token") == "TOKEN1"
    assert session.calls[1].param("t")
    assert session.calls[1].kwargs["auth"] == ("admin", "pw")

    assert a.status is TaskStatus.DOWNLOADING
    assert a.progress == 50.0
    assert a.category == "linux"
    assert a.added_date == 1700000000000
    assert a.save_path == "C:\\Downloads"
    assert b.status is TaskStatus.SEEDING
    assert c.status is TaskStatus.PAUSED


def test_expired_token_is_refreshed_once():
    server = UTorrentServer()
    client, session = _client(server)
    client.login()
    server.valid = "TOKEN2"
    assert len(client.get_tasks()) == 3
    assert server.fetches == 2
    assert client.token == "TOKEN2"


def test_missing_token_is_auth_error():
    client, _ = _client(lambda call: text_response("<html>no token here</html>"))
    with pytest.raises(AuthError):
        client.login()


def test_unauthorized_token_page():
    client, _ = _client(lambda call: text_response("", status_code=401, reason="Unauthorized"))
    with pytest.raises(AuthError):
        client.login()


def test_short_rows_are_validation_errors():
    def handler(call):
        if call.url.endswith("token.html"):
            return text_response(TOKEN_PAGE.format("T"))
        return json_response({"torrents": [["A", 1, "x"]]})

    client, _ = _client(handler)
    with pytest.raises(ValidationError):
        client.get_tasks()


def test_actions():
    server = UTorrentServer()
    client, session = _client(server)
    client.add_by_url("magnet:?xt=urn:btih:x", AddOptions(path="D:\\tv"))
    assert session.calls[-1].param("action") == "add-url"
    assert session.calls[-1].param("s") == "magnet:?xt=urn:btih:x"
    assert session.calls[-1].param("path") == "D:\\tv"

    client.remove("A", delete_data=True)
    assert session.calls[-1].param("action") == "removedata"

    client.set_category("A", "movies")
    assert session.calls[-1].param("s") == "label"
    assert session.calls[-1].param("v") == "movies"

    client.add_by_file(b"d4:info")
    upload = session.calls[-1]
    assert upload.method == "POST"
    assert upload.param("action") == "add-file"
    assert upload.kwargs["files"]["torrent_file"][1] == b"d4:info"

    assert client.get_categories() == ["movies", "linux"]


def test_remove_tags_clears_matching_label():
    client, session = _client(UTorrentServer())
    client.remove_tags("A", ["movies"])
    assert session.calls[-1].param("list") == "1"

    client.remove_tags("A", ["linux"])
    assert session.calls[-1].param("action") == "setprops"
    assert session.calls[-1].param("hash") == "A"
    assert session.calls[-1].param("v") == ""

def test_status_flags():
    assert map_utorrent_status(16 | 1, 100) is TaskStatus.ERROR
    assert map_utorrent_status(2, 0) is TaskStatus.CHECKING
    assert map_utorrent_status(64, 0) is TaskStatus.QUEUED
    assert map_utorrent_status(8, 1000) is TaskStatus.COMPLETED
    assert map_utorrent_status(8, 400) is TaskStatus.PAUSED
    assert map_utorrent_status(0, 0) is TaskStatus.UNKNOWN
