import threading

from client_factory import ClientFactory
from errors import TransportError
from models import ServerConfig, Task, TaskStatus
from poller import TorrentPoller
from torrent_differ import REPLACE

from http_fakes import FakeSession, json_response, text_response


class ScriptedClient:
    def __init__(self, snapshots):
        self.snapshots = list(snapshots)
        self.logged_out = False

    def get_tasks(self):
        item = self.snapshots.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def logout(self):
        self.logged_out = True


class ScriptedFactory:
    def __init__(self, scripts):
        self.scripts = scripts
        self.created = []
        self._lock = threading.Lock()

    def create(self, config):
        with self._lock:
            self.created.append(config.name)
        return self.scripts[config.name]


def _server(name):
    return ServerConfig(name=name, type="deluge", hostname=f"http://{name}")


def _task(progress):
    return Task("h", "ubuntu.iso", status=TaskStatus.DOWNLOADING, progress=progress)


def test_first_poll_adds_everything_then_diffs():
    client = ScriptedClient([[_task(10)], [_task(10)], [_task(40)]])
    poller = TorrentPoller(ScriptedFactory({"a": client}))

    first = poller.poll_server(_server("a"))
    assert first.ok
    assert [p.op for p in first.patches] == ["add"]

    assert not poller.poll_server(_server("a")).has_changes

    third = poller.poll_server(_server("a"))
    assert [(p.op, p.path, p.value) for p in third.patches] == [(REPLACE, "/0/progress", 40.0)]
    assert poller.snapshot("a") == [_task(40)]


def test_failed_poll_keeps_previous_snapshot_and_recreates_client():
    client = ScriptedClient([[_task(10)], TransportError("down"), [_task(10)]])
    factory = ScriptedFactory({"a": client})
    poller = TorrentPoller(factory)

    poller.poll_server(_server("a"))
    failed = poller.poll_server(_server("a"))
    assert not failed.ok
    assert isinstance(failed.error, TransportError)
    assert poller.snapshot("a") == [_task(10)]

    recovered = poller.poll_server(_server("a"))
    assert recovered.ok and not recovered.has_changes
    assert factory.created == ["a", "a"]


def test_servers_are_polled_independently():
    factory = ScriptedFactory({
        "a": ScriptedClient([[_task(10)]]),
        "b": ScriptedClient([TransportError("refused")]),
    })
    results = TorrentPoller(factory, max_workers=2).poll([_server("a"), _server("b")])
    assert results["a"].ok and results["a"].tasks == [_task(10)]
    assert not results["b"].ok


def test_close_logs_out_clients():
    client = ScriptedClient([[]])
    poller = TorrentPoller(ScriptedFactory({"a": client}))
    poller.poll([_server("a")])
    poller.close()
    assert client.logged_out


def test_reset_forgets_snapshot():
    client = ScriptedClient([[_task(1)], [_task(1)]])
    poller = TorrentPoller(ScriptedFactory({"a": client}))
    poller.poll_server(_server("a"))
    poller.reset("a")
    assert poller.snapshot("a") == []
    assert poller.poll_server(_server("a")).has_changes


def test_flood_server_authenticates_before_listing():
    torrents = {"torrents": {"H1": {"hash": "H1", "name": "arch.iso", "status": ["downloading"],
                                    "percentComplete": 30, "sizeBytes": 100}}}

    def handler(call):
        if call.url.endswith("api/auth/authenticate"):
            return json_response({"success": True, "token": "jwt"})
        if call.kwargs["headers"].get("Authorization") != "Bearer jwt":
            return text_response("Unauthorized", status_code=401, reason="Unauthorized")
        return json_response(torrents)

    session = FakeSession(handler=handler)
    poller = TorrentPoller(ClientFactory(session_factory=lambda: session))
    flood = ServerConfig(name="flood", type="flood", hostname="http://flood:3000", username="u", password="p")

    first = poller.poll_server(flood)
    assert first.ok
    assert [t.id for t in first.tasks] == ["H1"]
    assert not poller.poll_server(flood).has_changes
    urls = [c.url for c in session.calls]
    assert urls == ["http://flood:3000/api/auth/authenticate",
                    "http://flood:3000/api/torrents",
                    "http://flood:3000/api/torrents"]
