import math

from models import AddOptions, HttpAuth, ServerConfig, Task, TaskStatus


def test_task_clamps_progress_and_coerces_status():
    assert Task("a", "x", progress=150).progress == 100.0
    assert Task("a", "x", progress=-3).progress == 0.0
    assert Task("a", "x", progress=math.nan).progress == 0.0
    assert Task("a", "x", status="seeding").status is TaskStatus.SEEDING
    assert Task("a", "x", status="weird").status is TaskStatus.UNKNOWN


def test_task_tags_are_deduplicated_in_order():
    assert Task("a", "x", tags=["b", "a", "b", " "]).tags == ("b", "a")


def test_task_dict_roundtrip():
    task = Task("h", "n", status=TaskStatus.PAUSED, progress=12.5, tags=("x",), category="linux")
    data = task.to_dict()
    assert data["status"] == "paused"
    assert data["tags"] == ["x"]
    assert Task.from_dict(dict(data, extra="ignored")) == task


def test_server_config_uses_camel_case_keys():
    cfg = ServerConfig(name="box", type="qbittorrent", hostname="http://box:8080",
                       default_directory="/dl", http_auth=HttpAuth("u", "p"))
    data = cfg.to_dict()
    assert data["defaultDirectory"] == "/dl"
    assert data["httpAuth"] == {"username": "u", "password": "p"}
    assert data["showInContextMenu"] is True
    back = ServerConfig.from_dict(data)
    assert back.http_auth.username == "u"
    assert back.default_directory == "/dl"
    assert back == cfg
    assert back.application == ""


def test_server_config_repr_hides_password():
    cfg = ServerConfig(name="box", type="deluge", hostname="h", password="hunter2")
    assert "hunter2" not in repr(cfg)


def test_add_options_fall_back_to_server_defaults():
    cfg = ServerConfig(name="s", type="deluge", hostname="h", default_directory="/d", default_label="tv")
    opts = AddOptions(paused=True).with_defaults(cfg)
    assert (opts.paused, opts.path, opts.label) == (True, "/d", "tv")
    assert AddOptions(path="/x").with_defaults(cfg).path == "/x"
