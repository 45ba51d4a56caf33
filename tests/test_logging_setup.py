import logging

from logging_setup import setup_logging


def test_env_level_wins_and_libraries_are_quieted(monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.setenv("LOG_LEVEL", "debug")
    setup_logging("ERROR", to_file=False)
    assert root.level == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger("qbittorrentapi").level == logging.WARNING


def test_unknown_level_falls_back_to_info(monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    setup_logging("LOUD", to_file=False)
    assert root.level == logging.INFO
