"""Build the adapter for a server from its type tag."""

from __future__ import annotations

import copy
import importlib
import logging
from typing import Any, Dict, List, Tuple, Union

from errors import ConfigurationError
from models import ServerConfig

logger = logging.getLogger(__name__)

# type tag -> (module, class). Modules are imported on first use.
CLIENT_REGISTRY: Dict[str, Tuple[str, str]] = {
    "qbittorrent": ("clients", "QBittorrentClient"),
    "transmission": ("clients", "TransmissionClient"),
    "biglybt": ("clients", "BiglyBTClient"),
    "vuze_remoteui": ("clients", "VuzeRemoteUIClient"),
    "deluge": ("clients", "DelugeClient"),
    "flood": ("clients", "FloodClient"),
    "aria2": ("clients", "Aria2Client"),
    "rutorrent": ("rtorrent_client", "RTorrentClient"),
    "utorrent": ("utorrent_client", "UTorrentClient"),
    "synology": ("synology_client", "SynologyClient"),
}

# These wrap third-party client libraries and take no session or retry policy.
LIBRARY_BACKED = {"qbittorrent", "transmission", "biglybt", "vuze_remoteui"}


def supported_types() -> List[str]:
    return sorted(CLIENT_REGISTRY)


def resolve(type_name: str):
    try:
        module_name, class_name = CLIENT_REGISTRY[type_name]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported client type {type_name!r}; expected one of {', '.join(supported_types())}"
        ) from None
    return getattr(importlib.import_module(module_name), class_name)


def create_client(config: Union[ServerConfig, Dict[str, Any]], **kwargs):
    """Return a new adapter holding its own copy of ``config``.

    ``session`` and ``retry`` keyword arguments are passed on to the adapters
    that talk HTTP themselves.
    """
    if isinstance(config, dict):
        config = ServerConfig.from_dict(config)
    cls = resolve(config.type)
    if config.type in LIBRARY_BACKED:
        kwargs = {}
    else:
        kwargs = {k: v for k, v in kwargs.items() if v is not None}
    logger.debug("Creating %s adapter for %s", config.type, config.name)
    return cls(copy.deepcopy(config), **kwargs)


class ClientFactory:
    def __init__(self, retry=None, session_factory=None):
        self.retry = retry
        self.session_factory = session_factory

    def create(self, config: Union[ServerConfig, Dict[str, Any]]):
        session = self.session_factory() if self.session_factory else None
        return create_client(config, retry=self.retry, session=session)
