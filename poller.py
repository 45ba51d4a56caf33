"""Poll every configured server in parallel and diff against its last snapshot."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from client_factory import ClientFactory
from models import ServerConfig, Task
from torrent_differ import PatchOperation, Savings, compute_diff, estimate_savings

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    server: str
    patches: List[PatchOperation] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    error: Optional[Exception] = None
    savings: Optional[Savings] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def has_changes(self) -> bool:
        return bool(self.patches)


class TorrentPoller:
    """Keeps one adapter and one previous snapshot per server name.

    Snapshots are never shared between servers. A server whose poll fails
    keeps its previous snapshot.
    """

    def __init__(self, factory: Optional[ClientFactory] = None, max_workers: int = 4) -> None:
        self.factory = factory or ClientFactory()
        self.max_workers = max(1, max_workers)
        self._clients: Dict[str, object] = {}
        self._previous: Dict[str, List[Task]] = {}
        self._lock = threading.Lock()

    def _client_for(self, server: ServerConfig):
        with self._lock:
            client = self._clients.get(server.name)
        if client is None:
            client = self.factory.create(server)
            with self._lock:
                self._clients[server.name] = client
        return client

    def poll_server(self, server: ServerConfig) -> PollResult:
        try:
            tasks = self._client_for(server).get_tasks()
        except Exception as e:
            logger.warning("Polling %s failed: %s", server.name, e)
            with self._lock:
                self._clients.pop(server.name, None)
            return PollResult(server=server.name, error=e)

        with self._lock:
            previous = self._previous.get(server.name, [])
            self._previous[server.name] = tasks
        diff = compute_diff(previous, tasks)
        return PollResult(
            server=server.name,
            patches=diff.patches,
            tasks=tasks,
            savings=estimate_savings(tasks, diff.patches),
        )

    def poll(self, servers: Iterable[ServerConfig]) -> Dict[str, PollResult]:
        servers = list(servers)
        if not servers:
            return {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(servers))) as pool:
            results = list(pool.map(self.poll_server, servers))
        return {r.server: r for r in results}

    def snapshot(self, server_name: str) -> List[Task]:
        with self._lock:
            return list(self._previous.get(server_name, []))

    def reset(self, server_name: Optional[str] = None) -> None:
        with self._lock:
            if server_name is None:
                self._previous.clear()
                self._clients.clear()
            else:
                self._previous.pop(server_name, None)
                self._clients.pop(server_name, None)

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            try:
                client.logout()
            except Exception as e:
                logger.debug("Logout of %r failed: %s", client, e)
