"""Exception hierarchy shared by the transport, the adapters and the vault."""

from __future__ import annotations

from typing import Any, Optional


class TorrentControlError(Exception):
    pass


class TransportError(TorrentControlError):
    """Network failure or a non-success HTTP status."""


class HttpError(TransportError):
    def __init__(self, status: int, status_text: str = "", response: Any = None) -> None:
        super().__init__(f"HTTP Error: {status} {status_text}".rstrip())
        self.status = status
        self.status_text = status_text
        self.response = response

    @property
    def headers(self):
        return getattr(self.response, "headers", None) or {}


class ProtocolFault(TorrentControlError):
    """RPC-level fault reported by a backend (XML-RPC <fault>, JSON-RPC error)."""

    def __init__(self, message: str, code: Any = None, data: Any = None) -> None:
        super().__init__(f"{message} ({code})" if code is not None else message)
        self.code = code
        self.fault_message = message
        self.data = data


class ValidationError(TorrentControlError):
    """Response shape does not match what the adapter expects."""


class AuthError(TorrentControlError):
    """Credentials were rejected by the remote service."""


class ConfigurationError(TorrentControlError):
    pass


class VaultError(TorrentControlError):
    pass


class VaultLockedError(VaultError):
    def __init__(self, message: str = "Vault is locked") -> None:
        super().__init__(message)


class VaultNotInitializedError(VaultError):
    def __init__(self, message: str = "Vault not initialized") -> None:
        super().__init__(message)


def describe(error: Optional[BaseException]) -> str:
    if error is None:
        return ""
    return f"{type(error).__name__}: {error}"
