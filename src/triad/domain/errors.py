from __future__ import annotations

from typing import Any, Optional


class TriadError(Exception):
    """Base error. `message` is safe to show callers; `context` is for logs."""

    def __init__(self, message: str = "triad error", context: Optional[dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


# ----------------------------
# Contract definition (raised at build / registration time)
# ----------------------------


class ContractDefinitionError(TriadError):
    pass


class DuplicateParameterError(ContractDefinitionError):
    def __init__(self, kind: str, name: str):
        super().__init__(
            f"Duplicate {kind} parameter '{name}'",
            context={"kind": kind, "name": name},
        )
        self.kind = kind
        self.name = name


class DuplicateRouteError(ContractDefinitionError):
    def __init__(self, method: str, path: str):
        super().__init__(
            f"Route {method} {path} is declared more than once",
            context={"method": method, "path": path},
        )
        self.method = method
        self.path = path


class HandlerSignatureError(ContractDefinitionError):
    pass


# ----------------------------
# Input parsing
# ----------------------------


class DecodeError(TriadError):
    """Raised by codecs when a raw value cannot be turned into the declared type."""


# ----------------------------
# Client side
# ----------------------------


class ClientError(TriadError):
    pass


class TransportFailure(ClientError):
    """The request never produced an HTTP response (connect error, timeout, ...)."""


class UnexpectedResponse(ClientError):
    """The server answered, but not in a shape the contract declares."""

    def __init__(self, message: str, status_code: int, body: bytes = b""):
        super().__init__(message, context={"status_code": status_code})
        self.status_code = status_code
        self.body = body


class InputRejected(UnexpectedResponse):
    """The server could not parse the request inputs; never a declared error."""
