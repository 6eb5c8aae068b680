from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import unquote

from triad.domain.errors import DecodeError, DuplicateRouteError
from triad.domain.models import (
    INTERPRETER_ERROR_HEADER,
    PROBLEM_MEDIA_TYPE,
    EndpointContract,
    Failure,
    InputDescriptor,
    OutputDescriptor,
    PathParam,
    PathSegment,
    Success,
)
from triad.server.binding import Handler, HandlerBinding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerRequest:
    method: str
    path: str  # raw (percent-encoded) path, no query string
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass(frozen=True)
class ServerResponse:
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass(frozen=True)
class ServerOptions:
    decode_failure_status: int = 400
    not_found_status: int = 404
    method_not_allowed: bool = True  # 405 + Allow when only the method differs
    run_sync_in_thread: bool = True


class _InputFailure(Exception):
    def __init__(self, descriptor: InputDescriptor, error: DecodeError):
        super().__init__(error.message)
        self.descriptor = descriptor
        self.error = error


def _split(path: str) -> list[str]:
    # split before unquoting: "%2F" inside a segment stays part of the value
    return [unquote(seg) for seg in (path or "/").split("/") if seg]


def _match_path(template: tuple[PathSegment, ...], segments: list[str]) -> Optional[dict[str, str]]:
    if len(template) != len(segments):
        return None
    values: dict[str, str] = {}
    for want, got in zip(template, segments):
        if isinstance(want, PathParam):
            values[want.name] = got
        elif want.value != got:
            return None
    return values


def _error_response(status_code: int, payload: dict[str, Any], headers: Optional[dict[str, str]] = None) -> ServerResponse:
    h = {"content-type": PROBLEM_MEDIA_TYPE, INTERPRETER_ERROR_HEADER: payload["error"]}
    h.update(headers or {})
    return ServerResponse(status_code=status_code, headers=h, body=json.dumps(payload).encode("utf-8"))


def encode_outcome(descriptor: OutputDescriptor, value: Any) -> ServerResponse:
    codec = descriptor.codec
    if codec.is_empty:
        return ServerResponse(status_code=descriptor.status_code)
    return ServerResponse(
        status_code=descriptor.status_code,
        headers={"content-type": codec.media_type},
        body=codec.encode(value).encode("utf-8"),
    )


class Router:
    """
    In-process dispatcher for bound contracts.

    Routes are tried in registration order; the first whose method and path
    template match serves the request. The route table is only written during
    registration, dispatch itself holds no state.
    """

    def __init__(self, options: Optional[ServerOptions] = None, bindings: Iterable[HandlerBinding] = ()):
        self.options = options or ServerOptions()
        self._bindings: list[HandlerBinding] = []
        self._shapes: dict[tuple[Any, ...], EndpointContract] = {}
        for b in bindings:
            self.register(b)

    @property
    def bindings(self) -> tuple[HandlerBinding, ...]:
        return tuple(self._bindings)

    @property
    def contracts(self) -> tuple[EndpointContract, ...]:
        return tuple(b.contract for b in self._bindings)

    def register(self, binding: HandlerBinding) -> "Router":
        contract = binding.contract
        shape = contract.route_shape
        if shape in self._shapes:
            raise DuplicateRouteError(contract.method, contract.path_template())
        self._shapes[shape] = contract
        self._bindings.append(binding)
        logger.debug("registered route %s", binding.contract.describe())
        return self

    # ----------------------------
    # Dispatch
    # ----------------------------

    async def dispatch(self, request: ServerRequest) -> ServerResponse:
        method = request.method.upper()
        segments = _split(request.path)
        allowed: list[str] = []

        for binding in self._bindings:
            path_values = _match_path(binding.contract.path, segments)
            if path_values is None:
                continue
            if binding.contract.method != method:
                allowed.append(binding.contract.method)
                continue
            return await self._serve(binding, request, path_values)

        if allowed and self.options.method_not_allowed:
            return _error_response(
                405,
                {"error": "method_not_allowed", "message": f"{method} is not allowed on {request.path}"},
                headers={"allow": ", ".join(sorted(set(allowed)))},
            )
        return _error_response(
            self.options.not_found_status,
            {"error": "not_found", "message": f"No route for {method} {request.path}"},
        )

    async def _serve(self, binding: HandlerBinding, request: ServerRequest, path_values: dict[str, str]) -> ServerResponse:
        contract = binding.contract
        headers = {k.lower(): v for k, v in request.headers.items()}

        # auth first: security inputs, then security logic, then everything else
        try:
            security_values = [self._read(d, request, path_values, headers) for d in contract.security_inputs]
        except _InputFailure as exc:
            return self._bad_request(contract, exc)

        leading: list[Any] = security_values
        if binding.security_logic is not None:
            try:
                verdict = await self._call(binding.security_logic, security_values)
            except Exception:
                logger.exception("security logic crashed for %s", contract.describe())
                return self._server_error()
            if isinstance(verdict, Failure):
                return encode_outcome(contract.error, verdict.error)
            leading = [verdict.value if isinstance(verdict, Success) else verdict]

        try:
            values = [self._read(d, request, path_values, headers) for d in contract.inputs]
        except _InputFailure as exc:
            return self._bad_request(contract, exc)

        try:
            outcome = await self._call(binding.handler, leading + values)
            if isinstance(outcome, Failure):
                return encode_outcome(contract.error, outcome.error)
            if isinstance(outcome, Success):
                return encode_outcome(contract.output, outcome.value)
            return encode_outcome(contract.output, outcome)
        except Exception:
            logger.exception("handler crashed for %s", contract.describe())
            return self._server_error()

    def _read(
        self,
        d: InputDescriptor,
        request: ServerRequest,
        path_values: dict[str, str],
        headers: dict[str, str],
    ) -> Any:
        raw: Any
        if d.kind == "path":
            raw = path_values.get(d.name)
        elif d.kind == "query":
            raw = request.query.get(d.name)
        elif d.kind == "header":
            raw = headers.get(d.name.lower())
        else:
            raw = request.body if request.body else None

        if raw is None:
            if d.optional:
                return None
            raise _InputFailure(d, DecodeError(f"Missing required {d.kind} '{d.name}'"))
        try:
            return d.codec.decode(raw)
        except DecodeError as exc:
            raise _InputFailure(d, exc) from exc

    async def _call(self, fn: Handler, args: list[Any]) -> Any:
        if inspect.iscoroutinefunction(fn):
            return await fn(*args)
        if self.options.run_sync_in_thread:
            result = await asyncio.to_thread(fn, *args)
        else:
            result = fn(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _bad_request(self, contract: EndpointContract, exc: _InputFailure) -> ServerResponse:
        logger.info("rejected %s: %s", contract.describe(), exc.error.message)
        return _error_response(
            self.options.decode_failure_status,
            {
                "error": "bad_request",
                "message": exc.error.message,
                "input": {"kind": exc.descriptor.kind, "name": exc.descriptor.name},
            },
        )

    def _server_error(self) -> ServerResponse:
        return _error_response(500, {"error": "internal_error", "message": "Internal server error"})
