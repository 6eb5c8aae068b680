from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from urllib.parse import quote

import httpx

from triad.domain.errors import DecodeError, InputRejected, TransportFailure, UnexpectedResponse
from triad.domain.models import (
    INTERPRETER_ERROR_HEADER,
    EndpointContract,
    Failure,
    Outcome,
    PathParam,
    Success,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientOptions:
    base_url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: Optional[float] = 10.0
    # None means real network; tests pass httpx.MockTransport / httpx.ASGITransport
    transport: Optional[httpx.AsyncBaseTransport] = None


@dataclass(frozen=True)
class _RequestParts:
    method: str
    url: str
    params: dict[str, str]
    headers: dict[str, str]
    content: Optional[bytes]


class ClientStub:
    """
    Callable client for one contract.

        stub = client_for(get_item, ClientOptions("http://api"))
        outcome = await stub(42)

    Inputs are passed positionally in contract order (security inputs first).
    Network problems raise TransportFailure; answers the contract does not
    declare raise UnexpectedResponse. Only the declared error becomes Failure.
    """

    def __init__(self, contract: EndpointContract, options: ClientOptions):
        self.contract = contract
        self.options = options

    def _parts(self, inputs: tuple[Any, ...]) -> _RequestParts:
        descriptors = self.contract.all_inputs
        if len(inputs) != len(descriptors):
            raise TypeError(
                f"{self.contract.describe()} takes {len(descriptors)} input(s), got {len(inputs)}"
            )

        path_values: dict[str, str] = {}
        params: dict[str, str] = {}
        headers: dict[str, str] = dict(self.options.headers)
        content: Optional[bytes] = None

        for d, value in zip(descriptors, inputs):
            if value is None:
                if d.optional:
                    continue
                raise TypeError(f"{self.contract.describe()}: {d.kind} '{d.name}' is required")
            if d.kind == "path":
                path_values[d.name] = quote(d.codec.encode(value), safe="")
            elif d.kind == "query":
                params[d.name] = d.codec.encode(value)
            elif d.kind == "header":
                headers[d.name] = d.codec.encode(value)
            else:
                content = d.codec.encode(value).encode("utf-8")
                headers["content-type"] = d.codec.media_type

        segments = []
        for seg in self.contract.path:
            segments.append(path_values[seg.name] if isinstance(seg, PathParam) else seg.value)
        url = self.options.base_url.rstrip("/") + "/" + "/".join(segments)

        return _RequestParts(self.contract.method, url, params, headers, content)

    def build_request(self, *inputs: Any) -> httpx.Request:
        p = self._parts(inputs)
        return httpx.Request(p.method, p.url, params=p.params, headers=p.headers, content=p.content)

    async def __call__(self, *inputs: Any, client: Optional[httpx.AsyncClient] = None) -> Outcome[Any, Any]:
        p = self._parts(inputs)
        try:
            if client is not None:
                response = await self._send(client, p)
            else:
                async with httpx.AsyncClient(transport=self.options.transport, timeout=self.options.timeout) as c:
                    response = await self._send(c, p)
        except httpx.TransportError as exc:
            logger.warning("transport failure calling %s: %s", self.contract.describe(), exc)
            raise TransportFailure(
                f"{self.contract.describe()} failed: {exc.__class__.__name__}",
                context={"url": p.url},
            ) from exc
        return self.decode_response(response)

    async def _send(self, client: httpx.AsyncClient, p: _RequestParts) -> httpx.Response:
        request = client.build_request(p.method, p.url, params=p.params, headers=p.headers, content=p.content)
        return await client.send(request)

    def decode_response(self, response: httpx.Response) -> Outcome[Any, Any]:
        status = response.status_code
        marker = response.headers.get(INTERPRETER_ERROR_HEADER)
        if marker is not None:
            # written by the router itself, even when the status matches the declared error
            error_cls = InputRejected if marker == "bad_request" else UnexpectedResponse
            raise error_cls(
                f"{self.contract.describe()} was answered by the router: {marker} ({status})",
                status_code=status,
                body=response.content,
            )
        if 200 <= status < 300:
            descriptor, wrap = self.contract.output, Success
        elif self.contract.declares_error and status == self.contract.error.status_code:
            descriptor, wrap = self.contract.error, Failure
        else:
            raise UnexpectedResponse(
                f"{self.contract.describe()} answered with undeclared status {status}",
                status_code=status,
                body=response.content,
            )

        try:
            value = descriptor.codec.decode(response.content)
        except DecodeError as exc:
            raise UnexpectedResponse(
                f"{self.contract.describe()} answered {status} with an undecodable body: {exc.message}",
                status_code=status,
                body=response.content,
            ) from exc
        return wrap(value)


def client_for(contract: EndpointContract, options: ClientOptions) -> ClientStub:
    return ClientStub(contract, options)
