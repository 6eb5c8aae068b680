from __future__ import annotations

import inspect
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from triad.domain.errors import HandlerSignatureError
from triad.domain.models import EndpointContract, InputDescriptor

Handler = Callable[..., Any]


@dataclass(frozen=True)
class HandlerBinding:
    contract: EndpointContract
    handler: Handler
    security_logic: Optional[Handler] = None


def _check_arity(fn: Handler, expected: int, what: str, contract: EndpointContract) -> None:
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        # builtins / C callables: nothing to check
        return

    positional = [
        p
        for p in sig.parameters.values()
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    if any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in sig.parameters.values()):
        return

    required = sum(1 for p in positional if p.default is inspect.Parameter.empty)
    if not (required <= expected <= len(positional)):
        raise HandlerSignatureError(
            f"{what} for {contract.describe()} must accept {expected} positional argument(s), "
            f"signature is {getattr(fn, '__name__', fn)!r}{sig}",
            context={"expected": expected, "required": required, "positional": len(positional)},
        )


def bind(contract: EndpointContract, handler: Handler) -> HandlerBinding:
    """
    Pair a contract with its handler.

    The handler receives decoded security inputs (if any) followed by the regular
    inputs, positionally, and returns Success / Failure (any other value is
    treated as Success).
    """
    _check_arity(handler, len(contract.all_inputs), "Handler", contract)
    return HandlerBinding(contract=contract, handler=handler)


@dataclass(frozen=True)
class PartialServerEndpoint:
    """
    A contract whose security inputs already have server logic attached.

    The security logic gets the decoded security inputs and returns
    Success(principal) or Failure(error). It runs before any regular input is
    decoded; a Failure is answered with the contract's error descriptor.

    Builder calls are forwarded to the underlying contract, so a secured base can
    be extended into concrete endpoints; `server_logic` completes it. The error
    descriptor is fixed once security logic is attached (no `with_error`).
    """

    contract: Any
    security_logic: Handler

    def _extend(self, contract: Any) -> "PartialServerEndpoint":
        return replace(self, contract=contract)

    def with_method(self, method: str) -> "PartialServerEndpoint":
        return self._extend(self.contract.with_method(method))

    def get(self) -> "PartialServerEndpoint":
        return self._extend(self.contract.get())

    def post(self) -> "PartialServerEndpoint":
        return self._extend(self.contract.post())

    def put(self) -> "PartialServerEndpoint":
        return self._extend(self.contract.put())

    def patch(self) -> "PartialServerEndpoint":
        return self._extend(self.contract.patch())

    def delete(self) -> "PartialServerEndpoint":
        return self._extend(self.contract.delete())

    def with_path(self, *segments: Any) -> "PartialServerEndpoint":
        return self._extend(self.contract.with_path(*segments))

    def with_input(self, descriptor: InputDescriptor) -> "PartialServerEndpoint":
        return self._extend(self.contract.with_input(descriptor))

    def with_output(self, codec: Any, status_code: int = 200, **kw: Any) -> "PartialServerEndpoint":
        return self._extend(self.contract.with_output(codec, status_code, **kw))

    def named(self, name: str) -> "PartialServerEndpoint":
        return self._extend(self.contract.named(name))

    def described(self, summary: str = "", description: str = "") -> "PartialServerEndpoint":
        return self._extend(self.contract.described(summary, description))

    def tagged(self, *tags: str) -> "PartialServerEndpoint":
        return self._extend(self.contract.tagged(*tags))

    def server_logic(self, handler: Handler) -> HandlerBinding:
        """handler(principal, *inputs) -> Outcome"""
        _check_arity(handler, 1 + len(self.contract.inputs), "Handler", self.contract)
        return HandlerBinding(contract=self.contract, handler=handler, security_logic=self.security_logic)


def serve_security(contract: Any, security_logic: Handler) -> PartialServerEndpoint:
    if not contract.security_inputs:
        raise HandlerSignatureError(
            f"{contract.describe()} declares no security inputs",
            context={"route": contract.describe()},
        )
    _check_arity(security_logic, len(contract.security_inputs), "Security logic", contract)
    return PartialServerEndpoint(contract=contract, security_logic=security_logic)
