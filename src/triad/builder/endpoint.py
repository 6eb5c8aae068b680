from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Union

from triad.builder.paths import param_name, split_template
from triad.domain.codecs import Codec, as_codec, json_codec, string
from triad.domain.errors import ContractDefinitionError, DuplicateParameterError
from triad.domain.models import (
    HTTP_METHODS,
    EndpointContract,
    InputDescriptor,
    OutputDescriptor,
    PathLiteral,
    PathParam,
    PathSegment,
)

SegmentLike = Union[str, PathParam]


# ----------------------------
# Input constructors
# ----------------------------


def path_param(name: str, codec: Codec[Any] = string, description: str = "", example: Any = None) -> PathParam:
    return PathParam(name=name, codec=codec, description=description, example=example)


def query(
    name: str,
    codec: Codec[Any] = string,
    optional: bool = False,
    description: str = "",
    example: Any = None,
) -> InputDescriptor:
    return InputDescriptor("query", name, codec, optional, description, example)


def header(
    name: str,
    codec: Codec[Any] = string,
    optional: bool = False,
    description: str = "",
    example: Any = None,
) -> InputDescriptor:
    return InputDescriptor("header", name, codec, optional, description, example)


def json_body(tp: Any, optional: bool = False, description: str = "", example: Any = None) -> InputDescriptor:
    codec = tp if isinstance(tp, Codec) else json_codec(tp)
    return InputDescriptor("body", "body", codec, optional, description, example)


def _input_key(d: InputDescriptor) -> tuple[str, str]:
    # header names are case-insensitive on the wire
    return (d.kind, d.name.lower() if d.kind == "header" else d.name)


def _segments_from(seg: SegmentLike) -> list[PathSegment]:
    if isinstance(seg, PathParam):
        return [seg]
    out: list[PathSegment] = []
    for part in split_template(seg):
        name = param_name(part)
        if name is None:
            out.append(PathLiteral(part))
        else:
            out.append(PathParam(name=name, codec=string))
    return out


def _check_status(status_code: int, low: int, high: int, what: str) -> None:
    if not (low <= status_code <= high):
        raise ContractDefinitionError(
            f"{what} status must be within {low}-{high}, got {status_code}",
            context={"status_code": status_code},
        )


# ----------------------------
# Fluent builder
# ----------------------------


@dataclass(frozen=True)
class Endpoint(EndpointContract):
    """
    EndpointContract with fluent, pure builder methods.

    Every method returns a new Endpoint; the receiver is left untouched.
    """

    def with_method(self, method: str) -> "Endpoint":
        m = str(method).upper().strip()
        if m not in HTTP_METHODS:
            raise ContractDefinitionError(f"Unsupported HTTP method: {method}", context={"method": method})
        return replace(self, method=m)

    def get(self) -> "Endpoint":
        return self.with_method("GET")

    def post(self) -> "Endpoint":
        return self.with_method("POST")

    def put(self) -> "Endpoint":
        return self.with_method("PUT")

    def patch(self) -> "Endpoint":
        return self.with_method("PATCH")

    def delete(self) -> "Endpoint":
        return self.with_method("DELETE")

    def with_path(self, *segments: SegmentLike) -> "Endpoint":
        """
        Append path segments.

        Strings may be literals ("items") or templates ("/items/{id}", "<id>" and
        ":id" styles are accepted). Template params without a codec use `string`.
        """
        new_path: list[PathSegment] = list(self.path)
        new_inputs: list[InputDescriptor] = list(self.inputs)
        taken = {p.name for p in self.path_params}

        for seg in segments:
            for p in _segments_from(seg):
                if isinstance(p, PathParam):
                    if p.name in taken:
                        raise DuplicateParameterError("path", p.name)
                    taken.add(p.name)
                    new_inputs.append(
                        InputDescriptor("path", p.name, p.codec, False, p.description, p.example)
                    )
                new_path.append(p)

        return replace(self, path=tuple(new_path), inputs=tuple(new_inputs))

    def with_input(self, descriptor: InputDescriptor) -> "Endpoint":
        if descriptor.kind == "path":
            raise ContractDefinitionError(
                f"Path parameter '{descriptor.name}' must be declared with with_path()",
                context={"name": descriptor.name},
            )
        self._check_new_input(descriptor)
        if descriptor.kind == "body" and self.body is not None:
            raise ContractDefinitionError(f"{self.describe()} already declares a body")
        return replace(self, inputs=self.inputs + (descriptor,))

    def with_security(self, descriptor: InputDescriptor) -> "Endpoint":
        if descriptor.kind not in ("header", "query"):
            raise ContractDefinitionError(
                f"Security inputs must be headers or query params, got {descriptor.kind}",
                context={"name": descriptor.name},
            )
        self._check_new_input(descriptor)
        return replace(self, security_inputs=self.security_inputs + (descriptor,))

    def with_output(
        self,
        codec: Any,
        status_code: int = 200,
        description: str = "",
        example: Any = None,
    ) -> "Endpoint":
        _check_status(status_code, 200, 299, "Success")
        out = OutputDescriptor(as_codec(codec), status_code, description, example)
        return replace(self, output=out)

    def with_error(
        self,
        codec: Any,
        status_code: int = 400,
        description: str = "",
        example: Any = None,
    ) -> "Endpoint":
        _check_status(status_code, 400, 599, "Error")
        err = OutputDescriptor(as_codec(codec), status_code, description, example)
        return replace(self, error=err)

    def named(self, name: str) -> "Endpoint":
        return replace(self, name=name)

    def described(self, summary: str = "", description: str = "") -> "Endpoint":
        return replace(self, summary=summary or self.summary, description=description or self.description)

    def tagged(self, *tags: str) -> "Endpoint":
        return replace(self, tags=self.tags + tuple(t for t in tags if t not in self.tags))

    def deprecate(self) -> "Endpoint":
        return replace(self, deprecated=True)

    def _check_new_input(self, descriptor: InputDescriptor) -> None:
        key = _input_key(descriptor)
        if any(_input_key(d) == key for d in self.all_inputs):
            raise DuplicateParameterError(descriptor.kind, descriptor.name)


endpoint = Endpoint()
