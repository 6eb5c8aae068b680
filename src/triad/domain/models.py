from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Literal, Optional, TypeVar, Union

from triad.domain.codecs import Codec, empty

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]
HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD")

InputKind = Literal["path", "query", "header", "body"]

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class PathLiteral:
    value: str


@dataclass(frozen=True)
class PathParam:
    name: str
    codec: Codec[Any]
    description: str = ""
    example: Any = None


PathSegment = Union[PathLiteral, PathParam]


@dataclass(frozen=True)
class InputDescriptor:
    kind: InputKind
    name: str
    codec: Codec[Any]
    optional: bool = False
    description: str = ""
    example: Any = None


@dataclass(frozen=True)
class OutputDescriptor:
    codec: Codec[Any]
    status_code: int = 200
    description: str = ""
    example: Any = None


def _default_output() -> OutputDescriptor:
    return OutputDescriptor(codec=empty, status_code=200)


def _default_error() -> OutputDescriptor:
    return OutputDescriptor(codec=empty, status_code=400)


@dataclass(frozen=True)
class EndpointContract:
    """
    Declarative description of one endpoint.

    Immutable: builders return modified copies via dataclasses.replace, so a base
    contract can be extended into many endpoints without aliasing.

    `inputs` keeps declaration order (path params included, in the order the path
    declared them). Handlers receive decoded values in exactly this order, after
    any `security_inputs`.
    """

    method: HttpMethod = "GET"
    path: tuple[PathSegment, ...] = ()
    security_inputs: tuple[InputDescriptor, ...] = ()
    inputs: tuple[InputDescriptor, ...] = ()
    output: OutputDescriptor = field(default_factory=_default_output)
    error: OutputDescriptor = field(default_factory=_default_error)

    name: str = ""
    summary: str = ""
    description: str = ""
    tags: tuple[str, ...] = ()
    deprecated: bool = False

    def path_template(self) -> str:
        parts = []
        for seg in self.path:
            if isinstance(seg, PathParam):
                parts.append("{" + seg.name + "}")
            else:
                parts.append(seg.value)
        return "/" + "/".join(parts)

    @property
    def route_shape(self) -> tuple[str, tuple[Optional[str], ...]]:
        # params collapse to None: /items/{id} and /items/{item_id} are one route
        return (
            self.method,
            tuple(None if isinstance(seg, PathParam) else seg.value for seg in self.path),
        )

    @property
    def declares_error(self) -> bool:
        # the default unit error is a placeholder, not an application error
        return self.error != _default_error()

    @property
    def all_inputs(self) -> tuple[InputDescriptor, ...]:
        return self.security_inputs + self.inputs

    @property
    def path_params(self) -> tuple[PathParam, ...]:
        return tuple(seg for seg in self.path if isinstance(seg, PathParam))

    @property
    def body(self) -> Optional[InputDescriptor]:
        for d in self.inputs:
            if d.kind == "body":
                return d
        return None

    def describe(self) -> str:
        return f"{self.method} {self.path_template()}"


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T = None  # type: ignore[assignment]


@dataclass(frozen=True)
class Failure(Generic[E]):
    error: E = None  # type: ignore[assignment]


Outcome = Union[Success[T], Failure[E]]


def is_success(outcome: Outcome[Any, Any]) -> bool:
    return isinstance(outcome, Success)


# Responses the router writes itself (bad request, not found, ...) carry this
# header and media type, so clients never mistake them for a declared error.
INTERPRETER_ERROR_HEADER = "x-triad-error"
PROBLEM_MEDIA_TYPE = "application/problem+json"
