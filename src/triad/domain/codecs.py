from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from triad.domain.errors import DecodeError

T = TypeVar("T")

Raw = Union[str, bytes]

# components live under one OpenAPI location; codecs render refs against it
SCHEMA_REF_TEMPLATE = "#/components/schemas/{model}"


def _text(raw: Raw) -> str:
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("Value is not valid UTF-8") from exc
    return raw


class Codec(ABC, Generic[T]):
    """Explicit encode/decode pair for one value type, plus its JSON Schema."""

    media_type: str = "text/plain"
    is_empty: bool = False

    @abstractmethod
    def encode(self, value: T) -> str:
        ...

    @abstractmethod
    def decode(self, raw: Raw) -> T:
        ...

    @abstractmethod
    def schema(self) -> dict[str, Any]:
        ...

    def to_jsonable(self, value: T) -> Any:
        return value

    @property
    def ref_name(self) -> Optional[str]:
        return None


class PlainCodec(Codec[T]):
    """Text codec for path, query and header values."""

    def __init__(
        self,
        name: str,
        parse: Callable[[str], T],
        render: Callable[[T], str],
        json_schema: dict[str, Any],
    ):
        self.name = name
        self._parse = parse
        self._render = render
        self._schema = json_schema

    def encode(self, value: T) -> str:
        return self._render(value)

    def decode(self, raw: Raw) -> T:
        text = _text(raw)
        try:
            return self._parse(text)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"Cannot read {text!r} as {self.name}") from exc

    def schema(self) -> dict[str, Any]:
        return dict(self._schema)

    def __repr__(self) -> str:
        return f"PlainCodec({self.name})"


def _parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValueError(text)


def _render_bool(value: bool) -> str:
    return "true" if value else "false"


string: PlainCodec[str] = PlainCodec("string", str, str, {"type": "string"})
integer: PlainCodec[int] = PlainCodec("integer", int, str, {"type": "integer"})
number: PlainCodec[float] = PlainCodec("number", float, repr, {"type": "number"})
boolean: PlainCodec[bool] = PlainCodec("boolean", _parse_bool, _render_bool, {"type": "boolean"})


class JsonCodec(Codec[T]):
    """JSON codec backed by a pydantic TypeAdapter (models, dataclasses, lists, ...)."""

    media_type = "application/json"

    def __init__(self, tp: Any):
        self.tp = tp
        self._adapter: TypeAdapter[T] = TypeAdapter(tp)

    def encode(self, value: T) -> str:
        return self._adapter.dump_json(value).decode("utf-8")

    def decode(self, raw: Raw) -> T:
        try:
            return self._adapter.validate_json(raw)
        except ValidationError as exc:
            errors = exc.errors(include_url=False)
            first = errors[0] if errors else {}
            where = ".".join(str(p) for p in first.get("loc", ())) or "body"
            raise DecodeError(
                f"Invalid JSON for {self.type_name}: {where}: {first.get('msg', 'invalid')}",
                context={"errors": len(errors)},
            ) from exc

    def schema(self) -> dict[str, Any]:
        return copy.deepcopy(self._adapter.json_schema(ref_template=SCHEMA_REF_TEMPLATE))

    def to_jsonable(self, value: T) -> Any:
        return self._adapter.dump_python(value, mode="json")

    @property
    def ref_name(self) -> Optional[str]:
        if isinstance(self.tp, type) and issubclass(self.tp, BaseModel):
            return self.tp.__name__
        return None

    @property
    def type_name(self) -> str:
        return getattr(self.tp, "__name__", None) or repr(self.tp)

    def __repr__(self) -> str:
        return f"JsonCodec({self.type_name})"


class EmptyCodec(Codec[None]):
    """Unit codec: no value, no body."""

    is_empty = True

    def encode(self, value: None) -> str:
        return ""

    def decode(self, raw: Raw) -> None:
        return None

    def schema(self) -> dict[str, Any]:
        return {}

    def __repr__(self) -> str:
        return "EmptyCodec()"


empty = EmptyCodec()


def json_codec(tp: Any) -> JsonCodec[Any]:
    return JsonCodec(tp)


def as_codec(value: Any) -> Codec[Any]:
    """Accept a codec as-is; wrap anything else (a type) in a JSON codec."""
    if value is None:
        return empty
    if isinstance(value, Codec):
        return value
    return JsonCodec(value)
