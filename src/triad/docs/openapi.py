from __future__ import annotations

import json
import re
from typing import Any, Iterable, Optional

import yaml

from triad.domain.codecs import Codec
from triad.domain.errors import ContractDefinitionError, DuplicateRouteError
from triad.domain.models import (
    HTTP_METHODS,
    PROBLEM_MEDIA_TYPE,
    EndpointContract,
    InputDescriptor,
    OutputDescriptor,
)

OPENAPI_VERSION = "3.1.0"

_SAFE = re.compile(r"[^a-zA-Z0-9_]+")

# payload the server writes when an input cannot be decoded
BAD_REQUEST_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "error": {"type": "string"},
        "message": {"type": "string"},
        "input": {
            "type": "object",
            "properties": {"kind": {"type": "string"}, "name": {"type": "string"}},
        },
    },
    "required": ["error", "message"],
}


def operation_id(method: str, path: str) -> str:
    # GET /users/{id} -> get_users_by_id
    parts: list[str] = []
    for seg in path.strip("/").split("/"):
        if not seg:
            continue
        if seg.startswith("{") and seg.endswith("}"):
            parts.append(f"by_{seg[1:-1]}")
        else:
            parts.append(seg)

    body = "_".join(parts) if parts else "root"
    body = _SAFE.sub("_", body).strip("_").lower()
    return f"{method.lower()}_{body}"


class _Components:
    """Named schemas hoisted out of operations, shared across the document."""

    def __init__(self) -> None:
        self.schemas: dict[str, dict[str, Any]] = {}

    def add(self, name: str, schema: dict[str, Any]) -> None:
        existing = self.schemas.get(name)
        if existing is not None and existing != schema:
            raise ContractDefinitionError(
                f"Two different schemas are both named '{name}'",
                context={"schema": name},
            )
        self.schemas[name] = schema

    def schema_for(self, codec: Codec[Any]) -> dict[str, Any]:
        schema = codec.schema()
        for name, sub in schema.pop("$defs", {}).items():
            self.add(name, sub)
        ref = codec.ref_name
        if ref is None:
            return schema
        self.add(ref, schema)
        return {"$ref": f"#/components/schemas/{ref}"}


def _parameter(d: InputDescriptor, components: _Components) -> dict[str, Any]:
    p: dict[str, Any] = {
        "name": d.name,
        "in": d.kind,
        "required": d.kind == "path" or not d.optional,
        "schema": components.schema_for(d.codec),
    }
    if d.description:
        p["description"] = d.description
    if d.example is not None:
        p["example"] = d.codec.to_jsonable(d.example)
    return p


def _content(codec: Codec[Any], example: Any, components: _Components) -> dict[str, Any]:
    media: dict[str, Any] = {"schema": components.schema_for(codec)}
    if example is not None:
        media["example"] = codec.to_jsonable(example)
    return {codec.media_type: media}


def _response(out: OutputDescriptor, default_description: str, components: _Components) -> dict[str, Any]:
    r: dict[str, Any] = {"description": out.description or default_description}
    if not out.codec.is_empty:
        r["content"] = _content(out.codec, out.example, components)
    return r


def _operation(contract: EndpointContract, components: _Components) -> dict[str, Any]:
    template = contract.path_template()
    op: dict[str, Any] = {"operationId": contract.name or operation_id(contract.method, template)}
    if contract.summary:
        op["summary"] = contract.summary
    if contract.description:
        op["description"] = contract.description
    if contract.tags:
        op["tags"] = list(contract.tags)
    if contract.deprecated:
        op["deprecated"] = True

    params = [_parameter(d, components) for d in contract.all_inputs if d.kind != "body"]
    if params:
        op["parameters"] = params

    body = contract.body
    if body is not None:
        rb: dict[str, Any] = {
            "required": not body.optional,
            "content": _content(body.codec, body.example, components),
        }
        if body.description:
            rb["description"] = body.description
        op["requestBody"] = rb

    responses: dict[str, Any] = {
        str(contract.output.status_code): _response(contract.output, "Success", components),
    }
    if contract.declares_error or contract.security_inputs:
        responses[str(contract.error.status_code)] = _response(contract.error, "Error", components)
    if contract.all_inputs:
        # the router's own rejection is told apart by media type, not by status
        problem = {PROBLEM_MEDIA_TYPE: {"schema": BAD_REQUEST_SCHEMA}}
        declared = responses.get("400")
        if declared is None:
            responses["400"] = {"description": "Invalid input", "content": problem}
        else:
            declared["description"] = f"{declared['description']} / Invalid input"
            declared["content"] = {**declared.get("content", {}), **problem}
    op["responses"] = dict(sorted(responses.items()))
    return op


def to_openapi(
    contracts: Iterable[EndpointContract],
    title: str = "API",
    version: str = "1.0.0",
    description: Optional[str] = None,
) -> dict[str, Any]:
    """
    Fold contracts into one OpenAPI document.

    One path entry per template, one operation per method. Two contracts with
    the same method and path shape (parameter names ignored) raise
    DuplicateRouteError. Keys are sorted, so the document depends on the set
    of contracts, not on their order.
    """
    components = _Components()
    paths: dict[str, dict[str, Any]] = {}
    shapes: set[tuple[Any, ...]] = set()

    for c in contracts:
        template = c.path_template()
        if c.route_shape in shapes:
            raise DuplicateRouteError(c.method, template)
        shapes.add(c.route_shape)
        paths.setdefault(template, {})[c.method.lower()] = _operation(c, components)

    method_rank = {m.lower(): i for i, m in enumerate(HTTP_METHODS)}
    info: dict[str, Any] = {"title": title, "version": version}
    if description:
        info["description"] = description

    doc: dict[str, Any] = {
        "openapi": OPENAPI_VERSION,
        "info": info,
        "paths": {
            p: {m: paths[p][m] for m in sorted(paths[p], key=method_rank.__getitem__)}
            for p in sorted(paths)
        },
    }
    if components.schemas:
        doc["components"] = {"schemas": dict(sorted(components.schemas.items()))}
    return doc


def to_json(document: dict[str, Any]) -> str:
    return json.dumps(document, indent=2)


def to_yaml(document: dict[str, Any]) -> str:
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
