"""
Items API: a small service declared with triad contracts.

    create_item   POST   /items          body Item          -> 201, no body
    list_items    GET    /items?limit=   -                  -> list[StoredItem]
    get_item      GET    /items/{id}     -                  -> StoredItem | 404 ApiError
    delete_item   DELETE /items/{id}     X-Api-Key header   -> 204 | 401 ApiError

The store is shared by every handler and synchronizes itself; the contracts and
interpreters never see its lock.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel, Field

from triad.builder.endpoint import endpoint, header, json_body, path_param, query
from triad.domain.codecs import empty, integer, json_codec
from triad.domain.models import Failure, Success
from triad.server.binding import bind, serve_security
from triad.server.router import Router, ServerOptions

R = TypeVar("R")


class Item(BaseModel):
    name: str = Field(min_length=1)


class StoredItem(BaseModel):
    id: int
    name: str


class ApiError(BaseModel):
    code: str
    message: str


class ItemStore:
    """In-memory store exposing only get / update."""

    def __init__(self) -> None:
        self._items: dict[int, StoredItem] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def get(self) -> dict[int, StoredItem]:
        async with self._lock:
            return dict(self._items)

    async def update(self, fn: Callable[[dict[int, StoredItem], int], tuple[dict[int, StoredItem], int, R]]) -> R:
        # fn(items, next_id) -> (items, next_id, result)
        async with self._lock:
            self._items, self._next_id, result = fn(dict(self._items), self._next_id)
            return result


# ----------------------------
# Contracts
# ----------------------------

item_id = path_param("id", integer, description="Item identifier", example=1)

create_item = (
    endpoint.post()
    .with_path("items")
    .with_input(json_body(Item, example=Item(name="lamp")))
    .with_output(empty, 201, description="Created")
    .named("create_item")
    .tagged("items")
)

list_items = (
    endpoint.get()
    .with_path("items")
    .with_input(query("limit", integer, optional=True, description="Max items to return"))
    .with_output(json_codec(list[StoredItem]))
    .named("list_items")
    .tagged("items")
)

get_item = (
    endpoint.get()
    .with_path("items", item_id)
    .with_output(json_codec(StoredItem))
    .with_error(json_codec(ApiError), 404, description="Unknown item")
    .named("get_item")
    .tagged("items")
)

# base contract: requires an API key, fails with 401 ApiError
secured = endpoint.with_security(header("X-Api-Key", description="API key")).with_error(
    json_codec(ApiError), 401, description="Missing or wrong API key"
)

delete_item = (
    secured.delete()
    .with_path("items", item_id)
    .with_output(empty, 204)
    .named("delete_item")
    .tagged("items")
)

contracts = (create_item, list_items, get_item, delete_item)


# ----------------------------
# Server wiring
# ----------------------------


def build_router(store: ItemStore, api_key: str, options: Optional[ServerOptions] = None) -> Router:
    async def do_create(item: Item):
        def add(items, next_id):
            items[next_id] = StoredItem(id=next_id, name=item.name)
            return items, next_id + 1, next_id

        await store.update(add)
        return Success(None)

    async def do_list(limit: Optional[int]):
        items = sorted((await store.get()).values(), key=lambda i: i.id)
        return Success(items if limit is None else items[:limit])

    async def do_get(id: int):
        found = (await store.get()).get(id)
        if found is None:
            return Failure(ApiError(code="not_found", message=f"Item {id} does not exist"))
        return Success(found)

    def check_key(key: str):
        if key != api_key:
            return Failure(ApiError(code="unauthorized", message="Invalid API key"))
        return Success(key)

    async def do_delete(_principal: str, id: int):
        def drop(items, next_id):
            items.pop(id, None)
            return items, next_id, None

        await store.update(drop)
        return Success(None)

    router = Router(options)
    router.register(bind(create_item, do_create))
    router.register(bind(list_items, do_list))
    router.register(bind(get_item, do_get))
    router.register(serve_security(delete_item, check_key).server_logic(do_delete))
    return router
