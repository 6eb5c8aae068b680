import asyncio

import httpx
import pytest
from pydantic import BaseModel

from triad.builder.endpoint import endpoint, header, json_body, path_param, query
from triad.client.stub import ClientOptions, client_for
from triad.docs.openapi import to_openapi
from triad.domain.codecs import integer, json_codec, string
from triad.domain.errors import InputRejected, UnexpectedResponse
from triad.domain.models import Failure, Success
from triad.examples.items import (
    ApiError,
    Item,
    ItemStore,
    StoredItem,
    build_router,
    contracts,
    create_item,
    delete_item,
    get_item,
    list_items,
)
from triad.server.asgi import create_app
from triad.server.binding import bind
from triad.server.router import Router


def options_for(app) -> ClientOptions:
    return ClientOptions("http://testserver", transport=httpx.ASGITransport(app=app))


async def test_client_against_server_returns_projected_input():
    echo = (
        endpoint.put()
        .with_path("echo", path_param("n", integer))
        .with_input(query("tag"))
        .with_input(header("X-Who"))
        .with_input(json_body(Item))
        .with_output(json_codec(dict[str, str]))
    )

    def project(n, tag, who, item):
        return {"n": str(n), "tag": tag, "who": who, "name": item.name}

    app = create_app(Router().register(bind(echo, lambda *args: Success(project(*args)))))
    stub = client_for(echo, options_for(app))

    for args in [(1, "a", "ann", Item(name="x")), (42, "b c", "bob", Item(name="ü"))]:
        assert await stub(*args) == Success(project(*args))


async def test_items_api_end_to_end():
    store = ItemStore()
    app = create_app(build_router(store, api_key="secret"), document=to_openapi(contracts))
    opts = options_for(app)

    create = client_for(create_item, opts)
    listing = client_for(list_items, opts)
    fetch = client_for(get_item, opts)
    remove = client_for(delete_item, opts)

    assert await create(Item(name="lamp")) == Success(None)
    assert await create(Item(name="desk")) == Success(None)

    assert await listing(None) == Success([StoredItem(id=1, name="lamp"), StoredItem(id=2, name="desk")])
    assert await listing(1) == Success([StoredItem(id=1, name="lamp")])
    assert await fetch(2) == Success(StoredItem(id=2, name="desk"))

    missing = await fetch(9)
    assert isinstance(missing, Failure)
    assert missing.error.code == "not_found"

    denied = await remove("wrong", 1)
    assert denied == Failure(ApiError(code="unauthorized", message="Invalid API key"))
    assert await remove("secret", 1) == Success(None)
    assert await listing(None) == Success([StoredItem(id=2, name="desk")])

    # empty name fails validation server-side; create_item declares no error, so 400 is unexpected
    with pytest.raises(UnexpectedResponse) as info:
        await create(Item.model_construct(name=""))
    assert info.value.status_code == 400


async def test_concurrent_creates_get_distinct_ids():
    store = ItemStore()
    app = create_app(build_router(store, api_key="k"))
    create = client_for(create_item, options_for(app))

    results = await asyncio.gather(*(create(Item(name=f"i{n}")) for n in range(20)))

    assert all(r == Success(None) for r in results)
    items = await store.get()
    assert sorted(items) == list(range(1, 21))


async def test_asgi_app_serves_document_and_raw_errors():
    document = to_openapi(contracts, title="Items")
    app = create_app(build_router(ItemStore(), api_key="k"), document=document)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        served = await client.get("/openapi.json")
        assert served.status_code == 200
        assert served.json() == document

        created = await client.post("/items", json={"name": "x"})
        assert created.status_code == 201
        assert created.content == b""

        bad = await client.post("/items", json={})
        assert bad.status_code == 400
        assert bad.json()["error"] == "bad_request"

        nowhere = await client.get("/nowhere")
        assert nowhere.status_code == 404


async def test_reserved_characters_in_path_params_survive_the_round_trip():
    files = endpoint.get().with_path("files", path_param("name")).with_output(string)
    app = create_app(Router().register(bind(files, lambda name: Success(name))))
    stub = client_for(files, options_for(app))

    for name in ["a/b", "100%", "a b?c", "ü/x"]:
        assert await stub(name) == Success(name)


async def test_declared_400_and_input_rejection_stay_apart():
    class Problem(BaseModel):
        reason: str

    me = endpoint.get().with_path("me").with_input(header("X-User")).with_error(json_codec(Problem), 400)
    app = create_app(Router().register(bind(me, lambda user: Failure(Problem(reason=f"no {user}")))))
    stub = client_for(me, options_for(app))

    assert await stub("ann") == Failure(Problem(reason="no ann"))

    # the stub always sends the header, so call the app without it
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as raw:
        response = await raw.get("/me")
    assert response.status_code == 400
    with pytest.raises(InputRejected) as info:
        stub.decode_response(response)
    assert info.value.status_code == 400
