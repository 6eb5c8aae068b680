import json

import httpx
import pytest

from triad.builder.endpoint import endpoint, header, json_body, path_param, query
from triad.client.stub import ClientOptions, client_for
from triad.domain.codecs import empty, integer, json_codec
from triad.domain.errors import InputRejected, TransportFailure, UnexpectedResponse
from triad.domain.models import Failure, Success, is_success
from triad.examples.items import ApiError, Item, StoredItem, get_item

search = (
    endpoint.post()
    .with_path("shops", path_param("shop"), "search")
    .with_input(query("limit", integer, optional=True))
    .with_input(header("X-Trace"))
    .with_input(json_body(Item))
    .with_output(json_codec(list[StoredItem]))
)


def test_build_request_resolves_every_input():
    stub = client_for(search, ClientOptions("http://api.test/v1/", headers={"user-agent": "triad-test"}))

    req = stub.build_request("a b", 5, "t-1", Item(name="lamp"))

    assert req.method == "POST"
    assert req.url.path == "/v1/shops/a b/search"
    assert req.url.raw_path.split(b"?")[0] == b"/v1/shops/a%20b/search"
    assert req.url.params["limit"] == "5"
    assert req.headers["x-trace"] == "t-1"
    assert req.headers["user-agent"] == "triad-test"
    assert req.headers["content-type"] == "application/json"
    assert json.loads(req.content) == {"name": "lamp"}


def test_optional_inputs_are_left_out():
    stub = client_for(search, ClientOptions("http://api.test"))
    req = stub.build_request("s", None, "t", Item(name="x"))
    assert "limit" not in req.url.params


def test_wrong_number_of_inputs_is_a_type_error():
    stub = client_for(search, ClientOptions("http://api.test"))
    with pytest.raises(TypeError):
        stub.build_request("s")


async def test_success_and_declared_failure_are_decoded():
    def respond(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/items/1":
            return httpx.Response(200, json={"id": 1, "name": "lamp"})
        return httpx.Response(404, json={"code": "not_found", "message": "nope"})

    stub = client_for(get_item, ClientOptions("http://api.test", transport=httpx.MockTransport(respond)))

    assert await stub(1) == Success(StoredItem(id=1, name="lamp"))
    assert await stub(2) == Failure(ApiError(code="not_found", message="nope"))
    assert is_success(await stub(1))
    assert not is_success(await stub(2))


async def test_undeclared_status_and_bad_body_are_unexpected():
    responses = iter(
        [
            httpx.Response(500, json={"error": "internal_error"}),
            httpx.Response(200, content=b"not json"),
        ]
    )
    transport = httpx.MockTransport(lambda request: next(responses))
    stub = client_for(get_item, ClientOptions("http://api.test", transport=transport))

    with pytest.raises(UnexpectedResponse) as info:
        await stub(1)
    assert info.value.status_code == 500

    with pytest.raises(UnexpectedResponse):
        await stub(1)


async def test_network_errors_are_not_declared_failures():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    stub = client_for(get_item, ClientOptions("http://api.test", transport=httpx.MockTransport(refuse)))

    with pytest.raises(TransportFailure):
        await stub(1)


async def test_timeouts_are_transport_failures():
    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    stub = client_for(get_item, ClientOptions("http://api.test", transport=httpx.MockTransport(slow)))

    with pytest.raises(TransportFailure):
        await stub(1)


async def test_shared_client_can_be_passed_in():
    seen = []

    def respond(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("x-api-key"))
        return httpx.Response(204)

    remove = endpoint.with_security(header("X-Api-Key")).delete().with_path("items", path_param("id", integer))
    remove = remove.with_output(empty, 204)
    stub = client_for(remove, ClientOptions("http://api.test"))

    async with httpx.AsyncClient(transport=httpx.MockTransport(respond)) as client:
        assert await stub("k", 3, client=client) == Success(None)

    assert seen == ["k"]


def test_none_for_a_required_input_is_a_type_error():
    stub = client_for(search, ClientOptions("http://api.test"))
    with pytest.raises(TypeError, match="X-Trace"):
        stub.build_request("s", None, None, Item(name="x"))
    with pytest.raises(TypeError, match="shop"):
        stub.build_request(None, None, "t", Item(name="x"))


async def test_router_answers_are_never_declared_failures():
    lookup = endpoint.get().with_path("me").with_input(header("X-User")).with_error(json_codec(ApiError), 400)
    responses = iter(
        [
            httpx.Response(
                400,
                headers={"content-type": "application/problem+json", "x-triad-error": "bad_request"},
                json={"error": "bad_request", "message": "missing header"},
            ),
            httpx.Response(404, headers={"x-triad-error": "not_found"}, json={"error": "not_found"}),
            httpx.Response(400, json={"code": "bad_user", "message": "nope"}),
        ]
    )
    stub = client_for(lookup, ClientOptions("http://api.test", transport=httpx.MockTransport(lambda r: next(responses))))

    with pytest.raises(InputRejected):
        await stub("ann")
    with pytest.raises(UnexpectedResponse) as info:
        await stub("ann")
    assert not isinstance(info.value, InputRejected)
    assert info.value.status_code == 404

    assert await stub("ann") == Failure(ApiError(code="bad_user", message="nope"))
