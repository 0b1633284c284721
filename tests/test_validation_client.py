from __future__ import annotations

import asyncio
import itertools
import json
from typing import Any, Callable

import httpx
import pytest

from vista_coupons.domain.identity import Invalid, Member, NonMember
from vista_coupons.observability.journey import JourneyObservabilityStore
from vista_coupons.services.validation import (
    USER_MESSAGES,
    CallbackRegistry,
    FailureReason,
    IdentityValidationClient,
    ValidationNetworkError,
    classify_response,
    parse_callback_body,
)

from factories import RecordingSleep

ENDPOINT = "https://identity.example.test/exec"


def _jsonp(request: httpx.Request, payload: Any) -> httpx.Response:
    callback = request.url.params["callback"]
    return httpx.Response(200, text=f"{callback}({json.dumps(payload)});")


def _client(
    handler: Callable[[httpx.Request], Any],
    *,
    sleep: RecordingSleep | None = None,
    observability: JourneyObservabilityStore | None = None,
    **kwargs: Any,
) -> IdentityValidationClient:
    counter = itertools.count(1)
    return IdentityValidationClient(
        ENDPOINT,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=sleep or RecordingSleep(),
        token_factory=lambda: f"jsonp_callback_test_{next(counter)}",
        observability=observability or JourneyObservabilityStore(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_success_with_data_classifies_as_member() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _jsonp(request, {"status": "success", "data": {"name": "Somchai", "memberId": "X"}})

    client = _client(handler)

    result = await client.validate("0812345678")

    assert result == Member(name="Somchai", member_id="X")
    assert seen[0].url.params["memberId"] == "0812345678"
    assert seen[0].url.params["callback"] == "jsonp_callback_test_1"
    assert "_cache" in seen[0].url.params
    assert len(client.registry) == 0


@pytest.mark.asyncio
async def test_retry_masks_first_timeout() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise httpx.ReadTimeout("upstream slow", request=request)
        return _jsonp(request, {"status": "not_found"})

    sleep = RecordingSleep()
    store = JourneyObservabilityStore()
    client = _client(handler, sleep=sleep, observability=store)

    result = await client.validate("0812345678")

    assert result == NonMember()
    assert attempts == 2
    assert sleep.calls == [2.0]
    snapshot = store.snapshot()
    assert snapshot.validation["attempts"] == 2
    assert snapshot.validation["retries"] == 1
    assert snapshot.validation["failure:timeout"] == 1
    assert snapshot.validation["outcome:non_member"] == 1


@pytest.mark.asyncio
async def test_transport_failure_on_every_attempt_surfaces_server_error_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html><body>Service error</body></html>")

    client = _client(handler)

    with pytest.raises(ValidationNetworkError) as excinfo:
        await client.validate("0812345678")

    assert excinfo.value.reason is FailureReason.TRANSPORT
    assert excinfo.value.attempts == 2
    assert excinfo.value.message == USER_MESSAGES[FailureReason.TRANSPORT]
    assert len(client.registry) == 0


@pytest.mark.asyncio
async def test_error_status_is_transport_failure() -> None:
    client = _client(lambda request: httpx.Response(502, text="Bad gateway"), max_attempts=1)

    with pytest.raises(ValidationNetworkError) as excinfo:
        await client.validate("0812345678")

    assert excinfo.value.reason is FailureReason.TRANSPORT


@pytest.mark.asyncio
async def test_timeout_grows_by_increment_on_each_attempt() -> None:
    read_timeouts: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        read_timeouts.append(request.extensions["timeout"]["read"])
        raise httpx.ConnectError("offline", request=request)

    client = _client(handler)

    with pytest.raises(ValidationNetworkError):
        await client.validate("0812345678")

    assert read_timeouts == [35.0, 45.0]
    assert client.timeout_for_attempt(1) == 35.0
    assert client.timeout_for_attempt(2) == 45.0


@pytest.mark.asyncio
async def test_unanswered_attempt_times_out_and_cleans_up() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return _jsonp(request, {"status": "not_found"})

    client = _client(handler, max_attempts=1, initial_timeout_seconds=0.05)

    with pytest.raises(ValidationNetworkError) as excinfo:
        await client.validate("0812345678")

    assert excinfo.value.reason is FailureReason.TIMEOUT
    assert excinfo.value.message == USER_MESSAGES[FailureReason.TIMEOUT]
    assert len(client.registry) == 0


@pytest.mark.asyncio
async def test_payload_for_another_callback_is_dropped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        stale = {"status": "success", "data": {"name": "Stale", "memberId": "OLD"}}
        return httpx.Response(200, text=f"jsonp_callback_old_1({json.dumps(stale)})")

    client = _client(handler, max_attempts=1, initial_timeout_seconds=0.05)

    with pytest.raises(ValidationNetworkError) as excinfo:
        await client.validate("0812345678")

    assert excinfo.value.reason is FailureReason.TIMEOUT


@pytest.mark.asyncio
async def test_empty_identifier_short_circuits_without_request() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200)

    client = _client(handler)

    assert await client.validate("") == Invalid()
    assert await client.validate(None) == Invalid()
    assert calls == 0


@pytest.mark.asyncio
async def test_missing_endpoint_fails_as_transport() -> None:
    client = IdentityValidationClient("", sleep=RecordingSleep(), observability=JourneyObservabilityStore())

    with pytest.raises(ValidationNetworkError) as excinfo:
        await client.validate("0812345678")

    await client.aclose()
    assert excinfo.value.reason is FailureReason.TRANSPORT


@pytest.mark.asyncio
async def test_bare_json_body_is_accepted() -> None:
    client = _client(lambda request: httpx.Response(200, json={"status": "not_found"}))

    assert await client.validate("0812345678") == NonMember()


@pytest.mark.parametrize(
    "payload",
    [
        {"status": "success"},
        {"status": "error", "message": "quota"},
        ["unexpected"],
        None,
    ],
)
def test_unrecognized_shapes_classify_as_invalid(payload: Any) -> None:
    assert classify_response(payload) == Invalid()


def test_success_with_empty_data_is_a_nameless_member() -> None:
    assert classify_response({"status": "success", "data": {}}) == Member(name=None, member_id=None)


def test_parse_callback_body_extracts_token_and_payload() -> None:
    token, payload = parse_callback_body('/**/jsonp_callback_1_2({"status": "not_found"});')

    assert token == "jsonp_callback_1_2"
    assert payload == {"status": "not_found"}


@pytest.mark.asyncio
async def test_registry_settles_each_token_once() -> None:
    registry = CallbackRegistry()
    future = registry.register("token-a")

    assert registry.dispatch("token-a", {"status": "not_found"}) is True
    assert registry.dispatch("token-a", {"status": "success"}) is False
    assert registry.dispatch("unknown", {}) is False
    assert await future == {"status": "not_found"}

    registry.unregister("token-a")
    assert "token-a" not in registry


@pytest.mark.asyncio
async def test_registry_unregister_cancels_pending_future() -> None:
    registry = CallbackRegistry()
    future = registry.register("token-b")

    registry.unregister("token-b")

    assert future.cancelled()
    assert registry.dispatch("token-b", {}) is False
    with pytest.raises(ValueError):
        registry.register("token-c")
        registry.register("token-c")
