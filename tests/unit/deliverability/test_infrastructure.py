import asyncio

import httpx
import pytest

from deliverability.domain.exceptions import DispatchFailure
from deliverability.domain.value_objects import Channel
from deliverability.infrastructure.http_dispatcher import HttpDispatcher
from deliverability.infrastructure.scheduler import APSchedulerExecutor


def dispatcher_for(handler) -> HttpDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpDispatcher("https://provider.test/v1/", token="tkn", client=client)


@pytest.mark.asyncio
async def test_http_dispatcher_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = request.read()
        return httpx.Response(200, json={"messageId": "prov-1"})

    dispatcher = dispatcher_for(handler)
    assert await dispatcher.dispatch("a@example.com", Channel.EMAIL, {"subject": "hi"}) == "prov-1"
    assert seen["url"] == "https://provider.test/v1/email/send"
    assert seen["auth"] == "Bearer tkn"
    assert b'"to":"a@example.com"' in seen["body"].replace(b" ", b"")
    await dispatcher.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("status,retryable", [(503, True), (429, True), (400, False)])
async def test_http_dispatcher_error_statuses(status, retryable):
    dispatcher = dispatcher_for(lambda request: httpx.Response(status, json={}))
    with pytest.raises(DispatchFailure) as exc:
        await dispatcher.dispatch("+15550001", Channel.SMS, {})
    assert exc.value.retryable is retryable
    assert exc.value.details["providerStatus"] == status


@pytest.mark.asyncio
async def test_http_dispatcher_transport_error_is_retryable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(DispatchFailure) as exc:
        await dispatcher_for(handler).dispatch("+15550001", Channel.SMS, {})
    assert exc.value.retryable


@pytest.mark.asyncio
async def test_apscheduler_executor_runs_and_cancels_jobs():
    executor = APSchedulerExecutor()
    executor.start()
    fired = asyncio.Event()
    cancelled = []

    async def on_fire():
        fired.set()

    async def on_cancelled():
        cancelled.append(True)

    try:
        executor.arm("retry:email:a@example.com:m-1:1", 20, on_fire)
        executor.arm("retry:email:b@example.com:m-2:1", 50, on_cancelled)
        executor.cancel("retry:email:b@example.com:m-2:1")
        executor.cancel("never-armed")

        await asyncio.wait_for(fired.wait(), timeout=5)
        await asyncio.sleep(0.1)
        assert cancelled == []
    finally:
        executor.stop()
