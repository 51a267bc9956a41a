
import asyncio
import json

import pytest
from aiohttp import web

from api_client.http_client import DispatchPolicy, Dispatcher, execute, snapshot
from api_client.models import HttpMethod, KeyValue, Request, ResponseRecord
from api_client.response import OVERSIZE_THRESHOLD, build_response, format_body, status_label


async def echo(request):
    return web.json_response({
        "method": request.method,
        "body": await request.text(),
        "dup": request.headers.getall("X-Dup", []),
        "query": dict(request.query),
    })


async def status(request):
    return web.Response(status=int(request.match_info["code"]), text="status")


async def big(request):
    return web.Response(body=b"a" * int(request.match_info["size"]))


async def slow(request):
    await asyncio.sleep(1)
    return web.Response(text="late")


@pytest.fixture
async def server(aiohttp_server):
    app = web.Application()
    app.router.add_route("*", "/echo", echo)
    app.router.add_get("/status/{code}", status)
    app.router.add_get("/big/{size}", big)
    app.router.add_get("/slow", slow)
    return await aiohttp_server(app)


@pytest.mark.parametrize("method", [HttpMethod.GET, HttpMethod.DELETE])
async def test_body_dropped_for_methods_without_body(server, method):
    record = await execute(method, str(server.make_url("/echo")), [], "payload")
    data = json.loads(record.body)
    assert data["method"] == method.value
    assert data["body"] == ""


@pytest.mark.parametrize("method", [HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH])
async def test_body_sent_for_methods_with_body(server, method):
    record = await execute(method, str(server.make_url("/echo")), [], '{"k": 1}')
    assert record.status_code == 200
    assert record.status_label == "OK"
    assert json.loads(record.body)["body"] == '{"k": 1}'


async def test_duplicate_headers_are_repeated(server):
    headers = [("X-Dup", "1"), ("X-Dup", "2")]
    record = await execute(HttpMethod.GET, str(server.make_url("/echo")), headers, "")
    assert json.loads(record.body)["dup"] == ["1", "2"]


async def test_json_body_is_pretty_printed(server):
    record = await execute(HttpMethod.GET, str(server.make_url("/echo?a=1")), [], "")
    assert record.body == json.dumps(json.loads(record.body), indent=2)
    assert "\n  " in record.body
    assert record.elapsed > 0


@pytest.mark.parametrize("code,label", [(404, "Client Error"), (503, "Server Error"), (201, "OK")])
async def test_status_classification(server, code, label):
    record = await execute(HttpMethod.GET, str(server.make_url(f"/status/{code}")), [], "")
    assert record.status_code == code
    assert record.status_label == label
    assert record.body == "status"


async def test_oversize_guard(server):
    at_limit = await execute(HttpMethod.GET, str(server.make_url(f"/big/{OVERSIZE_THRESHOLD}")), [], "")
    over = await execute(HttpMethod.GET, str(server.make_url(f"/big/{OVERSIZE_THRESHOLD + 1}")), [], "")
    assert not at_limit.body_oversized
    assert over.body_oversized
    assert len(over.body) == OVERSIZE_THRESHOLD + 1


async def test_connection_refused_is_transport_error():
    record = await execute(HttpMethod.GET, "http://127.0.0.1:1/", [], "")
    assert record.status_code == 0
    assert record.status_label == "Error"
    assert record.body.startswith("Error: ")
    assert not record.body_oversized


async def test_timeout_is_transport_error(server):
    record = await execute(HttpMethod.GET, str(server.make_url("/slow")), [], "", timeout=0.2)
    assert record.status_code == 0
    assert record.body == "Error: Request timed out"


async def test_bad_url_is_transport_error():
    record = await execute(HttpMethod.GET, "ftp://nowhere/file", [], "")
    assert record.status_code == 0
    assert record.body.startswith("Error: ")


def test_status_label_buckets():
    assert status_label(200) == "OK"
    assert status_label(299) == "OK"
    assert status_label(302) == "Response"
    assert status_label(400) == "Client Error"
    assert status_label(599) == "Server Error"
    assert status_label(600) == "Response"


def test_format_body_keeps_non_json():
    assert format_body("<html></html>") == "<html></html>"
    assert format_body('{"a":[1,2]}') == '{\n  "a": [\n    1,\n    2\n  ]\n}'


def test_oversized_body_is_not_reformatted():
    raw = b"[" + b"1," * 50_000 + b"1]"
    record = build_response(200, raw, 0.1)
    assert record.body_oversized
    assert record.body == raw.decode()


def test_unknown_charset_falls_back_to_utf8():
    record = build_response(200, "héllo".encode(), 0.1, encoding="no-such-charset")
    assert record.body == "héllo"


# Dispatcher

class FakeExecutor:
    def __init__(self):
        self.release = asyncio.Event()
        self.calls = []

    async def __call__(self, method, url, headers, body, timeout=None, request_id=None):
        self.calls.append((method, url, headers, body))
        await self.release.wait()
        return ResponseRecord(200, "OK", 0.01, "done", request_id=request_id)


def make_request(url="http://example.com/api"):
    return Request(method=HttpMethod.POST, url=url,
                   parameters=[KeyValue("q", "1")],
                   headers=[KeyValue("Accept", "*/*"), KeyValue("", "x")],
                   body="payload")


def test_snapshot_applies_effective_rules():
    call = snapshot(make_request())
    assert call.url == "http://example.com/api?q=1"
    assert call.headers == (("Accept", "*/*"),)
    assert call.body == "payload"


async def test_reject_policy_allows_one_outstanding():
    fake = FakeExecutor()
    completed = []
    dispatcher = Dispatcher(policy=DispatchPolicy.REJECT, executor=fake, on_complete=completed.append)

    first = dispatcher.dispatch(make_request())
    assert first is not None
    assert dispatcher.is_loading
    assert dispatcher.dispatch(make_request()) is None

    fake.release.set()
    await dispatcher.wait()

    assert not dispatcher.is_loading
    assert [r.request_id for r in completed] == [first]
    assert dispatcher.latest.request_id == first
    assert dispatcher.dispatch(make_request()) is not None
    await dispatcher.wait()


async def test_dispatch_uses_snapshot_taken_at_start():
    fake = FakeExecutor()
    dispatcher = Dispatcher(executor=fake)
    request = make_request()

    dispatcher.dispatch(request)
    request.url = "http://changed.example.com"
    request.body = "changed"
    fake.release.set()
    await dispatcher.wait()

    method, url, headers, body = fake.calls[0]
    assert url == "http://example.com/api?q=1"
    assert body == "payload"


async def test_empty_url_starts_nothing():
    dispatcher = Dispatcher(executor=FakeExecutor())
    assert dispatcher.dispatch(Request(url="")) is None
    assert not dispatcher.is_loading


async def test_concurrent_policy_tracks_each_call():
    fake = FakeExecutor()
    dispatcher = Dispatcher(policy=DispatchPolicy.CONCURRENT, executor=fake)

    ids = {dispatcher.dispatch(make_request()) for _ in range(3)}
    assert None not in ids
    assert len(ids) == 3
    assert set(dispatcher.outstanding) == ids

    for _ in range(3):
        await asyncio.sleep(0)
    assert len(fake.calls) == 3

    fake.release.set()
    await dispatcher.wait()
    assert not dispatcher.outstanding


async def test_queue_policy_runs_in_order():
    fake = FakeExecutor()
    completed = []
    dispatcher = Dispatcher(policy=DispatchPolicy.QUEUE, executor=fake,
                            on_complete=lambda r: completed.append(r.request_id))

    first = dispatcher.dispatch(make_request("http://a"))
    second = dispatcher.dispatch(make_request("http://b"))
    for _ in range(5):
        await asyncio.sleep(0)
    assert [c[1] for c in fake.calls] == ["http://a?q=1"]

    fake.release.set()
    await dispatcher.wait()
    assert completed == [first, second]
    assert [c[1] for c in fake.calls] == ["http://a?q=1", "http://b?q=1"]


async def test_dispatcher_against_server(server):
    log_queue = asyncio.Queue()
    dispatcher = Dispatcher()
    dispatcher.log_queue = log_queue

    request = Request(method=HttpMethod.GET, url=str(server.make_url("/echo")),
                      parameters=[KeyValue("a", "1"), KeyValue("", "ignored")])
    dispatcher.dispatch(request)
    await dispatcher.wait()

    assert json.loads(dispatcher.latest.body)["query"] == {"a": "1"}
    assert not log_queue.empty()


async def test_crashing_executor_still_completes():
    async def broken(method, url, headers, body, timeout=None, request_id=None):
        raise RuntimeError("boom")

    completed = []
    dispatcher = Dispatcher(executor=broken, on_complete=completed.append)
    request_id = dispatcher.dispatch(make_request())
    await dispatcher.wait()

    assert not dispatcher.is_loading
    assert len(completed) == 1
    assert completed[0].request_id == request_id
    assert completed[0].status_code == 0
    assert completed[0].body == "Error: boom"
