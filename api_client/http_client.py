
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import aiohttp

from .models import HttpMethod, Request, ResponseRecord
from .response import build_response, error_response

logger = logging.getLogger("Dispatch")

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class PreparedCall:
    """Immutable copy of what goes on the wire"""

    method: HttpMethod
    url: str
    headers: Tuple[Tuple[str, str], ...]
    body: str


def snapshot(request: Request) -> PreparedCall:
    return PreparedCall(
        method=request.method,
        url=request.effective_url(),
        headers=tuple(request.effective_headers()),
        body=request.body,
    )


async def execute(method, url, headers, body, timeout=DEFAULT_TIMEOUT, request_id=None) -> ResponseRecord:
    """Perform one HTTP call. Transport failures come back as a status 0 record."""
    if not isinstance(method, HttpMethod):
        method = HttpMethod.from_text(method)

    # GET and DELETE silently drop the body
    data = body if body and method.allows_body else None

    start = time.perf_counter()
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.request(method.value, url, headers=list(headers), data=data) as resp:
                raw = await resp.read()
                elapsed = time.perf_counter() - start
                return build_response(resp.status, raw, elapsed, resp.charset or "utf-8", request_id)
    except asyncio.TimeoutError:
        return error_response("Request timed out", time.perf_counter() - start, request_id)
    except (aiohttp.ClientError, ValueError, OSError) as e:
        return error_response(str(e) or type(e).__name__, time.perf_counter() - start, request_id)


class DispatchPolicy(Enum):
    REJECT = "reject"          # at most one outstanding dispatch
    QUEUE = "queue"            # run one after another, in start order
    CONCURRENT = "concurrent"  # run side by side


class Dispatcher:
    """Runs dispatches as background tasks on the current event loop.

    Every dispatch gets a request id. Completed records are handed to
    `on_complete` on the loop thread and kept in `latest`.
    """

    def __init__(self, policy=DispatchPolicy.REJECT, timeout=DEFAULT_TIMEOUT,
                 on_complete=None, executor=None):
        self.policy = policy
        self.timeout = timeout
        self.on_complete = on_complete
        self.executor = executor or execute
        self.outstanding = {}
        self.latest: Optional[ResponseRecord] = None
        self.log_queue = None  # Can be set by TUI
        self._queue_lock = asyncio.Lock()

    @property
    def is_loading(self) -> bool:
        return bool(self.outstanding)

    def log(self, message, level=logging.INFO):
        logger.log(level, message)
        if self.log_queue:
            self.log_queue.put_nowait(message)

    def dispatch(self, request: Request) -> Optional[str]:
        """Snapshot the request and start sending it. Returns the request id,
        or None when nothing was started."""
        call = snapshot(request)
        if not call.url:
            return None

        if self.policy is DispatchPolicy.REJECT and self.outstanding:
            self.log("Dispatch rejected, a request is already in flight", logging.WARNING)
            return None

        request_id = uuid.uuid4().hex
        task = asyncio.get_running_loop().create_task(self._run(request_id, call))
        self.outstanding[request_id] = task
        return request_id

    async def _run(self, request_id, call: PreparedCall) -> ResponseRecord:
        try:
            if self.policy is DispatchPolicy.QUEUE:
                async with self._queue_lock:
                    record = await self._send(request_id, call)
            else:
                record = await self._send(request_id, call)
        except Exception as e:
            logger.exception(f"Dispatch {request_id} crashed")
            record = error_response(str(e) or type(e).__name__, request_id=request_id)
        finally:
            self.outstanding.pop(request_id, None)

        self.latest = record
        if self.on_complete:
            self.on_complete(record)
        return record

    async def _send(self, request_id, call: PreparedCall) -> ResponseRecord:
        self.log(f"{call.method.value} {call.url}")
        record = await self.executor(call.method, call.url, call.headers, call.body,
                                     timeout=self.timeout, request_id=request_id)
        if record.is_error:
            self.log(f"{call.method.value} {call.url} failed: {record.body}", logging.WARNING)
        else:
            self.log(f"{call.method.value} {call.url} -> {record.status_code} "
                     f"{record.status_label} ({record.elapsed * 1000:.0f} ms)")
        return record

    async def wait(self):
        """Wait for everything currently in flight"""
        if self.outstanding:
            await asyncio.gather(*list(self.outstanding.values()))
