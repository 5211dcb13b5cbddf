from __future__ import annotations

import json
import logging
from typing import Callable, List

import httpx
import pytest

from kingtime.integrations import Credential, KingTimeAdapter

from .payloads import BASE_URL, EMPLOYEE_KEY, TOKEN


class RecordingHandler:
    """MockTransport handler replaying canned responses and keeping the requests"""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def make(responder, **kwargs):
    handler = RecordingHandler(responder)
    kwargs.setdefault("employee_key", EMPLOYEE_KEY)
    adapter = KingTimeAdapter(
        Credential(TOKEN),
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )
    return adapter, handler


@pytest.fixture
def make_adapter():
    return make


@pytest.fixture(autouse=True)
def restore_kingtime_logger():
    """Undo the dictConfig applied by cli.main"""
    package_logger = logging.getLogger("kingtime")
    saved = (package_logger.level, package_logger.propagate, list(package_logger.handlers))
    yield
    package_logger.setLevel(saved[0])
    package_logger.propagate = saved[1]
    package_logger.handlers[:] = saved[2]
