"""Resolution-chain JSON-RPC client over a mocked transport."""

import json

import httpx
import pytest

from predbridge.errors import (
    ContractRevertError,
    NetworkUnavailableError,
    ResolutionPendingError,
    UserRejectedError,
)
from predbridge.resolution.remote import HttpResolutionChainClient

from conftest import RESOLVER_ADDR


class FakeNode:
    """Answers gen_* calls from canned state; records every request body."""

    def __init__(self, receipts=("PENDING", "ACCEPTED"), outcome=1, reasoning="Confirmed by two sources."):
        self.receipts = list(receipts)
        self.resolved = False
        self.outcome = outcome
        self.reasoning = reasoning
        self.requests: list[dict] = []
        self.send_error: dict | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        method = body["method"]
        if method == "gen_sendTransaction":
            if self.send_error:
                return self._reply(body, error=self.send_error)
            return self._reply(body, result="0xgen")
        if method == "gen_getTransactionReceipt":
            status = self.receipts.pop(0) if len(self.receipts) > 1 else self.receipts[0]
            if status in ("ACCEPTED", "FINALIZED"):
                self.resolved = True
            return self._reply(body, result={"status": status})
        function = body["params"][0]["function"]
        if function == "resolved":
            return self._reply(body, result=self.resolved)
        if function == "outcome":
            return self._reply(body, result=self.outcome if self.resolved else 0)
        if function == "resolution_reasoning":
            if self.reasoning is None:
                return self._reply(body, error={"code": -32000, "message": "no such method"})
            return self._reply(body, result=self.reasoning if self.resolved else "")
        return self._reply(body, error={"code": -32601, "message": "unknown"})

    @staticmethod
    def _reply(body, result=None, error=None) -> httpx.Response:
        payload = {"jsonrpc": "2.0", "id": body["id"]}
        if error is not None:
            payload["error"] = error
        else:
            payload["result"] = result
        return httpx.Response(200, json=payload)


class Clock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = 0

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps += 1
        self.now += seconds


def make_client(node: FakeNode, clock: Clock, timeout: float = 60.0, sender: str | None = None):
    return HttpResolutionChainClient(
        "http://studio.local/api",
        sender=sender,
        poll_interval=3.0,
        timeout=timeout,
        client=httpx.Client(transport=httpx.MockTransport(node.handler)),
        sleep=clock.sleep,
        monotonic=clock.monotonic,
    )


def test_request_resolution_waits_for_finality():
    node, clock = FakeNode(), Clock()
    status = make_client(node, clock, sender="0xabc").request_resolution(RESOLVER_ADDR)
    assert status.resolved and status.outcome == "yes"
    assert status.rationale == "Confirmed by two sources."
    assert status.tx_hash == "0xgen"
    assert clock.sleeps == 1
    sent = node.requests[0]
    assert sent["method"] == "gen_sendTransaction"
    assert sent["params"][0] == {"to": RESOLVER_ADDR, "function": "resolve", "args": [], "value": 0, "from": "0xabc"}


def test_missing_reasoning_reads_as_empty():
    node, clock = FakeNode(receipts=("FINALIZED",), outcome=2, reasoning=None), Clock()
    status = make_client(node, clock).request_resolution(RESOLVER_ADDR)
    assert status.outcome == "no"
    assert status.rationale == ""


def test_timeout_is_pending_not_failure():
    node, clock = FakeNode(receipts=("PENDING",)), Clock()
    with pytest.raises(ResolutionPendingError):
        make_client(node, clock, timeout=10.0).request_resolution(RESOLVER_ADDR)
    assert clock.sleeps == 4


def test_failed_consensus():
    node, clock = FakeNode(receipts=("UNDETERMINED",)), Clock()
    with pytest.raises(ContractRevertError):
        make_client(node, clock).request_resolution(RESOLVER_ADDR)


def test_rejected_send():
    node, clock = FakeNode(), Clock()
    node.send_error = {"code": 4001, "message": "User rejected the request."}
    with pytest.raises(UserRejectedError):
        make_client(node, clock).request_resolution(RESOLVER_ADDR)


def test_unreachable_node():
    def down(request):
        raise httpx.ConnectError("refused", request=request)

    client = HttpResolutionChainClient(
        "http://studio.local/api", client=httpx.Client(transport=httpx.MockTransport(down))
    )
    with pytest.raises(NetworkUnavailableError):
        client.read_status(RESOLVER_ADDR)


def test_read_status_before_resolution():
    node, clock = FakeNode(), Clock()
    status = make_client(node, clock).read_status(RESOLVER_ADDR)
    assert not status.resolved
    assert status.outcome is None
