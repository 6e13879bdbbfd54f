"""
Test helper functions and factory methods for the portfolio GitHub proxy.
"""

import base64
import json
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Union

import httpx

from shared.retry import CancellationToken, RetryCancelledError


UpstreamReply = Union[httpx.Response, type, Callable[[httpx.Request], Any]]


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleeper:
    """Sleeper that records requested delays instead of waiting."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.delays: List[float] = []
        self.clock = clock

    async def sleep(self, seconds: float, cancel_token: Optional[CancellationToken] = None) -> None:
        if cancel_token is not None and cancel_token.cancelled:
            raise RetryCancelledError("cancelled")
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class MockUpstream:
    """Scripted upstream for ``httpx.MockTransport`` with call recording.

    Queued replies are consumed in order; once the queue is empty the
    ``default`` reply is used. A reply may be a response, an httpx exception
    class (raised with the request attached) or a callable taking the
    request.
    """

    def __init__(self, default: Optional[UpstreamReply] = None):
        self.requests: List[httpx.Request] = []
        self._replies: Deque[UpstreamReply] = deque()
        self.default = default if default is not None else (lambda request: json_response(200, {}))

    def queue(self, *replies: UpstreamReply) -> "MockUpstream":
        self._replies.extend(replies)
        return self

    @property
    def call_count(self) -> int:
        return len(self.requests)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        reply = self._replies.popleft() if self._replies else self.default
        if isinstance(reply, httpx.Response):
            return reply
        if isinstance(reply, type) and issubclass(reply, Exception):
            raise reply("simulated upstream failure", request=request)
        return reply(request)

    def client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), **kwargs)


def json_response(status_code: int, payload: Any = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    """Build an upstream JSON response."""
    if payload is None:
        return httpx.Response(status_code, headers=headers)
    return httpx.Response(status_code, json=payload, headers=headers)


def rate_limit_headers(remaining: int = 4999, limit: int = 5000, reset: int = 1_700_003_600) -> Dict[str, str]:
    """Upstream rate-limit telemetry headers."""
    return {
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Reset": str(reset),
    }


def classic_token(fill: str = "a") -> str:
    return "ghp_" + fill * 36


def fine_grained_token(fill: str = "A") -> str:
    return "github_pat_" + fill * 84


def contents_payload(tasks: List[Dict[str, Any]], sha: str = "abc123") -> Dict[str, Any]:
    """A contents API file response holding ``tasks`` as JSON."""
    text = json.dumps(tasks, indent=2) + "\n"
    return {
        "type": "file",
        "encoding": "base64",
        "sha": sha,
        "content": base64.b64encode(text.encode("utf-8")).decode("ascii"),
    }


def create_repo_payload(owner: str = "acme", name: str = "widget") -> Dict[str, Any]:
    """Repository object as returned by GET /repos/{owner}/{repo}."""
    return {
        "name": name,
        "full_name": f"{owner}/{name}",
        "owner": {"login": owner},
        "description": "Widget factory",
        "stargazers_count": 42,
        "language": "Python",
        "private": False,
        "archived": False,
        "updated_at": "2024-01-01T00:00:00Z",
        "html_url": f"https://github.com/{owner}/{name}",
    }
