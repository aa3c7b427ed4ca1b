from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator

import pytest
from aiohttp import web

from airportsync.data.store import AirportStore


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def load_fixture(fixtures_dir: Path) -> Callable[[str], Any]:
    def _load(name: str) -> Any:
        with (fixtures_dir / name).open("r", encoding="utf-8") as f:
            return json.load(f)

    return _load


@pytest.fixture
def store(tmp_path: Path) -> Iterator[AirportStore]:
    s = AirportStore(str(tmp_path / "airports.sqlite"))
    try:
        yield s
    finally:
        s.close()


@dataclass
class ServerState:
    url: str = ""
    queries: list[dict[str, str]] = field(default_factory=list)
    active: int = 0
    max_active: int = 0


# (status, body) where body is JSON-able, or raw str/bytes sent verbatim
Response = tuple[int, Any]
StartServer = Callable[..., Awaitable[tuple[web.AppRunner, ServerState]]]


@pytest.fixture
def airports_server() -> StartServer:
    """Factory for an aiohttp server serving a sequence of airport responses.

    Each request pops the next (status, body) tuple; if exhausted, repeat
    last. Callers must ``await runner.cleanup()``.
    """

    async def _start(
        responses: list[Response], *, delay_s: float = 0.0
    ) -> tuple[web.AppRunner, ServerState]:
        app = web.Application()
        state = ServerState()
        idx = {"i": 0}

        async def handler(request: web.Request) -> web.Response:
            state.queries.append(dict(request.query))
            state.active += 1
            state.max_active = max(state.max_active, state.active)
            try:
                i = min(idx["i"], len(responses) - 1)
                idx["i"] += 1
                status, body = responses[i]
                if delay_s:
                    await asyncio.sleep(delay_s)
                if isinstance(body, (str, bytes)):
                    return web.Response(
                        body=body, status=status, content_type="application/json"
                    )
                return web.json_response(body, status=status)
            finally:
                state.active -= 1

        app.router.add_get("/v1/airports", handler)

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()
        server = site._server
        assert server is not None
        sockets = getattr(server, "sockets", None)
        assert sockets, "Server sockets not available"
        port = sockets[0].getsockname()[1]
        state.url = f"http://127.0.0.1:{port}/v1/airports"
        return runner, state

    return _start
