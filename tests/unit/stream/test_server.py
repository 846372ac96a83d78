"""Tests for the range-serving HTTP endpoint."""

from __future__ import annotations

import asyncio
import logging

import aiohttp
import pytest

pytestmark = [pytest.mark.unit, pytest.mark.stream]

from magstream.models import StreamConfig, TargetFile
from magstream.stream.server import RangeStreamServer
from magstream.utils.exceptions import SwarmReadError
from magstream.utils.log_policy import ErrorCategory, ErrorLogPolicy, ReportState

FILE_LENGTH = 5_000_000


@pytest.fixture
def stream_config():
    return StreamConfig(port=0, chunk_size=16 * 1024, stall_timeout=2.0)


@pytest.fixture
def swarm(memory_swarm_factory, pattern):
    return memory_swarm_factory(pattern(FILE_LENGTH))


@pytest.fixture
async def server(swarm, stream_config):
    target = TargetFile(index=0, name="movie.mp4", length=FILE_LENGTH)
    srv = RangeStreamServer(
        swarm, target, stream_config, ErrorLogPolicy(logging.getLogger("test.stream"))
    )
    await srv.start()
    yield srv
    await srv.close()


@pytest.fixture
async def client():
    async with aiohttp.ClientSession(auto_decompress=False) as session:
        yield session


class TestRangeResponses:
    """Status codes, headers and bodies for ranged and full GETs."""

    async def test_ranged_get(self, server, client, swarm):
        async with client.get(server.url, headers={"Range": "bytes=1000-1999"}) as resp:
            body = await resp.read()
            assert resp.status == 206
            assert resp.headers["Content-Range"] == "bytes 1000-1999/5000000"
            assert resp.headers["Content-Length"] == "1000"
            assert resp.headers["Accept-Ranges"] == "bytes"
            assert resp.headers["Content-Type"] == "video/mp4"
        assert body == swarm.data[1000:2000]
        assert swarm.prioritized == [(1000, 1999)]

    async def test_open_ended_range(self, server, client, swarm):
        async with client.get(server.url, headers={"Range": "bytes=4990000-"}) as resp:
            body = await resp.read()
            assert resp.status == 206
            assert resp.headers["Content-Range"] == "bytes 4990000-4999999/5000000"
        assert body == swarm.data[4_990_000:]

    async def test_full_get_without_range(self, server, client, swarm):
        async with client.get(server.url) as resp:
            body = await resp.read()
            assert resp.status == 200
            assert resp.headers["Content-Length"] == str(FILE_LENGTH)
            assert resp.headers["Accept-Ranges"] == "bytes"
            assert "Content-Range" not in resp.headers
        assert body == swarm.data

    async def test_any_path_serves_the_target(self, server, client, swarm):
        async with client.get(f"{server.url}/video/anything.mkv", headers={"Range": "bytes=0-9"}) as resp:
            assert resp.status == 206
            assert await resp.read() == swarm.data[:10]

    @pytest.mark.parametrize(
        "header", ["bytes=5000000-", "bytes=300-200", "bytes=abc", "bytes=0-1,5-9"]
    )
    async def test_unsatisfiable_range(self, server, client, swarm, header):
        async with client.get(server.url, headers={"Range": header}) as resp:
            assert resp.status == 416
            assert resp.headers["Content-Range"] == "bytes */5000000"
        assert swarm.prioritized == []

    async def test_non_get_rejected(self, server, client):
        async with client.post(server.url, data=b"x") as resp:
            assert resp.status == 405
            assert resp.headers["Allow"] == "GET"
        async with client.head(server.url) as resp:
            assert resp.status == 405

    async def test_concurrent_overlapping_ranges(self, server, client, swarm):
        ranges = [(0, 199_999), (100_000, 299_999), (150_000, 150_999), (4_000_000, 4_999_999)]

        async def fetch(start, end):
            headers = {"Range": f"bytes={start}-{end}"}
            async with client.get(server.url, headers=headers) as resp:
                assert resp.status == 206
                return await resp.read()

        bodies = await asyncio.gather(*(fetch(s, e) for s, e in ranges))
        for (start, end), body in zip(ranges, bodies):
            assert body == swarm.data[start : end + 1]


class TestEmptyTarget:
    async def test_zero_length_file(self, memory_swarm_factory, stream_config, client):
        swarm = memory_swarm_factory(b"")
        target = TargetFile(index=0, name="empty.mkv", length=0)
        srv = RangeStreamServer(swarm, target, stream_config)
        await srv.start()
        try:
            async with client.get(srv.url) as resp:
                assert resp.status == 200
                assert resp.headers["Content-Length"] == "0"
                assert resp.headers["Content-Type"] == "video/x-matroska"
                assert await resp.read() == b""
            async with client.get(srv.url, headers={"Range": "bytes=0-"}) as resp:
                assert resp.status == 416
                assert resp.headers["Content-Range"] == "bytes */0"
        finally:
            await srv.close()


class TestFailureHandling:
    """Aborts, stalls and read failures stay local to one request."""

    async def test_client_abort_then_next_request_succeeds(self, server, client, swarm):
        swarm.hold_after = 2
        resp = await client.get(server.url, headers={"Range": "bytes=0-4999999"})
        assert resp.status == 206
        await resp.content.readexactly(32 * 1024)
        resp.close()

        # Give the handler a chance to observe the reset
        for _ in range(50):
            if swarm.open_reads == 0:
                break
            await asyncio.sleep(0.02)
        assert server.error_policy.state(ErrorCategory.CLIENT_ABORT) is ReportState.REPORTED

        swarm.hold_after = None
        async with client.get(server.url, headers={"Range": "bytes=2000-2999"}) as resp:
            assert resp.status == 206
            assert await resp.read() == swarm.data[2000:3000]

    async def test_stall_before_headers_returns_504(self, server, client, swarm):
        server.config = server.config.model_copy(update={"stall_timeout": 0.1})
        swarm.available.clear()
        async with client.get(server.url, headers={"Range": "bytes=0-99"}) as resp:
            assert resp.status == 504
            assert resp.headers["Accept-Ranges"] == "bytes"
            assert resp.headers["Content-Type"] == "video/mp4"
        assert server.error_policy.state(ErrorCategory.STALL) is ReportState.REPORTED

        swarm.available.set()
        async with client.get(server.url, headers={"Range": "bytes=0-99"}) as resp:
            assert resp.status == 206
            assert await resp.read() == swarm.data[:100]

    async def test_read_failure_before_first_chunk_returns_503(self, server, client, swarm):
        async def unreadable(start, end, chunk_size):
            raise SwarmReadError("piece 0 unreadable")
            yield b""

        swarm.read = unreadable
        async with client.get(server.url, headers={"Range": "bytes=0-99"}) as resp:
            assert resp.status == 503
            assert resp.headers["Accept-Ranges"] == "bytes"
            assert resp.headers["Content-Type"] == "video/mp4"
        assert server.error_policy.state(ErrorCategory.READ_FAILURE) is ReportState.REPORTED

    async def test_read_failure_mid_stream_aborts_response(self, server, client, swarm):
        swarm.fail_reads = True
        async with client.get(server.url, headers={"Range": "bytes=0-999999"}) as resp:
            assert resp.status == 206
            with pytest.raises(aiohttp.ClientPayloadError):
                await resp.read()
        assert server.error_policy.occurrences(ErrorCategory.READ_FAILURE) == 1

        swarm.fail_reads = False
        async with client.get(server.url, headers={"Range": "bytes=10-19"}) as resp:
            assert await resp.read() == swarm.data[10:20]

    async def test_repeated_aborts_logged_once(self, server, client, swarm, caplog):
        caplog.set_level(logging.DEBUG, logger="test.stream")
        swarm.hold_after = 2
        for _ in range(3):
            resp = await client.get(server.url)
            await resp.content.readexactly(1024)
            resp.close()
            for _ in range(50):
                if swarm.open_reads == 0:
                    break
                await asyncio.sleep(0.02)

        visible = [
            r for r in caplog.records
            if r.name == "test.stream" and r.levelno >= logging.INFO
        ]
        assert len(visible) == 1
        assert "normal for seeking" in visible[0].getMessage()
        assert server.error_policy.occurrences(ErrorCategory.CLIENT_ABORT) == 3


class TestListener:
    async def test_port_zero_binds_free_port(self, server):
        assert server.listening
        assert server.port and server.port > 0
        assert server.url == f"http://127.0.0.1:{server.port}"

    async def test_close_is_idempotent(self, swarm, stream_config):
        target = TargetFile(index=0, name="movie.mp4", length=FILE_LENGTH)
        srv = RangeStreamServer(swarm, target, stream_config)
        await srv.start()
        await srv.close()
        await srv.close()
        assert not srv.listening

    async def test_port_in_use_raises_oserror(self, server, swarm):
        target = TargetFile(index=0, name="movie.mp4", length=FILE_LENGTH)
        clash = RangeStreamServer(swarm, target, StreamConfig(port=server.port))
        with pytest.raises(OSError):
            await clash.start()
        assert not clash.listening

    def test_url_before_start(self, swarm, stream_config):
        target = TargetFile(index=0, name="movie.mp4", length=FILE_LENGTH)
        srv = RangeStreamServer(swarm, target, stream_config)
        with pytest.raises(RuntimeError):
            _ = srv.url


class TestStallAfterHeaders:
    async def test_stall_mid_body_aborts_connection(self, server, client, swarm):
        server.config = server.config.model_copy(update={"stall_timeout": 0.1})
        swarm.hold_after = 1
        async with client.get(server.url, headers={"Range": "bytes=0-999999"}) as resp:
            assert resp.status == 206
            with pytest.raises(aiohttp.ClientPayloadError):
                await resp.read()
        assert server.error_policy.state(ErrorCategory.STALL) is ReportState.REPORTED
        assert swarm.open_reads == 0
