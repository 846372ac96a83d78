"""Progressive range-serving HTTP endpoint.

Answers GET requests for the target file with full (200) or ranged (206)
bodies read from the swarm while the download is still in progress.
Client-side aborts caused by seeking are expected and only reported
through the first-occurrence log policy.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator

from aiohttp import hdrs, web

from magstream.core.byte_range import parse_range
from magstream.core.media import content_type_for
from magstream.models import ByteRange, StreamConfig, TargetFile
from magstream.swarm.base import SwarmHandle
from magstream.utils.exceptions import RangeNotSatisfiableError, SwarmError
from magstream.utils.log_policy import ErrorCategory, ErrorLogPolicy

logger = logging.getLogger(__name__)

# Seconds in-flight requests get to finish when the listener closes
SHUTDOWN_TIMEOUT = 1.0


class RangeStreamServer:
    """HTTP server streaming one target file out of a swarm."""

    def __init__(
        self,
        swarm: SwarmHandle,
        target: TargetFile,
        config: StreamConfig,
        error_policy: ErrorLogPolicy | None = None,
    ) -> None:
        self.swarm = swarm
        self.target = target
        self.config = config
        self.content_type = content_type_for(target.name)
        self.error_policy = error_policy or ErrorLogPolicy(logger)

        self.app = web.Application()
        self.app.router.add_route("*", "/{tail:.*}", self._handle)
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None
        self.port: int | None = None

    @property
    def url(self) -> str:
        if self.port is None:
            msg = "Server is not listening"
            raise RuntimeError(msg)
        return f"http://{self.config.host}:{self.port}"

    @property
    def listening(self) -> bool:
        return self.site is not None

    async def start(self) -> str:
        """Bind the listening socket and return the stream URL."""
        self.runner = web.AppRunner(
            self.app,
            handler_cancellation=True,
            shutdown_timeout=SHUTDOWN_TIMEOUT,
            access_log=None,
        )
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.config.host, self.config.port)
        try:
            await site.start()
        except OSError:
            await self.runner.cleanup()
            self.runner = None
            raise
        self.site = site
        sockets = site._server.sockets if site._server else ()  # noqa: SLF001
        self.port = sockets[0].getsockname()[1] if sockets else self.config.port
        logger.debug("Listening on %s", self.url)
        return self.url

    async def close(self) -> None:
        """Close the listening socket and wait for in-flight requests."""
        runner, self.runner, self.site = self.runner, None, None
        if runner is not None:
            await runner.cleanup()

    def _base_headers(self) -> dict[str, str]:
        return {
            hdrs.ACCEPT_RANGES: "bytes",
            hdrs.CONTENT_TYPE: self.content_type,
        }

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        if request.method != hdrs.METH_GET:
            return web.Response(status=405, headers={hdrs.ALLOW: hdrs.METH_GET})

        length = self.target.length
        headers = self._base_headers()

        range_header = request.headers.get(hdrs.RANGE)
        if range_header is None:
            status = 200
            byte_range = ByteRange(0, length - 1) if length > 0 else None
        else:
            try:
                byte_range = parse_range(range_header, length)
            except RangeNotSatisfiableError as e:
                logger.debug("Rejecting range %r: %s", range_header, e)
                headers[hdrs.CONTENT_RANGE] = f"bytes */{length}"
                return web.Response(status=416, headers=headers)
            status = 206
            headers[hdrs.CONTENT_RANGE] = byte_range.content_range(length)

        headers[hdrs.CONTENT_LENGTH] = str(byte_range.length if byte_range else 0)

        if byte_range is None:
            response = web.StreamResponse(status=status, headers=headers)
            await response.prepare(request)
            await response.write_eof()
            return response

        return await self._stream(request, status, headers, byte_range)

    async def _stream(
        self,
        request: web.Request,
        status: int,
        headers: dict[str, str],
        byte_range: ByteRange,
    ) -> web.StreamResponse:
        self.swarm.prioritize(byte_range.start, byte_range.end)
        chunks = self.swarm.read(
            byte_range.start, byte_range.end, self.config.chunk_size
        )

        try:
            # Wait for the first data before committing to a status line
            try:
                chunk = await self._next_chunk(chunks)
            except asyncio.TimeoutError:
                self.error_policy.record(
                    ErrorCategory.STALL,
                    f"no data for bytes {byte_range.start}-{byte_range.end}",
                )
                return web.Response(status=504, headers=self._base_headers())
            except SwarmError as e:
                self.error_policy.record(ErrorCategory.READ_FAILURE, e)
                return web.Response(status=503, headers=self._base_headers())

            response = web.StreamResponse(status=status, headers=headers)
            try:
                await response.prepare(request)
                while chunk is not None:
                    await response.write(chunk)
                    chunk = await self._next_chunk(chunks)
                await response.write_eof()
            except ConnectionError as e:
                self.error_policy.record(ErrorCategory.CLIENT_ABORT, e)
            except asyncio.TimeoutError:
                self.error_policy.record(
                    ErrorCategory.STALL,
                    f"transfer of bytes {byte_range.start}-{byte_range.end} stalled",
                )
                self._abort(request)
            except SwarmError as e:
                self.error_policy.record(ErrorCategory.READ_FAILURE, e)
                self._abort(request)
            return response
        except asyncio.CancelledError:
            self.error_policy.record(ErrorCategory.CLIENT_ABORT, "request cancelled")
            raise
        finally:
            with contextlib.suppress(Exception):
                await chunks.aclose()

    async def _next_chunk(self, chunks: AsyncIterator[bytes]) -> bytes | None:
        timeout = self.config.stall_timeout or None
        try:
            return await asyncio.wait_for(chunks.__anext__(), timeout)
        except StopAsyncIteration:
            return None

    @staticmethod
    def _abort(request: web.Request) -> None:
        # A short body with a full Content-Length must not look complete
        if request.transport is not None:
            request.transport.close()
