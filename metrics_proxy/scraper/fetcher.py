"""Outbound scrape: negotiate, classify, and stream one upstream response.

A :class:`Scraper` wraps a shared ``httpx.AsyncClient``.  Each call to
:meth:`Scraper.open` produces a :class:`ScrapeSession` that owns exactly one
upstream response.  By the time ``open`` returns, the status has been
classified and the first body chunk read, so the caller can commit to a
``200`` before relaying a single byte.
"""

from __future__ import annotations

import asyncio
import logging
import zlib
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx

from metrics_proxy.config import Settings
from metrics_proxy.scraper.errors import ScrapeError, TransportError
from metrics_proxy.scraper.models import Deadline

logger = logging.getLogger(__name__)

ACCEPTED_STATUSES = frozenset({200, 301, 302})

# Upper bound on the bytes a single decompress() call may produce, so one
# highly compressed network chunk cannot expand unchecked in memory.
_DECODE_STEP = 64 * 1024

Sink = Callable[[bytes], Awaitable[object]]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

async def _next_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    """Return the next chunk of *chunks*, or ``None`` when exhausted."""
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


def _status_line(response: httpx.Response) -> str:
    """Format ``"404 Not Found"`` the way the upstream status line reads."""
    return f"{response.status_code} {response.reason_phrase}".strip()


def _is_gzip(response: httpx.Response) -> bool:
    return response.headers.get("Content-Encoding", "").strip().lower() == "gzip"


async def _gunzip(chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """Decode a (possibly multi-member) gzip stream.

    Raises:
        zlib.error: On corrupt input.
        EOFError: If the stream ends inside a gzip member.
    """
    decoder = zlib.decompressobj(16 + zlib.MAX_WBITS)
    seen_input = False
    async for chunk in chunks:
        data = chunk
        while data:
            seen_input = True
            out = decoder.decompress(data, _DECODE_STEP)
            if out:
                yield out
            if decoder.unconsumed_tail:
                data = decoder.unconsumed_tail
            elif decoder.eof and decoder.unused_data:
                # Next gzip member follows directly.
                data = decoder.unused_data
                decoder = zlib.decompressobj(16 + zlib.MAX_WBITS)
            else:
                data = b""
    tail = decoder.flush()
    if tail:
        yield tail
    if seen_input and not decoder.eof:
        raise EOFError("gzip stream ended unexpectedly")
    if not seen_input:
        raise EOFError("empty gzip stream")


async def _limited(chunks: AsyncIterator[bytes], limit: Optional[int]) -> AsyncIterator[bytes]:
    """Relay at most *limit* bytes of *chunks*; silently stop once reached."""
    if limit is None:
        async for chunk in chunks:
            yield chunk
        return

    remaining = limit
    async for chunk in chunks:
        if len(chunk) >= remaining:
            if remaining:
                yield chunk[:remaining]
            return
        remaining -= len(chunk)
        yield chunk


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class ScrapeSession:
    """The live state of one accepted upstream response.

    Iterate :meth:`iter_bytes` (once) to relay the body; always finish with
    :meth:`aclose`, which is idempotent.
    """

    def __init__(
        self,
        response: httpx.Response,
        url: str,
        deadline: Deadline,
        limit: Optional[int],
    ) -> None:
        self.response = response
        self.url = url
        self.deadline = deadline
        self.gzipped = _is_gzip(response)
        self.limit = limit
        self.bytes_relayed = 0
        self._head: Optional[bytes] = None
        self._consumed = False
        self._closed = False

        body: AsyncIterator[bytes] = response.aiter_raw()
        if self.gzipped:
            body = _gunzip(body)
        self._chunks = _limited(body, limit)

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def content_type(self) -> Optional[str]:
        return self.response.headers.get("Content-Type")

    async def _read(self) -> Optional[bytes]:
        try:
            return await self.deadline.run(_next_chunk(self._chunks))
        except asyncio.TimeoutError as exc:
            raise TransportError("timeout", self.url, exc) from exc
        except (zlib.error, EOFError, httpx.DecodingError) as exc:
            raise TransportError("decode", self.url, exc) from exc
        except httpx.TimeoutException as exc:
            raise TransportError("timeout", self.url, exc) from exc
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise TransportError("read", self.url, exc) from exc

    async def prime(self) -> None:
        """Read the first body chunk so decode errors surface before relaying."""
        if self._head is None:
            self._head = await self._read() or b""

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield the (decoded, limited) body as it arrives from upstream.

        Raises:
            TransportError: If the stream breaks, fails to decode, or the
                deadline expires mid-body.
        """
        if self._consumed:
            raise RuntimeError("scrape session body already consumed")
        self._consumed = True

        await self.prime()
        if self._head:
            self.bytes_relayed += len(self._head)
            yield self._head
        self._head = b""

        while True:
            chunk = await self._read()
            if chunk is None:
                break
            if chunk:
                self.bytes_relayed += len(chunk)
                yield chunk

        if self.gzipped and self.limit is not None and self.bytes_relayed >= self.limit:
            logger.info("truncated gzip body from %s at %d bytes", self.url, self.limit)

    async def copy_to(self, sink: Sink) -> int:
        """Write the whole body into *sink*; return the number of bytes relayed."""
        async for chunk in self.iter_bytes():
            await sink(chunk)
        return self.bytes_relayed

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.response.aclose()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class Scraper:
    """Issues metrics scrapes through a shared ``httpx.AsyncClient``.

    The client is only read from, so one :class:`Scraper` serves any number of
    concurrent requests.  Timeouts are never taken from the client: every
    await is bounded by the :class:`Deadline` the caller passes in.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    def _build_request(self, url: str) -> httpx.Request:
        try:
            return self.client.build_request("GET", url, headers=self.settings.request_headers)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError) as exc:
            raise TransportError("request", url, exc) from exc

    async def _send(self, request: httpx.Request, url: str, deadline: Deadline) -> httpx.Response:
        try:
            return await deadline.run(self.client.send(request, stream=True))
        except asyncio.TimeoutError as exc:
            raise TransportError("timeout", url, exc) from exc
        except httpx.TimeoutException as exc:
            raise TransportError("timeout", url, exc) from exc
        except (httpx.UnsupportedProtocol, httpx.InvalidURL) as exc:
            raise TransportError("request", url, exc) from exc
        except httpx.DecodingError as exc:
            raise TransportError("decode", url, exc) from exc
        except httpx.HTTPError as exc:
            raise TransportError("connect", url, exc) from exc

    async def _read_error_text(self, response: httpx.Response, url: str, deadline: Deadline) -> str:
        """Collect the raw body of a rejected response, up to the optional limit."""
        limit = self.settings.error_body_limit
        parts: list[bytes] = []
        size = 0
        chunks = response.aiter_raw()
        try:
            while limit is None or size < limit:
                chunk = await deadline.run(_next_chunk(chunks))
                if chunk is None:
                    break
                parts.append(chunk)
                size += len(chunk)
        except (asyncio.TimeoutError, httpx.HTTPError, httpx.StreamError) as exc:
            logger.warning("failed to read error body from %s: %r", url, exc)
        body = b"".join(parts)
        if limit is not None:
            body = body[:limit]
        return body.decode("utf-8", errors="replace")

    async def open(self, url: str, deadline: Deadline) -> ScrapeSession:
        """Send the scrape request and classify the upstream response.

        Returns a primed :class:`ScrapeSession` for 200/301/302 responses.  The
        caller owns the session and must ``aclose()`` it.

        Raises:
            ScrapeError: If the upstream status is not accepted.
            TransportError: If the request cannot be built or sent, the
                deadline expires, or the first body chunk fails to decode.
        """
        request = self._build_request(url)
        response = await self._send(request, url, deadline)

        try:
            if response.status_code not in ACCEPTED_STATUSES:
                text = await self._read_error_text(response, url, deadline)
                raise ScrapeError(
                    code=response.status_code,
                    status=_status_line(response),
                    text=text,
                    url=url,
                )

            limit: Optional[int] = None
            if _is_gzip(response) or self.settings.limit_identity_bodies:
                limit = self.settings.body_limit
            session = ScrapeSession(response, url, deadline, limit)
            await session.prime()
        except BaseException:
            await response.aclose()
            raise

        return session

    async def scrape(self, url: str, sink: Sink, deadline: Optional[Deadline] = None) -> int:
        """Fetch *url* and stream its body into *sink*.

        When *deadline* is omitted one is started from
        ``settings.scrape_timeout``.  Returns the number of bytes written.
        """
        if deadline is None:
            deadline = Deadline(self.settings.scrape_timeout)
        session = await self.open(url, deadline)
        try:
            return await session.copy_to(sink)
        finally:
            await session.aclose()
