"""
Streaming channel primitives.

A stream is a pull-based, non-restartable sequence of StreamFragment objects
that always ends with exactly one ``done=True`` fragment. Failures are
delivered as that terminal fragment (``fragment.error``) instead of being
raised through the iterator, so a caller that has already rendered partial
output still sees an orderly end of stream.
"""

import json
import logging
from typing import Any, AsyncIterator, Optional

from .types import GenerationResult, StreamFragment

logger = logging.getLogger(__name__)

# Marker yielded by iter_sse_payloads when the server sends "data: [DONE]"
SSE_DONE = object()


async def iter_sse_payloads(lines: AsyncIterator[str]) -> AsyncIterator[Any]:
    """
    Decode ``data:`` lines of a text/event-stream body into JSON payloads.

    Comment lines, event names and malformed JSON are skipped.
    """
    async for raw in lines:
        line = raw.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data:
            continue
        if data == "[DONE]":
            yield SSE_DONE
            return
        try:
            yield json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed SSE payload")
            continue


def fragment_from_result(result: GenerationResult) -> StreamFragment:
    """Synthesize the single terminal fragment for a non-streaming backend."""
    return StreamFragment(
        content=result.content,
        delta=result.content,
        done=True,
        usage=result.usage,
        provider=result.provider,
    )


def error_fragment(content: str, error: Exception, provider: Optional[str]) -> StreamFragment:
    """Terminal fragment reporting a failure; ``content`` keeps what was emitted."""
    return StreamFragment(content=content, delta="", done=True, error=error, provider=provider)


class FragmentStream:
    """
    Async iterator over the fragments of one streamed invocation.

    Usage:
        stream = orchestrator.generate_stream(messages)
        async for fragment in stream:
            render(fragment.delta)
        if stream.error:
            ...

    Attributes populated once the terminal fragment has been pulled:
        final:    the ``done=True`` fragment
        error:    the failure carried by the terminal fragment, if any
        provider: the backend that produced the stream
    """

    def __init__(self, source: AsyncIterator[StreamFragment]):
        self._source = source
        self._finished = False
        self.final: Optional[StreamFragment] = None
        self.error: Optional[Exception] = None
        self.provider: Optional[str] = None

    def __aiter__(self) -> "FragmentStream":
        return self

    async def __anext__(self) -> StreamFragment:
        if self._finished:
            raise StopAsyncIteration
        try:
            fragment = await self._source.__anext__()
        except StopAsyncIteration:
            self._finished = True
            raise
        if fragment.done:
            self._finished = True
            self.final = fragment
            self.error = fragment.error
            self.provider = fragment.provider
        return fragment

    @property
    def finished(self) -> bool:
        return self._finished

    async def aclose(self) -> None:
        """Stop the stream early and release the in-flight backend call."""
        self._finished = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()

    async def collect(self) -> StreamFragment:
        """Drain the stream and return its terminal fragment."""
        async for _ in self:
            pass
        if self.final is None:
            raise RuntimeError("stream ended without a terminal fragment")
        return self.final
