import asyncio
from typing import AsyncIterator, List, Optional, Sequence, Union

from .base import ModelBackend, StreamingModelBackend
from .errors import ProviderError
from .types import GenerationOptions, GenerationResult, Message, StreamFragment

ScriptItem = Union[str, GenerationResult, Exception]

DEFAULT_STUB_OUTPUT = "This is a stubbed response."


class StubModelBackend(ModelBackend):
    """
    Deterministic fake model for testing and CI.

    Without a script it always answers DEFAULT_STUB_OUTPUT. With a script,
    each call consumes the next item (the last item repeats once the script
    runs out): strings and GenerationResults are returned, exceptions are
    raised. Call counts are recorded for assertions.
    """

    def __init__(
        self,
        name: str = "stub",
        script: Optional[Sequence[ScriptItem]] = None,
        available: bool = True,
        probe_error: Optional[Exception] = None,
        delay_s: float = 0.0,
    ):
        self.name = name
        self.script: List[ScriptItem] = list(script or [])
        self.available = available
        self.probe_error = probe_error
        self.delay_s = delay_s
        self.calls = 0
        self.probe_calls = 0
        self.received: List[List[Message]] = []

    def _next_item(self) -> ScriptItem:
        if not self.script:
            return DEFAULT_STUB_OUTPUT
        if len(self.script) > 1:
            return self.script.pop(0)
        return self.script[0]

    def _to_result(self, item: ScriptItem) -> GenerationResult:
        if isinstance(item, Exception):
            raise item
        if isinstance(item, GenerationResult):
            return item
        return GenerationResult(content=item, model_id=self.name, finish_reason="stop", provider=self.name)

    async def generate_text(
        self, messages: List[Message], options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        self.calls += 1
        self.received.append(list(messages))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        return self._to_result(self._next_item())

    async def is_available(self) -> bool:
        self.probe_calls += 1
        if self.probe_error is not None:
            raise self.probe_error
        return self.available


class StreamingStubModelBackend(StubModelBackend, StreamingModelBackend):
    """
    Stub that streams its scripted response word by word.

    ``fail_after`` makes the stream raise ``stream_error`` after that many
    fragments have been yielded (mid-stream failure).
    """

    def __init__(
        self,
        name: str = "stub-stream",
        script: Optional[Sequence[ScriptItem]] = None,
        available: bool = True,
        probe_error: Optional[Exception] = None,
        delay_s: float = 0.0,
        fail_after: Optional[int] = None,
        stream_error: Optional[Exception] = None,
    ):
        super().__init__(name=name, script=script, available=available, probe_error=probe_error, delay_s=delay_s)
        self.fail_after = fail_after
        self.stream_error = stream_error
        self.stream_calls = 0

    async def generate_stream(
        self, messages: List[Message], options: Optional[GenerationOptions] = None
    ) -> AsyncIterator[StreamFragment]:
        self.stream_calls += 1
        self.received.append(list(messages))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        result = self._to_result(self._next_item())

        content = ""
        emitted = 0
        for word in result.content.split(" "):
            if self.fail_after is not None and emitted >= self.fail_after:
                raise self.stream_error or ProviderError("stream interrupted", provider=self.name)
            delta = word if not content else f" {word}"
            content += delta
            emitted += 1
            yield StreamFragment(content=content, delta=delta, done=False, provider=self.name)

        if self.fail_after is not None and emitted >= self.fail_after:
            raise self.stream_error or ProviderError("stream interrupted", provider=self.name)
        yield StreamFragment(content=content, delta="", done=True, usage=result.usage, provider=self.name)
