from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional

from .types import GenerationOptions, GenerationResult, Message, StreamFragment


class ModelBackend(ABC):
    """
    Abstract model boundary.
    Orchestrator code must depend ONLY on this interface.

    Backends are stateless besides configuration (credentials, endpoint,
    timeouts) and are shared across concurrent calls without locking.
    """

    name: str = "backend"
    supports_streaming: bool = False

    @abstractmethod
    async def generate_text(
        self, messages: List[Message], options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        """Generate a complete response from the model."""
        raise NotImplementedError

    @abstractmethod
    async def is_available(self) -> bool:
        """Lightweight reachability probe. Must never raise."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources held by the backend."""
        return None


class StreamingModelBackend(ModelBackend):
    """A backend that can also emit partial responses as they are produced."""

    supports_streaming = True

    @abstractmethod
    def generate_stream(
        self, messages: List[Message], options: Optional[GenerationOptions] = None
    ) -> AsyncIterator[StreamFragment]:
        """Yield fragments in order, ending with one ``done=True`` fragment."""
        raise NotImplementedError
