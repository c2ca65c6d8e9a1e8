"""
Base Agent Framework

Abstract base class for every stage of the NLQuery pipeline.
Provides a consistent interface, timing, logging, and error wrapping.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self):
            super().__init__(name="MyAgent")

        async def execute(self, input: AgentInput) -> AgentOutput:
            return AgentOutput(
                success=True,
                data={"result": "value"},
                metadata=self._create_metadata()
            )
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from nlquery.models.agent import (
    AgentError,
    AgentInput,
    AgentMetadata,
    AgentOutput,
    UpstreamError,
)

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """
    Abstract base class for pipeline agents.

    The __call__ method wraps execute() with:
    - Performance timing
    - Start/completion logging
    - Metadata collection
    - Wrapping of unexpected exceptions in UpstreamError

    Agents never retry. Timeouts and retries belong to the transports they
    call (LLM providers, connectors).

    Attributes:
        name: Unique identifier for this agent
    """

    def __init__(self, name: str):
        self.name = name
        self._metadata = self._create_metadata()
        logger.debug(f"Initialized {self.name}", extra={"agent": self.name})

    @abstractmethod
    async def execute(self, input: AgentInput) -> AgentOutput:
        """
        Execute the agent's core logic.

        Args:
            input: Typed input data for the agent

        Returns:
            AgentOutput: Typed output data with success status and metadata

        Raises:
            AgentError: On failures the caller must see
        """
        pass  # pragma: no cover - abstract method

    async def __call__(self, input: AgentInput) -> AgentOutput:
        """
        Execute the agent with timing, logging, and error handling.

        Raises:
            AgentError: Raised by execute(), or UpstreamError wrapping any
                other exception
        """
        start_time = time.perf_counter()
        self._metadata = self._create_metadata()

        logger.info(
            f"Starting {self.name}",
            extra={
                "agent": self.name,
                "query": input.query[:100],
                "context_keys": list(input.context.keys()),
            },
        )

        try:
            output = await self.execute(input)
        except AgentError as e:
            self._finish(start_time, error=str(e))
            logger.warning(
                f"Agent error in {self.name}",
                extra={"agent": self.name, "error": str(e), "kind": str(e.kind), "context": e.context},
            )
            raise
        except Exception as e:
            duration_ms = self._finish(start_time, error=str(e))
            logger.error(
                f"Unexpected error in {self.name}",
                extra={
                    "agent": self.name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "duration_ms": duration_ms,
                },
                exc_info=True,
            )
            raise UpstreamError(
                agent=self.name,
                message=f"Unexpected error: {e}",
                context={"error_type": type(e).__name__},
            ) from e

        duration_ms = self._finish(start_time)
        output.metadata = self._metadata

        logger.info(
            f"Completed {self.name}",
            extra={
                "agent": self.name,
                "success": output.success,
                "duration_ms": duration_ms,
                "llm_calls": self._metadata.llm_calls,
            },
        )
        return output

    def _finish(self, start_time: float, error: Optional[str] = None) -> float:
        duration_ms = (time.perf_counter() - start_time) * 1000
        self._metadata.mark_complete()
        self._metadata.duration_ms = duration_ms
        self._metadata.error = error
        return duration_ms

    def _create_metadata(self) -> AgentMetadata:
        """Create fresh metadata object for tracking execution."""
        return AgentMetadata(agent_name=self.name)

    def _track_llm_call(self, tokens: Optional[int] = None) -> None:
        """
        Track an LLM API call in metadata.

        Args:
            tokens: Optional token count for this call
        """
        self._metadata.llm_calls += 1
        if tokens:
            self._metadata.tokens_used = (self._metadata.tokens_used or 0) + tokens

        logger.debug(
            f"LLM call tracked for {self.name}",
            extra={
                "agent": self.name,
                "total_llm_calls": self._metadata.llm_calls,
                "tokens_this_call": tokens,
            },
        )
