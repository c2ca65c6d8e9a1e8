"""
RouterAgent

Chooses the processing path for a question: retrieval over the knowledge
collection (rag), a generated SQL query (code_execution), or both (hybrid).

The decision itself is delegated to a RouteClassifier:
- HeuristicRouteClassifier scores weighted regex signals plus extracted
  entities. Pure and stateless.
- LLMRouteClassifier asks the model for a JSON verdict and falls back to
  the heuristic classifier on any failure.
"""

import json
import logging
import re
import time
from collections.abc import Sequence
from typing import NamedTuple, Protocol

from nlquery.agents.base import BaseAgent
from nlquery.agents.entities import EntityExtractor
from nlquery.llm.base import BaseLLMProvider
from nlquery.llm.models import LLMMessage
from nlquery.models.agent import InvalidInputError, RouterInput, RouterOutput
from nlquery.models.query import EntityCategory, ExtractedEntity, QueryPath, RoutingDecision
from nlquery.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)


class RouteClassifier(Protocol):
    async def classify(
        self,
        question: str,
        entities: Sequence[ExtractedEntity],
        has_schema: bool | None,
    ) -> tuple[QueryPath, float]: ...


class SignalRule(NamedTuple):
    pattern: re.Pattern[str]
    weight: float


def _signal(regex: str, weight: float) -> SignalRule:
    return SignalRule(re.compile(regex, re.IGNORECASE), weight)


# Questions answered by computing over rows
CODE_SIGNALS: tuple[SignalRule, ...] = (
    _signal(r"\b(?:total|sum|count|average|avg|median|min(?:imum)?|max(?:imum)?)\b", 1.0),
    _signal(r"\bhow (?:many|much)\b", 1.0),
    _signal(r"\b(?:top|bottom)\s+\d+\b|\b(?:highest|lowest|most|least|rank(?:ing|ed)?)\b", 0.8),
    _signal(r"\b(?:group(?:ed)? by|per|broken down by|breakdown)\b", 0.5),
    _signal(r"\b(?:show|list|give|find|get)\s+(?:me\s+)?(?:all\s+)?(?:the\s+)?\w+", 0.5),
    _signal(r"\b(?:trend|over time|compare|comparison|growth|increase|decrease)\b", 0.5),
    _signal(r"\b(?:select|from|where|join)\b.*\b(?:from|where|join)\b", 0.5),
)

# Questions answered from documentation about the data
KNOWLEDGE_SIGNALS: tuple[SignalRule, ...] = (
    _signal(r"\bwhat (?:is|are|does)\b.*\b(?:mean|meaning|stand for)\b", 1.2),
    _signal(r"\b(?:define|definition|meaning|semantics)\b", 1.0),
    _signal(r"\bhow (?:is|are)\b.*\b(?:calculated|computed|defined|measured|derived)\b", 1.2),
    _signal(r"\b(?:explain|describe|documentation|docs)\b", 0.8),
    _signal(r"\bwhy\b", 0.6),
    _signal(r"\b(?:which|what) (?:tables?|columns?|fields?|data sources?)\b", 1.0),
    _signal(r"\bwhat is an?\b", 0.4),
)

_ENTITY_WEIGHTS: dict[EntityCategory, float] = {
    EntityCategory.METRIC: 0.5,
    EntityCategory.TIME_PERIOD: 0.5,
    EntityCategory.DATE: 0.4,
    EntityCategory.MONTH: 0.4,
    EntityCategory.QUARTER: 0.4,
    EntityCategory.YEAR: 0.3,
    EntityCategory.COMPARISON: 0.5,
    EntityCategory.RANGE: 0.5,
    EntityCategory.PERCENTAGE: 0.2,
    EntityCategory.CURRENCY: 0.3,
    EntityCategory.NUMBER: 0.2,
}

STRONG_SIGNAL = 1.0
DEFAULT_CONFIDENCE = 0.5


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def score_signals(question: str, rules: Sequence[SignalRule]) -> float:
    """Sum of weights of the rules that match the question."""
    return sum(rule.weight for rule in rules if rule.pattern.search(question))


def score_entities(entities: Sequence[ExtractedEntity]) -> float:
    """Each entity category contributes its weight once."""
    categories = {entity.category for entity in entities}
    return sum(_ENTITY_WEIGHTS.get(category, 0.0) for category in categories)


class HeuristicRouteClassifier:
    """Weighted rule scoring over the question text and its entities."""

    def __init__(
        self,
        code_signals: Sequence[SignalRule] = CODE_SIGNALS,
        knowledge_signals: Sequence[SignalRule] = KNOWLEDGE_SIGNALS,
        strong_signal: float = STRONG_SIGNAL,
    ):
        self.code_signals = tuple(code_signals)
        self.knowledge_signals = tuple(knowledge_signals)
        self.strong_signal = strong_signal

    async def classify(
        self,
        question: str,
        entities: Sequence[ExtractedEntity],
        has_schema: bool | None,
    ) -> tuple[QueryPath, float]:
        return self.decide(question, entities, has_schema)

    def decide(
        self,
        question: str,
        entities: Sequence[ExtractedEntity],
        has_schema: bool | None,
    ) -> tuple[QueryPath, float]:
        code = score_signals(question, self.code_signals) + score_entities(entities)
        knowledge = score_signals(question, self.knowledge_signals)

        if has_schema is False:
            code /= 2

        if code == 0 and knowledge == 0:
            path = QueryPath.RAG if has_schema is False else QueryPath.CODE_EXECUTION
            return path, DEFAULT_CONFIDENCE

        if code >= self.strong_signal and knowledge >= self.strong_signal:
            balance = min(code, knowledge) / max(code, knowledge)
            return QueryPath.HYBRID, _clamp(0.5 + 0.4 * balance)

        winner, loser = max(code, knowledge), min(code, knowledge)
        path = QueryPath.CODE_EXECUTION if code >= knowledge else QueryPath.RAG
        margin = (winner - loser) / (winner + loser)
        return path, _clamp(0.5 + 0.45 * margin)


class LLMRouteClassifier:
    """Model-based classification with heuristic fallback."""

    def __init__(
        self,
        llm_provider: BaseLLMProvider,
        prompts: PromptLoader | None = None,
        fallback: HeuristicRouteClassifier | None = None,
    ):
        self.llm = llm_provider
        self.prompts = prompts or PromptLoader()
        self.fallback = fallback or HeuristicRouteClassifier()

    async def classify(
        self,
        question: str,
        entities: Sequence[ExtractedEntity],
        has_schema: bool | None,
    ) -> tuple[QueryPath, float]:
        prompt = self.prompts.render(
            "agents/router.md",
            user_query=question,
            entities=", ".join(entity.value for entity in entities),
            has_schema=bool(has_schema),
        )
        try:
            reply = await self.llm.complete(
                [LLMMessage(role="user", content=prompt)],
                temperature=0.0,
            )
            return self._parse(reply)
        except Exception as e:
            logger.warning(f"LLM routing failed, using heuristic classifier: {e}")
            return await self.fallback.classify(question, entities, has_schema)

    @staticmethod
    def _parse(reply: str) -> tuple[QueryPath, float]:
        text = reply.strip()
        start, end = text.find("{"), text.rfind("}") + 1
        if start == -1 or end == 0:
            raise ValueError("No JSON found in router response")
        data = json.loads(text[start:end])
        path = QueryPath(str(data["path"]).lower())
        confidence = _clamp(float(data.get("confidence", DEFAULT_CONFIDENCE)))
        return path, confidence


class RouterAgent(BaseAgent):
    """
    Route a question to a processing path.

    Usage:
        router = RouterAgent()
        decision = await router.route("What was total revenue last month?")
        decision.path  # QueryPath.CODE_EXECUTION
    """

    def __init__(
        self,
        classifier: RouteClassifier | None = None,
        extractor: EntityExtractor | None = None,
    ):
        super().__init__(name="RouterAgent")
        self.classifier = classifier or HeuristicRouteClassifier()
        self.extractor = extractor or EntityExtractor()

    async def execute(self, input: RouterInput) -> RouterOutput:
        decision, entities = await self._route(input.query, input.has_schema)
        return RouterOutput(
            success=True,
            decision=decision,
            entities=entities,
            data={"path": str(decision.path), "confidence": decision.confidence},
            metadata=self._create_metadata(),
        )

    async def route(self, question: str, has_schema: bool | None = None) -> RoutingDecision:
        decision, _ = await self._route(question, has_schema)
        return decision

    async def _route(
        self, question: str, has_schema: bool | None
    ) -> tuple[RoutingDecision, list[ExtractedEntity]]:
        if not question or not question.strip():
            raise InvalidInputError(agent=self.name, message="Question must not be empty")

        start = time.perf_counter()
        entities = self.extractor.extract_entities(question)
        path, confidence = await self.classifier.classify(question, entities, has_schema)
        elapsed_ms = (time.perf_counter() - start) * 1000

        decision = RoutingDecision(
            path=QueryPath(path),
            confidence=_clamp(confidence),
            processing_time_ms=elapsed_ms,
        )
        logger.info(
            f"Routed question to {decision.path} (confidence {decision.confidence:.2f})",
            extra={
                "path": str(decision.path),
                "confidence": decision.confidence,
                "entities": [entity.value for entity in entities],
                "duration_ms": elapsed_ms,
            },
        )
        return decision, entities
