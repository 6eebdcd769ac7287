"""Intent classification for worker utterances."""

import asyncio
import json
import logging
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from supervisor.core.config import settings
from supervisor.schemas.pipeline import Intent, IntentResult
from supervisor.schemas.session import ConversationState
from supervisor.services.graph.prompts import INTENT_CLASSIFIER_PROMPT, INTENT_CONTEXT_TEMPLATE
from supervisor.services.llm import get_chat_model, strip_code_fences

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5


def fallback_intent() -> IntentResult:
    """Result used whenever classification cannot be trusted."""
    return IntentResult(
        intent=Intent.GENERAL_QUESTION,
        confidence=FALLBACK_CONFIDENCE,
        extracted_entities={},
    )


def parse_intent(content: str) -> IntentResult:
    """Parse the classifier's JSON reply.

    Raises:
        ValueError: If the reply is not a JSON object with a known intent.
    """
    parsed: Any = json.loads(strip_code_fences(content))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")

    entities = parsed.get("extracted_entities") or {}
    if not isinstance(entities, dict):
        raise ValueError("extracted_entities must be an object")

    try:
        return IntentResult(
            intent=parsed["intent"],
            confidence=parsed.get("confidence", FALLBACK_CONFIDENCE),
            extracted_entities={k: v for k, v in entities.items() if v not in (None, "")},
        )
    except (KeyError, ValidationError) as e:
        raise ValueError(f"Invalid classification: {e}") from e


class IntentClassifier:
    """Classifies utterances into the closed intent set.

    Never raises: provider errors, timeouts, and unparseable replies all
    produce ``fallback_intent()`` so the turn can continue.
    """

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._llm = llm
        self.timeout_seconds = timeout_seconds or settings.provider_timeout_seconds

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_chat_model(
                settings.classifier_model,
                settings.classifier_temperature,
                settings.classifier_max_tokens,
            )
        return self._llm

    async def classify(self, utterance: str, session: ConversationState) -> IntentResult:
        prompt = INTENT_CONTEXT_TEMPLATE.format(
            worker_name=session.worker_name,
            station=session.station,
            current_document=session.current_document_id or "None",
            utterance=utterance,
        )

        try:
            async with asyncio.timeout(self.timeout_seconds):
                response = await self.llm.ainvoke(
                    [SystemMessage(content=INTENT_CLASSIFIER_PROMPT), HumanMessage(content=prompt)]
                )
        except Exception:
            logger.exception("Intent classifier provider call failed")
            return fallback_intent()

        content = response.content if isinstance(response.content, str) else ""
        try:
            result = parse_intent(content)
        except ValueError:
            # json.JSONDecodeError is a ValueError
            logger.warning("Failed to parse intent classifier response: %s", content)
            return fallback_intent()

        logger.info(
            "Intent classified: intent=%s, confidence=%.2f, message=%r",
            result.intent.value,
            result.confidence,
            utterance,
        )
        return result
