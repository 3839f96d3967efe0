# study_qa/application/use_cases/classify_intent.py
from __future__ import annotations

import asyncio
import logging
from typing import Any

from study_qa.application.dto.qa_dto import ClassifierParams
from study_qa.application.ports.llm_port import ChatMessage, LLMPort
from study_qa.domain.errors import LLMError, MalformedModelOutput
from study_qa.domain.models import AvailableContext, ClassificationDecision
from study_qa.domain.services.json_extraction import extract_json
from study_qa.domain.services.prompts import (
    CLASSIFICATION_SYSTEM_PROMPT,
    build_classification_prompt,
)

logger = logging.getLogger(__name__)

_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0"}


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    return None


def parse_decision(raw: str) -> ClassificationDecision:
    """Turn the classifier's raw text into a decision.

    Raises:
        MalformedModelOutput: no JSON object, or no usable ``use_documents`` field
    """
    value = extract_json(raw)
    if isinstance(value, list):
        value = next((v for v in value if isinstance(v, dict)), None)
    if not isinstance(value, dict):
        raise MalformedModelOutput("classification is not a JSON object", raw=raw)

    use_documents = _as_bool(value.get("use_documents"))
    if use_documents is None:
        raise MalformedModelOutput("classification lacks a boolean 'use_documents'", raw=raw)

    reasoning = value.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        reasoning = "Classification completed"
    return ClassificationDecision(use_corpus=use_documents, reasoning=reasoning.strip())


def fallback_decision(reason: str) -> ClassificationDecision:
    return ClassificationDecision(
        use_corpus=False,
        reasoning=f"Fell back to general knowledge: {reason}",
        fallback=True,
    )


class IntentClassifier:
    """
    Routes a question to the user's corpus or to general knowledge with one
    JSON-only model call. Model failures never escape ``classify``: they
    become the general-knowledge fallback so the question is still answered.
    """

    def __init__(self, llm: LLMPort, params: ClassifierParams | None = None) -> None:
        self.llm = llm
        self.params = params or ClassifierParams()

    def build_messages(self, question: str, context: AvailableContext) -> list[ChatMessage]:
        return [
            ChatMessage(role="system", content=CLASSIFICATION_SYSTEM_PROMPT),
            ChatMessage(role="user", content=build_classification_prompt(question, context)),
        ]

    async def request_decision(
        self, question: str, context: AvailableContext
    ) -> ClassificationDecision:
        """Single model call + layered parse. Raises on any failure."""
        response = await asyncio.wait_for(
            self.llm.chat(
                self.build_messages(question, context),
                temperature=self.params.temperature,
                max_tokens=self.params.max_tokens,
                json_mode=True,
            ),
            timeout=self.params.timeout_s,
        )
        return parse_decision(response.text)

    async def classify(self, question: str, context: AvailableContext) -> ClassificationDecision:
        # nothing to search: skip the model call entirely
        if context.is_empty:
            return ClassificationDecision(
                use_corpus=False,
                reasoning="No documents or note content available; using general knowledge",
            )

        try:
            decision = await self.request_decision(question, context)
        except MalformedModelOutput as ex:
            logger.warning("classifier returned unparseable output: %s (raw=%r)", ex, ex.raw[:200])
            return fallback_decision("unparseable classifier output")
        except TimeoutError:
            logger.warning("classifier timed out after %ss", self.params.timeout_s)
            return fallback_decision("classifier timed out")
        except LLMError as ex:
            logger.warning("classifier call failed: %s", ex)
            return fallback_decision("classifier unavailable")

        logger.info(
            "classified question: use_corpus=%s (%s)", decision.use_corpus, decision.reasoning
        )
        return decision
