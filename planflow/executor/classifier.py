"""
planflow - Result Classifier

Turns a step's raw response into success / error / ambiguous.
"""
from dataclasses import dataclass
from typing import Optional, Protocol

from ..config.logging import get_logger
from ..llm.models import LLMRequest
from ..llm.prompts import keyword_verdict, parse_json_object, step_classification_messages
from .models import Classification, StepResult

logger = get_logger("executor.classifier")

UNREADABLE_VERDICT_MESSAGE = "The classifier returned an unreadable verdict."
UNREADABLE_VERDICT_SUGGESTION = "Review the step output manually."


@dataclass(frozen=True)
class ClassificationRequest:
    step_prompt: str
    step_title: str
    raw_response: str


class ResultClassifier(Protocol):
    async def classify(self, request: ClassificationRequest) -> StepResult:
        ...


class CompletionClient(Protocol):
    async def complete(self, request: LLMRequest):
        ...


class LLMResultClassifier:
    """
    Asks an LLM for a verdict.

    Malformed model output becomes `ambiguous`. Errors raised by the LLM
    client itself propagate to the caller.
    """

    def __init__(self, client: CompletionClient, model: Optional[str] = None, max_tokens: int = 500):
        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    async def classify(self, request: ClassificationRequest) -> StepResult:
        llm_request = LLMRequest(
            messages=step_classification_messages(
                request.step_title, request.step_prompt, request.raw_response,
            ),
            model=self._model,
            temperature=0.2,
            max_tokens=self._max_tokens,
            purpose="step_classification",
        )
        response = await self._client.complete(llm_request)
        return self._parse_verdict(response.content)

    @staticmethod
    def _parse_verdict(content: str) -> StepResult:
        data = parse_json_object(content)
        if data is None:
            logger.warning("Unparseable classifier output: %.200s", content)
            return StepResult.ambiguous(UNREADABLE_VERDICT_MESSAGE, UNREADABLE_VERDICT_SUGGESTION)

        try:
            classification = Classification(str(data.get("status", "")).lower())
        except ValueError:
            logger.warning("Unknown classifier status: %r", data.get("status"))
            return StepResult.ambiguous(UNREADABLE_VERDICT_MESSAGE, UNREADABLE_VERDICT_SUGGESTION)

        message = data.get("message")
        if not isinstance(message, str) or not message.strip():
            message = "No explanation provided."
        suggestion = data.get("suggestion")
        if suggestion is not None and not isinstance(suggestion, str):
            suggestion = str(suggestion)

        return StepResult(classification, message.strip(), suggestion or None)


class KeywordResultClassifier:
    """Offline classifier: scans the response for success and error keywords."""

    async def classify(self, request: ClassificationRequest) -> StepResult:
        verdict = keyword_verdict(request.raw_response)
        has_error, has_success = verdict["has_error"], verdict["has_success"]

        if has_error and not has_success:
            return StepResult.error(request.raw_response, "Error detected")
        if has_success and not has_error:
            return StepResult.success(request.raw_response, "Step succeeded")
        return StepResult.ambiguous(request.raw_response, "Ambiguous response")
