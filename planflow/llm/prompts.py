"""
planflow - Prompts

System prompts for step execution, response analysis and step result
classification, plus a lenient JSON extractor for model output.
"""
import json
import re
from typing import Any, Dict, List, Optional

from .models import Message

STEP_EXECUTION_PROMPT = """You are an AI assistant that helps execute development steps.
Analyse the step prompt and give a detailed account of its execution.

Reply with a JSON object containing:
- success: boolean (true if the step can be executed successfully)
- response: string (detailed description of what was done or of the problem)
- needsUserAction: boolean (true if the user has to act)
- userActionType: optional string ('api_key', 'confirmation', 'input')
- userActionPrompt: optional string (message for the user)

Cases that need user action include API key configuration, security
confirmations and entry of specific parameters."""

RESPONSE_ANALYSIS_PROMPT = """You analyse responses returned by AI tools.
Decide what should happen next.

Reply with a JSON object containing:
- shouldContinue: boolean (true if the next step can start)
- needsCorrection: boolean (true if a correction is needed)
- correctionPrompt: optional string (new prompt that fixes the step)
- suggestion: string (advice for what to do next)

Look for error or success keywords, judge whether the step goal was met and
detect whether a correction or improvement is needed."""

STEP_CLASSIFICATION_PROMPT = """You review the outcome of one step of a no-code project plan.
Given the step title, the instruction that was sent and the raw response,
decide whether the step succeeded.

Reply with a JSON object only:
- status: one of "success", "error", "ambiguous"
- message: short human-readable summary of the outcome
- suggestion: optional advice to improve or fix the step

Use "ambiguous" when the response neither clearly completes nor clearly
fails the step."""

ERROR_KEYWORDS = ("erreur", "error", "échec", "failed", "impossible")
SUCCESS_KEYWORDS = ("succès", "success", "complété", "terminé", "réussi", "completed")


def _keyword_pattern(keywords) -> "re.Pattern":
    """Match any keyword at the start of a word."""
    return re.compile(r"\b(?:" + "|".join(map(re.escape, keywords)) + ")")


_ERROR_RE = _keyword_pattern(ERROR_KEYWORDS)
_SUCCESS_RE = _keyword_pattern(SUCCESS_KEYWORDS)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def step_execution_messages(prompt: str) -> List[Message]:
    return [
        Message.system(STEP_EXECUTION_PROMPT),
        Message.user(f"Step to execute: {prompt}"),
    ]


def response_analysis_messages(response: str) -> List[Message]:
    return [
        Message.system(RESPONSE_ANALYSIS_PROMPT),
        Message.user(f"Analyse this response: {response}"),
    ]


def step_classification_messages(step_title: str, step_prompt: str, raw_response: str) -> List[Message]:
    return [
        Message.system(STEP_CLASSIFICATION_PROMPT),
        Message.user(
            f"Step title: {step_title}\n\n"
            f"Instruction sent:\n{step_prompt}\n\n"
            f"Raw response:\n{raw_response}"
        ),
    ]


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Extract a JSON object from model output.

    Accepts bare JSON, fenced ```json blocks and JSON embedded in prose.
    Returns None when nothing parses to a dict.
    """
    if not text:
        return None

    candidates = [text.strip()]
    candidates.extend(m.strip() for m in _FENCE_RE.findall(text))
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def keyword_verdict(text: str) -> Dict[str, bool]:
    """Keyword scan used when no model verdict is available."""
    lowered = (text or "").lower()
    return {
        "has_error": bool(_ERROR_RE.search(lowered)),
        "has_success": bool(_SUCCESS_RE.search(lowered)),
    }
