"""
Functions API

The analyze-response function: executes a plan step through the LLM
(`plan_execution`) or judges a tool response (`response_analysis`).
"""

from typing import Union

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from ..config.logging import get_logger
from ..llm import FallbackLLMClient, LLMError, LLMRequest, keyword_verdict, parse_json_object
from ..llm.prompts import response_analysis_messages, step_execution_messages
from .deps import get_llm
from .models import AnalysisContext, AnalyzeRequest, ResponseAnalysisResult, StepExecutionResult

logger = get_logger("api.functions")

router = APIRouter(prefix="/functions", tags=["functions"])


# =============================================================================
# Helpers
# =============================================================================

def _step_execution_result(content: str) -> StepExecutionResult:
    data = parse_json_object(content)
    if data is None:
        # Plain text answer: treat it as the step output
        return StepExecutionResult(success=True, response=content)

    return StepExecutionResult(
        success=bool(data.get("success", False)),
        response=str(data.get("response") or "No response received"),
        needsUserAction=bool(data.get("needsUserAction", False)),
        userActionType=data.get("userActionType"),
        userActionPrompt=data.get("userActionPrompt"),
    )


def _keyword_analysis(response: str) -> ResponseAnalysisResult:
    verdict = keyword_verdict(response)
    has_error, has_success = verdict["has_error"], verdict["has_success"]
    if has_success:
        suggestion = "Step succeeded"
    elif has_error:
        suggestion = "Error detected"
    else:
        suggestion = "Ambiguous response"
    return ResponseAnalysisResult(
        shouldContinue=has_success and not has_error,
        needsCorrection=has_error,
        suggestion=suggestion,
    )


def _response_analysis_result(content: str, response: str) -> ResponseAnalysisResult:
    data = parse_json_object(content)
    if data is None:
        return _keyword_analysis(response)

    return ResponseAnalysisResult(
        shouldContinue=bool(data.get("shouldContinue", False)),
        needsCorrection=bool(data.get("needsCorrection", False)),
        correctionPrompt=data.get("correctionPrompt"),
        suggestion=str(data.get("suggestion") or "Analysis complete"),
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.post(
    "/analyze-response",
    response_model=Union[StepExecutionResult, ResponseAnalysisResult],
)
async def analyze_response(
    data: AnalyzeRequest,
    llm: FallbackLLMClient = Depends(get_llm),
):
    """Execute a step prompt or analyse a tool response."""
    try:
        context = AnalysisContext(data.context)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unsupported context: {data.context}")

    try:
        if context == AnalysisContext.PLAN_EXECUTION:
            if not data.prompt:
                raise HTTPException(status_code=400, detail="prompt is required")
            logger.info("Executing step %s", data.stepIndex if data.stepIndex is not None else data.stepId)
            completion = await llm.complete(LLMRequest(
                messages=step_execution_messages(data.prompt),
                temperature=0.3,
                max_tokens=1000,
                purpose="plan_execution",
            ))
            return _step_execution_result(completion.content)

        if data.response is None:
            raise HTTPException(status_code=400, detail="response is required")
        completion = await llm.complete(LLMRequest(
            messages=response_analysis_messages(data.response),
            temperature=0.2,
            max_tokens=500,
            purpose="response_analysis",
        ))
        return _response_analysis_result(completion.content, data.response)

    except LLMError as e:
        logger.error("analyze-response failed: %s", e)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to analyze response", "details": str(e)},
        )
