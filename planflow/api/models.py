"""
API Models (Pydantic)

Request/Response schemas for the functions and sessions routes.
Field names follow the camelCase wire format of the extension front-end.
"""

from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..executor.models import ExecutionMode


# =============================================================================
# Functions
# =============================================================================

class AnalysisContext(str, Enum):
    PLAN_EXECUTION = "plan_execution"
    RESPONSE_ANALYSIS = "response_analysis"


class AnalyzeRequest(BaseModel):
    """Body of the analyze-response function."""
    context: str
    prompt: Optional[str] = None
    response: Optional[str] = None
    stepIndex: Optional[int] = None
    stepId: Optional[str] = None
    projectId: Optional[str] = None


class StepExecutionResult(BaseModel):
    success: bool
    response: str
    needsUserAction: bool = False
    userActionType: Optional[str] = None
    userActionPrompt: Optional[str] = None


class ResponseAnalysisResult(BaseModel):
    shouldContinue: bool
    needsCorrection: bool
    correctionPrompt: Optional[str] = None
    suggestion: str


# =============================================================================
# Sessions
# =============================================================================

class StepIn(BaseModel):
    """Step as produced by plan generation."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    title: str = Field(..., alias="titre", min_length=1)
    description: str = ""
    prompt: str = Field(..., min_length=1)


class SessionCreate(BaseModel):
    steps: List[StepIn]
    mode: ExecutionMode = ExecutionMode.MANUAL
    projectId: Optional[str] = None
    autoDelaySeconds: Optional[float] = Field(None, ge=0, le=60)

    model_config = {
        "json_schema_extra": {
            "example": {
                "mode": "auto",
                "projectId": "proj-42",
                "steps": [
                    {"id": "1", "titre": "Create hero section", "prompt": "Build a hero section..."},
                    {"id": "2", "titre": "Add pricing table", "prompt": "Add a pricing table..."},
                ],
            }
        }
    }


class SessionResponse(BaseModel):
    session_id: str
    state: str
    mode: Optional[str]
    current_index: int
    awaiting_auto_continue: bool
    runner_invocations: int
    plan: Dict[str, Any]
    log: List[Dict[str, Any]]
    notifications: List[Dict[str, Any]] = Field(default_factory=list)
