"""
planflow - Step Runner

Executes exactly one step and returns it with a classified result.
"""
from typing import Callable, Optional

from ..config.logging import get_logger
from .actions import ActionInvoker, ActionRequest, ActionTransportError
from .classifier import ClassificationRequest, ResultClassifier
from .models import Step, StepResult, StepStatus

logger = get_logger("executor.step_runner")

CLASSIFICATION_UNAVAILABLE_MESSAGE = "Automatic classification was unavailable."
CLASSIFICATION_UNAVAILABLE_SUGGESTION = "Review the step output manually."
USER_ACTION_MESSAGE = "The step needs an action from you before it can complete."


class StepRunner:
    """
    Runs one step: in progress -> action call -> classification -> result.

    Never raises for collaborator failures:
    - transport failure -> error, message from the failure
    - classifier failure -> ambiguous, fixed advisory message
    """

    def __init__(
        self,
        invoker: ActionInvoker,
        classifier: ResultClassifier,
        project_id: Optional[str] = None,
    ):
        self._invoker = invoker
        self._classifier = classifier
        self._project_id = project_id

    async def run(
        self,
        step: Step,
        publish: Callable[[Step], None],
        index: Optional[int] = None,
    ) -> Step:
        """
        Execute a single step.

        Args:
            step: Step in pending (or error, on retry) status
            publish: Receives the in-progress step before the action is called
            index: Position in the plan, forwarded to the action

        Returns:
            The finished step (completed or error), never in progress
        """
        if step.status == StepStatus.IN_PROGRESS:
            raise ValueError(f"Step {step.step_id} is already in progress")

        running = step.begin()
        publish(running)

        result = await self._attempt(running, index)
        finished = running.finish(result)

        logger.info(
            "Step %s finished: %s",
            step.step_id,
            result.classification.value,
            extra={"extra_data": {
                "step_id": step.step_id,
                "attempt": finished.attempts,
                "classification": result.classification.value,
            }},
        )
        return finished

    async def _attempt(self, step: Step, index: Optional[int]) -> StepResult:
        request = ActionRequest(
            step_id=step.step_id,
            prompt=step.prompt,
            project_id=self._project_id,
            step_index=index,
        )

        try:
            response = await self._invoker.invoke(request)
        except ActionTransportError as e:
            logger.warning("Transport failure on step %s: %s", step.step_id, e)
            return StepResult.error(f"Technical error: {e}")
        except Exception as e:
            logger.warning(
                "Action invoker raised %s on step %s", type(e).__name__, step.step_id,
                exc_info=True,
            )
            return StepResult.error(f"Technical error: {type(e).__name__}: {e}")

        if response.needs_user_action:
            return StepResult.ambiguous(
                response.user_action_prompt or USER_ACTION_MESSAGE,
                suggestion=(
                    f"Provide the requested {response.user_action_type} and retry the step."
                    if response.user_action_type else None
                ),
            )

        try:
            return await self._classifier.classify(ClassificationRequest(
                step_prompt=step.prompt,
                step_title=step.title,
                raw_response=response.raw_result,
            ))
        except Exception:
            logger.warning("Classifier failed on step %s", step.step_id, exc_info=True)
            return StepResult.ambiguous(
                CLASSIFICATION_UNAVAILABLE_MESSAGE,
                CLASSIFICATION_UNAVAILABLE_SUGGESTION,
            )
