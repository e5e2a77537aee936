"""
planflow - External Action Invoker

Sends a step prompt to the step-execution function and returns its raw
textual outcome.
"""
from dataclasses import dataclass
from typing import Optional, Protocol
import asyncio

import aiohttp

from ..config.logging import get_logger

logger = get_logger("executor.actions")


class ActionTransportError(Exception):
    """Raised when the action call did not complete (network, timeout, non-2xx)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class ActionRequest:
    step_id: str
    prompt: str
    project_id: Optional[str] = None
    step_index: Optional[int] = None


@dataclass(frozen=True)
class ActionResponse:
    raw_result: str
    needs_user_action: bool = False
    user_action_type: Optional[str] = None
    user_action_prompt: Optional[str] = None


class ActionInvoker(Protocol):
    async def invoke(self, request: ActionRequest) -> ActionResponse:
        ...


class HttpActionInvoker:
    """
    Calls the analyze-response function in `plan_execution` context.

    A new call is issued for every invocation; retries are the caller's
    decision. The request timeout lives here, not in the driver.
    """

    FUNCTION_NAME = "analyze-response"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 90.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._url = f"{base_url.rstrip('/')}/{self.FUNCTION_NAME}"
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session

    @property
    def url(self) -> str:
        return self._url

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def invoke(self, request: ActionRequest) -> ActionResponse:
        payload = {
            "prompt": request.prompt,
            "stepId": request.step_id,
            "stepIndex": request.step_index,
            "projectId": request.project_id,
            "context": "plan_execution",
        }

        try:
            if self._session is not None:
                data = await self._post(self._session, payload)
            else:
                async with aiohttp.ClientSession(timeout=self._timeout) as session:
                    data = await self._post(session, payload)
        except asyncio.TimeoutError as e:
            raise ActionTransportError(
                f"Action call timed out after {self._timeout.total:.0f}s"
            ) from e
        except aiohttp.ClientError as e:
            raise ActionTransportError(f"Action call failed: {e}") from e

        if not isinstance(data, dict):
            raise ActionTransportError("Action response is not a JSON object")

        raw = data.get("response")
        if raw is None:
            raw = "No response received"

        return ActionResponse(
            raw_result=str(raw),
            needs_user_action=bool(data.get("needsUserAction", False)),
            user_action_type=data.get("userActionType"),
            user_action_prompt=data.get("userActionPrompt"),
        )

    async def _post(self, session: aiohttp.ClientSession, payload: dict):
        async with session.post(
            self._url,
            json=payload,
            headers=self._headers(),
            timeout=self._timeout,
        ) as response:
            if response.status >= 300:
                body = await response.text()
                logger.warning(
                    "Action call returned %s",
                    response.status,
                    extra={"extra_data": {"step_id": payload["stepId"], "body": body[:500]}},
                )
                raise ActionTransportError(
                    f"Action call returned HTTP {response.status}: {body[:200]}",
                    status=response.status,
                )
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise ActionTransportError("Action response is not valid JSON") from e
