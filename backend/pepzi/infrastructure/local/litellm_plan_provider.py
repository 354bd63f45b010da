"""
LiteLLM-backed plan provider.

Asks an external text-generation model for a JSON plan and validates it
with pydantic. Supports custom endpoints (api_base) for proxy servers.
"""

from __future__ import annotations

import json
import re
from typing import Optional

import litellm
from pydantic import ValidationError

from pepzi.core.config import get_settings
from pepzi.core.exceptions import PlanGenerationError
from pepzi.core.logger import setup_logger
from pepzi.interfaces.plan_provider import IPlanProvider
from pepzi.models.goal import GeneratedPlan, PlanRequest

logger = setup_logger(__name__)

SYSTEM_PROMPT = (
    "You are a coach who builds realistic, progressive plans for personal goals. "
    "Plans are paced in weekly hours and split into phases and ordered micro-goals."
)


def _extract_json(raw_output: str) -> dict:
    json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", raw_output)
    if json_match:
        json_str = json_match.group(1).strip()
    else:
        json_match = re.search(r"\{[\s\S]*\}", raw_output)
        if not json_match:
            raise ValueError("No JSON found in output")
        json_str = json_match.group(0)
    return json.loads(json_str)


class LiteLLMPlanProvider(IPlanProvider):
    """Plan provider calling a model through LiteLLM."""

    MAX_RETRIES = 2

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_base: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 1500,
    ):
        """
        Initialize provider.

        Args:
            model_name: LiteLLM model identifier (e.g., "openai/gpt-4o-mini")
            api_base: Custom API endpoint URL (optional, for proxy servers)
            api_key: Custom API key (optional, overrides default)
        """
        settings = get_settings()
        self._model_name = model_name or settings.LITELLM_MODEL
        self._api_base = api_base or settings.LITELLM_API_BASE or None
        self._api_key = api_key or settings.LITELLM_API_KEY or None
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens

    def _build_prompt(self, request: PlanRequest) -> str:
        schema_text = json.dumps(GeneratedPlan.model_json_schema(), ensure_ascii=False)
        return (
            f'Goal: "{request.name}"\n'
            f"Category: {request.category}\n"
            f"Description: {request.description or 'N/A'}\n"
            f"Target date: {request.target_date.isoformat() if request.target_date else 'none'}\n"
            f"Today: {request.today.isoformat() if request.today else 'unknown'}\n\n"
            "Create a plan with weekly hours, phases with duration in weeks, and "
            "specific micro-goals in the order they should be worked.\n\n"
            f"Return JSON only. Schema:\n{schema_text}"
        )

    async def _complete(self, prompt: str) -> str:
        kwargs: dict = {
            "model": self._model_name,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_output_tokens,
        }
        if self._api_base:
            kwargs["api_base"] = self._api_base
        if self._api_key:
            kwargs["api_key"] = self._api_key
        response = await litellm.acompletion(**kwargs)
        content = response.choices[0].message.content if response.choices else ""
        return (content or "").strip()

    async def generate(self, request: PlanRequest) -> GeneratedPlan:
        prompt = self._build_prompt(request)
        raw_output = ""
        last_error: Optional[Exception] = None
        for attempt in range(1, self.MAX_RETRIES + 1):
            try:
                raw_output = await self._complete(prompt)
            except Exception as exc:
                logger.error(f"Plan generation request failed: {exc}")
                raise PlanGenerationError("Plan generation request failed") from exc
            if not raw_output:
                last_error = ValueError("empty response")
                continue
            try:
                return GeneratedPlan.model_validate(_extract_json(raw_output))
            except (ValidationError, ValueError) as exc:
                last_error = exc
                logger.warning(
                    f"Plan validation failed (attempt {attempt}/{self.MAX_RETRIES}): {exc}"
                )
                prompt = f"Fix the JSON output. Error: {exc}\n\n{prompt}"

        raise PlanGenerationError(
            "Plan generation returned no valid plan",
            details={"raw_output": raw_output},
        ) from last_error
