"""Single-prompt execution with optional structured validation."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import ModelResponseError, StructuredOutputError
from ..pricing import Usage, calculate_cost
from ..providers.base import ChatProvider
from ..providers.types import GenerationConfig, Message, ResponseFormat

logger = logging.getLogger(__name__)

TEXT_SYSTEM_PROMPT = "You are a helpful AI assistant. Provide clear, accurate, and helpful responses."
JSON_SYSTEM_PROMPT = "You are a helpful AI assistant. Provide responses in the exact format requested."
JSON_INSTRUCTION = "Please respond with valid JSON that matches the required schema."


@dataclass(frozen=True)
class ExecutionOutcome:
    output: Any
    usage: Usage = field(default_factory=Usage)
    cost: float = 0.0
    duration_ms: float = 0.0
    attempts: int = 1


class PromptExecutor:
    """Sends one prompt to the model and returns text or a validated model instance."""

    def __init__(
        self,
        provider: ChatProvider,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        retry_delay: float = 1.0,
    ):
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.retry_delay = retry_delay

    async def execute(
        self,
        prompt: str,
        schema: Optional[Type[BaseModel]] = None,
        max_retries: int = 1,
    ) -> ExecutionOutcome:
        """
        Run ``prompt``, retrying up to ``max_retries`` attempts in total.

        The wait before attempt ``n + 1`` is ``retry_delay * n`` seconds.

        Raises:
            ModelResponseError: If the model returns no content
            StructuredOutputError: If the JSON does not parse or validate
        """
        started = time.time()
        attempts = max(1, max_retries)
        usage = Usage()

        for attempt in range(1, attempts + 1):
            try:
                output, call_usage = await self._execute_once(prompt, schema)
            except (ModelResponseError, StructuredOutputError) as e:
                if attempt == attempts:
                    raise
                logger.warning(f"Prompt attempt {attempt}/{attempts} failed: {e}")
                await asyncio.sleep(self.retry_delay * attempt)
                continue

            usage = usage + call_usage
            return ExecutionOutcome(
                output=output,
                usage=usage,
                cost=calculate_cost(self.model, usage),
                duration_ms=(time.time() - started) * 1000,
                attempts=attempt,
            )

        raise RuntimeError("prompt execution loop exited without a result")

    async def _execute_once(self, prompt: str, schema: Optional[Type[BaseModel]]):
        if schema is None:
            config = GenerationConfig(
                system_prompt=TEXT_SYSTEM_PROMPT,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            user_prompt = prompt
        else:
            config = GenerationConfig(
                system_prompt=JSON_SYSTEM_PROMPT,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format=ResponseFormat(),
            )
            user_prompt = f"{prompt}\n\n{JSON_INSTRUCTION}"

        response = await self.provider.generate(messages=[Message.user(user_prompt)], tools=None, config=config)
        usage = Usage.from_dict(response.usage)
        if not response.text:
            raise ModelResponseError("No response content received")
        if schema is None:
            return response.text, usage

        try:
            data = json.loads(response.text)
        except ValueError as e:
            raise StructuredOutputError(f"Failed to parse JSON response: {e}", raw=response.text) from e
        try:
            return schema.model_validate(data), usage
        except PydanticValidationError as e:
            raise StructuredOutputError(f"Schema validation failed: {e}", raw=response.text) from e
