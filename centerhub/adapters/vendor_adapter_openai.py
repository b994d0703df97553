"""OpenAI vendor adapter (Chat Completions with function calling)."""

import logging
from typing import Any, Dict, List

from openai import AsyncOpenAI

from centerhub.adapters.inference_client import (
    FunctionCall,
    GenerationRequest,
    GenerationResponse,
    InferenceClient,
)
from centerhub.infra.config import config
from centerhub.infra.error_handler import InferenceError, wrap_llm_error

logger = logging.getLogger(__name__)


def build_openai_tools(tools: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Convert function declarations to OpenAI tool schema.

    Args:
        tools: List of {name, description, parameters} dicts

    Returns:
        List of OpenAI tool dicts in OpenAI format
    """
    openai_tools = []
    for tool in tools:
        openai_tool = {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("parameters") or {"type": "object", "properties": {}},
            }
        }
        openai_tools.append(openai_tool)
    return openai_tools


class OpenAIInferenceClient(InferenceClient):
    """Chat Completions client."""

    provider = "openai"

    def __init__(self, model: str):
        self.model = model
        self._client = None

    @property
    def client(self):
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            if not config.OPENAI_API_KEY:
                raise InferenceError("OPENAI_API_KEY not configured", provider="openai", retryable=False)
            self._client = AsyncOpenAI(api_key=config.OPENAI_API_KEY)
        return self._client

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        messages = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        messages.append({"role": "user", "content": request.prompt})

        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": request.max_output_tokens,
        }
        if request.top_p is not None:
            request_params["top_p"] = request.top_p
        if request.tools:
            request_params["tools"] = build_openai_tools(request.tools)
            request_params["tool_choice"] = "auto" if request.tool_mode == "auto" else "none"

        client = self.client
        try:
            response_obj = await client.chat.completions.create(**request_params)
        except Exception as e:
            logger.error(f"OpenAI {request.purpose} call failed: {e}")
            raise wrap_llm_error(e, "openai")

        if not response_obj.choices:
            raise InferenceError("No response from OpenAI", provider="openai")

        message = response_obj.choices[0].message
        function_calls = [
            FunctionCall(name=tc.function.name, args=tc.function.arguments or "{}", id=tc.id)
            for tc in (message.tool_calls or [])
        ]
        generation = GenerationResponse(text=message.content or "", function_calls=function_calls)
        if generation.is_empty:
            raise InferenceError(f"Empty OpenAI response for {request.purpose}", provider="openai")
        return generation
