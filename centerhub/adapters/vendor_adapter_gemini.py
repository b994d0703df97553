"""Gemini vendor adapter (REST generateContent with function calling)."""

import logging
from typing import Any, Dict, List

import httpx

from centerhub.adapters.inference_client import (
    FunctionCall,
    GenerationRequest,
    GenerationResponse,
    InferenceClient,
)
from centerhub.infra.config import config
from centerhub.infra.error_handler import InferenceError, wrap_llm_error

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


def build_gemini_payload(request: GenerationRequest) -> Dict[str, Any]:
    """Build the generateContent request body."""
    generation_config: Dict[str, Any] = {
        "temperature": request.temperature,
        "maxOutputTokens": request.max_output_tokens,
    }
    if request.top_p is not None:
        generation_config["topP"] = request.top_p
    if request.top_k is not None:
        generation_config["topK"] = request.top_k

    payload: Dict[str, Any] = {
        "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
        "generationConfig": generation_config,
    }
    if request.system_instruction:
        payload["systemInstruction"] = {"parts": [{"text": request.system_instruction}]}

    if request.tools:
        payload["tools"] = [{"functionDeclarations": request.tools}]
        mode = "AUTO" if request.tool_mode == "auto" else "NONE"
        payload["toolConfig"] = {"functionCallingConfig": {"mode": mode}}
    return payload


def parse_gemini_response(result: Dict[str, Any]) -> GenerationResponse:
    if not result.get("candidates"):
        raise InferenceError("No response from Gemini", provider="gemini")

    candidate = result["candidates"][0]
    parts = candidate.get("content", {}).get("parts", [])

    text_parts: List[str] = []
    function_calls: List[FunctionCall] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        if "text" in part:
            text_parts.append(part["text"])
        elif "functionCall" in part:
            call = part["functionCall"]
            function_calls.append(FunctionCall(
                name=call.get("name", ""),
                args=call.get("args") or {},
                id=call.get("id"),
            ))
    return GenerationResponse(text="".join(text_parts), function_calls=function_calls)


class GeminiInferenceClient(InferenceClient):
    """Gemini REST client."""

    provider = "gemini"

    def __init__(self, model: str):
        self.model = model

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        if not config.GEMINI_API_KEY:
            raise InferenceError("GEMINI_API_KEY not configured", provider="gemini", retryable=False)

        url = f"{GEMINI_API_BASE}/models/{self.model}:generateContent"
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": config.GEMINI_API_KEY,
        }
        try:
            async with httpx.AsyncClient(timeout=60.0) as client:
                response = await client.post(url, json=build_gemini_payload(request), headers=headers)
                response.raise_for_status()
                result = response.json()
        except Exception as e:
            logger.error(f"Gemini {request.purpose} call failed: {e}")
            raise wrap_llm_error(e, "gemini")

        generation = parse_gemini_response(result)
        if generation.is_empty:
            raise InferenceError(f"Empty Gemini response for {request.purpose}", provider="gemini")
        return generation
