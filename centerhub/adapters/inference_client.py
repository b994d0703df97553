"""Inference service request/response shapes and per-tenant client selection."""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from centerhub.infra.error_handler import InferenceError, wrap_llm_error
from centerhub.infra.metrics import llm_call_duration, llm_calls_total
from centerhub.models.tenant import TenantProfile

logger = logging.getLogger(__name__)


class FunctionCall(BaseModel):
    """A tool call proposed by the inference service."""
    name: str
    args: Any = Field(default_factory=dict, description="Argument map, or a JSON string from some vendors")
    id: Optional[str] = None


class GenerationRequest(BaseModel):
    purpose: str = Field(..., description="'tool_decision' | 'intent' | 'synthesis'")
    prompt: str
    system_instruction: Optional[str] = None
    temperature: float = 0.7
    max_output_tokens: int = 2048
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    tools: List[Dict[str, Any]] = Field(default_factory=list, description="Function declarations")
    tool_mode: str = Field(default="none", description="'auto' | 'none'")


class GenerationResponse(BaseModel):
    text: str = ""
    function_calls: List[FunctionCall] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.function_calls


class InferenceClient:
    """Interface of an inference backend."""

    provider: str = "unknown"

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        raise NotImplementedError


async def generate_with_timeout(
    client: InferenceClient,
    request: GenerationRequest,
    timeout: float,
) -> GenerationResponse:
    """
    Run one inference call bounded by `timeout`.

    Raises:
        InferenceError: On timeout, vendor failure or an empty response
    """
    provider = getattr(client, "provider", "unknown")
    start_time = time.time()
    try:
        response = await asyncio.wait_for(client.generate(request), timeout=timeout)
        if response.is_empty:
            raise InferenceError(f"Empty response for {request.purpose}", provider=provider)
    except asyncio.TimeoutError as e:
        llm_calls_total.labels(provider=provider, purpose=request.purpose, status="timeout").inc()
        logger.warning(f"{provider} {request.purpose} call timed out after {timeout}s")
        raise InferenceError(f"{provider} {request.purpose} call timed out after {timeout}s", provider=provider) from e
    except Exception as e:
        llm_calls_total.labels(provider=provider, purpose=request.purpose, status="failure").inc()
        raise wrap_llm_error(e, provider) from e
    finally:
        llm_call_duration.labels(provider=provider, purpose=request.purpose).observe(time.time() - start_time)

    llm_calls_total.labels(provider=provider, purpose=request.purpose, status="success").inc()
    return response


def get_inference_client(profile: TenantProfile) -> InferenceClient:
    """
    Get the inference client for a tenant's configured provider.

    Raises:
        ValueError: If the provider is not supported
    """
    provider = (profile.llm_provider or "").lower()
    if provider == "gemini":
        from centerhub.adapters.vendor_adapter_gemini import GeminiInferenceClient
        return GeminiInferenceClient(profile.llm_model)
    if provider == "openai":
        from centerhub.adapters.vendor_adapter_openai import OpenAIInferenceClient
        return OpenAIInferenceClient(profile.llm_model)
    raise ValueError(f"Unsupported LLM provider: {profile.llm_provider}")
