"""Tool-use decision and intent/tone analysis passes."""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from centerhub.adapters.inference_client import GenerationRequest, InferenceClient, generate_with_timeout
from centerhub.adapters.mcp_adapter import ToolSchemaAdapter, tool_schema_adapter
from centerhub.infra.error_handler import InferenceError
from centerhub.models.analysis import IntentAnalysisResult, IntentClass, Mood, ResponseStyle, ToolAnalysisResult
from centerhub.models.message import ChatMessage
from centerhub.services.prompt_builder import build_intent_prompt, build_tool_decision_prompt

logger = logging.getLogger(__name__)

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


async def analyze_tool_use(
    client: InferenceClient,
    prompt_text: str,
    history: List[ChatMessage],
    tool_schemas: List[Dict[str, Any]],
    tenant_id: str,
    conversation_id: str,
    system_instruction: Optional[str] = None,
    timeout: float = 60,
    window: int = 10,
    adapter: ToolSchemaAdapter = tool_schema_adapter,
) -> ToolAnalysisResult:
    """
    Ask the model which tools, if any, the message needs.

    Function calling is enabled with a low temperature.

    Raises:
        InferenceError: If the inference call fails
    """
    if not tool_schemas:
        return ToolAnalysisResult.neutral("No tools available")

    request = GenerationRequest(
        purpose="tool_decision",
        prompt=build_tool_decision_prompt(prompt_text, history, window),
        system_instruction=system_instruction,
        temperature=0.1,
        max_output_tokens=1024,
        tools=tool_schemas,
        tool_mode="auto",
    )
    response = await generate_with_timeout(client, request, timeout)

    invocations = [
        adapter.from_external_call(call, tenant_id, conversation_id)
        for call in response.function_calls
    ]
    logger.info(f"Tool decision for {conversation_id}: {[inv.tool_name for inv in invocations] or 'none'}")
    return ToolAnalysisResult(
        requires_tools=bool(invocations),
        selected_calls=invocations,
        rationale=response.text.strip(),
    )


async def analyze_intent(
    client: InferenceClient,
    prompt_text: str,
    history: List[ChatMessage],
    system_instruction: Optional[str] = None,
    timeout: float = 60,
    window: int = 10,
) -> IntentAnalysisResult:
    """
    Classify intent, mood and preferred response style. Function calling is disabled.

    Raises:
        InferenceError: If the call fails or its output holds no JSON object
    """
    request = GenerationRequest(
        purpose="intent",
        prompt=build_intent_prompt(prompt_text, history, window),
        system_instruction=system_instruction,
        temperature=0.3,
        max_output_tokens=512,
        tool_mode="none",
    )
    response = await generate_with_timeout(client, request, timeout)
    return parse_intent(response.text)


def _enum_value(enum_cls, raw: Any, default):
    try:
        return enum_cls(str(raw).strip().lower().replace("-", "_"))
    except ValueError:
        return default


def parse_intent(text: str) -> IntentAnalysisResult:
    """Extract the JSON object from the model output. Unknown enum values map to neutral defaults."""
    match = JSON_OBJECT.search(text or "")
    if not match:
        raise InferenceError("Intent analysis returned no JSON object")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise InferenceError(f"Intent analysis returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InferenceError("Intent analysis JSON is not an object")

    neutral = IntentAnalysisResult.neutral()
    references = data.get("references") or []
    return IntentAnalysisResult(
        intent=_enum_value(IntentClass, data.get("intent"), neutral.intent),
        mood=_enum_value(Mood, data.get("mood"), neutral.mood),
        response_style=_enum_value(ResponseStyle, data.get("response_style"), neutral.response_style),
        references=[str(r) for r in references] if isinstance(references, list) else [],
        rationale=str(data.get("rationale") or ""),
    )
