"""Tests for the tool decision and intent analysis passes."""

import pytest

from centerhub.adapters.inference_client import FunctionCall, GenerationResponse
from centerhub.infra.error_handler import InferenceError
from centerhub.models.analysis import IntentClass, Mood, ResponseStyle
from centerhub.services.intent_analyzer import analyze_intent, analyze_tool_use, parse_intent

TOOL_SCHEMAS = [{"name": "get_rendimientos", "description": "Monthly performance", "parameters": {"type": "object", "properties": {}, "required": []}}]


class TestAnalyzeToolUse:
    """Test the function-calling decision pass."""

    @pytest.mark.asyncio
    async def test_selected_calls(self, fake_inference_class):
        client = fake_inference_class({"tool_decision": [GenerationResponse(function_calls=[
            FunctionCall(name="get_rendimientos", args={"id": "123", "month": "July"}),
        ])]})

        result = await analyze_tool_use(client, "rendimientos de 123 en julio", [], TOOL_SCHEMAS, "cucuta", "conv-1")

        assert result.requires_tools is True
        [call] = result.selected_calls
        assert call.tool_name == "get_rendimientos"
        assert call.arguments == {"id": "123", "month": "July"}
        assert call.conversation_id == "conv-1"
        request = client.requests[0]
        assert request.temperature == 0.1
        assert request.tool_mode == "auto"
        assert request.tools == TOOL_SCHEMAS

    @pytest.mark.asyncio
    async def test_no_calls(self, fake_inference_class):
        client = fake_inference_class({"tool_decision": [GenerationResponse(text="Greeting, no tool needed.")]})

        result = await analyze_tool_use(client, "hola", [], TOOL_SCHEMAS, "cucuta", "conv-1")

        assert result.requires_tools is False
        assert result.rationale == "Greeting, no tool needed."

    @pytest.mark.asyncio
    async def test_no_tools_skips_inference(self, fake_inference_class):
        client = fake_inference_class()

        result = await analyze_tool_use(client, "hola", [], [], "cucuta", "conv-1")

        assert result.requires_tools is False
        assert client.requests == []

    @pytest.mark.asyncio
    async def test_failure_propagates(self, fake_inference_class):
        client = fake_inference_class({"tool_decision": [InferenceError("gemini server error (500)")]})

        with pytest.raises(InferenceError):
            await analyze_tool_use(client, "hola", [], TOOL_SCHEMAS, "cucuta", "conv-1")


class TestAnalyzeIntent:
    """Test intent classification and parsing."""

    @pytest.mark.asyncio
    async def test_parses_fenced_json(self, fake_inference_class):
        text = (
            "```json\n"
            '{"intent": "data_request", "mood": "frustrated", "response_style": "step-by-step", '
            '"references": ["the July report"], "rationale": "asks for numbers"}\n'
            "```"
        )
        client = fake_inference_class({"intent": [GenerationResponse(text=text)]})

        result = await analyze_intent(client, "otra vez los rendimientos", [])

        assert result.intent == IntentClass.DATA_REQUEST
        assert result.mood == Mood.FRUSTRATED
        assert result.response_style == ResponseStyle.STEP_BY_STEP
        assert result.references == ["the July report"]
        assert client.requests[0].tool_mode == "none"
        assert client.requests[0].temperature == 0.3

    def test_unknown_values_use_neutral_defaults(self):
        result = parse_intent('{"intent": "gossip", "mood": "sleepy", "response_style": 7}')

        assert result.intent == IntentClass.INFORMATIONAL
        assert result.mood == Mood.NEUTRAL
        assert result.response_style == ResponseStyle.CONVERSATIONAL
        assert result.references == []

    @pytest.mark.parametrize("text", ["no json here", "{not valid json}", ""])
    def test_unparseable_output(self, text):
        with pytest.raises(InferenceError):
            parse_intent(text)
