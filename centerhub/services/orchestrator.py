"""Per-turn conversation orchestration."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from centerhub.adapters.inference_client import (
    GenerationRequest,
    InferenceClient,
    generate_with_timeout,
    get_inference_client,
)
from centerhub.adapters.mcp_adapter import ToolSchemaAdapter, tool_schema_adapter
from centerhub.adapters.mcp_client import MCPConnectionManager
from centerhub.infra.config import config
from centerhub.infra.error_handler import InferenceError, classify_error
from centerhub.infra.metrics import turns_total
from centerhub.infra.timeout import LLM_CALL_TIMEOUT
from centerhub.logging.event_logger import log_event
from centerhub.models.analysis import IntentAnalysisResult, ToolAnalysisResult
from centerhub.models.message import AssistantMessage, ChatMessage, ConversationContext, ConversationPage
from centerhub.models.tenant import RoutingSignals, TenantProfile, TenantStatus
from centerhub.models.tool import ToolDescriptor, ToolInvocationResult
from centerhub.services.conversation_store import ConversationStore, make_title
from centerhub.services.fallback_tools import FallbackToolProvider
from centerhub.services.intent_analyzer import analyze_intent, analyze_tool_use
from centerhub.services.prompt_builder import build_synthesis_prompt, build_system_instruction
from centerhub.services.tenant_router import TenantRouter
from centerhub.services.tool_call_ledger import ToolCallLedger
from centerhub.services.tool_execution_engine import ExecutionContext, ToolExecutionEngine
from centerhub.services.tool_registry import get_internal_tools, merge_catalogs

logger = logging.getLogger(__name__)

FALLBACK_APOLOGY = (
    "I'm sorry, I couldn't generate a response right now. "
    "Please try again in a few moments."
)

UNAVAILABLE_REPLIES = {
    TenantStatus.MAINTENANCE: (
        "The {name} center is under maintenance right now. "
        "Please try again later."
    ),
    TenantStatus.OFFLINE: (
        "The {name} center is temporarily unavailable. "
        "Please try again in a few moments."
    ),
}


class TurnState(str, Enum):
    RECEIVED = "received"
    CONTEXT_LOADED = "context_loaded"
    TOOLS_PREPARED = "tools_prepared"
    ANALYZED = "analyzed"
    TOOLS_EXECUTED = "tools_executed"
    SYNTHESIZED = "synthesized"
    PERSISTED = "persisted"
    DONE = "done"
    DEGRADED = "degraded"


@dataclass
class TurnContext:
    """Mutable state of one conversational turn."""
    tenant_id: str
    conversation_id: str
    owner_id: str
    prompt_text: str
    states: List[TurnState] = field(default_factory=lambda: [TurnState.RECEIVED])
    profile: Optional[TenantProfile] = None
    context: Optional[ConversationContext] = None
    tool_analysis: ToolAnalysisResult = field(default_factory=ToolAnalysisResult.neutral)
    intent_analysis: IntentAnalysisResult = field(default_factory=IntentAnalysisResult.neutral)
    tool_results: List[ToolInvocationResult] = field(default_factory=list)
    degraded_notice: Optional[str] = None

    @property
    def state(self) -> TurnState:
        return self.states[-1]

    def advance(self, state: TurnState) -> None:
        logger.debug(f"Turn {self.conversation_id}: {self.state.value} -> {state.value}")
        self.states.append(state)


class ConversationOrchestrator:
    """
    Coordinates one turn: context, tool catalog, analysis, tool execution,
    synthesis and persistence. handle_prompt never raises.
    """

    def __init__(
        self,
        router: TenantRouter,
        connection_manager: MCPConnectionManager,
        fallback_provider: FallbackToolProvider,
        execution_engine: ToolExecutionEngine,
        inference_factory: Callable[[TenantProfile], InferenceClient] = get_inference_client,
        history_window: int = config.HISTORY_WINDOW,
        llm_timeout: float = LLM_CALL_TIMEOUT,
        adapter: ToolSchemaAdapter = tool_schema_adapter,
    ):
        self.router = router
        self.connection_manager = connection_manager
        self.fallback_provider = fallback_provider
        self.execution_engine = execution_engine
        self.inference_factory = inference_factory
        self.history_window = history_window
        self.llm_timeout = llm_timeout
        self.adapter = adapter

    def _store_for(self, tenant_id: str) -> ConversationStore:
        return ConversationStore(self.router.get_storage_handle(tenant_id))

    async def handle_prompt(
        self,
        tenant_id: Optional[str],
        conversation_id: Optional[str],
        owner_id: str,
        prompt_text: str,
    ) -> AssistantMessage:
        """
        Run one conversational turn.

        Args:
            tenant_id: Routing tenant id (None routes to the default tenant)
            conversation_id: Existing conversation, or None to start one
            owner_id: Authenticated caller
            prompt_text: User message

        Returns:
            The assistant reply; the fixed apology if the turn could not complete
        """
        turn = TurnContext(
            tenant_id=tenant_id or self.router.default_tenant_id,
            conversation_id=conversation_id or str(uuid.uuid4()),
            owner_id=owner_id,
            prompt_text=prompt_text,
        )
        start_time = time.time()
        error_category = None
        try:
            reply = await self._run_turn(turn)
        except Exception as e:
            error_category, _ = classify_error(e)
            logger.error(f"Turn {turn.conversation_id} failed ({error_category.value}): {e}", exc_info=True)
            turn.advance(TurnState.DEGRADED)
            reply = AssistantMessage(
                id=str(uuid.uuid4()),
                role="assistant",
                content=FALLBACK_APOLOGY,
                timestamp=datetime.now(timezone.utc),
                conversation_id=turn.conversation_id,
                degraded=True,
            )

        outcome = "degraded" if TurnState.DEGRADED in turn.states else "done"
        resolved_tenant = turn.profile.tenant_id if turn.profile else turn.tenant_id
        turns_total.labels(tenant_id=resolved_tenant, outcome=outcome).inc()
        log_event(
            tenant_id=resolved_tenant,
            event_type="turn_completed",
            status="success" if outcome == "done" else "failure",
            latency_ms=int((time.time() - start_time) * 1000),
            payload={
                "states": [s.value for s in turn.states],
                "tools": [r.tool_name for r in turn.tool_results],
                "error_category": error_category.value if error_category else None,
            },
            conversation_id=turn.conversation_id,
        )
        return reply

    async def _run_turn(self, turn: TurnContext) -> AssistantMessage:
        profile = self.router.resolve_tenant(RoutingSignals(tenant_id=turn.tenant_id))
        turn.profile = profile
        if profile.status != TenantStatus.ACTIVE:
            return self._unavailable_reply(turn, profile)

        handle = self.router.get_storage_handle(profile.tenant_id)
        store = ConversationStore(handle)
        ledger = ToolCallLedger(handle)
        client = self.inference_factory(profile)
        system_instruction = build_system_instruction(profile)

        # ContextLoaded: persist inbound message, load history and remote catalog concurrently
        received_at = datetime.now(timezone.utc)
        persisted, history, catalog = await asyncio.gather(
            asyncio.to_thread(self._save_user_message, store, turn, profile, received_at),
            asyncio.to_thread(store.get_recent_history, turn.conversation_id, self.history_window, received_at),
            self._load_remote_catalog(profile),
            return_exceptions=True,
        )
        if isinstance(persisted, Exception):
            logger.error(f"Failed to persist user message of {turn.conversation_id}: {persisted}")
        if isinstance(history, Exception):
            logger.warning(f"History load failed for {turn.conversation_id}, continuing without it: {history}")
            history = []
        if isinstance(catalog, Exception):
            logger.error(f"Catalog load failed for {profile.tenant_id}: {catalog}")
            catalog = (self._offline_catalog(profile), None)
        remote_tools, turn.degraded_notice = catalog
        turn.context = ConversationContext(
            conversation_id=turn.conversation_id,
            owner_id=turn.owner_id,
            tenant_id=profile.tenant_id,
            messages=history,
        )
        turn.advance(TurnState.CONTEXT_LOADED)

        # ToolsPrepared
        tools = merge_catalogs(get_internal_tools(), remote_tools)
        tool_index: Dict[str, ToolDescriptor] = {tool.name: tool for tool in tools}
        tool_schemas = self.adapter.to_external_schema(tools)
        turn.advance(TurnState.TOOLS_PREPARED)

        # Analyzed: both passes awaited regardless of individual outcome
        tool_analysis, intent_analysis = await asyncio.gather(
            analyze_tool_use(
                client,
                turn.prompt_text,
                turn.context.messages,
                tool_schemas,
                tenant_id=profile.tenant_id,
                conversation_id=turn.conversation_id,
                system_instruction=system_instruction,
                timeout=self.llm_timeout,
                window=self.history_window,
                adapter=self.adapter,
            ),
            analyze_intent(
                client,
                turn.prompt_text,
                turn.context.messages,
                system_instruction=system_instruction,
                timeout=self.llm_timeout,
                window=self.history_window,
            ),
            return_exceptions=True,
        )
        if isinstance(tool_analysis, Exception):
            logger.warning(f"Tool decision failed for {turn.conversation_id}: {tool_analysis}")
            tool_analysis = ToolAnalysisResult.neutral(f"decision failed: {tool_analysis}")
        if isinstance(intent_analysis, Exception):
            logger.warning(f"Intent analysis failed for {turn.conversation_id}: {intent_analysis}")
            intent_analysis = IntentAnalysisResult.neutral(f"analysis failed: {intent_analysis}")
        turn.tool_analysis = tool_analysis
        turn.intent_analysis = intent_analysis
        turn.advance(TurnState.ANALYZED)

        # ToolsExecuted
        if tool_analysis.requires_tools and tool_analysis.selected_calls:
            ctx = ExecutionContext(
                profile=profile,
                conversation_id=turn.conversation_id,
                owner_id=turn.owner_id,
                ledger=ledger,
            )
            turn.tool_results = await self.execution_engine.execute(tool_analysis.selected_calls, tool_index, ctx)
            turn.advance(TurnState.TOOLS_EXECUTED)

        # Synthesized, with one retry without tools
        reply_text = await self._synthesize(client, turn, system_instruction, tool_schemas)
        if reply_text is None:
            reply_text = FALLBACK_APOLOGY
            turn.advance(TurnState.DEGRADED)
        else:
            turn.advance(TurnState.SYNTHESIZED)

        # Persisted
        reply = AssistantMessage(
            id=str(uuid.uuid4()),
            role="assistant",
            content=reply_text,
            timestamp=datetime.now(timezone.utc),
            data=self._structured_payload(turn.tool_results),
            conversation_id=turn.conversation_id,
            degraded=TurnState.DEGRADED in turn.states or turn.degraded_notice is not None,
        )
        outcomes = await asyncio.gather(
            asyncio.to_thread(
                store.save_message,
                turn.conversation_id,
                "assistant",
                reply.content,
                reply.data,
                reply.timestamp,
                reply.id,
            ),
            asyncio.to_thread(store.touch, turn.conversation_id, reply.timestamp),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                logger.error(f"Failed to persist reply of {turn.conversation_id}: {outcome}")
        turn.advance(TurnState.PERSISTED)
        turn.advance(TurnState.DONE)
        return reply

    def _unavailable_reply(self, turn: TurnContext, profile: TenantProfile) -> AssistantMessage:
        """Reply for a tenant that is not active; nothing is stored or sent to a backend."""
        logger.warning(f"Tenant {profile.tenant_id} is {profile.status.value}, turn {turn.conversation_id} not run")
        turn.advance(TurnState.DEGRADED)
        return AssistantMessage(
            id=str(uuid.uuid4()),
            role="assistant",
            content=UNAVAILABLE_REPLIES[profile.status].format(name=profile.display_name),
            timestamp=datetime.now(timezone.utc),
            conversation_id=turn.conversation_id,
            degraded=True,
        )

    def _save_user_message(
        self,
        store: ConversationStore,
        turn: TurnContext,
        profile: TenantProfile,
        received_at: datetime,
    ) -> ChatMessage:
        if store.get_conversation(turn.conversation_id) is None:
            store.create_conversation(
                turn.conversation_id,
                turn.owner_id,
                profile.tenant_id,
                make_title(turn.prompt_text),
                created_at=received_at,
            )
        return store.save_message(turn.conversation_id, "user", turn.prompt_text, timestamp=received_at)

    def _offline_catalog(self, profile: TenantProfile) -> List[ToolDescriptor]:
        return self.fallback_provider.static_catalog() if profile.fallback_enabled else []

    async def _load_remote_catalog(self, profile: TenantProfile) -> Tuple[List[ToolDescriptor], Optional[str]]:
        """
        Remote tools of the tenant and, when they are unavailable, a degraded-mode notice.

        Static fallback tools are advertised whenever remote tools are not.
        """
        if not profile.remote_tools_enabled:
            return self._offline_catalog(profile), None

        try:
            return await self.connection_manager.list_tools(profile.tenant_id), None
        except Exception as e:
            logger.warning(f"Remote tools of {profile.tenant_id} unavailable, degraded mode: {e}")
            return self._offline_catalog(profile), self.fallback_provider.degraded_notice(profile.tenant_id)

    async def _synthesize(
        self,
        client: InferenceClient,
        turn: TurnContext,
        system_instruction: str,
        tool_schemas: List[Dict[str, Any]],
    ) -> Optional[str]:
        """Final reply text, or None after two failed attempts."""
        prompt = build_synthesis_prompt(
            turn.prompt_text,
            turn.context.messages,
            turn.tool_results,
            turn.intent_analysis,
            degraded_notice=turn.degraded_notice,
            window=self.history_window,
        )
        attempts = [("auto", tool_schemas), ("none", [])]
        for attempt, (tool_mode, tools) in enumerate(attempts, start=1):
            request = GenerationRequest(
                purpose="synthesis",
                prompt=prompt,
                system_instruction=system_instruction,
                temperature=0.7,
                max_output_tokens=2048,
                tools=tools,
                tool_mode=tool_mode if tools else "none",
            )
            try:
                response = await generate_with_timeout(client, request, self.llm_timeout)
            except InferenceError as e:
                logger.warning(f"Synthesis attempt {attempt} failed for {turn.conversation_id}: {e.message}")
                continue
            if response.text.strip():
                return response.text.strip()
            logger.warning(f"Synthesis attempt {attempt} returned no text for {turn.conversation_id}")
        return None

    @staticmethod
    def _structured_payload(results: List[ToolInvocationResult]) -> Optional[Dict[str, Any]]:
        """Successful non-internal payloads keyed by tool name."""
        data: Dict[str, Any] = {}
        for result in results:
            if not result.success or result.source == "internal" or result.payload is None:
                continue
            key = result.tool_name
            suffix = 2
            while key in data:
                key = f"{result.tool_name}_{suffix}"
                suffix += 1
            data[key] = result.payload
        return data or None

    async def list_conversations(
        self,
        tenant_id: Optional[str],
        owner_id: str,
        cursor: Optional[str] = None,
    ) -> ConversationPage:
        profile = self.router.resolve_tenant(RoutingSignals(tenant_id=tenant_id))
        store = self._store_for(profile.tenant_id)
        return await asyncio.to_thread(store.list_conversations, owner_id, cursor)

    async def list_messages(self, tenant_id: Optional[str], conversation_id: str) -> List[ChatMessage]:
        """Messages of a conversation in ascending timestamp order."""
        profile = self.router.resolve_tenant(RoutingSignals(tenant_id=tenant_id))
        store = self._store_for(profile.tenant_id)
        return await asyncio.to_thread(store.list_messages, conversation_id)

    async def delete_conversation(self, tenant_id: Optional[str], conversation_id: str, owner_id: str) -> None:
        """
        Raises:
            ConversationNotFoundError: If the conversation does not exist
            ConversationAccessError: If owner_id does not own it
        """
        profile = self.router.resolve_tenant(RoutingSignals(tenant_id=tenant_id))
        store = self._store_for(profile.tenant_id)
        await asyncio.to_thread(store.delete_conversation, conversation_id, owner_id)

    async def health_snapshot(self) -> Dict[str, Dict[str, bool]]:
        tenants = await self.router.health_check()
        return {
            "tenants": tenants,
            "tool_protocol": self.connection_manager.health_snapshot(),
        }

    async def close(self) -> None:
        await self.connection_manager.close()
        self.router.close()
