from .analysis import IntentAnalysisResult, IntentClass, Mood, ResponseStyle, ToolAnalysisResult
from .connection import ConnectionState, ConnectionStatus
from .message import AssistantMessage, ChatMessage, ConversationContext, ConversationPage, ConversationSummary
from .tenant import DedupPolicy, RoutingSignals, TenantProfile, TenantStatus
from .tool import ToolCallRecord, ToolDescriptor, ToolInvocation, ToolInvocationResult, ToolOrigin

__all__ = [
    "AssistantMessage",
    "ChatMessage",
    "ConnectionState",
    "ConnectionStatus",
    "ConversationContext",
    "ConversationPage",
    "ConversationSummary",
    "DedupPolicy",
    "IntentAnalysisResult",
    "IntentClass",
    "Mood",
    "ResponseStyle",
    "RoutingSignals",
    "TenantProfile",
    "TenantStatus",
    "ToolAnalysisResult",
    "ToolCallRecord",
    "ToolDescriptor",
    "ToolInvocation",
    "ToolInvocationResult",
    "ToolOrigin",
]
