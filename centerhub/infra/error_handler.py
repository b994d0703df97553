"""Error taxonomy and classification helpers."""

from typing import Optional, Tuple
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of errors for better handling."""
    CONFIGURATION = "configuration"  # Unknown tenant, invalid profile
    NETWORK = "network"  # Connection issues, timeouts
    PROTOCOL = "protocol"  # Malformed remote response or schema
    INFERENCE = "inference"  # Language-model call failures
    VALIDATION = "validation"  # Malformed tool descriptors
    PERSISTENCE = "persistence"  # Store read/write failures
    AUTH_ERROR = "auth_error"  # Authentication/authorization failures
    RATE_LIMIT = "rate_limit"  # Rate limit exceeded
    BUSINESS_LOGIC = "business_logic"  # Business rule violations
    UNKNOWN = "unknown"  # Unknown errors


class CenterHubError(Exception):
    """Base exception for all centerhub errors."""
    def __init__(self, message: str, category: ErrorCategory, retryable: bool = False):
        self.message = message
        self.category = category
        self.retryable = retryable
        super().__init__(message)


class ConfigurationError(CenterHubError):
    """Invalid or missing static configuration."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.CONFIGURATION, retryable=False)


class TenantNotFoundError(ConfigurationError):
    """A resolved tenant id has no matching profile."""
    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Unknown tenant: {tenant_id}")


class ToolServerConnectionError(CenterHubError):
    """Handshake or health-check failure against a remote tool endpoint."""
    def __init__(self, message: str, tenant_id: Optional[str] = None):
        self.tenant_id = tenant_id
        super().__init__(message, ErrorCategory.NETWORK, retryable=True)


class ProtocolError(CenterHubError):
    """Malformed remote tool response or schema."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.PROTOCOL, retryable=False)


class InferenceError(CenterHubError):
    """Language-model call failure."""
    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None, retryable: bool = True):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message, ErrorCategory.INFERENCE, retryable=retryable)


class ValidationError(CenterHubError):
    """Malformed tool descriptor."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.VALIDATION, retryable=False)


class PersistenceError(CenterHubError):
    """Store write failure."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.PERSISTENCE, retryable=True)


class ConversationNotFoundError(CenterHubError):
    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}", ErrorCategory.BUSINESS_LOGIC)


class ConversationAccessError(CenterHubError):
    """Caller does not own the conversation."""
    def __init__(self, conversation_id: str, owner_id: str):
        self.conversation_id = conversation_id
        self.owner_id = owner_id
        super().__init__(
            f"Owner {owner_id} may not access conversation {conversation_id}",
            ErrorCategory.AUTH_ERROR,
        )


def classify_error(error: Exception) -> Tuple[ErrorCategory, bool]:
    """
    Classify an error into a category and determine if it's retryable.

    Args:
        error: The exception to classify

    Returns:
        Tuple of (category, retryable)
    """
    if isinstance(error, CenterHubError):
        return error.category, error.retryable

    error_str = str(error).lower()
    error_type = type(error).__name__

    # Network errors
    if error_type in ["ConnectionError", "TimeoutError", "ConnectError", "ReadTimeout", "ConnectTimeout"]:
        return ErrorCategory.NETWORK, True

    if any(keyword in error_str for keyword in ["connection", "timeout", "network", "dns", "refused"]):
        return ErrorCategory.NETWORK, True

    # Rate limit errors
    if "rate limit" in error_str or "429" in error_str or "too many requests" in error_str:
        return ErrorCategory.RATE_LIMIT, True

    # Auth errors
    if any(keyword in error_str for keyword in ["unauthorized", "forbidden", "401", "403", "authentication"]):
        return ErrorCategory.AUTH_ERROR, False

    if error_type in ["JSONDecodeError", "KeyError"]:
        return ErrorCategory.PROTOCOL, False

    return ErrorCategory.UNKNOWN, False


def wrap_llm_error(error: Exception, provider: str) -> InferenceError:
    """
    Wrap LLM API errors into InferenceError.

    Args:
        error: Original exception
        provider: LLM provider name ('openai', 'gemini')

    Returns:
        InferenceError carrying provider and, where known, the HTTP status
    """
    if isinstance(error, InferenceError):
        return error

    error_str = str(error)
    error_lower = error_str.lower()

    status_code = getattr(error, "status_code", None)
    if status_code is None and hasattr(error, "response") and hasattr(error.response, "status_code"):
        status_code = error.response.status_code

    if status_code is not None:
        if status_code == 429:
            return InferenceError(f"{provider} rate limit exceeded (429)", provider, status_code, retryable=True)
        elif status_code in [401, 403]:
            return InferenceError(f"{provider} auth error ({status_code})", provider, status_code, retryable=False)
        elif status_code >= 500:
            return InferenceError(f"{provider} server error ({status_code})", provider, status_code, retryable=True)
        else:
            return InferenceError(f"{provider} API error ({status_code}): {error_str}", provider, status_code, retryable=False)

    if "rate limit" in error_lower:
        return InferenceError(f"{provider} rate limit exceeded", provider, retryable=True)

    if any(keyword in error_lower for keyword in ["connection", "timeout", "network"]):
        return InferenceError(f"{provider} network error: {error_str}", provider, retryable=True)

    return InferenceError(f"{provider} error: {error_str}", provider)
