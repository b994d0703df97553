"""Per-tenant remote tool connection state."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class ConnectionState:
    """Connection state of one tenant. Mutated only by the connection manager."""
    tenant_id: str
    endpoint_url: str
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_health_check: Optional[datetime] = None  # last successful check
    last_error: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED
