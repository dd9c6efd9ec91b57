"""
Connection status tracking for study sessions.

Connection lifecycle is tracked separately from the study state:
connection_status: DOWN | UP

This is pure data owned by SessionGateway, not by orchestrator state.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """
    WebSocket connection status.

    Separate from and independent of the study state; IDLE can occur
    with either value, and every other state implies UP.
    """
    DOWN = "DOWN"  # Not connected (before accept / after disconnect)
    UP = "UP"      # Active WebSocket connection
