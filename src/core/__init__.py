"""Core session orchestration.

This module provides the per-connection orchestration for voice sessions:
- VoiceSession / ClientChannel: Session state and the serialized client write path
- QueryQueue / TurnProcessor: FIFO transcript → reply turns
- SynthesisDispatcher: Detached speech synthesis per reply
- Capabilities: Process-wide external service clients
"""

from src.core.capabilities import Capabilities
from src.core.dispatcher import SynthesisDispatcher, TurnTiming
from src.core.queue import QueryQueue, QueueState, TurnProcessor, TurnResult, cap_history
from src.core.session import ClientChannel, Query, SessionState, VoiceSession

__all__ = [
    # Session
    "VoiceSession",
    "SessionState",
    "Query",
    "ClientChannel",
    # Turns
    "QueryQueue",
    "QueueState",
    "TurnProcessor",
    "TurnResult",
    "cap_history",
    # Synthesis
    "SynthesisDispatcher",
    "TurnTiming",
    # Capabilities
    "Capabilities",
]
