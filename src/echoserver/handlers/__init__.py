"""
=============================================================================
MESSAGE HANDLERS
=============================================================================

Protocol behavior for one connection:

    session.py     SessionState - login state bound to one connection
    dispatcher.py  handle_one_message() - read, apply, respond

The dispatcher knows nothing about threads or selectors. Whatever runs it
only has to guarantee that a given connection's SessionState is never
touched by two dispatcher calls at once.

=============================================================================
"""

from .session import SessionPhase, SessionState
from .dispatcher import DispatchResult, handle_one_message

__all__ = [
    "SessionPhase",
    "SessionState",
    "DispatchResult",
    "handle_one_message",
]
