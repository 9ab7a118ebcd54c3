"""
lmeve_auth.callback

SSO callback package (LangGraph state machine).

Responsibilities:
- Typed callback state, nodes, routing, and graph compilation.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Call sites should go through `services.callback_service.CallbackStateMachine`.
