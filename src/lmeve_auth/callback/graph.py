from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from lmeve_auth.callback.nodes import (
    CommitLogin,
    IsConfigured,
    check_registration_node,
    exchange_node,
    fail_node,
    finalize_node,
    registration_required_node,
    route_after_check,
    route_after_exchange,
    route_after_finalize,
    route_after_validate,
    validate_params_node,
)
from lmeve_auth.callback.state import CallbackState
from lmeve_auth.sso.exchange import IdentityExchange
from lmeve_auth.sso.login_state import LoginStateStore


def _state_graph():
    try:
        from langgraph.graph import END, StateGraph  # type: ignore[import-not-found]
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "LangGraph is not available. Install dependencies (see pyproject.toml)."
        ) from e
    return StateGraph, END


def build_callback_graph(
    *,
    login_states: LoginStateStore,
    exchange: IdentityExchange,
    timeout_seconds: float,
    is_configured: IsConfigured,
    commit_login: CommitLogin,
):
    """
    Returns a compiled LangGraph runnable for one provider redirect:
    validate_params -> exchange -> check_registration -> finalize | registration_required,
    with every failure routed to `fail`.
    """

    StateGraph, END = _state_graph()
    graph = StateGraph(CallbackState)

    graph.add_node("validate_params", _bind(validate_params_node, login_states=login_states))
    graph.add_node(
        "exchange", _bind(exchange_node, exchange=exchange, timeout_seconds=timeout_seconds)
    )
    _add_decision_nodes(graph, is_configured=is_configured, commit_login=commit_login)

    graph.set_entry_point("validate_params")

    graph.add_conditional_edges(
        "validate_params",
        route_after_validate,
        {"exchange": "exchange", "fail": "fail"},
    )
    graph.add_conditional_edges(
        "exchange",
        route_after_exchange,
        {
            "check_registration": "check_registration",
            "registration_required": "registration_required",
            "fail": "fail",
        },
    )
    _add_decision_edges(graph, END)

    return graph.compile()


def build_resume_graph(*, is_configured: IsConfigured, commit_login: CommitLogin):
    """
    Returns a compiled runnable that re-enters at `check_registration` for an identity that
    was already exchanged (pending registration tickets).
    """

    StateGraph, END = _state_graph()
    graph = StateGraph(CallbackState)
    _add_decision_nodes(graph, is_configured=is_configured, commit_login=commit_login)
    graph.set_entry_point("check_registration")
    _add_decision_edges(graph, END)
    return graph.compile()


def _add_decision_nodes(
    graph: Any, *, is_configured: IsConfigured, commit_login: CommitLogin
) -> None:
    graph.add_node(
        "check_registration", _bind(check_registration_node, is_configured=is_configured)
    )
    graph.add_node("finalize", _bind(finalize_node, commit_login=commit_login))
    graph.add_node("registration_required", registration_required_node)
    graph.add_node("fail", fail_node)


def _add_decision_edges(graph: Any, end: Any) -> None:
    graph.add_conditional_edges(
        "check_registration",
        route_after_check,
        {"finalize": "finalize", "registration_required": "registration_required"},
    )
    graph.add_conditional_edges(
        "finalize",
        route_after_finalize,
        {"fail": "fail", "done": end},
    )
    graph.add_edge("registration_required", end)
    graph.add_edge("fail", end)


def _bind(
    fn: Callable[..., Awaitable[CallbackState]],
    **deps: Any,
) -> Callable[[CallbackState], Awaitable[CallbackState]]:
    async def _wrapped(state: CallbackState) -> CallbackState:
        return await fn(state, **deps)

    return _wrapped
