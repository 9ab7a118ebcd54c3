"""
lmeve_auth.callback.reducers

Reducers define how LangGraph merges partial state updates returned by callback nodes.
"""

from __future__ import annotations

from typing import Any


def append_audit(
    left: list[dict[str, Any]] | None, right: list[dict[str, Any]] | None
) -> list[dict[str, Any]]:
    """
    Append-only reducer for callback audit entries.

    Nodes return `{"audit_log": [{"event": ..., "details": {...}}]}`. Each appended entry is
    stamped with its `step` (position in the invocation) so the persisted trail keeps the
    order the nodes ran in, even when events share a timestamp.
    """

    merged = list(left or [])
    for entry in right or []:
        merged.append({**entry, "step": entry.get("step", len(merged))})
    return merged
