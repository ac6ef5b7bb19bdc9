"""Turn a flat batch of correlated events into a start-time ordered forest."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from aiobs.models import AnyEvent, FunctionEvent, TraceNode

logger = logging.getLogger(__name__)


def _creates_cycle(child_span: str, parent_span: str, parents: dict[str, str | None]) -> bool:
    """True if ``child_span`` is already an ancestor of ``parent_span``."""
    seen: set[str] = set()
    current: str | None = parent_span
    while current is not None and current not in seen:
        if current == child_span:
            return True
        seen.add(current)
        current = parents.get(current)
    return False


def _sort_by_start(nodes: list[TraceNode]) -> None:
    # list.sort is stable: equal timestamps keep insertion order.
    nodes.sort(key=lambda n: n.started_at)
    for node in nodes:
        if node.children:
            _sort_by_start(node.children)


def build_trace_tree(events: Iterable[AnyEvent]) -> list[TraceNode]:
    """Link events by ``span_id``/``parent_span_id`` and order by ``started_at``.

    Every input event appears exactly once in the output. Events whose
    parent is unknown (or whose parent link would close a cycle) become
    roots. When a span id repeats, the first event owns it and later ones
    get detached nodes of their own.
    """
    events = list(events)
    if not events:
        return []

    # First pass: one node per span id.
    by_span: dict[str, TraceNode] = {}
    owner: dict[str, int] = {}
    parents: dict[str, str | None] = {}
    for index, ev in enumerate(events):
        if ev.span_id is None:
            continue
        if ev.span_id in by_span:
            logger.warning("Duplicate span_id %s in flush batch; keeping first occurrence", ev.span_id)
            continue
        by_span[ev.span_id] = TraceNode(event=ev)
        owner[ev.span_id] = index
        parents[ev.span_id] = ev.parent_span_id

    # Second pass: attach to parent or promote to root.
    roots: list[TraceNode] = []
    for index, ev in enumerate(events):
        is_owner = ev.span_id is not None and owner.get(ev.span_id) == index
        node = by_span[ev.span_id] if is_owner else TraceNode(event=ev)

        parent_id = ev.parent_span_id
        parent = by_span.get(parent_id) if parent_id else None
        if parent is not None and is_owner and _creates_cycle(ev.span_id, parent_id, parents):
            # Cut this link so the rest of the cycle can still attach below it.
            parents[ev.span_id] = None
            parent = None
        if parent is not None:
            parent.children.append(node)
        else:
            roots.append(node)

    _sort_by_start(roots)
    return roots


def extract_enh_prompt_traces(trace_tree: Sequence[TraceNode]) -> list[str]:
    """Pre-order walk collecting ``enh_prompt_id`` of flagged function spans."""
    found: list[str] = []

    def walk(nodes: Sequence[TraceNode]) -> None:
        for node in nodes:
            ev = node.event
            if isinstance(ev, FunctionEvent) and ev.enh_prompt and ev.enh_prompt_id:
                found.append(ev.enh_prompt_id)
            if node.children:
                walk(node.children)

    walk(trace_tree)
    return found


def count_nodes(trace_tree: Sequence[TraceNode]) -> int:
    return sum(1 + count_nodes(node.children) for node in trace_tree)
