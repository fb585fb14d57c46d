"""
Declarative state machines for transfers and business relationships.

Services never test ``status == "pending"`` themselves.  They ask the
workflow whether ``action`` is legal from the row's current status and move
the row to ``Transition.to_state`` if it is.  The concrete machines live in
``workflow_definitions.py``.  Pure data, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Transition:
    """One edge: ``action`` takes a row from ``from_state`` to ``to_state``.

    ``actor_side`` says which party may fire it ("source", "destination",
    "requester" or "target").  ``guard`` names a precondition the owning
    service re-checks under lock; ``moves_stock`` marks the edge that
    writes ledger movements.
    """

    from_state: str
    to_state: str
    action: str
    actor_side: str
    guard: str | None = None
    moves_stock: bool = False


def _check(workflow: Workflow) -> None:
    known = set(workflow.states)
    if workflow.initial_state not in known:
        raise ValueError(f"{workflow.name}: initial state {workflow.initial_state!r} is not declared")
    for edge in workflow.transitions:
        undeclared = {edge.from_state, edge.to_state} - known
        if undeclared:
            raise ValueError(f"{workflow.name}: {edge.action!r} uses undeclared state(s) {sorted(undeclared)}")
        if edge.from_state in workflow.terminal_states:
            raise ValueError(f"{workflow.name}: {edge.action!r} leaves terminal state {edge.from_state!r}")


@dataclass(frozen=True)
class Workflow:
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    _edges: dict[tuple[str, str], Transition] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        _check(self)
        edges = {(t.from_state, t.action): t for t in self.transitions}
        object.__setattr__(self, "_edges", edges)

    def find_transition(self, from_state: str, action: str) -> Transition | None:
        return self._edges.get((from_state, action))

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def actions_from(self, state: str) -> tuple[str, ...]:
        """Actions legal from ``state``, in declaration order."""
        return tuple(t.action for t in self.transitions if t.from_state == state)
