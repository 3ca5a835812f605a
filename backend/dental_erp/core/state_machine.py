"""
Status transition tables

One table per stateful document (case, purchase order). A table lists the
legal edges and optional guards per destination; guards raise
PreconditionError when the subject is not ready for the move.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from dental_erp.core.exceptions import InvalidTransitionError

Guard = Callable[[Any], None]


class TransitionTable:
    """Directed status graph with per-destination guards"""

    def __init__(
        self,
        name: str,
        edges: Mapping[str, Iterable[str]],
        guards: Optional[Mapping[str, Iterable[Guard]]] = None,
        allow_self: bool = False):
        self.name = name
        self.edges: Dict[str, Tuple[str, ...]] = {k: tuple(v) for k, v in edges.items()}
        self.guards: Dict[str, List[Guard]] = {k: list(v) for k, v in (guards or {}).items()}
        self.allow_self = allow_self

    @property
    def states(self) -> Tuple[str, ...]:
        return tuple(self.edges.keys())

    def allowed(self, from_status: str) -> Tuple[str, ...]:
        return self.edges.get(from_status, ())

    def can(self, from_status: str, to_status: str) -> bool:
        if self.allow_self and from_status == to_status and from_status in self.edges:
            return True
        return to_status in self.allowed(from_status)

    def add_guard(self, to_status: str, guard: Guard) -> None:
        self.guards.setdefault(to_status, []).append(guard)

    def check(self, subject: Any, from_status: str, to_status: str) -> bool:
        """
        Validate a move.

        Returns False for an accepted self-transition (nothing to apply) and
        True when the caller should apply the new status.
        """
        if from_status not in self.edges:
            raise InvalidTransitionError(f"Unknown {self.name} status '{from_status}'")

        if self.allow_self and from_status == to_status:
            return False

        valid_next = self.allowed(from_status)
        if to_status not in valid_next:
            raise InvalidTransitionError(
                f"Cannot move {self.name} from {from_status} to {to_status}. "
                f"Valid: {', '.join(valid_next) or 'none'}"
            )

        for guard in self.guards.get(to_status, []):
            guard(subject)
        return True
