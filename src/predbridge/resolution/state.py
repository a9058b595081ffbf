"""Persisted resolution sub-state: undecided -> deciding -> decided-pending-bridge -> bridged."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable

import structlog

from predbridge.errors import InvalidTransitionError
from predbridge.models import ResolutionMechanism, ResolutionStage, ResolutionState
from predbridge.storage.resolutions import get_resolution_state, upsert_resolution_state

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

_FORWARD: dict[ResolutionStage, ResolutionStage] = {
    ResolutionStage.UNDECIDED: ResolutionStage.DECIDING,
    ResolutionStage.DECIDING: ResolutionStage.DECIDED_PENDING_BRIDGE,
    ResolutionStage.DECIDED_PENDING_BRIDGE: ResolutionStage.BRIDGED,
}

# A failed step returns to the stage it started from.
_ON_FAILURE: dict[ResolutionStage, ResolutionStage] = {
    ResolutionStage.DECIDING: ResolutionStage.UNDECIDED,
    ResolutionStage.DECIDED_PENDING_BRIDGE: ResolutionStage.DECIDED_PENDING_BRIDGE,
}


class ResolutionStateMachine:
    def __init__(
        self,
        conn: DuckDBPyConnection,
        market_id: str,
        *,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.conn = conn
        self.market_id = market_id
        self._clock = clock or (lambda: int(time.time() * 1000))

    @property
    def state(self) -> ResolutionState:
        return get_resolution_state(self.conn, self.market_id) or ResolutionState(market_id=self.market_id)

    @property
    def stage(self) -> ResolutionStage:
        return self.state.stage

    def _advance(self, expected: ResolutionStage, **updates) -> ResolutionState:
        current = self.state
        if current.stage is not expected:
            raise InvalidTransitionError(
                f"Cannot move from {current.stage.value} to {_FORWARD.get(expected, expected).value}",
                details={"market_id": self.market_id, "stage": current.stage.value},
            )
        new = current.model_copy(update={"stage": _FORWARD[expected], "updated_at": self._clock(), **updates})
        upsert_resolution_state(self.conn, new)
        log.info("resolution_stage_changed", market_id=self.market_id, stage=new.stage.value)
        return new

    def start(self, mechanism: ResolutionMechanism) -> ResolutionState:
        """undecided -> deciding."""
        return self._advance(ResolutionStage.UNDECIDED, mechanism=mechanism)

    def decide(self, outcome: str, rationale: str | None = None) -> ResolutionState:
        """deciding -> decided-pending-bridge, remembering the outcome for bridge retries."""
        return self._advance(ResolutionStage.DECIDING, outcome=outcome, rationale=rationale)

    def mark_bridged(self) -> ResolutionState:
        return self._advance(ResolutionStage.DECIDED_PENDING_BRIDGE)

    def fail(self) -> ResolutionState:
        """Return to the current step's starting stage."""
        current = self.state
        target = _ON_FAILURE.get(current.stage)
        if target is None:
            raise InvalidTransitionError(
                f"Nothing in flight at stage {current.stage.value}",
                details={"market_id": self.market_id, "stage": current.stage.value},
            )
        if target is current.stage:
            return current
        updates = {"stage": target, "updated_at": self._clock(), "outcome": None, "rationale": None}
        new = current.model_copy(update=updates)
        upsert_resolution_state(self.conn, new)
        log.info("resolution_stage_reverted", market_id=self.market_id, stage=target.value)
        return new
