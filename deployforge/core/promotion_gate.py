"""Promotion gate — the manual approval between pre-production and production.

States: NOT_STARTED -> PENDING -> APPROVED | REJECTED.

The gate is an explicit state value rather than a pause: the approval
action ``open()``s it and ``wait()``s, parking on a condition variable until
an operator calls ``approve()`` or ``reject()`` from another thread.  There
is no timeout.  A decision is taken exactly once per run; repeating the same
decision is a no-op, contradicting it is an error.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from deployforge.core.errors import GateRejectedError, InvalidTransitionError
from deployforge.models.approvals import VALID_GATE_TRANSITIONS, GateDecision, GateState

logger = logging.getLogger(__name__)

# (gate, from_state, to_state, decision) — called with the gate lock held.
TransitionListener = Callable[["PromotionGate", GateState, GateState, GateDecision | None], None]


class PromotionGate:
    """Approval state for one approval action in one run.

    Parameters
    ----------
    name:
        The approval action's name.
    information:
        Text shown to the operator.
    external_link:
        Where the operator can review the pre-production deployment.
    on_transition:
        Optional listener notified of every state change.
    """

    def __init__(
        self,
        name: str,
        *,
        information: str = "",
        external_link: str = "",
        on_transition: TransitionListener | None = None,
    ) -> None:
        self.name = name
        self.information = information
        self.external_link = external_link
        self._on_transition = on_transition
        self._cond = threading.Condition()
        self._state = GateState.NOT_STARTED
        self._decision: GateDecision | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> GateState:
        with self._cond:
            return self._state

    @property
    def decision(self) -> GateDecision | None:
        with self._cond:
            return self._decision

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _recorded_decision(self) -> GateDecision:
        if self._decision is None:
            raise InvalidTransitionError(
                f"Gate {self.name} is {self._state.value} but has no recorded decision"
            )
        return self._decision

    def _transition(self, target: GateState, decision: GateDecision | None = None) -> None:
        current = self._state
        if target not in VALID_GATE_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Gate {self.name}: cannot move from {current.value} to {target.value}"
            )
        self._state = target
        if decision is not None:
            self._decision = decision
        if self._on_transition is not None:
            self._on_transition(self, current, target, decision)
        self._cond.notify_all()

    def open(self) -> None:
        """Enter PENDING.  Called when the approval action starts."""
        with self._cond:
            if self._state == GateState.REJECTED and self._decision and self._decision.cancelled:
                raise GateRejectedError(
                    f"Gate {self.name} was cancelled before it opened",
                    decision=self._decision,
                )
            self._transition(GateState.PENDING)
        logger.info("Gate %s is pending approval", self.name)

    def approve(self, operator: str = "", comment: str = "") -> GateDecision:
        """Approve a pending gate.

        Repeated approval returns the recorded decision unchanged.

        Raises
        ------
        GateRejectedError
            The gate was already rejected or cancelled.
        InvalidTransitionError
            The gate has not opened yet.
        """
        with self._cond:
            if self._state == GateState.APPROVED:
                logger.debug("Gate %s already approved; ignoring duplicate", self.name)
                return self._recorded_decision()
            if self._state == GateState.REJECTED:
                raise GateRejectedError(
                    f"Gate {self.name} was rejected; approval is not accepted",
                    decision=self._decision,
                )
            if self._state == GateState.NOT_STARTED:
                raise InvalidTransitionError(
                    f"Gate {self.name} is not pending; nothing to approve yet"
                )
            decision = GateDecision(
                gate=self.name, outcome=GateState.APPROVED, operator=operator, comment=comment
            )
            self._transition(GateState.APPROVED, decision)
        logger.info("Gate %s approved by %s", self.name, operator or "<unknown>")
        return decision

    def reject(self, operator: str = "", comment: str = "") -> GateDecision:
        """Reject a pending gate.  Repeated rejection is a no-op.

        Raises ``InvalidTransitionError`` if the gate was already approved or
        has not opened yet.
        """
        with self._cond:
            if self._state == GateState.REJECTED:
                return self._recorded_decision()
            if self._state != GateState.PENDING:
                raise InvalidTransitionError(
                    f"Gate {self.name} is {self._state.value}; only a pending gate "
                    f"can be rejected"
                )
            decision = GateDecision(
                gate=self.name, outcome=GateState.REJECTED, operator=operator, comment=comment
            )
            self._transition(GateState.REJECTED, decision)
        logger.warning("Gate %s rejected by %s: %s", self.name, operator or "<unknown>", comment)
        return decision

    def cancel(self, reason: str = "pipeline cancelled") -> GateDecision | None:
        """Reject the gate because the run was cancelled.

        No-op on a gate that has already been decided.
        """
        with self._cond:
            if self._state in (GateState.APPROVED, GateState.REJECTED):
                return self._decision
            decision = GateDecision(
                gate=self.name,
                outcome=GateState.REJECTED,
                operator="system",
                comment=reason,
                cancelled=True,
            )
            self._transition(GateState.REJECTED, decision)
        logger.warning("Gate %s cancelled: %s", self.name, reason)
        return decision

    # ------------------------------------------------------------------
    # Blocking
    # ------------------------------------------------------------------

    def wait(self, timeout: float | None = None) -> GateDecision:
        """Park until the gate is decided.

        Returns the approval decision.  Raises ``GateRejectedError`` on
        rejection, ``TimeoutError`` if *timeout* elapses first.
        """
        with self._cond:
            decided = self._cond.wait_for(
                lambda: self._state in (GateState.APPROVED, GateState.REJECTED),
                timeout=timeout,
            )
            if not decided:
                raise TimeoutError(f"Gate {self.name} still {self._state.value}")
            decision = self._recorded_decision()
        if decision.outcome == GateState.REJECTED:
            raise GateRejectedError(
                f"Gate {self.name} rejected by {decision.operator or '<unknown>'}"
                + (f": {decision.comment}" if decision.comment else ""),
                decision=decision,
            )
        return decision

    def wait_until_pending(self, timeout: float | None = None) -> bool:
        """Block until the gate opens (or is decided).  Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self._state != GateState.NOT_STARTED, timeout=timeout
            )

    def __repr__(self) -> str:
        return f"<PromotionGate name={self.name!r} state={self._state.value}>"
