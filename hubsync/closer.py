# hubsync/closer.py
"""
Drive a Jira ticket to a terminal status through a workflow we cannot see.

Jira only reports the transitions legal from a ticket's current status, so the
graph is discovered one step at a time. Strategies, tried in order:
  1. a transition literally named "Done"
  2. the configured transition map (wildcard rule, or status -> transition rules)
  3. a greedy walk over available transitions (only when no map is configured)

close() never raises; tracker errors and dead ends become a FAILED outcome and
the ticket is left where it is.
"""

import logging
from typing import List, Optional

from hubsync.config import (
    DIRECT_DONE_TRANSITION,
    DONE_TRANSITIONS,
    MAX_GREEDY_STEPS,
    OPPOSED_TRANSITIONS,
)
from hubsync.jira_client import TrackerError
from hubsync.models import CloseOutcome, Transition, TransitionRule

logger = logging.getLogger(__name__)


def is_done_name(name: str) -> bool:
    return (name or "").strip().lower() in DONE_TRANSITIONS


def is_opposed_name(name: str) -> bool:
    return (name or "").strip().lower() in OPPOSED_TRANSITIONS


def find_transition(transitions: List[Transition], name: str) -> Optional[Transition]:
    wanted = name.strip().lower()
    for t in transitions:
        if t.name.strip().lower() == wanted:
            return t
    return None


class TicketCloser:
    """
    Closes tickets using `tracker`, which must provide get_status(key),
    get_transitions(key) and apply_transition(key, transition_id).
    """

    def __init__(self, tracker, transition_map: Optional[List[TransitionRule]] = None):
        self.tracker = tracker
        self.transition_map = list(transition_map or [])

    def close(self, key: str) -> CloseOutcome:
        try:
            outcome = self._close(key)
        except TrackerError as e:
            outcome = CloseOutcome.failed(str(e))
        if outcome.ok:
            logger.info("Ticket %s: %s %s", key, outcome.status.value, outcome.applied)
        else:
            logger.warning("Could not close ticket %s: %s", key, outcome.reason)
        return outcome

    def _close(self, key: str) -> CloseOutcome:
        if is_done_name(self.tracker.get_status(key)):
            return CloseOutcome.already_terminal()

        done = find_transition(self.tracker.get_transitions(key), DIRECT_DONE_TRANSITION)
        if done is not None:
            self._apply(key, done)
            return CloseOutcome.closed([done.name])

        if self.transition_map:
            return self._close_with_map(key)
        return self._close_greedy(key)

    def _apply(self, key: str, transition: Transition) -> None:
        logger.debug("Ticket %s: applying transition %s (%s)", key, transition.name, transition.id)
        self.tracker.apply_transition(key, transition.id)

    def _apply_by_name(self, key: str, name: str, applied: List[str]) -> Optional[CloseOutcome]:
        transition = find_transition(self.tracker.get_transitions(key), name)
        if transition is None:
            return CloseOutcome.failed(f"transition '{name}' is not available", applied)
        self._apply(key, transition)
        applied.append(transition.name)
        return None

    def _close_with_map(self, key: str) -> CloseOutcome:
        applied: List[str] = []
        if len(self.transition_map) == 1 and self.transition_map[0].is_wildcard:
            failure = self._apply_by_name(key, self.transition_map[0].transition_name, applied)
            return failure or CloseOutcome.closed(applied)

        rules = {r.status.strip().lower(): r for r in self.transition_map}
        # At most one application per rule; the extra pass only checks the final status.
        for _ in range(len(self.transition_map) + 1):
            status = self.tracker.get_status(key)
            rule = rules.get((status or "").strip().lower())
            if rule is None:
                if applied:
                    return CloseOutcome.closed(applied)
                return CloseOutcome.already_terminal()
            if len(applied) == len(self.transition_map):
                break
            failure = self._apply_by_name(key, rule.transition_name, applied)
            if failure is not None:
                return failure
        return CloseOutcome.failed("transition map has a cycle or does not reach a terminal status", applied)

    def _close_greedy(self, key: str) -> CloseOutcome:
        applied: List[str] = []
        for _ in range(MAX_GREEDY_STEPS):
            done_lower = {name.lower() for name in applied}
            candidates = [
                t for t in self.tracker.get_transitions(key)
                if not is_opposed_name(t.name) and t.name.lower() not in done_lower
            ]
            if not candidates:
                if not applied:
                    return CloseOutcome.failed("no transition available", applied)
                if not is_done_name(applied[-1]):
                    return CloseOutcome.failed("unsupported workflow", applied)
                return CloseOutcome.closed(applied)
            self._apply(key, candidates[0])
            applied.append(candidates[0].name)
        return CloseOutcome.failed(f"no terminal status after {MAX_GREEDY_STEPS} transitions", applied)
