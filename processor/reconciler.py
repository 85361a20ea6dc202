"""Two-phase reconciliation of the today category."""
import logging
from datetime import date
from typing import Callable, Iterable, List, Optional

from processor.categories import add_tag, remove_tag
from processor.models import (
    Event,
    EventOutcome,
    OutcomeStatus,
    Phase,
    PhaseReport,
    ReconciliationFilter,
    RunReport,
    RunState,
)
from processor.reporter import RunReporter

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Clears the today category from stale events, then applies it to today's events."""

    def __init__(self, client, tag_id: int, reporter: Optional[RunReporter] = None):
        """
        Initialize the engine.

        Args:
            client: Object providing query_events(filter) and
                set_categories(event, categories), e.g. TribeEventsClient
            tag_id: Category id of the today tag
            reporter: Receives each outcome as it is recorded (default: RunReporter())
        """
        self.client = client
        self.tag_id = tag_id
        self.reporter = reporter or RunReporter()
        self.state = RunState.IDLE

    def run(self, today: date) -> RunReport:
        """
        Run both phases for the given calendar day.

        A failing query aborts the run. A failing mutation is recorded and
        processing continues with the next event.

        Args:
            today: Current date in the calendar's timezone

        Returns:
            RunReport with per-event outcomes and the terminal state
        """
        report = RunReport()

        self.state = RunState.PHASE1_RUNNING
        report.clear = PhaseReport(phase=Phase.CLEAR)
        if not self._run_phase(
            report,
            report.clear,
            ReconciliationFilter.tagged_in_band(self.tag_id, today),
            lambda categories: remove_tag(categories, self.tag_id)
        ):
            return self._finish(report, RunState.FAILED)

        self.state = RunState.PHASE2_RUNNING
        report.apply = PhaseReport(phase=Phase.APPLY)
        if not self._run_phase(
            report,
            report.apply,
            ReconciliationFilter.occurring_on(today),
            lambda categories: add_tag(categories, self.tag_id)
        ):
            return self._finish(report, RunState.FAILED)

        return self._finish(report, RunState.DONE)

    def _finish(self, report: RunReport, state: RunState) -> RunReport:
        self.state = state
        report.state = state
        return report

    def _run_phase(
        self,
        report: RunReport,
        phase_report: PhaseReport,
        event_filter: ReconciliationFilter,
        compute: Callable[[Iterable[int]], List[int]]
    ) -> bool:
        """Query and mutate one phase. Returns False if the query failed."""
        phase = phase_report.phase
        logger.info(f"Starting {phase.value} phase", extra={'phase': phase.value})

        result = self.client.query_events(event_filter)
        if not result.ok:
            result.failure.phase = phase
            report.failure = result.failure
            return False

        phase_report.events_found = len(result.events)
        if not result.events:
            phase_report.noop = True
            self.reporter.report_noop(phase)
            return True

        for event in result.events:
            outcome = self._process_event(event, phase, compute)
            phase_report.outcomes.append(outcome)
            self.reporter.report_outcome(outcome)
        return True

    def _process_event(
        self,
        event: Event,
        phase: Phase,
        compute: Callable[[Iterable[int]], List[int]]
    ) -> EventOutcome:
        if event.event_id is None:
            return EventOutcome(event=event, phase=phase, status=OutcomeStatus.SKIPPED)

        # Written even when unchanged; the query result is authoritative.
        categories = compute(event.categories)
        action = 'remove' if phase == Phase.CLEAR else 'set'
        logger.info(
            f"Trying to {action} today category for event {event.reference}",
            extra={'phase': phase.value, 'event_id': event.event_id}
        )

        result = self.client.set_categories(event, categories)
        if result.ok:
            return EventOutcome(
                event=event,
                phase=phase,
                status=OutcomeStatus.SUCCEEDED,
                categories=categories
            )
        return EventOutcome(
            event=event,
            phase=phase,
            status=OutcomeStatus.FAILED,
            categories=categories,
            failure=result.failure
        )
