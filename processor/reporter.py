"""Log output and exit status for reconciliation runs."""
import logging
from typing import Any, Dict

from processor.models import EventOutcome, OutcomeStatus, Phase, RunReport

logger = logging.getLogger(__name__)

PHASE_LABELS = {
    Phase.CLEAR: "events with category 'today'",
    Phase.APPLY: "today's events",
}


class RunReporter:
    """Turns outcomes of a run into log lines and an exit code.

    Per-event lines are written as soon as the engine records each outcome.
    """

    def report_outcome(self, outcome: EventOutcome) -> None:
        """Log exactly one line for one event outcome."""
        event = outcome.event
        context = {'phase': outcome.phase.value, 'event_id': event.event_id, 'url': event.url}
        if outcome.status == OutcomeStatus.SUCCEEDED:
            logger.info(
                f"Updated categories of event {event.reference} to {outcome.categories}",
                extra=context
            )
        elif outcome.status == OutcomeStatus.SKIPPED:
            logger.info(f"Skipped event {event.reference}: no event id", extra=context)
        else:
            failure = outcome.failure
            context['status'] = failure.status
            context['error_kind'] = failure.kind.value
            logger.error(
                f"could not update categories of event {event.reference}: "
                f"{failure.status}: {failure.reason} {failure.body}",
                extra=context
            )

    def report_noop(self, phase: Phase) -> None:
        """Log that a phase query returned no events."""
        logger.info(f"no-op: no {PHASE_LABELS[phase]} found", extra={'phase': phase.value})

    def report(self, run_report: RunReport) -> int:
        """
        Log the end of a run and return its exit code.

        Args:
            run_report: Result of ReconciliationEngine.run

        Returns:
            Process exit code
        """
        if run_report.failure is not None:
            failure = run_report.failure
            logger.error(
                f"could not get {PHASE_LABELS[failure.phase]}: "
                f"{failure.status}: {failure.reason} {failure.body}",
                extra={
                    'phase': failure.phase.value,
                    'status': failure.status,
                    'error_kind': failure.kind.value
                }
            )

        logger.info(
            f"Run finished with state {run_report.state.value}",
            extra=self.summary(run_report)
        )
        return run_report.exit_code

    def summary(self, run_report: RunReport) -> Dict[str, Any]:
        """Counts per phase, suitable for a JSON response body."""
        summary: Dict[str, Any] = {
            'state': run_report.state.value,
            'exit_code': run_report.exit_code
        }
        for phase_report in run_report.phases:
            summary[phase_report.phase.value] = {
                'events_found': phase_report.events_found,
                'succeeded': phase_report.count(OutcomeStatus.SUCCEEDED),
                'failed': phase_report.count(OutcomeStatus.FAILED),
                'skipped': phase_report.count(OutcomeStatus.SKIPPED)
            }
        if run_report.failure is not None:
            summary['failed_phase'] = run_report.failure.phase.value
        return summary
