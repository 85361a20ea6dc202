"""Unit tests for ReconciliationEngine."""
import logging
from datetime import date
from unittest.mock import Mock

import pytest

from processor.models import (
    ErrorKind,
    Event,
    FilterKind,
    MutationFailure,
    MutationResult,
    OutcomeStatus,
    Phase,
    QueryFailure,
    QueryResult,
    RunState,
)
from processor.reconciler import ReconciliationEngine

TAG = 12
TODAY = date(2026, 10, 19)


def make_event(event_id, categories):
    return Event.from_api({
        'id': event_id,
        'url': f'https://example.org/event/{event_id}/',
        'title': f'Event {event_id}',
        'categories': [{'id': category_id} for category_id in categories]
    })


def make_client(tagged=None, todays=None, mutation_results=None):
    """Mock client returning the given query results per filter kind."""
    client = Mock()
    results = {
        FilterKind.TAGGED_IN_BAND: tagged if tagged is not None else QueryResult(),
        FilterKind.OCCURRING_ON_DAY: todays if todays is not None else QueryResult(),
    }
    client.query_events.side_effect = lambda event_filter: results[event_filter.kind]
    if mutation_results is None:
        client.set_categories.return_value = MutationResult(ok=True)
    else:
        client.set_categories.side_effect = mutation_results
    return client


class TestReconciliationEngine:
    """Test cases for ReconciliationEngine.run."""

    def test_empty_clear_phase_is_noop(self):
        """Scenario A: no tagged events means no phase 1 mutations."""
        client = make_client(todays=QueryResult(events=[make_event(1, [5])]))
        engine = ReconciliationEngine(client, tag_id=TAG)

        report = engine.run(TODAY)

        assert report.clear.noop is True
        assert report.clear.outcomes == []
        assert client.query_events.call_count == 2
        # Only the phase 2 write happened
        assert client.set_categories.call_count == 1
        assert report.state == RunState.DONE
        assert report.exit_code == 0

    def test_clear_phase_removes_tag(self):
        """Scenario B."""
        event = make_event(1, [5, TAG])
        client = make_client(tagged=QueryResult(events=[event]))

        report = ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        client.set_categories.assert_called_once_with(event, [5])
        assert report.clear.outcomes[0].status == OutcomeStatus.SUCCEEDED
        assert report.clear.outcomes[0].categories == [5]

    def test_apply_phase_adds_tag(self):
        """Scenario C."""
        event = make_event(2, [5])
        client = make_client(todays=QueryResult(events=[event]))

        report = ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        client.set_categories.assert_called_once_with(event, [5, TAG])
        assert report.apply.outcomes[0].status == OutcomeStatus.SUCCEEDED

    def test_apply_phase_does_not_duplicate_tag(self):
        """Scenario D."""
        event = make_event(3, [5, TAG])
        client = make_client(todays=QueryResult(events=[event]))

        report = ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        client.set_categories.assert_called_once_with(event, [5, TAG])
        assert report.apply.outcomes[0].status == OutcomeStatus.SUCCEEDED

    def test_clear_query_failure_aborts_run(self):
        """Scenario E."""
        failure = QueryFailure(kind=ErrorKind.REMOTE_REJECTED, status=500, body={'code': 'boom'})
        client = make_client(tagged=QueryResult(failure=failure))
        engine = ReconciliationEngine(client, tag_id=TAG)

        report = engine.run(TODAY)

        assert report.state == RunState.FAILED
        assert engine.state == RunState.FAILED
        assert report.exit_code == 2
        assert report.failure.phase == Phase.CLEAR
        assert report.apply is None
        assert client.query_events.call_count == 1
        client.set_categories.assert_not_called()

    def test_apply_query_failure_after_clear_succeeded(self):
        failure = QueryFailure(kind=ErrorKind.TRANSPORT, reason='connection refused')
        client = make_client(
            tagged=QueryResult(events=[make_event(1, [TAG])]),
            todays=QueryResult(failure=failure)
        )

        report = ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        assert report.state == RunState.FAILED
        assert report.exit_code == 3
        assert report.failure.phase == Phase.APPLY
        assert report.clear.outcomes[0].status == OutcomeStatus.SUCCEEDED

    def test_mutation_failure_does_not_stop_phase(self):
        first = make_event(1, [5, TAG])
        second = make_event(2, [TAG])
        failure = MutationFailure(event_id=1, kind=ErrorKind.REMOTE_REJECTED, status=403)
        client = make_client(
            tagged=QueryResult(events=[first, second]),
            todays=QueryResult(events=[make_event(3, [])]),
            mutation_results=[
                MutationResult(ok=False, failure=failure),
                MutationResult(ok=True),
                MutationResult(ok=True),
            ]
        )

        report = ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        statuses = [outcome.status for outcome in report.clear.outcomes]
        assert statuses == [OutcomeStatus.FAILED, OutcomeStatus.SUCCEEDED]
        assert report.clear.outcomes[0].failure is failure
        assert report.apply.outcomes[0].status == OutcomeStatus.SUCCEEDED
        assert report.state == RunState.DONE
        assert report.exit_code == 0

    def test_clear_phase_writes_even_without_tag(self):
        event = make_event(4, [5])
        client = make_client(tagged=QueryResult(events=[event]))

        ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        client.set_categories.assert_called_once_with(event, [5])

    def test_event_without_id_is_skipped(self):
        event = Event.from_api({'title': 'broken', 'categories': [{'id': 5}]})
        client = make_client(todays=QueryResult(events=[event]))

        report = ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        assert report.apply.outcomes[0].status == OutcomeStatus.SKIPPED
        client.set_categories.assert_not_called()

    def test_phase_ordering(self):
        """Phase 2 query is only issued after every phase 1 write."""
        calls = []
        client = Mock()
        tagged = QueryResult(events=[make_event(1, [TAG]), make_event(2, [TAG])])
        todays = QueryResult(events=[make_event(3, [])])

        def query(event_filter):
            calls.append(('query', event_filter.kind))
            return tagged if event_filter.kind == FilterKind.TAGGED_IN_BAND else todays

        def mutate(event, categories):
            calls.append(('write', event.event_id))
            return MutationResult(ok=True)

        client.query_events.side_effect = query
        client.set_categories.side_effect = mutate

        ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        assert calls == [
            ('query', FilterKind.TAGGED_IN_BAND),
            ('write', 1),
            ('write', 2),
            ('query', FilterKind.OCCURRING_ON_DAY),
            ('write', 3),
        ]

    def test_filters_use_given_date(self):
        client = make_client()

        ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        tagged_filter = client.query_events.call_args_list[0].args[0]
        todays_filter = client.query_events.call_args_list[1].args[0]
        assert tagged_filter.to_params() == {
            'starts_after': '2025-10-19',
            'ends_before': '2027-10-19',
            'categories': '12'
        }
        assert todays_filter.to_params() == {'start_date': '2026-10-19', 'end_date': '2026-10-19'}

    @pytest.mark.parametrize('tag_id', [12, 99])
    def test_uses_configured_tag(self, tag_id):
        event = make_event(5, [5])
        client = make_client(todays=QueryResult(events=[event]))

        ReconciliationEngine(client, tag_id=tag_id).run(TODAY)

        client.set_categories.assert_called_once_with(event, [5, tag_id])

    def test_engine_state_done(self):
        engine = ReconciliationEngine(make_client(), tag_id=TAG)
        assert engine.state == RunState.IDLE

        engine.run(TODAY)

        assert engine.state == RunState.DONE

    def test_outcome_logged_before_later_phase_fails(self, caplog):
        """A write made in phase 1 is logged even if phase 2 blows up."""
        caplog.set_level(logging.INFO, logger='processor.reporter')
        client = Mock()
        tagged = QueryResult(events=[make_event(1, [5, TAG])])
        client.query_events.side_effect = [tagged, RuntimeError('connection pool exhausted')]
        client.set_categories.return_value = MutationResult(ok=True)

        with pytest.raises(RuntimeError):
            ReconciliationEngine(client, tag_id=TAG).run(TODAY)

        assert client.set_categories.call_count == 1
        lines = [record.getMessage() for record in caplog.records if record.name == 'processor.reporter']
        assert lines == ['Updated categories of event https://example.org/event/1/ (1) to [5]']

    def test_each_outcome_reported_once(self):
        reporter = Mock()
        failure = MutationFailure(event_id=2, kind=ErrorKind.REMOTE_REJECTED, status=500)
        client = make_client(
            todays=QueryResult(events=[make_event(1, []), make_event(2, [])]),
            mutation_results=[MutationResult(ok=True), MutationResult(ok=False, failure=failure)]
        )

        report = ReconciliationEngine(client, tag_id=TAG, reporter=reporter).run(TODAY)

        reporter.report_noop.assert_called_once_with(Phase.CLEAR)
        reported = [call.args[0] for call in reporter.report_outcome.call_args_list]
        assert reported == report.apply.outcomes
        assert [outcome.status for outcome in reported] == [OutcomeStatus.SUCCEEDED, OutcomeStatus.FAILED]
