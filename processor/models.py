"""Data models for today-category reconciliation."""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional


class Phase(str, Enum):
    """Reconciliation phase."""
    CLEAR = 'clear'
    APPLY = 'apply'


class RunState(str, Enum):
    """Lifecycle of a single reconciliation run."""
    IDLE = 'idle'
    PHASE1_RUNNING = 'phase1_running'
    PHASE2_RUNNING = 'phase2_running'
    DONE = 'done'
    FAILED = 'failed'


class OutcomeStatus(str, Enum):
    """Per-event result of a mutation attempt."""
    SKIPPED = 'skipped'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


class ErrorKind(str, Enum):
    """Kinds of remote failure."""
    REMOTE_REJECTED = 'remote_rejected'
    TRANSPORT = 'transport'
    MALFORMED_RESPONSE = 'malformed_response'


class FilterKind(str, Enum):
    TAGGED_IN_BAND = 'tagged_in_band'
    OCCURRING_ON_DAY = 'occurring_on_day'


EXIT_OK = 0
EXIT_MISSING_CREDENTIALS = 1
EXIT_PHASE1_QUERY_FAILED = 2
EXIT_PHASE2_QUERY_FAILED = 3


class MissingCredentialError(Exception):
    """Raised when no API credential is configured."""


@dataclass
class Event:
    """Snapshot of a remote calendar event."""
    event_id: Optional[int]
    url: Optional[str]
    title: str
    start_date: Optional[str]
    end_date: Optional[str]
    timezone: Optional[str]
    all_day: bool
    categories: List[int]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, record: Dict[str, Any]) -> 'Event':
        """
        Build an Event from one Tribe Events API record.

        Category objects are reduced to their ids; entries without an id
        are dropped.

        Args:
            record: Event record as returned by the events endpoint

        Returns:
            Event snapshot
        """
        categories = []
        for category in record.get('categories') or []:
            category_id = category.get('id') if isinstance(category, dict) else category
            if category_id is not None:
                categories.append(int(category_id))

        event_id = record.get('id')
        return cls(
            event_id=int(event_id) if event_id is not None else None,
            url=record.get('url'),
            title=record.get('title') or '',
            start_date=record.get('start_date'),
            end_date=record.get('end_date'),
            timezone=record.get('timezone'),
            all_day=bool(record.get('all_day', False)),
            categories=categories,
            raw=record
        )

    @property
    def reference(self) -> str:
        """Human readable reference used in log lines."""
        return f"{self.url or '<no url>'} ({self.event_id})"


@dataclass
class ReconciliationFilter:
    """Selects which events the events endpoint returns."""
    kind: FilterKind
    start: date
    end: date
    category_id: Optional[int] = None

    @classmethod
    def tagged_in_band(cls, category_id: int, today: date) -> 'ReconciliationFilter':
        """Events tagged with category_id within one year either side of today."""
        return cls(
            kind=FilterKind.TAGGED_IN_BAND,
            start=shift_years(today, -1),
            end=shift_years(today, 1),
            category_id=category_id
        )

    @classmethod
    def occurring_on(cls, today: date) -> 'ReconciliationFilter':
        """Events whose occurrence window covers today."""
        return cls(kind=FilterKind.OCCURRING_ON_DAY, start=today, end=today)

    def to_params(self) -> Dict[str, str]:
        """Render the filter as query string parameters."""
        if self.kind == FilterKind.TAGGED_IN_BAND:
            return {
                'starts_after': format_date(self.start),
                'ends_before': format_date(self.end),
                'categories': str(self.category_id)
            }
        return {
            'start_date': format_date(self.start),
            'end_date': format_date(self.end)
        }


@dataclass
class QueryFailure:
    """Failed event query. Fatal to the run."""
    kind: ErrorKind
    status: Optional[int] = None
    reason: Optional[str] = None
    body: Any = None
    phase: Optional[Phase] = None


@dataclass
class MutationFailure:
    """Failed category write for one event. Not fatal."""
    event_id: Optional[int]
    kind: ErrorKind
    status: Optional[int] = None
    reason: Optional[str] = None
    body: Any = None


@dataclass
class QueryResult:
    """Either the events returned by a query or the failure."""
    events: List[Event] = field(default_factory=list)
    failure: Optional[QueryFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class MutationResult:
    ok: bool
    failure: Optional[MutationFailure] = None


@dataclass
class EventOutcome:
    """What happened to one event during a phase."""
    event: Event
    phase: Phase
    status: OutcomeStatus
    categories: Optional[List[int]] = None
    failure: Optional[MutationFailure] = None


@dataclass
class PhaseReport:
    phase: Phase
    events_found: int = 0
    outcomes: List[EventOutcome] = field(default_factory=list)
    noop: bool = False

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)


@dataclass
class RunReport:
    """Aggregated result of one reconciliation run."""
    state: RunState = RunState.IDLE
    clear: Optional[PhaseReport] = None
    apply: Optional[PhaseReport] = None
    failure: Optional[QueryFailure] = None

    @property
    def phases(self) -> List[PhaseReport]:
        return [report for report in (self.clear, self.apply) if report is not None]

    @property
    def exit_code(self) -> int:
        if self.failure is None:
            return EXIT_OK
        if self.failure.phase == Phase.CLEAR:
            return EXIT_PHASE1_QUERY_FAILED
        return EXIT_PHASE2_QUERY_FAILED


def format_date(value: date) -> str:
    """Format a date as YYYY-MM-DD."""
    return value.strftime('%Y-%m-%d')


def shift_years(value: date, years: int) -> date:
    """
    Move a date by whole years.

    29 February rolls over to 1 March in non-leap target years.
    """
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return date(value.year + years, 3, 1)
