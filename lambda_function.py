"""Entry points for the today category sync (CLI and AWS Lambda)."""
import json
import logging
import os
import sys
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo

from credentials.credential_loader import basic_auth_token, load_credential
from processor.models import EXIT_MISSING_CREDENTIALS, MissingCredentialError
from processor.reconciler import ReconciliationEngine
from processor.reporter import RunReporter
from tribe_api.events_client import TribeEventsClient

# LogRecord attributes that are not user supplied context
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any extra context fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


@dataclass
class Settings:
    """Runtime configuration read from the environment."""
    api_root: str = TribeEventsClient.DEFAULT_API_ROOT
    today_category_id: int = 12
    timezone: str = 'Europe/Berlin'
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    per_page: int = 50


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read Settings from environment variables."""
    if environ is None:
        environ = os.environ
    defaults = Settings()
    return Settings(
        api_root=environ.get('WP_API_ROOT', defaults.api_root),
        today_category_id=int(environ.get('TODAY_CATEGORY_ID', defaults.today_category_id)),
        timezone=environ.get('TIMEZONE', defaults.timezone),
        log_level=environ.get('LOG_LEVEL', defaults.log_level),
        timeout_seconds=int(environ.get('TIMEOUT_SECONDS', defaults.timeout_seconds)),
        per_page=int(environ.get('PER_PAGE', defaults.per_page))
    )


def current_date(timezone: str) -> date:
    """Today's calendar date in the given IANA timezone."""
    return datetime.now(ZoneInfo(timezone)).date()


def run_sync(settings: Settings, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Perform one full reconciliation pass.

    Args:
        settings: Runtime configuration
        today: Date to reconcile for (default: today in settings.timezone)

    Returns:
        Summary dict including the exit code
    """
    logger = logging.getLogger(__name__)

    try:
        credential = load_credential()
    except MissingCredentialError as e:
        logger.error(str(e))
        return {'state': 'failed', 'exit_code': EXIT_MISSING_CREDENTIALS, 'error': str(e)}

    client = TribeEventsClient(
        auth_token=basic_auth_token(credential),
        api_root=settings.api_root,
        timeout=settings.timeout_seconds,
        per_page=settings.per_page
    )
    reporter = RunReporter()
    engine = ReconciliationEngine(client, tag_id=settings.today_category_id, reporter=reporter)

    if today is None:
        today = current_date(settings.timezone)
    logger.info(
        f"Reconciling category {settings.today_category_id} for {today.isoformat()}",
        extra={'api_root': settings.api_root, 'timezone': settings.timezone}
    )

    run_report = engine.run(today)
    reporter.report(run_report)
    return reporter.summary(run_report)


def main() -> int:
    """Command line entry point. Returns the process exit code."""
    settings = load_settings()
    setup_logging(settings.log_level)
    return run_sync(settings)['exit_code']


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda handler for the today category sync.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and run summary
    """
    settings = load_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info("Lambda execution started")

    try:
        summary = run_sync(settings)
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Sync failed',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }

    duration = time.time() - start_time
    summary['duration_seconds'] = round(duration, 2)
    succeeded = summary['exit_code'] == 0
    logger.info(
        "Lambda execution completed",
        extra={'duration_seconds': summary['duration_seconds'], 'exit_code': summary['exit_code']}
    )

    return {
        'statusCode': 200 if succeeded else 500,
        'body': json.dumps({
            'message': 'Sync completed successfully' if succeeded else 'Sync failed',
            'summary': summary
        })
    }


if __name__ == '__main__':
    sys.exit(main())
