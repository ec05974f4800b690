"""
Logging setup for export runs.

Every module logs through ``logging.getLogger(__name__)``; records propagate to
the ``quicksight_export`` package logger, where this service attaches a rotating
JSON-lines file handler for the duration of a run and writes the run report.
"""

import logging
import logging.handlers
import json
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from pathlib import Path

from ..models.config import ExportConfig
from ..models.export_result import ExportSummary

PACKAGE_LOGGER = 'quicksight_export'
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 5


class StructuredFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}.{record.funcName}:{record.lineno}",
            'thread': record.threadName,
        }

        context = getattr(record, 'context', None)
        if context:
            entry['context'] = context

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class LoggingService:
    """Owns the handlers attached to the package logger for one export run."""

    def __init__(self, config: ExportConfig, console: bool = True, verbose: bool = False):
        """
        Args:
            config: Export configuration with the log level and file path
            console: Also echo records to stderr in a human readable layout
            verbose: Lower the package level to DEBUG regardless of the configured level
        """
        self.config = config
        self.logger = logging.getLogger(PACKAGE_LOGGER)
        self._handlers: List[logging.Handler] = []
        self._previous_propagate = self.logger.propagate

        level = logging.DEBUG if verbose else getattr(logging, config.logging_level.upper())
        self.logger.setLevel(level)
        self._attach_file_handler()
        if console:
            self._attach_console_handler()
            # Console echo happens here, not through the root logger
            self.logger.propagate = False

    def _attach_file_handler(self) -> None:
        log_path = Path(self.config.logging_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding='utf-8',
        )
        handler.setFormatter(StructuredFormatter())
        self._add_handler(handler)

    def _attach_console_handler(self) -> None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)-7s %(name)s: %(message)s',
                                               datefmt='%H:%M:%S'))
        self._add_handler(handler)

    def _add_handler(self, handler: logging.Handler) -> None:
        self.logger.addHandler(handler)
        self._handlers.append(handler)

    def log_info(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.logger.info(message, extra={'context': context or {}})

    def log_warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.logger.warning(message, extra={'context': context or {}})

    def log_error(self, message: str, error: Optional[Exception] = None,
                  context: Optional[Dict[str, Any]] = None) -> None:
        """Log at ERROR, adding the exception type, message and traceback when given."""
        details = dict(context or {})
        if error is not None:
            details['error_type'] = type(error).__name__
            details['error_message'] = str(error)
        self.logger.error(message, exc_info=error, extra={'context': details})

    def log_export_summary(self, summary: ExportSummary, job_id: Optional[str] = None) -> None:
        """One record per asset type plus a run total, so the log file carries the outcome."""
        for type_summary in summary.summaries:
            context = type_summary.to_dict()
            context['jobId'] = job_id
            log = self.log_warning if type_summary.failed else self.log_info
            log(f"{type_summary.asset_type}: {type_summary.successful} exported, "
                f"{type_summary.cached} cached, {type_summary.failed} failed", context)

        self.log_info(
            f"Export {'stopped' if summary.stopped else 'finished'}: "
            f"{summary.successful}/{summary.total_processed} processed assets exported",
            {'jobId': job_id, 'totals': summary.to_dict()['totals'], 'durationMs': summary.duration_ms}
        )

    def save_export_report(self, summary: ExportSummary, output_path: Optional[str] = None) -> str:
        """
        Write the run summary as JSON.

        Args:
            summary: Summary returned by the orchestrator
            output_path: Report file; defaults to export_report_<start time>.json in the cwd

        Returns:
            str: Absolute path of the written report
        """
        if output_path is None:
            output_path = f"export_report_{summary.start_time.strftime('%Y%m%d_%H%M%S')}.json"

        report = summary.to_dict()
        report['successRate'] = round(summary.success_rate, 2)
        report['generatedAt'] = datetime.now(timezone.utc).isoformat()

        report_file = Path(output_path).absolute()
        report_file.parent.mkdir(parents=True, exist_ok=True)
        with open(report_file, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, default=str)

        self.log_info(f"Export report saved to {report_file}", {'report_path': str(report_file)})
        return str(report_file)

    def close(self) -> None:
        """Detach and close the handlers added by this service."""
        for handler in self._handlers:
            self.logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self.logger.propagate = self._previous_propagate
