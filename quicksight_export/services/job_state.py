"""
Job status and log records for export runs, stored next to the cache in S3.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from quicksight_export.models.asset import utc_now
from quicksight_export.models.export_result import JobStatus
from quicksight_export.services.cache_store import CacheStore

logger = logging.getLogger(__name__)

JOBS_PREFIX = 'jobs/'


class JobStateService:
    """
    Progress and log sink for a running export.

    The job record lives at jobs/<jobId>.json and its log at
    jobs/<jobId>-logs.json. The log keeps only the newest max_log_entries items.
    """

    def __init__(self, cache_store: CacheStore, max_log_entries: int = 1000):
        self.cache_store = cache_store
        self.bucket = cache_store.bucket
        self.max_log_entries = max_log_entries
        self._lock = threading.Lock()

    def _job_key(self, job_id: str) -> str:
        return f"{JOBS_PREFIX}{job_id}.json"

    def _logs_key(self, job_id: str) -> str:
        return f"{JOBS_PREFIX}{job_id}-logs.json"

    def create_job(self, job_id: str, job_type: str = 'export',
                   initial: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        record = {
            'jobId': job_id,
            'jobType': job_type,
            'status': JobStatus.QUEUED.value,
            'progress': 0,
            'startTime': utc_now().isoformat(),
            'stopRequested': False,
            'stats': {},
        }
        record.update(initial or {})
        with self._lock:
            self.cache_store.put_object(self.bucket, self._job_key(job_id), record)
        return record

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self.cache_store.get_object(self.bucket, self._job_key(job_id))

    def update_job_status(self, job_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow-merge updates into the job record; stats merge one level deeper."""
        with self._lock:
            record = self.get_job_status(job_id) or {'jobId': job_id, 'stats': {}}
            for key, value in updates.items():
                if isinstance(value, JobStatus):
                    value = value.value
                if key == 'stats' and isinstance(value, dict):
                    record.setdefault('stats', {}).update(value)
                else:
                    record[key] = value

            if record.get('status') in (JobStatus.COMPLETED.value, JobStatus.FAILED.value,
                                        JobStatus.STOPPED.value) and 'endTime' not in updates:
                record.setdefault('endTime', utc_now().isoformat())

            self.cache_store.put_object(self.bucket, self._job_key(job_id), record)
            return record

    def update_asset_progress(self, job_id: str, asset_type: str, processed: int, total: int) -> None:
        progress = round((processed / total) * 100) if total else 100
        self.update_job_status(job_id, {
            'progress': progress,
            'message': f"Processing {asset_type}: {processed}/{total}",
            'stats': {'totalAssets': total, 'processedAssets': processed},
        })

    def request_stop(self, job_id: str) -> None:
        self.update_job_status(job_id, {'stopRequested': True, 'status': JobStatus.STOPPING})

    def is_stop_requested(self, job_id: str) -> bool:
        record = self.get_job_status(job_id)
        return bool(record and record.get('stopRequested'))

    def get_job_logs(self, job_id: str) -> List[Dict[str, Any]]:
        return self.cache_store.get_object(self.bucket, self._logs_key(job_id)) or []

    def append_log(self, job_id: str, level: str, message: str,
                   details: Optional[Dict[str, Any]] = None) -> None:
        entry = {'timestamp': utc_now().isoformat(), 'level': level, 'message': message}
        if details:
            entry['details'] = details

        with self._lock:
            logs = self.get_job_logs(job_id)
            logs.append(entry)
            if len(logs) > self.max_log_entries:
                logs = logs[-self.max_log_entries:]
            self.cache_store.put_object(self.bucket, self._logs_key(job_id), logs)

    def log_info(self, job_id: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        logger.info(message, extra={'context': {'job_id': job_id, **(details or {})}})
        self.append_log(job_id, 'info', message, details)

    def log_warn(self, job_id: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        logger.warning(message, extra={'context': {'job_id': job_id, **(details or {})}})
        self.append_log(job_id, 'warn', message, details)

    def log_error(self, job_id: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        logger.error(message, extra={'context': {'job_id': job_id, **(details or {})}})
        self.append_log(job_id, 'error', message, details)
