"""Unit tests for quicksight_export.services.logging."""

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from quicksight_export.models.export_result import AssetTypeSummary, ExportSummary
from quicksight_export.services.logging import LoggingService, StructuredFormatter


@pytest.fixture
def logging_service(config):
    service = LoggingService(config, console=False)
    yield service
    service.close()


def _lines(config):
    with open(config.logging_file_path, encoding='utf-8') as f:
        return [json.loads(line) for line in f if line.strip()]


class TestStructuredFormatter:
    def test_context_included(self):
        record = logging.LogRecord('quicksight_export.test', logging.INFO, __file__, 10,
                                   'listed %d dashboards', (3,), None)
        record.context = {'asset_type': 'dashboard'}

        data = json.loads(StructuredFormatter().format(record))

        assert data['message'] == 'listed 3 dashboards'
        assert data['level'] == 'INFO'
        assert data['context'] == {'asset_type': 'dashboard'}

    def test_empty_context_omitted(self):
        record = logging.LogRecord('x', logging.WARNING, __file__, 1, 'plain', (), None)

        assert 'context' not in json.loads(StructuredFormatter().format(record))


class TestLoggingService:
    def test_module_loggers_write_json_lines(self, logging_service, config):
        logging.getLogger('quicksight_export.services.cache_store').info(
            'Flushed', extra={'context': {'count': 2}}
        )
        logging_service.log_warning('careful', {'asset_id': 'd1'})
        for handler in logging_service.logger.handlers:
            handler.flush()

        lines = _lines(config)
        assert lines[0]['logger'] == 'quicksight_export.services.cache_store'
        assert lines[0]['context'] == {'count': 2}
        assert lines[1]['level'] == 'WARNING'
        assert lines[1]['context'] == {'asset_id': 'd1'}

    def test_log_error_records_exception(self, logging_service, config):
        try:
            raise ValueError('bad value')
        except ValueError as e:
            logging_service.log_error('failed', error=e, context={'asset_id': 'd1'})
        for handler in logging_service.logger.handlers:
            handler.flush()

        line = _lines(config)[-1]
        assert line['context']['error_type'] == 'ValueError'
        assert line['context']['error_message'] == 'bad value'
        assert 'ValueError: bad value' in line['exception']

    def test_debug_filtered_at_info(self, logging_service, config):
        logging.getLogger('quicksight_export.services.comparison').debug('hidden')
        for handler in logging_service.logger.handlers:
            handler.flush()

        assert _lines(config) == []

    def test_verbose_lowers_level(self, config):
        service = LoggingService(config, console=False, verbose=True)
        try:
            assert service.logger.level == logging.DEBUG
        finally:
            service.close()

    def test_export_summary_records(self, logging_service, config):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        summary = ExportSummary(start_time=start, end_time=start + timedelta(seconds=1), summaries=[
            AssetTypeSummary(asset_type='dashboard', total_listed=2, total_processed=2, successful=2),
            AssetTypeSummary(asset_type='dataset', total_listed=1, total_processed=1, failed=1),
        ])

        logging_service.log_export_summary(summary, 'job-1')
        for handler in logging_service.logger.handlers:
            handler.flush()

        lines = _lines(config)
        assert [line['level'] for line in lines] == ['INFO', 'WARNING', 'INFO']
        assert lines[1]['context']['assetType'] == 'dataset'
        assert lines[2]['context']['jobId'] == 'job-1'
        assert lines[2]['context']['totals']['successful'] == 2

    def test_save_export_report(self, logging_service, tmp_path):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        summary = ExportSummary(
            start_time=start,
            end_time=start + timedelta(seconds=2),
            summaries=[AssetTypeSummary(asset_type='dataset', total_listed=4, total_processed=2,
                                        successful=1, failed=1, cached=2)],
        )

        path = logging_service.save_export_report(summary, str(tmp_path / 'out' / 'report.json'))

        with open(path, encoding='utf-8') as f:
            report = json.load(f)
        assert report['duration'] == 2000.0
        assert report['totals'] == {'listed': 4, 'processed': 2, 'successful': 1, 'cached': 2,
                                    'failed': 1, 'apiCalls': 0}
        assert report['successRate'] == 50.0
        assert report['assetTypes'][0]['assetType'] == 'dataset'

    def test_close_removes_handlers(self, config):
        service = LoggingService(config, console=True)
        assert service.logger.propagate is False

        service.close()

        assert service.logger.handlers == []
        assert service.logger.propagate is True
