"""
Tests for the logging and performance monitoring service.
"""
import json
import logging
import os
import shutil
import sys
import tempfile
import time
import unittest
from datetime import datetime, timedelta

from tlsexpiry.models.config import Config
from tlsexpiry.models.errors import AddressError
from tlsexpiry.services.chain_fetcher import ChainFetcherService
from tlsexpiry.services.logging_service import (
    LoggingService, JSONFormatter, PerformanceMonitor
)

from tls_test_server import unused_local_address


class TestJSONFormatter(unittest.TestCase):
    """Test JSON formatter for structured logging."""

    def setUp(self):
        """Set up test fixtures."""
        self.formatter = JSONFormatter()

    def _make_record(self, level=logging.INFO, msg='Test message', exc_info=None):
        logger = logging.getLogger('test')
        return logger.makeRecord(
            name='tlsexpiry.services.chain_fetcher',
            level=level,
            fn='chain_fetcher.py',
            lno=42,
            msg=msg,
            args=(),
            exc_info=exc_info
        )

    def test_format_basic_log_record(self):
        """Test formatting a basic log record."""
        log_data = json.loads(self.formatter.format(self._make_record()))

        self.assertIn('timestamp', log_data)
        self.assertEqual(log_data['level'], 'INFO')
        self.assertEqual(log_data['logger_name'], 'tlsexpiry.services.chain_fetcher')
        self.assertEqual(log_data['message'], 'Test message')
        self.assertEqual(log_data['line_number'], 42)
        self.assertIsInstance(log_data['thread_id'], int)
        self.assertIsNone(log_data['address'])
        self.assertIsNone(log_data['extra_data'])
        self.assertIsNone(log_data['exception_info'])

    def test_format_log_record_with_exception(self):
        """Test that a fetch error's address is carried into the exception info."""
        try:
            raise AddressError("127.0.0.1:9", "Could not establish connection to outbound address 127.0.0.1:9")
        except AddressError:
            record = self._make_record(logging.ERROR, 'Fetch failed', sys.exc_info())

        log_data = json.loads(self.formatter.format(record))

        self.assertEqual(log_data['exception_info']['type'], 'AddressError')
        self.assertEqual(log_data['exception_info']['address'], '127.0.0.1:9')
        self.assertIsInstance(log_data['exception_info']['traceback'], list)

    def test_format_log_record_with_extra_data(self):
        """Test that the address is lifted out of the extra data."""
        record = self._make_record()
        record.extra_data = {'address': '127.0.0.1:9000', 'chain_length': 2}

        log_data = json.loads(self.formatter.format(record))

        self.assertEqual(log_data['address'], '127.0.0.1:9000')
        self.assertEqual(log_data['extra_data'], {'chain_length': 2})
        self.assertEqual(record.extra_data['address'], '127.0.0.1:9000')


class TestPerformanceMonitor(unittest.TestCase):
    """Test performance monitoring functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.monitor = PerformanceMonitor()

    def test_measure_operation_success(self):
        """Test measuring a successful operation."""
        with self.monitor.measure_operation('fetch_chain', {'address': 'example.com:443', 'attempt': 1}):
            time.sleep(0.01)

        metrics = self.monitor.get_metrics()
        self.assertEqual(len(metrics), 1)

        metric = metrics[0]
        self.assertEqual(metric.operation, 'fetch_chain')
        self.assertTrue(metric.success)
        self.assertIsNone(metric.error_type)
        self.assertGreater(metric.duration_ms, 0)
        self.assertEqual(metric.address, 'example.com:443')
        self.assertEqual(metric.extra_data, {'attempt': 1})

    def test_measure_operation_failure(self):
        """Test measuring a failed operation."""
        with self.assertRaises(AddressError):
            with self.monitor.measure_operation('fetch_chain'):
                raise AddressError('example.com:443', 'connection refused')

        metric = self.monitor.get_metrics()[0]
        self.assertFalse(metric.success)
        self.assertEqual(metric.error_type, 'AddressError')
        self.assertEqual(metric.error_message, 'connection refused')

    def test_get_operation_stats(self):
        """Test getting operation statistics."""
        with self.monitor.measure_operation('fetch_chain', {'address': 'b.example:443'}):
            time.sleep(0.001)

        with self.monitor.measure_operation('fetch_chain', {'address': 'a.example:443'}):
            time.sleep(0.002)

        try:
            with self.monitor.measure_operation('fetch_chain', {'address': 'a.example:443'}):
                raise ValueError("Test error")
        except ValueError:
            pass

        stats = self.monitor.get_operation_stats('fetch_chain')

        self.assertEqual(stats['total_calls'], 3)
        self.assertEqual(stats['success_count'], 2)
        self.assertEqual(stats['failure_count'], 1)
        self.assertEqual(stats['failures_by_type'], {'ValueError': 1})
        self.assertEqual(stats['addresses'], ['a.example:443', 'b.example:443'])
        self.assertGreater(stats['avg_duration_ms'], 0)
        self.assertGreaterEqual(stats['max_duration_ms'], stats['avg_duration_ms'])

    def test_get_operation_stats_unknown(self):
        self.assertEqual(self.monitor.get_operation_stats('missing'), {})

    def test_get_metrics_filtered(self):
        with self.monitor.measure_operation('fetch_chain'):
            pass
        with self.monitor.measure_operation('other'):
            pass

        self.assertEqual(len(self.monitor.get_metrics(operation='fetch_chain')), 1)
        self.assertEqual(len(self.monitor.get_metrics(since=datetime.now() + timedelta(hours=1))), 0)

    def test_keeps_most_recent_metrics(self):
        monitor = PerformanceMonitor(max_metrics=2)

        for address in ('a:1', 'b:1', 'c:1'):
            with monitor.measure_operation('fetch_chain', {'address': address}):
                pass

        self.assertEqual([m.address for m in monitor.get_metrics()], ['b:1', 'c:1'])


class TestLoggingService(unittest.TestCase):
    """Test logging service setup."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.package_logger = logging.getLogger('tlsexpiry')
        self.saved_handlers = self.package_logger.handlers[:]
        self.saved_level = self.package_logger.level
        self.saved_propagate = self.package_logger.propagate
        self.root_handlers = logging.getLogger().handlers[:]

        self.config = Config(
            log_level="INFO",
            log_file_path=os.path.join(self.temp_dir, "logs", "test.log")
        )
        self.logging_service = LoggingService(self.config)

    def tearDown(self):
        """Restore the package logger and remove log files."""
        for handler in self.package_logger.handlers[:]:
            self.package_logger.removeHandler(handler)
            handler.close()
        for handler in self.saved_handlers:
            self.package_logger.addHandler(handler)
        self.package_logger.setLevel(self.saved_level)
        self.package_logger.propagate = self.saved_propagate
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _read_log_entries(self):
        for handler in self.package_logger.handlers:
            handler.flush()
        with open(self.config.log_file_path, 'r', encoding='utf-8') as f:
            return [json.loads(line) for line in f if line.strip()]

    def test_initialization(self):
        """Test logging service initialization."""
        self.assertIsNotNone(self.logging_service.performance_monitor)
        self.assertTrue(os.path.exists(self.config.log_file_path))
        self.assertEqual(self.package_logger.level, logging.INFO)
        self.assertFalse(self.package_logger.propagate)
        self.assertEqual(len(self.package_logger.handlers), 2)

    def test_root_logger_untouched(self):
        self.assertEqual(logging.getLogger().handlers, self.root_handlers)

    def test_reinitialization_replaces_handlers(self):
        LoggingService(self.config)
        self.assertEqual(len(self.package_logger.handlers), 2)

    def test_package_records_written_as_json(self):
        logging.getLogger('tlsexpiry.services.chain_fetcher').warning(
            "Certificate expires soon", extra={'extra_data': {'address': 'example.com:443'}}
        )

        entry = next(e for e in self._read_log_entries() if e['message'] == 'Certificate expires soon')
        self.assertEqual(entry['level'], 'WARNING')
        self.assertEqual(entry['address'], 'example.com:443')

    def test_measure_performance(self):
        """Test performance measurement."""
        with self.logging_service.measure_performance('fetch_chain', {'address': 'example.com:443'}):
            time.sleep(0.01)

        stats = self.logging_service.get_performance_stats('fetch_chain')

        self.assertEqual(stats['total_calls'], 1)
        self.assertEqual(stats['success_count'], 1)

        all_stats = self.logging_service.get_performance_stats()
        self.assertIn('fetch_chain', all_stats)

    def test_fetches_recorded_through_fetcher(self):
        """Test that a fetcher built on the service's monitor fills its stats and log file."""
        fetcher = ChainFetcherService(self.config, self.logging_service.performance_monitor)
        address = unused_local_address()

        with self.assertRaises(AddressError):
            fetcher.fetch_chain(address)

        stats = self.logging_service.get_performance_stats('fetch_chain')
        self.assertEqual(stats['total_calls'], 1)
        self.assertEqual(stats['failure_count'], 1)
        self.assertEqual(stats['failures_by_type'], {'AddressError': 1})
        self.assertEqual(stats['addresses'], [address])

        errors = [e for e in self._read_log_entries() if e['level'] == 'ERROR']
        self.assertEqual(len(errors), 1)
        self.assertTrue(errors[0]['message'].startswith("Failed to fetch certificate chain"))
        self.assertEqual(errors[0]['logger_name'], 'tlsexpiry.services.chain_fetcher')


if __name__ == '__main__':
    unittest.main()
