"""
Logging and fetch timing for certificate chain checks.

Library modules only ask for ``logging.getLogger(__name__)``. Programs that
embed the checker call ``LoggingService(config)`` once to attach handlers to
the ``tlsexpiry`` logger, and pass ``logging_service.performance_monitor`` to
``ChainFetcherService`` to have every fetch timed.
"""
import json
import logging
import logging.handlers
import sys
import threading
import time
import traceback
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, asdict, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List


PACKAGE_LOGGER = 'tlsexpiry'


@dataclass
class LogEntry:
    """Structured log entry for JSON logging."""
    timestamp: str
    level: str
    logger_name: str
    message: str
    function: str
    line_number: int
    thread_id: int
    address: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None
    exception_info: Optional[Dict[str, Any]] = None


@dataclass
class PerformanceMetric:
    """Timing of one measured operation, usually a chain fetch."""
    operation: str
    started_at: datetime
    duration_ms: float
    success: bool
    address: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    extra_data: Dict[str, Any] = field(default_factory=dict)


class JSONFormatter(logging.Formatter):
    """One JSON object per record; the target address is lifted out of ``extra_data``."""

    def format(self, record: logging.LogRecord) -> str:
        extra_data = dict(getattr(record, 'extra_data', None) or {})

        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            function=record.funcName,
            line_number=record.lineno,
            thread_id=record.thread,
            address=extra_data.pop('address', None),
            extra_data=extra_data or None
        )

        if record.exc_info and record.exc_info[0]:
            exc_type, exc_value, _ = record.exc_info
            log_entry.exception_info = {
                'type': exc_type.__name__,
                'message': str(exc_value),
                'address': getattr(exc_value, 'address', None),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(asdict(log_entry), default=str)


class PerformanceMonitor:
    """Thread-safe store of the most recent operation timings."""

    def __init__(self, max_metrics: int = 1000):
        self.metrics = deque(maxlen=max_metrics)
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def measure_operation(self, operation: str, extra_data: Optional[Dict[str, Any]] = None):
        """Time the enclosed block and record whether it raised."""
        extra_data = dict(extra_data or {})
        metric = PerformanceMetric(
            operation=operation,
            started_at=datetime.now(),
            duration_ms=0.0,
            success=True,
            address=extra_data.pop('address', None),
            extra_data=extra_data
        )
        start = time.perf_counter()

        try:
            yield metric
        except Exception as e:
            metric.success = False
            metric.error_type = type(e).__name__
            metric.error_message = str(e)
            raise
        finally:
            metric.duration_ms = (time.perf_counter() - start) * 1000

            with self.lock:
                self.metrics.append(metric)

            self.logger.debug(
                f"{operation} took {metric.duration_ms:.1f} ms (success={metric.success})",
                extra={'extra_data': asdict(metric)}
            )

    def get_metrics(self, operation: Optional[str] = None,
                    since: Optional[datetime] = None) -> List[PerformanceMetric]:
        """Recorded metrics, optionally limited to one operation or a start time."""
        with self.lock:
            metrics = list(self.metrics)

        return [
            m for m in metrics
            if (operation is None or m.operation == operation)
            and (since is None or m.started_at >= since)
        ]

    def get_operation_stats(self, operation: str) -> Dict[str, Any]:
        """Call counts, failure breakdown and durations for one operation."""
        metrics = self.get_metrics(operation=operation)

        if not metrics:
            return {}

        durations = [m.duration_ms for m in metrics]
        failures = [m for m in metrics if not m.success]
        failures_by_type: Dict[str, int] = {}
        for m in failures:
            failures_by_type[m.error_type] = failures_by_type.get(m.error_type, 0) + 1

        return {
            'operation': operation,
            'total_calls': len(metrics),
            'success_count': len(metrics) - len(failures),
            'failure_count': len(failures),
            'failures_by_type': failures_by_type,
            'avg_duration_ms': sum(durations) / len(durations),
            'max_duration_ms': max(durations),
            'addresses': sorted({m.address for m in metrics if m.address})
        }


class LoggingService:
    """Attaches file and console handlers to the package logger and owns the fetch monitor."""

    def __init__(self, config):
        self.config = config
        self.performance_monitor = PerformanceMonitor()
        self._setup_logging()
        self.logger = logging.getLogger(__name__)
        self.logger.info("Logging service initialized")

    def _setup_logging(self):
        log_path = Path(self.config.log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        package_logger = logging.getLogger(PACKAGE_LOGGER)
        for handler in package_logger.handlers[:]:
            package_logger.removeHandler(handler)
            handler.close()

        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        package_logger.setLevel(log_level)
        # Handlers live here, so records must not reach root handlers twice
        package_logger.propagate = False

        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(JSONFormatter())

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

        package_logger.addHandler(file_handler)
        package_logger.addHandler(console_handler)

    def measure_performance(self, operation: str, extra_data: Optional[Dict[str, Any]] = None):
        """Get performance measurement context manager."""
        return self.performance_monitor.measure_operation(operation, extra_data)

    def get_performance_stats(self, operation: Optional[str] = None) -> Dict[str, Any]:
        """Stats for one operation, or a mapping of every recorded operation to its stats."""
        if operation:
            return self.performance_monitor.get_operation_stats(operation)

        operations = {m.operation for m in self.performance_monitor.get_metrics()}
        return {op: self.performance_monitor.get_operation_stats(op) for op in operations}
