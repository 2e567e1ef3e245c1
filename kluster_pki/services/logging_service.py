"""
Logging and timing service for certificate reconciliation.
"""
import json
import logging
import logging.handlers
import statistics
import sys
import time
import traceback
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import Deque, Dict, Any, Optional, List, Iterable
from dataclasses import dataclass, asdict
from contextlib import contextmanager
import threading


@dataclass
class LogEntry:
    """Structured log entry for JSON logging."""
    timestamp: str
    level: str
    logger_name: str
    message: str
    module: str
    function: str
    line_number: int
    thread_id: int
    process_id: int
    extra_data: Optional[Dict[str, Any]] = None
    exception_info: Optional[Dict[str, Any]] = None


@dataclass
class PerformanceMetric:
    """Duration and outcome of one timed operation."""
    operation: str
    duration_ms: float
    finished_at: datetime
    success: bool
    error_message: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['finished_at'] = self.finished_at.isoformat()
        return data


class JSONFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            module=record.module,
            function=record.funcName,
            line_number=record.lineno,
            thread_id=record.thread,
            process_id=record.process,
            extra_data=getattr(record, 'extra_data', None)
        )

        if record.exc_info:
            log_entry.exception_info = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(asdict(log_entry), default=str)


class PerformanceMonitor:
    """Keeps the most recent timings of ensure runs and credential issuance."""

    def __init__(self, max_metrics: int = 1000):
        self._metrics: Deque[PerformanceMetric] = deque(maxlen=max_metrics)
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def measure_operation(self, operation: str, extra_data: Optional[Dict[str, Any]] = None):
        """Time the wrapped block; a raised exception is recorded and re-raised."""
        started = time.perf_counter()
        error = None
        try:
            yield
        except Exception as e:
            error = e
            raise
        finally:
            self.record(PerformanceMetric(
                operation=operation,
                duration_ms=(time.perf_counter() - started) * 1000,
                finished_at=datetime.now(),
                success=error is None,
                error_message=str(error) if error is not None else None,
                extra_data=extra_data,
            ))

    def record(self, metric: PerformanceMetric) -> None:
        with self._lock:
            self._metrics.append(metric)
        level = logging.DEBUG if metric.success else logging.WARNING
        self.logger.log(level, f"{metric.operation} took {metric.duration_ms:.1f} ms",
                        extra={'extra_data': metric.to_dict()})

    def get_metrics(self, operation: Optional[str] = None,
                    since: Optional[datetime] = None) -> List[PerformanceMetric]:
        with self._lock:
            metrics = list(self._metrics)
        return [
            m for m in metrics
            if (operation is None or m.operation == operation)
            and (since is None or m.finished_at >= since)
        ]

    def operations(self) -> List[str]:
        return sorted({m.operation for m in self.get_metrics()})

    def get_operation_stats(self, operation: str) -> Dict[str, Any]:
        metrics = self.get_metrics(operation=operation)
        if not metrics:
            return {}

        durations = [m.duration_ms for m in metrics]
        failures = sum(1 for m in metrics if not m.success)
        return {
            'operation': operation,
            'total_calls': len(metrics),
            'success_count': len(metrics) - failures,
            'failure_count': failures,
            'success_rate': (len(metrics) - failures) / len(metrics),
            'avg_duration_ms': statistics.mean(durations),
            'median_duration_ms': statistics.median(durations),
            'max_duration_ms': max(durations),
        }


class LoggingService:
    """Configures application logging and exposes timing helpers."""

    def __init__(self, config, console: bool = True):
        """
        Initialize logging service with configuration.

        Args:
            config: Config providing ``log_level`` and ``log_file_path``
            console: Also log to stdout
        """
        self.config = config
        self.console = console
        self.performance_monitor = PerformanceMonitor()
        self._setup_logging()
        self.logger = logging.getLogger(__name__)
        self.logger.info("Logging service initialized")

    def _setup_logging(self):
        log_dir = Path(self.config.log_file_path).parent
        log_dir.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        root_logger.setLevel(log_level)

        json_formatter = JSONFormatter()

        file_handler = logging.handlers.RotatingFileHandler(
            filename=self.config.log_file_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(json_formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

        # errors only, kept apart for alerting
        error_log_path = str(Path(self.config.log_file_path).with_suffix('.errors.log'))
        error_handler = logging.handlers.RotatingFileHandler(
            filename=error_log_path,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setFormatter(json_formatter)
        error_handler.setLevel(logging.ERROR)
        root_logger.addHandler(error_handler)

        if self.console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
            console_handler.setLevel(log_level)
            root_logger.addHandler(console_handler)

    def log_with_context(self, level: str, message: str, **context):
        """Log message with additional context data."""
        logger = logging.getLogger('kluster_pki')
        log_method = getattr(logger, level.lower(), logger.info)
        log_method(message, extra={'extra_data': context})

    def log_cert_updates(self, cluster_name: str, updates: Iterable) -> None:
        """Write one structured entry per created or rotated certificate."""
        for update in updates:
            self.log_with_context('info', f"Cluster {cluster_name}: {update}",
                                  cluster=cluster_name, **update.to_dict())

    def measure_performance(self, operation: str, extra_data: Optional[Dict[str, Any]] = None):
        """Get performance measurement context manager."""
        return self.performance_monitor.measure_operation(operation, extra_data)

    def get_performance_stats(self, operation: Optional[str] = None) -> Dict[str, Any]:
        if operation:
            return self.performance_monitor.get_operation_stats(operation)

        return {
            op: self.performance_monitor.get_operation_stats(op)
            for op in self.performance_monitor.operations()
        }

    def get_health_status(self) -> Dict[str, Any]:
        """Summarize the operations timed during the last hour."""
        recent_metrics = self.performance_monitor.get_metrics(
            since=datetime.now() - timedelta(hours=1)
        )
        return {
            'status': 'healthy',
            'recent_operations': len(recent_metrics),
            'recent_failures': sum(1 for m in recent_metrics if not m.success),
            'failed_operations': sorted({m.operation for m in recent_metrics if not m.success}),
            'timestamp': datetime.now().isoformat()
        }
