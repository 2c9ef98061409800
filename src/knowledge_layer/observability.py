"""Observability utilities for the knowledge layer.

Provides rotating file logging for hosts that want it, in-process timing
metrics, and operation tracing with correlation IDs.
"""
import functools
import inspect
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

# Package logger every module logger hangs off
ROOT_LOGGER_NAME = "knowledge_layer"

DEFAULT_LOG_DIR = Path.home() / ".knowledge-layer" / "logs"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Arguments worth echoing in trace lines
_TRACE_ARGS = ("note_id", "title", "query", "direction", "path_override")

F = TypeVar('F', bound=Callable[..., Any])

_logging_configured = False


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB per file
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Configure persistent file logging with rotation.

    The library never calls this itself; the host process decides whether
    the knowledge layer logs to disk.

    Args:
        log_dir: Directory for log files. Defaults to ~/.knowledge-layer/logs/
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation (default: 10 MB)
        backup_count: Number of rotated files to keep (default: 5)
        console: Also log to console (default: True)

    Returns:
        Path to the log directory
    """
    global _logging_configured

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "knowledge-layer.log"
    if not any(
        isinstance(h, RotatingFileHandler)
        and Path(h.baseFilename) == log_file.resolve()
        for h in root_logger.handlers
    ):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in root_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    _logging_configured = True
    root_logger.info(f"Logging configured: {log_file} (max {max_bytes} bytes, {backup_count} backups)")

    return log_path


def is_logging_configured() -> bool:
    """Check if file logging has been configured."""
    return _logging_configured


@dataclass
class OperationMetrics:
    """Timing and outcome counters for one operation name."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: Optional[float] = None
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count else 0.0

    def snapshot(self) -> Dict[str, Any]:
        return {
            'count': self.count,
            'success_count': self.success_count,
            'error_count': self.error_count,
            'success_rate': self.success_count / self.count if self.count else 0,
            'avg_duration_ms': round(self.avg_duration_ms, 2),
            'min_duration_ms': round(self.min_duration_ms or 0.0, 2),
            'max_duration_ms': round(self.max_duration_ms, 2),
            'last_error': self.last_error,
            'last_error_time': (
                self.last_error_time.isoformat() if self.last_error_time else None
            ),
        }


class MetricsCollector:
    """Thread-safe in-memory metrics for knowledge operations.

    Tracks timing and success/failure per operation name
    (create_note, search, scan_and_index_vault, ...). Read through
    KnowledgeService.get_status().
    """

    def __init__(self):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Record one completed operation."""
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            if m.min_duration_ms is None or duration_ms < m.min_duration_ms:
                m.min_duration_ms = duration_ms
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)

            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error
                m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every tracked operation, keyed by name."""
        with self._lock:
            return {op: m.snapshot() for op, m in self._metrics.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across all operations."""
        with self._lock:
            tracked = list(self._metrics.values())
            total = sum(m.count for m in tracked)
            succeeded = sum(m.success_count for m in tracked)
            slowest = max(
                self._metrics.items(),
                key=lambda item: item[1].avg_duration_ms,
                default=(None, None),
            )[0]
            return {
                'uptime_seconds': (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                'total_operations': total,
                'total_success': succeeded,
                'total_errors': total - succeeded,
                'overall_success_rate': succeeded / total if total else 1.0,
                'operations_tracked': sorted(self._metrics),
                'slowest_operation': slowest,
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._metrics.clear()
            self._start_time = datetime.now(timezone.utc)


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Context manager for timing and logging operations.

    Yields:
        A dictionary where the caller can store result info.

    Example:
        with timed_operation('search', query='rust') as op:
            results = index.search('rust')
            op['result_count'] = len(results)
    """
    correlation_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {'correlation_id': correlation_id}

    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    success = True

    try:
        yield result_info
    except Exception as e:
        success = False
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, duration_ms, success, error_msg)

        result_str = ', '.join(f'{k}={v}' for k, v in result_info.items() if k != 'correlation_id')
        status = 'OK' if success else f'ERROR: {error_msg}'
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {result_str}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator for automatic operation tracing.

    Times the call, records metrics and logs start/end with a correlation
    ID. Identifying arguments (note_id, title, query, ...) are picked up
    whether they were passed by position or by keyword.

    Example:
        @traced('create_note')
        def create_note(self, title: str, content: str = "") -> Note:
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context = {}
            try:
                bound = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                bound = kwargs
            for name in _TRACE_ARGS:
                value = bound.get(name)
                if value is not None:
                    context[name] = str(value)[:50]

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple)):
                    op['result_count'] = len(result)
                elif result is not None:
                    op['has_result'] = True
                return result

        return wrapper  # type: ignore
    return decorator
