import time
import logging
from functools import wraps
from typing import Callable, Any
from .config import settings

logger = logging.getLogger(__name__)

class PerformanceMetrics:
    """Simple performance metrics collector"""
    def __init__(self):
        self.metrics = {}

    def record_operation(self, operation: str, duration: float, success: bool = True):
        """Record operation metrics"""
        if operation not in self.metrics:
            self.metrics[operation] = {
                'count': 0,
                'total_time': 0,
                'failures': 0,
                'avg_time': 0
            }

        self.metrics[operation]['count'] += 1
        self.metrics[operation]['total_time'] += duration

        if not success:
            self.metrics[operation]['failures'] += 1

        self.metrics[operation]['avg_time'] = (
            self.metrics[operation]['total_time'] / self.metrics[operation]['count']
        )

    def get_metrics(self) -> dict:
        """Get current metrics"""
        return self.metrics.copy()

    def reset(self):
        self.metrics = {}

# Global metrics instance
performance_metrics = PerformanceMetrics()

def monitor_performance(operation_name: str = None):
    """Decorator to monitor async service operations"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            start_time = time.time()
            op_name = operation_name or f"{func.__module__}.{func.__name__}"

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                execution_time = time.time() - start_time
                performance_metrics.record_operation(op_name, execution_time, success=False)
                logger.warning(f"Operation failed: {op_name} after {execution_time:.2f}s - {str(e)}")
                raise

            execution_time = time.time() - start_time
            performance_metrics.record_operation(op_name, execution_time)
            if execution_time > settings.slow_operation_threshold:
                logger.warning(f"Slow operation detected: {op_name} took {execution_time:.2f}s")
            else:
                logger.debug(f"Operation completed: {op_name} in {execution_time:.2f}s")
            return result

        return async_wrapper

    return decorator
