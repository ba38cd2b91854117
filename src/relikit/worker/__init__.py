from .queue_worker import QueueState, QueueStats, QueueWorker, run_with_retry

__all__ = ["QueueState", "QueueStats", "QueueWorker", "run_with_retry"]
