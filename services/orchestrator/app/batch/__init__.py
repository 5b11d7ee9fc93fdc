from .engine import MAX_CONCURRENCY, BatchResult, BatchScheduler

__all__ = ["MAX_CONCURRENCY", "BatchResult", "BatchScheduler"]
