from .engine import PageRetryOrchestrator, PageRun

__all__ = ["PageRetryOrchestrator", "PageRun"]
