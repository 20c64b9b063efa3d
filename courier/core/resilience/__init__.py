from .backoff import BackoffPolicy

__all__ = ["BackoffPolicy"]
