from .notifier import UpdateNotifier

__all__ = ["UpdateNotifier"]
