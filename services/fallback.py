"""
Ordered query strategies with graceful degradation.

Composite indexes are not guaranteed to exist in every environment, so list
queries are expressed as a list of strategies, from the preferred indexed
query down to a full scan filtered in memory. Every strategy must return the
same records in the same order.
"""
from flask import current_app
from services.errors import OperationFailed


def newest_first(records):
    """Sort by creation time descending, newest id first on ties."""
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


def first_successful(strategies, label, errors=(Exception,), on_failure=None):
    """
    Run (name, callable) strategies in order and return the first result.

    `on_failure(exc)` is called after each failed tier (the data layer uses it
    to roll back the session). When every tier fails, OperationFailed is raised
    from the last error.
    """
    last_error = None
    for name, strategy in strategies:
        try:
            return strategy()
        except errors as e:
            last_error = e
            if on_failure is not None:
                on_failure(e)
            current_app.logger.warning("Query '%s' failed on tier '%s': %s", label, name, e)

    raise OperationFailed(f"Failed to load {label}") from last_error
