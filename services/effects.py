"""
Fire-and-forget secondary writes (notifications, history, emails).

The caller's primary write has already committed when these run. Failures are
logged and never reach the caller.
"""
import uuid
from flask import current_app
from extensions import db, scheduler


def _run_safely(effect, label):
    try:
        effect()
    except Exception as e:
        db.session.rollback()
        current_app.logger.warning("Secondary effect '%s' failed: %s", label, e)


def _run_in_context(app, effects, label):
    with app.app_context():
        for effect in effects:
            _run_safely(effect, label)


def fire_and_forget(*effects, label='side-effect'):
    """
    Schedule each effect (a no-argument callable) and return immediately.

    With the scheduler running they go to its thread pool as one-shot jobs;
    otherwise, or with SIDE_EFFECTS_INLINE, they run in place.
    """
    app = current_app._get_current_object()

    if app.config.get('SIDE_EFFECTS_INLINE') or not scheduler.running:
        for effect in effects:
            _run_safely(effect, label)
        return

    scheduler.add_job(
        f"{label}-{uuid.uuid4().hex}",
        _run_in_context,
        trigger='date',
        args=[app, list(effects), label]
    )
