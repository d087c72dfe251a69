"""
Donation data access.

Reads go through ordered fallback strategies so they keep working where the
composite (field, created_at) indexes are missing. Writes invalidate the
statistics cache. Notifications and history are secondary effects.
"""
import time
from zoneinfo import ZoneInfo
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from extensions import db
from models import Donation, Notification, StatusHistory, User, utcnow
from services.effects import fire_and_forget
from services.errors import NotFound, OperationFailed, TransitionError, ValidationError
from services.fallback import first_successful, newest_first
from services.notifications import notify_all_ngos, notify_donor_of_status
from services.stats import compute_statistics

# Columns a caller may change through update_donation()
UPDATABLE_FIELDS = {
    column.name for column in Donation.__table__.columns
} - {'id', 'donor_id', 'created_at', 'updated_at'}


def _rollback(_error):
    db.session.rollback()


def _stats_cache():
    return current_app.extensions['stats_cache']


def clear_statistics_cache():
    _stats_cache().invalidate()


# ==========================================
#  1. WRITES
# ==========================================
def create_donation(fields):
    """Persist a new donation and announce it to every NGO."""
    now = utcnow()
    donation = Donation(**fields)
    donation.created_at = now
    donation.updated_at = now

    try:
        db.session.add(donation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise OperationFailed('Failed to create donation') from e

    clear_statistics_cache()

    donation_id = donation.id
    food_name, quantity, unit, donor_name = (
        donation.food_name, donation.quantity, donation.quantity_unit, donation.donor_name
    )
    fire_and_forget(
        lambda: notify_all_ngos(donation_id, food_name, quantity, unit, donor_name),
        label='new-donation-fanout'
    )
    return donation


def update_donation(donation_id, updates):
    """Merge `updates` into the donation. Last writer wins."""
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError({field: 'Unknown field' for field in sorted(unknown)})

    donation = db.session.get(Donation, donation_id)
    if not donation:
        raise NotFound('Donation not found')

    for field, value in updates.items():
        setattr(donation, field, value)
    donation.updated_at = utcnow()

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise OperationFailed('Failed to update donation') from e

    clear_statistics_cache()
    return donation


def delete_donation(donation_id):
    """Only never-claimed, still available donations are physically removed."""
    donation = db.session.get(Donation, donation_id)
    if not donation:
        raise NotFound('Donation not found')
    if donation.status != 'available' or donation.claimed_by is not None:
        raise TransitionError('Cannot delete. This item has already been claimed or closed.')

    try:
        StatusHistory.query.filter_by(donation_id=donation_id).delete()
        Notification.query.filter_by(related_donation_id=donation_id)\
            .update({"related_donation_id": None})
        db.session.delete(donation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise OperationFailed('Failed to delete donation') from e

    clear_statistics_cache()


def add_status_history(donation_id, status, actor_id, actor_name, notes=''):
    entry = StatusHistory(
        donation_id=donation_id,
        status=status,
        updated_by=actor_id,
        updated_by_name=actor_name,
        notes=notes,
        created_at=utcnow()
    )
    db.session.add(entry)
    db.session.commit()
    return entry


def update_donation_status_and_notify(donation_id, new_status, actor_id, actor_name, notes=''):
    """
    Write the new status, then append history and notify the donor.
    Only the status write can fail the call.
    """
    donation = update_donation(donation_id, {'status': new_status})

    donor_id, food_name = donation.donor_id, donation.food_name
    fire_and_forget(
        lambda: add_status_history(donation_id, new_status, actor_id, actor_name,
                                   notes or f"Status updated to {new_status}"),
        lambda: notify_donor_of_status(donor_id, donation_id, food_name, new_status, actor_name),
        label='status-change'
    )
    return donation


# ==========================================
#  2. READS (Three-tier fallback)
# ==========================================
def _ordered_query(field, value):
    column = getattr(Donation, field)
    return Donation.query.filter(column == value)\
        .order_by(Donation.created_at.desc(), Donation.id.desc()).all()


def _unordered_query(field, value):
    column = getattr(Donation, field)
    return newest_first(Donation.query.filter(column == value).all())


def _scan_query(field, value):
    return newest_first([d for d in Donation.query.all() if getattr(d, field) == value])


def _donations_where(field, value, label):
    return first_successful([
        ('ordered', lambda: _ordered_query(field, value)),
        ('unordered', lambda: _unordered_query(field, value)),
        ('scan', lambda: _scan_query(field, value)),
    ], label=label, errors=(SQLAlchemyError,), on_failure=_rollback)


def get_available_donations():
    return _donations_where('status', 'available', 'available donations')


def get_donations_by_claimer(user_id):
    return _donations_where('claimed_by', user_id, 'claimed donations')


def get_donations_by_donor(donor_id):
    return _donations_where('donor_id', donor_id, 'donor donations')


def get_donations_by_status(status):
    return _donations_where('status', status, f'{status} donations')


def get_all_donations():
    return first_successful([
        ('ordered', lambda: Donation.query.order_by(Donation.created_at.desc(), Donation.id.desc()).all()),
        ('scan', lambda: newest_first(Donation.query.all())),
    ], label='all donations', errors=(SQLAlchemyError,), on_failure=_rollback)


def get_donation(donation_id):
    donation = db.session.get(Donation, donation_id)
    if not donation:
        raise NotFound('Donation not found')
    return donation


def get_status_history(donation_id):
    return first_successful([
        ('ordered', lambda: StatusHistory.query.filter_by(donation_id=donation_id)
            .order_by(StatusHistory.created_at.desc(), StatusHistory.id.desc()).all()),
        ('unordered', lambda: newest_first(StatusHistory.query.filter_by(donation_id=donation_id).all())),
    ], label='status history', errors=(SQLAlchemyError,), on_failure=_rollback)


# ==========================================
#  3. STATISTICS
# ==========================================
def _stats_timezone():
    """Zone whose calendar month bounds the "this month" counts."""
    name = current_app.config.get('STATS_TIMEZONE') or 'UTC'
    return None if name == 'UTC' else ZoneInfo(name)


def _all_users():
    """Best effort: a failed user scan must not sink donation statistics."""
    try:
        return User.query.all()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.warning("User scan for statistics failed: %s", e)
        return None


def get_statistics(use_cache=True):
    cache = _stats_cache()
    if use_cache:
        cached = cache.get()
        if cached is not None:
            return cached

    started = time.perf_counter()
    try:
        donations = get_all_donations()
    except OperationFailed as e:
        stale = cache.last_good()
        if stale is not None:
            current_app.logger.warning("Serving stale statistics: %s", e)
            return dict(stale, is_stale=True, error=str(e))
        raise

    stats = compute_statistics(donations, _all_users(), now=utcnow(), tz=_stats_timezone())
    stats['is_stale'] = False
    stats['query_duration_ms'] = round((time.perf_counter() - started) * 1000, 2)
    cache.put(stats)
    return stats
