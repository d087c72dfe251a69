import math
import time
from datetime import timezone

ACTIVE_STATUSES = ('available', 'claimed', 'on_the_way')
COMPLETED_STATUSES = ('completed', 'picked_up')
CANCELLED_STATUSES = ('cancelled',)


def round_half_up(value):
    return int(math.floor(value + 0.5))


def meals_for(category, quantity):
    """
    Estimated meals for a quantity of food. Fixed policy per category,
    not derived from the data.
    """
    quantity = quantity or 0
    key = (category or '').lower()
    if key in ('cooked food', 'prepared meals'):
        return quantity * 1
    if key in ('raw ingredients', 'vegetables', 'fruits'):
        return math.floor(quantity * 0.5)
    if key in ('packaged food', 'canned goods'):
        return math.floor(quantity * 2)
    return math.floor(quantity * 1.5)


def month_start(now, tz=None):
    """
    First instant of the month containing `now` (naive UTC) on the clock of
    `tz`, returned as naive UTC. No zone means UTC.
    """
    if tz is None:
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    local = now.replace(tzinfo=timezone.utc).astimezone(tz)
    first = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return first.astimezone(timezone.utc).replace(tzinfo=None)


def compute_statistics(donations, users, now, tz=None):
    """
    Platform-wide counts over the full record sets.
    `users` is None when the user scan was not possible; user counts are 0 then.
    """
    total = len(donations)
    completed = [d for d in donations if d.status in COMPLETED_STATUSES]
    active_count = sum(1 for d in donations if d.status in ACTIVE_STATUSES)
    cancelled_count = sum(1 for d in donations if d.status in CANCELLED_STATUSES)

    total_quantity = sum(d.quantity or 0 for d in completed)
    total_meals = sum(meals_for(d.category, d.quantity) for d in completed)

    first_of_month = month_start(now, tz)
    this_month_donations = sum(1 for d in donations if d.created_at and d.created_at >= first_of_month)

    users = users if users is not None else []
    ngos = [u for u in users if u.role == 'ngo']

    return {
        'total_donations': total,
        'active_donations': active_count,
        'completed_donations': len(completed),
        'cancelled_donations': cancelled_count,
        'registered_users': len(users),
        'registered_ngos': len(ngos),
        'verified_ngos': sum(1 for u in ngos if u.is_verified),
        'total_meals_served': total_meals,
        'total_quantity_donated': total_quantity,
        'success_rate': round_half_up(len(completed) / total * 100) if total else 0,
        'average_donation_size': round_half_up(total_quantity / len(completed)) if completed else 0,
        'this_month_donations': this_month_donations,
        'this_month_users': sum(1 for u in users if u.created_at and u.created_at >= first_of_month)
    }


def donor_stats(donations):
    """Profile numbers for one donor, `donations` newest first."""
    completed = [d for d in donations if d.status in COMPLETED_STATUSES]
    return {
        'total_donations': len(donations),
        'active_donations': sum(1 for d in donations if d.status in ACTIVE_STATUSES),
        'completed_donations': len(completed),
        'cancelled_donations': sum(1 for d in donations if d.status in CANCELLED_STATUSES),
        'total_quantity_donated': sum(d.quantity or 0 for d in completed),
        'total_meals_shared': sum(meals_for(d.category, d.quantity) for d in completed),
        'ngo_partners_count': len({d.claimed_by for d in donations if d.claimed_by}),
        'recent_donations': [d.to_dict() for d in donations[:5]]
    }


def ngo_stats(claims):
    """Profile numbers for one NGO, `claims` newest first."""
    completed = [d for d in claims if d.status in COMPLETED_STATUSES]
    return {
        'total_claims': len(claims),
        'active_claims': sum(1 for d in claims if d.status in ('claimed', 'on_the_way')),
        'completed_claims': len(completed),
        'total_quantity_received': sum(d.quantity or 0 for d in completed),
        'total_meals_received': sum(meals_for(d.category, d.quantity) for d in completed),
        'donor_partners_count': len({d.donor_id for d in claims}),
        'recent_claims': [d.to_dict() for d in claims[:5]]
    }


class StatisticsCache:
    """
    Time-bounded holder for the last computed statistics.

    `invalidate()` expires the entry so the next read recomputes, but the data
    is kept as the stale fallback returned when recomputation fails.
    """

    def __init__(self, ttl=60, clock=time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._data = None
        self._stored_at = None

    def get(self, now_fn=None):
        if self._data is None or self._stored_at is None:
            return None
        now = (now_fn or self.clock)()
        if now - self._stored_at >= self.ttl:
            return None
        return self._data

    def put(self, data):
        self._data = data
        self._stored_at = self.clock()

    def invalidate(self):
        self._stored_at = None

    def last_good(self):
        return self._data
