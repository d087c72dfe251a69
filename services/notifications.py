from datetime import timedelta
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from extensions import db, socketio
from models import Notification, Donation, User, utcnow
from services.errors import NotFound, PermissionDenied, OperationFailed
from services.fallback import first_successful, newest_first


def _rollback(_error):
    db.session.rollback()


def _push(notification):
    """Live delivery to anyone subscribed on the recipient's room."""
    socketio.emit('notification', notification.to_dict(), room=f"user:{notification.user_id}")


# ==========================================
#  1. WRITES
# ==========================================
def add_notification(user_id, title, message, type_, related_donation_id=None):
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type_,
        is_read=False,
        related_donation_id=related_donation_id,
        created_at=utcnow()
    )
    db.session.add(notification)
    db.session.commit()
    _push(notification)
    return notification


def notify_all_ngos(donation_id, food_name, quantity, quantity_unit, donor_name):
    """Fan-out: one `new_donation` notification per NGO user."""
    ngo_ids = [u.id for u in User.query.filter_by(role='ngo').all()]
    now = utcnow()
    created = [
        Notification(
            user_id=ngo_id,
            title='New Donation Available',
            message=f"{food_name} ({quantity:g} {quantity_unit}) is available for pickup from {donor_name}",
            type='new_donation',
            is_read=False,
            related_donation_id=donation_id,
            created_at=now
        )
        for ngo_id in ngo_ids
    ]
    db.session.add_all(created)
    db.session.commit()
    for notification in created:
        _push(notification)
    return created


def status_message(food_name, status, actor_name):
    """(title, message, type) the donor sees for a status change."""
    if status == 'claimed':
        return ('Donation Claimed',
                f'Your donation "{food_name}" has been claimed by {actor_name}',
                'donation_claimed')
    if status == 'cancelled':
        return ('Donation Cancelled',
                f'Your donation "{food_name}" has been cancelled',
                'status_update')
    return ('Status Update',
            f"{food_name} is now {status.replace('_', ' ')}",
            'status_update')


def notify_donor_of_status(donor_id, donation_id, food_name, status, actor_name):
    title, message, type_ = status_message(food_name, status, actor_name)
    return add_notification(donor_id, title, message, type_, related_donation_id=donation_id)


# ==========================================
#  2. READS
# ==========================================
def _ordered_notifications(user_id):
    return Notification.query.filter(Notification.user_id == user_id)\
        .order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def _unordered_notifications(user_id):
    return newest_first(Notification.query.filter(Notification.user_id == user_id).all())


def get_notifications_for_user(user_id):
    return first_successful([
        ('ordered', lambda: _ordered_notifications(user_id)),
        ('unordered', lambda: _unordered_notifications(user_id)),
    ], label='notifications', errors=(SQLAlchemyError,), on_failure=_rollback)


def count_unread(user_id):
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()


def mark_notification_as_read(notification_id, user_id):
    notification = db.session.get(Notification, notification_id)
    if not notification:
        raise NotFound('Notification not found')
    # Notifications are private to their recipient
    if notification.user_id != user_id:
        raise PermissionDenied('You cannot modify this notification.')

    notification.is_read = True
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise OperationFailed('Failed to update notification') from e
    return notification


def mark_all_notifications_as_read(user_id):
    unread = Notification.query.filter_by(user_id=user_id, is_read=False).all()
    for notification in unread:
        notification.is_read = True
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise OperationFailed('Failed to update notifications') from e
    return len(unread)


# ==========================================
#  3. PUSH SUBSCRIPTION
# ==========================================
class NotificationSubscription:
    """
    Pushes the newest-first notification list for one user to `on_change`.

    Starts on the ordered query. If that errors, it switches to the unordered
    query with client-side sorting for the rest of its life. After close()
    refreshes are ignored.
    """

    def __init__(self, user_id, on_change, ordered_query=None, unordered_query=None):
        self.user_id = user_id
        self.on_change = on_change
        self.ordered_query = ordered_query or _ordered_notifications
        self.unordered_query = unordered_query or _unordered_notifications
        self.mode = 'ordered'
        self.closed = False

    def start(self):
        return self.refresh()

    def refresh(self):
        if self.closed:
            return None

        if self.mode == 'ordered':
            try:
                notifications = self.ordered_query(self.user_id)
            except SQLAlchemyError as e:
                db.session.rollback()
                current_app.logger.warning("Ordered notification feed failed, re-subscribing unordered: %s", e)
                self.mode = 'unordered'
                return self.refresh()
        else:
            notifications = newest_first(self.unordered_query(self.user_id))

        if self.closed:
            return None
        self.on_change(notifications)
        return notifications

    def close(self):
        self.closed = True


# ==========================================
#  4. PICKUP REMINDERS
# ==========================================
def send_pickup_reminders(now=None, window=timedelta(hours=1)):
    """
    Remind claimers whose pickup window opens within `window`.
    Each (donation, claimer) pair is reminded once.
    """
    now = now or utcnow()
    due = Donation.query.filter(
        Donation.status.in_(['claimed', 'on_the_way']),
        Donation.pickup_time_start > now,
        Donation.pickup_time_start <= now + window
    ).all()

    sent = []
    for donation in due:
        already = Notification.query.filter_by(
            user_id=donation.claimed_by,
            related_donation_id=donation.id,
            type='reminder'
        ).first()
        if already:
            continue
        sent.append(add_notification(
            donation.claimed_by,
            'Pickup Reminder',
            f"Pickup for {donation.food_name} starts at {donation.pickup_time_start.strftime('%H:%M')} at {donation.pickup_address}",
            'reminder',
            related_donation_id=donation.id
        ))
    return sent
