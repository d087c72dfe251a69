"""
Socket.IO notification feed.

Clients connect with {"token": "<access token>"} as auth data, then emit
`subscribe_notifications`. Each socket owns one NotificationSubscription that
is closed on disconnect.
"""
from flask import request, current_app
from flask_jwt_extended import decode_token
from flask_socketio import emit, join_room, disconnect
from jwt import PyJWTError
from flask_jwt_extended.exceptions import JWTExtendedException
from extensions import socketio
from services.auth import is_token_revoked
from services.notifications import NotificationSubscription, count_unread

# sid -> NotificationSubscription
subscriptions = {}
# sid -> user id
connected_users = {}


def _push_list(user_id):
    def on_change(notifications):
        emit('notifications', {
            'notifications': [n.to_dict() for n in notifications],
            'unread_count': count_unread(user_id)
        })
    return on_change


@socketio.on('connect')
def handle_connect(auth=None):
    token = (auth or {}).get('token')
    if not token:
        return False
    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException) as e:
        current_app.logger.info("Rejected socket connection: %s", e)
        return False
    if is_token_revoked(claims['jti']):
        return False

    user_id = int(claims['sub'])
    connected_users[request.sid] = user_id
    join_room(f"user:{user_id}")


@socketio.on('subscribe_notifications')
def handle_subscribe():
    user_id = connected_users.get(request.sid)
    if user_id is None:
        disconnect()
        return

    previous = subscriptions.pop(request.sid, None)
    if previous:
        previous.close()

    subscription = NotificationSubscription(user_id, _push_list(user_id))
    subscriptions[request.sid] = subscription
    subscription.start()


@socketio.on('refresh_notifications')
def handle_refresh():
    subscription = subscriptions.get(request.sid)
    if subscription:
        subscription.refresh()


@socketio.on('disconnect')
def handle_disconnect(*args):
    subscription = subscriptions.pop(request.sid, None)
    if subscription:
        subscription.close()
    connected_users.pop(request.sid, None)
