from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required, get_jwt_identity
from services.errors import OperationFailed
from services.notifications import (count_unread, get_notifications_for_user,
                                    mark_all_notifications_as_read, mark_notification_as_read)

notifications_bp = Blueprint('notifications', __name__)


@notifications_bp.route('/api/notifications', methods=['GET'])
@jwt_required()
def list_notifications():
    user_id = int(get_jwt_identity())
    try:
        notifications = get_notifications_for_user(user_id)
    except OperationFailed as e:
        return jsonify({'notifications': [], 'unread_count': 0, 'error': str(e)}), 200

    return jsonify({
        'notifications': [n.to_dict() for n in notifications],
        'unread_count': count_unread(user_id),
        'error': None
    }), 200


@notifications_bp.route('/api/notifications/<int:notification_id>/read', methods=['PATCH'])
@jwt_required()
def mark_read(notification_id):
    notification = mark_notification_as_read(notification_id, int(get_jwt_identity()))
    return jsonify(notification.to_dict()), 200


@notifications_bp.route('/api/notifications/read-all', methods=['POST'])
@jwt_required()
def mark_all_read():
    updated = mark_all_notifications_as_read(int(get_jwt_identity()))
    return jsonify({'updated': updated}), 200
