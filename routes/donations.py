import math
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from datetime import datetime, timezone
from services import donations as store
from services.auth import current_user
from services.browse import CATEGORIES, DEFAULT_DISTANCE_KM, browse_donations
from services.errors import OperationFailed, PermissionDenied, TransitionError, ValidationError
from services.stats import ngo_stats
from services.workflow import advance_donation, allowed_actions, cancel_donation, claim_donation

donations_bp = Blueprint('donations', __name__)

# Fields a donor fills in on the create / edit form
DONOR_FIELDS = ('food_name', 'description', 'quantity', 'quantity_unit', 'category', 'allergens',
                'expiry_time', 'pickup_address', 'pickup_latitude', 'pickup_longitude',
                'pickup_time_start', 'pickup_time_end', 'additional_notes', 'images')
DATETIME_FIELDS = ('expiry_time', 'pickup_time_start', 'pickup_time_end')
COORDINATE_LIMITS = {'pickup_latitude': 90, 'pickup_longitude': 180}


def _parse_datetime(value, field):
    """ISO-8601 -> naive UTC."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError({field: 'Invalid date format. Use ISO-8601.'}) from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _clean_donation_fields(data, partial=False):
    fields = {k: data[k] for k in DONOR_FIELDS if k in data}
    errors = {}

    if not partial:
        for required in ('food_name', 'quantity', 'category', 'pickup_address', 'expiry_time'):
            if data.get(required) in (None, ''):
                errors[required] = 'This field is required.'

    if 'quantity' in fields and 'quantity' not in errors:
        try:
            fields['quantity'] = float(fields['quantity'])
            if not math.isfinite(fields['quantity']):
                errors['quantity'] = 'Quantity must be a number'
            elif fields['quantity'] <= 0:
                errors['quantity'] = 'Quantity must be greater than zero.'
        except (TypeError, ValueError):
            errors['quantity'] = 'Quantity must be a number'

    for field, limit in COORDINATE_LIMITS.items():
        if fields.get(field) is None:
            continue
        try:
            fields[field] = float(fields[field])
        except (TypeError, ValueError):
            errors[field] = 'Coordinate must be a number'
            continue
        if not -limit <= fields[field] <= limit:
            errors[field] = f'Coordinate must be between -{limit} and {limit}.'

    if fields.get('category') and fields['category'] not in CATEGORIES:
        errors['category'] = f"Category must be one of: {', '.join(CATEGORIES)}"

    for field in ('allergens', 'images'):
        if field in fields and not (isinstance(fields[field], list)
                                    and all(isinstance(item, str) for item in fields[field])):
            errors[field] = 'Must be a list of strings.'

    if errors:
        raise ValidationError(errors)

    for field in DATETIME_FIELDS:
        if field in fields:
            fields[field] = _parse_datetime(fields[field], field)

    start, end = fields.get('pickup_time_start'), fields.get('pickup_time_end')
    if start and end and end <= start:
        raise ValidationError({'pickup_time_end': 'Pickup end must be after pickup start.'})
    return fields


def _listing(loader):
    """List endpoints degrade to an empty list plus an error banner."""
    try:
        return jsonify({'donations': [d.to_dict() for d in loader()], 'error': None}), 200
    except OperationFailed as e:
        return jsonify({'donations': [], 'error': str(e)}), 200


# ==========================================
#  1. CREATE DONATION
# ==========================================
@donations_bp.route('/api/donations', methods=['POST'])
@jwt_required()
def create_donation():
    user = current_user(get_jwt_identity())

    if user.role != 'donor':
        raise PermissionDenied('Only Donors can post food.')

    fields = _clean_donation_fields(request.get_json() or {})
    fields.setdefault('pickup_latitude', user.latitude)
    fields.setdefault('pickup_longitude', user.longitude)
    fields.update({
        'donor_id': user.id,
        'donor_name': user.display_name,
        'donor_phone': user.phone,
        'status': 'available'
    })

    donation = store.create_donation(fields)
    current_app.logger.info("Donation %s posted by user %s", donation.id, user.id)
    return jsonify({
        'message': 'Donation posted successfully!',
        'donation': donation.to_dict()
    }), 201


# ==========================================
#  2. BROWSE (NGO feed)
# ==========================================
@donations_bp.route('/api/donations', methods=['GET'])
@jwt_required()
def browse():
    user = current_user(get_jwt_identity())
    args = request.args

    lat = args.get('lat', type=float, default=user.latitude)
    lon = args.get('lon', type=float, default=user.longitude)
    exclude = [a for a in args.get('exclude_allergens', '').split(',') if a]

    try:
        available = store.get_available_donations()
    except OperationFailed as e:
        return jsonify({'donations': [], 'error': str(e)}), 200

    results = browse_donations(
        available,
        viewer_lat=lat,
        viewer_lon=lon,
        search=args.get('search', ''),
        category=args.get('category', 'All'),
        exclude_allergens=exclude,
        max_distance_km=args.get('max_distance', type=float, default=DEFAULT_DISTANCE_KM),
        sort_by=args.get('sort', 'nearest')
    )
    return jsonify({'donations': results, 'error': None}), 200


# ==========================================
#  3. SINGLE DONATION
# ==========================================
@donations_bp.route('/api/donations/<int:donation_id>', methods=['GET'])
@jwt_required()
def get_donation(donation_id):
    user = current_user(get_jwt_identity())
    donation = store.get_donation(donation_id)
    record = donation.to_dict()
    record['allowed_actions'] = allowed_actions(donation, user)
    return jsonify(record), 200


@donations_bp.route('/api/donations/<int:donation_id>', methods=['PUT'])
@jwt_required()
def edit_donation(donation_id):
    user = current_user(get_jwt_identity())
    donation = store.get_donation(donation_id)

    if donation.donor_id != user.id:
        raise PermissionDenied('Unauthorized. You did not post this.')
    if donation.status != 'available':
        raise TransitionError('Only available donations can be edited.')

    fields = _clean_donation_fields(request.get_json() or {}, partial=True)
    donation = store.update_donation(donation_id, fields)
    return jsonify({'message': 'Donation updated.', 'donation': donation.to_dict()}), 200


@donations_bp.route('/api/donations/<int:donation_id>', methods=['DELETE'])
@jwt_required()
def delete_donation(donation_id):
    user = current_user(get_jwt_identity())
    donation = store.get_donation(donation_id)

    if donation.donor_id != user.id:
        raise PermissionDenied('Unauthorized. You did not post this.')

    store.delete_donation(donation_id)
    return jsonify({'message': 'Donation deleted successfully.'}), 200


@donations_bp.route('/api/donations/<int:donation_id>/history', methods=['GET'])
@jwt_required()
def history(donation_id):
    store.get_donation(donation_id)
    try:
        entries = store.get_status_history(donation_id)
    except OperationFailed as e:
        return jsonify({'history': [], 'error': str(e)}), 200
    return jsonify({'history': [h.to_dict() for h in entries], 'error': None}), 200


# ==========================================
#  4. PER-USER LISTS
# ==========================================
@donations_bp.route('/api/donations/mine', methods=['GET'])
@jwt_required()
def my_donations():
    user = current_user(get_jwt_identity())
    status = request.args.get('status')

    def load():
        donations = store.get_donations_by_donor(user.id)
        if status and status != 'all':
            donations = [d for d in donations if d.status == status]
        return donations
    return _listing(load)


@donations_bp.route('/api/claims', methods=['GET'])
@jwt_required()
def my_claims():
    user = current_user(get_jwt_identity())
    if user.role != 'ngo':
        raise PermissionDenied('Only NGOs have claims.')
    return _listing(lambda: store.get_donations_by_claimer(user.id))


@donations_bp.route('/api/ngo/dashboard', methods=['GET'])
@jwt_required()
def ngo_dashboard():
    user = current_user(get_jwt_identity())
    if user.role != 'ngo':
        raise PermissionDenied('Only NGOs have a dashboard here.')

    try:
        claims = store.get_donations_by_claimer(user.id)
        available = store.get_available_donations()
    except OperationFailed as e:
        return jsonify({
            'claims': [], 'available_donations': [], 'stats': None,
            'profile': user.to_dict(), 'error': f"Failed to load dashboard data: {e}"
        }), 200

    return jsonify({
        'claims': [d.to_dict() for d in claims],
        'available_donations': [d.to_dict() for d in available],
        'stats': ngo_stats(claims),
        'profile': user.to_dict(),
        'error': None
    }), 200


# ==========================================
#  5. WORKFLOW
# ==========================================
@donations_bp.route('/api/donations/<int:donation_id>/claim', methods=['POST'])
@jwt_required()
def claim(donation_id):
    user = current_user(get_jwt_identity())
    donation = claim_donation(donation_id, user)
    return jsonify({
        'message': 'Donation claimed successfully! The donor has been notified.',
        'donation': donation.to_dict()
    }), 200


@donations_bp.route('/api/donations/<int:donation_id>/cancel', methods=['POST'])
@jwt_required()
def cancel(donation_id):
    user = current_user(get_jwt_identity())
    notes = (request.get_json(silent=True) or {}).get('notes', '')
    donation = cancel_donation(donation_id, user, notes)
    return jsonify({'message': 'Donation cancelled.', 'donation': donation.to_dict()}), 200


@donations_bp.route('/api/donations/<int:donation_id>/status', methods=['POST'])
@jwt_required()
def update_status(donation_id):
    user = current_user(get_jwt_identity())
    data = request.get_json() or {}
    if not data.get('action'):
        raise ValidationError({'action': 'Action is required.'})

    donation = advance_donation(donation_id, data['action'], user, data.get('notes', ''))
    return jsonify({'message': 'Status updated.', 'donation': donation.to_dict()}), 200
