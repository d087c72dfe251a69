from flask import Blueprint, request, jsonify, Response
from flask_jwt_extended import jwt_required, get_jwt_identity
from reportlab.pdfgen import canvas
from reportlab.lib.pagesizes import letter
from reportlab.lib import colors
import io
import json
from services import donations as store
from services.auth import current_user, update_profile
from services.errors import OperationFailed, PermissionDenied, ValidationError
from services.geo import reverse_geocode
from services.notifications import get_notifications_for_user
from services.stats import donor_stats, ngo_stats
from models import utcnow

user_bp = Blueprint('user', __name__)


@user_bp.route('/api/profile', methods=['GET'])
@jwt_required()
def get_user_profile():
    """ Refreshes user data on page reload. """
    user = current_user(get_jwt_identity())
    return jsonify(user.to_dict()), 200


@user_bp.route('/api/profile', methods=['PATCH'])
@jwt_required()
def edit_user_profile():
    user = current_user(get_jwt_identity())
    user = update_profile(user, request.get_json() or {})
    return jsonify({'message': 'Profile updated.', 'user': user.to_dict()}), 200


@user_bp.route('/api/profile/stats', methods=['GET'])
@jwt_required()
def profile_stats():
    """ Role specific numbers for the profile page. """
    user = current_user(get_jwt_identity())
    try:
        if user.role == 'ngo':
            stats = ngo_stats(store.get_donations_by_claimer(user.id))
        else:
            stats = donor_stats(store.get_donations_by_donor(user.id))
    except OperationFailed as e:
        return jsonify({'stats': None, 'error': str(e)}), 200
    return jsonify({'stats': stats, 'error': None}), 200


@user_bp.route('/api/profile/export', methods=['GET'])
@jwt_required()
def export_data():
    """ Everything we hold about the user, as a JSON download. """
    user = current_user(get_jwt_identity())

    if user.role == 'ngo':
        donations = store.get_donations_by_claimer(user.id)
    else:
        donations = store.get_donations_by_donor(user.id)

    payload = {
        'exported_at': utcnow().isoformat(),
        'profile': user.to_dict(),
        'donations': [d.to_dict() for d in donations],
        'notifications': [n.to_dict() for n in get_notifications_for_user(user.id)]
    }
    return Response(
        json.dumps(payload, indent=2),
        mimetype='application/json',
        headers={"Content-Disposition": f"attachment;filename=foodshare_export_{user.id}.json"}
    )


@user_bp.route('/api/certificate/download', methods=['GET'])
@jwt_required()
def download_impact_certificate():
    """
    Generates a Donation Impact Certificate (PDF).
    Only completed (or collected) donations are certified.
    """
    user = current_user(get_jwt_identity())

    if user.role != 'donor':
        raise PermissionDenied('Only Donors can generate impact certificates.')

    stats = donor_stats(store.get_donations_by_donor(user.id))
    if stats['completed_donations'] == 0:
        return jsonify({'error': 'No completed donations found yet to certify.'}), 400

    # GENERATE PDF IN MEMORY
    buffer = io.BytesIO()
    p = canvas.Canvas(buffer, pagesize=letter)
    width, height = letter

    # Header
    p.setFont("Helvetica-Bold", 24)
    p.drawCentredString(width / 2, height - 100, "CERTIFICATE OF IMPACT")

    p.setFont("Helvetica", 12)
    p.drawCentredString(width / 2, height - 130, "FoodShare Community Food Rescue")

    # Border
    p.setStrokeColor(colors.green)
    p.setLineWidth(3)
    p.rect(50, 50, width - 100, height - 100)

    p.setFont("Helvetica", 14)
    text_y = height - 250

    content = [
        "This certificate is proudly presented to:",
        "",
        user.display_name.upper(),
        "",
        "In recognition of your contribution to fighting hunger and food waste.",
        "Through FoodShare you have completed:",
        "",
        f"{stats['completed_donations']} donations, about {stats['total_meals_shared']} meals",
        f"shared with {stats['ngo_partners_count']} partner organizations",
        "",
        f"Date Generated: {utcnow().strftime('%Y-%m-%d')}"
    ]

    for line in content:
        p.drawCentredString(width / 2, text_y, line)
        text_y -= 25

    p.setLineWidth(1)
    p.line(width / 2 - 100, 150, width / 2 + 100, 150)
    p.setFont("Helvetica-Oblique", 10)
    p.drawCentredString(width / 2, 135, "FoodShare Team")

    p.showPage()
    p.save()

    buffer.seek(0)

    return Response(
        buffer.getvalue(),
        mimetype='application/pdf',
        headers={"Content-Disposition": f"attachment;filename=FoodShare_Certificate_{utcnow().year}.pdf"}
    )


@user_bp.route('/api/geocode/reverse', methods=['GET'])
@jwt_required()
def geocode_reverse():
    """ Map picker helper. Address is null when the geocoder is unavailable. """
    lat = request.args.get('lat', type=float)
    lon = request.args.get('lon', type=float)
    if lat is None or lon is None:
        raise ValidationError({'lat': 'lat and lon are required numbers.'})
    return jsonify({'latitude': lat, 'longitude': lon, 'address': reverse_geocode(lat, lon)}), 200
