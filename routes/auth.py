from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity, verify_jwt_in_request
from services import auth as accounts
from services.access import check_access

auth_bp = Blueprint('auth', __name__)


# ==========================================
#  1. SIGNUP / LOGIN / LOGOUT
# ==========================================
@auth_bp.route('/api/signup', methods=['POST'])
def signup():
    data = request.get_json() or {}
    user = accounts.signup(data)
    return jsonify({
        'message': 'Account created! Check your email to verify your address.',
        'user': user.to_dict()
    }), 201


@auth_bp.route('/api/login', methods=['POST'])
def login():
    data = request.get_json() or {}

    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Missing email or password'}), 400

    access_token, user = accounts.login(data['email'], data['password'])
    return jsonify({
        'message': 'Login successful!',
        'access_token': access_token,
        'user': user.to_dict()
    }), 200


@auth_bp.route('/api/logout', methods=['POST'])
@jwt_required()
def logout():
    accounts.logout(get_jwt()['jti'])
    return jsonify({'message': 'Logged out.'}), 200


@auth_bp.route('/api/session', methods=['GET'])
@jwt_required()
def session():
    resolved = accounts.resolve_session(get_jwt_identity())
    if not resolved:
        return jsonify({'error': 'User not found'}), 404
    return jsonify(resolved), 200


# ==========================================
#  2. EMAIL VERIFICATION
# ==========================================
@auth_bp.route('/api/auth/send-verification', methods=['POST'])
@jwt_required()
def send_verification():
    user = accounts.current_user(get_jwt_identity())
    if not accounts.send_verification(user):
        return jsonify({'message': 'Email already verified.'}), 200
    return jsonify({'message': 'Verification email sent!'}), 200


@auth_bp.route('/api/auth/verify-email/<token>', methods=['GET'])
def verify_email(token):
    _user, changed = accounts.verify_email(token)
    if not changed:
        return jsonify({'message': 'Email already verified.'}), 200
    return jsonify({'message': 'Email verified! You can now use every feature.'}), 200


# ==========================================
#  3. PASSWORDS
# ==========================================
@auth_bp.route('/api/forgot-password', methods=['POST'])
def forgot_password():
    data = request.get_json() or {}
    if not data.get('email'):
        return jsonify({"error": "Email is required"}), 400

    accounts.request_password_reset(data['email'])
    return jsonify({"message": "If your email exists, a reset link has been sent."}), 200


@auth_bp.route('/api/reset-password', methods=['POST'])
def reset_password():
    data = request.get_json() or {}
    if not data.get('token'):
        return jsonify({"error": "Token is required"}), 400

    accounts.reset_password(data['token'], data.get('password'))
    return jsonify({"message": "Password updated. You can now log in."}), 200


@auth_bp.route('/api/change-password', methods=['POST'])
@jwt_required()
def change_password():
    data = request.get_json() or {}
    user = accounts.current_user(get_jwt_identity())
    accounts.change_password(user, data.get('current_password'), data.get('new_password'))
    return jsonify({"message": "Password changed."}), 200


# ==========================================
#  4. NAVIGATION GATING
# ==========================================
@auth_bp.route('/api/access', methods=['GET'])
def access():
    """Where may the current viewer go? Works signed in or out."""
    verify_jwt_in_request(optional=True)
    role = (get_jwt() or {}).get('role')
    return jsonify(check_access(request.args.get('path', '/'), role)), 200
