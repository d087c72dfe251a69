"""
Accounts and sessions: signup, login/logout, email verification, password
reset and profile edits.
"""
import re
import time
from flask import current_app
from flask_jwt_extended import create_access_token
from sqlalchemy.exc import SQLAlchemyError
from extensions import db
from models import RevokedToken, User, utcnow
from services.errors import AuthError, NotFound, OperationFailed, ValidationError
from services.geo import reverse_geocode
from utils import send_password_reset_email, send_verification_email

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_RE = re.compile(r'^\d{10}$')
MIN_PASSWORD_LENGTH = 6
ROLES = ('donor', 'ngo')

PROFILE_FIELDS = ('full_name', 'phone', 'address', 'latitude', 'longitude', 'profile_picture',
                  'organization_name', 'registration_number', 'description')


# ==========================================
#  1. VALIDATION
# ==========================================
def _text(value):
    """Form values that are not strings count as blank."""
    return value if isinstance(value, str) else ''


def validate_signup(data):
    """Collects every form problem; nothing is written unless this passes."""
    errors = {}
    email = _text(data.get('email')).strip()
    password = _text(data.get('password'))
    role = data.get('role')

    if not EMAIL_RE.match(email):
        errors['email'] = 'Invalid email address format.'
    if len(password) < MIN_PASSWORD_LENGTH:
        errors['password'] = 'Password must be at least 6 characters.'
    elif 'confirm_password' in data and data['confirm_password'] != password:
        errors['confirm_password'] = 'Passwords do not match.'
    if not _text(data.get('full_name')).strip():
        errors['full_name'] = 'Full name is required.'
    if not PHONE_RE.match(_text(data.get('phone'))):
        errors['phone'] = 'Phone number must be exactly 10 digits.'
    if role not in ROLES:
        errors['role'] = 'Role must be donor or ngo.'
    elif role == 'ngo':
        if not _text(data.get('organization_name')).strip():
            errors['organization_name'] = 'Organization name is required for NGOs.'
        if not _text(data.get('registration_number')).strip():
            errors['registration_number'] = 'Registration number is required for NGOs.'

    if errors:
        raise ValidationError(errors)


def validate_password(password, field='password'):
    if len(_text(password)) < MIN_PASSWORD_LENGTH:
        raise ValidationError({field: 'Password must be at least 6 characters.'})


# ==========================================
#  2. EMAIL COOLDOWN
# ==========================================
class EmailCooldown:
    """Advisory per-(action, email) rate limit for outgoing account emails."""

    def __init__(self, period=60, clock=time.monotonic):
        self.period = period
        self.clock = clock
        self._last_sent = {}

    def remaining(self, action, email):
        sent_at = self._last_sent.get((action, email.lower()))
        if sent_at is None:
            return 0
        return max(0, int(self.period - (self.clock() - sent_at) + 0.999))

    def check(self, action, email):
        wait = self.remaining(action, email)
        if wait > 0:
            raise AuthError('too-many-requests', f'Please wait {wait} seconds before requesting another email.')

    def mark(self, action, email):
        self._last_sent[(action, email.lower())] = self.clock()


def _cooldown():
    return current_app.extensions['email_cooldown']


def _commit(message):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise OperationFailed(message) from e


# ==========================================
#  3. SIGNUP / LOGIN / LOGOUT
# ==========================================
def signup(data):
    validate_signup(data)
    email = data['email'].strip().lower()

    if User.query.filter_by(email=email).first():
        raise AuthError('email-already-in-use')

    role = data['role']
    user = User(
        email=email,
        role=role,
        full_name=data['full_name'].strip(),
        phone=data['phone'],
        address=data.get('address'),
        latitude=data.get('latitude'),
        longitude=data.get('longitude'),
        organization_name=data.get('organization_name') if role == 'ngo' else None,
        registration_number=data.get('registration_number') if role == 'ngo' else None,
        description=data.get('description') if role == 'ngo' else None,
        is_verified=False,
        email_verified=False
    )
    user.set_password(data['password'])

    db.session.add(user)
    _commit('Failed to create account')

    # Registered user counts are part of the platform statistics
    current_app.extensions['stats_cache'].invalidate()

    try:
        send_verification_email(user)
        _cooldown().mark('verify', user.email)
    except Exception as e:
        current_app.logger.warning("Verification email to %s failed: %s", user.email, e)

    return user


def login(email, password):
    email = _text(email).strip().lower()
    if not EMAIL_RE.match(email):
        raise AuthError('invalid-email')

    user = User.query.filter_by(email=email).first()
    # One answer for unknown email and wrong password
    if not user or not user.check_password(_text(password)):
        raise AuthError('invalid-credential')

    token = create_access_token(identity=str(user.id), additional_claims={"role": user.role})
    return token, user


def logout(jti):
    if RevokedToken.query.filter_by(jti=jti).first():
        return
    db.session.add(RevokedToken(jti=jti, created_at=utcnow()))
    _commit('Failed to log out')


def is_token_revoked(jti):
    return RevokedToken.query.filter_by(jti=jti).first() is not None


def resolve_session(user_id):
    """Session + profile for a JWT identity, or None when the account is gone."""
    user = db.session.get(User, int(user_id))
    if not user:
        return None
    return {
        'session': {
            'id': user.id,
            'email': user.email,
            'email_verified': user.email_verified
        },
        'profile': user.to_dict()
    }


def current_user(user_id):
    user = db.session.get(User, int(user_id))
    if not user:
        raise NotFound('User not found')
    return user


# ==========================================
#  4. EMAIL VERIFICATION
# ==========================================
def send_verification(user):
    """Returns False when there is nothing to send."""
    if user.email_verified:
        return False
    _cooldown().check('verify', user.email)
    try:
        send_verification_email(user)
    except Exception as e:
        current_app.logger.warning("Verification email to %s failed: %s", user.email, e)
        raise AuthError('network-request-failed') from e
    _cooldown().mark('verify', user.email)
    return True


def verify_email(token):
    user = User.verify_token(token, 'verify')
    if not user:
        raise AuthError('invalid-token')
    if user.email_verified:
        return user, False
    user.email_verified = True
    _commit('Failed to verify email')
    return user, True


# ==========================================
#  5. PASSWORDS
# ==========================================
def request_password_reset(email):
    """Same outcome whether or not the address has an account."""
    email = _text(email).strip().lower()
    if not EMAIL_RE.match(email):
        raise AuthError('invalid-email')

    _cooldown().check('reset', email)
    user = User.query.filter_by(email=email).first()
    if user:
        try:
            send_password_reset_email(user)
        except Exception as e:
            current_app.logger.warning("Password reset email to %s failed: %s", email, e)
    _cooldown().mark('reset', email)


def reset_password(token, password):
    validate_password(password)
    user = User.verify_token(token, 'reset')
    if not user:
        raise AuthError('invalid-token')
    user.set_password(password)
    _commit('Failed to reset password')
    return user


def change_password(user, current_password, new_password):
    if not user.check_password(_text(current_password)):
        raise AuthError('wrong-password')
    validate_password(new_password, 'new_password')
    user.set_password(new_password)
    _commit('Failed to change password')


# ==========================================
#  6. PROFILE
# ==========================================
def update_profile(user, updates):
    unknown = set(updates) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError({field: 'This field cannot be changed' for field in sorted(unknown)})

    if 'phone' in updates and not PHONE_RE.match(_text(updates['phone'])):
        raise ValidationError({'phone': 'Phone number must be exactly 10 digits.'})
    if 'full_name' in updates and not _text(updates['full_name']).strip():
        raise ValidationError({'full_name': 'Full name is required.'})

    updates = dict(updates)
    for field, limit in (('latitude', 90), ('longitude', 180)):
        if updates.get(field) is None:
            continue
        try:
            updates[field] = float(updates[field])
        except (TypeError, ValueError):
            raise ValidationError({field: 'Coordinate must be a number'}) from None
        if not -limit <= updates[field] <= limit:
            raise ValidationError({field: f'Coordinate must be between -{limit} and {limit}.'})

    lat, lon = updates.get('latitude'), updates.get('longitude')
    if lat is not None and lon is not None and not updates.get('address'):
        address = reverse_geocode(lat, lon)
        if address:
            updates['address'] = address

    for field, value in updates.items():
        setattr(user, field, value)
    user.updated_at = utcnow()
    _commit('Failed to update profile')
    return user
