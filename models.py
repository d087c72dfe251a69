from datetime import datetime, timezone, timedelta
from werkzeug.security import generate_password_hash, check_password_hash
from flask import current_app
from extensions import db
import jwt


def utcnow():
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value):
    return value.isoformat() if value else None


DONATION_STATUSES = ('available', 'claimed', 'on_the_way', 'picked_up', 'completed', 'cancelled')

# Statuses in which a donation must carry a claimer
CLAIMED_STATUSES = ('claimed', 'on_the_way', 'picked_up', 'completed')

NOTIFICATION_TYPES = ('donation_claimed', 'status_update', 'new_donation', 'reminder')


# ==========================================
#  1. USER MODEL
# ==========================================
class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False)  # 'donor' or 'ngo'

    full_name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    profile_picture = db.Column(db.Text, nullable=True)

    # --- NGO FIELDS ---
    organization_name = db.Column(db.String(150), nullable=True)
    registration_number = db.Column(db.String(50), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # --- SECURITY ---
    is_verified = db.Column(db.Boolean, default=False)
    email_verified = db.Column(db.Boolean, default=False)

    # --- TIMESTAMPS ---
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    donations = db.relationship('Donation', backref='donor', lazy=True, foreign_keys='Donation.donor_id')

    @property
    def display_name(self):
        if self.role == 'ngo' and self.organization_name:
            return self.organization_name
        return self.full_name

    @property
    def has_location(self):
        return self.latitude is not None and self.longitude is not None

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def _password_stamp(self):
        return (self.password_hash or '')[-16:]

    def get_token(self, purpose, expires_sec=86400):
        """
        Signed token for email verification or password reset. Reset tokens
        carry a stamp of the current password hash, so they stop working
        once the password changes.
        """
        payload = {
            "user_id": self.id,
            "purpose": purpose,
            "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_sec)
        }
        if purpose == 'reset':
            payload["pwd"] = self._password_stamp()
        return jwt.encode(
            payload,
            current_app.config['SECRET_KEY'],
            algorithm="HS256"
        )

    @staticmethod
    def verify_token(token, purpose):
        """Decodes the token and returns the User, or None."""
        try:
            payload = jwt.decode(
                token,
                current_app.config['SECRET_KEY'],
                algorithms=["HS256"]
            )
        except jwt.PyJWTError:
            return None
        if payload.get('purpose') != purpose:
            return None
        user = db.session.get(User, payload.get('user_id'))
        if user and purpose == 'reset' and payload.get('pwd') != user._password_stamp():
            return None
        return user

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'full_name': self.full_name,
            'display_name': self.display_name,
            'phone': self.phone,
            'address': self.address,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'profile_picture': self.profile_picture,
            'organization_name': self.organization_name,
            'registration_number': self.registration_number,
            'description': self.description,
            'is_verified': self.is_verified,
            'email_verified': self.email_verified,
            'created_at': iso(self.created_at)
        }


# ==========================================
#  2. DONATION MODEL
# ==========================================
class Donation(db.Model):
    __tablename__ = 'donations'

    id = db.Column(db.Integer, primary_key=True)

    donor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    donor_name = db.Column(db.String(120))
    donor_phone = db.Column(db.String(20))

    food_name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, default='')
    quantity = db.Column(db.Float, nullable=False)
    quantity_unit = db.Column(db.String(20), default='kg')
    category = db.Column(db.String(50))
    allergens = db.Column(db.JSON, default=list)
    images = db.Column(db.JSON, default=list)
    additional_notes = db.Column(db.Text, default='')

    # --- PICKUP ---
    pickup_address = db.Column(db.String(255))
    pickup_latitude = db.Column(db.Float, nullable=True)
    pickup_longitude = db.Column(db.Float, nullable=True)
    pickup_time_start = db.Column(db.DateTime)
    pickup_time_end = db.Column(db.DateTime)
    expiry_time = db.Column(db.DateTime)

    status = db.Column(db.String(20), default='available', index=True)

    # --- CLAIM ---
    claimed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    claimed_by_name = db.Column(db.String(150), nullable=True)
    claimed_at = db.Column(db.DateTime, nullable=True)

    # --- TIMESTAMPS ---
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    def claim_state_valid(self):
        return (self.claimed_by is not None) == (self.status in CLAIMED_STATUSES)

    def to_dict(self):
        return {
            'id': self.id,
            'donor_id': self.donor_id,
            'donor_name': self.donor_name,
            'donor_phone': self.donor_phone,
            'food_name': self.food_name,
            'description': self.description,
            'quantity': self.quantity,
            'quantity_unit': self.quantity_unit,
            'category': self.category,
            'allergens': list(self.allergens or []),
            'images': list(self.images or []),
            'additional_notes': self.additional_notes,
            'pickup_address': self.pickup_address,
            'pickup_latitude': self.pickup_latitude,
            'pickup_longitude': self.pickup_longitude,
            'pickup_time_start': iso(self.pickup_time_start),
            'pickup_time_end': iso(self.pickup_time_end),
            'expiry_time': iso(self.expiry_time),
            'status': self.status,
            'claimed_by': self.claimed_by,
            'claimed_by_name': self.claimed_by_name,
            'claimed_at': iso(self.claimed_at),
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at)
        }


# ==========================================
#  3. NOTIFICATION MODEL
# ==========================================
class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(150), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(30), nullable=False)
    is_read = db.Column(db.Boolean, default=False)
    related_donation_id = db.Column(db.Integer, db.ForeignKey('donations.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'title': self.title,
            'message': self.message,
            'type': self.type,
            'is_read': self.is_read,
            'related_donation_id': self.related_donation_id,
            'created_at': iso(self.created_at)
        }


# ==========================================
#  4. STATUS HISTORY (Append-only audit trail)
# ==========================================
class StatusHistory(db.Model):
    __tablename__ = 'status_history'

    id = db.Column(db.Integer, primary_key=True)
    donation_id = db.Column(db.Integer, db.ForeignKey('donations.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    updated_by_name = db.Column(db.String(150))
    notes = db.Column(db.Text, default='')
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'donation_id': self.donation_id,
            'status': self.status,
            'updated_by': self.updated_by,
            'updated_by_name': self.updated_by_name,
            'notes': self.notes,
            'created_at': iso(self.created_at)
        }


# ==========================================
#  5. REVOKED TOKENS (Logout)
# ==========================================
class RevokedToken(db.Model):
    __tablename__ = 'revoked_tokens'

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(64), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
