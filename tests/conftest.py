import sys
import os
import pytest

# 1. Add the parent directory to Python's path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app
from extensions import db
from datetime import timedelta
from models import Donation, User, utcnow


@pytest.fixture
def app():
    """Create and configure a new app instance for each test."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "JWT_SECRET_KEY": "test-jwt-secret-key-that-is-long-enough",
        "SECRET_KEY": "test-secret-key-that-is-long-enough",
        "MAIL_SUPPRESS_SEND": True,
        "MAIL_DEFAULT_SENDER": "noreply@foodshare.test",
        "SIDE_EFFECTS_INLINE": True,
        "GEOCODER_URL": "http://geocoder.invalid/reverse"
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# ==========================================
#  SHARED USERS
# ==========================================
def make_user(email, role, **fields):
    defaults = {
        'full_name': 'Test User',
        'phone': '0123456789',
        'email_verified': True
    }
    defaults.update(fields)
    user = User(email=email, role=role, **defaults)
    user.set_password("password")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def donor_user(app):
    """Donor with a pickup location in Lagos."""
    return make_user("donor@test.com", "donor", full_name="Mama Put Kitchen",
                     latitude=6.5244, longitude=3.3792, address="12 Allen Ave, Ikeja")


@pytest.fixture
def ngo_user(app):
    """Verified NGO a few km from the donor."""
    return make_user("ngo@test.com", "ngo", full_name="Ada Obi",
                     organization_name="Save Lives NGO", registration_number="NGO-001",
                     is_verified=True, latitude=6.55, longitude=3.35)


@pytest.fixture
def other_ngo(app):
    return make_user("ngo2@test.com", "ngo", full_name="Bola Ade",
                     organization_name="Second Harvest", registration_number="NGO-002")


def auth_headers(client, email):
    resp = client.post('/api/login', json={"email": email, "password": "password"})
    return {'Authorization': f'Bearer {resp.get_json()["access_token"]}'}


@pytest.fixture
def donor_headers(client, donor_user):
    return auth_headers(client, donor_user.email)


@pytest.fixture
def ngo_headers(client, ngo_user):
    return auth_headers(client, ngo_user.email)


def make_donation(donor, **fields):
    """Insert a donation row directly, bypassing the fan-out."""
    now = utcnow()
    values = {
        'donor_id': donor.id,
        'donor_name': donor.display_name,
        'donor_phone': donor.phone,
        'food_name': 'Jollof Rice',
        'description': 'Two trays of party jollof',
        'quantity': 10,
        'quantity_unit': 'servings',
        'category': 'Cooked Food',
        'allergens': ['None'],
        'expiry_time': now + timedelta(hours=6),
        'pickup_address': donor.address,
        'pickup_latitude': donor.latitude,
        'pickup_longitude': donor.longitude,
        'pickup_time_start': now + timedelta(hours=1),
        'pickup_time_end': now + timedelta(hours=3),
        'status': 'available',
        'created_at': now,
        'updated_at': now
    }
    values.update(fields)
    donation = Donation(**values)
    db.session.add(donation)
    db.session.commit()
    return donation
