from datetime import timedelta
from app import create_app
from extensions import db
from models import Donation, User, utcnow

DEMO_PASSWORD = 'password123'


def _demo_user(**fields):
    user = User(**fields)
    user.set_password(DEMO_PASSWORD)
    db.session.add(user)
    return user


def seed_demo_data():
    """ Demo donor, demo NGO and three sample donations, only on an empty store. """
    if Donation.query.first():
        print("Demo data already exists. Skipping.")
        return

    donor = User.query.filter_by(email='donor@example.com').first() or _demo_user(
        email='donor@example.com',
        role='donor',
        full_name="John's Restaurant",
        phone='1234567890',
        address='123 Main St, Downtown',
        latitude=40.7128,
        longitude=-74.006,
        email_verified=True
    )
    if not User.query.filter_by(email='ngo@example.com').first():
        _demo_user(
            email='ngo@example.com',
            role='ngo',
            full_name='Maria Garcia',
            phone='1234567891',
            address='456 Oak Ave, Suburb',
            latitude=40.7589,
            longitude=-73.9851,
            organization_name='Food Rescue Foundation',
            registration_number='NGO12345',
            description='Helping communities by reducing food waste',
            is_verified=True,
            email_verified=True
        )
    db.session.flush()

    now = utcnow()
    samples = [
        ('Fresh Sandwiches', '50 freshly made sandwiches from lunch buffet', 50, 'servings',
         'Cooked Food', ['Gluten', 'Dairy'], 6, 1, 4, 'Please bring insulated bags'),
        ('Fresh Vegetables', 'Assorted fresh vegetables - carrots, lettuce, tomatoes', 15, 'kg',
         'Raw Ingredients', ['None'], 48, 2, 8, 'Side entrance pickup'),
        ('Packaged Pasta', 'Unopened boxes of pasta - various shapes', 20, 'boxes',
         'Packaged Food', ['Gluten'], 90 * 24, 1, 6, ''),
    ]
    for offset, (name, description, qty, unit, category, allergens,
                 expiry_h, start_h, end_h, notes) in enumerate(samples):
        db.session.add(Donation(
            donor_id=donor.id,
            donor_name=donor.display_name,
            donor_phone=donor.phone,
            food_name=name,
            description=description,
            quantity=qty,
            quantity_unit=unit,
            category=category,
            allergens=allergens,
            expiry_time=now + timedelta(hours=expiry_h),
            pickup_address=donor.address,
            pickup_latitude=donor.latitude,
            pickup_longitude=donor.longitude,
            pickup_time_start=now + timedelta(hours=start_h),
            pickup_time_end=now + timedelta(hours=end_h),
            status='available',
            additional_notes=notes,
            images=[],
            created_at=now + timedelta(seconds=offset),
            updated_at=now + timedelta(seconds=offset)
        ))

    db.session.commit()
    print("Demo data created. Log in as donor@example.com or ngo@example.com with password123.")


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        db.create_all()
        seed_demo_data()
