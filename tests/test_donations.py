import pytest
from datetime import timedelta
from sqlalchemy.exc import OperationalError
from models import Donation, Notification, StatusHistory, utcnow
from extensions import db
from services import donations as store
from services.errors import NotFound, TransitionError, ValidationError
from conftest import make_donation


def _payload(**overrides):
    now = utcnow()
    payload = {
        "food_name": "Fresh Sandwiches",
        "description": "50 sandwiches from the lunch buffet",
        "quantity": 50,
        "quantity_unit": "servings",
        "category": "Cooked Food",
        "allergens": ["Gluten", "Dairy"],
        "expiry_time": (now + timedelta(hours=6)).isoformat() + "Z",
        "pickup_address": "12 Allen Ave, Ikeja",
        "pickup_time_start": (now + timedelta(hours=1)).isoformat(),
        "pickup_time_end": (now + timedelta(hours=4)).isoformat()
    }
    payload.update(overrides)
    return payload


def _broken(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("index missing"))


# ==========================================
#  1. CREATE
# ==========================================

def test_create_donation_success(client, donor_user, donor_headers, ngo_user, other_ngo):
    response = client.post('/api/donations', json=_payload(), headers=donor_headers)

    assert response.status_code == 201
    donation = response.get_json()['donation']
    assert donation['status'] == 'available'
    assert donation['donor_name'] == "Mama Put Kitchen"
    assert donation['claimed_by'] is None
    # Pickup location defaults to the donor's profile
    assert donation['pickup_latitude'] == donor_user.latitude

    # Every NGO hears about it
    fanout = Notification.query.filter_by(type='new_donation').all()
    assert {n.user_id for n in fanout} == {ngo_user.id, other_ngo.id}
    assert "Fresh Sandwiches (50 servings)" in fanout[0].message
    assert all(n.related_donation_id == donation['id'] for n in fanout)


def test_create_donation_fanout_failure_is_silent(client, donor_headers, ngo_user, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("notifications store down")
    monkeypatch.setattr('services.donations.notify_all_ngos', explode)

    response = client.post('/api/donations', json=_payload(), headers=donor_headers)

    assert response.status_code == 201
    assert Donation.query.count() == 1
    assert Notification.query.count() == 0


def test_ngo_cannot_post(client, ngo_headers):
    response = client.post('/api/donations', json=_payload(), headers=ngo_headers)
    assert response.status_code == 403


@pytest.mark.parametrize("overrides,field", [
    ({"quantity": "lots"}, "quantity"),
    ({"quantity": 0}, "quantity"),
    ({"category": "Pizza"}, "category"),
    ({"food_name": ""}, "food_name"),
    ({"expiry_time": "tomorrow"}, "expiry_time"),
    ({"quantity": "nan"}, "quantity"),
    ({"quantity": "inf"}, "quantity"),
    ({"pickup_latitude": "abc"}, "pickup_latitude"),
    ({"pickup_latitude": 95}, "pickup_latitude"),
    ({"pickup_longitude": -200.5}, "pickup_longitude"),
    ({"allergens": [["Nuts"]]}, "allergens"),
    ({"allergens": "Nuts"}, "allergens"),
    ({"images": [{"url": "x.png"}]}, "images"),
])
def test_create_donation_validation(client, donor_headers, overrides, field):
    response = client.post('/api/donations', json=_payload(**overrides), headers=donor_headers)
    assert response.status_code == 400
    assert field in response.get_json()['errors']
    assert Donation.query.count() == 0


def test_nested_allergens_never_reach_the_feed(client, donor_headers, ngo_headers):
    rejected = client.post('/api/donations', json=_payload(allergens=[["Nuts"]]), headers=donor_headers)
    assert rejected.status_code == 400
    client.post('/api/donations', json=_payload(), headers=donor_headers)

    response = client.get('/api/donations?exclude_allergens=Nuts', headers=ngo_headers)
    assert response.status_code == 200
    assert len(response.get_json()['donations']) == 1


def test_create_accepts_numeric_strings(client, donor_headers):
    response = client.post('/api/donations', headers=donor_headers,
                           json=_payload(quantity="12.5", pickup_latitude="6.6", pickup_longitude="3.35"))
    donation = response.get_json()['donation']
    assert response.status_code == 201
    assert donation['quantity'] == 12.5
    assert donation['pickup_latitude'] == 6.6


def test_create_stores_naive_utc(client, donor_headers):
    client.post('/api/donations', json=_payload(expiry_time="2030-01-01T13:00:00+01:00"),
                headers=donor_headers)
    donation = Donation.query.first()
    assert donation.expiry_time.tzinfo is None
    assert donation.expiry_time.hour == 12


# ==========================================
#  2. UPDATE / DELETE
# ==========================================

def test_update_donation_rejects_unknown_field(app, donor_user):
    donation = make_donation(donor_user)
    with pytest.raises(ValidationError):
        store.update_donation(donation.id, {"colour": "red"})


def test_update_missing_donation(app):
    with pytest.raises(NotFound):
        store.update_donation(999, {"food_name": "x"})


def test_update_stamps_updated_at(app, donor_user):
    old = utcnow() - timedelta(days=1)
    donation = make_donation(donor_user, updated_at=old)
    store.update_donation(donation.id, {"quantity": 12})
    assert donation.updated_at > old
    assert donation.quantity == 12


def test_owner_edits_donation(client, donor_user, donor_headers):
    donation = make_donation(donor_user)
    response = client.put(f'/api/donations/{donation.id}', json={"quantity": 25}, headers=donor_headers)
    assert response.status_code == 200
    assert response.get_json()['donation']['quantity'] == 25


def test_non_owner_cannot_edit(client, donor_user, ngo_headers):
    donation = make_donation(donor_user)
    response = client.put(f'/api/donations/{donation.id}', json={"quantity": 25}, headers=ngo_headers)
    assert response.status_code == 403


def test_delete_available_donation(client, donor_user, donor_headers):
    donation = make_donation(donor_user)
    response = client.delete(f'/api/donations/{donation.id}', headers=donor_headers)
    assert response.status_code == 200
    assert db.session.get(Donation, donation.id) is None


def test_delete_claimed_donation_blocked(app, donor_user, ngo_user):
    donation = make_donation(donor_user, status='claimed', claimed_by=ngo_user.id)
    with pytest.raises(TransitionError):
        store.delete_donation(donation.id)


# ==========================================
#  3. READS & FALLBACK TIERS
# ==========================================

def test_reads_are_newest_first(app, donor_user):
    now = utcnow()
    older = make_donation(donor_user, food_name="Older", created_at=now - timedelta(hours=2))
    newer = make_donation(donor_user, food_name="Newer", created_at=now)
    middle = make_donation(donor_user, food_name="Middle", created_at=now - timedelta(hours=1))

    ids = [d.id for d in store.get_donations_by_donor(donor_user.id)]
    assert ids == [newer.id, middle.id, older.id]


def test_all_tiers_give_the_same_answer(app, donor_user, ngo_user, monkeypatch):
    now = utcnow()
    for i in range(4):
        make_donation(donor_user, food_name=f"Item {i}", created_at=now - timedelta(minutes=i))
    # Same timestamp: id breaks the tie
    make_donation(donor_user, food_name="Twin A", created_at=now)
    make_donation(donor_user, food_name="Twin B", created_at=now)
    make_donation(donor_user, status='claimed', claimed_by=ngo_user.id)

    ordered = [d.id for d in store.get_available_donations()]

    monkeypatch.setattr(store, '_ordered_query', _broken)
    unordered = [d.id for d in store.get_available_donations()]

    monkeypatch.setattr(store, '_unordered_query', _broken)
    scanned = [d.id for d in store.get_available_donations()]

    assert ordered == unordered == scanned
    assert len(ordered) == 6


def test_claimer_query_falls_back(app, donor_user, ngo_user, monkeypatch):
    make_donation(donor_user, status='claimed', claimed_by=ngo_user.id)
    make_donation(donor_user)
    monkeypatch.setattr(store, '_ordered_query', _broken)

    claims = store.get_donations_by_claimer(ngo_user.id)
    assert len(claims) == 1
    assert claims[0].claimed_by == ngo_user.id


def test_list_endpoint_degrades_to_error_banner(client, donor_user, donor_headers, monkeypatch):
    make_donation(donor_user)
    for tier in ('_ordered_query', '_unordered_query', '_scan_query'):
        monkeypatch.setattr(store, tier, _broken)

    response = client.get('/api/donations/mine', headers=donor_headers)
    data = response.get_json()

    assert response.status_code == 200
    assert data['donations'] == []
    assert "Failed to load" in data['error']


def test_get_donation_not_found(client, donor_headers):
    response = client.get('/api/donations/12345', headers=donor_headers)
    assert response.status_code == 404


def test_get_donation_lists_allowed_actions(client, donor_user, ngo_headers):
    donation = make_donation(donor_user)
    response = client.get(f'/api/donations/{donation.id}', headers=ngo_headers)
    assert response.get_json()['allowed_actions'] == ['claim']


def test_my_donations_status_filter(client, donor_user, donor_headers):
    make_donation(donor_user)
    make_donation(donor_user, status='cancelled')

    response = client.get('/api/donations/mine?status=cancelled', headers=donor_headers)
    donations = response.get_json()['donations']
    assert [d['status'] for d in donations] == ['cancelled']


def test_status_history_newest_first(app, donor_user, ngo_user):
    donation = make_donation(donor_user)
    first = store.add_status_history(donation.id, 'claimed', ngo_user.id, 'Save Lives NGO', 'Donation claimed')
    first.created_at = utcnow() - timedelta(minutes=5)
    db.session.commit()
    store.add_status_history(donation.id, 'on_the_way', ngo_user.id, 'Save Lives NGO')

    statuses = [h.status for h in store.get_status_history(donation.id)]
    assert statuses == ['on_the_way', 'claimed']
    assert StatusHistory.query.count() == 2


def test_donations_by_status(app, donor_user, ngo_user, monkeypatch):
    make_donation(donor_user, status='completed', claimed_by=ngo_user.id)
    make_donation(donor_user)
    monkeypatch.setattr(store, '_ordered_query', _broken)
    monkeypatch.setattr(store, '_unordered_query', _broken)

    completed = store.get_donations_by_status('completed')
    assert [d.status for d in completed] == ['completed']
