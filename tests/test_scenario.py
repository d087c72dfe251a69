from datetime import timedelta
from models import utcnow


def test_donation_from_post_to_delivery(client, donor_user, ngo_user, donor_headers, ngo_headers):
    """A donor posts food, an NGO finds it, claims it and delivers it."""
    now = utcnow()
    posted = client.post('/api/donations', headers=donor_headers, json={
        "food_name": "Party Jollof",
        "description": "Leftover trays from an event",
        "quantity": 30,
        "quantity_unit": "servings",
        "category": "Cooked Food",
        "allergens": ["None"],
        "expiry_time": (now + timedelta(hours=5)).isoformat(),
        "pickup_address": "12 Allen Ave, Ikeja"
    })
    donation_id = posted.get_json()['donation']['id']
    far = client.post('/api/donations', headers=donor_headers, json={
        "food_name": "Jollof Trays",
        "quantity": 10,
        "quantity_unit": "trays",
        "category": "Cooked Food",
        "expiry_time": (now + timedelta(hours=5)).isoformat(),
        "pickup_address": "Abeokuta Road",
        "pickup_latitude": 7.05,
        "pickup_longitude": 3.35
    }).get_json()['donation']['id']

    # NGO was told about it and can find it nearby
    inbox = client.get('/api/notifications', headers=ngo_headers).get_json()
    assert inbox['notifications'][0]['type'] == 'new_donation'
    feed = client.get('/api/donations?search=jollof', headers=ngo_headers).get_json()['donations']
    assert [d['id'] for d in feed] == [donation_id]
    assert feed[0]['distance_label'].endswith('km')

    # A wider radius brings in the farther one, nearest first
    wide = client.get('/api/donations?search=jollof&max_distance=100&sort=nearest',
                      headers=ngo_headers).get_json()['donations']
    assert [d['id'] for d in wide] == [donation_id, far]
    assert wide[1]['distance_km'] - wide[0]['distance_km'] > 45

    assert client.post(f'/api/donations/{donation_id}/claim', headers=ngo_headers).status_code == 200
    for action in ('en_route', 'collect', 'deliver'):
        response = client.post(f'/api/donations/{donation_id}/status', headers=ngo_headers,
                               json={"action": action})
        assert response.status_code == 200

    detail = client.get(f'/api/donations/{donation_id}', headers=donor_headers).get_json()
    assert detail['status'] == 'completed'
    assert detail['claimed_by'] == ngo_user.id

    # Donor saw every step
    donor_inbox = client.get('/api/notifications', headers=donor_headers).get_json()
    assert donor_inbox['unread_count'] == 4
    assert donor_inbox['notifications'][-1]['type'] == 'donation_claimed'

    history = client.get(f'/api/donations/{donation_id}/history', headers=donor_headers).get_json()
    assert len(history['history']) == 4

    # No longer on the feed, counted in the public numbers
    remaining = client.get('/api/donations?max_distance=100', headers=ngo_headers).get_json()['donations']
    assert [d['id'] for d in remaining] == [far]
    stats = client.get('/api/statistics').get_json()
    assert stats['completed_donations'] == 1
    assert stats['total_meals_served'] == 30
    assert stats['total_donations'] == 2
    assert stats['success_rate'] == 50

    claims = client.get('/api/claims', headers=ngo_headers).get_json()['donations']
    assert claims[0]['status'] == 'completed'
