import math
import requests
from flask import current_app

EARTH_RADIUS_KM = 6371


def calculate_distance(lat1, lon1, lat2, lon2):
    """Great-circle (haversine) distance in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def format_distance(km):
    if km < 1:
        return f"{round(km * 1000)}m"
    return f"{km:.1f}km"


def reverse_geocode(lat, lon):
    """
    Coordinates -> human readable address via Nominatim.
    Returns None on any failure; callers keep the bare coordinates.
    """
    params = {
        'lat': lat,
        'lon': lon,
        'format': 'json',
        'addressdetails': 1
    }
    headers = {
        'User-Agent': current_app.config.get('GEOCODER_USER_AGENT', 'foodshare/1.0')
    }
    try:
        response = requests.get(
            current_app.config['GEOCODER_URL'],
            params=params,
            headers=headers,
            timeout=current_app.config.get('GEOCODER_TIMEOUT', 10)
        )
        if response.status_code == 200:
            return response.json().get('display_name') or None
        current_app.logger.warning("Reverse geocoding returned HTTP %s", response.status_code)
    except (requests.RequestException, ValueError) as e:
        current_app.logger.warning("Reverse geocoding failed: %s", e)
    return None
