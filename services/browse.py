"""
Filter and sort pipeline behind the NGO "browse donations" page.

Order is fixed: text search, category, allergen exclusion, then distance
(only when the viewer's coordinates are known), then sort.
"""
from services.fallback import newest_first
from services.geo import calculate_distance, format_distance

CATEGORIES = ['Cooked Food', 'Raw Ingredients', 'Packaged Food', 'Baked Goods', 'Beverages',
              'Fruits & Vegetables', 'Dairy Products', 'Other']
ALLERGENS = ['None', 'Nuts', 'Dairy', 'Gluten', 'Soy', 'Eggs', 'Seafood', 'Shellfish']
DISTANCE_OPTIONS = [5, 10, 25, 50, 100]
DEFAULT_DISTANCE_KM = 50
SORT_OPTIONS = ['nearest', 'expiring', 'quantity', 'recent']


def matches_search(donation, search):
    if not search:
        return True
    needle = search.lower()
    return needle in (donation.food_name or '').lower() or needle in (donation.description or '').lower()


def matches_category(donation, category):
    return not category or category == 'All' or donation.category == category


def matches_allergens(donation, exclude_allergens):
    """'None' is a marker, never a reason to hide a donation."""
    if not exclude_allergens:
        return True
    excluded = set(exclude_allergens) - {'None'}
    return not any(a in excluded for a in (donation.allergens or []))


def _sort(rows, sort_by, has_viewer):
    if sort_by == 'nearest' and not has_viewer:
        sort_by = 'recent'

    if sort_by == 'nearest':
        # Unknown distance sorts last
        return sorted(rows, key=lambda r: (r[1] is None, r[1] or 0))
    if sort_by == 'expiring':
        return sorted(rows, key=lambda r: (r[0].expiry_time is None, r[0].expiry_time or 0))
    if sort_by == 'quantity':
        return sorted(rows, key=lambda r: -(r[0].quantity or 0))

    order = {d.id: i for i, d in enumerate(newest_first([r[0] for r in rows]))}
    return sorted(rows, key=lambda r: order[r[0].id])


def browse_donations(donations, viewer_lat=None, viewer_lon=None, search='', category='All',
                     exclude_allergens=None, max_distance_km=DEFAULT_DISTANCE_KM, sort_by='nearest'):
    """Returns donation dicts with `distance_km` / `distance_label` added."""
    if sort_by not in SORT_OPTIONS:
        sort_by = 'nearest'

    has_viewer = viewer_lat is not None and viewer_lon is not None

    rows = []
    for donation in donations:
        if not matches_search(donation, search):
            continue
        if not matches_category(donation, category):
            continue
        if not matches_allergens(donation, exclude_allergens):
            continue

        distance = None
        if has_viewer and donation.pickup_latitude is not None and donation.pickup_longitude is not None:
            distance = calculate_distance(viewer_lat, viewer_lon,
                                          donation.pickup_latitude, donation.pickup_longitude)
            if max_distance_km is not None and distance > max_distance_km:
                continue
        rows.append((donation, distance))

    results = []
    for donation, distance in _sort(rows, sort_by, has_viewer):
        record = donation.to_dict()
        record['distance_km'] = round(distance, 2) if distance is not None else None
        record['distance_label'] = format_distance(distance) if distance is not None else None
        results.append(record)
    return results
