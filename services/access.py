PUBLIC_PATHS = ('/', '/login', '/signup')

# Path prefix -> role required
ROLE_PREFIXES = {
    '/donor/': 'donor',
    '/ngo/': 'ngo',
}


def check_access(path, role=None):
    """
    Decide whether a viewer with `role` (None = signed out) may open `path`.

    Returns {'allowed': bool, 'redirect_target': str or None}.
    """
    path = path or '/'
    if path != '/':
        path = path.rstrip('/')

    if path in PUBLIC_PATHS:
        return {'allowed': True, 'redirect_target': None}

    if not role:
        return {'allowed': False, 'redirect_target': '/login'}

    for prefix, required in ROLE_PREFIXES.items():
        if path.startswith(prefix) or path == prefix.rstrip('/'):
            if role != required:
                return {'allowed': False, 'redirect_target': f'/{role}/dashboard'}
            break

    return {'allowed': True, 'redirect_target': None}
