class OperationFailed(Exception):
    """A read or write against the store failed. The cause is chained."""


class NotFound(Exception):
    pass


class PermissionDenied(Exception):
    pass


class TransitionError(Exception):
    """The donation is not in a state that allows the requested action."""


class ValidationError(Exception):
    def __init__(self, errors):
        self.errors = errors
        super().__init__(next(iter(errors.values())))


# Provider-style codes -> what the user sees
AUTH_ERROR_MESSAGES = {
    'invalid-email': 'Invalid email address format.',
    'invalid-credential': 'Invalid email or password.',
    'user-not-found': 'No account found with this email address.',
    'wrong-password': 'Incorrect password.',
    'email-already-in-use': 'An account with this email already exists.',
    'weak-password': 'Password must be at least 6 characters.',
    'too-many-requests': 'Too many attempts. Please try again in a few minutes.',
    'network-request-failed': 'Network error. Please check your internet connection.',
    'requires-recent-login': 'Please log out and log back in to perform this action.',
    'invalid-token': 'Invalid or expired link.',
}

AUTH_ERROR_STATUS = {
    'invalid-credential': 401,
    'wrong-password': 401,
    'user-not-found': 404,
    'too-many-requests': 429,
    'network-request-failed': 503,
}


class AuthError(Exception):
    def __init__(self, code, message=None):
        self.code = code
        self.status = AUTH_ERROR_STATUS.get(code, 400)
        super().__init__(message or AUTH_ERROR_MESSAGES.get(code, 'An error occurred. Please try again.'))
