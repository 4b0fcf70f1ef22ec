"""
pharmacy/auth/decorators.py
---------------------------
Reusable route-protection decorators.
Usage:
    from pharmacy.auth.decorators import login_required, admin_required

    @sales.route('', methods=['POST'])
    @login_required
    def create_sale():
        ...

    @users.route('')
    @admin_required
    def list_users():
        ...
"""
from functools import wraps
from flask import session

from pharmacy import db
from pharmacy.auth.models import User
from pharmacy.errors import AuthenticationError, AuthorizationError


def login_required(f):
    """
    Reject the request with 401 if the user is not authenticated.
    Checks for 'user_id' key in the Flask session.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        if 'user_id' not in session:
            raise AuthenticationError('Authentication required.')
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    """
    Allow access only to users whose stored role is 'admin'.
    Unauthenticated callers get 401, authenticated non-admins get 403.
    The role is read from the database on every request, so a demotion
    takes effect without a new login.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        if 'user_id' not in session:
            raise AuthenticationError('Authentication required.')
        user = db.session.get(User, session['user_id'])
        if user is None:
            session.clear()
            raise AuthenticationError('Authentication required.')
        if not user.is_admin:
            raise AuthorizationError('Admin access required.')
        return f(*args, **kwargs)
    return decorated
