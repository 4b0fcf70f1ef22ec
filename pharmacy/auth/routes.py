from flask import jsonify, session, current_app
from pharmacy import db
from pharmacy.auth import auth
from pharmacy.auth.models import User
from pharmacy.auth.decorators import login_required
from pharmacy.errors import AuthenticationError, ValidationError
from pharmacy.utils.validation import request_data, text


@auth.route('/login', methods=['POST'])
def login():
    """Validate credentials and populate the session."""
    data = request_data()
    email = text(data, 'email').lower()
    password = data.get('password') or ''

    if not email or not password:
        raise ValidationError('Email and password are required.')
    if not isinstance(password, str):
        raise ValidationError('Password must be text.', details={'password': 'Password must be text.'})

    user = User.query.filter_by(email=email).first()

    if user is None or not user.check_password(password):
        # Same message for both cases; don't reveal which field was wrong
        current_app.logger.warning(f"Failed login attempt for email: {email}")
        raise AuthenticationError('Invalid email or password.')

    session.clear()
    session['user_id'] = user.id
    session['role']    = user.role.value
    session.permanent  = True  # respect PERMANENT_SESSION_LIFETIME

    current_app.logger.info(f"User {user.email} logged in successfully.")
    return jsonify({'message': f'Welcome back, {user.name}!', 'user': user.to_dict()})


@auth.route('/logout', methods=['POST'])
def logout():
    """Clear the session."""
    session.clear()
    return jsonify({'message': 'You have been logged out.'})


@auth.route('/me')
@login_required
def me():
    user = db.session.get(User, session['user_id'])
    if user is None:
        # Account removed while the cookie was still valid
        session.clear()
        raise AuthenticationError('Authentication required.')
    return jsonify(user.to_dict())
