"""
pharmacy/users/routes.py
────────────────────────
Admin-only user management plus a self-service profile for any user.
"""
from flask import current_app, jsonify, session
from sqlalchemy.exc import IntegrityError

from pharmacy import db
from pharmacy.auth.decorators import admin_required, login_required
from pharmacy.auth.models import RoleEnum, User
from pharmacy.errors import (
    AuthenticationError, ConflictError, NotFoundError, ValidationError, raise_if_errors,
)
from pharmacy.guards import blocked_response, user_delete_blockers
from pharmacy.users import users
from pharmacy.utils.pagination import paginate
from pharmacy.utils.validation import check_choice, check_email, check_text, request_data, text

ROLES = [r.value for r in RoleEnum]
MIN_PASSWORD_LENGTH = 6


def _validate(data: dict, creating: bool, allow_role: bool = True) -> dict:
    errors = {}
    check_text(errors, data, 'name', 'Name', max_len=120)
    check_email(errors, data, 'email', 'Email')
    password = data.get('password') or ''
    if not isinstance(password, str):
        errors['password'] = 'Password must be text.'
    elif creating and not password:
        errors['password'] = 'Password is required.'
    elif password and len(password) < MIN_PASSWORD_LENGTH:
        errors['password'] = f'Password must be at least {MIN_PASSWORD_LENGTH} characters.'
    if allow_role:
        check_choice(errors, data, 'role', 'Role', ROLES)
    return errors


def _email_taken(email: str, exclude_id=None) -> bool:
    query = User.query.filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def _duplicate_email(email):
    return ConflictError('A user with this email already exists.', details={'email': email})


def _get_or_404(user_id) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f'User {user_id} not found.')
    return user


def _apply(user: User, data: dict, allow_role: bool) -> None:
    user.name = text(data, 'name')
    user.email = text(data, 'email').lower()
    if allow_role and text(data, 'role'):
        user.role = RoleEnum(text(data, 'role'))
    if data.get('password'):
        user.set_password(data['password'])


def _commit_user(user: User) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise _duplicate_email(user.email)


# ── PROFILE (any logged-in user) ──────────────────────────────────────────────

@users.route('/profile')
@login_required
def profile():
    user = db.session.get(User, session['user_id'])
    if user is None:
        session.clear()
        raise AuthenticationError('Authentication required.')
    return jsonify(user.to_dict())


@users.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    """Update own name, email and (optionally) password. Role is not editable here."""
    user = db.session.get(User, session['user_id'])
    if user is None:
        session.clear()
        raise AuthenticationError('Authentication required.')

    data = request_data()
    raise_if_errors(_validate(data, creating=False, allow_role=False))
    if _email_taken(text(data, 'email').lower(), exclude_id=user.id):
        raise _duplicate_email(text(data, 'email').lower())

    _apply(user, data, allow_role=False)
    _commit_user(user)
    current_app.logger.info(f"User {user.email} updated their profile.")
    return jsonify(user.to_dict())


# ── ADMIN CRUD ────────────────────────────────────────────────────────────────

@users.route('')
@admin_required
def index():
    return jsonify(paginate(User.query.order_by(User.name.asc(), User.id.asc()), User.to_dict))


@users.route('', methods=['POST'])
@admin_required
def create():
    data = request_data()
    raise_if_errors(_validate(data, creating=True))
    email = text(data, 'email').lower()
    if _email_taken(email):
        raise _duplicate_email(email)

    user = User(role=RoleEnum.staff)
    _apply(user, data, allow_role=True)
    db.session.add(user)
    _commit_user(user)

    current_app.logger.info(f"User created: {user.email} role={user.role.value}")
    return jsonify(user.to_dict()), 201


@users.route('/<int:user_id>')
@admin_required
def detail(user_id):
    return jsonify(_get_or_404(user_id).to_dict())


@users.route('/<int:user_id>', methods=['PUT'])
@admin_required
def update(user_id):
    user = _get_or_404(user_id)
    data = request_data()
    raise_if_errors(_validate(data, creating=False))
    email = text(data, 'email').lower()
    if _email_taken(email, exclude_id=user.id):
        raise _duplicate_email(email)

    if user.id == session['user_id'] and text(data, 'role') and text(data, 'role') != RoleEnum.admin.value:
        raise ValidationError('You cannot remove your own admin role.', details={'role': 'Cannot demote yourself.'})

    _apply(user, data, allow_role=True)
    _commit_user(user)
    current_app.logger.info(f"User updated: {user.email} role={user.role.value}")
    return jsonify(user.to_dict())


@users.route('/<int:user_id>', methods=['DELETE'])
@admin_required
def delete(user_id):
    user = _get_or_404(user_id)
    if user.id == session['user_id']:
        raise ValidationError('You cannot delete your own account.')

    blockers = user_delete_blockers(user.id)
    if blockers:
        return blocked_response('user', user.id, blockers)

    email = user.email
    db.session.delete(user)
    db.session.commit()
    current_app.logger.info(f"User deleted: {email}")
    return jsonify({'message': 'User deleted successfully.'})
