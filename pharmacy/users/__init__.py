from flask import Blueprint

users = Blueprint('users', __name__)

from pharmacy.users import routes  # noqa: F401, E402
