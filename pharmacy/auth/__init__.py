from flask import Blueprint

auth = Blueprint('auth', __name__)

from pharmacy.auth import routes   # noqa: F401, E402
from pharmacy.auth import models   # noqa: F401, E402  registers User with SQLAlchemy
