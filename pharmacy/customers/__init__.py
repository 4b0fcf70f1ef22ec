from flask import Blueprint

customers = Blueprint('customers', __name__)

from pharmacy.customers import routes  # noqa: F401, E402
from pharmacy.customers import models  # noqa: F401, E402  registers Customer with SQLAlchemy
