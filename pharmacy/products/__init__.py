from flask import Blueprint

products = Blueprint('products', __name__)

from pharmacy.products import routes  # noqa: F401, E402
from pharmacy.products import models  # noqa: F401, E402  registers Product with SQLAlchemy
