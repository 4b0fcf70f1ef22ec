from flask import Blueprint

sales = Blueprint('sales', __name__)

from pharmacy.sales import routes  # noqa: F401, E402
from pharmacy.sales import models  # noqa: F401, E402  registers Sale/SaleItem with SQLAlchemy
