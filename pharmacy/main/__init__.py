from flask import Blueprint

main = Blueprint('main', __name__)

from pharmacy.main import routes   # noqa: F401, E402
from pharmacy.main import reports  # noqa: F401, E402
