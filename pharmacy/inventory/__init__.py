from flask import Blueprint

inventory = Blueprint('inventory', __name__)
batches   = Blueprint('batches', __name__)

from pharmacy.inventory import routes        # noqa: F401, E402
from pharmacy.inventory import batch_routes  # noqa: F401, E402
from pharmacy.inventory import models        # noqa: F401, E402  registers lots/batches/logs with SQLAlchemy
