from .sales import *  # noqa
from .inventory import *  # noqa
from .wms.allocation import *  # noqa
from .wms.tasking import *  # noqa
from .wms.pick_bin import *  # noqa

# Fulfillment event log
from app.events.log import *  # noqa
