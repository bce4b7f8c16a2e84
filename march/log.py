"""march 日志记录器."""

import logging

logger = logging.getLogger("march")
logger.addHandler(logging.NullHandler())
