"""TRACE log level, below DEBUG, for raw CDN API payloads.

Log with ``logger.log(TRACE, ...)``; enable with ``LOG_LEVEL=TRACE``.
"""

import logging

TRACE = 5

logging.addLevelName(TRACE, "TRACE")
