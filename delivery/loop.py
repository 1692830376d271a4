"""
Fixed-interval polling loop shared by the worker commands.
"""

import logging
import time

from django.db import close_old_connections

logger = logging.getLogger(__name__)


def run_loop(name, tick, interval, heartbeat_interval, once=False,
             sleep=time.sleep, clock=time.monotonic):
    """
    Call ``tick`` every ``interval`` seconds until interrupted.

    A failing tick is logged and the loop carries on. With ``once`` the
    loop runs a single tick and returns its result.
    """
    logger.info(f"{name} started")
    last_heartbeat = clock()
    while True:
        close_old_connections()
        result = None
        try:
            result = tick()
        except Exception as e:
            logger.error(f"{name} tick error: {str(e)}", exc_info=True)

        if once:
            return result

        if clock() - last_heartbeat >= heartbeat_interval:
            logger.info(f"{name} heartbeat")
            last_heartbeat = clock()
        sleep(interval)
