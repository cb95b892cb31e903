"""
Background Connection Loop.

One task feeds the inbound handler and runs the periodic keep-alive check,
so the status and the four keep-alive timestamps are only ever touched from
that task (and from whoever awaits the manager on the same loop).
The loop ends on its own once the manager reports DISCONNECTED; an explicit
disconnect cancels it instead.
"""
import asyncio
import logging

from mqtt_link.client.connection import ConnectionManager
from mqtt_link.client.models import ConnectionStatus

logger = logging.getLogger(__name__)


async def run_connection_loop(manager: ConnectionManager, *, persistent: bool, keep_alive: int, interval: float = 1.0) -> ConnectionStatus:
    """
    Reads inbound packets and checks the keep-alive every `interval` seconds
    until the connection drops. Returns the final status.
    """
    logger.info("Connection loop started.")
    next_check = manager.clock()
    try:
        while True:
            status = await manager.process_inbound()
            if status is not ConnectionStatus.DISCONNECTED and manager.clock() >= next_check:
                status = await manager.check_keep_alive(persistent, keep_alive)
                next_check = manager.clock() + interval

            if status is ConnectionStatus.DISCONNECTED:
                logger.info("Connection loop stopped: connection is down.")
                return status

    except asyncio.CancelledError:
        logger.info("Connection loop has been cancelled.")
        raise
