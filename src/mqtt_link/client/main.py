"""
Main entry point for a standalone mqtt_link client.

This module is responsible for:
- Parsing configuration (from a YAML file).
- Building the ConnectionManager and its collaborators.
- Connecting, running the background connection loop and reconnecting
  when the link drops.
- Disconnecting gracefully on SIGINT/SIGTERM.
"""

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from mqtt_link.client.connection import ConnectionManager
from mqtt_link.client.handler import InboundHandler
from mqtt_link.client.keepalive import run_connection_loop
from mqtt_link.client.models import ConnectionSettings, ConnectionStatus
from mqtt_link.client.publisher import Publisher
from mqtt_link.config_loader import load_config, load_settings

def setup_logging():
    """
    Configures the global logging settings for the entire application.
    This should be called as early as possible during startup.
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)-8s] %(name)s.%(funcName)s: %(message)s'
    )

logger = logging.getLogger(__name__)

def build_manager(settings: ConnectionSettings) -> ConnectionManager:
    """Wires a ConnectionManager with the default collaborators."""
    handler = InboundHandler(poll_timeout=settings.poll_timeout)
    return ConnectionManager(
        settings.host,
        settings.port,
        use_tls=settings.use_tls,
        tls_context=settings.tls_context(),
        handshake_timeout=settings.handshake_timeout,
        connect_timeout=settings.connect_timeout,
        handler=handler,
    )

async def run_client(settings: ConnectionSettings,
                     stop_event: asyncio.Event,
                     manager: Optional[ConnectionManager] = None,
                     publisher: Optional[Publisher] = None):
    """
    Keeps one connection alive until `stop_event` is set.
    The first connect must succeed (HandshakeTimeout propagates); later ones are
    reconnect attempts retried every `reconnect_delay` seconds.
    """
    manager = manager or build_manager(settings)
    publisher = publisher or Publisher()
    loop_task: Optional[asyncio.Task] = None
    is_reconnect = False

    try:
        while not stop_event.is_set():
            status = await manager.connect(settings.session, is_reconnect=is_reconnect)
            is_reconnect = True

            if status is ConnectionStatus.CONNECTED:
                loop_task = asyncio.create_task(run_connection_loop(
                    manager,
                    persistent=settings.persistent,
                    keep_alive=settings.session.keep_alive,
                    interval=settings.keep_alive_interval,
                ))
                stop_task = asyncio.create_task(stop_event.wait())
                done, _ = await asyncio.wait({loop_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
                if stop_task in done:
                    break
                stop_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await stop_task
                # The link dropped on its own: forced teardown, then retry
                await manager.disconnect(publisher, explicit=False)

            logger.error(f"Connection to {settings.host} lost. Retrying in {settings.reconnect_delay}s...")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=settings.reconnect_delay)
            except TimeoutError:
                pass
    finally:
        await manager.disconnect(publisher, explicit=True, background_task=loop_task)
        logger.info("Client stopped.")

async def main_application_runner(config_path: str = "config.yaml"):
    setup_logging()
    logger.info("Starting mqtt_link client...")

    config = load_config(config_path)
    settings = load_settings(config)

    # Ctrl+C / SIGTERM only set the event; run_client does the ordered teardown
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await run_client(settings, stop_event)

if __name__ == "__main__":
    try:
        asyncio.run(main_application_runner())
    except KeyboardInterrupt:
        pass
