"""
Main command-line entry point for pyxap.

Opens one XAP unit on a serial port, keeps its channel levels fresh and
serves the channel state over HTTP.
"""

import asyncio
import logging
import sys

from aiohttp import web

from pyxap.config import XapConfig, parse_config
from pyxap.device import Device
from pyxap.exceptions import ConfigurationError, XapError
from pyxap.listener import LoggingListener
from pyxap.registry import DeviceRegistry
from pyxap.server import create_app


async def serve(config: XapConfig):
    """Connect to the device and serve HTTP until interrupted."""
    logger = logging.getLogger("pyxap")
    logger.info(f"Connecting to XAP on {config.port}")

    listener = LoggingListener(logging.getLogger("pyxap.state")) if config.verbose else None
    device = await Device.open(
        config.port,
        baudrate=config.baudrate,
        device_id=config.device_id,
        device_type=config.device_type,
        inputs=config.inputs,
        outputs=config.outputs,
        read_timeout=config.read_timeout,
        listener=listener,
    )

    # The web UI addresses the device as slot 0
    registry = DeviceRegistry()
    registry.register(0, device)
    registry.freeze()

    runner = web.AppRunner(create_app(registry))
    try:
        device.start(config.heartbeat)
        await runner.setup()
        site = web.TCPSite(runner, config.http_host, config.http_port)
        await site.start()
        logger.info(f"Serving HTTP on {config.http_host}:{config.http_port}")
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
        registry.close()


def main() -> int:
    try:
        config = parse_config()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(serve(config))
    except XapError as e:
        logging.error(f"connection failed: {e}")
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
