"""HTTP access to registered devices.

Routes:
    GET  /                                   empty index
    GET  /{device}                           cached state of every channel as JSON
    ANY  /{device}/{group}/{channel}/gain    ?value=<int>, answers the new gain
    ANY  /{device}/{group}/{channel}/mute    ?value=<bool>, answers true/false

Failures are answered with status 500 and the error message as text.
"""

import logging
from typing import Callable

from aiohttp import web

from pyxap.device import Channel
from pyxap.exceptions import XapError
from pyxap.protocol import Group
from pyxap.registry import DeviceRegistry

logger = logging.getLogger(__name__)

REGISTRY_KEY = web.AppKey("registry", DeviceRegistry)

_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


def parse_bool(text: str) -> bool:
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean {text!r}")


def format_number(value: float) -> str:
    """Shortest round-trip text for a float, ``-12`` rather than ``-12.0``."""
    text = repr(value)
    return text[:-2] if text.endswith(".0") else text


@web.middleware
async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers["Access-Control-Allow-Origin"] = "*"
        raise
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    try:
        return await handler(request)
    except (XapError, ValueError) as e:
        logger.warning(f"{request.method} {request.path} failed: {e}")
        return web.Response(status=500, text=str(e))


def create_app(registry: DeviceRegistry) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[REGISTRY_KEY] = registry
    app.router.add_get("/", index_handler)
    app.router.add_route("*", "/{device}", state_handler)
    app.router.add_route("*", "/{device}/{group}/{channel}/gain", gain_handler)
    app.router.add_route("*", "/{device}/{group}/{channel}/mute", mute_handler)
    return app


def _parse_int(text: str, what: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"invalid {what} {text!r}") from None


def _device(request: web.Request):
    slot = _parse_int(request.match_info["device"], "device id")
    return request.app[REGISTRY_KEY].get(slot)


def _channel(request: web.Request) -> Channel:
    device = _device(request)
    group = Group.parse(request.match_info["group"])
    number = _parse_int(request.match_info["channel"], "channel")
    return device.channel(group, number)


async def _value(request: web.Request) -> str:
    value = request.query.get("value")
    if value is None and request.can_read_body:
        value = (await request.post()).get("value")
    if value is None:
        raise ValueError("missing value")
    return str(value)


async def index_handler(request: web.Request) -> web.Response:
    return web.Response()


async def state_handler(request: web.Request) -> web.Response:
    """/{device} - Cached state of every channel."""
    return web.json_response(_device(request).to_dict())


async def gain_handler(request: web.Request) -> web.Response:
    """/{device}/{group}/{channel}/gain?value=<int> - Set channel gain."""
    channel = _channel(request)
    value = _parse_int(await _value(request), "gain")
    gain = await channel.set_gain(value)
    return web.Response(text=format_number(gain))


async def mute_handler(request: web.Request) -> web.Response:
    """/{device}/{group}/{channel}/mute?value=<bool> - Mute or unmute a channel."""
    channel = _channel(request)
    mute = parse_bool(await _value(request))
    muted = await channel.mute(mute)
    return web.Response(text="true" if muted else "false")
