"""Tests for the asyncio serial link."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pyxap.exceptions import TransportError
from pyxap.protocol import XapLink, open_serial_link


def connected_link():
    transport = MagicMock()
    transport.is_closing.return_value = False
    transport.get_extra_info.return_value = MagicMock(name="serial")
    link = XapLink()
    link.connection_made(transport)
    return link, transport


class TestXapLink:

    def test_initially_disconnected(self):
        link = XapLink()
        assert link.connected is False
        with pytest.raises(TransportError):
            link.write(b"#50 VER\r\n")

    def test_write_goes_to_transport(self):
        link, transport = connected_link()
        link.write(b"#50 VER\r\n")
        transport.write.assert_called_once_with(b"#50 VER\r\n")

    def test_write_error_is_transport_error(self):
        link, transport = connected_link()
        transport.write.side_effect = OSError("I/O error")
        with pytest.raises(TransportError, match="I/O error"):
            link.write(b"#50 VER\r\n")

    @pytest.mark.asyncio
    async def test_read_returns_chunks_in_order(self):
        link, _ = connected_link()
        link.data_received(b"#50 ")
        link.data_received(b"VER 2.50\r\n")
        assert await link.read(0.1) == b"#50 "
        assert await link.read(0.1) == b"VER 2.50\r\n"

    @pytest.mark.asyncio
    async def test_read_timeout_is_zero_length(self):
        link, _ = connected_link()
        assert await link.read(0.01) == b""

    @pytest.mark.asyncio
    async def test_connection_lost_wakes_reader(self):
        link, _ = connected_link()
        reader = asyncio.ensure_future(link.read(1.0))
        await asyncio.sleep(0)
        link.connection_lost(OSError("device unplugged"))

        with pytest.raises(TransportError, match="device unplugged"):
            await reader
        with pytest.raises(TransportError):
            await link.read(0.01)
        with pytest.raises(TransportError):
            link.write(b"#50 VER\r\n")

    def test_discard_drops_stale_data(self):
        link, _ = connected_link()
        link.data_received(b"#50 MUTE 1 I 0\r\n")
        link.data_received(b"#50")
        assert link.discard() == 19
        assert link.discard() == 0

    def test_close(self):
        link, transport = connected_link()
        link.close()
        transport.close.assert_called_once()


class TestOpenSerialLink:

    @pytest.mark.asyncio
    async def test_opens_with_baudrate(self):
        link = XapLink()
        with patch("pyxap.protocol.serial_asyncio") as mock_serial:
            mock_serial.create_serial_connection = AsyncMock(return_value=(MagicMock(), link))
            result = await open_serial_link("/dev/ttyUSB0", 9600)

        assert result is link
        args, kwargs = mock_serial.create_serial_connection.call_args
        assert args[1] is XapLink
        assert args[2] == "/dev/ttyUSB0"
        assert kwargs == {"baudrate": 9600}

    @pytest.mark.asyncio
    async def test_open_failure(self):
        with patch("pyxap.protocol.serial_asyncio") as mock_serial:
            mock_serial.create_serial_connection = AsyncMock(side_effect=OSError("No such file"))
            with pytest.raises(TransportError, match="cannot open COM9"):
                await open_serial_link("COM9")
