"""Tests for XAP frame encoding and response decoding."""

import pytest

from pyxap.exceptions import (
    ConfigurationError,
    DeviceError,
    InvalidResponseError,
    NoResponseError,
    TransportError,
)
from pyxap.protocol import (
    RECEIVE_BUFFER_SIZE,
    DeviceType,
    Group,
    ResponseReader,
    decode_response,
    encode_command,
    parse_fields,
    parse_number,
    strip_echo,
)


class TestEncodeCommand:

    def test_command_without_arguments(self):
        assert encode_command(DeviceType.XAP800, 0, "VER") == b"#50 VER\r\n"

    def test_arguments_are_space_joined_in_order(self):
        frame = encode_command(DeviceType.XAP400, 3, "GAIN", "2", "O", "-12.500000", "A")
        assert frame == b"#73 GAIN 2 O -12.500000 A\r\n"

    def test_empty_argument_is_a_placeholder(self):
        assert encode_command(DeviceType.XAP800, 1, "MUTE", "4", "I", "") == b"#51 MUTE 4 I \r\n"

    @pytest.mark.parametrize("device_id", [-1, 8, 10])
    def test_device_id_must_fit_three_bits(self, device_id):
        with pytest.raises(ConfigurationError):
            encode_command(DeviceType.XAP800, device_id, "VER")


class TestDecodeResponse:

    def test_payload_follows_header(self):
        assert decode_response(b"#50 MUTE 1 I 1\r\n") == "MUTE 1 I 1"

    def test_device_error_message(self):
        with pytest.raises(DeviceError) as info:
            decode_response(b"#55 ERROR bad channel\r\n")
        assert info.value.message == "bad channel"
        assert str(info.value) == "bad channel"

    def test_device_error_wins_over_tokens_before_it(self):
        with pytest.raises(DeviceError) as info:
            decode_response(b"#55 GAIN 1 I 0.00 ERROR out of range\r\n")
        assert info.value.message == "out of range"

    def test_no_marker_before_timeout_is_no_response(self):
        with pytest.raises(NoResponseError) as info:
            decode_response(b"garbage\r\n")
        assert str(info.value) == "no response"

    def test_no_response_is_a_transport_error(self):
        with pytest.raises(TransportError):
            decode_response(b"")

    def test_null_byte_terminates(self):
        assert decode_response(b"#50 VER 2.50\x00trailing") == "VER 2.50"

    def test_null_byte_without_marker_is_no_response(self):
        with pytest.raises(NoResponseError):
            decode_response(b"\x00#50 VER 2.50\r\n")

    def test_noise_before_marker_is_skipped(self):
        assert decode_response(b"\r\n  #50 UID 0x1A2B\r\n") == "UID 0x1A2B"

    def test_timeout_after_partial_frame_returns_partial_payload(self):
        assert decode_response(b"#50 LVL 1 I") == "LVL 1 I"


class TestResponseReader:

    def test_frame_split_across_chunks(self):
        reader = ResponseReader()
        assert reader.feed(b"#5") is False
        assert reader.feed(b"0 GAIN 1 ") is False
        assert reader.feed(b"I 3.00 A\r\nextra") is True
        assert reader.payload() == "GAIN 1 I 3.00 A"

    def test_newline_before_marker_does_not_terminate(self):
        reader = ResponseReader()
        assert reader.feed(b"\r\n") is False
        assert reader.feed(b"#50 MUTE 2 O 0\r\n") is True
        assert reader.payload() == "MUTE 2 O 0"

    def test_zero_length_read_terminates(self):
        reader = ResponseReader()
        reader.feed(b"#50 VER")
        assert reader.feed(b"") is True
        assert reader.complete

    def test_full_buffer_terminates(self):
        reader = ResponseReader()
        done = reader.feed(b"#50 " + b"x" * (RECEIVE_BUFFER_SIZE * 2))
        assert done is True
        assert reader.payload() == "x" * (RECEIVE_BUFFER_SIZE - 4)

    def test_feed_after_completion_is_ignored(self):
        reader = ResponseReader()
        reader.feed(b"#50 MUTE 1 I 1\n")
        reader.feed(b"#50 MUTE 2 I 0\n")
        assert reader.payload() == "MUTE 1 I 1"


class TestParseFields:

    @pytest.mark.parametrize("payload, command", [
        ("MUTE 1 I 1", "MUTE"),
        ("LABEL 1 I Podium 0", "LABEL"),
        ("GAIN 1 I -3.50 A", "GAIN"),
        ("LVL 1 I A -40.00", "LVL"),
    ])
    def test_expected_token_counts(self, payload, command):
        assert parse_fields(payload, command) == payload.split(" ")

    def test_token_count_mismatch(self):
        with pytest.raises(InvalidResponseError) as info:
            parse_fields("GAIN 1 I -3.50", "GAIN")
        assert str(info.value) == "invalid response"

    def test_parse_number_rejects_text(self):
        assert parse_number("-3.5") == -3.5
        with pytest.raises(InvalidResponseError):
            parse_number("loud")

    def test_strip_echo(self):
        assert strip_echo("VER 2.50", "VER") == "2.50"
        assert strip_echo("2.50", "VER") == "2.50"


class TestDeviceType:

    @pytest.mark.parametrize("device_type, inputs, outputs", [
        (DeviceType.XAP800, 12, 12),
        (DeviceType.XAP400, 8, 9),
        (DeviceType.XAPTH2, 0, 0),
        (DeviceType.PSR1212, -1, -1),
    ])
    def test_capabilities(self, device_type, inputs, outputs):
        assert device_type.inputs == inputs
        assert device_type.outputs == outputs

    def test_wire_digit(self):
        assert int(DeviceType.XAP800) == 5

    def test_parse(self):
        assert DeviceType.parse("xap400") is DeviceType.XAP400
        with pytest.raises(ConfigurationError):
            DeviceType.parse("XAP9000")


class TestGroup:

    @pytest.mark.parametrize("text, group", [
        ("I", Group.INPUT), ("i", Group.INPUT), ("input", Group.INPUT),
        ("O", Group.OUTPUT), ("Output", Group.OUTPUT),
    ])
    def test_parse(self, text, group):
        assert Group.parse(text) is group

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            Group.parse("X")

    def test_label(self):
        assert Group.INPUT.label == "input"
        assert Group.OUTPUT.label == "output"
