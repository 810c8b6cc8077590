"""CLI framing tests: response parsing and command encoding."""

import io

import pytest

from varnishtest.errors import ChannelError, ProtocolError
from varnishtest.framework.cli_frame import (
    CliReader,
    CliStatus,
    CliWriter,
    encode_command,
    heredoc_token,
    parse_header,
    quote_arg,
)
from varnishtest.framework.cli_test_helper import ChunkedStream


def test_reads_status_and_body_without_delimiter():
    reader = CliReader(io.BytesIO(b"200 13\nHello, world!\n"))
    msg = reader.read_message()
    assert msg.status == 200
    assert msg.body == b"Hello, world!"
    assert msg.ok


def test_padded_header_from_varnishd():
    """varnishd pads both header fields with spaces."""
    reader = CliReader(io.BytesIO(b"107 59      \n" + b"a" * 59 + b"\n"))
    msg = reader.read_message()
    assert msg.status == CliStatus.AUTH
    assert len(msg.body) == 59


def test_body_split_across_reads_is_reassembled():
    stream = ChunkedStream([b"200 13\nHel", b"lo, wor", b"ld!\n"])
    msg = CliReader(stream).read_message()
    assert msg.body == b"Hello, world!"
    assert stream.reads == 3


def test_one_byte_at_a_time():
    data = b"200 13\nHello, world!\n"
    stream = ChunkedStream([bytes([b]) for b in data])
    msg = CliReader(stream).read_message()
    assert (msg.status, msg.body) == (200, b"Hello, world!")


def test_body_with_embedded_newlines_and_binary():
    body = b"line1\nline2\n\x00\xff"
    data = b"200 %d\n" % len(body) + body + b"\n"
    assert CliReader(io.BytesIO(data)).read_message().body == body


def test_consecutive_messages_from_one_buffer():
    reader = CliReader(io.BytesIO(b"200 2\nok\n101 3\nbad\n"))
    first = reader.read_message()
    second = reader.read_message()
    assert (first.status, first.body) == (200, b"ok")
    assert (second.status, second.body) == (101, b"bad")


def test_empty_body():
    msg = CliReader(io.BytesIO(b"200 0\n\n")).read_message()
    assert msg.body == b""


@pytest.mark.parametrize("header", [b"abc 12", b"200", b"200 12 3", b"200 -1", b"", b"2x0 1"])
def test_malformed_header(header):
    with pytest.raises(ProtocolError):
        parse_header(header)


def test_header_without_newline_is_protocol_error():
    with pytest.raises(ProtocolError):
        CliReader(io.BytesIO(b"2" * 100)).read_message()


def test_truncated_header_is_protocol_error():
    with pytest.raises(ProtocolError):
        CliReader(io.BytesIO(b"200 1")).read_message()


def test_eof_before_message_is_channel_error():
    with pytest.raises(ChannelError):
        CliReader(io.BytesIO(b"")).read_message()


def test_eof_mid_body_is_channel_error():
    with pytest.raises(ChannelError):
        CliReader(io.BytesIO(b"200 13\nHello")).read_message()


def test_channel_error_is_an_ioerror():
    with pytest.raises(IOError):
        CliReader(io.BytesIO(b"")).read_message()


def test_missing_trailing_delimiter():
    with pytest.raises(ProtocolError):
        CliReader(io.BytesIO(b"200 2\nokX")).read_message()


def test_transport_failure_is_channel_error():
    class Broken:
        def read(self, n):
            raise ConnectionResetError("reset by peer")

    with pytest.raises(ChannelError, match="reset by peer"):
        CliReader(Broken()).read_message()


def test_encode_simple_command():
    assert encode_command(["vcl.use", "vcl1"]) == b"vcl.use vcl1\n"


def test_encode_heredoc_body():
    data = encode_command(["vcl.inline", "vcl1"], body="vcl 4.1;\nbackend default none;")
    assert data == (
        b"vcl.inline vcl1 << XXYYZZ\n"
        b"vcl 4.1;\nbackend default none;\n"
        b"XXYYZZ\n"
    )


def test_heredoc_token_avoids_collision():
    assert heredoc_token("a\nXXYYZZ\nb") == "XXYYZZZ"
    assert heredoc_token("no clash XXYYZZ here") == "XXYYZZ"


def test_quote_arg():
    assert quote_arg("plain") == "plain"
    assert quote_arg("") == '""'
    assert quote_arg("/tmp/my vcl.vcl") == '"/tmp/my vcl.vcl"'
    assert quote_arg('say "hi"\n') == '"say \\"hi\\"\\n"'


def test_encode_empty_command_rejected():
    with pytest.raises(ProtocolError):
        encode_command([])


def test_writer_issues_single_write():
    class Recorder(io.BytesIO):
        writes = 0

        def write(self, data):
            Recorder.writes += 1
            return super().write(data)

    out = Recorder()
    CliWriter(out).write_command(["vcl.inline", "vcl1"], body="x\ny")
    assert Recorder.writes == 1
    assert out.getvalue() == b"vcl.inline vcl1 << XXYYZZ\nx\ny\nXXYYZZ\n"


def test_writer_failure_is_channel_error():
    class Broken:
        def write(self, data):
            raise BrokenPipeError("broken pipe")

        def flush(self):
            pass

    with pytest.raises(ChannelError):
        CliWriter(Broken()).write_command(["status"])
