import pytest

from uwspubsub.asyncsocket import (
    AsyncSocket,
    LoopData,
    Transport,
    address_as_text,
)


def make_socket(capacity=None, remote=b"", loop=None):
    transport = Transport(remote=remote, capacity=capacity)
    return AsyncSocket(transport, loop if loop is not None else LoopData()), transport


def test_cork_buffer_holds_exactly_its_size():
    sock, transport = make_socket()
    sock.cork()
    data = b"y" * (16 * 1024)
    assert sock.write(data) == (len(data), False)
    assert transport.writes == []
    assert sock.is_corked()
    assert sock.uncork() == (0, False)
    assert bytes(transport.sent) == data


def test_address_as_text_ipv4():
    assert address_as_text(bytes([127, 0, 0, 1])) == "127.0.0.1"


def test_address_as_text_ipv6():
    raw = bytes(15) + b"\x01"
    text = address_as_text(raw)
    assert text.endswith(":0001")
    assert len(text.split(":")) == 8
    assert bytes.fromhex(text.replace(":", "")) == raw


def test_address_as_text_empty():
    assert address_as_text(b"") == ""


def test_address_as_text_bad_length():
    with pytest.raises(ValueError):
        address_as_text(b"\x01\x02\x03")


def test_remote_address_as_text():
    sock, _ = make_socket(remote=bytes([10, 1, 2, 3]))
    assert sock.remote_address() == bytes([10, 1, 2, 3])
    assert sock.remote_address_as_text() == "10.1.2.3"


def test_plain_write_goes_to_transport():
    sock, transport = make_socket()
    assert sock.write(b"hello") == (5, False)
    assert bytes(transport.sent) == b"hello"
    assert sock.buffered_amount() == 0


def test_corked_writes_are_batched():
    sock, transport = make_socket()
    sock.cork()
    assert sock.write(b"abc") == (3, False)
    assert sock.write(b"def") == (3, False)
    assert transport.writes == []
    assert sock.uncork() == (0, False)
    assert transport.writes == [b"abcdef"]
    assert not sock.is_corked()


def test_cork_overflow_uncorks_and_keeps_order():
    sock, transport = make_socket()
    sock.cork()
    sock.write(b"head")
    big = b"x" * LoopData.CORK_BUFFER_SIZE
    assert sock.write(big) == (len(big), False)
    assert not sock.is_corked()
    assert bytes(transport.sent) == b"head" + big


def test_backpressure_is_buffered_and_flushed():
    sock, transport = make_socket(capacity=3)
    assert sock.write(b"hello") == (5, True)
    assert sock.buffered_amount() == 2
    transport.capacity = None
    assert sock.write(b"!") == (1, False)
    assert bytes(transport.sent) == b"hello!"
    assert sock.buffered_amount() == 0


def test_optional_write_is_not_buffered():
    sock, transport = make_socket(capacity=3)
    assert sock.write(b"hello", optionally=True) == (3, True)
    assert sock.buffered_amount() == 0
    assert bytes(transport.sent) == b"hel"


def test_optional_write_blocked_by_existing_buffer():
    sock, transport = make_socket(capacity=1)
    sock.write(b"ab")
    assert sock.buffered_amount() == 1
    assert sock.write(b"zz", optionally=True) == (0, True)
    assert sock.buffered_amount() == 1


def test_mandatory_write_appends_behind_buffer():
    sock, transport = make_socket(capacity=1)
    sock.write(b"ab")
    assert sock.write(b"cd") == (2, True)
    assert sock.buffered_amount() == 3
    transport.capacity = None
    sock.write(b"")
    assert bytes(transport.sent) == b"abcd"


def test_closed_transport_fakes_success():
    sock, transport = make_socket()
    sock.close()
    assert sock.write(b"data") == (4, False)
    assert bytes(transport.sent) == b""


def test_uncork_when_not_corked():
    sock, _ = make_socket()
    assert sock.uncork(b"data") == (0, False)


def test_uncork_failure_buffers_corked_data():
    sock, transport = make_socket(capacity=0)
    sock.cork()
    sock.write(b"corked")
    assert sock.uncork() == (0, True)
    assert sock.buffered_amount() == len(b"corked")


def test_only_one_socket_corked_per_loop():
    loop = LoopData()
    a, _ = make_socket(loop=loop)
    b, _ = make_socket(loop=loop)
    assert a.can_cork()
    a.cork()
    assert a.is_corked()
    assert not b.can_cork()
    assert not b.is_corked()
    a.uncork()
    assert b.can_cork()


def test_timeout_and_shutdown_reach_transport():
    sock, transport = make_socket()
    sock.timeout(7)
    sock.shutdown()
    assert transport.timeout_seconds == 7
    assert transport.shut_down is True