import io

import pytest
import zmq

from zguide.kvmsg import KVMsg


@pytest.fixture
def sockets():
    context = zmq.Context()
    output = context.socket(zmq.DEALER)
    output.linger = 0
    output.bind("inproc://kvmsg_selftest")
    input_ = context.socket(zmq.DEALER)
    input_.linger = 0
    input_.rcvtimeo = 5000
    input_.connect("inproc://kvmsg_selftest")
    yield output, input_
    input_.close()
    output.close()
    context.term()


def test_send_and_receive_simple_message(sockets):
    output, input_ = sockets
    kvmap = {}

    msg = KVMsg(1)
    msg.key = "key"
    msg.set_uuid()
    msg.body = b"body"
    msg.dump(io.StringIO())
    msg.send(output)
    msg.store(kvmap)
    assert kvmap["key"] is msg

    received = KVMsg.recv(input_)
    received.dump(io.StringIO())
    assert received.key == "key"
    assert received.uuid == msg.uuid
    received.store(kvmap)
    assert kvmap["key"] is received


def test_send_and_receive_message_with_properties(sockets):
    output, input_ = sockets

    msg = KVMsg(2)
    msg.set_prop("prop1", "value1")
    msg.set_prop("prop2", "value1")
    msg.set_prop("prop2", "value2")
    msg.key = "key"
    msg.set_uuid()
    msg.body = b"body"
    assert msg.get_prop("prop2") == "value2"
    msg.dump(io.StringIO())
    msg.send(output)

    received = KVMsg.recv(input_)
    assert received.key == "key"
    assert received.get_prop("prop2") == "value2"
    assert received.get_prop("prop1") == "value1"
    assert received.sequence == 2
    assert received == msg


def test_properties_frame_encoding():
    msg = KVMsg(2)
    msg.set_prop("prop1", "value1")
    msg.set_prop("prop2", "value1")
    msg.set_prop("prop2", "value2")
    assert msg.to_frames()[3] == b"prop1=value1\nprop2=value2\n"


def test_set_prop_rejects_equals_in_name():
    with pytest.raises(ValueError):
        KVMsg(1).set_prop("a=b", "value")


def test_get_prop_without_properties_raises():
    with pytest.raises(KeyError):
        KVMsg(1).get_prop("prop1")


def test_get_prop_unknown_name_raises():
    msg = KVMsg(1)
    msg.set_prop("prop1", "value1")
    with pytest.raises(KeyError):
        msg.get_prop("prop")


def test_received_message_without_props_frame_has_no_properties():
    msg = KVMsg.from_frames([b"key", b"\x00" * 8])
    with pytest.raises(KeyError):
        msg.get_prop("prop1")
    assert msg.props == []


def test_received_empty_props_frame_counts_as_present():
    msg = KVMsg(1)
    received = KVMsg.from_frames(msg.to_frames())
    assert received.props == []
    with pytest.raises(KeyError):
        received.get_prop("prop1")


def test_set_uuid_is_sixteen_random_bytes():
    first, second = KVMsg(1), KVMsg(1)
    first.set_uuid()
    second.set_uuid()
    assert len(first.uuid) == 16
    assert first.uuid != second.uuid


def test_dup_is_independent():
    msg = KVMsg(5)
    msg.key = "key"
    msg.body = b"body"
    msg.set_prop("prop1", "value1")
    copy = msg.dup()
    assert copy == msg
    copy.set_prop("prop2", "value2")
    copy.key = "other"
    assert msg.props == ["prop1=value1"]
    assert msg.key == "key"
    assert copy.get_prop("prop1") == "value1"


def test_store_with_empty_body_deletes_key():
    kvmap = {}
    msg = KVMsg(1)
    msg.key = "key"
    msg.body = b"body"
    msg.store(kvmap)
    assert kvmap == {"key": msg}
    removal = KVMsg(2)
    removal.key = "key"
    removal.body = b""
    removal.store(kvmap)
    assert kvmap == {}


def test_store_without_key_does_nothing():
    kvmap = {}
    msg = KVMsg(1)
    msg.body = b"body"
    msg.store(kvmap)
    assert kvmap == {}


def test_sequence_round_trip_and_wire_form():
    msg = KVMsg(1)
    frames = msg.to_frames()
    assert frames[1] == b"\x00" * 7 + b"\x01"
    assert KVMsg.from_frames(frames).sequence == 1


def test_dump_with_properties():
    msg = KVMsg(2)
    msg.key = "key"
    msg.body = b"body"
    msg.set_prop("prop1", "value1")
    msg.set_prop("prop2", "value2")
    out = io.StringIO()
    msg.dump(out)
    assert out.getvalue() == "[seq:2][key:key][size:4] [prop1=value1;prop2=value2]626F6479\n"


def test_dump_without_properties():
    msg = KVMsg(1)
    msg.key = "key"
    msg.body = b"body"
    out = io.StringIO()
    msg.dump(out)
    assert out.getvalue() == "[seq:1][key:key][size:4] 626F6479\n"