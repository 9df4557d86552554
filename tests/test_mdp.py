import pytest

from zguide.mdp import WorkerCommand, command_name


@pytest.mark.parametrize(
    "name", ["READY", "REQUEST", "REPLY", "HEARTBEAT", "DISCONNECT"]
)
def test_command_name_of_each_command(name):
    command = WorkerCommand[name]
    assert command_name(command) == name
    assert command_name(bytes(command.value)) == name


def test_commands_are_numbered_from_one():
    names = [command_name(bytes([n])) for n in range(1, 6)]
    assert names == ["READY", "REQUEST", "REPLY", "HEARTBEAT", "DISCONNECT"]


def test_command_lookup_from_wire_byte():
    assert WorkerCommand(b"\x04") is WorkerCommand.HEARTBEAT


@pytest.mark.parametrize("frame", [b"\x00", b"\x06", b"", b"READY"])
def test_unknown_command_has_empty_name(frame):
    assert command_name(frame) == ""


def test_command_name_accepts_bytearray():
    assert command_name(bytearray(b"\x03")) == "REPLY"