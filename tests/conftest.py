import contextlib
import io
import json
import ok_logging_setup
import os
import pty
import pytest
import subprocess
import tty
import typing
import unittest.mock

import ok_stty
from ok_stty import _handle

ok_logging_setup.install(
    {
        "OK_LOGGING_LEVEL": "ok_stty=DEBUG,WARNING",
        "OK_LOGGING_OUTPUT": "stdout",
    }
)


class PseudoTtySerial(typing.NamedTuple):
    path: str
    control: io.FileIO
    simulated: io.FileIO


class FakeHandle(typing.NamedTuple):
    init: unittest.mock.MagicMock
    write: unittest.mock.MagicMock
    read: unittest.mock.MagicMock
    close: unittest.mock.MagicMock


@pytest.fixture
def pty_serial():
    with contextlib.ExitStack() as cleanup:
        ctrl_fd, sim_fd = pty.openpty()
        tty.setraw(sim_fd)  # no line buffering, echo or newline mangling
        path = os.ttyname(sim_fd)
        ctrl = cleanup.enter_context(os.fdopen(ctrl_fd, "r+b", buffering=0))
        sim = cleanup.enter_context(os.fdopen(sim_fd, "r+b", buffering=0))
        yield PseudoTtySerial(path=path, control=ctrl, simulated=sim)


@pytest.fixture
def stty(mocker):
    """Replaces control commands; set .return_value to simulate failures"""

    run = mocker.patch("subprocess.run")
    run.return_value = subprocess.CompletedProcess([], 0, stdout="", stderr="")
    return run


@pytest.fixture
def fake_handle(mocker):
    """Stubs DeviceHandle methods: writes take everything, reads are empty"""

    cls = _handle.DeviceHandle
    return FakeHandle(
        init=mocker.patch.object(cls, "__init__", return_value=None),
        write=mocker.patch.object(cls, "write", side_effect=len),
        read=mocker.patch.object(cls, "read", return_value=b""),
        close=mocker.patch.object(cls, "close", return_value=None),
    )


@pytest.fixture
def make_port(stty):
    def make(system="Linux", **kwargs) -> ok_stty.SerialPort:
        return ok_stty.SerialPort(ok_stty.PortOptions(system=system, **kwargs))

    return make


@pytest.fixture
def set_scan_override(monkeypatch, tmp_path):
    path = tmp_path / "scan.json"
    path.write_text("{}")
    monkeypatch.setenv("OK_STTY_SCAN_OVERRIDE", str(path))

    def set_ports(ports: dict[str, dict[str, str]]):
        path.write_text(json.dumps(ports))

    return set_ports
