import dataclasses
import json
import logging
import os
import pathlib

import natsort
from serial.tools import list_ports
from serial.tools import list_ports_common

from ok_stty import _exceptions
from ok_stty import _platform

log = logging.getLogger("ok_stty.scanning")

_NA = (None, "", "n/a")


@dataclasses.dataclass(frozen=True)
class SerialPortInfo:
    """A port found on the system, named the way device_set() accepts it"""

    name: str
    device: _platform.DeviceIdentity
    attr: dict[str, str]

    def __str__(self):
        return self.name


def scan_serial_ports(
    adapter: _platform.PlatformAdapter | None = None,
) -> list[SerialPortInfo]:
    """Lists ports the adapter (default: this OS's) can address, by name.

    Ports the adapter can't resolve (e.g. non-COM names on Windows) are
    skipped. $OK_STTY_SCAN_OVERRIDE names a JSON {name: {attr: value}}
    file to use instead of asking the OS.
    """

    adapter = adapter or _platform.adapter_for_system()
    found: list[SerialPortInfo] = []
    for name, attr in _listed_ports():
        if (ident := adapter.resolve(name)) is None:
            log.debug("Skipping %s (not a %s device)", name, adapter.family)
            continue
        found.append(SerialPortInfo(name=ident.label, device=ident, attr=attr))

    found.sort(key=natsort.natsort_keygen(key=str, alg=natsort.ns.PATH))
    log.debug("Found %d %s ports", len(found), adapter.family)
    return found


def _listed_ports() -> list[tuple[str, dict[str, str]]]:
    if not (override := os.getenv("OK_STTY_SCAN_OVERRIDE")):
        try:
            ports = list_ports.comports()
        except OSError as ex:
            raise _exceptions.SerialScanException("Can't list ports") from ex
        return [(p.device, _port_attrs(p)) for p in ports]

    try:
        data = json.loads(pathlib.Path(override).read_text())
        if not isinstance(data, dict):
            raise ValueError("Not a JSON object")
        for name, attr in data.items():
            if not isinstance(attr, dict) or not all(
                isinstance(v, str) for v in attr.values()
            ):
                raise ValueError(f"Bad attributes for {name!r}")
    except (OSError, ValueError) as ex:
        msg = f"Can't read $OK_STTY_SCAN_OVERRIDE {override}"
        raise _exceptions.SerialScanException(msg) from ex

    log.debug("Using $OK_STTY_SCAN_OVERRIDE (%s)", override)
    return list(data.items())


def _port_attrs(p: list_ports_common.ListPortInfo) -> dict[str, str]:
    return {k.lower(): str(v) for k, v in vars(p).items() if v not in _NA}
