"""
Serial port control: one device lifecycle and line-configuration API
over stty (Linux, macOS/BSD) and mode.com (Windows).
"""

from beartype.claw import beartype_this_package as _beartype_me

# ruff: noqa: E402
_beartype_me()

from ok_stty._exceptions import (
    SerialAlreadyOpen,
    SerialCloseException,
    SerialConfigException,
    SerialDeviceInvalid,
    SerialException,
    SerialFlushException,
    SerialIoException,
    SerialModeInvalid,
    SerialNotReady,
    SerialOpenException,
    SerialParameterInvalid,
    SerialPlatformUnsupported,
    SerialScanException,
    SerialStateException,
)

from ok_stty._handle import DeviceHandle
from ok_stty._platform import (
    BAUD_RATES,
    BsdAdapter,
    CommandResult,
    DeviceIdentity,
    PlatformAdapter,
    TermiosAdapter,
    WindowsModeAdapter,
    adapter_for_system,
)
from ok_stty._port import DeviceState, PortOptions, SerialPort
from ok_stty._scanning import SerialPortInfo, scan_serial_ports

__all__ = [n for n in dir() if not n.startswith("_")]
