import asyncio
import contextlib
import enum
import logging
import time

import pydantic

from ok_stty import _exceptions
from ok_stty import _handle
from ok_stty import _platform
from ok_stty import _scanning

log = logging.getLogger("ok_stty.port")
data_log = logging.getLogger(log.name + ".data")

READ_CHUNK = 128
_WRITE_RETRY_DELAY = 0.005


class PortOptions(pydantic.BaseModel):
    auto_flush: bool = True
    send_wait: float | int = 0.1
    write_timeout: float | int = 0.1
    system: str | None = None
    locale: str | None = None


class DeviceState(enum.Enum):
    NOT_SET = "not set"
    SET = "set"
    OPENED = "opened"


class SerialPort(contextlib.AbstractContextManager):
    """A serial device with stty/mode line configuration and buffered output.

    Line parameters can only be changed while the device is set but not
    open; I/O needs an open device. Output accumulates in a buffer which
    is flushed after every send_message() when auto_flush is true, or
    explicitly with serial_flush().
    """

    @pydantic.validate_call
    def __init__(self, opts: PortOptions | bool = PortOptions()):
        if isinstance(opts, bool):
            opts = PortOptions(auto_flush=opts)

        self._opts = opts
        self._adapter = _platform.adapter_for_system(opts.system, opts.locale)
        self._state = DeviceState.NOT_SET
        self._device: _platform.DeviceIdentity | None = None
        self._handle: _handle.DeviceHandle | None = None
        self._outgoing = bytearray()
        self.auto_flush = opts.auto_flush

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.device_close()

    def __repr__(self) -> str:
        name = self._device.label if self._device else None
        return f"SerialPort({name!r}, state={self._state.name})"

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def device(self) -> _platform.DeviceIdentity | None:
        return self._device

    @property
    def family(self) -> _platform.Family:
        return self._adapter.family

    def scan_devices(self) -> list[_scanning.SerialPortInfo]:
        """Lists present ports by the names device_set() takes"""
        return _scanning.scan_serial_ports(self._adapter)

    #
    # Device lifecycle
    #

    @pydantic.validate_call
    def device_set(self, name: str) -> None:
        if self._state is DeviceState.OPENED:
            message = "Close the device before setting another one"
            raise _exceptions.SerialAlreadyOpen(message, self._port_name())

        ident = self._adapter.resolve(name)
        if ident is None or not self._adapter.probe(ident):
            message = "Serial port is not valid"
            raise _exceptions.SerialDeviceInvalid(message, name)

        log.debug("Set %s (%s)", ident.label, ident.family)
        self._device = ident
        self._state = DeviceState.SET

    @pydantic.validate_call
    def device_open(self, mode: str = "r+b") -> None:
        if self._state is DeviceState.OPENED:
            message = "The device is already opened"
            raise _exceptions.SerialAlreadyOpen(message, self._port_name())
        if self._state is DeviceState.NOT_SET or self._device is None:
            raise _exceptions.SerialNotReady("Set the device before opening")

        self._handle = _handle.DeviceHandle(self._device.path, mode)
        self._state = DeviceState.OPENED
        log.debug("Opened %s", self._device.label)

    @pydantic.validate_call
    def device_close(self) -> None:
        if self._state is not DeviceState.OPENED or self._handle is None:
            return

        # The descriptor is released even when close reports an error.
        handle, self._handle = self._handle, None
        self._state = DeviceState.SET
        handle.close()
        log.debug("Closed %s", self._port_name())

    #
    # Line configuration
    #

    @pydantic.validate_call
    def conf_baud_rate(self, rate: int) -> None:
        self._configure("baud rate", self._adapter.baud_tokens, rate)

    @pydantic.validate_call
    def conf_parity(self, parity: str) -> None:
        self._configure("parity", self._adapter.parity_tokens, parity)

    @pydantic.validate_call
    def conf_character_length(self, length: int) -> None:
        self._configure("character length", self._adapter.length_tokens, length)

    @pydantic.validate_call
    def conf_stop_bits(self, length: float | int) -> None:
        self._configure("stop bits", self._adapter.stop_bits_tokens, length)

    @pydantic.validate_call
    def conf_flow_control(self, mode: str) -> None:
        self._configure("flow control", self._adapter.flow_tokens, mode)

    @pydantic.validate_call
    def conf_report(self) -> str:
        """Returns the platform's description of the current line settings"""

        if self._state is DeviceState.NOT_SET or self._device is None:
            raise _exceptions.SerialNotReady("Set the device before querying")

        result = self._adapter.report(self._device)
        if result.returncode:
            raise _exceptions.SerialConfigException(
                "Unable to read settings",
                self._device.label,
                detail=result.stderr,
            )
        return result.stdout

    def _configure(self, what: str, tokens_for, value) -> None:
        if self._state is not DeviceState.SET or self._device is None:
            message = f"Unable to set {what}: the device is not set or is opened"
            raise _exceptions.SerialNotReady(message, self._port_name())

        tokens = tokens_for(value)
        log.debug("Setting %s on %s: %s", what, self._device.label, tokens)
        result = self._adapter.apply(self._device, tokens)
        if result.returncode:
            raise _exceptions.SerialConfigException(
                f"Unable to set {what}",
                self._device.label,
                detail=result.stderr,
            )

    #
    # I/O
    #

    @pydantic.validate_call
    def send_message(
        self, data: bytes, wait: float | int | None = None
    ) -> None:
        self._queue(data)
        wait = self._opts.send_wait if wait is None else wait
        if wait > 0:
            time.sleep(wait)

    @pydantic.validate_call
    async def send_message_async(
        self, data: bytes, wait: float | int | None = None
    ) -> None:
        self._queue(data)
        wait = self._opts.send_wait if wait is None else wait
        if wait > 0:
            await asyncio.sleep(wait)

    @pydantic.validate_call
    def serial_flush(self) -> bool:
        if self._state is not DeviceState.OPENED or self._handle is None:
            log.debug("Not flushing %db (device not open)", len(self._outgoing))
            return False

        # The buffer is emptied up front; on failure its contents are lost.
        data, self._outgoing = bytes(self._outgoing), bytearray()
        port = self._port_name()
        deadline = time.monotonic() + self._opts.write_timeout
        sent = 0
        while sent < len(data):
            try:
                count = self._handle.write(data[sent:])
            except _exceptions.SerialIoException as ex:
                message = f"Error while sending message ({len(data)}b lost)"
                raise _exceptions.SerialFlushException(message, port) from ex

            sent += count
            data_log.debug("Wrote %d/%db", sent, len(data))
            if not count:
                if time.monotonic() >= deadline:
                    message = f"Write timed out ({sent}/{len(data)}b sent)"
                    raise _exceptions.SerialFlushException(message, port)
                time.sleep(_WRITE_RETRY_DELAY)

        return True

    @pydantic.validate_call
    def read_port(self, max: pydantic.NonNegativeInt = 0) -> bytes:
        if self._state is not DeviceState.OPENED or self._handle is None:
            message = "Device must be opened to read it"
            raise _exceptions.SerialNotReady(message, self._port_name())

        content = bytearray()
        while True:
            size = READ_CHUNK
            if max:
                size = min(size, max - len(content))
            chunk = self._handle.read(size)
            content.extend(chunk)
            if len(chunk) < size or (max and len(content) >= max):
                break

        data_log.debug("Read %db (max=%d)", len(content), max)
        return bytes(content)

    @pydantic.validate_call
    def outgoing_size(self) -> int:
        return len(self._outgoing)

    def _queue(self, data: bytes) -> None:
        self._outgoing.extend(data)
        data_log.debug("Queued %db buf=%db", len(data), len(self._outgoing))
        if self.auto_flush:
            self.serial_flush()

    def _port_name(self) -> str | None:
        return self._device.label if self._device else None
