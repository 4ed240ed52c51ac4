import contextlib
import logging
import os
import re

import typeguard

from ok_stty import _exceptions

log = logging.getLogger("ok_stty.handle")

MODE_RE = re.compile(r"[raw]\+?b?")

_BASE_FLAGS = {
    "r": os.O_RDONLY,
    "w": os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
    "a": os.O_WRONLY | os.O_CREAT | os.O_APPEND,
}


@typeguard.typechecked
def flags_from_mode(mode: str) -> int:
    """Converts an fopen()-style mode to non-blocking os.open() flags"""

    if not MODE_RE.fullmatch(mode):
        raise _exceptions.SerialModeInvalid(
            f"Invalid opening mode {mode!r} (use r, w or a, then + and/or b)"
        )

    flags = _BASE_FLAGS[mode[0]]
    if "+" in mode:
        flags = (flags & ~(os.O_RDONLY | os.O_WRONLY)) | os.O_RDWR
    if "b" in mode:
        flags |= getattr(os, "O_BINARY", 0)
    return flags | getattr(os, "O_NONBLOCK", 0) | getattr(os, "O_NOCTTY", 0)


class DeviceHandle(contextlib.AbstractContextManager):
    """An open, non-blocking file descriptor on a serial device"""

    def __init__(self, path: str, mode: str = "r+b"):
        flags = flags_from_mode(mode)
        self.path = path
        try:
            self._fd: int | None = os.open(path, flags)
        except OSError as ex:
            message = "Serial port open error"
            raise _exceptions.SerialOpenException(message, path) from ex
        log.debug("Opened %s (%r, fd=%d)", path, mode, self._fd)

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DeviceHandle({self.path!r}, fd={self._fd})"

    @property
    def closed(self) -> bool:
        return self._fd is None

    def fileno(self) -> int:
        return self._checked_fd()

    def write(self, data: bytes) -> int:
        """Writes what the device will take now; 0 if it would block"""

        fd = self._checked_fd()
        try:
            return os.write(fd, data)
        except BlockingIOError:
            return 0
        except OSError as ex:
            message = "Serial write error"
            raise _exceptions.SerialIoException(message, self.path) from ex

    def read(self, size: int) -> bytes:
        """Reads up to 'size' bytes already received; b"" if none"""

        fd = self._checked_fd()
        try:
            return os.read(fd, size)
        except BlockingIOError:
            return b""
        except OSError as ex:
            message = "Serial read error"
            raise _exceptions.SerialIoException(message, self.path) from ex

    def close(self) -> None:
        if self._fd is None:
            return

        fd, self._fd = self._fd, None
        try:
            os.close(fd)
        except OSError as ex:
            message = "Serial port close error"
            raise _exceptions.SerialCloseException(message, self.path) from ex
        log.debug("Closed %s (fd=%d)", self.path, fd)

    def _checked_fd(self) -> int:
        if self._fd is None:
            raise _exceptions.SerialIoException("Device is closed", self.path)
        return self._fd
