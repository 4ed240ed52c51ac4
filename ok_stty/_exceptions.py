"""Exception hierarchy for ok_stty"""


class SerialException(OSError):
    def __init__(
        self,
        message: str,
        port: str | None = None,
    ):
        super().__init__(f"{port}: {message}" if port else message)
        self.port = port


class SerialPlatformUnsupported(SerialException):
    pass


class SerialDeviceInvalid(SerialException):
    pass


class SerialStateException(SerialException):
    pass


class SerialAlreadyOpen(SerialStateException):
    pass


class SerialNotReady(SerialStateException):
    pass


class SerialOpenException(SerialException):
    pass


class SerialCloseException(SerialException):
    pass


class SerialIoException(SerialException):
    pass


class SerialFlushException(SerialIoException):
    pass


class SerialConfigException(SerialException):
    def __init__(
        self,
        message: str,
        port: str | None = None,
        detail: str = "",
    ):
        super().__init__(f"{message}: {detail}" if detail else message, port)
        self.detail = detail


class SerialScanException(SerialException):
    pass


class SerialModeInvalid(ValueError):
    pass


class SerialParameterInvalid(ValueError):
    pass
