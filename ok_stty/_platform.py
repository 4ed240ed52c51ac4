"""Per-OS device naming and line configuration (stty or mode commands)"""

import abc
import logging
import os
import platform
import re
import subprocess
import typing

import msgspec

from ok_stty import _exceptions

log = logging.getLogger("ok_stty.platform")

Family = typing.Literal["termios", "bsd", "windows"]

BAUD_RATES = (
    110,
    150,
    300,
    600,
    1200,
    2400,
    4800,
    9600,
    19200,
    38400,
    57600,
    115200,
)

# mode.com takes abbreviated tokens below 38400
WINDOWS_BAUD_TOKENS = {
    110: 11,
    150: 15,
    300: 30,
    600: 60,
    1200: 12,
    2400: 24,
    4800: 48,
    9600: 96,
    19200: 19,
    38400: 38400,
    57600: 57600,
    115200: 115200,
}

PARITY_MODES = ("none", "odd", "even")
FLOW_MODES = ("none", "rts/cts", "xon/xoff")

_STTY_PARITY = {
    "none": ["-parenb"],
    "odd": ["parenb", "parodd"],
    "even": ["parenb", "-parodd"],
}

_STTY_FLOW = {
    "none": ["clocal", "-crtscts", "-ixon", "-ixoff"],
    "rts/cts": ["-clocal", "crtscts", "-ixon", "-ixoff"],
    "xon/xoff": ["-clocal", "-crtscts", "ixon", "ixoff"],
}

_MODE_FLOW = {
    "none": ["xon=off", "octs=off", "rts=on"],
    "rts/cts": ["xon=off", "octs=on", "rts=hs"],
    "xon/xoff": ["xon=on", "octs=off", "rts=on"],
}

_COM_RE = re.compile(r"COM(\d+):?", re.I)


class DeviceIdentity(msgspec.Struct, frozen=True):
    """A resolved device: 'path' is opened for I/O, 'label' is configured"""

    path: str
    label: str
    family: Family


class CommandResult(msgspec.Struct, frozen=True):
    returncode: int
    stdout: str = ""
    stderr: str = ""


def run_command(args: list[str], locale: str | None = None) -> CommandResult:
    """Runs a control command, capturing its exit status and output"""

    env = {**os.environ, "LC_ALL": locale} if locale else None
    log.debug("Running %s", " ".join(args))
    try:
        proc = subprocess.run(
            args, capture_output=True, text=True, env=env, check=False
        )
    except OSError as ex:
        log.warning("Can't run %s", args[0], exc_info=True)
        return CommandResult(returncode=127, stderr=str(ex))

    result = CommandResult(
        returncode=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )
    if result.returncode:
        log.debug(
            "%s exited %d: %s", args[0], result.returncode, result.stderr.strip()
        )
    return result


def clamp_character_length(length: int) -> int:
    return 5 if length < 5 else 8


class PlatformAdapter(abc.ABC):
    """Line configuration for one platform family.

    Token builders validate their argument and raise SerialParameterInvalid
    before any command runs. The defaults speak the stty vocabulary; the
    Windows adapter overrides them with mode.com key=value tokens.
    """

    family: typing.ClassVar[Family]
    stop_bits: typing.ClassVar[tuple[float, ...]] = (1, 2)
    probe_tokens: typing.ClassVar[tuple[str, ...]] = ()
    report_tokens: typing.ClassVar[tuple[str, ...]] = ("-a",)

    def __init__(self, locale: str | None = None):
        self.locale = locale

    def __repr__(self) -> str:
        return f"{type(self).__name__}(locale={self.locale!r})"

    @abc.abstractmethod
    def resolve(self, name: str) -> DeviceIdentity | None:
        """Maps a user-supplied device name, or None if it can't be used"""

    @abc.abstractmethod
    def command(self, ident: DeviceIdentity, tokens: list[str]) -> list[str]:
        """Builds the control command line addressing 'ident'"""

    def apply(self, ident: DeviceIdentity, tokens: list[str]) -> CommandResult:
        return run_command(self.command(ident, tokens), locale=self.locale)

    def probe(self, ident: DeviceIdentity) -> bool:
        return self.apply(ident, list(self.probe_tokens)).returncode == 0

    def report(self, ident: DeviceIdentity) -> CommandResult:
        return self.apply(ident, list(self.report_tokens))

    def baud_tokens(self, rate: int) -> list[str]:
        if rate not in BAUD_RATES:
            raise _exceptions.SerialParameterInvalid(
                f"Unsupported baud rate: {rate}"
            )
        return [str(rate)]

    def parity_tokens(self, parity: str) -> list[str]:
        _check_choice("parity", parity, PARITY_MODES)
        return list(_STTY_PARITY[parity])

    def length_tokens(self, length: int) -> list[str]:
        return [f"cs{clamp_character_length(length)}"]

    def stop_bits_tokens(self, length: float | int) -> list[str]:
        self._check_stop_bits(length)
        return ["-cstopb" if length == 1 else "cstopb"]

    def flow_tokens(self, mode: str) -> list[str]:
        _check_choice("flow control", mode, FLOW_MODES)
        return list(_STTY_FLOW[mode])

    def _check_stop_bits(self, length: float | int) -> None:
        if length not in self.stop_bits:
            allowed = ", ".join(f"{s:g}" for s in self.stop_bits)
            raise _exceptions.SerialParameterInvalid(
                f"Stop bit length {length:g} not supported"
                f" on {self.family} (use {allowed})"
            )


class TermiosAdapter(PlatformAdapter):
    """Linux: stty -F <device>"""

    family = "termios"
    stop_bits = (1, 1.5, 2)

    def resolve(self, name: str) -> DeviceIdentity | None:
        if match := _COM_RE.fullmatch(name):
            name = f"/dev/ttyS{int(match[1]) - 1}"
            log.debug("Mapped COM%s to %s", match[1], name)
        if not name:
            return None
        return DeviceIdentity(path=name, label=name, family=self.family)

    def command(self, ident: DeviceIdentity, tokens: list[str]) -> list[str]:
        return ["stty", "-F", ident.label, *tokens]


class BsdAdapter(PlatformAdapter):
    """macOS and the BSDs: stty -f <device>"""

    family = "bsd"

    def resolve(self, name: str) -> DeviceIdentity | None:
        if not name:
            return None
        return DeviceIdentity(path=name, label=name, family=self.family)

    def command(self, ident: DeviceIdentity, tokens: list[str]) -> list[str]:
        return ["stty", "-f", ident.label, *tokens]


class WindowsModeAdapter(PlatformAdapter):
    """Windows: mode COM<n> KEY=value ..., I/O through \\\\.\\COM<n>"""

    family = "windows"
    probe_tokens = ("xon=on", "BAUD=9600")
    report_tokens = ()

    def resolve(self, name: str) -> DeviceIdentity | None:
        if not (match := _COM_RE.fullmatch(name)):
            return None
        return DeviceIdentity(
            path=f"\\\\.\\COM{match[1]}",
            label=f"COM{match[1]}",
            family=self.family,
        )

    def command(self, ident: DeviceIdentity, tokens: list[str]) -> list[str]:
        return ["mode", ident.label, *tokens]

    def baud_tokens(self, rate: int) -> list[str]:
        if rate not in WINDOWS_BAUD_TOKENS:
            raise _exceptions.SerialParameterInvalid(
                f"Unsupported baud rate: {rate}"
            )
        return [f"BAUD={WINDOWS_BAUD_TOKENS[rate]}"]

    def parity_tokens(self, parity: str) -> list[str]:
        _check_choice("parity", parity, PARITY_MODES)
        return [f"PARITY={parity[0]}"]

    def length_tokens(self, length: int) -> list[str]:
        return [f"DATA={clamp_character_length(length)}"]

    def stop_bits_tokens(self, length: float | int) -> list[str]:
        self._check_stop_bits(length)
        return [f"STOP={length:g}"]

    def flow_tokens(self, mode: str) -> list[str]:
        _check_choice("flow control", mode, FLOW_MODES)
        return list(_MODE_FLOW[mode])


def adapter_for_system(
    system: str | None = None, locale: str | None = None
) -> PlatformAdapter:
    """Picks the adapter for 'system' (default: the running OS)"""

    system = system or platform.system()
    if system == "Linux":
        adapter: PlatformAdapter = TermiosAdapter(locale=locale)
    elif system == "Darwin" or system.endswith("BSD"):
        adapter = BsdAdapter(locale=locale)
    elif system == "Windows":
        adapter = WindowsModeAdapter(locale=locale)
    else:
        raise _exceptions.SerialPlatformUnsupported(f"Unsupported OS: {system}")

    log.debug("Using %r for %s", adapter, system)
    return adapter


def _check_choice(what: str, value: str, choices: tuple[str, ...]) -> None:
    if value not in choices:
        options = ", ".join(repr(c) for c in choices)
        raise _exceptions.SerialParameterInvalid(
            f"Invalid {what} mode {value!r} (use {options})"
        )
