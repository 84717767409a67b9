import logging
import platform as _platform
from dataclasses import dataclass
from typing import Tuple

log = logging.getLogger(__name__)

# Native classifier names used by library descriptors, per OS name.
NATIVE_CLASSIFIERS = {
    'windows': ('natives-windows',),
    'osx': ('natives-osx', 'natives-macos'),
    'linux': ('natives-linux',),
}


def get_os_name() -> str:
    """Gets the current OS name ('windows', 'osx', 'linux')."""
    system = _platform.system()
    if system == 'Windows': return 'windows'
    elif system == 'Darwin': return 'osx'
    elif system == 'Linux': return 'linux'
    else: raise OSError(f"Unsupported platform: {system}")


def get_arch_name() -> str:
    """Gets the current architecture name ('x64', 'x86', 'arm64', 'arm32')."""
    machine = _platform.machine().lower()
    if machine in ['amd64', 'x86_64']: return 'x64'
    elif machine in ['i386', 'i686', 'x86']: return 'x86'
    elif machine in ['arm64', 'aarch64']: return 'arm64'
    elif machine.startswith('arm') and '64' not in machine: return 'arm32'
    else:
        log.warning(f"Unsupported architecture: {_platform.machine()}. Falling back to 'x64'. This might cause issues.")
        return 'x64'


@dataclass(frozen=True)
class Platform:
    """
    The operating system facts rules and planners are evaluated against.

    A Platform is always passed explicitly so every OS can be exercised from a
    single host, use Platform.current() to describe the running machine.
    """

    os_name: str
    arch: str = 'x64'
    os_version: str = ''

    @classmethod
    def current(cls) -> 'Platform':
        return cls(get_os_name(), get_arch_name(), _platform.release())

    @property
    def is_windows(self) -> bool:
        return self.os_name == 'windows'

    @property
    def classpath_separator(self) -> str:
        return ';' if self.is_windows else ':'

    @property
    def native_classifiers(self) -> Tuple[str, ...]:
        return NATIVE_CLASSIFIERS.get(self.os_name, ())

    @property
    def arch_bits(self) -> str:
        """Value substituted for `${arch}` in legacy natives classifiers."""
        return '32' if self.arch in ('x86', 'arm32') else '64'
