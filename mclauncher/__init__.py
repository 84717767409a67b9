__version__ = "0.1.0"
LAUNCHER_NAME = "mclauncher"

from .config import LaunchConfig, LauncherConfig, WindowConfig
from .errors import (
    ConfigurationError,
    FetchAggregateError,
    FilesystemError,
    JavaNotFoundError,
    LaunchError,
    LauncherError,
    NativeExtractionError,
    NetworkError,
    NoProcessError,
    ParseError,
    ProcessWaitError,
    ValidationError,
    VersionNotFoundError,
)
from .launcher import Launcher
from .models import Account, FetchTask, VersionDescriptor
from .platform_info import Platform
from .process import ProcessHandle, ProcessRegistry, ProcessState, ProcessStatus
