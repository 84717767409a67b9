"""
Java runtime discovery and download.

Runtimes are looked up by major version in this order: the configured
`java_path`, the launcher's runtime directory, the usual install locations of
the platform, then `PATH`. When nothing matches and downloads are allowed, a
Temurin build is fetched from the Adoptium API into the runtime directory.
"""

import asyncio
import io
import logging
import os
import pathlib
import platform
import re
import shutil
import tarfile
import tempfile
import zipfile
from typing import Dict, Iterable, List, Optional

import aiofiles
import aiofiles.os
import aiohttp

from .config import LauncherConfig
from .errors import JavaNotFoundError
from .session import get_session

log = logging.getLogger(__name__)

ADOPTIUM_API_BASE = 'https://api.adoptium.net/v3'
DEFAULT_JAVA_VERSION = 17
DEFAULT_IMAGE_TYPE = 'jre'
VERSION_TIMEOUT = 15  # seconds
MAX_SEARCH_DEPTH = 4

_VERSION_QUOTED = re.compile(r'version "([^"]+)"')
_VERSION_BARE = re.compile(r'^(?:openjdk|java)\s+(\d[\w.+-]*)', re.MULTILINE)


def get_api_os_arch() -> Optional[Dict[str, str]]:
    """Maps Python platform/machine to Adoptium API values."""
    system = platform.system()
    machine = platform.machine().lower()

    if system == 'Windows':
        api_os = 'windows'
    elif system == 'Darwin':
        api_os = 'mac'
    elif system == 'Linux':
        api_os = 'linux'
    else:
        log.error(f"Unsupported operating system: {system}")
        return None

    if machine in ['amd64', 'x86_64']:
        api_arch = 'x64'
    elif machine in ['arm64', 'aarch64']:
        api_arch = 'aarch64'
    elif machine in ['i386', 'i686', 'x86']:
        api_arch = 'x86'
    elif machine.startswith('armv7'):
        api_arch = 'arm'
    else:
        log.error(f"Unsupported architecture: {machine}")
        return None

    return {"os": api_os, "arch": api_arch}


def parse_java_major_version(output: str) -> Optional[int]:
    """
    Extracts the major version from `java -version` output.

    `1.8.0_392` is Java 8, `17.0.9` is Java 17, `21` is Java 21.
    """
    match = _VERSION_QUOTED.search(output) or _VERSION_BARE.search(output)
    if not match:
        return None
    parts = re.split(r'[._+-]', match.group(1))
    try:
        if parts[0] == '1' and len(parts) > 1:
            return int(parts[1])
        return int(parts[0])
    except ValueError:
        return None


def executable_name(system: Optional[str] = None) -> str:
    system = system or platform.system()
    return 'java.exe' if system == 'Windows' else 'java'


def _candidate_executables(directory: pathlib.Path, system: str) -> List[pathlib.Path]:
    name = executable_name(system)
    candidates = [directory / 'bin' / name]
    if system == 'Darwin':
        candidates.append(directory / 'Contents' / 'Home' / 'bin' / name)
    return candidates


def _is_executable(path: pathlib.Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def find_java_executables(root: pathlib.Path, system: Optional[str] = None,
                          max_depth: int = MAX_SEARCH_DEPTH) -> List[pathlib.Path]:
    """
    Every Java executable below `root`, shallowest first.

    The tree is walked breadth first with an explicit worklist, never deeper
    than `max_depth` directories. A directory holding a runtime is not
    searched any further.
    """
    system = system or platform.system()
    found: List[pathlib.Path] = []
    worklist = [(root, 0)]
    while worklist:
        directory, depth = worklist.pop(0)
        hit = next((c for c in _candidate_executables(directory, system) if _is_executable(c)), None)
        if hit is not None:
            log.debug(f"Found Java executable: {hit}")
            found.append(hit.resolve())
            continue
        if depth >= max_depth:
            continue
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            log.debug(f"Could not scan directory {directory}: {e}")
            continue
        for entry in entries:
            try:
                if entry.is_dir():
                    worklist.append((pathlib.Path(entry.path), depth + 1))
            except OSError as e:
                log.debug(f"Could not check directory status for {entry.path}: {e}")
    return found


async def find_java_executable(directory: pathlib.Path, system: Optional[str] = None) -> Optional[pathlib.Path]:
    """First Java executable below `directory`, or None."""
    if not await aiofiles.os.path.isdir(directory):
        return None
    loop = asyncio.get_running_loop()
    found = await loop.run_in_executor(None, find_java_executables, directory, system)
    return found[0] if found else None


async def get_java_major_version(executable: pathlib.Path) -> Optional[int]:
    """Runs `java -version` and parses the major version, None if it cannot be run."""
    try:
        proc = await asyncio.create_subprocess_exec(
            str(executable), '-version',
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        log.debug(f"Could not run {executable}: {e}")
        return None
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), VERSION_TIMEOUT)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        log.warning(f"Timed out querying version of {executable}")
        return None
    # java -version prints to stderr
    output = stderr.decode(errors='replace') + stdout.decode(errors='replace')
    return parse_java_major_version(output)


def platform_java_dirs(system: Optional[str] = None) -> List[pathlib.Path]:
    """Directories Java installers usually put runtimes in."""
    system = system or platform.system()
    dirs: List[pathlib.Path] = []
    java_home = os.environ.get('JAVA_HOME')
    if java_home:
        dirs.append(pathlib.Path(java_home))
    if system == 'Windows':
        for env in ('ProgramFiles', 'ProgramFiles(x86)'):
            base = os.environ.get(env)
            if base:
                for vendor in ('Java', 'Eclipse Adoptium', 'Microsoft', 'Zulu', 'BellSoft'):
                    dirs.append(pathlib.Path(base) / vendor)
    elif system == 'Darwin':
        dirs.append(pathlib.Path('/Library/Java/JavaVirtualMachines'))
        dirs.append(pathlib.Path.home() / 'Library' / 'Java' / 'JavaVirtualMachines')
    else:
        dirs.extend([pathlib.Path('/usr/lib/jvm'), pathlib.Path('/usr/java'), pathlib.Path('/opt/java')])
    return dirs


# Function to run synchronous extraction in a separate thread
def _extract_zip(zip_data: bytes, dest_path: pathlib.Path) -> None:
    with io.BytesIO(zip_data) as zip_buffer:
        with zipfile.ZipFile(zip_buffer, 'r') as zip_ref:
            zip_ref.extractall(dest_path)


def _extract_tar(tar_path: pathlib.Path, dest_path: pathlib.Path) -> None:
    with tarfile.open(tar_path, 'r:gz') as tar_ref:
        if hasattr(tarfile, 'data_filter'):
            tar_ref.extractall(path=dest_path, filter='data')
        else:
            tar_ref.extractall(path=dest_path)


async def download_java(
    version: int = DEFAULT_JAVA_VERSION,
    destination_dir: Optional[pathlib.Path] = None,
    image_type: str = DEFAULT_IMAGE_TYPE,
    vendor: str = 'eclipse',
    jvm_impl: str = 'hotspot',
    session: Optional[aiohttp.ClientSession] = None,
) -> Optional[pathlib.Path]:
    """
    Downloads and extracts a standalone Java runtime if not already present.

    Args:
        version: The major Java version (e.g., 8, 17, 21).
        destination_dir: Directory for Java. A valid executable already in it
            skips the download. A temporary directory is used when omitted.
        image_type: Type of Java package ('jdk' or 'jre').
        vendor: The build vendor (usually 'eclipse' for Temurin).
        jvm_impl: The JVM implementation.
        session: Session to use instead of the shared one.

    Returns:
        The path to the Java executable, or None when the download failed.
    """
    loop = asyncio.get_running_loop()
    if destination_dir is None:
        destination_dir = pathlib.Path(await loop.run_in_executor(None, tempfile.mkdtemp, "downloaded-java-"))
        log.info(f"No destination directory provided, using temporary directory: {destination_dir}")
    destination_dir = pathlib.Path(destination_dir).resolve()

    platform_info = get_api_os_arch()
    if not platform_info:
        return None
    api_os = platform_info["os"]
    api_arch = platform_info["arch"]

    existing = await find_java_executable(destination_dir)
    if existing:
        log.info(f"Valid Java executable already found at: {existing}. Skipping download.")
        return existing

    api_url = f"{ADOPTIUM_API_BASE}/binary/latest/{version}/ga/{api_os}/{api_arch}/{image_type}/{jvm_impl}/normal/{vendor}"
    log.info(f"Attempting to download Java {version} ({image_type}) for {api_os}-{api_arch} from Adoptium API.")

    session = session or await get_session()
    try:
        async with session.head(api_url, allow_redirects=True) as head_response:
            head_response.raise_for_status()
            download_url = str(head_response.url)

        if download_url.endswith('.zip'):
            archive_type = 'zip'
        elif download_url.endswith('.tar.gz'):
            archive_type = 'tar.gz'
        else:
            archive_type = 'zip' if api_os == 'windows' else 'tar.gz'
        log.info(f"Resolved download URL: {download_url} ({archive_type})")

        await aiofiles.os.makedirs(destination_dir, exist_ok=True)

        log.info('Starting Java download...')
        async with session.get(download_url) as response:
            response.raise_for_status()
            file_data = await response.read()
        log.info('Download complete.')

        log.info(f"Extracting {archive_type} archive to {destination_dir}...")
        if archive_type == 'zip':
            await loop.run_in_executor(None, _extract_zip, file_data, destination_dir)
        else:
            fd, temp_tar_name = await loop.run_in_executor(None, tempfile.mkstemp, ".tar.gz", "java-dl-")
            os.close(fd)
            temp_tar_path = pathlib.Path(temp_tar_name)
            try:
                async with aiofiles.open(temp_tar_path, 'wb') as f:
                    await f.write(file_data)
                await loop.run_in_executor(None, _extract_tar, temp_tar_path, destination_dir)
            finally:
                try:
                    await aiofiles.os.remove(temp_tar_path)
                except OSError as e:
                    log.warning(f"Could not delete temporary tar file {temp_tar_path}: {e}")
        log.info('Extraction complete.')
    except aiohttp.ClientResponseError as e:
        log.error(f"HTTP Error downloading Java: {e.status} {e.message}")
        if e.status == 404:
            log.error(f"Could not find a build for Java {version} ({image_type}) for {api_os}-{api_arch}.")
        return None
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log.error(f"Java download failed: {e}")
        return None
    except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
        log.error(f"Java extraction failed, {destination_dir} may be incomplete: {e}")
        return None

    java_path = await find_java_executable(destination_dir)
    if java_path is None:
        log.error(f"Extraction seemed successful, but no Java executable was found in {destination_dir}")
    return java_path


class JavaRuntimeProvider:
    """Finds a Java executable for a major version, remembering earlier answers."""

    def __init__(self, config: LauncherConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session
        self._cache: Dict[int, pathlib.Path] = {}
        self._lock = asyncio.Lock()

    def runtime_dir_for(self, major: int) -> pathlib.Path:
        return self.config.runtime_dir / f"java-{major}"

    def _search_roots(self) -> List[pathlib.Path]:
        roots = []
        if self.config.java_path is not None:
            roots.append(self.config.java_path)
        roots.append(self.config.runtime_dir)
        roots.extend(platform_java_dirs())
        return roots

    async def _candidates(self) -> List[pathlib.Path]:
        candidates: List[pathlib.Path] = []
        loop = asyncio.get_running_loop()
        for root in self._search_roots():
            if await aiofiles.os.path.isfile(root):
                candidates.append(root)
            elif await aiofiles.os.path.isdir(root):
                candidates.extend(await loop.run_in_executor(None, find_java_executables, root))
        on_path = shutil.which('java')
        if on_path:
            candidates.append(pathlib.Path(on_path))
        return _unique(candidates)

    async def _search(self, major: int) -> Optional[pathlib.Path]:
        for candidate in await self._candidates():
            found = await get_java_major_version(candidate)
            log.debug(f"Java candidate {candidate}: major version {found}")
            if found == major:
                return candidate
        return None

    async def find_java(self, major: int = DEFAULT_JAVA_VERSION) -> pathlib.Path:
        """
        Path of a Java executable reporting major version `major`.

        Raises:
            JavaNotFoundError: No runtime matched and none could be downloaded.
        """
        async with self._lock:
            cached = self._cache.get(major)
        if cached is not None:
            return cached

        log.info(f"Looking for Java {major}")
        java = await self._search(major)
        if java is None and self.config.download_java:
            log.info(f"No local Java {major} found, downloading one")
            downloaded = await download_java(major, self.runtime_dir_for(major), session=self._session)
            if downloaded is not None and await get_java_major_version(downloaded) == major:
                java = downloaded
        if java is None:
            raise JavaNotFoundError(f"No Java {major} runtime found")

        log.info(f"Using Java {major} at {java}")
        async with self._lock:
            self._cache[major] = java
        return java

    async def clear_cache(self) -> None:
        async with self._lock:
            self._cache.clear()


def _unique(paths: Iterable[pathlib.Path]) -> List[pathlib.Path]:
    seen = set()
    result = []
    for path in paths:
        if path not in seen:
            seen.add(path)
            result.append(path)
    return result
