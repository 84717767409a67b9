"""
Concurrent, verified file downloads.

Bodies are streamed to a sibling `.tmp` file, checked against the expected
SHA-1 and only then renamed onto the destination, so a destination is either
absent, its previous content, or a verified copy.
"""

import asyncio
import hashlib
import logging
import pathlib
from typing import Callable, List, Optional, Sequence

import aiofiles
import aiofiles.os
import aiohttp
from tqdm.asyncio import tqdm

from .errors import FetchAggregateError, FilesystemError, NetworkError, ValidationError
from .models import FetchTask
from .session import get_session

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int, int], None]


async def get_file_sha1(file_path: pathlib.Path) -> str:
    """Calculates the SHA1 hash of a file asynchronously."""
    sha1_hash = hashlib.sha1()
    try:
        async with aiofiles.open(file_path, 'rb') as f:
            while True:
                chunk = await f.read(CHUNK_SIZE)
                if not chunk:
                    break
                sha1_hash.update(chunk)
    except OSError as e:
        raise FilesystemError(f"Failed to read {file_path} for hashing: {e}") from e
    return sha1_hash.hexdigest()


async def file_exists(file_path: pathlib.Path) -> bool:
    return await aiofiles.os.path.isfile(file_path)


def temp_path_for(destination: pathlib.Path) -> pathlib.Path:
    return destination.with_name(destination.name + '.tmp')


async def _remove_quietly(path: pathlib.Path) -> None:
    try:
        if await aiofiles.os.path.exists(path):
            await aiofiles.os.remove(path)
    except OSError as e:
        log.warning(f"Could not remove temporary file {path}: {e}")


class Fetcher:
    """Executes FetchTasks over a shared aiohttp session."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, chunk_size: int = CHUNK_SIZE):
        self._session = session
        self.chunk_size = chunk_size

    async def _get_session(self) -> aiohttp.ClientSession:
        return self._session or await get_session()

    async def is_up_to_date(self, task: FetchTask) -> bool:
        """True when the destination exists and hashes to the expected SHA-1."""
        if not task.sha1 or not await file_exists(task.destination):
            return False
        try:
            current_sha1 = await get_file_sha1(task.destination)
        except FilesystemError as e:
            log.warning(f"Could not hash existing file {task.destination}. Redownloading. Error: {e}")
            return False
        if current_sha1.lower() == task.sha1.lower():
            return True
        log.warning(f"SHA1 mismatch for existing file {task.destination.name}. "
                    f"Expected {task.sha1}, got {current_sha1}. Redownloading.")
        return False

    async def fetch_one(self, task: FetchTask, progress: Optional[ProgressCallback] = None) -> bool:
        """
        Makes one task's destination present and verified.

        Returns:
            True if a download happened, False if the existing file was kept.
        """
        if await self.is_up_to_date(task):
            log.debug(f"File {task.destination} already exists with correct hash")
            if progress:
                size = (await aiofiles.os.stat(task.destination)).st_size
                progress(size, size)
            return False

        destination = task.destination
        try:
            await aiofiles.os.makedirs(destination.parent, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create directory {destination.parent}: {e}") from e

        temp_path = temp_path_for(destination)
        log.debug(f"Downloading {task.url} to {destination}")
        session = await self._get_session()
        try:
            async with session.get(task.url) as response:
                if response.status >= 400:
                    raise NetworkError(f"HTTP error {response.status} when downloading from {task.url}",
                                       url=task.url, status=response.status)
                total = response.content_length or 0
                downloaded = 0
                async with aiofiles.open(temp_path, 'wb') as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        await f.write(chunk)
                        downloaded += len(chunk)
                        if progress:
                            progress(downloaded, total)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await _remove_quietly(temp_path)
            raise NetworkError(f"Failed to download {task.url}: {e}", url=task.url) from e
        except OSError as e:
            await _remove_quietly(temp_path)
            raise FilesystemError(f"Failed to write temporary file {temp_path}: {e}") from e
        except NetworkError:
            await _remove_quietly(temp_path)
            raise

        if task.sha1:
            try:
                actual_sha1 = await get_file_sha1(temp_path)
            except FilesystemError:
                await _remove_quietly(temp_path)
                raise
            if actual_sha1.lower() != task.sha1.lower():
                await _remove_quietly(temp_path)
                raise ValidationError(f"Hash mismatch for {destination}: expected {task.sha1}, got {actual_sha1}")

        try:
            await aiofiles.os.replace(temp_path, destination)
        except OSError as e:
            await _remove_quietly(temp_path)
            raise FilesystemError(f"Failed to move file to final destination {destination}: {e}") from e

        if progress:
            final = total or downloaded
            progress(final, final)
        log.debug(f"Successfully downloaded {destination}")
        return True

    async def fetch_with_progress(self, task: FetchTask, callback: ProgressCallback) -> bool:
        """fetch_one reporting `(downloaded, total)` after each chunk and `(total, total)` at the end."""
        return await self.fetch_one(task, progress=callback)

    async def fetch_all(self, tasks: Sequence[FetchTask], concurrency: int = 8,
                        pbar: Optional[tqdm] = None) -> int:
        """
        Runs every task with at most `concurrency` in flight.

        A failing task never cancels the others. Once all of them settled, a
        FetchAggregateError carrying every failure, in submission order, is
        raised if any failed.

        Returns:
            The number of files actually downloaded.
        """
        if not tasks:
            return 0
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        log.info(f"Starting download check of {len(tasks)} files")
        semaphore = asyncio.Semaphore(concurrency)

        async def run(index: int, task: FetchTask) -> bool:
            try:
                async with semaphore:
                    return await self.fetch_one(task)
            except Exception as e:
                log.error(f"Download {index} ({task.url}) failed: {e}")
                raise
            finally:
                if pbar is not None:
                    pbar.update(1)

        results = await asyncio.gather(*(run(i, task) for i, task in enumerate(tasks)), return_exceptions=True)

        failures: List[BaseException] = [r for r in results if isinstance(r, BaseException)]
        if failures:
            raise FetchAggregateError(failures)

        downloaded = sum(1 for r in results if r is True)
        log.info(f"All {len(tasks)} files present ({downloaded} downloaded)")
        return downloaded
