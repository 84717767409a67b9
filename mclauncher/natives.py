import asyncio
import logging
import os
import pathlib
import shutil
import stat
import zipfile
from typing import Optional, Sequence

import aiofiles.os

from .errors import NativeExtractionError
from .layout import InstanceLayout
from .models import VersionDescriptor
from .planner import native_archives
from .platform_info import Platform

log = logging.getLogger(__name__)

METADATA_DIR = 'META-INF/'


def _safe_member_path(extract_to_dir: pathlib.Path, member_name: str) -> Optional[pathlib.Path]:
    """Destination of a zip member, or None when it would land outside `extract_to_dir`."""
    name = member_name.replace('\\', '/')
    if name.startswith('/') or (len(name) > 1 and name[1] == ':'):
        return None
    parts = [part for part in name.split('/') if part not in ('', '.')]
    if not parts or '..' in parts:
        return None
    target = extract_to_dir.joinpath(*parts)
    root = extract_to_dir.resolve()
    if not target.resolve().is_relative_to(root):
        return None
    return target


def _is_excluded(member_name: str, exclude: Sequence[str]) -> bool:
    if member_name.upper().startswith(METADATA_DIR):
        return True
    return any(member_name.startswith(prefix) for prefix in exclude)


# Sync zip extraction (run in executor)
def _extract_zip_sync(jar_path: pathlib.Path, extract_to_dir: pathlib.Path, exclude: Sequence[str] = ()) -> int:
    extracted = 0
    with zipfile.ZipFile(jar_path, 'r') as zip_ref:
        for member in zip_ref.infolist():
            if _is_excluded(member.filename, exclude):
                continue
            target = _safe_member_path(extract_to_dir, member.filename)
            if target is None:
                log.warning(f"Skipping unsafe entry {member.filename!r} in {jar_path.name}")
                continue
            if member.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with zip_ref.open(member) as source, open(target, 'wb') as dest:
                shutil.copyfileobj(source, dest)
            if os.name != 'nt':
                target.chmod(stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH)
            extracted += 1
    return extracted


async def extract_archive(jar_path: pathlib.Path, extract_to_dir: pathlib.Path, exclude: Sequence[str] = ()) -> int:
    """Extracts one native archive, returning the number of files written."""
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, _extract_zip_sync, jar_path, extract_to_dir, tuple(exclude))
    except zipfile.BadZipFile as e:
        raise NativeExtractionError(f"Failed to read zip file {jar_path}: {e}") from e
    except OSError as e:
        raise NativeExtractionError(f"Failed to extract natives from {jar_path.name}: {e}") from e


async def reset_natives_dir(natives_dir: pathlib.Path) -> None:
    try:
        if await aiofiles.os.path.isdir(natives_dir):
            log.debug(f"Removing existing natives directory: {natives_dir}")
            await asyncio.get_running_loop().run_in_executor(None, shutil.rmtree, natives_dir)
        await aiofiles.os.makedirs(natives_dir, exist_ok=True)
    except OSError as e:
        raise NativeExtractionError(f"Could not clear natives directory {natives_dir}: {e}") from e


async def extract_natives(descriptor: VersionDescriptor, layout: InstanceLayout, platform: Platform) -> int:
    """
    Unpacks the native archives of every allowed library into the version's
    natives directory. Any failing archive aborts the whole step, launching
    with half the natives is never attempted.

    Returns:
        The number of archives extracted.
    """
    natives_dir = layout.natives_dir(descriptor.id)
    await reset_natives_dir(natives_dir)

    count = 0
    for lib, jar_path in native_archives(descriptor, platform, layout):
        if not await aiofiles.os.path.isfile(jar_path):
            log.debug(f"Native archive not present, skipping: {jar_path}")
            continue
        log.info(f"Extracting native library: {jar_path.name}")
        files = await extract_archive(jar_path, natives_dir, lib.extract_exclude)
        log.debug(f"Extracted {files} files from {jar_path.name}")
        count += 1

    if count == 0:
        log.info("No native libraries to extract for this platform.")
    else:
        log.info(f"Native libraries extracted to: {natives_dir}")
    return count
