"""
Turns a version descriptor into the list of files a launch needs.
"""

import logging
import pathlib
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .config import DEFAULT_ASSET_BASE_URL
from .errors import ParseError
from .layout import InstanceLayout
from .models import FetchTask, Library, VersionDescriptor
from .platform_info import Platform
from .rules import evaluate_rules

log = logging.getLogger(__name__)


def maven_path(coordinate: str, classifier: Optional[str] = None) -> pathlib.PurePosixPath:
    """
    Maps `group:artifact:version[:classifier]` to its repository-relative path,
    `group/as/dirs/artifact/version/artifact-version[-classifier].jar`.
    An explicit `classifier` replaces the one carried by the coordinate.
    """
    parts = coordinate.split(':')
    if len(parts) < 3:
        raise ParseError(f"Invalid maven coordinate: '{coordinate}'")
    group, artifact, version = parts[0], parts[1], parts[2]
    if classifier is None and len(parts) > 3:
        classifier = parts[3]
    suffix = f"-{classifier}" if classifier else ''
    return pathlib.PurePosixPath(*group.split('.'), artifact, version, f"{artifact}-{version}{suffix}.jar")


def library_path(layout: InstanceLayout, coordinate: str, classifier: Optional[str] = None) -> pathlib.Path:
    return layout.libraries_dir.joinpath(*maven_path(coordinate, classifier).parts)


def native_classifiers(library: Library, platform: Platform) -> List[str]:
    """
    Classifier keys of `library` holding natives for `platform`.

    A legacy `natives` mapping names exactly one classifier per OS. Without it,
    every key equal to one of the OS's natives names, or extending it with a
    `-suffix`, is selected.
    """
    if not library.classifiers:
        return []
    if platform.os_name in library.natives:
        key = library.natives[platform.os_name].replace('${arch}', platform.arch_bits)
        return [key] if key in library.classifiers else []
    return [
        key for key in library.classifiers
        if any(key == base or key.startswith(base + '-') for base in platform.native_classifiers)
    ]


def allowed_libraries(descriptor: VersionDescriptor, platform: Platform) -> List[Library]:
    return [lib for lib in descriptor.libraries if evaluate_rules(lib.rules, platform)]


def native_archives(descriptor: VersionDescriptor, platform: Platform,
                    layout: InstanceLayout) -> List[Tuple[Library, pathlib.Path]]:
    """Native archive paths of every allowed library, in descriptor order."""
    archives = []
    for lib in allowed_libraries(descriptor, platform):
        for classifier in native_classifiers(lib, platform):
            archives.append((lib, library_path(layout, lib.name, classifier)))
    return archives


def _dedupe(tasks: Iterable[FetchTask]) -> List[FetchTask]:
    seen = set()
    unique = []
    for task in tasks:
        if task.destination in seen:
            log.debug(f"Skipping duplicate download target: {task.destination}")
            continue
        seen.add(task.destination)
        unique.append(task)
    return unique


def plan(descriptor: VersionDescriptor, platform: Platform, layout: InstanceLayout) -> List[FetchTask]:
    """
    Computes the fetch tasks for the client jar, the libraries and natives
    allowed on `platform`, and the asset index. Asset objects are planned by
    plan_assets once the index is on disk.
    """
    tasks = [FetchTask(descriptor.client.url, layout.client_jar(descriptor.id),
                       descriptor.client.sha1, descriptor.client.size)]

    for lib in allowed_libraries(descriptor, platform):
        if lib.artifact and lib.artifact.url:
            tasks.append(FetchTask(lib.artifact.url, library_path(layout, lib.name),
                                   lib.artifact.sha1, lib.artifact.size))
        for classifier in native_classifiers(lib, platform):
            info = lib.classifiers[classifier]
            if not info.url:
                continue
            tasks.append(FetchTask(info.url, library_path(layout, lib.name, classifier), info.sha1, info.size))

    index = descriptor.asset_index
    tasks.append(FetchTask(index.url, layout.asset_index_path(index.id), index.sha1, index.size))

    tasks = _dedupe(tasks)
    log.info(f"Planned {len(tasks)} files for version {descriptor.id} on {platform.os_name}-{platform.arch}")
    return tasks


def plan_assets(index: Mapping[str, Any], layout: InstanceLayout,
                asset_base_url: str = DEFAULT_ASSET_BASE_URL) -> List[FetchTask]:
    """One task per object of a parsed asset index, named by content hash."""
    objects = index.get('objects') if isinstance(index, Mapping) else None
    if not isinstance(objects, Mapping):
        raise ParseError("Asset index has no 'objects' mapping")

    base_url = asset_base_url.rstrip('/')
    tasks = []
    for name, details in objects.items():
        asset_hash = details.get('hash') if isinstance(details, Mapping) else None
        if not isinstance(asset_hash, str) or len(asset_hash) < 2:
            log.warning(f"Asset '{name}' is missing hash in index, skipping.")
            continue
        prefix = asset_hash[:2]
        tasks.append(FetchTask(f"{base_url}/{prefix}/{asset_hash}",
                               layout.asset_objects_dir / prefix / asset_hash,
                               asset_hash, details.get('size')))
    return _dedupe(tasks)
