"""
Typed views of the JSON documents served by the version manifest host.

Every `from_dict` constructor validates the fields the launcher depends on and
raises ParseError instead of falling back to partial data.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ParseError

log = logging.getLogger(__name__)


def _require(data: Mapping[str, Any], key: str, kind: type, where: str) -> Any:
    if not isinstance(data, Mapping):
        raise ParseError(f"{where}: expected an object, got {type(data).__name__}")
    if key not in data:
        raise ParseError(f"{where}: missing required field '{key}'")
    value = data[key]
    if not isinstance(value, kind) or isinstance(value, bool) and kind is not bool:
        raise ParseError(f"{where}: field '{key}' has invalid type {type(value).__name__}")
    return value


@dataclass(frozen=True)
class VersionEntry:
    id: str
    type: str
    url: str
    time: str = ''
    release_time: str = ''
    sha1: str = ''
    compliance_level: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'VersionEntry':
        where = "version manifest entry"
        return cls(
            id=_require(data, 'id', str, where),
            type=_require(data, 'type', str, where),
            url=_require(data, 'url', str, where),
            time=data.get('time', ''),
            release_time=data.get('releaseTime', ''),
            sha1=data.get('sha1', ''),
            compliance_level=data.get('complianceLevel'),
        )


@dataclass(frozen=True)
class VersionManifest:
    latest_release: str
    latest_snapshot: str
    versions: Tuple[VersionEntry, ...]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'VersionManifest':
        latest = _require(data, 'latest', dict, "version manifest")
        versions = _require(data, 'versions', list, "version manifest")
        return cls(
            latest_release=latest.get('release', ''),
            latest_snapshot=latest.get('snapshot', ''),
            versions=tuple(VersionEntry.from_dict(v) for v in versions),
        )

    def find(self, version_id: str) -> Optional[VersionEntry]:
        for entry in self.versions:
            if entry.id == version_id:
                return entry
        return None


@dataclass(frozen=True)
class DownloadInfo:
    url: str
    sha1: Optional[str] = None
    size: Optional[int] = None
    path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str = "download") -> 'DownloadInfo':
        return cls(
            url=_require(data, 'url', str, where),
            sha1=data.get('sha1'),
            size=data.get('size'),
            path=data.get('path'),
        )


@dataclass(frozen=True)
class AssetIndexRef:
    id: str
    sha1: str
    size: int
    url: str
    total_size: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'AssetIndexRef':
        where = "assetIndex"
        return cls(
            id=_require(data, 'id', str, where),
            sha1=_require(data, 'sha1', str, where),
            size=_require(data, 'size', int, where),
            url=_require(data, 'url', str, where),
            total_size=data.get('totalSize'),
        )


@dataclass(frozen=True)
class OsRule:
    name: Optional[str] = None
    version: Optional[str] = None
    arch: Optional[str] = None


@dataclass(frozen=True)
class Rule:
    action: str
    os: Optional[OsRule] = None
    features: Optional[Dict[str, bool]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Rule':
        action = _require(data, 'action', str, "rule")
        if action not in ('allow', 'disallow'):
            raise ParseError(f"rule: unknown action '{action}'")
        os_rule = None
        if data.get('os') is not None:
            os_data = data['os']
            if not isinstance(os_data, dict):
                raise ParseError("rule: 'os' must be an object")
            os_rule = OsRule(os_data.get('name'), os_data.get('version'), os_data.get('arch'))
        features = data.get('features')
        if features is not None and not isinstance(features, dict):
            raise ParseError("rule: 'features' must be an object")
        return cls(action, os_rule, dict(features) if features is not None else None)


def parse_rules(data: Any) -> Optional[Tuple[Rule, ...]]:
    if data is None:
        return None
    if not isinstance(data, list):
        raise ParseError("rules must be a list")
    return tuple(Rule.from_dict(rule) for rule in data)


@dataclass(frozen=True)
class ConditionalArgument:
    rules: Tuple[Rule, ...]
    values: Tuple[str, ...]


# A literal string, or values gated by rules.
ArgumentItem = Union[str, ConditionalArgument]


def parse_argument_items(data: Any, where: str) -> Tuple[ArgumentItem, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ParseError(f"{where}: expected a list")
    items: List[ArgumentItem] = []
    for entry in data:
        if isinstance(entry, str):
            items.append(entry)
        elif isinstance(entry, dict):
            value = entry.get('value')
            if isinstance(value, str):
                values: Tuple[str, ...] = (value,)
            elif isinstance(value, list) and all(isinstance(v, str) for v in value):
                values = tuple(value)
            else:
                raise ParseError(f"{where}: unsupported argument value {value!r}")
            items.append(ConditionalArgument(parse_rules(entry.get('rules')) or (), values))
        else:
            raise ParseError(f"{where}: unsupported argument entry {entry!r}")
    return tuple(items)


@dataclass(frozen=True)
class Arguments:
    game: Tuple[ArgumentItem, ...] = ()
    jvm: Tuple[ArgumentItem, ...] = ()


@dataclass(frozen=True)
class Library:
    name: str
    rules: Optional[Tuple[Rule, ...]] = None
    artifact: Optional[DownloadInfo] = None
    classifiers: Dict[str, DownloadInfo] = field(default_factory=dict)
    natives: Dict[str, str] = field(default_factory=dict)
    extract_exclude: Tuple[str, ...] = ()

    def __post_init__(self):
        if len(self.name.split(':')) < 3:
            raise ParseError(f"Invalid maven coordinate: '{self.name}'")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Library':
        name = _require(data, 'name', str, "library")
        where = f"library {name}"
        downloads = data.get('downloads') or {}
        if not isinstance(downloads, dict):
            raise ParseError(f"{where}: 'downloads' must be an object")
        artifact = None
        if downloads.get('artifact') is not None:
            artifact = DownloadInfo.from_dict(downloads['artifact'], f"{where} artifact")
        classifiers = {
            key: DownloadInfo.from_dict(info, f"{where} classifier {key}")
            for key, info in (downloads.get('classifiers') or {}).items()
        }
        extract = data.get('extract') or {}
        return cls(
            name=name,
            rules=parse_rules(data.get('rules')),
            artifact=artifact,
            classifiers=classifiers,
            natives=dict(data.get('natives') or {}),
            extract_exclude=tuple(extract.get('exclude') or ()),
        )


@dataclass(frozen=True)
class VersionDescriptor:
    id: str
    main_class: str
    asset_index: AssetIndexRef
    client: DownloadInfo
    libraries: Tuple[Library, ...]
    arguments: Optional[Arguments] = None
    minecraft_arguments: Optional[str] = None
    java_major_version: Optional[int] = None
    type: str = 'release'
    assets: str = ''

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'VersionDescriptor':
        where = "version descriptor"
        version_id = _require(data, 'id', str, where)
        downloads = _require(data, 'downloads', dict, where)
        client = DownloadInfo.from_dict(_require(downloads, 'client', dict, f"{where} downloads"), "client download")
        arguments = None
        if data.get('arguments') is not None:
            raw_args = _require(data, 'arguments', dict, where)
            arguments = Arguments(
                game=parse_argument_items(raw_args.get('game'), "game arguments"),
                jvm=parse_argument_items(raw_args.get('jvm'), "jvm arguments"),
            )
        minecraft_arguments = data.get('minecraftArguments')
        if minecraft_arguments is not None and not isinstance(minecraft_arguments, str):
            raise ParseError(f"{where}: 'minecraftArguments' must be a string")
        java_version = data.get('javaVersion') or {}
        if not isinstance(java_version, dict):
            raise ParseError(f"{where}: 'javaVersion' must be an object")
        libraries = _require(data, 'libraries', list, where)
        return cls(
            id=version_id,
            main_class=_require(data, 'mainClass', str, where),
            asset_index=AssetIndexRef.from_dict(_require(data, 'assetIndex', dict, where)),
            client=client,
            libraries=tuple(Library.from_dict(lib) for lib in libraries),
            arguments=arguments,
            minecraft_arguments=minecraft_arguments,
            java_major_version=java_version.get('majorVersion'),
            type=data.get('type', 'release'),
            assets=data.get('assets', ''),
        )


@dataclass(frozen=True)
class FetchTask:
    """One file to make present on disk: where from, where to, and what it must hash to."""

    url: str
    destination: Path
    sha1: Optional[str] = None
    size: Optional[int] = None


@dataclass(frozen=True)
class Account:
    """Already authenticated account, as handed over by the identity layer."""

    name: str = ''
    uuid: str = ''
    access_token: str = ''
    account_type: str = 'msa'

    @classmethod
    def offline(cls, name: str, uuid: str = '') -> 'Account':
        return cls(name=name, uuid=uuid, access_token='', account_type='legacy')
