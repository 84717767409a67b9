import logging
import pathlib
from typing import Dict, List, Mapping, Optional, Sequence

from . import LAUNCHER_NAME, __version__
from .config import LauncherConfig, WindowConfig
from .layout import InstanceLayout
from .models import Account, ConditionalArgument, VersionDescriptor
from .planner import allowed_libraries, library_path
from .platform_info import Platform
from .replacer import replace_list
from .rules import DEFAULT_FEATURES, evaluate_rules

log = logging.getLogger(__name__)

PLACEHOLDER_PLAYER_NAME = 'Player'
PLACEHOLDER_UUID = '00000000-0000-0000-0000-000000000000'
PLACEHOLDER_ACCESS_TOKEN = 'placeholder_token'
PLACEHOLDER_USER_TYPE = 'msa'


class LaunchAssembler:
    """
    Builds the JVM command line for a version, without the java executable.

    Order: configured JVM args, extra JVM args, memory flags, natives
    properties, classpath, main class, substituted game args, then configured
    and extra game args verbatim.
    """

    def __init__(self, config: LauncherConfig, platform: Platform):
        self.config = config
        self.platform = platform
        self.warnings: List[str] = []

    def _warn(self, message: str) -> None:
        log.warning(message)
        self.warnings.append(message)

    def classpath(self, descriptor: VersionDescriptor, layout: InstanceLayout) -> str:
        entries = [str(library_path(layout, lib.name)) for lib in allowed_libraries(descriptor, self.platform)]
        entries.append(str(layout.client_jar(descriptor.id)))
        log.info(f"Built classpath with {len(entries)} entries")
        return self.platform.classpath_separator.join(entries)

    def natives_properties(self, natives_dir: pathlib.Path) -> List[str]:
        if not natives_dir.is_dir():
            return []
        natives_path = str(natives_dir)
        return [
            f"-Djava.library.path={natives_path}",
            f"-Djna.tmpdir={natives_path}",
            f"-Dorg.lwjgl.system.SharedLibraryExtractPath={natives_path}",
            f"-Dio.netty.native.workdir={natives_path}",
        ]

    def raw_game_arguments(self, descriptor: VersionDescriptor,
                           features: Optional[Mapping[str, bool]] = None) -> List[str]:
        """Game argument templates that apply, before substitution."""
        if descriptor.arguments is not None:
            args: List[str] = []
            for item in descriptor.arguments.game:
                if isinstance(item, ConditionalArgument):
                    # Feature-gated values (demo mode, quick play) need a rule that actually matches.
                    gated = any(rule.features for rule in item.rules)
                    if evaluate_rules(item.rules, self.platform, features, default=not gated):
                        args.extend(item.values)
                else:
                    args.append(item)
            return args
        if descriptor.minecraft_arguments:
            return descriptor.minecraft_arguments.split()
        return []

    def replacements(self, descriptor: VersionDescriptor, layout: InstanceLayout,
                     account: Account, window: WindowConfig) -> Dict[str, str]:
        player_name = account.name
        if not player_name:
            self._warn("Empty player name detected, using placeholder")
            player_name = PLACEHOLDER_PLAYER_NAME
        uuid = account.uuid
        if not uuid:
            self._warn("Empty UUID detected, using placeholder")
            uuid = PLACEHOLDER_UUID
        access_token = account.access_token
        if not access_token:
            self._warn("Empty access token detected, using placeholder")
            access_token = PLACEHOLDER_ACCESS_TOKEN
        user_type = account.account_type
        if not user_type:
            self._warn("Empty user type detected, using 'msa' as default")
            user_type = PLACEHOLDER_USER_TYPE

        assets_root = str(layout.assets_dir)
        return {
            '${auth_player_name}': player_name,
            '${version_name}': descriptor.id,
            '${game_directory}': str(layout.root),
            '${assets_root}': assets_root,
            '${game_assets}': assets_root,
            '${assets_index_name}': descriptor.asset_index.id,
            '${auth_uuid}': uuid,
            '${auth_access_token}': access_token,
            '${auth_session}': f"token:{access_token}:{uuid}",
            '${auth_xuid}': '0',
            '${clientid}': '',
            '${user_type}': user_type,
            '${user_properties}': '{}',
            '${version_type}': 'release',
            '${resolution_width}': str(window.width),
            '${resolution_height}': str(window.height),
            '${launcher_name}': LAUNCHER_NAME,
            '${launcher_version}': __version__,
        }

    def assemble(
        self,
        descriptor: VersionDescriptor,
        layout: InstanceLayout,
        account: Account,
        window: Optional[WindowConfig] = None,
        extra_jvm_args: Sequence[str] = (),
        extra_game_args: Sequence[str] = (),
    ) -> List[str]:
        self.warnings = []
        window = window or WindowConfig()
        features = dict(DEFAULT_FEATURES)

        args: List[str] = []
        args.extend(self.config.jvm_args)
        args.extend(extra_jvm_args)
        args.append(f"-Xms{self.config.memory_min}m")
        args.append(f"-Xmx{self.config.memory_max}m")
        args.extend(self.natives_properties(layout.natives_dir(descriptor.id)))
        args.append('-cp')
        args.append(self.classpath(descriptor, layout))
        args.append(descriptor.main_class)

        replacements = self.replacements(descriptor, layout, account, window)
        args.extend(replace_list(self.raw_game_arguments(descriptor, features), replacements))
        if window.fullscreen:
            args.append('--fullscreen')
        args.extend(self.config.game_args)
        args.extend(extra_game_args)
        return args


def redact_arguments(args: Sequence[str], secrets: Sequence[str] = ()) -> List[str]:
    """Copy of `args` safe to log: access tokens are masked."""
    redacted = []
    hide_next = False
    for arg in args:
        if hide_next:
            redacted.append('***REDACTED***')
            hide_next = False
            continue
        if arg == '--accessToken':
            hide_next = True
        for secret in secrets:
            if secret and secret in arg:
                arg = arg.replace(secret, '***REDACTED***')
        redacted.append(arg)
    return redacted
