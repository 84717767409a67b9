"""
Evaluation of the `rules` lists attached to libraries and arguments.

The list is walked in order and the first rule whose predicate matches the
platform decides the outcome. When no rule matches, the item is allowed.
Switching to a "last match wins, default disallow" reading changes which
libraries and arguments older versions resolve to.
"""

import logging
import re
from typing import Mapping, Optional, Sequence

from .models import OsRule, Rule
from .platform_info import Platform

log = logging.getLogger(__name__)

# Features that hold for every launch performed by this package.
DEFAULT_FEATURES = {
    'has_custom_resolution': True,
}


def os_rule_matches(os_rule: OsRule, platform: Platform) -> bool:
    if os_rule.name is not None and os_rule.name != platform.os_name:
        return False
    if os_rule.arch is not None and os_rule.arch != platform.arch:
        return False
    if os_rule.version is not None:
        try:
            if not re.search(os_rule.version, platform.os_version):
                return False
        except re.error:
            log.warning(f"Invalid os version pattern in rule: {os_rule.version!r}. Treating it as not matching.")
            return False
    return True


def features_match(required: Mapping[str, bool], features: Mapping[str, bool]) -> bool:
    """Every feature named by the rule must have the required value, unknown features are false."""
    return all(bool(features.get(name, False)) == bool(value) for name, value in required.items())


def rule_matches(rule: Rule, platform: Platform, features: Optional[Mapping[str, bool]] = None) -> bool:
    if rule.os is not None and not os_rule_matches(rule.os, platform):
        return False
    if rule.features is not None:
        if not features_match(rule.features, DEFAULT_FEATURES if features is None else features):
            return False
    return True


def evaluate_rules(
    rules: Optional[Sequence[Rule]],
    platform: Platform,
    features: Optional[Mapping[str, bool]] = None,
    default: bool = True,
) -> bool:
    """
    Returns True when an item guarded by `rules` applies to `platform`.

    Args:
        rules: The ordered rule list, None or empty means no restriction.
        platform: Platform the item is evaluated for.
        features: Feature flags for `features` predicates, DEFAULT_FEATURES when None.
        default: Outcome when no rule matches.
    """
    if not rules:
        return True
    for rule in rules:
        if rule_matches(rule, platform, features):
            return rule.action == 'allow'
    return default
