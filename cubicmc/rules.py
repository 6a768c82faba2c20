"""Platform-conditional inclusion rules, as found on libraries and on conditional
arguments of version descriptors.

A rule list is evaluated in declared order and every matching rule overwrites the
running decision, so the last matching rule wins. An empty rule list always allows.
"""

from functools import reduce
import platform

from typing import Any, Dict, List, Optional, Sequence


class Rule:
    """A single inclusion rule: an action and an optional OS constraint. Rules coming
    from argument lists may also be constrained on features.
    """

    __slots__ = "allow", "os", "features"

    def __init__(self, allow: bool, os: Optional[str] = None, features: Optional[Dict[str, Any]] = None) -> None:
        self.allow = allow
        self.os = os
        self.features = features

    @classmethod
    def from_json(cls, value: Any, path: str) -> "Rule":
        """Parse a rule object from a descriptor, the path is used in error messages.
        """

        if not isinstance(value, dict):
            raise ValueError(f"{path} must be an object")

        action = value.get("action")
        if not isinstance(action, str):
            raise ValueError(f"{path}/action must be a string")

        os_name = None
        rule_os = value.get("os")
        if rule_os is not None:
            if not isinstance(rule_os, dict):
                raise ValueError(f"{path}/os must be an object")
            os_name = rule_os.get("name")
            if os_name is not None and not isinstance(os_name, str):
                raise ValueError(f"{path}/os/name must be a string")

        features = value.get("features")
        if features is not None and not isinstance(features, dict):
            raise ValueError(f"{path}/features must be an object")

        # Anything else than "allow" is a denial ("disallow" in practice).
        return cls(action == "allow", os_name, features)

    def matches(self, os_name: Optional[str], features: Optional[Dict[str, bool]] = None) -> bool:
        """Return true if this rule applies to the given platform and features.
        """
        if self.os is not None and self.os != os_name:
            return False
        if self.features is not None:
            enabled = features or {}
            for feature_name, feature_expected in self.features.items():
                if enabled.get(feature_name, False) != feature_expected:
                    return False
        return True

    def __repr__(self) -> str:
        return f"<Rule {'allow' if self.allow else 'disallow'} os={self.os}>"


def parse_rules(value: Any, path: str) -> List[Rule]:
    """Parse a list of rules from a descriptor.
    """

    if not isinstance(value, list):
        raise ValueError(f"{path} must be a list")

    return [Rule.from_json(rule, f"{path}/{i}") for i, rule in enumerate(value)]


def interpret_rules(rules: Optional[Sequence[Rule]],
    os_name: Optional[str] = None,
    features: Optional[Dict[str, bool]] = None
) -> bool:
    """Decide if something guarded by the given rules is allowed on the platform.

    This is a left fold starting from a denial: every rule matching the platform
    replaces the decision with its own action. Rules for an unknown OS never match.

    :param rules: The ordered rules, none or empty means allowed.
    :param os_name: The OS identifier to evaluate for, defaults to the current one.
    :param features: Enabled features, only relevant for argument rules.
    """

    if not rules:
        return True

    if os_name is None:
        os_name = minecraft_os

    return reduce(
        lambda allowed, rule: rule.allow if rule.matches(os_name, features) else allowed,
        rules,
        False)


def get_minecraft_os() -> Optional[str]:
    """Return the name of the current OS as used in descriptors, none if unsupported.
    """
    return {
        "Linux": "linux",
        "Windows": "windows",
        "Darwin": "osx",
    }.get(platform.system())


# Name of the OS has used by descriptors.
minecraft_os = get_minecraft_os()

# Stores the bits length of pointers on the current system.
minecraft_arch_bits = {
    "64bit": 64,
    "32bit": 32
}.get(platform.architecture()[0])
