"""
Package Map

Prefix-based aliasing of bare and scoped module names.

A rule maps a name prefix to a target prefix. A prefix only matches on a path
segment boundary: the rule for `jquery` rewrites `jquery` and `jquery/ui` but
never `jquery-ui`. A rule whose target is itself a mapping is contextual: its
inner rules only apply to names requested by a referrer under the outer
prefix.

Maps are immutable. Loaders swap a whole map in one assignment; helpers such
as `merged()` and `with_rule()` build new maps instead of mutating.
"""

import logging
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from ..shared.errors import ResolutionError
from ..utils.config import MAX_MAP_DEPTH, PATH_SEPARATOR, SCOPE_PREFIX, VERSION_SEPARATOR
from .semver import VersionParseError, parse_version

logger = logging.getLogger(__name__)

Target = Union[str, Mapping[str, str]]


def prefix_matches(prefix: str, name: str) -> bool:
    """True if `prefix` equals `name` or is followed by '/' in it."""
    if not name.startswith(prefix):
        return False
    return len(name) == len(prefix) or name[len(prefix)] == PATH_SEPARATOR


def _longest_match(rules: Mapping[str, str], name: str) -> Optional[Tuple[str, str]]:
    best: Optional[Tuple[str, str]] = None
    for prefix, target in rules.items():
        if prefix_matches(prefix, name) and (best is None or len(prefix) > len(best[0])):
            best = (prefix, target)
    return best


def package_segment(name: str) -> str:
    """Leading package part of a name: 'pkg@1.0' or '@org/pkg@1.0'."""
    segments = name.split(PATH_SEPARATOR)
    if name.startswith(SCOPE_PREFIX) and len(segments) > 1:
        return PATH_SEPARATOR.join(segments[:2])
    return segments[0]


def semver_map(versioned_name: str) -> Dict[str, str]:
    """
    Derive alias rules from one concrete versioned name.

    semver_map('toolkit@0.0.13/src/runtime') →
        {'toolkit': 'toolkit@0.0.13',
         'toolkit@0': 'toolkit@0.0.13',
         'toolkit@0.0': 'toolkit@0.0.13'}

    An unparseable version, or no version at all, yields no aliases.
    """
    versioned = package_segment(versioned_name)
    at = versioned.rfind(VERSION_SEPARATOR)
    if at <= 0:
        return {}
    package, version_text = versioned[:at], versioned[at + 1:]
    try:
        version = parse_version(version_text)
    except VersionParseError as e:
        logger.debug(f"semver_map: no aliases for {versioned_name!r}: {e}")
        return {}

    aliases = {package: versioned}
    for key in version.alias_keys:
        aliases[f"{package}{VERSION_SEPARATOR}{key}"] = versioned
    return aliases


class PackageMap:
    """
    Immutable table of prefix rewrite rules.

    Plain rules (prefix → target string) apply to every name. Contextual rules
    (prefix → {prefix: target}) apply only when the referrer falls under the
    outer prefix, and take precedence over plain rules.
    """

    __slots__ = ("_rules", "_contextual")

    def __init__(self, rules: Optional[Mapping[str, Target]] = None):
        plain: Dict[str, str] = {}
        contextual: Dict[str, Mapping[str, str]] = {}
        for prefix, target in (rules or {}).items():
            if isinstance(target, str):
                plain[prefix] = target
            elif isinstance(target, Mapping):
                contextual[prefix] = MappingProxyType(dict(target))
            else:
                raise TypeError(
                    f"Package map target for {prefix!r} must be str or mapping, "
                    f"got {type(target).__name__}"
                )
        self._rules = MappingProxyType(plain)
        self._contextual = MappingProxyType(contextual)

    @classmethod
    def from_semver(cls, versioned_name: str) -> "PackageMap":
        return cls(semver_map(versioned_name))

    def merged(self, other: Union["PackageMap", Mapping[str, Target]]) -> "PackageMap":
        """New map with `other`'s rules layered over these."""
        rules: Dict[str, Target] = dict(self.items())
        rules.update(other.items() if isinstance(other, PackageMap) else other)
        return PackageMap(rules)

    def with_rule(self, prefix: str, target: Target) -> "PackageMap":
        return self.merged({prefix: target})

    def items(self) -> Iterator[Tuple[str, Target]]:
        yield from self._rules.items()
        yield from self._contextual.items()

    def __getitem__(self, prefix: str) -> Target:
        if prefix in self._rules:
            return self._rules[prefix]
        return self._contextual[prefix]

    def get(self, prefix: str, default: Optional[Target] = None) -> Optional[Target]:
        try:
            return self[prefix]
        except KeyError:
            return default

    def __contains__(self, prefix: object) -> bool:
        return prefix in self._rules or prefix in self._contextual

    def __len__(self) -> int:
        return len(self._rules) + len(self._contextual)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageMap):
            return NotImplemented
        return dict(self.items()) == dict(other.items())

    def __repr__(self) -> str:
        return f"PackageMap({dict(self.items())!r})"

    def apply_once(self, name: str, referrer: Optional[str] = None) -> str:
        """Apply the single best rule to `name` (identity if none matches)."""
        if referrer is not None:
            scopes = [p for p in self._contextual if prefix_matches(p, referrer)]
            for scope in sorted(scopes, key=len, reverse=True):
                match = _longest_match(self._contextual[scope], name)
                if match is not None:
                    prefix, target = match
                    return target + name[len(prefix):]

        match = _longest_match(self._rules, name)
        if match is None:
            return name
        prefix, target = match
        return target + name[len(prefix):]

    def apply(self, name: str, referrer: Optional[str] = None) -> str:
        """
        Rewrite `name` until no rule changes it.

        Raises:
            ResolutionError: if rewriting revisits a name or never settles
        """
        seen = [name]
        current = name
        for _ in range(MAX_MAP_DEPTH):
            mapped = self.apply_once(current, referrer)
            if mapped == current:
                if current != name:
                    logger.debug(f"PackageMap: {name!r} -> {current!r}")
                return current
            if mapped in seen:
                chain = " -> ".join(seen + [mapped])
                raise ResolutionError(f"Package map cycle: {chain}", name=name)
            seen.append(mapped)
            current = mapped
        raise ResolutionError(
            f"Package map rewrite of {name!r} did not settle after {MAX_MAP_DEPTH} steps",
            name=name,
        )
