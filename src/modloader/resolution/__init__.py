"""Name resolution: normalization, package maps, semver aliases."""

from .semver import Version, VersionParseError, parse_version
from .package_map import PackageMap, semver_map, prefix_matches
from .normalizer import Normalizer, collapse_segments, is_relative

__all__ = [
    'Version',
    'VersionParseError',
    'parse_version',
    'PackageMap',
    'semver_map',
    'prefix_matches',
    'Normalizer',
    'collapse_segments',
    'is_relative',
]
