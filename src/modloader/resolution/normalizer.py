"""
Module Name Normalization

Pure, synchronous resolution of a specifier plus an optional referrer into a
canonical name:

- ./x, ../x   → resolved against the referrer's directory (or the base)
- pkg, pkg/x  → package map applied
- @org/pkg/x  → package map applied, scope kept as one unit

Canonical names are '/'-separated and relative to the loader's base URL;
`locate` turns them into addresses. No I/O happens here.
"""

import logging
from typing import List, Optional

from ..shared.errors import ResolutionError
from ..utils.config import CURRENT_SEGMENT, PARENT_SEGMENT, PATH_SEPARATOR, SCOPE_PREFIX
from .package_map import PackageMap

logger = logging.getLogger(__name__)


def is_relative(specifier: str) -> bool:
    return (
        specifier in (CURRENT_SEGMENT, PARENT_SEGMENT)
        or specifier.startswith(CURRENT_SEGMENT + PATH_SEPARATOR)
        or specifier.startswith(PARENT_SEGMENT + PATH_SEPARATOR)
    )


def dirname(name: str) -> str:
    """Directory part of a canonical name ('' at the root)."""
    return name.rpartition(PATH_SEPARATOR)[0]


def collapse_segments(path: str) -> str:
    """
    Remove '.' segments and fold '..' into its parent.

    '..' segments that climb above the root are kept at the front, so the
    name stays relative to the base URL.
    """
    out: List[str] = []
    for segment in path.split(PATH_SEPARATOR):
        if segment in ("", CURRENT_SEGMENT):
            continue
        if segment == PARENT_SEGMENT:
            if out and out[-1] != PARENT_SEGMENT:
                out.pop()
            else:
                out.append(PARENT_SEGMENT)
        else:
            out.append(segment)
    return PATH_SEPARATOR.join(out)


def validate_specifier(specifier: object) -> str:
    """
    Reject malformed specifiers.

    Raises:
        ResolutionError: if the specifier cannot name a module
    """
    if not isinstance(specifier, str):
        raise ResolutionError(f"Module specifier must be a string, got {type(specifier).__name__}")
    if not specifier.strip():
        raise ResolutionError("Empty module specifier")
    if specifier != specifier.strip():
        raise ResolutionError(f"Module specifier {specifier!r} has surrounding whitespace")
    if "\x00" in specifier or "\\" in specifier:
        raise ResolutionError(f"Module specifier {specifier!r} contains an illegal character")
    if specifier.startswith(PATH_SEPARATOR):
        raise ResolutionError(
            f"Module specifier {specifier!r} is absolute",
            help="use a bare name or a './' relative specifier",
        )
    if specifier.endswith(PATH_SEPARATOR):
        raise ResolutionError(f"Module specifier {specifier!r} names a directory")
    if specifier.startswith(SCOPE_PREFIX):
        scope, sep, rest = specifier[1:].partition(PATH_SEPARATOR)
        if not scope or not sep or not rest:
            raise ResolutionError(
                f"Scoped specifier {specifier!r} must have the form @scope/name"
            )
    return specifier


class Normalizer:
    """
    Turns (specifier, referrer) into a canonical name.

    Holds the package map by reference; replacing `package_map` swaps the
    whole rule table in one assignment.
    """

    def __init__(self, package_map: Optional[PackageMap] = None, base_name: str = ""):
        """
        Args:
            package_map: Aliasing rules applied to bare and scoped names
            base_name: Directory that relative specifiers resolve against
                       when no referrer is given ('' is the base URL itself)
        """
        self.package_map = package_map if package_map is not None else PackageMap()
        self.base_name = collapse_segments(base_name)

    def normalize(self, specifier: str, referrer: Optional[str] = None) -> str:
        """
        Resolve `specifier` to a canonical name.

        Examples:
            normalize('./b', 'pkg/a') → 'pkg/b'
            normalize('../b', 'pkg@0.0.1/bin') → 'b'
            normalize('maptest', 'tests/contextual') → mapped target

        Raises:
            ResolutionError: malformed specifier or package map cycle
        """
        validate_specifier(specifier)
        if referrer is not None and not isinstance(referrer, str):
            raise ResolutionError(f"Referrer must be a string, got {type(referrer).__name__}")

        if is_relative(specifier):
            directory = dirname(referrer) if referrer is not None else self.base_name
            joined = f"{directory}{PATH_SEPARATOR}{specifier}" if directory else specifier
            name = collapse_segments(joined)
            if not name:
                raise ResolutionError(
                    f"Specifier {specifier!r} resolves to an empty name"
                    + (f" against {referrer!r}" if referrer else "")
                )
            if name == PARENT_SEGMENT or name.startswith(PARENT_SEGMENT + PATH_SEPARATOR):
                return name
            return self.package_map.apply(name, referrer)

        name = collapse_segments(specifier)
        if not name or name.startswith(PARENT_SEGMENT):
            raise ResolutionError(f"Malformed module specifier {specifier!r}")
        return self.package_map.apply(name, referrer)
