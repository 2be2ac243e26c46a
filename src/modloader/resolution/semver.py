"""
Semantic Version Parsing

Small structured parser for `MAJOR.MINOR.PATCH[-pre][+build]`. Used by the
package map to derive `pkg`, `pkg@X` and `pkg@X.Y` aliases from one concrete
`pkg@X.Y.Z` name.
"""

from dataclasses import dataclass
from typing import Tuple


class VersionParseError(ValueError):
    """Raised when text is not a semantic version"""
    pass


@dataclass(frozen=True)
class Version:
    """
    Parsed semantic version.

    Pre-release and build metadata are kept as identifier tuples so that
    `str(version)` reproduces the parsed text.
    """
    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = ()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    @property
    def alias_keys(self) -> Tuple[str, str]:
        """Shortened forms that route to this version: 'X' and 'X.Y'."""
        return (f"{self.major}", f"{self.major}.{self.minor}")


def _is_identifier(part: str) -> bool:
    return bool(part) and all(ch.isascii() and (ch.isalnum() or ch == "-") for ch in part)


def _parse_identifiers(text: str, what: str, source: str) -> Tuple[str, ...]:
    parts = tuple(text.split("."))
    for part in parts:
        if not _is_identifier(part):
            raise VersionParseError(f"Invalid {what} identifier {part!r} in version {source!r}")
    return parts


def _parse_number(text: str, what: str, source: str) -> int:
    if not text or not (text.isascii() and text.isdigit()):
        raise VersionParseError(f"Non-numeric {what} component {text!r} in version {source!r}")
    return int(text)


def parse_version(text: str) -> Version:
    """
    Parse a semantic version.

    Examples:
        parse_version('1.2.3') → Version(1, 2, 3)
        parse_version('1.2.3-a.b.c.5.d.100') → prerelease ('a','b','c','5','d','100')
        parse_version('1.2.X') → VersionParseError
    """
    if not isinstance(text, str):
        raise VersionParseError(f"Version must be a string, got {type(text).__name__}")

    core, plus, build_text = text.partition("+")
    core, dash, pre_text = core.partition("-")

    numbers = core.split(".")
    if len(numbers) != 3:
        raise VersionParseError(f"Version {text!r} is not of the form X.Y.Z")
    major = _parse_number(numbers[0], "major", text)
    minor = _parse_number(numbers[1], "minor", text)
    patch = _parse_number(numbers[2], "patch", text)

    prerelease = _parse_identifiers(pre_text, "pre-release", text) if dash else ()
    build = _parse_identifiers(build_text, "build", text) if plus else ()
    return Version(major, minor, patch, prerelease, build)
