"""
Source Location (Span)

Points at a line/column inside a module or script, either in the original
source or, after mapping, in the translated text.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SourceLocation:
    """
    Source location.

    - file: address or canonical name of the compiled unit
    - line: 1-based line
    - column: 1-based column
    - end_line / end_column: optional span end (0 when unknown)
    - Immutable (frozen) for hashability
    """
    file: str
    line: int
    column: int
    end_line: int = 0
    end_column: int = 0

    def __str__(self) -> str:
        """Format as file:line:column"""
        return f"{self.file}:{self.line}:{self.column}"
