"""
Source Maps

Revision 3 source maps with base64 VLQ mappings. The generator always
inlines the original text (`sourcesContent`) so a consumer can recover it
without fetching anything.

Lines are 1-based and columns 0-based, as in the source map format.
"""

import json
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple, Union

_B64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_B64_INDEX = {ch: i for i, ch in enumerate(_B64)}
_VLQ_SHIFT = 5
_VLQ_CONTINUATION = 1 << _VLQ_SHIFT
_VLQ_MASK = _VLQ_CONTINUATION - 1

SOURCE_MAP_VERSION = 3


def encode_vlq(value: int) -> str:
    vlq = ((-value) << 1) | 1 if value < 0 else value << 1
    out = []
    while True:
        digit = vlq & _VLQ_MASK
        vlq >>= _VLQ_SHIFT
        if vlq:
            digit |= _VLQ_CONTINUATION
        out.append(_B64[digit])
        if not vlq:
            return "".join(out)


def decode_vlq(segment: str) -> List[int]:
    values: List[int] = []
    value = shift = 0
    for ch in segment:
        try:
            digit = _B64_INDEX[ch]
        except KeyError:
            raise ValueError(f"Invalid base64 VLQ character {ch!r}") from None
        value += (digit & _VLQ_MASK) << shift
        if digit & _VLQ_CONTINUATION:
            shift += _VLQ_SHIFT
            continue
        values.append(-(value >> 1) if value & 1 else value >> 1)
        value = shift = 0
    if shift:
        raise ValueError(f"Truncated VLQ segment {segment!r}")
    return values


@dataclass(frozen=True)
class MappingEntry:
    generated_line: int
    generated_column: int
    source: str
    original_line: int
    original_column: int


@dataclass(frozen=True)
class OriginalPosition:
    source: str
    line: int
    column: int


class SourceMapGenerator:
    """Accumulates mappings for one generated file."""

    def __init__(self, file: str):
        self.file = file
        self._sources: List[str] = []
        self._contents: Dict[str, str] = {}
        self._mappings: List[MappingEntry] = []

    def _source_index(self, source: str) -> int:
        if source not in self._sources:
            self._sources.append(source)
        return self._sources.index(source)

    def add_mapping(self, generated: Tuple[int, int], original: Tuple[int, int], source: str) -> None:
        self._source_index(source)
        self._mappings.append(MappingEntry(generated[0], generated[1], source, original[0], original[1]))

    def set_source_content(self, source: str, content: str) -> None:
        self._source_index(source)
        self._contents[source] = content

    def _serialize_mappings(self) -> str:
        lines: List[str] = []
        prev_source = prev_line = prev_column = 0
        ordered = sorted(self._mappings, key=lambda m: (m.generated_line, m.generated_column))
        for mapping in ordered:
            while len(lines) < mapping.generated_line:
                lines.append("")
            segments = lines[-1]
            prev_gen_column = 0
            if segments:
                prev_gen_column = _last_generated_column(segments)
            source = self._sources.index(mapping.source)
            segment = (
                encode_vlq(mapping.generated_column - prev_gen_column)
                + encode_vlq(source - prev_source)
                + encode_vlq(mapping.original_line - 1 - prev_line)
                + encode_vlq(mapping.original_column - prev_column)
            )
            lines[-1] = f"{segments},{segment}" if segments else segment
            prev_source = source
            prev_line = mapping.original_line - 1
            prev_column = mapping.original_column
        return ";".join(lines)

    def to_json(self) -> dict:
        return {
            "version": SOURCE_MAP_VERSION,
            "file": self.file,
            "sources": list(self._sources),
            "sourcesContent": [self._contents.get(s) for s in self._sources],
            "names": [],
            "mappings": self._serialize_mappings(),
        }

    def __str__(self) -> str:
        return json.dumps(self.to_json())


def _last_generated_column(segments: str) -> int:
    column = 0
    for segment in segments.split(","):
        column += decode_vlq(segment)[0]
    return column


class SourceMapConsumer:
    """Reads a revision 3 source map back."""

    def __init__(self, source_map: Union[str, Mapping]):
        data = json.loads(source_map) if isinstance(source_map, str) else dict(source_map)
        if data.get("version") != SOURCE_MAP_VERSION:
            raise ValueError(f"Unsupported source map version {data.get('version')!r}")
        self.file: Optional[str] = data.get("file")
        self.sources: List[str] = list(data.get("sources", []))
        contents = list(data.get("sourcesContent") or [])
        self._contents = dict(zip(self.sources, contents))
        self.mappings = self._parse_mappings(data.get("mappings", ""))

    def _parse_mappings(self, text: str) -> List[MappingEntry]:
        mappings: List[MappingEntry] = []
        source = orig_line = orig_column = 0
        for line_no, line in enumerate(text.split(";"), 1):
            gen_column = 0
            for segment in filter(None, line.split(",")):
                fields = decode_vlq(segment)
                gen_column += fields[0]
                if len(fields) < 4:
                    continue
                source += fields[1]
                orig_line += fields[2]
                orig_column += fields[3]
                mappings.append(
                    MappingEntry(line_no, gen_column, self.sources[source], orig_line + 1, orig_column)
                )
        return mappings

    def source_content_for(self, source: str) -> Optional[str]:
        """Inline original text for `source` (None when not inlined)."""
        if source not in self._contents and source not in self.sources:
            raise KeyError(f"Source {source!r} is not in this source map")
        return self._contents.get(source)

    def original_position_for(self, line: int, column: int) -> Optional[OriginalPosition]:
        best: Optional[MappingEntry] = None
        for mapping in self.mappings:
            if mapping.generated_line == line and mapping.generated_column <= column:
                if best is None or mapping.generated_column >= best.generated_column:
                    best = mapping
        if best is None:
            return None
        return OriginalPosition(
            best.source,
            best.original_line,
            best.original_column + (column - best.generated_column),
        )
