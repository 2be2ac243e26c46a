"""
Module Compiler

Default compiler collaborator for the `.pym` dialect: Python plus top-level
module declarations.

Translation is line preserving. A declaration statement becomes blank
lines; an `export` head (`export var`, `export def`, `export default`...) is
stripped from its line. Every generated line therefore comes from the same
source line, which keeps error positions and source maps simple.

Declarations start a line (indented only ahead of any Python code) and may
be chained with `;`. Each one is parsed with lark. The translated body is
checked with Python's `ast` parser so invalid code fails here, at translate
time, and not later during evaluation.
"""

import ast
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedInput, LarkError

from ..shared.errors import CompileError
from ..shared.module_shape import ExportBinding, ImportBinding, ModuleKind, ModuleShape
from ..shared.source_location import SourceLocation
from ..utils.config import DEFAULT_EXPORT
from .source_map import SourceMapGenerator

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_LOCAL = "__default__"

# Statement starts that belong to the module dialect
_MODULE_SYNTAX_RE = re.compile(
    r"""^(?:module\s+[A-Za-z_]\w*\s+from\b"""
    r"""|import\s*(?:[{*"']|[A-Za-z_]\w*\s+from\s*["'])"""
    r"""|export\s+(?:var|let|const|def|async|class|default)\b"""
    r"""|export\s*(?:\{|\*\s*(?:from|as)\b))"""
)
_DECLARATION_RE = re.compile(
    r"""^(?:module\s+[A-Za-z_]\w*\s+from\b"""
    r"""|import\s*(?:[{*"']|[A-Za-z_]\w*\s+from\s*["'])"""
    r"""|export\s*[{*])"""
)
_EXPORT_BINDING_RE = re.compile(r"^export\s+(?:var|let|const)\s+(?=([A-Za-z_]\w*)\s*(?:[:=]|$))")
_EXPORT_DEF_RE = re.compile(r"^export\s+(?=(?:async\s+def|def|class)\s+([A-Za-z_]\w*))")
_EXPORT_DEFAULT_RE = re.compile(r"^export\s+default\s+")


@dataclass
class CompileOptions:
    """
    Options for one compile.

    - emit_source_map: produce a revision 3 source map
    - filename: used in diagnostics and by Python's parser
    - source_url: the `sources` entry of the map (defaults to filename)
    - generated_url: the `file` entry of the map
    """
    emit_source_map: bool = False
    filename: str = "<unknown>"
    source_url: Optional[str] = None
    generated_url: Optional[str] = None


@dataclass
class CompileOutput:
    """Result of compiling one unit."""
    code: str
    kind: ModuleKind
    shape: ModuleShape
    source_map: Optional[str] = None
    source_url: Optional[str] = None


@dataclass
class _Declaration:
    requests: List[str] = field(default_factory=list)
    imports: List[ImportBinding] = field(default_factory=list)
    exports: List[ExportBinding] = field(default_factory=list)
    star_exports: List[str] = field(default_factory=list)


def _unquote(token: Token) -> str:
    return str(token)[1:-1]


@v_args(inline=True)
class DeclarationTransformer(Transformer):
    """Turns a declaration parse tree into import/export bindings."""

    def start(self, declaration, *_):
        return declaration

    def specifier(self, name, alias=None):
        return (str(name), str(alias) if alias is not None else str(name))

    def specifier_list(self, *specifiers):
        return list(specifiers)

    def module_decl(self, name, source):
        spec = _unquote(source)
        return _Declaration(requests=[spec], imports=[ImportBinding(str(name), spec)])

    def default_import(self, name, source):
        spec = _unquote(source)
        return _Declaration(requests=[spec], imports=[ImportBinding(str(name), spec, DEFAULT_EXPORT)])

    def namespace_import(self, name, source):
        spec = _unquote(source)
        return _Declaration(requests=[spec], imports=[ImportBinding(str(name), spec)])

    def named_import(self, *args):
        specifiers, source = (args[0], args[1]) if len(args) == 2 else ([], args[0])
        spec = _unquote(source)
        return _Declaration(
            requests=[spec],
            imports=[ImportBinding(local, spec, imported) for imported, local in specifiers],
        )

    def bare_import(self, source):
        return _Declaration(requests=[_unquote(source)])

    def export_list(self, specifiers=()):
        return _Declaration(
            exports=[ExportBinding(exported, local=local) for local, exported in specifiers]
        )

    def export_from(self, *args):
        specifiers, source = (args[0], args[1]) if len(args) == 2 else ([], args[0])
        spec = _unquote(source)
        return _Declaration(
            requests=[spec],
            exports=[
                ExportBinding(exported, specifier=spec, imported=imported)
                for imported, exported in specifiers
            ],
        )

    def export_star(self, source):
        spec = _unquote(source)
        return _Declaration(requests=[spec], star_exports=[spec])

    def export_star_as(self, name, source):
        spec = _unquote(source)
        return _Declaration(requests=[spec], exports=[ExportBinding(str(name), specifier=spec)])


@lru_cache(maxsize=1)
def _declaration_parser() -> Lark:
    grammar_path = Path(__file__).parent / "declarations.lark"
    return Lark.open(
        str(grammar_path),
        start="start",
        parser="lalr",
        propagate_positions=True,
        maybe_placeholders=False,
    )


def _statement_end(lines: List[str], index: int, start: int, multiline: bool = True) -> Tuple[int, int]:
    """
    (line index, column) where the statement starting at lines[index][start:]
    ends: a `;` outside strings and brackets, or the end of the line once
    every bracket is closed. With multiline=False the scan stops at the end
    of the first line.
    """
    depth = 0
    column = start
    for line_index in range(index, len(lines)):
        text = lines[line_index]
        quote = None
        while column < len(text):
            char = text[column]
            if quote:
                if char == "\\":
                    column += 1
                elif char == quote:
                    quote = None
            elif char in "\"'":
                quote = char
            elif char == "#":
                break
            elif char in "([{":
                depth += 1
            elif char in ")]}":
                depth -= 1
            elif char == ";" and depth <= 0:
                return line_index, column
            column += 1
        if depth <= 0 or not multiline:
            return line_index, len(text)
        column = 0
    return len(lines) - 1, len(lines[-1])


def _slice(lines: List[str], start: Tuple[int, int], end: Tuple[int, int]) -> str:
    (first, start_column), (last, end_column) = start, end
    if first == last:
        return lines[first][start_column:end_column]
    return "\n".join([lines[first][start_column:], *lines[first + 1:last], lines[last][:end_column]])


class ModuleCompiler:
    """
    Compiles `.pym` source for the loader.

    Stateless apart from the shared lark parser; safe to share between
    loaders.
    """

    def __init__(self):
        self.parser = _declaration_parser()
        self.transformer = DeclarationTransformer()

    def compile(
        self,
        source_text: str,
        kind: ModuleKind,
        options: Optional[CompileOptions] = None,
    ) -> CompileOutput:
        """
        Compile one unit.

        Raises:
            CompileError: malformed declaration, module syntax in a script,
                          or invalid Python in the body
        """
        options = options or CompileOptions()
        kind = ModuleKind(kind)
        lines = source_text.split("\n")
        generated = list(lines)
        # line index → [(generated column, original column), ...]
        columns: Dict[int, List[Tuple[int, int]]] = {}
        declared = _Declaration()

        index = 0
        code_seen = False
        while index < len(lines):
            line = lines[index]
            body = line.lstrip()
            indent = len(line) - len(body)
            if not body or body.startswith("#"):
                index += 1
                continue
            # indented declarations are only recognised ahead of any Python code
            if not _MODULE_SYNTAX_RE.match(body) or (indent and code_seen):
                code_seen = True
                index += 1
                continue
            if kind is ModuleKind.SCRIPT:
                raise self._error(
                    "module declarations are only valid in module code",
                    options, source_text, index + 1, indent + 1,
                    help="load this source with module() or import_module()",
                )

            start = index
            index = self._translate_statements(
                lines, index, indent, generated, columns, declared, options, source_text
            )
            code_seen = code_seen or any(generated[i].strip() for i in range(start, index))

        code = "\n".join(generated)
        self._check_python(code, kind, options, source_text, columns)
        shape = self._shape(declared, kind, options, source_text)

        source_url = options.source_url or options.filename
        source_map = None
        if options.emit_source_map:
            source_map = self._source_map(generated, columns, source_text, source_url, options)
        logger.debug(
            f"Compiled {options.filename} as {kind.value}: "
            f"{len(shape.requests)} requests, "
            f"{'all public' if shape.exports is None else len(shape.exports)} exports"
        )
        return CompileOutput(code, kind, shape, source_map, source_url)

    def _translate_statements(
        self,
        lines: List[str],
        index: int,
        column: int,
        generated: List[str],
        columns: Dict[int, List[Tuple[int, int]]],
        declared: _Declaration,
        options: CompileOptions,
        source_text: str,
    ) -> int:
        """
        Translate the `;`-separated statements starting at lines[index][column:].

        Declarations are removed, export heads are stripped and any other
        statement is kept with the rest of its line. Returns the index of
        the first line not consumed.
        """
        pieces: List[Tuple[str, List[Tuple[int, int]]]] = []
        while True:
            text = lines[index]
            while column < len(text) and text[column] in " \t":
                column += 1
            rest = text[column:]
            if not rest or rest.startswith("#"):
                break
            if not _MODULE_SYNTAX_RE.match(rest):
                pieces.append((rest, [(0, column)]))
                break

            if _DECLARATION_RE.match(rest):
                end = _statement_end(lines, index, column)
                declaration = _slice(lines, (index, column), end)
                self._merge(
                    declared,
                    self._parse_declaration(declaration, options, source_text, index, column),
                )
                if end[0] > index:
                    _emit(generated, columns, index, pieces)
                    pieces = []
                    for blank in range(index + 1, end[0]):
                        generated[blank] = ""
                index, column = end[0], end[1] + 1
                continue

            _, end_column = _statement_end(lines, index, column, multiline=False)
            piece, export = self._strip_export_head(
                text[column:end_column], column, options, source_text, index
            )
            pieces.append(piece)
            declared.exports.append(export)
            column = end_column + 1

        _emit(generated, columns, index, pieces)
        return index + 1

    def _parse_declaration(
        self, text: str, options: CompileOptions, source_text: str, first_line: int, first_column: int
    ) -> _Declaration:
        try:
            tree = self.parser.parse(text)
        except UnexpectedInput as e:
            line = e.line if e.line > 0 else text.count("\n") + 1
            column = max(e.column, 1) + (first_column if line == 1 else 0)
            raise self._error(
                f"malformed module declaration: {text.splitlines()[0].strip()}",
                options, source_text, first_line + line, column,
            ) from e
        except LarkError as e:
            raise self._error(
                f"malformed module declaration: {e}", options, source_text, first_line + 1, first_column + 1
            ) from e
        return self.transformer.transform(tree)

    def _strip_export_head(
        self, statement: str, column: int, options: CompileOptions, source_text: str, index: int
    ) -> Tuple[Tuple[str, List[Tuple[int, int]]], ExportBinding]:
        match = _EXPORT_BINDING_RE.match(statement) or _EXPORT_DEF_RE.match(statement)
        if match:
            name = match.group(1)
            head = match.end()
            return (statement[head:], [(0, column + head)]), ExportBinding(name, local=name)

        match = _EXPORT_DEFAULT_RE.match(statement)
        if match:
            assign = f"{DEFAULT_EXPORT_LOCAL} = "
            return (
                (assign + statement[match.end():], [(0, column), (len(assign), column + match.end())]),
                ExportBinding(DEFAULT_EXPORT, local=DEFAULT_EXPORT_LOCAL),
            )

        raise self._error(
            "malformed export declaration",
            options, source_text, index + 1, column + 1,
            help="expected 'export var NAME = ...', 'export def', 'export class', "
                 "'export default ...', 'export {...}' or 'export * from ...'",
        )

    def _merge(self, into: _Declaration, declaration: _Declaration) -> None:
        into.requests.extend(declaration.requests)
        into.imports.extend(declaration.imports)
        into.exports.extend(declaration.exports)
        into.star_exports.extend(declaration.star_exports)

    def _shape(
        self, declared: _Declaration, kind: ModuleKind, options: CompileOptions, source_text: str
    ) -> ModuleShape:
        seen_locals: Dict[str, ImportBinding] = {}
        for binding in declared.imports:
            if binding.local in seen_locals:
                raise self._error(
                    f"duplicate import binding '{binding.local}'", options, source_text, None, None
                )
            seen_locals[binding.local] = binding

        seen_exports = set()
        for binding in declared.exports:
            if binding.exported in seen_exports:
                raise self._error(
                    f"duplicate export '{binding.exported}'", options, source_text, None, None
                )
            seen_exports.add(binding.exported)

        has_declarations = bool(declared.requests or declared.exports)
        if kind is ModuleKind.SCRIPT or not has_declarations:
            return ModuleShape.plain()
        return ModuleShape(
            requests=tuple(dict.fromkeys(declared.requests)),
            imports=tuple(declared.imports),
            exports=tuple(declared.exports),
            star_exports=tuple(dict.fromkeys(declared.star_exports)),
        )

    def _check_python(
        self,
        code: str,
        kind: ModuleKind,
        options: CompileOptions,
        source_text: str,
        columns: Dict[int, List[Tuple[int, int]]],
    ) -> None:
        try:
            ast.parse(code, filename=options.filename, mode="exec")
        except SyntaxError as e:
            line = e.lineno or 1
            column = _original_column(columns.get(line - 1), (e.offset or 1) - 1) + 1
            raise self._error(e.msg, options, source_text, line, column) from e

    def _source_map(
        self,
        generated: List[str],
        columns: Dict[int, List[Tuple[int, int]]],
        source_text: str,
        source_url: str,
        options: CompileOptions,
    ) -> str:
        generator = SourceMapGenerator(options.generated_url or f"{source_url}.compiled")
        generator.set_source_content(source_url, source_text)
        for index, text in enumerate(generated):
            if not text.strip():
                continue
            for gen_column, orig_column in columns.get(index, [(0, 0)]):
                generator.add_mapping((index + 1, gen_column), (index + 1, orig_column), source_url)
        return str(generator)

    def _error(
        self,
        message: str,
        options: CompileOptions,
        source_text: str,
        line: Optional[int],
        column: Optional[int],
        help: Optional[str] = None,
    ) -> CompileError:
        location = None
        if line is not None:
            location = SourceLocation(options.filename, line, column or 1)
        return CompileError(message, location=location, source_code=source_text, help=help)


def _original_column(segments: Optional[List[Tuple[int, int]]], column: int) -> int:
    """Map a 0-based generated column back to its source column."""
    if not segments:
        return column
    gen_column, orig_column = max(
        (s for s in segments if s[0] <= column), default=segments[0], key=lambda s: s[0]
    )
    return orig_column + (column - gen_column)


def _emit(
    generated: List[str],
    columns: Dict[int, List[Tuple[int, int]]],
    index: int,
    pieces: List[Tuple[str, List[Tuple[int, int]]]],
) -> None:
    """Join the kept statements of one line and record their column shifts."""
    text = ""
    segments: List[Tuple[int, int]] = []
    for piece, piece_segments in pieces:
        if text:
            text += "; "
        segments.extend((len(text) + offset, original) for offset, original in piece_segments)
        text += piece
    generated[index] = text
    if segments:
        columns[index] = segments
    else:
        columns.pop(index, None)
