"""
File and address helpers shared by the fetcher and the CLI.

- Source text is always decoded with DEFAULT_FILE_ENCODING
- file:// addresses and local paths convert both ways here
"""

from pathlib import Path
from typing import Union
from urllib.parse import urlparse
from urllib.request import url2pathname

from .config import DEFAULT_FILE_ENCODING


def read_source_file(path: Union[Path, str]) -> str:
    """Read a module or script file as text."""
    p = Path(path) if not isinstance(path, Path) else path
    return p.read_text(encoding=DEFAULT_FILE_ENCODING)


def address_to_path(address: str) -> Path:
    """Turn a file:// URL (or a plain path) into a filesystem path."""
    parsed = urlparse(address)
    if parsed.scheme == "file":
        return Path(url2pathname(parsed.path))
    if parsed.scheme and len(parsed.scheme) > 1:
        raise ValueError(f"not a file address: {address}")
    return Path(address)


def path_to_base_url(path: Union[Path, str]) -> str:
    """Directory path to a file:// base URL ending with '/'."""
    uri = Path(path).resolve().as_uri()
    return uri if uri.endswith("/") else uri + "/"
