"""
modloader utilities package
"""

from .io_utils import read_source_file, address_to_path, path_to_base_url

__all__ = ["read_source_file", "address_to_path", "path_to_base_url"]
