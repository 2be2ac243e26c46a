"""
Configuration constants for name resolution, fetching and evaluation
"""

# Package identity; the loader registers itself as PACKAGE_NAME@
PACKAGE_NAME = "modloader"
PACKAGE_VERSION = "0.1.0"

# Module resolution constants
PATH_SEPARATOR = "/"
SCOPE_PREFIX = "@"
VERSION_SEPARATOR = "@"
CURRENT_SEGMENT = "."
PARENT_SEGMENT = ".."
MAX_MAP_DEPTH = 32  # Chained package map rewrites before we call it a cycle

# Locate constants
DEFAULT_EXTENSION = ".pym"
KNOWN_EXTENSIONS = (".pym", ".py")
URL_SAFE_CHARS = "/@:~!$&'()*+,;=-._"

# File encoding constants
DEFAULT_FILE_ENCODING = "utf-8"

# Loader option defaults
MODULES_REGISTER = "register"
MODULES_INSTANTIATE = "instantiate"
DEFAULT_MODULES_MODE = MODULES_REGISTER

# Names reserved by the evaluator inside module and script globals
SCRIPT_LOADER_GLOBAL = "loader"
DEFAULT_EXPORT = "default"

# Prefixes of the generated names given to anonymous scripts and modules
ANONYMOUS_SCRIPT_PREFIX = "<script"
ANONYMOUS_MODULE_PREFIX = "<module"

# Environment variables read by LoaderOptions.from_env()
ENV_BASE_URL = "MODLOADER_BASE_URL"
ENV_SOURCE_MAPS = "MODLOADER_SOURCE_MAPS"
ENV_MODULES = "MODLOADER_MODULES"
