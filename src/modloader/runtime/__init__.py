"""Runtime: module namespaces and body evaluation on the Python interpreter."""

from .namespace import Namespace, namespace_dict, namespace_name
from .evaluator import execute_module, execute_script, bind_imports, collect_exports

__all__ = [
    'Namespace',
    'namespace_dict',
    'namespace_name',
    'execute_module',
    'execute_script',
    'bind_imports',
    'collect_exports',
]
