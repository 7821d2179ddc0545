"""Scanner invocation and build gate."""

from .scanner import OsqueryScanner, secret_files
from .gate import Verdict, evaluate, gate, load_results

__all__ = [
    "OsqueryScanner",
    "secret_files",
    "Verdict",
    "evaluate",
    "gate",
    "load_results",
]
