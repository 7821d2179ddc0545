"""
Uptycs CI image scanner.

Runs the Uptycs osquery scanner against a freshly built docker image and
fails the CI build when a vulnerability reaches the fatal CVSS score.
"""

from .version import VERSION

__version__ = VERSION

from .utils.config import RunConfig, CIRunnerType
from .core.scanner import OsqueryScanner
from .core.gate import gate, Verdict

__all__ = [
    "RunConfig",
    "CIRunnerType",
    "OsqueryScanner",
    "gate",
    "Verdict",
]
