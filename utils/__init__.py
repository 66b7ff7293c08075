"""Top-level utils package.

Common infra helpers shared by the backend and the ``predica`` modules
(logger, error taxonomy, retry / best-effort decorators).
"""

from .logging import *  # noqa: F401,F403
from .error_handler import *  # noqa: F401,F403
