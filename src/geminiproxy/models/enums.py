"""
Enumeration types for the Gemini proxy.
"""

from enum import Enum


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above (includes SAM traffic)
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"


# =============================================================================
# Gemini Enums
# =============================================================================


class GeminiStatus(str, Enum):
    """
    Gemini response status codes emitted by the proxy.

    Only the codes the proxy itself produces are listed; everything else is
    passed through verbatim from the remote server.
    """

    SUCCESS = "20"
    PROXY_ERROR = "53"
