"""
Gemini front end: TLS listener and the I2P bridge request handler.
"""

from geminiproxy.gemini.bridge import STATUS_HOST, GeminiBridge
from geminiproxy.gemini.server import GeminiServer, RequestHandler

__all__ = [
    "STATUS_HOST",
    "GeminiBridge",
    "GeminiServer",
    "RequestHandler",
]
