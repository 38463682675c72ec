"""Action boundary clients."""

from .base import ActionClient, ActionResponse
from .http import HttpActionClient
from .local import LocalActionClient

__all__ = ["ActionClient", "ActionResponse", "HttpActionClient", "LocalActionClient"]
