"""Operation routing between the companion executable and the direct API."""

from maascli.routing.router import OperationRouter
from maascli.routing.service import MemoryService

__all__ = ["MemoryService", "OperationRouter"]
