"""Memory operations routed through :class:`~maascli.routing.router.OperationRouter`.

:class:`MemoryService` pairs each companion command with its direct API
equivalent. ``get`` and ``delete`` have no companion command and always go
to the API (still reported as an :class:`~maascli.models.OperationResult`).
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from maascli.client.api_client import ApiClient
from maascli.companion.invoker import CompanionInvoker
from maascli.models import OperationResult, Outcome
from maascli.routing.router import OperationRouter


class MemoryService:
    """High-level memory operations.

    Args:
        router: Decides between companion and API for each call.
        companion: Companion backend.
        api: An *entered* :class:`~maascli.client.api_client.ApiClient`.
    """

    def __init__(self, router: OperationRouter, companion: CompanionInvoker, api: ApiClient) -> None:
        self._router = router
        self._companion = companion
        self._api = api

    def health(self) -> OperationResult[Any]:
        return self._router.execute(
            "health check",
            self._companion.health,
            lambda: Outcome(data=self._api.health()),
        )

    def list_memories(
        self,
        limit: Optional[int] = None,
        memory_type: Optional[str] = None,
        tags: Sequence[str] = (),
        sort_by: Optional[str] = None,
    ) -> OperationResult[Any]:
        return self._router.execute(
            "list memories",
            lambda: self._companion.list_memories(limit, memory_type, tags, sort_by),
            lambda: Outcome(data=self._api.list_memories(limit, memory_type, tags, sort_by)),
        )

    def create_memory(
        self,
        title: str,
        content: str,
        memory_type: str = "context",
        tags: Sequence[str] = (),
        topic_id: Optional[str] = None,
    ) -> OperationResult[Any]:
        return self._router.execute(
            "create memory",
            lambda: self._companion.create_memory(title, content, memory_type, tags, topic_id),
            lambda: Outcome(data=self._api.create_memory(title, content, memory_type, tags, topic_id)),
        )

    def search_memories(
        self,
        query: str,
        limit: Optional[int] = None,
        memory_types: Sequence[str] = (),
    ) -> OperationResult[Any]:
        return self._router.execute(
            "search memories",
            lambda: self._companion.search_memories(query, limit, memory_types),
            lambda: Outcome(data=self._api.search_memories(query, limit, memory_types)),
        )

    def get_memory(self, memory_id: str) -> OperationResult[Any]:
        return OperationResult(data=self._api.get_memory(memory_id), source="api")

    def delete_memory(self, memory_id: str) -> OperationResult[Any]:
        return OperationResult(data=self._api.delete_memory(memory_id), source="api")
