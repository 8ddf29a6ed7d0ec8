"""Dependency injection for FastAPI endpoints.

Controllers receive the document store and the repository built on it
through these dependencies instead of reaching into global state.

Usage in controllers:
    from timesync.dependencies import Repo

    @router.get("/polls")
    async def list_polls(repo: Repo):
        return await repo.list_polls()
"""

from typing import Annotated

from fastapi import Depends

from timesync import state
from timesync.db.core import DocumentStore
from timesync.db.polls import Repository
from timesync.errors import ServiceUnavailableError


def get_document_store() -> DocumentStore:
    """Get the document store.

    Raises:
        ServiceUnavailableError: If the application has not set one up.
    """
    if state.document_store is None:
        raise ServiceUnavailableError(detail="Document store not initialized")
    return state.document_store


def get_repository(store: Annotated[DocumentStore, Depends(get_document_store)]) -> Repository:
    return Repository(store)


Store = Annotated[DocumentStore, Depends(get_document_store)]
Repo = Annotated[Repository, Depends(get_repository)]
