"""Resolution of project names to remote stores."""

import logging
from typing import Optional

from ..exceptions import FileSearchAPIError
from ..models import FileSearchStore, RemoteDocument
from .protocols import DocumentStoreProtocol

logger = logging.getLogger(__name__)


class RemoteStoreDirectory:
    """Maps project names to File Search stores and lists their documents."""

    def __init__(self, client: DocumentStoreProtocol):
        """Initialize the directory.

        Args:
            client: Remote document store service
        """
        self.client = client

    def find_store(self, project_name: str) -> Optional[FileSearchStore]:
        """Find the store whose display name equals the project name.

        Matching is exact and case-sensitive. If several stores share the
        name (a list-then-create race), the first listed one wins.
        """
        for store in self.client.list_stores():
            if store.display_name == project_name:
                return store
        return None

    def get_or_create(self, project_name: str) -> str:
        """Return the store of a project, creating it if none is visible.

        Args:
            project_name: Project (store display name)

        Returns:
            Store resource name
        """
        existing: Optional[FileSearchStore] = None
        try:
            existing = self.find_store(project_name)
        except FileSearchAPIError as e:
            logger.warning(
                f"Failed to list stores, proceeding to create a new one: {e}"
            )

        if existing is not None:
            logger.info(f"Found existing store {project_name} ({existing.name})")
            return existing.name

        logger.info(f"Creating new store: {project_name}")
        return self.client.create_store(project_name).name

    def list_documents(self, store_name: str) -> list[RemoteDocument]:
        """List current documents of a store.

        The result may lag recent uploads or deletes; callers must not treat
        absence from it as proof that a document is gone.
        """
        return self.client.list_documents(store_name)

    def list_project_names(self) -> list[str]:
        """Sorted, de-duplicated display names of all stores."""
        return sorted({s.display_name for s in self.client.list_stores() if s.display_name})
