"""Document store operations for the Lovely backend."""

import copy
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.config import get_database_url
from shared.db_models import Base, Document
from shared.errors import NetworkError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredDocument:
    """A document body together with the id the store assigned it."""
    id: str
    data: Dict[str, Any]


class DocumentStore:
    """
    Collection-scoped CRUD and query operations over JSON documents.

    Every call is a suspending operation for the caller. Storage failures
    surface as NetworkError; nothing is retried here.
    """

    def __init__(self, database_url: Optional[str] = None):
        """Initialize database connection."""
        self.database_url = database_url or get_database_url()
        self.engine = create_engine(self.database_url, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_tables(self):
        """Create all tables in the database."""
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    async def query(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[StoredDocument]:
        """
        Return every document in ``collection`` whose fields equal ``filters``.

        Args:
            collection: Collection name
            filters: Field name to required value; all must match

        Returns:
            Matching documents, in no particular order
        """
        filters = filters or {}
        try:
            with self.get_session() as session:
                stmt = select(Document).where(Document.collection == collection)
                for field, value in filters.items():
                    # String equality runs in the database; other values are checked below
                    if isinstance(value, str):
                        stmt = stmt.where(Document.data[field].as_string() == value)
                rows = session.execute(stmt).scalars().all()
                return [
                    StoredDocument(id=row.doc_id, data=copy.deepcopy(row.data))
                    for row in rows
                    if all(row.data.get(field) == value for field, value in filters.items())
                ]
        except SQLAlchemyError as e:
            logger.error(f"Failed to query {collection}: {e}", exc_info=True)
            raise NetworkError(f"Failed to query {collection}: {e}") from e

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self.get_session() as session:
                row = session.get(Document, (collection, doc_id))
                return copy.deepcopy(row.data) if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to get {collection}/{doc_id}: {e}", exc_info=True)
            raise NetworkError(f"Failed to get {collection}/{doc_id}: {e}") from e

    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        """Insert a new document and return its server-assigned id."""
        doc_id = uuid.uuid4().hex
        try:
            with self.get_session() as session:
                session.add(Document(collection=collection, doc_id=doc_id, data=copy.deepcopy(data)))
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to create document in {collection}: {e}", exc_info=True)
            raise NetworkError(f"Failed to create document in {collection}: {e}") from e

        logger.info(f"Created document {collection}/{doc_id}")
        return doc_id

    async def set_full_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """
        Overwrite (or create) the whole document.

        There is no version check: concurrent writers resolve as last write wins.
        """
        try:
            with self.get_session() as session:
                row = session.get(Document, (collection, doc_id))
                if row is None:
                    session.add(Document(collection=collection, doc_id=doc_id, data=copy.deepcopy(data)))
                else:
                    row.data = copy.deepcopy(data)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to write {collection}/{doc_id}: {e}", exc_info=True)
            raise NetworkError(f"Failed to write {collection}/{doc_id}: {e}") from e

    async def append_to_array_field(self, collection: str, doc_id: str, field: str, value: Any) -> None:
        """
        Append ``value`` to an array field within one transaction.

        Only the named field is touched, so concurrent appends from another
        writer are kept. An element equal to one already present is not
        added twice.

        Raises:
            NotFoundError: If the document does not exist
        """
        try:
            with self.get_session() as session:
                stmt = (
                    select(Document)
                    .where(Document.collection == collection, Document.doc_id == doc_id)
                    .with_for_update()
                )
                row = session.execute(stmt).scalar_one_or_none()
                if row is None:
                    raise NotFoundError(f"Document {collection}/{doc_id} not found")

                data = copy.deepcopy(row.data)
                values = list(data.get(field) or [])
                if value not in values:
                    values.append(copy.deepcopy(value))
                data[field] = values
                row.data = data
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to append to {collection}/{doc_id}.{field}: {e}", exc_info=True)
            raise NetworkError(f"Failed to append to {collection}/{doc_id}.{field}: {e}") from e

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""
        try:
            with self.get_session() as session:
                row = session.get(Document, (collection, doc_id))
                if row is not None:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete {collection}/{doc_id}: {e}", exc_info=True)
            raise NetworkError(f"Failed to delete {collection}/{doc_id}: {e}") from e

        logger.info(f"Deleted document {collection}/{doc_id}")
