"""Generic document row backing SqlDocumentStore."""

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, func

from gnarhub.db.base_class import Base


class Document(Base):
    """
    One document of one collection.

    data holds the document body as JSON (without its id). version is bumped
    on every committed write and is what optimistic transactions compare.
    """

    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    id = Column(String(128), primary_key=True)
    data = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_documents_collection", "collection"),
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.id} v{self.version}>"
