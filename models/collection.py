from sqlalchemy import Column, String, Integer, Text, DateTime, Boolean, ForeignKey, Index, Table
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base


collection_artists = Table(
    "collection_artists",
    Base.metadata,
    Column("collection_id", Integer, ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True),
    Column("artist_id", Integer, ForeignKey("artists.id", ondelete="CASCADE"), primary_key=True),
)


class Collection(Base):
    """
    Group of artworks sharing a contract or curatorial grouping.

    ``slug`` is unique. (external_id, data_source, blockchain) maps a
    collection back to the upstream identifier it was created from.
    """
    __tablename__ = "collections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(255), nullable=False, unique=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    website = Column(String(2048), nullable=True)
    image_url = Column(String(2048), nullable=True)

    # Upstream mapping
    external_id = Column(String(255), nullable=True)
    data_source = Column(String(32), nullable=True)
    blockchain = Column(String(32), nullable=True)
    contract_address = Column(String(128), nullable=True, index=True)
    is_shared_contract = Column(Boolean, nullable=False, default=False)

    # Generative art metadata
    is_generative = Column(Boolean, nullable=False, default=False)
    project_id = Column(String(100), nullable=True)
    supply = Column(Integer, nullable=True)
    mint_start = Column(DateTime, nullable=True)
    mint_end = Column(DateTime, nullable=True)

    creator_id = Column(Integer, ForeignKey("artists.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    artworks = relationship("Artwork", back_populates="collection", lazy="raise")
    artists = relationship("Artist", secondary=collection_artists, back_populates="collections", lazy="selectin")
    creator = relationship("Artist", foreign_keys=[creator_id], lazy="selectin")

    __table_args__ = (
        Index("idx_collection_external", "external_id", "data_source", "blockchain", unique=True),
    )
