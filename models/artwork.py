from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Index, Table
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, JSONType


artwork_artists = Table(
    "artwork_artists",
    Base.metadata,
    Column("artwork_id", Integer, ForeignKey("artworks.id", ondelete="CASCADE"), primary_key=True),
    Column("artist_id", Integer, ForeignKey("artists.id", ondelete="CASCADE"), primary_key=True),
)


class Artwork(Base):
    """
    Canonical artwork record.

    One row per on-chain token. The (token_standard, contract_address,
    token_id) triple is unique; ``uid`` is a second unique key computed
    from the import source so two concurrent first imports of the same
    token collide on insert instead of creating two rows.
    """
    __tablename__ = "artworks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uid = Column(String(64), nullable=False, unique=True)

    # On-chain identity
    blockchain = Column(String(32), nullable=True, index=True)
    contract_address = Column(String(128), nullable=True, index=True)
    token_id = Column(String(128), nullable=True)
    token_standard = Column(String(32), nullable=True)

    # Descriptive fields
    title = Column(String(500), nullable=False, default="Untitled")
    description = Column(Text, nullable=True)

    # Media
    image_url = Column(String(2048), nullable=True)
    animation_url = Column(String(2048), nullable=True)
    generator_url = Column(String(2048), nullable=True)
    thumbnail_url = Column(String(2048), nullable=True)
    metadata_url = Column(String(2048), nullable=True)
    mime = Column(String(100), nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)

    # Token details
    attributes = Column(JSONType, nullable=True)
    features = Column(JSONType, nullable=True)
    supply = Column(Integer, nullable=True)
    mint_date = Column(DateTime, nullable=True)

    collection_id = Column(Integer, ForeignKey("collections.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    collection = relationship("Collection", back_populates="artworks", lazy="selectin")
    artists = relationship("Artist", secondary=artwork_artists, back_populates="artworks", lazy="selectin")

    __table_args__ = (
        Index("idx_artwork_token_identity", "token_standard", "contract_address", "token_id", unique=True),
    )

    @property
    def dimensions(self):
        if self.width and self.height and self.width > 0 and self.height > 0:
            return {"width": self.width, "height": self.height}
        return None
