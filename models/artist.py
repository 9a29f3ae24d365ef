from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base


class Artist(Base):
    """
    Creator identity.

    ``name`` is unique and is the merge key of last resort; wallet
    addresses (ArtistAddress) are the strong identity.
    """
    __tablename__ = "artists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)

    # Resolved profile data
    ens_name = Column(String(255), nullable=True)
    avatar_url = Column(String(2048), nullable=True)
    bio = Column(Text, nullable=True)
    website = Column(String(2048), nullable=True)
    twitter_handle = Column(String(100), nullable=True)
    instagram_handle = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    addresses = relationship(
        "ArtistAddress",
        back_populates="artist",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    artworks = relationship("Artwork", secondary="artwork_artists", back_populates="artists", lazy="raise")
    collections = relationship("Collection", secondary="collection_artists", back_populates="artists", lazy="raise")

    def addresses_on(self, blockchain: str):
        return [a.address for a in self.addresses if a.blockchain == blockchain]


class ArtistAddress(Base):
    """Wallet address owned by an artist. (address, blockchain) is unique."""
    __tablename__ = "artist_addresses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    artist_id = Column(Integer, ForeignKey("artists.id", ondelete="CASCADE"), nullable=False, index=True)
    address = Column(String(128), nullable=False)
    blockchain = Column(String(32), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    artist = relationship("Artist", back_populates="addresses")

    __table_args__ = (
        Index("idx_artist_address_chain", "address", "blockchain", unique=True),
    )
