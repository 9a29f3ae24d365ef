"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative Base, JSON column type and shared enums
        (DataSource, Blockchain, ImportStatus, IndexType)
    artwork: Canonical artworks and the artwork_artists link table
    artist: Artists and their wallet addresses
    collection: Collections and the collection_artists link table
    import_record: Import ledger used for retries

Relationships:
    - Artwork → Collection (many-to-one, optional)
    - Artwork ↔ Artist (many-to-many)
    - Collection ↔ Artist (many-to-many, derived from artworks)
    - ImportRecord → Artwork (optional one-to-one)
"""

from models.base import Base, DataSource, Blockchain, ImportStatus, IndexType
from models.artwork import Artwork, artwork_artists
from models.artist import Artist, ArtistAddress
from models.collection import Collection, collection_artists
from models.import_record import ImportRecord

__all__ = [
    "Base",
    "DataSource",
    "Blockchain",
    "ImportStatus",
    "IndexType",
    "Artwork",
    "artwork_artists",
    "Artist",
    "ArtistAddress",
    "Collection",
    "collection_artists",
    "ImportRecord",
]
