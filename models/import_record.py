from sqlalchemy import Column, String, Integer, Text, DateTime, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, ImportStatus, IndexType, JSONType


class ImportRecord(Base):
    """
    Ledger entry for one (contract_address, token_id) pair.

    Purpose:
    - Tracks every import attempt, whether or not an Artwork was created
    - Keeps raw and normalized payload snapshots for replay
    - Feeds the retry sweep (failed records only, success is terminal)
    """
    __tablename__ = "import_records"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity (dedup key is contract + token)
    contract_address = Column(String(128), nullable=False)
    token_id = Column(String(128), nullable=False)
    nft_uid = Column(String(300), nullable=False, index=True)
    blockchain = Column(String(32), nullable=True)
    data_source = Column(String(32), nullable=True, index=True)
    index_type = Column(Enum(IndexType), nullable=True)
    metadata_url = Column(String(2048), nullable=True)

    # Status
    import_status = Column(Enum(ImportStatus), nullable=False, default=ImportStatus.PENDING, index=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    last_attempt = Column(DateTime, nullable=True)
    failed_step = Column(String(50), nullable=True)
    error_type = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)

    # Payload snapshots
    raw_response = Column(JSONType, nullable=True)
    normalized_data = Column(JSONType, nullable=True)

    artwork_id = Column(Integer, ForeignKey("artworks.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    artwork = relationship("Artwork", lazy="raise")

    __table_args__ = (
        Index("idx_import_contract_token", "contract_address", "token_id", unique=True),
        Index("idx_import_status_attempts", "import_status", "attempt_count"),
    )
