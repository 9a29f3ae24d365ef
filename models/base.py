from sqlalchemy import JSON
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class DataSource(str, enum.Enum):
    """Upstream sources an NFT can be imported from"""
    OPENSEA = "opensea"
    OBJKT = "objkt"
    TZKT = "tzkt"
    METADATA_URL = "metadata_url"


class Blockchain(str, enum.Enum):
    ETHEREUM = "ethereum"
    TEZOS = "tezos"
    POLYGON = "polygon"
    BASE = "base"
    UNKNOWN = "unknown"


class ImportStatus(str, enum.Enum):
    """Import ledger status"""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class IndexType(str, enum.Enum):
    """How a wallet relates to an indexed NFT. CREATED outranks OWNED."""
    OWNED = "owned"
    CREATED = "created"
