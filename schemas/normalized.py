"""
Pydantic schemas for normalized artwork data with validation
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import DataSource


class Dimensions(BaseModel):
    width: int
    height: int

    @classmethod
    def from_pair(cls, width, height) -> Optional["Dimensions"]:
        """Valid only when both sides are positive integers."""
        try:
            w, h = int(width), int(height)
        except (TypeError, ValueError):
            return None
        if w > 0 and h > 0:
            return cls(width=w, height=h)
        return None


class Attribute(BaseModel):
    trait_type: str
    value: str


class CreatorHint(BaseModel):
    """Everything a source told us about one creator."""
    address: Optional[str] = None
    blockchain: Optional[str] = None
    name: Optional[str] = None
    ens_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    twitter_handle: Optional[str] = None
    instagram_handle: Optional[str] = None

    @validator("name", "address", pre=True)
    def strip_blank(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    def has_identity(self) -> bool:
        return bool(self.address or self.name)


class CollectionHint(BaseModel):
    """Everything a source told us about the artwork's collection."""
    external_id: Optional[str] = None
    data_source: Optional[DataSource] = None
    blockchain: Optional[str] = None
    title: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    image_url: Optional[str] = None
    contract_address: Optional[str] = None
    is_shared_contract: bool = False
    is_generative: bool = False
    project_id: Optional[str] = None
    supply: Optional[int] = None

    class Config:
        use_enum_values = True


class NormalizedArtwork(BaseModel):
    """
    Canonical artwork fields produced by the normalizer.

    ``title`` may be empty here; the "Untitled" default is applied once,
    when the artwork is persisted.
    """

    source_name: DataSource
    blockchain: Optional[str] = None
    contract_address: Optional[str] = None
    token_id: Optional[str] = None
    token_standard: Optional[str] = None

    title: str = ""
    description: Optional[str] = None

    image_url: Optional[str] = None
    animation_url: Optional[str] = None
    generator_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    metadata_url: Optional[str] = None
    mime: Optional[str] = None
    dimensions: Optional[Dimensions] = None

    attributes: List[Attribute] = Field(default_factory=list)
    features: Optional[Dict[str, Any]] = None
    supply: Optional[int] = None
    mint_date: Optional[datetime] = None

    creators: List[CreatorHint] = Field(default_factory=list)
    collection: Optional[CollectionHint] = None

    @validator("title", pre=True)
    def clean_title(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @validator("description", pre=True)
    def clean_description(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @validator("supply")
    def positive_supply(cls, v):
        if v is not None and v < 0:
            return None
        return v

    @property
    def is_generative(self) -> bool:
        return bool(self.generator_url)

    @property
    def primary_media_url(self) -> Optional[str]:
        """Renderable reference: generator, then animation, then static image."""
        return self.generator_url or self.animation_url or self.image_url

    class Config:
        use_enum_values = True
