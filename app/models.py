"""SQLModel models for the catalog enrichment service.
Facets are kept as plain JSON mappings; the agent response is not schema-validated.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlmodel import Column, Field, JSON, SQLModel

DEFAULT_BRAND_TONE = "professional and compelling"
FACETS = ("descriptions", "categorization", "attributes", "seo")


class ProductStatus(str, Enum):
    ENRICHED = "enriched"
    EDITED = "edited"
    APPROVED = "approved"
    FAILED = "failed"


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


class TaxonomyPreference(str, Enum):
    AUTO = "auto"
    GOOGLE = "google"
    FACEBOOK = "facebook"
    CUSTOM = "custom"


class EnrichmentConfig(BaseModel):
    """Per-run options. Frozen once a run starts."""
    model_config = ConfigDict(frozen=True)

    descriptions: bool = True
    categorization: bool = True
    attributes: bool = True
    seo: bool = True
    brand_tone: str = ""
    taxonomy_preference: TaxonomyPreference = TaxonomyPreference.AUTO

    def enabled_types(self) -> List[str]:
        return [f for f in FACETS if getattr(self, f)]

    def effective_brand_tone(self) -> str:
        return self.brand_tone if self.brand_tone.strip() else DEFAULT_BRAND_TONE


class EnrichedProduct(SQLModel):
    """One catalog row and whatever the agent returned for it."""
    id: str
    original_data: dict = Field(default_factory=dict)
    status: ProductStatus = ProductStatus.ENRICHED
    product_name: Optional[str] = None
    enrichment_status: Optional[str] = None

    description_data: Optional[dict] = None
    categorization_data: Optional[dict] = None
    attribute_data: Optional[dict] = None
    seo_data: Optional[dict] = None

    def facet_value(self, facet: str, key: str, default: Any = "") -> Any:
        """Read a facet field; missing facet or key yields ``default``."""
        data = getattr(self, facet, None)
        if not isinstance(data, dict):
            return default
        value = data.get(key)
        return default if value is None else value

    @property
    def was_enriched(self) -> bool:
        """False for products whose agent call failed, even after a later approval."""
        return self.enrichment_status is not None

    def first_original_value(self) -> Any:
        for v in self.original_data.values():
            return v
        return None


class Job(SQLModel, table=True):
    """A single catalog run, stored once finalized."""
    id: str = Field(primary_key=True)
    name: str
    product_count: int = 0
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: JobStatus = Field(default=JobStatus.PROCESSING, index=True)
    products: List[dict] = Field(default_factory=list, sa_column=Column(JSON))

    def enriched_products(self) -> List[EnrichedProduct]:
        return [EnrichedProduct.model_validate(p) for p in (self.products or [])]

    def failed_count(self) -> int:
        return sum(1 for p in (self.products or []) if p.get("status") == ProductStatus.FAILED.value)


class Progress(SQLModel):
    """Snapshot published by the orchestrator after each drained item."""
    total: int = 0
    completed: int = 0
    percent: int = 0
    current: str = ""
