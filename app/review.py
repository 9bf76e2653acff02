"""Review session over a finished job.

The session works on its own copy of the job's products. Selection, the
expanded detail view and manual edits live here until ``save_to`` writes the
products back to the job.
"""
import copy
import logging
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from .models import EnrichedProduct, Job, ProductStatus

log = logging.getLogger("enrich.review")


class EditableField(str, Enum):
    PRODUCT_TITLE = "product_title"
    SHORT_DESCRIPTION = "short_description"
    PRIMARY_CATEGORY = "primary_category"
    TAXONOMY_PATH = "taxonomy_path"
    PRODUCT_TYPE = "product_type"
    META_TITLE = "meta_title"
    META_DESCRIPTION = "meta_description"

    @property
    def target(self) -> Tuple[str, str]:
        return FIELD_TARGETS[self]


# field -> (facet attribute, key inside the facet)
FIELD_TARGETS: Dict[EditableField, Tuple[str, str]] = {
    EditableField.PRODUCT_TITLE: ("description_data", "product_title"),
    EditableField.SHORT_DESCRIPTION: ("description_data", "short_description"),
    EditableField.PRIMARY_CATEGORY: ("categorization_data", "primary_category"),
    EditableField.TAXONOMY_PATH: ("categorization_data", "taxonomy_path"),
    EditableField.PRODUCT_TYPE: ("categorization_data", "product_type"),
    EditableField.META_TITLE: ("seo_data", "meta_title"),
    EditableField.META_DESCRIPTION: ("seo_data", "meta_description"),
}


def attribute_count(product: EnrichedProduct) -> int:
    """Non-empty physical attributes + technical specs + additional attributes.
    Variant attributes are not counted."""
    attrs = product.attribute_data
    if not isinstance(attrs, dict):
        return 0
    count = 0
    physical = attrs.get("physical_attributes")
    if isinstance(physical, dict):
        count += sum(1 for v in physical.values() if v)
    for key in ("technical_specs", "additional_attributes"):
        if isinstance(attrs.get(key), list):
            count += len(attrs[key])
    return count


class ReviewSession:
    def __init__(self, job_id: str, products: List[EnrichedProduct]):
        self.job_id = job_id
        self.products = products
        self.selection: Set[str] = set()
        self.expanded: Optional[str] = None
        self.dirty = False

    @classmethod
    def from_job(cls, job: Job) -> "ReviewSession":
        return cls(job.id, [EnrichedProduct.model_validate(copy.deepcopy(p)) for p in job.products or []])

    def get(self, product_id: str) -> Optional[EnrichedProduct]:
        return next((p for p in self.products if p.id == product_id), None)

    # selection

    @property
    def all_selected(self) -> bool:
        return bool(self.products) and all(p.id in self.selection for p in self.products)

    def toggle_all(self) -> None:
        if self.all_selected:
            self.selection = set()
        else:
            self.selection = {p.id for p in self.products}

    def toggle_one(self, product_id: str) -> None:
        if product_id in self.selection:
            self.selection.discard(product_id)
        else:
            self.selection.add(product_id)

    def expand(self, product_id: Optional[str]) -> None:
        self.expanded = product_id

    def toggle_expanded(self, product_id: str) -> None:
        self.expanded = None if self.expanded == product_id else product_id

    # transitions

    def edit(self, product_id: str, field: EditableField, value: str) -> bool:
        """Override one facet field and mark the product edited.
        Returns False when nothing was written (unknown id, or a product whose
        enrichment failed, including one approved afterwards)."""
        product = self.get(product_id)
        if product is None or product.status == ProductStatus.FAILED or not product.was_enriched:
            return False

        facet, key = field.target
        data = dict(getattr(product, facet) or {})
        data[key] = value
        setattr(product, facet, data)
        product.status = ProductStatus.EDITED
        self.dirty = True
        return True

    def approve_selected(self) -> int:
        # failed products are approved too; nothing is validated here
        approved = 0
        for p in self.products:
            if p.id in self.selection:
                p.status = ProductStatus.APPROVED
                approved += 1
        if approved:
            self.dirty = True
        return approved

    def save_to(self, job: Job) -> Job:
        if job.id != self.job_id:
            raise ValueError(f"review session belongs to job {self.job_id}, not {job.id}")
        job.products = [p.model_dump(mode="json") for p in self.products]
        self.dirty = False
        log.info("review_saved: job=%s products=%d", job.id, len(self.products))
        return job
