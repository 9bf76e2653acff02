"""CSV / JSON export of reviewed products."""
import json
import logging
import time
from typing import Awaitable, Callable, Iterable, List, NamedTuple, Optional, Set

from .models import EnrichedProduct, ProductStatus

log = logging.getLogger("enrich.export")

CSV_HEADERS = [
    "Product Name", "Title", "Short Description", "Category", "Tags",
    "Color", "Material", "Meta Title", "Meta Description", "SEO Score",
]
MEDIA_TYPES = {"json": "application/json", "csv": "text/csv"}

NotifyFn = Callable[[list], Awaitable[object]]


class ExportPayload(NamedTuple):
    content: bytes
    media_type: str
    filename: str


def export_subset(products: Iterable[EnrichedProduct], selection: Set[str]) -> List[EnrichedProduct]:
    """Selected or approved, in product order."""
    return [p for p in products if p.id in selection or p.status == ProductStatus.APPROVED]


def export_name(p: EnrichedProduct) -> str:
    name = p.product_name or p.facet_value("description_data", "product_title") or p.first_original_value()
    return str(name) if name else ""


def export_projection(products: Iterable[EnrichedProduct]) -> list:
    return [
        {
            "product_name": export_name(p),
            "description_data": p.description_data,
            "categorization_data": p.categorization_data,
            "attribute_data": p.attribute_data,
            "seo_data": p.seo_data,
        }
        for p in products
    ]


def _drop_none(d: dict) -> dict:
    return {k: v for k, v in d.items() if v is not None}


def to_json_bytes(products: Iterable[EnrichedProduct]) -> bytes:
    data = [
        {
            "original": p.original_data,
            "enriched": _drop_none({
                "product_name": p.product_name,
                "description": p.description_data,
                "categorization": p.categorization_data,
                "attributes": p.attribute_data,
                "seo": p.seo_data,
            }),
        }
        for p in products
    ]
    return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")


def _text(v) -> str:
    """Render a scalar the way the agent's JSON would print it."""
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def _quote(v: str) -> str:
    return '"' + v.replace('"', '""') + '"'


def csv_row(p: EnrichedProduct) -> List[str]:
    tags = p.facet_value("categorization_data", "tags", None)
    physical = p.facet_value("attribute_data", "physical_attributes", None)
    physical = physical if isinstance(physical, dict) else {}
    return [
        export_name(p),
        _text(p.facet_value("description_data", "product_title")),
        _text(p.facet_value("description_data", "short_description")),
        _text(p.facet_value("categorization_data", "primary_category")),
        "; ".join(_text(t) for t in tags) if isinstance(tags, list) else "",
        _text(physical.get("color")),
        _text(physical.get("material")),
        _text(p.facet_value("seo_data", "meta_title")),
        _text(p.facet_value("seo_data", "meta_description")),
        _text(p.facet_value("seo_data", "seo_score", None)),
    ]


def to_csv_bytes(products: Iterable[EnrichedProduct]) -> bytes:
    lines = [",".join(CSV_HEADERS)]
    lines += [",".join(_quote(v) for v in csv_row(p)) for p in products]
    return "\n".join(lines).encode("utf-8")


def export_filename(fmt: str, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"enriched-products-{now_ms}.{fmt}"


class Exporter:
    """Builds download payloads; tells the export agent first, best effort."""

    def __init__(self, notify: Optional[NotifyFn] = None):
        self.notify = notify

    async def _notify(self, products: List[EnrichedProduct]) -> None:
        if self.notify is None:
            return
        try:
            await self.notify(export_projection(products))
        except Exception as e:
            log.warning("export notification failed: %s", e)

    async def export(self, products: Iterable[EnrichedProduct], selection: Set[str], fmt: str) -> Optional[ExportPayload]:
        if fmt not in MEDIA_TYPES:
            raise ValueError(f"unsupported export format: {fmt}")
        subset = export_subset(products, selection)
        if not subset:
            return None

        await self._notify(subset)
        content = to_json_bytes(subset) if fmt == "json" else to_csv_bytes(subset)
        log.info("export: format=%s products=%d", fmt, len(subset))
        return ExportPayload(content, MEDIA_TYPES[fmt], export_filename(fmt))
