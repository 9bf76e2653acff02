"""Enrichment orchestration.
One remote call per catalog record; results land on the job in input order.
"""
import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional

from .models import EnrichedProduct, EnrichmentConfig, Job, JobStatus, ProductStatus, Progress

log = logging.getLogger("enrich.pipeline")

EnrichFn = Callable[[dict], Awaitable[dict]]
ProgressFn = Callable[[Progress], None]


def display_name(record: dict, index: int) -> str:
    """Best label for a record: name, product_name, first value, then 'Product N'."""
    first = next(iter(record.values()), None) if record else None
    label = record.get("name") or record.get("product_name") or first
    return str(label) if label else f"Product {index + 1}"


def _new_product_id(index: int) -> str:
    return f"product-{index}-{uuid.uuid4().hex[:12]}"


def _facet(data: dict, key: str) -> Optional[dict]:
    value = data.get(key)
    return value if isinstance(value, dict) else None


def build_request(record: dict, config: EnrichmentConfig) -> dict:
    return {
        "product_data": record,
        "brand_tone": config.effective_brand_tone(),
        "enrichment_types": config.enabled_types(),
    }


def job_status_for(products: List[EnrichedProduct]) -> JobStatus:
    failed = sum(1 for p in products if p.status == ProductStatus.FAILED)
    if failed == 0:
        return JobStatus.COMPLETED
    if failed == len(products):
        return JobStatus.FAILED
    return JobStatus.PARTIAL


def summary_message(job: Job) -> str:
    ok = sum(1 for p in job.products if p.get("status") == ProductStatus.ENRICHED.value)
    return f"Enrichment complete: {ok} of {len(job.products)} products enriched successfully."


class EnrichmentOrchestrator:
    """
    Drives the per-record agent calls for one job.

    ``concurrency`` bounds how many calls are in flight. Finished results are
    buffered by index and drained in order, so job.products always matches the
    input order and published progress never goes backwards. With the default
    of 1 each record is awaited before the next one starts.
    """

    def __init__(self, enrich: EnrichFn, concurrency: int = 1, on_progress: Optional[ProgressFn] = None):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.enrich = enrich
        self.concurrency = concurrency
        self.on_progress = on_progress

    def _publish(self, total: int, completed: int, current: str) -> None:
        if self.on_progress is None:
            return
        percent = (100 * completed) // total if total else 100
        self.on_progress(Progress(total=total, completed=completed, percent=percent, current=current))

    async def enrich_one(self, index: int, record: dict, config: EnrichmentConfig) -> EnrichedProduct:
        """Single attempt; any failure becomes a failed product."""
        label = display_name(record, index)
        try:
            result = await self.enrich(build_request(record, config))
        except Exception as e:
            log.info("enrich_fail: index=%d error=%s", index, e)
            result = None

        if not result or not isinstance(result, dict) or not result.get("success"):
            if result is not None:
                log.info("enrich_fail: index=%d agent reported failure", index)
            return EnrichedProduct(id=_new_product_id(index), original_data=record, status=ProductStatus.FAILED)

        response = result.get("response")
        data = response.get("result") if isinstance(response, dict) else None
        if not isinstance(data, dict):
            data = {}
        name = data.get("product_name")
        status = data.get("enrichment_status")
        return EnrichedProduct(
            id=_new_product_id(index),
            original_data=record,
            status=ProductStatus.ENRICHED,
            product_name=label if name is None else str(name),
            enrichment_status="complete" if status is None else str(status),
            description_data=_facet(data, "description_data"),
            categorization_data=_facet(data, "categorization_data"),
            attribute_data=_facet(data, "attribute_data"),
            seo_data=_facet(data, "seo_data"),
        )

    async def run(self, job: Job, records: List[dict], config: EnrichmentConfig) -> Job:
        """Process every record, then finalize the job status exactly once."""
        total = len(records)
        labels = [display_name(r, i) for i, r in enumerate(records)]
        sem = asyncio.Semaphore(self.concurrency)
        log.info("run_start: job=%s total=%d types=%s concurrency=%d",
                 job.id, total, config.enabled_types(), self.concurrency)

        async def guarded(i: int) -> tuple:
            async with sem:
                return i, await self.enrich_one(i, records[i], config)

        products: List[EnrichedProduct] = []
        buffer: Dict[int, EnrichedProduct] = {}
        self._publish(total, 0, labels[0] if labels else "")

        tasks = [asyncio.create_task(guarded(i)) for i in range(total)]
        for fut in asyncio.as_completed(tasks):
            i, product = await fut
            buffer[i] = product
            while len(products) in buffer:
                products.append(buffer.pop(len(products)))
                done = len(products)
                self._publish(total, done, labels[done] if done < total else "")

        job.products = [p.model_dump(mode="json") for p in products]
        job.status = job_status_for(products)
        log.info("run_done: job=%s status=%s failed=%d/%d", job.id, job.status.value, job.failed_count(), total)
        return job
