from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import not_found
from app.models import ImportedProduct, ImportJob
from app.schemas.admin import ImportJobSummaryOut
from app.schemas.imports import ImportJobOut, ImportResponse, ImportSettings, RawProduct
from app.services.catalog import publish_imported_product
from app.services.pricing import adjust_price
from app.services.tokens import Capability

logger = logging.getLogger(__name__)

CREATED = "created"
SKIPPED = "skipped"
FAILED = "failed"


class ImportCoordinator:
    def __init__(self, db: Session, capability: Capability, source_platform: str | None = None) -> None:
        self.db = db
        self.capability = capability
        self.settings = get_settings()
        self.source_platform = source_platform or self.settings.source_platform

    def run(self, products: list[dict[str, Any]], import_settings: ImportSettings | None = None) -> ImportJob:
        import_settings = import_settings or ImportSettings()
        job = ImportJob(
            organization_id=self.capability.organization_id,
            user_id=self.capability.user_id,
            source_platform=self.source_platform,
            status="processing",
            total_products=len(products),
            processed=0,
            successful=0,
            failed=0,
            skipped=0,
            error_log=[],
            import_settings=import_settings.model_dump(),
        )
        self.db.add(job)
        self.db.commit()
        logger.info("Starting %s import job %s for %s products", self.source_platform, job.id, len(products))

        errors: list[str] = []
        for product in products:
            outcome = self._process(job, product, import_settings, errors)
            job.processed += 1
            if outcome == CREATED:
                job.successful += 1
            elif outcome == SKIPPED:
                job.skipped += 1
            else:
                job.failed += 1
                job.error_log = errors[: self.settings.max_error_entries]
            self.db.commit()

        if job.total_products and job.successful + job.skipped == 0:
            job.status = "failed"
        else:
            job.status = "completed"
        job.completed_at = datetime.now(timezone.utc)
        self.db.commit()

        logger.info(
            "Import job %s %s: %s successful, %s skipped, %s failed",
            job.id,
            job.status,
            job.successful,
            job.skipped,
            job.failed,
        )
        return job

    def _process(self, job: ImportJob, raw: dict[str, Any], import_settings: ImportSettings, errors: list[str]) -> str:
        label = raw.get("id") or raw.get("url") or f"#{job.processed + 1}"
        try:
            product = RawProduct.model_validate(raw)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(part) for part in error["loc"]) or "record" for error in exc.errors())
            logger.warning("Rejected malformed product %s: %s", label, fields)
            return self._record_failure(errors, label, f"invalid or missing fields: {fields}")

        try:
            return self._import_item(job, product, import_settings)
        except IntegrityError as exc:
            self.db.rollback()
            if self._already_imported(job.organization_id, product.url):
                logger.info("Concurrent duplicate for %s in organization %s", product.url, job.organization_id)
                return SKIPPED
            logger.warning("Failed to import product %s: %s", label, exc.orig)
            return self._record_failure(errors, label, str(exc.orig))
        except Exception as exc:
            self.db.rollback()
            logger.warning("Failed to import product %s: %s", label, exc)
            return self._record_failure(errors, label, str(exc))

    def _record_failure(self, errors: list[str], label: object, reason: str) -> str:
        message = f"Product {label}: {reason}"
        errors.append(message[: self.settings.max_error_length])
        return FAILED

    def _already_imported(self, organization_id: str, source_url: str) -> bool:
        existing = self.db.execute(
            select(ImportedProduct.id).where(
                and_(ImportedProduct.organization_id == organization_id, ImportedProduct.source_url == source_url)
            )
        ).scalar_one_or_none()
        return existing is not None

    def _import_item(self, job: ImportJob, product: RawProduct, import_settings: ImportSettings) -> str:
        if self._already_imported(job.organization_id, product.url):
            logger.debug("Product already imported: %s", product.url)
            return SKIPPED

        now = datetime.now(timezone.utc)
        approved = import_settings.auto_approve
        imported = ImportedProduct(
            import_job_id=job.id,
            organization_id=job.organization_id,
            source_url=product.url,
            source_product_id=product.id,
            raw_data=product.model_dump(mode="json"),
            processed_data=self._processed_data(product, import_settings, now),
            approval_status="approved" if approved else "pending",
            approved_at=now if approved else None,
            approved_by=self.capability.user_id if approved else None,
        )
        self.db.add(imported)
        self.db.flush()

        if approved:
            publish_imported_product(self.db, imported, self.source_platform)
            self.db.flush()
        return CREATED

    def _processed_data(self, product: RawProduct, import_settings: ImportSettings, now: datetime) -> dict[str, object]:
        category = product.category
        if category and category in import_settings.category_mapping:
            category = import_settings.category_mapping[category]

        return {
            "name": product.name,
            "price": adjust_price(product.price, import_settings.price_adjustment),
            "original_price": product.original_price or product.price,
            "currency": product.currency or "USD",
            "description": product.description,
            "images": list(product.images),
            "category": category,
            "tags": list(product.tags),
            "rating": product.rating,
            "reviews_count": product.reviews_count,
            "variants": list(product.variants),
            "source_platform": self.source_platform,
            "import_date": now.isoformat(),
        }


def to_import_response(job: ImportJob, import_settings: ImportSettings | None) -> ImportResponse:
    auto_approve = bool(import_settings and import_settings.auto_approve)
    return ImportResponse(
        import_job_id=job.id,
        status=job.status,
        total_products=job.total_products,
        processed=job.processed,
        successful=job.successful,
        failed=job.failed,
        skipped=job.skipped,
        errors=list(job.error_log or []),
        auto_approved=job.successful if auto_approve else 0,
        pending_approval=0 if auto_approve else job.successful,
    )


def get_import_job(db: Session, capability: Capability, job_id: str) -> ImportJobOut:
    job = db.get(ImportJob, job_id)
    if job is None or job.organization_id != capability.organization_id:
        raise not_found("Import job not found", import_job_id=job_id)
    return ImportJobOut(
        id=job.id,
        organization_id=job.organization_id,
        status=job.status,
        total_products=job.total_products,
        processed=job.processed,
        successful=job.successful,
        failed=job.failed,
        skipped=job.skipped,
        errors=list(job.error_log or []),
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


def list_import_jobs(db: Session, limit: int = 50) -> list[ImportJobSummaryOut]:
    rows = db.execute(select(ImportJob).order_by(ImportJob.started_at.desc()).limit(limit)).scalars().all()
    outputs: list[ImportJobSummaryOut] = []
    for job in rows:
        started = job.started_at.astimezone(timezone.utc).isoformat() if job.started_at else ""
        finished = job.completed_at.astimezone(timezone.utc).isoformat() if job.completed_at else None
        outputs.append(
            ImportJobSummaryOut(
                id=job.id,
                organization_id=job.organization_id,
                status=job.status,
                total_products=job.total_products,
                processed=job.processed,
                successful=job.successful,
                failed=job.failed,
                skipped=job.skipped,
                started_at=started,
                completed_at=finished,
            )
        )
    return outputs
