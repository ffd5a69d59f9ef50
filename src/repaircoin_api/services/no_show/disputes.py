"""Customer disputes against recorded no-shows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List
from uuid import UUID

from loguru import logger
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.models.customer import Customer, NoShowTierEnum
from repaircoin_api.models.no_show import DisputeStatusEnum, NoShowHistory

from .policy import NoShowPolicyService
from .service import tier_for_count


DISPUTE_REVERSED_MARKER = "[DISPUTE_REVERSED]"
AUTO_RESOLVER = "system_auto"
AUTO_APPROVAL_NOTE = "Auto-approved: first offense policy"
MIN_REASON_LENGTH = 10
MIN_RESOLUTION_NOTES_LENGTH = 10


class DisputeError(RuntimeError):
    """Base exception for dispute workflow failures."""


class NoShowRecordNotFoundError(DisputeError):
    """Raised when no history row matches the requested order or dispute id."""


class DisputeConflictError(DisputeError):
    """Raised when the dispute is not in a state that allows the requested change."""


class DisputeNotAllowedError(DisputeError):
    """Raised when the shop's policy refuses the dispute."""


class DisputeValidationError(ValueError):
    """Raised for malformed dispute input."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


@dataclass(slots=True)
class DisputeSubmission:
    record: NoShowHistory
    auto_approved: bool


@dataclass(slots=True)
class DisputeListing:
    disputes: List[NoShowHistory] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)


class DisputeService:
    """Submission, review and reversal of no-show disputes."""

    def __init__(self, session: AsyncSession) -> None:
        self._db = session
        self._policies = NoShowPolicyService(session)

    async def submit_dispute(self, order_id: str, customer_address: str, reason: str) -> DisputeSubmission:
        reason = (reason or "").strip()
        if len(reason) < MIN_REASON_LENGTH:
            raise DisputeValidationError("Dispute reason is required and must be at least 10 characters")

        address = customer_address.lower()
        record = await self._db.scalar(
            select(NoShowHistory).where(
                NoShowHistory.order_id == order_id,
                func.lower(NoShowHistory.customer_address) == address,
            )
        )
        if record is None:
            raise NoShowRecordNotFoundError("No-show record not found for this order")

        if record.disputed:
            status = record.dispute_status.value if record.dispute_status else "unknown"
            raise DisputeConflictError(f"This no-show has already been disputed (status: {status})")

        policy = await self._policies.get_shop_policy(record.shop_id)
        if not policy.allow_disputes:
            raise DisputeNotAllowedError("This shop does not accept no-show disputes")

        days_since = (_utcnow() - _as_utc(record.marked_no_show_at)).days
        if days_since > policy.dispute_window_days:
            raise DisputeNotAllowedError(
                "Dispute window has expired. Disputes must be submitted within "
                f"{policy.dispute_window_days} days of the no-show."
            )

        shop_total = await self._db.scalar(
            select(func.count())
            .select_from(NoShowHistory)
            .where(
                func.lower(NoShowHistory.customer_address) == address,
                NoShowHistory.shop_id == record.shop_id,
            )
        )
        auto_approve = policy.auto_approve_first_offense and int(shop_total or 0) <= 1

        now = _utcnow()
        record.disputed = True
        record.dispute_reason = reason
        record.dispute_submitted_at = now
        if auto_approve:
            record.dispute_status = DisputeStatusEnum.APPROVED
            record.dispute_resolved_at = now
            record.dispute_resolved_by = AUTO_RESOLVER
            record.dispute_resolution_notes = AUTO_APPROVAL_NOTE
            await self._reverse_penalty(record)
        else:
            record.dispute_status = DisputeStatusEnum.PENDING

        await self._db.commit()
        await self._db.refresh(record)
        logger.info(
            "No-show dispute submitted",
            no_show_id=str(record.id),
            customer_address=address,
            status=record.dispute_status.value,
        )
        return DisputeSubmission(record=record, auto_approved=auto_approve)

    async def get_dispute(
        self,
        order_id: str,
        *,
        customer_address: str | None = None,
        shop_id: str | None = None,
    ) -> NoShowHistory:
        stmt = select(NoShowHistory).where(NoShowHistory.order_id == order_id)
        if shop_id is not None:
            stmt = stmt.where(NoShowHistory.shop_id == shop_id)
        if customer_address is not None:
            stmt = stmt.where(func.lower(NoShowHistory.customer_address) == customer_address.lower())
        record = await self._db.scalar(stmt)
        if record is None:
            raise NoShowRecordNotFoundError("No-show record not found for this order")
        return record

    async def approve_dispute(
        self,
        shop_id: str,
        dispute_id: UUID,
        *,
        resolver: str,
        notes: str | None = None,
    ) -> NoShowHistory:
        record = await self._get_shop_dispute(shop_id, dispute_id)
        self._ensure_pending(record, action="approved")

        record.dispute_status = DisputeStatusEnum.APPROVED
        record.dispute_resolved_at = _utcnow()
        record.dispute_resolved_by = resolver.lower()
        record.dispute_resolution_notes = notes.strip() if notes and notes.strip() else None
        await self._reverse_penalty(record)

        await self._db.commit()
        await self._db.refresh(record)
        logger.info("No-show dispute approved", no_show_id=str(record.id), shop_id=shop_id)
        return record

    async def reject_dispute(
        self,
        shop_id: str,
        dispute_id: UUID,
        *,
        resolver: str,
        notes: str,
    ) -> NoShowHistory:
        notes = (notes or "").strip()
        if len(notes) < MIN_RESOLUTION_NOTES_LENGTH:
            raise DisputeValidationError("Rejection reason is required (minimum 10 characters)")

        record = await self._get_shop_dispute(shop_id, dispute_id)
        self._ensure_pending(record, action="rejected")

        record.dispute_status = DisputeStatusEnum.REJECTED
        record.dispute_resolved_at = _utcnow()
        record.dispute_resolved_by = resolver.lower()
        record.dispute_resolution_notes = notes

        await self._db.commit()
        await self._db.refresh(record)
        logger.info("No-show dispute rejected", no_show_id=str(record.id), shop_id=shop_id)
        return record

    async def admin_resolve_dispute(
        self,
        dispute_id: UUID,
        *,
        resolution: DisputeStatusEnum | str,
        resolver: str,
        notes: str,
    ) -> NoShowHistory:
        try:
            resolution = DisputeStatusEnum(resolution)
        except ValueError:
            raise DisputeValidationError('Resolution must be "approved" or "rejected"') from None
        if resolution == DisputeStatusEnum.PENDING:
            raise DisputeValidationError('Resolution must be "approved" or "rejected"')

        notes = (notes or "").strip()
        if len(notes) < MIN_RESOLUTION_NOTES_LENGTH:
            raise DisputeValidationError("Admin resolution notes are required (minimum 10 characters)")

        record = await self._db.get(NoShowHistory, dispute_id)
        if record is None:
            raise NoShowRecordNotFoundError("No-show record not found")
        if not record.disputed:
            raise DisputeValidationError("This record has no active dispute")

        previous_status = record.dispute_status
        record.dispute_status = resolution
        record.dispute_resolved_at = _utcnow()
        record.dispute_resolved_by = f"admin:{resolver.lower()}"
        record.dispute_resolution_notes = notes
        if resolution == DisputeStatusEnum.APPROVED and previous_status != DisputeStatusEnum.APPROVED:
            await self._reverse_penalty(record)

        await self._db.commit()
        await self._db.refresh(record)
        logger.info(
            "No-show dispute resolved by admin",
            no_show_id=str(record.id),
            previous_status=previous_status.value if previous_status else None,
            resolution=resolution.value,
        )
        return record

    async def list_shop_disputes(
        self,
        shop_id: str,
        *,
        status: DisputeStatusEnum | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> DisputeListing:
        return await self._list(shop_id=shop_id, status=status, limit=limit, offset=offset)

    async def list_disputes(
        self,
        *,
        status: DisputeStatusEnum | None = None,
        shop_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> DisputeListing:
        return await self._list(shop_id=shop_id, status=status, limit=limit, offset=offset)

    async def _list(
        self,
        *,
        shop_id: str | None,
        status: DisputeStatusEnum | None,
        limit: int,
        offset: int,
    ) -> DisputeListing:
        criteria = [NoShowHistory.disputed.is_(True)]
        if shop_id is not None:
            criteria.append(NoShowHistory.shop_id == shop_id)

        stmt = select(NoShowHistory).where(*criteria)
        if status is not None:
            stmt = stmt.where(NoShowHistory.dispute_status == status)
        stmt = stmt.order_by(NoShowHistory.dispute_submitted_at.desc()).limit(limit).offset(offset)
        disputes = list((await self._db.execute(stmt)).scalars().all())

        counts = await self._db.execute(
            select(
                func.count(),
                *(
                    func.count(case((NoShowHistory.dispute_status == candidate, 1)))
                    for candidate in DisputeStatusEnum
                ),
            ).where(*criteria)
        )
        total, *per_status = counts.one()
        stats = {"total": int(total or 0)}
        for candidate, value in zip(DisputeStatusEnum, per_status):
            stats[candidate.value] = int(value or 0)
        return DisputeListing(disputes=disputes, stats=stats)

    async def _get_shop_dispute(self, shop_id: str, dispute_id: UUID) -> NoShowHistory:
        record = await self._db.scalar(
            select(NoShowHistory).where(NoShowHistory.id == dispute_id, NoShowHistory.shop_id == shop_id)
        )
        if record is None:
            raise NoShowRecordNotFoundError("Dispute not found")
        if not record.disputed:
            raise DisputeValidationError("This record has no active dispute")
        return record

    @staticmethod
    def _ensure_pending(record: NoShowHistory, *, action: str) -> None:
        if record.dispute_status != DisputeStatusEnum.PENDING:
            current = record.dispute_status.value if record.dispute_status else "unknown"
            raise DisputeConflictError(
                f"Dispute is already {current}. Only pending disputes can be {action}."
            )

    async def _reverse_penalty(self, record: NoShowHistory) -> None:
        """Exclude the record from the shop's count and step the customer back down."""

        notes = record.notes
        record.notes = f"{notes} {DISPUTE_REVERSED_MARKER}" if notes else DISPUTE_REVERSED_MARKER
        await self._db.flush()

        effective_count = await self._db.scalar(
            select(func.count())
            .select_from(NoShowHistory)
            .where(
                func.lower(NoShowHistory.customer_address) == record.customer_address.lower(),
                NoShowHistory.shop_id == record.shop_id,
                or_(
                    NoShowHistory.notes.is_(None),
                    NoShowHistory.notes.not_like(f"%{DISPUTE_REVERSED_MARKER}%"),
                ),
            )
        )
        policy = await self._policies.get_shop_policy(record.shop_id)
        new_tier = tier_for_count(int(effective_count or 0), policy)

        # Restrictions follow the recomputed tier.
        values: Dict[str, object] = {
            "no_show_count": case((Customer.no_show_count > 0, Customer.no_show_count - 1), else_=0),
            "no_show_tier": new_tier,
            "deposit_required": new_tier in (NoShowTierEnum.DEPOSIT_REQUIRED, NoShowTierEnum.SUSPENDED),
        }
        if new_tier != NoShowTierEnum.SUSPENDED:
            values["booking_suspended_until"] = None
        if new_tier != NoShowTierEnum.DEPOSIT_REQUIRED:
            values["successful_appointments_since_tier3"] = 0

        await self._db.execute(
            update(Customer)
            .where(func.lower(Customer.address) == record.customer_address.lower())
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        logger.info(
            "Reversed no-show penalty",
            customer_address=record.customer_address,
            shop_id=record.shop_id,
            effective_count=int(effective_count or 0),
            tier=new_tier.value,
        )


__all__ = [
    "AUTO_RESOLVER",
    "DISPUTE_REVERSED_MARKER",
    "DisputeConflictError",
    "DisputeError",
    "DisputeListing",
    "DisputeNotAllowedError",
    "DisputeService",
    "DisputeSubmission",
    "DisputeValidationError",
    "NoShowRecordNotFoundError",
]
