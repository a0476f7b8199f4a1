"""
Post-call webhook ingestion.

One delivery runs through: received -> parsed -> classified -> persisted ->
rolled_up. A bad analysis payload is contained (the call is stored with
``analysis_status="failed"``); anything that prevents the call itself from
being stored rolls the whole transaction back. Dashboard caches are
invalidated only after the commit.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple
from uuid import UUID

import structlog
from fastapi import Depends
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from callinsight.analysis.classifier import CallSource, CallSourceInfo, classify_call_source
from callinsight.analysis.parser import parse_analysis
from callinsight.cache import TenantCache, cache as default_cache, get_cache
from callinsight.config import settings
from callinsight.database import dialect_name
from callinsight.errors import AnalysisParseError, MissingAnalysisData, PersistenceError
from callinsight.ingestion.envelope import WebhookEnvelope, normalize_envelope
from callinsight.ingestion.rollups import refresh_rollups
from callinsight.metrics.registry import AGENT_PERFORMANCE, INGESTION_METRICS
from callinsight.models.call import CALL_STATUS_RANK, Call, CallAnalysis
from callinsight.models.tenant import Contact
from callinsight.ownership import OwnershipGuard, ResourceType, ownership_guard, parse_uuid
from callinsight.schemas.analysis import ParsedAnalysis

logger = structlog.get_logger()


class IngestionStage(str, Enum):
    RECEIVED = "received"
    PARSED = "parsed"
    PARSE_FAILED = "parse_failed"
    CLASSIFIED = "classified"
    PERSISTED = "persisted"
    PERSIST_FAILED = "persist_failed"
    ROLLED_UP = "rolled_up"


@dataclass
class IngestionResult:
    tenant_id: UUID
    conversation_id: Optional[str] = None
    call_id: Optional[UUID] = None
    call_source: Optional[str] = None
    analysis_status: str = "pending"
    analysis_error: Optional[str] = None
    rollups_refreshed: bool = False
    stage: IngestionStage = IngestionStage.RECEIVED
    stages: List[IngestionStage] = field(default_factory=list)

    def advance(self, stage: IngestionStage) -> None:
        self.stage = stage
        self.stages.append(stage)


def _upsert_insert(db: AsyncSession):
    dialect = dialect_name(db)
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise PersistenceError(f"Upserts are not supported on {dialect}")
    return insert


def _status_rank(expr):
    return case(
        *[(expr == status, rank) for status, rank in CALL_STATUS_RANK.items()],
        else_=0,
    )


class IngestionCoordinator:
    """Turns one provider webhook into stored call, analysis and rollup rows"""

    def __init__(
        self,
        guard: OwnershipGuard = ownership_guard,
        cache: Optional[TenantCache] = None,
        timeout: Optional[float] = None,
    ):
        self.guard = guard
        self.cache = cache if cache is not None else default_cache
        self.timeout = settings.ingest_timeout_seconds if timeout is None else timeout

    async def ingest(self, db: AsyncSession, tenant_id: Any, payload: Any) -> IngestionResult:
        """
        Ingest one webhook delivery for ``tenant_id``.

        Raises InvalidPayload, InvalidResourceId or AccessDenied before any
        write, and PersistenceError when the transaction could not be
        committed. Idempotent per (tenant, conversation id).
        """
        tenant_uuid = parse_uuid(tenant_id, "tenant")
        envelope = normalize_envelope(payload)

        result = IngestionResult(tenant_id=tenant_uuid, conversation_id=envelope.conversation_id)
        result.advance(IngestionStage.RECEIVED)

        log = logger.bind(tenant_id=str(tenant_uuid), conversation_id=envelope.conversation_id)

        parsed = self._parse(envelope, result, log)

        source = classify_call_source(envelope.dynamic_variables)
        result.call_source = source.source.value
        result.advance(IngestionStage.CLASSIFIED)

        try:
            agent_id = await asyncio.wait_for(
                self._persist(db, tenant_uuid, envelope, parsed, source, result),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            stage = await self._abort(db, result, log, "timed out")
            raise PersistenceError("Ingestion timed out", stage=stage) from e
        except SQLAlchemyError as e:
            stage = await self._abort(db, result, log, str(e))
            raise PersistenceError("Could not store call", stage=stage) from e
        except Exception:
            await db.rollback()
            raise

        log.info(
            "Call ingested",
            call_id=str(result.call_id),
            call_source=result.call_source,
            analysis_status=result.analysis_status,
            stage=result.stage.value,
        )

        self._invalidate(tenant_uuid, agent_id, log)
        return result

    def _parse(self, envelope: WebhookEnvelope, result: IngestionResult, log) -> Optional[ParsedAnalysis]:
        if envelope.analysis is None:
            return None

        try:
            parsed = parse_analysis(envelope.analysis)
        except (MissingAnalysisData, AnalysisParseError) as e:
            result.analysis_status = "failed"
            result.analysis_error = str(e)
            result.advance(IngestionStage.PARSE_FAILED)
            log.warning(
                "Analysis parse failed",
                error=str(e),
                normalized=getattr(e, "normalized", None),
                available_keys=getattr(e, "available_keys", None),
            )
            return None

        result.analysis_status = "completed"
        result.advance(IngestionStage.PARSED)
        return parsed

    async def _abort(self, db: AsyncSession, result: IngestionResult, log, reason: str) -> str:
        failed_at = result.stage.value
        result.advance(IngestionStage.PERSIST_FAILED)
        try:
            await db.rollback()
        except SQLAlchemyError as e:
            log.error("Rollback failed", error=str(e))
        log.error("Ingestion failed", stage=failed_at, error=reason)
        return failed_at

    async def _persist(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        envelope: WebhookEnvelope,
        parsed: Optional[ParsedAnalysis],
        source: CallSourceInfo,
        result: IngestionResult,
    ) -> UUID:
        agent = await self.guard.authorize(
            db, tenant_id, ResourceType.PROVIDER_AGENT, envelope.provider_agent_id
        )

        contact_id = None
        if source.source == CallSource.PHONE:
            contact_id = await self._upsert_contact(db, tenant_id, source, envelope)

        previous_started_at = (
            await db.execute(
                select(Call.started_at).where(
                    Call.tenant_id == tenant_id,
                    Call.external_conversation_id == envelope.conversation_id,
                )
            )
        ).scalar_one_or_none()

        call_id, started_at, analysis_status = await self._upsert_call(
            db, tenant_id, agent.id, contact_id, envelope, parsed, source, result
        )
        result.call_id = call_id
        result.analysis_status = analysis_status

        if parsed is not None:
            await self._upsert_analysis(db, tenant_id, call_id, parsed)

        result.advance(IngestionStage.PERSISTED)

        result.rollups_refreshed = await refresh_rollups(
            db, tenant_id, [previous_started_at, started_at]
        )
        if result.rollups_refreshed:
            result.advance(IngestionStage.ROLLED_UP)

        await db.commit()
        return agent.id

    async def _upsert_contact(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        source: CallSourceInfo,
        envelope: WebhookEnvelope,
    ) -> UUID:
        insert = _upsert_insert(db)
        contacts = Contact.__table__
        now = datetime.utcnow()

        stmt = insert(contacts).values(
            tenant_id=tenant_id,
            phone_number=source.caller_id,
            name=source.caller_name,
            email=source.caller_email,
            last_call_at=envelope.started_at or now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "phone_number"],
            set_={
                "name": func.coalesce(stmt.excluded.name, contacts.c.name),
                "email": func.coalesce(stmt.excluded.email, contacts.c.email),
                "last_call_at": stmt.excluded.last_call_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)

        return (
            await db.execute(
                select(Contact.id).where(
                    Contact.tenant_id == tenant_id,
                    Contact.phone_number == source.caller_id,
                )
            )
        ).scalar_one()

    async def _upsert_call(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        agent_id: UUID,
        contact_id: Optional[UUID],
        envelope: WebhookEnvelope,
        parsed: Optional[ParsedAnalysis],
        source: CallSourceInfo,
        result: IngestionResult,
    ) -> Tuple[UUID, datetime, str]:
        insert = _upsert_insert(db)
        calls = Call.__table__
        now = datetime.utcnow()

        # Fields only written when this delivery carries them
        optional = {
            "contact_id": contact_id,
            "phone_number": source.caller_id,
            "called_number": envelope.called_number,
            "caller_name": source.caller_name,
            "caller_email": source.caller_email,
            "started_at": envelope.started_at,
            "ended_at": envelope.ended_at,
            "duration_seconds": envelope.duration_seconds,
            "summary_title": parsed.call_summary_title if parsed else None,
            "metadata_json": envelope.metadata or None,
        }
        if source.source != CallSource.UNKNOWN:
            optional["call_source"] = source.source.value
        if envelope.analysis is not None:
            optional["raw_analysis_json"] = envelope.analysis
            optional["analysis_status"] = result.analysis_status
            optional["analysis_error"] = result.analysis_error
        present = {key: value for key, value in optional.items() if value is not None}

        values = {
            "tenant_id": tenant_id,
            "agent_id": agent_id,
            "external_conversation_id": envelope.conversation_id,
            "status": envelope.status,
            "call_source": source.source.value,
            "started_at": now,
            "analysis_status": "pending",
            "metadata_json": {},
            "created_at": now,
            "updated_at": now,
        }
        values.update(present)

        stmt = insert(calls).values(**values)
        excluded = stmt.excluded

        set_ = {key: excluded[key] for key in present}
        set_["agent_id"] = excluded.agent_id
        set_["updated_at"] = excluded.updated_at
        set_["status"] = case(
            (_status_rank(excluded.status) >= _status_rank(calls.c.status), excluded.status),
            else_=calls.c.status,
        )

        if envelope.analysis is not None and result.analysis_status == "failed":
            # A failed re-parse never replaces a completed analysis
            kept = calls.c.analysis_status == "completed"
            set_["analysis_status"] = case((kept, calls.c.analysis_status), else_=excluded.analysis_status)
            set_["analysis_error"] = case((kept, calls.c.analysis_error), else_=excluded.analysis_error)
            set_["raw_analysis_json"] = case((kept, calls.c.raw_analysis_json), else_=excluded.raw_analysis_json)
        elif envelope.analysis is not None:
            set_["analysis_error"] = excluded.analysis_error

        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "external_conversation_id"],
            set_=set_,
        )
        await db.execute(stmt)

        row = (
            await db.execute(
                select(Call.id, Call.started_at, Call.analysis_status).where(
                    Call.tenant_id == tenant_id,
                    Call.external_conversation_id == envelope.conversation_id,
                )
            )
        ).one()
        return row.id, row.started_at, row.analysis_status

    async def _upsert_analysis(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        call_id: UUID,
        parsed: ParsedAnalysis,
    ) -> None:
        insert = _upsert_insert(db)
        now = datetime.utcnow()
        fields = parsed.model_dump()

        stmt = insert(CallAnalysis.__table__).values(
            call_id=call_id,
            tenant_id=tenant_id,
            created_at=now,
            updated_at=now,
            **fields,
        )
        set_ = {key: stmt.excluded[key] for key in fields}
        set_["updated_at"] = stmt.excluded.updated_at
        await db.execute(stmt.on_conflict_do_update(index_elements=["call_id"], set_=set_))

    async def reprocess_failed(self, db: AsyncSession, limit: int = 100) -> int:
        """
        Re-run the parser on stored analyses that previously failed.

        Each recovered call is committed on its own; returns how many calls
        now have a completed analysis.
        """
        result = await db.execute(
            select(
                Call.id,
                Call.tenant_id,
                Call.agent_id,
                Call.started_at,
                Call.summary_title,
                Call.raw_analysis_json,
            )
            .where(Call.analysis_status == "failed", Call.raw_analysis_json.isnot(None))
            .order_by(Call.updated_at)
            .limit(limit)
        )
        rows = result.all()

        recovered = 0
        for row in rows:
            log = logger.bind(tenant_id=str(row.tenant_id), call_id=str(row.id))

            try:
                if not isinstance(row.raw_analysis_json, dict):
                    raise MissingAnalysisData([])
                parsed = parse_analysis(row.raw_analysis_json)
            except (MissingAnalysisData, AnalysisParseError) as e:
                log.debug("Analysis still unparseable", error=str(e))
                await self._postpone(db, row.id, str(e), log)
                continue

            try:
                await self._upsert_analysis(db, row.tenant_id, row.id, parsed)
                await db.execute(
                    update(Call)
                    .where(Call.id == row.id)
                    .values(
                        analysis_status="completed",
                        analysis_error=None,
                        summary_title=row.summary_title or parsed.call_summary_title,
                        updated_at=datetime.utcnow(),
                    )
                )
                await refresh_rollups(db, row.tenant_id, [row.started_at])
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                log.error("Reprocessing failed", error=str(e))
                continue

            log.info("Analysis recovered")
            self._invalidate(row.tenant_id, row.agent_id, log)
            recovered += 1

        return recovered

    async def _postpone(self, db: AsyncSession, call_id: UUID, error: str, log) -> None:
        # Moves the call to the back of the retry queue
        try:
            await db.execute(
                update(Call)
                .where(Call.id == call_id)
                .values(analysis_error=error, updated_at=datetime.utcnow())
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            log.error("Could not postpone reprocessing", error=str(e))

    def _invalidate(self, tenant_id: UUID, agent_id: Optional[UUID], log) -> None:
        try:
            for metric in INGESTION_METRICS:
                self.cache.invalidate(tenant_id, metric)
            if agent_id is not None:
                self.cache.invalidate(tenant_id, AGENT_PERFORMANCE, agent_id)
        except Exception as e:
            log.error("Cache invalidation failed", error=str(e))


def get_ingestion_coordinator(cache: TenantCache = Depends(get_cache)) -> IngestionCoordinator:
    """FastAPI dependency"""
    return IngestionCoordinator(cache=cache)
