from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.actors import ActorResolver
from app.services.audit import AuditFailureReporter, AuditTrailRecorder, RequestMeta
from app.services.display_codes import DisplayCodeAllocator
from app.services.document_verification import DocumentVerificationLedger
from app.services.loan_applications import LoanApplicationService
from app.services.loan_workflow import StatusTransitionEngine
from app.services.review_stages import ReviewStageService
from app.services.timeline import TimelineProjector
from app.utils.clock import Clock, utcnow


@dataclass
class Workflow:
    actors: ActorResolver
    audit: AuditTrailRecorder
    engine: StatusTransitionEngine
    ledger: DocumentVerificationLedger
    review_stages: ReviewStageService
    timeline: TimelineProjector
    applications: LoanApplicationService


def build_workflow(
    db: AsyncSession,
    *,
    clock: Clock = utcnow,
    request_meta: RequestMeta | None = None,
    reporter: AuditFailureReporter | None = None,
    allocator: DisplayCodeAllocator | None = None,
) -> Workflow:
    """Wire one request's worth of workflow services around a single session."""
    actors = ActorResolver(db)
    audit = AuditTrailRecorder(
        db, actors, clock=clock, reporter=reporter, request_meta=request_meta
    )
    engine = StatusTransitionEngine(db, actors, audit, clock=clock)
    ledger = DocumentVerificationLedger(db, actors, audit, engine, clock=clock)
    # The engine bootstraps the ledger on entering KYC/KYB while the ledger
    # drives the engine on completion, so the link is closed after both exist.
    engine.verification_bootstrap = ledger.bootstrap
    return Workflow(
        actors=actors,
        audit=audit,
        engine=engine,
        ledger=ledger,
        review_stages=ReviewStageService(db, actors, audit, engine, clock=clock),
        timeline=TimelineProjector(db),
        applications=LoanApplicationService(
            db,
            actors,
            audit,
            allocator or DisplayCodeAllocator(db),
            clock=clock,
            verification_bootstrap=ledger.bootstrap,
        ),
    )
