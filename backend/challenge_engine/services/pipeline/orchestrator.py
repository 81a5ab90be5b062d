"""
PCN Challenge Engine - Pipeline Orchestrator

Sequences the pipeline for one ticket:

    TicketFacts (SSOT #1) → ChallengeStrategy (SSOT #2) → LetterDraft (SSOT #3)
        → RenderedDocument + NotificationMessage (SSOT #4)

Owns every call to an external collaborator and every retry decision.
Components raise typed errors; this module alone decides retry vs terminal.
"""
from __future__ import annotations
import asyncio
import hashlib
import json
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Union

from ...errors import (
    ChallengePipelineError, ExtractionIncomplete, GenerationUnavailable, MalformedDraft,
    RenderFailed, AlreadyInProgress, GenerationTimeout, ChallengeGenerationFailed,
    TicketNotFound
)
from ...models.ssot import (
    TicketFacts, ChallengeContext, ChallengeStrategy, ChallengeResult, LetterDraft,
    Letterhead, merge_facts
)
from ..delivery import DeliveryComposer
from ..drafting import LetterDraftingEngine
from ..extraction import FactExtractor
from ..integrations.base import (
    TextGenerator, OCREngine, DocumentStorage, ChallengeRepository, EmailSender,
    TicketRecord, StoredLetter
)
from ..integrations.storage import challenge_letter_key
from ..renderer import DocumentRenderer
from ..strategy import StrategySelector, resolve_reason
from .guard import ActiveJobGuard
from .retry import RetryPolicy
from .state_machine import ChallengeJob, JobPhase

logger = logging.getLogger(__name__)


DEFAULT_JOB_TIMEOUT_SECONDS = 240.0


def facts_fingerprint(
    facts: TicketFacts,
    context: Optional[ChallengeContext],
    template_version: str,
) -> str:
    """Stable hash of everything that determines the letter content."""
    context = context or ChallengeContext()
    reason = resolve_reason(context.reason)
    payload = {
        "facts": facts.to_dict(),
        "source_text": facts.source_text,
        "context": {
            "user_context": context.user_context,
            "arrival_time": context.arrival_time.isoformat() if context.arrival_time else None,
            "vehicle_registration": context.vehicle_registration,
            "reason": reason.value if reason else None,
        },
        "template_version": template_version,
    }
    encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _result_from_stored(letter: StoredLetter, reused: bool) -> ChallengeResult:
    return ChallengeResult(
        ticket_id=letter.ticket_id,
        letter_id=letter.letter_id,
        letter_text=letter.body,
        document_ref=letter.document_ref,
        grounds=list(letter.grounds),
        attempts=letter.attempts,
        page_count=letter.page_count,
        generated_at=letter.generated_at,
        reused=reused,
    )


class ChallengeOrchestrator:
    """
    Run challenge-generation jobs.

    Input: ticket id (+ optional ChallengeContext)
    Output: ChallengeResult, or a ChallengePipelineError subclass

    One job per ticket at a time; a second request is rejected, not queued.
    """

    def __init__(
        self,
        repository: ChallengeRepository,
        storage: DocumentStorage,
        generator: TextGenerator,
        email_sender: Optional[EmailSender] = None,
        ocr: Optional[OCREngine] = None,
        retry_policy: Optional[RetryPolicy] = None,
        job_timeout: float = DEFAULT_JOB_TIMEOUT_SECONDS,
        extractor: Optional[FactExtractor] = None,
        selector: Optional[StrategySelector] = None,
        renderer: Optional[DocumentRenderer] = None,
        composer: Optional[DeliveryComposer] = None,
        guard: Optional[ActiveJobGuard] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.email_sender = email_sender
        self.ocr = ocr
        self.retry_policy = retry_policy or RetryPolicy()
        self.job_timeout = job_timeout
        self.extractor = extractor or FactExtractor()
        self.selector = selector or StrategySelector()
        self.drafter = LetterDraftingEngine(generator)
        self.renderer = renderer or DocumentRenderer()
        self.composer = composer or DeliveryComposer()
        self.guard = guard or ActiveJobGuard()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def challenge_ticket(
        self,
        ticket_id: str,
        context: Optional[ChallengeContext] = None,
        regenerate: bool = False,
    ) -> ChallengeResult:
        """
        Generate (or reuse) the challenge letter for a ticket.

        Raises:
            AlreadyInProgress: another job for this ticket is running
            TicketNotFound: no such ticket
            RenderFailed: rendering or upload failed
            GenerationTimeout: the job exceeded its time budget
            ChallengeGenerationFailed: retries exhausted or persistence failed
        """
        if not self.guard.try_acquire(ticket_id):
            logger.warning(f"Rejected challenge for ticket {ticket_id}: job already in progress")
            raise AlreadyInProgress(
                f"A challenge job for ticket {ticket_id} is already running",
                ticket_id=ticket_id,
            )

        job = ChallengeJob(ticket_id=ticket_id)
        try:
            result = await asyncio.wait_for(
                self._run(job, context, regenerate),
                timeout=self.job_timeout,
            )
        except asyncio.TimeoutError:
            await self._discard_pending_artifact(job)
            error = GenerationTimeout(
                f"Challenge job for ticket {ticket_id} exceeded {self.job_timeout}s",
                ticket_id=ticket_id,
            )
            raise self._terminal(job, error) from None
        except ChallengePipelineError as exc:
            raise self._terminal(job, exc)
        except Exception as exc:
            error = ChallengeGenerationFailed(
                f"Unexpected failure: {type(exc).__name__}: {exc}",
                ticket_id=ticket_id,
            )
            raise self._terminal(job, error) from exc
        else:
            # Completion side effect; runs outside the job budget
            if job.notification is not None:
                await self._notify(*job.notification)
            return result
        finally:
            self.guard.release(ticket_id)

    async def sweep(
        self,
        ticket_ids: List[str],
        regenerate: bool = False,
    ) -> Dict[str, Union[ChallengeResult, ChallengePipelineError]]:
        """Run several tickets concurrently; each outcome is reported, none raised."""
        unique_ids = list(dict.fromkeys(ticket_ids))
        outcomes = await asyncio.gather(
            *(self.challenge_ticket(tid, regenerate=regenerate) for tid in unique_ids),
            return_exceptions=True,
        )
        results: Dict[str, Union[ChallengeResult, ChallengePipelineError]] = {}
        for ticket_id, outcome in zip(unique_ids, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, ChallengePipelineError):
                raise outcome
            results[ticket_id] = outcome
        return results

    async def list_letters(self, ticket_id: str) -> List[StoredLetter]:
        record = await self.repository.load_ticket(ticket_id)
        if record is None:
            raise TicketNotFound(f"Ticket {ticket_id} not found", ticket_id=ticket_id)
        return await self.repository.list_letters(ticket_id)

    # =========================================================================
    # PIPELINE
    # =========================================================================

    async def _run(
        self,
        job: ChallengeJob,
        context: Optional[ChallengeContext],
        regenerate: bool,
    ) -> ChallengeResult:
        ticket_id = job.ticket_id
        logger.info(f"Starting challenge job for ticket {ticket_id} (regenerate={regenerate})")

        record = await self.repository.load_ticket(ticket_id)
        if record is None:
            raise TicketNotFound(f"Ticket {ticket_id} not found", ticket_id=ticket_id)
        context = self._effective_context(context, record)

        # Phase 1: facts
        facts = await self._extract_facts(record)
        job.advance(JobPhase.FACTS_EXTRACTED)
        missing = facts.missing_fields()
        if missing:
            incomplete = ExtractionIncomplete(missing, ticket_id=ticket_id)
            logger.warning(f"Ticket {ticket_id}: {incomplete.message}")

        # Phase 2: strategy
        strategy = self.selector.select(facts, context)
        job.advance(JobPhase.STRATEGY_SELECTED)

        fingerprint = facts_fingerprint(facts, context, self.renderer.template_version)
        if not regenerate:
            latest = await self.repository.latest_letter(ticket_id)
            if latest is not None and latest.facts_hash == fingerprint:
                job.advance(JobPhase.COMPLETED)
                logger.info(f"Ticket {ticket_id}: facts unchanged, reusing letter {latest.letter_id}")
                return _result_from_stored(latest, reused=True)

        # Phase 3: drafting (retryable)
        draft = await self._draft_with_retry(job, record, facts, strategy, context)
        job.advance(JobPhase.DRAFT_ACCEPTED)
        attempts = job.attempts_for(JobPhase.DRAFTING)

        # Phase 4: render, upload, persist
        job.advance(JobPhase.RENDERING)
        stored = await self._render_and_persist(job, record, facts, draft, fingerprint, attempts)

        job.advance(JobPhase.COMPLETED)
        logger.info(
            f"Challenge job for ticket {ticket_id} completed: letter {stored.letter_id}, "
            f"{stored.page_count} page(s), {attempts} attempt(s)"
        )

        job.notification = (record, facts, stored)
        return _result_from_stored(stored, reused=False)

    async def _extract_facts(self, record: TicketRecord) -> TicketFacts:
        source_text = record.extracted_text
        if not source_text and record.image_ref and self.ocr is not None:
            try:
                image = await self.storage.read(record.image_ref)
                source_text = await asyncio.to_thread(self.ocr.extract_text, image)
            except Exception as exc:
                logger.warning(
                    f"OCR failed for ticket {record.ticket_id} ({type(exc).__name__}: {exc}); "
                    "continuing with manual details"
                )
                source_text = None

        ocr_facts = self.extractor.extract(source_text)
        return merge_facts(record.manual_facts, ocr_facts)

    async def _draft_with_retry(
        self,
        job: ChallengeJob,
        record: TicketRecord,
        facts: TicketFacts,
        strategy: ChallengeStrategy,
        context: ChallengeContext,
    ) -> LetterDraft:
        job.advance(JobPhase.DRAFTING)

        async def attempt_draft(attempt_number: int) -> LetterDraft:
            job.record_attempt(JobPhase.DRAFTING)
            return await self.drafter.draft(
                ticket_id=record.ticket_id,
                facts=facts,
                strategy=strategy,
                sender=record.sender,
                context=context,
                attempt=attempt_number,
            )

        def on_retry(attempt_number: int, exc: BaseException, delay: float) -> None:
            job.last_error = f"{type(exc).__name__}: {exc}"
            job.advance(JobPhase.DRAFTING)

        try:
            return await self.retry_policy.run(attempt_draft, on_retry=on_retry)
        except (GenerationUnavailable, MalformedDraft) as exc:
            attempts = job.attempts_for(JobPhase.DRAFTING)
            raise ChallengeGenerationFailed(
                f"Letter drafting failed after {attempts} attempt(s): {exc.message}",
                ticket_id=record.ticket_id,
            ) from exc

    async def _render_and_persist(
        self,
        job: ChallengeJob,
        record: TicketRecord,
        facts: TicketFacts,
        draft: LetterDraft,
        fingerprint: str,
        attempts: int,
    ) -> StoredLetter:
        letterhead = Letterhead(
            sender_name=record.sender.full_name,
            sender_lines=tuple(record.sender.address.lines()),
            recipient_name=facts.issuer or "",
            letter_date=draft.generated_at.strftime("%d %B %Y"),
        )
        try:
            document = await asyncio.to_thread(self.renderer.render, draft.body, facts.pcn_number, letterhead)
        except RenderFailed:
            raise
        except Exception as exc:
            raise RenderFailed(f"Could not render letter: {exc}", ticket_id=record.ticket_id) from exc

        key = challenge_letter_key(record.user_id, record.ticket_id, draft.letter_id)
        try:
            document_ref = await self.storage.put(key, document.content, document.content_type)
        except Exception as exc:
            raise RenderFailed(f"Could not upload rendered letter: {exc}", ticket_id=record.ticket_id) from exc
        job.pending_artifact = document_ref
        job.pending_letter_id = draft.letter_id

        job.persist_started = True
        try:
            stored = await self.repository.record_challenge(
                ticket_id=record.ticket_id,
                draft=draft,
                document=document,
                document_ref=document_ref,
                facts_hash=fingerprint,
                attempts=attempts,
            )
        except Exception as exc:
            job.persist_started = False
            await self._discard_pending_artifact(job)
            raise ChallengeGenerationFailed(
                f"Could not persist challenge letter: {exc}",
                ticket_id=record.ticket_id,
            ) from exc

        job.pending_artifact = None
        return stored

    async def _notify(self, record: TicketRecord, facts: TicketFacts, stored: StoredLetter) -> None:
        if self.email_sender is None:
            logger.info(f"No email sender configured; skipping notification for ticket {record.ticket_id}")
            return
        message = self.composer.compose(
            document_ref=stored.document_ref,
            ticket_id=record.ticket_id,
            recipient_name=record.sender.full_name,
            pcn_number=facts.pcn_number or "",
            issuer=facts.issuer,
            recipient_email=record.recipient_email,
        )
        try:
            await self.email_sender.send(message)
        except Exception as exc:
            logger.warning(
                f"Notification for ticket {record.ticket_id} failed "
                f"({type(exc).__name__}: {exc}); letter is still completed"
            )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _effective_context(context: Optional[ChallengeContext], record: TicketRecord) -> ChallengeContext:
        context = context or ChallengeContext()
        if context.vehicle_registration is None and record.sender.vehicle_registration:
            context = replace(context, vehicle_registration=record.sender.vehicle_registration)
        return context

    async def _discard_pending_artifact(self, job: ChallengeJob) -> None:
        """Delete an uploaded document that no committed letter row points at."""
        ref = job.pending_artifact
        if ref is None:
            return
        try:
            if job.persist_started:
                # A cancelled write may still have committed in its worker thread
                latest = await self.repository.latest_letter(job.ticket_id)
                if latest is not None and latest.letter_id == job.pending_letter_id:
                    logger.warning(f"Letter {latest.letter_id} committed after job timeout; keeping {ref}")
                    return
            await self.storage.delete(ref)
            job.pending_artifact = None
        except Exception as exc:
            logger.error(f"Could not delete orphaned artifact {ref}: {type(exc).__name__}: {exc}")

    @staticmethod
    def _terminal(job: ChallengeJob, error: ChallengePipelineError) -> ChallengePipelineError:
        job.fail(error)
        error.ticket_id = error.ticket_id or job.ticket_id
        error.attempts = job.attempts_for(JobPhase.DRAFTING)
        error.job = job.snapshot()
        logger.error(
            f"Challenge job for ticket {job.ticket_id} failed: {error.kind} "
            f"after {error.attempts} drafting attempt(s): {error.message}"
        )
        return error
