"""
PCN Challenge Engine - Orchestrator Wiring

Builds a ChallengeOrchestrator from environment configuration.
"""
import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from ... import config
from ...database import SessionLocal
from ..integrations.email import SendGridEmailSender
from ..integrations.groq_client import GroqTextGenerator
from ..integrations.ocr import TesseractOCR
from ..integrations.repository import SqlChallengeRepository
from ..integrations.storage import LocalFileStorage
from .orchestrator import ChallengeOrchestrator
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


def build_orchestrator(session_factory: Optional[sessionmaker] = None) -> ChallengeOrchestrator:
    """Wire the production collaborators."""
    storage = LocalFileStorage(config.STORAGE_DIR)

    email_sender = None
    if config.SENDGRID_API_KEY:
        email_sender = SendGridEmailSender(
            api_key=config.SENDGRID_API_KEY,
            from_email=config.SENDGRID_FROM_EMAIL,
            storage=storage,
        )
    else:
        logger.warning("SENDGRID_API_KEY not set; challenge letters will not be emailed")

    if not config.GROQ_API_KEY:
        logger.warning("GROQ_API_KEY not set; letter drafting will fail until it is configured")

    return ChallengeOrchestrator(
        repository=SqlChallengeRepository(session_factory or SessionLocal),
        storage=storage,
        generator=GroqTextGenerator(
            api_key=config.GROQ_API_KEY,
            model=config.GROQ_MODEL,
            timeout=config.GENERATION_TIMEOUT_SECONDS,
        ),
        email_sender=email_sender,
        ocr=TesseractOCR(),
        retry_policy=RetryPolicy(
            max_attempts=config.CHALLENGE_MAX_ATTEMPTS,
            base_delay=config.CHALLENGE_BACKOFF_SECONDS,
            max_delay=config.CHALLENGE_BACKOFF_MAX_SECONDS,
        ),
        job_timeout=config.CHALLENGE_JOB_TIMEOUT_SECONDS,
    )
