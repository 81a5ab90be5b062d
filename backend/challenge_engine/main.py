"""
PCN Challenge Engine - FastAPI Application

Main entry point for the challenge-letter generation service.

Architecture:
- Ticket text / manual entry → FactExtractor → TicketFacts (SSOT #1)
- TicketFacts → StrategySelector → ChallengeStrategy (SSOT #2)
- ChallengeStrategy → LetterDraftingEngine → LetterDraft (SSOT #3)
- LetterDraft → DocumentRenderer + DeliveryComposer → PDF + email (SSOT #4)
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import challenges_router
from .database import init_db
from .services.pipeline import build_orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and wire the orchestrator on startup."""
    init_db()
    app.state.orchestrator = build_orchestrator()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="PCN Challenge Engine",
    description="""
    PCN Challenge Engine - Parking Ticket Challenge Letter Generation

    Turns a UK Penalty Charge Notice into a formally-toned challenge letter,
    rendered as an A4 PDF and emailed to the vehicle owner.

    ## Pipeline
    1. **Fact Extractor**: ticket text → TicketFacts (SSOT #1)
    2. **Strategy Selector**: TicketFacts → ChallengeStrategy (SSOT #2)
    3. **Drafting Engine**: ChallengeStrategy → LetterDraft (SSOT #3)
    4. **Renderer / Delivery**: LetterDraft → PDF + notification (SSOT #4)

    ## Key Principles
    - Each SSOT is immutable once created
    - Grounds are chosen deterministically (no LLMs); only the prose is generated
    - One in-flight job per ticket
    - Only the orchestrator retries
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(challenges_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}
