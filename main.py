from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
from sqlalchemy.engine import make_url
from api.routes.analyze import router as analyze_router
from config import settings
from services.analysis_service import StanceAnalysisService
from services.cache_service import CandidateCacheStore
from services.claims_service import ClaimsService
from services.openai_service import OpenAIService
from services.search_service import SearchClient, build_tavily_client
from services.verification_service import StanceVerifier
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the API clients once, share them across requests, close them on shutdown."""
    llm = OpenAIService.from_api_key(settings.OPENAI_API_KEY)
    search = SearchClient(build_tavily_client(settings.TAVILY_API_KEY))
    cache = CandidateCacheStore.from_url(settings.DATABASE_URL)
    try:
        await cache.create_schema()
    except Exception as e:
        # The cache is optional; requests still work without it
        logger.error(f"Could not prepare candidate cache: {e}")

    app.state.analysis_service = StanceAnalysisService(
        claims=ClaimsService(llm),
        verifier=StanceVerifier(search),
        cache=cache,
    )
    cache_url = make_url(settings.DATABASE_URL).render_as_string(hide_password=True)
    logger.info(f"Search {'enabled' if search.enabled else 'disabled'}, cache at {cache_url}")
    try:
        yield
    finally:
        await llm.close()
        await cache.close()


app = FastAPI(
    title="CandidStance API",
    version="1.0.0",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    analyze_router,
    tags=["analysis"],
)


# Routes
@app.get("/")
async def root():
    return {"message": "CandidStance Backend API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


def run():
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True, env_file='.env')
