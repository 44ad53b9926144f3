"""
FastAPI Interface
RESTful API for the MFDS catalog matching agent
"""

import time

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .agent import CatalogMatchingAgent
from .config import settings
from .models import InvalidInputError, MatchingOutput, MatchRequest


# Create FastAPI app
app = FastAPI(
    title="MFDS Catalog Matching API",
    description="API for matching product labels to the MFDS drug catalog and counting generics",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global agent instance, used when a request carries no options
agent = None


def get_agent() -> CatalogMatchingAgent:
    """Get or create agent instance"""
    global agent
    if agent is None:
        agent = CatalogMatchingAgent()
    return agent


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    current = get_agent()
    return {
        "status": "healthy",
        "max_workers": current.max_workers,
        "timestamp": time.time()
    }


@app.get("/options/defaults")
async def default_options():
    """Processing options applied when a request leaves them out"""
    return settings.default_options().model_dump(mode="json")


@app.post("/match", response_model=MatchingOutput)
def match(request: MatchRequest):
    """Match in-memory source rows against an in-memory catalog"""
    current = get_agent()
    if request.options is not None:
        current = CatalogMatchingAgent(options=request.options, max_workers=current.max_workers)

    try:
        output = current.run(request.catalog, request.sources, request.mappings)
    except InvalidInputError as e:
        logger.warning(f"Rejected match request: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    return output


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error: {str(exc)}"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mfds_matcher.api:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD
    )
