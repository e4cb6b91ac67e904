# main.py
import logging

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from evote import __version__, config
from evote.database import get_db
from evote.routes.admin_routes import protected as admin_protected_router
from evote.routes.admin_routes import router as admin_router
from evote.routes.election_routes import router as election_router
from evote.routes.vote_routes import vote_router
from evote.routes.voter_routes import router as voter_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="E-Voting API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(voter_router)
app.include_router(vote_router)
app.include_router(election_router)
app.include_router(admin_router)
app.include_router(admin_protected_router)


@app.get("/health", tags=["Root"])
def health_check():
    try:
        get_db().client.admin.command("ping")
        database = "up"
    except Exception as e:
        logger.error(f"Health check could not reach MongoDB: {e}")
        database = "down"
    return {"status": "healthy" if database == "up" else "degraded", "database": database}


@app.get("/", tags=["Root"])
def read_root():
    return {"message": "Welcome to the E-Voting API"}


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)
