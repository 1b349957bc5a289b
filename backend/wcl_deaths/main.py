from __future__ import annotations

from functools import lru_cache
import logging
import time
from typing import Union

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from wcl_deaths.analysis import DeathAnalyzer
from wcl_deaths.encounters import (
    EncounterCatalog,
    EncounterConfigError,
    EncounterNotFound,
    load_encounters,
)
from wcl_deaths.models import (
    AnalyzeResponse,
    EncountersResponse,
    GuildAnalyzeRequest,
    ReportsAnalyzeRequest,
)
from wcl_deaths.ranking import use_system_collation
from wcl_deaths.records import InvalidRecord
from wcl_deaths.settings import Settings, load_env
from wcl_deaths.wcl_client import WarcraftLogsClient, WCLAPIError, WCLConfigError

load_env()
use_system_collation()

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

app = FastAPI(title="WCL Deaths API", version="0.1.0")

settings = Settings.from_env()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache
def get_catalog() -> EncounterCatalog:
    return load_encounters(settings.encounter_config_path)


@lru_cache
def get_wcl_client() -> WarcraftLogsClient:
    return WarcraftLogsClient(
        client_id=settings.wcl_client_id,
        client_secret=settings.wcl_client_secret,
        token_url=settings.wcl_token_url,
        api_url=settings.wcl_api_url,
        timeout=settings.wcl_timeout,
        max_retries=settings.wcl_max_retries,
        use_cache=settings.wcl_use_cache,
        cache_dir=settings.wcl_cache_dir,
    )


def get_analyzer() -> DeathAnalyzer:
    return DeathAnalyzer(
        get_wcl_client(),
        get_catalog(),
        utc_offset_hours=settings.report_utc_offset_hours,
        early_window=settings.early_death_window,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> PlainTextResponse:
    messages = [str(error.get("msg", "")) for error in exc.errors()]
    return PlainTextResponse("Invalid request: " + "; ".join(messages), status_code=422)


@app.get("/api/encounters", response_model=EncountersResponse)
async def list_encounters():
    try:
        catalog = get_catalog()
    except EncounterConfigError as exc:
        logger.error(f"Encounter config unavailable: {exc}")
        return PlainTextResponse(str(exc), status_code=500)
    return EncountersResponse(encounters=catalog.infos())


@app.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze_deaths(body: Union[ReportsAnalyzeRequest, GuildAnalyzeRequest]):
    t0 = time.perf_counter()
    try:
        analyzer = get_analyzer()
        players = await run_in_threadpool(analyzer.analyze, body)
    except (EncounterNotFound, FileNotFoundError) as exc:
        return PlainTextResponse(str(exc), status_code=404)
    except InvalidRecord as exc:
        logger.warning(f"Rejected death batch: {exc}")
        return PlainTextResponse(f"Analysis failed: {exc}", status_code=422)
    except WCLAPIError as exc:
        logger.warning(f"Warcraft Logs request failed: {exc}")
        return PlainTextResponse(str(exc), status_code=502)
    except (WCLConfigError, EncounterConfigError) as exc:
        logger.error(f"Service misconfigured: {exc}")
        return PlainTextResponse(str(exc), status_code=500)
    logger.info(f"[TIMING] /api/analyze: {time.perf_counter() - t0:.2f}s")
    return AnalyzeResponse(players=[player.to_payload() for player in players])


@app.get("/api/health")
async def health_check() -> dict:
    return {
        "status": "healthy",
        "debug_mode": settings.debug_mode,
        "use_cache": settings.wcl_use_cache,
        "encounter_config": str(settings.encounter_config_path),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
