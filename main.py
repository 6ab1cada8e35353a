from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass

import httpx
from fastapi import FastAPI, HTTPException, status

from blizbase.api_models import JobStatusOut, TriggerResponse
from blizbase.battlenet import BattleNetClient
from blizbase.db import CharacterStore
from blizbase.docker_ops import DockerRuntime
from blizbase.logging import get_logger, setup_logging
from blizbase.models import ImageRef
from blizbase.ratelimit import TokenBucket, build_http_client
from blizbase.reconciler import RosterReconciler
from blizbase.registry import RegistryClient
from blizbase.retry import RetryPolicy
from blizbase.scheduler import Scheduler
from blizbase.selfupdate import SelfUpdater
from blizbase.settings import Settings, settings

log = get_logger("blizbase.main")

ROSTER_JOB = "roster"
SELF_UPDATE_JOB = "self-update"


@dataclass
class Components:
    store: CharacterStore
    scheduler: Scheduler
    http: httpx.Client | None = None


def build_components(cfg: Settings) -> Components:
    """Wire the real clients. One rate-limited HTTP client is shared by both jobs."""
    store = CharacterStore(cfg.db_path)
    store.init_db()

    limiter = TokenBucket(cfg.rate_permits, cfg.rate_period_s, burst=cfg.rate_burst)
    http = build_http_client(limiter, timeout_s=cfg.http_timeout_s)

    roster = RosterReconciler(
        source=BattleNetClient(http, cfg.client_id, cfg.client_secret, region=cfg.region, locale=cfg.locale),
        store=store,
        guild_slug=cfg.guild_slug,
        realm_slug=cfg.realm_slug,
        retry_policy=RetryPolicy(max_attempts=cfg.retry_attempts, backoff_unit_s=cfg.retry_backoff_s),
        fetch_workers=cfg.fetch_workers,
    )

    scheduler = Scheduler()
    scheduler.add(ROSTER_JOB, cfg.roster_interval_s, roster.reconcile)

    if cfg.self_update:
        updater = SelfUpdater(
            registry=RegistryClient(http, timeout_s=cfg.http_timeout_s),
            runtime=DockerRuntime(cfg.docker_socket, timeout_s=cfg.docker_timeout_s),
            image=ImageRef.parse(cfg.image),
            deadline_s=cfg.update_deadline_s,
            restart_grace_s=cfg.restart_grace_s,
        )
        scheduler.add(SELF_UPDATE_JOB, cfg.update_interval_s, updater.check_and_apply)

    return Components(store=store, scheduler=scheduler, http=http)


def create_app(components: Components | None = None, start_scheduler: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if components is None:
            setup_logging(settings)
        comps = components or build_components(settings)
        app.state.components = comps
        if start_scheduler:
            comps.scheduler.start()
            if comps.store.count() == 0:
                log.info("store_empty_initial_sync")
                comps.scheduler.trigger(ROSTER_JOB)
        try:
            yield
        finally:
            comps.scheduler.stop()
            if comps.http is not None:
                comps.http.close()

    app = FastAPI(title="Blizbase", lifespan=lifespan)

    def _components() -> Components:
        return app.state.components

    @app.get("/health")
    def health() -> dict:
        return {"status": "healthy"}

    @app.get("/characters")
    def list_characters() -> list[dict]:
        return [r.to_dict() for r in _components().store.list_all()]

    @app.get("/characters/{character_id}")
    def get_character(character_id: str) -> dict:
        record = _components().store.get(character_id)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Character not found")
        return record.to_dict()

    @app.get("/jobs", response_model=list[JobStatusOut])
    def list_jobs() -> list[JobStatusOut]:
        return [JobStatusOut(**asdict(j)) for j in _components().scheduler.runtime.list_jobs()]

    @app.post("/jobs/{name}/run", response_model=TriggerResponse, status_code=status.HTTP_202_ACCEPTED)
    def run_job(name: str) -> TriggerResponse:
        scheduler = _components().scheduler
        if name not in scheduler.job_names:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown job '{name}'")
        if not scheduler.trigger(name):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Job '{name}' is already running")
        return TriggerResponse(job=name, started=True)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
