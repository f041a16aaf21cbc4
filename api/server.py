"""
Модуль: HTTP API NFT Staking Rewards Engine
Описание: FastAPI приложение: запуск цикла, приём стейков, gamble, данные кошелька и гранты
Зависимости: fastapi, uvicorn
Автор: NFT Staking Rewards Team
"""

import random
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.schemas import StakeRequest, GambleRequest, GrantCreateRequest
from api.security import ApiAuth, ensure_same_wallet
from blockchain.ownership_verifier import OwnershipVerifier
from blockchain.sui_client import SuiRpcClient
from config.constants import ENGINE_NAME, ENGINE_VERSION
from core.dashboard import WalletDashboard
from core.errors import PersistenceError, StakingError
from core.stake_intake import StakeIntake
from core.staking_manager import StakingManager
from db.database import DatabaseManager
from utils.converters import TimeConverter
from utils.logger import get_logger
from utils.retry import retry_counter
from utils.validators import validate_wallet

logger = get_logger("ApiServer")


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
    )


def build_verifier(settings) -> OwnershipVerifier:
    """Проверка владения через настроенный Sui fullnode"""
    client = SuiRpcClient(
        rpc_url=settings.sui_rpc_url,
        timeout=settings.rpc_timeout_seconds,
        max_attempts=settings.retry_attempts,
        retry_delay_base=settings.retry_delay_base,
    )
    return OwnershipVerifier(client, settings.marketplace_addresses, settings.ownership_check_workers)


def build_manager(settings, db_manager, verifier=None, rng: Optional[random.Random] = None) -> StakingManager:
    return StakingManager(
        db_manager,
        verifier or build_verifier(settings),
        forfeit_on_unknown=settings.forfeit_on_unknown_ownership,
        ownership_timeout=settings.ownership_item_timeout(),
        rng=rng,
    )


def create_app(settings,
               db_manager: Optional[DatabaseManager] = None,
               verifier: Optional[OwnershipVerifier] = None,
               profile_resolver=None,
               rng: Optional[random.Random] = None) -> FastAPI:
    """
    Создание FastAPI приложения.

    Все зависимости можно передать явно; недостающие создаются из настроек.
    """
    if db_manager is None:
        db_manager = DatabaseManager(settings.database_url, settings.debug_sql).initialize()

    manager = build_manager(settings, db_manager, verifier, rng)
    intake = StakeIntake(db_manager, profile_resolver)
    dashboard = WalletDashboard(db_manager)
    auth = ApiAuth(settings)

    app = FastAPI(
        title=f"{ENGINE_NAME} API",
        description="Начисление наград, вестинг реферальных когорт и gamble",
        version=ENGINE_VERSION,
    )
    app.state.settings = settings
    app.state.db_manager = db_manager
    app.state.manager = manager

    @app.exception_handler(StakingError)
    async def staking_error_handler(request: Request, exc: StakingError):
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path}: {exc.code}: {exc.message}")
        else:
            logger.info(f"⚠️ {request.method} {request.url.path}: {exc.code}: {exc.message}")
        return _error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
            for error in exc.errors()
        )
        return _error_response(400, "invalid_request", details or "Invalid request body")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"❌ Unhandled error on {request.url.path}: {type(exc).__name__}: {exc}")
        return _error_response(500, "internal_error", "Internal server error")

    cycle_auth = Depends(auth.cycle_dependency())
    stake_auth = Depends(auth.stake_dependency())
    admin_auth = Depends(auth.admin_dependency())
    session_wallet = auth.wallet_dependency()

    @app.get("/health")
    def health():
        storage_ok = db_manager.health_check()
        client = getattr(manager.verifier, "client", None)
        usage = client.get_usage_stats() if hasattr(client, "get_usage_stats") else None
        return {
            "success": storage_ok,
            "status": "ok" if storage_ok else "degraded",
            "storage": storage_ok,
            "engine": manager.get_status(),
            "rpc": usage,
            "retries": retry_counter.get_stats(),
        }

    @app.post("/cycle", dependencies=[cycle_auth])
    def run_cycle():
        """Один цикл начисления (cron каждые 10 минут)"""
        if not db_manager.health_check():
            raise PersistenceError("Storage is unavailable")
        report = manager.run_cycle()
        return {
            "success": True,
            "processed_stakes": report.processed_stakes,
            "processed_grants": report.processed_grants,
            "report": report.to_dict(),
        }

    @app.post("/stake", dependencies=[stake_auth])
    def open_stake(body: StakeRequest):
        """Приём нового стейка после проверки на стороне кошелька"""
        stake = intake.open_stake(
            wallet=body.wallet,
            asset_id=body.asset_id,
            tier=body.tier,
            duration_days=body.duration_days,
            duration_months=body.duration_months,
            referral_code=body.referral_code,
            verification_code=body.verification_code,
        )
        return {"success": True, "message": "NFT staked successfully", "stake": stake}

    @app.post("/gamble")
    def play_gamble(body: GambleRequest, caller: str = Depends(session_wallet)):
        """Однократный gamble для своей когорты в вестинге"""
        ensure_same_wallet(caller, body.wallet)
        outcome = manager.gamble.play(body.group_id, caller)
        return {"success": True, **outcome}

    @app.get("/rewards/{wallet}")
    def get_rewards(wallet: str, caller: str = Depends(session_wallet)):
        ensure_same_wallet(caller, wallet)
        return {"success": True, "rewards": manager.accrual.get_balance(validate_wallet(wallet))}

    @app.get("/grants/{wallet}")
    def get_grants(wallet: str, caller: str = Depends(session_wallet)):
        ensure_same_wallet(caller, wallet)
        return {"success": True, "grants": manager.grants.list_active_grants(wallet)}

    @app.get("/dashboard/{wallet}")
    def get_dashboard(wallet: str, caller: str = Depends(session_wallet)):
        ensure_same_wallet(caller, wallet)
        return {"success": True, **dashboard.get_wallet_summary(wallet)}

    @app.post("/admin/grants", dependencies=[admin_auth])
    def create_grant(body: GrantCreateRequest):
        grant = manager.grants.create_grant(
            wallet=body.wallet,
            tier=body.tier,
            start_time=TimeConverter.to_naive_utc(body.start_time) if body.start_time else None,
            end_time=TimeConverter.to_naive_utc(body.end_time) if body.end_time else None,
            notes=body.notes,
        )
        return {"success": True, "grant": grant}

    @app.post("/admin/grants/{grant_id}/deactivate", dependencies=[admin_auth])
    def deactivate_grant(grant_id: int):
        return {"success": True, "grant": manager.grants.deactivate_grant(grant_id)}

    logger.info(f"🌐 API application created: {ENGINE_NAME} v{ENGINE_VERSION}")
    return app
