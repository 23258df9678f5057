"""FastAPI app exposing the TabPulse scheduler, signal ingestion and alerts."""

from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError, field_validator

from tabpulse.api.services.health import format_duration, now_ms
from tabpulse.api.services.host import InMemoryTabHost, UnknownTabError
from tabpulse.api.services.keep_alive import KeepAliveRegistry
from tabpulse.api.services.policy import PolicyStore
from tabpulse.api.services.responses import ResponseHandler
from tabpulse.api.services.scheduler import Scheduler
from tabpulse.api.services.signals import SignalIngestor, SignalType
from tabpulse.api.services.storage import StoreUnavailableError, create_storage
from tabpulse.api.services.tab_state import TabStateStore
from tabpulse.config import AppConfig, load_app_config
from tabpulse.model.models import TabInfo
from tabpulse.ui.notifications import NotificationConfig, NotificationService
from tabpulse.watchers.logger import logger

# FastAPIアプリケーションのインスタンスを作成
app = FastAPI(
    title="TabPulse",
    description="Idle tab suspension scheduler",
)


@dataclass
class Services:
    config: AppConfig
    tab_states: TabStateStore
    keep_alive: KeepAliveRegistry
    policy_store: PolicyStore
    host: InMemoryTabHost
    alerts: NotificationService
    scheduler: Scheduler
    responses: ResponseHandler
    signals: SignalIngestor


def create_services(
    config: AppConfig, clock: Callable[[], int] = now_ms
) -> Services:
    """設定からストア・スケジューラ・ハンドラを組み立てる."""
    storage = create_storage(config.storage_path)
    tab_states = TabStateStore(storage)
    keep_alive = KeepAliveRegistry(storage)
    policy_store = PolicyStore(storage)
    host = InMemoryTabHost()
    alerts = NotificationService(NotificationConfig(icon_path=config.icon_path))
    scheduler = Scheduler(tab_states, keep_alive, policy_store, host, alerts, clock)
    responses = ResponseHandler(
        scheduler, tab_states, keep_alive, policy_store, host, alerts, clock
    )
    signals = SignalIngestor(tab_states, responses, host, alerts, clock)
    return Services(
        config,
        tab_states,
        keep_alive,
        policy_store,
        host,
        alerts,
        scheduler,
        responses,
        signals,
    )


# グローバルな状態管理
STATE: dict[str, Any] = {
    "services": None,
    "logs": deque(maxlen=100),  # ログを保存 (最大100件)
}

# --- ロギング ---


def log_message(message: str) -> None:
    """ロガーに出力し、ログキューにも追加する."""
    logger.info(message)
    STATE["logs"].append(message)


def get_services() -> Services:
    services: Services | None = STATE["services"]
    if services is None:
        raise HTTPException(status_code=503, detail="TabPulse is not initialized")
    return services


# --- Pydanticモデル定義 ---


class TabReport(BaseModel):
    """ホスト環境から報告されるタブ情報."""

    id: int
    url: str | None = None
    title: str | None = ""
    window_id: int = 1
    active: bool = False
    pinned: bool = False
    audible: bool = False
    discarded: bool = False
    status: str = "complete"

    @field_validator("id")
    @classmethod
    def id_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            msg = "tab id must be positive"
            raise ValueError(msg)
        return v

    def to_tab(self) -> TabInfo:
        data = self.model_dump()
        data["title"] = data["title"] or ""
        return TabInfo(**data)


class SignalRequest(BaseModel):
    """アクティビティシグナル（payload は形式不正でも拒否しない）."""

    type: SignalType
    payload: Any = None


class AlertResponse(BaseModel):
    button_index: int


# --- 例外ハンドラ ---


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(
    _request: Request, exc: StoreUnavailableError
) -> JSONResponse:
    log_message(f"Store unavailable: {exc}")
    return JSONResponse(status_code=503, content={"detail": "store unavailable"})


@app.exception_handler(UnknownTabError)
async def unknown_tab_handler(_request: Request, exc: UnknownTabError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# --- アプリケーションのライフサイクルイベント ---


# Deprecated on_event usage is temporarily retained for simplicity.
@app.on_event("startup")  # pyright: ignore[reportDeprecated]
async def startup_event() -> None:
    """起動時にサービスを組み立て、スケジューラを開始."""
    if STATE["services"] is None:
        STATE["services"] = create_services(load_app_config())
    services: Services = STATE["services"]
    await services.tab_states.reset()
    if services.config.autostart:
        services.scheduler.start()
    log_message(f"Scheduler running: {services.scheduler.running}")


@app.on_event("shutdown")  # pyright: ignore[reportDeprecated]
async def shutdown_event() -> None:
    services: Services | None = STATE["services"]
    if services is not None:
        await services.scheduler.stop()


# --- APIエンドポイント定義 ---


@app.get("/status")
async def get_current_status() -> dict[str, Any]:
    """現在のシステム状態を取得する."""
    services = get_services()
    policy = await services.policy_store.get()
    report = services.scheduler.last_report
    return {
        "enabled": policy.enabled,
        "running": services.scheduler.running,
        "keep_alive_label": format_duration(policy.keep_alive_minutes),
        "at_risk": await services.tab_states.at_risk(),
        "last_tick": report.to_dict() if report else None,
    }


@app.get("/settings")
async def get_settings() -> dict[str, Any]:
    return (await get_services().policy_store.get()).model_dump(mode="json")


@app.patch("/settings")
async def update_settings(patch: dict[str, Any]) -> dict[str, Any]:
    """設定を部分更新する（camelCase / snake_case どちらも可）."""
    try:
        policy = await get_services().policy_store.update(patch)
    except ValidationError as e:
        raise HTTPException(
            status_code=422, detail=e.errors(include_url=False, include_context=False)
        ) from e
    log_message(f"Settings updated: {sorted(patch)}")
    return policy.model_dump(mode="json")


@app.post("/settings/toggle")
async def toggle_enabled() -> dict[str, Any]:
    policy = await get_services().policy_store.toggle_enabled()
    log_message(f"TabPulse {'enabled' if policy.enabled else 'disabled'}")
    return {"ok": True, "enabled": policy.enabled}


@app.post("/tabs")
async def tab_created(report: TabReport) -> dict[str, Any]:
    tab = await get_services().signals.tab_created(report.to_tab())
    return {"ok": True, "tab": asdict(tab)}


@app.put("/tabs/{tab_id}")
async def tab_updated(tab_id: int, report: TabReport) -> dict[str, Any]:
    if report.id != tab_id:
        raise HTTPException(status_code=400, detail="tab id mismatch")
    tab = get_services().signals.tab_updated(report.to_tab())
    return {"ok": True, "tab": asdict(tab)}


@app.delete("/tabs/{tab_id}")
async def tab_removed(tab_id: int) -> dict[str, Any]:
    known = await get_services().signals.tab_removed(tab_id)
    return {"ok": True, "known": known}


@app.post("/tabs/{tab_id}/activate")
async def tab_activated(tab_id: int) -> dict[str, Any]:
    tab = await get_services().signals.tab_activated(tab_id)
    return {"ok": True, "tab": asdict(tab)}


@app.post("/windows/{window_id}/focus")
async def window_focused(window_id: int) -> dict[str, Any]:
    tab = await get_services().signals.window_focused(window_id)
    return {"ok": True, "tab_id": tab.id if tab else None}


@app.get("/tabs/at-risk")
async def get_at_risk_tabs() -> dict[str, Any]:
    """警告中（warned_at が設定済み）のタブ一覧."""
    return {"at_risk_tabs": await get_services().signals.at_risk_tabs()}


@app.get("/tabs/{tab_id}")
async def get_tab(tab_id: int) -> dict[str, Any]:
    info = await get_services().signals.describe(tab_id)
    tab = info["tab"]
    return {
        "tab": asdict(tab) if tab else None,
        "state": asdict(info["state"]),
    }


@app.post("/tabs/{tab_id}/signals")
async def ingest_signal(tab_id: int, req: SignalRequest) -> dict[str, Any]:
    """監視中のドキュメントからのシグナルを取り込む."""
    result = await get_services().signals.record(tab_id, req.type, req.payload)
    return {"ok": True, **result}


@app.post("/tabs/{tab_id}/keep-alive")
async def keep_alive(tab_id: int) -> dict[str, Any]:
    """クイックトグルからの Keep Alive."""
    expires_at = await get_services().responses.keep_alive_tab(tab_id)
    log_message(f"Keep alive requested for tab {tab_id}")
    return {"ok": True, "expires_at": expires_at}


@app.get("/alerts")
async def list_alerts() -> dict[str, Any]:
    return {"alerts": [a.to_dict() for a in get_services().alerts.outstanding()]}


@app.post("/alerts/{alert_id}/response")
async def alert_response(alert_id: str, req: AlertResponse) -> dict[str, Any]:
    """通知ボタン（0: Keep Alive, 1: Suspend Now）の応答を処理."""
    handled = await get_services().responses.handle_alert_response(
        alert_id, req.button_index
    )
    log_message(f"Alert {alert_id} button {req.button_index}: handled={handled}")
    return {"ok": True, "handled": handled}


@app.post("/scheduler/tick")
async def run_tick() -> dict[str, Any]:
    """手動で1回分のティックを実行（実行中ならスキップ）."""
    report = await get_services().scheduler.tick()
    return report.to_dict()


# --- モニタリング用エンドポイント ---


@app.get("/api/monitoring_data")
async def get_monitoring_data() -> dict[str, Any]:
    """モニタリングUIに最新データを提供する."""
    services = get_services()
    report = services.scheduler.last_report
    return {
        "last_tick": report.to_dict() if report else None,
        "alerts": [a.to_dict() for a in services.alerts.outstanding()],
        "alert_history": services.alerts.get_notification_history(),
        "at_risk": await services.tab_states.at_risk(),
        "logs": list(STATE["logs"]),
    }


def run() -> None:
    import uvicorn

    config = load_app_config()
    STATE["services"] = create_services(config)
    uvicorn.run(app, host=config.host, port=config.port)
