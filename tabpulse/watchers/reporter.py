"""Activity reporter client: forwards observed tab signals to the API."""

from typing import Any

import requests

from tabpulse.watchers.logger import logger

# HTTP status codes
HTTP_OK = 200
DEFAULT_API_URL = "http://localhost:5588"


class ActivityReporter:
    """Thin client used by a monitored document's bridge to push signals."""

    def __init__(self, api_url: str = DEFAULT_API_URL, timeout: float = 3.0) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def send_signal(
        self, tab_id: int, signal: str, payload: dict[str, Any] | None = None
    ) -> bool:
        """シグナルをAPIに送信.

        Returns:
            bool: 送信成功時True（通信エラーは記録して False）

        """
        body: dict[str, Any] = {"type": signal}
        if payload is not None:
            body["payload"] = payload
        try:
            response = requests.post(
                f"{self.api_url}/tabs/{tab_id}/signals",
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Could not send {signal} for tab {tab_id}: {e}")
            return False

        status_code = int(getattr(response, "status_code", 0))
        return status_code == HTTP_OK

    def user_input(self, tab_id: int) -> bool:
        return self.send_signal(tab_id, "user-input")

    def network_activity(self, tab_id: int) -> bool:
        return self.send_signal(tab_id, "network-activity")

    def media_playing(self, tab_id: int, *, playing: bool) -> bool:
        return self.send_signal(tab_id, "media-playing", {"playing": playing})

    def socket_active(self, tab_id: int, *, active: bool) -> bool:
        return self.send_signal(tab_id, "socket-active", {"active": active})

    def heuristic_sample(self, tab_id: int, jank_ms: float, raf_fps: float) -> bool:
        return self.send_signal(
            tab_id, "heuristic-sample", {"jankMs": jank_ms, "rafFps": raf_fps}
        )

    def keep_alive(self, tab_id: int) -> bool:
        return self.send_signal(tab_id, "keep-alive-request")

    def check_api_availability(self) -> bool:
        """APIの可用性をチェック."""
        try:
            response = requests.get(f"{self.api_url}/status", timeout=self.timeout)
        except requests.RequestException:
            return False
        status_code = int(getattr(response, "status_code", 0))
        return status_code == HTTP_OK

    def at_risk_tabs(self) -> list[int]:
        response = requests.get(f"{self.api_url}/tabs/at-risk", timeout=self.timeout)
        if response.status_code != HTTP_OK:
            return []
        data: dict[str, Any] = response.json()
        return [int(t["id"]) for t in data.get("at_risk_tabs", [])]
