from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the bin telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def push_telemetry(
        self,
        bin_id: str,
        distance_cm: Optional[float] = None,
        trash_level: Optional[float] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if distance_cm is not None:
            payload["distance(cm)"] = distance_cm
        if trash_level is not None:
            payload["trashLevel"] = trash_level
        if not payload:
            raise typer.BadParameter("Provide --distance or --level.")
        return self._request("POST", f"/bins/{bin_id}/telemetry", json=payload)

    def get_level(self, bin_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/bins/{bin_id}/level", missing=f"Bin {bin_id} has no level yet.")

    def start_emptying(self, bin_id: str, user_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/bins/{bin_id}/emptying", json={"user_id": user_id})

    def get_emptying(self, bin_id: str) -> Dict[str, Any]:
        return self._request(
            "GET", f"/bins/{bin_id}/emptying", missing=f"No emptying session for bin {bin_id}."
        )

    def poll_emptying(self, bin_id: str, interval: float, timeout: float) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        last_payload: Dict[str, Any] | None = None
        while time.monotonic() <= deadline:
            last_payload = self.get_emptying(bin_id)
            if last_payload.get("state") != "awaiting_confirmation":
                return last_payload
            time.sleep(interval)
        typer.secho(
            f"Timed out waiting for emptying confirmation of {bin_id}.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    def volume_by_bin(self, window: str) -> Dict[str, Any]:
        return self._request("GET", "/analytics/bins", params={"window": window})

    def leaderboard(self, window: str) -> Dict[str, Any]:
        return self._request("GET", "/analytics/leaderboard", params={"window": window})

    def user_stats(self, user_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/analytics/users/{user_id}")

    def _request(
        self,
        method: str,
        path: str,
        missing: Optional[str] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            if missing is not None and response.status_code == 404:
                raise typer.BadParameter(missing)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
