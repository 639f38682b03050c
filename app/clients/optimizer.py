"""Client for the external AI backend that tailors a CV and emails it."""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from app.core.config import OptimizerSettings
from app.schemas.application import OptimizationResult
from app.utils.http import RetryConfig, request_with_retry


class OptimizerError(Exception):
    """Raised when the optimization backend fails or returns an unusable payload."""


class OptimizerClient:
    """Submit a CV and job description to the optimization backend."""

    def __init__(
        self,
        settings: OptimizerSettings,
        *,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = str(settings.base_url).rstrip("/")
        self._timeout = settings.timeout_seconds
        self._retry = retry_config or RetryConfig(attempts=2, backoff_seconds=2.0)
        self._transport = transport

    async def optimize(
        self,
        *,
        user_id: str,
        user_email: str,
        cv_file_path: str,
        job_input: str,
    ) -> OptimizationResult:
        payload = {
            "user_id": user_id,
            "user_email": user_email,
            "cv_file_path": cv_file_path,
            "job_input": job_input,
        }
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await request_with_retry(
                    client.post,
                    f"{self._base_url}/api/optimize",
                    json=payload,
                    retry_config=self._retry,
                )
            except httpx.HTTPError as exc:
                raise OptimizerError(f"AI optimization failed: {exc}") from exc

        try:
            return OptimizationResult.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise OptimizerError("AI optimization returned an invalid payload.") from exc


__all__ = ["OptimizerClient", "OptimizerError"]
