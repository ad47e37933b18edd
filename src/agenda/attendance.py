"""Client for the live attendance feed.

The feed is a plain GET endpoint returning {"attendance": {sessionId: count}}.
It is best effort: every failure surfaces as FeedFetchError, after a short
tenacity retry within the same poll.
"""

import requests
from pydantic import BaseModel, ValidationError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.agenda.config import AgendaConfig
from src.agenda.errors import FeedFetchError, TransientError
from src.agenda.logging import get_logger

logger = get_logger(__name__)


class AttendancePayload(BaseModel):
    attendance: dict[str, float]


class AttendanceClient:
    def __init__(
        self,
        url: str,
        token: str,
        timeout_seconds: float = 10.0,
        max_attempts: int = 2,
        retry_wait_seconds: float = 1.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.token = token
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: AgendaConfig) -> "AttendanceClient":
        return cls(
            url=config.attendance_url,
            token=config.attendance_token,
            timeout_seconds=config.attendance_timeout_seconds,
            max_attempts=config.attendance_max_attempts,
            retry_wait_seconds=config.attendance_retry_wait_seconds,
        )

    def fetch_attendance(self) -> dict[str, float]:
        """Fetch current attendance per session id.

        Blocking; the tracker runs it in a worker thread.

        Raises:
            FeedFetchError: After the last attempt failed.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_wait_seconds),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        )
        return retrying(self._fetch_once)

    def _fetch_once(self) -> dict[str, float]:
        try:
            response = self._session.get(
                self.url,
                params={"token": self.token},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            logger.warning("attendance_request_failed", url=self.url, error=str(e))
            raise FeedFetchError(f"Attendance request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.warning(
                "attendance_bad_status", url=self.url, status=response.status_code
            )
            raise FeedFetchError(
                f"Attendance feed returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = AttendancePayload.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("attendance_malformed", url=self.url, error=str(e))
            raise FeedFetchError(f"Malformed attendance payload: {e}") from e

        logger.debug("attendance_fetched", sessions=len(payload.attendance))
        return payload.attendance
