"""Tunables of the notification engine."""

from dataclasses import dataclass, field
from datetime import timedelta

from slot_alerts.config import Settings, settings

# Push transport codes that mean the target will never accept a delivery again
PERMANENT_ERROR_CODES = frozenset({401, 404, 410})

# Push transport codes worth retrying; unknown codes are retried too
RETRYABLE_ERROR_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class EngineConfig:
    """Engine configuration, built from settings or passed explicitly in tests."""

    reference_timezone: str = "Asia/Jerusalem"
    queue_batch_size: int = 10
    retry_sweep_limit: int = 50
    send_timeout_seconds: float = 10.0
    max_retries: int = 3
    backoff_seconds: tuple[int, ...] = (60, 300, 900)
    max_consecutive_failures: int = 5
    dedupe_window: timedelta = timedelta(hours=24)
    retention: timedelta = timedelta(days=7)
    failed_reset_window: timedelta = timedelta(hours=24)
    default_cooldown_hours: float = 4
    base_url: str = "http://localhost:3000"
    booking_base_url: str = "https://mytor.co.il/home.php"
    permanent_error_codes: frozenset[int] = field(default=PERMANENT_ERROR_CODES)
    retryable_error_codes: frozenset[int] = field(default=RETRYABLE_ERROR_CODES)

    def __post_init__(self) -> None:
        if not self.backoff_seconds:
            raise ValueError("backoff_seconds must hold at least one interval")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "EngineConfig":
        """Build the engine configuration from application settings."""
        return cls(
            reference_timezone=source.reference_timezone,
            queue_batch_size=source.queue_batch_size,
            retry_sweep_limit=source.retry_sweep_limit,
            send_timeout_seconds=source.send_timeout_seconds,
            max_retries=source.retry_max_retries,
            backoff_seconds=tuple(source.retry_backoff_seconds),
            max_consecutive_failures=source.max_consecutive_failures,
            dedupe_window=timedelta(hours=source.dedupe_window_hours),
            retention=timedelta(days=source.retention_days),
            failed_reset_window=timedelta(hours=source.failed_reset_window_hours),
            default_cooldown_hours=source.default_cooldown_hours,
            base_url=source.base_url,
            booking_base_url=source.booking_base_url,
        )
