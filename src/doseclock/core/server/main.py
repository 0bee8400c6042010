"""DoseClock server entry point — ``python -m doseclock.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address
from pathlib import Path

from doseclock.core.config.settings import Settings, get_settings
from doseclock.core.server.app import create_app
from doseclock.domains.medication.domain_logic.dose_models import SequenceValidationError
from doseclock.domains.medication.domain_logic.threshold_monitor import validate_threshold


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def check_settings(settings: Settings) -> list[str]:
    """Configuration problems that would leave the alarm unusable or exposed.

    An empty list means the server can start.
    """
    problems: list[str] = []
    if not settings.doseclock_allow_insecure_bind and not _is_loopback_host(settings.doseclock_host):
        problems.append(
            "Refusing to bind DoseClock to a non-loopback host without an auth layer. "
            "Set DOSECLOCK_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    if settings.tick_interval_seconds <= 0:
        problems.append(
            f"TICK_INTERVAL_SECONDS must be positive, got {settings.tick_interval_seconds}"
        )
    try:
        validate_threshold(settings.alarm_threshold_percent)
    except SequenceValidationError as exc:
        problems.append(f"ALARM_THRESHOLD_PERCENT: {exc}")
    if settings.regimen_path and not Path(settings.regimen_path).expanduser().is_file():
        problems.append(f"REGIMEN_PATH does not point to a file: {settings.regimen_path}")
    return problems


def run() -> None:
    """Start the DoseClock MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.doseclock_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    problems = check_settings(settings)
    if problems:
        raise RuntimeError("; ".join(problems))

    logger.info(
        "Alarm at %d%% efficiency, checked every %.1fs (%s signal); regimen %s",
        settings.alarm_threshold_percent,
        settings.tick_interval_seconds,
        "repeating" if settings.repeat_signal else "single-shot",
        settings.regimen_path or settings.regimen,
    )
    logger.info(
        "Starting DoseClock server on %s:%d",
        settings.doseclock_host,
        settings.doseclock_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.doseclock_host,
        port=settings.doseclock_port,
    )


if __name__ == "__main__":
    run()
