from .logger import (
    clear_connection_id,
    get_connection_id,
    get_logger,
    log_stage,
    redact_text,
    set_connection_id,
    setup_logging,
)

__all__ = [
    "clear_connection_id",
    "get_connection_id",
    "get_logger",
    "log_stage",
    "redact_text",
    "set_connection_id",
    "setup_logging",
]
