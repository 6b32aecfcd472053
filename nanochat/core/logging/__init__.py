from .logger import (
    clear_conversation_id,
    get_conversation_id,
    get_logger,
    log_stage,
    set_conversation_id,
    setup_logging,
)

__all__ = [
    "clear_conversation_id",
    "get_conversation_id",
    "get_logger",
    "log_stage",
    "set_conversation_id",
    "setup_logging",
]
