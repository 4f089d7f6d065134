from utils.chunking import slices
from utils.logger import log_error, log_info, log_success, log_warning, setup_logging
from utils.timing import wait

__all__ = [
    "log_error",
    "log_info",
    "log_success",
    "log_warning",
    "setup_logging",
    "slices",
    "wait",
]
