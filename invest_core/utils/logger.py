"""
Invest Core - Logger Configuration
Centralized logging with loguru
"""
import sys
from pathlib import Path
from loguru import logger

from invest_core.config import settings


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(debug: bool = settings.DEBUG, log_file: str = settings.LOG_FILE) -> None:
    """
    (Re)install the loguru sinks.
    
    Args:
        debug: Log DEBUG to the console instead of settings.LOG_LEVEL
        log_file: Optional rotating file sink path, empty to disable
    """
    # Remove default handler
    logger.remove()
    
    # Console handler with custom format
    logger.add(
        sys.stdout,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level="DEBUG" if debug else settings.LOG_LEVEL,
    )
    
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            rotation="10 MB",
            retention="30 days",
            compression="gz",
            format=LOG_FORMAT,
            level="DEBUG",
        )


def get_logger(name: str = __name__):
    """
    Get a logger instance with the specified name.
    
    Args:
        name: Logger name (usually __name__)
        
    Returns:
        Logger instance
    """
    return logger.bind(name=name)


# Export configured logger
__all__ = ["logger", "get_logger", "configure_logging"]
