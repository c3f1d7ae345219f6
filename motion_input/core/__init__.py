from .asyncio_utils import (
    OperationAborted,
    create_logged_task,
    race_with_timeout,
    retry_with_backoff,
    sleep_or_abort,
    wait_until,
)
from .config_manager import ConfigManager, get_config_manager
from .logging_config import LogSettings, configure_logging
from .logging_utils import get_module_logger
from .platform_info import CapturePlatform, CapturePlatformProfile, detect_platform_profile

__all__ = [
    'CapturePlatform',
    'CapturePlatformProfile',
    'ConfigManager',
    'LogSettings',
    'OperationAborted',
    'configure_logging',
    'create_logged_task',
    'detect_platform_profile',
    'get_config_manager',
    'get_module_logger',
    'race_with_timeout',
    'retry_with_backoff',
    'sleep_or_abort',
    'wait_until',
]
