from .service import (
    EMERGENCY_CLEANUP_CONFIG,
    CleanupAlreadyRunningError,
    CleanupConfig,
    CleanupReport,
    CleanupService,
    get_cleanup_service,
)

__all__ = [
    "CleanupAlreadyRunningError",
    "CleanupConfig",
    "CleanupReport",
    "CleanupService",
    "EMERGENCY_CLEANUP_CONFIG",
    "get_cleanup_service",
]
