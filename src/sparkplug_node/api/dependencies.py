"""FastAPI dependency injection for node engine and configuration access."""

from typing import Optional

from fastapi import HTTPException, status

from ..config import Config
from ..node.engine import NodeEngine

# Global NodeEngine instance (set during app startup)
_engine_instance: Optional[NodeEngine] = None

# Global Config instance (set during app startup)
_config_instance: Optional[Config] = None


def set_engine_instance(engine: Optional[NodeEngine]) -> None:
    """
    Set the global NodeEngine instance.

    This is called during application startup to make the engine
    available to all API routes.

    Args:
        engine: The NodeEngine instance
    """
    global _engine_instance
    _engine_instance = engine


def set_config_instance(config: Optional[Config]) -> None:
    """
    Set the global Config instance.

    Args:
        config: The Config instance
    """
    global _config_instance
    _config_instance = config


def get_engine() -> NodeEngine:
    """
    Dependency to get the NodeEngine instance.

    Returns:
        NodeEngine instance

    Raises:
        RuntimeError: If the engine has not been set

    Example:
        ```python
        @router.post("/node/rebirth")
        async def rebirth(engine: NodeEngine = Depends(get_engine)):
            await engine.rebirth()
        ```
    """
    if _engine_instance is None:
        raise RuntimeError("NodeEngine instance not initialized")
    return _engine_instance


def check_write_enabled() -> None:
    """
    Dependency to check if write operations are enabled.

    Raises:
        HTTPException: If write operations are disabled (read-only mode)
    """
    if _config_instance is None:
        raise RuntimeError("Config instance not initialized")

    if not _config_instance.enable_write:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Publishing is not available in read-only mode",
        )
