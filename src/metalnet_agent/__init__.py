"""metalnet agent runtime helpers."""

from .config import AgentConfig, load_config  # noqa: F401
from .registry import HandlerRegistry  # noqa: F401

__all__ = [
    "AgentConfig",
    "HandlerRegistry",
    "load_config",
]
