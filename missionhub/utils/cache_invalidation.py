# missionhub/utils/cache_invalidation.py
"""Cache invalidation utilities."""
from typing import Any
from ..core.cache import cache


def mission_cache_key(mission_id: Any, suffix: str) -> str:
    return f"mission:{mission_id}:{suffix}"


async def invalidate_mission_cache(mission_id: Any = None) -> int:
    """Invalidate every cached view of a mission's roster."""
    patterns = ["missions:*"]
    if mission_id:
        patterns.append(f"mission:{mission_id}:*")

    deleted = 0
    for pattern in patterns:
        deleted += await cache.delete_pattern(pattern)
    return deleted
