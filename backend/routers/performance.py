from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends

from core.auth import require_roles
from core.cache import Cache, get_cache
from db.users import Role, User
from schemas.system_health import ClearedCacheResponse

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/clear-all-cache", response_model=ClearedCacheResponse)
async def clear_all_cache(
    cache: Cache = Depends(get_cache),
    user: User = Depends(require_roles(Role.MANAGER)),
):
    """Drop every live cache entry, whatever its key"""
    cleared = cache.clear()
    log.info("cache_cleared", cleared_cache_entries=cleared, user_id=str(user.id))
    return ClearedCacheResponse(
        message="All caches cleared successfully",
        cleared_cache_entries=cleared,
        timestamp=datetime.now(timezone.utc),
    )
