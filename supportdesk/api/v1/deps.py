from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends

from supportdesk.db.session import SessionLocal
from supportdesk.services.access import ResolvedRole, require_known, resolve_role
from supportdesk.services.auth import AuthSession, get_current_user
from supportdesk.services.ws import ws_manager
from supportdesk.store.base import Store
from supportdesk.store.sql import SqlStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_store() -> Store:
    logger.info("Using SQL store with redis change fanout")
    return SqlStore(SessionLocal, publisher=ws_manager.publish)


async def get_current_role(
    store: Store = Depends(get_store),
    current_user: AuthSession = Depends(get_current_user),
) -> ResolvedRole:
    role = await resolve_role(store, current_user.user_id)
    require_known(role)
    return role
