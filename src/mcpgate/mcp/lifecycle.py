"""
LifecycleCoordinator - bulk registration and bulk graceful shutdown.

Both bulk operations record an outcome per item and never abort the batch.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List

from loguru import logger

from mcpgate.errors import describe, error_result, success_result
from mcpgate.mcp.connection import ServerDescriptor
from mcpgate.mcp.registry import Session
from mcpgate.mcp.supervisor import ConnectionSupervisor


class LifecycleCoordinator:
    def __init__(self, supervisor: ConnectionSupervisor) -> None:
        self._supervisor = supervisor
        self._registry = supervisor.registry

    async def register(self, descriptor: ServerDescriptor) -> Dict[str, Any]:
        server_id = descriptor.identifier
        try:
            await self._supervisor.connect(descriptor)
        except Exception as e:
            logger.warning(f"Error registering server {server_id}: {describe(e)}")
            return error_result(e, server_id=server_id)
        return success_result(f"Successfully connected to server: {server_id}", serverId=server_id)

    async def register_all(self, descriptors: Iterable[ServerDescriptor]) -> List[Dict[str, Any]]:
        """Connect every descriptor independently; outcomes keep input order."""
        items = list(descriptors)
        if not items:
            return []
        results = await asyncio.gather(*(self.register(d) for d in items))
        ok = sum(1 for r in results if r["status"] == "success")
        logger.info(f"Registered {ok}/{len(items)} servers")
        return list(results)

    async def _close_one(self, session: Session) -> Dict[str, Any]:
        server_id = session.identifier
        try:
            await self._supervisor.close_session(session)
        except Exception as e:
            logger.warning(f"Error disconnecting server {server_id}: {describe(e)}")
            return error_result(e, server_id=server_id)
        return success_result(f"Successfully disconnected server: {server_id}", serverId=server_id)

    async def shutdown_all(self) -> List[Dict[str, Any]]:
        """Close every registered session once and leave the registry empty."""
        sessions = self._registry.clear()
        if not sessions:
            return []
        logger.info(f"Closing {len(sessions)} server session(s)")
        results = await asyncio.gather(*(self._close_one(s) for s in sessions))
        return list(results)
