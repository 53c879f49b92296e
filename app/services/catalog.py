"""Action Catalog - read-only lookup of actions and their tools"""

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models.catalog import ActionModel, ToolModel
from app.schemas.action import ActionDefinition, ToolDefinition


class ActionCatalog(ABC):
    """Source of action and tool definitions"""

    @abstractmethod
    async def get_action_by_key(self, org_id: str, key: str) -> Optional[ActionDefinition]:
        ...

    @abstractmethod
    async def get_action_by_id(self, org_id: str, action_id: str) -> Optional[ActionDefinition]:
        ...

    @abstractmethod
    async def get_tool(self, tool_id: str) -> Optional[ToolDefinition]:
        """
        Load a tool by id regardless of organization.

        The caller compares the tool's org with the action's to detect
        cross-org references.
        """


class SqlActionCatalog(ActionCatalog):
    """Catalog backed by the ``actions`` and ``tools`` tables"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_action_by_key(self, org_id: str, key: str) -> Optional[ActionDefinition]:
        return await self._first_action(ActionModel.org_id == org_id, ActionModel.key == key)

    async def get_action_by_id(self, org_id: str, action_id: str) -> Optional[ActionDefinition]:
        return await self._first_action(ActionModel.org_id == org_id, ActionModel.id == action_id)

    async def get_tool(self, tool_id: str) -> Optional[ToolDefinition]:
        async with self.session_factory() as session:
            result = await session.execute(select(ToolModel).where(ToolModel.id == tool_id))
            tool = result.scalar_one_or_none()
            return ToolDefinition.model_validate(tool) if tool is not None else None

    async def _first_action(self, *conditions) -> Optional[ActionDefinition]:
        async with self.session_factory() as session:
            result = await session.execute(select(ActionModel).where(*conditions))
            action = result.scalar_one_or_none()
            return ActionDefinition.model_validate(action) if action is not None else None
