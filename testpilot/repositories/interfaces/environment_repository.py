from abc import ABC, abstractmethod
from typing import List, Optional
from testpilot.models.schemas import Environment, EnvironmentCreate, EnvironmentUpdate


class IEnvironmentRepository(ABC):
    """Interface for environment repository operations"""
    
    @abstractmethod
    async def create(self, environment: EnvironmentCreate) -> Environment:
        pass
    
    @abstractmethod
    async def get_by_id(self, environment_id: int) -> Optional[Environment]:
        pass
    
    @abstractmethod
    async def get_all(self, skip: int = 0, limit: int = 100) -> List[Environment]:
        pass
    
    @abstractmethod
    async def update(self, environment_id: int, environment_update: EnvironmentUpdate) -> Optional[Environment]:
        pass
    
    @abstractmethod
    async def delete(self, environment_id: int) -> bool:
        pass
