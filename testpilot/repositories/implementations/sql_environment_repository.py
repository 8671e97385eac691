from typing import List, Optional
from sqlalchemy.orm import Session
from testpilot.repositories.interfaces.environment_repository import IEnvironmentRepository
from testpilot.models.database import EnvironmentModel
from testpilot.models.schemas import Environment, EnvironmentCreate, EnvironmentUpdate


class SQLEnvironmentRepository(IEnvironmentRepository):
    """SQLAlchemy implementation of environment repository"""
    
    def __init__(self, db: Session):
        self.db = db
    
    async def create(self, environment: EnvironmentCreate) -> Environment:
        """Create a new environment"""
        db_environment = EnvironmentModel(**environment.model_dump(mode="json"))
        self.db.add(db_environment)
        self.db.commit()
        self.db.refresh(db_environment)
        return Environment.model_validate(db_environment)
    
    async def get_by_id(self, environment_id: int) -> Optional[Environment]:
        """Get environment by ID"""
        db_environment = self._find(environment_id)
        if db_environment:
            return Environment.model_validate(db_environment)
        return None
    
    async def get_all(self, skip: int = 0, limit: int = 100) -> List[Environment]:
        """Get all environments with pagination"""
        db_environments = (
            self.db.query(EnvironmentModel).order_by(EnvironmentModel.id).offset(skip).limit(limit).all()
        )
        return [Environment.model_validate(environment) for environment in db_environments]
    
    async def update(self, environment_id: int, environment_update: EnvironmentUpdate) -> Optional[Environment]:
        """Update an existing environment"""
        db_environment = self._find(environment_id)
        if not db_environment:
            return None
        
        # JSON columns are replaced wholesale so SQLAlchemy sees the change
        update_data = environment_update.model_dump(mode="json", exclude_unset=True)
        for field, value in update_data.items():
            setattr(db_environment, field, value)
        
        self.db.commit()
        self.db.refresh(db_environment)
        return Environment.model_validate(db_environment)
    
    async def delete(self, environment_id: int) -> bool:
        """Delete an environment"""
        db_environment = self._find(environment_id)
        if not db_environment:
            return False
        
        self.db.delete(db_environment)
        self.db.commit()
        return True

    def _find(self, environment_id: int) -> Optional[EnvironmentModel]:
        return self.db.query(EnvironmentModel).filter(EnvironmentModel.id == environment_id).first()
