from functools import lru_cache
from fastapi import Depends
from sqlalchemy.orm import Session
from testpilot.repositories.interfaces.environment_repository import IEnvironmentRepository
from testpilot.repositories.implementations.sql_environment_repository import SQLEnvironmentRepository

from testpilot.services.environment_service import EnvironmentService
from testpilot.services.template_service import TemplateService
from testpilot.services.proxy_service import ProxyService
from testpilot.template import TemplateEngine
from testpilot.config.settings import settings
from testpilot.core.database import get_database


class Container:
    """Dependency injection container"""
    
    def __init__(self):
        self._template_engine = None
        self._proxy_service = None
    
    def environment_repository(self, db: Session) -> IEnvironmentRepository:
        """Get environment repository instance"""
        return SQLEnvironmentRepository(db)
    
    def environment_service(self, db: Session) -> EnvironmentService:
        """Get environment service instance"""
        return EnvironmentService(environment_repository=self.environment_repository(db))
    
    @lru_cache()
    def template_engine(self) -> TemplateEngine:
        """Get template engine instance (singleton)"""
        if self._template_engine is None:
            self._template_engine = TemplateEngine(strict_prefixes=settings.strict_template_prefixes)
        return self._template_engine
    
    def template_service(self, db: Session) -> TemplateService:
        """Get template service instance"""
        return TemplateService(
            engine=self.template_engine(),
            environment_service=self.environment_service(db),
        )
    
    @lru_cache()
    def proxy_service(self) -> ProxyService:
        """Get proxy service instance (singleton)"""
        if self._proxy_service is None:
            self._proxy_service = ProxyService()
        return self._proxy_service


# Global container instance
container = Container()


# Dependency providers for FastAPI
def get_environment_service(db: Session = Depends(get_database)) -> EnvironmentService:
    """FastAPI dependency for environment service"""
    return container.environment_service(db)


def get_template_service(db: Session = Depends(get_database)) -> TemplateService:
    """FastAPI dependency for template service"""
    return container.template_service(db)


def get_proxy_service() -> ProxyService:
    """FastAPI dependency for proxy service"""
    return container.proxy_service()
