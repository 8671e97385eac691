from typing import List, Optional, Dict, Any
import structlog
from testpilot.models.schemas import (
    Environment,
    EnvironmentCreate,
    EnvironmentUpdate,
    ResolvedEnvironment,
)
from testpilot.repositories.interfaces.environment_repository import IEnvironmentRepository

logger = structlog.get_logger()


SUB_ENVIRONMENT_NOT_FOUND = "SUB_ENVIRONMENT_NOT_FOUND"
MISSING_REQUIRED_VARIABLE = "MISSING_REQUIRED_VARIABLE"
ENVIRONMENT_NOT_FOUND = "ENVIRONMENT_NOT_FOUND"
ENVIRONMENTS_UNAVAILABLE = "ENVIRONMENTS_UNAVAILABLE"


class EnvironmentResolutionError(Exception):
    """Raised when the variables of a sub-environment cannot be resolved"""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.message = message
        self.code = code


class EnvironmentService:
    """Business logic service for environments and their variables"""

    def __init__(self, environment_repository: IEnvironmentRepository):
        self.environment_repository = environment_repository

    async def create_environment(self, environment: EnvironmentCreate) -> Environment:
        created = await self.environment_repository.create(environment)
        logger.info("Environment created", environment_id=created.id, name=created.name)
        return created

    async def get_environment(self, environment_id: int) -> Optional[Environment]:
        return await self.environment_repository.get_by_id(environment_id)

    async def get_all_environments(self, skip: int = 0, limit: int = 100) -> List[Environment]:
        return await self.environment_repository.get_all(skip=skip, limit=limit)

    async def update_environment(
        self, environment_id: int, environment_update: EnvironmentUpdate
    ) -> Optional[Environment]:
        updated = await self.environment_repository.update(environment_id, environment_update)
        if updated:
            logger.info("Environment updated", environment_id=environment_id)
        return updated

    async def delete_environment(self, environment_id: int) -> bool:
        deleted = await self.environment_repository.delete(environment_id)
        if deleted:
            logger.info("Environment deleted", environment_id=environment_id)
        return deleted

    async def resolve(self, environment_id: int, sub_environment: str) -> ResolvedEnvironment:
        """Resolve the variables of one sub-environment of a stored environment.

        Each declared variable takes the sub-environment value, then the
        declared default. A required variable with neither is an error;
        optional ones are left out. Values the sub-environment sets without a
        declaration are passed through as well.
        """
        environment = await self.environment_repository.get_by_id(environment_id)
        if environment is None:
            raise EnvironmentResolutionError(
                f"Environment {environment_id} not found", ENVIRONMENT_NOT_FOUND
            )
        return resolve_environment_variables(environment, sub_environment)


def resolve_environment_variables(environment: Environment, sub_environment: str) -> ResolvedEnvironment:
    config = environment.config
    sub_env = config.environments.get(sub_environment)
    if sub_env is None:
        available = ", ".join(config.environments.keys())
        raise EnvironmentResolutionError(
            f'Sub-environment "{sub_environment}" not found. Available: {available}',
            SUB_ENVIRONMENT_NOT_FOUND,
        )

    variables: Dict[str, Any] = {}
    defaults: Dict[str, Any] = {}

    for name, definition in config.variable_definitions.items():
        if definition.default_value is not None:
            defaults[name] = definition.default_value

        if sub_env.variables.get(name) is not None:
            variables[name] = sub_env.variables[name]
        elif definition.default_value is not None:
            variables[name] = definition.default_value
        elif definition.required:
            raise EnvironmentResolutionError(
                f'Required variable "{name}" has no value in sub-environment "{sub_environment}" '
                f"and no default value defined",
                MISSING_REQUIRED_VARIABLE,
            )

    for name, value in sub_env.variables.items():
        variables.setdefault(name, value)

    logger.debug(
        "Environment variables resolved",
        environment_id=environment.id,
        sub_environment=sub_environment,
        variables=sorted(variables.keys()),
    )
    return ResolvedEnvironment(
        id=environment.id,
        name=environment.name,
        sub_environment=sub_environment,
        variables=variables,
        defaults=defaults,
        api_hosts=dict(sub_env.api_hosts),
    )
