"""
Dependency container injection module - Main Layer

Composition root: wires repositories, broker and cache adapters, the worker
pool and the use cases, and manages their lifecycle for the FastAPI app.
"""

from contextlib import asynccontextmanager
from typing import Optional

from dependency_injector import containers, providers

from diabetify.application.models import SystemInfo
from diabetify.application.use_cases.health_use_cases import (
    CheckMLConnectionUseCase,
    GetApplicationInfoUseCase,
    GetHealthStatusUseCase,
)
from diabetify.application.use_cases.job_processing_use_case import (
    PredictionJobProcessor,
)
from diabetify.application.use_cases.prediction_history_use_case import (
    PredictionHistoryUseCase,
)
from diabetify.application.use_cases.prediction_job_use_case import (
    PredictionJobUseCase,
)
from diabetify.application.use_cases.response_correlation_use_case import (
    ResponseCorrelator,
)
from diabetify.application.use_cases.result_routing_use_case import ResultRouter
from diabetify.domain.services.feature_assembler import FeatureAssembler
from diabetify.infrastructure.cache.redis_cache import RedisWhatIfResultCache
from diabetify.infrastructure.database import MongoDatabase
from diabetify.infrastructure.messaging.ml_client import RabbitMQMLClient
from diabetify.infrastructure.messaging.response_consumer import (
    RabbitMQResponseConsumer,
)
from diabetify.infrastructure.repositories.prediction_job_repository import (
    PredictionJobRepository,
)
from diabetify.infrastructure.repositories.prediction_repository import (
    PredictionRepository,
)
from diabetify.infrastructure.repositories.user_repository import (
    ActivityRepository,
    UserProfileRepository,
    UserRepository,
)
from diabetify.infrastructure.services.health_check_service import HealthCheckService
from diabetify.infrastructure.services.jwt_authenticator import JWTAuthenticator
from diabetify.infrastructure.services.prediction_job_worker import (
    PredictionJobWorker,
)
from diabetify.shared import get_logger

from .config import AppSettings

logger = get_logger(__name__)


class AppContainer(containers.DeclarativeContainer):
    """Composition Root using dependency-injector."""

    wiring_config = containers.WiringConfiguration(
        packages=["..presentation", "..application"]
    )

    # Settings
    config = providers.Configuration()

    # Infrastructure
    mongo_database = providers.Singleton(
        MongoDatabase,
        mongo_uri=config.database.mongo_uri,
        db_name=config.database.database_name,
    )

    prediction_job_repository = providers.Singleton(
        PredictionJobRepository, database=mongo_database
    )
    prediction_repository = providers.Singleton(
        PredictionRepository, database=mongo_database
    )
    user_repository = providers.Singleton(UserRepository, database=mongo_database)
    user_profile_repository = providers.Singleton(
        UserProfileRepository, database=mongo_database
    )
    activity_repository = providers.Singleton(
        ActivityRepository, database=mongo_database
    )

    ml_client = providers.Singleton(
        RabbitMQMLClient,
        amqp_url=config.rabbitmq.url,
        response_queue=config.rabbitmq.response_queue,
        request_queue=config.rabbitmq.request_queue,
        health_request_queue=config.rabbitmq.health_request_queue,
        health_response_queue=config.rabbitmq.health_response_queue,
    )

    response_consumer = providers.Singleton(
        RabbitMQResponseConsumer,
        amqp_url=config.rabbitmq.url,
        queue_name=config.rabbitmq.response_queue,
    )

    what_if_cache = providers.Singleton(
        RedisWhatIfResultCache,
        redis_url=config.redis.url,
        ttl_seconds=config.redis.what_if_ttl_seconds,
    )

    jwt_authenticator = providers.Singleton(
        JWTAuthenticator,
        secret_key=config.auth.secret_key,
        algorithm=config.auth.algorithm,
    )

    # Prediction pipeline
    feature_assembler = providers.Singleton(FeatureAssembler)

    job_processor = providers.Singleton(
        PredictionJobProcessor,
        job_repository=prediction_job_repository,
        user_repository=user_repository,
        profile_repository=user_profile_repository,
        activity_repository=activity_repository,
        ml_client=ml_client,
        feature_assembler=feature_assembler,
        publish_timeout=config.worker.publish_timeout_seconds,
    )

    result_router = providers.Singleton(
        ResultRouter,
        job_repository=prediction_job_repository,
        prediction_repository=prediction_repository,
        user_repository=user_repository,
        what_if_cache=what_if_cache,
    )

    response_correlator = providers.Singleton(
        ResponseCorrelator,
        job_repository=prediction_job_repository,
        result_router=result_router,
    )

    prediction_job_worker = providers.Singleton(
        PredictionJobWorker,
        job_processor=job_processor,
        job_repository=prediction_job_repository,
        response_correlator=response_correlator,
        ml_client=ml_client,
        response_consumer=response_consumer,
        what_if_cache=what_if_cache,
        worker_count=config.worker.count,
        queue_capacity=config.worker.queue_capacity,
        submit_timeout=config.worker.submit_timeout_seconds,
        publish_timeout=config.worker.publish_timeout_seconds,
        recovery_delay=config.worker.recovery_delay_seconds,
        recovery_batch_size=config.worker.recovery_batch_size,
        cleanup_interval=config.worker.cleanup_interval_seconds,
        job_retention_days=config.worker.job_retention_days,
    )

    # Application (use cases)
    prediction_job_use_case = providers.Factory(
        PredictionJobUseCase,
        job_repository=prediction_job_repository,
        prediction_repository=prediction_repository,
        user_repository=user_repository,
        profile_repository=user_profile_repository,
        job_queue=prediction_job_worker,
        what_if_cache=what_if_cache,
    )

    prediction_history_use_case = providers.Factory(
        PredictionHistoryUseCase,
        prediction_repository=prediction_repository,
    )

    check_ml_connection_use_case = providers.Factory(
        CheckMLConnectionUseCase,
        job_queue=prediction_job_worker,
        ml_client=ml_client,
    )

    health_check_service = providers.Singleton(
        HealthCheckService,
        mongo_database=mongo_database,
        broker_url=config.rabbitmq.url,
        redis_url=config.redis.url,
    )

    system_info = providers.Singleton(
        SystemInfo,
        title=config.service.title,
        description=config.service.description,
        version=config.service.version,
        environment=providers.Callable(
            lambda env: env.value if hasattr(env, "value") else str(env),
            config.environment,
        ),
        git_commit=config.service.git_commit,
        build_time=config.service.build_time,
        rabbitmq_url=config.rabbitmq.url,
        request_queue=config.rabbitmq.request_queue,
        response_queue=config.rabbitmq.response_queue,
        redis_url=config.redis.url,
        what_if_ttl_seconds=config.redis.what_if_ttl_seconds,
    )

    get_health_status_use_case = providers.Factory(
        GetHealthStatusUseCase,
        health_check_service=health_check_service,
    )

    get_application_info_use_case = providers.Factory(
        GetApplicationInfoUseCase,
        health_check_service=health_check_service,
        system_info=system_info,
    )


# -------------------------
# Global Container Instance
# -------------------------
_app_container: Optional[AppContainer] = None


def init_container(settings: AppSettings) -> AppContainer:
    """Initialize global container with application settings."""

    global _app_container

    container = AppContainer()
    container.config.from_pydantic(settings)
    _app_container = container
    return container


def get_container() -> AppContainer:
    """Get the initialized global container."""

    if _app_container is None:
        raise RuntimeError("Container has not been initialized yet")

    return _app_container


@asynccontextmanager
async def app_lifespan():
    """
    Start and stop external resources around the application's lifetime.

    Index creation and the broker connection are fatal on failure. On the
    way out the worker pool drains before MongoDB is closed.
    """
    container = get_container()
    mongo_database = container.mongo_database()
    worker = container.prediction_job_worker()

    try:
        logger.info("container.mongo.ensure_indexes")
        await mongo_database.create_indexes()

        logger.info("container.worker.start")
        await worker.start()

        logger.info("container.resources.initialized")
        yield container

    finally:
        logger.info("container.worker.stop")
        await worker.stop()

        logger.info("container.mongo.close")
        mongo_database.close()

        logger.info("container.resources.shutdown")
