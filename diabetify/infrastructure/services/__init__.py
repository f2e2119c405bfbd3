from .health_check_service import HealthCheckService
from .prediction_job_worker import PredictionJobWorker

__all__ = ["HealthCheckService", "PredictionJobWorker"]
