from .ml_client import RabbitMQMLClient
from .response_consumer import RabbitMQResponseConsumer

__all__ = ["RabbitMQMLClient", "RabbitMQResponseConsumer"]
