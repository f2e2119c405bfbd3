"""
Infrastructure Layer Package

MongoDB persistence, RabbitMQ messaging, the Redis what-if cache, the worker
pool and dependency health checks.
"""
