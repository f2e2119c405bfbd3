from .redis_cache import RedisWhatIfResultCache

__all__ = ["RedisWhatIfResultCache"]
