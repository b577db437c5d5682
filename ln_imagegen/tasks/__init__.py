from ln_imagegen.tasks.cache_janitor import CacheJanitor

__all__ = ["CacheJanitor"]
