from ln_imagegen.api.server import app, create_app

__all__ = ["app", "create_app"]
