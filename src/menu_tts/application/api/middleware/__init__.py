from menu_tts.application.api.middleware.error_handler import ErrorHandlingMiddleware

__all__ = ["ErrorHandlingMiddleware"]
