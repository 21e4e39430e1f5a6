from .miniapp_api import MiniAppAPI, MiniAppAPIError, get_api_error_message

__all__ = ["MiniAppAPI", "MiniAppAPIError", "get_api_error_message"]
