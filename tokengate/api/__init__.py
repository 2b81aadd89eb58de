# tokengate API
from tokengate.api.auth import router as auth_router
from tokengate.api.health import router as health_router
from tokengate.api.users import router as users_router

__all__ = ["auth_router", "health_router", "users_router"]
