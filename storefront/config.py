"""Cart configuration read from the environment."""
import os
from dataclasses import dataclass
from functools import cache


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class CartSettings:
    """Settings for the cart subsystem and its storage clients."""
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    redis_rest_url: str = ""
    redis_rest_token: str = ""
    guest_cart_ttl: int = 86400  # 24 hours
    cart_items_table: str = "cart_items"
    serialize_saves: bool = True
    realtime_enabled: bool = False

    @classmethod
    def from_env(cls) -> "CartSettings":
        """Build settings from environment variables."""
        return cls(
            supabase_url=os.environ.get("SUPABASE_URL", ""),
            supabase_service_role_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            # Upstash uses REST_URL and REST_TOKEN
            redis_rest_url=os.environ.get("UPSTASH_REDIS_REST_URL", ""),
            redis_rest_token=os.environ.get("UPSTASH_REDIS_REST_TOKEN", ""),
            guest_cart_ttl=_env_int("GUEST_CART_TTL_SECONDS", 86400),
            cart_items_table=os.environ.get("CART_ITEMS_TABLE", "cart_items"),
            serialize_saves=_env_bool("CART_SERIALIZE_SAVES", True),
            realtime_enabled=_env_bool("CART_REALTIME_ENABLED", False),
        )


@cache
def get_settings() -> CartSettings:
    """Get settings (read once per process)."""
    return CartSettings.from_env()
