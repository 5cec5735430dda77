from dataclasses import dataclass

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STREAM_INTERVAL_MIN_MS = 1000
STREAM_INTERVAL_MAX_MS = 15000


@dataclass(frozen=True)
class EndpointOverrideSettings:
    """Raw endpoint override as configured through the environment."""

    path: str | None
    method: str | None
    keys: tuple[str, ...]


class Settings(BaseSettings):
    """
    Configuración de la aplicación utilizando Pydantic BaseSettings.
    Carga automáticamente las variables de entorno.
    """

    # API Configuration
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "WhatsApp Instance Gateway"
    PROJECT_DESCRIPTION: str = "Gateway multi-tenant para instancias de proveedores WhatsApp"
    VERSION: str = "0.3.0"

    # Application Settings
    DEBUG: bool = Field(False, description="Modo de depuración")
    ENVIRONMENT: str = Field("production", description="Entorno de ejecución")
    LOG_LEVEL: str = Field("INFO", description="Nivel de logging")
    PUBLIC_BASE_URL: str | None = Field(None, description="URL pública del gateway (para webhooks)")
    CORS_ORIGINS: str = Field("", description="Orígenes CORS permitidos, separados por coma")

    # Multi-Tenant Settings
    TENANT_HEADER: str = Field("X-Tenant-ID", description="Header name for tenant ID in requests")
    AUTO_REGISTER_TENANTS: bool = Field(
        True, description="Registrar tenants desconocidos en el directorio en memoria"
    )
    MANUAL_INSTANCE_MODE: bool = Field(
        False, description="No crear instancias automáticamente; deben vincularse manualmente"
    )

    # Provider selection (chosen once at startup)
    PROVIDER: str = Field("uazapi", description="Proveedor de WhatsApp: uazapi | zapi")

    # uazapi
    UAZAPI_BASE_URL: str = Field("https://free.uazapi.com", description="URL base de uazapi")
    UAZAPI_TOKEN: str | None = Field(None, description="Token global (fallback) de uazapi")
    UAZAPI_ADMIN_TOKEN: str | None = Field(None, description="Token administrativo de uazapi")
    UAZAPI_DISABLE_GLOBAL_FALLBACK: bool = Field(
        False, description="Deshabilitar el uso del token global como último recurso"
    )
    UAZAPI_CREATE_PATH: str | None = None
    UAZAPI_CREATE_METHOD: str | None = None
    UAZAPI_CREATE_KEYS: str | None = None
    UAZAPI_DISCONNECT_PATH: str | None = None
    UAZAPI_DISCONNECT_METHOD: str | None = None
    UAZAPI_DISCONNECT_KEYS: str | None = None
    UAZAPI_QR_PATH: str | None = None
    UAZAPI_QR_METHOD: str | None = None
    UAZAPI_QR_KEYS: str | None = None
    UAZAPI_QR_FORCE: bool = Field(True, description="Enviar force=true al solicitar el QR")

    # Z-API
    ZAPI_BASE_URL: str = Field("https://api.z-api.io", description="URL base de Z-API")
    ZAPI_INSTANCE_ID: str | None = Field(None, description="ID de instancia Z-API")
    ZAPI_TOKEN: str | None = Field(None, description="Token de instancia Z-API")
    ZAPI_CLIENT_TOKEN: str | None = Field(None, description="Client-Token de seguridad de Z-API")

    # Vendor HTTP behaviour
    VENDOR_REQUEST_TIMEOUT: float = Field(15.0, description="Timeout por request/candidato en segundos")
    VENDOR_OPERATION_DEADLINE: float = Field(
        60.0, description="Deadline total de una operación con múltiples candidatos"
    )
    VENDOR_MAX_RETRIES: int = Field(3, description="Intentos para errores 5xx en endpoints fijos")

    # Realtime
    STATUS_STREAM_INTERVAL_MS: int = Field(3000, description="Intervalo por defecto del stream SSE (ms)")
    STATUS_POLL_INTERVAL_SECONDS: float = Field(
        0.0, description="Intervalo del poller de estado en background (0 deshabilita)"
    )

    # Webhooks
    WEBHOOK_SECRET: str | None = Field(None, description="Secreto compartido para webhooks entrantes")

    # Storage
    INSTANCE_STORE: str = Field("memory", description="Backend del ledger: memory | redis")
    REDIS_HOST: str = Field("localhost", description="Host de Redis")
    REDIS_PORT: int = Field(6379, description="Puerto de Redis")
    REDIS_DB: int = Field(0, description="Base de datos de Redis")
    REDIS_PASSWORD: str | None = Field(None, description="Contraseña de Redis")

    # Observability
    SENTRY_DSN: str | None = Field(None, description="Sentry DSN for error tracking")
    AUDIT_LOG_FILE: str | None = Field(None, description="Archivo para el log de vinculaciones")

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignorar campos extras en lugar de generar un error
    )

    @field_validator("PROVIDER", "INSTANCE_STORE", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("UAZAPI_BASE_URL", "ZAPI_BASE_URL", "PUBLIC_BASE_URL", mode="after")
    @classmethod
    def strip_trailing_slash(cls, value):
        if isinstance(value, str):
            return value.rstrip("/")
        return value

    @computed_field
    @property
    def redis_url(self) -> str:
        """Construye la URL de conexión a Redis"""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @computed_field
    @property
    def is_development(self) -> bool:
        """Determina si está en modo desarrollo"""
        return self.DEBUG or self.ENVIRONMENT.lower() in ["development", "dev", "local"]

    @property
    def stream_interval_ms(self) -> int:
        return clamp_stream_interval(self.STATUS_STREAM_INTERVAL_MS)

    def uazapi_override(self, operation: str) -> EndpointOverrideSettings:
        """
        Read the `UAZAPI_<OPERATION>_{PATH,METHOD,KEYS}` override triple.

        KEYS is a comma separated list of parameter key names.
        """
        prefix = f"UAZAPI_{operation.upper()}"
        raw_keys = getattr(self, f"{prefix}_KEYS", None) or ""
        keys = tuple(k.strip() for k in raw_keys.split(",") if k.strip())
        return EndpointOverrideSettings(
            path=getattr(self, f"{prefix}_PATH", None) or None,
            method=getattr(self, f"{prefix}_METHOD", None) or None,
            keys=keys,
        )


def clamp_stream_interval(value: int | None, default: int = 3000) -> int:
    """Clamp a stream polling interval (ms) to the allowed window."""
    if not value or value <= 0:
        value = default
    return max(STREAM_INTERVAL_MIN_MS, min(STREAM_INTERVAL_MAX_MS, int(value)))


# Singleton para configuración
_settings_instance = None


def get_settings() -> Settings:
    """
    Retorna una instancia cacheada de la configuración.
    Esto evita cargar las variables de entorno múltiples veces.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
