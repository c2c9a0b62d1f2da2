"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    VERSION: str = "0.03.00"

    # Database
    DATABASE_URL: str

    # Session token signing (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    FIELD_SESSION_DAYS: int = 30

    # Public site, used for links in SMS bodies
    APP_BASE_URL: str = "http://localhost:3000"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Account identity provider (bearer tokens for office accounts)
    AUTH_PROVIDER_URL: str = ""
    AUTH_PROVIDER_API_KEY: str = ""
    AUTH_PROVIDER_TIMEOUT_SECONDS: float = 5.0

    # SMS: "twilio" or "log" (log only, dev)
    SMS_BACKEND: str = "twilio"
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_MESSAGING_SERVICE_SID: str = ""
    TWILIO_FROM_NUMBER: str = ""
    TWILIO_TIMEOUT_SECONDS: float = 10.0
    TWILIO_VALIDATE_SIGNATURES: bool = False
    TWILIO_WEBHOOK_URL: str = ""  # public URL Twilio posts to, for signature checks
    SMS_SUPPORT_EMAIL: str = "support@example.com"
    SMS_BRAND_NAME: str = "TurnQA"

    # Object storage: "s3" or "local"
    STORAGE_BACKEND: str = "local"
    LOCAL_STORAGE_PATH: str = "/tmp/turn-photos"
    S3_BUCKET: str = "photos"
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str = ""
    S3_URL_STYLE: str = "path"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    SIGNED_URL_DEFAULT_SECONDS: int = 300

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute, per client IP)
    RATE_LIMIT_OTP: int = 10
    REDIS_URL: str = ""  # shared limiter storage; in-memory when empty

    # Set by the test suite
    TESTING: bool = False

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"

    @property
    def sms_sender_label(self) -> str:
        """Human-facing sender, used in re-subscribe hints."""
        return self.TWILIO_FROM_NUMBER or "our number"


settings = Settings()
