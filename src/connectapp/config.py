"""ConnectApp backend — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./connectapp.db"

    # ── Sessions ──────────────────────────────────────────
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    session_ttl_seconds: int = 7 * 24 * 60 * 60
    admin_session_ttl_seconds: int = 24 * 60 * 60
    session_cookie_name: str = "token"
    admin_cookie_name: str = "adminToken"

    # ── OTP ───────────────────────────────────────────────
    otp_ttl_seconds: int = 600
    otp_length: int = 6
    otp_max_attempts: int = 5
    otp_sweep_interval_seconds: int = 900
    default_country_code: str = "+91"

    # ── Rate limits ───────────────────────────────────────
    otp_send_limit: int = 5
    otp_send_ip_limit: int = 20
    otp_send_window_seconds: int = 15 * 60
    register_limit: int = 3
    register_window_seconds: int = 60 * 60

    # ── SMS gateway ───────────────────────────────────────
    sms_provider: str = "console"
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""

    # ── SMTP ──────────────────────────────────────────────
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "no-reply@connectapp.in"

    # ── App ───────────────────────────────────────────────
    app_name: str = "ConnectApp"
    environment: str = "development"
    debug: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def cookie_secure(self) -> bool:
        """Only mark cookies ``Secure`` when served over HTTPS in production."""
        return self.environment == "production"


# Singleton settings instance
settings = Settings()
