from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "menu-admin"
    environment: str = "local"
    log_level: str = "INFO"
    login_rate_limit: str = "10/minute"
    admin_rate_limit: str = "60/minute"
    sentry_dsn: str | None = None
    sentry_environment: str | None = None

    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: str = ""
    supabase_timeout: float = 10.0
    menu_backend: str = "supabase"  # "supabase" or "memory"
    menu_table: str = "menu_items"
    realtime_schema: str = "public"
    realtime_channel: str = "menu_changes"
    realtime_heartbeat_interval: float = 30.0

    # Development mode: sample data and local credentials when the backend is down
    dev_mode_enabled: bool = False
    dev_admin_email: str = "admin@example.com"
    dev_admin_password: str | None = None

    page_idle_timeout: float = 1800.0
    sse_keepalive_interval: float = 15.0
    cookie_secure: bool = False


settings = Settings()
