from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "MyTor Scheduling Engine"

    # Server
    PORT: int = 8000
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Security
    SECRET_KEY: str = ""
    PUBLIC_RATE_LIMIT_PER_MINUTE: int = 30

    # Storage ("memory" or "supabase")
    STORE_PROVIDER: str = "memory"
    BUSINESS_CONFIG_PATH: str = "data/businesses.json"

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # Scheduling
    SLOT_STEP_MINUTES: int = 15
    OWNER_EDIT_MARGIN_HOURS: int = 1
    NEAREST_SLOT_SEARCH_HOURS: int = 3
    TRANSIENT_RETRY_ATTEMPTS: int = 3

    # Verification codes
    OTP_TTL_SECONDS: int = 300
    OTP_RESEND_COOLDOWN_SECONDS: int = 60
    OTP_CODE_LENGTH: int = 4
    OTP_VERIFIED_MAX_AGE_SECONDS: int = 300

    # Phone numbers (local mobile 05XXXXXXXX or landline 0X-XXXXXXX)
    PHONE_PATTERN: str = r"^(05\d{8}|0[2-9]\d{7,8})$"
    PHONE_COUNTRY_PREFIX: str = "+972"

    # Notifications
    SMS_ENABLED: bool = False
    VOICE_ENABLED: bool = False
    EMAIL_ENABLED: bool = False

    # "twilio" (default) or "gosms"
    SMS_PROVIDER: str = "twilio"
    VOICE_LANGUAGE: str = "en-US"

    GOSMS_CLIENT_ID: str = ""
    GOSMS_CLIENT_SECRET: str = ""
    GOSMS_CHANNEL_ID: str = ""

    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""

    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""

    PUBLIC_BASE_URL: str = "http://localhost:3000"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
