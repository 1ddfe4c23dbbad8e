from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from authguard.schemas.brute_force import AttemptType


class BruteForcePolicy(BaseModel):
    """Thresholds and durations used by the brute-force guard."""

    max_attempts_per_ip: int = Field(default=15, gt=0)
    max_attempts_per_user: int = Field(default=5, gt=0)
    # Enforced by GlobalRateLimiter at the gateway, never by check_attempt
    global_max_attempts_per_minute: int = Field(default=200, gt=0)

    lockout_ladder_minutes: list[int] = Field(default_factory=lambda: [5, 15, 60, 240])
    lockout_history_hours: int = Field(default=24, gt=0)

    attempt_window_minutes: int = Field(default=60, gt=0)
    pattern_window_minutes: int = Field(default=10, gt=0)

    distributed_brute_force_threshold: int = Field(default=25, gt=0)
    credential_stuffing_min_identifiers: int = Field(default=5, gt=0)
    credential_stuffing_min_attempts: int = Field(default=20, gt=0)

    @field_validator("lockout_ladder_minutes")
    @classmethod
    def validate_ladder(cls, v: list[int]) -> list[int]:
        if len(v) != 4:
            raise ValueError("lockout_ladder_minutes must have exactly four steps")
        if any(step <= 0 for step in v):
            raise ValueError("lockout_ladder_minutes steps must be positive")
        if v != sorted(v):
            raise ValueError("lockout_ladder_minutes must not decrease")
        return v

    def max_attempts(self, attempt_type: AttemptType) -> int:
        if attempt_type == AttemptType.IP:
            return self.max_attempts_per_ip
        return self.max_attempts_per_user


class EmergencyAccessPolicy(BaseModel):
    code_ttl_minutes: int = Field(default=4 * 60, gt=0)
    code_length: int = Field(default=8, ge=8)
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)


class Settings(BaseSettings):
    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "authguard"
    POSTGRES_PASSWORD: str = "devpassword"
    POSTGRES_DB: str = "authguard"

    @property
    def DATABASE_URL(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def DATABASE_URL_SYNC(self) -> str:
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    REDIS_URL: str = "redis://localhost:6379"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0

    # App
    APP_NAME: str = "authguard"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Brute-force protection
    BRUTE_FORCE_MAX_ATTEMPTS_PER_IP: int = 15
    BRUTE_FORCE_MAX_ATTEMPTS_PER_USER: int = 5
    BRUTE_FORCE_GLOBAL_MAX_PER_MINUTE: int = 200
    BRUTE_FORCE_LOCKOUT_LADDER_MINUTES: list[int] = [5, 15, 60, 240]
    BRUTE_FORCE_ATTEMPT_WINDOW_MINUTES: int = 60
    BRUTE_FORCE_PATTERN_WINDOW_MINUTES: int = 10

    # Emergency access
    EMERGENCY_CODE_TTL_MINUTES: int = 4 * 60
    EMERGENCY_CODE_LENGTH: int = 8
    EMERGENCY_CODE_BCRYPT_ROUNDS: int = 10
    EMERGENCY_CODE_WEBHOOK_URLS: list[str] = []

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return level

    def brute_force_policy(self) -> BruteForcePolicy:
        return BruteForcePolicy(
            max_attempts_per_ip=self.BRUTE_FORCE_MAX_ATTEMPTS_PER_IP,
            max_attempts_per_user=self.BRUTE_FORCE_MAX_ATTEMPTS_PER_USER,
            global_max_attempts_per_minute=self.BRUTE_FORCE_GLOBAL_MAX_PER_MINUTE,
            lockout_ladder_minutes=self.BRUTE_FORCE_LOCKOUT_LADDER_MINUTES,
            attempt_window_minutes=self.BRUTE_FORCE_ATTEMPT_WINDOW_MINUTES,
            pattern_window_minutes=self.BRUTE_FORCE_PATTERN_WINDOW_MINUTES,
        )

    def emergency_access_policy(self) -> EmergencyAccessPolicy:
        return EmergencyAccessPolicy(
            code_ttl_minutes=self.EMERGENCY_CODE_TTL_MINUTES,
            code_length=self.EMERGENCY_CODE_LENGTH,
            bcrypt_rounds=self.EMERGENCY_CODE_BCRYPT_ROUNDS,
        )

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
