from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage settings
    STORAGE_BACKEND: str = "file"  # file | s3
    STORAGE_BASE_PATH: str = "data"
    MAX_FILE_MB: int = 0  # 0 = unlimited
    MAX_SHARE_MB: int = 0  # 0 = unlimited

    # S3-compatible object store settings
    S3_BUCKET: str = ""
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str | None = None
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None
    S3_SPOOL_MAX_MB: int = 8  # Uploads larger than this spill to disk before upload

    # Share defaults
    DEFAULT_VALIDITY_DAYS: int = 7

    # Name of the header carrying the user authenticated by the fronting auth layer
    AUTH_USER_HEADER: str = "X-Remote-User"
    HIDE_OTHER_SHARES: bool = False

    # Logging settings
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
