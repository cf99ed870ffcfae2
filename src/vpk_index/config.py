from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="VPK_",
        extra="ignore",
    )

    string_limit: int = 1024
    charset: str = "ascii"
    crc_chunk_size: int = 4096
    use_mmap: bool = True

    @field_validator("string_limit", "crc_chunk_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value


settings = Settings()
