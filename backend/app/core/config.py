from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "taskboard"

    # JWT (쿠키 'token'에 담기는 access token)
    JWT_SECRET_KEY: str = "super-secret-key"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1일

    # 관리자 계정은 DB가 아니라 환경 변수로 관리
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = ""

    # development / production
    ENVIRONMENT: str = "development"

    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # 업로드 파일 저장 위치와 공개 URL prefix
    UPLOAD_DIR: str = "uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"

    # 정책: completed 상태의 task를 다시 열 수 있는지
    ALLOW_TASK_REOPEN: bool = False

    # dev: 사람이 읽기 좋은 출력 / json: 구조화 로그
    LOG_FORMAT: str = "dev"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
