from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-flash-latest", validation_alias="GEMINI_MODEL")
	gemini_timeout_seconds: float = Field(default=60.0, validation_alias="GEMINI_TIMEOUT_SECONDS")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# Record storage: "local" (one JSON slot on this machine) or "remote" (multi-user database)
	store_backend: str = Field(default="local", validation_alias="STORE_BACKEND")
	local_store_path: str = Field(default="./ielts_records.json", validation_alias="LOCAL_STORE_PATH")
	local_store_key: str = Field(default="ielts_records", validation_alias="LOCAL_STORE_KEY")
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Auth configuration (only enforced for the remote store)
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed user
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")

	# Speech playback
	speech_enabled: bool = Field(default=False, validation_alias="SPEECH_ENABLED")
	speech_rate: float = Field(default=0.9, validation_alias="SPEECH_RATE")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def uses_remote_store(self) -> bool:
		return self.store_backend.lower() == "remote"

settings = Settings()
