"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class MongoConfig(BaseModel):
    """MongoDB connection and collection mapping."""

    url: str = "mongodb://localhost:27017"
    db_name: str = "mongorepo"
    pool_size: int = Field(default=5, ge=1)  # min and max pool size are equal

    # collection name -> identity field of the records stored in it
    id_properties: dict[str, str] = Field(default_factory=dict)
    # collection name -> index keys ("field", "-field", "a,-b" for compound)
    indexes: dict[str, list[str]] = Field(default_factory=dict)

    ledger_collection: str = "migration"

    @property
    def identity_fields(self) -> dict[str, str]:
        """Configured identity fields plus the migration ledger, keyed by migration id."""
        return {self.ledger_collection: "id", **self.id_properties}


class LoggingConfig(BaseModel):
    """Python logging parameters."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"


class Settings(BaseSettings):
    """Main configuration class."""

    environment: str = "development"
    logfire_token: str = ""

    # Optional YAML file merged over the defaults
    config_path: Path = Path("mongorepo.yaml")

    # Nested configuration sections
    mongo: MongoConfig = Field(default_factory=MongoConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="MONGOREPO_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.config_path

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["mongo", "logging"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name]

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            for key in ["environment", "logfire_token"]:
                if key in yaml_config:
                    setattr(self, key, yaml_config[key])

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
