"""
Configuration management for the coaster fleet service
"""
import json
import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field


class BrokerConfig(BaseModel):
    """Connection and timing settings for the shared coordination broker"""
    host: str = "localhost"
    port: int = Field(default=6379, ge=1, le=65535)
    heartbeat_interval: float = Field(default=5.0, gt=0)  # seconds
    liveness_window: float = Field(default=10.0, gt=0)  # seconds without refresh before a node is stale
    connect_timeout: float = Field(default=5.0, gt=0)
    atomic_election: bool = False

    @property
    def url(self) -> str:
        return f"redis://{self.host}:{self.port}"


class StorageConfig(BaseModel):
    """Location of the JSON record files"""
    data_dir: str = "./data"

    def directory_for(self, environment: str) -> Path:
        subdir = "dev" if environment == "development" else "prod"
        return Path(self.data_dir) / subdir


class ServerConfig(BaseModel):
    """HTTP front end settings"""
    host: str = "0.0.0.0"
    dev_port: int = Field(default=3050, ge=1024, le=65535)
    prod_port: int = Field(default=3051, ge=1024, le=65535)
    port: Optional[int] = Field(default=None, ge=1024, le=65535)


class MonitorConfig(BaseModel):
    """Periodic status report settings"""
    enabled: bool = True
    interval: float = Field(default=30.0, gt=0)  # seconds


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: Optional[str] = "./logs"


class ShutdownConfig(BaseModel):
    timeout: float = Field(default=5.0, gt=0)  # seconds before forced exit


class Config(BaseModel):
    """Main configuration class"""
    environment: str = "development"
    broker: BrokerConfig = Field(default_factory=BrokerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    shutdown: ShutdownConfig = Field(default_factory=ShutdownConfig)

    @property
    def is_dev(self) -> bool:
        return self.environment == "development"

    @property
    def data_directory(self) -> Path:
        return self.storage.directory_for(self.environment)

    @property
    def http_port(self) -> int:
        if self.server.port is not None:
            return self.server.port
        return self.server.dev_port if self.is_dev else self.server.prod_port

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables"""
        environment = os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development"
        return cls(
            environment=environment,
            broker=BrokerConfig(
                host=os.getenv("REDIS_HOST", "localhost"),
                port=int(os.getenv("REDIS_PORT", "6379")),
                atomic_election=os.getenv("ATOMIC_ELECTION", "false").lower() in ("1", "true", "yes"),
            ),
            storage=StorageConfig(
                data_dir=os.getenv("DATA_DIR", "./data"),
            ),
            server=ServerConfig(
                host=os.getenv("HTTP_HOST", "0.0.0.0"),
                port=int(os.environ["HTTP_PORT"]) if os.getenv("HTTP_PORT") else None,
            ),
            logging=LoggingConfig(
                level=os.getenv("LOG_LEVEL", "INFO"),
                log_dir=os.getenv("LOG_DIR", "./logs"),
            ),
        )

    @classmethod
    def load_from_file(cls, file_path: str) -> "Config":
        """Load configuration from JSON file"""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls(**data)

    def save_to_file(self, file_path: str) -> None:
        """Save configuration to JSON file"""
        with open(file_path, 'w') as f:
            json.dump(self.model_dump(), f, indent=2)
