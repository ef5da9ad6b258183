import os
from typing import Optional

from dotenv import load_dotenv
from loguru import logger


class EnvironmentHelper:
    """Helper class to manage environment configuration and loading."""

    def __init__(self):
        self.environment = self._detect_environment()
        self._load_environment_config()

    def _detect_environment(self) -> str:
        """Detect the current environment from JOBTRACE_ENV or default to development."""
        return os.getenv("JOBTRACE_ENV", "development").lower()

    def _load_environment_config(self):
        """Load the appropriate .env file based on detected environment."""
        if self.environment == "production":
            dotenv_path = ".env.production"
        elif self.environment == "staging":
            dotenv_path = ".env.staging"
        else:
            dotenv_path = ".env"
        # Missing files are fine, load_dotenv just returns False
        loaded = load_dotenv(dotenv_path=dotenv_path)
        logger.debug("Environment {} (dotenv {} loaded={})", self.environment, dotenv_path, loaded)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get an environment variable value."""
        return os.getenv(key, default)


# Create a global instance of the helper
env = EnvironmentHelper()
