"""
Configuration management for the simulated ML server.

Loads environment variables from .env file and provides typed access to configuration.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)


class Config:
    """Configuration class for the ML server."""

    # Server
    ML_SERVER_HOST = os.getenv("ML_SERVER_HOST", "127.0.0.1")
    ML_SERVER_PORT = int(os.getenv("ML_SERVER_PORT", "8080"))

    # Models
    MODEL_BACKEND = os.getenv("MODEL_BACKEND", "stub")

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    SUPPORTED_BACKENDS = ("stub",)

    @classmethod
    def validate(cls) -> bool:
        """Validate that configuration values are usable."""
        problems = []
        if cls.MODEL_BACKEND not in cls.SUPPORTED_BACKENDS:
            problems.append(f"MODEL_BACKEND={cls.MODEL_BACKEND!r} (supported: {', '.join(cls.SUPPORTED_BACKENDS)})")
        if not 0 < cls.ML_SERVER_PORT < 65536:
            problems.append(f"ML_SERVER_PORT={cls.ML_SERVER_PORT}")
        if not isinstance(logging.getLevelName(cls.LOG_LEVEL), int):
            problems.append(f"LOG_LEVEL={cls.LOG_LEVEL!r}")

        if problems:
            print(f"⚠️  Invalid configuration: {'; '.join(problems)}")
            print(f"   Please fix them in .env file")
            return False

        return True


if __name__ == "__main__":
    # Test configuration loading
    print("Configuration loaded:")
    print(f"  Listen: {Config.ML_SERVER_HOST}:{Config.ML_SERVER_PORT}")
    print(f"  Model Backend: {Config.MODEL_BACKEND}")
    print(f"  Environment: {Config.ENVIRONMENT}")
    print(f"  Log Level: {Config.LOG_LEVEL}")
    print(f"\n  Validation: {'✓ PASSED' if Config.validate() else '✗ FAILED'}")
