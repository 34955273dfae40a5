"""
Configuration for the library server
Supports local development, testing, and production
Environment-aware configuration based on APP_ENV
"""

import os
from dataclasses import dataclass
from typing import Optional, Literal
from pathlib import Path
from dotenv import load_dotenv

# Environment modes
EnvironmentMode = Literal["development", "test", "production"]


def load_app_environment(mode: Optional[str] = None) -> str:
    """
    Load environment variables from the appropriate .env file.

    Priority:
    1. Explicit 'mode' argument
    2. APP_ENV environment variable
    3. Default to 'development'

    Loads .env.{mode} if it exists, falling back to .env
    """
    if not mode:
        mode = os.getenv('APP_ENV', 'development')

    base_path = Path(__file__).parent
    env_file = base_path / f'.env.{mode}'
    if not env_file.exists():
        env_file = base_path / '.env'

    if env_file.exists():
        # override=False lets variables set by the host take precedence
        load_dotenv(env_file, override=False)

    return mode


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{value}'") from None


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration"""

    host: str
    port: int
    database: str
    user: str
    password: str

    # Connection pool settings
    min_pool_size: int = 2
    max_pool_size: int = 10
    command_timeout: int = 60  # seconds

    ssl_mode: str = "prefer"

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> 'DatabaseConfig':
        """
        Load configuration from environment variables

        Environment variables:
        - APP_ENV: Environment mode (development, test, production)
        - DB_HOST: Database host (default: localhost)
        - DB_PORT: Database port (default: 5432)
        - DB_NAME: Database name (default: library)
        - DB_USER: Database user
        - DB_PASSWORD: Database password
        - DB_SSL_MODE: SSL mode (default: prefer in development, require otherwise)
        """
        mode = load_app_environment(mode)

        config = cls(
            host=os.getenv('DB_HOST', 'localhost'),
            port=_env_int('DB_PORT', 5432),
            database=os.getenv('DB_NAME', 'library_test' if mode == 'test' else 'library'),
            user=os.getenv('DB_USER', 'postgres'),
            password=os.getenv('DB_PASSWORD', ''),
            ssl_mode=os.getenv('DB_SSL_MODE', 'require' if mode == 'production' else 'prefer'),
            min_pool_size=_env_int('DB_MIN_POOL_SIZE', 2),
            max_pool_size=_env_int('DB_MAX_POOL_SIZE', 10),
            command_timeout=_env_int('DB_COMMAND_TIMEOUT', 60),
        )

        config.validate_safety(mode)
        return config

    def validate_safety(self, mode: str):
        """Ensure configuration is safe for the requested mode"""
        if mode == 'test':
            if 'test' not in self.database:
                raise ValueError(f"SAFETY ERROR: Test mode requested but database is '{self.database}'. Test database must contain 'test'.")
            if 'prod' in self.database:
                raise ValueError(f"SAFETY ERROR: Test mode requested but database '{self.database}' appears to be production.")


@dataclass
class ServerConfig:
    """
    HTTP server and library policy settings

    Environment Variables:
    - API_PREFIX: Prefix of every REST route (default: /api)
    - HOST / PORT: Bind address (default: 127.0.0.1:3000)
    - DEFAULT_LIMIT: Page size when a request does not pass limit (default: 100)
    - MAX_LIMIT: Largest page a request may ask for (default: 1000)
    - LOAN_DAYS: Loan period for checkouts and renewals (default: 21)
    """
    api_prefix: str = "/api"
    host: str = "127.0.0.1"
    port: int = 3000
    default_limit: int = 100
    max_limit: int = 1000
    loan_days: int = 21

    def __post_init__(self):
        if self.api_prefix and not self.api_prefix.startswith('/'):
            self.api_prefix = '/' + self.api_prefix
        self.api_prefix = self.api_prefix.rstrip('/')
        if self.default_limit < 1 or self.max_limit < self.default_limit:
            raise ValueError("DEFAULT_LIMIT must be positive and not larger than MAX_LIMIT")
        if self.loan_days < 1:
            raise ValueError("LOAN_DAYS must be positive")

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> 'ServerConfig':
        load_app_environment(mode)
        return cls(
            api_prefix=os.getenv('API_PREFIX', '/api'),
            host=os.getenv('HOST', '127.0.0.1'),
            port=_env_int('PORT', 3000),
            default_limit=_env_int('DEFAULT_LIMIT', 100),
            max_limit=_env_int('MAX_LIMIT', 1000),
            loan_days=_env_int('LOAN_DAYS', 21),
        )


# Example .env file content
ENV_TEMPLATE = """
# Application Environment
# Options: development, test, production
APP_ENV=development

# Database Configuration
DB_HOST=localhost
DB_PORT=5432
DB_NAME=library
DB_USER=postgres
DB_PASSWORD=your_password_here
DB_SSL_MODE=prefer

# Connection Pool Settings
DB_MIN_POOL_SIZE=2
DB_MAX_POOL_SIZE=10

# HTTP Server
API_PREFIX=/api
HOST=127.0.0.1
PORT=3000

# Paging and loans
DEFAULT_LIMIT=100
MAX_LIMIT=1000
LOAN_DAYS=21
"""


def create_env_file(filepath: str = ".env"):
    """Create a template .env file"""
    with open(filepath, 'w') as f:
        f.write(ENV_TEMPLATE)
    print(f"Created template .env file at {filepath}")
