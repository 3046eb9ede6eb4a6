"""
Utility functions for Django settings configuration.

Loads environment-specific variables with python-decouple so each deployment
environment can keep its own .env file next to the repository root.
"""

from pathlib import Path

from decouple import Config, RepositoryEnv
from decouple import config as default_config

ENV_FILES = {
    "development": ".env.dev",
    "production": ".env.production",
    "test": ".env.test",
}


def load_environment_config(environment):
    """
    Return a decouple config callable bound to the environment's .env file.

    Args:
        environment (str): 'development', 'production' or 'test'

    Returns:
        Config reading from the matching .env file, or the default decouple
        config (process environment plus a root .env) when the file is absent.
    """
    env_file_name = ENV_FILES.get(environment, ".env")
    env_file_path = Path(__file__).resolve().parent.parent.parent.parent / env_file_name

    if env_file_path.exists():
        return Config(RepositoryEnv(str(env_file_path)))
    return default_config
