import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

from config.types import N8nConnectionSettings


class EnvironmentManager:
    """
    Environment manager holding the settings and the n8n connection
    parameters used by the tools.
    """

    _instance = None

    # Default settings with their types
    DEFAULT_SETTINGS = {
        # Comma separated tool names that should not be registered
        "disabled_tools": ("", str),
    }

    # Default n8n settings with their types
    DEFAULT_N8N_SETTINGS = {
        "api_url": ("http://localhost:5678/api/v1", str),
        "api_key": (None, str),
        "request_timeout": (30, int),
        "max_retries": (0, int),
        "execution_timeout": (300, int),
    }

    # Create mapping dynamically - each setting can be set via its uppercase env var
    ENV_MAPPING = {setting.upper(): setting for setting in DEFAULT_SETTINGS.keys()}

    N8N_PREFIX = "N8N_"

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize environment with default values"""
        self.env_variables: Dict[str, str] = {}
        self.n8n_parameters: Dict[str, Any] = {}
        self.settings: Dict[str, Any] = {}
        self.logger = logging.getLogger(__name__)

        # Initialize settings with default values
        for key, (default_value, _) in self.DEFAULT_SETTINGS.items():
            self.settings[key] = default_value

        self._load_from_env_file()

    def _get_git_root(self) -> Optional[Path]:
        """Try to determine the git root directory

        Returns:
            Path to the git root directory or None if not found
        """
        dir_to_check = Path.cwd()
        for _ in range(10):  # Limit the search depth
            git_dir = dir_to_check / ".git"
            if git_dir.exists() and git_dir.is_dir():
                return dir_to_check

            parent_dir = dir_to_check.parent
            if parent_dir == dir_to_check:  # Reached the root
                break
            dir_to_check = parent_dir

        return None

    def _convert_value(self, value: str, target_type: type) -> Any:
        """Convert string value to target type"""
        if target_type == bool:
            return value.lower() == "true"
        return target_type(value)

    def _load_from_env_file(self):
        """Find and load variables from the first .env file found"""
        env_file_paths = []

        git_root = self._get_git_root()
        if git_root:
            env_file_paths.append(git_root / ".env")

        env_file_paths.append(Path.cwd() / ".env")

        try:
            env_file_paths.append(Path.home() / ".env")
        except (RuntimeError, OSError):
            # Skip home directory if it can't be determined
            pass

        for env_path in env_file_paths:
            if env_path.exists() and env_path.is_file():
                self.logger.info(f"Loading environment from: {env_path}")
                self._parse_env_file(env_path)
                return

        self.logger.debug(
            "No .env file found, tried: "
            + ", ".join(str(path) for path in env_file_paths)
        )

    def _apply_variable(self, key: str, value: str):
        """Route a single KEY=value pair to settings or n8n parameters"""
        self.env_variables[key] = value

        if key in self.ENV_MAPPING:
            setting_name = self.ENV_MAPPING[key]
            _, target_type = self.DEFAULT_SETTINGS[setting_name]
            self.settings[setting_name] = self._convert_value(value, target_type)
        elif key.startswith(self.N8N_PREFIX):
            param_name = key[len(self.N8N_PREFIX):].lower()
            self.n8n_parameters[param_name] = value

    def _parse_env_file(self, env_file_path: Path):
        """Parse a .env file and load variables into environment"""
        try:
            with open(env_file_path, "r") as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, value = line.split("=", 1)
                        key = key.strip()
                        value = value.strip()

                        # Remove quotes if present
                        if (value.startswith('"') and value.endswith('"')) or (
                            value.startswith("'") and value.endswith("'")
                        ):
                            value = value[1:-1]

                        self._apply_variable(key, value)

        except (OSError, ValueError) as e:
            self.logger.error(f"Error parsing .env file {env_file_path}: {e}")

    def load(self):
        """Load all environment information, OS variables taking precedence"""
        self._load_from_env_file()

        for key, value in os.environ.items():
            try:
                self._apply_variable(key, value)
            except ValueError as e:
                self.logger.warning(f"Ignoring invalid value for {key}: {e}")

        return self

    def get_setting(self, name: str, default: Any = None) -> Any:
        """Get a setting value by name"""
        return self.settings.get(name, default)

    def get_n8n_parameters(self) -> Dict[str, Any]:
        """Get n8n parameters with defaults applied and values typed"""
        result = {}
        for key, (default_value, _) in self.DEFAULT_N8N_SETTINGS.items():
            result[key] = default_value

        for key, value in self.n8n_parameters.items():
            if key in self.DEFAULT_N8N_SETTINGS and isinstance(value, str):
                _, target_type = self.DEFAULT_N8N_SETTINGS[key]
                try:
                    value = self._convert_value(value, target_type)
                except ValueError:
                    self.logger.warning(
                        f"Invalid value for n8n parameter {key}: {value!r}, using default"
                    )
                    continue
            result[key] = value

        return result

    def get_n8n_parameter(self, name: str, default: Any = None) -> Any:
        """Get a specific n8n parameter"""
        return self.get_n8n_parameters().get(name, default)

    def get_n8n_settings(self) -> N8nConnectionSettings:
        """Get the n8n parameters as a validated settings object

        Raises:
            pydantic.ValidationError: If a parameter is out of range
        """
        params = self.get_n8n_parameters()
        known = {key: params[key] for key in self.DEFAULT_N8N_SETTINGS if params.get(key) is not None}
        return N8nConnectionSettings(**known)


# Create singleton instance
env_manager = EnvironmentManager()
