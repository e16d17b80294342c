# migrate_app/config_manager.py

import os
import sys
import logging
import argparse
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

import platformdirs
import pytomlpp
from dotenv import load_dotenv, find_dotenv, dotenv_values, set_key, unset_key
from pydantic import BaseModel, Field, ValidationError, field_validator
from rich.console import Console
from rich.prompt import Confirm

from .exceptions import ConfigError

log = logging.getLogger(__name__)
APP_NAME = "arr_migrate"
APP_AUTHOR = "arr_migrate"
DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_DOTENV_FILENAME = ".env"

ENV_KEYS = {
    'target_api_key': "TARGET_API_KEY",
    'source_api_key': "SOURCE_API_KEY",
}


class BaseProfileSettings(BaseModel):
    # Target API
    target_url: Optional[str] = Field(default="http://localhost:8080", description="Base URL of the target library server.")
    request_timeout: Optional[float] = Field(default=30.0, gt=0.0, description="Timeout (seconds) for a single HTTP request.")
    api_rate_limit_delay: Optional[float] = Field(default=0.0, ge=0.0, description="Minimum delay (seconds) between API calls.")
    api_retry_attempts: Optional[int] = Field(default=3, ge=0, description="Number of attempts for transient API failures (timeouts, 429, 5xx).")
    api_retry_wait_seconds: Optional[float] = Field(default=2.0, ge=0.0, description="Wait time (seconds) between API retry attempts.")
    progress_poll_interval: Optional[float] = Field(default=1.0, gt=0.0, description="Interval (seconds) between import progress polls.")
    progress_timeout: Optional[float] = Field(default=0.0, ge=0.0, description="Give up watching an import after this many seconds (0 waits forever).")

    # Source Defaults
    default_source_type: Optional[str] = Field(default='radarr', description="Source application: 'radarr' (movies) or 'sonarr' (series).")
    default_connection_method: Optional[str] = Field(default='sqlite', description="How to read the source: 'sqlite' or 'api'.")
    source_url: Optional[str] = Field(default=None, description="Source API URL (used with connection method 'api').")
    source_db_path: Optional[str] = Field(default=None, description="Path to the source database (used with connection method 'sqlite').")

    # Mapping
    auto_match: Optional[bool] = Field(default=True, description="Pre-fill mappings by matching names and paths.")
    enable_unused_profiles: Optional[bool] = Field(default=False, description="Require a mapping for quality profiles no source item uses.")

    # Preview
    preview_view_mode: Optional[str] = Field(default='table', description="Preview layout: 'table' or 'compact'.")
    preview_columns: Optional[List[str]] = Field(
        default_factory=lambda: ['year', 'quality', 'profile', 'monitored', 'status'],
        description="Preview table columns shown after the title."
    )
    preview_page_size: Optional[int] = Field(default=50, ge=0, description="Maximum preview rows printed at once (0 for all).")

    # Import
    error_list_limit: Optional[int] = Field(default=50, ge=1, description="Maximum import errors listed in the completion report.")
    confirm_before_import: Optional[bool] = Field(default=True, description="Ask for confirmation before submitting the import.")

    # Logging Options
    log_file: Optional[str] = Field(default=None, description="Path to log file (e.g., arr_migrate.log).")
    log_level: Optional[str] = Field(default='INFO', description="Logging level: DEBUG, INFO, WARNING, ERROR.")

    @field_validator('log_level', mode='before')
    @classmethod
    def check_log_level(cls, v: Any) -> Optional[str]:
        if v is not None and isinstance(v, str) and v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError("log_level must be one of DEBUG, INFO, WARNING, ERROR")
        return v.upper() if isinstance(v, str) else None

    @field_validator('default_source_type', mode='before')
    @classmethod
    def check_source_type(cls, v: Any) -> Optional[str]:
        if v is not None and isinstance(v, str) and v.lower() not in ['radarr', 'sonarr']:
            raise ValueError("default_source_type must be 'radarr' or 'sonarr'")
        return v.lower() if isinstance(v, str) else 'radarr'

    @field_validator('default_connection_method', mode='before')
    @classmethod
    def check_connection_method(cls, v: Any) -> Optional[str]:
        if v is not None and isinstance(v, str) and v.lower() not in ['sqlite', 'api']:
            raise ValueError("default_connection_method must be 'sqlite' or 'api'")
        return v.lower() if isinstance(v, str) else 'sqlite'

    @field_validator('preview_view_mode', mode='before')
    @classmethod
    def check_view_mode(cls, v: Any) -> Optional[str]:
        if v is not None and isinstance(v, str) and v.lower() not in ['table', 'compact']:
            raise ValueError("preview_view_mode must be 'table' or 'compact'")
        return v.lower() if isinstance(v, str) else 'table'

    @field_validator('preview_columns', mode='before')
    @classmethod
    def check_preview_columns(cls, v: Any) -> List[str]:
        allowed = {'year', 'quality', 'profile', 'monitored', 'status', 'episodes', 'reason'}
        if v is None: return ['year', 'quality', 'profile', 'monitored', 'status']
        if isinstance(v, str):
            cols = [c.strip().lower() for c in v.split(',') if c.strip()]
        elif isinstance(v, list):
            cols = [str(c).strip().lower() for c in v if str(c).strip()]
        else:
            raise ValueError("preview_columns must be a list or comma-separated string")
        unknown = [c for c in cols if c not in allowed]
        if unknown:
            raise ValueError(f"Unknown preview column(s): {unknown}. Allowed: {sorted(allowed)}")
        return cols

    @field_validator('target_url', 'source_url', mode='before')
    @classmethod
    def check_url(cls, v: Any) -> Optional[str]:
        if v is None or v == "": return None
        if not isinstance(v, str) or not v.lower().startswith(('http://', 'https://')):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip('/')

    @field_validator('auto_match', 'enable_unused_profiles', 'confirm_before_import', mode='before')
    @classmethod
    def check_bool(cls, v: Any) -> Optional[bool]:
        if v is not None and not isinstance(v, bool):
            raise ValueError("value must be a boolean (true/false)")
        return v


class DefaultSettings(BaseProfileSettings):
    pass

class RootConfigModel(BaseModel):
    default: DefaultSettings = Field(default_factory=DefaultSettings)
    model_config = {'extra': 'allow'}


def generate_default_toml_content() -> str:
    default_settings = DefaultSettings()
    content_lines = ["# arr-migrate Default Configuration File"]
    content_lines.append("# API keys belong in a .env file (TARGET_API_KEY, SOURCE_API_KEY); run 'setup' to create one.\n")

    sections: Dict[str, List[str]] = {
        "Target API": ['target_url', 'request_timeout', 'api_rate_limit_delay', 'api_retry_attempts', 'api_retry_wait_seconds', 'progress_poll_interval', 'progress_timeout'],
        "Source Defaults": ['default_source_type', 'default_connection_method', 'source_url', 'source_db_path'],
        "Mapping": ['auto_match', 'enable_unused_profiles'],
        "Preview": ['preview_view_mode', 'preview_columns', 'preview_page_size'],
        "Import": ['error_list_limit', 'confirm_before_import'],
        "Logging Options": ['log_file', 'log_level'],
    }

    content_lines.append("[default]")
    for section_name, keys in sections.items():
        content_lines.append(f"\n  # --- {section_name} ---")
        for key in keys:
            field_info = BaseProfileSettings.model_fields.get(key)
            if not field_info:
                continue
            default_value = getattr(default_settings, key)
            if field_info.description:
                content_lines.append(f"  # {field_info.description}")

            if default_value is None:
                content_lines.append(f"  # {key} = # (not set)")
                continue
            if isinstance(default_value, str):
                escaped = default_value.replace('\\', '\\\\').replace('"', '\\"')
                toml_value_str = f'"{escaped}"'
            elif isinstance(default_value, bool):
                toml_value_str = str(default_value).lower()
            elif isinstance(default_value, list):
                toml_value_str = "[" + ", ".join(f'"{item}"' for item in default_value) + "]"
            else:
                toml_value_str = str(default_value)
            content_lines.append(f"  {key} = {toml_value_str}")

    content_lines.append("\n# You can create other profiles, e.g.:")
    content_lines.append("# [sonarr_api]")
    content_lines.append("# default_source_type = \"sonarr\"")
    content_lines.append("# default_connection_method = \"api\"")
    content_lines.append("# source_url = \"http://localhost:8989\"")
    return "\n".join(content_lines) + "\n"


def user_config_path() -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR, ensure_exists=False)) / DEFAULT_CONFIG_FILENAME


class ConfigManager:
    def __init__(self, config_path_override: Optional[Path] = None, interactive_fallback: bool = True, quiet_mode: bool = False):
        self.console = Console(quiet=quiet_mode)
        self.quiet_mode = quiet_mode

        self.config_path = self._resolve_config_path(config_path_override)
        self._raw_toml_content_str: Optional[str] = None
        self._config = self._load_config(interactive_fallback=interactive_fallback)
        self._api_keys = self._load_env_keys()
        log.debug(f"Config path used: {self.config_path}")

    def _resolve_config_path(self, config_path_override: Optional[Path]) -> Path:
        if config_path_override:
            p = Path(config_path_override)
            log.debug(f"Using explicit config path target: {p.resolve()}")
            return p.resolve()

        cwd_path = Path.cwd() / DEFAULT_CONFIG_FILENAME
        if cwd_path.is_file():
            log.debug(f"Found config file in current directory: {cwd_path}")
            return cwd_path.resolve()

        user_config_path_obj: Optional[Path] = None
        try:
            user_config_path_obj = user_config_path()
            if user_config_path_obj.is_file():
                log.debug(f"Found config file in user config directory: {user_config_path_obj}")
                return user_config_path_obj.resolve()
        except OSError as e:
            log.warning(f"Could not access or check user config directory: {e}")

        proj_path = Path(__file__).parent.parent.resolve() / DEFAULT_CONFIG_FILENAME
        if proj_path.is_file():
            log.debug(f"Found config file in project directory: {proj_path}")
            return proj_path.resolve()

        if user_config_path_obj:
            log.debug(f"No config file found. Preferred default creation location: {user_config_path_obj.resolve()}")
            return user_config_path_obj.resolve()

        log.debug(f"No config file found. Defaulting to CWD for potential creation: {cwd_path.resolve()}")
        return cwd_path.resolve()

    def _create_default_config_interactively(self, target_path: Path) -> bool:
        if self.quiet_mode:
            log.info("Quiet mode: Skipping interactive creation of default config file.")
            return False

        self.console.print("[yellow]Configuration file not found at an expected location.[/yellow]")
        self.console.print("A default configuration file can be created at:")
        self.console.print(f"  [cyan]{target_path}[/cyan]")
        try:
            if not Confirm.ask("Would you like to create a default configuration file now?", default=True):
                self.console.print("[yellow]Skipping default configuration file creation. Using internal defaults.[/yellow]")
                log.info("User opted out of creating a default configuration file.")
                return False
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_text(generate_default_toml_content(), encoding="utf-8")
            self.console.print(f"[green]✓ Default configuration file created at: {target_path}[/green]")
            log.info(f"Default configuration file created at {target_path}")
            return True
        except OSError as e_io:
            self.console.print(f"[bold red]Error creating configuration file: {e_io}[/bold red]")
            log.error(f"Failed to write default config to {target_path}: {e_io}")
            return False
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Config creation cancelled by user.[/yellow]")
            log.warning("User cancelled config creation during interactive prompt.")
            return False

    def _defaults(self, reason: str) -> Dict[str, Any]:
        self._raw_toml_content_str = f"# {reason}\n"
        return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)

    def _load_config(self, interactive_fallback: bool = True) -> Dict[str, Any]:
        if not self.config_path.is_file():
            if not (interactive_fallback and self._create_default_config_interactively(self.config_path)):
                log.warning(f"Config file not found at '{self.config_path}'. Using internal defaults.")
                return self._defaults("No configuration file present or created.")

        try:
            self._raw_toml_content_str = self.config_path.read_text(encoding='utf-8')
        except OSError as e_os:
            self._raw_toml_content_str = f"# Error reading config file: {e_os}\n"
            raise ConfigError(f"Failed to read config file '{self.config_path}': {e_os}")

        if not self._raw_toml_content_str.strip():
            log.warning(f"Config file '{self.config_path}' is empty. Using internal defaults.")
            return self._defaults("Config file was empty.")

        try:
            cfg_dict = pytomlpp.loads(self._raw_toml_content_str)
            log.info(f"Loaded configuration from '{self.config_path}'")
        except pytomlpp.DecodeError as e_toml:
            raise ConfigError(f"Failed to parse TOML config '{self.config_path}': {e_toml}")

        try:
            validated_config = RootConfigModel.model_validate(cfg_dict)
            log.debug("Config validation successful.")
        except ValidationError as e_val:
            raise ConfigError(format_validation_error(self.config_path, e_val)) from e_val

        # Named profiles are extra sections; validate them against the same schema
        for profile_name, profile_data in cfg_dict.items():
            if profile_name == 'default':
                continue
            if not isinstance(profile_data, dict):
                log.warning(f"Profile '{profile_name}' in config is not a table. Ignoring it.")
                continue
            try:
                BaseProfileSettings.model_validate(profile_data)
            except ValidationError as e_val:
                raise ConfigError(format_validation_error(self.config_path, e_val, prefix=profile_name)) from e_val
        return validated_config.model_dump(exclude_unset=False, by_alias=False)

    def get_raw_toml_content(self) -> Optional[str]:
        return self._raw_toml_content_str

    def _load_env_keys(self) -> Dict[str, Optional[str]]:
        keys: Dict[str, Optional[str]] = {}
        env_path: Union[str, Path, None] = find_dotenv(usecwd=True)
        if env_path:
            log.debug(f"Loading environment variables from: {env_path}")
            load_dotenv(dotenv_path=env_path)
        else:
            log.debug(".env file not found by find_dotenv. Checking os.getenv directly.")

        for key_name, env_name in ENV_KEYS.items():
            keys[key_name] = os.getenv(env_name)

        if any(keys.values()):
            log_msg_source = ".env file" if env_path else "environment variables"
            log.info(f"Loaded API keys from {log_msg_source}.")
        else:
            log.debug(f"No API keys ({', '.join(ENV_KEYS.values())}) found in .env or environment.")
        return keys

    def get_value(self, key: str, profile: str = 'default', command_line_value: Any = None, default_value: Any = None) -> Any:
        if command_line_value is not None:
            return command_line_value

        if profile != 'default':
            profile_settings_dict = self._config.get(profile, {})
            if isinstance(profile_settings_dict, dict) and profile_settings_dict.get(key) is not None:
                return profile_settings_dict[key]

        default_settings_dict = self._config.get('default', {})
        if isinstance(default_settings_dict, dict) and default_settings_dict.get(key) is not None:
            return default_settings_dict[key]

        # Fall back to the model's default if the caller gave none
        if default_value is None and key in BaseProfileSettings.model_fields:
            field_info = BaseProfileSettings.model_fields[key]
            if field_info.default_factory is not None:
                return field_info.default_factory()
            return field_info.default
        return default_value

    def get_api_key(self, service_name: str) -> Optional[str]:
        return self._api_keys.get(f"{service_name.lower()}_api_key")

    def get_profile_settings(self, profile: str = 'default') -> Dict[str, Any]:
        final_settings = DefaultSettings().model_dump(exclude_unset=False, by_alias=False)
        default_section = self._config.get('default', {})
        if isinstance(default_section, dict):
            final_settings.update({k: v for k, v in default_section.items() if v is not None})
        if profile != 'default':
            profile_section = self._config.get(profile)
            if isinstance(profile_section, dict):
                final_settings.update({k: v for k, v in profile_section.items() if v is not None})
            else:
                log.debug(f"Profile '{profile}' not found in config. Using default settings.")
        return final_settings


def format_validation_error(config_path: Path, e_val: ValidationError, prefix: Optional[str] = None) -> str:
    error_msgs = []
    for err in e_val.errors():
        loc = [prefix] if prefix else []
        loc.extend(str(p) for p in err['loc'])
        error_msgs.append(f"  - Field `{' -> '.join(loc)}`: {err['msg']}")
    return f"Config file '{config_path}' validation failed:\n" + "\n".join(error_msgs)


class ConfigHelper:
    def __init__(self, config_manager: ConfigManager, args_ns: argparse.Namespace):
        self.manager = config_manager
        self.args = args_ns
        self.profile = getattr(args_ns, 'profile', 'default') or 'default'

    def __call__(self, key: str, default_value: Any = None, arg_value: Any = None) -> Any:
        cmd_line_val = arg_value if arg_value is not None else getattr(self.args, key, None)
        return self.manager.get_value(key, self.profile, cmd_line_val, default_value)

    def get_api_key(self, service_name: str) -> Optional[str]:
        return self.manager.get_api_key(service_name)

    def get_list(self, key: str, default_value: Optional[List[Any]] = None) -> List[Any]:
        cmd_line_val = getattr(self.args, key, None)
        if isinstance(cmd_line_val, str):
            cmd_line_val = [item.strip() for item in cmd_line_val.split(',') if item.strip()]
        val = self.manager.get_value(key, self.profile, cmd_line_val, None)
        if isinstance(val, list):
            return val
        if isinstance(val, str):
            return [item.strip() for item in val.split(',') if item.strip()]
        return default_value if isinstance(default_value, list) else []


def interactive_api_setup(dotenv_path_override: Optional[Path] = None, quiet_mode: bool = False) -> bool:
    console = Console(quiet=quiet_mode)
    if quiet_mode:
        print("ERROR: Interactive API setup cannot run in quiet mode.", file=sys.stderr)
        return False

    resolved_dotenv_path = dotenv_path_override.resolve() if dotenv_path_override else Path.cwd() / DEFAULT_DOTENV_FILENAME
    log.info(f"Starting interactive API setup. Target .env file: {resolved_dotenv_path}")

    console.print("--- API Key Setup ---")
    console.print(f"This will guide you through setting up API keys in '{resolved_dotenv_path}'.")
    console.print("Press Enter to keep the current value (if any) or skip if not set.")

    current_values: Dict[str, Optional[str]] = {}
    if resolved_dotenv_path.is_file():
        current_values = dotenv_values(resolved_dotenv_path)

    prompts = {
        "TARGET_API_KEY": "Enter the API key of the target library server",
        "SOURCE_API_KEY": "Enter the API key of the source Radarr/Sonarr instance (only for API connections)",
    }
    updated_any = False
    try:
        for key, prompt in prompts.items():
            current = current_values.get(key) or ""
            prompt_text = f"{prompt}{f' [current: {current}]' if current else ''}: "
            user_input = console.input(prompt_text).strip()
            if user_input:
                set_key(resolved_dotenv_path, key, user_input, quote_mode="never")
                log.info(f"Set {key} in {resolved_dotenv_path}")
                console.print(f"  ✓ {key} set.")
                updated_any = True
            elif current:
                console.print(f"  - {key} kept.")
            elif key in current_values:
                unset_key(resolved_dotenv_path, key)
                log.info(f"Removed empty {key} from {resolved_dotenv_path}")
                console.print(f"  ✓ {key} removed (was empty).")
                updated_any = True
            else:
                console.print(f"  - {key} skipped (no value provided).")
    except KeyboardInterrupt:
        console.print("\nSetup cancelled by user.")
        log.warning("API setup cancelled by user during input.")
        return False
    except OSError as e_io:
        log.error(f"Could not write to {resolved_dotenv_path}: {e_io}", exc_info=True)
        console.print(f"\nError: Could not write to .env file at '{resolved_dotenv_path}'. Check permissions.")
        return False

    console.print(f"\nConfiguration saved to: {resolved_dotenv_path}" if updated_any else "\nNo changes made to .env file.")
    console.print("--- Setup Complete ---")
    return True
