#!/usr/bin/env python3
import sys
import logging
import asyncio
import json
from pathlib import Path
from typing import Any, Dict

import pytomlpp
from pydantic import ValidationError
from rich.console import Console
from rich.prompt import Confirm
from rich.text import Text

from migrate_app.cli import parse_arguments
from migrate_app.config_manager import (
    ConfigManager, ConfigHelper, interactive_api_setup,
    RootConfigModel, BaseProfileSettings, generate_default_toml_content,
    DEFAULT_CONFIG_FILENAME
)
from migrate_app.log_setup import setup_logging, LOGGER_NAME
from migrate_app.main_processor import MigrationProcessor
from migrate_app.api_clients import initialize_api_client, close_api_client
from migrate_app.enums import SourceType
from migrate_app.exceptions import MigratorError, UserAbortError, ConfigError as AppConfigError
from migrate_app.target_client import HttpMigrationClient
from migrate_app.ui_utils import print_stderr_message
from migrate_app.wizard import MigrationWizard

log = logging.getLogger(LOGGER_NAME)


def _run_setup(args, is_quiet: bool) -> int:
    if is_quiet:
        print("ERROR: Interactive setup cannot be run in quiet mode.", file=sys.stderr)
        return 1
    log_level_val = getattr(logging, (getattr(args, 'log_level', None) or 'INFO').upper(), logging.INFO)
    temp_handler = logging.StreamHandler(sys.stderr)
    temp_handler.setFormatter(logging.Formatter('%(levelname)-8s: %(message)s'))
    temp_handler.setLevel(log_level_val)
    root_logger = logging.getLogger()
    original_root_handlers = root_logger.handlers[:]
    original_root_level = root_logger.level
    root_logger.handlers = [temp_handler]
    root_logger.setLevel(log_level_val)
    try:
        log.debug(f"Executing setup command with .env path: {args.dotenv_path}")
        success = interactive_api_setup(dotenv_path_override=args.dotenv_path, quiet_mode=is_quiet)
    finally:
        root_logger.handlers = original_root_handlers
        root_logger.setLevel(original_root_level)
    return 0 if success else 1


def _run_config_generate(args, console: Console, is_quiet: bool) -> int:
    if not log.handlers:
        setup_logging(log_level_console=logging.INFO)
    log.info("Executing 'config generate' command.")
    target_path: Path = args.output.resolve() if args.output else (Path.cwd() / DEFAULT_CONFIG_FILENAME).resolve()
    log.debug(f"Generate config: target path {target_path}")

    if target_path.exists() and not args.force:
        if is_quiet:
            print(f"Config file {target_path} exists. Use --force to overwrite (quiet mode).", file=sys.stderr)
            return 1
        console.print(f"[bold yellow]Warning:[/bold yellow] Config file already exists at [cyan]{target_path}[/cyan].")
        if not Confirm.ask("Overwrite existing file?", default=False, console=console):
            console.print("Config file generation cancelled.")
            return 0
        log.info(f"User confirmed overwrite for existing config file at {target_path}")

    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_text(generate_default_toml_content(), encoding="utf-8")
    except OSError as e:
        print(f"Error: Could not write configuration file to {target_path}: {e}", file=sys.stderr)
        log.error(f"Failed to write generated config to {target_path}: {e}")
        return 1
    console.print(f"[green]✓ Default configuration file generated successfully at: {target_path}[/green]")
    log.info(f"Default config.toml generated at {target_path}")
    return 0


def _show_config(args, console: Console, manager: ConfigManager, cfg: ConfigHelper) -> None:
    console.print(f"--- Configuration Effective for Profile: '{args.profile}' ---")
    if manager.config_path.is_file():
        console.print(f"Config file loaded: [cyan]{manager.config_path}[/cyan]")
    else:
        console.print(f"Config file [yellow]{manager.config_path}[/yellow] not found. Using internal defaults and environment variables.")
    if getattr(args, 'raw', False):
        console.print("\n--- Raw TOML Content ---")
        raw_content = manager.get_raw_toml_content()
        console.print(raw_content if raw_content else "# No config file loaded or content was empty.", markup=False)
        return
    effective_settings: Dict[str, Any] = {key: cfg(key, default_value=None) for key in BaseProfileSettings.model_fields}
    effective_settings["_api_info_"] = {
        "target_api_key_loaded": bool(cfg.get_api_key('target')),
        "source_api_key_loaded": bool(cfg.get_api_key('source')),
    }
    console.print(json.dumps(effective_settings, indent=2, default=str), markup=False)


def _validate_config(console: Console, manager: ConfigManager, is_quiet: bool) -> int:
    config_path = manager.config_path
    console.print(f"--- Validating Configuration File: {config_path} ---")
    if not config_path.is_file():
        console.print(f"Config file '[yellow]{config_path}[/yellow]' not found. Nothing to validate.")
        return 0
    try:
        cfg_dict = pytomlpp.loads(config_path.read_text(encoding='utf-8'))
        root = RootConfigModel.model_validate(cfg_dict)
        for section in (root.model_extra or {}).values():
            if isinstance(section, dict):
                BaseProfileSettings.model_validate(section)
    except pytomlpp.DecodeError as e_toml:
        print_stderr_message(console, Text(f"Error: Config file '{config_path}' is not valid TOML: {e_toml}", style="bold red"), is_quiet)
        log.error(f"Config file TOML validation failed during 'config validate': {e_toml}")
        return 2
    except ValidationError as e_val:
        print_stderr_message(console, Text(f"Error: Config file '{config_path}' validation failed:", style="bold red"), is_quiet)
        for error_item in e_val.errors():
            loc = " -> ".join(map(str, error_item['loc']))
            print_stderr_message(console, Text(f"  - Field `{loc}`: {error_item['msg']} (type: {error_item['type']})"), is_quiet)
        log.error(f"Config file Pydantic validation failed during 'config validate': {e_val.errors()}")
        return 2
    console.print("[green]Configuration file syntax is valid and conforms to the schema.[/green]")
    log.info(f"Config file '{config_path}' validated successfully by 'config validate' command.")
    return 0


async def _run_detect(args, console: Console, cfg: ConfigHelper) -> int:
    initialize_api_client(cfg)
    client = HttpMigrationClient(cfg)
    source_type = SourceType(cfg('default_source_type', 'radarr', arg_value=getattr(args, 'source_type', None)))
    wizard = MigrationWizard(client, source_type=source_type)
    found = await wizard.detect_source_database()
    if found:
        console.print(f"[green]{source_type} database found at:[/green] {found}")
        return 0
    console.print(f"[yellow]No {source_type} database found at the default locations.[/yellow]")
    return 1


async def _run_migrate(args, console: Console, cfg: ConfigHelper) -> int:
    if not initialize_api_client(cfg):
        print_stderr_message(console, Text("Warning: TARGET_API_KEY is not set; the target server will likely reject requests. Run 'setup' to configure it.", style="yellow"), getattr(args, 'quiet', False))
    client = HttpMigrationClient(cfg)
    processor = MigrationProcessor(args, cfg, client, console=console)
    await processor.run()
    return 0


async def main_async(argv=None) -> int:
    args = parse_arguments(argv)
    is_quiet = getattr(args, 'quiet', False)
    console = Console(quiet=is_quiet)

    try:
        if args.command == 'setup':
            return _run_setup(args, is_quiet)
        if args.command == 'config' and args.config_command == 'generate':
            return _run_config_generate(args, console, is_quiet)

        config_manager_instance = ConfigManager(
            config_path_override=getattr(args, 'config', None),
            interactive_fallback=not is_quiet and args.command != 'config',
            quiet_mode=is_quiet
        )
        cfg = ConfigHelper(config_manager_instance, args)

        log_level_str = cfg('log_level', 'INFO', arg_value=getattr(args, 'log_level', None))
        setup_logging(
            log_level_console=getattr(logging, str(log_level_str).upper(), logging.INFO),
            log_file=cfg('log_file', None, arg_value=getattr(args, 'log_file', None))
        )
        log.debug(f"Full logging configured. Parsed args: {args}")
        log.debug(f"Using profile: {args.profile}")

        if args.command == 'config':
            if args.config_command == 'show':
                _show_config(args, console, config_manager_instance, cfg)
                return 0
            return _validate_config(console, config_manager_instance, is_quiet)
        if args.command == 'detect':
            return await _run_detect(args, console, cfg)
        if args.command == 'migrate':
            return await _run_migrate(args, console, cfg)
        raise MigratorError(f"Unknown command: {args.command}")

    except AppConfigError as e_app_cfg_fatal:
        print(f"FATAL CONFIGURATION ERROR: {e_app_cfg_fatal}", file=sys.stderr)
        if log.handlers: log.critical(f"Config Error: {e_app_cfg_fatal}", exc_info=True)
        return 2
    except UserAbortError as e_abort:
        if log.handlers: log.warning(str(e_abort))
        print(f"\n{e_abort}", file=sys.stderr)
        return 130
    except MigratorError as e_app:
        if log.handlers: log.error(f"Application Error: {e_app}", exc_info=log.getEffectiveLevel() <= logging.DEBUG)
        print_stderr_message(console, Text(f"ERROR: {e_app}", style="bold red"), is_quiet)
        return 1
    except KeyboardInterrupt:
        if log.handlers: log.warning("Operation interrupted by user.")
        print("\nCancelled by user.", file=sys.stderr)
        return 130
    except Exception as e_fatal:
        print(f"\nFATAL UNEXPECTED ERROR (main_async): {type(e_fatal).__name__}: {e_fatal}", file=sys.stderr)
        print("Please check the log file for more details if logging was enabled.", file=sys.stderr)
        if log.handlers: log.critical(f"FATAL UNHANDLED ERROR in main_async: {type(e_fatal).__name__}: {e_fatal}", exc_info=True)
        return 1
    finally:
        close_api_client()


def main() -> None:
    try:
        sys.exit(asyncio.run(main_async()))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user (main entry).", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
