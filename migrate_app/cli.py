import argparse
from pathlib import Path
from . import __version__

def create_parser():
    parser = argparse.ArgumentParser(
        description=f"Migrate a Radarr/Sonarr library into the target server (v{__version__}).",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', type=Path, help='Path to TOML config file (overrides default search).')
    parser.add_argument('--profile', type=str, default='default', help='Configuration profile to use.')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default=None, help='Console logging level (overrides config).')
    parser.add_argument('--log-file', type=str, default=None, help='Log file path (overrides config).')
    parser.add_argument('--quiet', '-q', action='store_true', default=False, help='Suppress all non-essential console output (progress bars, tables, info). Errors still shown.')

    subparsers = parser.add_subparsers(dest='command', required=True, help='Action to perform')

    # --- Migrate Subparser ---
    parser_migrate = subparsers.add_parser('migrate', help='Connect to a source, map folders/profiles, preview and import.', formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser_migrate.add_argument("--source-type", choices=['radarr', 'sonarr'], default=None, help="Source application (overrides config).")
    parser_migrate.add_argument("--method", choices=['sqlite', 'api'], default=None, help="How to read the source (overrides config).")
    # --- Source Location Group ---
    location_group = parser_migrate.add_mutually_exclusive_group()
    location_group.add_argument("--db-path", type=str, default=None, help="Path to the source SQLite database (implies --method sqlite).")
    location_group.add_argument("--url", type=str, default=None, help="Base URL of the running source application (implies --method api).")
    parser_migrate.add_argument("--api-key", type=str, default=None, help="Source API key (default: SOURCE_API_KEY from environment/.env).")
    parser_migrate.add_argument("--auto", action="store_true", default=False, help="Run without prompts: auto-match, select all new items and import.")
    parser_migrate.add_argument("--map-root", action="append", metavar="SOURCE_PATH=TARGET_ID", default=None, help="Map a source root folder to a target root folder id. Repeatable.")
    parser_migrate.add_argument("--map-profile", action="append", metavar="SOURCE_ID=TARGET_ID", default=None, help="Map a source quality profile id to a target profile id. Repeatable.")
    parser_migrate.add_argument("--skip-profile", action="append", type=int, metavar="SOURCE_ID", default=None, help="Exclude items using this source quality profile. Repeatable.")
    parser_migrate.add_argument("--filter", choices=['all', 'new', 'duplicate', 'skip'], default=None, help="Initial preview filter.")
    parser_migrate.add_argument("--dry-run", action="store_true", default=False, help="Stop after showing the preview.")
    parser_migrate.add_argument("--with-config", action="store_true", default=False, help="Also offer to import download clients, indexers, notifications and naming.")

    # --- Detect Subparser ---
    parser_detect = subparsers.add_parser('detect', help='Look for the source database at its default location.')
    parser_detect.add_argument("--source-type", choices=['radarr', 'sonarr'], default=None, help="Source application (overrides config).")

    # --- Config Subparser ---
    parser_config = subparsers.add_parser('config', help='Manage application configuration.')
    config_subparsers = parser_config.add_subparsers(dest='config_command', required=True, help='Configuration action to perform')

    parser_config_show = config_subparsers.add_parser('show', help='Show the currently loaded configuration.')
    parser_config_show.add_argument('--raw', action="store_true", help="Show the raw TOML content of the loaded config file without merging or validation.")

    config_subparsers.add_parser('validate', help='Validate the configuration file against the schema.')

    parser_config_generate = config_subparsers.add_parser('generate', help='Generate a default config.toml file.')
    parser_config_generate.add_argument('--output', type=Path, default=None, help='Optional path to save the generated config.toml. Defaults to config.toml in the current directory.')
    parser_config_generate.add_argument('--force', '-f', action='store_true', help='Overwrite the config file if it already exists at the target location.')

    # --- Setup Subparser ---
    parser_setup = subparsers.add_parser('setup', help='Interactively set up API keys.')
    parser_setup.add_argument("--dotenv-path", type=Path, default=None, help="Specify a custom path for the .env file (default: .env in CWD).")

    return parser

def parse_arguments(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, 'profile') or args.profile is None:
        args.profile = 'default'
    return args
