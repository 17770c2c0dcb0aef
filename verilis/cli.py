"""Command-line entry point: ``verilis init`` and ``verilis generate``."""
import argparse
import asyncio
import os
import sys
from typing import Callable, List, Optional

from verilis import __version__
from verilis.app_config import (
    AppConfig,
    load_app_config,
    print_config_error,
    resolve_config_path,
    write_default_config
)
from verilis.errors import ConfigurationError
from verilis.logging_config import get_logger
from verilis.orchestrator import RunReport, TranslationOrchestrator
from verilis.provider import create_provider
from verilis.translation_task import TaskSettings

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_LANGUAGE_FAILED = 2

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='verilis',
        description="AI-driven i18n: incrementally translate flat string resources into many languages."
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    subparsers = parser.add_subparsers(dest='command', metavar='<command>')

    init_parser = subparsers.add_parser('init', help="create a starter configuration file in this project")
    init_parser.add_argument('--config', help="path of the configuration file to create")
    init_parser.add_argument('--force', action='store_true', help="overwrite an existing file without asking")

    generate_parser = subparsers.add_parser('generate', help="generate the language resources")
    generate_parser.add_argument('--config', help="path of the configuration file to read")
    generate_parser.add_argument('--dry-run', action='store_true', default=None,
                                 help="report pending work without calling the provider or writing files")
    return parser


def init_command(config_path: Optional[str], force: bool, ask: Callable[[str], str] = input) -> int:
    """Write the starter configuration, asking before overwriting an existing file."""
    config_file = resolve_config_path(os.getcwd(), config_path)
    if os.path.exists(config_file) and not force:
        print(f"Warning: {config_file} already exists.")
        answer = ask("Do you want to overwrite it? (y/N): ").strip().lower()
        if answer not in ('y', 'yes'):
            print("Operation cancelled.")
            return EXIT_OK

    try:
        write_default_config(config_file)
    except OSError as e:
        print(f"Error: Unable to write config file: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    print(f"Success: {config_file} has been created.")
    print("You can now edit this file to configure your i18n settings.")
    return EXIT_OK


async def run_pipeline(app_config: AppConfig, provider=None) -> RunReport:
    """
    Run the translation pipeline described by ``app_config``.

    Args:
        app_config: The loaded configuration.
        provider: Provider override; built from the configured client when omitted.

    Returns:
        The run report.
    """
    if provider is None and app_config.openai_client is not None:
        provider = create_provider(
            app_config.openai_client,
            app_config.model_name,
            app_config.requests_per_minute,
            request_timeout=app_config.request_timeout
        )

    orchestrator = TranslationOrchestrator(
        provider,
        app_config.output,
        app_config.language_table,
        settings=TaskSettings(
            max_attempts=app_config.max_attempts,
            max_request_tokens=app_config.max_request_tokens,
            verify_placeholders=app_config.verify_placeholders,
            model_name=app_config.model_name
        ),
        dry_run=app_config.dry_run
    )
    try:
        return await orchestrator.run(app_config.resource, app_config.support_languages)
    finally:
        if app_config.openai_client is not None:
            await app_config.openai_client.close()


def generate_command(config_path: Optional[str], dry_run: Optional[bool]) -> int:
    try:
        app_config = load_app_config(config_path, dry_run=dry_run)
    except ConfigurationError as config_exc:
        print_config_error(config_exc)
        return EXIT_CONFIG_ERROR

    try:
        report = asyncio.run(run_pipeline(app_config))
    except ConfigurationError as config_exc:
        logger.critical("%s", config_exc)
        return EXIT_CONFIG_ERROR

    return EXIT_LANGUAGE_FAILED if report.failed else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'init':
        return init_command(args.config, args.force)
    if args.command == 'generate':
        return generate_command(args.config, args.dry_run)

    parser.print_help()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
