import argparse
import json
import pathlib
import sys
import time
from typing import TYPE_CHECKING, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from textbook_ocr._version import __version__
from textbook_ocr.audit import AuditEventType, get_audit_logger
from textbook_ocr.constants import LOG_LEVELS

if TYPE_CHECKING:
    from textbook_ocr.settings import Settings
    from textbook_ocr.transformations import TransformationService

console = Console()


# Helper functions
def read_text_argument(value: str) -> str:
    """Return the argument itself, or standard input when it is ``-``."""
    if value == "-":
        return sys.stdin.read()
    return value


def read_full_text(path: Optional[str]) -> Optional[str]:
    """Load page context from a file given with ``--full-text``."""
    if not path:
        return None
    from textbook_ocr.utils import FileIOUtils

    return FileIOUtils.read_text_file(pathlib.Path(path))


def print_markdown(markdown: str) -> None:
    """Render Markdown on a terminal, pass it through verbatim otherwise."""
    if console.is_terminal:
        console.print(Markdown(markdown))
    else:
        print(markdown)


def build_service(settings: "Settings") -> "TransformationService":
    from textbook_ocr.model_client import GenerativeModelClient
    from textbook_ocr.transformations import TransformationService

    return TransformationService(GenerativeModelClient(settings.get_model_config()))


# Command handler functions
def handle_serve_command(args: argparse.Namespace, settings: "Settings") -> None:
    """Handle the HTTP server command."""
    from textbook_ocr.server import run_server

    run_server(settings, host=args.host, port=args.port, debug=args.debug)


def handle_ocr_command(args: argparse.Namespace, settings: "Settings") -> None:
    """Handle OCR of a local page image."""
    from textbook_ocr.utils import FileIOUtils, FileSystemUtils, FileTypeUtils

    image_path = pathlib.Path(args.image)
    FileSystemUtils.validate_path_exists(image_path)

    image = FileIOUtils.read_binary_file(image_path)
    service = build_service(settings)
    result = service.extract_page(
        image,
        FileTypeUtils.resolve_upload_mime_type(None, image_path.name, image),
        highlighted_text=args.highlighted,
        full_text=read_full_text(args.full_text),
    )

    if args.format == "json":
        print(json.dumps(result.to_response(), indent=2, ensure_ascii=False))
    elif args.format == "blocks":
        if result.blocks_markdown is None:
            console.print("[yellow]No block layout available; showing page Markdown[/yellow]")
            print_markdown(result.markdown)
        else:
            print_markdown(result.blocks_markdown)
    else:
        print_markdown(result.markdown)


def handle_transformation_command(args: argparse.Namespace, settings: "Settings") -> None:
    """Handle the simplify, explain and tree commands."""
    service = build_service(settings)
    text = read_text_argument(args.text)
    full_text = read_full_text(args.full_text)

    if args.command == "simplify":
        print_markdown(service.simplify(text=text, full_text=full_text))
    elif args.command == "explain":
        print_markdown(service.explain(text=text, full_text=full_text))
    else:
        tree = service.build_knowledge_tree(text=text, full_text=full_text)
        print(json.dumps(tree, indent=2, ensure_ascii=False))


def handle_config_command(args: argparse.Namespace, settings: "Settings") -> None:
    """Handle configuration management commands."""
    if args.config_action == "show":
        table = Table(title="Current Configuration")
        table.add_column("Key")
        table.add_column("Value")
        for key, value in settings.describe().items():
            table.add_row(key, value)
        console.print(table)
    elif args.config_action == "reset":
        settings.reset_to_defaults()
        print("Configuration reset to defaults")
    elif args.config_action == "set":
        settings.set_value(args.key, args.value)
        shown = "(hidden)" if args.key == "api_key" else args.value
        print(f"{args.key} set to: {shown}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all subcommands."""
    from textbook_ocr.settings import Settings

    parser = argparse.ArgumentParser(
        prog="textbook-ocr",
        description="Turn textbook page photos into Markdown and explain what you highlight",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level", type=str.upper, choices=LOG_LEVELS, help="Override the configured log level"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve subcommand
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, help="Interface to bind")
    serve_parser.add_argument("--port", type=int, help="Port to listen on")
    serve_parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")

    # OCR subcommand
    ocr_parser = subparsers.add_parser("ocr", help="Extract a page image to Markdown")
    ocr_parser.add_argument("image", help="Path to the page image")
    ocr_parser.add_argument(
        "--format",
        choices=["markdown", "blocks", "json"],
        default="markdown",
        help="What to print (default: markdown)",
    )
    ocr_parser.add_argument("--full-text", type=str, help="File with the previous page text")
    ocr_parser.add_argument("--highlighted", type=str, help="Highlighted passage to re-scan")

    # Transformation subcommands
    for name, help_text in (
        ("simplify", "Simplify an excerpt"),
        ("explain", "Explain an excerpt"),
        ("tree", "Build a prerequisite knowledge tree for an excerpt"),
    ):
        transform_parser = subparsers.add_parser(name, help=help_text)
        transform_parser.add_argument("text", help="Excerpt text, or - to read standard input")
        transform_parser.add_argument(
            "--full-text", type=str, help="File with the surrounding page text"
        )

    # Config subcommand
    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_subparsers = config_parser.add_subparsers(
        dest="config_action", help="Configuration actions"
    )
    config_subparsers.required = True
    config_subparsers.add_parser("show", help="Show current configuration")
    config_subparsers.add_parser("reset", help="Reset configuration to defaults")
    config_set_parser = config_subparsers.add_parser("set", help="Set a configuration value")
    config_set_parser.add_argument("key", choices=Settings.SETTABLE_KEYS, help="Configuration key")
    config_set_parser.add_argument("value", help="Configuration value")

    return parser


def describe_command(args: argparse.Namespace) -> str:
    """Short command label for the audit trail."""
    if args.command == "config":
        if args.config_action == "set":
            return f"config:set:{args.key}"
        return f"config:{args.config_action}"
    if args.command == "ocr":
        return f"ocr:{args.image}"
    return args.command or "help"


def main(argv: Optional[list] = None) -> None:
    """Main entry point for the textbook OCR command-line interface.

    Environment Variables:
        MISTRAL_API_KEY: API key for the model service
        TEXTBOOK_OCR_TEXT_MODEL: Model for text-only prompts
        TEXTBOOK_OCR_VISION_MODEL: Model for page extraction
        TEXTBOOK_OCR_HOST, TEXTBOOK_OCR_PORT: Server bind address
        TEXTBOOK_OCR_LOG_LEVEL: Log level
        XDG_CONFIG_HOME, XDG_STATE_HOME: Optional directory overrides

    Raises:
        SystemExit: On error conditions or missing configuration
    """
    # Values already in the environment win over .env
    load_dotenv(override=False)

    from textbook_ocr.logging import setup_logging
    from textbook_ocr.settings import get_settings

    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(
        settings.state_directory,
        level=args.log_level or settings.get_log_level(),
        enable_console=args.command == "serve",
    )

    audit_logger = get_audit_logger("cli")
    start_time = time.time()
    command = describe_command(args)

    audit_logger.audit(
        AuditEventType.APPLICATION_START,
        "Started textbook-ocr CLI",
        operation=command,
        version=__version__,
    )

    try:
        if not args.command:
            parser.print_help()
            return

        if args.command == "config":
            audit_logger.audit(
                AuditEventType.CONFIG_CHANGE,
                f"Configuration {args.config_action} command",
                operation=f"config_{args.config_action}",
                key=getattr(args, "key", None),
            )
            handle_config_command(args, settings)
        elif args.command == "serve":
            handle_serve_command(args, settings)
        elif args.command == "ocr":
            audit_logger.audit(
                AuditEventType.CLI_COMMAND,
                "Page extraction requested",
                operation="ocr",
                file_path=args.image,
                output_format=args.format,
            )
            handle_ocr_command(args, settings)
        else:
            audit_logger.audit(
                AuditEventType.CLI_COMMAND,
                f"{args.command} requested",
                operation=args.command,
            )
            handle_transformation_command(args, settings)

        duration = time.time() - start_time
        audit_logger.audit(
            AuditEventType.APPLICATION_END,
            "CLI command completed successfully",
            operation=command,
            outcome="success",
            duration_seconds=round(duration, 3),
        )

    except Exception as e:
        duration = time.time() - start_time
        audit_logger.audit(
            AuditEventType.APPLICATION_END,
            f"CLI command failed: {str(e)}",
            level="error",
            operation=command,
            outcome="failure",
            duration_seconds=round(duration, 3),
            error_message=str(e),
        )
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
