"""CLI command for extracting tmod containers."""

import argparse
import contextlib
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Iterator, List, Optional, TextIO

import toml
from pydantic import ValidationError

from tmod_extract.common import ConfigLoader, ConfigurationError, LogContext, setup_logging
from .config import TModExtractConfig
from .container import TModContainer, TModUnpacker
from .errors import DecodeError, ExtractionError
from .events import LoggingEventSink
from .extractor import ExtractionResult

APP_NAME = "tmod-extract"


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Extract the contents of a tModLoader mod file (.tmod).",
        epilog=(
            f"Set the {APP_NAME.upper().replace('-', '_')}_LOGGING_LEVEL environment "
            "variable to set the log level."
        ),
    )
    parser.add_argument("input", type=Path, help="Container file to read")
    parser.add_argument(
        "output",
        type=Path,
        nargs="?",
        help="Directory to extract to (overrides config, default: ./extracted)"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        default=None,
        help="Fail on the first unsafe entry path and on any failed entry"
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of writer threads (0 = one per CPU)"
    )
    parser.add_argument(
        "--verify-hash",
        action="store_true",
        default=None,
        help="Check the payload against the build hash in the header"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="Print header, metadata and file table without extracting"
    )
    parser.add_argument(
        "--show-signature",
        action="store_true",
        help="Include the signature in --list output"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (overrides config)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (defaults.toml)"
    )
    return parser


def load_config(args: argparse.Namespace) -> TModExtractConfig:
    """Load configuration and apply command line overrides.

    Raises:
        ConfigurationError: If a config source is missing or invalid
    """
    loader = ConfigLoader(app_name=APP_NAME, config_class=TModExtractConfig)

    try:
        config = loader.load(defaults_path=args.config)

        extraction_overrides = {
            key: value
            for key, value in (
                ("strict", args.strict),
                ("workers", args.workers),
                ("verify_hash", args.verify_hash),
                ("output_dir", str(args.output) if args.output else None),
            )
            if value is not None
        }
        logging_overrides = {"level": args.log_level} if args.log_level else {}

        # Re-validate so overrides go through the same checks as files
        return TModExtractConfig(
            logging={**config.logging.model_dump(), **logging_overrides},
            extraction={**config.extraction.model_dump(), **extraction_overrides},
        )
    except (ValidationError, toml.TomlDecodeError, FileNotFoundError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}", config_path=str(args.config)) from e


def exit_code_for(result: ExtractionResult, strict: bool) -> int:
    """Map an extraction result to a process exit code.

    Lenient runs succeed as long as something was written; strict runs
    need every entry to succeed. Cancelled runs always fail.
    """
    if result.cancelled:
        return 1
    if not result.failures:
        return 0
    if strict:
        return 1
    return 0 if result.files_written else 1


def print_listing(container: TModContainer, show_signature: bool = False, stream: TextIO = None) -> None:
    """Print header, metadata and entry table."""
    stream = stream or sys.stdout
    header = container.header
    entries = container.entries

    print(f"Container version: {header.version}", file=stream)
    print(f"Build hash:        {header.build_hash_hex}", file=stream)
    if show_signature:
        signature = header.signature_hex if header.is_signed else "(unsigned)"
        print(f"Signature:         {signature}", file=stream)
    print(f"Mod:               {container.metadata.name} {container.metadata.version}", file=stream)
    print(f"Table layout:      {container.layout.value}", file=stream)
    print(f"Files:             {len(entries)} ({container.manifest.total_uncompressed} bytes)", file=stream)

    for entry in entries:
        marker = "deflate" if entry.is_compressed else "stored"
        print(
            f"  {entry.uncompressed_length:>10}  {entry.stored_length:>10}  {marker:<7}  {entry.relative_path}",
            file=stream,
        )


@contextlib.contextmanager
def cancel_on_interrupt() -> Iterator[threading.Event]:
    """Turn Ctrl+C into a cooperative cancellation signal while extracting."""
    cancel_event = threading.Event()

    if threading.current_thread() is not threading.main_thread():
        yield cancel_event
        return

    def handle_interrupt(signum, frame):
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        yield cancel_event
    finally:
        signal.signal(signal.SIGINT, previous)


def extract_command(
    config: TModExtractConfig,
    input_path: Path,
    list_only: bool = False,
    show_signature: bool = False,
) -> int:
    """Decode a container and extract or list it.

    Args:
        config: Configuration object with overrides applied
        input_path: Container file
        list_only: Print the file table instead of extracting
        show_signature: Include the signature in the listing

    Returns:
        Exit code (0 for success)
    """
    # Use __package__ to avoid __main__ when run as module
    logger = logging.getLogger(__package__ or __name__)

    unpacker = TModUnpacker.from_config(config.extraction, event_sink=LoggingEventSink(logger))
    output_dir = Path(config.extraction.output_dir)

    with LogContext(logger, container=str(input_path)):
        try:
            if list_only:
                print_listing(unpacker.read(input_path), show_signature=show_signature)
                return 0

            logger.info(f"Output directory: {output_dir}")
            with cancel_on_interrupt() as cancel_event:
                container, result = unpacker.run(input_path, output_dir, cancel_event=cancel_event)

            for failure in result.failures:
                logger.error(f"{failure.path}: {failure.message}")

            return exit_code_for(result, config.extraction.strict)

        except DecodeError as e:
            location = f" ({e.region} offset {e.offset})" if e.offset is not None else ""
            logger.error(f"Cannot decode {input_path}: {e}{location}")
            return 1
        except ExtractionError as e:
            logger.error(f"Extraction aborted: {e}")
            return 1
        except Exception as e:
            logger.exception(f"Extraction failed: {e}")
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for extract command."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        level=config.logging.level,
        format=config.logging.format,
        log_file=config.logging.file_path,
    )

    return extract_command(
        config=config,
        input_path=args.input,
        list_only=args.list,
        show_signature=args.show_signature,
    )


if __name__ == "__main__":
    sys.exit(main())
