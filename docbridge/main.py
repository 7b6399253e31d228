"""
docbridge Main Entry Point
Command line interface for normalizing document text and for importing,
exporting and inspecting collections.
"""

import argparse
import json
import logging
import re
import sys
from pathlib import Path
from typing import List, Optional

from .codec.normalizer import normalize
from .config import DocBridgeConfig
from .exceptions import DocBridgeError
from .schema.inference import dumps_schema
from .service import DocumentService
from .store.mongo import MongoDocumentStore
from .streaming.progress import JobEvent


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Set up logging configuration"""

    # Create formatter
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        # Create log directory if it doesn't exist
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Set specific logger levels
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def parse_memory_size(memory_str: str) -> Optional[int]:
    """Parse memory size string to bytes"""
    if not memory_str:
        return None

    memory_str = memory_str.upper().strip()

    match = re.match(r"^(\d+(?:\.\d+)?)\s*([KMGT]?B?)$", memory_str)

    if not match:
        raise ValueError(f"Invalid memory size format: {memory_str}")

    size = float(match.group(1))
    unit = match.group(2) or "B"

    # Convert to bytes
    multipliers = {
        "B": 1,
        "KB": 1024,
        "MB": 1024**2,
        "GB": 1024**3,
        "TB": 1024**4,
        "K": 1024,
        "M": 1024**2,
        "G": 1024**3,
        "T": 1024**4,
    }

    return int(size * multipliers[unit])


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser"""

    parser = argparse.ArgumentParser(
        prog="docbridge",
        description="docbridge - loose document text, export files and schemas for MongoDB",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print the strict JSON text of loose document text
  echo "{name: 'Ann', id: ObjectId('507f191e810c19729de860ea')}" | docbridge normalize

  # Export a collection, optionally filtered
  docbridge --database shop export orders --query "{status: 'open'}"

  # Replace a collection with the content of an export file
  docbridge --database shop import orders ./cache/shop_orders_1234.json --replace

  # Show the schema inferred from 500 sampled documents
  docbridge --database shop schema orders --sample-size 500
        """,
    )

    # Configuration options
    parser.add_argument(
        "--config", "-c", type=str, help="Path to YAML configuration file"
    )

    parser.add_argument("--uri", type=str, help="MongoDB connection string")

    parser.add_argument("--database", "-d", type=str, help="Database name")

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-file", type=str, help="Log file path (logs to stdout if not specified)"
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    normalize_parser = subparsers.add_parser(
        "normalize", help="Rewrite loose document text as strict JSON text"
    )
    normalize_parser.add_argument(
        "file", nargs="?", help="Input file (reads stdin if omitted)"
    )

    export_parser = subparsers.add_parser("export", help="Export a collection to a file")
    export_parser.add_argument("collection", help="Collection name")
    export_parser.add_argument("--query", "-q", type=str, help="Loose-text filter document")
    export_parser.add_argument("--export-dir", type=str, help="Directory of the export file")

    import_parser = subparsers.add_parser("import", help="Import an export file")
    import_parser.add_argument("collection", help="Collection name")
    import_parser.add_argument("file", help="Export file to import")
    import_parser.add_argument(
        "--replace", action="store_true", help="Drop the collection before importing"
    )
    import_parser.add_argument(
        "--keep-going", action="store_true", help="Skip documents with duplicate _id"
    )
    import_parser.add_argument(
        "--chunk-size", type=str, help="Read chunk size (e.g., 10MB)"
    )
    import_parser.add_argument(
        "--package-limit", type=str, help="Maximum size of one insert package (e.g., 15MB)"
    )

    schema_parser = subparsers.add_parser(
        "schema", help="Print the schema inferred from sampled documents"
    )
    schema_parser.add_argument("collection", help="Collection name")
    schema_parser.add_argument("--query", "-q", type=str, help="Loose-text filter document")
    schema_parser.add_argument(
        "--sample-size", type=int, default=100, help="Documents to sample (default: 100)"
    )

    return parser


def create_config_from_args(args: argparse.Namespace) -> DocBridgeConfig:
    """Create DocBridgeConfig from command line arguments"""

    # Start with config file if provided
    if args.config:
        config = DocBridgeConfig.from_file(args.config)
    else:
        config = DocBridgeConfig.from_env()

    # Override with command line arguments
    if args.uri:
        config.store.uri = args.uri

    if args.database:
        config.store.database = args.database

    if args.log_level:
        config.log_level = args.log_level

    if args.log_file:
        config.log_file = args.log_file

    if getattr(args, "export_dir", None):
        config.export.export_dir = args.export_dir

    if getattr(args, "chunk_size", None):
        config.stream.read_chunk_size = parse_memory_size(args.chunk_size)

    if getattr(args, "package_limit", None):
        config.packager.limit_bytes = parse_memory_size(args.package_limit)

    return config


def log_event(event: JobEvent):
    """Listener that logs job notifications"""
    logger = logging.getLogger(__name__)
    if event.event_type.value == "error":
        logger.error(f"{event.phase.value} failed: {event.data.get('message')}")
    else:
        logger.info(f"{event.phase.value} {event.event_type.value}: {json.dumps(event.data, default=str)}")


def run_command(args: argparse.Namespace, config: DocBridgeConfig) -> int:
    """Execute one subcommand"""
    if args.command == "normalize":
        if args.file:
            text = Path(args.file).read_text(encoding=config.stream.encoding)
        else:
            text = sys.stdin.read()
        print(normalize(text))
        return 0

    store = MongoDocumentStore.from_config(config.store)
    service = DocumentService(store, config.store.database, config)

    if args.command == "export":
        result = service.export_collection(args.collection, args.query, listener=log_event)
        print(result.path)
    elif args.command == "import":
        result = service.import_file(
            args.collection,
            args.file,
            replace=args.replace,
            keep_going=args.keep_going,
            listener=log_event,
        )
        print(json.dumps(result.to_dict()))
    elif args.command == "schema":
        schema = service.infer_collection_schema(
            args.collection, args.query, sample_size=args.sample_size
        )
        print(dumps_schema(schema))

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""

    # Parse arguments
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    config = create_config_from_args(args)

    # Set up logging first
    setup_logging(config.log_level, config.log_file)

    logger = logging.getLogger(__name__)

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Invalid configuration: {error}")
        return 2

    try:
        return run_command(args, config)
    except DocBridgeError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
