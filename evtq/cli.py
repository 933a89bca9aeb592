"""
CLI — Command-line interface for evtq

Input (default: live events from the local host):
    --from-backup PATH        replay a .evtx/.evt backup
    --from-host [URI]         live host, URI = [[domain/]user:password@]hostname

Output (default: JSON on stdout):
    --to-json/--to-xml/--to-tsv/--to-csv [PATH]
    -O/--columns LIST         columns of TSV, CSV and JSON output
    --datefmt FMT             timestamp format

Configuration:
    --save-config             store the effective settings in ~/.evtq/config.yaml

Exit status: 0 on success, 1 on any source, configuration, metadata
cache or output error (reported as " [!] Error: ...").

Remote credentials are only accepted on the command line and are wiped
from memory once the session has been opened.
"""

import argparse
import gzip
import io
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Callable, List, Optional, TextIO, Tuple

from . import __version__
from .config import Config, ConfigManager, OUTPUT_FORMATS, PIPELINE_MODES
from .core.metadata import MetadataRegistry
from .core.stats import StatisticsTable
from .errors import ConfigError, EvtqError, OutputError
from .log import configure_logging
from .output import get_encoder, parse_columns
from .pipeline import make_writer
from .processor import EventProcessor
from .sources.backup import BackupReader
from .sources.base import Credentials, EventHost
from .sources.live import LiveMultiplexer

logger = logging.getLogger(__name__)

STDOUT = "-"
LOCAL_HOSTS = ("", ".", "localhost")
DEFAULT_DOMAIN = "."


# =============================================================================
# Argument helpers
# =============================================================================

def parse_host_uri(uri: str) -> Tuple[Optional[str], Optional[Credentials]]:
    """
    Split a --from-host URI into hostname and credentials.

    Format: [[domain/]user:password@]hostname. Nothing is escaped: the
    last "@" ends the credentials, the first "/" ends the domain and the
    first ":" ends the user name. The domain defaults to ".".

    Returns:
        (hostname, credentials); hostname is None for the local machine

    Raises:
        ConfigError: credentials present without a user:password pair
    """
    login, at, hostname = uri.rpartition("@")
    hostname = hostname.strip()
    credentials = None

    if at:
        domain, slash, account = login.partition("/")
        if not slash:
            domain, account = DEFAULT_DOMAIN, login
        user, colon, password = account.partition(":")
        if not colon or not user:
            raise ConfigError(f"Unable to parse username:password from '{uri}'")
        credentials = Credentials(user=user, password=password, domain=domain)

    if hostname.lower() in LOCAL_HOSTS and credentials is None:
        return None, None
    return hostname, credentials


def open_destination(path: Optional[str], append: bool = False, compress: bool = False) -> TextIO:
    """
    Open the output stream for encoded events.

    Args:
        path: File path, or None / "-" for stdout
        append: Append to an existing file instead of truncating it
        compress: gzip the output

    Raises:
        OutputError: the file cannot be opened
    """
    mode = "a" if append else "w"
    try:
        if path in (None, STDOUT):
            if compress:
                raw = gzip.GzipFile(fileobj=sys.stdout.buffer, mode="wb")
                return io.TextIOWrapper(raw, encoding="utf-8", newline="")
            return sys.stdout
        if compress:
            return gzip.open(path, mode + "t", encoding="utf-8", newline="")
        return open(path, mode, encoding="utf-8", newline="")
    except OSError as e:
        raise OutputError(f"Could not open file {path}: {e}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evtq",
        description="Windows Event Log fetcher, parser and formatter",
        epilog="Default: follow live events on localhost and print them as JSON.",
    )

    source = parser.add_argument_group("input").add_mutually_exclusive_group()
    source.add_argument(
        '--from-backup', metavar='PATH',
        help='Read events from a backup .evtx or .evt file'
    )
    source.add_argument(
        '--from-host', metavar='URI', nargs='?', const='localhost',
        help='Read events as they happen on a live host; URI = [[domain/]user:password@]hostname'
    )

    live = parser.add_argument_group("live hosts")
    live.add_argument(
        '--dump-existing', action='store_true',
        help='Also process events already stored on the host'
    )
    live.add_argument(
        '--no-wait', action='store_true',
        help="Don't wait for future events; stop once channels go quiet"
    )
    live.add_argument(
        '--list-channels', action='store_true',
        help="Just list the host's channels"
    )
    live.add_argument(
        '--quiescence', type=float, metavar='SECONDS',
        help='Seconds without new events before --no-wait stops (default: 1.0)'
    )

    output = parser.add_argument_group("output")
    formats = output.add_mutually_exclusive_group()
    for name in OUTPUT_FORMATS:
        formats.add_argument(
            f'--to-{name}', dest=f'to_{name}', nargs='?', const=STDOUT, metavar='PATH',
            help=f'Render events as {name.upper()} (default: stdout)'
        )
    output.add_argument(
        '-O', '--columns', metavar='LIST',
        help='Comma-separated output columns for TSV, CSV and JSON, e.g. '
             '"timestamp,provider,eventid,variant1,...,variant8" (XML ignores it)'
    )
    output.add_argument(
        '--datefmt', metavar='FMT',
        help='Timestamp format: %%Y %%m %%d %%H %%M %%S %%.3f %%z (default: "%%Y-%%m-%%d %%H:%%M:%%S%%.3f")'
    )
    output.add_argument('--json-pretty', action='store_true', help='Indent JSON output')
    output.add_argument('-a', '--append', action='store_true', help="Don't overwrite output files")
    output.add_argument('-z', '--gzip', action='store_true', help='Compress output with gzip')
    output.add_argument(
        '--queued-output', action='store_true',
        help='Write through a dedicated writer thread instead of a lock'
    )

    meta = parser.add_argument_group("metadata")
    meta.add_argument('--import-metadata', metavar='PATH', help='Import field names from a JSON file')
    meta.add_argument('--export-metadata', metavar='PATH', help='Export field names to a JSON file and exit')
    meta.add_argument(
        '--no-system-metadata', action='store_true',
        help="Don't load field names from the host's providers"
    )

    common = parser.add_argument_group("common")
    common.add_argument(
        '--save-config', action='store_true',
        help='Save the effective configuration to the user config file and exit'
    )
    common.add_argument('-s', '--stats', action='store_true', help='Print event counts at the end')
    common.add_argument('-n', type=int, dest='max_events', metavar='N', help='Only output N events')
    common.add_argument('-v', '--verbose', action='count', default=0, help='Increase verbosity (repeatable)')
    common.add_argument('-V', '--version', action='version', version=f'evtq {__version__}')
    return parser


def apply_args(config: Config, args: argparse.Namespace) -> Tuple[Config, Optional[str]]:
    """
    Layer command-line flags over loaded configuration.

    Returns:
        (config, output path or None for stdout)
    """
    path = None
    for name in OUTPUT_FORMATS:
        value = getattr(args, f"to_{name}")
        if value is not None:
            config.output.format = name
            path = None if value == STDOUT else value
    if args.columns is not None:
        config.output.columns = args.columns
    if args.datefmt is not None:
        config.output.datefmt = args.datefmt
    if args.json_pretty:
        config.output.json_pretty = True
    if args.append:
        config.output.append = True
    if args.gzip:
        config.output.gzip = True
    if args.queued_output:
        config.pipeline.mode = "queued"
    if args.quiescence is not None:
        config.live.quiescence_interval = args.quiescence
    if args.no_system_metadata:
        config.metadata.load_system = False
    if args.import_metadata:
        config.metadata.cache_path = args.import_metadata
    return config, path


# =============================================================================
# Actions
# =============================================================================

def load_metadata(host: EventHost, config: Config) -> MetadataRegistry:
    """Host population first, then the cache file, so cached names win."""
    registry = MetadataRegistry()
    if config.metadata.load_system:
        registry.populate_from_host(host)
    if config.metadata.cache_path:
        registry.import_file(config.metadata.cache_path)
    logger.info("Loaded metadata for %d events", len(registry))
    return registry


def list_channels(host: EventHost, hostname: Optional[str], credentials: Optional[Credentials],
                  out: TextIO) -> int:
    mux = LiveMultiplexer(host, hostname=hostname, credentials=credentials)
    for channel in mux.channels():
        out.write(channel + "\n")
    return 0


def collect(host: EventHost, args: argparse.Namespace, config: Config, path: Optional[str],
            hostname: Optional[str], credentials: Optional[Credentials],
            registry: MetadataRegistry, stats: StatisticsTable, stop: threading.Event) -> int:
    """Run one backup or live collection into the configured output."""
    stream = open_destination(path, config.output.append, config.output.gzip)
    writer = make_writer(stream, config.pipeline.mode, config.pipeline.queue_size)
    columns = parse_columns(config.output.columns) if config.output.columns else None
    encoder = get_encoder(
        config.output.format,
        registry=registry,
        pretty=config.output.json_pretty,
        columns=columns,
        datefmt=config.output.datefmt,
    )
    processor = EventProcessor(host, encoder, writer, stats=stats,
                               max_events=args.max_events, stop=stop)
    try:
        if args.from_backup:
            BackupReader(host, args.from_backup).run(processor, stop=stop)
        else:
            mux = LiveMultiplexer(
                host,
                hostname=hostname,
                credentials=credentials,
                quiescence_interval=config.live.quiescence_interval,
                stop=stop,
            )
            mux.run(processor, replay=args.dump_existing, follow=not args.no_wait)
    finally:
        writer.close()
        if stream is sys.stdout:
            stream.flush()
        else:
            stream.close()

    logger.info("Wrote %d events (%d failed)", writer.written, processor.failed)
    return 0


# =============================================================================
# Entry point
# =============================================================================

def _default_host() -> EventHost:
    from .sources.winevt import WinEvtHost
    return WinEvtHost()


def main(argv: Optional[List[str]] = None,
         host_factory: Optional[Callable[[], EventHost]] = None,
         config_dir: Optional[Path] = None) -> int:
    """
    Main entry point for the evtq CLI.

    Args:
        argv: Arguments (default: sys.argv[1:])
        host_factory: Builds the event host (default: Windows Event Log)
        config_dir: Directory holding config.yaml (default: ~/.evtq)

    Returns:
        Process exit status
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.max_events is not None and args.max_events <= 0:
        parser.error("-n expects a positive number of events")

    stop = threading.Event()
    stats = StatisticsTable()
    previous_handler = None
    credentials = None

    try:
        config, path = apply_args(ConfigManager(config_dir).load(), args)
        error = config.validate()
        if error:
            raise ConfigError(error)

        if args.save_config:
            saved = ConfigManager(config_dir).save_user(config)
            logger.info("Saved configuration to %s", saved)
            return 0

        hostname = None
        if not args.from_backup:
            hostname, credentials = parse_host_uri(args.from_host or "localhost")
            if credentials is not None:
                logger.info("Authenticating to %s as %s\\%s", hostname, credentials.domain, credentials.user)

        host = (host_factory or _default_host)()

        if args.list_channels:
            return list_channels(host, hostname, credentials, sys.stdout)

        registry = load_metadata(host, config)
        if args.export_metadata:
            registry.export(args.export_metadata)
            return 0

        if threading.current_thread() is threading.main_thread():
            previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: stop.set())

        collect(host, args, config, path, hostname, credentials, registry, stats, stop)

    except EvtqError as e:
        logger.error("Error: %s", e)
        return 1
    finally:
        if credentials is not None:
            credentials.wipe()
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    if args.stats:
        for line in stats.format_report():
            print(line, file=sys.stderr)
    return 0


if __name__ == '__main__':
    sys.exit(main())
