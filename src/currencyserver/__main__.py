"""
=============================================================================
CURRENCY SERVER CLI ENTRY POINT
=============================================================================

    # Text protocol on every interface, port 4040
    python -m currencyserver

    # JSON protocol on a custom endpoint
    python -m currencyserver --json -e localhost:5050

    # Own dataset, verbose logs
    python -m currencyserver --data ./data.csv --log-level DEBUG

Exit status is 1 if the dataset cannot be loaded, the endpoint cannot be
bound, or accept() keeps failing past its retry budget.

=============================================================================
"""

import argparse
import logging
import os
import sys

from . import __version__
from .config import DEFAULT_ENDPOINT, LOG_FORMATS, LOG_LEVELS, ConfigError, ServerConfig, parse_endpoint
from .core.errors import AcceptRetryExhausted
from .currency.table import DatasetError
from .server import CurrencyServer


logger = logging.getLogger("currencyserver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="currency-server",
        description="Global currency lookup service over TCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m currencyserver                    # text protocol on :4040
  python -m currencyserver --json             # JSON protocol on :4040
  python -m currencyserver -e localhost:5050  # custom endpoint
        """
    )

    parser.add_argument(
        "-e", "--endpoint",
        default=os.getenv("CURRENCY_ENDPOINT", DEFAULT_ENDPOINT),
        help="service endpoint host:port (default: :4040, all interfaces)"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        default=os.getenv("CURRENCY_PROTOCOL", "text").lower() == "json",
        help="serve the JSON protocol instead of the text protocol"
    )

    parser.add_argument(
        "--data", "-d",
        default=os.getenv("CURRENCY_DATA"),
        help="currency dataset CSV (default: bundled dataset)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default=os.getenv("CURRENCY_LOG_LEVEL", "INFO").upper(),
        help="logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=os.getenv("CURRENCY_LOG_FORMAT", "text").lower(),
        help="session log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"currency-server {__version__}"
    )

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        host, port = parse_endpoint(args.endpoint)
        config = ServerConfig(
            host=host,
            port=port,
            protocol="json" if args.json else "text",
            data_file=args.data,
            log_level=args.log_level,
            log_format=args.log_format,
        )
        server = CurrencyServer(config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except DatasetError as e:
        logger.critical(f"Failed to load currencies: {e}")
        return 1
    except OSError as e:
        logger.critical(f"Failed to create listener: {e}")
        return 1
    except AcceptRetryExhausted as e:
        logger.critical(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
