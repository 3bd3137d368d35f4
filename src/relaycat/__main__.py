import argparse
import asyncio
import os
import signal
import sys
from typing import Optional

import tap

from relaycat.common import HostUnreachableError
from relaycat.connector import Connector
from relaycat.endpoint import Endpoint, ResolutionError, parse_port, resolve
from relaycat.listener import Listener
from relaycat.logging import get_logger, set_verbosity
from relaycat.scope import Scope
from relaycat.stdio import connect_stdin_stdout

LOGGER = get_logger(__name__)


class Args(tap.Tap):

    ipv4: bool = False
    """Use IPv4 only."""

    ipv6: bool = False
    """Use IPv6 only."""

    listen: bool = False
    """Bind and listen for incoming connections."""

    keep_open: bool = False
    """Accept multiple connections in listen mode."""

    verbose: bool = False
    """Log connection events to stderr."""

    hostname: Optional[str] = None
    """Hostname or IP address to connect to or listen on."""

    port: Optional[int] = None
    """Port number to connect to or listen on (default 31337)."""

    def configure(self):
        self.add_argument("-4", "--ipv4")
        self.add_argument("-6", "--ipv6")
        self.add_argument("-l", "--listen")
        self.add_argument("-k", "--keep-open")
        self.add_argument("-v", "--verbose")
        self.add_argument("hostname", nargs="?")
        self.add_argument("port", nargs="?", type=parse_port)

    def process_args(self):
        if self.ipv4 and self.ipv6:
            self.error("-4 and -6 are mutually exclusive")

        if self.keep_open and not self.listen:
            self.error("-k/--keep-open requires -l/--listen")

        # `-l 1234` listens on port 1234 of the unspecified address.
        if self.listen and self.port is None and self.hostname is not None and self.hostname.isdigit():
            try:
                self.port = parse_port(self.hostname)
            except argparse.ArgumentTypeError as e:
                self.error(str(e))
            self.hostname = None


async def main(args: Args, endpoint: Endpoint):
    scope = Scope()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scope.cancel)
        except NotImplementedError:
            pass

    stdin, stdout = await connect_stdin_stdout()

    if args.listen:
        await Listener(
            endpoint,
            stdin=stdin,
            stdout=stdout,
            scope=scope,
            keep_open=args.keep_open,
        ).run()
    else:
        await Connector(endpoint, stdin=stdin, stdout=stdout, scope=scope).run()


def cli(argv: list[str] | None = None):
    args = Args(underscores_to_dashes=True).parse_args(argv)
    set_verbosity(args.verbose)

    try:
        endpoint = resolve(
            args.listen,
            args.hostname,
            args.port,
            ipv4_only=args.ipv4,
            ipv6_only=args.ipv6,
        )
        asyncio.run(main(args, endpoint))
    except ResolutionError as e:
        LOGGER.error("%s. QUITTING", e.message)
        sys.exit(os.EX_USAGE)
    except HostUnreachableError as e:
        LOGGER.error("%s. QUITTING", e.message)
        sys.exit(os.EX_NOHOST)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
