import argparse
import asyncio
import dataclasses
import enum
import ipaddress
import socket

from .common import Constants, GenericException, HostUnreachableError
from .logging import get_logger


LOGGER = get_logger(__name__)

IpAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

PORT_RANGE = range(1, 65536)


class ResolutionError(GenericException):
    pass


class NoHostName(ResolutionError):
    def __init__(self):
        super().__init__("No hostname specified")


class IpVersionMismatch(ResolutionError):
    def __init__(self):
        super().__init__("IP version mismatch")


class AddressParseError(ResolutionError):
    def __init__(self, error: ValueError):
        super().__init__(f"AddressParseError: {error}")
        self.error = error


class IpVersion(enum.Enum):
    ANY = "any"
    V4 = "v4"
    V6 = "v6"

    @classmethod
    def from_flags(cls, ipv4_only: bool, ipv6_only: bool) -> "IpVersion":
        if ipv4_only and ipv6_only:
            raise ValueError("ipv4_only and ipv6_only are mutually exclusive.")
        if ipv4_only:
            return cls.V4
        if ipv6_only:
            return cls.V6
        return cls.ANY

    def accepts(self, address: IpAddress) -> bool:
        if self is IpVersion.V4:
            return address.version == 4
        if self is IpVersion.V6:
            return address.version == 6
        return True


def format_address(host: str | IpAddress, port: int) -> str:
    if isinstance(host, ipaddress.IPv6Address) or (isinstance(host, str) and ":" in host):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclasses.dataclass(frozen=True, slots=True)
class Endpoint:
    host: str | IpAddress
    port: int
    version: IpVersion = IpVersion.ANY

    @property
    def is_literal(self) -> bool:
        return not isinstance(self.host, str)

    def __str__(self) -> str:
        return format_address(self.host, self.port)


def parse_port(text: str) -> int:
    """Argument type for a TCP port number in the range 1-65535."""

    try:
        port = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"`{text}` isn't a port number")

    if port not in PORT_RANGE:
        raise argparse.ArgumentTypeError(
            f"port not in range {PORT_RANGE.start}-{PORT_RANGE.stop - 1}"
        )
    return port


def _looks_like_literal(hostname: str) -> bool:
    return ":" in hostname or all(part.isdigit() for part in hostname.split("."))


def _parse_hostname(hostname: str) -> str | IpAddress:
    text = hostname
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]

    try:
        return ipaddress.ip_address(text)
    except ValueError as e:
        if _looks_like_literal(text):
            raise AddressParseError(e) from e

    return hostname


def resolve(
    listen: bool,
    hostname: str | None,
    port: int | None,
    *,
    ipv4_only: bool = False,
    ipv6_only: bool = False,
) -> Endpoint:
    """Turns command line inputs into an Endpoint.

    If the hostname is not specified and the program is listening, the
    unspecified address of the selected IP version is used, `::` unless
    `ipv4_only` is set. If the hostname is not specified and the program is
    connecting, `NoHostName` is raised.

    A specified hostname is parsed as an IP address, and if that fails it is
    kept as a name that is looked up when binding or dialing.

    If the port is not specified it defaults to 31337.

    Raises
    ------
    NoHostName
        No hostname in connect mode.
    IpVersionMismatch
        A literal address of the IP version excluded by the flags.
    AddressParseError
        A malformed literal address.
    """

    version = IpVersion.from_flags(ipv4_only, ipv6_only)

    if port is None:
        port = Constants.DEFAULT_PORT
    if port not in PORT_RANGE:
        raise ValueError(f"Port {port} not in range 1-65535.")

    if hostname is None:
        if not listen:
            raise NoHostName()
        if version is IpVersion.V4:
            host = ipaddress.IPv4Address("0.0.0.0")
        else:
            host = ipaddress.IPv6Address("::")
        return Endpoint(host, port, version)

    host = _parse_hostname(hostname)
    if not isinstance(host, str) and not version.accepts(host):
        raise IpVersionMismatch()

    return Endpoint(host, port, version)


async def lookup(endpoint: Endpoint) -> list[IpAddress]:
    """Returns the addresses to bind or dial for `endpoint`, in resolver order.

    Raises
    ------
    HostUnreachableError
        The hostname could not be resolved.
    IpVersionMismatch
        The hostname resolved only to addresses of the excluded IP version.
    """

    if endpoint.is_literal:
        return [endpoint.host]

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(
            endpoint.host, endpoint.port, type=socket.SOCK_STREAM
        )
    except socket.gaierror as e:
        raise HostUnreachableError(f"Resolve {endpoint}: {e}") from e

    addresses: list[IpAddress] = []
    for family, _, _, _, sockaddr in infos:
        if family not in (socket.AF_INET, socket.AF_INET6):
            continue
        address = ipaddress.ip_address(sockaddr[0])
        if address not in addresses:
            addresses.append(address)

    LOGGER.debug("Resolved %s to %s.", endpoint, addresses)

    addresses = [address for address in addresses if endpoint.version.accepts(address)]
    if not addresses:
        raise IpVersionMismatch()

    return addresses
