"""Outbound URL gate that blocks private and internal targets."""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
from urllib.parse import urlparse

from fastapi.concurrency import run_in_threadpool

from actionboost.jobs.errors import UnsafeTargetError

logger = logging.getLogger(__name__)

_BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}
# Decimal, octal or hex labels. Resolvers expand short forms like "127.1" or "0x7f.1" to full addresses.
_NUMERIC_LABEL = re.compile(r"^(0x[0-9a-f]*|[0-9]+)$")
# Names that open with a private dotted prefix, e.g. wildcard DNS such as 127.0.0.1.nip.io.
_PRIVATE_PREFIX = re.compile(r"^(127\.|10\.|0\.|172\.(1[6-9]|2\d|3[01])\.|192\.168\.|169\.254\.)")


def _is_blocked_ip(address: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
  # IPv4-mapped IPv6 (::ffff:10.0.0.1) must be judged by the embedded IPv4 address.
  if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
    address = address.ipv4_mapped
  return address.is_private or address.is_loopback or address.is_link_local or address.is_unspecified or address.is_reserved or address.is_multicast


def _parse_ip(hostname: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
  try:
    return ipaddress.ip_address(hostname.strip("[]"))
  except ValueError:
    return None


class SourceGuard:
  """Reject URLs whose host is local, private, link-local or not a public-looking name.

  The check is static by default: no DNS lookup, so no outbound traffic happens
  before the target is accepted. With ``resolve_dns`` the resolved addresses are
  checked too, which also catches public names pointing at private ranges.
  """

  def __init__(self, *, resolve_dns: bool = False) -> None:
    self._resolve_dns = resolve_dns

  def check_static(self, url: str) -> str:
    """Validate ``url`` without network access and return its hostname."""
    parsed = urlparse(url.strip())
    if parsed.scheme not in {"http", "https"}:
      raise UnsafeTargetError(f"Blocked non-http URL: {url}")
    hostname = (parsed.hostname or "").lower().rstrip(".")
    if not hostname:
      raise UnsafeTargetError(f"Blocked URL without hostname: {url}")
    if hostname in _BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
      raise UnsafeTargetError(f"Blocked local hostname: {hostname}")

    address = _parse_ip(hostname)
    if address is not None:
      if _is_blocked_ip(address):
        raise UnsafeTargetError(f"Blocked private address: {hostname}")
      return hostname

    # Anything numeric that is not a canonical dotted quad is an address in disguise.
    if all(_NUMERIC_LABEL.fullmatch(label) for label in hostname.split(".")):
      raise UnsafeTargetError(f"Blocked non-canonical numeric host: {hostname}")
    if _PRIVATE_PREFIX.match(hostname):
      raise UnsafeTargetError(f"Blocked hostname with a private address prefix: {hostname}")
    # Bare intranet names like "db" or "metadata" have no public meaning.
    if "." not in hostname:
      raise UnsafeTargetError(f"Blocked non-public hostname: {hostname}")
    return hostname

  async def check(self, url: str) -> None:
    """Raise UnsafeTargetError unless ``url`` is safe to fetch."""
    hostname = self.check_static(url)
    if not self._resolve_dns or _parse_ip(hostname) is not None:
      return
    # getaddrinfo blocks, so keep it off the event loop.
    addresses = await run_in_threadpool(self._resolve, hostname)
    for address in addresses:
      if _is_blocked_ip(address):
        raise UnsafeTargetError(f"Blocked {hostname}: resolves to private address {address}")

  def _resolve(self, hostname: str) -> list[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    try:
      infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror as exc:
      raise UnsafeTargetError(f"Could not resolve {hostname}: {exc}") from exc
    resolved: list[ipaddress.IPv4Address | ipaddress.IPv6Address] = []
    for info in infos:
      parsed = _parse_ip(str(info[4][0]).split("%", 1)[0])
      if parsed is not None:
        resolved.append(parsed)
    return resolved
