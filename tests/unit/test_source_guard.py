from __future__ import annotations

from unittest.mock import patch

import pytest

from actionboost.evidence.source_guard import SourceGuard
from actionboost.jobs.errors import UnsafeTargetError


@pytest.mark.parametrize(
  "url",
  [
    "http://localhost/admin",
    "http://api.localhost:8080",
    "http://127.0.0.1",
    "http://10.0.0.5/",
    "http://172.16.4.1",
    "http://172.31.255.255",
    "http://192.168.1.1",
    "http://169.254.169.254/latest/meta-data/",
    "http://[::1]/",
    "http://[fe80::1]/",
    "http://[::ffff:10.0.0.1]/",
    "http://0.0.0.0",
    "ftp://example.com/file",
    "file:///etc/passwd",
    "http://intranet/",
    "https:///nohost",
    "http://127.1/",
    "http://127.1/admin",
    "http://10.1/",
    "http://192.168.1/",
    "http://0x7f.0.0.1/",
    "http://0177.0.0.1/",
    "http://2130706433/",
    "http://010.0.0.1/",
    "http://127.0.0.1.nip.io/",
    "http://10.0.0.5.sslip.io/",
    "http://192.168.0.10.nip.io:8080/",
  ],
)
@pytest.mark.anyio
async def test_rejects_internal_targets(url: str) -> None:
  with pytest.raises(UnsafeTargetError):
    await SourceGuard().check(url)


@pytest.mark.parametrize("url", ["https://example.com", "http://www.example.co.uk/pricing?x=1", "https://8.8.8.8/", "https://172.32.0.1", "https://1password.com/", "https://web3.example.io/"])
@pytest.mark.anyio
async def test_accepts_public_targets(url: str) -> None:
  await SourceGuard().check(url)


@pytest.mark.anyio
async def test_static_check_makes_no_dns_lookup() -> None:
  with patch("actionboost.evidence.source_guard.socket.getaddrinfo") as getaddrinfo:
    await SourceGuard().check("https://example.com")
  getaddrinfo.assert_not_called()


@pytest.mark.anyio
async def test_dns_mode_rejects_public_name_resolving_to_private_address() -> None:
  infos = [(2, 1, 6, "", ("10.1.2.3", 0))]
  with patch("actionboost.evidence.source_guard.socket.getaddrinfo", return_value=infos):
    with pytest.raises(UnsafeTargetError):
      await SourceGuard(resolve_dns=True).check("https://rebind.example.com")


@pytest.mark.anyio
async def test_dns_mode_accepts_public_resolution() -> None:
  infos = [(2, 1, 6, "", ("93.184.216.34", 0))]
  with patch("actionboost.evidence.source_guard.socket.getaddrinfo", return_value=infos):
    await SourceGuard(resolve_dns=True).check("https://example.com")
