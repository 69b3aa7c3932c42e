from __future__ import annotations

from dataclasses import replace

import pytest
from starlette.requests import Request

from actionboost.api.deps import get_client_ip
from actionboost.config import get_settings


def _request(forwarded: str | None = None, peer: tuple[str, int] | None = ("192.0.2.10", 52100)) -> Request:
  headers = [(b"x-forwarded-for", forwarded.encode("latin-1"))] if forwarded is not None else []
  return Request({"type": "http", "method": "POST", "path": "/", "headers": headers, "client": peer})


def test_forwarded_header_is_ignored_without_trusted_proxies() -> None:
  settings = replace(get_settings(), trusted_proxy_hops=0)
  assert get_client_ip(_request("203.0.113.9"), settings) == "192.0.2.10"


@pytest.mark.parametrize(
  ("forwarded", "hops", "expected"),
  [
    ("198.51.100.23", 1, "198.51.100.23"),
    # A client-supplied first entry is skipped; the proxy appended the real peer last.
    ("1.2.3.4, 198.51.100.23", 1, "198.51.100.23"),
    ("1.2.3.4, 198.51.100.23, 10.0.0.1", 2, "198.51.100.23"),
  ],
)
def test_trusted_proxy_hops_pick_the_proxy_appended_entry(forwarded: str, hops: int, expected: str) -> None:
  settings = replace(get_settings(), trusted_proxy_hops=hops)
  assert get_client_ip(_request(forwarded), settings) == expected


def test_short_forwarded_chain_falls_back_to_the_peer() -> None:
  settings = replace(get_settings(), trusted_proxy_hops=2)
  assert get_client_ip(_request("198.51.100.23"), settings) == "192.0.2.10"
  assert get_client_ip(_request(None, peer=None), settings) == "unknown"
