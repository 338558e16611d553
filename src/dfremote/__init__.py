# src/dfremote/__init__.py
"""
dfremote — DFHack remote protocol client

This package provides a small, asyncio-based client stack:
  - messages: wire constants, DwarfMessage / LogicalReply
  - codec: handshake-gated frame codec (tagged decode results)
  - transport: abstract connection interface
  - transport_tcp: asyncio TCP connection
  - transport_memory: in-process connection for tests
  - runner: FIFO-correlated write/read over one connection
  - schema: type-name -> encode/decode registry
  - methods: declarative table of remote procedures
  - client: binds procedures and exposes them as callables
  - config: environment-driven client settings

Higher layers should depend on:
  - dfremote.client (for calling procedures)
  - dfremote.schema (for registering message codecs)
and treat runner/codec as internals.
"""

from __future__ import annotations

__all__ = [
    "messages",
    "codec",
    "transport",
    "transport_tcp",
    "transport_memory",
    "runner",
    "schema",
    "methods",
    "client",
    "config",
]
