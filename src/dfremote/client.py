# src/dfremote/client.py
"""
dfremote — RPC client

DwarfClient binds every procedure of the declarative table on connect and
exposes each bound procedure as a RemoteMethod:

  client = await DwarfClient.connect(load_client_config())
  res = await client.call("GetVersion")
  if res.ok:
      print(res.value)

Binding:
  BindMethod always travels with procedure id 0. Each bind call is awaited
  before the next one is sent, so at most one call is in flight during
  startup. A FAIL reply marks the procedure unavailable; calling it raises
  MethodNotBound.

Failures:
  A FAIL reply to an ordinary call is not an exception. It comes back as
  CallResult(ok=False, code=<CommandResult>). Exceptions are reserved for
  usage errors and transport problems.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Tuple, TypeVar

from dfremote.codec import DwarfWireCodec
from dfremote.config import ClientConfig, load_client_config
from dfremote.errors import ConnectionStateError, FramedCodecError, MethodNotBound, WireDecodeError
from dfremote.messages import BIND_METHOD_ID, CommandResult, DwarfMessage, HeaderRevision
from dfremote.methods import BIND_METHOD, FUNC_DEFS, FuncGroup, method_defs
from dfremote.net_logging import log_event, log_warning
from dfremote.runner import DEFAULT_CLOSE_GRACE_S, CodecRunner
from dfremote.schema import MessageCodec, SchemaRegistry, json_registry
from dfremote.transport import Connection
from dfremote.transport_tcp import TcpConnection

_log = logging.getLogger("dfremote.client")

T = TypeVar("T")

BIND_REQUEST_TYPE = "dfproto.CoreBindRequest"
BIND_REPLY_TYPE = "dfproto.CoreBindReply"


async def _with_timeout(aw: Awaitable[T], timeout_s: Optional[float]) -> T:
    if timeout_s is None:
        return await aw
    return await asyncio.wait_for(aw, timeout_s)


def _assigned_id(reply: Any) -> int:
    try:
        if isinstance(reply, dict):
            return int(reply["assigned_id"])
        return int(getattr(reply, "assigned_id"))
    except (KeyError, AttributeError, TypeError, ValueError) as e:
        raise WireDecodeError("invalid_bind_reply", f"bind reply has no usable assigned_id: {reply!r}") from e


# ---------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------


@dataclass(slots=True)
class MethodEntry:
    name: str
    input_type: str
    output_type: str
    plugin: Optional[str] = None
    method_id: Optional[int] = None

    @property
    def available(self) -> bool:
        return self.method_id is not None


@dataclass(frozen=True, slots=True)
class CallResult:
    ok: bool
    value: Any = None
    code: Optional[int] = None
    # raw TEXT notification payloads that preceded the terminal frame
    notifications: Tuple[bytes, ...] = ()


@dataclass(frozen=True, slots=True)
class RemoteMethod:
    name: str
    method_id: int
    input_codec: MessageCodec
    output_codec: MessageCodec
    runner: CodecRunner
    timeout_s: Optional[float] = None

    async def __call__(self, value: Any = None) -> CallResult:
        payload = self.input_codec.encode(value)
        reply = await _with_timeout(
            self.runner.write_read(DwarfMessage(id=self.method_id, data=payload)),
            self.timeout_s,
        )
        notes = tuple(m.data for m in reply.texts)
        if reply.failed:
            code = reply.result.error_code
            log_warning(_log, "call_failed", method=self.name, method_id=self.method_id, code=code)
            return CallResult(ok=False, code=code, notifications=notes)
        return CallResult(
            ok=True,
            value=self.output_codec.decode(reply.result.data),
            code=CommandResult.OK,
            notifications=notes,
        )


# ---------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------


class DwarfClient:
    def __init__(
        self,
        connection: Connection,
        *,
        schemas: Optional[SchemaRegistry] = None,
        groups: Iterable[FuncGroup] = FUNC_DEFS,
        revision: HeaderRevision = HeaderRevision.PADDED,
        close_grace_s: float = DEFAULT_CLOSE_GRACE_S,
        call_timeout_s: Optional[float] = None,
    ) -> None:
        self.schemas = schemas if schemas is not None else json_registry()
        self.call_timeout_s = call_timeout_s

        self._defs = method_defs(groups)
        self._entries: Dict[str, MethodEntry] = {}
        self._remote_methods: Dict[str, RemoteMethod] = {}
        self._init_task: Optional[asyncio.Task] = None
        self._ready = False

        self.framed = CodecRunner(
            DwarfWireCodec(revision=revision),
            connection,
            on_open=self._on_open,
            close_grace_s=close_grace_s,
        )

    @classmethod
    async def connect(
        cls,
        config: Optional[ClientConfig] = None,
        *,
        schemas: Optional[SchemaRegistry] = None,
        groups: Iterable[FuncGroup] = FUNC_DEFS,
    ) -> "DwarfClient":
        cfg = config or load_client_config()
        conn = TcpConnection(cfg.host, cfg.port)
        client = cls(
            conn,
            schemas=schemas,
            groups=groups,
            revision=cfg.header_revision,
            close_grace_s=cfg.close_grace_s,
            call_timeout_s=cfg.call_timeout_s,
        )
        await conn.open()
        await client.wait_ready()
        return client

    # -------------------------
    # lifecycle
    # -------------------------

    def _on_open(self, runner: CodecRunner) -> None:
        self._init_task = asyncio.get_running_loop().create_task(self.initialize())
        self._init_task.add_done_callback(self._on_init_done)

    def _on_init_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_warning(_log, "client_init_failed", addr=self.framed.connection.address, error=repr(exc))

    @property
    def ready(self) -> bool:
        return self._ready

    async def wait_ready(self) -> None:
        if self._ready:
            return
        if self._init_task is None:
            raise ConnectionStateError("not_open", "connection has not opened yet")
        await self._init_task

    async def initialize(self) -> Dict[str, Optional[int]]:
        """Bind every declared procedure, one at a time."""
        for d in self._defs:
            entry = MethodEntry(name=d.name, input_type=d.input_type, output_type=d.output_type, plugin=d.plugin)
            self._entries[d.name] = entry

            if d.input_type not in self.schemas or d.output_type not in self.schemas:
                log_event(_log, "bind_skipped_no_schema", method=d.name, input=d.input_type, output=d.output_type)
                continue

            try:
                entry.method_id = await self.bind_method(d.name, d.input_type, d.output_type, d.plugin)
            except (FramedCodecError, WireDecodeError) as e:
                log_warning(_log, "bind_error", method=d.name, code=e.code, reason=str(e))
                continue

            if entry.method_id is not None and d.name != BIND_METHOD:
                self._remote_methods[d.name] = RemoteMethod(
                    name=d.name,
                    method_id=entry.method_id,
                    input_codec=self.schemas.get(d.input_type),
                    output_codec=self.schemas.get(d.output_type),
                    runner=self.framed,
                    timeout_s=self.call_timeout_s,
                )

        self._ready = True
        log_event(
            _log,
            "client_ready",
            bound=len(self._remote_methods),
            unavailable=sorted(n for n, e in self._entries.items() if not e.available),
        )
        return {name: e.method_id for name, e in self._entries.items()}

    def close(self) -> None:
        self.framed.close()

    async def __aenter__(self) -> "DwarfClient":
        await self.wait_ready()
        return self

    async def __aexit__(self, *_: Any) -> None:
        self.close()

    # -------------------------
    # registry
    # -------------------------

    @property
    def entries(self) -> Dict[str, MethodEntry]:
        return dict(self._entries)

    def available_methods(self) -> List[str]:
        return sorted(self._remote_methods.keys())

    def get_method_id(self, name: str) -> int:
        entry = self._entries.get(name)
        if entry is None or entry.method_id is None:
            raise MethodNotBound(name)
        return entry.method_id

    def method(self, name: str) -> RemoteMethod:
        rm = self._remote_methods.get(name)
        if rm is None:
            raise MethodNotBound(name)
        return rm

    async def call(self, name: str, value: Any = None) -> CallResult:
        return await self.method(name)(value)

    # -------------------------
    # core procedures
    # -------------------------

    async def bind_method(
        self,
        method: str,
        input_msg: str,
        output_msg: str,
        plugin: Optional[str] = None,
    ) -> Optional[int]:
        """Ask the server for the id of a procedure. None if it refuses."""
        req: Dict[str, Any] = {"method": method, "input_msg": input_msg, "output_msg": output_msg}
        if plugin is not None:
            req["plugin"] = plugin

        payload = self.schemas.get(BIND_REQUEST_TYPE).encode(req)
        reply = await _with_timeout(
            self.framed.write_read(DwarfMessage(id=BIND_METHOD_ID, data=payload)),
            self.call_timeout_s,
        )
        if reply.failed:
            log_warning(_log, "bind_failed", method=method, plugin=plugin, code=reply.result.error_code)
            return None

        method_id = _assigned_id(self.schemas.get(BIND_REPLY_TYPE).decode(reply.result.data))
        log_event(_log, "bind_ok", method=method, plugin=plugin, method_id=method_id)
        return method_id

    async def run_command(self, command: str, *arguments: str) -> CallResult:
        """Run a console command; its output arrives as TEXT notifications."""
        return await self.call("RunCommand", {"command": command, "arguments": list(arguments)})
