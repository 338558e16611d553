# src/dfremote/schema.py
"""
dfremote — Schema boundary

The transport never looks inside message bodies. Every procedure names its
input and output types by a fully-qualified string ("dfproto.IntMessage");
a SchemaRegistry maps those names to an encode/decode pair.

DFHack itself speaks protobuf; deployments register protobuf codecs here.
json_registry() provides pydantic models of the core dfproto types encoded
as JSON, which is what the in-memory harness and the tests use.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Type

from pydantic import BaseModel, Field, ValidationError

from dfremote.errors import SchemaNotFound, WireDecodeError, WireEncodeError


class MessageCodec(NamedTuple):
    encode: Callable[[Any], bytes]
    decode: Callable[[bytes], Any]


class SchemaRegistry:
    def __init__(self) -> None:
        self._codecs: Dict[str, MessageCodec] = {}

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._codecs

    def names(self) -> Iterable[str]:
        return sorted(self._codecs.keys())

    def register(self, type_name: str, encode: Callable[[Any], bytes], decode: Callable[[bytes], Any]) -> None:
        self._codecs[str(type_name)] = MessageCodec(encode=encode, decode=decode)

    def register_model(self, type_name: str, model: Type[BaseModel]) -> None:
        """Register a pydantic model, encoded as compact JSON."""

        def encode(value: Any) -> bytes:
            try:
                obj = value if isinstance(value, model) else model.model_validate(value or {})
            except ValidationError as e:
                raise WireEncodeError("invalid_value", f"{type_name}: {e}") from e
            return obj.model_dump_json(exclude_none=True).encode("utf-8")

        def decode(data: bytes) -> Any:
            # protobuf encodes an all-default message as zero bytes
            try:
                return model.model_validate_json(bytes(data) or b"{}")
            except ValidationError as e:
                raise WireDecodeError("invalid_payload", f"{type_name}: {e}") from e

        self.register(type_name, encode, decode)

    def get(self, type_name: str) -> MessageCodec:
        codec = self._codecs.get(type_name)
        if codec is None:
            raise SchemaNotFound(type_name)
        return codec


# ---------------------------------------------------------------------
# Core dfproto types (JSON rendition)
# ---------------------------------------------------------------------


class EmptyMessage(BaseModel):
    pass


class IntMessage(BaseModel):
    value: int = 0


class StringMessage(BaseModel):
    value: str = ""


class StringListMessage(BaseModel):
    value: List[str] = Field(default_factory=list)


class CoreBindRequest(BaseModel):
    method: str
    input_msg: str
    output_msg: str
    plugin: Optional[str] = None


class CoreBindReply(BaseModel):
    assigned_id: int


class CoreRunCommandRequest(BaseModel):
    command: str
    arguments: List[str] = Field(default_factory=list)


class CoreRunLuaRequest(BaseModel):
    module: str
    function: str
    arguments: List[str] = Field(default_factory=list)


class CoreTextFragment(BaseModel):
    text: str
    color: Optional[int] = None


class CoreTextNotification(BaseModel):
    fragments: List[CoreTextFragment] = Field(default_factory=list)


CORE_MODELS: Dict[str, Type[BaseModel]] = {
    "dfproto.EmptyMessage": EmptyMessage,
    "dfproto.IntMessage": IntMessage,
    "dfproto.StringMessage": StringMessage,
    "dfproto.StringListMessage": StringListMessage,
    "dfproto.CoreBindRequest": CoreBindRequest,
    "dfproto.CoreBindReply": CoreBindReply,
    "dfproto.CoreRunCommandRequest": CoreRunCommandRequest,
    "dfproto.CoreRunLuaRequest": CoreRunLuaRequest,
    "dfproto.CoreTextNotification": CoreTextNotification,
}


def json_registry() -> SchemaRegistry:
    reg = SchemaRegistry()
    for name, model in CORE_MODELS.items():
        reg.register_model(name, model)
    return reg
