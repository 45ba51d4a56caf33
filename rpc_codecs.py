"""XML-RPC envelope codec and a JSON-RPC caller built on :class:`HttpClient`."""

from __future__ import annotations

import base64
import itertools
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from xml.etree.ElementTree import Element
from xml.sax.saxutils import escape

from defusedxml import ElementTree as ET
from defusedxml.common import DefusedXmlException

from errors import ProtocolFault, ValidationError
from http_client import HttpClient

_XML_ESCAPES = {'"': "&quot;", "'": "&apos;"}
_I4_MIN, _I4_MAX = -(2 ** 31), 2 ** 31 - 1


def escape_xml(value: str) -> str:
    return escape(value, _XML_ESCAPES)


class XmlRpcCodec:
    """Hand-built XML-RPC 1.0 requests and responses.

    ``i8`` values are kept as decimal strings; callers convert the columns
    they know to be numeric.
    """

    @classmethod
    def create_call(cls, method: str, params: Sequence[Any] = ()) -> str:
        parts = ['<?xml version="1.0"?>', "<methodCall>",
                 f"<methodName>{escape_xml(method)}</methodName>", "<params>"]
        for param in params:
            parts.append(f"<param>{cls.serialize(param)}</param>")
        parts.append("</params></methodCall>")
        return "".join(parts)

    @classmethod
    def serialize(cls, value: Any) -> str:
        if value is None:
            return "<value><string></string></value>"
        if isinstance(value, bool):
            return f"<value><boolean>{1 if value else 0}</boolean></value>"
        if isinstance(value, int):
            tag = "i4" if _I4_MIN <= value <= _I4_MAX else "i8"
            return f"<value><{tag}>{value}</{tag}></value>"
        if isinstance(value, float):
            return f"<value><double>{value!r}</double></value>"
        if isinstance(value, str):
            return f"<value><string>{escape_xml(value)}</string></value>"
        if isinstance(value, (bytes, bytearray)):
            encoded = base64.b64encode(bytes(value)).decode("ascii")
            return f"<value><base64>{encoded}</base64></value>"
        if isinstance(value, dict):
            members = "".join(
                f"<member><name>{escape_xml(str(k))}</name>{cls.serialize(v)}</member>"
                for k, v in value.items()
            )
            return f"<value><struct>{members}</struct></value>"
        if isinstance(value, (list, tuple)):
            items = "".join(cls.serialize(v) for v in value)
            return f"<value><array><data>{items}</data></array></value>"
        raise TypeError(f"Cannot serialize {type(value).__name__} to XML-RPC")

    @classmethod
    def parse_response(cls, xml: Any) -> Any:
        """Return the single result value, or raise :class:`ProtocolFault` for a <fault>."""
        if not isinstance(xml, (str, bytes)) or not xml:
            raise ValidationError("Empty or non-text XML-RPC response")
        try:
            root = ET.fromstring(xml)
        except (ET.ParseError, DefusedXmlException) as exc:
            raise ValidationError(f"Malformed XML-RPC response: {exc}") from exc

        if root.tag != "methodResponse":
            raise ValidationError(f"Unexpected XML-RPC root element <{root.tag}>")

        fault = root.find("fault/value")
        if fault is not None:
            detail = cls.deserialize(fault)
            if not isinstance(detail, dict):
                raise ValidationError("XML-RPC fault without struct")
            raise ProtocolFault(
                str(detail.get("faultString", "")),
                code=detail.get("faultCode"),
            )

        value = root.find("params/param/value")
        if value is None:
            return None
        return cls.deserialize(value)

    @classmethod
    def deserialize(cls, value: Element) -> Any:
        children = list(value)
        if not children:
            # Untyped <value> is a string.
            return value.text or ""
        node = children[0]
        tag = node.tag
        text = node.text or ""
        if tag == "string":
            return text
        if tag in ("i4", "int"):
            return int(text.strip() or 0)
        if tag == "i8":
            return text.strip()
        if tag == "double":
            return float(text.strip() or 0)
        if tag == "boolean":
            return text.strip() == "1"
        if tag == "base64":
            return base64.b64decode(text)
        if tag == "nil":
            return None
        if tag == "dateTime.iso8601":
            return text.strip()
        if tag == "array":
            return [cls.deserialize(v) for v in node.findall("data/value")]
        if tag == "struct":
            result = {}
            for member in node.findall("member"):
                inner = member.find("value")
                result[member.findtext("name", "")] = cls.deserialize(inner) if inner is not None else None
            return result
        raise ValidationError(f"Unsupported XML-RPC type <{tag}>")


def multicall_params(calls: Iterable[Tuple[str, Sequence[Any]]]) -> List[List[Dict[str, Any]]]:
    return [[{"methodName": method, "params": list(params)} for method, params in calls]]


def unwrap_multicall(results: Any) -> List[Any]:
    """Each system.multicall entry is ``[value]`` on success or a fault struct."""
    if not isinstance(results, list):
        raise ValidationError("system.multicall did not return an array")
    values = []
    for entry in results:
        if isinstance(entry, dict) and "faultCode" in entry:
            raise ProtocolFault(str(entry.get("faultString", "")), code=entry.get("faultCode"))
        if not isinstance(entry, list) or not entry:
            raise ValidationError(f"Malformed multicall entry: {entry!r}")
        values.append(entry[0])
    return values


_id_counter = itertools.count(1)
_id_lock = threading.Lock()


def next_request_id() -> str:
    with _id_lock:
        n = next(_id_counter)
    return f"tc-{int(time.time() * 1000)}-{n}"


class JsonRpcClient:
    """POSTs JSON-RPC 2.0 envelopes to one endpoint of an :class:`HttpClient`."""

    def __init__(self, http: HttpClient, endpoint: str = "", auth_header: Optional[str] = None) -> None:
        self.http = http
        self.endpoint = endpoint
        self.auth_header = auth_header

    def build_request(self, method: str, params: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "method": method,
            "params": list(params or []),
            "id": next_request_id(),
        }

    def call(self, method: str, params: Optional[Sequence[Any]] = None, retry: Any = None) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.auth_header:
            headers["Authorization"] = self.auth_header
        response = self.http.post(self.endpoint, body=self.build_request(method, params),
                                  headers=headers, retry=retry)
        if not isinstance(response, dict):
            raise ValidationError(f"{method}: expected a JSON-RPC object, got {type(response).__name__}")

        error = response.get("error")
        if error:
            if isinstance(error, dict):
                raise ProtocolFault(str(error.get("message", "JSON-RPC error")),
                                    code=error.get("code"), data=error.get("data"))
            raise ProtocolFault(str(error))
        return response.get("result")
