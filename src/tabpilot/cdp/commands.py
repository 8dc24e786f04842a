"""
CDP Commands - Typed request/response pairs for the CDP methods tabpilot uses.

Each command is a frozen dataclass that knows its method name, how to
build its ``params`` and how to parse the host's reply into a typed
result. Passing the wrong parameters is a ``TypeError`` at construction
time rather than a silent protocol failure.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional

from tabpilot.core.models import AXTree


@dataclass(frozen=True)
class Command:
    """Base class for a single CDP command."""

    method: ClassVar[str] = ""
    # Target-domain commands go to the browser, not to a tab session
    browser_level: ClassVar[bool] = False

    def params(self) -> Dict[str, Any]:
        return {}

    def parse(self, raw: Dict[str, Any]) -> Any:
        return None


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class TargetInfo:
    """Information about a CDP target."""
    target_id: str
    type: str
    url: str
    title: str
    attached: bool = False

    @classmethod
    def from_cdp(cls, raw: Dict[str, Any]) -> TargetInfo:
        return cls(
            target_id=raw["targetId"],
            type=raw.get("type", "unknown"),
            url=raw.get("url", ""),
            title=raw.get("title", ""),
            attached=bool(raw.get("attached", False)),
        )


@dataclass(frozen=True)
class RemoteObjectRef:
    """Handle to a JS object held by the host (``Runtime.RemoteObject``)."""
    object_id: Optional[str]
    class_name: Optional[str] = None


@dataclass(frozen=True)
class EvaluateResult:
    """Outcome of ``Runtime.evaluate``."""
    type: Optional[str]
    value: Any = None
    exception_details: Optional[Dict[str, Any]] = None

    @property
    def threw(self) -> bool:
        return self.exception_details is not None


# =============================================================================
# Target domain
# =============================================================================

@dataclass(frozen=True)
class GetTargets(Command):
    method: ClassVar[str] = "Target.getTargets"
    browser_level: ClassVar[bool] = True

    def parse(self, raw: Dict[str, Any]) -> List[TargetInfo]:
        return [TargetInfo.from_cdp(info) for info in raw["targetInfos"]]


@dataclass(frozen=True)
class AttachToTarget(Command):
    target_id: str
    method: ClassVar[str] = "Target.attachToTarget"
    browser_level: ClassVar[bool] = True

    def params(self) -> Dict[str, Any]:
        return {"targetId": self.target_id, "flatten": True}

    def parse(self, raw: Dict[str, Any]) -> str:
        return raw["sessionId"]


@dataclass(frozen=True)
class DetachFromTarget(Command):
    session_id: str
    method: ClassVar[str] = "Target.detachFromTarget"
    browser_level: ClassVar[bool] = True

    def params(self) -> Dict[str, Any]:
        return {"sessionId": self.session_id}


# =============================================================================
# DOM domain
# =============================================================================

@dataclass(frozen=True)
class DomEnable(Command):
    method: ClassVar[str] = "DOM.enable"


@dataclass(frozen=True)
class DomDisable(Command):
    method: ClassVar[str] = "DOM.disable"


@dataclass(frozen=True)
class ResolveNode(Command):
    backend_node_id: int
    method: ClassVar[str] = "DOM.resolveNode"

    def params(self) -> Dict[str, Any]:
        return {"backendNodeId": self.backend_node_id}

    def parse(self, raw: Dict[str, Any]) -> RemoteObjectRef:
        obj = raw["object"]
        return RemoteObjectRef(object_id=obj.get("objectId"), class_name=obj.get("className"))


@dataclass(frozen=True)
class GetDocument(Command):
    depth: int = -1
    pierce: bool = True
    method: ClassVar[str] = "DOM.getDocument"

    def params(self) -> Dict[str, Any]:
        return {"depth": self.depth, "pierce": self.pierce}

    def parse(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        return raw["root"]


@dataclass(frozen=True)
class RequestNode(Command):
    object_id: str
    method: ClassVar[str] = "DOM.requestNode"

    def params(self) -> Dict[str, Any]:
        return {"objectId": self.object_id}

    def parse(self, raw: Dict[str, Any]) -> int:
        return int(raw["nodeId"])


@dataclass(frozen=True)
class SetAttributeValue(Command):
    node_id: int
    name: str
    value: str
    method: ClassVar[str] = "DOM.setAttributeValue"

    def params(self) -> Dict[str, Any]:
        return {"nodeId": self.node_id, "name": self.name, "value": self.value}


@dataclass(frozen=True)
class RemoveAttribute(Command):
    node_id: int
    name: str
    method: ClassVar[str] = "DOM.removeAttribute"

    def params(self) -> Dict[str, Any]:
        return {"nodeId": self.node_id, "name": self.name}


# =============================================================================
# Runtime / Accessibility
# =============================================================================

@dataclass(frozen=True)
class RuntimeEvaluate(Command):
    expression: str
    return_by_value: bool = False
    user_gesture: bool = True
    await_promise: bool = False
    method: ClassVar[str] = "Runtime.evaluate"

    def params(self) -> Dict[str, Any]:
        return {
            "expression": self.expression,
            "returnByValue": self.return_by_value,
            "userGesture": self.user_gesture,
            "awaitPromise": self.await_promise,
        }

    def parse(self, raw: Dict[str, Any]) -> EvaluateResult:
        result = raw.get("result") or {}
        return EvaluateResult(
            type=result.get("type"),
            value=result.get("value"),
            exception_details=raw.get("exceptionDetails"),
        )


@dataclass(frozen=True)
class GetFullAXTree(Command):
    method: ClassVar[str] = "Accessibility.getFullAXTree"

    def parse(self, raw: Dict[str, Any]) -> AXTree:
        return AXTree.from_cdp(raw)
