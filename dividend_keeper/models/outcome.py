"""
Invocation outcomes handed back to the hosting executor.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple, Union


@dataclass(frozen=True)
class CallDescriptor:
    """A dailyDivide call ready to be relayed."""
    to: str
    data: str
    role_ids: Tuple[int, ...]
    amounts: Tuple[int, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"to": self.to, "data": self.data}


@dataclass(frozen=True)
class Execute:
    """Relay the enclosed calls."""
    call_data: Tuple[CallDescriptor, ...]
    can_exec: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"canExec": True, "callData": [call.to_dict() for call in self.call_data]}


@dataclass(frozen=True)
class Skip:
    """Nothing to relay this time."""
    message: str
    can_exec: bool = field(default=False, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"canExec": False, "message": self.message}


InvocationResult = Union[Execute, Skip]
