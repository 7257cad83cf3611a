"""
Shared type system for the Aggrekart engine.
Rust-inspired Result pattern and business type aliases for clean service boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

# Type variables for generic Result
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type

# ===============================================================================
# RESULT TYPES
# ===============================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Success result containing a value"""

    value: T

    def unwrap(self) -> T:
        """Get the success value"""
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    """Error result containing an error value"""

    error: E

    def unwrap(self) -> Any:
        """Raises an exception - check for Err before unwrapping"""
        raise ValueError(f"Called unwrap on Err: {self.error}")


# Result type alias
Result = Ok[T] | Err[E]

# ===============================================================================
# BUSINESS TYPES
# ===============================================================================

CustomerId = str  # Identifier issued by the user-account service
OrderId = str  # Order reference: "ORD20240101XYZ"
ActorId = str  # Admin, supplier or system principal performing an action
