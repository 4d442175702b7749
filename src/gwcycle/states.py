"""Parameter-set containers shared by every GWCYCLE proposal."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from .errors import ParameterTypeError, ProposalError


class VaryType(enum.IntEnum):
    """How the sampler treats a parameter."""

    FIXED = 0
    LINEAR = 1
    CIRCULAR = 2
    OUTPUT = 3


class ValueKind(enum.Enum):
    """Tag of the value held by a :class:`Variable`."""

    SCALAR = "scalar"
    MATRIX = "matrix"
    VECTOR = "vector"
    ENUM = "enum"


Value = Union[float, np.ndarray, str]

# Parameter groups used by the subspace kernels.
INTRINSIC_NAMES = (
    "chirpmass",
    "q",
    "eta",
    "m1",
    "m2",
    "a_spin1",
    "a_spin2",
    "tilt_spin1",
    "tilt_spin2",
    "phi12",
)
EXTRINSIC_NAMES = (
    "rightascension",
    "declination",
    "polarisation",
    "distance",
    "logdistance",
    "phase",
    "time",
    "costheta_jn",
    "theta",
    "cosalpha",
    "t0",
)


def extrinsic_names(marg_time: bool = False, marg_phi: bool = False) -> Tuple[str, ...]:
    """Extrinsic subspace without the parameters the likelihood marginalises."""

    drop = set()
    if marg_time:
        drop.add("time")
    if marg_phi:
        drop.add("phase")
    return tuple(n for n in EXTRINSIC_NAMES if n not in drop)


def _kind_of(value) -> ValueKind:
    if isinstance(value, (str, enum.Enum)):
        return ValueKind.ENUM
    if isinstance(value, np.ndarray):
        if value.ndim == 2:
            return ValueKind.MATRIX
        if value.ndim == 1:
            return ValueKind.VECTOR
        raise ParameterTypeError(f"unsupported array rank {value.ndim}")
    if isinstance(value, (bool, np.bool_)):
        raise ParameterTypeError("boolean parameters are not supported")
    if isinstance(value, (int, float, np.integer, np.floating)):
        return ValueKind.SCALAR
    raise ParameterTypeError(f"unsupported parameter value {type(value).__name__}")


def _normalise(value, kind: ValueKind):
    if kind is ValueKind.SCALAR:
        return float(value)
    if kind is ValueKind.ENUM:
        return value
    return np.array(value, copy=True)


@dataclass
class Variable:
    """One named entry of a parameter set."""

    value: Value
    vary: VaryType
    kind: ValueKind

    def copy(self) -> "Variable":
        v = self.value.copy() if isinstance(self.value, np.ndarray) else self.value
        return Variable(value=v, vary=self.vary, kind=self.kind)


class Variables:
    """Ordered, named, typed parameter set.

    Iteration order is insertion order and never changes when a value is
    overwritten, so index-based selection is reproducible.
    """

    def __init__(self, items: Optional[Dict[str, Tuple[Value, VaryType]]] = None):
        self._items: Dict[str, Variable] = {}
        for name, (value, vary) in (items or {}).items():
            self.add(name, value, vary)

    # ---- construction ----
    def add(self, name: str, value: Value, vary: VaryType = VaryType.LINEAR) -> None:
        """Add ``name`` or overwrite it in place (position is kept)."""

        kind = _kind_of(value)
        self._items[name] = Variable(_normalise(value, kind), VaryType(vary), kind)

    def copy(self) -> "Variables":
        out = Variables()
        out._items = {k: v.copy() for k, v in self._items.items()}
        return out

    # ---- lookup ----
    def __contains__(self, name: str) -> bool:
        return name in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def names(self) -> List[str]:
        return list(self._items)

    def item(self, name: str) -> Variable:
        try:
            return self._items[name]
        except KeyError:
            raise ProposalError(f"parameter '{name}' is not in the parameter set") from None

    def get(self, name: str) -> Value:
        return self.item(name).value

    def get_scalar(self, name: str) -> float:
        it = self.item(name)
        if it.kind is not ValueKind.SCALAR:
            raise ParameterTypeError(
                f"parameter '{name}' holds a {it.kind.value}, a scalar was required"
            )
        return it.value

    def get_matrix(self, name: str) -> np.ndarray:
        it = self.item(name)
        if it.kind is not ValueKind.MATRIX:
            raise ParameterTypeError(
                f"parameter '{name}' holds a {it.kind.value}, a matrix was required"
            )
        return it.value

    def get_vector(self, name: str) -> np.ndarray:
        it = self.item(name)
        if it.kind is not ValueKind.VECTOR:
            raise ParameterTypeError(
                f"parameter '{name}' holds a {it.kind.value}, a vector was required"
            )
        return it.value

    def vary(self, name: str) -> VaryType:
        return self.item(name).vary

    def kind(self, name: str) -> ValueKind:
        return self.item(name).kind

    def is_non_fixed(self, name: str) -> bool:
        it = self._items.get(name)
        return it is not None and it.vary in (VaryType.LINEAR, VaryType.CIRCULAR)

    def is_non_fixed_scalar(self, name: str) -> bool:
        return self.is_non_fixed(name) and self._items[name].kind is ValueKind.SCALAR

    def non_fixed_scalar_names(self) -> List[str]:
        """Names of sampled real scalars, in set order."""

        return [n for n in self._items if self.is_non_fixed_scalar(n)]

    def non_fixed_names(self) -> List[str]:
        return [n for n in self._items if self.is_non_fixed(n)]

    # ---- mutation ----
    def set(self, name: str, value: Value) -> None:
        """Overwrite an existing entry, keeping its kind."""

        it = self.item(name)
        kind = _kind_of(value)
        if kind is not it.kind:
            raise ParameterTypeError(
                f"cannot store a {kind.value} in '{name}', which holds a {it.kind.value}"
            )
        it.value = _normalise(value, kind)

    def set_scalar(self, name: str, value: float) -> None:
        self.get_scalar(name)
        self._items[name].value = float(value)

    # ---- comparisons / export ----
    def same_values(self, other: "Variables") -> bool:
        """True when both sets hold the same names with equal values."""

        if self.names() != other.names():
            return False
        for name, it in self._items.items():
            ot = other._items[name]
            if it.kind is not ot.kind:
                return False
            if isinstance(it.value, np.ndarray):
                if it.value.shape != ot.value.shape or not np.array_equal(it.value, ot.value):
                    return False
            elif it.value != ot.value:
                return False
        return True

    def scalar_vector(self, names: List[str]) -> np.ndarray:
        return np.array([self.get_scalar(n) for n in names], dtype=float)

    def __repr__(self) -> str:
        body = ", ".join(
            f"{n}={v.value!r}" if v.kind is not ValueKind.MATRIX else f"{n}=<{v.value.shape}>"
            for n, v in self._items.items()
        )
        return f"Variables({body})"


__all__ = [name for name in globals() if not name.startswith("_")]
