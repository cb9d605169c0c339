"""The contract a data type implements to be replayed from logs."""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Hashable

from jsonschema import Draft7Validator, validators

from ..log.errors import CorruptRecordError
from ..log.operation import Operation, default_order_key

if TYPE_CHECKING:
    from ..log.log_set import LogSet

logger = logging.getLogger(__name__)


def _is_integer(checker: Any, instance: Any) -> bool:
    # Draft 7 also counts 5.0 as an integer; apply() only handles real ints
    return isinstance(instance, int) and not isinstance(instance, bool)


PayloadValidator = validators.extend(
    Draft7Validator,
    type_checker=Draft7Validator.TYPE_CHECKER.redefine("integer", _is_integer),
)


class CRDT(ABC):
    """Base class for replayable data types.

    Implementations provide an initial state and a pure ``apply``. For two
    operations A and B from different authors, ``apply(apply(s, A), B)``
    must equal ``apply(apply(s, B), A)``. Operations of one author are
    always applied in sequence order. The engine does not check this;
    see ``check_commutativity`` for use in tests.

    Example:
        class Tally(CRDT):
            name = "tally"

            def initial_state(self) -> int:
                return 0

            def apply(self, state: int, operation: Operation) -> int:
                return state + operation.payload
    """

    name: str = ""

    payload_schema: dict[str, Any] | None = None
    """Optional JSON Schema that every payload must satisfy."""

    @abstractmethod
    def initial_state(self) -> Any:
        """State before any operation has been applied."""
        pass

    @abstractmethod
    def apply(self, state: Any, operation: Operation) -> Any:
        """Return the state after applying one operation.

        Must not mutate ``state``.
        """
        pass

    def order_key(self, operation: Operation) -> Hashable:
        """Replay ordering key; override to encode causality in payloads."""
        return default_order_key(operation)

    def validate_payload(self, payload: Any, source: str | None = None) -> None:
        """Check a payload against ``payload_schema``.

        Raises:
            CorruptRecordError: If the payload does not match.
        """
        if self.payload_schema is None:
            return

        validator = PayloadValidator(self.payload_schema)
        errors = list(validator.iter_errors(payload))
        if errors:
            messages = "; ".join(error.message for error in errors)
            raise CorruptRecordError(
                f"Invalid {self.name} payload: {messages}", source=source
            )

    def make_payload(self, value: Any, log_set: "LogSet") -> Any:
        """Turn a user-supplied value into a payload for a new operation.

        Types that stamp payloads with causal metadata override this.
        """
        return value

    def describe(self, state: Any) -> str:
        """Human-readable rendering of a state."""
        return str(state)


class CRDTRegistry:
    """Registry of CRDT types by name."""

    def __init__(self) -> None:
        self._types: dict[str, type[CRDT]] = {}

    def register(self, crdt_type: type[CRDT]) -> type[CRDT]:
        """Register a CRDT type under its ``name``.

        Returns the type so this can be used as a class decorator.
        """
        if not crdt_type.name:
            raise ValueError(f"{crdt_type.__name__} has no name")
        existing = self._types.get(crdt_type.name)
        if existing is not None and existing is not crdt_type:
            raise ValueError(f"CRDT name {crdt_type.name!r} already registered")
        self._types[crdt_type.name] = crdt_type
        logger.debug(f"Registered CRDT type {crdt_type.name}")
        return crdt_type

    def unregister(self, name: str) -> None:
        self._types.pop(name, None)

    def get(self, name: str) -> CRDT:
        """Instantiate a registered CRDT.

        Raises:
            KeyError: If no type is registered under this name.
        """
        try:
            return self._types[name]()
        except KeyError:
            raise KeyError(
                f"Unknown CRDT type {name!r}, known: {', '.join(self.names)}"
            ) from None

    @property
    def names(self) -> list[str]:
        return sorted(self._types)

    def __contains__(self, name: str) -> bool:
        return name in self._types


registry = CRDTRegistry()


def register_crdt(crdt_type: type[CRDT]) -> type[CRDT]:
    """Class decorator registering a CRDT type in the default registry."""
    return registry.register(crdt_type)


def get_crdt(name: str) -> CRDT:
    """Instantiate a CRDT from the default registry."""
    return registry.get(name)


def check_commutativity(
    crdt: CRDT, state: Any, first: Operation, second: Operation
) -> bool:
    """Whether two operations from different authors commute from ``state``."""
    if first.author_id == second.author_id:
        raise ValueError("Commutativity is only required across authors")
    one_way = crdt.apply(crdt.apply(state, first), second)
    other_way = crdt.apply(crdt.apply(state, second), first)
    return one_way == other_way
