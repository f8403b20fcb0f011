from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from typing import Any


class InfragraphError(Exception):
    def __init__(self, *args: "Any", **kwargs: "Any") -> None:
        super().__init__(*args, **kwargs)


##
## VALIDATION
##


class ValidationError(InfragraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class UnbuiltGraphError(InfragraphError):
    def __init__(self) -> None:
        super().__init__("Resource graphs must be built before they can be used.")


class ProgramFormatError(ValidationError):
    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Invalid program '{source}': {reason}")


class DuplicateIdError(ValidationError):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Resource '{node_id}' is declared more than once.")


class DanglingReferenceError(ValidationError):
    def __init__(self, node_id: str, target: str, via: str = "reference") -> None:
        self.node_id = node_id
        self.target = target
        super().__init__(
            f"Resource '{node_id}' has a {via} to undeclared resource '{target}'."
        )


class CycleDetectedError(ValidationError):
    def __init__(self, cycles: list[tuple[str, ...]]) -> None:
        self.cycles = cycles
        cycle_str = "\n  ".join(
            " -> ".join((*cycle, cycle[0])) for cycle in cycles
        )
        super().__init__(
            "Resource graphs cannot contain dependency cycles. Offending cycles:\n"
            f"  {cycle_str}"
        )


class MissingConfigError(ValidationError):
    def __init__(self, keys: set[str]) -> None:
        self.keys = keys
        super().__init__(
            f"Program requires values for config keys: {', '.join(sorted(keys))}."
        )


class UnknownProviderError(ValidationError):
    def __init__(self, resource_type: str) -> None:
        self.resource_type = resource_type
        super().__init__(
            f"No provider is registered for resource type '{resource_type}'."
        )


##
## EXECUTION
##


class ProviderError(InfragraphError):
    def __init__(self, node_id: str, message: str) -> None:
        self.node_id = node_id
        super().__init__(f"Resource '{node_id}': {message}")


class ProviderTimeoutError(ProviderError):
    def __init__(self, node_id: str, action: str, timeout: float) -> None:
        super().__init__(
            node_id,
            f"provider {action} did not complete before max timeout ({timeout}s).",
        )


class MissingOutputError(ProviderError):
    def __init__(self, node_id: str, target: str, output: str) -> None:
        super().__init__(
            node_id, f"resource '{target}' did not produce an output named '{output}'."
        )


class SealedSecretError(ProviderError):
    def __init__(self, node_id: str) -> None:
        super().__init__(
            node_id,
            "an input refers to a secret output only known by its stored digest;"
            " apply its producer again to make it available.",
        )


##
## OUTPUTS
##


class OutputError(InfragraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class OutputAlreadyPublishedError(OutputError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"Outputs for resource '{node_id}' were already published.")


class UnavailableOutputError(OutputError):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(
            f"Resource '{node_id}' did not complete, its outputs are unavailable."
        )


##
## STATE
##


class StateError(InfragraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class TamperedStateError(StateError):
    def __init__(self) -> None:
        super().__init__("State deserialization failed due to signature mismatch.")


class StateLockError(StateError):
    def __init__(self, name: str, blocking_timeout: float) -> None:
        super().__init__(
            f"Could not acquire state lock {name} within {blocking_timeout} seconds."
        )
