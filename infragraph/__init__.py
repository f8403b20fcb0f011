from .config import Settings
from .deployment import Deployment
from .executor import ApplyResult, Executor, NodeStatus
from .graph import ResourceGraph
from .loader import load_program, parse_program
from .outputs import OutputTable
from .plan import Action, ExecutionPlan
from .program import ConfigKey, Program, ProgramConfig
from .provider import MemoryProvider, Provider, ProviderRegistry, ProviderResult
from .resolver import resolve
from .resource import Declaration
from .store import FileStateStore, MemoryStateStore, StateStore, ValkeyStateStore
from .values import ConfigRef, Reference, Secret

__all__ = [
    "Action",
    "ApplyResult",
    "ConfigKey",
    "ConfigRef",
    "Declaration",
    "Deployment",
    "ExecutionPlan",
    "Executor",
    "FileStateStore",
    "MemoryProvider",
    "MemoryStateStore",
    "NodeStatus",
    "OutputTable",
    "Program",
    "ProgramConfig",
    "Provider",
    "ProviderRegistry",
    "ProviderResult",
    "Reference",
    "ResourceGraph",
    "Secret",
    "Settings",
    "StateStore",
    "ValkeyStateStore",
    "load_program",
    "parse_program",
    "resolve",
]
