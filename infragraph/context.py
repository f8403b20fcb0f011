from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from .config import Settings
from .program import ProgramConfig
from .provider import ProviderRegistry

if TYPE_CHECKING:  # pragma: no cover
    from structlog.typing import FilteringBoundLogger


@dataclass(kw_only=True)
class Context:
    """
    Everything a deployment run needs, passed explicitly through building, planning
    and execution.
    """

    providers: ProviderRegistry = field(default_factory=ProviderRegistry)
    config: ProgramConfig = field(default_factory=ProgramConfig)
    settings: Settings = field(default_factory=Settings)
    logger: "FilteringBoundLogger" = field(
        default_factory=lambda: structlog.get_logger("infragraph")
    )

    @property
    def secret_key(self) -> bytes:
        return self.settings.state_secret.encode()
