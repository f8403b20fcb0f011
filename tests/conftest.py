from pathlib import Path

import pytest

from infragraph import ProviderRegistry, Settings
from infragraph.context import Context

from .providers import RESOURCE_GROUP, RecordingProvider

PROGRAMS = Path(__file__).parent / "programs"


@pytest.fixture(
    params=[
        pytest.param(("asyncio", {"use_uvloop": False}), id="asyncio"),
        pytest.param(
            ("trio", {"restrict_keyboard_interrupt_to_checkpoints": True}), id="trio"
        ),
    ],
    scope="session",
)
def anyio_backend(request):
    return request.param


@pytest.fixture
def provider():
    return RecordingProvider(lookups={RESOURCE_GROUP: {"name": "rg-prod"}})


@pytest.fixture
def providers(provider):
    return ProviderRegistry({"test": provider, "azure-native": provider})


@pytest.fixture
def context(providers):
    return Context(providers=providers, settings=Settings(parallelism=4))


@pytest.fixture
def keyvault_program_path():
    return PROGRAMS / "keyvault.yaml"
