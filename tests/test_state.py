from unittest.mock import AsyncMock

import anyio
import pytest

from infragraph import FileStateStore, Settings, ValkeyStateStore
from infragraph.exceptions import StateError, StateLockError, TamperedStateError
from infragraph.lock import FileLock, ValkeyLock
from infragraph.serialization import SignedZstdSerializer
from infragraph.state import ResourceState, State
from infragraph.store import state_store_from_url

STATE = State(
    resources={
        "vault": ResourceState(
            type="azure-native:keyvault:Vault",
            id="vault-1",
            inputs={"sku": "standard"},
            outputs={"id": "vault-1", "sku": "standard"},
        ),
        "secret": ResourceState(
            type="azure-native:keyvault:Secret",
            id="secret-1",
            parent="vault",
            dependencies=["vault"],
        ),
    }
)


@pytest.fixture
def glide_client():
    client = AsyncMock()
    client.get.return_value = None
    return client


@pytest.fixture
def valkey_store(glide_client):
    store = ValkeyStateStore(
        glide_config=None,
        key="infragraph:state",
        serializer=SignedZstdSerializer("supersecretsecret"),
        lock_timeout=0.2,
    )
    store.client = AsyncMock(return_value=glide_client)
    return store


@pytest.mark.anyio
async def test_file_store(tmp_path):
    store = FileStateStore(tmp_path / "nested" / "state.json")

    assert await store.load() == State()

    await store.save(STATE)

    assert await store.load() == STATE
    assert list((await store.load()).resources) == ["vault", "secret"]
    assert sorted(p.name for p in (tmp_path / "nested").iterdir()) == ["state.json"]


@pytest.mark.anyio
async def test_file_store_invalid(tmp_path):
    path = tmp_path / "state.json"
    path.write_text('{"resources": {"vault": {"id": 3}}}')

    with pytest.raises(StateError):
        await FileStateStore(path).load()


@pytest.mark.anyio
async def test_file_lock_is_exclusive(tmp_path):
    path = tmp_path / "state.json.lock"

    async with FileLock(path, blocking_timeout=1):
        assert path.exists()

        with pytest.raises(StateLockError):
            async with FileLock(path, blocking_timeout=0.2):
                pass

    assert not path.exists()

    async with FileStateStore(tmp_path / "state.json").lock():
        assert path.exists()


@pytest.mark.anyio
async def test_file_lock_waits_for_release(tmp_path):
    path = tmp_path / "state.json.lock"
    order = []

    async def _contend():
        async with FileLock(path, blocking_timeout=5):
            order.append("second")

    async with anyio.create_task_group() as tg:
        async with FileLock(path, blocking_timeout=1):
            tg.start_soon(_contend)
            await anyio.sleep(0.2)
            order.append("first")

    assert order == ["first", "second"]


@pytest.mark.anyio
async def test_valkey_store(valkey_store, glide_client):
    assert await valkey_store.load() == State()

    await valkey_store.save(STATE)

    key, data = glide_client.set.call_args.args
    assert key == "infragraph:state"

    glide_client.get.return_value = data
    assert await valkey_store.load() == STATE


@pytest.mark.anyio
async def test_valkey_store_tampered(valkey_store, glide_client):
    data = SignedZstdSerializer("supersecretsecret").dump(STATE)
    signature, compressed = data.split(b"|", 1)

    for tampered in (b"no separator", b"0" * len(signature) + b"|" + compressed):
        glide_client.get.return_value = tampered

        with pytest.raises(TamperedStateError):
            await valkey_store.load()

    glide_client.get.return_value = SignedZstdSerializer("othersecret").dump(STATE)

    with pytest.raises(TamperedStateError):
        await valkey_store.load()


@pytest.mark.anyio
async def test_valkey_lock(valkey_store, glide_client):
    glide_client.set.return_value = "OK"

    async with valkey_store.lock():
        pass

    glide_client.invoke_script.assert_awaited_once()
    assert glide_client.invoke_script.call_args.kwargs["keys"] == [
        "infragraph:state:lock"
    ]


@pytest.mark.anyio
async def test_valkey_lock_contention(glide_client):
    glide_client.set.return_value = None

    with pytest.raises(StateLockError):
        async with ValkeyLock(glide_client, "infragraph:state:lock", 0.2):
            pass

    glide_client.invoke_script.assert_not_awaited()


@pytest.mark.anyio
async def test_state_store_from_url(tmp_path):
    settings = Settings(state_lock_timeout=7)

    store = state_store_from_url("valkey://cache:6380/prod", settings)
    assert isinstance(store, ValkeyStateStore)
    assert store.key == "prod"
    assert store.lock_timeout == 7

    assert state_store_from_url("valkeys://cache", settings).key == "infragraph:state"

    store = state_store_from_url(str(tmp_path / "state.json"), settings)
    assert isinstance(store, FileStateStore)
    assert store.lock_timeout == 7


@pytest.mark.anyio
async def test_file_lock_release_leaves_other_holders(tmp_path):
    path = tmp_path / "state.json.lock"

    async with FileLock(path, blocking_timeout=1):
        path.write_text("another-holder")

    assert path.read_text() == "another-holder"


@pytest.mark.anyio
async def test_valkey_lock_releases_its_own_token(glide_client):
    glide_client.set.return_value = "OK"
    lock = ValkeyLock(glide_client, "infragraph:state:lock", 1)

    async with lock:
        pass

    assert glide_client.set.call_args.args == ("infragraph:state:lock", lock.token)
    assert glide_client.invoke_script.call_args.kwargs["args"] == [lock.token]
