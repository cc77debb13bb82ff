import pathlib

import aiofiles
import aiofiles.os
import pytest

from stunnel_purge.catalog import Catalog
from stunnel_purge.catalog import ServiceResource
from stunnel_purge.declaration import InstancePurge
from stunnel_purge.provider import PurgeProvider
from stunnel_purge.provider import reconcile_catalog
from stunnel_purge.service_manager import InMemoryServiceManager
from stunnel_purge.service_manager import ServiceAction


def _provider(
    services: list[str], verbose: bool = False, noop: bool = False, dirs=None
) -> PurgeProvider:
    return PurgeProvider(
        declaration=InstancePurge(
            name="test", dirs=dirs or ["/foo"], verbose=verbose, noop=noop
        ),
        intended=[],
        manager=InMemoryServiceManager(services=services),
    )


@pytest.mark.asyncio
async def test_dirs_without_changes():
    provider = _provider([])
    assert await provider.dirs() == ["/foo"]
    assert provider.change_to_s() == ["/foo"]


@pytest.mark.asyncio
async def test_dirs_with_rogue_services():
    provider = _provider(["test_should_be_purged", "should_not_be_purged"])
    assert await provider.dirs() == "Purged '1' Services"
    assert provider.change_to_s() == "Purged '1' Services"


@pytest.mark.asyncio
async def test_dirs_with_rogue_services_verbose():
    provider = _provider(["test_should_be_purged", "should_not_be_purged"], verbose=True)
    assert await provider.dirs() == "Purged Services: 'test_should_be_purged'"


@pytest.mark.asyncio
async def test_set_dirs_requires_read_phase():
    with pytest.raises(RuntimeError):
        await _provider(["test_a"]).set_dirs(["/foo"])


@pytest.mark.asyncio
async def test_reconcile_records_the_read_phase(tmp_path: pathlib.Path):
    provider = _provider(["test_a"], dirs=[str(tmp_path)])

    result = await provider.reconcile()

    assert result.changed
    assert provider.change_to_s() == result.summary == "Purged '1' Services"
    assert [res.name for res in result.report.services] == ["test_a"]


def test_suitable_on_linux(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr("platform.system", lambda: "Linux")
    assert PurgeProvider.suitable()
    monkeypatch.setattr("platform.system", lambda: "Darwin")
    assert not PurgeProvider.suitable()


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(tmp_path: pathlib.Path):
    async with aiofiles.open(tmp_path / "test_old.conf", "w") as conf:
        await conf.write("[test_old]\n")
    async with aiofiles.open(tmp_path / "test_new.conf", "w") as conf:
        await conf.write("[test_new]\n")

    manager = InMemoryServiceManager(services=["test_old", "test_new", "sshd"])
    provider = PurgeProvider(
        declaration=InstancePurge(name="test", dirs=[str(tmp_path)]),
        intended=["test_new"],
        manager=manager,
    )

    first = await provider.reconcile()
    assert first.changed
    assert first.summary == "Purged '1' Services"
    assert first.report is not None
    assert first.report.purged_files == [str(tmp_path / "test_old.conf")]

    performed = list(manager.performed)
    second = await provider.reconcile()
    assert not second.changed
    assert second.summary == [str(tmp_path)]
    assert second.report is None
    assert manager.performed == performed
    assert await aiofiles.os.path.exists(tmp_path / "test_new.conf")


@pytest.mark.asyncio
async def test_reconcile_noop_does_not_touch_the_host(tmp_path: pathlib.Path):
    async with aiofiles.open(tmp_path / "test_old.conf", "w") as conf:
        await conf.write("[test_old]\n")

    provider = _provider(["test_old"], noop=True, dirs=[str(tmp_path)])
    result = await provider.reconcile()

    assert result.changed
    assert result.summary == "Purged Services: 'test_old'"
    assert result.report is None
    assert provider.manager.performed == []
    assert await aiofiles.os.path.exists(tmp_path / "test_old.conf")


@pytest.mark.asyncio
async def test_reconcile_catalog():
    catalog = Catalog(
        services=[
            ServiceResource(title="stunnel"),
            ServiceResource(title="stunnel_nfs", name="stunnel_managed_nfs"),
        ],
        instance_purges=[InstancePurge(name="stunnel_managed", dirs=["/nonexistent"])],
    )
    manager = InMemoryServiceManager(
        services=[
            "stunnel_managed_nfs.service",
            "stunnel_managed_rsync.service",
            "stunnel.service",
        ]
    )

    (result,) = await reconcile_catalog(catalog, manager)

    assert result.name == "stunnel_managed"
    assert result.summary == "Purged '1' Services"
    assert result.before == ["stunnel", "stunnel_nfs"]
    assert manager.performed == [
        (ServiceAction.STOP, "stunnel_managed_rsync.service"),
        (ServiceAction.DISABLE, "stunnel_managed_rsync.service"),
    ]
