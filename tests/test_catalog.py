import pathlib

import aiofiles
import pytest

from stunnel_purge.catalog import Catalog
from stunnel_purge.catalog import ServiceResource
from stunnel_purge.declaration import InstancePurge
from stunnel_purge.declaration import InvalidDeclarationError

_CATALOG = """services:
  - stunnel
  - title: stunnel_nfs
    name: stunnel_managed_by_puppet_nfs
  - stunnel_managed_by_puppet_rsync
instance_purges:
  - name: stunnel_managed_by_puppet
    dirs:
      - /etc/stunnel
      - /etc/systemd/system
    verbose: true
"""


def test_service_name_defaults_to_title():
    assert ServiceResource(title="stunnel").name == "stunnel"


def test_from_yaml():
    assert Catalog.from_yaml(_CATALOG) == Catalog(
        services=[
            ServiceResource(title="stunnel"),
            ServiceResource(title="stunnel_nfs", name="stunnel_managed_by_puppet_nfs"),
            ServiceResource(title="stunnel_managed_by_puppet_rsync"),
        ],
        instance_purges=[
            InstancePurge(
                name="stunnel_managed_by_puppet",
                dirs=["/etc/stunnel", "/etc/systemd/system"],
                verbose=True,
            )
        ],
    )


def test_service_names_uses_the_service_name():
    assert Catalog.from_yaml(_CATALOG).service_names("stunnel_managed_by_puppet") == [
        "stunnel_managed_by_puppet_nfs",
        "stunnel_managed_by_puppet_rsync",
    ]


def test_empty_document():
    assert Catalog.from_yaml("") == Catalog()


@pytest.mark.parametrize(
    "document",
    [
        "- stunnel",
        "services: stunnel",
        "services:\n  - name: stunnel_nfs",
        "services:\n  - title: stunnel\n    enable: true",
        "servces:\n  - stunnel",
        "services: [stunnel\n",
        "services:\n  - stunnel\n  - stunnel",
        "instance_purges:\n  - name: test\n    dirs: [relative]",
        "instance_purges:\n  - name: test\n  - name: test",
    ],
)
def test_invalid_documents(document: str):
    with pytest.raises(InvalidDeclarationError):
        Catalog.from_yaml(document)


@pytest.mark.asyncio
async def test_from_file(tmp_path: pathlib.Path):
    path = tmp_path / "catalog.yaml"
    async with aiofiles.open(path, "w") as catalog_file:
        await catalog_file.write(_CATALOG)

    assert await Catalog.from_file(path) == Catalog.from_yaml(_CATALOG)
