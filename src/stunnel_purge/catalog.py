"""The catalog describes the services and instance purges that should exist
on the host after a reconciliation pass.

A catalog can be written as a YAML document::

    services:
      - stunnel
      - title: stunnel_nfs
        name: stunnel_managed_by_puppet_nfs
    instance_purges:
      - name: stunnel_managed_by_puppet
        dirs:
          - /etc/stunnel
          - /etc/systemd/system

"""

import pathlib
from dataclasses import dataclass
from dataclasses import field

import aiofiles
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from stunnel_purge.declaration import InstancePurge
from stunnel_purge.declaration import InvalidDeclarationError
from stunnel_purge.declaration import prefix_pattern


@dataclass(kw_only=True, frozen=True)
class ServiceResource:
    """A service that is declared in the catalog."""

    #: unique title of the resource in the catalog
    title: str

    #: name of the service on the host, defaults to the :py:attr:`title`
    name: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.title, str) or not self.title:
            raise InvalidDeclarationError(
                f"Invalid value {self.title!r}. A service needs a non-empty title"
            )
        if not self.name:
            object.__setattr__(self, "name", self.title)
        elif not isinstance(self.name, str):
            raise InvalidDeclarationError(
                f"Invalid value {self.name!r} for the name of the service {self.title}"
            )

    @staticmethod
    def from_entry(entry: str | dict) -> "ServiceResource":
        if isinstance(entry, str):
            return ServiceResource(title=entry)
        if isinstance(entry, dict) and "title" in entry:
            if unknown := set(entry.keys()) - {"title", "name"}:
                raise InvalidDeclarationError(
                    f"Invalid parameter(s) {', '.join(sorted(str(k) for k in unknown))} for the service {entry['title']}"
                )
            return ServiceResource(title=entry["title"], name=entry.get("name", ""))
        raise InvalidDeclarationError(
            f"Invalid value {entry!r}. A service is either a name or a mapping with a title"
        )


@dataclass
class Catalog:
    """Collection of all resources that are currently declared."""

    services: list[ServiceResource] = field(default_factory=list)

    instance_purges: list[InstancePurge] = field(default_factory=list)

    def __post_init__(self) -> None:
        titles = set()
        for svc in self.services:
            if svc.title in titles:
                raise InvalidDeclarationError(
                    f"Duplicate declaration of the service {svc.title}"
                )
            titles.add(svc.title)

        names = set()
        for purge in self.instance_purges:
            if purge.name in names:
                raise InvalidDeclarationError(
                    f"Duplicate declaration of the instance purge {purge.name}"
                )
            names.add(purge.name)

    def service_names(self, prefix: str) -> list[str]:
        """Names of the declared services that start with ``prefix``."""
        pattern = prefix_pattern(prefix)
        return [svc.name for svc in self.services if pattern.match(svc.name)]

    @staticmethod
    def from_yaml(document: str) -> "Catalog":
        try:
            data = YAML(typ="safe").load(document)
        except YAMLError as exc:
            raise InvalidDeclarationError(f"Invalid catalog: {exc}") from exc

        if data is None:
            return Catalog()
        if not isinstance(data, dict):
            raise InvalidDeclarationError(
                f"Invalid catalog, expected a mapping but got {type(data).__name__}"
            )
        if unknown := set(data.keys()) - {"services", "instance_purges"}:
            raise InvalidDeclarationError(
                f"Invalid catalog entries: {', '.join(sorted(str(k) for k in unknown))}"
            )

        services = data.get("services") or []
        purges = data.get("instance_purges") or []
        for key, val in (("services", services), ("instance_purges", purges)):
            if not isinstance(val, list):
                raise InvalidDeclarationError(
                    f"Invalid value {val!r} for {key}, expected a list"
                )

        return Catalog(
            services=[ServiceResource.from_entry(entry) for entry in services],
            instance_purges=[InstancePurge.from_dict(entry) for entry in purges],
        )

    @staticmethod
    async def from_file(path: str | pathlib.Path) -> "Catalog":
        async with aiofiles.open(path, "r") as catalog_file:
            return Catalog.from_yaml(await catalog_file.read())
