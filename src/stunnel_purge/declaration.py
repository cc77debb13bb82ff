"""Declaration of a purge of ``stunnel`` instances that are no longer managed.

An :py:class:`InstancePurge` disables all services whose name starts with
its :py:attr:`~InstancePurge.name` and that are not part of the current
catalog. Afterwards all regular files matching ``${dir}/${service}*`` are
removed from each of the directories in :py:attr:`~InstancePurge.dirs`.

This is required so that newly created instances do not have port conflicts
upon starting their service.

Example::

    InstancePurge(
        name="stunnel_managed_by_puppet",
        dirs=["/etc/stunnel", "/etc/rc.d/init.d", "/etc/systemd/system"],
    )

.. warning::

   Be very careful that :py:attr:`~InstancePurge.name` is precise! Every
   service that starts with it is a candidate for removal.

"""

import functools
import re
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING

from stunnel_purge.logger import LOGGER

if TYPE_CHECKING:
    from stunnel_purge.catalog import Catalog


#: prefix that is used by the stunnel module for the services of its instances
DEFAULT_PREFIX = "stunnel_managed_by_puppet"

#: directories in which the stunnel module places the files of an instance
DEFAULT_DIRS = ["/etc/stunnel", "/etc/rc.d/init.d", "/etc/systemd/system"]

#: services that are always ordered after a purge, independent of its prefix
_STUNNEL_SERVICE_PREFIX = "stunnel"

_REGEX_METACHARACTERS = frozenset(".^$*+?{}[]\\|()")


class InvalidDeclarationError(ValueError):
    """Raised when a declaration is invalid and no purge must be attempted."""


def prefix_pattern(prefix: str) -> re.Pattern[str]:
    """Returns a pattern that matches names starting with ``prefix`` literally."""
    return re.compile("^" + re.escape(prefix))


def _validate_dirs(dirs: Iterable[str]) -> list[str]:
    res = []
    for directory in dirs:
        if not isinstance(directory, str) or not directory.startswith("/"):
            raise InvalidDeclarationError(
                f"Invalid value {directory!r}. Valid values must be absolute paths"
            )
        res.append(directory)
    return res


@dataclass(kw_only=True, frozen=True)
class InstancePurge:
    """A purge of all services and files of ``stunnel`` instances that are no
    longer under management.

    """

    #: The prefix name of the services to disable and files to remove
    name: str = DEFAULT_PREFIX

    #: The directories from which the files matching ``${name}*`` are purged
    dirs: list[str] = field(default_factory=lambda: list(DEFAULT_DIRS))

    #: Provide verbose output in the change summary regarding the purged
    #: services
    verbose: bool = False

    #: Only report what would be purged, do not touch the system
    noop: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise InvalidDeclarationError(
                f"Invalid value {self.name!r}. The prefix of the managed services must be a non-empty string"
            )
        if any(char in _REGEX_METACHARACTERS for char in self.name):
            LOGGER.warning(
                "Prefix '%s' contains special characters, they are matched literally",
                self.name,
            )

        if isinstance(self.dirs, str):
            object.__setattr__(self, "dirs", [self.dirs])
        elif not isinstance(self.dirs, (list, tuple)):
            raise InvalidDeclarationError(
                f"Invalid value {self.dirs!r}. dirs must be a list of absolute paths"
            )
        object.__setattr__(self, "dirs", _validate_dirs(self.dirs))

    @functools.cached_property
    def pattern(self) -> re.Pattern[str]:
        return prefix_pattern(self.name)

    def matches(self, service_name: str) -> bool:
        """Check whether the service with the given name is owned by this purge."""
        return self.pattern.match(service_name) is not None

    def autobefore(self, catalog: "Catalog") -> list[str]:
        """Titles of the services in ``catalog`` that must only be (re)started
        after this purge ran.

        All services starting with ``stunnel`` are included in addition to the
        managed ones, so that no restart can collide with a port that is still
        held by a rogue instance.

        """
        pattern = re.compile(
            f"^({re.escape(_STUNNEL_SERVICE_PREFIX)}|{re.escape(self.name)})"
        )
        return [svc.title for svc in catalog.services if pattern.match(svc.name)]

    @staticmethod
    def from_dict(data: dict) -> "InstancePurge":
        """Create a purge declaration from a mapping, e.g. an entry of the
        ``instance_purges`` list of a catalog file.

        """
        if not isinstance(data, dict):
            raise InvalidDeclarationError(
                f"Invalid value {data!r}. Expected a mapping describing an instance purge"
            )

        if unknown := set(data.keys()) - {"name", "dirs", "verbose", "noop"}:
            raise InvalidDeclarationError(
                f"Invalid parameter(s) {', '.join(sorted(str(k) for k in unknown))} for an instance purge"
            )

        kwargs = {}
        for key in ("name", "dirs"):
            if key in data:
                kwargs[key] = data[key]
        for key in ("verbose", "noop"):
            if key in data:
                if not isinstance(data[key], bool):
                    raise InvalidDeclarationError(
                        f"Invalid value {data[key]!r} for {key}, expected a boolean"
                    )
                kwargs[key] = data[key]

        return InstancePurge(**kwargs)
