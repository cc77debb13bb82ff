import argparse
import asyncio
import dataclasses
import os
import sys

from stunnel_purge.catalog import Catalog
from stunnel_purge.catalog import ServiceResource
from stunnel_purge.declaration import DEFAULT_DIRS
from stunnel_purge.declaration import DEFAULT_PREFIX
from stunnel_purge.declaration import InstancePurge
from stunnel_purge.declaration import InvalidDeclarationError
from stunnel_purge.logger import LOGGER
from stunnel_purge.logger import set_verbosity
from stunnel_purge.provider import PurgeProvider
from stunnel_purge.provider import reconcile_catalog
from stunnel_purge.service_manager import DEFAULT_INIT_DIR
from stunnel_purge.service_manager import Provider
from stunnel_purge.service_manager import ServiceManager
from stunnel_purge.service_manager import create_service_manager

#: environment variable from which the prefix of the managed services is read
PREFIX_ENVVAR_NAME = "STUNNEL_PURGE_PREFIX"

#: environment variable with the colon separated list of watched directories
DIRS_ENVVAR_NAME = "STUNNEL_PURGE_DIRS"

#: environment variable from which the service management backend is read
PROVIDER_ENVVAR_NAME = "STUNNEL_PURGE_PROVIDER"


def _default_dirs() -> list[str]:
    if dirs := os.getenv(DIRS_ENVVAR_NAME):
        return [d for d in dirs.split(":") if d]
    return list(DEFAULT_DIRS)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        "stunnel-instance-purge",
        description="Disable all stunnel instance services that are no longer declared and remove their files",
    )
    parser.add_argument(
        "--catalog",
        "-c",
        type=str,
        nargs=1,
        default=[None],
        help="YAML file with the declared services and instance purges. If it declares instance purges, then --name and --dir are ignored.",
    )
    parser.add_argument(
        "--name",
        "-n",
        type=str,
        nargs=1,
        default=[os.getenv(PREFIX_ENVVAR_NAME, DEFAULT_PREFIX)],
        help=f"The prefix of the services to disable and files to remove. The value from the environment variable {PREFIX_ENVVAR_NAME} is used if not provided, defaults to {DEFAULT_PREFIX}. WARNING: be very careful that the prefix is precise!",
    )
    parser.add_argument(
        "--dir",
        "-d",
        type=str,
        action="append",
        default=None,
        help=f"Absolute path of a directory from which the files of purged services are removed, can be given multiple times. Defaults to the colon separated list in {DIRS_ENVVAR_NAME} or {', '.join(DEFAULT_DIRS)}",
    )
    parser.add_argument(
        "--keep",
        "-k",
        type=str,
        action="append",
        default=[],
        help="Name of a declared service that must not be purged, can be given multiple times. Added to the services of the catalog.",
    )
    parser.add_argument(
        "--verbose-summary",
        action="store_true",
        help="Include the names of the purged services in the change summary",
    )
    parser.add_argument(
        "--noop",
        action="store_true",
        help="Only report which services would be purged",
    )
    parser.add_argument(
        "--provider",
        type=str,
        nargs=1,
        choices=[str(p) for p in Provider],
        default=[os.getenv(PROVIDER_ENVVAR_NAME, str(Provider.SYSTEMD))],
        help=f"The service management backend of the host. The value from the environment variable {PROVIDER_ENVVAR_NAME} is used if not provided, defaults to systemd.",
    )
    parser.add_argument(
        "--init-dir",
        type=str,
        nargs=1,
        default=[DEFAULT_INIT_DIR],
        help="Directory with the init scripts (only used with the sysv provider)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Set the verbosity of the logger to stderr",
    )
    return parser


async def _load_catalog(args: argparse.Namespace) -> Catalog:
    catalog = (
        await Catalog.from_file(args.catalog[0]) if args.catalog[0] else Catalog()
    )

    known = {svc.title for svc in catalog.services}
    for name in args.keep:
        if name not in known:
            catalog.services.append(ServiceResource(title=name))
            known.add(name)

    if not catalog.instance_purges:
        catalog.instance_purges.append(
            InstancePurge(
                name=args.name[0],
                dirs=args.dir if args.dir is not None else _default_dirs(),
                verbose=args.verbose_summary,
            )
        )

    if args.noop or args.verbose_summary:
        catalog.instance_purges = [
            dataclasses.replace(
                purge,
                noop=purge.noop or args.noop,
                verbose=purge.verbose or args.verbose_summary,
            )
            for purge in catalog.instance_purges
        ]

    return catalog


async def run(
    args: argparse.Namespace, manager: ServiceManager | None = None
) -> int:
    """Reconcile the host according to the parsed command line arguments and
    return the exit code.

    """
    try:
        provider = Provider(args.provider[0])
    except ValueError:
        LOGGER.error(
            "Invalid value %r for the provider. Valid values are: %s",
            args.provider[0],
            ", ".join(Provider),
        )
        return 1

    try:
        catalog = await _load_catalog(args)
    except InvalidDeclarationError as exc:
        LOGGER.error("%s", exc)
        return 1
    except OSError as exc:
        LOGGER.error("Could not read the catalog: %s", exc)
        return 1

    if manager is None:
        if not PurgeProvider.suitable():
            LOGGER.error("Purging stunnel instances is only supported on Linux")
            return 1
        manager = create_service_manager(provider, init_dir=args.init_dir[0])

    for result in await reconcile_catalog(catalog, manager):
        if result.changed:
            print(f"{result.name}: {result.summary}")
        else:
            print(f"{result.name}: no rogue services")

    return 0


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    set_verbosity(args.verbose)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
