"""
Command-line interface for the site provisioner.

This module provides the main CLI entry point with commands for:
- apply: Converge the host to a site document
- status: Show the current site, app pool, and certificate state
- validate: Check a site document without touching the host
- verify: Probe every binding over HTTP and HTTPS
"""

import argparse
import json
import shutil
import sys
import tempfile
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from . import __version__
from .audit_logger import AuditLogger
from .certificate_store import (
    CertificateStore,
    FileCertificateStore,
    MemoryCertificateStore,
    WindowsCertificateStore,
)
from .commands import CommandRunner
from .config import LoadedConfig, load_config_from_file
from .elevation import is_elevated, relaunch_elevated
from .enums import LogLevel
from .exceptions import ConfigError, ProvisionerError
from .host_admin import (
    AppCmdHostAdminClient,
    HostAdminClient,
    SimulatedHostAdminClient,
)
from .hostnames import site_url
from .hosts_file import HostsFileEditor
from .models import RunResult
from .permissions import FolderPermissionAssigner
from .reconciler import Reconciler
from .self_test import SelfTest


EXIT_OK = 0
EXIT_FAILED = 2
EXIT_CONFIG = 3

LOG_LEVELS = {
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "warn": LogLevel.WARN,
    "error": LogLevel.ERROR,
}


@dataclass
class Environment:
    """The collaborators one run works against."""

    host_admin: HostAdminClient
    certificate_store: CertificateStore
    runner: CommandRunner
    logger: AuditLogger
    scratch_dir: Optional[Path] = None


def load_config(args: argparse.Namespace) -> LoadedConfig:
    """Load the site document and apply command-line overrides."""
    loaded = load_config_from_file(Path(args.config))
    provisioner = loaded.provisioner

    if getattr(args, "dry_run", False):
        provisioner.simulation_mode = True
    if getattr(args, "hosts_file", None):
        provisioner.hosts.path = Path(args.hosts_file)
    if getattr(args, "store", None):
        provisioner.certificates.backend = args.store
    if getattr(args, "store_path", None):
        provisioner.certificates.store_path = Path(args.store_path)
    if getattr(args, "verbose", False):
        provisioner.logging.level = "debug"

    return loaded


def create_logger(loaded: LoadedConfig) -> AuditLogger:
    logging_config = loaded.provisioner.logging
    return AuditLogger(
        output_format=logging_config.output_format,
        level=LOG_LEVELS.get(logging_config.level, LogLevel.INFO),
    )


def create_environment(loaded: LoadedConfig, logger: AuditLogger) -> Environment:
    """
    Build the host client and certificate store for a run.

    Simulation mode uses the in-memory host and store, runs no external
    commands, and edits a scratch copy of the hosts file.
    """
    provisioner = loaded.provisioner
    certificates = provisioner.certificates

    if provisioner.simulation_mode:
        scratch_dir = Path(tempfile.mkdtemp(prefix="site-provisioner-"))
        scratch_hosts = scratch_dir / "hosts"
        if provisioner.hosts.path.exists():
            shutil.copyfile(provisioner.hosts.path, scratch_hosts)
        else:
            scratch_hosts.touch()
        provisioner.hosts.path = scratch_hosts
        return Environment(
            host_admin=SimulatedHostAdminClient(logger=logger),
            certificate_store=MemoryCertificateStore(
                validity_days=certificates.validity_days, logger=logger
            ),
            runner=CommandRunner(dry_run=True, logger=logger),
            logger=logger,
            scratch_dir=scratch_dir,
        )

    runner = CommandRunner(logger=logger)
    if certificates.backend == "windows":
        store: CertificateStore = WindowsCertificateStore(
            runner, validity_days=certificates.validity_days, logger=logger
        )
    else:
        store = FileCertificateStore(
            certificates.store_path,
            validity_days=certificates.validity_days,
            key_size=certificates.key_size,
            logger=logger,
        )

    return Environment(
        host_admin=AppCmdHostAdminClient(runner, logger=logger),
        certificate_store=store,
        runner=runner,
        logger=logger,
    )


def create_reconciler(loaded: LoadedConfig, env: Environment) -> Reconciler:
    provisioner = loaded.provisioner
    assigner = None
    if provisioner.grant_permissions:
        assigner = FolderPermissionAssigner(env.runner, logger=env.logger)

    return Reconciler(
        host_admin=env.host_admin,
        certificate_store=env.certificate_store,
        hosts_config=provisioner.hosts,
        hosts_editor=HostsFileEditor(logger=env.logger),
        permission_assigner=assigner,
        renewal_threshold=timedelta(days=provisioner.certificates.renewal_threshold_days),
        logger=env.logger,
    )


def print_run_result(result: RunResult) -> None:
    print(f"\n== {result.site_name} ==")
    print(f"  App pool created: {result.app_pool_created}")
    print(f"  Site rebuilt: {result.site_recreated}")
    for outcome in result.bindings:
        print(
            f"  {outcome.hostname}: certificate {outcome.certificate_action.value} "
            f"({outcome.thumbprint}), hosts {outcome.hosts_action.value}"
        )
        if outcome.duplicates_removed:
            print(f"    removed {outcome.duplicates_removed} duplicate certificate(s)")


def report_failure(error: ProvisionerError) -> None:
    step = error.details.get("step")
    prefix = f"ERROR [{step}]" if step else "ERROR"
    print(f"{prefix}: {error.message}", file=sys.stderr)


def _requires_host(loaded: LoadedConfig, args: argparse.Namespace) -> Optional[int]:
    """
    Check the preconditions for touching the real host.

    Returns an exit code when the command must not continue here.
    """
    if loaded.provisioner.simulation_mode:
        return None
    if sys.platform != "win32":
        print(
            "Error: IIS provisioning is only available on Windows; use --dry-run.",
            file=sys.stderr,
        )
        return EXIT_CONFIG
    if not getattr(args, "no_elevate", False) and not is_elevated():
        print("Administrative rights required, relaunching elevated...")
        return relaunch_elevated(args.argv)
    return None


def cmd_apply(args: argparse.Namespace) -> int:
    """Handle the 'apply' command."""
    try:
        loaded = load_config(args)
    except ConfigError as e:
        report_failure(e)
        return EXIT_CONFIG

    exit_code = _requires_host(loaded, args)
    if exit_code is not None:
        return exit_code

    logger = create_logger(loaded)
    env = create_environment(loaded, logger)
    if env.scratch_dir is not None:
        print(f"Simulation mode: hosts edits go to {loaded.provisioner.hosts.path}")

    reconciler = create_reconciler(loaded, env)
    try:
        result = reconciler.reconcile(loaded.desired)
    except ProvisionerError as e:
        report_failure(e)
        return EXIT_CONFIG if isinstance(e, ConfigError) else EXIT_FAILED

    print_run_result(result)
    print(f"\nSite available at: {site_url(loaded.desired.bindings[0])}")

    if args.output:
        output_file = Path(args.output)
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            with open(output_file, "w", encoding="utf-8") as f:
                json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
            print(f"Results written to: {output_file}")
        except OSError as e:
            print(f"Error writing results: {e}", file=sys.stderr)
            return EXIT_FAILED

    return EXIT_OK


def cmd_status(args: argparse.Namespace) -> int:
    """Handle the 'status' command."""
    try:
        loaded = load_config(args)
    except ConfigError as e:
        report_failure(e)
        return EXIT_CONFIG

    exit_code = _requires_host(loaded, args)
    if exit_code is not None:
        return exit_code

    logger = create_logger(loaded)
    env = create_environment(loaded, logger)
    reconciler = create_reconciler(loaded, env)
    desired = loaded.desired

    try:
        status = reconciler.inspect(desired)
        print(f"Site '{desired.site_name}': {'present' if status.site_exists else 'absent'}")
        print(f"App pool '{desired.app_pool_name}': "
              f"{'present' if status.app_pool_exists else 'absent'}")
        for binding in sorted(status.bindings or (), key=str):
            print(f"  {binding.protocol.value} {binding}")
        for hostname in desired.bindings:
            records = env.certificate_store.find_by_subject(hostname)
            print(f"Certificates for {hostname}: {len(records)}")
            for record in records:
                print(f"  {record.thumbprint} expires {record.not_after.isoformat()}")
    except ProvisionerError as e:
        report_failure(e)
        return EXIT_FAILED

    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle the 'validate' command."""
    try:
        loaded = load_config(args)
    except ConfigError as e:
        report_failure(e)
        return EXIT_CONFIG

    desired = loaded.desired
    print(f"Configuration at {args.config} is valid.")
    print(f"  Site: {desired.site_name}")
    print(f"  App pool: {desired.app_pool_name} ({desired.runtime_version})")
    print(f"  Web root: {desired.web_root}")
    print(f"  Bindings: {', '.join(desired.bindings)}")
    print(f"  Hosts file: {loaded.provisioner.hosts.path}")
    print(f"  Certificate backend: {loaded.provisioner.certificates.backend}")
    return EXIT_OK


def cmd_verify(args: argparse.Namespace) -> int:
    """Handle the 'verify' command."""
    try:
        loaded = load_config(args)
    except ConfigError as e:
        report_failure(e)
        return EXIT_CONFIG

    logger = create_logger(loaded) if args.verbose else None
    result = SelfTest(loaded.desired, logger=logger).run()

    for probe in result.endpoint_results:
        mark = "[..]" if probe.success else "[XX]"
        detail = probe.http_status_code if probe.http_status_code is not None else probe.error
        print(f"{mark} {probe.url}: {detail} ({probe.response_time_ms:.0f}ms)")

    print(f"\nSummary: {len(result.endpoint_results) - len(result.failed_endpoints)}"
          f"/{len(result.endpoint_results)} endpoint(s) reachable")
    return EXIT_OK if result.success else EXIT_FAILED


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "config",
        help="Path to the site configuration (JSON)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="site-provisioner",
        description="Converge a local IIS site, its bindings, certificates and hosts entries",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'apply' command
    apply_parser = subparsers.add_parser(
        "apply",
        help="Converge the host to the site configuration",
    )
    _add_config_argument(apply_parser)
    apply_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - in-memory host and store, scratch copy of the hosts file",
    )
    apply_parser.add_argument(
        "--hosts-file",
        help="Hosts file to edit (default: the system hosts file)",
    )
    apply_parser.add_argument(
        "--store",
        choices=["file", "windows"],
        help="Certificate store backend",
    )
    apply_parser.add_argument(
        "--store-path",
        help="Directory for the file certificate store",
    )
    apply_parser.add_argument(
        "--output", "-o",
        help="Path to write the run result as JSON",
    )
    apply_parser.add_argument(
        "--no-elevate",
        action="store_true",
        help="Do not relaunch with administrative rights",
    )
    apply_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    apply_parser.set_defaults(func=cmd_apply)

    # 'status' command
    status_parser = subparsers.add_parser(
        "status",
        help="Show current site, app pool and certificate state",
    )
    _add_config_argument(status_parser)
    status_parser.add_argument(
        "--store",
        choices=["file", "windows"],
        help="Certificate store backend",
    )
    status_parser.add_argument(
        "--store-path",
        help="Directory for the file certificate store",
    )
    status_parser.add_argument(
        "--no-elevate",
        action="store_true",
        help="Do not relaunch with administrative rights",
    )
    status_parser.set_defaults(func=cmd_status)

    # 'validate' command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a site configuration",
    )
    _add_config_argument(validate_parser)
    validate_parser.set_defaults(func=cmd_validate)

    # 'verify' command
    verify_parser = subparsers.add_parser(
        "verify",
        help="Probe every binding over HTTP and HTTPS",
    )
    _add_config_argument(verify_parser)
    verify_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log every probe",
    )
    verify_parser.set_defaults(func=cmd_verify)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    args.argv = list(sys.argv[1:] if argv is None else argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
