"""Typer-powered command line for ``dseectl``.

Every mutating command builds a :class:`~dseectl.models.DesiredStateRecord`
from its options plus the configured defaults, hands it to the matching
reconciler and reports whether anything changed. Each invocation is recorded
in the structured operations log.
"""
from __future__ import annotations

import json
import os
import textwrap
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import PASSWORD_ENV_VARS, AppConfig, ConfigError, load_config
from .credentials import SecretVault
from .errors import DseectlError, ExecutionError, ValidationError
from .exit_codes import ExitCode, exit_code_for
from .invoker import ProcessInvoker, ToolLocator
from .locking import ExecutionLock
from .logging import OperationScope, StructuredLogger, configure_logging
from .models import CredentialReference, DesiredStateRecord, ParsedState, ReconcileResult
from .providers import (
    AgentReconciler,
    InstanceReconciler,
    Reconciler,
    RegistryReconciler,
    RegistrySetupReconciler,
    SuffixReconciler,
)

console = Console()

_T = TypeVar("_T")
_R = TypeVar("_R", bound=Reconciler)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to dseectl's YAML config file.",
)
DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Probe and report the planned action without changing anything.",
)
JSON_OPTION = typer.Option(False, "--json", help="Emit JSON instead of rich text.")
ADMIN_PASSWORD_FILE_OPTION = typer.Option(
    None,
    "--admin-password-file",
    dir_okay=False,
    help="File holding the Directory Manager / registry admin password "
    f"(default: ${PASSWORD_ENV_VARS['admin_password']}).",
)
AGENT_PASSWORD_FILE_OPTION = typer.Option(
    None,
    "--agent-password-file",
    dir_okay=False,
    help=f"File holding the DSCC agent password (default: ${PASSWORD_ENV_VARS['agent_password']}).",
)
CERT_PASSWORD_FILE_OPTION = typer.Option(
    None,
    "--cert-password-file",
    dir_okay=False,
    help=f"File holding the certificate database password (default: ${PASSWORD_ENV_VARS['cert_password']}).",
)
HOSTNAME_OPTION = typer.Option(None, "--hostname", help="Host name passed to the vendor tool.")
LDAP_PORT_OPTION = typer.Option(None, "--ldap-port", help="LDAP port (default from config).")
AGENT_PORT_OPTION = typer.Option(None, "--agent-port", help="DSCC agent port (default from config).")

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Oracle Directory Server Enterprise Edition admin CLI.

        Each command probes the current state through the vendor tools and only
        acts when the desired state is not already in place.
        """
    ).strip(),
)
instance_app = typer.Typer(help="Manage directory server instances (dsadm).")
agent_app = typer.Typer(help="Manage DSCC agents (dsccagent).")
registry_app = typer.Typer(help="Manage the DSCC registry (dsccsetup, dsccreg).")
suffix_app = typer.Typer(help="Manage suffixes and their data (dsconf).")
config_app = typer.Typer(help="Inspect the effective configuration.")

app.add_typer(instance_app, name="instance")
app.add_typer(agent_app, name="agent")
app.add_typer(registry_app, name="registry")
app.add_typer(suffix_app, name="suffix")
app.add_typer(config_app, name="config")


# ---------------------------------------------------------------------------
# Runtime wiring
# ---------------------------------------------------------------------------


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    invoker: ProcessInvoker
    vault: SecretVault
    env: Mapping[str, str]

    def reconciler(self, kind: type[_R], *, dry_run: bool = False) -> _R:
        """Return a reconciler of *kind* sharing this runtime's invoker and vault."""
        return kind(self.invoker, vault=self.vault, dry_run=dry_run)


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    verbose: bool = False,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    configure_logging(config.logs_dir, verbose=verbose)
    invoker = ProcessInvoker(
        locator=ToolLocator(config.install_dir, config.product_dir),
        lock=ExecutionLock(default_timeout=config.lock_timeout),
        attempts=config.retry.attempts,
        backoff_base=config.retry.backoff_base,
        timeout=config.command_timeout,
    )
    runtime = RuntimeContext(
        config=config,
        logger=StructuredLogger(config.logs_dir),
        invoker=invoker,
        vault=SecretVault(config.secrets_dir),
        env=dict(os.environ),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the dseectl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output."),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"dseectl {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file, verbose)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _read_secret(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8").rstrip("\r\n")
    except OSError as exc:
        raise ValidationError(f"Cannot read password file {path}: {exc}") from exc


def _credentials(
    runtime: RuntimeContext,
    files: Mapping[str, Path | None],
) -> list[CredentialReference]:
    """Resolve each credential from its file option or its environment variable."""
    refs: list[CredentialReference] = []
    for name, path in files.items():
        if path is not None:
            refs.append(CredentialReference(name, _read_secret(path)))
            continue
        value = runtime.env.get(PASSWORD_ENV_VARS[name])
        if value:
            refs.append(CredentialReference(name, value))
    return refs


def _record(
    runtime: RuntimeContext,
    identity: str,
    flags: Mapping[str, object] | None = None,
    credential_files: Mapping[str, Path | None] | None = None,
) -> DesiredStateRecord:
    """Merge configured defaults with the options that were actually given."""
    merged = runtime.config.defaults.as_flags()
    merged.update({key: value for key, value in (flags or {}).items() if value is not None})
    return DesiredStateRecord.build(
        identity,
        flags=merged,
        credentials=_credentials(runtime, credential_files or {}),
    )


def _run_operation(
    runtime: RuntimeContext,
    command: str,
    *,
    target: Mapping[str, object],
    args: Mapping[str, object],
    action: Callable[[OperationScope], _T],
) -> tuple[OperationScope, _T]:
    """Run *action* under the execution gate and map failures to exit codes."""
    with runtime.logger.operation(command, args=args, target=target) as op:
        try:
            with runtime.invoker.lock.hold() as handle:
                op.set_lock_wait_ms(handle.wait_ms)
                value = action(op)
        except DseectlError as exc:
            message = str(exc)
            if isinstance(exc, ExecutionError) and exc.exit_status is not None:
                message = f"{message} {exc.detail}"
            _command_error(op, message, rc=exit_code_for(exc))
        return op, value


def _reconcile(
    ctx: typer.Context,
    command: str,
    *,
    kind: str,
    args: Mapping[str, object],
    build: Callable[[RuntimeContext], DesiredStateRecord],
    action: Callable[[RuntimeContext], Callable[[DesiredStateRecord], ReconcileResult]],
    json_output: bool = False,
) -> ReconcileResult:
    """Shared body of every mutating command."""
    runtime = _get_runtime(ctx)

    def _act(op: OperationScope) -> ReconcileResult:
        record = build(runtime)
        op.add_step("record", status="ok", detail=record.identity)
        result = action(runtime)(record)
        op.add_step(result.action, status="planned" if result.planned else "ok", detail=result.message)
        return result

    op, result = _run_operation(
        runtime,
        command,
        target={"kind": kind},
        args=args,
        action=_act,
    )
    op.target["identity"] = result.identity
    op.success(result.message, changed=int(result.changed), context=result.to_dict())
    _render_result(result, json_output=json_output)
    return result


def _render_result(result: ReconcileResult, *, json_output: bool) -> None:
    if json_output:
        console.print_json(data=result.to_dict())
        return
    if result.planned:
        console.print(f"[yellow]Dry run[/yellow]: {result.message}")
    elif result.changed:
        console.print(f"[green]{result.message}[/green]")
    else:
        console.print(f"{result.message} [dim](no change)[/dim]")


def _render_state(title: str, state: ParsedState, *, json_output: bool) -> None:
    if json_output:
        console.print_json(data=dict(state))
        return
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in state.items():
        table.add_row(key, value)
    console.print(table)


def _info(
    ctx: typer.Context,
    command: str,
    *,
    kind: str,
    identity: str,
    fetch: Callable[[RuntimeContext, DesiredStateRecord], ParsedState],
    credential_files: Mapping[str, Path | None] | None = None,
    flags: Mapping[str, object] | None = None,
    json_output: bool = False,
) -> None:
    runtime = _get_runtime(ctx)
    op, state = _run_operation(
        runtime,
        command,
        target={"kind": kind, "identity": identity},
        args={"json": json_output},
        action=lambda _op: fetch(runtime, _record(runtime, identity, flags, credential_files)),
    )
    op.success(f"Reported {kind} information.", changed=0)
    _render_state(f"{kind} {identity}", state, json_output=json_output)


# ---------------------------------------------------------------------------
# instance
# ---------------------------------------------------------------------------


@instance_app.command("create")
def instance_create(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Instance path, e.g. /opt/dsInst."),
    hostname: str | None = HOSTNAME_OPTION,
    ldap_port: int | None = LDAP_PORT_OPTION,
    ldaps_port: int | None = typer.Option(None, "--ldaps-port", help="LDAPS port."),
    dn: str | None = typer.Option(None, "--dn", help="Directory Manager DN."),
    user_name: str | None = typer.Option(None, "--user-name", help="Owner user of the instance."),
    group_name: str | None = typer.Option(None, "--group-name", help="Owner group of the instance."),
    below: bool = typer.Option(False, "--below", help="Create inside an existing directory."),
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Create a directory server instance unless it already exists."""
    flags = {
        "hostname": hostname,
        "ldap_port": ldap_port,
        "ldaps_port": ldaps_port,
        "dn": dn,
        "user_name": user_name,
        "group_name": group_name,
        "below": below or None,
    }
    _reconcile(
        ctx,
        "instance create",
        kind="instance",
        args={**flags, "dry_run": dry_run},
        build=lambda rt: _record(rt, str(path), flags, {"admin_password": admin_password_file}),
        action=lambda rt: rt.reconciler(InstanceReconciler, dry_run=dry_run).create,
        json_output=json_output,
    )


@instance_app.command("delete")
def instance_delete(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Instance path."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Delete a directory server instance if it exists."""
    _reconcile(
        ctx,
        "instance delete",
        kind="instance",
        args={"dry_run": dry_run},
        build=lambda rt: _record(rt, str(path)),
        action=lambda rt: rt.reconciler(InstanceReconciler, dry_run=dry_run).delete,
        json_output=json_output,
    )


def _start_flags(safe_mode: bool, schema_push: bool) -> dict[str, object]:
    return {"safe_mode": safe_mode or None, "schema_push": schema_push or None}


@instance_app.command("start")
def instance_start(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Instance path."),
    safe_mode: bool = typer.Option(False, "--safe-mode", help="Start in safe mode (-E)."),
    schema_push: bool = typer.Option(False, "--schema-push", help="Push schema on start."),
    cert_password_file: Path | None = CERT_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Start an instance that exists and is not running."""
    flags = _start_flags(safe_mode, schema_push)
    _reconcile(
        ctx,
        "instance start",
        kind="instance",
        args={**flags, "dry_run": dry_run},
        build=lambda rt: _record(rt, str(path), flags, {"cert_password": cert_password_file}),
        action=lambda rt: rt.reconciler(InstanceReconciler, dry_run=dry_run).start,
        json_output=json_output,
    )


@instance_app.command("stop")
def instance_stop(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Instance path."),
    force: bool = typer.Option(False, "--force", help="Force the shutdown."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Stop a running instance."""
    _reconcile(
        ctx,
        "instance stop",
        kind="instance",
        args={"force": force, "dry_run": dry_run},
        build=lambda rt: _record(rt, str(path), {"force": force or None}),
        action=lambda rt: rt.reconciler(InstanceReconciler, dry_run=dry_run).stop,
        json_output=json_output,
    )


@instance_app.command("restart")
def instance_restart(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Instance path."),
    safe_mode: bool = typer.Option(False, "--safe-mode", help="Restart in safe mode (-E)."),
    schema_push: bool = typer.Option(False, "--schema-push", help="Push schema on restart."),
    cert_password_file: Path | None = CERT_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Restart an existing instance."""
    flags = _start_flags(safe_mode, schema_push)
    _reconcile(
        ctx,
        "instance restart",
        kind="instance",
        args={**flags, "dry_run": dry_run},
        build=lambda rt: _record(rt, str(path), flags, {"cert_password": cert_password_file}),
        action=lambda rt: rt.reconciler(InstanceReconciler, dry_run=dry_run).restart,
        json_output=json_output,
    )


@instance_app.command("info")
def instance_info(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Instance path."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show ``dsadm info`` for an instance."""
    _info(
        ctx,
        "instance info",
        kind="instance",
        identity=str(path),
        fetch=lambda rt, record: rt.reconciler(InstanceReconciler).info(record),
        json_output=json_output,
    )


# ---------------------------------------------------------------------------
# agent
# ---------------------------------------------------------------------------

AGENT_PATH_ARGUMENT = typer.Argument(None, help="Agent path (default from config paths.agent).")


def _agent_path(runtime: RuntimeContext, path: Path | None) -> str:
    return str(path or runtime.config.paths.agent)


def _agent_command(
    ctx: typer.Context,
    action_name: str,
    path: Path | None,
    *,
    flags: Mapping[str, object] | None = None,
    credential_files: Mapping[str, Path | None] | None = None,
    dry_run: bool,
    json_output: bool,
) -> None:
    _reconcile(
        ctx,
        f"agent {action_name.replace('_', '-')}",
        kind="agent",
        args={**(flags or {}), "dry_run": dry_run},
        build=lambda rt: _record(rt, _agent_path(rt, path), flags, credential_files),
        action=lambda rt: getattr(rt.reconciler(AgentReconciler, dry_run=dry_run), action_name),
        json_output=json_output,
    )


@agent_app.command("create")
def agent_create(
    ctx: typer.Context,
    path: Path | None = AGENT_PATH_ARGUMENT,
    agent_port: int | None = AGENT_PORT_OPTION,
    agent_password_file: Path | None = AGENT_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Create a DSCC agent unless it already exists."""
    _agent_command(
        ctx,
        "create",
        path,
        flags={"agent_port": agent_port},
        credential_files={"agent_password": agent_password_file},
        dry_run=dry_run,
        json_output=json_output,
    )


@agent_app.command("delete")
def agent_delete(
    ctx: typer.Context,
    path: Path | None = AGENT_PATH_ARGUMENT,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Delete a DSCC agent if it exists."""
    _agent_command(ctx, "delete", path, dry_run=dry_run, json_output=json_output)


@agent_app.command("start")
def agent_start(
    ctx: typer.Context,
    path: Path | None = AGENT_PATH_ARGUMENT,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Start a DSCC agent that exists and is not running."""
    _agent_command(ctx, "start", path, dry_run=dry_run, json_output=json_output)


@agent_app.command("stop")
def agent_stop(
    ctx: typer.Context,
    path: Path | None = AGENT_PATH_ARGUMENT,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Stop a running DSCC agent."""
    _agent_command(ctx, "stop", path, dry_run=dry_run, json_output=json_output)


@agent_app.command("enable-snmp")
def agent_enable_snmp(
    ctx: typer.Context,
    path: Path | None = AGENT_PATH_ARGUMENT,
    snmp_v3: bool = typer.Option(False, "--snmp-v3", help="Use SNMP v3."),
    snmp_port: int | None = typer.Option(None, "--snmp-port", help="SNMP port."),
    ds_port: int | None = typer.Option(None, "--ds-port", help="Directory server port for SNMP."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Enable the agent's SNMP agent when it is reported disabled."""
    _agent_command(
        ctx,
        "enable_snmp",
        path,
        flags={"snmp_v3": snmp_v3 or None, "snmp_port": snmp_port, "ds_port": ds_port},
        dry_run=dry_run,
        json_output=json_output,
    )


@agent_app.command("disable-snmp")
def agent_disable_snmp(
    ctx: typer.Context,
    path: Path | None = AGENT_PATH_ARGUMENT,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Disable the agent's SNMP agent when it is reported enabled."""
    _agent_command(ctx, "disable_snmp", path, dry_run=dry_run, json_output=json_output)


@agent_app.command("info")
def agent_info(
    ctx: typer.Context,
    path: Path | None = AGENT_PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show ``dsccagent info`` for an agent."""
    runtime = _get_runtime(ctx)
    _info(
        ctx,
        "agent info",
        kind="agent",
        identity=_agent_path(runtime, path),
        fetch=lambda rt, record: rt.reconciler(AgentReconciler).info(record),
        json_output=json_output,
    )


# ---------------------------------------------------------------------------
# registry
# ---------------------------------------------------------------------------


@registry_app.command("setup")
def registry_setup(
    ctx: typer.Context,
    registry_ldap_port: int | None = typer.Option(None, "--registry-ldap-port", help="Registry LDAP port."),
    registry_ldaps_port: int | None = typer.Option(
        None, "--registry-ldaps-port", help="Registry LDAPS port."
    ),
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Create the DSCC registry unless ``dsccsetup status`` reports it."""
    flags = {"registry_ldap_port": registry_ldap_port, "registry_ldaps_port": registry_ldaps_port}
    _reconcile(
        ctx,
        "registry setup",
        kind="registry",
        args={**flags, "dry_run": dry_run},
        build=lambda rt: _record(
            rt, str(rt.config.paths.registry), flags, {"admin_password": admin_password_file}
        ),
        action=lambda rt: rt.reconciler(RegistrySetupReconciler, dry_run=dry_run).ads_create,
        json_output=json_output,
    )


@registry_app.command("teardown")
def registry_teardown(
    ctx: typer.Context,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Delete the DSCC registry if it exists."""
    _reconcile(
        ctx,
        "registry teardown",
        kind="registry",
        args={"dry_run": dry_run},
        build=lambda rt: _record(rt, str(rt.config.paths.registry)),
        action=lambda rt: rt.reconciler(RegistrySetupReconciler, dry_run=dry_run).ads_delete,
        json_output=json_output,
    )


@registry_app.command("status")
def registry_status(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Report whether the DSCC registry has been created."""
    runtime = _get_runtime(ctx)
    op, created = _run_operation(
        runtime,
        "registry status",
        target={"kind": "registry"},
        args={"json": json_output},
        action=lambda _op: runtime.reconciler(RegistrySetupReconciler).status(),
    )
    op.success("Reported registry status.", changed=0, context={"created": created})
    if json_output:
        console.print_json(data={"created": created})
    elif created:
        console.print("[green]DSCC registry has been created.[/green]")
    else:
        console.print("[yellow]DSCC registry has not been created.[/yellow]")


@registry_app.command("list")
def registry_list(
    ctx: typer.Context,
    kind: str = typer.Argument(..., help="Either 'agents' or 'servers'."),
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """List registered agents or servers."""
    runtime = _get_runtime(ctx)

    def _list(_op: OperationScope) -> list[dict[str, object]]:
        refs = _credentials(runtime, {"admin_password": admin_password_file})
        client = runtime.reconciler(RegistryReconciler).registry
        entries = client.list_entries(kind, refs[0] if refs else None)
        return [{"ipath": entry.ipath, **entry.fields} for entry in entries]

    op, rows = _run_operation(
        runtime,
        "registry list",
        target={"kind": "registry", "listing": kind},
        args={"json": json_output},
        action=_list,
    )
    op.success(f"Listed {len(rows)} registry entries.", changed=0)
    if json_output:
        console.print_json(data=rows)
        return
    if not rows:
        console.print(f"No {kind} registered.")
        return
    table = Table(title=f"Registered {kind}", show_header=True, header_style="bold magenta")
    columns = list(rows[0].keys())
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*[str(row.get(column) or "-") for column in columns])
    console.print(table)


def _registry_member_command(
    ctx: typer.Context,
    action_name: str,
    path: Path,
    *,
    flags: Mapping[str, object],
    credential_files: Mapping[str, Path | None],
    dry_run: bool,
    json_output: bool,
) -> None:
    _reconcile(
        ctx,
        f"registry {action_name.replace('_', '-')}",
        kind="registry",
        args={**flags, "dry_run": dry_run},
        build=lambda rt: _record(rt, str(path), flags, credential_files),
        action=lambda rt: getattr(rt.reconciler(RegistryReconciler, dry_run=dry_run), action_name),
        json_output=json_output,
    )


@registry_app.command("add-agent")
def registry_add_agent(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Agent path to register."),
    hostname: str | None = HOSTNAME_OPTION,
    agent_port: int | None = AGENT_PORT_OPTION,
    description: str | None = typer.Option(None, "--description", help="Registry description."),
    agent_password_file: Path | None = AGENT_PASSWORD_FILE_OPTION,
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Register an agent unless it is already listed."""
    _registry_member_command(
        ctx,
        "add_agent",
        path,
        flags={"hostname": hostname, "agent_port": agent_port, "description": description},
        credential_files={
            "agent_password": agent_password_file,
            "admin_password": admin_password_file,
        },
        dry_run=dry_run,
        json_output=json_output,
    )


@registry_app.command("add-server")
def registry_add_server(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Server instance path to register."),
    hostname: str | None = HOSTNAME_OPTION,
    agent_port: int | None = AGENT_PORT_OPTION,
    description: str | None = typer.Option(None, "--description", help="Registry description."),
    agent_password_file: Path | None = AGENT_PASSWORD_FILE_OPTION,
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Register a server instance unless it is already listed."""
    _registry_member_command(
        ctx,
        "add_server",
        path,
        flags={"hostname": hostname, "agent_port": agent_port, "description": description},
        credential_files={
            "agent_password": agent_password_file,
            "admin_password": admin_password_file,
        },
        dry_run=dry_run,
        json_output=json_output,
    )


@registry_app.command("remove-agent")
def registry_remove_agent(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Agent path to unregister."),
    hostname: str | None = HOSTNAME_OPTION,
    agent_port: int | None = AGENT_PORT_OPTION,
    force: bool = typer.Option(False, "--force", help="Force removal."),
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Unregister an agent if it is listed."""
    _registry_member_command(
        ctx,
        "remove_agent",
        path,
        flags={"hostname": hostname, "agent_port": agent_port, "force": force or None},
        credential_files={"admin_password": admin_password_file},
        dry_run=dry_run,
        json_output=json_output,
    )


@registry_app.command("remove-server")
def registry_remove_server(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Server instance path to unregister."),
    hostname: str | None = HOSTNAME_OPTION,
    agent_port: int | None = AGENT_PORT_OPTION,
    force: bool = typer.Option(False, "--force", help="Force removal."),
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Unregister a server instance if it is listed."""
    _registry_member_command(
        ctx,
        "remove_server",
        path,
        flags={"hostname": hostname, "agent_port": agent_port, "force": force or None},
        credential_files={"admin_password": admin_password_file},
        dry_run=dry_run,
        json_output=json_output,
    )


# ---------------------------------------------------------------------------
# suffix
# ---------------------------------------------------------------------------

ACCEPT_CERT_OPTION = typer.Option(
    False, "--accept-cert", help="Accept non-trusted server certificates (-c)."
)


def _connection_flags(
    hostname: str | None,
    ldap_port: int | None,
    accept_cert: bool,
) -> dict[str, object]:
    return {"hostname": hostname, "ldap_port": ldap_port, "accept_cert": accept_cert or None}


@suffix_app.command("create")
def suffix_create(
    ctx: typer.Context,
    suffix: str = typer.Argument(..., help="Suffix DN, e.g. dc=example,dc=com."),
    hostname: str | None = HOSTNAME_OPTION,
    ldap_port: int | None = LDAP_PORT_OPTION,
    db_name: str | None = typer.Option(None, "--db-name", help="Database name."),
    db_path: str | None = typer.Option(None, "--db-path", help="Database directory."),
    accept_cert: bool = ACCEPT_CERT_OPTION,
    no_top_entry: bool = typer.Option(False, "--no-top-entry", help="Skip the top entry."),
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Create a suffix unless the server already lists it."""
    flags = {
        **_connection_flags(hostname, ldap_port, accept_cert),
        "db_name": db_name,
        "db_path": db_path,
        "no_top_entry": no_top_entry or None,
    }
    _reconcile(
        ctx,
        "suffix create",
        kind="suffix",
        args={**flags, "dry_run": dry_run},
        build=lambda rt: _record(rt, suffix, flags, {"admin_password": admin_password_file}),
        action=lambda rt: rt.reconciler(SuffixReconciler, dry_run=dry_run).create_suffix,
        json_output=json_output,
    )


@suffix_app.command("delete")
def suffix_delete(
    ctx: typer.Context,
    suffix: str = typer.Argument(..., help="Suffix DN."),
    hostname: str | None = HOSTNAME_OPTION,
    ldap_port: int | None = LDAP_PORT_OPTION,
    accept_cert: bool = ACCEPT_CERT_OPTION,
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Delete a suffix and its data if it exists."""
    flags = _connection_flags(hostname, ldap_port, accept_cert)
    _reconcile(
        ctx,
        "suffix delete",
        kind="suffix",
        args={**flags, "dry_run": dry_run},
        build=lambda rt: _record(rt, suffix, flags, {"admin_password": admin_password_file}),
        action=lambda rt: rt.reconciler(SuffixReconciler, dry_run=dry_run).delete_suffix,
        json_output=json_output,
    )


@suffix_app.command("import")
def suffix_import(
    ctx: typer.Context,
    suffix: str = typer.Argument(..., help="Suffix DN."),
    ldif_file: Path = typer.Argument(..., help="LDIF file to import (may be gzip compressed)."),
    hostname: str | None = HOSTNAME_OPTION,
    ldap_port: int | None = LDAP_PORT_OPTION,
    accept_cert: bool = ACCEPT_CERT_OPTION,
    async_import: bool = typer.Option(False, "--async", help="Run the import asynchronously."),
    incremental: bool = typer.Option(False, "--incremental", help="Append instead of replace."),
    import_options: str | None = typer.Option(None, "--import-options", help="Value for -f."),
    exclude_dn: str | None = typer.Option(None, "--exclude-dn", help="DN to exclude."),
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Import LDIF data into an existing, empty suffix."""
    flags = {
        **_connection_flags(hostname, ldap_port, accept_cert),
        "async_import": async_import or None,
        "incremental": incremental or None,
        "import_options": import_options,
        "exclude_dn": exclude_dn,
        "ldif_file": str(ldif_file),
    }
    _reconcile(
        ctx,
        "suffix import",
        kind="suffix",
        args={**flags, "dry_run": dry_run},
        build=lambda rt: _record(rt, suffix, flags, {"admin_password": admin_password_file}),
        action=lambda rt: rt.reconciler(SuffixReconciler, dry_run=dry_run).import_ldif,
        json_output=json_output,
    )


@suffix_app.command("info")
def suffix_info(
    ctx: typer.Context,
    hostname: str | None = HOSTNAME_OPTION,
    ldap_port: int | None = LDAP_PORT_OPTION,
    accept_cert: bool = ACCEPT_CERT_OPTION,
    admin_password_file: Path | None = ADMIN_PASSWORD_FILE_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show ``dsconf info`` for the server."""
    _info(
        ctx,
        "suffix info",
        kind="server",
        identity=hostname or "localhost",
        fetch=lambda rt, record: rt.reconciler(SuffixReconciler).info(record),
        flags=_connection_flags(hostname, ldap_port, accept_cert),
        credential_files={"admin_password": admin_password_file},
        json_output=json_output,
    )


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = "-" if value is None else str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:  # pragma: no cover - thin wrapper for console_scripts
    """Run the Typer application."""
    app()


__all__ = ["app", "main"]
