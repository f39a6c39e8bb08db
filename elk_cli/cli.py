from __future__ import annotations

import contextlib
import json
import sys
from dataclasses import dataclass, field
from typing import Any, Iterator

import boto3
import typer
from dotenv import load_dotenv
from rich.console import Console

from . import __version__
from .outputs import SearchStackOutputs, StackOutputsError, fetch_stack_outputs
from .users import DashboardUserError, DashboardUsers, normalize_email, normalize_username

DEFAULT_STACK_NAME = "CdkElkStack"

_ERROR_CONSOLE = Console(stderr=True)


def _new_session(*, profile: str | None, region: str | None) -> Any:
    return boto3.session.Session(profile_name=profile, region_name=region)


@dataclass
class CliState:
    stack: str = DEFAULT_STACK_NAME
    profile: str | None = None
    region: str | None = None
    compact: bool = False
    user_pool_id: str | None = None
    _session: Any = field(default=None, repr=False)
    _outputs: SearchStackOutputs | None = field(default=None, repr=False)

    def session(self) -> Any:
        if self._session is None:
            self._session = _new_session(profile=self.profile, region=self.region)
        return self._session

    def outputs(self) -> SearchStackOutputs:
        if self._outputs is None:
            self._outputs = fetch_stack_outputs(self.session().client("cloudformation"), self.stack)
        return self._outputs

    def users(self) -> DashboardUsers:
        pool_id = (self.user_pool_id or "").strip() or self.outputs().user_pool_id
        return DashboardUsers(cognito=self.session().client("cognito-idp"), user_pool_id=pool_id)

    def emit(self, payload: Any) -> None:
        if self.compact:
            typer.echo(json.dumps(payload, separators=(",", ":"), sort_keys=True))
        else:
            typer.echo(json.dumps(payload, indent=2, sort_keys=True))


def _state(ctx: typer.Context) -> CliState:
    if not isinstance(ctx.obj, CliState):
        ctx.obj = CliState()
    return ctx.obj


@contextlib.contextmanager
def _reported() -> Iterator[None]:
    # AWS-side failures exit 1; bad input is a usage error (exit 2).
    try:
        yield
    except (StackOutputsError, DashboardUserError) as e:
        _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"elk-admin {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="elk-admin",
    help="Find and manage Kibana logins for a deployed search domain stack.",
    no_args_is_help=True,
    add_completion=False,
)
users_app = typer.Typer(
    help="Kibana login users (members of the stack's user pool).",
    no_args_is_help=True,
)
app.add_typer(users_app, name="users")


@app.callback()
def main_callback(
    ctx: typer.Context,
    stack: str = typer.Option(DEFAULT_STACK_NAME, "--stack", envvar="STACK", help="CloudFormation stack name"),
    profile: str | None = typer.Option(None, "--profile", envvar="AWS_PROFILE", help="AWS CLI profile"),
    region: str | None = typer.Option(None, "--region", envvar="AWS_REGION", help="AWS region of the stack"),
    compact: bool = typer.Option(False, "--compact", help="Emit single-line JSON"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    del version
    ctx.obj = CliState(stack=stack.strip(), profile=profile, region=region, compact=compact)


@app.command("outputs", help="Print the stack's outputs, or the value of one output key.")
def outputs_command(
    ctx: typer.Context,
    key: str | None = typer.Argument(None, help="Output key, e.g. DashboardsUrl"),
) -> None:
    state = _state(ctx)
    with _reported():
        outputs = state.outputs()
        if key:
            typer.echo(outputs.get(key))
        else:
            state.emit(outputs.values)


@app.command("login-info", help="Print where dashboard users sign in and which pools back the login.")
def login_info_command(ctx: typer.Context) -> None:
    state = _state(ctx)
    with _reported():
        state.emit(state.outputs().login_summary())


@users_app.callback()
def users_callback(
    ctx: typer.Context,
    user_pool_id: str | None = typer.Option(
        None, "--user-pool-id", help="Use this pool instead of the stack's UserPoolId output"
    ),
) -> None:
    _state(ctx).user_pool_id = user_pool_id


@users_app.command("add", help="Create a Kibana user keyed by email; existing users are left in place.")
def users_add(
    ctx: typer.Context,
    email: str = typer.Argument(..., help="Email address, also the login name"),
    password: str | None = typer.Option(
        None, "--password", envvar="ELK_DASHBOARD_PASSWORD", help="Set this permanent password"
    ),
) -> None:
    state = _state(ctx)
    with _reported():
        email = normalize_email(email)
        users = state.users()
        result = users.invite(email, password=password)
        state.emit({**result, "userPoolId": users.user_pool_id})


@users_app.command("set-password", help="Set a permanent password for a Kibana user.")
def users_set_password(
    ctx: typer.Context,
    username: str = typer.Argument(...),
    password: str = typer.Argument(...),
) -> None:
    state = _state(ctx)
    with _reported():
        username = normalize_username(username)
        users = state.users()
        users.set_password(username, password)
        state.emit({"username": username, "userPoolId": users.user_pool_id, "passwordSet": True})


@users_app.command("remove", help="Delete a Kibana user from the user pool.")
def users_remove(ctx: typer.Context, username: str = typer.Argument(...)) -> None:
    state = _state(ctx)
    with _reported():
        username = normalize_username(username)
        users = state.users()
        users.remove(username)
        state.emit({"username": username, "userPoolId": users.user_pool_id, "removed": True})


@users_app.command("list", help="List Kibana users with their confirmation status.")
def users_list(ctx: typer.Context) -> None:
    state = _state(ctx)
    with _reported():
        users = state.users()
        state.emit({"userPoolId": users.user_pool_id, "users": users.list_users()})


def main(argv: list[str] | None = None) -> int:
    # Existing environment wins over .env values.
    load_dotenv()
    try:
        app(args=list(sys.argv[1:] if argv is None else argv), prog_name="elk-admin")
    except SystemExit as e:
        if e.code is None:
            return 0
        return e.code if isinstance(e.code, int) else 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
