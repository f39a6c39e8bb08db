import json
import re

import pytest
from botocore.exceptions import ClientError
from typer.testing import CliRunner

from elk_cli import __version__
from elk_cli import cli
from elk_cli.cli import app
from elk_cli.cli import main


_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")

runner = CliRunner()

STACK_OUTPUTS = {
    "UserPoolId": "us-east-1_abc",
    "UserPoolDomainBaseUrl": "https://cdk-elk.auth.us-east-1.amazoncognito.com",
    "IdentityPoolId": "us-east-1:1234",
    "SearchDomainName": "cdk-elk",
    "SearchDomainEndpoint": "search-cdk-elk.example",
    "DashboardsUrl": "https://search-cdk-elk.example/_plugin/kibana/",
}


def _plain(s: str) -> str:
    return _ANSI_RE.sub("", s)


def _all_output(result) -> str:
    out = result.output or ""
    try:
        err = result.stderr or ""
    except ValueError:
        err = ""
    return _plain(out + err)


class FakeCloudFormation:
    def __init__(self, outputs):
        self.outputs = outputs
        self.stack_names: list[str] = []

    def describe_stacks(self, **kwargs):
        self.stack_names.append(kwargs["StackName"])
        if self.outputs is None:
            raise ClientError(
                {"Error": {"Code": "ValidationError", "Message": "Stack does not exist"}},
                "DescribeStacks",
            )
        return {
            "Stacks": [
                {"Outputs": [{"OutputKey": k, "OutputValue": v} for k, v in self.outputs.items()]}
            ]
        }


class FakeCognito:
    def __init__(self):
        self.calls: list[tuple[str, dict]] = []

    def admin_create_user(self, **kwargs):
        self.calls.append(("create", kwargs))

    def admin_set_user_password(self, **kwargs):
        self.calls.append(("password", kwargs))

    def admin_delete_user(self, **kwargs):
        self.calls.append(("delete", kwargs))
        raise ClientError(
            {"Error": {"Code": "UserNotFoundException", "Message": "User does not exist."}},
            "AdminDeleteUser",
        )


class FakeSession:
    def __init__(self, outputs=STACK_OUTPUTS):
        self.cloudformation = FakeCloudFormation(outputs)
        self.cognito = FakeCognito()

    def client(self, name):
        return {"cloudformation": self.cloudformation, "cognito-idp": self.cognito}[name]


@pytest.fixture
def session(monkeypatch):
    fake = FakeSession()
    seen = {}

    def _new_session(*, profile, region):
        seen.update(profile=profile, region=region)
        return fake

    monkeypatch.setattr(cli, "_new_session", _new_session)
    fake.seen = seen
    return fake


def test_every_command_has_help_text():
    for info in app.registered_commands:
        assert (info.help or "").strip(), info.name
    for group in app.registered_groups:
        for info in group.typer_instance.registered_commands:
            assert (info.help or "").strip(), f"{group.name} {info.name}"


@pytest.mark.parametrize("argv", [["--help"], ["users", "--help"], ["users", "add", "--help"]])
def test_help_renders(argv):
    result = runner.invoke(app, argv)
    assert result.exit_code == 0
    assert "Usage" in _plain(result.output)


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == f"elk-admin {__version__}"


def test_missing_argument_is_a_usage_error_not_a_traceback(capsys):
    code = main(["users", "set-password"])
    captured = capsys.readouterr()

    assert code == 2
    err = _plain(captured.err + captured.out)
    assert "Missing argument" in err
    assert "USERNAME" in err
    assert "Traceback" not in err


def test_main_loads_dotenv_before_running(monkeypatch):
    order = []
    monkeypatch.setattr(cli, "load_dotenv", lambda: order.append("dotenv"))
    monkeypatch.setattr(cli, "app", lambda **kwargs: order.append(kwargs["args"]))

    assert main(["login-info"]) == 0
    assert order == ["dotenv", ["login-info"]]


def test_outputs_prints_all_outputs_for_named_stack(session):
    result = runner.invoke(app, ["--stack", " LogsStack ", "--region", "eu-west-1", "outputs"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == STACK_OUTPUTS
    assert session.cloudformation.stack_names == ["LogsStack"]
    assert session.seen == {"profile": None, "region": "eu-west-1"}


def test_outputs_single_key_prints_raw_value(session):
    result = runner.invoke(app, ["outputs", "DashboardsUrl"])

    assert result.exit_code == 0
    assert result.output.strip() == STACK_OUTPUTS["DashboardsUrl"]
    assert session.cloudformation.stack_names == ["CdkElkStack"]


def test_outputs_unknown_key_exits_1(session):
    result = runner.invoke(app, ["outputs", "Nope"])
    assert result.exit_code == 1
    assert "has no output 'Nope'" in _all_output(result)


def test_login_info_compact(session):
    result = runner.invoke(app, ["--compact", "login-info"])

    assert result.exit_code == 0
    assert len(result.output.strip().splitlines()) == 1
    assert json.loads(result.output) == {
        "dashboardsUrl": STACK_OUTPUTS["DashboardsUrl"],
        "hostedUiBaseUrl": STACK_OUTPUTS["UserPoolDomainBaseUrl"],
        "userPoolId": "us-east-1_abc",
        "identityPoolId": "us-east-1:1234",
        "searchDomain": "cdk-elk",
    }


def test_missing_stack_exits_1(monkeypatch):
    fake = FakeSession(outputs=None)
    monkeypatch.setattr(cli, "_new_session", lambda **kwargs: fake)

    result = runner.invoke(app, ["login-info"])
    assert result.exit_code == 1
    assert "cannot describe stack 'CdkElkStack'" in _all_output(result)


def test_users_add_uses_stack_user_pool_and_password_env(session, monkeypatch):
    monkeypatch.setenv("ELK_DASHBOARD_PASSWORD", "Secret-Pass-1")
    result = runner.invoke(app, ["users", "add", "Alice@Example.com"])

    assert result.exit_code == 0, _all_output(result)
    assert json.loads(result.output) == {
        "username": "alice@example.com",
        "created": True,
        "passwordSet": True,
        "userPoolId": "us-east-1_abc",
    }
    assert [op for op, _ in session.cognito.calls] == ["create", "password"]


def test_users_add_rejects_non_email_before_calling_aws(session):
    result = runner.invoke(app, ["users", "add", "alice"])

    assert result.exit_code == 2
    assert "not an email address" in _all_output(result)
    assert session.cognito.calls == []
    assert session.cloudformation.stack_names == []


def test_user_pool_override_skips_stack_lookup(session):
    result = runner.invoke(
        app, ["users", "--user-pool-id", "pool-9", "set-password", " bob@example.com ", "New-Pass-123"]
    )

    assert result.exit_code == 0, _all_output(result)
    assert json.loads(result.output)["username"] == "bob@example.com"
    assert session.cloudformation.stack_names == []
    (_, call), = session.cognito.calls
    assert call["UserPoolId"] == "pool-9"
    assert call["Username"] == "bob@example.com"


@pytest.mark.parametrize("command", ["set-password", "remove"])
def test_blank_username_is_rejected_before_calling_aws(session, command):
    argv = ["users", "--user-pool-id", "pool-9", command, "   "]
    if command == "set-password":
        argv.append("New-Pass-123")
    result = runner.invoke(app, argv)

    assert result.exit_code == 2
    assert "username cannot be empty" in _all_output(result)
    assert session.cognito.calls == []


def test_remove_unknown_user_exits_1(session):
    result = runner.invoke(app, ["users", "--user-pool-id", "pool-9", "remove", "ghost"])

    assert result.exit_code == 1
    assert "cannot remove ghost" in _all_output(result)
