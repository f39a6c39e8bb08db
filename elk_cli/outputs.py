from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError


class StackOutputsError(Exception):
    pass


@dataclass(frozen=True)
class SearchStackOutputs:
    """Identifiers published by SearchDomainStack, keyed by CfnOutput name."""

    stack_name: str
    values: dict[str, str]

    def get(self, key: str) -> str:
        try:
            return self.values[key]
        except KeyError:
            raise StackOutputsError(
                f"stack {self.stack_name!r} has no output {key!r}; is it a SearchDomainStack?"
            ) from None

    @property
    def user_pool_id(self) -> str:
        return self.get("UserPoolId")

    @property
    def identity_pool_id(self) -> str:
        return self.get("IdentityPoolId")

    @property
    def dashboards_url(self) -> str:
        return self.get("DashboardsUrl")

    @property
    def domain_endpoint(self) -> str:
        return self.get("SearchDomainEndpoint")

    def login_summary(self) -> dict[str, str]:
        return {
            "dashboardsUrl": self.dashboards_url,
            "hostedUiBaseUrl": self.values.get("UserPoolDomainBaseUrl", ""),
            "userPoolId": self.user_pool_id,
            "identityPoolId": self.identity_pool_id,
            "searchDomain": self.values.get("SearchDomainName", ""),
        }


def fetch_stack_outputs(cloudformation: Any, stack_name: str) -> SearchStackOutputs:
    try:
        resp = cloudformation.describe_stacks(StackName=stack_name)
    except (BotoCoreError, ClientError) as e:
        raise StackOutputsError(f"cannot describe stack {stack_name!r}: {e}") from e
    stacks = resp.get("Stacks") or []
    if not stacks:
        raise StackOutputsError(f"stack not found: {stack_name}")
    values = {
        str(o.get("OutputKey", "")).strip(): str(o.get("OutputValue", "")).strip()
        for o in stacks[0].get("Outputs") or []
    }
    return SearchStackOutputs(stack_name=stack_name, values=values)
