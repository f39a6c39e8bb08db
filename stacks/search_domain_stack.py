from aws_cdk import (
    CfnOutput,
    RemovalPolicy,
    Stack,
    aws_cognito as cognito,
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_opensearchservice as opensearch,
)
from constructs import Construct

from stacks.search_config import SearchStackConfig, load_search_config

COGNITO_IDENTITY_PRINCIPAL = "cognito-identity.amazonaws.com"
SEARCH_SERVICE_PRINCIPAL = "es.amazonaws.com"
SEARCH_COGNITO_ACCESS_POLICY_NAME = "AmazonESCognitoAccess"


class SearchDomainStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: SearchStackConfig | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Validate before creating any construct so bad env fails the synth outright.
        self.config = config if config is not None else load_search_config()
        # Retain by default: the directory and the cluster hold user data.
        stateful_removal_policy = (
            RemovalPolicy.RETAIN if self.config.retain_data else RemovalPolicy.DESTROY
        )
        stack_name = Stack.of(self).stack_name

        self.user_pool = cognito.UserPool(
            self,
            "UserPool",
            user_pool_name=f"{stack_name}UserPool",
            auto_verify=cognito.AutoVerifiedAttrs(email=True),
            standard_attributes=cognito.StandardAttributes(
                email=cognito.StandardAttribute(mutable=True, required=True),
            ),
            removal_policy=stateful_removal_policy,
        )
        self.user_pool_domain = self.user_pool.add_domain(
            "UserPoolDomain",
            cognito_domain=cognito.CognitoDomainOptions(
                domain_prefix=self.config.user_pool_domain_prefix,
            ),
        )

        self.identity_pool = cognito.CfnIdentityPool(
            self,
            "IdentityPool",
            identity_pool_name=f"{stack_name}IdentityPool",
            allow_unauthenticated_identities=False,
        )

        # See https://docs.aws.amazon.com/cognito/latest/developerguide/role-based-access-control.html
        self.authenticated_role = iam.Role(
            self,
            "AuthenticatedRole",
            assumed_by=iam.FederatedPrincipal(
                COGNITO_IDENTITY_PRINCIPAL,
                conditions={
                    "StringEquals": {
                        f"{COGNITO_IDENTITY_PRINCIPAL}:aud": self.identity_pool.ref,
                    },
                    "ForAnyValue:StringLike": {
                        f"{COGNITO_IDENTITY_PRINCIPAL}:amr": "authenticated",
                    },
                },
                assume_role_action="sts:AssumeRoleWithWebIdentity",
            ),
            description="Role vended by the identity pool to authenticated dashboard users.",
        )

        cognito.CfnIdentityPoolRoleAttachment(
            self,
            "IdentityPoolRoleAttachment",
            identity_pool_id=self.identity_pool.ref,
            roles={
                "authenticated": self.authenticated_role.role_arn,
            },
        )

        # Lets the search service configure the user pool and identity pool for dashboards login.
        self.search_service_role = iam.Role(
            self,
            "EsRole",
            assumed_by=iam.ServicePrincipal(SEARCH_SERVICE_PRINCIPAL),
        )
        self.search_service_role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name(SEARCH_COGNITO_ACCESS_POLICY_NAME)
        )

        domain_name = self.config.domain_name
        self.search_domain = opensearch.Domain(
            self,
            "SearchDomain",
            domain_name=domain_name,
            version=opensearch.EngineVersion.ELASTICSEARCH_7_10,
            enable_version_upgrade=True,
            capacity=opensearch.CapacityConfig(
                data_node_instance_type=self.config.data_node_instance_type,
                data_nodes=self.config.data_nodes,
                multi_az_with_standby_enabled=False,
            ),
            zone_awareness=opensearch.ZoneAwarenessConfig(enabled=False),
            ebs=opensearch.EbsOptions(
                enabled=True,
                volume_size=self.config.ebs_volume_size_gib,
                volume_type=ec2.EbsDeviceVolumeType.GP2,
            ),
            access_policies=[
                # Only identities vended the authenticated role may reach the data plane.
                iam.PolicyStatement(
                    effect=iam.Effect.ALLOW,
                    principals=[iam.ArnPrincipal(self.authenticated_role.role_arn)],
                    actions=["es:ESHttp*"],
                    resources=[
                        f"arn:aws:es:{self.region}:{self.account}:domain/{domain_name}/*"
                    ],
                )
            ],
            cognito_dashboards_auth=opensearch.CognitoOptions(
                user_pool_id=self.user_pool.user_pool_id,
                identity_pool_id=self.identity_pool.ref,
                role=self.search_service_role,
            ),
            removal_policy=stateful_removal_policy,
        )

        CfnOutput(
            self,
            "UserPoolId",
            value=self.user_pool.user_pool_id,
        )

        CfnOutput(
            self,
            "UserPoolDomainBaseUrl",
            value=self.user_pool_domain.base_url(),
            description="Hosted UI base URL for the user pool.",
        )

        CfnOutput(
            self,
            "IdentityPoolId",
            value=self.identity_pool.ref,
        )

        CfnOutput(
            self,
            "AuthenticatedRoleArn",
            value=self.authenticated_role.role_arn,
        )

        CfnOutput(
            self,
            "SearchServiceRoleArn",
            value=self.search_service_role.role_arn,
        )

        CfnOutput(
            self,
            "SearchDomainName",
            value=self.search_domain.domain_name,
        )

        CfnOutput(
            self,
            "SearchDomainArn",
            value=self.search_domain.domain_arn,
        )

        CfnOutput(
            self,
            "SearchDomainEndpoint",
            value=self.search_domain.domain_endpoint,
        )

        CfnOutput(
            self,
            "DashboardsUrl",
            value=f"https://{self.search_domain.domain_endpoint}/_plugin/kibana/",
            description="Kibana login URL; sign in with a user from the user pool.",
        )
