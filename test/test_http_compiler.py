"""
Tests for the HTTP compiler chain
"""

import pytest

from stepfunctions_compiler.errors import DefinitionError
from stepfunctions_compiler.phases.http import HTTP_CHAIN, HttpValidator
from stepfunctions_compiler.phases.http.validate import parse_path

STATE_MACHINE_ID = "OrderFlowStepFunctionsStateMachine"


@pytest.fixture
def compile_http(build_document, make_context, run_phase, pass_definition):
    """Run the full HTTP chain for OrderFlow with the given http bindings."""

    def _compile(*bindings, provider=None, functions=None, extra_machines=None):
        machines = {"OrderFlow": {"definition": pass_definition, "events": [{"http": b} for b in bindings]}}
        machines.update(extra_machines or {})
        document = build_document(machines, provider=provider)
        if functions:
            document["functions"] = {name: {} for name in functions}
        context = make_context(document)
        run_phase(context, HttpValidator())
        if context.http_endpoints:
            run_phase(context, *[phase() for phase in HTTP_CHAIN])
        return context

    return _compile


def resources_of_type(context, resource_type):
    return {
        logical_id: resource
        for logical_id, resource in context.template.resources.items()
        if resource["Type"] == resource_type
    }


class TestParsePath:
    """Test parse_path function."""

    def test_normalization(self):
        assert parse_path("/orders/{id}/", "e") == "orders/{id}"
        assert parse_path("/", "e") == ""
        assert parse_path("files/{proxy+}", "e") == "files/{proxy+}"

    @pytest.mark.parametrize("path", ["orders?x=1", "orders//items", "or ders", "orders/{id"])
    def test_invalid(self, path):
        with pytest.raises(DefinitionError, match="invalid segment"):
            parse_path(path, "e")


class TestHttpValidator:
    """Test HttpValidator phase."""

    def test_string_and_mapping_forms(self, compile_http):
        context = compile_http("post orders", {"method": "get", "path": "/orders/{id}"})
        assert [(e.method, e.path) for e in context.http_endpoints] == [("POST", "orders"), ("GET", "orders/{id}")]

    def test_partial_failure(self, compile_http):
        context = compile_http(
            {"method": "post", "path": "orders"},
            {"method": "fetch", "path": "orders"},
            {"method": "get", "path": "status"},
        )
        assert len(context.errors) == 1
        assert isinstance(context.errors[0], DefinitionError)
        assert "invalid HTTP method 'fetch'" in str(context.errors[0])
        assert "OrderFlow http #2" in str(context.errors[0])
        methods = resources_of_type(context, "AWS::ApiGateway::Method")
        assert set(methods) == {"ApiGatewayMethodOrdersPost", "ApiGatewayMethodStatusGet"}

    def test_duplicate_route(self, compile_http):
        context = compile_http("post orders", "POST /orders")
        assert len(context.errors) == 1
        assert "already bound" in str(context.errors[0])

    def test_authorizer_must_reference_declared_function(self, compile_http):
        context = compile_http({"method": "get", "path": "orders", "authorizer": "missingAuth"})
        assert "undeclared function 'missingAuth'" in str(context.errors[0])
        assert context.template.resources == {}

    def test_paths_with_the_same_logical_id(self, compile_http):
        """Test a path normalizing onto another path's logical id only drops that binding."""
        context = compile_http("post orders", "get user_list", "get userlist")

        assert len(context.errors) == 1
        assert "OrderFlow http #3" in str(context.errors[0])
        assert "'ApiGatewayResourceUserlist', already used by path /user_list" in str(context.errors[0])
        methods = resources_of_type(context, "AWS::ApiGateway::Method")
        assert set(methods) == {"ApiGatewayMethodOrdersPost", "ApiGatewayMethodUserlistGet"}

    def test_paths_differing_in_case(self, compile_http):
        context = compile_http("get orders", "post Orders")

        assert len(context.errors) == 1
        assert "OrderFlow http #2" in str(context.errors[0])
        assert context.template.has_resource("ApiGatewayMethodOrdersGet")

    def test_conflicting_authorizer_settings(self, compile_http):
        """Test an authorizer redeclared with other settings only drops the conflicting binding."""
        context = compile_http(
            "post orders",
            {"method": "get", "path": "a", "authorizer": {"name": "auth", "resultTtlInSeconds": 0}},
            {"method": "get", "path": "b", "authorizer": {"name": "auth", "resultTtlInSeconds": 60}},
            functions=["auth"],
        )

        assert len(context.errors) == 1
        assert "OrderFlow http #3" in str(context.errors[0])
        assert "authorizer 'auth' conflicts" in str(context.errors[0])
        authorizer = context.template.get_resource("AuthApiGatewayAuthorizer")["Properties"]
        assert authorizer["AuthorizerResultTtlInSeconds"] == 0
        assert context.template.has_resource("ApiGatewayMethodOrdersPost")
        assert context.template.has_resource("ApiGatewayMethodAGet")
        assert not context.template.has_resource("ApiGatewayMethodBGet")

    def test_rejected_binding_claims_nothing(self, compile_http):
        context = compile_http({"method": "fetch", "path": "user_list"}, "get userlist")

        assert len(context.errors) == 1
        assert context.template.has_resource("ApiGatewayMethodUserlistGet")

    def test_no_bindings_no_resources(self, compile_http):
        context = compile_http()
        assert context.template.resources == {}
        assert context.errors == []


class TestResources:
    """Test path resource compilation."""

    def test_shared_prefix_is_created_once(self, compile_http):
        context = compile_http("get orders/{id}", "get orders/status")

        resources = resources_of_type(context, "AWS::ApiGateway::Resource")
        assert set(resources) == {
            "ApiGatewayResourceOrders",
            "ApiGatewayResourceOrdersIdVar",
            "ApiGatewayResourceOrdersStatus",
        }
        assert resources["ApiGatewayResourceOrders"]["Properties"]["ParentId"] == {
            "Fn::GetAtt": ["ApiGatewayRestApi", "RootResourceId"]
        }
        assert resources["ApiGatewayResourceOrdersIdVar"]["Properties"]["ParentId"] == {
            "Ref": "ApiGatewayResourceOrders"
        }
        assert resources["ApiGatewayResourceOrdersIdVar"]["Properties"]["PathPart"] == "{id}"

    def test_prefix_shared_across_state_machines(self, compile_http, pass_definition):
        context = compile_http(
            "get a/b",
            extra_machines={"Billing": {"definition": pass_definition, "events": [{"http": "get a/c"}]}},
        )
        resources = resources_of_type(context, "AWS::ApiGateway::Resource")
        assert sorted(resources) == ["ApiGatewayResourceA", "ApiGatewayResourceAB", "ApiGatewayResourceAC"]

    def test_existing_rest_api_and_resources(self, compile_http):
        context = compile_http("get orders/{id}", provider={"apiGateway": {
            "restApiId": "abc123",
            "restApiRootResourceId": "root1",
            "restApiResources": {"/orders": "res1"},
        }})

        assert not context.template.has_resource("ApiGatewayRestApi")
        resources = resources_of_type(context, "AWS::ApiGateway::Resource")
        assert list(resources) == ["ApiGatewayResourceOrdersIdVar"]
        assert resources["ApiGatewayResourceOrdersIdVar"]["Properties"]["ParentId"] == "res1"
        assert resources["ApiGatewayResourceOrdersIdVar"]["Properties"]["RestApiId"] == "abc123"


class TestMethods:
    """Test method compilation."""

    def test_start_execution_integration(self, compile_http):
        context = compile_http("post orders")

        method = context.template.get_resource("ApiGatewayMethodOrdersPost")["Properties"]
        integration = method["Integration"]
        assert method["HttpMethod"] == "POST"
        assert method["AuthorizationType"] == "NONE"
        assert integration["Type"] == "AWS"
        assert integration["Uri"] == {
            "Fn::Sub": "arn:${AWS::Partition}:apigateway:${AWS::Region}:states:action/StartExecution"
        }
        assert integration["Credentials"] == {"Fn::GetAtt": ["ApigatewayToStepFunctionsRole", "Arn"]}
        body, variables = integration["RequestTemplates"]["application/json"]["Fn::Sub"]
        assert "${StateMachineArn}" in body
        assert variables == {"StateMachineArn": {"Ref": STATE_MACHINE_ID}}
        assert [response["StatusCode"] for response in method["MethodResponses"]] == [200, 400]

    def test_lambda_proxy_and_private(self, compile_http):
        context = compile_http({"method": "post", "path": "orders", "private": True,
                                "request": {"template": "lambda_proxy"}})

        method = context.template.get_resource("ApiGatewayMethodOrdersPost")["Properties"]
        assert method["ApiKeyRequired"] is True
        body, _ = method["Integration"]["RequestTemplates"]["application/json"]["Fn::Sub"]
        assert "queryStringParameters" in body

    def test_custom_template_and_sync_action(self, compile_http):
        context = compile_http({"method": "post", "path": "orders", "action": "StartSyncExecution",
                                "request": {"template": {"application/json": "{}"}}})

        integration = context.template.get_resource("ApiGatewayMethodOrdersPost")["Properties"]["Integration"]
        assert integration["RequestTemplates"] == {"application/json": "{}"}
        assert integration["Uri"]["Fn::Sub"].endswith("states:action/StartSyncExecution")
        assert integration["IntegrationResponses"][0]["ResponseTemplates"] == {
            "application/json": "$input.path('$.output')"
        }
        role = context.template.get_resource("ApigatewayToStepFunctionsRole")
        statement = role["Properties"]["Policies"][0]["PolicyDocument"]["Statement"][0]
        assert statement["Action"] == ["states:StartSyncExecution"]


class TestRequestValidators:
    """Test request validator compilation."""

    def test_validator_and_models(self, compile_http):
        schema = {"type": "object", "required": ["id"]}
        context = compile_http({"method": "post", "path": "orders", "request": {"schemas": {"application/json": schema}}})

        validator_id = "ApiGatewayMethodOrdersPostValidator"
        model_id = "ApiGatewayMethodOrdersPostApplicationjsonModel"
        assert context.template.get_resource(validator_id)["Properties"]["ValidateRequestBody"] is True
        assert context.template.get_resource(model_id)["Properties"]["Schema"] == schema
        method = context.template.get_resource("ApiGatewayMethodOrdersPost")["Properties"]
        assert method["RequestValidatorId"] == {"Ref": validator_id}
        assert method["RequestModels"] == {"application/json": {"Ref": model_id}}


class TestAuthorizers:
    """Test authorizer and Lambda permission compilation."""

    def test_function_authorizer(self, compile_http):
        context = compile_http(
            {"method": "get", "path": "orders", "authorizer": "auth"},
            {"method": "post", "path": "orders", "authorizer": "auth"},
            functions=["auth"],
        )

        authorizers = resources_of_type(context, "AWS::ApiGateway::Authorizer")
        assert list(authorizers) == ["AuthApiGatewayAuthorizer"]
        properties = authorizers["AuthApiGatewayAuthorizer"]["Properties"]
        assert properties["Type"] == "TOKEN"
        assert properties["IdentitySource"] == "method.request.header.Authorization"
        assert {"Fn::GetAtt": ["AuthLambdaFunction", "Arn"]} in properties["AuthorizerUri"]["Fn::Join"][1]

        method = context.template.get_resource("ApiGatewayMethodOrdersGet")
        assert method["Properties"]["AuthorizationType"] == "CUSTOM"
        assert method["Properties"]["AuthorizerId"] == {"Ref": "AuthApiGatewayAuthorizer"}
        assert method["DependsOn"] == ["AuthApiGatewayAuthorizer"]

        permission = context.template.get_resource("AuthLambdaPermissionApiGateway")
        assert permission["Properties"]["FunctionName"] == {"Fn::GetAtt": ["AuthLambdaFunction", "Arn"]}

    def test_cognito_authorizer(self, compile_http):
        pool = "arn:aws:cognito-idp:us-east-1:123456789012:userpool/us-east-1_abc"
        context = compile_http({"method": "get", "path": "orders",
                                "authorizer": {"name": "pool", "arn": pool, "scopes": ["orders/read"]}})

        authorizer = context.template.get_resource("PoolApiGatewayAuthorizer")["Properties"]
        assert authorizer["Type"] == "COGNITO_USER_POOLS"
        assert authorizer["ProviderARNs"] == [pool]
        method = context.template.get_resource("ApiGatewayMethodOrdersGet")["Properties"]
        assert method["AuthorizationScopes"] == ["orders/read"]
        assert not resources_of_type(context, "AWS::Lambda::Permission")

    def test_aws_iam_authorizer(self, compile_http):
        context = compile_http({"method": "get", "path": "orders", "authorizer": {"type": "aws_iam"}})

        method = context.template.get_resource("ApiGatewayMethodOrdersGet")["Properties"]
        assert method["AuthorizationType"] == "AWS_IAM"
        assert not resources_of_type(context, "AWS::ApiGateway::Authorizer")

    def test_request_authorizer_by_arn(self, compile_http):
        arn = "arn:aws:lambda:us-east-1:123456789012:function:checker"
        context = compile_http({"method": "get", "path": "orders", "authorizer": {
            "arn": arn, "type": "request", "identitySource": "method.request.header.X-Token",
        }})

        authorizer = context.template.get_resource("CheckerApiGatewayAuthorizer")["Properties"]
        assert authorizer["Type"] == "REQUEST"
        assert authorizer["IdentitySource"] == "method.request.header.X-Token"
        assert context.template.get_resource("CheckerLambdaPermissionApiGateway")["Properties"]["FunctionName"] == arn


class TestCors:
    """Test CORS preflight compilation."""

    def test_preflight_unions_methods(self, compile_http):
        context = compile_http(
            {"method": "post", "path": "orders", "cors": True},
            {"method": "get", "path": "orders"},
        )

        options = context.template.get_resource("ApiGatewayMethodOrdersOptions")["Properties"]
        assert options["Integration"]["Type"] == "MOCK"
        parameters = options["Integration"]["IntegrationResponses"][0]["ResponseParameters"]
        assert parameters["method.response.header.Access-Control-Allow-Methods"] == "'GET,POST,OPTIONS'"
        assert parameters["method.response.header.Access-Control-Allow-Origin"] == "'*'"

        post = context.template.get_resource("ApiGatewayMethodOrdersPost")["Properties"]
        assert post["Integration"]["IntegrationResponses"][0]["ResponseParameters"] == {
            "method.response.header.Access-Control-Allow-Origin": "'*'"
        }

    def test_custom_cors(self, compile_http):
        context = compile_http({"method": "put", "path": "orders", "cors": {
            "origin": "https://shop.example.com", "headers": ["Content-Type"], "allowCredentials": True, "maxAge": 600,
        }})

        parameters = context.template.get_resource("ApiGatewayMethodOrdersOptions")["Properties"][
            "Integration"]["IntegrationResponses"][0]["ResponseParameters"]
        assert parameters["method.response.header.Access-Control-Allow-Origin"] == "'https://shop.example.com'"
        assert parameters["method.response.header.Access-Control-Allow-Headers"] == "'Content-Type'"
        assert parameters["method.response.header.Access-Control-Allow-Credentials"] == "'true'"
        assert parameters["method.response.header.Access-Control-Max-Age"] == "'600'"


class TestIntegrationRole:
    """Test the API Gateway integration role."""

    def test_role_scoped_to_bound_state_machines(self, compile_http, pass_definition):
        context = compile_http(
            "post orders",
            extra_machines={"Unbound": {"definition": pass_definition}},
        )

        role = context.template.get_resource("ApigatewayToStepFunctionsRole")
        statements = role["Properties"]["Policies"][0]["PolicyDocument"]["Statement"]
        assert statements == [
            {"Effect": "Allow", "Action": ["states:StartExecution"], "Resource": [{"Ref": STATE_MACHINE_ID}]}
        ]

    def test_no_role_when_every_endpoint_has_one(self, compile_http):
        context = compile_http({"method": "post", "path": "orders", "iamRole": "arn:aws:iam::1:role/api"})

        assert not context.template.has_resource("ApigatewayToStepFunctionsRole")
        integration = context.template.get_resource("ApiGatewayMethodOrdersPost")["Properties"]["Integration"]
        assert integration["Credentials"] == "arn:aws:iam::1:role/api"


class TestDeployment:
    """Test deployment compilation."""

    def test_deployment_and_endpoint_output(self, compile_http):
        context = compile_http("post orders")

        deployments = resources_of_type(context, "AWS::ApiGateway::Deployment")
        assert len(deployments) == 1
        (logical_id, deployment), = deployments.items()
        assert logical_id.startswith("ApiGatewayDeployment")
        assert deployment["Properties"]["StageName"] == "dev"
        assert deployment["DependsOn"] == ["ApiGatewayMethodOrdersPost"]
        assert "ServiceEndpoint" in context.template.outputs

    def test_digest_is_stable_and_tracks_the_api(self, compile_http):
        first = set(resources_of_type(compile_http("post orders"), "AWS::ApiGateway::Deployment"))
        second = set(resources_of_type(compile_http("post orders"), "AWS::ApiGateway::Deployment"))
        changed = set(resources_of_type(compile_http("post invoices"), "AWS::ApiGateway::Deployment"))

        assert first == second
        assert first != changed


class TestApiKeysAndUsagePlan:
    """Test API key, usage plan and usage plan key compilation."""

    def test_keys_and_plan(self, compile_http):
        context = compile_http("post orders", provider={
            "apiKeys": ["partner", {"name": "internal", "value": "0123456789abcdefghij"}],
            "usagePlan": {"quota": {"limit": 5000, "period": "MONTH"}, "throttle": {"burstLimit": 20, "rateLimit": 10}},
        })

        key = context.template.get_resource("ApiGatewayApiKey2")["Properties"]
        assert key["Name"] == "internal"
        assert key["Value"] == "0123456789abcdefghij"
        plan = context.template.get_resource("ApiGatewayUsagePlan")["Properties"]
        assert plan["Quota"] == {"Limit": 5000, "Period": "MONTH"}
        assert plan["Throttle"] == {"BurstLimit": 20, "RateLimit": 10}
        plan_key = context.template.get_resource("ApiGatewayUsagePlanKey1")["Properties"]
        assert plan_key == {"KeyId": {"Ref": "ApiGatewayApiKey1"}, "KeyType": "API_KEY",
                            "UsagePlanId": {"Ref": "ApiGatewayUsagePlan"}}

    def test_no_keys_no_plan(self, compile_http):
        context = compile_http("post orders")
        assert not resources_of_type(context, "AWS::ApiGateway::UsagePlan")
        assert not resources_of_type(context, "AWS::ApiGateway::ApiKey")
