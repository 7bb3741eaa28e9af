from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase

from .endpoint import rest_api_ref


class RequestValidatorsCompiler(CompilationPhase):
    """
    Emits a body RequestValidator and one Model per content type for every
    endpoint declaring request schemas, and attaches them to its method.
    """

    name = "http_request_validators"

    def run(self, context: CompilationContext) -> None:
        naming = context.naming
        for endpoint in context.http_endpoints:
            if not endpoint.request_schemas:
                continue

            validator_id = naming.validator_logical_id(endpoint.path, endpoint.method)
            context.template.add_resource(validator_id, {
                "Type": "AWS::ApiGateway::RequestValidator",
                "Properties": {
                    "Name": f"{validator_id}-validator",
                    "RestApiId": rest_api_ref(context),
                    "ValidateRequestBody": True,
                    "ValidateRequestParameters": False,
                },
            })

            models = {}
            for content_type, schema in sorted(endpoint.request_schemas.items()):
                model_id = naming.model_logical_id(endpoint.path, endpoint.method, content_type)
                context.template.add_resource(model_id, {
                    "Type": "AWS::ApiGateway::Model",
                    "Properties": {
                        "RestApiId": rest_api_ref(context),
                        "ContentType": content_type,
                        "Schema": schema,
                    },
                })
                models[content_type] = {"Ref": model_id}

            context.template.merge_resource_properties(
                naming.method_logical_id(endpoint.path, endpoint.method),
                {"RequestValidatorId": {"Ref": validator_id}, "RequestModels": models},
            )
