"""
API deployment.

The deployment's logical id embeds a digest of every API Gateway resource
compiled so far, so it stays stable across identical compilations and
changes (forcing a new deployment) whenever the API surface does.
"""

import hashlib
import json

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase

from .endpoint import resource_ids_of_type, rest_api_ref

DIGEST_LENGTH = 12


def api_surface_digest(context: CompilationContext) -> str:
    surface = {
        logical_id: resource
        for logical_id, resource in context.template.resources.items()
        if str(resource.get("Type", "")).startswith("AWS::ApiGateway::")
    }
    encoded = json.dumps(surface, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:DIGEST_LENGTH]


class DeploymentCompiler(CompilationPhase):
    name = "http_deployment"

    def run(self, context: CompilationContext) -> None:
        naming = context.naming
        stage = naming.context.stage
        logical_id = naming.deployment_logical_id(api_surface_digest(context))

        context.template.add_resource(logical_id, {
            "Type": "AWS::ApiGateway::Deployment",
            "Properties": {
                "RestApiId": rest_api_ref(context),
                "StageName": stage,
            },
            "DependsOn": resource_ids_of_type(context.template, "AWS::ApiGateway::Method"),
        })

        context.template.add_output(naming.service_endpoint_output_key(), {
            "Description": "URL of the service endpoint",
            "Value": {
                "Fn::Join": ["", [
                    "https://",
                    rest_api_ref(context),
                    ".execute-api.",
                    {"Ref": "AWS::Region"},
                    ".",
                    {"Ref": "AWS::URLSuffix"},
                    f"/{stage}",
                ]],
            },
        })
