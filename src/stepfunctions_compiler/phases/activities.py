from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.errors import CollisionError

from .state_machines import merge_tags


class ActivitiesCompiler(CompilationPhase):
    """Compiles standalone activities into AWS::StepFunctions::Activity resources."""

    name = "activities"

    def run(self, context: CompilationContext) -> None:
        naming = context.naming
        seen = set()
        for activity in context.service_config.activities:
            if activity.name in seen:
                raise CollisionError("activity is declared more than once", activity.name)
            seen.add(activity.name)

            logical_id = naming.activity_logical_id(activity.name)
            properties = {"Name": activity.name}
            tags = merge_tags(context.service_config.provider.tags, activity.tags)
            if tags:
                properties["Tags"] = tags
            context.template.add_resource(logical_id, {
                "Type": "AWS::StepFunctions::Activity",
                "Properties": properties,
            })

            if not context.service_config.no_output:
                context.template.add_output(naming.activity_output_logical_id(activity.name), {
                    "Description": "Current StateMachine Activity Arn",
                    "Value": {"Ref": logical_id},
                })
