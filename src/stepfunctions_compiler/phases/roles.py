from typing import Any, Dict, List

POLICY_VERSION = "2012-10-17"


def service_role(principal: str, policy_name: str, statements: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Build an AWS::IAM::Role assumable by one AWS service principal with one inline policy."""
    return {
        "Type": "AWS::IAM::Role",
        "Properties": {
            "AssumeRolePolicyDocument": {
                "Version": POLICY_VERSION,
                "Statement": [{
                    "Effect": "Allow",
                    "Principal": {"Service": principal},
                    "Action": "sts:AssumeRole",
                }],
            },
            "Policies": [{
                "PolicyName": policy_name,
                "PolicyDocument": {"Version": POLICY_VERSION, "Statement": list(statements)},
            }],
        },
    }


def start_execution_statement(state_machine_arns: List[Any], action: str = "states:StartExecution") -> Dict[str, Any]:
    return {"Effect": "Allow", "Action": [action], "Resource": list(state_machine_arns)}
