"""
Command line interface.

    stepfunctions-compiler package --config serverless.yml [--stage dev] [--region us-east-1] [--output FILE]
    stepfunctions-compiler invoke stepf --name OrderFlow [--data JSON | --path FILE] --config serverless.yml
    stepfunctions-compiler info --config serverless.yml
"""

import argparse
import logging
import sys
from typing import List, Optional

import yaml
from colorama import Fore, Style

from stepfunctions_compiler.compiler.naming import NamingResolver
from stepfunctions_compiler.data_schema.utils import load_service_config_file
from stepfunctions_compiler.errors import StepFunctionsCompilerError, TransportError
from stepfunctions_compiler.execution import InvokeWorkflow, StepFunctionsExecutionClient, display
from stepfunctions_compiler.pipeline import CompilationPipeline


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stepfunctions-compiler",
        description="Compile Step Functions state machines and their event triggers into CloudFormation",
    )
    parser.add_argument("--verbose", "-v", action="count", help="log compiler diagnostics")
    commands = parser.add_subparsers(dest="command", required=True)

    def common(command: argparse.ArgumentParser) -> None:
        command.add_argument("--config", "-c", required=True, help="service document (YAML or JSON)")
        command.add_argument("--stage", "-s", help="stage, overrides the document")
        command.add_argument("--region", "-r", help="region, overrides the document")

    package = commands.add_parser("package", help="compile the service into a CloudFormation template")
    common(package)
    package.add_argument("--output", "-o", help="write the template here (.json, .yml or .yaml) instead of stdout")

    invoke = commands.add_parser("invoke", help="start an execution of a deployed state machine")
    invoke.add_argument("target", choices=["stepf"])
    common(invoke)
    invoke.add_argument("--name", "-n", required=True, help="state machine name")
    source = invoke.add_mutually_exclusive_group()
    source.add_argument("--data", "-d", help="execution input as a JSON string")
    source.add_argument("--path", "-p", help="file holding the execution input")

    info = commands.add_parser("info", help="list the HTTP endpoints of the deployed service")
    common(info)
    return parser


def _package(args) -> int:
    config = load_service_config_file(args.config, stage=args.stage, region=args.region)
    result = CompilationPipeline(config).run()

    for error in result.errors:
        print(f"{Fore.YELLOW}⚠ Skipped {error}{Style.RESET_ALL}", file=sys.stderr)

    if args.output and args.output.endswith((".yml", ".yaml")):
        rendered = yaml.safe_dump(result.template.to_dict(), sort_keys=True)
    else:
        rendered = result.to_json()

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(rendered)
        print(
            f"{Fore.GREEN}✓ Wrote {len(result.template.resources)} resource(s) to {args.output}{Style.RESET_ALL}",
            file=sys.stderr,
        )
    else:
        print(rendered)
    return 0 if result.ok else 1


def _invoke(args) -> int:
    config = load_service_config_file(args.config, stage=args.stage, region=args.region)
    return InvokeWorkflow(config).invoke(args.name, data=args.data, path=args.path)


def _info(args) -> int:
    config = load_service_config_file(args.config, stage=args.stage, region=args.region)
    client = StepFunctionsExecutionClient(config.provider.region)
    endpoint = client.get_endpoint_info(NamingResolver.for_service(config).stack_name())
    lines = display(config, endpoint)
    if lines:
        print(f"{Fore.CYAN}endpoints:{Style.RESET_ALL}")
        print(lines)
    return 0


COMMANDS = {
    "package": _package,
    "invoke": _invoke,
    "info": _info,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=(logging.DEBUG if args.verbose else logging.WARNING))

    try:
        return COMMANDS[args.command](args)
    except TransportError as e:
        print(f"{Fore.RED}✘ AWS call failed: {e}{Style.RESET_ALL}", file=sys.stderr)
    except StepFunctionsCompilerError as e:
        print(f"{Fore.RED}✘ {type(e).__name__}: {e}{Style.RESET_ALL}", file=sys.stderr)
    except OSError as e:
        print(f"{Fore.RED}✘ {e}{Style.RESET_ALL}", file=sys.stderr)
    return 1
