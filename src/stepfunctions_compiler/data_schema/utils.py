"""
Document loading utilities.

Reads a service document (YAML or JSON; JSON is a subset of YAML) from disk
and hands the resulting tree to load_service_config.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from stepfunctions_compiler.errors import DefinitionError
from .service_config import ServiceConfig, load_service_config


def load_document(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML or JSON service document.

    Args:
        path: Path to the document

    Returns:
        Dict[str, Any]: The parsed document tree

    Raises:
        DefinitionError: If the file cannot be parsed or is not a mapping
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise DefinitionError(f"invalid YAML/JSON document: {e}", str(path))
    if not isinstance(document, dict):
        raise DefinitionError("service document must be a mapping", str(path))
    return document


def load_service_config_file(path: Union[str, Path], stage: Optional[str] = None,
                             region: Optional[str] = None) -> ServiceConfig:
    """Load a service document from disk and build its ServiceConfig."""
    return load_service_config(load_document(path), stage=stage, region=region)
