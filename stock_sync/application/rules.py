"""Loading of the alias-group / set rules file."""

import json
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from shared.core import get_logger
from stock_sync.domain.errors import ConfigurationError
from stock_sync.domain.models import Rules
from .schemas import RulesFile

logger = get_logger(__name__)

def parse_rules(data: dict) -> Rules:
    try:
        return RulesFile.model_validate(data).to_rules()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid rules: {e}") from e

def load_rules(path: Union[str, Path]) -> Rules:
    """Read and validate the rules file. Any problem is a ConfigurationError."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Rules file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Rules file {path} is not valid JSON: {e}") from e

    rules = parse_rules(data)
    logger.info(
        f"Loaded rules from {path}",
        extra={
            'extra_fields': {
                'alias_groups': len(rules.alias_groups),
                'sets': len(rules.sets),
            }
        }
    )
    return rules
