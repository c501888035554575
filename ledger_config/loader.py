"""
Configuration Loader (``ledger_config.loader``).

Loads a YAML file and parses the ``ledger`` section into a
``LedgerConfig``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown or invalid keys  -> ``ValueError`` from ``LedgerConfig``.
* Negative or over-precise percentages  -> ``InvalidAmountError``.

Example file::

    ledger:
      currency_code: KES
      default_tax_rate_percent: 16.5
      match_window: 10
      close_match_percent: "10"
      aging_buckets: [30, 60]
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import LedgerConfig
from ledger_kernel.logging_config import get_logger

logger = get_logger("config.loader")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(path: Path | str) -> LedgerConfig:
    """
    Parse the ``ledger`` section of a YAML file into a LedgerConfig.

    A file without a ``ledger`` section yields the defaults.  YAML reads
    unquoted ``16.5`` as a float; such values are converted through their
    shortest text form, so ``16.5`` becomes ``Decimal("16.5")``.
    """
    path = Path(path)
    data = load_yaml_file(path)
    section = data.get("ledger") or {}
    if not isinstance(section, dict):
        raise ValueError(f"'ledger' section in {path} must be a mapping")
    config = LedgerConfig.from_dict({
        key: Decimal(str(value)) if isinstance(value, float) else value
        for key, value in section.items()
    })
    logger.info("ledger_config_loaded", extra={"path": str(path)})
    return config
