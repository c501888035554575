"""
Ledger configuration (``ledger_config``).

Public API:
    LedgerConfig   -- frozen, validated configuration schema
    load_config    -- parse a YAML file into a LedgerConfig
"""

from ledger_config.loader import load_config, load_yaml_file
from ledger_config.schema import LedgerConfig

__all__ = ["LedgerConfig", "load_config", "load_yaml_file"]
