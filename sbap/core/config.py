"""
Protocol configuration parameters for SBAP.

Defines pagination defaults, viewing key format, chain clock and paths.
Values can be overridden from a dotenv file or SBAP_* environment variables.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values

ENV_PREFIX = "SBAP_"


@dataclass
class ProtocolConfig:
    """Protocol-wide configuration parameters"""

    # Factory listings
    default_page_size: int = 200  # list_closed_auctions page size when none given

    # Viewing keys
    viewing_key_prefix: str = "api_key_"

    # Chain clock
    genesis_height: int = 1
    genesis_time: int = 1_600_000_000  # Seconds since epoch at height 1
    block_interval: int = 6  # Seconds added per block by Chain.advance_blocks()

    # Paths
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")
    db_name: str = "chain.db"

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name

    def ensure_dirs(self) -> None:
        """Create the data and log directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.log_dir.mkdir(exist_ok=True, parents=True)


def _coerce(raw: str, target: type):
    if target is Path:
        return Path(raw).expanduser()
    if target is int:
        return int(raw)
    return raw


def load_config(config_path: Optional[str] = None) -> ProtocolConfig:
    """
    Load configuration from a dotenv file and the environment.

    Environment variables win over the file. Keys are the field names
    upper-cased with the SBAP_ prefix, e.g. SBAP_DEFAULT_PAGE_SIZE=50.

    Args:
        config_path: Optional path to a .env style file

    Returns:
        ProtocolConfig instance
    """
    values: Dict[str, Optional[str]] = {}
    if config_path:
        values.update(dotenv_values(config_path))
    values.update({k: v for k, v in os.environ.items() if k.startswith(ENV_PREFIX)})

    overrides = {}
    for f in fields(ProtocolConfig):
        raw = values.get(ENV_PREFIX + f.name.upper())
        if raw is None or raw == "":
            continue
        try:
            overrides[f.name] = _coerce(raw, f.type)
        except ValueError as e:
            raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}") from e

    return replace(ProtocolConfig(), **overrides)
