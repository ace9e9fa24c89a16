"""Configuration loader.

Reads configuration files in YAML format and returns a dictionary.
Configuration files should reside in the `configs/` directory at the
project root; `configs/default.yaml` documents every recognised key.
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "configs" / "default.yaml"


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML configuration file into a dictionary.

    Parameters
    ----------
    path : str or Path
        Path to the YAML configuration file.

    Returns
    -------
    dict
        Parsed configuration dictionary.  Returns an empty dict if the
        file does not exist or does not contain valid YAML.
    """
    cfg_path = Path(path)
    if not cfg_path.is_file():
        logger.debug("Config file %s not found, using defaults", cfg_path)
        return {}
    with open(cfg_path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            logger.warning("Could not parse %s: %s", cfg_path, exc)
            return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top level is %s, expected a mapping",
                       cfg_path, type(data).__name__)
        return {}
    return data
