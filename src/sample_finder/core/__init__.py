"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Logging (Loguru)
- Optional service capabilities
- Blob storage for raw audio
- Rich console output

Clean architecture principle: The core layer has no dependencies on
domain or application layers.
"""

# Configuration
from .config import (
    Config,
    load_config,
    save_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    create_default_config,
    ensure_directories,
)

# Capabilities
from .capabilities import Capabilities, OFFLINE, detect_capabilities

# Blob storage
from .blob_store import BlobStore

# Console
from .console import get_console, print_table, safe_print

# Output
from .output import log, setup_loguru, setup_logging_from_config

__all__ = [
    # Config
    "Config",
    "load_config",
    "save_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "create_default_config",
    "ensure_directories",
    # Capabilities
    "Capabilities",
    "OFFLINE",
    "detect_capabilities",
    # Blob storage
    "BlobStore",
    # Console
    "get_console",
    "print_table",
    "safe_print",
    # Output
    "log",
    "setup_loguru",
    "setup_logging_from_config",
]
