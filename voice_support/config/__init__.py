"""
Configuration module for the voice support application.

This module provides centralized configuration management for the entire application,
including constants, logging setup, and environment-based settings.

Key components:
- constants: Defines application-wide constants used across modules, including
  timing limits, speech vendor event types and telephony event names.
- settings: Environment-driven configuration (API keys, model, commerce backend).
- logging_config: Provides a consistent logging infrastructure with support for
  console and file-based logging with rotation capabilities.

Usage examples:
```python
from voice_support.config.constants import LOGGER_NAME, AGENT_TIMEOUT_SECONDS

from voice_support.config.logging_config import configure_logging
logger = configure_logging()
logger.info("Application started")
```
"""

# Config module initialization
