"""
Parsers for .env files, supporting quotes, comments and ``export`` prefixes.
"""
import logging
import os
from typing import Dict, Optional, Mapping
from io import StringIO

from dotenv import dotenv_values

logger = logging.getLogger(__name__)


class EnvParser:
    """
    Parser for .env files.

    Values are returned verbatim: ``${VAR}`` references inside a .env file are
    not expanded here, the compose parser resolves placeholders itself.
    """
    @staticmethod
    def parse(env_path: str) -> Dict[str, str]:
        """
        Parses an .env file from a path. A missing file yields an empty mapping.

        Args:
            env_path (str): Path to the .env file.

        Returns:
            Dict[str, str]: Dictionary of environment variables.
        """
        if not os.path.exists(env_path):
            logger.debug("No env file at %s", env_path)
            return {}
        return EnvParser._clean(dotenv_values(env_path, interpolate=False))

    @staticmethod
    def parse_from_string(content: str) -> Dict[str, str]:
        """
        Parses environment variables from a string.
        """
        return EnvParser._clean(dotenv_values(stream=StringIO(content), interpolate=False))

    @staticmethod
    def _clean(values: Mapping[str, Optional[str]]) -> Dict[str, str]:
        # dotenv maps a bare "KEY" line to None; treat it as unset
        return {key: value for key, value in values.items() if value is not None}


def load_environment(env_file: Optional[str] = None,
                     overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Builds the substitution source for a manifest: the .env file overlaid
    by ``overrides`` (normally the process environment).
    """
    env: Dict[str, str] = {}
    if env_file:
        env.update(EnvParser.parse(env_file))
    if overrides:
        env.update(overrides)
    return env
