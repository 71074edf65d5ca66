"""
Configuration for nested_tree.

Settings are resolved with the following precedence (highest first):

    1. Explicit overrides passed to load_settings()
    2. Environment variables
    3. YAML file
    4. Defaults

Environment variables:
    NESTED_TREE_URL         SQLAlchemy connection URL
    NESTED_TREE_TABLE       Table holding the tree
    NESTED_TREE_NAME_FIELD  Display-name column
    NESTED_TREE_ECHO        "1"/"true" to log SQL statements

YAML file (keys may also sit under a top-level ``nested_tree:`` section):

    ```yaml
    nested_tree:
      url: postgresql://app@localhost/catalog
      table_name: categories
      name_field: title
      root_id: 0
      pool_size: 10
    ```

    Quote URLs that end in a colon, such as ``url: "sqlite:///:memory:"``;
    unquoted, YAML reads the trailing colon as a mapping indicator.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .database import Database
from .exceptions import ConfigurationError
from .tree import NestedSetTree

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

ENV_MAPPING = {
    "NESTED_TREE_URL": "url",
    "NESTED_TREE_TABLE": "table_name",
    "NESTED_TREE_NAME_FIELD": "name_field",
    "NESTED_TREE_ECHO": "echo",
}


class TreeSettings(BaseModel):
    """
    Connection and table settings for a nested-set tree.

    Attributes:
        url: SQLAlchemy connection URL
        table_name: Table holding the tree rows (optionally schema-qualified)
        name_field: Display-name column
        root_id: parent_id sentinel of top-level rows (None = NULL)
        pool_size: Maximum pool connections
        echo: Log SQL statements through SQLAlchemy
    """

    url: str = Field(..., min_length=1, description="SQLAlchemy connection URL")
    table_name: str = Field(..., description="Tree table name")
    name_field: str = Field("name", description="Display-name column")
    root_id: Optional[Union[int, str]] = Field(
        None, description="parent_id sentinel for top-level rows"
    )
    pool_size: int = Field(5, ge=1, le=100, description="Maximum pool connections")
    echo: bool = Field(False, description="Log SQL statements")

    @field_validator("table_name", "name_field")
    @classmethod
    def _plain_identifier(cls, value: str) -> str:
        value = value.strip()
        if not _IDENTIFIER.match(value):
            raise ValueError(f"'{value}' is not a valid SQL identifier")
        return value

    def create_database(self, lazy: bool = False) -> Database:
        """Create the Database collaborator described by these settings."""
        return Database(
            self.url, pool_size=self.pool_size, echo=self.echo, lazy=lazy
        )

    def connect(self) -> Tuple[Database, NestedSetTree]:
        """
        Create a Database and a NestedSetTree bound to it.

        Example:
            >>> db, tree = load_settings("tree.yaml").connect()
            >>> tree.visualise(1)
        """
        database = self.create_database()
        tree = NestedSetTree(
            database,
            self.table_name,
            name_field=self.name_field,
            root_id=self.root_id,
        )
        return database, tree


def _read_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Config file not found: {file_path}")

    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {file_path} must contain a mapping")

    section = data.get("nested_tree", data)
    if not isinstance(section, dict):
        raise ConfigurationError(f"'nested_tree' section in {file_path} must be a mapping")
    return dict(section)


def _read_env() -> Dict[str, Any]:
    config: Dict[str, Any] = {}
    for env_var, key in ENV_MAPPING.items():
        value = os.getenv(env_var)
        if value:
            if key == "echo":
                config[key] = value.strip().lower() in ("1", "true", "yes", "on")
            else:
                config[key] = value
    return config


def load_settings(
    path: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> TreeSettings:
    """
    Resolve TreeSettings from overrides, environment, a YAML file and defaults.

    Args:
        path: Optional YAML file
        **overrides: Field values that win over every other source
                     (None values are ignored)

    Returns:
        Validated TreeSettings

    Raises:
        ConfigurationError: If the file is unreadable or the result is invalid
    """
    config: Dict[str, Any] = {}

    if path is not None:
        config.update(_read_yaml(path))

    config.update(_read_env())

    for key, value in overrides.items():
        if value is not None:
            config[key] = value

    try:
        settings = TreeSettings(**config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid tree settings: {e}") from e

    logger.debug(
        "Tree settings resolved: table=%s, name_field=%s, root_id=%r",
        settings.table_name,
        settings.name_field,
        settings.root_id,
    )
    return settings


__all__ = ["TreeSettings", "load_settings", "ENV_MAPPING"]
