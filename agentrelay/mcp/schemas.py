"""Configuration schemas for MCP servers."""

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MCPServerConfig(BaseModel):
    """Schema for an individual MCP server launched over stdio."""

    command: str = Field(..., description="Command to start the server")
    args: List[str] = Field(default_factory=list, description="Arguments for the server command")
    env: Optional[Dict[str, str]] = Field(None, description="Environment variables for the server")
    working_dir: Optional[str] = Field(
        None, alias="workingDir", description="Working directory for the server process"
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('command')
    @classmethod
    def command_not_empty(cls, v: str) -> str:
        """Validate that command is not empty."""
        if not v.strip():
            raise ValueError("Command cannot be empty")
        return v

    @field_validator('args')
    @classmethod
    def validate_args(cls, v: List[str]) -> List[str]:
        """Validate args list contains non-empty strings when present."""
        if v and any(not arg.strip() for arg in v):
            raise ValueError("All args must be non-empty strings")
        return v


class MCPConfig(BaseModel):
    """Schema for an MCP configuration file (``{"mcpServers": {...}}``)."""

    servers: Dict[str, MCPServerConfig] = Field(
        ...,
        alias="mcpServers",
        description="Dictionary of server configurations keyed by server name"
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('servers')
    @classmethod
    def servers_not_empty(cls, v: Dict[str, MCPServerConfig]) -> Dict[str, MCPServerConfig]:
        """Validate that servers dictionary is not empty and names are usable."""
        if not v:
            raise ValueError("At least one server configuration must be provided")
        for name in v:
            if not name.strip():
                raise ValueError("Server names cannot be empty")
            if "_" in name:
                raise ValueError(f"Server name '{name}' cannot contain underscores")
        return v


def load_mcp_config(path: Union[str, Path]) -> MCPConfig:
    """Load and validate an MCP configuration file.

    Args:
        path: Path to a JSON file

    Returns:
        The validated configuration

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON or fails validation
    """
    with open(path) as f:
        data = json.load(f)
    return MCPConfig.model_validate(data)
