"""YAML configuration parser for the blue/green deployment tool."""

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from .models import BlueGreenProjectConfig, ClusterBlueGreenConfig, ProviderConfig

DEFAULT_CONFIG_PATH = "bluegreen.yaml"


class ConfigValidationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  • {location}: {msg}")

        return "\n".join(error_lines)


class Config:
    """Configuration manager for blue/green resources."""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        """Initialize configuration manager.

        Args:
            config_path: Path to bluegreen.yaml configuration file
        """
        self.config_path = Path(config_path)
        self.data: Dict = {}
        self.provider: ProviderConfig = ProviderConfig()
        self.resources: List[ClusterBlueGreenConfig] = []

    def load(self) -> "Config":
        """Load and validate configuration from YAML file.

        Returns:
            Self for method chaining

        Raises:
            ConfigValidationError: If configuration is invalid
            FileNotFoundError: If configuration file doesn't exist
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        return self.load_dict(self.data)

    def load_dict(self, data: Dict) -> "Config":
        """Validate and parse already-loaded configuration data.

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        self.data = data

        validation_errors = self.validate()
        if validation_errors:
            raise ConfigValidationError(
                f"Configuration validation failed with {len(validation_errors)} error(s)",
                validation_errors,
            )

        parsed = BlueGreenProjectConfig(**self.data)
        self.provider = parsed.provider
        self.resources = parsed.resources
        return self

    def validate(self) -> List[Dict]:
        """Validate configuration against schema.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not isinstance(self.data, dict):
            return [{"loc": [], "msg": "Configuration must be a mapping"}]

        if "resources" not in self.data:
            errors.append({"loc": ["resources"], "msg": "Required field 'resources' is missing"})
        elif not isinstance(self.data["resources"], list) or len(self.data["resources"]) == 0:
            errors.append({"loc": ["resources"], "msg": "At least one resource must be defined"})

        if "provider" in self.data:
            try:
                ProviderConfig(**(self.data["provider"] or {}))
            except ValidationError as e:
                for error in e.errors():
                    errors.append(
                        {
                            "loc": ["provider"] + list(error["loc"]),
                            "msg": error["msg"],
                        }
                    )

        if "resources" in self.data and isinstance(self.data["resources"], list):
            for idx, resource_data in enumerate(self.data["resources"]):
                if not isinstance(resource_data, dict):
                    errors.append({"loc": ["resources", idx], "msg": "Resource must be a mapping"})
                    continue
                try:
                    ClusterBlueGreenConfig(**resource_data)
                except ValidationError as e:
                    for error in e.errors():
                        errors.append(
                            {
                                "loc": ["resources", idx] + list(error["loc"]),
                                "msg": error["msg"],
                            }
                        )

        # Cross-resource checks only once every resource parses
        if not errors:
            try:
                BlueGreenProjectConfig(**self.data)
            except ValidationError as e:
                for error in e.errors():
                    errors.append({"loc": list(error["loc"]), "msg": error["msg"]})

        return errors

    def get_resources(self, resource_filter: Optional[str] = None) -> List[ClusterBlueGreenConfig]:
        """Get list of resource configurations.

        Args:
            resource_filter: Optional resource name to filter by

        Returns:
            List of resource configurations
        """
        if resource_filter:
            return [resource for resource in self.resources if resource.name == resource_filter]
        return self.resources

    def get_resource(self, name: str) -> Optional[ClusterBlueGreenConfig]:
        for resource in self.resources:
            if resource.name == name:
                return resource
        return None

    def to_dict(self) -> Dict:
        """Convert configuration to dictionary."""
        return {
            "provider": self.provider.model_dump(),
            "resources": [resource.model_dump() for resource in self.resources],
        }
