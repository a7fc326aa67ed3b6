"""
YAML-based configuration module for concrete_sync

This module is responsible for loading and merging configuration from
several layers, in increasing order of precedence:

1. Built-in defaults (DEFAULT_CONFIG)
2. A YAML file (concrete-sync.yaml)
3. A key-value file in the deployment-config format (.deployment-config)
4. Environment variables

The result is a plain nested dictionary; settings.Settings turns it into
the immutable value that the rest of the package works with.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import dotenv_values

YAML_CONFIG_NAME = "concrete-sync.yaml"
KEY_VALUE_CONFIG_NAME = ".deployment-config"

DEFAULT_CONFIG: Dict[str, Any] = {
    "environment": "",
    "work_dir": ".concrete-sync",
    "site": {
        "path": "",
        "uploaded_files": "public/application/files",
        "config_paths": {
            "application/config": "public/application/config",
            "application/themes": "public/application/themes",
            "application/blocks": "public/application/blocks",
            "application/packages": "public/application/packages",
            "packages": "public/packages",
        },
    },
    "git": {
        "repository": "",
        "branch": "main",
        "user_name": "concrete-sync",
        "user_email": "concrete-sync@localhost",
    },
    "sync": {
        "uploaded_files": "auto",
        "database": "auto",
    },
    "database": {
        "host": "",
        "port": "",
        "name": "",
        "user": "",
        "password": "",
        "exclude_tables": [],
        "dump_prefix": "",
        "dump_options": ["--set-gtid-purged=OFF"],
    },
    "composer": {
        "dir": "",
        "install": "auto",
    },
    "tags": {
        "type": "snapshot",
        "page_size": 10,
        "tag_unchanged": True,
    },
    "mirror": {
        "tool": "auto",
    },
    "exclusions": {
        "configuration": {
            "node_modules": "node_modules/",
            "vendor": "vendor/",
            "git": ".git/",
            "doctrine_proxies": "doctrine/proxies/",
            "generated_overrides": "generated_overrides/",
            "bootstrap_cache": "bootstrap/cache/",
            "cache": "cache/",
            "logs": "*.log",
            "ds_store": ".DS_Store",
        },
        "uploaded_files": {
            "cache": "cache/",
            "database": "database/",
            "sql": "*.sql",
            "sql_gz": "*.sql.gz",
            "git": ".git/",
            "gitkeep": ".gitkeep",
        },
    },
}

# Mapping of key-value / environment variable names to the nested structure
ENV_MAPPING = {
    "ENVIRONMENT": ("environment",),
    "SITE_PATH": ("site", "path"),
    "FILES_GIT_REPO": ("git", "repository"),
    "FILES_GIT_BRANCH": ("git", "branch"),
    "SYNC_UPLOADED_FILES": ("sync", "uploaded_files"),
    "SYNC_DATABASE": ("sync", "database"),
    "COMPOSER_DIR": ("composer", "dir"),
    "DB_HOSTNAME": ("database", "host"),
    "DB_PORT": ("database", "port"),
    "DB_DATABASE": ("database", "name"),
    "DB_USERNAME": ("database", "user"),
    "DB_PASSWORD": ("database", "password"),
    "DB_EXCLUDE_TABLES": ("database", "exclude_tables"),
    "SYNC_WORK_DIR": ("work_dir",),
    "TAG_PAGE_SIZE": ("tags", "page_size"),
    "MIRROR_TOOL": ("mirror", "tool"),
}

# Legacy names, only applied when the primary name is absent
LEGACY_ENV_MAPPING = {
    "PROJECT_DIR": "SITE_PATH",
}


class YAMLConfig:
    """
    Class for loading and merging the layered configuration
    """

    def __init__(self, config_file: Optional[Path] = None, base_dir: Optional[Path] = None,
                 environ: Optional[Mapping[str, str]] = None, verbose: bool = False):
        """
        Initializes configuration from the configuration files

        Args:
            config_file: Explicit configuration file (YAML or key-value, by suffix)
            base_dir: Directory searched for the default configuration files
            environ: Environment mapping (defaults to os.environ)
            verbose: Enable detailed mode
        """
        self.verbose = verbose
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.environ = os.environ if environ is None else environ
        self.config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.loaded_files: List[Path] = []

        self.load_config(Path(config_file) if config_file else None)

    def load_config(self, config_file: Optional[Path] = None):
        """
        Loads every configuration layer in order of precedence
        """
        if config_file is not None:
            if not config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_file}")
            if config_file.suffix in (".yaml", ".yml"):
                self._load_yaml_file(config_file)
            else:
                self._load_key_value_file(config_file)
        else:
            yaml_file = self.base_dir / YAML_CONFIG_NAME
            if yaml_file.exists():
                self._load_yaml_file(yaml_file)

            key_value_file = self.base_dir / KEY_VALUE_CONFIG_NAME
            if key_value_file.exists():
                self._load_key_value_file(key_value_file)

        if not self.loaded_files:
            print("⚠️ No configuration file found.")
            print(f"   Searched for {YAML_CONFIG_NAME} and {KEY_VALUE_CONFIG_NAME} in {self.base_dir}")
            print("   Defaults and environment variables will be used.")

        # Environment variables override file values
        self._apply_variables(self.environ, source="environment")

    def _load_yaml_file(self, file_path: Path):
        """
        Loads a YAML file and merges it into the configuration

        Args:
            file_path: Path to the YAML file
        """
        if self.verbose:
            print(f"📝 Loading configuration from {file_path}")

        with open(file_path, "r") as file:
            yaml_data = yaml.safe_load(file)

        if yaml_data is None:
            yaml_data = {}
        if not isinstance(yaml_data, dict):
            raise ValueError(f"Configuration file {file_path} must contain a mapping at the top level")

        self._update_dict_recursive(self.config, yaml_data)
        self.loaded_files.append(file_path)

    def _load_key_value_file(self, file_path: Path):
        """
        Loads a KEY=VALUE file (shell deployment-config format)

        Args:
            file_path: Path to the key-value file
        """
        if self.verbose:
            print(f"📝 Loading configuration from {file_path}")

        values = {key: value for key, value in dotenv_values(file_path).items() if value is not None}
        self._apply_variables(values, source=str(file_path))
        self.loaded_files.append(file_path)

    def _apply_variables(self, variables: Mapping[str, str], source: str):
        """
        Applies known variables onto the nested configuration

        Args:
            variables: Variable mapping (file contents or environment)
            source: Name of the source, for verbose output
        """
        resolved = dict(variables)
        for legacy, primary in LEGACY_ENV_MAPPING.items():
            if legacy in resolved and not resolved.get(primary):
                resolved[primary] = resolved[legacy]

        for name, path in ENV_MAPPING.items():
            value = resolved.get(name)
            if value is None or value == "":
                continue

            if name == "DB_EXCLUDE_TABLES":
                value = value.split()
            elif name == "TAG_PAGE_SIZE":
                value = int(value)

            if self.verbose:
                shown = "********" if "PASSWORD" in name else value
                print(f"   - {name} -> {'.'.join(path)} = {shown} ({source})")

            self._set_nested_value(self.config, path, value)

    def _update_dict_recursive(self, target: Dict, source: Dict):
        """
        Merges source into target, descending into nested sections
        """
        for key, value in source.items():
            section = target.get(key)
            if isinstance(section, dict) and isinstance(value, dict):
                self._update_dict_recursive(section, value)
            else:
                target[key] = copy.deepcopy(value)

    def _set_nested_value(self, target: Dict, path: tuple, value: Any):
        *parents, leaf = path
        for key in parents:
            if not isinstance(target.get(key), dict):
                target[key] = {}
            target = target[key]
        target[leaf] = value

    def get(self, *path: str, default: Any = None) -> Any:
        """
        Looks up a value by its key path, e.g. get("git", "branch")

        Returns:
            The value, or default when any section along the path is missing
        """
        node = self.config
        for key in path:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def get_exclusions(self, category: str) -> Dict[str, str]:
        """
        Gets the exclusion dictionary for one payload category

        Args:
            category: "configuration" or "uploaded_files"

        Returns:
            Dict[str, str]: Exclusion dictionary (key -> pattern)
        """
        raw_exclusions = self.get("exclusions", category, default={}) or {}

        if not isinstance(raw_exclusions, dict):
            print(f"⚠️ Warning: Exclusions for '{category}' are not a valid dictionary.")
            return {}

        # Allow disabling a default exclusion by setting it to False
        return {key: value for key, value in raw_exclusions.items() if value is not False and value}

    def display(self):
        """
        Displays the current configuration in a structured format
        """
        print("\n🔧 Loaded configuration:")
        if self.loaded_files:
            for file_path in self.loaded_files:
                print(f"   (from {file_path})")
        self._display_dict(self.config)
        print()

    def _display_dict(self, data: Dict, indent: int = 1):
        """
        Displays a dictionary, hiding passwords

        Args:
            data: Dictionary to display
            indent: Indentation level
        """
        for key, value in data.items():
            if "password" in key.lower() or "pass" == key.lower():
                display_value = "***********" if value else ""
            elif isinstance(value, dict):
                print(f"{'   ' * indent}- {key}:")
                self._display_dict(value, indent + 1)
                continue
            else:
                display_value = value

            print(f"{'   ' * indent}- {key}: {display_value}")


def load_config(config_file: Optional[Path] = None, base_dir: Optional[Path] = None,
                environ: Optional[Mapping[str, str]] = None, verbose: bool = False) -> YAMLConfig:
    """
    Loads the layered configuration

    Args:
        config_file: Explicit configuration file
        base_dir: Directory searched for the default configuration files
        environ: Environment mapping (defaults to os.environ)
        verbose: If True, shows additional information

    Returns:
        YAMLConfig: Configuration instance
    """
    return YAMLConfig(config_file=config_file, base_dir=base_dir, environ=environ, verbose=verbose)
