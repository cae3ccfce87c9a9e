#!/usr/bin/env python3
"""Simple script to verify config.example.yaml structure without loading the app."""

import sys
from pathlib import Path

import yaml


def verify_config_structure(config_file: Path = Path("config.example.yaml")) -> bool:
    """Verify config.example.yaml has the expected structure."""
    if not config_file.exists():
        print(f"✗ {config_file} not found")
        return False

    try:
        with open(config_file, "r") as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        print(f"✗ Failed to parse {config_file}: {e}")
        return False

    if not isinstance(config, dict):
        print(f"✗ {config_file} must contain a mapping")
        return False

    errors = []

    # Required sections and the keys they must carry
    required = {
        "pack": ["source"],
        "digest": ["site_url"],
    }
    for section, keys in required.items():
        value = config.get(section)
        if not isinstance(value, dict):
            errors.append(f"Missing required section: {section}")
            continue
        for key in keys:
            if not value.get(key):
                errors.append(f"'{section}' missing key: {key}")

    optional_checks = {
        "scan_interval": str,
        "directory": dict,
        "smtp": dict,
        "delivery": dict,
        "logging": dict,
        "advanced": dict,
    }
    for key, expected_type in optional_checks.items():
        if key in config and not isinstance(config[key], expected_type):
            errors.append(f"'{key}' must be of type {expected_type.__name__}")

    if errors:
        print(f"✗ {config_file} validation failed:")
        for error in errors:
            print(f"  - {error}")
        return False

    print(f"✓ {config_file} structure is valid")
    print(f"  - Pack source: {config['pack']['source']}")
    print(f"  - Site URL: {config['digest']['site_url']}")
    print(f"  - Scan interval: {config.get('scan_interval', 'not set')}")
    return True


if __name__ == "__main__":
    success = verify_config_structure(Path(sys.argv[1]) if len(sys.argv) > 1 else Path("config.example.yaml"))
    sys.exit(0 if success else 1)
