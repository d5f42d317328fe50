#!/usr/bin/env python3
"""Plugin management CLI tool."""

import argparse
import json
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from moxie.constants import BUNDLED_PLUGINS_DIR, PLUGIN_CONFIG_FILE
from moxie.plugins.config import PluginConfigService
from moxie.plugins.discovery import PluginDiscovery
from moxie.plugins.errors import PluginError
from moxie.runtime import plugin_search_paths


def get_discovery() -> PluginDiscovery:
    return PluginDiscovery(plugin_search_paths())


def get_config() -> PluginConfigService:
    return PluginConfigService(PLUGIN_CONFIG_FILE)


def find_plugin(plugin_id: str):
    plugin = next((p for p in get_discovery().discover_all() if p.id == plugin_id), None)
    if not plugin:
        print(f"Plugin '{plugin_id}' not found.")
        sys.exit(1)
    return plugin


def cmd_list(args):
    """List all discovered plugins."""
    plugins = get_discovery().discover_all()
    if not plugins:
        print("No plugins found.")
        return

    enabled_ids = get_config().get_enabled_list()

    print(f"{'ID':<24} {'Name':<24} {'Category':<14} {'Source':<10} {'Enabled':<8} {'Version'}")
    print("-" * 100)

    for p in plugins:
        enabled = "Yes" if p.id in enabled_ids else "No"
        print(
            f"{p.id:<24} {p.manifest.name:<24} {p.manifest.category.value:<14} "
            f"{p.source:<10} {enabled:<8} {p.manifest.version}"
        )


def cmd_info(args):
    """Show detailed plugin information."""
    plugin = find_plugin(args.plugin_id)
    config = get_config()
    manifest = plugin.manifest

    print(f"Plugin: {manifest.id}")
    print(f"  Name:        {manifest.name}")
    print(f"  Version:     {manifest.version}")
    print(f"  Category:    {manifest.category.value}")
    print(f"  Description: {manifest.description}")
    print(f"  Author:      {manifest.author or '-'}")
    print(f"  Source:      {plugin.source}")
    print(f"  Path:        {plugin.path}")
    print(f"  Entry Point: {plugin.entry_point}")
    print(f"  Enabled:     {config.is_enabled(manifest.id)}")
    if manifest.dependencies:
        deps = ", ".join(f"{k} {v}" for k, v in manifest.dependencies.items())
        print(f"  Depends on:  {deps}")

    plugin_config = config.get_plugin_config(manifest.id)
    if plugin_config:
        masked = manifest.masked_config(plugin_config)
        print(f"  Config:      {json.dumps(masked, indent=4, ensure_ascii=False)}")
    for field in manifest.config_fields:
        required = " (required)" if field.required else ""
        print(f"  - {field.key}: {field.type.value}{required} {field.description}")


def cmd_enable(args):
    """Enable a plugin."""
    find_plugin(args.plugin_id)
    get_config().enable(args.plugin_id)
    print(f"Plugin '{args.plugin_id}' enabled. Restart the service to take effect.")


def cmd_disable(args):
    """Disable a plugin."""
    get_config().disable(args.plugin_id)
    print(f"Plugin '{args.plugin_id}' disabled. Restart the service to take effect.")


def cmd_config(args):
    """Set one config value: the value is parsed as JSON, falling back to a string."""
    plugin = find_plugin(args.plugin_id)
    config = get_config()
    try:
        value = json.loads(args.value)
    except json.JSONDecodeError:
        value = args.value

    plugin_config = config.get_plugin_config(plugin.id)
    plugin_config[args.key] = value
    try:
        config.update_plugin_config(plugin.id, plugin_config, plugin.manifest)
    except PluginError as e:
        print(f"Invalid config: {e}")
        sys.exit(1)
    print(f"Set {plugin.id}.{args.key}. Restart the service to take effect.")


def cmd_doctor(args):
    """Run health checks on the plugin system."""
    issues = []

    if not BUNDLED_PLUGINS_DIR.exists():
        issues.append(f"Bundled plugins directory missing: {BUNDLED_PLUGINS_DIR}")

    if not PLUGIN_CONFIG_FILE.exists():
        issues.append(f"Plugin config file missing: {PLUGIN_CONFIG_FILE}")
    else:
        try:
            with open(PLUGIN_CONFIG_FILE) as f:
                json.load(f)
        except json.JSONDecodeError as e:
            issues.append(f"Plugin config file has invalid JSON: {e}")

    discovery = get_discovery()
    config = get_config()
    plugins = discovery.discover_all()
    enabled_ids = config.get_enabled_list()

    discovered = {p.id: p for p in plugins}
    for eid in enabled_ids:
        if eid not in discovered:
            issues.append(f"Enabled plugin '{eid}' not found in any search path")

    for p in plugins:
        entry_module = p.entry_point.split(":")[0]
        entry_file = p.path / f"{entry_module}.py"
        if not entry_file.exists():
            issues.append(f"Plugin '{p.id}': entry point file missing: {entry_file}")
        if p.id in enabled_ids:
            try:
                p.manifest.apply_config(config.get_plugin_config(p.id))
            except PluginError as e:
                issues.append(f"Plugin '{p.id}': {e}")
            for dep_id in p.manifest.dependencies:
                if dep_id not in enabled_ids:
                    issues.append(f"Plugin '{p.id}': dependency '{dep_id}' is not enabled")

    if issues:
        print(f"Found {len(issues)} issue(s):")
        for i, issue in enumerate(issues, 1):
            print(f"  {i}. {issue}")
        sys.exit(1)
    else:
        print(f"All checks passed. {len(plugins)} plugin(s) found, {len(enabled_ids)} enabled.")


def main():
    parser = argparse.ArgumentParser(description="Moxie Plugin Manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    subparsers.add_parser("list", help="List all plugins")

    # info
    info_parser = subparsers.add_parser("info", help="Show plugin details")
    info_parser.add_argument("plugin_id", help="Plugin ID")

    # enable
    enable_parser = subparsers.add_parser("enable", help="Enable a plugin")
    enable_parser.add_argument("plugin_id", help="Plugin ID")

    # disable
    disable_parser = subparsers.add_parser("disable", help="Disable a plugin")
    disable_parser.add_argument("plugin_id", help="Plugin ID")

    # config
    config_parser = subparsers.add_parser("config", help="Set a plugin config value")
    config_parser.add_argument("plugin_id", help="Plugin ID")
    config_parser.add_argument("key", help="Config key")
    config_parser.add_argument("value", help="Value (JSON or plain string)")

    # doctor
    subparsers.add_parser("doctor", help="Run health checks")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "enable": cmd_enable,
        "disable": cmd_disable,
        "config": cmd_config,
        "doctor": cmd_doctor,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
