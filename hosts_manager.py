#!/usr/bin/env python3
import argparse
import json
import logging
import os
import shutil
import sys
import tempfile
from typing import Callable, Dict, List, Optional

from fetch_sources import DEFAULT_SOURCES, HostSource, fetch_all
from hosts_merge import MergeResult, Source, merge_hosts_file, remove_managed_block

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger()


class Config:
    """Default configuration values."""
    # TODO: pick the hosts path per OS (Windows keeps it under System32\drivers\etc).
    DEFAULT_HOSTS_FILE = "/etc/hosts"
    BACKUP_SUFFIX = ".bak"
    REQUEST_TIMEOUT = 60  # seconds
    DEFAULT_CONFIG_FILE = "hosts_manager.json"
    DEFAULT_SOURCES = [source._asdict() for source in DEFAULT_SOURCES]


def load_config(config_file: str = Config.DEFAULT_CONFIG_FILE) -> Dict:
    """Load a JSON config file over the defaults; fall back to the defaults on any failure."""
    default_config = {
        "hosts_file": Config.DEFAULT_HOSTS_FILE,
        "backup_suffix": Config.BACKUP_SUFFIX,
        "request_timeout": Config.REQUEST_TIMEOUT,
        "sources": list(Config.DEFAULT_SOURCES),
    }
    if not os.path.exists(config_file):
        logger.info("No config file found, using default config.")
        return default_config

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            user_config = json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load config file {config_file}, using default config: {e}")
        return default_config
    if not isinstance(user_config, dict):
        logger.warning(f"Config file {config_file} is not a JSON object, using default config.")
        return default_config

    merged_config = default_config.copy()
    merged_config.update(user_config)
    logger.info(f"Loaded config file: {config_file}")
    return merged_config


def sources_from_config(config: Dict) -> Optional[List[HostSource]]:
    """Build the source catalog from the "sources" config entry.

    Returns None if an entry lacks a name or url, or if two entries share a
    name, since downloads are keyed by source name.
    """
    catalog = []
    seen = set()
    for i, entry in enumerate(config["sources"]):
        if not isinstance(entry, dict) or "name" not in entry or "url" not in entry:
            logger.error(f"Invalid source entry #{i + 1} in config: {entry!r}. Each source needs a \"name\" and a \"url\".")
            return None
        if entry["name"] in seen:
            logger.error(f"Duplicate source name in config: '{entry['name']}'.")
            return None
        seen.add(entry["name"])
        catalog.append(HostSource(entry["name"], entry["url"]))
    return catalog


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="hosts-manager",
        description="Merge hosts blocklists into a managed section of the local hosts file.")
    parser.add_argument("--config", default=Config.DEFAULT_CONFIG_FILE, help="Path to JSON configuration file.")
    parser.add_argument("--hosts-file", help=f"Hosts file to manage (overrides config value). Default: {Config.DEFAULT_HOSTS_FILE}")
    parser.add_argument("--source", action="append", default=[], metavar="NAME",
                        help="Include the named source without prompting. May be repeated.")
    parser.add_argument("--all", action="store_true", help="Include every configured source without prompting.")
    parser.add_argument("--parallel", action="store_true", help="Download the selected sources concurrently.")
    parser.add_argument("--dry-run", action="store_true", help="Print the new hosts file instead of writing it.")
    parser.add_argument("--remove", action="store_true", help="Remove the managed section from the hosts file.")
    parser.add_argument("--list-sources", action="store_true", help="List the configured sources and exit.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


# --- Source selection ---

def prompt_for_sources(catalog: List[HostSource], input_func: Callable[[str], str] = input) -> List[HostSource]:
    """Ask about each source in turn until the answer is y or n."""
    selected = []
    for source in catalog:
        while True:
            answer = input_func(f"Would you like to include the hosts file titled '{source.name}'? [Y/n]: ")
            answer = answer.strip().lower()
            if answer == "y":
                selected.append(source)
                break
            if answer == "n":
                break
            print("Invalid input.")
    return selected


def select_sources(catalog: List[HostSource], names: List[str], select_all: bool = False) -> Optional[List[HostSource]]:
    """Pick sources by name. Returns None if a name is not in the catalog."""
    if select_all:
        return list(catalog)
    by_name = {source.name: source for source in catalog}
    unknown = [name for name in names if name not in by_name]
    if unknown:
        logger.error(f"Unknown host source(s): {', '.join(unknown)}. Known sources: {', '.join(by_name)}")
        return None
    return [by_name[name] for name in dict.fromkeys(names)]


# --- Hosts file access ---

def has_write_permission(path: str) -> bool:
    """The hosts file is replaced by rename, so its directory must be writable too."""
    directory = os.path.dirname(os.path.abspath(path))
    return os.access(path, os.W_OK) and os.access(directory, os.W_OK)


def read_hosts_file(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except (IOError, UnicodeDecodeError) as e:
        logger.error(f"Failed to read hosts file {path}: {e}")
        return None


def backup_hosts_file(path: str, suffix: str = Config.BACKUP_SUFFIX) -> Optional[str]:
    """Copy the hosts file next to itself. Returns the backup path, or None on failure."""
    backup_path = path + suffix
    try:
        shutil.copy2(path, backup_path)
    except (IOError, shutil.Error) as e:
        logger.error(f"Failed to back up the hosts file to {backup_path}: {e}")
        return None
    logger.info(f"Backed up old hosts file to {backup_path}")
    return backup_path


def write_hosts_file(path: str, text: str) -> bool:
    """Write the new hosts file through a temporary file and an atomic rename."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=".hosts-", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except IOError as e:
        logger.error(f"Failed while writing the new hosts file: {e}")
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        return False
    return True


def persist(path: str, text: str, backup_suffix: str) -> bool:
    """Back up the current hosts file, then replace it. Nothing is written if the backup fails."""
    if backup_hosts_file(path, backup_suffix) is None:
        return False
    logger.info("Writing new hosts file.")
    return write_hosts_file(path, text)


def apply_result(result: MergeResult, path: str, config: Dict, dry_run: bool) -> bool:
    if result.error:
        logger.error(result.error)
        return False
    if dry_run:
        sys.stdout.write(result.text)
        return True
    return persist(path, result.text, config["backup_suffix"])


# --- Entry point ---

def main(argv: Optional[List[str]] = None, input_func: Callable[[str], str] = input) -> int:
    """Run the hosts manager and return the process exit status."""
    args = parse_args(argv)
    if args.verbose:
        logger.setLevel(logging.DEBUG)

    config = load_config(args.config)
    if args.hosts_file:
        config["hosts_file"] = args.hosts_file
    catalog = sources_from_config(config)
    if catalog is None:
        return 1

    if args.list_sources:
        for source in catalog:
            print(f"{source.name}: {source.url}")
        return 0

    hosts_file = config["hosts_file"]
    logger.info("Ensuring the program has the correct permissions.")
    if not os.path.isfile(hosts_file):
        logger.error(f"Could not find existing hosts file {hosts_file}.")
        return 1
    if not args.dry_run and not has_write_permission(hosts_file):
        logger.error(f"This application needs root permissions to modify {hosts_file}.")
        return 1

    if args.remove:
        existing = read_hosts_file(hosts_file)
        if existing is None:
            return 1
        if not apply_result(remove_managed_block(existing), hosts_file, config, args.dry_run):
            return 1
        logger.info("Removed the managed hosts block.")
        return 0

    if args.all or args.source:
        selected = select_sources(catalog, args.source, args.all)
        if selected is None:
            return 1
    else:
        logger.info("Select hosts sources to use.")
        selected = prompt_for_sources(catalog, input_func)
    if not selected:
        logger.error("No host source selected.")
        return 1

    logger.info("Downloading hosts files.")
    raw_host_files = fetch_all(selected, config["request_timeout"], parallel=args.parallel)
    failed = [name for name, text in raw_host_files.items() if text is None]
    if failed:
        logger.error(f"Failed to download: {', '.join(failed)}. The hosts file was not changed.")
        return 1

    logger.info("Reading local hosts file.")
    existing = read_hosts_file(hosts_file)
    if existing is None:
        return 1

    sources = [Source(name, text) for name, text in raw_host_files.items()]
    result = merge_hosts_file(existing, sources)
    if not apply_result(result, hosts_file, config, args.dry_run):
        return 1

    logger.info(f"Added {result.host_count} hosts entries.")
    return 0


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        sys.exit(130)
    except Exception as e:
        logger.exception(f"Unhandled error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
