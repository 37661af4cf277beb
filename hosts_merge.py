import logging
from typing import Iterable, List, NamedTuple, Optional, Set

logger = logging.getLogger(__name__)

# --- Managed section format ---
START_MARKER = "# DO NOT MODIFY MANUALLY. Managed hosts start.\n"
END_MARKER = "# DO NOT MODIFY MANUALLY. Managed hosts end.\n"

IPV4_ANY = "0.0.0.0"
IPV6_ANY = "::0"

# StevenBlack-style lists prepend these to every file, ignore them.
EXCLUDED_HOSTS = frozenset([
    'localhost',
    'localhost.localdomain',
    'local',
    'broadcasthost',
    'ip6-localhost',
    'ip6-loopback',
    'ip6-localnet',
    'ip6-mcastprefix',
    'ip6-allnodes',
    'ip6-allrouters',
    'ip6-allhosts',
    IPV4_ANY,
    '::',
    IPV6_ANY,
])


class Source(NamedTuple):
    name: str
    text: str


class ParsedEntry(NamedTuple):
    host: Optional[str]
    error: Optional[str] = None


class AggregateResult(NamedTuple):
    hosts: Set[str]
    errors: List[str]


class FileContent(NamedTuple):
    preamble: str
    had_block: bool
    error: Optional[str] = None


class MergeResult(NamedTuple):
    text: Optional[str]
    host_count: int = 0
    parse_errors: Optional[List[str]] = None
    error: Optional[str] = None


# --- Entry parsing ---

def parse_entry(line: str) -> Optional[ParsedEntry]:
    """Parse one hosts-list line. Returns None for blank and comment-only lines.

    Everything after the first whitespace run is the host field, so
    "0.0.0.0 a.com b.com" yields the single host "a.com b.com".
    """
    entry = line.split('#', 1)[0].strip()
    if not entry:
        return None

    fields = entry.split(None, 1)
    host = fields[1].strip() if len(fields) == 2 else ''
    if not host:
        return ParsedEntry(None, f"Error parsing entry '{line}'.")
    return ParsedEntry(host)


# --- Aggregation ---

def aggregate_hosts(sources: Iterable[Source], excluded: Iterable[str] = EXCLUDED_HOSTS) -> AggregateResult:
    """Merge the hosts of every source into one set, minus the excluded names."""
    hosts = set()
    errors = []
    for source in sources:
        logger.info(f"Processing {source.name}.")
        parsed_count = 0
        for line in source.text.split('\n'):
            entry = parse_entry(line)
            if entry is None:
                continue
            if entry.error:
                logger.warning(f"{source.name}: {entry.error}")
                errors.append(entry.error)
                continue
            hosts.add(entry.host)
            parsed_count += 1
        logger.debug(f"Parsed {parsed_count} entries from {source.name}")

    hosts.difference_update(excluded)
    logger.info(f"Collected {len(hosts)} unique hosts ({len(errors)} unparseable lines)")
    return AggregateResult(hosts, errors)


# --- Managed section handling ---

def strip_managed_block(text: str, start_marker: str = START_MARKER, end_marker: str = END_MARKER) -> FileContent:
    """Remove a previously written managed section from the file text.

    A blank line directly before the start marker is collapsed so that
    repeated runs do not grow the file.
    """
    if start_marker not in text:
        return FileContent(text, False)

    text = text.replace('\n\n' + start_marker, '\n' + start_marker, 1)
    start_index = text.find(start_marker)
    end_index = text.rfind(end_marker)
    if end_index < start_index + len(start_marker):
        return FileContent(text, True, "Malformatted host file. Could not find end of the managed block.")

    preamble = text[:start_index] + text[end_index + len(end_marker):]
    return FileContent(preamble, True)


def read_managed_hosts(text: str, start_marker: str = START_MARKER, end_marker: str = END_MARKER) -> Set[str]:
    """Return the hosts listed inside the managed section, or an empty set."""
    start_index = text.find(start_marker)
    if start_index == -1:
        return set()
    body_start = start_index + len(start_marker)
    end_index = text.rfind(end_marker)
    if end_index < body_start:
        return set()

    hosts = set()
    for line in text[body_start:end_index].split('\n'):
        entry = parse_entry(line)
        if entry and entry.host:
            hosts.add(entry.host)
    return hosts


def render_hosts_file(preamble: str, hosts: Iterable[str]) -> str:
    """Append a freshly built managed section to the preamble."""
    lines = []
    if preamble:
        lines.append(preamble.rstrip('\n') + '\n')
    lines.append(START_MARKER)
    for host in sorted(hosts):
        lines.append(f"{IPV4_ANY} {host}\n")
        lines.append(f"{IPV6_ANY} {host}\n")
    lines.append(END_MARKER)
    return ''.join(lines)


# --- Pipeline ---

def merge_hosts_file(existing: str, sources: Iterable[Source], excluded: Iterable[str] = EXCLUDED_HOSTS) -> MergeResult:
    """Build the new hosts file text from the existing text and the sources."""
    content = strip_managed_block(existing)
    if content.error:
        return MergeResult(None, error=content.error)
    if content.had_block:
        logger.info("Hosts file is previously managed, replacing the managed block.")

    aggregate = aggregate_hosts(sources, excluded)
    text = render_hosts_file(content.preamble, aggregate.hosts)
    return MergeResult(text, len(aggregate.hosts), aggregate.errors)


def remove_managed_block(existing: str) -> MergeResult:
    """Build the hosts file text with the managed section taken out."""
    content = strip_managed_block(existing)
    if content.error:
        return MergeResult(None, error=content.error)
    if not content.had_block:
        logger.info("Hosts file has no managed block, nothing to remove.")
    return MergeResult(content.preamble)
