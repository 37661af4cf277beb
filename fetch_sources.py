import asyncio
import logging
from typing import Dict, List, NamedTuple, Optional

import aiohttp
import requests

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 60  # seconds


class HostSource(NamedTuple):
    name: str
    url: str


DEFAULT_SOURCES = [
    HostSource('Unified (adware + malware)', 'https://raw.githubusercontent.com/StevenBlack/hosts/master/hosts'),
    HostSource('Fake News', 'https://raw.githubusercontent.com/StevenBlack/hosts/master/alternates/fakenews-only/hosts'),
    HostSource('Gambling', 'https://raw.githubusercontent.com/StevenBlack/hosts/master/alternates/gambling-only/hosts'),
    HostSource('Pornography', 'https://raw.githubusercontent.com/StevenBlack/hosts/master/alternates/porn-only/hosts'),
    HostSource('Social Media', 'https://raw.githubusercontent.com/StevenBlack/hosts/master/alternates/social-only/hosts'),
]


def fetch_source(source: HostSource, timeout: float = HTTP_TIMEOUT) -> Optional[str]:
    """Download one hosts list. Returns None when the download fails."""
    logger.info(f"Downloading source for '{source.name}' from {source.url}")
    try:
        response = requests.get(source.url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.error(f"Error fetching '{source.name}': {e}")
        return None
    logger.info(f"Fetched {len(response.text)} bytes for '{source.name}'")
    return response.text


async def _fetch_source_async(source: HostSource, session: aiohttp.ClientSession, timeout: float) -> Optional[str]:
    logger.info(f"Downloading source for '{source.name}' from {source.url}")
    try:
        async with session.get(source.url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if response.status != 200:
                logger.error(f"Error fetching '{source.name}': HTTP {response.status}")
                return None
            text = await response.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"Error fetching '{source.name}': {e}")
        return None
    logger.info(f"Fetched {len(text)} bytes for '{source.name}'")
    return text


async def fetch_sources_async(sources: List[HostSource], timeout: float = HTTP_TIMEOUT) -> Dict[str, Optional[str]]:
    """Download all hosts lists concurrently over a single session."""
    async with aiohttp.ClientSession() as session:
        tasks = [_fetch_source_async(source, session, timeout) for source in sources]
        results = await asyncio.gather(*tasks)
    return {source.name: text for source, text in zip(sources, results)}


def fetch_all(sources: List[HostSource], timeout: float = HTTP_TIMEOUT, parallel: bool = False) -> Dict[str, Optional[str]]:
    """Download every selected source, keyed by source name in selection order."""
    if parallel:
        return asyncio.run(fetch_sources_async(sources, timeout))
    return {source.name: fetch_source(source, timeout) for source in sources}
