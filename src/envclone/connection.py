"""
Credential to connection resolution.

Turns Supabase credentials into concrete PostgreSQL connection parameters
and offers a hostname to IP fallback for transient DNS failures.
"""

import logging
import re
import socket
from typing import Optional

from envclone.exceptions import ConfigurationError
from envclone.models import Credentials, PostgresConnection

logger = logging.getLogger(__name__)

PROJECT_URL_PATTERN = re.compile(r'^https?://([^.]+)\.supabase\.co')
POOLER_HOST_MARKER = 'pooler.supabase.com'
DEFAULT_PORT = 5432
DEFAULT_DATABASE = 'postgres'
DEFAULT_USER = 'postgres'


def extract_project_id(url: str) -> str:
    match = PROJECT_URL_PATTERN.match(url or '')
    if not match:
        raise ConfigurationError(f"Invalid Supabase URL format: {url!r}")
    return match.group(1)


def resolve(credentials: Credentials) -> PostgresConnection:
    """
    Derive a PostgresConnection from credentials.

    Raises:
        ConfigurationError: URL does not name a Supabase project, or no
            database password was supplied.
    """
    project_id = extract_project_id(credentials.url)

    if not credentials.password:
        raise ConfigurationError(
            f"Database password is required for project {project_id}; "
            "it cannot be derived from the API keys"
        )

    host = credentials.host or f"db.{project_id}.supabase.co"
    user = f"{DEFAULT_USER}.{project_id}" if POOLER_HOST_MARKER in host else DEFAULT_USER

    return PostgresConnection(
        host=host,
        port=int(credentials.port or DEFAULT_PORT),
        database=DEFAULT_DATABASE,
        user=user,
        password=credentials.password,
    )


def _first_address(hostname: str, family: int) -> Optional[str]:
    try:
        infos = socket.getaddrinfo(hostname, None, family)
    except socket.gaierror:
        return None
    for info in infos:
        return info[4][0]
    return None


def resolve_host_to_ip(hostname: str) -> Optional[str]:
    """Resolve ``hostname`` to an IPv4 address, falling back to IPv6."""
    ip = _first_address(hostname, socket.AF_INET)
    if ip:
        logger.debug(f"Resolved {hostname} to IPv4 {ip}")
        return ip
    ip = _first_address(hostname, socket.AF_INET6)
    if ip:
        logger.debug(f"Resolved {hostname} to IPv6 {ip}")
        return ip
    logger.warning(f"Could not resolve {hostname} to any address")
    return None
