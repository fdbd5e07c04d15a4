"""
Unit tests for credential resolution and DNS fallback.
"""
import socket
from unittest import mock

import pytest

from envclone.connection import extract_project_id, resolve, resolve_host_to_ip
from envclone.exceptions import ConfigurationError
from envclone.models import Credentials


class TestResolve:
    """Test resolve() turning credentials into connection parameters."""

    def test_direct_host_derived_from_url(self):
        """Test default host, port, database and user for a project URL."""
        conn = resolve(Credentials(url='https://abcd1234.supabase.co', password='s3cret'))

        assert conn.host == 'db.abcd1234.supabase.co'
        assert conn.port == 5432
        assert conn.database == 'postgres'
        assert conn.user == 'postgres'
        assert conn.password == 's3cret'
        assert conn.is_ip_resolved is False

    def test_pooler_host_uses_project_scoped_user(self):
        """Test that a pooler host switches the user to postgres.<project>."""
        conn = resolve(Credentials(
            url='https://abcd1234.supabase.co',
            password='s3cret',
            host='aws-0-eu-central-1.pooler.supabase.com',
            port=6543,
        ))

        assert conn.host == 'aws-0-eu-central-1.pooler.supabase.com'
        assert conn.user == 'postgres.abcd1234'
        assert conn.port == 6543

    def test_invalid_url_rejected(self):
        """Test that a non-Supabase URL raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Invalid Supabase URL"):
            resolve(Credentials(url='https://example.com', password='s3cret'))

    def test_missing_password_rejected(self):
        """Test that a missing password raises instead of guessing from keys."""
        with pytest.raises(ConfigurationError, match="password is required"):
            resolve(Credentials(url='https://abcd1234.supabase.co', service_key='service-key'))

    def test_extract_project_id(self):
        """Test project id extraction from http and https URLs."""
        assert extract_project_id('https://xyz.supabase.co') == 'xyz'
        assert extract_project_id('http://xyz.supabase.co/rest/v1') == 'xyz'

    def test_password_not_in_repr(self):
        """Test that secrets never appear in repr output."""
        creds = Credentials(url='https://abcd1234.supabase.co', service_key='svc-key', password='s3cret')
        conn = resolve(creds)

        assert 's3cret' not in repr(conn)
        assert 's3cret' not in repr(creds)
        assert 'svc-key' not in repr(creds)

    def test_with_host_marks_ip_resolved(self):
        """Test that with_host substitutes the host and flags the retry as spent."""
        conn = resolve(Credentials(url='https://abcd1234.supabase.co', password='s3cret'))
        retried = conn.with_host('10.1.2.3')

        assert retried.host == '10.1.2.3'
        assert retried.is_ip_resolved is True
        assert retried.user == conn.user
        assert conn.is_ip_resolved is False

    def test_tool_env_carries_password(self):
        """Test that the tool environment passes the password via PGPASSWORD."""
        conn = resolve(Credentials(url='https://abcd1234.supabase.co', password='s3cret'))
        assert conn.tool_env() == {'PGPASSWORD': 's3cret'}


class TestResolveHostToIp:
    """Test IPv4/IPv6 hostname resolution."""

    def test_prefers_ipv4(self):
        """Test that an IPv4 address is returned when available."""
        infos = [(socket.AF_INET, socket.SOCK_STREAM, 6, '', ('10.0.0.5', 0))]
        with mock.patch('envclone.connection.socket.getaddrinfo', return_value=infos):
            assert resolve_host_to_ip('db.abcd.supabase.co') == '10.0.0.5'

    def test_falls_back_to_ipv6(self):
        """Test IPv6 fallback when IPv4 resolution fails."""
        def fake_getaddrinfo(host, port, family):
            if family == socket.AF_INET:
                raise socket.gaierror('no A record')
            return [(socket.AF_INET6, socket.SOCK_STREAM, 6, '', ('2a05:d014::1', 0, 0, 0))]

        with mock.patch('envclone.connection.socket.getaddrinfo', side_effect=fake_getaddrinfo):
            assert resolve_host_to_ip('db.abcd.supabase.co') == '2a05:d014::1'

    def test_unresolvable_returns_none(self):
        """Test that total resolution failure returns None."""
        with mock.patch('envclone.connection.socket.getaddrinfo', side_effect=socket.gaierror('nope')):
            assert resolve_host_to_ip('db.missing.supabase.co') is None
