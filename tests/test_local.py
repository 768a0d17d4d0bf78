"""Tests for local-mode certificates and hosts entries."""

import os
from datetime import timedelta
from unittest.mock import patch

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from simplecert.ssl.certificate import EC384, inspect_certificate, key_matches_certificate
from simplecert.ssl.local import SelfSignedAdapter, update_hosts
from simplecert.utils.errors import AcquisitionError


class TestSelfSignedAdapter:
    """Test self-signed certificate generation."""

    def test_obtain(self, fake_clock):
        adapter = SelfSignedAdapter(key_type=EC384, validity=timedelta(days=30), clock=fake_clock)

        resource = adapter.obtain(["example.com", "www.example.com"])

        info = inspect_certificate(resource.certificate)
        assert info.common_name == "example.com"
        assert info.domains == ("example.com", "www.example.com")
        assert resource.not_after == fake_clock() + timedelta(days=30)
        assert info.not_before < fake_clock()
        assert key_matches_certificate(resource.certificate, resource.private_key)
        key = load_pem_private_key(resource.private_key, password=None)
        assert isinstance(key, ec.EllipticCurvePrivateKey)
        assert key.curve.name == "secp384r1"

    def test_default_key_type_is_rsa(self):
        resource = SelfSignedAdapter().obtain(["localhost"])

        key = load_pem_private_key(resource.private_key, password=None)
        assert isinstance(key, rsa.RSAPrivateKey)
        assert key.key_size == 2048

    def test_no_domains(self):
        with pytest.raises(AcquisitionError):
            SelfSignedAdapter().obtain([])

    def test_unsupported_key_type(self):
        with pytest.raises(AcquisitionError, match="Unsupported key type"):
            SelfSignedAdapter(key_type="1024").obtain(["example.com"])


class TestUpdateHosts:
    """Test hosts file updates."""

    def test_adds_missing_domains(self, temp_directory):
        hosts_path = os.path.join(temp_directory, "hosts")
        with open(hosts_path, "w") as f:
            f.write("127.0.0.1 localhost\n127.0.0.1 example.com # manual")

        added = update_hosts(["example.com", "dev.example.com"], hosts_path)

        assert added == ["dev.example.com"]
        with open(hosts_path) as f:
            lines = f.read().splitlines()
        assert lines[-1] == "127.0.0.1 dev.example.com # simplecert"
        assert lines[1] == "127.0.0.1 example.com # manual"

    def test_commented_entries_do_not_count(self, temp_directory):
        hosts_path = os.path.join(temp_directory, "hosts")
        with open(hosts_path, "w") as f:
            f.write("# 127.0.0.1 example.com\n")

        assert update_hosts(["example.com"], hosts_path) == ["example.com"]

    def test_nothing_to_add(self, temp_directory):
        hosts_path = os.path.join(temp_directory, "hosts")
        with open(hosts_path, "w") as f:
            f.write("127.0.0.1 example.com\n")

        assert update_hosts(["example.com"], hosts_path) == []

    def test_permission_denied_is_not_fatal(self, temp_directory):
        hosts_path = os.path.join(temp_directory, "hosts")

        with patch("builtins.open", side_effect=PermissionError("denied")):
            assert update_hosts(["example.com"], hosts_path) == []
